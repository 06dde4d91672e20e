"""Tests for the semcache command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from conftest import FakeEmbeddingProvider, make_result
from semcache.cache import (
    InMemoryEmbeddingCache,
    InMemoryExactMatchStore,
    InMemorySimilarityStore,
    SemanticFeedbackCache,
)
from semcache.cli.main import cli
from semcache.core.config import settings
from semcache.core.exceptions import ConfigurationError
from semcache.core.fingerprint import content_fingerprint
from semcache.core.models import CachedFeedbackEntry, FeedbackType
from semcache.embeddings import CachedEmbeddingProvider

TEXT = "Studies show that X is true."


def parse_json(output: str) -> dict:
    """First JSON object in the output (log lines may follow it)."""
    document, _ = json.JSONDecoder().raw_decode(output[output.index("{") :])
    return document


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def exact_store():
    store = InMemoryExactMatchStore()
    fp = content_fingerprint(TEXT)
    entry = CachedFeedbackEntry.create(make_result(), fp, FeedbackType.UNSOURCED)
    store._entries.set(f"UNSOURCED:{fp}", entry)
    return store


@pytest.fixture
def mock_factory(exact_store):
    """Patch the CLI's cache factory to return an in-memory cache."""
    cache = SemanticFeedbackCache(
        exact_store,
        InMemorySimilarityStore(),
        CachedEmbeddingProvider(FakeEmbeddingProvider(), InMemoryEmbeddingCache()),
    )
    with patch("semcache.cli.main.create_feedback_cache", AsyncMock(return_value=cache)) as factory:
        yield factory


class TestProbe:
    def test_exact_hit(self, runner, mock_factory):
        result = runner.invoke(cli, ["probe", TEXT, "--type", "UNSOURCED"])

        assert result.exit_code == 0
        assert "Source:      exact" in result.output
        assert "Consider citing the studies" in result.output

    def test_type_is_case_insensitive(self, runner, mock_factory):
        result = runner.invoke(cli, ["probe", TEXT, "--type", "unsourced"])

        assert result.exit_code == 0
        assert "Source:      exact" in result.output

    def test_miss_json(self, runner, mock_factory):
        result = runner.invoke(
            cli, ["--log-level", "error", "probe", TEXT, "--type", "TONE", "--json"]
        )

        assert result.exit_code == 0
        document = parse_json(result.output)
        assert document["source"] == "none"
        assert document["hit"] is False
        assert document["fingerprint"] == content_fingerprint(TEXT)

    def test_invalid_type(self, runner, mock_factory):
        result = runner.invoke(cli, ["probe", TEXT, "--type", "SPELLING"])

        assert result.exit_code == 2
        mock_factory.assert_not_awaited()

    def test_probe_does_not_compute(self, runner, mock_factory, exact_store):
        runner.invoke(cli, ["probe", "never seen before", "--type", "BIAS"])

        assert len(exact_store) == 1


class TestStats:
    def test_json(self, runner, mock_factory):
        result = runner.invoke(cli, ["--log-level", "error", "stats", "--json"])

        assert result.exit_code == 0
        document = parse_json(result.output)
        assert document["exact"]["entries"] == 1
        assert document["exact"]["backend"] == "InMemoryExactMatchStore"
        assert document["similarity"]["points"] == 0
        assert document["embeddings"] == "fake"

    def test_text(self, runner, mock_factory):
        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "entries=1" in result.output


class TestMaintenance:
    def test_purge(self, runner, mock_factory):
        result = runner.invoke(cli, ["purge"])

        assert result.exit_code == 0
        assert "Purged 0 expired points" in result.output

    def test_clear_with_yes(self, runner, mock_factory, exact_store):
        result = runner.invoke(cli, ["clear", "--yes"])

        assert result.exit_code == 0
        assert "Removed 1 exact entries, 0 points" in result.output
        assert len(exact_store) == 0

    def test_clear_aborted(self, runner, mock_factory, exact_store):
        result = runner.invoke(cli, ["clear"], input="n\n")

        assert result.exit_code == 1
        assert len(exact_store) == 1
        mock_factory.assert_not_awaited()

    def test_factory_error_exits_nonzero(self, runner):
        failing = AsyncMock(side_effect=ConfigurationError("No embedding providers available"))
        with patch("semcache.cli.main.create_feedback_cache", failing):
            result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 1
        assert "No embedding providers available" in result.output


class TestConfig:
    def test_secrets_masked(self, runner, monkeypatch):
        monkeypatch.setattr(settings, "qdrant_api_key", "qdrant-secret")
        monkeypatch.setattr(settings, "embedding_api_key", "")

        result = runner.invoke(cli, ["--log-level", "error", "config"])

        assert result.exit_code == 0
        assert "qdrant-secret" not in result.output
        document = parse_json(result.output)
        assert document["qdrant_api_key"] == "***"
        assert document["embedding_api_key"] == ""
        assert document["similarity_threshold"] == settings.similarity_threshold
