"""Command-line interface for semcache.

Maintenance and debugging against the configured backends:

    semcache probe "Studies show that X is true." --type UNSOURCED
    semcache stats
    semcache purge
    semcache clear --yes
    semcache config
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from semcache.cache.orchestrator import SemanticFeedbackCache
from semcache.core.config import settings
from semcache.core.exceptions import SemcacheError
from semcache.core.models import FeedbackType
from semcache.utils.service_factory import create_feedback_cache

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SECRET_FIELDS = {"qdrant_api_key", "embedding_api_key", "otel_exporter_otlp_headers"}


def _run(action: Callable[[SemanticFeedbackCache], Awaitable[T]]) -> T:
    """Build a cache from settings, run one action, always close it."""

    async def execute() -> T:
        cache = await create_feedback_cache()
        try:
            return await action(cache)
        finally:
            await cache.close()

    try:
        return asyncio.run(execute())
    except SemcacheError as e:
        logger.error(f"Error: {e.message}")
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level.lower(),
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
    show_default=True,
)
def cli(log_level: str) -> None:
    """semcache - semantic feedback cache maintenance."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@click.argument("text")
@click.option(
    "--type",
    "feedback_type",
    required=True,
    type=click.Choice([t.value for t in FeedbackType], case_sensitive=False),
    help="Feedback type partition to probe",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
def probe(text: str, feedback_type: str, output_json: bool) -> None:
    """Look TEXT up in both tiers without computing anything."""
    result = _run(lambda cache: cache.lookup(text, FeedbackType(feedback_type.upper())))

    if output_json:
        click.echo(result.model_dump_json(indent=2, by_alias=True))
        return

    click.echo(f"Fingerprint: {result.fingerprint}")
    click.echo(f"Source:      {result.source.value}")
    click.echo(f"Exact tier:  {result.exact_tier.value if result.exact_tier else 'n/a'}")
    click.echo(
        f"Similarity:  {result.similarity_tier.value if result.similarity_tier else 'n/a'}"
        + (f" ({result.similarity:.4f})" if result.similarity is not None else "")
    )
    if result.result is not None:
        click.echo(f"\nSuggestion: {result.result.suggestion_text}")
        click.echo(f"Reasoning:  {result.result.reasoning}")
        click.echo(f"Confidence: {result.result.confidence_score:.2f}")


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
def stats(output_json: bool) -> None:
    """Show tier sizes and backend health."""

    async def collect(cache: SemanticFeedbackCache) -> dict[str, Any]:
        tier_stats = cache.get_stats()
        return {
            "exact": {
                "backend": type(cache.exact_store).__name__,
                "entries": await cache.exact_store.count(),
                "circuit": tier_stats.exact_tier.circuit_state,
            },
            "similarity": {
                "backend": type(cache.similarity_store).__name__,
                "points": await cache.similarity_store.count(),
                "circuit": tier_stats.similarity_tier.circuit_state,
            },
            "embeddings": cache.embedder.provider_name if cache.embedder else None,
        }

    summary = _run(collect)
    if output_json:
        click.echo(json.dumps(summary, indent=2))
        return

    for tier, values in summary.items():
        if isinstance(values, dict):
            details = ", ".join(f"{k}={v}" for k, v in values.items())
            click.echo(f"{tier:<11} {details}")
        else:
            click.echo(f"{tier:<11} {values}")


@cli.command()
def purge() -> None:
    """Delete expired points from the similarity tier."""
    removed = _run(lambda cache: cache.purge_expired())
    click.echo("Expired points purged" if removed < 0 else f"Purged {removed} expired points")


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def clear(yes: bool) -> None:
    """Delete every cached entry in both tiers."""
    if not yes:
        click.confirm("This removes all cached feedback. Continue?", abort=True)
    removed = _run(lambda cache: cache.clear())
    click.echo(f"Removed {removed['exact']} exact entries, {removed['similarity']} points")


@cli.command()
def config() -> None:
    """Print the effective configuration (secrets masked)."""
    values = settings.model_dump()
    for key in _SECRET_FIELDS:
        if values.get(key):
            values[key] = "***"
    click.echo(json.dumps(values, indent=2, default=str))


if __name__ == "__main__":
    cli()
