"""Tests for content normalization and fingerprinting."""

import pytest

from semcache.core.fingerprint import content_fingerprint, fingerprint, normalize


class TestNormalize:
    """normalize() is total and idempotent."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Studies show that X is true.", "studies show that x is true."),
            ("  Studies   SHOW that\nX\tis true.  ", "studies show that x is true."),
            ("", ""),
            ("   \n\t ", ""),
            ("ÉCOLE Über", "école über"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize(raw) == expected

    def test_idempotent(self):
        once = normalize("  Mixed CASE\n\ntext  ")
        assert normalize(once) == once

    def test_punctuation_preserved(self):
        """Punctuation distinguishes content; only case and whitespace fold."""
        assert normalize("X is true.") != normalize("X is true!")

    def test_unicode_forms_not_folded(self):
        """Only case and whitespace fold; composed and decomposed forms stay distinct."""
        assert normalize("caf\u00e9") != normalize("cafe\u0301")


class TestFingerprint:
    """Fingerprints are stable 64-char hex digests."""

    def test_format(self):
        fp = content_fingerprint("Studies show that X is true.")

        assert len(fp) == 64
        assert all(c in "0123456789abcdef" for c in fp)

    def test_deterministic(self):
        assert content_fingerprint("same text") == content_fingerprint("same text")

    def test_equivalent_texts_share_fingerprint(self):
        assert content_fingerprint("Studies show that X is true.") == content_fingerprint(
            "  studies SHOW   that x is TRUE. "
        )

    def test_different_texts_differ(self):
        assert content_fingerprint("Studies show that X is true.") != content_fingerprint(
            "Research shows that X is true."
        )

    def test_empty_content_has_fingerprint(self):
        # sha256("")
        assert content_fingerprint("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_content_fingerprint_matches_two_step(self):
        text = "  Some Claim  "
        assert content_fingerprint(text) == fingerprint(normalize(text))
