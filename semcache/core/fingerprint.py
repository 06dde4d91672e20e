"""Content normalization and fingerprinting.

Both cache tiers and the stampede guard key on the same fingerprint, and
embeddings are computed from the same normalized text, so this module is the
single place where content is canonicalized.

Key Generation:
    1. Normalize: lowercase + trim
    2. Collapse: any run of whitespace -> single space
    3. Hash: SHA256 hex digest for a fixed-length key
"""

import hashlib
import re

from semcache.core.models import ContentFingerprint

_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Canonicalize raw content text.

    Total and deterministic: any string (including empty) maps to a
    canonical form and the function never raises.

    Example:
        >>> normalize("  Studies   SHOW that\\nX is true. ")
        'studies show that x is true.'
    """
    return _WHITESPACE.sub(" ", text.lower()).strip()


def fingerprint(canonical_text: str) -> ContentFingerprint:
    """Derive the exact-match key for already-normalized text."""
    digest = hashlib.sha256(canonical_text.encode("utf-8")).hexdigest()
    return ContentFingerprint(digest)


def content_fingerprint(text: str) -> ContentFingerprint:
    """Shortcut for ``fingerprint(normalize(text))``."""
    return fingerprint(normalize(text))
