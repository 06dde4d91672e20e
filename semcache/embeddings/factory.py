"""Factory for creating embedding providers with fallback."""

import logging
import os
from typing import Any

from semcache.core.exceptions import ConfigurationError
from semcache.embeddings.base import EmbeddingProvider
from semcache.embeddings.openai import OpenAIEmbeddingProvider

logger = logging.getLogger(__name__)


def _try_import_fastembed() -> bool:
    """Check if fastembed is available."""
    try:
        import fastembed  # noqa: F401

        return True
    except ImportError:
        return False


def create_embedding_provider(
    provider: str = "auto",
    model: str | None = None,
    api_key: str | None = None,
    **kwargs: Any,
) -> EmbeddingProvider:
    """Create an embedding provider.

    Priority order for 'auto' mode:
        1. OpenAI (if an API key is passed or OPENAI_API_KEY is set)
        2. FastEmbed (if installed), local, no API key
        3. ConfigurationError with installation instructions

    Args:
        provider: "auto", "openai" or "fastembed"
        model: Model identifier (provider default when None)
        api_key: API key for hosted providers
        **kwargs: dimensions, timeout (openai); cache_dir (fastembed)

    Raises:
        ConfigurationError: Unknown provider, or nothing available in auto mode
        ImportError: If the selected provider's package is not installed

    Example:
        >>> provider = create_embedding_provider("openai", api_key="sk-...")
        >>> provider = create_embedding_provider("fastembed")
    """
    provider_lower = provider.lower()

    if provider_lower == "auto":
        if api_key or os.getenv("OPENAI_API_KEY"):
            logger.info("Auto mode: Using OpenAI embeddings (API key found)")
            return create_embedding_provider("openai", model=model, api_key=api_key, **kwargs)

        if _try_import_fastembed():
            logger.info("Auto mode: Using FastEmbed (lightweight ONNX, no API key needed)")
            return create_embedding_provider("fastembed", model=model, **kwargs)

        raise ConfigurationError(
            "No embedding providers available. Either:\n"
            "  set OPENAI_API_KEY (or EMBEDDING_API_KEY)  # hosted embeddings\n"
            "  pip install fastembed                     # local embeddings (~100MB)"
        )

    if provider_lower == "openai":
        return OpenAIEmbeddingProvider(
            model=model or "text-embedding-3-small",
            api_key=api_key,
            dimensions=kwargs.get("dimensions"),
            timeout=kwargs.get("timeout", 30.0),
        )

    if provider_lower == "fastembed":
        from semcache.embeddings.fastembed_provider import FastEmbedProvider

        return FastEmbedProvider(
            model=model or "BAAI/bge-small-en-v1.5",
            cache_dir=kwargs.get("cache_dir"),
        )

    raise ConfigurationError(
        f"Unknown embedding provider: {provider}. Supported: auto, openai, fastembed"
    )
