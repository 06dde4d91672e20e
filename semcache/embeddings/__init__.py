"""Embedding providers for the similarity tier.

- OpenAI embeddings (hosted, requires an API key)
- FastEmbed (local ONNX, optional extra, no API key)
- CachedEmbeddingProvider: fingerprint-keyed cache, timeout and validation
  in front of either
"""

from semcache.embeddings.base import EmbeddingProvider
from semcache.embeddings.cached import CachedEmbeddingProvider
from semcache.embeddings.factory import create_embedding_provider
from semcache.embeddings.openai import OpenAIEmbeddingProvider

__all__ = [
    "EmbeddingProvider",
    "CachedEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "create_embedding_provider",
]
