"""FastEmbed embedding provider (lightweight ONNX Runtime, no API key).

Installation: pip install "semcache[fastembed]"
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from semcache.core.exceptions import EmbeddingError
from semcache.embeddings.base import EmbeddingProvider

if TYPE_CHECKING:
    from fastembed import TextEmbedding

logger = logging.getLogger(__name__)

KNOWN_DIMENSIONS = {
    "BAAI/bge-small-en-v1.5": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}


class FastEmbedProvider(EmbeddingProvider):
    """Local embeddings through FastEmbed.

    Inference is CPU-bound, so it runs in a worker thread to keep the event
    loop responsive.

    Default model: BAAI/bge-small-en-v1.5 (384 dims)
    """

    def __init__(self, model: str = "BAAI/bge-small-en-v1.5", cache_dir: str | None = None):
        """Initialize FastEmbed provider.

        Raises:
            ImportError: If fastembed not installed
            EmbeddingError: If model loading fails
        """
        try:
            from fastembed import TextEmbedding
        except ImportError as e:
            raise ImportError(
                "fastembed not installed. Install with: pip install fastembed"
            ) from e

        self.model = model
        self._dimension = KNOWN_DIMENSIONS.get(model, 384)

        try:
            self._model: TextEmbedding = TextEmbedding(model_name=model, cache_dir=cache_dir)
        except (OSError, ValueError, RuntimeError) as e:
            logger.error(f"Failed to load FastEmbed model {model}: {e}")
            raise EmbeddingError(f"Failed to load FastEmbed model: {e}") from e

    async def embed(self, text: str) -> list[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            return await asyncio.to_thread(self._embed_sync, texts)
        except (OSError, ValueError, RuntimeError) as e:
            logger.error(f"FastEmbed embedding failed: {e}")
            raise EmbeddingError(f"FastEmbed embedding generation failed: {e}") from e

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        # FastEmbed yields numpy arrays
        return [emb.tolist() for emb in self._model.embed(texts)]

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def provider_name(self) -> str:
        return "fastembed"
