"""OpenAI embedding provider (recommended for production)."""

import logging
import os
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from semcache.core.exceptions import ConfigurationError, EmbeddingError
from semcache.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embedding provider.

    Default model: text-embedding-3-small (1536 dims, can be reduced)
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int | None = None,
        timeout: float = 30.0,
    ):
        """Initialize OpenAI embedding provider.

        Args:
            model: OpenAI embedding model
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            dimensions: Optional dimension reduction (text-embedding-3-* only)
            timeout: Client request timeout in seconds. The cache applies its
                own, usually shorter, bound on top of this.

        Raises:
            ConfigurationError: If no API key is available
        """
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout

        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ConfigurationError(
                "OpenAI API key required. Set OPENAI_API_KEY or EMBEDDING_API_KEY."
            )

        self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)

        if "text-embedding-3-large" in model:
            self._dimension = dimensions or 3072
        elif "text-embedding-3" in model:
            self._dimension = dimensions or 1536
        else:
            self._dimension = 1536

    async def embed(self, text: str) -> list[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in a single API request.

        Raises:
            EmbeddingError: If the API request fails or returns no vectors
        """
        if not texts:
            return []

        params: dict[str, Any] = {"model": self.model, "input": texts}
        if self.dimensions and "text-embedding-3" in self.model:
            params["dimensions"] = self.dimensions

        try:
            response = await self.client.embeddings.create(**params)
        except OpenAIError as e:
            logger.error(f"OpenAI embedding API error: {e}")
            raise EmbeddingError(
                f"OpenAI embedding API failed: {e}", details={"model": self.model}
            ) from e

        result = [item.embedding for item in response.data]
        if len(result) != len(texts):
            raise EmbeddingError(
                f"OpenAI returned {len(result)} embeddings for {len(texts)} inputs",
                details={"model": self.model},
            )
        return result

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def provider_name(self) -> str:
        return "openai"
