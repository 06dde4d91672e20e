"""Base embedding provider interface."""

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    Implementations wrap one backend (hosted API or local model). They never
    return an empty or all-zero vector for a failure; they raise
    EmbeddingError instead.
    """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Input text to embed (already normalized by the caller)

        Returns:
            Embedding vector as list of floats

        Raises:
            EmbeddingError: If embedding generation fails
        """

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Default implementation embeds one text at a time; providers with a
        native batch API override it.
        """
        return [await self.embed(text) for text in texts]

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Number of dimensions in the embedding vector."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier. Part of the embedding cache key."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging (e.g. "openai", "fastembed")."""
