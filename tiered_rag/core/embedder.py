"""Embedding service for text vectorization.

This module converts question text into dense vectors. The same
``Embedder.embed`` call is used when knowledge entries are written and
when user questions are searched, so stored and query vectors are always
produced the same way (question text only).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, TYPE_CHECKING
import numpy as np

try:
    from sentence_transformers import SentenceTransformer
    HAS_SENTENCE_TRANSFORMERS = True
except ImportError:
    HAS_SENTENCE_TRANSFORMERS = False

from tiered_rag.config import EmbeddingConfig, get_settings
from tiered_rag.core.exceptions import ProviderNotConfiguredError

if TYPE_CHECKING:
    from tiered_rag.services.cache import CacheService

logger = logging.getLogger(__name__)


class EmbeddingBackend(ABC):
    """Turns a batch of texts into vectors."""

    @abstractmethod
    async def encode(self, texts: List[str]) -> np.ndarray:
        """Encode texts into an array of shape (len(texts), dimensions)."""
        pass


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """OpenAI embeddings API backend."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small"):
        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def encode(self, texts: List[str]) -> np.ndarray:
        response = await self.client.embeddings.create(model=self.model, input=texts)
        return np.array([item.embedding for item in response.data], dtype=np.float32)


class SentenceTransformerBackend(EmbeddingBackend):
    """Local sentence-transformers backend.

    Encoding is CPU bound, so it runs in a worker thread to keep the
    event loop responsive.
    """

    def __init__(self, model_name: str, model: Optional["SentenceTransformer"] = None):
        if model is None:
            if not HAS_SENTENCE_TRANSFORMERS:
                raise ImportError(
                    "sentence-transformers is required. "
                    "Install with: pip install sentence-transformers"
                )
            logger.info(f"Loading embedding model: {model_name}")
            model = SentenceTransformer(model_name)
        self._model = model

    async def encode(self, texts: List[str]) -> np.ndarray:
        return await asyncio.to_thread(
            self._model.encode,
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )


class Embedder:
    """Service for generating question embeddings."""

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        backend: Optional[EmbeddingBackend] = None,
        cache: Optional["CacheService"] = None,
    ):
        """Initialize the embedder.

        Args:
            config: Embedding configuration
            backend: Pre-built backend (for testing)
            cache: Optional embedding cache
        """
        self.config = config or get_settings().embedding
        self._backend = backend
        self._initialized = backend is not None
        self.cache = cache

    def _ensure_initialized(self):
        """Lazy initialization of the backend."""
        if self._initialized:
            return

        if self.config.provider == "openai":
            if not self.config.openai_api_key:
                raise ProviderNotConfiguredError("OpenAI API key not configured")
            self._backend = OpenAIEmbeddingBackend(
                api_key=self.config.openai_api_key,
                model=self.config.model_name,
            )
        elif self.config.provider == "sentence-transformers":
            self._backend = SentenceTransformerBackend(self.config.model_name)
        else:
            raise ProviderNotConfiguredError(
                f"Unknown embedding provider: {self.config.provider}"
            )

        self._initialized = True
        logger.info(
            f"Initialized {self.config.provider} embedder "
            f"({self.config.model_name}, {self.config.dimensions} dims)"
        )

    def _prepare(self, text: str) -> str:
        text = text.strip()
        tokens = text.split()
        if len(tokens) > self.config.max_tokens:
            text = " ".join(tokens[:self.config.max_tokens])
        return text

    async def embed(self, text: str) -> np.ndarray:
        """Generate the embedding for a single question.

        Args:
            text: Question text

        Returns:
            Numpy array of shape (dimensions,)
        """
        text = self._prepare(text)

        if self.cache is not None:
            cached = await self.cache.get_embedding(self.config.model_name, text)
            if cached is not None:
                return np.asarray(cached, dtype=np.float32)

        self._ensure_initialized()
        embedding = (await self._backend.encode([text]))[0]

        if self.cache is not None:
            await self.cache.set_embedding(self.config.model_name, text, embedding.tolist())

        return embedding

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        return self.config.dimensions


# Singleton instance
_embedder: Optional[Embedder] = None


def get_embedder() -> Embedder:
    """Get the global embedder instance."""
    global _embedder
    if _embedder is None:
        from tiered_rag.services.cache import get_cache
        _embedder = Embedder(cache=get_cache())
    return _embedder
