"""Knowledge base retrieval.

This module embeds a user question and looks up the closest verified
question/answer pairs in the knowledge store.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from tiered_rag.config import RetrievalConfig, get_settings
from tiered_rag.core.embedder import Embedder, get_embedder
from tiered_rag.core.exceptions import RetrievalError
from tiered_rag.core.vector_store import KnowledgeMatch, KnowledgeStore, get_knowledge_store

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """Result of a retrieval operation."""
    question: str
    query_embedding: np.ndarray
    matches: List[KnowledgeMatch]
    latency_ms: float

    @property
    def chunks(self) -> List[str]:
        """Answer texts, closest match first."""
        return [m.answer for m in self.matches]


class KnowledgeRetriever:
    """Retrieves knowledge entries similar to a question."""

    def __init__(
        self,
        store: Optional[KnowledgeStore] = None,
        embedder: Optional[Embedder] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        self.store = store or get_knowledge_store()
        self.embedder = embedder or get_embedder()
        self.config = config or get_settings().retrieval

    async def retrieve(
        self,
        question: str,
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> RetrievalResult:
        """Retrieve knowledge matches for a question.

        The raw question text is embedded, never question plus answer,
        so query vectors line up with the stored question vectors.

        Args:
            question: User question
            threshold: Minimum similarity, defaults to the configured value
            limit: Maximum number of matches, defaults to the configured value

        Returns:
            RetrievalResult; an empty match list is a valid outcome

        Raises:
            RetrievalError: if embedding or the vector query fails
        """
        start_time = time.time()
        threshold = self.config.match_threshold if threshold is None else threshold
        limit = limit or self.config.max_matches

        try:
            query_embedding = await self.embedder.embed(question)
            matches = await self.store.search(query_embedding, threshold=threshold, limit=limit)
        except Exception as e:
            raise RetrievalError(f"Failed to search knowledge base: {e}") from e

        latency_ms = (time.time() - start_time) * 1000

        logger.info(
            f"Retrieved {len(matches)} knowledge match(es) "
            f"(threshold={threshold:.2f}, limit={limit}, {latency_ms:.0f}ms)"
        )
        for i, match in enumerate(matches, 1):
            logger.debug(f"  {i}. similarity={match.similarity:.4f} question={match.question[:60]!r}")

        return RetrievalResult(
            question=question,
            query_embedding=query_embedding,
            matches=matches,
            latency_ms=latency_ms,
        )


# Singleton instance
_retriever: Optional[KnowledgeRetriever] = None


def get_retriever() -> KnowledgeRetriever:
    """Get the global retriever instance."""
    global _retriever
    if _retriever is None:
        _retriever = KnowledgeRetriever()
    return _retriever
