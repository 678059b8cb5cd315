"""Review queue writer.

Questions the knowledge base could not answer are queued for human review.
A question is skipped when a semantically similar question is already
pending. Queue writes run in the background and never affect the answer
being streamed to the user.
"""

import asyncio
import logging
from typing import Optional, Set

import numpy as np

from tiered_rag.config import QueueConfig, get_settings
from tiered_rag.core.vector_store import QueueEntry, ReviewQueueStore, get_queue_store

logger = logging.getLogger(__name__)


class ReviewQueueWriter:
    """Deduplicating writer for the review queue."""

    def __init__(
        self,
        store: Optional[ReviewQueueStore] = None,
        config: Optional[QueueConfig] = None,
    ):
        """Initialize the writer.

        Args:
            store: Review queue store
            config: Queue configuration (dedup threshold)
        """
        self.store = store or get_queue_store()
        self.config = config or get_settings().queue
        self._tasks: Set[asyncio.Task] = set()

    async def enqueue_if_novel(
        self,
        question: str,
        embedding: np.ndarray,
    ) -> Optional[QueueEntry]:
        """Queue ``question`` unless a similar one is already pending.

        Args:
            question: Unanswered user question
            embedding: Question embedding computed during retrieval

        Returns:
            The new entry, or None when skipped or on failure
        """
        try:
            similar = await self.store.search_pending(
                embedding,
                threshold=self.config.dedup_threshold,
                limit=self.config.dedup_limit,
            )
            if similar:
                match = similar[0]
                logger.info(
                    f"Similar question already pending "
                    f"(similarity {match.similarity:.1%}): {match.question!r}; skipping"
                )
                return None

            entry = await self.store.insert(question, embedding)
            if entry is None:
                logger.info(f"Exact duplicate question already queued: {question.strip()!r}")
            else:
                logger.info(f"Question added to review queue: {entry.question!r}")
            return entry
        except Exception as e:
            logger.error(f"Error adding question to review queue: {e}", exc_info=True)
            return None

    def schedule(self, question: str, embedding: np.ndarray) -> asyncio.Task:
        """Run ``enqueue_if_novel`` in the background without waiting for it.

        The task is tracked until it finishes so it is not garbage collected,
        and it is independent of the caller's lifecycle.
        """
        task = asyncio.create_task(
            self.enqueue_if_novel(question, embedding),
            name="review-queue-enqueue",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Review queue write was cancelled")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for all scheduled queue writes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Singleton instance
_writer: Optional[ReviewQueueWriter] = None


def get_queue_writer() -> ReviewQueueWriter:
    """Get the global review queue writer."""
    global _writer
    if _writer is None:
        _writer = ReviewQueueWriter()
    return _writer
