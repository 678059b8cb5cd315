"""Knowledge base and review queue administration.

Every knowledge write re-embeds the question text with the same embedder
the answer pipeline searches with, so stored vectors always match their
question.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from tiered_rag.core.embedder import Embedder, get_embedder
from tiered_rag.core.generator import WebAnswerGenerator, get_web_generator
from tiered_rag.core.vector_store import (
    KnowledgeEntry,
    KnowledgeStore,
    QueueEntry,
    QueueStatus,
    ReviewQueueStore,
    get_knowledge_store,
    get_queue_store,
)

logger = logging.getLogger(__name__)


@dataclass
class RegenerationResult:
    """Outcome of re-embedding the knowledge base."""
    total: int
    regenerated: int
    errors: int


class KnowledgeService:
    """Administrative operations on the knowledge base and review queue."""

    def __init__(
        self,
        knowledge_store: Optional[KnowledgeStore] = None,
        queue_store: Optional[ReviewQueueStore] = None,
        embedder: Optional[Embedder] = None,
        web_generator: Optional[WebAnswerGenerator] = None,
        regeneration_delay_s: float = 0.1,
    ):
        """Initialize the service.

        Args:
            knowledge_store: Knowledge base store
            queue_store: Review queue store
            embedder: Question embedder shared with retrieval
            web_generator: Generator used to draft answers for queued questions
            regeneration_delay_s: Pause between entries when re-embedding
        """
        self.knowledge_store = knowledge_store or get_knowledge_store()
        self.queue_store = queue_store or get_queue_store()
        self.embedder = embedder or get_embedder()
        self.web_generator = web_generator or get_web_generator()
        self.regeneration_delay_s = regeneration_delay_s

    @staticmethod
    def _validate(question: str, answer: str):
        if not question or not question.strip() or not answer or not answer.strip():
            raise ValueError("Question and answer are required")

    # Knowledge base

    async def list_knowledge(self) -> List[KnowledgeEntry]:
        return await self.knowledge_store.list_entries()

    async def create_knowledge(
        self,
        question: str,
        answer: str,
        queue_id: Optional[str] = None,
    ) -> KnowledgeEntry:
        """Add a knowledge entry, optionally promoting a queued question.

        Args:
            question: Question text (the embedded text)
            answer: Verified answer
            queue_id: Review queue entry this answer resolves

        Returns:
            The stored entry
        """
        self._validate(question, answer)
        if queue_id:
            await self.queue_store.get(queue_id)

        embedding = await self.embedder.embed(question)
        entry = await self.knowledge_store.insert(question, answer, embedding)
        logger.info(f"Knowledge entry created: {entry.id}")

        if queue_id:
            await self.queue_store.resolve(queue_id)
            logger.info(f"Queue entry {queue_id} resolved by knowledge entry {entry.id}")

        return entry

    async def update_knowledge(self, entry_id: str, question: str, answer: str) -> KnowledgeEntry:
        """Edit an entry; the embedding is regenerated from the new question."""
        self._validate(question, answer)
        await self.knowledge_store.get(entry_id)
        embedding = await self.embedder.embed(question)
        entry = await self.knowledge_store.update(entry_id, question, answer, embedding)
        logger.info(f"Knowledge entry updated: {entry_id}")
        return entry

    async def delete_knowledge(self, entry_id: str):
        await self.knowledge_store.delete(entry_id)
        logger.info(f"Knowledge entry deleted: {entry_id}")

    async def regenerate_embeddings(self) -> RegenerationResult:
        """Re-embed every knowledge entry from its question text.

        Per-entry failures are counted and logged; the run continues.
        """
        entries = [e async for e in self.knowledge_store.iter_entries()]
        logger.info(f"Regenerating embeddings for {len(entries)} knowledge entries")

        regenerated = 0
        errors = 0
        for entry in entries:
            try:
                embedding = await self.embedder.embed(entry.question)
                await self.knowledge_store.update(entry.id, entry.question, entry.answer, embedding)
                regenerated += 1
            except Exception as e:
                logger.error(f"Error regenerating embedding for {entry.id}: {e}")
                errors += 1
            if self.regeneration_delay_s:
                await asyncio.sleep(self.regeneration_delay_s)

        logger.info(f"Embedding regeneration done: {regenerated} ok, {errors} errors")
        return RegenerationResult(total=len(entries), regenerated=regenerated, errors=errors)

    # Review queue

    async def list_queue(self, status: Optional[QueueStatus] = None) -> List[QueueEntry]:
        return await self.queue_store.list_entries(status=status)

    async def resolve_queue_entry(self, entry_id: str) -> QueueEntry:
        entry = await self.queue_store.resolve(entry_id)
        logger.info(f"Queue entry resolved: {entry_id}")
        return entry

    async def delete_queue_entry(self, entry_id: str):
        await self.queue_store.delete(entry_id)
        logger.info(f"Queue entry deleted: {entry_id}")

    async def propose_answer(self, entry_id: str) -> str:
        """Draft a web-search answer for a queued question."""
        entry = await self.queue_store.get(entry_id)
        return await self.web_generator.draft(entry.question)


# Singleton instance
_service: Optional[KnowledgeService] = None


def get_knowledge_service() -> KnowledgeService:
    """Get the global knowledge service instance."""
    global _service
    if _service is None:
        _service = KnowledgeService()
    return _service
