"""Pytest fixtures for Tiered RAG Assistant tests."""

import asyncio
import math
import uuid
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from tiered_rag.config import GenerationConfig, QueueConfig, RetrievalConfig, EmbeddingConfig
from tiered_rag.core.embedder import Embedder, EmbeddingBackend
from tiered_rag.core.exceptions import EntryNotFoundError
from tiered_rag.core.generator import GroundedAnswerGenerator, WebAnswerGenerator
from tiered_rag.core.judge import RelevanceJudge
from tiered_rag.core.llm import Citation, SearchLLMClient, SearchStreamChunk
from tiered_rag.core.retrieval import KnowledgeRetriever
from tiered_rag.core.vector_store import (
    KnowledgeEntry,
    KnowledgeMatch,
    QueueEntry,
    QueueMatch,
    QueueStatus,
    queue_entry_id,
)
from tiered_rag.services.answer_service import AnswerPipeline
from tiered_rag.services.queue_service import ReviewQueueWriter


def unit(*values: float) -> np.ndarray:
    v = np.array(values, dtype=np.float32)
    return v / np.linalg.norm(v)


def vector_with_similarity(similarity: float) -> np.ndarray:
    """A unit vector whose cosine similarity with [1, 0] is ``similarity``."""
    return np.array([similarity, math.sqrt(1.0 - similarity ** 2)], dtype=np.float32)


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))


# ====================
# Fakes
# ====================

class FakeEmbeddingBackend(EmbeddingBackend):
    """Returns preset vectors per text and records every call."""

    def __init__(self, vectors: Optional[Dict[str, np.ndarray]] = None, default=None):
        self.vectors = vectors or {}
        self.default = default if default is not None else unit(0.0, 1.0)
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None

    async def encode(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        if self.error:
            raise self.error
        return np.array([self.vectors.get(t, self.default) for t in texts], dtype=np.float32)


class FakeLLMClient(SearchLLMClient):
    """Scriptable LLM client."""

    model = "fake-model"

    def __init__(
        self,
        reply: str = "YES",
        stream_chunks: Sequence[str] = (),
        search_chunks: Sequence[SearchStreamChunk] = (),
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
        delay: float = 0.0,
    ):
        self.reply = reply
        self.stream_chunks = list(stream_chunks)
        self.search_chunks = list(search_chunks)
        self.error = error
        self.fail_after = fail_after
        self.delay = delay
        self.calls: List[dict] = []
        self.yielded = 0
        self.closed = False

    async def generate(self, prompt, system=None, max_tokens=1024, temperature=0.3):
        self.calls.append({"kind": "generate", "prompt": prompt, "system": system,
                           "temperature": temperature})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply

    async def _emit(self, items):
        try:
            for i, item in enumerate(items):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error or RuntimeError("stream broke")
                self.yielded += 1
                yield item
        finally:
            self.closed = True

    async def generate_stream(self, prompt, system=None, max_tokens=1024, temperature=0.3):
        self.calls.append({"kind": "stream", "prompt": prompt, "system": system,
                           "temperature": temperature})
        if self.error and self.fail_after is None:
            raise self.error
        async with aclosing(self._emit(self.stream_chunks)) as items:
            async for item in items:
                yield item

    async def search_stream(self, prompt, system=None, max_tokens=1024, temperature=0.3):
        self.calls.append({"kind": "search", "prompt": prompt, "system": system,
                           "temperature": temperature})
        if self.error and self.fail_after is None:
            raise self.error
        async with aclosing(self._emit(self.search_chunks)) as items:
            async for item in items:
                yield item


class InMemoryKnowledgeStore:
    """Knowledge store with exact cosine search."""

    def __init__(self):
        self.entries: Dict[str, KnowledgeEntry] = {}
        self.vectors: Dict[str, np.ndarray] = {}
        self.search_calls: List[dict] = []
        self.error: Optional[Exception] = None

    def add(self, question: str, answer: str, vector: np.ndarray) -> KnowledgeEntry:
        now = datetime.now(timezone.utc)
        entry = KnowledgeEntry(str(uuid.uuid4()), question, answer, now, now)
        self.entries[entry.id] = entry
        self.vectors[entry.id] = np.asarray(vector, dtype=np.float32)
        return entry

    async def search(self, vector, threshold, limit):
        self.search_calls.append({"vector": vector, "threshold": threshold, "limit": limit})
        if self.error:
            raise self.error
        scored = [
            KnowledgeMatch(e.id, e.question, e.answer, cosine(vector, self.vectors[e.id]))
            for e in self.entries.values()
        ]
        scored = [m for m in scored if m.similarity >= threshold]
        scored.sort(key=lambda m: m.similarity, reverse=True)
        return scored[:limit]

    async def get(self, entry_id, with_vector=False):
        if entry_id not in self.entries:
            raise EntryNotFoundError("knowledge", entry_id)
        return self.entries[entry_id]

    async def insert(self, question, answer, embedding):
        return self.add(question.strip(), answer.strip(), embedding)

    async def update(self, entry_id, question, answer, embedding):
        existing = await self.get(entry_id)
        entry = KnowledgeEntry(
            entry_id, question.strip(), answer.strip(),
            existing.created_at, datetime.now(timezone.utc),
        )
        self.entries[entry_id] = entry
        self.vectors[entry_id] = np.asarray(embedding, dtype=np.float32)
        return entry

    async def delete(self, entry_id):
        await self.get(entry_id)
        del self.entries[entry_id]
        del self.vectors[entry_id]

    async def iter_entries(self, page_size=100):
        for entry in list(self.entries.values()):
            yield entry

    async def list_entries(self):
        return sorted(self.entries.values(), key=lambda e: e.updated_at, reverse=True)


class InMemoryQueueStore:
    """Review queue store with exact cosine search over pending entries."""

    def __init__(self):
        self.entries: Dict[str, QueueEntry] = {}
        self.vectors: Dict[str, np.ndarray] = {}
        self.search_calls: List[dict] = []
        self.insert_calls: List[str] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    def add(self, question: str, vector: np.ndarray, status=QueueStatus.PENDING) -> QueueEntry:
        entry = QueueEntry(queue_entry_id(question), question, status, datetime.now(timezone.utc))
        self.entries[entry.id] = entry
        self.vectors[entry.id] = np.asarray(vector, dtype=np.float32)
        return entry

    async def search_pending(self, vector, threshold, limit):
        self.search_calls.append({"vector": vector, "threshold": threshold, "limit": limit})
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        scored = [
            QueueMatch(e.id, e.question, cosine(vector, self.vectors[e.id]))
            for e in self.entries.values()
            if e.status == QueueStatus.PENDING
        ]
        scored = [m for m in scored if m.similarity >= threshold]
        scored.sort(key=lambda m: m.similarity, reverse=True)
        return scored[:limit]

    async def insert(self, question, embedding):
        self.insert_calls.append(question)
        if queue_entry_id(question.strip()) in self.entries:
            return None
        return self.add(question.strip(), embedding)

    async def get(self, entry_id):
        if entry_id not in self.entries:
            raise EntryNotFoundError("queue", entry_id)
        return self.entries[entry_id]

    async def resolve(self, entry_id):
        entry = await self.get(entry_id)
        entry.status = QueueStatus.RESOLVED
        entry.resolved_at = datetime.now(timezone.utc)
        return entry

    async def delete(self, entry_id):
        await self.get(entry_id)
        del self.entries[entry_id]

    async def list_entries(self, status=None, page_size=100):
        entries = [e for e in self.entries.values() if status is None or e.status == status]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)


# ====================
# Fixtures
# ====================

@pytest.fixture
def generation_config():
    """Generation configuration used by judges and generators."""
    return GenerationConfig(
        assistant_name="Pirani AI",
        assistant_context="Pirani Life (sustainable tumblers)",
    )


@pytest.fixture
def embedding_backend():
    return FakeEmbeddingBackend()


@pytest.fixture
def embedder(embedding_backend):
    return Embedder(config=EmbeddingConfig(provider="fake", model_name="fake"), backend=embedding_backend)


@pytest.fixture
def knowledge_store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def queue_store():
    return InMemoryQueueStore()


@pytest.fixture
def queue_writer(queue_store):
    return ReviewQueueWriter(store=queue_store, config=QueueConfig(dedup_threshold=0.85))


@pytest.fixture
def retriever(knowledge_store, embedder):
    return KnowledgeRetriever(
        store=knowledge_store,
        embedder=embedder,
        config=RetrievalConfig(match_threshold=0.50, max_matches=5),
    )


@pytest.fixture
def judge_client():
    return FakeLLMClient(reply="YES")


@pytest.fixture
def grounded_client():
    return FakeLLMClient(stream_chunks=["Returns are accepted ", "within 30 days."])


@pytest.fixture
def web_client():
    return FakeLLMClient(
        search_chunks=[
            SearchStreamChunk(text="We accept returns "),
            SearchStreamChunk(
                text="within 30 days.",
                citations=[Citation(title="Returns", url="https://example.com/returns")],
            ),
        ]
    )


@pytest.fixture
def pipeline(retriever, generation_config, judge_client, grounded_client, web_client, queue_writer):
    return AnswerPipeline(
        retriever=retriever,
        judge=RelevanceJudge(config=generation_config, llm_client=judge_client),
        grounded_generator=GroundedAnswerGenerator(config=generation_config, llm_client=grounded_client),
        web_generator=WebAnswerGenerator(config=generation_config, llm_client=web_client),
        queue_writer=queue_writer,
    )
