"""Qdrant-backed storage for knowledge entries and the review queue.

Two collections are kept:

- ``knowledge_base``: verified question/answer pairs. The vector is the
  embedding of the question text.
- ``review_queue``: questions the knowledge base could not answer, waiting
  for an administrator. Point ids are derived from the trimmed question
  text, which gives exact-text uniqueness on top of the semantic duplicate
  check done by the queue writer.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, List, Optional

import numpy as np

try:
    from qdrant_client import AsyncQdrantClient
    from qdrant_client.models import (
        Distance,
        FieldCondition,
        Filter,
        MatchValue,
        PayloadSchemaType,
        PointIdsList,
        PointStruct,
        VectorParams,
    )
    HAS_QDRANT = True
except ImportError:
    HAS_QDRANT = False

from tiered_rag.config import QdrantConfig, get_settings
from tiered_rag.core.exceptions import EntryNotFoundError

logger = logging.getLogger(__name__)

# Namespace for deterministic queue entry ids.
QUEUE_ID_NAMESPACE = uuid.UUID("6f1c0a52-3d4b-4d1e-9a57-2b8e4c7f0d13")


class QueueStatus(str, Enum):
    """Lifecycle status of a review queue entry."""
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class KnowledgeEntry:
    """A verified question/answer pair."""
    id: str
    question: str
    answer: str
    created_at: datetime
    updated_at: datetime
    embedding: Optional[np.ndarray] = None


@dataclass
class QueueEntry:
    """An unanswered question awaiting review."""
    id: str
    question: str
    status: QueueStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None
    embedding: Optional[np.ndarray] = None


@dataclass
class KnowledgeMatch:
    """A knowledge entry returned by a similarity query."""
    entry_id: str
    question: str
    answer: str
    similarity: float


@dataclass
class QueueMatch:
    """A pending queue entry returned by a similarity query."""
    entry_id: str
    question: str
    similarity: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _as_list(vector: Any) -> List[float]:
    if isinstance(vector, np.ndarray):
        return vector.astype(float).tolist()
    return [float(v) for v in vector]


def queue_entry_id(question: str) -> str:
    """Deterministic queue entry id for a question text.

    Only surrounding whitespace is ignored; case and inner spacing count.
    """
    return str(uuid.uuid5(QUEUE_ID_NAMESPACE, question.strip()))


class QdrantCollections:
    """Shared Qdrant client and collection bootstrap."""

    def __init__(
        self,
        config: Optional[QdrantConfig] = None,
        client: Optional["AsyncQdrantClient"] = None,
    ):
        """Initialize the collection manager.

        Args:
            config: Qdrant connection configuration
            client: Pre-initialized Qdrant client (for testing)
        """
        self.config = config or get_settings().qdrant
        self._client = client
        self._ready = False
        self._lock = asyncio.Lock()

    @property
    def client(self) -> "AsyncQdrantClient":
        if self._client is None:
            if not HAS_QDRANT:
                raise ImportError(
                    "qdrant-client is required. "
                    "Install with: pip install qdrant-client"
                )
            logger.info(f"Connecting to Qdrant: {self.config.url}")
            self._client = AsyncQdrantClient(url=self.config.url, api_key=self.config.api_key)
        return self._client

    async def ensure_collections(self):
        """Create the collections if they do not exist yet."""
        if self._ready:
            return

        async with self._lock:
            if self._ready:
                return
            for name in (self.config.knowledge_collection, self.config.queue_collection):
                await self._ensure_collection(name)
            self._ready = True

    async def _ensure_collection(self, name: str):
        client = self.client
        if await client.collection_exists(collection_name=name):
            return

        logger.info(f"Creating collection: {name}")
        try:
            await client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(
                    size=self.config.vector_size,
                    distance=Distance.COSINE,
                ),
            )
        except Exception:
            # Another process may have created it first.
            if not await client.collection_exists(collection_name=name):
                raise
            logger.info(f"Collection {name} was created concurrently")
            return

        if name == self.config.queue_collection:
            await client.create_payload_index(
                collection_name=name,
                field_name="status",
                field_schema=PayloadSchemaType.KEYWORD,
            )

    async def close(self):
        if self._client is not None:
            await self._client.close()


class KnowledgeStore:
    """Knowledge base collection."""

    def __init__(self, collections: QdrantCollections):
        self.collections = collections
        self.name = collections.config.knowledge_collection

    @staticmethod
    def _to_entry(point: Any) -> KnowledgeEntry:
        payload = point.payload or {}
        vector = getattr(point, "vector", None)
        return KnowledgeEntry(
            id=str(point.id),
            question=payload.get("question", ""),
            answer=payload.get("answer", ""),
            created_at=_parse_ts(payload.get("created_at")),
            updated_at=_parse_ts(payload.get("updated_at")),
            embedding=np.array(vector, dtype=np.float32) if vector else None,
        )

    async def search(
        self,
        vector: np.ndarray,
        threshold: float,
        limit: int,
    ) -> List[KnowledgeMatch]:
        """Nearest knowledge entries by cosine similarity.

        Args:
            vector: Query embedding
            threshold: Minimum similarity (inclusive)
            limit: Maximum number of matches

        Returns:
            Matches ordered by descending similarity
        """
        await self.collections.ensure_collections()
        response = await self.collections.client.query_points(
            collection_name=self.name,
            query=_as_list(vector),
            limit=limit,
            score_threshold=threshold,
            with_payload=True,
        )
        return [
            KnowledgeMatch(
                entry_id=str(p.id),
                question=(p.payload or {}).get("question", ""),
                answer=(p.payload or {}).get("answer", ""),
                similarity=float(p.score),
            )
            for p in response.points
        ]

    async def get(self, entry_id: str, with_vector: bool = False) -> KnowledgeEntry:
        await self.collections.ensure_collections()
        points = await self.collections.client.retrieve(
            collection_name=self.name,
            ids=[entry_id],
            with_payload=True,
            with_vectors=with_vector,
        )
        if not points:
            raise EntryNotFoundError("knowledge", entry_id)
        return self._to_entry(points[0])

    async def insert(self, question: str, answer: str, embedding: np.ndarray) -> KnowledgeEntry:
        """Store a new knowledge entry."""
        await self.collections.ensure_collections()
        now = _utcnow()
        entry = KnowledgeEntry(
            id=str(uuid.uuid4()),
            question=question.strip(),
            answer=answer.strip(),
            created_at=now,
            updated_at=now,
        )
        await self._upsert(entry, embedding)
        return entry

    async def update(
        self,
        entry_id: str,
        question: str,
        answer: str,
        embedding: np.ndarray,
    ) -> KnowledgeEntry:
        """Replace question, answer and embedding of an existing entry."""
        existing = await self.get(entry_id)
        entry = KnowledgeEntry(
            id=existing.id,
            question=question.strip(),
            answer=answer.strip(),
            created_at=existing.created_at,
            updated_at=_utcnow(),
        )
        await self._upsert(entry, embedding)
        return entry

    async def _upsert(self, entry: KnowledgeEntry, embedding: np.ndarray):
        await self.collections.client.upsert(
            collection_name=self.name,
            points=[
                PointStruct(
                    id=entry.id,
                    vector=_as_list(embedding),
                    payload={
                        "question": entry.question,
                        "answer": entry.answer,
                        "created_at": entry.created_at.isoformat(),
                        "updated_at": entry.updated_at.isoformat(),
                    },
                )
            ],
        )

    async def delete(self, entry_id: str):
        await self.get(entry_id)
        await self.collections.client.delete(
            collection_name=self.name,
            points_selector=PointIdsList(points=[entry_id]),
        )

    async def iter_entries(self, page_size: int = 100) -> AsyncIterator[KnowledgeEntry]:
        """Iterate over every knowledge entry, page by page."""
        await self.collections.ensure_collections()
        offset = None
        while True:
            points, offset = await self.collections.client.scroll(
                collection_name=self.name,
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            for point in points:
                yield self._to_entry(point)
            if offset is None:
                break

    async def list_entries(self) -> List[KnowledgeEntry]:
        """All entries, most recently updated first."""
        entries = [e async for e in self.iter_entries()]
        entries.sort(key=lambda e: e.updated_at, reverse=True)
        return entries


class ReviewQueueStore:
    """Review queue collection."""

    def __init__(self, collections: QdrantCollections):
        self.collections = collections
        self.name = collections.config.queue_collection

    @staticmethod
    def _to_entry(point: Any) -> QueueEntry:
        payload = point.payload or {}
        return QueueEntry(
            id=str(point.id),
            question=payload.get("question", ""),
            status=QueueStatus(payload.get("status", QueueStatus.PENDING.value)),
            created_at=_parse_ts(payload.get("created_at")),
            resolved_at=_parse_ts(payload.get("resolved_at")),
        )

    @staticmethod
    def _status_filter(status: QueueStatus) -> "Filter":
        return Filter(
            must=[FieldCondition(key="status", match=MatchValue(value=status.value))]
        )

    async def search_pending(
        self,
        vector: np.ndarray,
        threshold: float,
        limit: int,
    ) -> List[QueueMatch]:
        """Nearest pending queue entries by cosine similarity."""
        await self.collections.ensure_collections()
        response = await self.collections.client.query_points(
            collection_name=self.name,
            query=_as_list(vector),
            query_filter=self._status_filter(QueueStatus.PENDING),
            limit=limit,
            score_threshold=threshold,
            with_payload=True,
        )
        return [
            QueueMatch(
                entry_id=str(p.id),
                question=(p.payload or {}).get("question", ""),
                similarity=float(p.score),
            )
            for p in response.points
        ]

    async def get(self, entry_id: str) -> QueueEntry:
        await self.collections.ensure_collections()
        points = await self.collections.client.retrieve(
            collection_name=self.name,
            ids=[entry_id],
            with_payload=True,
        )
        if not points:
            raise EntryNotFoundError("queue", entry_id)
        return self._to_entry(points[0])

    async def insert(self, question: str, embedding: np.ndarray) -> Optional[QueueEntry]:
        """Insert a pending entry.

        Returns:
            The new entry, or None if an entry with the same question text
            already exists (in any status).
        """
        await self.collections.ensure_collections()
        question = question.strip()
        entry_id = queue_entry_id(question)

        existing = await self.collections.client.retrieve(
            collection_name=self.name,
            ids=[entry_id],
            with_payload=False,
        )
        if existing:
            return None

        entry = QueueEntry(
            id=entry_id,
            question=question,
            status=QueueStatus.PENDING,
            created_at=_utcnow(),
        )
        await self.collections.client.upsert(
            collection_name=self.name,
            points=[
                PointStruct(
                    id=entry_id,
                    vector=_as_list(embedding),
                    payload={
                        "question": entry.question,
                        "status": entry.status.value,
                        "created_at": entry.created_at.isoformat(),
                        "resolved_at": None,
                    },
                )
            ],
        )
        return entry

    async def resolve(self, entry_id: str) -> QueueEntry:
        """Mark an entry as resolved."""
        entry = await self.get(entry_id)
        entry.status = QueueStatus.RESOLVED
        entry.resolved_at = _utcnow()
        await self.collections.client.set_payload(
            collection_name=self.name,
            payload={
                "status": entry.status.value,
                "resolved_at": entry.resolved_at.isoformat(),
            },
            points=[entry_id],
        )
        return entry

    async def delete(self, entry_id: str):
        await self.get(entry_id)
        await self.collections.client.delete(
            collection_name=self.name,
            points_selector=PointIdsList(points=[entry_id]),
        )

    async def list_entries(
        self,
        status: Optional[QueueStatus] = None,
        page_size: int = 100,
    ) -> List[QueueEntry]:
        """Entries, newest first, optionally filtered by status."""
        await self.collections.ensure_collections()
        scroll_filter = self._status_filter(status) if status else None
        entries: List[QueueEntry] = []
        offset = None
        while True:
            points, offset = await self.collections.client.scroll(
                collection_name=self.name,
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            entries.extend(self._to_entry(p) for p in points)
            if offset is None:
                break
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries


# Singleton instance
_collections: Optional[QdrantCollections] = None


def get_collections() -> QdrantCollections:
    """Get the global Qdrant collection manager."""
    global _collections
    if _collections is None:
        _collections = QdrantCollections()
    return _collections


def get_knowledge_store() -> KnowledgeStore:
    return KnowledgeStore(get_collections())


def get_queue_store() -> ReviewQueueStore:
    return ReviewQueueStore(get_collections())
