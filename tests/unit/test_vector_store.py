"""Unit tests for the Qdrant-backed stores."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

pytest.importorskip("qdrant_client")

from tiered_rag.config import QdrantConfig
from tiered_rag.core.exceptions import EntryNotFoundError
from tiered_rag.core.vector_store import (
    KnowledgeStore,
    QdrantCollections,
    QueueStatus,
    ReviewQueueStore,
    queue_entry_id,
)

from conftest import unit


NOW = "2026-01-05T10:00:00+00:00"
LATER = "2026-01-06T10:00:00+00:00"


def point(point_id, score=None, **payload):
    return SimpleNamespace(id=point_id, score=score, payload=payload, vector=None)


@pytest.fixture
def qdrant():
    client = AsyncMock()
    client.collection_exists.return_value = True
    client.retrieve.return_value = []
    return client


@pytest.fixture
def collections(qdrant):
    return QdrantCollections(config=QdrantConfig(vector_size=2), client=qdrant)


class TestQueueEntryId:
    """Tests for deterministic queue ids."""

    def test_surrounding_whitespace_is_ignored(self):
        assert queue_entry_id("Do you ship to Canada?") == queue_entry_id("  Do you ship to Canada?\n")

    def test_case_and_inner_spacing_count(self):
        assert queue_entry_id("Do you ship to Canada?") != queue_entry_id("do you ship to canada?")
        assert queue_entry_id("Do you ship to Canada?") != queue_entry_id("Do you  ship to Canada?")

    def test_different_text_different_id(self):
        assert queue_entry_id("Do you ship to Canada?") != queue_entry_id("Do you ship to Mexico?")


class TestQdrantCollections:
    """Tests for collection bootstrap."""

    async def test_creates_missing_collections(self, qdrant):
        qdrant.collection_exists.return_value = False
        collections = QdrantCollections(config=QdrantConfig(vector_size=2), client=qdrant)

        await collections.ensure_collections()
        await collections.ensure_collections()

        created = [c.kwargs["collection_name"] for c in qdrant.create_collection.call_args_list]
        assert created == ["knowledge_base", "review_queue"]
        qdrant.create_payload_index.assert_awaited_once()
        assert qdrant.create_payload_index.call_args.kwargs["collection_name"] == "review_queue"

    async def test_existing_collections_are_kept(self, collections, qdrant):
        await collections.ensure_collections()

        qdrant.create_collection.assert_not_called()

    async def test_concurrent_first_requests_create_once(self, qdrant):
        qdrant.collection_exists.return_value = False
        collections = QdrantCollections(config=QdrantConfig(vector_size=2), client=qdrant)

        await asyncio.gather(*(collections.ensure_collections() for _ in range(5)))

        assert qdrant.create_collection.await_count == 2

    async def test_collection_created_elsewhere_is_tolerated(self, qdrant):
        # missing on first check, present after the failed create, queue already there
        qdrant.collection_exists.side_effect = [False, True, True]
        qdrant.create_collection.side_effect = RuntimeError("Collection already exists")
        collections = QdrantCollections(config=QdrantConfig(vector_size=2), client=qdrant)

        await collections.ensure_collections()

        qdrant.create_payload_index.assert_not_called()

    async def test_create_failure_still_raises(self, qdrant):
        qdrant.collection_exists.return_value = False
        qdrant.create_collection.side_effect = RuntimeError("forbidden")
        collections = QdrantCollections(config=QdrantConfig(vector_size=2), client=qdrant)

        with pytest.raises(RuntimeError):
            await collections.ensure_collections()


class TestKnowledgeStore:
    """Tests for KnowledgeStore."""

    async def test_search_passes_threshold_and_limit(self, collections, qdrant):
        qdrant.query_points.return_value = SimpleNamespace(points=[
            point("a", score=0.92, question="Return policy?", answer="30 days."),
            point("b", score=0.61, question="Refunds?", answer="Within a week."),
        ])
        store = KnowledgeStore(collections)

        matches = await store.search(unit(1.0, 0.0), threshold=0.5, limit=5)

        kwargs = qdrant.query_points.call_args.kwargs
        assert kwargs["collection_name"] == "knowledge_base"
        assert kwargs["score_threshold"] == 0.5
        assert kwargs["limit"] == 5
        assert kwargs["query"] == pytest.approx([1.0, 0.0])
        assert [m.answer for m in matches] == ["30 days.", "Within a week."]
        assert matches[0].similarity == pytest.approx(0.92)

    async def test_get_missing_raises(self, collections):
        store = KnowledgeStore(collections)

        with pytest.raises(EntryNotFoundError):
            await store.get("missing")

    async def test_insert_upserts_question_payload(self, collections, qdrant):
        store = KnowledgeStore(collections)

        entry = await store.insert("  Return policy? ", " 30 days. ", unit(1.0, 0.0))

        point_struct = qdrant.upsert.call_args.kwargs["points"][0]
        assert point_struct.id == entry.id
        assert point_struct.payload["question"] == "Return policy?"
        assert point_struct.payload["answer"] == "30 days."
        assert entry.created_at == entry.updated_at

    async def test_update_keeps_created_at(self, collections, qdrant):
        qdrant.retrieve.return_value = [
            point("a", question="Old?", answer="Old.", created_at=NOW, updated_at=NOW)
        ]
        store = KnowledgeStore(collections)

        entry = await store.update("a", "New?", "New.", unit(1.0, 0.0))

        assert entry.created_at.isoformat() == NOW
        assert entry.updated_at > entry.created_at
        assert qdrant.upsert.call_args.kwargs["points"][0].payload["question"] == "New?"

    async def test_list_pages_through_scroll(self, collections, qdrant):
        qdrant.scroll.side_effect = [
            ([point("a", question="q1", answer="a1", created_at=NOW, updated_at=NOW)], "next"),
            ([point("b", question="q2", answer="a2", created_at=NOW, updated_at=LATER)], None),
        ]
        store = KnowledgeStore(collections)

        entries = await store.list_entries()

        assert [e.id for e in entries] == ["b", "a"]
        assert qdrant.scroll.await_count == 2


class TestReviewQueueStore:
    """Tests for ReviewQueueStore."""

    async def test_search_pending_filters_status(self, collections, qdrant):
        qdrant.query_points.return_value = SimpleNamespace(points=[
            point("x", score=0.9, question="Ship to Canada?"),
        ])
        store = ReviewQueueStore(collections)

        matches = await store.search_pending(unit(1.0, 0.0), threshold=0.85, limit=1)

        kwargs = qdrant.query_points.call_args.kwargs
        condition = kwargs["query_filter"].must[0]
        assert condition.key == "status"
        assert condition.match.value == "pending"
        assert kwargs["score_threshold"] == 0.85
        assert kwargs["limit"] == 1
        assert matches[0].question == "Ship to Canada?"

    async def test_insert_new_question(self, collections, qdrant):
        store = ReviewQueueStore(collections)

        entry = await store.insert("Ship to Canada?", unit(1.0, 0.0))

        assert entry.id == queue_entry_id("Ship to Canada?")
        assert entry.status == QueueStatus.PENDING
        payload = qdrant.upsert.call_args.kwargs["points"][0].payload
        assert payload["status"] == "pending"
        assert payload["resolved_at"] is None

    async def test_insert_existing_question_is_ignored(self, collections, qdrant):
        qdrant.retrieve.return_value = [point(queue_entry_id("Ship to Canada?"))]
        store = ReviewQueueStore(collections)

        assert await store.insert("Ship to Canada?", unit(1.0, 0.0)) is None
        qdrant.upsert.assert_not_called()

    async def test_resolve_sets_status(self, collections, qdrant):
        qdrant.retrieve.return_value = [
            point("x", question="Ship to Canada?", status="pending", created_at=NOW)
        ]
        store = ReviewQueueStore(collections)

        entry = await store.resolve("x")

        assert entry.status == QueueStatus.RESOLVED
        payload = qdrant.set_payload.call_args.kwargs["payload"]
        assert payload["status"] == "resolved"
        assert payload["resolved_at"] is not None

    async def test_delete_missing_raises(self, collections, qdrant):
        store = ReviewQueueStore(collections)

        with pytest.raises(EntryNotFoundError):
            await store.delete("missing")
        qdrant.delete.assert_not_called()

    async def test_list_with_status(self, collections, qdrant):
        qdrant.scroll.return_value = ([
            point("x", question="older", status="pending", created_at=NOW),
            point("y", question="newer", status="pending", created_at=LATER),
        ], None)
        store = ReviewQueueStore(collections)

        entries = await store.list_entries(QueueStatus.PENDING)

        assert [e.question for e in entries] == ["newer", "older"]
        assert qdrant.scroll.call_args.kwargs["scroll_filter"] is not None
