"""Review queue administration endpoints."""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tiered_rag.api.schemas import ProposedAnswerResponse, QueueEntryResponse
from tiered_rag.api.dependencies import get_knowledge_service_dep, require_admin
from tiered_rag.core.exceptions import EntryNotFoundError
from tiered_rag.core.vector_store import QueueEntry, QueueStatus
from tiered_rag.services.knowledge_service import KnowledgeService

router = APIRouter(
    prefix="/admin/queue",
    tags=["Review Queue"],
    dependencies=[Depends(require_admin)],
)


def _to_response(entry: QueueEntry) -> QueueEntryResponse:
    return QueueEntryResponse(
        id=entry.id,
        question=entry.question,
        status=entry.status,
        created_at=entry.created_at,
        resolved_at=entry.resolved_at,
    )


def _not_found(e: EntryNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "NOT_FOUND", "message": str(e)},
    )


@router.get("", response_model=List[QueueEntryResponse])
async def list_queue(
    status_filter: Optional[QueueStatus] = Query(default=None, alias="status"),
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """List queued questions, newest first."""
    return [_to_response(e) for e in await service.list_queue(status=status_filter)]


@router.post("/{entry_id}/resolve", response_model=QueueEntryResponse)
async def resolve_queue_entry(
    entry_id: uuid.UUID,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Mark a queued question as resolved."""
    try:
        return _to_response(await service.resolve_queue_entry(str(entry_id)))
    except EntryNotFoundError as e:
        raise _not_found(e)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_queue_entry(
    entry_id: uuid.UUID,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Remove a question from the queue."""
    try:
        await service.delete_queue_entry(str(entry_id))
    except EntryNotFoundError as e:
        raise _not_found(e)


@router.get("/{entry_id}/proposed-answer", response_model=ProposedAnswerResponse)
async def proposed_answer(
    entry_id: uuid.UUID,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Draft an answer for a queued question using web search."""
    try:
        return ProposedAnswerResponse(proposed_answer=await service.propose_answer(str(entry_id)))
    except EntryNotFoundError as e:
        raise _not_found(e)
