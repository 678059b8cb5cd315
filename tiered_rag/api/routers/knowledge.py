"""Knowledge base administration endpoints."""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from tiered_rag.api.schemas import (
    KnowledgeCreateRequest,
    KnowledgeUpdateRequest,
    KnowledgeEntryResponse,
    RegenerateEmbeddingsResponse,
)
from tiered_rag.api.dependencies import get_knowledge_service_dep, require_admin
from tiered_rag.core.exceptions import EntryNotFoundError
from tiered_rag.core.vector_store import KnowledgeEntry
from tiered_rag.services.knowledge_service import KnowledgeService

router = APIRouter(
    prefix="/admin/knowledge",
    tags=["Knowledge"],
    dependencies=[Depends(require_admin)],
)


def _to_response(entry: KnowledgeEntry) -> KnowledgeEntryResponse:
    return KnowledgeEntryResponse(
        id=entry.id,
        question=entry.question,
        answer=entry.answer,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _not_found(e: EntryNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "NOT_FOUND", "message": str(e)},
    )


@router.get("", response_model=List[KnowledgeEntryResponse])
async def list_knowledge(
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """List knowledge entries, most recently updated first."""
    return [_to_response(e) for e in await service.list_knowledge()]


@router.post("", response_model=KnowledgeEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_knowledge(
    request: KnowledgeCreateRequest,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Create a knowledge entry.

    When ``queue_id`` is given, that review queue entry is marked resolved.
    """
    try:
        entry = await service.create_knowledge(
            question=request.question,
            answer=request.answer,
            queue_id=str(request.queue_id) if request.queue_id else None,
        )
    except EntryNotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_ENTRY", "message": str(e)},
        )
    return _to_response(entry)


@router.put("/{entry_id}", response_model=KnowledgeEntryResponse)
async def update_knowledge(
    entry_id: uuid.UUID,
    request: KnowledgeUpdateRequest,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Update a knowledge entry and re-embed its question."""
    try:
        entry = await service.update_knowledge(str(entry_id), request.question, request.answer)
    except EntryNotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_ENTRY", "message": str(e)},
        )
    return _to_response(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_knowledge(
    entry_id: uuid.UUID,
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Delete a knowledge entry."""
    try:
        await service.delete_knowledge(str(entry_id))
    except EntryNotFoundError as e:
        raise _not_found(e)


@router.post("/regenerate-embeddings", response_model=RegenerateEmbeddingsResponse)
async def regenerate_embeddings(
    service: KnowledgeService = Depends(get_knowledge_service_dep),
):
    """Re-embed every knowledge entry from its question text."""
    result = await service.regenerate_embeddings()
    return RegenerateEmbeddingsResponse(
        total=result.total,
        regenerated=result.regenerated,
        errors=result.errors,
    )
