"""Pydantic schemas for API request/response validation."""

import uuid
from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel, ConfigDict, Field

from tiered_rag.core.vector_store import QueueStatus


# ==================== Chat Schemas ====================

class ChatRequest(BaseModel):
    """Request schema for POST /chat."""
    question: str = Field(..., max_length=10000)


class MessageResponse(BaseModel):
    """JSON envelope returned when no answer stream is produced."""
    message: str


# ==================== Knowledge Schemas ====================

class KnowledgeCreateRequest(BaseModel):
    """Request schema for POST /admin/knowledge."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1, max_length=10000)
    answer: str = Field(..., min_length=1, max_length=50000)
    queue_id: Optional[uuid.UUID] = Field(default=None, alias="queueId")


class KnowledgeUpdateRequest(BaseModel):
    """Request schema for PUT /admin/knowledge/{id}."""
    question: str = Field(..., min_length=1, max_length=10000)
    answer: str = Field(..., min_length=1, max_length=50000)


class KnowledgeEntryResponse(BaseModel):
    """A knowledge base entry."""
    id: str
    question: str
    answer: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegenerateEmbeddingsResponse(BaseModel):
    """Response schema for POST /admin/knowledge/regenerate-embeddings."""
    total: int
    regenerated: int
    errors: int


# ==================== Queue Schemas ====================

class QueueEntryResponse(BaseModel):
    """A review queue entry."""
    id: str
    question: str
    status: QueueStatus
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class ProposedAnswerResponse(BaseModel):
    """Response schema for GET /admin/queue/{id}/proposed-answer."""
    proposed_answer: str


# ==================== Health Schemas ====================

class HealthResponse(BaseModel):
    """Response schema for GET /health."""
    status: str
    version: str
    services: Dict[str, bool]
