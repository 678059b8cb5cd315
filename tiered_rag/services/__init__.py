"""Service layer for the Tiered RAG Assistant.

This module provides high-level services for:
- Answer orchestration (retrieval -> judge -> generation)
- Review queue writes
- Knowledge base administration
- Caching
"""

from tiered_rag.services.cache import CacheService, get_cache
from tiered_rag.services.queue_service import ReviewQueueWriter, get_queue_writer
from tiered_rag.services.answer_service import (
    AnswerPipeline,
    AnswerStream,
    PipelineState,
    get_answer_pipeline,
)
from tiered_rag.services.knowledge_service import (
    KnowledgeService,
    RegenerationResult,
    get_knowledge_service,
)

__all__ = [
    # Cache
    "CacheService",
    "get_cache",
    # Queue
    "ReviewQueueWriter",
    "get_queue_writer",
    # Answering
    "AnswerPipeline",
    "AnswerStream",
    "PipelineState",
    "get_answer_pipeline",
    # Knowledge
    "KnowledgeService",
    "RegenerationResult",
    "get_knowledge_service",
]
