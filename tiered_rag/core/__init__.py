"""Core RAG components.

This module provides the core functionality for:
- Question embedding
- Knowledge base and review queue storage
- Knowledge retrieval
- Relevance judging
- Answer generation
"""

from tiered_rag.core.embedder import Embedder, get_embedder
from tiered_rag.core.exceptions import (
    TieredRAGError,
    RetrievalError,
    EntryNotFoundError,
    ProviderNotConfiguredError,
)
from tiered_rag.core.vector_store import (
    QdrantCollections,
    KnowledgeStore,
    ReviewQueueStore,
    KnowledgeEntry,
    QueueEntry,
    QueueStatus,
    KnowledgeMatch,
    QueueMatch,
)
from tiered_rag.core.retrieval import KnowledgeRetriever, RetrievalResult, get_retriever
from tiered_rag.core.judge import RelevanceJudge, JudgeVerdict, get_judge
from tiered_rag.core.llm import LLMClient, SearchLLMClient, Citation, SearchStreamChunk, build_llm_client
from tiered_rag.core.generator import (
    GroundedAnswerGenerator,
    WebAnswerGenerator,
    get_grounded_generator,
    get_web_generator,
)

__all__ = [
    # Embedder
    "Embedder",
    "get_embedder",
    # Errors
    "TieredRAGError",
    "RetrievalError",
    "EntryNotFoundError",
    "ProviderNotConfiguredError",
    # Storage
    "QdrantCollections",
    "KnowledgeStore",
    "ReviewQueueStore",
    "KnowledgeEntry",
    "QueueEntry",
    "QueueStatus",
    "KnowledgeMatch",
    "QueueMatch",
    # Retrieval
    "KnowledgeRetriever",
    "RetrievalResult",
    "get_retriever",
    # Judge
    "RelevanceJudge",
    "JudgeVerdict",
    "get_judge",
    # LLM clients
    "LLMClient",
    "SearchLLMClient",
    "Citation",
    "SearchStreamChunk",
    "build_llm_client",
    # Generators
    "GroundedAnswerGenerator",
    "WebAnswerGenerator",
    "get_grounded_generator",
    "get_web_generator",
]
