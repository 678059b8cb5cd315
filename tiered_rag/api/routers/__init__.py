"""API routers for the Tiered RAG Assistant."""

from tiered_rag.api.routers.chat import router as chat_router
from tiered_rag.api.routers.knowledge import router as knowledge_router
from tiered_rag.api.routers.queue import router as queue_router

__all__ = [
    "chat_router",
    "knowledge_router",
    "queue_router",
]
