"""API module for the Tiered RAG Assistant.

This module provides the FastAPI application and endpoints.
"""

from tiered_rag.api.main import app, create_app

__all__ = ["app", "create_app"]
