"""Tiered RAG Assistant: knowledge base answers with web search fallback."""

__version__ = "1.0.0"
