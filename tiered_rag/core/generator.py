"""Answer generation.

Two strategies produce the streamed answer text:

- ``GroundedAnswerGenerator`` answers strictly from knowledge base chunks.
- ``WebAnswerGenerator`` answers with live web search and lists the web
  sources it used.

Both yield provider output as it arrives and append a source footer only
after the provider stream has ended. Provider failures are turned into a
final apology line instead of an exception, so a chat client always has
something to render.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence

from tiered_rag.config import GenerationConfig, get_settings
from tiered_rag.core.llm import (
    Citation,
    LLMClient,
    SearchLLMClient,
    build_llm_client,
)
from tiered_rag.core.exceptions import ProviderNotConfiguredError

logger = logging.getLogger(__name__)

GROUNDED_FOOTER = "\n\n---\n**Source:** Database (Internal Knowledge Base)"
WEB_SOURCES_HEADER = "\n\n---\n**Sources:**\n"
WEB_FALLBACK_FOOTER = "\n\n---\n**Source:** Web search"

GROUNDED_ERROR_MESSAGE = "I encountered an error generating the answer."
WEB_ERROR_MESSAGE = "I encountered an error searching for the answer."


def dedupe_citations(citations: Iterable[Citation]) -> List[Citation]:
    """Unique citations by URL, first occurrence wins, order preserved."""
    unique: Dict[str, Citation] = {}
    for citation in citations:
        unique.setdefault(citation.url, citation)
    return list(unique.values())


def format_sources(citations: Sequence[Citation]) -> List[str]:
    """Footer pieces for a web answer."""
    if not citations:
        return [WEB_FALLBACK_FOOTER]
    lines = [WEB_SOURCES_HEADER]
    for i, citation in enumerate(citations, 1):
        lines.append(f"{i}. [{citation.title}]({citation.url})\n")
    return lines


class GroundedAnswerGenerator:
    """Answers a question using only knowledge base chunks."""

    SYSTEM_TEMPLATE = (
        "You are the {name}. Answer using ONLY the context provided. "
        "Do not use outside knowledge."
    )

    PROMPT_TEMPLATE = """Context:
{context}

Question: {question}

Answer the question using ONLY the information from the context above."""

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        llm_client: Optional[LLMClient] = None,
    ):
        """Initialize the generator.

        Args:
            config: Generation configuration
            llm_client: Pre-configured LLM client
        """
        self.config = config or get_settings().generation
        self._client = llm_client

    def _ensure_initialized(self):
        """Lazy initialization of LLM client."""
        if self._client is None:
            self._client = build_llm_client(self.config.provider, self.config)

    def build_prompt(self, question: str, chunks: Sequence[str]) -> str:
        return self.PROMPT_TEMPLATE.format(context="\n\n".join(chunks), question=question)

    async def stream(self, question: str, chunks: Sequence[str]) -> AsyncIterator[str]:
        """Stream a grounded answer followed by the knowledge base footer.

        Args:
            question: User question
            chunks: Knowledge base answers judged relevant

        Yields:
            Answer text pieces, then the footer; or a single error line
        """
        try:
            self._ensure_initialized()
            chunk_count = 0
            async with aclosing(self._client.generate_stream(
                prompt=self.build_prompt(question, chunks),
                system=self.SYSTEM_TEMPLATE.format(name=self.config.assistant_name),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )) as text_stream:
                async for text in text_stream:
                    if text:
                        chunk_count += 1
                        yield text
            logger.info(f"Grounded answer streamed ({chunk_count} chunks)")
        except Exception as e:
            logger.error(f"Internal answer generation error: {e}", exc_info=True)
            yield GROUNDED_ERROR_MESSAGE
            return

        yield GROUNDED_FOOTER


class WebAnswerGenerator:
    """Answers a question with live web search and cites its sources."""

    SYSTEM_TEMPLATE = (
        "You are the {name}. Search for the answer. Context: {context}. "
        "Verify facts before answering."
    )

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        llm_client: Optional[SearchLLMClient] = None,
    ):
        """Initialize the generator.

        Args:
            config: Generation configuration
            llm_client: Pre-configured search-capable LLM client
        """
        self.config = config or get_settings().generation
        self._client = llm_client

    def _ensure_initialized(self):
        """Lazy initialization of the search client."""
        if self._client is None:
            client = build_llm_client(
                self.config.search_provider,
                self.config,
                model=self.config.search_model,
            )
            if not isinstance(client, SearchLLMClient):
                raise ProviderNotConfiguredError(
                    f"Provider {self.config.search_provider} does not support web search"
                )
            self._client = client

    def system_prompt(self) -> str:
        return self.SYSTEM_TEMPLATE.format(
            name=self.config.assistant_name,
            context=self.config.assistant_context,
        )

    async def stream(self, question: str) -> AsyncIterator[str]:
        """Stream a web-search answer followed by its sources.

        Args:
            question: User question

        Yields:
            Answer text pieces, then the sources footer; or a single error line
        """
        citations: List[Citation] = []
        try:
            self._ensure_initialized()
            async with aclosing(self._client.search_stream(
                prompt=question,
                system=self.system_prompt(),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )) as search_stream:
                async for chunk in search_stream:
                    citations.extend(chunk.citations)
                    if chunk.text:
                        yield chunk.text
        except Exception as e:
            logger.error(f"Web search answer generation error: {e}", exc_info=True)
            yield WEB_ERROR_MESSAGE
            return

        sources = dedupe_citations(citations)
        logger.info(f"Web answer streamed with {len(sources)} unique source(s)")
        for piece in format_sources(sources):
            yield piece

    async def draft(self, question: str) -> str:
        """Collect a complete web answer, e.g. as a proposal for reviewers."""
        parts = []
        async for piece in self.stream(question):
            parts.append(piece)
        return "".join(parts)


# Singleton instances
_grounded_generator: Optional[GroundedAnswerGenerator] = None
_web_generator: Optional[WebAnswerGenerator] = None


def get_grounded_generator() -> GroundedAnswerGenerator:
    """Get the global grounded generator instance."""
    global _grounded_generator
    if _grounded_generator is None:
        _grounded_generator = GroundedAnswerGenerator()
    return _grounded_generator


def get_web_generator() -> WebAnswerGenerator:
    """Get the global web generator instance."""
    global _web_generator
    if _web_generator is None:
        _web_generator = WebAnswerGenerator()
    return _web_generator
