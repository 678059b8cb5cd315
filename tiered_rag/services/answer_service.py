"""Tiered answer pipeline.

Orchestrates one question end to end:

1. Retrieve knowledge base matches for the question.
2. Ask the judge whether the matches answer it.
3. Stream a grounded answer from the matches, or fall back to a web-search
   answer and queue the question for review in the background.
"""

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, Optional

from tiered_rag.core.generator import (
    GroundedAnswerGenerator,
    WebAnswerGenerator,
    get_grounded_generator,
    get_web_generator,
)
from tiered_rag.core.judge import JudgeVerdict, RelevanceJudge, get_judge
from tiered_rag.core.retrieval import KnowledgeRetriever, RetrievalResult, get_retriever
from tiered_rag.services.queue_service import ReviewQueueWriter, get_queue_writer

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Stages of answering one question."""
    RETRIEVING = "retrieving"
    JUDGING = "judging"
    GROUNDED_ANSWERING = "grounded_answering"
    WEB_ANSWERING = "web_answering"
    DONE = "done"


class AnswerStream:
    """The streamed answer to one question.

    Iterable exactly once. Retrieval and judging have already happened when
    an ``AnswerStream`` exists; iterating it runs the chosen generator.
    """

    def __init__(
        self,
        question: str,
        retrieval: RetrievalResult,
        verdict: JudgeVerdict,
        state: PipelineState,
        source: AsyncIterator[str],
        enqueue_task: Optional[asyncio.Task] = None,
    ):
        self.question = question
        self.retrieval = retrieval
        self.verdict = verdict
        self.state = state
        self.enqueue_task = enqueue_task
        self._iterator = self._run(source)

    async def _run(self, source: AsyncIterator[str]) -> AsyncIterator[str]:
        try:
            async with aclosing(source) as pieces:
                async for piece in pieces:
                    yield piece
        finally:
            self.state = PipelineState.DONE
            logger.info(f"Answer stream finished for question: {self.question[:60]!r}")

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterator

    async def aclose(self):
        """Stop generation early, e.g. when the client disconnected."""
        await self._iterator.aclose()


class AnswerPipeline:
    """Knowledge base first, web search second, answer pipeline."""

    def __init__(
        self,
        retriever: Optional[KnowledgeRetriever] = None,
        judge: Optional[RelevanceJudge] = None,
        grounded_generator: Optional[GroundedAnswerGenerator] = None,
        web_generator: Optional[WebAnswerGenerator] = None,
        queue_writer: Optional[ReviewQueueWriter] = None,
    ):
        """Initialize the pipeline.

        Args:
            retriever: Knowledge base retriever
            judge: Relevance judge
            grounded_generator: Knowledge base answer generator
            web_generator: Web search answer generator
            queue_writer: Review queue writer
        """
        self.retriever = retriever or get_retriever()
        self.judge = judge or get_judge()
        self.grounded_generator = grounded_generator or get_grounded_generator()
        self.web_generator = web_generator or get_web_generator()
        self.queue_writer = queue_writer or get_queue_writer()

    async def start(self, question: str) -> AnswerStream:
        """Retrieve, judge and pick the answer strategy for a question.

        Args:
            question: User question

        Returns:
            AnswerStream ready to be iterated

        Raises:
            ValueError: if the question is empty
            RetrievalError: if the knowledge base could not be searched
        """
        if not question or not question.strip():
            raise ValueError("Question is required")

        logger.info(f"Answering question: {question!r}")

        logger.info(f"State {PipelineState.RETRIEVING.name}")
        retrieval = await self.retriever.retrieve(question)

        logger.info(f"State {PipelineState.JUDGING.name}")
        verdict = await self.judge.judge(question, retrieval.chunks)

        if verdict == JudgeVerdict.RELEVANT:
            logger.info(
                f"State {PipelineState.GROUNDED_ANSWERING.name}: "
                f"answering from {len(retrieval.matches)} knowledge base match(es)"
            )
            return AnswerStream(
                question=question,
                retrieval=retrieval,
                verdict=verdict,
                state=PipelineState.GROUNDED_ANSWERING,
                source=self.grounded_generator.stream(question, retrieval.chunks),
            )

        logger.info(
            f"State {PipelineState.WEB_ANSWERING.name}: "
            "knowledge base did not answer, falling back to web search"
        )
        enqueue_task = self.queue_writer.schedule(question, retrieval.query_embedding)
        return AnswerStream(
            question=question,
            retrieval=retrieval,
            verdict=verdict,
            state=PipelineState.WEB_ANSWERING,
            source=self.web_generator.stream(question),
            enqueue_task=enqueue_task,
        )

    async def answer(self, question: str) -> AsyncIterator[str]:
        """Answer a question as a single text stream."""
        stream = await self.start(question)
        async with aclosing(stream) as pieces:
            async for piece in pieces:
                yield piece


# Singleton instance
_pipeline: Optional[AnswerPipeline] = None


def get_answer_pipeline() -> AnswerPipeline:
    """Get the global answer pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = AnswerPipeline()
    return _pipeline
