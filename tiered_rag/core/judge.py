"""Relevance judge.

Decides whether retrieved knowledge base answers fully answer a question.
Anything other than an unambiguous "YES" from the model, including errors
and timeouts, is treated as not relevant.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from tiered_rag.config import GenerationConfig, get_settings
from tiered_rag.core.llm import LLMClient, build_llm_client

logger = logging.getLogger(__name__)


class JudgeVerdict(str, Enum):
    """Outcome of a relevance judgment."""
    RELEVANT = "relevant"
    NOT_RELEVANT = "not_relevant"


JUDGE_PROMPT = """You are evaluating if the provided context answers the question.

Context:
{context}

Question: {question}

Does the context provide a CLEAR and COMPLETE answer to this specific question?
Reply ONLY with 'YES' or 'NO'."""


def parse_verdict(reply: Optional[str]) -> JudgeVerdict:
    """Map a raw model reply to a verdict.

    RELEVANT only when the normalized reply contains YES and not NO.
    """
    normalized = (reply or "").strip().upper()
    if "YES" in normalized and "NO" not in normalized:
        return JudgeVerdict.RELEVANT
    return JudgeVerdict.NOT_RELEVANT


class RelevanceJudge:
    """Classifies retrieved chunks as answering a question or not."""

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        llm_client: Optional[LLMClient] = None,
    ):
        """Initialize the judge.

        Args:
            config: Generation configuration
            llm_client: Pre-configured LLM client
        """
        self.config = config or get_settings().generation
        self._client = llm_client

    def _ensure_initialized(self):
        if self._client is None:
            self._client = build_llm_client(
                self.config.provider,
                self.config,
                model=self.config.judge_model,
            )

    async def judge(self, question: str, chunks: Sequence[str]) -> JudgeVerdict:
        """Judge whether ``chunks`` answer ``question``.

        Args:
            question: User question
            chunks: Retrieved answer texts, closest match first

        Returns:
            JudgeVerdict; never raises
        """
        if not chunks:
            logger.info("Judge: no chunks to evaluate, verdict NOT_RELEVANT")
            return JudgeVerdict.NOT_RELEVANT

        context = "\n\n".join(chunks)
        prompt = JUDGE_PROMPT.format(context=context, question=question)

        try:
            self._ensure_initialized()
            call = self._client.generate(
                prompt=prompt,
                max_tokens=16,
                temperature=self.config.judge_temperature,
            )
            if self.config.judge_timeout_s:
                reply = await asyncio.wait_for(call, timeout=self.config.judge_timeout_s)
            else:
                reply = await call
        except Exception as e:
            logger.error(f"Judge call failed, verdict NOT_RELEVANT: {e}", exc_info=True)
            return JudgeVerdict.NOT_RELEVANT

        verdict = parse_verdict(reply)
        logger.info(
            f"Judge: {len(chunks)} chunk(s), {len(context)} chars, "
            f"reply={reply!r}, verdict {verdict.name}"
        )
        return verdict


# Singleton instance
_judge: Optional[RelevanceJudge] = None


def get_judge() -> RelevanceJudge:
    """Get the global judge instance."""
    global _judge
    if _judge is None:
        _judge = RelevanceJudge()
    return _judge
