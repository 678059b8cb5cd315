"""Chat endpoint."""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from tiered_rag.api.schemas import ChatRequest, MessageResponse
from tiered_rag.api.dependencies import get_answer_pipeline_dep, require_chat_access
from tiered_rag.core.exceptions import RetrievalError
from tiered_rag.services.answer_service import AnswerPipeline, AnswerStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


async def _stream_body(stream: AnswerStream) -> AsyncIterator[str]:
    """Relay the answer stream, closing it if the client goes away."""
    try:
        async for piece in stream:
            yield piece
    finally:
        await stream.aclose()


@router.post(
    "",
    dependencies=[Depends(require_chat_access)],
    responses={
        200: {"content": {"text/plain": {}}, "description": "Streamed answer text"},
        400: {"model": MessageResponse},
        500: {"model": MessageResponse},
    },
)
async def chat(
    request: ChatRequest,
    pipeline: AnswerPipeline = Depends(get_answer_pipeline_dep),
):
    """Answer a question.

    The knowledge base is searched first. If it holds a verified answer,
    that answer is streamed with a knowledge base footer; otherwise the
    answer comes from web search and the question is queued for review.

    The response body is chunked plain text, not JSON. Errors that occur
    before streaming starts are returned as a JSON ``{"message": ...}``.
    """
    try:
        stream = await pipeline.start(request.question)
    except ValueError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": str(e)},
        )
    except RetrievalError as e:
        logger.error(f"Knowledge base search failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Failed to search knowledge base"},
        )

    return StreamingResponse(
        _stream_body(stream),
        media_type="text/plain",
        headers={"Cache-Control": "no-cache"},
    )
