"""Chat routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from course_rag.api.dependencies import get_query_service
from course_rag.api.errors import is_client_error, to_http_error
from course_rag.core.logging import get_logger
from course_rag.models.dto import Answer, ChatHistoryResponse, QueryRequest
from course_rag.retrieval.search import QueryService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/send", response_model=Answer, summary="Answer a question from course material")
async def send_message(
    request: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> Answer:
    try:
        return await service.answer_query(request)
    except Exception as exc:
        if not is_client_error(exc):
            logger.exception("Error processing chat message: %s", exc, extra={"ctx_course_id": request.course_id})
        raise to_http_error(exc, "Failed to process message") from exc


@router.get("/history/{course_id}", response_model=ChatHistoryResponse, summary="Chat history (not persisted)")
async def chat_history(course_id: str) -> ChatHistoryResponse:
    return ChatHistoryResponse(messages=[])


__all__ = ["router"]
