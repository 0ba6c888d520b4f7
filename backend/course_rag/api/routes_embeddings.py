"""Raw retrieval routes for debugging and the file browser."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from course_rag.api.dependencies import get_query_service
from course_rag.api.errors import is_client_error, to_http_error
from course_rag.core.logging import get_logger
from course_rag.models.dto import EmbeddingStats, SearchRequest, SearchResponse
from course_rag.retrieval.search import QueryService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Nearest chunks for a query")
async def search_embeddings(
    request: SearchRequest,
    service: QueryService = Depends(get_query_service),
) -> SearchResponse:
    try:
        results = await service.search(request.course_id, request.query, request.limit)
    except Exception as exc:
        if not is_client_error(exc):
            logger.exception("Embedding search error: %s", exc)
        raise to_http_error(exc, "Failed to search embeddings") from exc
    return SearchResponse(course_id=request.course_id, query=request.query, results=results)


@router.get("/stats/{course_id}", response_model=EmbeddingStats, summary="Index statistics for a course")
async def embedding_stats(course_id: str, service: QueryService = Depends(get_query_service)) -> EmbeddingStats:
    return service.embedding_stats(course_id)


__all__ = ["router"]
