"""File upload and YouTube ingestion routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status

from course_rag.api.dependencies import get_file_repository, get_ingest_pipeline
from course_rag.api.errors import is_client_error, to_http_error
from course_rag.core.logging import get_logger
from course_rag.db.repositories import FileRepository
from course_rag.ingest.pipeline import IngestPipeline
from course_rag.models.dto import FileResponse, YouTubeRequest
from course_rag.models.entities import SourceDocument

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{course_id}", response_model=list[FileResponse], summary="List a course's files")
async def list_files(course_id: str, files: FileRepository = Depends(get_file_repository)) -> list[FileResponse]:
    return [_to_response(document) for document in files.list(course_id)]


@router.post("/upload", response_model=FileResponse, summary="Upload and index a file")
async def upload_file(
    file: UploadFile | None = File(default=None),
    course_id: str = Form(default="", alias="courseId"),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> FileResponse:
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not course_id:
        raise HTTPException(status_code=400, detail="Course ID required")
    data = await file.read()
    try:
        document = await pipeline.ingest_upload(
            course_id,
            file.filename or "upload",
            data,
            mime_type=file.content_type,
        )
    except Exception as exc:
        if not is_client_error(exc):
            logger.exception("File upload error for %s: %s", file.filename, exc)
        raise to_http_error(exc, "Failed to process file") from exc
    return _to_response(document)


@router.post("/youtube", response_model=FileResponse, summary="Index a YouTube video's transcript")
async def process_youtube(
    request: YouTubeRequest,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> FileResponse:
    if not request.course_id or not request.url:
        raise HTTPException(status_code=400, detail="Course ID and URL required")
    try:
        document = await pipeline.ingest_youtube(request.course_id, request.url)
    except Exception as exc:
        if not is_client_error(exc):
            logger.exception("YouTube processing error for %s: %s", request.url, exc)
        raise to_http_error(exc, "Failed to process YouTube link") from exc
    return _to_response(document)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a file and its embeddings")
async def delete_file(file_id: str, pipeline: IngestPipeline = Depends(get_ingest_pipeline)) -> Response:
    try:
        await asyncio.to_thread(pipeline.delete_file, file_id)
    except Exception as exc:
        if not is_client_error(exc):
            logger.exception("File deletion error for %s: %s", file_id, exc)
        raise to_http_error(exc, "Failed to delete file") from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _to_response(document: SourceDocument) -> FileResponse:
    return FileResponse(
        id=document.id,
        course_id=document.course_id,
        name=document.name,
        type=document.type,
        size=document.size,
        uploaded_at=document.uploaded_at,
        processed=document.processed,
        embedding_ids=document.chunk_ids,
        metadata=document.metadata,
    )


__all__ = ["router"]
