"""Ingest pipeline orchestration."""

from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path

from course_rag.core.config import Settings
from course_rag.core.errors import EmbeddingFailure, NotFoundError, ValidationError
from course_rag.core.logging import get_logger
from course_rag.core.metrics import INDEX_SIZE, INGEST_DURATION
from course_rag.db.repositories import CourseRepository, FileRepository
from course_rag.ingest.chunker import assign_page_numbers, build_chunk_records, chunk_text
from course_rag.ingest.embeddings import EmbeddingGateway
from course_rag.ingest.loaders import ContentExtractor, normalize_file_type
from course_rag.ingest.youtube import YouTubeClient, extract_video_id, watch_url
from course_rag.models.entities import Course, SourceDocument
from course_rag.retrieval.vector_index import VectorIndex
from course_rag.utils.hashing import sha256_bytes
from course_rag.utils.ids import new_id
from course_rag.utils.time import now_ms

logger = get_logger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class IngestPipeline:
    """Coordinate extraction, chunking, embeddings and index writes."""

    def __init__(
        self,
        settings: Settings,
        courses: CourseRepository,
        files: FileRepository,
        embedding_model: EmbeddingGateway,
        vector_index: VectorIndex,
        extractor: ContentExtractor,
        youtube: YouTubeClient | None = None,
    ) -> None:
        self.settings = settings
        self.courses = courses
        self.files = files
        self.embedding_model = embedding_model
        self.vector_index = vector_index
        self.extractor = extractor
        self.youtube = youtube

    async def ingest(
        self,
        course_id: str,
        file_id: str,
        file_name: str,
        declared_type: str,
        raw_content: str,
        page_offsets: list[int] | None = None,
    ) -> list[str]:
        """Chunk, embed and index text for one file; returns the chunk ids.

        Nothing is written to the index unless every chunk has a vector.
        """
        payloads = chunk_text(
            raw_content,
            max_chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
            metadata={"file_name": file_name, "file_type": declared_type},
        )
        if not payloads:
            logger.warning("Document %s produced no chunks", file_name)
            return []
        assign_page_numbers(payloads, page_offsets)
        records = build_chunk_records(course_id, file_id, file_name, declared_type, payloads)

        vectors = await self.embedding_model.embed_many([record.content for record in records])
        if len(vectors) != len(records) or any(not vector for vector in vectors):
            raise EmbeddingFailure(f"Embedding batch for {file_name} is incomplete")
        for record, vector in zip(records, vectors):
            record.embedding = vector

        await asyncio.to_thread(
            self.vector_index.upsert,
            course_id,
            [(record.id, record.embedding, record.content, record.metadata) for record in records],
        )
        INDEX_SIZE.set(self.vector_index.size)
        logger.info(
            "Indexed %s chunks for %s",
            len(records),
            file_name,
            extra={"ctx_course_id": course_id, "ctx_file_id": file_id},
        )
        return [record.id for record in records]

    async def ingest_upload(
        self,
        course_id: str,
        file_name: str,
        data: bytes,
        mime_type: str | None = None,
    ) -> SourceDocument:
        """Store an uploaded file, extract its text and index it."""
        course = self._require_course(course_id)
        if not data:
            raise ValidationError("No file uploaded")
        started = time.perf_counter()
        file_id = new_id()
        file_type = normalize_file_type(Path(file_name).suffix, file_name)
        stored_path = await asyncio.to_thread(self._store_upload, file_name, data)

        try:
            extracted = await self.extractor.extract_with_fallback(data, file_type, file_name, mime_type)
            chunk_ids = await self.ingest(
                course_id,
                file_id,
                file_name,
                file_type,
                extracted.text,
                page_offsets=list(extracted.page_offsets) if extracted.page_offsets else None,
            )
        except Exception:
            stored_path.unlink(missing_ok=True)
            raise

        document = SourceDocument(
            id=file_id,
            course_id=course_id,
            name=file_name,
            type=file_type,
            size=len(data),
            processed=True,
            chunk_ids=chunk_ids,
            metadata={
                "original_name": file_name,
                "mime_type": mime_type,
                "path": str(stored_path),
                "sha256": sha256_bytes(data),
                "extraction": extracted.metadata.get("extraction"),
            },
        )
        self.files.insert(document)
        self._refresh_counts(course)
        INGEST_DURATION.labels(source="upload").observe(time.perf_counter() - started)
        return document

    async def ingest_youtube(self, course_id: str, url: str) -> SourceDocument:
        """Fetch a video's transcript and index it as a ``youtube`` document."""
        course = self._require_course(course_id)
        if self.youtube is None:
            raise ValidationError("YouTube ingestion is not configured")
        video_id = extract_video_id(url)
        started = time.perf_counter()

        metadata = await self.youtube.fetch_metadata(video_id)
        transcript = await self.youtube.fetch_transcript(video_id)

        file_id = new_id()
        chunk_ids = await self.ingest(course_id, file_id, metadata.title, "youtube", transcript.text)
        document = SourceDocument(
            id=file_id,
            course_id=course_id,
            name=metadata.title,
            type="youtube",
            size=len(transcript.text),
            processed=True,
            chunk_ids=chunk_ids,
            metadata={
                **metadata.to_dict(),
                "url": url or watch_url(video_id),
                "transcript_source": transcript.source,
            },
        )
        self.files.insert(document)
        self._refresh_counts(course)
        INGEST_DURATION.labels(source="youtube").observe(time.perf_counter() - started)
        return document

    def delete_embeddings_for_file(self, course_id: str, file_id: str) -> int:
        removed = self.vector_index.delete_file(course_id, file_id)
        INDEX_SIZE.set(self.vector_index.size)
        return removed

    def delete_embeddings_for_course(self, course_id: str) -> int:
        removed = self.vector_index.delete_course(course_id)
        INDEX_SIZE.set(self.vector_index.size)
        return removed

    def delete_file(self, file_id: str) -> SourceDocument:
        """Remove a file record, its stored bytes and its index entries."""
        document = self.files.get(file_id)
        if document is None:
            raise NotFoundError("File not found", detail=file_id)
        self.delete_embeddings_for_file(document.course_id, file_id)
        self._remove_stored(document)
        self.files.delete(file_id)
        course = self.courses.get(document.course_id)
        if course is not None:
            self._refresh_counts(course)
        return document

    def delete_course(self, course_id: str) -> None:
        """Cascade a course deletion to its files and index partition."""
        self._require_course(course_id)
        self.delete_embeddings_for_course(course_id)
        for document in self.files.list(course_id):
            self._remove_stored(document)
            self.files.delete(document.id)
        self.courses.delete(course_id)

    # Internal helpers -------------------------------------------------

    def _require_course(self, course_id: str) -> Course:
        if not course_id:
            raise ValidationError("Course ID required")
        course = self.courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found", detail=course_id)
        return course

    def _refresh_counts(self, course: Course) -> None:
        course.update_counts(
            file_count=len(self.files.list(course.id)),
            embedding_count=self.vector_index.count(course.id),
        )
        self.courses.update(course)

    def _store_upload(self, file_name: str, data: bytes) -> Path:
        upload_dir = self.settings.upload_dir
        upload_dir.mkdir(parents=True, exist_ok=True)
        safe_name = _UNSAFE_NAME_RE.sub("-", Path(file_name).name) or "upload"
        path = upload_dir / f"{now_ms()}-{safe_name}"
        path.write_bytes(data)
        return path

    def _remove_stored(self, document: SourceDocument) -> None:
        stored = document.metadata.get("path")
        if not stored:
            return
        try:
            Path(stored).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete stored file %s: %s", stored, exc)


__all__ = ["IngestPipeline"]
