"""Internal records for courses, source documents and chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from course_rag.utils.time import utc_now


class ChunkMetadata(BaseModel):
    """Metadata stored next to every vector index entry."""

    model_config = ConfigDict(extra="ignore")

    course_id: str
    file_id: str
    file_name: str
    file_type: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    page_number: int | None = None
    start_char: int = Field(default=0, ge=0)
    end_char: int = Field(default=0, ge=0)
    chunk_size: int = Field(default=0, ge=0)


@dataclass(slots=True)
class Course:
    id: str
    name: str = "Untitled Course"
    description: str = ""
    color: str = "blue"
    icon: str = "📚"
    metadata: dict[str, Any] = field(default_factory=dict)
    file_count: int = 0
    embedding_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_accessed: datetime = field(default_factory=utc_now)

    def update_counts(self, file_count: int, embedding_count: int) -> None:
        self.file_count = file_count
        self.embedding_count = embedding_count
        self.updated_at = utc_now()

    def record_access(self) -> None:
        self.last_accessed = utc_now()


@dataclass(slots=True)
class SourceDocument:
    """One ingested upload or video."""

    id: str
    course_id: str
    name: str
    type: str
    size: int
    uploaded_at: datetime = field(default_factory=utc_now)
    processed: bool = False
    chunk_ids: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Chunk:
    id: str
    course_id: str
    file_id: str
    content: str
    metadata: ChunkMetadata
    embedding: list[float] | None = None
    created_at: datetime = field(default_factory=utc_now)

    def is_document_start(self) -> bool:
        return self.metadata.chunk_index == 0

    def is_document_end(self) -> bool:
        return self.metadata.chunk_index == self.metadata.total_chunks - 1

    def context_window(self) -> tuple[int, int]:
        """Character span of this chunk within its source text."""
        return self.metadata.start_char, self.metadata.end_char


__all__ = ["ChunkMetadata", "Course", "SourceDocument", "Chunk"]
