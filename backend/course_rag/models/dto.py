"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Snake-case fields, camelCase on the wire; either form accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(ApiModel):
    course_id: str = ""
    query: str = ""
    use_web_search: bool = False
    max_sources: int | None = Field(default=None, ge=1, le=50)
    require_cross_reference: bool = False


class Source(ApiModel):
    file_id: str
    file_name: str
    # 1 - cosine distance: a linear remap of similarity, not a calibrated probability.
    relevance_score: float
    excerpt: str
    page_number: int | None = None


class Answer(ApiModel):
    id: str
    role: Literal["assistant"] = "assistant"
    content: str
    timestamp: datetime
    sources: list[Source] = Field(default_factory=list)
    web_search_enabled: bool = False


class ChatHistoryResponse(ApiModel):
    messages: list[Answer] = Field(default_factory=list)


class SearchRequest(ApiModel):
    course_id: str = ""
    query: str = ""
    limit: int = Field(default=5, ge=1, le=50)


class SearchHit(ApiModel):
    chunk_id: str
    file_id: str
    file_name: str
    file_type: str
    chunk_index: int
    content: str
    distance: float
    relevance_score: float
    page_number: int | None = None


class SearchResponse(ApiModel):
    course_id: str
    query: str
    results: list[SearchHit]


class EmbeddingStats(ApiModel):
    total_embeddings: int
    total_chunks: int
    average_chunk_size: float


class CourseCreateRequest(ApiModel):
    name: str = "Untitled Course"
    description: str = ""
    color: str = "blue"
    icon: str = "📚"
    metadata: dict[str, Any] = Field(default_factory=dict)


class CourseUpdateRequest(ApiModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    metadata: dict[str, Any] | None = None


class CourseResponse(ApiModel):
    id: str
    name: str
    description: str
    color: str
    icon: str
    metadata: dict[str, Any]
    file_count: int
    embedding_count: int
    created_at: datetime
    updated_at: datetime
    last_accessed: datetime


class FileResponse(ApiModel):
    id: str
    course_id: str
    name: str
    type: str
    size: int
    uploaded_at: datetime
    processed: bool
    embedding_ids: list[str]
    metadata: dict[str, Any]


class YouTubeRequest(ApiModel):
    course_id: str = ""
    url: str = ""


__all__ = [
    "QueryRequest",
    "Source",
    "Answer",
    "ChatHistoryResponse",
    "SearchRequest",
    "SearchHit",
    "SearchResponse",
    "EmbeddingStats",
    "CourseCreateRequest",
    "CourseUpdateRequest",
    "CourseResponse",
    "FileResponse",
    "YouTubeRequest",
]
