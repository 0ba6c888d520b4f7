"""Shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from course_rag.core.config import Settings, get_settings
from course_rag.db.repositories import (
    CourseRepository,
    FileRepository,
    SQLiteCourseRepository,
    SQLiteFileRepository,
)
from course_rag.db.sqlite import SQLiteDatabase
from course_rag.ingest.embeddings import EmbeddingGateway, HashedEmbeddingModel, OpenAIEmbeddingGateway
from course_rag.ingest.loaders import ContentExtractor, LoaderRegistry
from course_rag.ingest.pipeline import IngestPipeline
from course_rag.ingest.process import ProcessRunner
from course_rag.ingest.youtube import YouTubeClient
from course_rag.llm.client import ApiClient, ChatModel, TranscriptionModel
from course_rag.retrieval import QueryService, VectorIndex


@dataclass
class Services:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    courses: CourseRepository
    files: FileRepository
    vector_index: VectorIndex
    pipeline: IngestPipeline
    query_service: QueryService
    clients: tuple[ApiClient, ...] = ()
    database: SQLiteDatabase | None = None

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()
        if self.database is not None:
            self.database.close()


_SERVICES: Services | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def build_services(settings: Settings) -> Services:
    """Wire the production collaborators from settings."""
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    vector_index = VectorIndex(db=database)
    vector_index.rebuild()

    openai_client = ApiClient(
        settings.api_base_url,
        settings.api_key,
        timeout=settings.request_timeout,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff,
    )
    openrouter_client = ApiClient(
        settings.openrouter_base_url,
        settings.openrouter_api_key,
        timeout=settings.request_timeout,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff,
    )
    embedding_model: EmbeddingGateway
    if settings.embedding_backend == "hashed":
        embedding_model = HashedEmbeddingModel(dim=settings.embedding_dim, concurrency=settings.embedding_concurrency)
    else:
        embedding_model = OpenAIEmbeddingGateway(
            openai_client,
            model_name=settings.embedding_model,
            concurrency=settings.embedding_concurrency,
        )
    chat_model = ChatModel(
        openrouter_client,
        model=settings.chat_model,
        multimodal_model=settings.multimodal_model,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,
    )
    runner = ProcessRunner()
    courses = SQLiteCourseRepository(database)
    files = SQLiteFileRepository(database)
    extractor = ContentExtractor(
        chat_model,
        registry=LoaderRegistry(runner, pandoc_binary=settings.pandoc_binary),
        min_content_length=settings.min_content_length,
    )
    youtube = YouTubeClient(
        runner,
        TranscriptionModel(openai_client, model=settings.transcription_model),
        binary=settings.yt_dlp_binary,
    )
    pipeline = IngestPipeline(
        settings=settings,
        courses=courses,
        files=files,
        embedding_model=embedding_model,
        vector_index=vector_index,
        extractor=extractor,
        youtube=youtube,
    )
    query_service = QueryService(
        settings=settings,
        vector_index=vector_index,
        embedding_model=embedding_model,
        chat_model=chat_model,
        courses=courses,
    )
    return Services(
        settings=settings,
        courses=courses,
        files=files,
        vector_index=vector_index,
        pipeline=pipeline,
        query_service=query_service,
        clients=(openai_client, openrouter_client),
        database=database,
    )


def set_services(services: Services | None) -> None:
    global _SERVICES
    _SERVICES = services


def get_services() -> Services:
    global _SERVICES
    if _SERVICES is None:
        _SERVICES = build_services(get_app_settings())
    return _SERVICES


def get_course_repository() -> CourseRepository:
    return get_services().courses


def get_file_repository() -> FileRepository:
    return get_services().files


def get_ingest_pipeline() -> IngestPipeline:
    return get_services().pipeline


def get_query_service() -> QueryService:
    return get_services().query_service


__all__ = [
    "Services",
    "build_services",
    "set_services",
    "get_services",
    "get_app_settings",
    "get_course_repository",
    "get_file_repository",
    "get_ingest_pipeline",
    "get_query_service",
]
