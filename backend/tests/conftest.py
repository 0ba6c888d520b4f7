"""Test fixtures for the course assistant backend."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from course_rag.api import dependencies as deps  # noqa: E402
from course_rag.core.config import Settings, get_settings  # noqa: E402
from course_rag.core.errors import FallbackExtractionFailure, GenerationFailure  # noqa: E402
from course_rag.db.repositories import InMemoryCourseRepository, InMemoryFileRepository  # noqa: E402
from course_rag.ingest.embeddings import HashedEmbeddingModel  # noqa: E402
from course_rag.ingest.loaders import ContentExtractor  # noqa: E402
from course_rag.ingest.pipeline import IngestPipeline  # noqa: E402
from course_rag.models.entities import Course  # noqa: E402
from course_rag.retrieval import QueryService, VectorIndex  # noqa: E402


class StubChatModel:
    """Records prompts instead of calling a hosted model."""

    def __init__(self, answer: str = "Stub answer", extraction: str = "") -> None:
        self.answer = answer
        self.extraction = extraction
        self.prompts: list[tuple[str, str]] = []
        self.extract_calls: list[tuple[bytes, str]] = []
        self.fail_generation = False
        self.fail_extraction = False

    async def generate_answer(self, system_prompt: str, query: str) -> str:
        self.prompts.append((system_prompt, query))
        if self.fail_generation:
            raise GenerationFailure("Answer generation failed")
        return self.answer

    async def extract_document(self, data: bytes, mime_type: str = "application/octet-stream") -> str:
        self.extract_calls.append((data, mime_type))
        if self.fail_extraction:
            raise FallbackExtractionFailure("Multimodal extraction failed")
        return self.extraction


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings and the service container between tests."""
    monkeypatch.setenv("CRAG_DB_PATH", str(tmp_path / "crag.db"))
    monkeypatch.setenv("CRAG_UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("CRAG_EMBEDDING_BACKEND", "hashed")
    monkeypatch.delenv("CRAG_CONFIG", raising=False)

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.set_services(None)
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.set_services(None)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "crag.db",
        upload_dir=tmp_path / "uploads",
        embedding_backend="hashed",
        chunk_size=200,
        chunk_overlap=40,
        min_content_length=100,
    )


@pytest.fixture
def chat_model() -> StubChatModel:
    return StubChatModel()


@pytest.fixture
def services(settings: Settings, chat_model: StubChatModel) -> deps.Services:
    """In-memory services with hashed embeddings and a stub chat model."""
    courses = InMemoryCourseRepository()
    files = InMemoryFileRepository()
    vector_index = VectorIndex()
    embedding_model = HashedEmbeddingModel(dim=256)
    pipeline = IngestPipeline(
        settings=settings,
        courses=courses,
        files=files,
        embedding_model=embedding_model,
        vector_index=vector_index,
        extractor=ContentExtractor(chat_model, min_content_length=settings.min_content_length),
    )
    query_service = QueryService(
        settings=settings,
        vector_index=vector_index,
        embedding_model=embedding_model,
        chat_model=chat_model,
        courses=courses,
    )
    container = deps.Services(
        settings=settings,
        courses=courses,
        files=files,
        vector_index=vector_index,
        pipeline=pipeline,
        query_service=query_service,
    )
    deps.set_services(container)
    return container


@pytest.fixture
def course(services: deps.Services) -> Course:
    return services.courses.insert(Course(id="course-1", name="Biology 101"))


@pytest.fixture(scope="session")
def sample_text() -> str:
    return (
        "Photosynthesis converts light energy into chemical energy inside chloroplasts.\n"
        "The light reactions split water and release oxygen.\n"
        "The Calvin cycle fixes carbon dioxide into sugars using ATP and NADPH.\n"
    )
