"""Query orchestration: retrieval, sufficiency check, cross-reference and answer."""

from __future__ import annotations

from typing import Sequence

from course_rag.core.config import Settings
from course_rag.core.errors import ValidationError
from course_rag.core.logging import get_logger
from course_rag.db.repositories import CourseRepository
from course_rag.ingest.embeddings import EmbeddingGateway
from course_rag.llm.client import ChatModel
from course_rag.models.dto import Answer, EmbeddingStats, QueryRequest, SearchHit, Source
from course_rag.retrieval.vector_index import IndexHit, IndexQueryResult, VectorIndex
from course_rag.utils.aio import gather_or_cancel
from course_rag.utils.time import now_ms, utc_now

logger = get_logger(__name__)

NO_CONTEXT = "No relevant context found in the course materials."
EXCERPT_LENGTH = 200


def format_context(hits: Sequence[IndexHit]) -> str:
    """Render retrieved chunks as one context block, each tagged with its file."""
    if not hits:
        return NO_CONTEXT
    blocks = [
        f"Source: {hit.metadata.file_name} ({hit.metadata.file_type})\nContent: {hit.document}\n---"
        for hit in hits
    ]
    return "\n\n".join(blocks)


def assess_context_sufficiency(
    query: str,
    context: str,
    min_token_length: int = 3,
    missing_ratio: float = 0.3,
) -> bool:
    """Return True when the context looks too thin for the query.

    Lexical approximation only: a query token longer than ``min_token_length``
    is missing when it does not occur (case-insensitively) anywhere in the
    context. Semantic coverage is not assessed.
    """
    counted = [token for token in query.lower().split() if len(token) > min_token_length]
    if not counted:
        return False
    context_lower = context.lower()
    missing = [token for token in counted if token not in context_lower]
    return len(missing) / len(counted) > missing_ratio


def extract_key_terms(query: str, min_length: int = 4) -> list[str]:
    return [word for word in query.split() if len(word) > min_length]


def combine_contexts(context: str, additional: str) -> str:
    return f"{context}\n\nAdditional Context:\n{additional}"


def build_system_prompt(context: str, use_web_search: bool) -> str:
    instructions = [
        "1. Answer questions based ONLY on the provided course content",
        "2. If the answer isn't in the content, say so clearly",
        "3. Cite specific sources when providing information",
        "4. Format your response with clear headings and structure",
        "5. Be helpful and thorough in your explanations",
    ]
    if use_web_search:
        instructions.append("6. You may supplement with web search results if enabled")
    return (
        "You are an AI assistant helping students with their course materials.\n"
        "You have access to the following course content:\n\n"
        f"{context}\n\n"
        "Instructions:\n" + "\n".join(instructions)
    )


def extract_sources(hits: Sequence[IndexHit]) -> list[Source]:
    return [
        Source(
            file_id=hit.metadata.file_id,
            file_name=hit.metadata.file_name,
            relevance_score=1.0 - hit.distance,
            excerpt=hit.document[:EXCERPT_LENGTH] + "...",
            page_number=hit.metadata.page_number,
        )
        for hit in hits
    ]


class QueryService:
    """Answers questions against one course's indexed material."""

    def __init__(
        self,
        settings: Settings,
        vector_index: VectorIndex,
        embedding_model: EmbeddingGateway,
        chat_model: ChatModel,
        courses: CourseRepository | None = None,
    ) -> None:
        self.settings = settings
        self.vector_index = vector_index
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.courses = courses

    async def answer_query(self, request: QueryRequest) -> Answer:
        if not request.course_id.strip() or not request.query.strip():
            raise ValidationError("Missing required fields")
        max_sources = request.max_sources or self.settings.default_max_sources
        initial = await self._retrieve(request.course_id, request.query, max_sources)
        context = format_context(initial.hits)

        needs_more = assess_context_sufficiency(
            request.query,
            context,
            min_token_length=self.settings.sufficiency_min_token_length,
            missing_ratio=self.settings.missing_token_ratio,
        )
        final_context = context
        if needs_more and request.require_cross_reference:
            additional = await self.cross_reference_search(request.course_id, request.query)
            if additional:
                final_context = combine_contexts(context, format_context(additional))

        content = await self.chat_model.generate_answer(
            build_system_prompt(final_context, request.use_web_search),
            request.query,
        )
        self._touch_course(request.course_id)
        logger.info(
            "Answered query with %s sources",
            len(initial),
            extra={"ctx_course_id": request.course_id, "ctx_needs_more": needs_more},
        )
        return Answer(
            id=str(now_ms()),
            content=content,
            timestamp=utc_now(),
            sources=extract_sources(initial.hits),
            web_search_enabled=request.use_web_search,
        )

    async def cross_reference_search(self, course_id: str, query: str) -> list[IndexHit]:
        """One retrieval per key term, run concurrently; hits kept in term order."""
        terms = extract_key_terms(query, self.settings.key_term_min_length)
        if not terms:
            return []
        results = await gather_or_cancel(
            *(self._retrieve(course_id, term, self.settings.cross_reference_k) for term in terms)
        )
        return [hit for result in results for hit in result.hits]

    async def search(self, course_id: str, query: str, limit: int = 5) -> list[SearchHit]:
        if not course_id.strip() or not query.strip():
            raise ValidationError("Course ID and query required")
        result = await self._retrieve(course_id, query, limit)
        return [
            SearchHit(
                chunk_id=hit.chunk_id,
                file_id=hit.metadata.file_id,
                file_name=hit.metadata.file_name,
                file_type=hit.metadata.file_type,
                chunk_index=hit.metadata.chunk_index,
                content=hit.document,
                distance=hit.distance,
                relevance_score=hit.similarity,
                page_number=hit.metadata.page_number,
            )
            for hit in result.hits
        ]

    def embedding_stats(self, course_id: str) -> EmbeddingStats:
        entries = self.vector_index.entries(course_id)
        total = len(entries)
        average = sum(len(entry.document) for entry in entries) / total if total else 0.0
        return EmbeddingStats(total_embeddings=total, total_chunks=total, average_chunk_size=round(average, 2))

    async def _retrieve(self, course_id: str, text: str, k: int) -> IndexQueryResult:
        vector = await self.embedding_model.embed(text)
        return self.vector_index.query(course_id, vector, k)

    def _touch_course(self, course_id: str) -> None:
        if self.courses is None:
            return
        course = self.courses.get(course_id)
        if course is not None:
            course.record_access()
            self.courses.update(course)


__all__ = [
    "QueryService",
    "NO_CONTEXT",
    "format_context",
    "assess_context_sufficiency",
    "extract_key_terms",
    "combine_contexts",
    "build_system_prompt",
    "extract_sources",
]
