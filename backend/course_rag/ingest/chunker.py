"""Chunking utilities."""

from __future__ import annotations

from bisect import bisect_right
from typing import Any, Iterable, Mapping, Sequence

from course_rag.ingest.types import ChunkPayload
from course_rag.models.entities import Chunk, ChunkMetadata
from course_rag.utils.ids import new_id
from course_rag.utils.time import utc_now

_SENTENCE_BREAKS = (".", "\n")


def chunk_text(
    text: str,
    max_chunk_size: int = 1000,
    overlap: int = 200,
    metadata: Mapping[str, Any] | None = None,
) -> list[ChunkPayload]:
    """Split text into overlapping windows that end on natural boundaries.

    Each window is ``max_chunk_size`` characters unless a period or newline
    (or, failing that, a space) past the window midpoint lets it end earlier
    with the delimiter included. The following window starts ``overlap``
    characters before the previous end. Whitespace-only windows are dropped
    without consuming a chunk index.
    """
    _validate(max_chunk_size, overlap)
    context = dict(metadata or {})
    chunks: list[ChunkPayload] = []
    length = len(text)
    start = 0

    while start < length:
        end = start + max_chunk_size
        if end < length:
            cut = _find_break(text, start, end, max_chunk_size)
            if cut > start + max_chunk_size / 2:
                end = cut + 1
        end = min(end, length)

        content = text[start:end].strip()
        if content:
            chunks.append(
                ChunkPayload(
                    content=content,
                    chunk_index=len(chunks),
                    start_char=start,
                    end_char=end,
                    chunk_size=len(content),
                    context=dict(context),
                )
            )

        if end >= length:
            break
        start = max(end - overlap, start + 1)

    return chunks


def split_text(text: str, max_chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """Return only the chunk strings."""
    return [chunk.content for chunk in chunk_text(text, max_chunk_size, overlap)]


def _validate(max_chunk_size: int, overlap: int) -> None:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")
    if overlap >= max_chunk_size:
        raise ValueError("overlap must be smaller than max_chunk_size")


def _find_break(text: str, start: int, end: int, max_chunk_size: int) -> int:
    # Search includes the naive end offset itself.
    cut = max(text.rfind(delimiter, start, end + 1) for delimiter in _SENTENCE_BREAKS)
    if cut > start + max_chunk_size / 2:
        return cut
    return text.rfind(" ", start, end + 1)


def assign_page_numbers(chunks: Sequence[ChunkPayload], page_offsets: Sequence[int] | None) -> None:
    """Attach 1-based page numbers using the page each chunk starts on."""
    if not page_offsets:
        return
    for chunk in chunks:
        chunk.page_number = max(1, bisect_right(page_offsets, chunk.start_char))


def build_chunk_records(
    course_id: str,
    file_id: str,
    file_name: str,
    file_type: str,
    payloads: Iterable[ChunkPayload],
) -> list[Chunk]:
    """Attach ownership and document metadata to chunker output."""
    payload_list = list(payloads)
    total = len(payload_list)
    created_at = utc_now()
    records: list[Chunk] = []
    for payload in payload_list:
        records.append(
            Chunk(
                id=new_id(),
                course_id=course_id,
                file_id=file_id,
                content=payload.content,
                metadata=ChunkMetadata(
                    file_id=file_id,
                    course_id=course_id,
                    file_name=file_name,
                    file_type=file_type,
                    chunk_index=payload.chunk_index,
                    total_chunks=total,
                    page_number=payload.page_number,
                    start_char=payload.start_char,
                    end_char=payload.end_char,
                    chunk_size=payload.chunk_size,
                ),
                created_at=created_at,
            )
        )
    return records


__all__ = ["chunk_text", "split_text", "assign_page_numbers", "build_chunk_records"]
