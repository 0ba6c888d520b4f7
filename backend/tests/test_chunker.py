"""Tests for chunker."""

import pytest

from course_rag.ingest.chunker import assign_page_numbers, build_chunk_records, chunk_text, split_text


def test_short_text_is_single_chunk() -> None:
    chunks = chunk_text("A short note about cells.", max_chunk_size=1000, overlap=200)
    assert len(chunks) == 1
    assert chunks[0].content == "A short note about cells."
    assert chunks[0].chunk_index == 0
    assert chunks[0].start_char == 0


def test_chunk_boundaries_basic() -> None:
    text = ("Title\n\nPara1.\n\nPara2 is longer and keeps going for a while. " * 20).strip()
    chunks = chunk_text(text, max_chunk_size=120, overlap=30)
    assert len(chunks) > 1, "Should produce several chunks"
    assert [chunk.chunk_index for chunk in chunks] == list(range(len(chunks)))
    assert all(chunk.start_char < chunk.end_char for chunk in chunks)
    assert all(chunk.end_char - chunk.start_char <= 120 for chunk in chunks)
    assert all(chunk.chunk_size == len(chunk.content) for chunk in chunks)


def test_windows_cover_whole_text() -> None:
    text = "word " * 400
    chunks = chunk_text(text, max_chunk_size=100, overlap=20)
    assert chunks[0].start_char == 0
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start_char <= previous.end_char
        assert current.start_char > previous.start_char
    assert chunks[-1].end_char == len(text)


def test_prefers_sentence_break_past_midpoint() -> None:
    text = "A" * 60 + ". " + "B" * 100
    chunks = chunk_text(text, max_chunk_size=100, overlap=10)
    assert chunks[0].content == "A" * 60 + "."
    assert chunks[0].end_char == 61


def test_ignores_break_before_midpoint() -> None:
    text = "A" * 10 + "." + "B" * 200
    chunks = chunk_text(text, max_chunk_size=100, overlap=10)
    assert chunks[0].end_char == 100


def test_chunking_is_deterministic(sample_text: str) -> None:
    first = split_text(sample_text * 10, max_chunk_size=150, overlap=30)
    second = split_text(sample_text * 10, max_chunk_size=150, overlap=30)
    assert first == second


def test_whitespace_only_text_yields_nothing() -> None:
    assert chunk_text("   \n\n   ", max_chunk_size=100, overlap=10) == []


@pytest.mark.parametrize("size, overlap", [(100, 100), (100, 150), (100, -1), (0, 0)])
def test_invalid_overlap_rejected(size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", max_chunk_size=size, overlap=overlap)


def test_page_numbers_follow_page_offsets() -> None:
    text = "a" * 50 + "\n" + "b" * 50
    chunks = chunk_text(text, max_chunk_size=40, overlap=5)
    assign_page_numbers(chunks, [0, 51])
    assert chunks[0].page_number == 1
    assert chunks[-1].page_number == 2


def test_chunk_records_carry_document_metadata(sample_text: str) -> None:
    payloads = chunk_text(sample_text * 5, max_chunk_size=120, overlap=20)
    records = build_chunk_records("course-1", "file-1", "notes.txt", "txt", payloads)
    assert len({record.id for record in records}) == len(records), "Chunk IDs should be unique"
    assert all(record.metadata.total_chunks == len(records) for record in records)
    assert records[0].is_document_start()
    assert records[-1].is_document_end()
    assert all(record.metadata.course_id == "course-1" for record in records)


def test_context_window_matches_source_offsets(sample_text: str) -> None:
    text = sample_text * 5
    payloads = chunk_text(text, max_chunk_size=120, overlap=20)
    records = build_chunk_records("course-1", "file-1", "notes.txt", "txt", payloads)
    for payload, record in zip(payloads, records):
        start, end = record.context_window()
        assert (start, end) == (payload.start_char, payload.end_char)
        assert text[start:end].strip() == record.content.strip()
