"""Tests for YouTube transcript acquisition."""

import asyncio
import json
from pathlib import Path

import pytest

from course_rag.core.errors import TranscriptionFailure, ValidationError
from course_rag.ingest.process import ProcessResult
from course_rag.ingest.youtube import YouTubeClient, extract_video_id, parse_vtt

VTT = """WEBVTT
Kind: captions

00:00:00.000 --> 00:00:02.000
Welcome to <c>the lecture</c>

00:00:02.000 --> 00:00:04.000
on cell biology
"""


class FakeRunner:
    """Stands in for yt-dlp; writes caption or audio files when asked."""

    def __init__(self, metadata: dict | None = None, captions: str | None = None, audio: bool = True) -> None:
        self.metadata = metadata
        self.captions = captions
        self.audio = audio
        self.calls: list[tuple[str, ...]] = []

    async def run(self, *argv: str, cwd: Path | None = None, timeout: float | None = None) -> ProcessResult:
        self.calls.append(argv)
        if "--dump-json" in argv:
            if self.metadata is None:
                return ProcessResult(argv=argv, returncode=1, stdout="", stderr="unavailable")
            return ProcessResult(argv=argv, returncode=0, stdout=json.dumps(self.metadata), stderr="")
        if "--write-auto-sub" in argv:
            if self.captions is not None:
                (cwd / "abc123.en.vtt").write_text(self.captions, encoding="utf-8")
            return ProcessResult(argv=argv, returncode=0, stdout="", stderr="")
        if "-x" in argv:
            if self.audio:
                Path(argv[argv.index("-o") + 1]).write_bytes(b"ID3audio")
                return ProcessResult(argv=argv, returncode=0, stdout="", stderr="")
            return ProcessResult(argv=argv, returncode=1, stdout="", stderr="download failed")
        raise AssertionError(f"unexpected command {argv}")


class FakeTranscriber:
    def __init__(self) -> None:
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, filename: str = "audio.mp3") -> str:
        self.calls.append((audio, filename))
        return "transcribed lecture audio"


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=abc123",
        "https://youtube.com/watch?feature=share&v=abc123",
        "https://youtu.be/abc123?t=30",
        "https://www.youtube.com/embed/abc123",
    ],
)
def test_extract_video_id(url: str) -> None:
    assert extract_video_id(url) == "abc123"


def test_extract_video_id_rejects_other_urls() -> None:
    with pytest.raises(ValidationError):
        extract_video_id("https://vimeo.com/12345")


def test_parse_vtt_strips_cues_and_tags() -> None:
    assert parse_vtt(VTT) == "Kind: captions Welcome to the lecture on cell biology"


def test_metadata_is_read_from_dump() -> None:
    runner = FakeRunner(metadata={"title": "Lecture 1", "duration": 600, "uploader": "Prof"})
    metadata = asyncio.run(YouTubeClient(runner, None).fetch_metadata("abc123"))
    assert metadata.title == "Lecture 1"
    assert metadata.duration == 600
    assert metadata.channel == "Prof"


def test_metadata_degrades_when_unavailable() -> None:
    metadata = asyncio.run(YouTubeClient(FakeRunner(), None).fetch_metadata("abc123"))
    assert metadata.title == "YouTube Video abc123"
    assert metadata.duration == 0


def test_transcript_prefers_captions() -> None:
    transcriber = FakeTranscriber()
    client = YouTubeClient(FakeRunner(captions=VTT), transcriber)
    transcript = asyncio.run(client.fetch_transcript("abc123"))
    assert transcript.source == "captions"
    assert "cell biology" in transcript.text
    assert transcriber.calls == []


def test_transcript_falls_back_to_audio() -> None:
    transcriber = FakeTranscriber()
    client = YouTubeClient(FakeRunner(captions=None), transcriber)
    transcript = asyncio.run(client.fetch_transcript("abc123"))
    assert transcript.source == "transcription"
    assert transcript.text == "transcribed lecture audio"
    assert transcriber.calls == [(b"ID3audio", "abc123.mp3")]


def test_audio_download_failure() -> None:
    client = YouTubeClient(FakeRunner(captions=None, audio=False), FakeTranscriber())
    with pytest.raises(TranscriptionFailure):
        asyncio.run(client.fetch_transcript("abc123"))


def test_ingest_youtube_indexes_transcript(services, course) -> None:
    runner = FakeRunner(metadata={"title": "Lecture 1", "duration": 600}, captions=VTT)
    services.pipeline.youtube = YouTubeClient(runner, FakeTranscriber())
    document = asyncio.run(services.pipeline.ingest_youtube(course.id, "https://youtu.be/abc123"))
    assert document.type == "youtube"
    assert document.name == "Lecture 1"
    assert document.metadata["transcript_source"] == "captions"
    assert document.metadata["video_id"] == "abc123"
    assert services.vector_index.count(course.id) == len(document.chunk_ids)
