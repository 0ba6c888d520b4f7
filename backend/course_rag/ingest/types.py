"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(slots=True)
class ExtractedContent:
    """Plain text recovered from a source document."""

    text: str
    metadata: dict[str, Any]
    needs_fallback: bool = False
    # Character offset at which each PDF page starts inside ``text``.
    page_offsets: Sequence[int] | None = None


@dataclass(slots=True)
class ChunkPayload:
    """Chunk produced by the chunker prior to embedding."""

    content: str
    chunk_index: int
    start_char: int
    end_char: int
    chunk_size: int
    context: dict[str, Any] = field(default_factory=dict)
    page_number: int | None = None


@dataclass(slots=True)
class VideoMetadata:
    """Platform metadata for a YouTube source."""

    video_id: str
    title: str
    duration: int = 0
    description: str | None = None
    channel: str | None = None
    upload_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "title": self.title,
            "duration": self.duration,
            "description": self.description,
            "channel": self.channel,
            "upload_date": self.upload_date,
        }


@dataclass(slots=True)
class Transcript:
    """Transcript text and the path that produced it."""

    text: str
    source: str  # "captions" or "transcription"


__all__ = [
    "ExtractedContent",
    "ChunkPayload",
    "VideoMetadata",
    "Transcript",
]
