"""YouTube transcript acquisition."""

from __future__ import annotations

import re
import tempfile
from pathlib import Path

import orjson

from course_rag.core.errors import TranscriptionFailure, ValidationError
from course_rag.core.logging import get_logger
from course_rag.ingest.process import ProcessRunner
from course_rag.ingest.types import Transcript, VideoMetadata
from course_rag.llm.client import TranscriptionModel

logger = get_logger(__name__)

_VIDEO_ID_PATTERNS = (
    re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/watch\?(?:[^#]*&)?v=([^&#]+)"),
    re.compile(r"(?:https?://)?(?:www\.)?youtu\.be/([^?&#/]+)"),
    re.compile(r"(?:https?://)?(?:www\.)?youtube\.com/embed/([^?&#/]+)"),
)
_TAG_RE = re.compile(r"<[^>]*>")
_CUE_TIMING_RE = re.compile(r"^\d{2}:")


def extract_video_id(url: str) -> str:
    """Return the canonical video id for watch, short-link and embed URLs."""
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url.strip())
        if match:
            return match.group(1)
    raise ValidationError("Invalid YouTube URL", detail=url)


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def parse_vtt(content: str) -> str:
    """Flatten a WEBVTT caption track to plain text."""
    lines = [
        line
        for line in content.splitlines()
        if "-->" not in line
        and not _CUE_TIMING_RE.match(line)
        and line.strip()
        and line.strip() != "WEBVTT"
    ]
    return _TAG_RE.sub("", " ".join(lines))


class YouTubeClient:
    """Metadata, captions and audio via yt-dlp, with speech-to-text fallback."""

    def __init__(
        self,
        runner: ProcessRunner,
        transcription_model: TranscriptionModel | None,
        binary: str = "yt-dlp",
    ) -> None:
        self.runner = runner
        self.transcription_model = transcription_model
        self.binary = binary

    async def fetch_metadata(self, video_id: str) -> VideoMetadata:
        """Platform metadata; degrades to a synthetic title and never raises."""
        result = await self.runner.run(self.binary, "--dump-json", "--skip-download", watch_url(video_id))
        if result.ok:
            try:
                payload = orjson.loads(result.stdout)
                return VideoMetadata(
                    video_id=video_id,
                    title=payload.get("title") or f"YouTube Video {video_id}",
                    duration=int(payload.get("duration") or 0),
                    description=payload.get("description"),
                    channel=payload.get("uploader") or payload.get("channel"),
                    upload_date=payload.get("upload_date"),
                )
            except (orjson.JSONDecodeError, AttributeError, TypeError, ValueError) as exc:
                logger.warning("Unreadable metadata for video %s: %s", video_id, exc)
        else:
            logger.warning("Metadata fetch failed for video %s: %s", video_id, result.stderr[:200])
        return VideoMetadata(video_id=video_id, title=f"YouTube Video {video_id}", duration=0)

    async def fetch_captions(self, video_id: str) -> str | None:
        """Auto-caption text, or ``None`` when the video has no caption track."""
        with tempfile.TemporaryDirectory(prefix="crag-yt-") as workdir:
            result = await self.runner.run(
                self.binary,
                "--write-auto-sub",
                "--sub-lang", "en",
                "--skip-download",
                "--sub-format", "vtt",
                "--output", "%(id)s",
                watch_url(video_id),
                cwd=Path(workdir),
            )
            tracks = sorted(Path(workdir).glob(f"{video_id}*.vtt"))
            if not result.ok or not tracks:
                logger.info("No caption track for video %s, will transcribe audio", video_id)
                return None
            text = parse_vtt(tracks[0].read_text(encoding="utf-8", errors="replace"))
        return text or None

    async def transcribe_audio(self, video_id: str) -> str:
        if self.transcription_model is None:
            raise TranscriptionFailure(f"No captions for video {video_id} and no transcription model configured")
        with tempfile.TemporaryDirectory(prefix="crag-yt-") as workdir:
            audio_path = Path(workdir) / f"{video_id}.mp3"
            result = await self.runner.run(
                self.binary,
                "-x",
                "--audio-format", "mp3",
                "-o", str(audio_path),
                watch_url(video_id),
                cwd=Path(workdir),
            )
            if not result.ok or not audio_path.exists():
                raise TranscriptionFailure(f"Audio download failed for video {video_id}", detail=result.stderr[:500])
            audio = audio_path.read_bytes()
        return await self.transcription_model.transcribe(audio, filename=f"{video_id}.mp3")

    async def fetch_transcript(self, video_id: str) -> Transcript:
        captions = await self.fetch_captions(video_id)
        if captions:
            return Transcript(text=captions, source="captions")
        return Transcript(text=await self.transcribe_audio(video_id), source="transcription")


__all__ = ["YouTubeClient", "extract_video_id", "parse_vtt", "watch_url"]
