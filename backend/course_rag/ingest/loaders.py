"""Document loaders and the content extractor that falls back to a multimodal model."""

from __future__ import annotations

import asyncio
import io
import json
import mimetypes
import tempfile
from pathlib import Path
from typing import Any

import fitz
from docx import Document

from course_rag.core.errors import ExtractionFailure
from course_rag.core.logging import get_logger
from course_rag.core.metrics import FALLBACK_EXTRACTIONS
from course_rag.ingest.process import ProcessRunner
from course_rag.ingest.types import ExtractedContent
from course_rag.llm.client import ChatModel

logger = get_logger(__name__)

MIN_CONTENT_LENGTH = 100


class BaseLoader:
    """Common loader interface; ``file_types`` are lower-case extensions."""

    file_types: tuple[str, ...] = ()

    def can_load(self, file_type: str) -> bool:
        return file_type in self.file_types

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:  # pragma: no cover - interface
        raise NotImplementedError


class TextLoader(BaseLoader):
    file_types = (
        "txt", "text", "md", "markdown", "csv", "log",
        "js", "ts", "py", "java", "cpp", "c", "html", "css",
    )

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        return ExtractedContent(text=data.decode("utf-8"), metadata={"extraction": "text"})


class JsonLoader(BaseLoader):
    file_types = ("json",)

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        parsed = json.loads(data.decode("utf-8"))
        return ExtractedContent(text=json.dumps(parsed, indent=2), metadata={"extraction": "json"})


class PDFLoader(BaseLoader):
    file_types = ("pdf",)

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        pages = await asyncio.to_thread(_pdf_pages, data)
        offsets: list[int] = []
        parts: list[str] = []
        cursor = 0
        for page in pages:
            offsets.append(cursor)
            parts.append(page)
            cursor += len(page) + 1
        return ExtractedContent(
            text="\n".join(parts),
            metadata={"extraction": "pdf", "page_count": len(pages)},
            page_offsets=offsets,
        )


class DocxLoader(BaseLoader):
    file_types = ("docx",)

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        text, core = await asyncio.to_thread(_docx_text, data)
        metadata: dict[str, Any] = {"extraction": "docx"}
        if core.get("title"):
            metadata["title"] = core["title"]
        if core.get("author"):
            metadata["author"] = core["author"]
        return ExtractedContent(text=text, metadata=metadata)


class PandocLoader(BaseLoader):
    """Office formats converted to plain text by pandoc."""

    file_types = ("doc", "odt", "rtf", "pptx", "epub")

    def __init__(self, runner: ProcessRunner, binary: str = "pandoc") -> None:
        self.runner = runner
        self.binary = binary

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        suffix = Path(file_name).suffix or ".doc"
        with tempfile.TemporaryDirectory(prefix="crag-pandoc-") as workdir:
            source = Path(workdir) / f"source{suffix}"
            source.write_bytes(data)
            result = await self.runner.run(self.binary, str(source), "-t", "plain")
        if not result.ok:
            raise ExtractionFailure("pandoc conversion failed", detail=result.stderr[:500])
        return ExtractedContent(text=result.stdout, metadata={"extraction": "pandoc"})


class ImageLoader(BaseLoader):
    """Images carry no extractable text; always routed to the fallback path."""

    file_types = ("jpg", "jpeg", "png", "gif", "webp")

    async def load(self, data: bytes, file_name: str) -> ExtractedContent:
        return ExtractedContent(text="", metadata={"is_image": True}, needs_fallback=True)


class LoaderRegistry:
    """Registry that selects an appropriate loader for a declared type."""

    def __init__(self, runner: ProcessRunner | None = None, pandoc_binary: str = "pandoc") -> None:
        self._loaders: list[BaseLoader] = [
            TextLoader(),
            JsonLoader(),
            PDFLoader(),
            DocxLoader(),
            PandocLoader(runner or ProcessRunner(), binary=pandoc_binary),
            ImageLoader(),
        ]

    def for_type(self, file_type: str) -> BaseLoader | None:
        for loader in self._loaders:
            if loader.can_load(file_type):
                return loader
        return None


class ContentExtractor:
    """Best-effort structured extraction with a multimodal fallback.

    Structured extraction failures of any kind (unsupported type, parse error,
    empty or short output) never abort ingestion; they mark the result as
    needing the fallback. Only a failure of the fallback itself propagates.
    """

    def __init__(
        self,
        chat_model: ChatModel | None,
        registry: LoaderRegistry | None = None,
        min_content_length: int = MIN_CONTENT_LENGTH,
    ) -> None:
        self.chat_model = chat_model
        self.registry = registry or LoaderRegistry()
        self.min_content_length = min_content_length

    async def extract(self, source: bytes | Path, declared_type: str, file_name: str | None = None) -> ExtractedContent:
        data, name = _read_source(source, file_name)
        file_type = normalize_file_type(declared_type, name)
        metadata: dict[str, Any] = {"file_name": name, "file_type": file_type, "size": len(data)}

        try:
            extracted = await self._structured(data, file_type, name)
        except Exception as exc:
            failure = exc if isinstance(exc, ExtractionFailure) else ExtractionFailure(str(exc))
            logger.warning("Structured extraction failed for %s: %s", name, failure.message)
            return ExtractedContent(text="", metadata={**metadata, "error": failure.message}, needs_fallback=True)

        extracted.metadata = {**metadata, **extracted.metadata, "content_length": len(extracted.text)}
        if len(extracted.text) < self.min_content_length:
            extracted.needs_fallback = True
        return extracted

    async def extract_with_fallback(
        self,
        source: bytes | Path,
        declared_type: str,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> ExtractedContent:
        """Extract text, sending the raw payload to the multimodal model if needed."""
        data, name = _read_source(source, file_name)
        extracted = await self.extract(data, declared_type, name)
        if not extracted.needs_fallback:
            return extracted
        if self.chat_model is None:
            raise ExtractionFailure(f"No fallback extractor configured for {name}")

        file_type = extracted.metadata.get("file_type", declared_type)
        FALLBACK_EXTRACTIONS.labels(file_type=file_type).inc()
        logger.info("Routing %s to multimodal extraction", name, extra={"ctx_file_type": file_type})
        mime = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        text = await self.chat_model.extract_document(data, mime)
        return ExtractedContent(
            text=text,
            metadata={**extracted.metadata, "extraction": "multimodal", "content_length": len(text)},
            needs_fallback=True,
        )

    async def _structured(self, data: bytes, file_type: str, file_name: str) -> ExtractedContent:
        loader = self.registry.for_type(file_type)
        if loader is not None:
            extracted = await loader.load(data, file_name)
        else:
            # Unknown types are tried as UTF-8 text first.
            extracted = ExtractedContent(text=data.decode("utf-8"), metadata={"extraction": "text"})
        if not extracted.needs_fallback and not extracted.text.strip():
            raise ExtractionFailure(f"No text extracted from {file_name}")
        return extracted


def normalize_file_type(declared_type: str | None, file_name: str = "") -> str:
    """Lower-case extension without the dot; falls back to the file name suffix."""
    value = (declared_type or "").strip().lower()
    if "/" in value:
        guessed = mimetypes.guess_extension(value)
        value = guessed or ""
    value = value.lstrip(".")
    if not value and file_name:
        value = Path(file_name).suffix.lower().lstrip(".")
    return value or "unknown"


def _read_source(source: bytes | Path, file_name: str | None) -> tuple[bytes, str]:
    if isinstance(source, Path):
        return source.read_bytes(), file_name or source.name
    return source, file_name or "upload"


def _pdf_pages(data: bytes) -> list[str]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text("text", sort=True) for page in doc]


def _docx_text(data: bytes) -> tuple[str, dict[str, Any]]:
    document = Document(io.BytesIO(data))
    paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
    core = document.core_properties
    return "\n".join(paragraphs), {"title": core.title, "author": core.author}


__all__ = [
    "BaseLoader",
    "LoaderRegistry",
    "ContentExtractor",
    "normalize_file_type",
    "MIN_CONTENT_LENGTH",
]
