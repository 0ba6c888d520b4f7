"""HTTP clients for the hosted model endpoints."""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from course_rag.core.errors import (
    ExternalServiceError,
    ExternalServiceTimeout,
    FallbackExtractionFailure,
    GenerationFailure,
    TranscriptionFailure,
)
from course_rag.core.logging import get_logger
from course_rag.core.metrics import EXTERNAL_CALLS

logger = get_logger(__name__)

T = TypeVar("T")

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}

EXTRACTION_PROMPT = (
    "Extract all text content from this document. Include all information, formatting, "
    "tables, and any visible text. If this is an image, describe it in detail."
)


async def call_with_retry(
    service: str,
    func: Callable[[], Awaitable[T]],
    timeout: float,
    attempts: int = 1,
    backoff: float = 0.5,
) -> T:
    """Run ``func`` under a deadline, retrying transient failures.

    ``attempts`` counts retries after the first call. Timeouts, transport
    errors and 408/429/5xx responses are transient; anything else is raised
    on the first occurrence.
    """
    retries = 0
    while True:
        try:
            result = await asyncio.wait_for(func(), timeout=timeout)
        except asyncio.TimeoutError:
            error: ExternalServiceError = ExternalServiceTimeout(service, timeout)
        except httpx.TimeoutException as exc:
            # Subclass of TransportError; must be caught first.
            error = ExternalServiceTimeout(service, timeout)
            error.__cause__ = exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            error = ExternalServiceError(
                f"{service} returned HTTP {status}",
                detail=exc.response.text[:500],
                retryable=status in _RETRYABLE_STATUS,
            )
            error.__cause__ = exc
        except httpx.TransportError as exc:
            error = ExternalServiceError(f"{service} transport error: {exc}", retryable=True)
            error.__cause__ = exc
        else:
            EXTERNAL_CALLS.labels(service=service, outcome="ok").inc()
            return result

        EXTERNAL_CALLS.labels(service=service, outcome="error").inc()
        if not error.retryable or retries >= attempts:
            raise error
        delay = backoff * (2**retries)
        retries += 1
        logger.warning("Retrying %s in %.2fs after: %s", service, delay, error.message)
        await asyncio.sleep(delay)


class ApiClient:
    """Thin async wrapper around an OpenAI-compatible REST endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
        retry_attempts: int = 1,
        retry_backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def post(
        self,
        service: str,
        path: str,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async def _send() -> dict[str, Any]:
            response = await self._client.post(path, json=json, data=data, files=files)
            response.raise_for_status()
            return response.json()

        return await call_with_retry(
            service,
            _send,
            timeout=self.timeout,
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class ChatModel:
    """Chat-completions endpoint used for answers and multimodal extraction."""

    def __init__(
        self,
        client: ApiClient,
        model: str,
        multimodal_model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> None:
        self.client = client
        self.model = model
        self.multimodal_model = multimodal_model or model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_answer(self, system_prompt: str, query: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": query},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        try:
            response = await self.client.post("generation", "/chat/completions", json=payload)
            return _first_message(response)
        except ExternalServiceTimeout:
            raise
        except (ExternalServiceError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise GenerationFailure("Answer generation failed", detail=str(exc)) from exc

    async def extract_document(self, data: bytes, mime_type: str = "application/octet-stream") -> str:
        """Ask the multimodal model to transcribe or describe a raw payload."""
        encoded = base64.b64encode(data).decode("ascii")
        payload = {
            "model": self.multimodal_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                    ],
                }
            ],
        }
        try:
            response = await self.client.post("multimodal_extraction", "/chat/completions", json=payload)
            text = _first_message(response)
        except ExternalServiceTimeout:
            raise
        except (ExternalServiceError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise FallbackExtractionFailure("Multimodal extraction failed", detail=str(exc)) from exc
        if not text.strip():
            raise FallbackExtractionFailure("Multimodal extraction returned no text")
        return text


class TranscriptionModel:
    """Speech-to-text endpoint used when a video has no captions."""

    def __init__(self, client: ApiClient, model: str = "whisper-1") -> None:
        self.client = client
        self.model = model

    async def transcribe(self, audio: bytes, filename: str = "audio.mp3") -> str:
        try:
            response = await self.client.post(
                "transcription",
                "/audio/transcriptions",
                data={"model": self.model},
                files={"file": (filename, audio, "audio/mpeg")},
            )
            text = response["text"]
        except ExternalServiceTimeout:
            raise
        except (ExternalServiceError, KeyError, TypeError) as exc:
            raise TranscriptionFailure("Audio transcription failed", detail=str(exc)) from exc
        if not isinstance(text, str) or not text.strip():
            raise TranscriptionFailure("Audio transcription returned no text")
        return text


def _first_message(response: dict[str, Any]) -> str:
    content = response["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise TypeError("completion content is not text")
    return content


__all__ = [
    "ApiClient",
    "ChatModel",
    "TranscriptionModel",
    "call_with_retry",
    "EXTRACTION_PROMPT",
]
