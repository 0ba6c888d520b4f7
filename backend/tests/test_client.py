"""Tests for the hosted model clients."""

import asyncio
import json

import httpx
import pytest

from course_rag.core.errors import (
    ExternalServiceError,
    ExternalServiceTimeout,
    FallbackExtractionFailure,
    GenerationFailure,
    TranscriptionFailure,
)
from course_rag.llm.client import EXTRACTION_PROMPT, ApiClient, ChatModel, TranscriptionModel, call_with_retry


def _client(handler, retry_attempts: int = 0, timeout: float = 5) -> ApiClient:
    return ApiClient(
        "https://llm.test/api/v1",
        "key",
        timeout=timeout,
        retry_attempts=retry_attempts,
        retry_backoff=0,
        transport=httpx.MockTransport(handler),
    )


def _completion(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def test_retry_recovers_from_transient_status() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    response = asyncio.run(_client(handler, retry_attempts=1).post("test", "/thing", json={}))
    assert response == {"ok": True}
    assert len(calls) == 2


def test_client_errors_are_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(ExternalServiceError) as excinfo:
        asyncio.run(_client(handler, retry_attempts=3).post("test", "/thing", json={}))
    assert not excinfo.value.retryable
    assert len(calls) == 1


def test_deadline_raises_timeout() -> None:
    async def slow() -> int:
        await asyncio.sleep(1)
        return 1

    with pytest.raises(ExternalServiceTimeout) as excinfo:
        asyncio.run(call_with_retry("slow", slow, timeout=0.01, attempts=0))
    assert excinfo.value.service == "slow"


def test_transport_timeout_is_reported_as_timeout() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ExternalServiceTimeout) as excinfo:
        asyncio.run(_client(handler, retry_attempts=1).post("generation", "/chat/completions", json={}))
    assert excinfo.value.service == "generation"
    assert excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, httpx.ReadTimeout)
    assert len(calls) == 2


def test_generate_answer_passes_transport_timeout_through() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("connect timed out", request=request)

    with pytest.raises(ExternalServiceTimeout):
        asyncio.run(ChatModel(_client(handler), model="m").generate_answer("s", "q"))


def test_generate_answer_sends_system_and_user_messages() -> None:
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json=_completion("The answer."))

    model = ChatModel(_client(handler), model="chat-model", temperature=0.7, max_tokens=2000)
    answer = asyncio.run(model.generate_answer("system prompt", "question?"))
    assert answer == "The answer."
    payload = payloads[0]
    assert payload["model"] == "chat-model"
    assert payload["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "question?"},
    ]
    assert payload["temperature"] == 0.7
    assert payload["max_tokens"] == 2000


def test_generate_answer_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(GenerationFailure):
        asyncio.run(ChatModel(_client(handler), model="m").generate_answer("s", "q"))


def test_extract_document_sends_data_url() -> None:
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json=_completion("Scanned text"))

    model = ChatModel(_client(handler), model="chat", multimodal_model="vision")
    text = asyncio.run(model.extract_document(b"%PDF-", "application/pdf"))
    assert text == "Scanned text"
    content = payloads[0]["messages"][0]["content"]
    assert payloads[0]["model"] == "vision"
    assert content[0] == {"type": "text", "text": EXTRACTION_PROMPT}
    assert content[1]["image_url"]["url"] == "data:application/pdf;base64,JVBERi0="


def test_extract_document_empty_text_is_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_completion("   "))

    with pytest.raises(FallbackExtractionFailure):
        asyncio.run(ChatModel(_client(handler), model="m").extract_document(b"data", "image/png"))


def test_transcribe_posts_audio() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/audio/transcriptions"
        assert b"whisper-1" in request.content
        return httpx.Response(200, json={"text": "spoken words"})

    model = TranscriptionModel(_client(handler), model="whisper-1")
    assert asyncio.run(model.transcribe(b"ID3", "vid.mp3")) == "spoken words"


def test_transcribe_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(TranscriptionFailure):
        asyncio.run(TranscriptionModel(_client(handler)).transcribe(b"ID3"))
