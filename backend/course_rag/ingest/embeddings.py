"""Embedding gateways."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from typing import Protocol, Sequence

from course_rag.core.errors import EmbeddingFailure, ExternalServiceError, ExternalServiceTimeout
from course_rag.core.logging import get_logger
from course_rag.llm.client import ApiClient
from course_rag.utils.aio import gather_or_cancel

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingGateway(Protocol):
    model_name: str

    async def embed(self, text: str) -> list[float]: ...

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]: ...


class _FanOutMixin:
    """Parallel per-text embedding bounded by a semaphore."""

    concurrency: int = 8

    async def embed(self, text: str) -> list[float]:  # pragma: no cover - interface
        raise NotImplementedError

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        return await gather_or_cancel(*(_one(text) for text in texts))


class OpenAIEmbeddingGateway(_FanOutMixin):
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(self, client: ApiClient, model_name: str = "text-embedding-ada-002", concurrency: int = 8) -> None:
        self.client = client
        self.model_name = model_name
        self.concurrency = concurrency

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self.client.post(
                "embedding",
                "/embeddings",
                json={"model": self.model_name, "input": text},
            )
            vector = response["data"][0]["embedding"]
        except ExternalServiceTimeout:
            raise
        except (ExternalServiceError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("Failed to create embedding with %s: %s", self.model_name, exc)
            raise EmbeddingFailure("Failed to create embedding", detail=str(exc)) from exc
        if not vector:
            raise EmbeddingFailure("Embedding endpoint returned an empty vector")
        return [float(value) for value in vector]


class HashedEmbeddingModel(_FanOutMixin):
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model_name: str = "hashed", dim: int = 384, concurrency: int = 8) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.model_name = model_name
        self.dim = dim
        self.concurrency = concurrency

    async def embed(self, text: str) -> list[float]:
        return self.encode(text)

    def encode(self, text: str) -> list[float]:
        vector = [0.0] * self.dim
        for token in _tokenize(text):
            vector[_hash_token(token, self.dim)] += 1.0
        _normalize(vector)
        return vector


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["EmbeddingGateway", "OpenAIEmbeddingGateway", "HashedEmbeddingModel"]
