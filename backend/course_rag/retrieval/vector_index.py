"""Vector index abstraction."""

from __future__ import annotations

import math
import sqlite3
import threading
from array import array
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import orjson
from pydantic import ValidationError as PydanticValidationError

from course_rag.core.errors import IndexUnavailable
from course_rag.core.logging import get_logger
from course_rag.db.sqlite import SQLiteDatabase
from course_rag.models.entities import ChunkMetadata
from course_rag.utils.time import now_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class IndexEntry:
    chunk_id: str
    vector: list[float]
    document: str
    metadata: ChunkMetadata
    norm: float = 0.0


@dataclass(slots=True)
class IndexHit:
    chunk_id: str
    document: str
    metadata: ChunkMetadata
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


@dataclass(slots=True)
class IndexQueryResult:
    """Ordered hits of one nearest-neighbour query (ascending distance)."""

    hits: list[IndexHit] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [hit.chunk_id for hit in self.hits]

    @property
    def documents(self) -> list[str]:
        return [hit.document for hit in self.hits]

    @property
    def metadatas(self) -> list[ChunkMetadata]:
        return [hit.metadata for hit in self.hits]

    @property
    def distances(self) -> list[float]:
        return [hit.distance for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)

    def __bool__(self) -> bool:
        return bool(self.hits)


class VectorIndex:
    """In-memory cosine index partitioned by course.

    Each upsert is applied under one lock acquisition, and readers score a
    snapshot of the partition taken under the same lock. When a database is
    attached, writes are persisted in a single transaction before they become
    visible in memory.
    """

    def __init__(self, db: SQLiteDatabase | None = None) -> None:
        self.db = db
        self._partitions: dict[str, dict[str, IndexEntry]] = {}
        self._lock = threading.RLock()

    @property
    def size(self) -> int:
        with self._lock:
            return sum(len(partition) for partition in self._partitions.values())

    def count(self, course_id: str) -> int:
        with self._lock:
            return len(self._partitions.get(course_id, {}))

    def upsert(
        self,
        course_id: str,
        entries: Sequence[tuple[str, Sequence[float], str, ChunkMetadata | Mapping[str, Any]]],
    ) -> None:
        """Insert or replace ``(chunk_id, vector, document, metadata)`` tuples."""
        if not entries:
            return
        prepared = [self._prepare(course_id, *entry) for entry in entries]
        dims = {len(entry.vector) for entry in prepared}
        if len(dims) != 1:
            raise ValueError("Vector dimension mismatch within batch")
        with self._lock:
            if self.db is not None:
                self._persist(course_id, prepared)
            partition = self._partitions.setdefault(course_id, {})
            for entry in prepared:
                partition[entry.chunk_id] = entry

    def query(self, course_id: str, vector: Sequence[float], k: int = 5) -> IndexQueryResult:
        if k <= 0:
            return IndexQueryResult()
        with self._lock:
            snapshot = list(self._partitions.get(course_id, {}).values())
        if not snapshot:
            return IndexQueryResult()
        query_norm = _norm(vector)
        scored = [
            (entry, _cosine(entry.vector, entry.norm, vector, query_norm))
            for entry in snapshot
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return IndexQueryResult(
            hits=[
                IndexHit(
                    chunk_id=entry.chunk_id,
                    document=entry.document,
                    metadata=entry.metadata,
                    distance=1.0 - similarity,
                )
                for entry, similarity in scored[:k]
            ]
        )

    def get(self, course_id: str, chunk_ids: Sequence[str]) -> list[IndexEntry]:
        with self._lock:
            partition = self._partitions.get(course_id, {})
            return [partition[chunk_id] for chunk_id in chunk_ids if chunk_id in partition]

    def entries(self, course_id: str) -> list[IndexEntry]:
        with self._lock:
            return list(self._partitions.get(course_id, {}).values())

    def delete(self, course_id: str, chunk_ids: Sequence[str]) -> int:
        """Remove entries by id; unknown ids are ignored."""
        if not chunk_ids:
            return 0
        with self._lock:
            if self.db is not None:
                placeholders = ",".join("?" for _ in chunk_ids)
                self._write(
                    f"DELETE FROM chunks WHERE course_id = ? AND id IN ({placeholders})",
                    [course_id, *chunk_ids],
                )
            partition = self._partitions.get(course_id, {})
            removed = 0
            for chunk_id in chunk_ids:
                if partition.pop(chunk_id, None) is not None:
                    removed += 1
            return removed

    def delete_file(self, course_id: str, file_id: str) -> int:
        with self._lock:
            if self.db is not None:
                self._write("DELETE FROM chunks WHERE course_id = ? AND file_id = ?", [course_id, file_id])
            partition = self._partitions.get(course_id, {})
            chunk_ids = [entry.chunk_id for entry in partition.values() if entry.metadata.file_id == file_id]
            for chunk_id in chunk_ids:
                del partition[chunk_id]
            return len(chunk_ids)

    def delete_course(self, course_id: str) -> int:
        with self._lock:
            if self.db is not None:
                self._write("DELETE FROM chunks WHERE course_id = ?", [course_id])
            partition = self._partitions.pop(course_id, {})
            return len(partition)

    def rebuild(self) -> None:
        """Reload every partition from the attached database."""
        if self.db is None:
            return
        try:
            rows = self.db.query("SELECT id, course_id, content, meta_json, vector FROM chunks")
        except sqlite3.Error as exc:
            raise IndexUnavailable("Vector store could not be loaded", detail=str(exc)) from exc
        partitions: dict[str, dict[str, IndexEntry]] = {}
        for row in rows:
            floats = array("f")
            floats.frombytes(row["vector"])
            vector = list(floats)
            metadata = ChunkMetadata.model_validate(orjson.loads(row["meta_json"]))
            partitions.setdefault(row["course_id"], {})[row["id"]] = IndexEntry(
                chunk_id=row["id"],
                vector=vector,
                document=row["content"],
                metadata=metadata,
                norm=_norm(vector),
            )
        with self._lock:
            self._partitions = partitions
        logger.info("Loaded %s index entries across %s courses", self.size, len(partitions))

    # Internal helpers -------------------------------------------------

    def _prepare(
        self,
        course_id: str,
        chunk_id: str,
        vector: Sequence[float],
        document: str,
        metadata: ChunkMetadata | Mapping[str, Any],
    ) -> IndexEntry:
        if not vector:
            raise ValueError(f"Chunk {chunk_id} has no embedding")
        try:
            validated = (
                metadata if isinstance(metadata, ChunkMetadata) else ChunkMetadata.model_validate(dict(metadata))
            )
        except PydanticValidationError as exc:
            raise ValueError(f"Invalid metadata for chunk {chunk_id}: {exc}") from exc
        if validated.course_id != course_id:
            raise ValueError(f"Chunk {chunk_id} belongs to course {validated.course_id}, not {course_id}")
        values = [float(value) for value in vector]
        return IndexEntry(chunk_id=chunk_id, vector=values, document=document, metadata=validated, norm=_norm(values))

    def _persist(self, course_id: str, entries: Sequence[IndexEntry]) -> None:
        created_at = now_ms()
        try:
            with self.db.transaction() as cursor:
                cursor.executemany(
                    """
                    INSERT OR REPLACE INTO chunks (id, course_id, file_id, content, meta_json, dim, vector, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            entry.chunk_id,
                            course_id,
                            entry.metadata.file_id,
                            entry.document,
                            entry.metadata.model_dump_json(),
                            len(entry.vector),
                            array("f", entry.vector).tobytes(),
                            created_at,
                        )
                        for entry in entries
                    ],
                )
        except sqlite3.Error as exc:
            raise IndexUnavailable("Vector store write failed", detail=str(exc)) from exc

    def _write(self, sql: str, params: Sequence[Any]) -> None:
        try:
            with self.db.transaction() as cursor:
                cursor.execute(sql, params)
        except sqlite3.Error as exc:
            raise IndexUnavailable("Vector store write failed", detail=str(exc)) from exc


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the product of magnitudes; 0.0 for a zero vector."""
    return _cosine(a, _norm(a), b, _norm(b))


def _cosine(a: Sequence[float], norm_a: float, b: Sequence[float], norm_b: float) -> float:
    if norm_a == 0 or norm_b == 0:
        return 0.0
    if len(a) != len(b):
        raise ValueError("Vector dimension mismatch")
    similarity = sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)
    return max(-1.0, min(1.0, similarity))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


__all__ = ["VectorIndex", "IndexEntry", "IndexHit", "IndexQueryResult", "cosine_similarity"]
