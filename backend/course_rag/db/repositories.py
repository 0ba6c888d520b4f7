"""Course and file registries.

Both registries expose the same ``get/list/insert/update/delete`` surface so
the services can run against SQLite in production and plain dictionaries in
tests.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Protocol

import orjson

from course_rag.db.sqlite import SQLiteDatabase
from course_rag.models.entities import Course, SourceDocument
from course_rag.utils.time import ms_to_datetime


class CourseRepository(Protocol):
    def get(self, course_id: str) -> Course | None: ...

    def list(self) -> list[Course]: ...

    def insert(self, course: Course) -> Course: ...

    def update(self, course: Course) -> Course: ...

    def delete(self, course_id: str) -> bool: ...


class FileRepository(Protocol):
    def get(self, file_id: str) -> SourceDocument | None: ...

    def list(self, course_id: str | None = None) -> list[SourceDocument]: ...

    def insert(self, document: SourceDocument) -> SourceDocument: ...

    def update(self, document: SourceDocument) -> SourceDocument: ...

    def delete(self, file_id: str) -> bool: ...


class InMemoryCourseRepository:
    def __init__(self) -> None:
        self._items: dict[str, Course] = {}
        self._lock = threading.Lock()

    def get(self, course_id: str) -> Course | None:
        with self._lock:
            course = self._items.get(course_id)
            return copy.deepcopy(course) if course else None

    def list(self) -> list[Course]:
        with self._lock:
            return [copy.deepcopy(course) for course in self._items.values()]

    def insert(self, course: Course) -> Course:
        with self._lock:
            self._items[course.id] = copy.deepcopy(course)
        return course

    def update(self, course: Course) -> Course:
        return self.insert(course)

    def delete(self, course_id: str) -> bool:
        with self._lock:
            return self._items.pop(course_id, None) is not None


class InMemoryFileRepository:
    def __init__(self) -> None:
        self._items: dict[str, SourceDocument] = {}
        self._lock = threading.Lock()

    def get(self, file_id: str) -> SourceDocument | None:
        with self._lock:
            document = self._items.get(file_id)
            return copy.deepcopy(document) if document else None

    def list(self, course_id: str | None = None) -> list[SourceDocument]:
        with self._lock:
            return [
                copy.deepcopy(document)
                for document in self._items.values()
                if course_id is None or document.course_id == course_id
            ]

    def insert(self, document: SourceDocument) -> SourceDocument:
        with self._lock:
            self._items[document.id] = copy.deepcopy(document)
        return document

    def update(self, document: SourceDocument) -> SourceDocument:
        return self.insert(document)

    def delete(self, file_id: str) -> bool:
        with self._lock:
            return self._items.pop(file_id, None) is not None


class SQLiteCourseRepository:
    _COLUMNS = (
        "id, name, description, color, icon, meta_json, file_count, embedding_count, "
        "created_at, updated_at, last_accessed"
    )

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def get(self, course_id: str) -> Course | None:
        row = self.db.execute(f"SELECT {self._COLUMNS} FROM courses WHERE id = ?", [course_id]).fetchone()
        return _row_to_course(row) if row else None

    def list(self) -> list[Course]:
        rows = self.db.query(f"SELECT {self._COLUMNS} FROM courses ORDER BY created_at ASC")
        return [_row_to_course(row) for row in rows]

    def insert(self, course: Course) -> Course:
        with self.db.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO courses ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _course_params(course),
            )
        return course

    def update(self, course: Course) -> Course:
        params = _course_params(course)
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE courses SET name = ?, description = ?, color = ?, icon = ?, meta_json = ?,
                  file_count = ?, embedding_count = ?, created_at = ?, updated_at = ?, last_accessed = ?
                WHERE id = ?
                """,
                [*params[1:], params[0]],
            )
        return course

    def delete(self, course_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM courses WHERE id = ?", [course_id])
            return cursor.rowcount > 0


class SQLiteFileRepository:
    _COLUMNS = "id, course_id, name, type, size, uploaded_at, processed, chunk_ids_json, meta_json"

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def get(self, file_id: str) -> SourceDocument | None:
        row = self.db.execute(f"SELECT {self._COLUMNS} FROM files WHERE id = ?", [file_id]).fetchone()
        return _row_to_document(row) if row else None

    def list(self, course_id: str | None = None) -> list[SourceDocument]:
        if course_id is None:
            rows = self.db.query(f"SELECT {self._COLUMNS} FROM files ORDER BY uploaded_at ASC")
        else:
            rows = self.db.query(
                f"SELECT {self._COLUMNS} FROM files WHERE course_id = ? ORDER BY uploaded_at ASC",
                [course_id],
            )
        return [_row_to_document(row) for row in rows]

    def insert(self, document: SourceDocument) -> SourceDocument:
        with self.db.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO files ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _document_params(document),
            )
        return document

    def update(self, document: SourceDocument) -> SourceDocument:
        params = _document_params(document)
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE files SET course_id = ?, name = ?, type = ?, size = ?, uploaded_at = ?,
                  processed = ?, chunk_ids_json = ?, meta_json = ?
                WHERE id = ?
                """,
                [*params[1:], params[0]],
            )
        return document

    def delete(self, file_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM files WHERE id = ?", [file_id])
            return cursor.rowcount > 0


def _to_ms(value) -> int:
    return int(value.timestamp() * 1000)


def _dumps(value: Any) -> str:
    return orjson.dumps(value, default=str).decode("utf-8")


def _course_params(course: Course) -> list[Any]:
    return [
        course.id,
        course.name,
        course.description,
        course.color,
        course.icon,
        _dumps(course.metadata),
        course.file_count,
        course.embedding_count,
        _to_ms(course.created_at),
        _to_ms(course.updated_at),
        _to_ms(course.last_accessed),
    ]


def _row_to_course(row) -> Course:
    return Course(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        color=row["color"],
        icon=row["icon"],
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
        file_count=row["file_count"],
        embedding_count=row["embedding_count"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        last_accessed=ms_to_datetime(row["last_accessed"]),
    )


def _document_params(document: SourceDocument) -> list[Any]:
    return [
        document.id,
        document.course_id,
        document.name,
        document.type,
        document.size,
        _to_ms(document.uploaded_at),
        int(document.processed),
        _dumps(document.chunk_ids),
        _dumps(document.metadata),
    ]


def _row_to_document(row) -> SourceDocument:
    return SourceDocument(
        id=row["id"],
        course_id=row["course_id"],
        name=row["name"],
        type=row["type"],
        size=row["size"],
        uploaded_at=ms_to_datetime(row["uploaded_at"]),
        processed=bool(row["processed"]),
        chunk_ids=orjson.loads(row["chunk_ids_json"]) if row["chunk_ids_json"] else [],
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


__all__ = [
    "CourseRepository",
    "FileRepository",
    "InMemoryCourseRepository",
    "InMemoryFileRepository",
    "SQLiteCourseRepository",
    "SQLiteFileRepository",
]
