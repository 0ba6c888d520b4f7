"""Tests for retrieval utilities."""

import threading

import pytest

from course_rag.db.sqlite import SQLiteDatabase
from course_rag.retrieval.vector_index import VectorIndex, cosine_similarity


def _meta(chunk_index: int = 0, file_id: str = "file-1", course_id: str = "course-1") -> dict:
    return {
        "course_id": course_id,
        "file_id": file_id,
        "file_name": f"{file_id}.txt",
        "file_type": "txt",
        "chunk_index": chunk_index,
        "total_chunks": 3,
    }


def _seed(index: VectorIndex) -> None:
    index.upsert(
        "course-1",
        [
            ("a", [1.0, 0.0, 0.0], "alpha", _meta(0)),
            ("b", [0.0, 1.0, 0.0], "beta", _meta(1)),
            ("c", [0.7, 0.7, 0.0], "gamma", _meta(2, file_id="file-2")),
        ],
    )


def test_cosine_identities() -> None:
    assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_vector_index_basic() -> None:
    index = VectorIndex()
    _seed(index)
    results = index.query("course-1", [1.0, 0.0, 0.0], k=1)
    assert results
    assert results.ids == ["a"]
    assert results.distances[0] == pytest.approx(0.0)
    assert results.hits[0].similarity == pytest.approx(1.0)


def test_query_orders_by_ascending_distance() -> None:
    index = VectorIndex()
    _seed(index)
    results = index.query("course-1", [1.0, 0.1, 0.0], k=3)
    assert results.ids == ["a", "c", "b"]
    assert results.distances == sorted(results.distances)
    assert results.documents == ["alpha", "gamma", "beta"]


def test_query_truncates_to_k_and_partition_size() -> None:
    index = VectorIndex()
    _seed(index)
    assert len(index.query("course-1", [1.0, 0.0, 0.0], k=2)) == 2
    assert len(index.query("course-1", [1.0, 0.0, 0.0], k=10)) == 3


def test_query_is_scoped_to_course() -> None:
    index = VectorIndex()
    _seed(index)
    assert not index.query("course-2", [1.0, 0.0, 0.0], k=5)


def test_zero_query_vector_scores_zero() -> None:
    index = VectorIndex()
    _seed(index)
    results = index.query("course-1", [0.0, 0.0, 0.0], k=3)
    assert all(distance == pytest.approx(1.0) for distance in results.distances)


def test_upsert_replaces_existing_id() -> None:
    index = VectorIndex()
    _seed(index)
    index.upsert("course-1", [("a", [0.0, 0.0, 1.0], "alpha v2", _meta(0))])
    assert index.count("course-1") == 3
    assert index.query("course-1", [0.0, 0.0, 1.0], k=1).documents == ["alpha v2"]


def test_upsert_rejects_foreign_course_and_bad_metadata() -> None:
    index = VectorIndex()
    with pytest.raises(ValueError):
        index.upsert("course-1", [("x", [1.0], "doc", _meta(course_id="course-2"))])
    with pytest.raises(ValueError):
        index.upsert("course-1", [("x", [1.0], "doc", {"course_id": "course-1"})])
    with pytest.raises(ValueError):
        index.upsert("course-1", [("x", [], "doc", _meta())])
    assert index.size == 0


def test_upsert_rejects_mixed_dimensions() -> None:
    index = VectorIndex()
    with pytest.raises(ValueError):
        index.upsert("course-1", [("x", [1.0, 0.0], "doc", _meta(0)), ("y", [1.0], "doc", _meta(1))])
    assert index.count("course-1") == 0


def test_delete_is_idempotent() -> None:
    index = VectorIndex()
    _seed(index)
    assert index.delete("course-1", ["a", "missing"]) == 1
    assert index.delete("course-1", ["a"]) == 0
    assert index.count("course-1") == 2


def test_delete_file_and_course() -> None:
    index = VectorIndex()
    _seed(index)
    assert index.delete_file("course-1", "file-2") == 1
    assert index.get("course-1", ["c"]) == []
    assert index.delete_course("course-1") == 2
    assert index.size == 0
    assert index.delete_course("course-1") == 0


def test_sqlite_persistence_survives_rebuild(tmp_path) -> None:
    db = SQLiteDatabase(tmp_path / "index.db")
    db.ensure_schema()
    index = VectorIndex(db=db)
    _seed(index)
    index.delete("course-1", ["b"])

    reloaded = VectorIndex(db=db)
    reloaded.rebuild()
    assert reloaded.count("course-1") == 2
    results = reloaded.query("course-1", [1.0, 0.0, 0.0], k=1)
    assert results.ids == ["a"]
    assert results.metadatas[0].file_name == "file-1.txt"
    db.close()


def test_concurrent_readers_see_whole_batches() -> None:
    index = VectorIndex()
    batch = [(f"chunk-{i}", [1.0, float(i), 0.0], f"doc {i}", _meta(i)) for i in range(50)]
    observed: set[int] = set()
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            observed.add(len(index.query("course-1", [1.0, 0.0, 0.0], k=1000)))

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for _ in range(200):
            index.delete_course("course-1")
            index.upsert("course-1", batch)
    finally:
        stop.set()
        thread.join()
    assert observed <= {0, len(batch)}
