"""Retrieval orchestration components."""

from .vector_index import IndexQueryResult, VectorIndex, cosine_similarity
from .search import QueryService

__all__ = [
    "VectorIndex",
    "IndexQueryResult",
    "QueryService",
    "cosine_similarity",
]
