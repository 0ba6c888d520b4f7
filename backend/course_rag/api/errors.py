"""Mapping of service errors onto HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from course_rag.core.errors import ExternalServiceTimeout, NotFoundError, ValidationError


def to_http_error(error: Exception, public_message: str) -> HTTPException:
    """Client errors keep their message; everything else gets ``public_message``."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, ExternalServiceTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=public_message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=public_message)


def is_client_error(error: Exception) -> bool:
    return isinstance(error, (ValidationError, NotFoundError))


__all__ = ["to_http_error", "is_client_error"]
