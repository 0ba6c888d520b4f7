"""Hashing utilities."""

from __future__ import annotations

import hashlib


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for an uploaded payload."""
    return hashlib.sha256(data).hexdigest()
