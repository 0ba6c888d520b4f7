"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "CRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/course-rag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "upload_dir"): "upload_dir",
    ("api", "base_url"): "api_base_url",
    ("api", "key"): "api_key",
    ("openrouter", "base_url"): "openrouter_base_url",
    ("openrouter", "key"): "openrouter_api_key",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "concurrency"): "embedding_concurrency",
    ("models", "chat"): "chat_model",
    ("models", "multimodal"): "multimodal_model",
    ("models", "transcription"): "transcription_model",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "min_content_length"): "min_content_length",
    ("retrieval", "max_sources"): "default_max_sources",
    ("retrieval", "cross_reference_k"): "cross_reference_k",
    ("retrieval", "sufficiency_min_token_length"): "sufficiency_min_token_length",
    ("retrieval", "key_term_min_length"): "key_term_min_length",
    ("retrieval", "missing_token_ratio"): "missing_token_ratio",
    ("generation", "temperature"): "generation_temperature",
    ("generation", "max_tokens"): "generation_max_tokens",
    ("network", "timeout"): "request_timeout",
    ("network", "retry_attempts"): "retry_attempts",
    ("network", "retry_backoff"): "retry_backoff",
    ("tools", "yt_dlp"): "yt_dlp_binary",
    ("tools", "pandoc"): "pandoc_binary",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".course-rag" / "course_rag.db")
    upload_dir: Path = Field(default=Path.home() / ".course-rag" / "uploads")

    api_base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_api_key: str = ""

    embedding_backend: Literal["openai", "hashed"] = "openai"
    embedding_model: str = "text-embedding-ada-002"
    embedding_dim: int = 384
    embedding_concurrency: int = Field(default=8, ge=1)
    chat_model: str = "google/gemini-2.0-flash-thinking-exp:online"
    multimodal_model: str = "google/gemini-2.0-flash-thinking-exp"
    transcription_model: str = "whisper-1"

    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    min_content_length: int = 100

    default_max_sources: int = Field(default=5, ge=1)
    cross_reference_k: int = Field(default=3, ge=1)
    # Query tokens longer than this count toward the sufficiency ratio.
    sufficiency_min_token_length: int = 3
    key_term_min_length: int = 4
    missing_token_ratio: float = Field(default=0.3, ge=0.0, le=1.0)

    generation_temperature: float = 0.7
    generation_max_tokens: int = 2000

    request_timeout: float = Field(default=60.0, gt=0)
    retry_attempts: int = Field(default=1, ge=0)
    retry_backoff: float = Field(default=0.5, ge=0)

    yt_dlp_binary: str = "yt-dlp"
    pandoc_binary: str = "pandoc"
    allowed_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "upload_dir", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
