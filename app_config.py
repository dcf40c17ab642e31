"""
Application configuration.

All settings are sourced from environment variables (a local `.env` file is
loaded for development). Azure App Service users set these under
Configuration.

Environment variables:
  - POSTS_DIR (default: posts)
  - RAG_CACHE_DIR (default: /tmp/rag_cache, or ./rag_cache on Windows)
  - RAG_INDEX_NAME (default: posts)
  - RAG_TOP_K (default: 4)
  - RAG_CHUNK_SIZE / RAG_CHUNK_OVERLAP (default: 800 / 150)
  - IO_CHUNK_SIZE (default: 4 MiB)
  - EMBEDDINGS_PROVIDER (huggingface | azure, default: huggingface)
  - EMBEDDINGS_MODEL (default: sentence-transformers/all-MiniLM-L6-v2)
  - SITE_TITLE (default: Notes)
  - LOG_LEVEL (default: INFO)
  - AZURE_OPENAI_DEPLOYMENT (chat deployment, required only when answering)
  - AZURE_OPENAI_TEMPERATURE (default: 0.0)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from storage.chunked import DEFAULT_CHUNK_SIZE

load_dotenv()


class ConfigError(RuntimeError):
    """Raised when a required setting is missing or malformed."""


def _env(name: str, default: str | None = None) -> str | None:
    val = os.environ.get(name)
    if val is None:
        return default
    val = val.strip()
    return val or default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from None


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from None


def require_env(name: str) -> str:
    val = _env(name)
    if not val:
        raise ConfigError(
            f"Missing {name}. Set it in Azure App Service Configuration (or your local env) before starting."
        )
    return val


def default_cache_dir() -> Path:
    # App Service (Linux) supports /tmp; on Windows use a local folder.
    if os.name == "nt":
        return Path(os.getcwd()) / "rag_cache"
    return Path(_env("RAG_CACHE_DIR", "/tmp/rag_cache") or "/tmp/rag_cache")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the service and the ingest command."""

    posts_dir: Path
    cache_dir: Path
    index_name: str
    top_k: int
    chunk_size: int
    chunk_overlap: int
    io_chunk_size: int
    embeddings_provider: str
    embeddings_model: str
    site_title: str
    log_level: str
    chat_deployment: str | None = None
    chat_temperature: float = 0.0

    @staticmethod
    def from_env() -> "Settings":
        settings = Settings(
            posts_dir=Path(_env("POSTS_DIR", "posts") or "posts"),
            cache_dir=default_cache_dir(),
            index_name=_env("RAG_INDEX_NAME", "posts") or "posts",
            top_k=_env_int("RAG_TOP_K", 4),
            chunk_size=_env_int("RAG_CHUNK_SIZE", 800),
            chunk_overlap=_env_int("RAG_CHUNK_OVERLAP", 150),
            io_chunk_size=_env_int("IO_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            embeddings_provider=(_env("EMBEDDINGS_PROVIDER", "huggingface") or "huggingface").lower(),
            embeddings_model=_env("EMBEDDINGS_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
            or "sentence-transformers/all-MiniLM-L6-v2",
            site_title=_env("SITE_TITLE", "Notes") or "Notes",
            log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
            chat_deployment=_env("AZURE_OPENAI_DEPLOYMENT"),
            chat_temperature=_env_float("AZURE_OPENAI_TEMPERATURE", 0.0),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.top_k <= 0:
            raise ConfigError("RAG_TOP_K must be positive.")
        if self.chunk_size <= 0 or self.io_chunk_size <= 0:
            raise ConfigError("RAG_CHUNK_SIZE and IO_CHUNK_SIZE must be positive.")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigError("RAG_CHUNK_OVERLAP must be between 0 and RAG_CHUNK_SIZE.")
        if not 0.0 <= self.chat_temperature <= 2.0:
            raise ConfigError("AZURE_OPENAI_TEMPERATURE must be between 0 and 2.")
