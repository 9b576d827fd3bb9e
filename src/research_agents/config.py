"""Runtime configuration for the task runner, cache and extraction."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_ENV_PREFIX = "RESEARCH_AGENTS_"


@dataclass(slots=True)
class CacheSettings:
    """Result cache settings."""

    enabled: bool = True
    db_path: Path = Path(".research_agents_cache.db")
    ttl_seconds: int = 24 * 60 * 60
    max_entries: int = 100
    single_flight: bool = False


@dataclass(slots=True)
class ExtractionSettings:
    """Document ingestion limits and HTTP client settings."""

    max_file_bytes: int = 10 * 1024 * 1024
    max_pages: int = 50
    min_text_chars: int = 100
    min_chars_per_page: int = 20
    request_timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass(slots=True)
class SynthesisSettings:
    """Research synthesis pipeline settings."""

    max_documents: int = 10
    max_workers: int = 3


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    cache: CacheSettings = field(default_factory=CacheSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    synthesis: SynthesisSettings = field(default_factory=SynthesisSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            cache=CacheSettings(
                enabled=_env_bool(f"{_ENV_PREFIX}CACHE_ENABLED", default=True),
                db_path=db_path
                or Path(os.getenv(f"{_ENV_PREFIX}CACHE_DB_PATH", ".research_agents_cache.db")),
                ttl_seconds=int(os.getenv(f"{_ENV_PREFIX}CACHE_TTL_SECONDS", "86400")),
                max_entries=int(os.getenv(f"{_ENV_PREFIX}CACHE_MAX_ENTRIES", "100")),
                single_flight=_env_bool(f"{_ENV_PREFIX}CACHE_SINGLE_FLIGHT", default=False),
            ),
            extraction=ExtractionSettings(
                max_file_bytes=int(
                    os.getenv(f"{_ENV_PREFIX}MAX_FILE_BYTES", str(10 * 1024 * 1024)),
                ),
                max_pages=int(os.getenv(f"{_ENV_PREFIX}MAX_PAGES", "50")),
                min_text_chars=int(os.getenv(f"{_ENV_PREFIX}MIN_TEXT_CHARS", "100")),
                min_chars_per_page=int(os.getenv(f"{_ENV_PREFIX}MIN_CHARS_PER_PAGE", "20")),
                request_timeout_seconds=float(
                    os.getenv(f"{_ENV_PREFIX}REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                max_retries=int(os.getenv(f"{_ENV_PREFIX}HTTP_MAX_RETRIES", "3")),
            ),
            synthesis=SynthesisSettings(
                max_documents=int(os.getenv(f"{_ENV_PREFIX}MAX_DOCUMENTS", "10")),
                max_workers=int(os.getenv(f"{_ENV_PREFIX}MAX_WORKERS", "3")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on out-of-range values."""

        if self.cache.ttl_seconds <= 0:
            raise ValueError(f"{_ENV_PREFIX}CACHE_TTL_SECONDS must be > 0.")
        if self.cache.max_entries <= 0:
            raise ValueError(f"{_ENV_PREFIX}CACHE_MAX_ENTRIES must be > 0.")
        if self.extraction.max_file_bytes <= 0:
            raise ValueError(f"{_ENV_PREFIX}MAX_FILE_BYTES must be > 0.")
        if self.extraction.max_pages <= 0:
            raise ValueError(f"{_ENV_PREFIX}MAX_PAGES must be > 0.")
        if self.extraction.min_text_chars < 0 or self.extraction.min_chars_per_page < 0:
            raise ValueError("Minimum text thresholds must be >= 0.")
        if self.extraction.request_timeout_seconds <= 0:
            raise ValueError(f"{_ENV_PREFIX}REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.extraction.max_retries < 0:
            raise ValueError(f"{_ENV_PREFIX}HTTP_MAX_RETRIES must be >= 0.")
        if not 1 <= self.synthesis.max_documents <= 25:
            raise ValueError(f"{_ENV_PREFIX}MAX_DOCUMENTS must be between 1 and 25.")
        if self.synthesis.max_workers <= 0:
            raise ValueError(f"{_ENV_PREFIX}MAX_WORKERS must be a positive integer.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
