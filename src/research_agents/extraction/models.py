"""Domain models for ingested documents."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class SourceKind(str, Enum):
    FILE = "file"
    URL = "url"


@dataclass(frozen=True, slots=True)
class DocumentSource:
    """Where a document came from: a file name/path or a URL."""

    kind: SourceKind
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "value": self.value}


@dataclass(frozen=True, slots=True)
class FileInput:
    """In-memory file handed over by the host (upload, picker, CLI path)."""

    name: str
    content: bytes = field(repr=False)
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Path) -> FileInput:
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, content=path.read_bytes(), content_type=content_type or "")


@dataclass(slots=True)
class CitationMetadata:
    """Best-effort bibliographic fields parsed from free text."""

    title: str | None = None
    authors: list[str] = field(default_factory=list)
    year: int | None = None
    doi: str | None = None


@dataclass(slots=True)
class Document:
    """Ingested source reduced to text plus bibliographic metadata."""

    id: str
    title: str
    authors: list[str]
    full_text: str
    source: DocumentSource
    year: int | None = None
    doi: str | None = None
    abstract: str | None = None
    extracted_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    page_count: int | None = None
    file_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "year": self.year,
            "doi": self.doi,
            "abstract": self.abstract,
            "source": self.source.to_dict(),
            "extracted_at": self.extracted_at.isoformat(),
            "page_count": self.page_count,
            "file_size": self.file_size,
            "word_count": len(self.full_text.split()),
        }
