"""PDF byte-to-text capability backed by pypdf."""

from __future__ import annotations

import io
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import FileNotDecryptedError, PyPdfError

from research_agents.framework.errors import ExtractionError, ExtractionFailure


class PdfDocument(Protocol):
    """An opened PDF whose pages are extracted one at a time."""

    @property
    def page_count(self) -> int: ...

    def page_text(self, index: int) -> str: ...


class PdfTextExtractor(Protocol):
    def open(self, data: bytes) -> PdfDocument: ...


class _PypdfDocument:
    def __init__(self, reader: PdfReader) -> None:
        self._reader = reader

    @property
    def page_count(self) -> int:
        return len(self._reader.pages)

    def page_text(self, index: int) -> str:
        try:
            return self._reader.pages[index].extract_text() or ""
        except FileNotDecryptedError as exc:
            raise _password_protected() from exc
        except PyPdfError as exc:
            raise ExtractionError(
                f"Failed to read PDF page {index + 1}: {exc}",
                reason=ExtractionFailure.CORRUPTED,
            ) from exc


class PypdfTextExtractor:
    """Opens PDFs with ``pypdf.PdfReader``; an empty user password is tried first."""

    def open(self, data: bytes) -> PdfDocument:
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted and not reader.decrypt(""):
                raise _password_protected()
            return _PypdfDocument(reader)
        except FileNotDecryptedError as exc:
            raise _password_protected() from exc
        except (PyPdfError, ValueError) as exc:
            raise ExtractionError(
                f"PDF file is corrupted or invalid: {exc}",
                reason=ExtractionFailure.CORRUPTED,
            ) from exc


def _password_protected() -> ExtractionError:
    return ExtractionError(
        "PDF is password protected",
        reason=ExtractionFailure.PASSWORD_PROTECTED,
    )
