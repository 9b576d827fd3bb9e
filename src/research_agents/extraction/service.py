"""Turns PDF files and URLs into ``Document`` records."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import urlparse, urlunparse

from research_agents.config import ExtractionSettings
from research_agents.extraction.citation import clean_text, extract_abstract, parse_citation
from research_agents.extraction.fetcher import FetchResult, HttpFetcher
from research_agents.extraction.html_extractor import MarkupParser, TrafilaturaMarkupParser
from research_agents.extraction.models import (
    CitationMetadata,
    Document,
    DocumentSource,
    FileInput,
    SourceKind,
)
from research_agents.extraction.pdf import PdfDocument, PdfTextExtractor, PypdfTextExtractor
from research_agents.extraction.url_guard import validate_url
from research_agents.framework.errors import (
    CapabilityUnsupportedError,
    ExtractionError,
    ExtractionFailure,
)

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
_ARXIV_ABS_RE = re.compile(r"^/abs/(?P<paper>.+?)/?$")
_YEAR_PREFIX_RE = re.compile(r"^((?:19|20)\d{2})")


class UrlFetcher(Protocol):
    async def fetch(self, url: str) -> FetchResult: ...


class PickerCancelled(Exception):
    """The user dismissed the file picker."""


class FilePicker(Protocol):
    """Host-provided file selection (dialog, prompt, upload form)."""

    async def pick(self, *, multiple: bool = True) -> list[FileInput]: ...


class DocumentExtractionService:
    """Validates, fetches and parses research documents.

    The PDF, markup and HTTP capabilities are injectable; the defaults are
    pypdf, trafilatura with BeautifulSoup, and an httpx client created on
    first use and closed by ``aclose()``.
    """

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        *,
        pdf_extractor: PdfTextExtractor | None = None,
        markup_parser: MarkupParser | None = None,
        fetcher: UrlFetcher | None = None,
        file_picker: FilePicker | None = None,
    ) -> None:
        self._settings = settings or ExtractionSettings()
        self._pdf = pdf_extractor or PypdfTextExtractor()
        self._markup = markup_parser or TrafilaturaMarkupParser(
            min_chars=self._settings.min_text_chars,
        )
        self._fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self._file_picker = file_picker

    @property
    def settings(self) -> ExtractionSettings:
        return self._settings

    async def extract_from_file(
        self,
        file: FileInput,
        *,
        source: DocumentSource | None = None,
    ) -> Document:
        """Extract text and citation metadata from an in-memory PDF."""

        source = source or DocumentSource(SourceKind.FILE, file.name)
        try:
            return await self._extract_pdf(file, source)
        except ExtractionError as exc:
            if exc.source is None:
                exc.source = source.value
            raise

    async def _extract_pdf(self, file: FileInput, source: DocumentSource) -> Document:
        if not _looks_like_pdf(file):
            raise ExtractionError(
                f"Unsupported file type for {file.name!r}: only PDF files are supported",
                reason=ExtractionFailure.UNSUPPORTED_TYPE,
            )

        limit = self._settings.max_file_bytes
        if file.size > limit:
            raise ExtractionError(
                f"File size ({_megabytes(file.size)}) exceeds maximum allowed size "
                f"({_megabytes(limit)})",
                reason=ExtractionFailure.FILE_TOO_LARGE,
            )

        pdf = await asyncio.to_thread(self._pdf.open, file.content)
        total_pages = pdf.page_count
        if total_pages <= 0:
            raise ExtractionError("PDF contains no pages", reason=ExtractionFailure.CORRUPTED)

        pages = min(total_pages, self._settings.max_pages)
        if pages < total_pages:
            logger.info("Extracting first %d of %d pages from %s", pages, total_pages, file.name)
        page_texts = await asyncio.to_thread(_read_pages, pdf, pages)
        full_text = clean_text("\n\n".join(page_texts))

        if (
            len(full_text) < self._settings.min_text_chars
            or len(full_text) / pages < self._settings.min_chars_per_page
        ):
            raise ExtractionError(
                "PDF appears to be image-based or scanned; text extraction requires OCR",
                reason=ExtractionFailure.IMAGE_ONLY,
            )

        citation = parse_citation(full_text)
        return Document(
            id=document_id(source),
            title=citation.title or PurePosixPath(file.name).stem or file.name,
            authors=citation.authors,
            year=citation.year,
            doi=citation.doi,
            abstract=extract_abstract(full_text),
            full_text=full_text,
            source=source,
            page_count=pages,
            file_size=file.size,
        )

    async def extract_from_url(self, url: str) -> Document:
        """Fetch a URL and extract either its PDF or its HTML article text."""

        checked = validate_url(url)
        source = DocumentSource(SourceKind.URL, checked)
        target = rewrite_arxiv_url(checked)
        if target != checked:
            logger.debug("Rewrote arXiv abstract URL %s -> %s", checked, target)

        result = await self._get_fetcher().fetch(target)
        if not result.is_success:
            raise _fetch_error(result, checked)

        if result.is_pdf:
            name = PurePosixPath(urlparse(target).path).name or "document"
            if not name.lower().endswith(".pdf"):
                name = f"{name}.pdf"
            pdf_file = FileInput(name=name, content=result.content, content_type=PDF_CONTENT_TYPE)
            return await self.extract_from_file(pdf_file, source=source)

        parsed = await asyncio.to_thread(self._markup.parse, result.text, url=target)
        text = clean_text(parsed.text)
        if len(text) < self._settings.min_text_chars:
            raise ExtractionError(
                "Insufficient text content extracted from URL",
                reason=ExtractionFailure.INSUFFICIENT_TEXT,
                source=checked,
            )

        citation = parse_citation(text)
        meta_authors = [name for name in parsed.all_meta("citation_author") if name][:5]
        return Document(
            id=document_id(source),
            title=parsed.first_meta("citation_title") or citation.title or parsed.title or checked,
            authors=meta_authors or citation.authors,
            year=_meta_year(parsed.first_meta("citation_publication_date"))
            or _meta_year(parsed.first_meta("citation_date"))
            or citation.year,
            doi=parsed.first_meta("citation_doi") or citation.doi,
            abstract=parsed.first_meta("citation_abstract") or extract_abstract(text),
            full_text=text,
            source=source,
        )

    async def extract(self, source: DocumentSource | FileInput) -> Document:
        """Dispatch on the source kind; path sources are read from disk."""

        if isinstance(source, FileInput):
            return await self.extract_from_file(source)
        if source.kind is SourceKind.URL:
            return await self.extract_from_url(source.value)
        return await self.extract_from_file(await _read_file(source.value), source=source)

    @staticmethod
    def parse_citation(text: str) -> CitationMetadata:
        return parse_citation(text)

    @staticmethod
    def extract_abstract(text: str) -> str | None:
        return extract_abstract(text)

    async def select_files(self) -> list[FileInput]:
        """Ask the host picker for PDFs; an empty list means the user cancelled."""

        if self._file_picker is None:
            raise CapabilityUnsupportedError("File selection is not supported in this environment")
        try:
            files = await self._file_picker.pick(multiple=True)
        except PickerCancelled:
            logger.info("File selection cancelled")
            return []

        selected = []
        for file in files:
            if _looks_like_pdf(file):
                selected.append(file)
            else:
                logger.warning("Ignoring non-PDF selection %s", file.name)
        return selected

    def _get_fetcher(self) -> UrlFetcher:
        if self._fetcher is None:
            self._fetcher = HttpFetcher(
                timeout_seconds=self._settings.request_timeout_seconds,
                max_retries=self._settings.max_retries,
            )
        return self._fetcher

    async def aclose(self) -> None:
        if self._owns_fetcher and isinstance(self._fetcher, HttpFetcher):
            await self._fetcher.aclose()
            self._fetcher = None

    async def __aenter__(self) -> DocumentExtractionService:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def document_id(source: DocumentSource) -> str:
    """Stable id derived from the document's origin."""

    digest = hashlib.sha256(f"{source.kind.value}:{source.value}".encode()).hexdigest()
    return f"doc-{digest[:16]}"


def rewrite_arxiv_url(url: str) -> str:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host != "arxiv.org" and not host.endswith(".arxiv.org"):
        return url
    match = _ARXIV_ABS_RE.match(parsed.path)
    if not match:
        return url
    return urlunparse(parsed._replace(path=f"/pdf/{match.group('paper')}", query="", fragment=""))


def _read_pages(pdf: PdfDocument, pages: int) -> list[str]:
    return [pdf.page_text(index) for index in range(pages)]


async def _read_file(path: str) -> FileInput:
    try:
        return await asyncio.to_thread(FileInput.from_path, Path(path))
    except OSError as exc:
        raise ExtractionError(
            f"Cannot read file {path!r}: {exc.strerror or exc}",
            reason=ExtractionFailure.FETCH_FAILED,
            source=path,
        ) from exc


def _looks_like_pdf(file: FileInput) -> bool:
    if file.content_type:
        return "pdf" in file.content_type.lower()
    return file.name.lower().endswith(".pdf")


def _megabytes(size: int) -> str:
    return f"{size / (1024 * 1024):.1f}MB" if size % (1024 * 1024) else f"{size // (1024 * 1024)}MB"


def _meta_year(value: str | None) -> int | None:
    if not value:
        return None
    match = _YEAR_PREFIX_RE.match(value.strip())
    return int(match.group(1)) if match else None


def _fetch_error(result: FetchResult, url: str) -> ExtractionError:
    if result.blocked:
        return ExtractionError(
            "URL redirected to a local or private network address",
            reason=ExtractionFailure.PRIVATE_NETWORK,
            source=url,
        )
    if result.status_code == 404:
        return ExtractionError(
            "Document not found (HTTP 404)",
            reason=ExtractionFailure.NOT_FOUND,
            source=url,
        )
    if result.status_code in (401, 403):
        return ExtractionError(
            f"Access restricted (HTTP {result.status_code}); the document may be behind a paywall",
            reason=ExtractionFailure.ACCESS_RESTRICTED,
            source=url,
        )
    return ExtractionError(
        f"Failed to fetch URL: {result.error or f'HTTP {result.status_code}'}",
        reason=ExtractionFailure.FETCH_FAILED,
        source=url,
    )
