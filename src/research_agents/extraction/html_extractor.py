"""HTML to clean text and citation metadata using trafilatura and BeautifulSoup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import trafilatura
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Common academic publisher containers, most specific first.
_CONTENT_SELECTORS: tuple[str, ...] = (
    "article",
    ".article-content",
    ".paper-content",
    "#main-content",
    "#content",
    '[role="main"]',
    ".abstract",
    ".full-text",
    "main",
)

_EXTRACTION_PASSES: tuple[dict[str, bool], ...] = (
    {"favor_precision": True, "deduplicate": True},
    {"favor_recall": True},
)


@dataclass(slots=True)
class ExtractionResult:
    """Result of HTML text extraction."""

    text: str
    is_success: bool
    error: str | None = None


@dataclass(slots=True)
class ParsedMarkup:
    """Structured view of one HTML page."""

    title: str | None
    text: str
    meta: dict[str, list[str]] = field(default_factory=dict)

    def first_meta(self, name: str) -> str | None:
        values = self.meta.get(name.lower())
        return values[0] if values else None

    def all_meta(self, name: str) -> list[str]:
        return list(self.meta.get(name.lower(), []))


class MarkupParser(Protocol):
    """Raw markup in, title/body/metadata out."""

    def parse(self, html: str, *, url: str | None = None) -> ParsedMarkup: ...


def extract_text(html: str, *, url: str | None = None, min_chars: int = 1) -> ExtractionResult:
    """Article text via trafilatura, tables kept and links dropped.

    A precision pass runs first; the recall pass runs only while the best text
    so far is shorter than ``min_chars``. The longer of the two texts wins.
    """

    if not html or not html.strip():
        return ExtractionResult(text="", is_success=False, error="empty HTML input")

    best = ""
    for mode in _EXTRACTION_PASSES:
        try:
            text = trafilatura.extract(
                html,
                url=url,
                include_tables=True,
                include_links=False,
                **mode,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("trafilatura pass %s failed for %s: %s", mode, url or "<unknown>", exc)
            continue
        if text and len(text) > len(best):
            best = text
        if len(best) >= min_chars:
            break

    if not best:
        return ExtractionResult(text="", is_success=False, error="no content extracted")
    return ExtractionResult(text=best, is_success=True)


class TrafilaturaMarkupParser:
    """Default ``MarkupParser``: trafilatura body text, BeautifulSoup meta tags.

    When trafilatura yields less than ``min_chars`` the text of the first
    sufficiently long publisher container (or the whole body) is used instead.
    """

    def __init__(self, *, min_chars: int = 100) -> None:
        self._min_chars = min_chars

    def parse(self, html: str, *, url: str | None = None) -> ParsedMarkup:
        soup = BeautifulSoup(html or "", "html.parser")
        meta = _collect_meta(soup)
        title = soup.title.get_text(strip=True) if soup.title else None

        extracted = extract_text(html, url=url, min_chars=self._min_chars)
        text = extracted.text if extracted.is_success else ""
        if len(text) < self._min_chars:
            fallback = _text_from_containers(soup, self._min_chars)
            if len(fallback) > len(text):
                logger.debug("Using container text fallback for %s", url or "<unknown>")
                text = fallback
        return ParsedMarkup(title=title or None, text=text, meta=meta)


def _collect_meta(soup: BeautifulSoup) -> dict[str, list[str]]:
    meta: dict[str, list[str]] = {}
    for tag in soup.find_all("meta"):
        name = tag.get("name") or tag.get("property")
        content = tag.get("content")
        if not name or not content:
            continue
        meta.setdefault(str(name).strip().lower(), []).append(str(content).strip())
    return meta


def _text_from_containers(soup: BeautifulSoup, min_chars: int) -> str:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    for selector in _CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text("\n", strip=True)
        if len(text) > min_chars:
            return text
    body = soup.body or soup
    return body.get_text("\n", strip=True)
