"""Heuristic bibliographic parsing of extracted document text."""

from __future__ import annotations

import re

from research_agents.extraction.models import CitationMetadata

MAX_AUTHORS = 5
_TITLE_SCAN_LINES = 10

_DOI_RE = re.compile(r"\b10\.\d{4,9}/\S+")
_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
# "Last, First" only; "First Last" matches too much running prose.
_AUTHOR_RE = re.compile(r"\b([A-Z][a-z]+(?:-[A-Z][a-z]+)?,\s+[A-Z][a-z]+)\b")
_ABSTRACT_RE = re.compile(
    r"Abstract[:\s]+([\s\S]{100,1000}?)(?:\n\n|Introduction|1\.\s|Keywords)",
    re.IGNORECASE,
)
_INLINE_SPACE_RE = re.compile(r"[ \t\f\v ]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def clean_text(text: str) -> str:
    """Normalize line endings and collapse runs of blanks, keeping line structure."""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def parse_citation(text: str) -> CitationMetadata:
    """Extract DOI, year, title candidate and up to five authors.

    Never raises; fields that cannot be found stay empty.
    """

    citation = CitationMetadata()
    if not isinstance(text, str) or not text.strip():
        return citation

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    for line in lines[:_TITLE_SCAN_LINES]:
        if 10 < len(line) < 200 and "http" not in line:
            citation.title = line
            break

    doi_match = _DOI_RE.search(text)
    if doi_match:
        citation.doi = doi_match.group(0).rstrip(".,;:") or None

    year_match = _YEAR_RE.search(text)
    if year_match:
        citation.year = int(year_match.group(0))

    authors: list[str] = []
    for match in _AUTHOR_RE.finditer(text):
        name = " ".join(match.group(1).split())
        if name not in authors:
            authors.append(name)
        if len(authors) == MAX_AUTHORS:
            break
    citation.authors = authors
    return citation


def extract_abstract(text: str) -> str | None:
    """Return the "Abstract" section, or the first 500 characters of long texts."""

    match = _ABSTRACT_RE.search(text)
    if match:
        return match.group(1).strip()
    if len(text) > 500:
        return text[:500].rstrip() + "..."
    return None
