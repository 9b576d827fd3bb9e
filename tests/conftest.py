"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from research_agents.config import CacheSettings, Settings
from research_agents.extraction.fetcher import HttpFetcher
from research_agents.extraction.models import FileInput


class FakePdfDocument:
    """Pages held in memory; records which pages were read."""

    def __init__(self, pages: list[str]) -> None:
        self.pages = pages
        self.calls: list[int] = []

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_text(self, index: int) -> str:
        self.calls.append(index)
        return self.pages[index]


class FakePdfExtractor:
    def __init__(self, pages: list[str] | None = None, error: Exception | None = None) -> None:
        self.pages = pages or []
        self.error = error
        self.opened: list[FakePdfDocument] = []

    def open(self, data: bytes) -> FakePdfDocument:
        if self.error is not None:
            raise self.error
        document = FakePdfDocument(self.pages)
        self.opened.append(document)
        return document


def article_html(
    title: str,
    body: str,
    *,
    authors: tuple[str, ...] = ("Smith, John",),
    date: str | None = "2021/05/01",
    doi: str | None = None,
) -> str:
    meta = [f'<meta name="citation_title" content="{title}">']
    meta += [f'<meta name="citation_author" content="{author}">' for author in authors]
    if date:
        meta.append(f'<meta name="citation_publication_date" content="{date}">')
    if doi:
        meta.append(f'<meta name="citation_doi" content="{doi}">')
    paragraphs = "".join(f"<p>{body}</p>" for _ in range(3))
    return (
        f"<html><head><title>{title} | Example Journal</title>{''.join(meta)}</head>"
        f"<body><nav>Home</nav><article><h1>{title}</h1>{paragraphs}</article></body></html>"
    )


LONG_BODY = (
    "Remote sensing pipelines increasingly rely on machine learning to classify land cover. "
    "We report a survey of practitioners and a regression analysis of accuracy against "
    "training set size, and compare crop monitoring results across three regions. "
    "Accuracy improved steadily as labelled imagery grew, while annotation cost remained "
    "the dominant constraint for crop monitoring programmes."
)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(cache=CacheSettings(db_path=tmp_path / "cache.db"))


@pytest.fixture()
def pdf_file() -> Callable[..., FileInput]:
    def _build(
        name: str = "paper.pdf",
        size: int = 2048,
        content_type: str = "application/pdf",
    ) -> FileInput:
        content = b"%PDF-1.4\n" + b"0" * max(0, size - 9)
        return FileInput(name=name, content=content, content_type=content_type)

    return _build


@pytest.fixture()
def mock_fetcher() -> Callable[[Callable[[httpx.Request], httpx.Response]], HttpFetcher]:
    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> HttpFetcher:
        return HttpFetcher(transport=httpx.MockTransport(handler))

    return _build


@pytest.fixture()
def fake_pdf() -> type[FakePdfExtractor]:
    return FakePdfExtractor


@pytest.fixture()
def html_page() -> Callable[..., str]:
    return article_html


@pytest.fixture()
def long_body() -> str:
    return LONG_BODY
