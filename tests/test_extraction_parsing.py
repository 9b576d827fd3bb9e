from __future__ import annotations

import allure
import pytest

from research_agents.extraction.citation import clean_text, extract_abstract, parse_citation
from research_agents.extraction.service import rewrite_arxiv_url
from research_agents.extraction.url_guard import validate_url
from research_agents.framework.errors import ExtractionError, ExtractionFailure

pytestmark = [
    allure.epic("Document Extraction"),
    allure.feature("Citation & URL Parsing"),
]


class TestParseCitation:
    def test_doi_trailing_punctuation_is_stripped(self) -> None:
        citation = parse_citation("Published work.\nDOI: 10.1234/example.")

        assert citation.doi == "10.1234/example"

    def test_doi_with_comma_and_semicolon(self) -> None:
        assert parse_citation("see 10.5555/abc.def;").doi == "10.5555/abc.def"
        assert parse_citation("see 10.5555/xyz, also").doi == "10.5555/xyz"

    def test_first_plausible_year(self) -> None:
        assert parse_citation("Volume 12, pages 1-10, published 2019 and revised 2021").year == 2019
        assert parse_citation("Version 3100 of nothing").year is None

    def test_title_is_first_reasonable_line(self) -> None:
        text = "\n".join(
            [
                "Short",
                "https://example.com/a-very-long-url-that-is-not-a-title",
                "Deep Learning for Crop Monitoring",
                "Smith, John",
            ],
        )

        assert parse_citation(text).title == "Deep Learning for Crop Monitoring"

    def test_authors_capped_at_five(self) -> None:
        text = (
            "Smith, John; Doe, Jane; Brown, Alice; Green, Bob; "
            "White, Carol; Black, David; Gray, Erin"
        )

        authors = parse_citation(text).authors

        assert authors == ["Smith, John", "Doe, Jane", "Brown, Alice", "Green, Bob", "White, Carol"]

    def test_never_raises_on_empty_or_odd_input(self) -> None:
        empty = parse_citation("")

        assert empty.title is None
        assert empty.authors == []
        assert empty.doi is None
        assert empty.year is None
        assert parse_citation(None).authors == []  # type: ignore[arg-type]


class TestTextHelpers:
    def test_clean_text_collapses_spaces_and_blank_lines(self) -> None:
        assert clean_text("a   b\t c\r\n\r\n\r\n\r\nd  \n") == "a b c\n\nd"

    def test_abstract_section_is_found(self) -> None:
        body = "We study things. " * 10
        text = f"Title\n\nAbstract: {body}\n\nIntroduction\nMore text."

        assert extract_abstract(text) == body.strip()

    def test_abstract_falls_back_to_prefix_for_long_text(self) -> None:
        text = "x" * 600

        assert extract_abstract(text) == "x" * 500 + "..."
        assert extract_abstract("short text") is None


class TestValidateUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost/paper",
            "http://127.0.0.1/paper",
            "http://10.0.0.5/paper",
            "http://172.16.1.1/paper",
            "http://192.168.1.10/paper",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/paper",
            "http://0.0.0.0/",
            "http://printer.local/doc",
            "http://wiki.corp.internal/page",
            "http://127.1/",
            "http://2130706433/",
            "http://0x7f000001/",
            "http://0177.0.0.1/",
            "http://0xa.0.0.1/paper",
        ],
    )
    def test_private_hosts_rejected(self, url: str) -> None:
        with pytest.raises(ExtractionError) as excinfo:
            validate_url(url)
        assert excinfo.value.reason is ExtractionFailure.PRIVATE_NETWORK
        assert excinfo.value.code == "private_network"

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/file.pdf", "https://", ""])
    def test_malformed_urls_rejected(self, url: str) -> None:
        with pytest.raises(ExtractionError) as excinfo:
            validate_url(url)
        assert excinfo.value.reason is ExtractionFailure.INVALID_URL

    def test_public_url_accepted(self) -> None:
        assert validate_url(" https://example.org/paper ") == "https://example.org/paper"

    @pytest.mark.parametrize("url", ["http://134744072/", "http://8.8.8.8/", "http://cafe.de/"])
    def test_public_numeric_and_hex_like_hosts_accepted(self, url: str) -> None:
        assert validate_url(url) == url


def test_arxiv_abstract_links_point_to_pdf() -> None:
    assert rewrite_arxiv_url("https://arxiv.org/abs/2401.01234v2") == (
        "https://arxiv.org/pdf/2401.01234v2"
    )
    assert rewrite_arxiv_url("https://example.org/abs/1") == "https://example.org/abs/1"
