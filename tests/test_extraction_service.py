from __future__ import annotations

import asyncio

import allure
import httpx
import pytest

from research_agents.config import ExtractionSettings
from research_agents.extraction.html_extractor import ParsedMarkup
from research_agents.extraction.models import DocumentSource, FileInput, SourceKind
from research_agents.extraction.service import DocumentExtractionService, PickerCancelled
from research_agents.framework.errors import (
    CapabilityUnsupportedError,
    ExtractionError,
    ExtractionFailure,
)

pytestmark = [
    allure.epic("Document Extraction"),
    allure.feature("Extraction Service"),
]

PAGE_TEXT = (
    "Deep Learning for Crop Monitoring\n"
    "Smith, John and Doe, Jane\n"
    "Published 2022. DOI: 10.1234/crops.2022.\n"
) + "Satellite imagery supports yield estimation across regions. " * 4


class StaticMarkupParser:
    def __init__(self, parsed: ParsedMarkup) -> None:
        self.parsed = parsed

    def parse(self, html: str, *, url: str | None = None) -> ParsedMarkup:
        return self.parsed


class StaticPicker:
    def __init__(self, files: list[FileInput] | None = None, cancel: bool = False) -> None:
        self.files = files or []
        self.cancel = cancel

    async def pick(self, *, multiple: bool = True) -> list[FileInput]:
        if self.cancel:
            raise PickerCancelled
        return self.files


def _extract_error(coro) -> ExtractionError:
    with pytest.raises(ExtractionError) as excinfo:
        asyncio.run(coro)
    return excinfo.value


class TestExtractFromFile:
    def test_oversized_file_is_rejected_with_limit_in_message(self, fake_pdf, pdf_file) -> None:
        extractor = fake_pdf(pages=[PAGE_TEXT])
        service = DocumentExtractionService(pdf_extractor=extractor)

        error = _extract_error(service.extract_from_file(pdf_file(size=11 * 1024 * 1024)))

        assert error.reason is ExtractionFailure.FILE_TOO_LARGE
        assert "10MB" in error.message
        assert error.source == "paper.pdf"
        assert extractor.opened == []

    def test_non_pdf_is_unsupported(self, fake_pdf, pdf_file) -> None:
        service = DocumentExtractionService(pdf_extractor=fake_pdf(pages=[PAGE_TEXT]))

        error = _extract_error(
            service.extract_from_file(
                pdf_file(name="notes.docx", content_type="application/msword"),
            ),
        )

        assert error.reason is ExtractionFailure.UNSUPPORTED_TYPE

    def test_only_first_fifty_pages_are_read(self, fake_pdf, pdf_file) -> None:
        extractor = fake_pdf(pages=[PAGE_TEXT] * 100)
        service = DocumentExtractionService(pdf_extractor=extractor)

        document = asyncio.run(service.extract_from_file(pdf_file()))

        assert extractor.opened[0].calls == list(range(50))
        assert document.page_count == 50

    def test_metadata_parsed_from_text(self, fake_pdf, pdf_file) -> None:
        service = DocumentExtractionService(pdf_extractor=fake_pdf(pages=[PAGE_TEXT]))

        document = asyncio.run(service.extract_from_file(pdf_file()))

        assert document.title == "Deep Learning for Crop Monitoring"
        assert document.doi == "10.1234/crops.2022"
        assert document.year == 2022
        assert document.authors == ["Smith, John", "Doe, Jane"]
        assert document.source == DocumentSource(SourceKind.FILE, "paper.pdf")
        assert document.file_size == 2048

    def test_sparse_text_is_reported_as_image_only(self, fake_pdf, pdf_file) -> None:
        pages = ["x" * 150] + [""] * 9
        service = DocumentExtractionService(pdf_extractor=fake_pdf(pages=pages))

        error = _extract_error(service.extract_from_file(pdf_file()))

        assert error.reason is ExtractionFailure.IMAGE_ONLY

    def test_pdf_capability_errors_propagate(self, fake_pdf, pdf_file) -> None:
        locked = ExtractionError(
            "PDF is password protected",
            reason=ExtractionFailure.PASSWORD_PROTECTED,
        )
        service = DocumentExtractionService(pdf_extractor=fake_pdf(error=locked))

        error = _extract_error(service.extract_from_file(pdf_file(name="locked.pdf")))

        assert error.reason is ExtractionFailure.PASSWORD_PROTECTED
        assert error.source == "locked.pdf"

    def test_garbage_bytes_are_corrupted_with_pypdf(self) -> None:
        service = DocumentExtractionService()
        broken = FileInput(name="broken.pdf", content=b"not a pdf", content_type="application/pdf")

        error = _extract_error(service.extract_from_file(broken))

        assert error.reason is ExtractionFailure.CORRUPTED


class TestExtractFromUrl:
    def test_status_codes_map_to_distinct_reasons(self, mock_fetcher) -> None:
        statuses = {"/missing": 404, "/paywall": 403, "/login": 401, "/broken": 500}
        fetcher = mock_fetcher(lambda request: httpx.Response(statuses[request.url.path]))
        service = DocumentExtractionService(fetcher=fetcher)

        reasons = {
            path: _extract_error(service.extract_from_url(f"https://example.org{path}")).reason
            for path in statuses
        }

        assert reasons == {
            "/missing": ExtractionFailure.NOT_FOUND,
            "/paywall": ExtractionFailure.ACCESS_RESTRICTED,
            "/login": ExtractionFailure.ACCESS_RESTRICTED,
            "/broken": ExtractionFailure.FETCH_FAILED,
        }

    def test_private_url_is_never_fetched(self, mock_fetcher) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        service = DocumentExtractionService(fetcher=mock_fetcher(handler))

        error = _extract_error(service.extract_from_url("http://192.168.0.1/paper"))

        assert error.reason is ExtractionFailure.PRIVATE_NETWORK
        assert requests == []

    def test_redirect_to_private_host_is_refused(self, mock_fetcher) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.host == "example.org":
                return httpx.Response(302, headers={"location": "http://127.0.0.1/admin"})
            return httpx.Response(
                200,
                text="<html><body><p>internal admin secret</p></body></html>",
                headers={"content-type": "text/html"},
            )

        service = DocumentExtractionService(fetcher=mock_fetcher(handler))

        error = _extract_error(service.extract_from_url("https://example.org/paper"))

        assert error.reason is ExtractionFailure.PRIVATE_NETWORK
        assert error.source == "https://example.org/paper"
        assert requested == ["https://example.org/paper"]

    def test_html_meta_tags_take_precedence(self, mock_fetcher, html_page, long_body) -> None:
        html = html_page(
            "Crop Monitoring at Scale",
            long_body,
            authors=("Lee, Ann", "Kim, Bo"),
            doi="10.9999/crop.1",
        )
        fetcher = mock_fetcher(
            lambda request: httpx.Response(200, text=html, headers={"content-type": "text/html"}),
        )
        service = DocumentExtractionService(fetcher=fetcher)

        document = asyncio.run(service.extract_from_url("https://example.org/article"))

        assert document.title == "Crop Monitoring at Scale"
        assert document.authors == ["Lee, Ann", "Kim, Bo"]
        assert document.doi == "10.9999/crop.1"
        assert document.year == 2021
        assert document.source == DocumentSource(SourceKind.URL, "https://example.org/article")
        assert "machine learning" in document.full_text

    def test_title_tag_is_last_resort(self, mock_fetcher) -> None:
        parsed = ParsedMarkup(title="Page Title", text="tiny\n" + "word\n" * 40)
        fetcher = mock_fetcher(lambda request: httpx.Response(200, text="<html></html>"))
        service = DocumentExtractionService(
            fetcher=fetcher,
            markup_parser=StaticMarkupParser(parsed),
        )

        document = asyncio.run(service.extract_from_url("https://example.org/a"))

        assert document.title == "Page Title"

    def test_short_pages_are_insufficient_text(self, mock_fetcher) -> None:
        fetcher = mock_fetcher(lambda request: httpx.Response(200, text="<html></html>"))
        service = DocumentExtractionService(
            fetcher=fetcher,
            markup_parser=StaticMarkupParser(ParsedMarkup(title=None, text="too short")),
        )

        error = _extract_error(service.extract_from_url("https://example.org/a"))

        assert error.reason is ExtractionFailure.INSUFFICIENT_TEXT

    def test_pdf_responses_and_arxiv_links_use_pdf_extraction(self, mock_fetcher, fake_pdf) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(
                200,
                content=b"%PDF-1.7 fake",
                headers={"content-type": "application/pdf"},
            )

        extractor = fake_pdf(pages=[PAGE_TEXT])
        service = DocumentExtractionService(fetcher=mock_fetcher(handler), pdf_extractor=extractor)

        document = asyncio.run(service.extract_from_url("https://arxiv.org/abs/2401.01234"))

        assert requested == ["https://arxiv.org/pdf/2401.01234"]
        assert document.source == DocumentSource(SourceKind.URL, "https://arxiv.org/abs/2401.01234")
        assert document.doi == "10.1234/crops.2022"
        assert len(extractor.opened) == 1

    def test_limits_follow_settings(self, fake_pdf, pdf_file) -> None:
        settings = ExtractionSettings(max_file_bytes=1024)
        service = DocumentExtractionService(settings, pdf_extractor=fake_pdf(pages=[PAGE_TEXT]))

        error = _extract_error(service.extract_from_file(pdf_file(size=2048)))

        assert error.reason is ExtractionFailure.FILE_TOO_LARGE


class TestSelectFiles:
    def test_without_picker_capability_is_unsupported(self) -> None:
        with pytest.raises(CapabilityUnsupportedError):
            asyncio.run(DocumentExtractionService().select_files())

    def test_cancelled_picker_returns_empty_list(self) -> None:
        service = DocumentExtractionService(file_picker=StaticPicker(cancel=True))

        assert asyncio.run(service.select_files()) == []

    def test_non_pdf_selections_are_dropped(self, pdf_file) -> None:
        files = [pdf_file(), pdf_file(name="image.png", content_type="image/png")]
        service = DocumentExtractionService(file_picker=StaticPicker(files))

        selected = asyncio.run(service.select_files())

        assert [file.name for file in selected] == ["paper.pdf"]
