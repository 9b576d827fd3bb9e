"""Document ingestion: PDF files and web pages to text plus citation metadata."""

from research_agents.extraction.citation import clean_text, extract_abstract, parse_citation
from research_agents.extraction.fetcher import FetchResult, HttpFetcher
from research_agents.extraction.html_extractor import (
    MarkupParser,
    ParsedMarkup,
    TrafilaturaMarkupParser,
)
from research_agents.extraction.models import (
    CitationMetadata,
    Document,
    DocumentSource,
    FileInput,
    SourceKind,
)
from research_agents.extraction.pdf import PdfDocument, PdfTextExtractor, PypdfTextExtractor
from research_agents.extraction.service import (
    DocumentExtractionService,
    FilePicker,
    PickerCancelled,
    UrlFetcher,
    document_id,
    rewrite_arxiv_url,
)
from research_agents.extraction.url_guard import is_private_host, validate_url

__all__ = [
    "CitationMetadata",
    "Document",
    "DocumentExtractionService",
    "DocumentSource",
    "FetchResult",
    "FileInput",
    "FilePicker",
    "HttpFetcher",
    "MarkupParser",
    "ParsedMarkup",
    "PdfDocument",
    "PdfTextExtractor",
    "PickerCancelled",
    "PypdfTextExtractor",
    "SourceKind",
    "TrafilaturaMarkupParser",
    "UrlFetcher",
    "clean_text",
    "document_id",
    "extract_abstract",
    "is_private_host",
    "parse_citation",
    "rewrite_arxiv_url",
    "validate_url",
]
