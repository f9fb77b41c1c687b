"""Text extraction with page-marker reconstruction."""

from dataclasses import dataclass
import io
import logging
import re
from typing import Callable, Dict, List, Union

from pdfminer.high_level import extract_text as pdfminer_extract_text
from pdfminer.pdfpage import PDFPage

from docqa.core.errors import PDFExtractionError

logger = logging.getLogger(__name__)

PAGE_MARKER_REGEX = re.compile(r"\[Page (\d+)\]")
PAGE_HEADER_REGEX = re.compile(r"\s*Page (\d+)\s*")
PAGE_NUMBER_LINE_REGEX = re.compile(r"^\s*(\d+)\s*$", re.MULTILINE)
EXCESS_BLANK_LINES_REGEX = re.compile(r"\n\n\n+")

# Synthesis runs when fewer than this share of pages carry a marker
MARKER_COVERAGE_THRESHOLD = 0.5


@dataclass
class ExtractedText:
    text: str
    pages: int


# Maps a mime type or file extension to an extractor
PARSER_REGISTRY: Dict[str, Callable[[Union[bytes, str]], ExtractedText]] = {}


def register_parser(kinds: List[str]):
    """Decorator to register an extractor for mime types or extensions."""
    def decorator(func):
        for kind in kinds:
            PARSER_REGISTRY[kind.lower()] = func
        return func
    return decorator


def extract_text(data: Union[bytes, str], kind: str) -> ExtractedText:
    """Extract text using the extractor registered for ``kind``.

    Args:
        data: File bytes, or the raw string for text-mode uploads
        kind: Mime type or file extension

    Returns:
        ExtractedText with page markers in place
    """
    parser = PARSER_REGISTRY.get(kind.lower())
    if parser is None:
        raise PDFExtractionError(f"Unsupported document type: {kind}", context={"kind": kind})
    return parser(data)


def count_page_markers(text: str) -> int:
    return len(PAGE_MARKER_REGEX.findall(text))


def clean_pdf_text(text: str) -> str:
    """Turn page headers and bare page-number lines into markers and tidy whitespace."""
    cleaned = PAGE_HEADER_REGEX.sub(lambda m: f"\n[Page {m.group(1)}]\n", text)
    cleaned = PAGE_NUMBER_LINE_REGEX.sub(lambda m: f"[Page {m.group(1)}]", cleaned)
    cleaned = EXCESS_BLANK_LINES_REGEX.sub("\n\n", cleaned)
    lines = (line.strip() for line in cleaned.split("\n"))
    return "\n".join(line for line in lines if line)


def synthesize_page_markers(text: str, pages: int) -> str:
    """Split text into ``pages`` equal character slices, each opened by a marker.

    The last slice absorbs the remainder of the integer division so that no
    text is dropped.
    """
    pages = max(1, pages)
    total = len(text)
    per_page = total // pages

    parts = ["[Page 1]\n"]
    position = 0
    for page in range(1, pages + 1):
        end = total if page == pages else position + per_page
        parts.append(text[position:end])
        position = end
        if page < pages:
            parts.append(f"\n\n[Page {page + 1}]\n")
    return "".join(parts)


def ensure_page_markers(raw_text: str, pages: int) -> str:
    """Return text with page markers, synthesizing them when too few exist."""
    found = count_page_markers(raw_text)
    if found >= pages * MARKER_COVERAGE_THRESHOLD:
        logger.info(f"Found {found} page markers for {pages} pages, keeping extracted text")
        return raw_text

    cleaned = clean_pdf_text(raw_text)
    logger.info(
        f"Found {found} page markers for {pages} pages, synthesizing markers "
        f"over {len(cleaned)} characters"
    )
    return synthesize_page_markers(cleaned, pages)


@register_parser(["application/pdf", ".pdf", "pdf"])
def parse_pdf(data: Union[bytes, str]) -> ExtractedText:
    """Extract text and page count from PDF bytes with pdfminer.

    Args:
        data: The PDF file content

    Returns:
        ExtractedText with one marker per page
    """
    if isinstance(data, str):
        raise PDFExtractionError("PDF extraction needs the raw file bytes")

    try:
        pages = sum(1 for _ in PDFPage.get_pages(io.BytesIO(data)))
        raw_text = pdfminer_extract_text(io.BytesIO(data))
    except Exception as e:
        logger.error(f"Error parsing PDF: {e}")
        raise PDFExtractionError(f"Failed to extract text from PDF: {e}", context={"bytes": len(data)}) from e

    if pages < 1:
        raise PDFExtractionError("PDF has no pages")

    text = ensure_page_markers(raw_text, pages)
    if not PAGE_MARKER_REGEX.sub("", text).strip():
        raise PDFExtractionError("No text could be extracted from the PDF", context={"pages": pages})

    return ExtractedText(text=text, pages=pages)


@register_parser(["text/plain", ".txt", "text"])
def parse_text(data: Union[bytes, str]) -> ExtractedText:
    """Accept raw text as a single page without marker synthesis."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    if not text.strip():
        raise PDFExtractionError("Text upload is empty")
    return ExtractedText(text=text, pages=1)
