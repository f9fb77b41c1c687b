"""Tests for text extraction and page-marker reconstruction."""

from unittest.mock import patch

import pytest

from docqa.core.errors import PDFExtractionError
from docqa.services.ingestion.extraction import (
    PAGE_MARKER_REGEX,
    clean_pdf_text,
    count_page_markers,
    ensure_page_markers,
    extract_text,
    parse_pdf,
    synthesize_page_markers,
)


def test_clean_pdf_text_turns_headers_and_number_lines_into_markers():
    raw = "Page 1\nIntroduction text\n\n\n\n42\nMore text   \n   \nPage 2 Dosing"

    cleaned = clean_pdf_text(raw)

    assert "[Page 1]" in cleaned
    assert "[Page 42]" in cleaned
    assert "[Page 2]" in cleaned
    assert "\n\n" not in cleaned
    assert all(line == line.strip() and line for line in cleaned.split("\n"))


def test_synthesize_page_markers_splits_evenly_and_keeps_remainder():
    text = "a" * 10 + "b" * 10 + "c" * 11

    result = synthesize_page_markers(text, 3)

    assert result.startswith("[Page 1]\n")
    assert [int(p) for p in PAGE_MARKER_REGEX.findall(result)] == [1, 2, 3]
    assert PAGE_MARKER_REGEX.sub("", result).replace("\n", "") == text
    assert result.endswith("c" * 11)


def test_synthesize_page_markers_single_page():
    assert synthesize_page_markers("hello", 1) == "[Page 1]\nhello"


def test_ensure_page_markers_keeps_text_with_enough_markers():
    text = "[Page 1]\nfirst\n[Page 2]\nsecond"

    assert ensure_page_markers(text, 3) == text


def test_ensure_page_markers_synthesizes_when_markers_missing():
    text = "word " * 300

    result = ensure_page_markers(text, 3)

    assert count_page_markers(result) == 3


def test_extract_text_rejects_unknown_kind():
    with pytest.raises(PDFExtractionError):
        extract_text(b"data", "application/msword")


def test_extract_text_plain_text_is_one_page():
    extracted = extract_text("Some uploaded notes", "text")

    assert extracted.pages == 1
    assert extracted.text == "Some uploaded notes"


def test_extract_text_rejects_empty_text():
    with pytest.raises(PDFExtractionError):
        extract_text("   \n ", "text/plain")


def test_parse_pdf_synthesizes_markers_for_three_pages():
    body = "The recommended dose is 5 mg daily. " * 60
    with patch("docqa.services.ingestion.extraction.PDFPage.get_pages", return_value=iter([1, 2, 3])), \
            patch("docqa.services.ingestion.extraction.pdfminer_extract_text", return_value=body):
        extracted = parse_pdf(b"%PDF-1.4 fake")

    assert extracted.pages == 3
    assert [int(p) for p in PAGE_MARKER_REGEX.findall(extracted.text)] == [1, 2, 3]


def test_parse_pdf_wraps_parser_errors():
    with patch("docqa.services.ingestion.extraction.PDFPage.get_pages", side_effect=ValueError("broken xref")):
        with pytest.raises(PDFExtractionError) as exc_info:
            parse_pdf(b"not a pdf")

    assert "broken xref" in exc_info.value.message
    assert exc_info.value.stage == "extract"
    assert exc_info.value.retryable is False


def test_parse_pdf_without_text_fails():
    with patch("docqa.services.ingestion.extraction.PDFPage.get_pages", return_value=iter([1, 2])), \
            patch("docqa.services.ingestion.extraction.pdfminer_extract_text", return_value="  \n\n "):
        with pytest.raises(PDFExtractionError):
            parse_pdf(b"%PDF-1.4 scanned")


def test_parse_pdf_requires_bytes():
    with pytest.raises(PDFExtractionError):
        parse_pdf("text instead of bytes")
