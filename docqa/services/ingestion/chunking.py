"""Utilities for chunking documents into overlapping, page-attributed pieces."""

import bisect
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List

from docqa.services.ingestion.extraction import PAGE_MARKER_REGEX

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_CHUNK_SIZE = 500  # tokens
DEFAULT_CHUNK_OVERLAP = 100  # tokens
CHARS_PER_TOKEN = 4


@dataclass
class Chunk:
    """A chunk descriptor produced by the chunker."""

    index: int
    content: str
    char_start: int
    char_end: int
    page_number: int
    page_markers_found: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def storage_metadata(self) -> Dict[str, Any]:
        """Positional metadata persisted with the chunk row."""
        return {
            "char_start": self.char_start,
            "char_end": self.char_end,
            "tokens_approx": round(len(self.content) / CHARS_PER_TOKEN),
            "page_number": self.page_number,
            "page_markers_found": self.page_markers_found,
        }


class DocumentChunker:
    """Class for chunking documents into smaller pieces."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        chars_per_token: int = CHARS_PER_TOKEN,
    ):
        """Initialize the document chunker.

        Args:
            chunk_size: Size of chunks in tokens
            chunk_overlap: Overlap between adjacent chunks in tokens
            chars_per_token: Characters per token approximation
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be non-negative and smaller than chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.chars_per_token = chars_per_token

    @property
    def chunk_chars(self) -> int:
        return self.chunk_size * self.chars_per_token

    @property
    def overlap_chars(self) -> int:
        return self.chunk_overlap * self.chars_per_token

    @property
    def step_chars(self) -> int:
        return self.chunk_chars - self.overlap_chars

    @staticmethod
    def find_page_markers(text: str) -> List[tuple[int, int]]:
        """Return (position, page_number) for every page marker, sorted by position."""
        return sorted((m.start(), int(m.group(1))) for m in PAGE_MARKER_REGEX.finditer(text))

    @staticmethod
    def page_for_position(markers: List[tuple[int, int]], positions: List[int], position: float, total_pages: int) -> int:
        """Page of the last marker at or before ``position``, clamped to [1, total_pages]."""
        idx = bisect.bisect_right(positions, position) - 1
        page = markers[idx][1] if idx >= 0 else 1
        return min(max(page, 1), max(total_pages, 1))

    def chunk_text(self, text: str, total_pages: int = 1) -> List[Chunk]:
        """Split text into overlapping chunks with page attribution.

        Each chunk is attributed to the page containing its character midpoint.

        Args:
            text: Text with [Page N] markers
            total_pages: Page count used to clamp attributed pages

        Returns:
            Chunks with contiguous zero-based indices
        """
        chunks: List[Chunk] = []
        if not text:
            return chunks

        markers = self.find_page_markers(text)
        positions = [pos for pos, _ in markers]
        text_length = len(text)
        start = 0

        while start < text_length:
            end = min(start + self.chunk_chars, text_length)
            window = text[start:end]

            if window.strip():
                center = start + (end - start) / 2
                chunks.append(
                    Chunk(
                        index=len(chunks),
                        content=window.strip(),
                        char_start=start,
                        char_end=end,
                        page_number=self.page_for_position(markers, positions, center, total_pages),
                        page_markers_found=len(markers),
                    )
                )

            start += self.step_chars

        logger.info(
            f"Split {text_length} characters into {len(chunks)} chunks "
            f"({len(markers)} page markers, {total_pages} pages)"
        )
        return chunks
