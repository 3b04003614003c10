"""Word-window text segmentation with estimated page attribution.

Page numbers are interpolated linearly from the word offset of each chunk,
so documents with uneven page density get approximate citations.
"""
import math
from typing import List
from dataclasses import dataclass
import structlog

from studymate import config
from studymate.errors import ValidationError

logger = structlog.get_logger()


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    text: str
    start_offset: int
    end_offset: int
    estimated_page: int
    chunk_index: int


def estimate_page(start_offset: int, total_words: int, total_pages: int) -> int:
    """Estimate the page a word offset falls on.

    Args:
        start_offset: Word offset of the chunk start
        total_words: Number of words in the document
        total_pages: Number of pages in the document

    Returns:
        1-based page number, never below 1
    """
    if total_words <= 0 or total_pages <= 0:
        return 1
    page = math.ceil((start_offset / total_words) * total_pages)
    return max(1, page)


class TextSegmenter:
    """Sliding word-window segmenter with overlap support."""

    def __init__(
        self,
        window_words: int = None,
        overlap_words: int = None,
    ):
        """Initialize the segmenter.

        Args:
            window_words: Words per chunk (default from config)
            overlap_words: Words shared by consecutive chunks (default from config)
        """
        self.window_words = window_words if window_words is not None else config.CHUNK_WORDS
        self.overlap_words = (
            overlap_words if overlap_words is not None else config.CHUNK_OVERLAP_WORDS
        )

        if self.window_words < 1:
            raise ValueError(f"Window ({self.window_words}) must be at least 1 word")

        if self.overlap_words < 0 or self.overlap_words >= self.window_words:
            raise ValueError(
                f"Overlap ({self.overlap_words}) must be non-negative and less than "
                f"window size ({self.window_words})"
            )

        logger.info(
            "segmenter_initialized",
            window_words=self.window_words,
            overlap_words=self.overlap_words,
        )

    @property
    def hop(self) -> int:
        return self.window_words - self.overlap_words

    def segment(self, text: str, total_pages: int) -> List[TextChunk]:
        """Split text into overlapping word windows.

        Args:
            text: Extracted document text
            total_pages: Page count of the source document

        Returns:
            List of TextChunk objects, chunk_index starting at 1

        Raises:
            ValidationError: If total_pages is negative
        """
        if total_pages < 0:
            raise ValidationError(f"Page count must be >= 0, got {total_pages}")

        words = text.split() if text else []
        total_words = len(words)

        if total_words == 0:
            return []

        chunks = []
        for start in range(0, total_words, self.hop):
            end = min(start + self.window_words, total_words)
            chunk_text = " ".join(words[start:end]).strip()
            if not chunk_text:
                continue

            chunks.append(
                TextChunk(
                    text=chunk_text,
                    start_offset=start,
                    end_offset=end,
                    estimated_page=estimate_page(start, total_words, total_pages),
                    chunk_index=len(chunks) + 1,
                )
            )

        logger.info(
            "text_segmented",
            word_count=total_words,
            total_pages=total_pages,
            chunk_count=len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_words": 0,
                "avg_chunk_words": 0,
                "min_chunk_words": 0,
                "max_chunk_words": 0,
            }

        chunk_sizes = [c.end_offset - c.start_offset for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_words": chunks[-1].end_offset,
            "avg_chunk_words": sum(chunk_sizes) // len(chunks),
            "min_chunk_words": min(chunk_sizes),
            "max_chunk_words": max(chunk_sizes),
            "overlap": self.overlap_words,
        }
