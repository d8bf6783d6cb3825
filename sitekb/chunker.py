"""Split page text into overlapping chunks."""

from __future__ import annotations

from typing import List, Tuple

from .schemas import Chunk, PageContent

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50


def _find_end(text: str, end: int, floor: int) -> int:
    """Move end back to just before whitespace, not below floor."""
    if end >= len(text) or text[end].isspace() or text[end - 1].isspace():
        return end
    for position in range(end - 1, floor, -1):
        if text[position].isspace():
            return position
    return end


def _find_start(text: str, start: int, end: int) -> int:
    """Move start forward to just after whitespace, not past end."""
    if start == 0 or text[start - 1].isspace():
        return start
    for position in range(start, end):
        if text[position].isspace():
            return position + 1
    return start


def split_spans(text: str, size: int, overlap: int) -> List[Tuple[int, int]]:
    """
    Split text into [start, end) windows of at most size characters.

    Consecutive windows overlap by up to `overlap` characters and never
    leave a gap, so every character belongs to at least one window.
    Boundaries prefer whitespace so words are not cut in half.
    """
    if size <= 0:
        raise ValueError("size must be positive")
    if overlap < 0 or overlap >= size:
        raise ValueError("overlap must be >= 0 and smaller than size")

    length = len(text)
    if length == 0:
        return []
    if length <= size:
        return [(0, length)]

    spans: List[Tuple[int, int]] = []
    start = 0
    while start < length:
        end = min(length, start + size)
        if end < length:
            end = _find_end(text, end, floor=start + max(overlap, size // 2))
        spans.append((start, end))
        if end >= length:
            break
        start = _find_start(text, end - overlap, end)
    return spans


class Chunker:
    """Fixed-size window chunker with overlap."""

    def __init__(self, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> None:
        if size <= 0:
            raise ValueError("size must be positive")
        if overlap < 0 or overlap >= size:
            raise ValueError("overlap must be >= 0 and smaller than size")
        self.size = size
        self.overlap = overlap

    def chunk_page(self, page_hash: str, page: PageContent, start_id: int = 0) -> List[Chunk]:
        """Chunk one page; ids count up from start_id."""
        text = page.text
        chunks: List[Chunk] = []
        for start, end in split_spans(text, self.size, self.overlap):
            piece = text[start:end]
            stripped = piece.strip()
            if not stripped:
                continue
            lead = len(piece) - len(piece.lstrip())
            chunks.append(
                Chunk(
                    id=start_id + len(chunks),
                    page_hash=page_hash,
                    page_url=page.url,
                    page_title=page.title or page.url,
                    text=stripped,
                    start_idx=start + lead,
                    end_idx=start + lead + len(stripped),
                )
            )
        return chunks
