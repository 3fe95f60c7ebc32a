"""Character-based document chunking for the retrieval pipeline.

Chunker responsibilities:
- Split document content into segments of at most `chunk_size` characters
- Share `chunk_overlap` characters between consecutive segments so that a
  fact split across a boundary stays findable from either side
- Prefer breaking after a newline, then after other whitespace, inside a
  tolerance window before the limit; hard cut otherwise
- Derive chunk ids from (source, ordinal) so re-chunking is reproducible
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from docindex.config import Config
from docindex.modules.models import Chunk, Document
from docindex.utils import ChunkingError, validate_chunk_size

logger = logging.getLogger(__name__)


def make_chunk_id(source: str, ordinal: int) -> str:
    return f"{source}#{ordinal}"


class Chunker:
    """Splits documents into overlapping, size-bounded chunks. Holds no state between calls."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        boundary_window: Optional[int] = None,
    ) -> None:
        self.chunk_size = int(chunk_size) if chunk_size is not None else int(getattr(Config, "CHUNK_SIZE", 1500))
        self.chunk_overlap = int(chunk_overlap) if chunk_overlap is not None else int(getattr(Config, "CHUNK_OVERLAP", 200))
        self.boundary_window = (
            int(boundary_window) if boundary_window is not None else int(getattr(Config, "CHUNK_BOUNDARY_WINDOW", 300))
        )

        if not validate_chunk_size(self.chunk_size):
            logger.warning("chunk_size %d is outside 100..8000; using 1500", self.chunk_size)
            self.chunk_size = 1500
        # Overlap must be non-negative and at most 25% of chunk_size
        if self.chunk_overlap < 0:
            self.chunk_overlap = 0
        max_overlap = max(0, self.chunk_size // 4)
        if self.chunk_overlap > max_overlap:
            self.chunk_overlap = max_overlap
        # Window stays below 20% of chunk_size so every step advances past the overlap
        self.boundary_window = max(0, min(self.boundary_window, self.chunk_size // 5))

    def chunk(self, document: Document) -> List[Chunk]:
        """Split one document into chunks (embeddings absent).

        Empty content yields no chunks; content no longer than `chunk_size`
        yields a single chunk holding all of it.
        """
        if not isinstance(document, Document):
            raise ChunkingError(f"Expected a Document, got {type(document).__name__}.")
        if not isinstance(document.path, str) or not document.path:
            raise ChunkingError("Document path must be a non-empty string.")
        if not isinstance(document.content, str):
            raise ChunkingError(f"Document content for {document.path} must be a string.")

        text = document.content
        if not text:
            return []

        chunks: List[Chunk] = []
        start = 0
        prev_end = 0
        n = len(text)
        while True:
            end = min(start + self.chunk_size, n)
            if end < n:
                end = self._find_break(text, start, end)
            ordinal = len(chunks)
            chunks.append(
                Chunk(
                    id=make_chunk_id(document.path, ordinal),
                    text=text[start:end],
                    source=document.path,
                    start=start,
                    overlap=(prev_end - start) if ordinal else 0,
                )
            )
            if end >= n:
                break
            prev_end = end
            start = max(end - self.chunk_overlap, start + 1)
        return chunks

    def chunk_documents(self, documents: Iterable[Document]) -> List[Chunk]:
        """Chunk several documents, preserving document order and chunk order."""
        chunks: List[Chunk] = []
        for document in documents:
            chunks.extend(self.chunk(document))
        return chunks

    def _find_break(self, text: str, start: int, end: int) -> int:
        """Return the cut position for a segment starting at `start` and limited to `end`."""
        lower = max(start + 1, end - self.boundary_window)

        newline = text.rfind("\n", lower - 1, end)
        if newline != -1 and newline + 1 >= lower:
            return newline + 1

        for i in range(end - 1, lower - 2, -1):
            if text[i].isspace():
                return i + 1

        return end


def reconstruct(chunks: List[Chunk]) -> str:
    """Rebuild the original content from chunks by dropping each chunk's overlap."""
    return "".join(c.text[c.overlap:] for c in chunks)
