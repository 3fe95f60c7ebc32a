"""Data model shared by the chunker, orchestrator, vector store and retriever."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Document:
    """A source unit supplied by a fetcher: file, web page, transcript."""

    path: str
    content: str


@dataclass
class Chunk:
    """A bounded-size segment of a document, the unit of embedding and retrieval.

    `start` is the offset of the segment in the document content and `overlap`
    the number of leading characters shared with the previous segment.
    """

    id: str
    text: str
    source: str
    embedding: Optional[List[float]] = None
    start: int = 0
    overlap: int = 0

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0


@dataclass(frozen=True)
class RetrievalResult:
    id: str
    text: str
    source: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "source": self.source, "score": self.score}


@dataclass
class IndexingReport:
    """Summary of one `add_documents` run."""

    documents: int = 0
    total_chunks: int = 0
    batches_total: int = 0
    batches_committed: int = 0
    chunks_committed: int = 0
    failed_chunk_ids: List[str] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents": self.documents,
            "total_chunks": self.total_chunks,
            "batches_total": self.batches_total,
            "batches_committed": self.batches_committed,
            "chunks_committed": self.chunks_committed,
            "failed_chunk_ids": list(self.failed_chunk_ids),
            "cancelled": self.cancelled,
        }
