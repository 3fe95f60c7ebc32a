"""Session-scoped facade over the retrieval engine.

RagService owns one chunker, embedding client, vector store, orchestrator and
retriever. Components are injected or built from Config; nothing is global, so
a caller controls the index lifecycle (create, clear, discard).
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from docindex.modules.chunker import Chunker
from docindex.modules.embeddings import EmbeddingClient, create_embedding_client
from docindex.modules.models import Document, IndexingReport, RetrievalResult
from docindex.modules.orchestrator import BatchOrchestrator, ProgressCallback
from docindex.modules.retriever import Retriever, format_context
from docindex.modules.vector_store import VectorStore

DocumentLike = Union[Document, Mapping[str, str]]


def to_document(item: DocumentLike) -> Document:
    if isinstance(item, Document):
        return item
    return Document(path=item["path"], content=item.get("content", ""))


class RagService:
    def __init__(
        self,
        embedding_client: Optional[EmbeddingClient] = None,
        store: Optional[VectorStore] = None,
        chunker: Optional[Chunker] = None,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        top_k: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self.embedding_client = embedding_client or create_embedding_client()
        self.store = store or VectorStore()
        self.chunker = chunker or Chunker()
        self.orchestrator = BatchOrchestrator(
            self.chunker,
            self.embedding_client,
            self.store,
            batch_size=batch_size,
            max_concurrency=max_concurrency,
            retry_delay=retry_delay,
        )
        self.retriever = Retriever(self.embedding_client, self.store, top_k=top_k, retry_delay=retry_delay)

    def add_documents(
        self,
        documents: Iterable[DocumentLike],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingReport:
        return self.orchestrator.add_documents([to_document(d) for d in documents], on_progress, cancel_event)

    def retrieve(self, query_text: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        return self.retriever.retrieve(query_text, top_k=top_k)

    def clear(self) -> None:
        self.orchestrator.clear()

    @staticmethod
    def format_context(results: List[RetrievalResult]) -> str:
        return format_context(results)

    def get_stats(self) -> Dict[str, Any]:
        """Return index statistics and engine configuration."""
        stats = self.store.get_stats()
        stats.update({
            "embedding": self.embedding_client.describe(),
            "chunk_size": self.chunker.chunk_size,
            "chunk_overlap": self.chunker.chunk_overlap,
            "batch_size": self.orchestrator.batch_size,
            "max_concurrency": self.orchestrator.max_concurrency,
            "top_k": self.retriever.top_k,
            "embedding_provider": self.embedding_client.name,
        })
        return stats
