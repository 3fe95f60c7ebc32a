"""
Retrieval engine modules.

This package contains the core indexing and retrieval modules:
- chunker: overlapping, size-bounded document segmentation
- embeddings: embedding adapters and retry policy
- vector_store: in-memory cosine-similarity index
- orchestrator: batched, bounded-concurrency embedding and commits
- retriever: query embedding and top-k ranking
- rag_service: session facade wiring the above together

Usage:
    from docindex.modules import RagService
    service = RagService()
    service.add_documents([{"path": "README.md", "content": "..."}], print)
    results = service.retrieve("How do I install it?")
"""

from .models import Chunk, Document, IndexingReport, RetrievalResult
from .chunker import Chunker
from .embeddings import (
    EmbeddingClient,
    HashEmbeddingClient,
    OpenAIEmbeddingClient,
    SentenceTransformerEmbeddingClient,
    create_embedding_client,
)
from .vector_store import VectorStore
from .orchestrator import BatchOrchestrator
from .retriever import Retriever, format_context
from .rag_service import RagService

__all__ = [
    'Chunk',
    'Document',
    'IndexingReport',
    'RetrievalResult',
    'Chunker',
    'EmbeddingClient',
    'HashEmbeddingClient',
    'OpenAIEmbeddingClient',
    'SentenceTransformerEmbeddingClient',
    'create_embedding_client',
    'VectorStore',
    'BatchOrchestrator',
    'Retriever',
    'format_context',
    'RagService',
]

__version__ = '1.0.0'
