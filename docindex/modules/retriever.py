"""Query path: embed a question and rank stored chunks against it."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

import numpy as np

from docindex.config import Config
from docindex.modules.embeddings import EmbeddingClient, embed_with_retry, to_vector
from docindex.modules.models import RetrievalResult
from docindex.modules.vector_store import VectorStore
from docindex.utils import EmbeddingGenerationError, InvalidQueryError

logger = logging.getLogger(__name__)


class Retriever:
    def __init__(
        self,
        embedding_client: EmbeddingClient,
        store: VectorStore,
        top_k: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.embedding_client = embedding_client
        self.store = store
        self.top_k = int(top_k or getattr(Config, "TOP_K", 5))
        self.max_retries = max(1, int(max_retries or getattr(Config, "EMBEDDING_MAX_RETRIES", 3)))
        self.retry_delay = float(retry_delay if retry_delay is not None else getattr(Config, "EMBEDDING_RETRY_DELAY", 1.0))
        self._sleep = sleep

    def retrieve(self, query_text: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Return the best-matching chunks for `query_text`, best first.

        No relevance threshold is applied. An empty index yields an empty list
        without contacting the embedding provider.

        Raises:
            InvalidQueryError: if the query is empty or not a string.
            EmbeddingGenerationError: if the query could not be embedded.
        """
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidQueryError("Query text must be a non-empty string.")

        k = int(top_k or self.top_k)
        if self.store.count() == 0:
            logger.info("Retrieval on empty index; returning no results")
            return []

        vectors = embed_with_retry(
            self.embedding_client,
            [query_text],
            max_attempts=self.max_retries,
            base_delay=self.retry_delay,
            sleep=self._sleep,
        )
        if not isinstance(vectors, (list, tuple, np.ndarray)) or len(vectors) != 1:
            raise EmbeddingGenerationError("Embedding provider returned no vector for the query.")
        try:
            query_vector = to_vector(vectors[0])
        except (TypeError, ValueError) as e:
            raise EmbeddingGenerationError(f"Embedding provider returned a malformed query vector: {e}") from e
        if len(query_vector) == 0:
            raise EmbeddingGenerationError("Embedding provider returned no vector for the query.")

        results = self.store.search(query_vector, k)
        logger.info("Retrieved %d chunks (top_k=%d)", len(results), k)
        return results


def format_context(results: Sequence[RetrievalResult]) -> str:
    """Render results as the context block injected ahead of a user question."""
    return "\n\n".join(f"Source: {r.source}\nContent: {r.text}" for r in results)
