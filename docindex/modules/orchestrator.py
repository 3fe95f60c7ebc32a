"""Batch orchestration of chunking, embedding and index commits.

BatchOrchestrator responsibilities:
- Chunk every document up front and batch chunks across documents
- Embed batches on a bounded thread pool (several in flight, capped)
- Commit finished batches to the vector store in batch order, one at a time
- Report progress once per batch and once at completion
- Stop dispatching at batch boundaries when cancelled
- Raise EmbeddingBatchFailure with batch context; never roll back earlier batches
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from docindex.config import Config
from docindex.modules.chunker import Chunker
from docindex.modules.embeddings import EmbeddingClient, Vector, embed_with_retry, to_vector
from docindex.modules.models import Chunk, Document, IndexingReport
from docindex.modules.vector_store import VectorStore
from docindex.utils import (
    EmbeddingBatchFailure,
    EmbeddingDimensionError,
    EmbeddingGenerationError,
    log_error,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class BatchOrchestrator:
    def __init__(
        self,
        chunker: Chunker,
        embedding_client: EmbeddingClient,
        store: VectorStore,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.chunker = chunker
        self.embedding_client = embedding_client
        self.store = store

        self.batch_size = int(batch_size or getattr(Config, "EMBEDDING_BATCH_SIZE", 10))
        # Never exceed what the provider accepts per request
        self.batch_size = max(1, min(self.batch_size, getattr(embedding_client, "max_batch_size", self.batch_size)))
        self.max_concurrency = max(1, int(max_concurrency or getattr(Config, "EMBEDDING_CONCURRENCY", 4)))
        self.max_retries = max(1, int(max_retries or getattr(Config, "EMBEDDING_MAX_RETRIES", 3)))
        self.retry_delay = float(retry_delay if retry_delay is not None else getattr(Config, "EMBEDDING_RETRY_DELAY", 1.0))
        self._sleep = sleep

        # Serializes add_documents and clear
        self._mutation_lock = threading.Lock()

    def clear(self) -> None:
        with self._mutation_lock:
            self.store.clear()
            logger.info("Index cleared")

    def add_documents(
        self,
        documents: Sequence[Document],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingReport:
        """Chunk, embed and commit `documents`.

        Batches are committed in order as they complete. When `cancel_event`
        is set no further batch is dispatched; batches already in flight are
        awaited and committed, and the report comes back with `cancelled=True`.

        Raises:
            EmbeddingBatchFailure: a batch failed after retries, returned a
                malformed result or the wrong number of vectors, or vectors
                of the wrong dimension.
                Batches committed before it stay in the index.
            ChunkingError: a document is malformed.
        """
        with self._mutation_lock:
            return self._run(list(documents), on_progress, cancel_event)

    def _run(
        self,
        documents: List[Document],
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> IndexingReport:
        chunks = self.chunker.chunk_documents(documents)
        batches = [chunks[i : i + self.batch_size] for i in range(0, len(chunks), self.batch_size)]
        report = IndexingReport(documents=len(documents), total_chunks=len(chunks), batches_total=len(batches))

        logger.info(
            "Indexing %d documents: %d chunks in %d batches (batch_size=%d, concurrency=%d)",
            len(documents), len(chunks), len(batches), self.batch_size, self.max_concurrency,
        )
        self._notify(on_progress, f"Split {len(documents)} documents into {len(chunks)} chunks")

        if not batches:
            self._notify(on_progress, "Indexing complete: no content to index")
            return report

        failure: Optional[EmbeddingBatchFailure] = None
        done_results: Dict[int, List[Vector]] = {}
        in_flight: Dict[Future, int] = {}
        next_dispatch = 0
        next_commit = 0

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="embed") as pool:
            while True:
                while (
                    failure is None
                    and next_dispatch < len(batches)
                    and len(in_flight) < self.max_concurrency
                    and not self._cancelled(cancel_event)
                ):
                    texts = [c.text for c in batches[next_dispatch]]
                    in_flight[pool.submit(self._embed_batch, texts)] = next_dispatch
                    next_dispatch += 1

                if not in_flight:
                    break

                finished, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for fut in finished:
                    idx = in_flight.pop(fut)
                    try:
                        done_results[idx] = fut.result()
                    except EmbeddingGenerationError as e:
                        if failure is None or idx + 1 < failure.batch_index:
                            failure = self._failure(idx, batches, report, str(e), e)

                # Single commit point, in batch order
                while next_commit in done_results and (failure is None or next_commit + 1 < failure.batch_index):
                    vectors = done_results.pop(next_commit)
                    try:
                        self._commit(next_commit, batches, vectors, report)
                    except EmbeddingBatchFailure as e:
                        failure = e
                        break
                    next_commit += 1
                    self._notify(
                        on_progress,
                        f"Embedded {report.chunks_committed}/{report.total_chunks} chunks "
                        f"(batch {next_commit}/{report.batches_total})",
                    )

        if failure is not None:
            failure.committed_chunks = report.chunks_committed
            log_error(failure, context=failure.to_dict())
            self._notify(
                on_progress,
                f"Indexing failed at batch {failure.batch_index}/{failure.batch_count}; "
                f"{report.chunks_committed} chunks committed",
            )
            raise failure

        if next_commit < len(batches):
            report.cancelled = True
            logger.info("Indexing cancelled after %d/%d batches", next_commit, len(batches))
            self._notify(
                on_progress,
                f"Indexing cancelled: {report.chunks_committed}/{report.total_chunks} chunks committed",
            )
            return report

        if report.failed_chunk_ids:
            logger.warning("%d chunks could not be embedded and were skipped", len(report.failed_chunk_ids))
        self._notify(
            on_progress,
            f"Indexing complete: {report.chunks_committed} chunks from {report.documents} documents",
        )
        return report

    def _embed_batch(self, texts: List[str]) -> List[Vector]:
        return embed_with_retry(
            self.embedding_client,
            texts,
            max_attempts=self.max_retries,
            base_delay=self.retry_delay,
            sleep=self._sleep,
        )

    def _commit(self, idx: int, batches: List[List[Chunk]], vectors: List[Vector], report: IndexingReport) -> None:
        batch = batches[idx]
        if not isinstance(vectors, (list, tuple, np.ndarray)):
            raise self._failure(
                idx, batches, report,
                f"Embedding provider returned {type(vectors).__name__} instead of a list of vectors",
            )
        if len(vectors) != len(batch):
            raise self._failure(
                idx, batches, report,
                f"Embedding provider returned {len(vectors)} vectors for {len(batch)} chunks",
            )

        embedded: List[Chunk] = []
        for chunk, vec in zip(batch, vectors):
            try:
                arr = to_vector(vec)
            except (TypeError, ValueError) as e:
                raise self._failure(idx, batches, report, f"Malformed vector for chunk {chunk.id}: {e}", e)
            if arr.size == 0 or not arr.any():
                logger.warning("Embedding failed for chunk %s; skipping", chunk.id)
                report.failed_chunk_ids.append(chunk.id)
                continue
            embedded.append(
                Chunk(id=chunk.id, text=chunk.text, source=chunk.source,
                      embedding=arr.tolist(), start=chunk.start, overlap=chunk.overlap)
            )

        try:
            added = self.store.append(embedded)
        except EmbeddingDimensionError as e:
            raise self._failure(idx, batches, report, str(e), e)

        report.chunks_committed += added
        report.batches_committed += 1

    def _failure(
        self,
        idx: int,
        batches: List[List[Chunk]],
        report: IndexingReport,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> EmbeddingBatchFailure:
        sources = list(dict.fromkeys(c.source for c in batches[idx]))
        return EmbeddingBatchFailure(
            f"Batch {idx + 1}/{len(batches)} failed: {message}",
            batch_index=idx + 1,
            batch_count=len(batches),
            committed_chunks=report.chunks_committed,
            sources=sources,
            cause=cause,
        )

    @staticmethod
    def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _notify(on_progress: Optional[ProgressCallback], message: str) -> None:
        logger.debug(message)
        if on_progress is None:
            return
        try:
            on_progress(message)
        except Exception as e:
            # Progress sinks are fire-and-forget
            log_error(e, context={"where": "BatchOrchestrator._notify"})
