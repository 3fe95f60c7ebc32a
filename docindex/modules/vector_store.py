"""In-memory vector store with cosine-similarity search.

Implements a VectorStore class for:
- Appending embedded chunks (duplicate ids overwrite in place)
- Atomic full reset
- Linear-scan cosine search with insertion-order tie breaking
- Collection stats

Vectors live in one contiguous float32 matrix with precomputed norms. Every
mutation builds a new snapshot and swaps it in under a lock, so readers keep
a consistent view while a writer appends.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from docindex.modules.models import Chunk, RetrievalResult
from docindex.utils import EmbeddingDimensionError

logger = logging.getLogger(__name__)


class _Snapshot:
    """Immutable view of the index at one point in time."""

    __slots__ = ("ids", "texts", "sources", "matrix", "norms", "positions")

    def __init__(
        self,
        ids: List[str],
        texts: List[str],
        sources: List[str],
        matrix: np.ndarray,
        norms: np.ndarray,
        positions: Dict[str, int],
    ) -> None:
        self.ids = ids
        self.texts = texts
        self.sources = sources
        self.matrix = matrix
        self.norms = norms
        self.positions = positions

    @classmethod
    def empty(cls) -> "_Snapshot":
        return cls([], [], [], np.zeros((0, 0), dtype=np.float32), np.zeros(0, dtype=np.float32), {})

    @property
    def dimension(self) -> Optional[int]:
        return int(self.matrix.shape[1]) if self.ids else None


class VectorStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = _Snapshot.empty()

    def append(self, chunks: Iterable[Chunk]) -> int:
        """Add embedded chunks to the index and return how many were stored.

        Chunks without an embedding are filtered out (logged, not stored).
        A chunk whose id is already present replaces the stored entry and keeps
        its original position.

        Raises:
            EmbeddingDimensionError: if a vector's length differs from the
                index dimension; nothing from this call is stored.
        """
        accepted: List[Chunk] = []
        for c in chunks:
            if not c.is_embedded:
                logger.warning("Skipping chunk %s: missing embedding", c.id)
                continue
            accepted.append(c)
        if not accepted:
            return 0

        with self._lock:
            snap = self._snapshot
            dim = snap.dimension or len(accepted[0].embedding)
            for c in accepted:
                if len(c.embedding) != dim:
                    raise EmbeddingDimensionError(dim, len(c.embedding), c.id)

            ids = list(snap.ids)
            texts = list(snap.texts)
            sources = list(snap.sources)
            positions = dict(snap.positions)
            rows = snap.matrix.copy() if snap.ids else np.zeros((0, dim), dtype=np.float32)

            new_rows: List[Sequence[float]] = []
            for c in accepted:
                vec = np.asarray(c.embedding, dtype=np.float32)
                pos = positions.get(c.id)
                if pos is None:
                    positions[c.id] = len(ids)
                    ids.append(c.id)
                    texts.append(c.text)
                    sources.append(c.source)
                    new_rows.append(vec)
                elif pos < rows.shape[0]:
                    texts[pos] = c.text
                    sources[pos] = c.source
                    rows[pos] = vec
                else:
                    # Duplicate id within this same call
                    texts[pos] = c.text
                    sources[pos] = c.source
                    new_rows[pos - rows.shape[0]] = vec

            if new_rows:
                rows = np.vstack([rows, np.vstack(new_rows).astype(np.float32)])
            norms = np.linalg.norm(rows, axis=1).astype(np.float32)
            self._snapshot = _Snapshot(ids, texts, sources, rows, norms, positions)

        return len(accepted)

    def clear(self) -> None:
        """Discard every chunk; the next append may use a new dimension."""
        with self._lock:
            self._snapshot = _Snapshot.empty()

    def search(self, query_vector: Sequence[float], k: int) -> List[RetrievalResult]:
        """Return the k stored chunks most similar to `query_vector`, best first.

        Scores are cosine similarities; equal scores keep insertion order. A
        zero-magnitude query or row scores 0.0.
        """
        snap = self._snapshot
        if not snap.ids or k <= 0:
            return []

        q = np.asarray(query_vector, dtype=np.float32)
        if q.ndim != 1 or q.shape[0] != snap.matrix.shape[1]:
            raise EmbeddingDimensionError(snap.matrix.shape[1], int(q.size))

        q_norm = float(np.linalg.norm(q))
        denom = snap.norms * q_norm
        dots = snap.matrix @ q
        scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
        scores = np.clip(scores, -1.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:k]
        return [
            RetrievalResult(
                id=snap.ids[i],
                text=snap.texts[i],
                source=snap.sources[i],
                score=float(scores[i]),
            )
            for i in order
        ]

    def get(self, chunk_id: str) -> Optional[Chunk]:
        snap = self._snapshot
        pos = snap.positions.get(chunk_id)
        if pos is None:
            return None
        return Chunk(
            id=chunk_id,
            text=snap.texts[pos],
            source=snap.sources[pos],
            embedding=snap.matrix[pos].astype(float).tolist(),
        )

    def count(self) -> int:
        return len(self._snapshot.ids)

    def __len__(self) -> int:
        return self.count()

    @property
    def dimension(self) -> Optional[int]:
        return self._snapshot.dimension

    def ids(self) -> List[str]:
        """Chunk ids in insertion order."""
        return list(self._snapshot.ids)

    def sources(self) -> List[str]:
        """Distinct document paths in insertion order."""
        return list(dict.fromkeys(self._snapshot.sources))

    def get_stats(self) -> Dict[str, Any]:
        snap = self._snapshot
        return {
            "total_chunks": len(snap.ids),
            "total_sources": len(set(snap.sources)),
            "dimension": snap.dimension,
            "memory_bytes": int(snap.matrix.nbytes),
        }
