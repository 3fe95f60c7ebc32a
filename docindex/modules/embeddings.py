"""Embedding adapters and the retry policy applied around them.

Implements:
- EmbeddingClient: the narrow `embed(texts) -> vectors` contract
- OpenAIEmbeddingClient: OpenAI-compatible embeddings API (text-embedding-3-small)
- SentenceTransformerEmbeddingClient: local sentence-transformers model
- HashEmbeddingClient: deterministic feature-hashing vectors for offline use and tests
- embed_with_retry: exponential-backoff retries for retryable provider errors

Adapters never retry by themselves; the batch orchestrator and the retriever
wrap every call in `embed_with_retry`.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from typing import Callable, List, Optional, Sequence

import numpy as np
from openai import OpenAI

from docindex.config import Config
from docindex.utils import EmbeddingGenerationError, handle_api_error, log_error

logger = logging.getLogger(__name__)

Vector = List[float]

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


def to_vector(vec) -> np.ndarray:
    """Coerce one provider vector (list, tuple or numpy array) to a flat float array.

    `None` becomes an empty array. Raises TypeError or ValueError when the
    value is not a one-dimensional sequence of finite numbers.
    """
    if vec is None:
        return np.zeros(0, dtype=float)
    arr = np.asarray(vec, dtype=float)
    if arr.ndim != 1:
        raise ValueError(f"expected a flat vector, got shape {arr.shape}")
    if not np.isfinite(arr).all():
        raise ValueError("vector contains non-finite values")
    return arr


class EmbeddingClient:
    """Base adapter. Subclasses implement `embed`.

    `embed` returns one vector per input text, in input order. A vector may be
    empty when the provider could not embed that particular text.
    """

    name = "base"
    max_batch_size: int = 10

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        raise NotImplementedError

    def describe(self) -> dict:
        return {"provider": self.name, "max_batch_size": self.max_batch_size}


class OpenAIEmbeddingClient(EmbeddingClient):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_batch_size: int = 10,
    ) -> None:
        self.api_key = api_key or getattr(Config, "OPENAI_API_KEY", "")
        self.base_url = base_url or getattr(Config, "OPENAI_BASE_URL", None)
        self.model: str = model or getattr(Config, "EMBEDDING_MODEL", "text-embedding-3-small")
        self.max_batch_size = max_batch_size
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        # Lazy-init so constructing the engine never touches the network
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        if not texts:
            return []
        if len(texts) > self.max_batch_size:
            raise ValueError(f"At most {self.max_batch_size} texts per embedding call (got {len(texts)}).")
        resp = self._get_client().embeddings.create(model=self.model, input=list(texts))
        data = sorted(resp.data, key=lambda d: d.index)
        return [list(d.embedding or []) for d in data]

    def describe(self) -> dict:
        info = super().describe()
        info["model"] = self.model
        return info


class SentenceTransformerEmbeddingClient(EmbeddingClient):
    name = "hf"

    def __init__(self, model_name: Optional[str] = None, max_batch_size: int = 10) -> None:
        self.model_name = model_name or getattr(Config, "HF_EMBEDDING_MODEL", "all-MiniLM-L6-v2")
        self.max_batch_size = max_batch_size
        self._model = None

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        """Generate embeddings via sentence-transformers with lazy init and L2 normalization."""
        if not texts:
            return []
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        vectors = self._model.encode(list(texts), convert_to_numpy=True, normalize_embeddings=True)
        return [v.astype(float).tolist() for v in vectors]

    def describe(self) -> dict:
        info = super().describe()
        info["model"] = self.model_name
        return info


class HashEmbeddingClient(EmbeddingClient):
    """Deterministic pseudo-embeddings for offline/testing scenarios.

    Hashes lowercase word tokens into `dim` signed buckets (SHA-256 derived) and
    L2-normalizes, so texts sharing words land close together. Texts without
    any word token get an empty vector.
    """

    name = "hash"

    def __init__(self, dim: int = 256, max_batch_size: int = 10) -> None:
        self.dim = dim
        self.max_batch_size = max_batch_size

    def _vector(self, text: str) -> Vector:
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return []
        vec = np.zeros(self.dim, dtype=np.float64)
        for tok in tokens:
            h = hashlib.sha256(tok.encode("utf-8")).digest()
            bucket = int.from_bytes(h[:4], "big") % self.dim
            vec[bucket] += 1.0 if h[4] & 1 else -1.0
        norm = float(np.linalg.norm(vec)) or 1.0
        return (vec / norm).tolist()

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        return [self._vector(t) for t in texts]

    def describe(self) -> dict:
        info = super().describe()
        info["dim"] = self.dim
        return info


def create_embedding_client(provider: Optional[str] = None, max_batch_size: Optional[int] = None) -> EmbeddingClient:
    """Build the adapter selected by EMBEDDING_PROVIDER.

    The openai provider without an API key falls back to hash embeddings so the
    engine stays usable offline.
    """
    provider = (provider or getattr(Config, "EMBEDDING_PROVIDER", "openai")).lower()
    batch = int(max_batch_size or getattr(Config, "EMBEDDING_BATCH_SIZE", 10))

    if provider == "hf":
        return SentenceTransformerEmbeddingClient(max_batch_size=batch)
    if provider == "hash":
        return HashEmbeddingClient(max_batch_size=batch)
    if provider == "openai":
        api_key = getattr(Config, "OPENAI_API_KEY", "")
        if api_key and api_key.strip():
            return OpenAIEmbeddingClient(api_key=api_key, max_batch_size=batch)
        logger.warning("OPENAI_API_KEY not set; using deterministic hash embeddings")
        return HashEmbeddingClient(max_batch_size=batch)
    raise ValueError(f"Unknown embedding provider: {provider}")


def embed_with_retry(
    client: EmbeddingClient,
    texts: Sequence[str],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Vector]:
    """Call `client.embed` with retries and exponential backoff.

    Only errors classified retryable by `handle_api_error` are retried; the
    delay before attempt n+1 is `base_delay * 2 ** (n - 1)`.

    Raises:
        EmbeddingGenerationError: once attempts are exhausted or on a non-retryable error.
    """
    attempts = 0
    last_err: Optional[Exception] = None
    while attempts < max_attempts:
        try:
            return client.embed(texts)
        except Exception as e:
            last_err = e
            info = handle_api_error(e)
            log_error(e, context={
                "where": "embed_with_retry",
                "provider": client.name,
                "attempt": attempts + 1,
                "retryable": info.get("retryable"),
            })
            attempts += 1
            if attempts < max_attempts and info.get("retryable"):
                sleep(base_delay * 2 ** (attempts - 1))
            else:
                break

    raise EmbeddingGenerationError(
        f"Embedding failed after {attempts} attempt(s): {last_err}",
        retry_count=attempts - 1,
    ) from last_err
