from __future__ import annotations

import logging
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import jsonify

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


class RetrievalEngineError(Exception):
    """Base class for every error raised by the retrieval engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChunkingError(RetrievalEngineError):
    """Raised when a document cannot be chunked (malformed input)."""


class InvalidQueryError(RetrievalEngineError):
    """Raised when a retrieval query is empty or not a string."""


class EmbeddingGenerationError(RetrievalEngineError):
    """Custom exception for embedding generation failures.

    Attributes:
        message: Description of the error
        retry_count: How many retries were attempted before failing
    """

    def __init__(self, message: str, retry_count: int = 0) -> None:
        super().__init__(message)
        self.retry_count = retry_count


class EmbeddingDimensionError(RetrievalEngineError, ValueError):
    """Raised when a vector's length differs from the index dimension."""

    def __init__(self, expected: int, actual: int, chunk_id: Optional[str] = None) -> None:
        where = f" for chunk {chunk_id}" if chunk_id else ""
        super().__init__(f"Embedding dimension mismatch{where}: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
        self.chunk_id = chunk_id


class EmbeddingBatchFailure(RetrievalEngineError):
    """Raised by the batch orchestrator when a batch cannot be embedded.

    Attributes:
        batch_index: 1-based index of the failed batch
        batch_count: Total number of batches in the run
        committed_chunks: Chunks already committed to the index before the failure
        sources: Document paths with chunks in the failed batch
        cause: The underlying exception
    """

    def __init__(
        self,
        message: str,
        batch_index: int,
        batch_count: int,
        committed_chunks: int,
        sources: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.batch_index = batch_index
        self.batch_count = batch_count
        self.committed_chunks = committed_chunks
        self.sources = list(sources or [])
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_index": self.batch_index,
            "batch_count": self.batch_count,
            "committed_chunks": self.committed_chunks,
            "sources": self.sources,
        }


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once with the project-wide format."""
    if not logging.getLogger().handlers:
        logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def handle_api_error(error: Exception) -> Dict[str, Any]:
    """Return standardized error dict: {"error": str, "type": str, "retryable": bool}.

    Classifies network and OpenAI-style errors and engine exceptions and decides
    whether the failed operation may be retried.
    """
    type_str = "unknown_error"
    msg = str(error) if str(error) else error.__class__.__name__
    retryable = False

    if isinstance(error, TimeoutError):
        type_str = "network_timeout"
        retryable = True
    elif isinstance(error, ConnectionError):
        type_str = "network_connection_error"
        retryable = True

    # Detect OpenAI-style errors without importing the library
    cls_name = error.__class__.__name__.lower()
    mod_name = getattr(error.__class__, "__module__", "")
    if "openai" in mod_name or "openai" in cls_name:
        type_str = "openai_error"
        # Rate limit, timeout, connection and server errors are retryable
        if any(s in cls_name for s in ["rate", "limit", "timeout", "connection", "server"]):
            retryable = True

    if isinstance(error, EmbeddingBatchFailure):
        type_str = "embedding_batch_failure"
        retryable = True
        msg = error.message
    elif isinstance(error, EmbeddingDimensionError):
        type_str = "embedding_dimension_error"
        retryable = False
        msg = error.message
    elif isinstance(error, EmbeddingGenerationError):
        type_str = "embedding_generation_error"
        retryable = error.retry_count > 0
        msg = error.message
    elif isinstance(error, InvalidQueryError):
        type_str = "invalid_query"
        retryable = False
        msg = error.message
    elif isinstance(error, ChunkingError):
        type_str = "chunking_error"
        retryable = False
        msg = error.message

    return {"error": msg, "type": type_str, "retryable": retryable}


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log a formatted error and include context information.

    Uses logging with levels: ERROR (default), WARNING for retryable cases, INFO for context.
    """
    context = context or {}
    info = handle_api_error(error)

    configure_logging()

    level = logging.ERROR
    if info.get("retryable"):
        level = logging.WARNING

    logging.log(level, f"{info['type']}: {info['error']}")

    if context:
        logging.info(f"Context: {context}")

    tb = traceback.format_exc()
    if tb and "NoneType: None" not in tb:
        logging.debug(tb)


def register_error_handlers(app):
    """Register Flask error handlers that use our standardized error payloads."""

    @app.errorhandler(404)
    def handle_404(error):
        return jsonify({"error": "Not Found", "type": "not_found", "retryable": False}), 404

    @app.errorhandler(400)
    def handle_400(error):
        info = handle_api_error(error)
        info["type"] = "bad_request"
        info["retryable"] = False
        return jsonify(info), 400

    @app.errorhandler(InvalidQueryError)
    def handle_invalid_query(error):
        return jsonify(handle_api_error(error)), 400

    @app.errorhandler(ChunkingError)
    def handle_chunking_error(error):
        return jsonify(handle_api_error(error)), 400

    @app.errorhandler(EmbeddingBatchFailure)
    def handle_batch_failure(error):
        log_error(error, context=error.to_dict())
        info = handle_api_error(error)
        info["batch"] = error.to_dict()
        return jsonify(info), 502

    @app.errorhandler(EmbeddingGenerationError)
    def handle_embedding_error(error):
        log_error(error)
        return jsonify(handle_api_error(error)), 502

    @app.errorhandler(500)
    def handle_500(error):
        info = handle_api_error(error)
        info.setdefault("type", "internal_server_error")
        return jsonify(info), 500

    @app.errorhandler(Exception)
    def handle_generic_exception(error):
        # Catch-all handler to standardize unexpected exceptions
        log_error(error, context={"timestamp": datetime.now().isoformat()})
        info = handle_api_error(error)
        return jsonify(info), 500
