from __future__ import annotations

# Re-export validators and error handlers for convenience
from .validators import (
    validate_chunk_size,
    require_json_fields,
    validate_documents_payload,
    parse_top_k,
)

from .error_handlers import (
    RetrievalEngineError,
    ChunkingError,
    InvalidQueryError,
    EmbeddingGenerationError,
    EmbeddingDimensionError,
    EmbeddingBatchFailure,
    configure_logging,
    handle_api_error,
    log_error,
    register_error_handlers,
)

__all__ = [
    # validators
    "validate_chunk_size",
    "require_json_fields",
    "validate_documents_payload",
    "parse_top_k",
    # error handlers
    "RetrievalEngineError",
    "ChunkingError",
    "InvalidQueryError",
    "EmbeddingGenerationError",
    "EmbeddingDimensionError",
    "EmbeddingBatchFailure",
    "configure_logging",
    "handle_api_error",
    "log_error",
    "register_error_handlers",
]
