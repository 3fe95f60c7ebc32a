from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def _split_origins(origins: str) -> List[str]:
    if not origins:
        return []
    return [o.strip() for o in origins.split(",") if o.strip()]


class Config:
    """Centralized configuration for the retrieval engine and its HTTP API.

    Required keys (only enforced when present but empty):
      - OPENAI_API_KEY
      - FLASK_SECRET_KEY

    Optional keys with defaults:
      - FLASK_ENV (default: "production")
      - PORT (default: 5000)
      - CORS_ORIGINS (comma-separated list)
      - LOG_LEVEL (default: "INFO")
      - CHUNK_SIZE (default: 1500 characters)
      - CHUNK_OVERLAP (default: 200 characters)
      - CHUNK_BOUNDARY_WINDOW (default: 300 characters)
      - EMBEDDING_PROVIDER (default: "openai"; one of openai, hf, hash)
      - EMBEDDING_MODEL (default: "text-embedding-3-small")
      - HF_EMBEDDING_MODEL (default: "all-MiniLM-L6-v2")
      - EMBEDDING_BATCH_SIZE (default: 10)
      - EMBEDDING_CONCURRENCY (default: 4)
      - EMBEDDING_MAX_RETRIES (default: 3)
      - EMBEDDING_RETRY_DELAY (default: 1.0 seconds)
      - TOP_K (default: 5)
      - OPENAI_BASE_URL (default: "https://api.openai.com/v1")
    """

    # Required
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    FLASK_SECRET_KEY: str = os.getenv("FLASK_SECRET_KEY", "")

    # Server
    FLASK_ENV: str = os.getenv("FLASK_ENV", "production")
    PORT: int = int(os.getenv("PORT", "5000"))
    CORS_ORIGINS: List[str] = _split_origins(os.getenv("CORS_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Chunking
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1500"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    CHUNK_BOUNDARY_WINDOW: int = int(os.getenv("CHUNK_BOUNDARY_WINDOW", "300"))

    # Embeddings
    EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "openai").lower()
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    HF_EMBEDDING_MODEL: str = os.getenv("HF_EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "10"))
    EMBEDDING_CONCURRENCY: int = int(os.getenv("EMBEDDING_CONCURRENCY", "4"))
    EMBEDDING_MAX_RETRIES: int = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
    EMBEDDING_RETRY_DELAY: float = float(os.getenv("EMBEDDING_RETRY_DELAY", "1.0"))

    # Retrieval
    TOP_K: int = int(os.getenv("TOP_K", "5"))

    # Base URL for OpenAI-compatible API
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")

    @classmethod
    def validate(cls) -> None:
        """Validate required keys and numeric ranges.

        Raises:
            ValueError: if required keys are explicitly set in env but empty,
                or a tuning value is out of range.
        """
        # Only enforce when the environment variable is present but empty.
        if ("OPENAI_API_KEY" in os.environ) and (not cls.OPENAI_API_KEY):
            raise ValueError("OPENAI_API_KEY is missing or empty. Please set it in your environment or .env file.")
        if ("FLASK_SECRET_KEY" in os.environ) and (not cls.FLASK_SECRET_KEY):
            raise ValueError("FLASK_SECRET_KEY is missing or empty. Please set it in your environment or .env file.")

        if cls.EMBEDDING_PROVIDER not in {"openai", "hf", "hash"}:
            raise ValueError(f"EMBEDDING_PROVIDER must be one of openai, hf, hash (got {cls.EMBEDDING_PROVIDER!r}).")
        if cls.CHUNK_SIZE <= 0:
            raise ValueError("CHUNK_SIZE must be a positive integer.")
        if cls.CHUNK_OVERLAP < 0:
            raise ValueError("CHUNK_OVERLAP must not be negative.")
        for name in ("EMBEDDING_BATCH_SIZE", "EMBEDDING_CONCURRENCY", "EMBEDDING_MAX_RETRIES", "TOP_K"):
            if getattr(cls, name) < 1:
                raise ValueError(f"{name} must be at least 1.")
        if cls.EMBEDDING_RETRY_DELAY < 0:
            raise ValueError("EMBEDDING_RETRY_DELAY must not be negative.")

    @classmethod
    def __repr__(cls) -> str:
        # Hide sensitive values in representation
        masked_key = (cls.OPENAI_API_KEY[:6] + "***") if cls.OPENAI_API_KEY else "<unset>"
        masked_secret = (cls.FLASK_SECRET_KEY[:6] + "***") if cls.FLASK_SECRET_KEY else "<unset>"
        return (
            "Config("
            f"OPENAI_API_KEY={masked_key}, "
            f"FLASK_SECRET_KEY={masked_secret}, "
            f"FLASK_ENV={cls.FLASK_ENV}, PORT={cls.PORT}, CORS_ORIGINS={cls.CORS_ORIGINS}, "
            f"CHUNK_SIZE={cls.CHUNK_SIZE}, CHUNK_OVERLAP={cls.CHUNK_OVERLAP}, "
            f"EMBEDDING_PROVIDER={cls.EMBEDDING_PROVIDER}, EMBEDDING_MODEL={cls.EMBEDDING_MODEL}, "
            f"EMBEDDING_BATCH_SIZE={cls.EMBEDDING_BATCH_SIZE}, EMBEDDING_CONCURRENCY={cls.EMBEDDING_CONCURRENCY}, "
            f"TOP_K={cls.TOP_K}"
            ")"
        )


config = Config()
# Validate at import time so misconfiguration fails fast
Config.validate()
