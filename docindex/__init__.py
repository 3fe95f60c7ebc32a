"""Document indexing and semantic retrieval engine."""

__version__ = "1.0.0"
