from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple


def validate_chunk_size(size: int) -> bool:
    """Ensure chunk size is within reasonable bounds (characters)."""
    try:
        s = int(size)
    except Exception:
        return False
    return 100 <= s <= 8000


def require_json_fields(data: Dict[str, object], fields: List[str]) -> List[str]:
    missing = []
    for f in fields:
        v = data.get(f)
        if v is None or (isinstance(v, str) and not v.strip()):
            missing.append(f)
    return missing


def validate_documents_payload(payload: Any) -> Tuple[List[Dict[str, str]], Optional[str]]:
    """Validate the `documents` list of an ingest request.

    Returns: (documents, error) where error is None when the payload is usable.
    Each document must be an object with a non-empty string `path` and a string
    `content` (which may be empty).
    """
    if not isinstance(payload, list):
        return [], "documents must be a list of {path, content} objects."
    documents: List[Dict[str, str]] = []
    for i, item in enumerate(payload):
        if not isinstance(item, dict):
            return [], f"documents[{i}] must be an object."
        missing = require_json_fields(item, ["path"])
        if missing:
            return [], f"documents[{i}] is missing: {', '.join(missing)}."
        path = item.get("path")
        content = item.get("content", "")
        if not isinstance(path, str) or not isinstance(content, str):
            return [], f"documents[{i}].path and documents[{i}].content must be strings."
        documents.append({"path": path, "content": content})
    return documents, None


def parse_top_k(value: Any, default: int, upper: int = 50) -> Optional[int]:
    """Parse an optional top_k request value; None means invalid."""
    if value is None:
        return default
    if isinstance(value, bool):
        return None
    try:
        k = int(value)
    except (TypeError, ValueError):
        return None
    if k < 1 or k > upper:
        return None
    return k
