# puml_sync/hashing.py
from __future__ import annotations

import hashlib


def content_hash(text: str) -> str:
    """Return the SHA-256 hex digest of `text` encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_source(text: str) -> str:
    """Diagram source as hashed and emitted: trailing line breaks removed."""
    return text.rstrip("\r\n")
