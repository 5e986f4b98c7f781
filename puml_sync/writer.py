# puml_sync/writer.py
from __future__ import annotations

from .hashing import content_hash
from .io import Document, write_text_atomic
from .reconcile import DocumentState, Reconciliation, reconcile
from .scanner import Text, scan


def rewrite_text(state: DocumentState, text: str) -> tuple[str, list[Reconciliation]]:
    """Run one scan/replace pass over `text`, splicing replacements in order."""
    cfg = state.config
    pieces: list[str] = []
    decisions: list[Reconciliation] = []
    for segment in scan(text, languages=cfg.languages, source_extension=cfg.source_extension):
        if isinstance(segment, Text):
            pieces.append(segment.text)
            continue
        result = reconcile(state, segment)
        decisions.append(result)
        pieces.append(result.text)
    return "".join(pieces), decisions


def write_if_changed(document: Document, new_text: str) -> bool:
    """Persist `new_text` only when its hash differs from the snapshot's."""
    if content_hash(new_text) == document.digest:
        return False
    write_text_atomic(document.path, new_text)
    return True
