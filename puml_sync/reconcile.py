# puml_sync/reconcile.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal as TypingLiteral, Optional
from urllib.parse import unquote

from .config import SyncConfig
from .diagnostics import Diagnostic, warning
from .hashing import content_hash, normalize_source
from .puml_fmt import annotated_image_ref, annotated_source_block, asset_reference
from .scanner import (
    AnnotatedImageReference,
    AnnotatedSourceBlock,
    Literal,
    RawImageReference,
    RawSourceBlock,
    Segment,
)

Decision = TypingLiteral["unchanged", "regenerate", "skip_literal", "broken"]

UNCHANGED: Decision = "unchanged"
REGENERATE: Decision = "regenerate"
SKIP_LITERAL: Decision = "skip_literal"
BROKEN: Decision = "broken"


@dataclass(frozen=True)
class Reconciliation:
    decision: Decision
    text: str
    content_hash: Optional[str] = None


@dataclass
class DocumentState:
    """Per-document accumulator shared by the blocks of one document."""

    path: Path
    config: SyncConfig
    requests: dict[str, str] = field(default_factory=dict)
    live: set[str] = field(default_factory=set)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def asset_ref(self, digest: str) -> str:
        return asset_reference(self.path, self.config.output_dir, digest, self.config.format)

    def request(self, digest: str, source: str) -> None:
        self.requests[digest] = source
        self.live.add(digest)


def _pick(*values: Optional[str]) -> str:
    """First non-empty value; callers always end with a default."""
    for value in values:
        if value:
            return value
    return ""


def _read_source(state: DocumentState, target: str) -> Optional[str]:
    path = state.path.parent / unquote(target)
    try:
        return normalize_source(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
        state.diagnostics.append(
            warning(
                "W_SOURCE_UNREADABLE",
                f"cannot read diagram source {target!r}: {reason}",
                path=state.path,
            )
        )
        return None


def _regenerate_source(
    state: DocumentState, block: Segment, source: str, caption: str, toggle: str
) -> Reconciliation:
    digest = content_hash(source)
    state.request(digest, source)
    markup = annotated_source_block(
        digest,
        source,
        caption=caption,
        toggle=toggle,
        asset_ref=state.asset_ref(digest),
    )
    return Reconciliation(REGENERATE, markup + block.eol, digest)


def _regenerate_image(
    state: DocumentState, block: Segment, source: str, source_path: str, caption: str
) -> Reconciliation:
    digest = content_hash(source)
    state.request(digest, source)
    markup = annotated_image_ref(
        digest,
        source_path.replace(" ", "%20"),
        caption=caption,
        asset_ref=state.asset_ref(digest),
    )
    return Reconciliation(REGENERATE, markup + block.eol, digest)


def reconcile_annotated_source(state: DocumentState, block: AnnotatedSourceBlock) -> Reconciliation:
    cfg = state.config
    digest = content_hash(block.source)
    if digest == block.stored_hash and not cfg.rewrite_all:
        state.live.add(digest)
        return Reconciliation(UNCHANGED, block.text, digest)

    caption = _pick(block.inline_caption, block.caption, cfg.default_caption)
    toggle = _pick(block.inline_toggle, block.toggle, cfg.default_toggle)
    return _regenerate_source(state, block, block.source, caption, toggle)


def reconcile_raw_source(state: DocumentState, block: RawSourceBlock) -> Reconciliation:
    cfg = state.config
    caption = _pick(block.caption, cfg.default_caption)
    toggle = _pick(block.toggle, cfg.default_toggle)
    return _regenerate_source(state, block, block.source, caption, toggle)


def reconcile_raw_image(state: DocumentState, block: RawImageReference) -> Reconciliation:
    source = _read_source(state, block.target)
    if source is None:
        return Reconciliation(BROKEN, block.text)
    caption = _pick(block.caption, state.config.default_caption)
    return _regenerate_image(state, block, source, block.target, caption)


def reconcile_annotated_image(state: DocumentState, block: AnnotatedImageReference) -> Reconciliation:
    """Annotated image references are trusted as-is unless a full rewrite is forced.

    Edits to the referenced source file are only picked up under `rewrite_all`.
    """
    if not state.config.rewrite_all or not block.source_path:
        state.live.add(block.stored_hash)
        return Reconciliation(UNCHANGED, block.text, block.stored_hash)

    source = _read_source(state, block.source_path)
    if source is None:
        state.live.add(block.stored_hash)
        return Reconciliation(BROKEN, block.text, block.stored_hash)
    caption = _pick(block.caption, state.config.default_caption)
    return _regenerate_image(state, block, source, unquote(block.source_path), caption)


def reconcile(state: DocumentState, block: Segment) -> Reconciliation:
    """Decide what happens to one classified block and return its replacement text."""
    if isinstance(block, Literal):
        return Reconciliation(SKIP_LITERAL, block.text)
    if isinstance(block, AnnotatedSourceBlock):
        return reconcile_annotated_source(state, block)
    if isinstance(block, RawSourceBlock):
        return reconcile_raw_source(state, block)
    if isinstance(block, RawImageReference):
        return reconcile_raw_image(state, block)
    if isinstance(block, AnnotatedImageReference):
        return reconcile_annotated_image(state, block)
    raise TypeError(f"not a diagram block: {type(block).__name__}")
