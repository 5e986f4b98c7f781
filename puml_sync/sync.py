# puml_sync/sync.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .assets import GcReport, collect_garbage
from .config import SyncConfig
from .diagnostics import Diagnostic, emit, warning
from .io import discover_documents, read_document
from .reconcile import Decision, DocumentState
from .render import ProcessRenderer, Renderer, RenderOutcome, render_assets
from .writer import rewrite_text, write_if_changed

Reporter = Callable[[Diagnostic], None]


@dataclass(frozen=True)
class DocumentResult:
    path: Path
    changed: bool
    decisions: tuple[Decision, ...]
    live: frozenset[str]
    outcomes: tuple[RenderOutcome, ...]
    diagnostics: tuple[Diagnostic, ...]
    skipped: bool = False

    @property
    def failed(self) -> tuple[str, ...]:
        return tuple(o.content_hash for o in self.outcomes if not o.ok)


@dataclass
class RunRegistry:
    """Run-wide, append-only record of what every processed document declared.

    Only read after the document loop has finished.
    """

    live: set[str] = field(default_factory=set)
    failed: dict[str, list[Path]] = field(default_factory=dict)
    documents: list[DocumentResult] = field(default_factory=list)

    @property
    def skipped(self) -> list[Path]:
        return [d.path for d in self.documents if d.skipped]

    def record(self, result: DocumentResult) -> None:
        self.documents.append(result)
        self.live.update(result.live)
        for digest in result.failed:
            self.failed.setdefault(digest, []).append(result.path)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [d for doc in self.documents for d in doc.diagnostics]


@dataclass(frozen=True)
class RunReport:
    registry: RunRegistry
    gc: GcReport

    @property
    def written(self) -> list[Path]:
        return [d.path for d in self.registry.documents if d.changed]

    @property
    def rendered(self) -> int:
        return sum(1 for d in self.registry.documents for o in d.outcomes if o.ok)

    @property
    def unrendered_warnings(self) -> list[Diagnostic]:
        out: list[Diagnostic] = []
        for digest in self.gc.unrendered:
            docs = ", ".join(str(p) for p in self.registry.failed.get(digest, []))
            out.append(
                warning(
                    "W_RENDER_FAILED_ASSET",
                    f"asset {digest} was not rendered; its image link is broken until the source is fixed",
                    path=docs,
                )
            )
        return out

    @property
    def warnings(self) -> list[Diagnostic]:
        return self.registry.diagnostics + self.unrendered_warnings


def _outcome_diagnostics(path: Path, outcomes: Iterable[RenderOutcome]) -> list[Diagnostic]:
    out: list[Diagnostic] = []
    for outcome in outcomes:
        short = outcome.content_hash[:12]
        if not outcome.ok:
            out.append(
                warning("W_RENDER_SYNTAX", f"diagram {short} failed to render: {outcome.error}", path=path)
            )
        elif outcome.stderr:
            out.append(
                warning("W_RENDERER_STDERR", f"renderer output for diagram {short}: {outcome.stderr}", path=path)
            )
    return out


async def process_document(
    path: Path,
    cfg: SyncConfig,
    renderer: Renderer,
    registry: RunRegistry,
) -> DocumentResult:
    """Reconcile, render, and (if changed) rewrite one document.

    Renders for this document are joined before the file is written.
    A document that cannot be read or decoded is left alone and reported.
    """
    try:
        document = await asyncio.to_thread(read_document, path)
    except (OSError, UnicodeDecodeError) as e:
        result = DocumentResult(
            path=path,
            changed=False,
            skipped=True,
            decisions=(),
            live=frozenset(),
            outcomes=(),
            diagnostics=(warning("W_DOCUMENT_UNREADABLE", f"document skipped: {e}", path=path),),
        )
        registry.record(result)
        return result

    state = DocumentState(path=path, config=cfg)
    new_text, decisions = rewrite_text(state, document.text)

    outcomes = await render_assets(state.requests, renderer, cfg.output_dir, cfg.format)
    changed = await asyncio.to_thread(write_if_changed, document, new_text)

    result = DocumentResult(
        path=path,
        changed=changed,
        decisions=tuple(d.decision for d in decisions),
        live=frozenset(state.live),
        outcomes=tuple(outcomes),
        diagnostics=tuple(state.diagnostics + _outcome_diagnostics(path, outcomes)),
    )
    registry.record(result)
    return result


async def run(
    cfg: SyncConfig,
    *,
    renderer: Optional[Renderer] = None,
    documents: Optional[Iterable[Path]] = None,
    report: Reporter = emit,
) -> RunReport:
    """Sync every document in turn, then garbage-collect the output directory.

    Raises RendererError when the renderer cannot be used at all and
    MissingAssetError when a live asset is unexpectedly absent.
    """
    if renderer is None:
        renderer = ProcessRenderer.from_config(cfg)
    if documents is None:
        documents = discover_documents(cfg.root, cfg.glob, cfg.exclude_dirs)

    registry = RunRegistry()
    for path in documents:
        result = await process_document(path, cfg, renderer, registry)
        for diag in result.diagnostics:
            report(diag)

    gc = await asyncio.to_thread(
        collect_garbage,
        cfg.output_dir,
        registry.live,
        cfg.format,
        failed=registry.failed.keys(),
        # Orphans are unknowable while a document could not be read.
        prune=not registry.skipped,
    )
    return RunReport(registry=registry, gc=gc)


def run_sync(cfg: SyncConfig, **kwargs) -> RunReport:
    return asyncio.run(run(cfg, **kwargs))
