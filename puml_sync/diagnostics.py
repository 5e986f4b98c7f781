# puml_sync/diagnostics.py
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, TextIO, Union

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class Diagnostic:
    """A problem found while syncing, attributed to a document when known."""

    severity: Severity
    code: str
    message: str
    path: str = ""
    hint: Optional[str] = None

    def format(self) -> str:
        where = f"{self.path}: " if self.path else ""
        line = f"{self.severity}: {where}{self.message}"
        if self.hint:
            line += f" ({self.hint})"
        return line


def warning(
    code: str,
    message: str,
    path: Union[str, Path] = "",
    hint: Optional[str] = None,
) -> Diagnostic:
    return Diagnostic("warning", code, message, path=str(path), hint=hint)


def error(
    code: str,
    message: str,
    path: Union[str, Path] = "",
    hint: Optional[str] = None,
) -> Diagnostic:
    return Diagnostic("error", code, message, path=str(path), hint=hint)


def emit(diag: Diagnostic, stream: Optional[TextIO] = None) -> None:
    """Print a diagnostic to stderr in the `warning: ...` / `error: ...` form."""
    print(diag.format(), file=stream or sys.stderr)


class SyncError(Exception):
    """Base class for fatal, run-level failures."""

    code = "E_SYNC"
    hint: Optional[str] = None

    def to_diagnostic(self) -> Diagnostic:
        return error(self.code, str(self), hint=self.hint)


class ConfigError(SyncError):
    code = "E_CONFIG"


class RendererError(SyncError):
    """The renderer could not be run, or failed for a reason other than syntax."""

    code = "E_RENDERER"


class MissingAssetError(SyncError):
    """Live hashes with no artifact on disk and no render failure to explain it."""

    code = "E_MISSING_ASSET"
    hint = (
        "re-run with --rewrite-all to regenerate every diagram; "
        "an asset whose diagram failed to render stays missing until its source is fixed"
    )

    def __init__(self, missing: list[str], output_dir: Path) -> None:
        self.missing = sorted(missing)
        self.output_dir = output_dir
        shown = ", ".join(self.missing[:5])
        if len(self.missing) > 5:
            shown += f" (and {len(self.missing) - 5} more)"
        super().__init__(
            f"{len(self.missing)} referenced asset(s) missing from {output_dir}: {shown}"
        )
