# puml_sync/render.py
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .config import SyncConfig
from .constants import RENDERER_TIMEOUT_DEFAULT, SYNTAX_ERROR_MARKER
from .diagnostics import RendererError
from .io import write_bytes_atomic
from .puml_fmt import asset_filename

_START_DIRECTIVE_RE = re.compile(r"^\s*@start\w+", re.MULTILINE)


class RenderSyntaxError(Exception):
    """The renderer rejected one diagram; siblings are unaffected."""


@dataclass(frozen=True)
class RenderOutcome:
    content_hash: str
    asset_path: Optional[Path] = None
    error: Optional[str] = None
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


class Renderer(Protocol):
    async def render(self, source: str) -> tuple[bytes, str]:
        """Return (image bytes, diagnostic text) or raise RenderSyntaxError / RendererError."""
        ...


def wrap_source(source: str) -> str:
    """Add @startuml/@enduml when the source carries no @start directive."""
    if _START_DIRECTIVE_RE.search(source):
        return source + "\n"
    return f"@startuml\n{source}\n@enduml\n"


def _syntax_error_summary(text: str) -> str:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    return " / ".join(lines[:4]) or "syntax error"


class ProcessRenderer:
    """Runs an external renderer once per diagram: source on stdin, image on stdout."""

    def __init__(self, argv: Sequence[str], timeout: float = RENDERER_TIMEOUT_DEFAULT) -> None:
        if not argv:
            raise ValueError("renderer argv must not be empty")
        self.argv = list(argv)
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: SyncConfig) -> "ProcessRenderer":
        return cls(cfg.renderer_argv(), timeout=cfg.renderer_timeout)

    async def render(self, source: str) -> tuple[bytes, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RendererError(
                f"cannot start renderer {self.argv[0]!r}: {exc.strerror or exc}"
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(wrap_source(source).encode("utf-8")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RendererError(f"renderer timed out after {self.timeout:g}s")

        err_text = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            combined = err_text + "\n" + stdout.decode("utf-8", errors="replace")
            if SYNTAX_ERROR_MARKER in combined.lower():
                raise RenderSyntaxError(_syntax_error_summary(err_text or combined))
            raise RendererError(
                f"renderer exited with status {proc.returncode}: {err_text.strip() or '(no output)'}"
            )
        if not stdout:
            raise RenderSyntaxError("renderer produced no output")
        return stdout, err_text


async def render_assets(
    requests: dict[str, str],
    renderer: Renderer,
    output_dir: Path,
    fmt: str,
) -> list[RenderOutcome]:
    """Render every requested hash concurrently and write `<hash>.<fmt>` files.

    All invocations are joined before returning. Syntax errors become failed
    outcomes; the first fatal error is re-raised once every sibling finished.
    """

    async def _render_one(digest: str, source: str) -> RenderOutcome:
        try:
            data, stderr = await renderer.render(source)
        except RenderSyntaxError as exc:
            return RenderOutcome(digest, error=str(exc))
        target = output_dir / asset_filename(digest, fmt)
        await asyncio.to_thread(write_bytes_atomic, target, data)
        return RenderOutcome(digest, asset_path=target, stderr=stderr.strip())

    tasks = [asyncio.create_task(_render_one(d, s)) for d, s in requests.items()]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    outcomes: list[RenderOutcome] = []
    fatal: Optional[BaseException] = None
    for result in results:
        if isinstance(result, BaseException):
            fatal = fatal or result
            continue
        outcomes.append(result)
    if fatal is not None:
        raise fatal
    return outcomes
