import shlex
import sys
from dataclasses import replace
from pathlib import Path

import pytest

from puml_sync.config import SyncConfig
from puml_sync.render import RenderSyntaxError


# Stand-in for `plantuml -pipe`: echoes the source inside an <svg> element,
# reports a PlantUML-style syntax error for sources containing SYNTAX and an
# unexplained failure for sources containing CRASH.
FAKE_RENDERER = r'''
import sys
data = sys.stdin.read()
if "SYNTAX" in data:
    sys.stderr.write("ERROR\n2\nSyntax Error?\n")
    sys.exit(200)
if "CRASH" in data:
    sys.stderr.write("java.lang.OutOfMemoryError\n")
    sys.exit(1)
if "NOISY" in data:
    sys.stderr.write("some renderer warning\n")
sys.stdout.write("<svg><!--" + data + "--></svg>")
'''


class RecordingRenderer:
    """In-process renderer that remembers every source it was asked for."""

    def __init__(self) -> None:
        self.sources: list[str] = []

    async def render(self, source: str) -> tuple[bytes, str]:
        self.sources.append(source)
        if "SYNTAX" in source:
            raise RenderSyntaxError("Syntax Error?")
        return f"<svg>{source}</svg>".encode("utf-8"), ""


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path.resolve()


@pytest.fixture
def make_config(root: Path):
    def _make(**changes) -> SyncConfig:
        return replace(SyncConfig.defaults(root), **changes)

    return _make


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def fake_renderer_argv(tmp_path: Path) -> list[str]:
    script = tmp_path / "fake_renderer.py"
    script.write_text(FAKE_RENDERER, encoding="utf-8")
    return [sys.executable, str(script)]


@pytest.fixture
def fake_renderer_cmd(fake_renderer_argv: list[str]) -> str:
    return " ".join(shlex.quote(a) for a in fake_renderer_argv)
