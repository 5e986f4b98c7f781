# puml_sync/io.py
from __future__ import annotations

import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml

from .hashing import content_hash


@dataclass(frozen=True)
class Document:
    """Snapshot of a markdown file taken when it is read."""

    path: Path
    text: str

    @property
    def digest(self) -> str:
        return content_hash(self.text)


def read_document(path: Path) -> Document:
    # newline="" keeps "\r\n" intact so untouched text is written back verbatim.
    with path.open("r", encoding="utf-8", newline="") as fh:
        return Document(path=path, text=fh.read())


def _write_atomic(path: Path, data: bytes) -> None:
    """Write via a sibling temp file and rename, so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    # mkstemp creates 0600 files; keep the existing mode or use a readable default.
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o644
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_text_atomic(path: Path, text: str) -> None:
    _write_atomic(path, text.encode("utf-8"))


def write_bytes_atomic(path: Path, data: bytes) -> None:
    _write_atomic(path, data)


def load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML file whose top level is a mapping (an empty file is `{}`)."""
    raw = path.read_text(encoding="utf-8")

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(
            f"Top-level YAML must be a mapping in {path}, got {type(data).__name__}"
        )
    return data


def _is_excluded(rel: Path, exclude_dirs: Iterable[str]) -> bool:
    excluded = set(exclude_dirs)
    return any(part in excluded for part in rel.parts[:-1])


def discover_documents(root: Path, pattern: str, exclude_dirs: Iterable[str]) -> list[Path]:
    """Files under `root` matching `pattern`, sorted, skipping excluded directories."""
    exclude_dirs = tuple(exclude_dirs)
    out: list[Path] = []
    for path in sorted(root.glob(pattern)):
        if not path.is_file():
            continue
        if _is_excluded(path.relative_to(root), exclude_dirs):
            continue
        out.append(path)
    return out
