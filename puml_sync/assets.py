# puml_sync/assets.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Collection

from .diagnostics import MissingAssetError


@dataclass(frozen=True)
class GcReport:
    kept: tuple[str, ...]
    deleted: tuple[Path, ...]
    # Live hashes without a file, explained by a render failure this run.
    unrendered: tuple[str, ...]


def list_assets(output_dir: Path, fmt: str) -> dict[str, Path]:
    """Map hash -> path for every `<hash>.<fmt>` file in the output directory."""
    suffix = f".{fmt}"
    assets: dict[str, Path] = {}
    if not output_dir.is_dir():
        return assets
    for entry in sorted(output_dir.iterdir()):
        if entry.is_file() and entry.name.endswith(suffix) and not entry.name.startswith("."):
            assets[entry.name[: -len(suffix)]] = entry
    return assets


def collect_garbage(
    output_dir: Path,
    live: Collection[str],
    fmt: str,
    *,
    failed: Collection[str] = (),
    prune: bool = True,
) -> GcReport:
    """Delete assets no document references, then verify every live hash has a file.

    Must only run after every document of the run has been processed.
    With `prune` false, orphans are reported as kept instead of deleted.
    Raises MissingAssetError for live hashes that are neither on disk nor
    accounted for by a render failure.
    """
    live_set = set(live)
    present = list_assets(output_dir, fmt)

    kept: list[str] = []
    deleted: list[Path] = []
    for digest, path in present.items():
        if digest in live_set or not prune:
            kept.append(digest)
            continue
        path.unlink()
        deleted.append(path)

    missing = sorted(live_set - present.keys())
    failed_set = set(failed)
    unexplained = [h for h in missing if h not in failed_set]
    if unexplained:
        raise MissingAssetError(unexplained, output_dir)

    return GcReport(
        kept=tuple(kept),
        deleted=tuple(deleted),
        unrendered=tuple(h for h in missing if h in failed_set),
    )
