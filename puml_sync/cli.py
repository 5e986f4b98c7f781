# puml_sync/cli.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import load_config
from .constants import CONFIG_FILENAME, GLOB_DEFAULT
from .diagnostics import SyncError, emit
from .sync import run_sync


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="puml-sync",
        description=(
            "Render PlantUML diagrams embedded in markdown to content-addressed "
            "assets and keep the documents annotated with their hashes."
        ),
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path("."),
        help="Directory searched for markdown documents (default: current directory).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"YAML settings file (default: <root>/{CONFIG_FILENAME} when present).",
    )
    parser.add_argument(
        "--glob",
        type=str,
        default=None,
        help=f"Document discovery pattern relative to --root (default: {GLOB_DEFAULT}).",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Asset output directory (default: <root>/docs/generated-assets).",
    )
    parser.add_argument(
        "--renderer",
        type=str,
        default=None,
        help=(
            "Renderer command line; `{format}` is replaced with the output "
            "format (default: 'plantuml -t{format} -pipe')."
        ),
    )
    parser.add_argument(
        "--rewrite-all",
        action="store_true",
        default=None,
        help=(
            "Regenerate every annotated diagram even when its hash is current, "
            "and re-read annotated .puml references."
        ),
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when warnings were reported (unreadable sources, render failures).",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)

    overrides = {
        "glob": args.glob,
        "output_dir": str(args.out_dir.resolve()) if args.out_dir else None,
        "renderer": args.renderer,
        "rewrite_all": args.rewrite_all,
    }

    try:
        cfg = load_config(args.root, config_path=args.config, overrides=overrides)
        report = run_sync(cfg)
    except SyncError as exc:
        emit(exc.to_diagnostic())
        raise SystemExit(2)

    for warning in report.unrendered_warnings:
        emit(warning)

    for path in report.written:
        print(f"updated {path}")
    print(
        f"{len(report.registry.documents)} document(s), {len(report.written)} updated, "
        f"{report.rendered} rendered, {len(report.gc.deleted)} asset(s) deleted"
    )

    if args.strict and report.warnings:
        print(f"error: {len(report.warnings)} warning(s) with --strict", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
