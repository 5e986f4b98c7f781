# puml_sync/puml_fmt.py
from __future__ import annotations

import html
import os
import re
from pathlib import Path
from typing import Optional

from .constants import ANNOTATION_TAG

# Characters that would end the alt text or the link target early.
_ALT_ESCAPE_RE = re.compile(r"([\\\[\]])")
_ALT_UNESCAPE_RE = re.compile(r"\\([\\\[\]])")
_BACKTICK_RUN_RE = re.compile(r"`+")


def md_alt_text(text: str) -> str:
    """Escape text for use as markdown image alt text on a single line."""
    flat = re.sub(r"\s+", " ", str(text)).strip()
    return _ALT_ESCAPE_RE.sub(r"\\\1", flat)


def parse_alt_text(raw: str) -> str:
    return _ALT_UNESCAPE_RE.sub(r"\1", raw).strip()


def html_text(text: str) -> str:
    """Escape text for the <summary> element."""
    flat = re.sub(r"\s+", " ", str(text)).strip()
    return html.escape(flat, quote=False)


def parse_html_text(raw: str) -> str:
    return html.unescape(raw).strip()


def asset_filename(content_hash: str, fmt: str) -> str:
    return f"{content_hash}.{fmt}"


def asset_reference(document: Path, output_dir: Path, content_hash: str, fmt: str) -> str:
    """Path of an asset relative to the document's directory, with `/` separators."""
    target = output_dir / asset_filename(content_hash, fmt)
    rel = os.path.relpath(os.path.abspath(target), os.path.abspath(document.parent))
    return Path(rel).as_posix()


def annotation_comment(content_hash: str, source_path: Optional[str] = None) -> str:
    if source_path:
        return f"<!-- {ANNOTATION_TAG}:{content_hash} {source_path} -->"
    return f"<!-- {ANNOTATION_TAG}:{content_hash} -->"


def image_ref(caption: str, target: str) -> str:
    return f"![{md_alt_text(caption)}]({target})"


def source_fence(source: str) -> str:
    """Wrap diagram source in a fenced block tagged with the annotation language.

    The fence is longer than any backtick run opening a source line, so such
    a line can never close it early.
    """
    longest = 0
    for line in source.split("\n"):
        run = _BACKTICK_RUN_RE.match(line.strip())
        if run:
            longest = max(longest, len(run.group()))
    fence = "`" * max(3, longest + 1)
    return f"{fence}{ANNOTATION_TAG}\n{source}\n{fence}"


def annotated_source_block(
    content_hash: str,
    source: str,
    *,
    caption: str,
    toggle: str,
    asset_ref: str,
) -> str:
    """Render the full annotation for a fenced diagram.

    The result carries no trailing newline; the line break that followed the
    original block is preserved by the caller.
    """
    return "\n".join(
        [
            annotation_comment(content_hash),
            image_ref(caption, asset_ref),
            "",
            "<details>",
            f"<summary>{html_text(toggle)}</summary>",
            "",
            source_fence(source),
            "",
            "</details>",
        ]
    )


def annotated_image_ref(
    content_hash: str,
    source_path: str,
    *,
    caption: str,
    asset_ref: str,
) -> str:
    return "\n".join(
        [
            annotation_comment(content_hash, source_path),
            image_ref(caption, asset_ref),
        ]
    )
