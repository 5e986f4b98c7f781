# puml_sync/scanner.py
"""Line-oriented tokenizer that classifies diagram regions of a markdown document.

`scan()` yields segments that cover the whole input in order; joining their
`text` fields reproduces the document exactly. At every line the rules in
`RULES` are tried in priority order and the first match wins:

  1. literal              indented diagram fence / image (never touched)
  2. annotated_source     comment + image + <details> + fence + </details>
  3. annotated_image      comment + image
  4. raw_image            image whose target is a diagram source file
  5. raw_source           fenced diagram source
  6. foreign_fence        any other fenced block, passed through whole

Every line is examined a bounded number of times, and an unterminated fence
swallows the remainder of the document, so scanning stays linear.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterator, Optional

from .constants import FENCE_LANGUAGES, SOURCE_EXTENSION
from .hashing import normalize_source
from .puml_fmt import parse_alt_text, parse_html_text

_COMMENT_RE = re.compile(
    r"^ {0,3}<!--\s*(?:puml|plantuml):(?P<hash>[A-Za-z0-9_-]+)"
    r"(?:\s+(?P<src>(?!-->)\S+))?\s*-->\s*$"
)
_IMAGE_RE = re.compile(
    r"^ {0,3}!\[(?P<alt>(?:\\.|[^\\\]])*)\]"
    r"\(\s*(?:<(?P<angled>[^>]*)>|(?P<target>[^\s)]+))(?:\s+\"[^\"]*\")?\s*\)\s*$"
)
_FENCE_OPEN_RE = re.compile(r"^(?P<indent> {0,3})(?P<marker>`{3,}|~{3,})[ \t]*(?P<info>.*?)\s*$")
_FENCE_CLOSE_RE = re.compile(r"^ {0,3}(?P<marker>`{3,}|~{3,})\s*$")
_INDENTED_RE = re.compile(r"^(?: {4}|\t)")
_DETAILS_OPEN_RE = re.compile(r"^\s*<details>\s*$")
_SUMMARY_RE = re.compile(r"^\s*<summary>(?P<label>.*?)</summary>\s*$")
_DETAILS_CLOSE_RE = re.compile(r"^\s*</details>\s*$")


@dataclass(frozen=True)
class Segment:
    """A contiguous span of the document. Base class for every block kind."""

    kind: ClassVar[str] = "text"

    text: str
    start: int

    @property
    def end(self) -> int:
        return self.start + len(self.text)

    @property
    def eol(self) -> str:
        """Line break that terminates the span ("" at end of document)."""
        if self.text.endswith("\r\n"):
            return "\r\n"
        if self.text.endswith("\n"):
            return "\n"
        return ""


@dataclass(frozen=True)
class Text(Segment):
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class Literal(Segment):
    kind: ClassVar[str] = "literal"


@dataclass(frozen=True)
class RawSourceBlock(Segment):
    kind: ClassVar[str] = "raw_source"

    source: str
    caption: Optional[str]
    toggle: Optional[str]


@dataclass(frozen=True)
class AnnotatedSourceBlock(Segment):
    kind: ClassVar[str] = "annotated_source"

    stored_hash: str
    caption: str
    toggle: str
    source: str
    asset_target: str
    inline_caption: Optional[str]
    inline_toggle: Optional[str]


@dataclass(frozen=True)
class RawImageReference(Segment):
    kind: ClassVar[str] = "raw_image"

    caption: str
    target: str


@dataclass(frozen=True)
class AnnotatedImageReference(Segment):
    kind: ClassVar[str] = "annotated_image"

    stored_hash: str
    caption: str
    source_path: Optional[str]
    asset_target: str


def split_lines(text: str) -> list[str]:
    """Split on "\\n" only, keeping line endings attached."""
    parts = text.split("\n")
    lines = [p + "\n" for p in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def split_info(rest: str) -> tuple[Optional[str], Optional[str]]:
    """Parse `<caption> | <toggle>` from a fence info string (both optional)."""
    caption, _, toggle = rest.partition("|")
    return (caption.strip() or None, toggle.strip() or None)


class _Cursor:
    def __init__(self, text: str, languages: tuple[str, ...], source_extension: str) -> None:
        self.lines = split_lines(text)
        self.offsets: list[int] = []
        pos = 0
        for line in self.lines:
            self.offsets.append(pos)
            pos += len(line)
        self.languages = tuple(lang.lower() for lang in languages)
        self.source_extension = source_extension.lower()

    def content(self, i: int) -> str:
        return self.lines[i].rstrip("\r\n")

    def span(self, i: int, j: int) -> tuple[str, int]:
        """Text and start offset of lines [i, j)."""
        return "".join(self.lines[i:j]), self.offsets[i]

    def skip_blank(self, i: int) -> int:
        while i < len(self.lines) and not self.content(i).strip():
            i += 1
        return i

    def match(self, pattern: re.Pattern[str], i: int) -> Optional[re.Match[str]]:
        if i >= len(self.lines):
            return None
        return pattern.match(self.content(i))

    def find_close(self, i: int, marker: str) -> Optional[int]:
        """Index of the line closing a fence opened with `marker`, searching from i."""
        for j in range(i, len(self.lines)):
            m = _FENCE_CLOSE_RE.match(self.content(j).strip())
            if m and m.group("marker")[0] == marker[0] and len(m.group("marker")) >= len(marker):
                return j
        return None

    def diagram_fence(self, i: int) -> Optional[tuple[re.Match[str], str]]:
        """Match a fence opening tagged with a diagram language; returns (match, info rest)."""
        m = self.match(_FENCE_OPEN_RE, i)
        if not m or m.group("marker")[0] != "`":
            return None
        lang, _, rest = m.group("info").partition(" ")
        if lang.lower() not in self.languages:
            return None
        return m, rest.strip()

    def is_source_target(self, target: str) -> bool:
        return target.lower().endswith(self.source_extension)


def _image_target(m: re.Match[str]) -> str:
    return m.group("angled") if m.group("angled") is not None else m.group("target")


RuleResult = Optional[tuple[Segment, int]]


def _match_literal(cur: _Cursor, i: int) -> RuleResult:
    line = cur.content(i)
    if not _INDENTED_RE.match(line):
        return None
    body = line.strip()
    image = _IMAGE_RE.match(body)
    if image and cur.is_source_target(_image_target(image)):
        text, start = cur.span(i, i + 1)
        return Literal(text=text, start=start), i + 1

    opening = _FENCE_OPEN_RE.match(body)
    if not opening:
        return None
    lang = opening.group("info").partition(" ")[0].lower()
    if lang not in cur.languages:
        return None
    close = cur.find_close(i + 1, opening.group("marker"))
    end = len(cur.lines) if close is None else close + 1
    text, start = cur.span(i, end)
    return Literal(text=text, start=start), end


def _match_annotated_source(cur: _Cursor, i: int) -> RuleResult:
    comment = cur.match(_COMMENT_RE, i)
    if not comment:
        return None
    j = cur.skip_blank(i + 1)
    image = cur.match(_IMAGE_RE, j)
    if not image:
        return None
    j = cur.skip_blank(j + 1)
    if not cur.match(_DETAILS_OPEN_RE, j):
        return None
    j = cur.skip_blank(j + 1)
    summary = cur.match(_SUMMARY_RE, j)
    if not summary:
        return None
    j = cur.skip_blank(j + 1)
    fence = cur.diagram_fence(j)
    if not fence:
        return None
    opening, rest = fence
    close = cur.find_close(j + 1, opening.group("marker"))
    if close is None:
        return None
    end = cur.skip_blank(close + 1)
    if not cur.match(_DETAILS_CLOSE_RE, end):
        return None

    source = normalize_source("".join(cur.lines[j + 1 : close]))
    inline_caption, inline_toggle = split_info(rest)
    text, start = cur.span(i, end + 1)
    block = AnnotatedSourceBlock(
        text=text,
        start=start,
        stored_hash=comment.group("hash"),
        caption=parse_alt_text(image.group("alt")),
        toggle=parse_html_text(summary.group("label")),
        source=source,
        asset_target=_image_target(image),
        inline_caption=inline_caption,
        inline_toggle=inline_toggle,
    )
    return block, end + 1


def _match_annotated_image(cur: _Cursor, i: int) -> RuleResult:
    comment = cur.match(_COMMENT_RE, i)
    if not comment:
        return None
    j = cur.skip_blank(i + 1)
    image = cur.match(_IMAGE_RE, j)
    if not image:
        return None
    text, start = cur.span(i, j + 1)
    block = AnnotatedImageReference(
        text=text,
        start=start,
        stored_hash=comment.group("hash"),
        caption=parse_alt_text(image.group("alt")),
        source_path=comment.group("src"),
        asset_target=_image_target(image),
    )
    return block, j + 1


def _match_raw_image(cur: _Cursor, i: int) -> RuleResult:
    image = cur.match(_IMAGE_RE, i)
    if not image or not cur.is_source_target(_image_target(image)):
        return None
    text, start = cur.span(i, i + 1)
    block = RawImageReference(
        text=text,
        start=start,
        caption=parse_alt_text(image.group("alt")),
        target=_image_target(image),
    )
    return block, i + 1


def _match_raw_source(cur: _Cursor, i: int) -> RuleResult:
    fence = cur.diagram_fence(i)
    if not fence:
        return None
    opening, rest = fence
    close = cur.find_close(i + 1, opening.group("marker"))
    if close is None:
        # Unterminated: the fence runs to the end of the document.
        text, start = cur.span(i, len(cur.lines))
        return Text(text=text, start=start), len(cur.lines)

    caption, toggle = split_info(rest)
    text, start = cur.span(i, close + 1)
    block = RawSourceBlock(
        text=text,
        start=start,
        source=normalize_source("".join(cur.lines[i + 1 : close])),
        caption=caption,
        toggle=toggle,
    )
    return block, close + 1


def _match_foreign_fence(cur: _Cursor, i: int) -> RuleResult:
    opening = cur.match(_FENCE_OPEN_RE, i)
    if not opening:
        return None
    close = cur.find_close(i + 1, opening.group("marker"))
    end = len(cur.lines) if close is None else close + 1
    text, start = cur.span(i, end)
    return Text(text=text, start=start), end


@dataclass(frozen=True)
class Rule:
    name: str
    match: Callable[[_Cursor, int], RuleResult]


RULES: tuple[Rule, ...] = (
    Rule("literal", _match_literal),
    Rule("annotated_source", _match_annotated_source),
    Rule("annotated_image", _match_annotated_image),
    Rule("raw_image", _match_raw_image),
    Rule("raw_source", _match_raw_source),
    Rule("foreign_fence", _match_foreign_fence),
)


def scan(
    text: str,
    *,
    languages: tuple[str, ...] = FENCE_LANGUAGES,
    source_extension: str = SOURCE_EXTENSION,
) -> Iterator[Segment]:
    """Yield the segments of `text` in document order."""
    cur = _Cursor(text, languages, source_extension)
    pending_from: Optional[int] = None
    i = 0
    while i < len(cur.lines):
        result: RuleResult = None
        for rule in RULES:
            result = rule.match(cur, i)
            if result is not None:
                break
        if result is None:
            if pending_from is None:
                pending_from = i
            i += 1
            continue

        if pending_from is not None:
            pending, start = cur.span(pending_from, i)
            yield Text(text=pending, start=start)
            pending_from = None
        segment, i = result
        yield segment

    if pending_from is not None:
        pending, start = cur.span(pending_from, len(cur.lines))
        yield Text(text=pending, start=start)
