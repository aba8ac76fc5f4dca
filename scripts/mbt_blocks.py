#!/usr/bin/env python3
"""
Classification and wrapping of MoonBit fenced blocks.

A fence whose info string starts with ``mbt`` or ``moonbit`` becomes a
``Segment``.  The rest of the info string is read as whitespace separated
markers:

- second token ``expr`` / ``no-check`` / ``enclose`` selects the kind,
- ``-f=<name>`` sends the block to another generated source file,
- ``-e<digits>`` suppresses a diagnostic code for the whole document.

Unknown markers are ignored.
"""

import enum
import re
from dataclasses import dataclass, replace
from typing import FrozenSet, List, Optional, Tuple

from md_fences import FenceToken

DEFAULT_UNIT = "main.mbt"
UNIT_SUFFIX = ".mbt"
LANGUAGE_MARKERS = ("mbt", "moonbit")

_TARGET_UNIT_RE = re.compile(r"^-f=(.*)$")
_SUPPRESS_CODE_RE = re.compile(r"(?<=-)[eE](\d+)")


class SegmentKind(enum.Enum):
    NORMAL = "normal"
    EXPR = "expr"
    NO_CHECK = "no-check"
    ENCLOSE = "enclose"


_KIND_BY_MARKER = {
    "expr": SegmentKind.EXPR,
    "no-check": SegmentKind.NO_CHECK,
    "enclose": SegmentKind.ENCLOSE,
}


@dataclass(frozen=True)
class Segment:
    content: str
    kind: SegmentKind
    # 1-based document lines of the opening and closing fence.
    begin_line: int
    end_line: int
    unit: str = DEFAULT_UNIT
    suppressed_codes: FrozenSet[int] = frozenset()
    indent: int = 0


@dataclass(frozen=True)
class Wrapper:
    leading: str
    trailing: str
    indent: int


WRAPPERS = {
    SegmentKind.NORMAL: Wrapper(leading="", trailing="", indent=0),
    SegmentKind.EXPR: Wrapper(leading="fn init {println({\n", trailing="})}\n", indent=2),
    SegmentKind.ENCLOSE: Wrapper(leading="fn init {\n", trailing="}\n", indent=2),
}


@dataclass(frozen=True)
class WrappedSegment:
    segment: Segment
    text: str
    leading_lines: int
    content_lines: int
    trailing_lines: int
    # generated column minus document column inside the block content
    column_offset: int


def is_moonbit_info(info: str) -> bool:
    return info.strip().lower().startswith(LANGUAGE_MARKERS)


def is_safe_unit_name(name: str) -> bool:
    if not name:
        return False
    if name in {".", ".."}:
        return False
    if "/" in name or "\\" in name:
        return False
    if name.startswith("."):
        return False
    return True


def normalize_unit_name(raw: str) -> Optional[str]:
    name = raw.strip().strip("\"'")
    if not is_safe_unit_name(name):
        return None
    if not name.endswith(UNIT_SUFFIX):
        name += UNIT_SUFFIX
    return name


def parse_info(info: str, honor_inline: bool = True) -> Tuple[SegmentKind, str, FrozenSet[int]]:
    """Read ``(kind, unit, suppressed codes)`` from a fence info string."""
    parts = info.split()
    kind = SegmentKind.NORMAL
    if len(parts) > 1:
        kind = _KIND_BY_MARKER.get(parts[1].lower(), SegmentKind.NORMAL)

    unit = DEFAULT_UNIT
    codes = set()
    for part in parts[1:]:
        m = _TARGET_UNIT_RE.match(part)
        if m:
            name = normalize_unit_name(m.group(1))
            if name is not None:
                unit = name
            continue
        if honor_inline:
            for code in _SUPPRESS_CODE_RE.findall(part):
                codes.add(int(code))
    return kind, unit, frozenset(codes)


def classify_fence(token: FenceToken, honor_inline: bool = True) -> Optional[Segment]:
    """Turn a fence token into a Segment, or None for non-MoonBit fences."""
    if not is_moonbit_info(token.info):
        return None
    kind, unit, codes = parse_info(token.info, honor_inline=honor_inline)
    return Segment(
        content=token.content,
        kind=kind,
        begin_line=token.begin_line + 1,
        end_line=token.end_line + 1,
        unit=unit,
        suppressed_codes=codes,
        indent=token.indent,
    )


def count_lines(text: str) -> int:
    return text.count("\n")


def indent_lines(text: str, width: int) -> str:
    if width <= 0:
        return text
    pad = " " * width
    out: List[str] = []
    for line in text.splitlines(keepends=True):
        if line.strip("\r\n"):
            out.append(pad + line)
        else:
            out.append(line)
    return "".join(out)


def wrap_segment(segment: Segment) -> WrappedSegment:
    if segment.kind == SegmentKind.NO_CHECK:
        raise ValueError("no-check blocks are never wrapped")

    wrapper = WRAPPERS[segment.kind]
    content = segment.content
    if content and not content.endswith("\n"):
        content += "\n"

    body = indent_lines(content, wrapper.indent)
    text = wrapper.leading + body + wrapper.trailing
    return WrappedSegment(
        segment=replace(segment, content=text),
        text=text,
        leading_lines=count_lines(wrapper.leading),
        content_lines=count_lines(content),
        trailing_lines=count_lines(wrapper.trailing),
        column_offset=wrapper.indent - segment.indent,
    )
