#!/usr/bin/env python3
"""
Decoding, suppression, translation and rendering of ``moon`` diagnostics.

The checker is run with ``--output-json`` and prints one JSON record per
diagnostic::

    {"level": "warning", "error_code": 2,
     "loc": {"path": "/tmp/x/main.mbt",
             "start": {"line": 3, "col": 7}, "end": {"line": 3, "col": 8}},
     "message": "Unused variable 'x'"}

Positions are rewritten through a ``SourceMap`` so reports point at the
markdown document.
"""

import enum
import json
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from source_map import SourceMap

ALL_WARNINGS = "all-warnings"

# SGR colours for terminal output
RED = "31"
YELLOW = "33"

# Secondary locations quoted inside messages, e.g. "defined at main.mbt:3:5-3:6".
_MESSAGE_LOCATION_RE = re.compile(
    r"(?P<path>[^\s:()\[\]\"']*\.mbt):(?P<bl>\d+):(?P<bc>\d+)(?:-(?P<el>\d+):(?P<ec>\d+))?"
)
_CODE_RE = re.compile(r"^[eE]?(\d+)$")


class Level(enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @classmethod
    def parse(cls, raw: Any) -> "Level":
        s = str(raw or "").strip().lower()
        for level in cls:
            if level.value == s:
                return level
        raise ValueError(f"unknown diagnostic level: {raw!r}")

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class Position:
    line: int
    col: int


@dataclass(frozen=True)
class Diagnostic:
    level: Level
    code: Optional[int]
    path: str
    begin: Position
    end: Position
    message: str


@dataclass(frozen=True)
class SuppressionConfig:
    all_warnings: bool = False
    codes: FrozenSet[int] = frozenset()
    honor_inline: bool = True

    def with_inline(self, codes: Iterable[int]) -> "SuppressionConfig":
        """Per-document copy including codes declared in fence headers."""
        if not self.honor_inline:
            return self
        extra = frozenset(codes)
        if not extra:
            return self
        return replace(self, codes=self.codes | extra)

    def suppresses(self, diag: Diagnostic) -> bool:
        if self.all_warnings and diag.level == Level.WARNING:
            return True
        if diag.code is not None and diag.code in self.codes:
            return True
        return False


def parse_suppress_list(raw: str) -> Tuple[bool, FrozenSet[int]]:
    """Parse ``--suppress`` values like ``all-warnings`` or ``e1001,1002``."""
    all_warnings = False
    codes = set()
    for item in raw.split(","):
        s = item.strip()
        if not s:
            continue
        if s.lower() == ALL_WARNINGS:
            all_warnings = True
            continue
        m = _CODE_RE.match(s)
        if not m:
            raise ValueError(f"invalid diagnostic code: {s}")
        codes.add(int(m.group(1)))
    return all_warnings, frozenset(codes)


def _position(obj: Any) -> Position:
    if not isinstance(obj, dict):
        raise ValueError("position must be an object")
    line = obj.get("line")
    col = obj.get("col")
    if not isinstance(line, int) or not isinstance(col, int):
        raise ValueError("position line/col must be integers")
    return Position(line=line, col=col)


def _code(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("error_code must be an integer")
    if isinstance(raw, int):
        return raw
    m = _CODE_RE.match(str(raw).strip())
    if not m:
        raise ValueError(f"invalid error_code: {raw!r}")
    return int(m.group(1))


def diagnostic_from_record(obj: Dict[str, Any]) -> Diagnostic:
    loc = obj.get("loc")
    if not isinstance(loc, dict):
        raise ValueError("missing loc")
    path = loc.get("path")
    if not isinstance(path, str) or not path:
        raise ValueError("loc.path must be a non-empty string")
    message = obj.get("message")
    if not isinstance(message, str):
        raise ValueError("message must be a string")
    return Diagnostic(
        level=Level.parse(obj.get("level")),
        code=_code(obj.get("error_code")),
        path=path,
        begin=_position(loc.get("start")),
        end=_position(loc.get("end")),
        message=message,
    )


def decode_diagnostics(stdout: str) -> Tuple[List[Diagnostic], int]:
    """Decode JSON-lines checker output.

    Returns the decoded diagnostics and the number of records that looked
    like JSON but could not be decoded.  Plain text lines (build progress,
    ``failed: moonc ...``) are not records and are ignored.
    """
    out: List[Diagnostic] = []
    skipped = 0
    for line in stdout.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            obj = json.loads(line)
            if not isinstance(obj, dict):
                raise ValueError("record must be an object")
            out.append(diagnostic_from_record(obj))
        except ValueError:
            # json.JSONDecodeError is a ValueError
            skipped += 1
    return out, skipped


def unit_of_path(path: str, smap: SourceMap) -> Optional[str]:
    name = re.split(r"[\\/]", path)[-1]
    if name in smap:
        return name
    return None


def _translate_position(smap: SourceMap, unit: str, pos: Position) -> Position:
    line, col = smap.resolve(unit, pos.line, pos.col)
    return Position(line=line, col=col)


def translate_message(message: str, smap: SourceMap, document_path: str) -> str:
    def repl(m: "re.Match[str]") -> str:
        unit = unit_of_path(m.group("path"), smap)
        if unit is None:
            return m.group(0)
        bl, bc = smap.resolve(unit, int(m.group("bl")), int(m.group("bc")))
        if m.group("el") is None:
            return f"{document_path}:{bl}:{bc}"
        el, ec = smap.resolve(unit, int(m.group("el")), int(m.group("ec")))
        return f"{document_path}:{bl}:{bc}-{el}:{ec}"

    return _MESSAGE_LOCATION_RE.sub(repl, message)


def translate_diagnostic(
    diag: Diagnostic, smap: SourceMap, document_path: str
) -> Diagnostic:
    message = translate_message(diag.message, smap, document_path)
    unit = unit_of_path(diag.path, smap)
    if unit is None:
        return replace(diag, message=message)
    return Diagnostic(
        level=diag.level,
        code=diag.code,
        path=document_path,
        begin=_translate_position(smap, unit, diag.begin),
        end=_translate_position(smap, unit, diag.end),
        message=message,
    )


def _paint(text: str, sgr: str, color: bool) -> str:
    return f"\x1b[{sgr}m{text}\x1b[0m" if color else text


def render_diagnostic(diag: Diagnostic, color: bool = False) -> str:
    where = (
        f"{diag.path}:{diag.begin.line}:{diag.begin.col}"
        f"-{diag.end.line}:{diag.end.col}"
    )
    tag = ""
    if diag.code is not None:
        tag = _paint(f"[E{diag.code:04d}]", RED, color) + " "
    label = diag.level.label
    if diag.level == Level.WARNING:
        label = _paint(label, YELLOW, color)
    return f"{where}\n  {tag}{label}: {diag.message}"


@dataclass(frozen=True)
class Report:
    blocks: List[str]
    printed: int
    suppressed: int
    skipped: int

    @property
    def decoded(self) -> int:
        return self.printed + self.suppressed


def build_report(
    stdout: str,
    smap: SourceMap,
    document_path: str,
    suppression: SuppressionConfig,
    color: bool = False,
) -> Report:
    diags, skipped = decode_diagnostics(stdout)
    blocks: List[str] = []
    suppressed = 0
    for diag in diags:
        if suppression.suppresses(diag):
            suppressed += 1
            continue
        translated = translate_diagnostic(diag, smap, document_path)
        blocks.append(render_diagnostic(translated, color=color))
    return Report(
        blocks=blocks, printed=len(blocks), suppressed=suppressed, skipped=skipped
    )
