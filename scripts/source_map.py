#!/usr/bin/env python3
"""
Line/column mapping from generated MoonBit sources back to the markdown
document they were extracted from.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from mbt_blocks import SegmentKind, WrappedSegment


@dataclass(frozen=True)
class Anchor:
    document_line: int
    generated_line: int
    column_offset: int = 0


@dataclass
class UnitMap:
    """Anchor table and generated text of one compilation unit.

    Anchors are appended in document order, so their generated lines never
    decrease; ``resolve`` relies on that and never re-sorts.
    """

    unit: str
    anchors: List[Anchor] = field(default_factory=list)
    chunks: List[str] = field(default_factory=list)
    cursor: int = 1

    def add(self, wrapped: WrappedSegment) -> None:
        seg = wrapped.segment
        if seg.kind == SegmentKind.NO_CHECK:
            return
        first = self.cursor + wrapped.leading_lines
        self.anchors.append(
            Anchor(
                document_line=seg.begin_line + 1,
                generated_line=first,
                column_offset=wrapped.column_offset,
            )
        )
        self.anchors.append(
            Anchor(
                document_line=seg.end_line - 1,
                generated_line=first + wrapped.content_lines,
            )
        )
        self.cursor += (
            wrapped.leading_lines + wrapped.content_lines + wrapped.trailing_lines
        )
        self.chunks.append(wrapped.text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    def floor_index(self, line: int) -> int:
        """Index of the last anchor with ``generated_line <= line``, or -1."""
        lo = 0
        hi = len(self.anchors)
        while lo < hi:
            mid = (lo + hi) // 2
            if self.anchors[mid].generated_line <= line:
                lo = mid + 1
            else:
                hi = mid
        return lo - 1

    def resolve(self, line: int, col: int = 1) -> Tuple[int, int]:
        if not self.anchors:
            raise LookupError(f"no anchors for unit: {self.unit}")
        idx = self.floor_index(line)
        # Before the first block: extrapolate from the nearest anchor.
        anchor = self.anchors[max(idx, 0)]
        doc_line = anchor.document_line + (line - anchor.generated_line)
        doc_col = max(1, col - anchor.column_offset)
        return max(1, doc_line), doc_col


class SourceMap:
    def __init__(self) -> None:
        self._units: Dict[str, UnitMap] = {}

    @classmethod
    def build(cls, wrapped: Iterable[WrappedSegment]) -> "SourceMap":
        smap = cls()
        for w in wrapped:
            smap.add(w)
        return smap

    def add(self, wrapped: WrappedSegment) -> None:
        if wrapped.segment.kind == SegmentKind.NO_CHECK:
            return
        unit = wrapped.segment.unit
        if unit not in self._units:
            self._units[unit] = UnitMap(unit=unit)
        self._units[unit].add(wrapped)

    def __contains__(self, unit: str) -> bool:
        return unit in self._units

    def __len__(self) -> int:
        return len(self._units)

    def units(self) -> List[str]:
        return list(self._units)

    def unit_map(self, unit: str) -> UnitMap:
        try:
            return self._units[unit]
        except KeyError:
            raise LookupError(f"unknown unit: {unit}") from None

    def sources(self) -> Dict[str, str]:
        return {name: u.text for name, u in self._units.items()}

    def resolve(self, unit: str, line: int, col: int = 1) -> Tuple[int, int]:
        return self.unit_map(unit).resolve(line, col)
