from __future__ import annotations

import json
from typing import Any, Dict, Optional

import pytest

from md_fences import iter_fences
from mbt_blocks import classify_fence, wrap_segment
from moon_diagnostics import (
    Diagnostic,
    Level,
    Position,
    SuppressionConfig,
    build_report,
    decode_diagnostics,
    parse_suppress_list,
    render_diagnostic,
    translate_diagnostic,
    translate_message,
)
from source_map import SourceMap

DOC = "# Title\n\nSome text\n```mbt\nlet a = 1\nlet b = 2\nlet c = 3\n```\n"


def _smap(text: str = DOC) -> SourceMap:
    segs = [classify_fence(t) for t in iter_fences(text)]
    return SourceMap.build(wrap_segment(s) for s in segs if s is not None)


def _record(
    line: int,
    col: int = 5,
    level: str = "error",
    code: Optional[int] = 4021,
    message: str = "The value identifier x is unbound.",
    path: str = "/tmp/mdlint-abc/main.mbt",
) -> str:
    obj: Dict[str, Any] = {
        "$message_type": "diagnostic",
        "level": level,
        "loc": {
            "path": path,
            "start": {"line": line, "col": col},
            "end": {"line": line, "col": col + 1},
        },
        "message": message,
        "error_code": code,
    }
    return json.dumps(obj)


def _diag(level: Level = Level.ERROR, code: Optional[int] = 1001) -> Diagnostic:
    return Diagnostic(
        level=level,
        code=code,
        path="main.mbt",
        begin=Position(1, 1),
        end=Position(1, 2),
        message="m",
    )


def test_decode_structured_records() -> None:
    out = "\n".join([_record(2), _record(3, level="warning", code=2)])
    diags, skipped = decode_diagnostics(out)
    assert skipped == 0
    assert [d.level for d in diags] == [Level.ERROR, Level.WARNING]
    assert diags[0].code == 4021
    assert diags[0].begin == Position(2, 5)
    assert diags[0].end == Position(2, 6)
    assert diags[1].code == 2


def test_decode_ignores_plain_text_and_skips_malformed_records() -> None:
    out = "\n".join(
        [
            "Finished. moon: ran 1 task, now up to date",
            _record(1),
            '{"level": "error", "loc": ',
            '{"level": "bogus", "loc": {"path": "main.mbt"}, "message": "x"}',
            "failed: moonc check -pkg demo",
            _record(2, code=None),
        ]
    )
    diags, skipped = decode_diagnostics(out)
    assert len(diags) == 2
    assert skipped == 2
    assert diags[1].code is None


def test_decode_accepts_prefixed_string_codes() -> None:
    diags, _ = decode_diagnostics(_record(1).replace("4021", '"E4021"'))
    assert diags[0].code == 4021


def test_parse_suppress_list() -> None:
    assert parse_suppress_list("") == (False, frozenset())
    assert parse_suppress_list("all-warnings") == (True, frozenset())
    assert parse_suppress_list("e1001,E1002, 3") == (False, frozenset({1001, 1002, 3}))
    assert parse_suppress_list("1001,all-warnings") == (True, frozenset({1001}))
    with pytest.raises(ValueError):
        parse_suppress_list("e10x1")


def test_suppression_by_code() -> None:
    cfg = SuppressionConfig(codes=frozenset({1001}))
    assert cfg.suppresses(_diag(code=1001))
    assert not cfg.suppresses(_diag(code=1002))
    assert not cfg.suppresses(_diag(code=None))


def test_all_warnings_drops_only_warnings() -> None:
    cfg = SuppressionConfig(all_warnings=True)
    assert cfg.suppresses(_diag(level=Level.WARNING, code=None))
    assert not cfg.suppresses(_diag(level=Level.ERROR, code=None))
    assert not cfg.suppresses(_diag(level=Level.INFO, code=None))


def test_inline_codes_are_scoped_to_a_copy() -> None:
    base = SuppressionConfig(codes=frozenset({1}))
    doc = base.with_inline([2, 3])
    assert doc.codes == frozenset({1, 2, 3})
    assert base.codes == frozenset({1})
    off = SuppressionConfig(codes=frozenset({1}), honor_inline=False)
    assert off.with_inline([2]).codes == frozenset({1})


def test_translate_diagnostic_rewrites_positions_and_path() -> None:
    diags, _ = decode_diagnostics(_record(2, col=5))
    out = translate_diagnostic(diags[0], _smap(), "docs/README.md")
    assert out.path == "docs/README.md"
    assert out.begin == Position(6, 5)
    assert out.end == Position(6, 6)


def test_translate_leaves_unknown_files_alone() -> None:
    diags, _ = decode_diagnostics(_record(2, path="/tmp/x/moon.pkg.json"))
    out = translate_diagnostic(diags[0], _smap(), "README.md")
    assert out == diags[0]


def test_translate_message_rewrites_embedded_locations() -> None:
    msg = "The value x is defined at /tmp/mdlint-abc/main.mbt:1:5-1:6, and at other.mbt:3:1"
    out = translate_message(msg, _smap(), "README.md")
    assert out == "The value x is defined at README.md:5:5-5:6, and at other.mbt:3:1"
    assert translate_message("see main.mbt:3:2", _smap(), "README.md") == "see README.md:7:2"


def test_render_diagnostic() -> None:
    diag = Diagnostic(
        level=Level.WARNING,
        code=2,
        path="README.md",
        begin=Position(6, 5),
        end=Position(6, 6),
        message="Unused variable 'b'",
    )
    assert render_diagnostic(diag) == (
        "README.md:6:5-6:6\n  [E0002] Warning: Unused variable 'b'"
    )
    no_code = Diagnostic(
        level=Level.ERROR,
        code=None,
        path="README.md",
        begin=Position(1, 1),
        end=Position(1, 2),
        message="boom",
    )
    assert render_diagnostic(no_code) == "README.md:1:1-1:2\n  Error: boom"


def test_render_diagnostic_with_color() -> None:
    warning = _diag(level=Level.WARNING, code=2)
    assert render_diagnostic(warning, color=True) == (
        "main.mbt:1:1-1:2\n  \x1b[31m[E0002]\x1b[0m \x1b[33mWarning\x1b[0m: m"
    )
    error = _diag(level=Level.ERROR, code=None)
    assert render_diagnostic(error, color=True) == "main.mbt:1:1-1:2\n  Error: m"


def test_build_report_filters_and_counts() -> None:
    out = "\n".join(
        [
            _record(1, code=1001),
            _record(2, code=1002),
            _record(3, code=4021),
            _record(3, level="warning", code=2),
            "{not json}",
        ]
    )
    cfg = SuppressionConfig(all_warnings=False, codes=frozenset({1001, 1002}))
    report = build_report(out, _smap(), "README.md", cfg)
    assert report.printed == 2
    assert report.suppressed == 2
    assert report.skipped == 1
    assert report.decoded == 4
    assert report.blocks[0].startswith("README.md:7:5-7:6\n  [E4021] Error:")
    assert report.blocks[1].startswith("README.md:7:5-7:6\n  [E0002] Warning:")
