#!/usr/bin/env python3
"""
Markdown linter for MoonBit.

Extracts ```mbt / ```moonbit fenced blocks from markdown documents, checks
them with ``moon check`` (then ``moon test``) inside a temporary project and
reports the diagnostics at their markdown line/column.

Usage: lint-moonbit-md.py [options] FILE...
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol

from md_fences import iter_fences
from mbt_blocks import Segment, SegmentKind, classify_fence, wrap_segment
from moon_diagnostics import (
    Report,
    SuppressionConfig,
    build_report,
    parse_suppress_list,
    translate_message,
)
from moon_project import (
    DEFAULT_TIMEOUT_S,
    CheckResult,
    MoonChecker,
    dump_sources,
    project_name_for,
    temp_project,
)
from source_map import SourceMap

__version__ = "0.3.0"

TAG = "[mdlint]"


class Checker(Protocol):
    def check(self, project_dir: Path) -> CheckResult: ...


@dataclass
class DocumentResult:
    path: str
    ok: bool
    blocks: List[str] = field(default_factory=list)
    error: Optional[str] = None
    report: Optional[Report] = None
    # checker text forwarded as-is when the run failed
    checker_output: str = ""


def eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def collect_segments(text: str, honor_inline: bool = True) -> List[Segment]:
    out: List[Segment] = []
    for token in iter_fences(text):
        seg = classify_fence(token, honor_inline=honor_inline)
        if seg is not None:
            out.append(seg)
    return out


def build_source_map(segments: List[Segment]) -> SourceMap:
    return SourceMap.build(
        wrap_segment(seg) for seg in segments if seg.kind != SegmentKind.NO_CHECK
    )


def inline_codes(segments: List[Segment]) -> List[int]:
    codes = set()
    for seg in segments:
        codes.update(seg.suppressed_codes)
    return sorted(codes)


def invocation_failed(result: CheckResult, report: Report) -> bool:
    """A checker run failed unless it exited cleanly or reported on the code."""
    if result.error is not None:
        return True
    if result.returncode == 0:
        return False
    return report.decoded == 0


def lint_text(
    document_path: str,
    text: str,
    suppression: SuppressionConfig,
    checker: Checker,
    dump: bool = False,
    color: bool = False,
) -> DocumentResult:
    segments = collect_segments(text, honor_inline=suppression.honor_inline)
    doc_suppression = suppression.with_inline(inline_codes(segments))
    smap = build_source_map(segments)
    if len(smap) == 0:
        return DocumentResult(path=document_path, ok=True)

    sources = smap.sources()
    try:
        if dump:
            for path in dump_sources(document_path, sources):
                eprint(f"{TAG} dumped {path}")
        with temp_project(project_name_for(document_path), sources) as project_dir:
            result = checker.check(project_dir)
    except OSError as exc:
        return DocumentResult(
            path=document_path,
            ok=False,
            error=f"cannot write generated sources: {exc}",
        )

    report = build_report(
        result.stdout, smap, document_path, doc_suppression, color=color
    )

    if invocation_failed(result, report):
        error = result.error or f"checker exited with {result.returncode}"
        return DocumentResult(
            path=document_path,
            ok=False,
            blocks=report.blocks,
            error=error,
            report=report,
            checker_output=translate_message(
                "\n".join(s.strip() for s in (result.stdout, result.stderr) if s.strip()),
                smap,
                document_path,
            ),
        )
    return DocumentResult(
        path=document_path, ok=True, blocks=report.blocks, report=report
    )


def lint_document(
    document_path: str,
    suppression: SuppressionConfig,
    checker: Checker,
    dump: bool = False,
    color: bool = False,
) -> DocumentResult:
    try:
        text = read_text(document_path)
    except (OSError, UnicodeDecodeError) as exc:
        return DocumentResult(
            path=document_path, ok=False, error=f"cannot read document: {exc}"
        )
    return lint_text(
        document_path, text, suppression, checker, dump=dump, color=color
    )


def positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lint-moonbit-md",
        description="Check MoonBit code blocks embedded in markdown documents",
        epilog="Example: lint-moonbit-md.py README.md -s e0001,e0002",
    )
    ap.add_argument("paths", nargs="*", help="Markdown documents to lint")
    ap.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Print the version of the linter and exit",
    )
    ap.add_argument(
        "-d",
        "--dump",
        action="store_true",
        help="Write the generated MoonBit sources next to each document",
    )
    ap.add_argument(
        "-s",
        "--suppress",
        default="",
        help="Comma-separated diagnostic codes to suppress, or 'all-warnings'",
    )
    ap.add_argument(
        "--ignore-inline-suppress",
        action="store_true",
        help="Ignore -eNNNN suppression markers in fence headers",
    )
    ap.add_argument(
        "--timeout",
        type=positive_int,
        default=DEFAULT_TIMEOUT_S,
        help=f"Timeout in seconds for each moon run (default: {DEFAULT_TIMEOUT_S})",
    )
    ap.add_argument(
        "--no-test",
        action="store_true",
        help="Only type-check; do not run test blocks with moon test",
    )
    return ap


def main(argv: List[str], checker: Optional[Checker] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.version:
        print(f"Markdown linter {__version__}")
        return 0
    if not args.paths:
        ap.error("at least one markdown document is required")

    try:
        all_warnings, codes = parse_suppress_list(args.suppress)
    except ValueError as exc:
        ap.error(str(exc))
    suppression = SuppressionConfig(
        all_warnings=all_warnings,
        codes=codes,
        honor_inline=not args.ignore_inline_suppress,
    )
    if checker is None:
        checker = MoonChecker(timeout_s=args.timeout, run_tests=not args.no_test)
    color = sys.stdout.isatty()

    failed: List[DocumentResult] = []
    for path in args.paths:
        res = lint_document(path, suppression, checker, dump=args.dump, color=color)
        for block in res.blocks:
            print(block)
        if res.report is not None:
            eprint(
                f"{TAG} {path}: {res.report.printed} diagnostic(s), "
                f"{res.report.suppressed} suppressed, {res.report.skipped} skipped"
            )
        if not res.ok:
            failed.append(res)
            if res.checker_output:
                eprint(res.checker_output)
            eprint(f"{TAG} {path}: FAILED: {res.error}")

    if failed:
        eprint(f"{TAG} {len(failed)} document(s) failed")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
