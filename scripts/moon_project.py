#!/usr/bin/env python3
"""
Throwaway ``moon`` projects and the checker that runs inside them.
"""

import os
import re
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from mbt_blocks import DEFAULT_UNIT

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
DEFAULT_TIMEOUT_S = 120
DEFAULT_PROJECT_NAME = "mdlint"


def setup_jinja_env(template_dir: Path = TEMPLATE_DIR) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def project_name_for(document_path: str) -> str:
    stem = Path(document_path).stem
    name = re.sub(r"[^A-Za-z0-9_-]+", "_", stem).strip("_")
    return name or DEFAULT_PROJECT_NAME


def write_project(
    project_dir: Path,
    project_name: str,
    sources: Dict[str, str],
    env: Optional[Environment] = None,
) -> List[Path]:
    """Write moon.mod.json, moon.pkg.json and every generated unit."""
    env = env or setup_jinja_env()
    written: List[Path] = []

    mod = env.get_template("moon.mod.json.j2").render(project_name=project_name)
    mod_path = project_dir / "moon.mod.json"
    mod_path.write_text(mod, encoding="utf-8")
    written.append(mod_path)

    pkg = env.get_template("moon.pkg.json.j2").render()
    pkg_path = project_dir / "moon.pkg.json"
    pkg_path.write_text(pkg, encoding="utf-8")
    written.append(pkg_path)

    for unit, text in sources.items():
        unit_path = project_dir / unit
        unit_path.write_text(text, encoding="utf-8")
        written.append(unit_path)
    return written


@contextmanager
def temp_project(project_name: str, sources: Dict[str, str]) -> Iterator[Path]:
    with tempfile.TemporaryDirectory(prefix="mdlint-") as tmp:
        project_dir = Path(tmp)
        write_project(project_dir, project_name, sources)
        yield project_dir


def dump_path(document_path: str, unit: str) -> str:
    if unit == DEFAULT_UNIT:
        return f"{document_path}.mbt"
    return f"{document_path}.{unit}"


def dump_sources(document_path: str, sources: Dict[str, str]) -> List[str]:
    out: List[str] = []
    for unit, text in sources.items():
        path = dump_path(document_path, unit)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        out.append(path)
    return out


@dataclass(frozen=True)
class CheckResult:
    returncode: Optional[int]
    stdout: str
    stderr: str
    # set when the checker could not be run to completion
    error: Optional[str] = None


def moon_command(moon_bin: str = "moon") -> List[str]:
    return [moon_bin, "check", "--output-json"]


def moon_test_command(moon_bin: str = "moon") -> List[str]:
    return [moon_bin, "test"]


class MoonChecker:
    """Type-checks a project with ``moon check --output-json``.

    When the check exits cleanly, ``test { ... }`` blocks are then run with
    ``moon test``; a failing test run is reported as a checker failure and
    its output is kept for the report.
    """

    def __init__(
        self,
        command: Optional[List[str]] = None,
        timeout_s: int = DEFAULT_TIMEOUT_S,
        test_command: Optional[List[str]] = None,
        run_tests: bool = True,
    ) -> None:
        moon_bin = os.environ.get("MOON_BIN", "moon")
        self.command = command or moon_command(moon_bin)
        self.test_command = test_command or moon_test_command(moon_bin)
        self.timeout_s = timeout_s
        self.run_tests = run_tests

    def _run(self, cmd: List[str], project_dir: Path) -> CheckResult:
        try:
            proc = subprocess.run(  # noqa: S603
                cmd,
                cwd=str(project_dir),
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            return CheckResult(
                returncode=None,
                stdout="",
                stderr="",
                error=f"{cmd[1]}: timeout after {self.timeout_s}s",
            )
        except OSError as exc:
            return CheckResult(
                returncode=None,
                stdout="",
                stderr="",
                error=f"failed to run {cmd[0]}: {exc}",
            )
        return CheckResult(
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def check(self, project_dir: Path) -> CheckResult:
        checked = self._run(self.command, project_dir)
        if not self.run_tests or checked.error is not None or checked.returncode != 0:
            return checked

        tested = self._run(self.test_command, project_dir)
        if tested.error is None and tested.returncode == 0:
            return checked
        # test output is plain text; the decoder skips it and keeps the check records
        return CheckResult(
            returncode=tested.returncode,
            stdout="\n".join(s for s in (checked.stdout, tested.stdout) if s),
            stderr="\n".join(s for s in (checked.stderr, tested.stderr) if s),
            error=tested.error or f"moon test exited with {tested.returncode}",
        )
