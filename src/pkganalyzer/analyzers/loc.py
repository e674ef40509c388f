"""Lines-of-code counting.

Non-Julia languages are counted with ``tokei``. Julia files are counted in
process so that docstrings can be told apart from comments and code: every
line gets exactly one category, the highest of Blank < Code < Comment <
Docstring among the things on it.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from collections import defaultdict
from enum import IntEnum
from pathlib import Path

from pkganalyzer.models.schemas import LocRow

logger = logging.getLogger(__name__)

TOKEI_TIMEOUT = 300


class LineCategory(IntEnum):
    BLANK = 0
    CODE = 1
    COMMENT = 2
    DOCSTRING = 3


_DOC_PREFIXES = ("", "@doc", "@doc raw")

_IDENT_TAIL = re.compile(r"[A-Za-z_][A-Za-z0-9_!]*$")

# after these a quote starts a character literal, not an adjoint
_KEYWORDS = frozenset(
    {
        "begin", "catch", "const", "do", "else", "elseif", "finally", "for", "global",
        "if", "in", "isa", "let", "local", "return", "try", "where", "while",
    }
)


def _is_adjoint(text: str, line_start: int, prev: int) -> bool:
    """Whether a ``'`` following position `prev` is the adjoint operator."""
    if prev < line_start:
        return False
    ch = text[prev]
    if ch in ")]}'":
        return True
    if not (ch.isalnum() or ch in "_!"):
        return False
    word = _IDENT_TAIL.search(text, line_start, prev + 1)
    return word is None or word.group() not in _KEYWORDS


def _char_literal_end(text: str, i: int) -> int | None:
    """Index just past the character literal opening at `i`, if there is one."""
    j = i + 1
    if text[j : j + 1] == "\\":
        # '\n', '\'' or '\u00e9'
        close = text.find("'", j + 2, j + 12)
        if close == -1 or "\n" in text[j:close]:
            return None
        return close + 1
    if text[j : j + 1] not in ("", "\n") and text[j + 1 : j + 2] == "'":
        return j + 2
    return None


def categorize_julia_lines(text: str) -> list[LineCategory]:
    """Assign a single category to every line of a Julia source file."""
    if not text:
        return []
    n_lines = text.count("\n") + (0 if text.endswith("\n") else 1)
    cats = [LineCategory.BLANK] * n_lines

    def mark(line: int, category: LineCategory) -> None:
        if line < n_lines and category > cats[line]:
            cats[line] = category

    state = "code"
    depth = 0
    line = 0
    line_start = 0
    prev = -1  # last non-blank code character
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\n":
            if state == "comment":
                state = "code"
            line += 1
            line_start = i + 1
            i += 1
            continue

        if state == "code":
            if ch.isspace():
                i += 1
            elif text.startswith("#=", i):
                state, depth = "block", 1
                mark(line, LineCategory.COMMENT)
                i += 2
            elif ch == "#":
                state = "comment"
                mark(line, LineCategory.COMMENT)
                i += 1
            elif text.startswith('"""', i):
                prefix = text[line_start:i].strip()
                if prefix in _DOC_PREFIXES:
                    state = "doc"
                    mark(line, LineCategory.DOCSTRING)
                else:
                    state = "triple"
                    mark(line, LineCategory.CODE)
                i += 3
            elif ch == '"':
                state = "string"
                mark(line, LineCategory.CODE)
                i += 1
            elif ch == "'" and not _is_adjoint(text, line_start, prev):
                mark(line, LineCategory.CODE)
                end = _char_literal_end(text, i)
                prev = end - 1 if end else i
                i = end or i + 1
            else:
                mark(line, LineCategory.CODE)
                prev = i
                i += 1
        elif state == "comment":
            mark(line, LineCategory.COMMENT)
            i += 1
        elif state == "block":
            mark(line, LineCategory.COMMENT)
            if text.startswith("#=", i):
                depth += 1
                i += 2
            elif text.startswith("=#", i):
                depth -= 1
                i += 2
                if depth == 0:
                    state = "code"
            else:
                i += 1
        else:
            category = LineCategory.DOCSTRING if state == "doc" else LineCategory.CODE
            mark(line, category)
            if ch == "\\" and text[i + 1 : i + 2] not in ("", "\n"):
                i += 2
            elif state in ("doc", "triple") and text.startswith('"""', i):
                state = "code"
                i += 3
            elif state == "string" and ch == '"':
                state = "code"
                i += 1
            else:
                i += 1

    return cats


def _top_level(rel: Path) -> str:
    return rel.parts[0] if rel.parts else "."


def count_julia(directory: Path) -> list[LocRow]:
    """Julia line counts per top-level entry, docstrings as a Markdown sublanguage."""
    totals: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if d != ".git")
        for fname in sorted(files):
            if not fname.endswith(".jl"):
                continue
            path = Path(root) / fname
            try:
                with open(path, encoding="utf-8", errors="replace") as f:
                    cats = categorize_julia_lines(f.read())
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
                continue
            counts = totals[_top_level(path.relative_to(directory))]
            counts["files"] += 1
            for cat in cats:
                counts[cat.name] += 1

    rows = []
    for top, counts in totals.items():
        rows.append(
            LocRow(
                directory=top,
                language="Julia",
                files=counts["files"],
                code=counts["CODE"],
                comments=counts["COMMENT"],
                blanks=counts["BLANK"],
            )
        )
        if counts["DOCSTRING"]:
            rows.append(
                LocRow(
                    directory=top,
                    language="Julia",
                    sublanguage="Markdown",
                    files=counts["files"],
                    code=counts["DOCSTRING"],
                )
            )
    return rows


def run_tokei(directory: Path) -> dict | None:
    """Raw ``tokei --output json`` output for `directory`, or None on failure."""
    try:
        p = subprocess.run(
            ["tokei", "--output", "json", "."],
            cwd=str(directory),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=TOKEI_TIMEOUT,
            check=True,
        )
        return json.loads(p.stdout)
    except FileNotFoundError:
        logger.error("tokei is not installed; only Julia code will be counted")
    except (subprocess.SubprocessError, ValueError) as e:
        logger.error(f"tokei failed on {directory}: {e}")
    return None


def _add_report(totals: dict, key: tuple, report: dict) -> None:
    stats = report.get("stats", {})
    counts = totals[key]
    counts["files"] += 1
    for field in ("code", "comments", "blanks"):
        counts[field] += stats.get(field, 0)


def parse_tokei(data: dict) -> list[LocRow]:
    """Per top-level entry rows from tokei output, leaving Julia out."""
    totals: dict[tuple, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for language, language_data in data.items():
        if language in ("Total", "Julia") or not isinstance(language_data, dict):
            continue
        if language_data.get("inaccurate"):
            continue
        for report in language_data.get("reports", []):
            top = _top_level(Path(os.path.normpath(report["name"])))
            _add_report(totals, (top, language, None), report)
        for sublanguage, reports in (language_data.get("children") or {}).items():
            for report in reports:
                top = _top_level(Path(os.path.normpath(report["name"])))
                _add_report(totals, (top, language, sublanguage), report)

    return [
        LocRow(directory=top, language=language, sublanguage=sublanguage, **counts)
        for (top, language, sublanguage), counts in totals.items()
    ]


def count_loc(directory: str | Path) -> list[LocRow]:
    """Line counts for `directory`, one row per (top-level entry, language)."""
    directory = Path(directory)
    rows = count_julia(directory)
    data = run_tokei(directory)
    if data is not None:
        rows.extend(parse_tokei(data))
    rows.sort(key=lambda r: (r.directory, r.language, r.sublanguage or ""))
    return rows
