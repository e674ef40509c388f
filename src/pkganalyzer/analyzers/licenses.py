"""Heuristic license identification for files in a package root."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pkganalyzer.models.schemas import LicenseFile

logger = logging.getLogger(__name__)

MAX_LICENSE_BYTES = 128 * 1024

LICENSE_FILE_RE = re.compile(r"^(licen[cs]e|copying|unlicense)([-._].*)?$", re.IGNORECASE)

SPDX_HEADER_RE = re.compile(r"SPDX-License-Identifier:\s*([A-Za-z0-9.+\-]+)", re.IGNORECASE)

# Checked in order; the first license whose phrases all occur wins.
ANCHOR_PHRASES: dict[str, tuple[str, ...]] = {
    "MIT": (
        "permission is hereby granted, free of charge",
        "the software is provided as is",
    ),
    "Apache-2.0": (
        "apache license",
        "version 2.0, january 2004",
    ),
    "BSD-3-Clause": (
        "redistribution and use in source and binary forms",
        "neither the name of",
    ),
    "BSD-2-Clause": (
        "redistribution and use in source and binary forms",
        "this software is provided by the copyright holders and contributors",
    ),
    "MPL-2.0": (
        "mozilla public license version 2.0",
    ),
    "LGPL-3.0-or-later": (
        "gnu lesser general public license",
        "version 3 of the license, or (at your option) any later version",
    ),
    "LGPL-3.0-only": (
        "gnu lesser general public license",
        "version 3",
    ),
    "LGPL-2.1-or-later": (
        "gnu lesser general public license",
        "version 2.1 of the license, or (at your option) any later version",
    ),
    "AGPL-3.0-or-later": (
        "gnu affero general public license",
        "version 3 of the license, or (at your option) any later version",
    ),
    "AGPL-3.0-only": (
        "gnu affero general public license",
        "version 3",
    ),
    "GPL-3.0-or-later": (
        "gnu general public license",
        "version 3 of the license, or (at your option) any later version",
    ),
    "GPL-2.0-or-later": (
        "gnu general public license",
        "version 2 of the license, or (at your option) any later version",
    ),
    "GPL-3.0-only": (
        "gnu general public license",
        "version 3",
    ),
    "GPL-2.0-only": (
        "gnu general public license",
        "version 2",
    ),
    "EPL-2.0": (
        "eclipse public license",
        "v 2.0",
    ),
    "ISC": (
        "permission to use, copy, modify, and/or distribute this software for any purpose",
    ),
    "Zlib": (
        "this software is provided 'as-is', without any express or implied warranty",
        "altered source versions must be plainly marked as such",
    ),
    "BSL-1.0": (
        "boost software license - version 1.0",
    ),
    "CC0-1.0": (
        "cc0 1.0 universal",
    ),
    "Unlicense": (
        "this is free and unencumbered software released into the public domain",
    ),
    "WTFPL": (
        "do what the fuck you want to public license",
    ),
}

OSI_APPROVED = frozenset(
    {
        "MIT",
        "Apache-2.0",
        "BSD-3-Clause",
        "BSD-2-Clause",
        "MPL-2.0",
        "LGPL-3.0-or-later",
        "LGPL-3.0-only",
        "LGPL-2.1-or-later",
        "AGPL-3.0-or-later",
        "AGPL-3.0-only",
        "GPL-3.0-or-later",
        "GPL-2.0-or-later",
        "GPL-3.0-only",
        "GPL-2.0-only",
        "EPL-2.0",
        "ISC",
        "Zlib",
        "BSL-1.0",
        "Unlicense",
    }
)


def is_osi_approved(spdx: str) -> bool:
    return spdx in OSI_APPROVED


def _normalize(text: str) -> str:
    text = text.lower().replace('"', "").replace("`", "")
    text = re.sub(r"[>*#]+", " ", text)
    return re.sub(r"\s+", " ", text)


def match_license_text(text: str) -> str | None:
    """Best-guess SPDX identifier for a license text."""
    header = SPDX_HEADER_RE.search(text)
    if header:
        return header.group(1)

    normalized = _normalize(text).replace("'", "")
    for spdx, phrases in ANCHOR_PHRASES.items():
        if all(phrase.replace("'", "") in normalized for phrase in phrases):
            return spdx
    return None


def _coverage(text: str) -> float:
    """Share of non-blank lines from the copyright line (or title) onwards."""
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return 0.0
    start = 0
    for i, line in enumerate(lines):
        lowered = line.lower()
        if "copyright" in lowered or "license" in lowered or "licence" in lowered:
            start = i
            break
    return round(100.0 * (len(lines) - start) / len(lines), 1)


def license_candidates(directory: Path) -> list[Path]:
    """Top-level files whose names look like license files."""
    return sorted(
        p for p in directory.iterdir() if p.is_file() and LICENSE_FILE_RE.match(p.name)
    )


def find_licenses(directory: str | Path) -> list[LicenseFile]:
    """Identify the licenses in the license-looking files of `directory`.

    Only files in which a license was recognised are returned. Failures are
    logged and produce an empty list.
    """
    directory = Path(directory)
    results = []
    try:
        for path in license_candidates(directory):
            with open(path, "rb") as f:
                text = f.read(MAX_LICENSE_BYTES).decode("utf-8", errors="replace")
            spdx = match_license_text(text)
            if spdx is None:
                logger.debug(f"No known license recognised in {path}")
                continue
            results.append(
                LicenseFile(
                    license_filename=path.name,
                    licenses_found=[spdx],
                    license_file_percent_covered=_coverage(text),
                )
            )
    except OSError as e:
        logger.error(f"Could not scan {directory} for licenses: {e}")
        return []
    return results
