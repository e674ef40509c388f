"""Tests for license file detection."""

from __future__ import annotations

from pathlib import Path

import pytest

from pkganalyzer.analyzers.licenses import (
    LICENSE_FILE_RE,
    find_licenses,
    is_osi_approved,
    match_license_text,
)

MIT = """MIT License

Copyright (c) 2024 Jane Doe

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED.
"""

APACHE_HEAD = """
                                 Apache License
                           Version 2.0, January 2004
                        http://www.apache.org/licenses/
"""

BSD3 = """Copyright (c) 2020, The Authors
All rights reserved.

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:

* Neither the name of the copyright holder nor the names of its
  contributors may be used to endorse or promote products derived from
  this software without specific prior written permission.
"""

GPL3 = """This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""


class TestMatchLicenseText:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            (MIT, "MIT"),
            (APACHE_HEAD, "Apache-2.0"),
            (BSD3, "BSD-3-Clause"),
            (GPL3, "GPL-3.0-or-later"),
            ("SPDX-License-Identifier: MPL-2.0\n", "MPL-2.0"),
        ],
    )
    def test_known(self, text: str, expected: str) -> None:
        assert match_license_text(text) == expected

    def test_markdown_formatting_ignored(self) -> None:
        text = MIT.replace("MIT License", "# MIT License").replace("Permission", "> Permission")
        assert match_license_text(text) == "MIT"

    def test_unknown(self) -> None:
        assert match_license_text("All rights reserved. Do not copy.") is None


class TestLicenseFilenames:
    @pytest.mark.parametrize(
        "name", ["LICENSE", "LICENSE.md", "License.txt", "LICENCE", "COPYING", "license-MIT", "UNLICENSE"]
    )
    def test_matches(self, name: str) -> None:
        assert LICENSE_FILE_RE.match(name)

    @pytest.mark.parametrize("name", ["README.md", "licensed.txt", "NOTICE"])
    def test_does_not_match(self, name: str) -> None:
        assert not LICENSE_FILE_RE.match(name)


class TestFindLicenses:
    def test_finds_mit(self, tmp_path: Path) -> None:
        (tmp_path / "LICENSE.md").write_text(MIT)
        (tmp_path / "README.md").write_text("# readme\n")

        (found,) = find_licenses(tmp_path)

        assert found.license_filename == "LICENSE.md"
        assert found.licenses_found == ["MIT"]
        assert found.license_file_percent_covered == 100.0

    def test_preamble_lowers_coverage(self, tmp_path: Path) -> None:
        (tmp_path / "LICENSE").write_text("The Foo.jl package is released under:\n\n" + MIT)
        (found,) = find_licenses(tmp_path)
        assert found.license_file_percent_covered < 100.0

    def test_unrecognised_files_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "LICENSE").write_text("Proprietary. Ask first.\n")
        assert find_licenses(tmp_path) == []

    def test_several_files_sorted(self, tmp_path: Path) -> None:
        (tmp_path / "LICENSE.md").write_text(MIT)
        (tmp_path / "COPYING").write_text(GPL3)
        assert [f.license_filename for f in find_licenses(tmp_path)] == ["COPYING", "LICENSE.md"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert find_licenses(tmp_path / "gone") == []


def test_osi_approved() -> None:
    assert is_osi_approved("MIT")
    assert not is_osi_approved("WTFPL")
