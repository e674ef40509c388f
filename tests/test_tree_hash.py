"""Tests for tree hashing and version slugs."""

from __future__ import annotations

import os
from pathlib import Path
from uuid import UUID

import pytest

from pkganalyzer.acquisition.tree_hash import (
    EMPTY_TREE_HASH,
    SLUG_CHARS,
    crc32c,
    slug,
    tree_hash,
    tree_hash_matches,
    version_slug,
)

from conftest import EXAMPLE_UUID


def _populate(root: Path) -> Path:
    (root / "src").mkdir(parents=True)
    (root / "src" / "Pkg.jl").write_text("module Pkg end\n")
    (root / "README.md").write_text("# Pkg\n")
    return root


class TestTreeHash:
    def test_empty_directory(self, tmp_path: Path) -> None:
        assert tree_hash(tmp_path) == EMPTY_TREE_HASH

    def test_only_empty_subdirectories(self, tmp_path: Path) -> None:
        (tmp_path / "a" / "b").mkdir(parents=True)
        assert tree_hash(tmp_path) == EMPTY_TREE_HASH

    def test_empty_subdirectory_ignored(self, tmp_path: Path) -> None:
        base = tree_hash(_populate(tmp_path / "x"))
        (tmp_path / "x" / "empty").mkdir()
        assert tree_hash(tmp_path / "x") == base

    def test_dot_git_ignored(self, tmp_path: Path) -> None:
        base = tree_hash(_populate(tmp_path / "x"))
        (tmp_path / "x" / ".git").mkdir()
        (tmp_path / "x" / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        assert tree_hash(tmp_path / "x") == base

    def test_timestamps_ignored(self, tmp_path: Path) -> None:
        root = _populate(tmp_path / "x")
        base = tree_hash(root)
        os.utime(root / "README.md", (0, 0))
        assert tree_hash(root) == base

    def test_content_changes_hash(self, tmp_path: Path) -> None:
        root = _populate(tmp_path / "x")
        base = tree_hash(root)
        (root / "README.md").write_text("# Pkg, changed\n")
        assert tree_hash(root) != base

    def test_executable_bit_changes_hash(self, tmp_path: Path) -> None:
        root = _populate(tmp_path / "x")
        base = tree_hash(root)
        (root / "README.md").chmod(0o755)
        assert tree_hash(root) != base

    def test_only_owner_execute_bit_counts(self, tmp_path: Path) -> None:
        root = _populate(tmp_path / "x")
        base = tree_hash(root)
        (root / "README.md").chmod(0o600)
        assert tree_hash(root) == base

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="no named pipes on this platform")
    def test_fifo_ignored(self, tmp_path: Path) -> None:
        root = _populate(tmp_path / "x")
        base = tree_hash(root)
        os.mkfifo(root / "pipe")
        assert tree_hash(root) == base

    def test_identical_trees_hash_equal(self, tmp_path: Path) -> None:
        assert tree_hash(_populate(tmp_path / "x")) == tree_hash(_populate(tmp_path / "y"))

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            tree_hash(tmp_path / "missing")

    def test_matches_git(self, git_repo: tuple[Path, str]) -> None:
        repo, expected = git_repo
        assert tree_hash(repo) == expected

    def test_matches_git_nested(self, git_repo: tuple[Path, str]) -> None:
        from conftest import git

        repo, _ = git_repo
        expected = git(repo, "rev-parse", "HEAD:a")
        assert tree_hash(repo / "a") == expected


class TestTreeHashMatches:
    def test_missing_directory(self, tmp_path: Path) -> None:
        assert tree_hash_matches(tmp_path / "missing", EMPTY_TREE_HASH) is False

    def test_file_is_not_a_tree(self, tmp_path: Path) -> None:
        f = tmp_path / "file"
        f.write_text("x")
        assert tree_hash_matches(f, EMPTY_TREE_HASH) is False

    def test_case_insensitive(self, tmp_path: Path) -> None:
        assert tree_hash_matches(tmp_path, EMPTY_TREE_HASH.upper()) is True


class TestCrc32c:
    def test_check_value(self) -> None:
        assert crc32c(b"123456789") == 0xE3069283

    def test_empty(self) -> None:
        assert crc32c(b"") == 0

    def test_continuation(self) -> None:
        assert crc32c(b"6789", crc32c(b"12345")) == crc32c(b"123456789")


class TestVersionSlug:
    def test_slug_digits_least_significant_first(self) -> None:
        assert slug(0) == "AAAAA"
        assert slug(1) == "BAAAA"
        assert slug(62) == "ABAAA"

    def test_shape(self) -> None:
        s = version_slug(EXAMPLE_UUID, "46e44e869b4d90b96bd8ed1fdcf32244fddfb6cc")
        assert len(s) == 5
        assert all(c in SLUG_CHARS for c in s)

    def test_deterministic(self) -> None:
        h = "46e44e869b4d90b96bd8ed1fdcf32244fddfb6cc"
        assert version_slug(EXAMPLE_UUID, h) == version_slug(EXAMPLE_UUID, h)

    def test_depends_on_uuid_and_hash(self) -> None:
        h = "46e44e869b4d90b96bd8ed1fdcf32244fddfb6cc"
        other = UUID("00000000-0000-0000-0000-000000000001")
        assert version_slug(EXAMPLE_UUID, h) != version_slug(other, h)
        assert version_slug(EXAMPLE_UUID, h) != version_slug(EXAMPLE_UUID, "0" * 40)

    def test_matches_crc_of_uuid_then_hash(self) -> None:
        h = "46e44e869b4d90b96bd8ed1fdcf32244fddfb6cc"
        crc = crc32c(EXAMPLE_UUID.int.to_bytes(16, "little") + bytes.fromhex(h))
        assert version_slug(EXAMPLE_UUID, h) == slug(crc)
