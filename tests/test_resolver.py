"""Tests for the cache-aware resolver that sits in front of the strategies."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.acquisition.resolver import cache_path, obtain_code
from pkganalyzer.acquisition.strategies import Acquired, Strategy, StrategySet, Unreachable
from pkganalyzer.acquisition.tree_hash import tree_hash, version_slug
from pkganalyzer.errors import AcquisitionError
from pkganalyzer.models.schemas import Added, Dev, Release, Trunk

from conftest import EXAMPLE_UUID

FILES = {
    "Project.toml": 'name = "Example"\n',
    "src/Example.jl": "module Example\nend\n",
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


class WriteTree(Strategy):
    """Writes a fixed set of files; counts how often it ran."""

    name = "tree_hash_fetch"

    def __init__(self, files: dict[str, str] = FILES) -> None:
        self.files = files
        self.calls = 0
        self._lock = threading.Lock()

    def acquire(self, descriptor, dest, ctx):
        with self._lock:
            self.calls += 1
        write_tree(dest, self.files)
        return Acquired(dest)


class NeverReachable(Strategy):
    name = "tree_hash_fetch"

    def acquire(self, descriptor, dest, ctx):
        return Unreachable("offline")


@pytest.fixture
def expected(tmp_path: Path) -> str:
    return tree_hash(write_tree(tmp_path / "reference", FILES))


@pytest.fixture
def release(expected: str) -> Release:
    return Release(
        name="Example",
        uuid=EXAMPLE_UUID,
        repo="https://github.com/JuliaLang/Example.jl.git",
        tree_hash=expected,
        version="0.5.4",
    )


def _ctx(tmp_path: Path, **strategies) -> AcquireContext:
    return AcquireContext(
        cache_root=tmp_path / "cache",
        depots=[tmp_path / "depot"],
        strategies=StrategySet(**strategies),
    )


class TestPinned:
    def test_cache_path(self, tmp_path: Path, release: Release) -> None:
        slug = version_slug(release.uuid, release.tree_hash)
        assert cache_path(release, tmp_path) == tmp_path / "Example" / slug

    def test_fresh_acquisition(self, tmp_path: Path, release: Release, expected: str) -> None:
        strategy = WriteTree()
        ctx = _ctx(tmp_path, tree_hash_fetch=strategy)

        result = obtain_code(release, ctx)

        assert result.reachable
        assert result.version == "0.5.4"
        assert result.path == cache_path(release, ctx.cache_root)
        assert tree_hash(result.path) == expected
        assert strategy.calls == 1

    def test_second_call_hits_cache(self, tmp_path: Path, release: Release) -> None:
        strategy = WriteTree()
        ctx = _ctx(tmp_path, tree_hash_fetch=strategy)

        first = obtain_code(release, ctx)
        second = obtain_code(release, ctx)

        assert first == second
        assert strategy.calls == 1
        assert ctx.metrics.strategy_count("tree_hash_fetch") == 1
        assert ctx.metrics.get_metrics().cache_hits == 1

    def test_corrupt_cache_is_replaced(self, tmp_path: Path, release: Release, expected: str) -> None:
        strategy = WriteTree()
        ctx = _ctx(tmp_path, tree_hash_fetch=strategy)
        path = obtain_code(release, ctx).path

        (path / "src" / "Example.jl").write_text("tampered\n")
        result = obtain_code(release, ctx)

        assert result.reachable
        assert tree_hash(result.path) == expected
        assert strategy.calls == 2
        assert ctx.metrics.get_metrics().cache_evictions == 1

    def test_installed_copy_in_depot(self, tmp_path: Path, release: Release) -> None:
        strategy = WriteTree()
        ctx = _ctx(tmp_path, tree_hash_fetch=strategy)
        installed = write_tree(cache_path(release, tmp_path / "depot" / "packages"), FILES)

        result = obtain_code(release, ctx)

        assert result.path == installed
        assert result.reachable
        assert strategy.calls == 0
        assert ctx.metrics.get_metrics().depot_hits == 1

    def test_wrong_content_is_not_reachable(self, tmp_path: Path, release: Release) -> None:
        ctx = _ctx(tmp_path, tree_hash_fetch=WriteTree({"other.txt": "x"}))

        result = obtain_code(release, ctx)

        assert result.reachable is False
        assert ctx.metrics.get_metrics().hash_mismatches == 1

    def test_unreachable_leaves_nothing_behind(self, tmp_path: Path, release: Release) -> None:
        ctx = _ctx(tmp_path, tree_hash_fetch=NeverReachable())

        result = obtain_code(release, ctx)

        assert result.reachable is False
        assert list((ctx.cache_root / "Example").iterdir()) == []

    def test_release_without_repository(self, tmp_path: Path, release: Release) -> None:
        ctx = _ctx(tmp_path, tree_hash_fetch=WriteTree())
        with pytest.raises(AcquisitionError):
            obtain_code(release.model_copy(update={"repo": ""}), ctx)

    def test_added_with_path_uses_local_archive(self, tmp_path: Path, expected: str) -> None:
        local = WriteTree()
        local.name = "local_archive"
        remote = WriteTree()
        ctx = _ctx(tmp_path, tree_hash_fetch=remote, local_archive=local)
        added = Added(name="Example", uuid=EXAMPLE_UUID, path=str(tmp_path), tree_hash=expected)

        result = obtain_code(added, ctx)

        assert result.reachable
        assert result.version is None
        assert (local.calls, remote.calls) == (1, 0)

    def test_concurrent_requests_agree(self, tmp_path: Path, release: Release, expected: str) -> None:
        ctx = _ctx(tmp_path, tree_hash_fetch=WriteTree())

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: obtain_code(release, ctx), range(16)))

        assert all(r.reachable for r in results)
        assert {r.path for r in results} == {cache_path(release, ctx.cache_root)}
        # losers of the publish race cleaned up their staging copies
        assert [p.name for p in (ctx.cache_root / "Example").iterdir()] == [results[0].path.name]
        assert tree_hash(results[0].path) == expected


class TestFloating:
    def test_dev_used_in_place(self, tmp_path: Path) -> None:
        ctx = _ctx(tmp_path)
        result = obtain_code(Dev(path=str(tmp_path)), ctx)
        assert result.reachable
        assert result.path == tmp_path

    def test_dev_missing(self, tmp_path: Path) -> None:
        result = obtain_code(Dev(path=str(tmp_path / "gone")), _ctx(tmp_path))
        assert result.reachable is False

    def test_trunk_fresh_directory_each_time(self, tmp_path: Path) -> None:
        clone = WriteTree()
        clone.name = "latest_clone"
        ctx = _ctx(tmp_path, latest_clone=clone)
        trunk = Trunk(repo_url="https://github.com/Owner/Mono.jl", subdir="lib/A")

        first = obtain_code(trunk, ctx)
        second = obtain_code(trunk, ctx)

        assert first.reachable and second.reachable
        assert first.subdir == "lib/A"
        assert first.path != second.path
        assert clone.calls == 2

    def test_unreachable_trunk_leaves_nothing_behind(self, tmp_path: Path) -> None:
        offline = NeverReachable()
        offline.name = "latest_clone"
        ctx = _ctx(tmp_path, latest_clone=offline)

        result = obtain_code(Trunk(repo_url="https://github.com/Owner/Gone.jl"), ctx)

        assert result.reachable is False
        assert not result.path.exists()
        assert list(ctx.cache_root.glob("trunk-*")) == []
