"""Turn user input, package names and manifests into package descriptors."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Callable, Iterable
from pathlib import Path
from uuid import UUID

from pkganalyzer.adapters.base import BaseRegistry, PackageInfo, VersionInfo
from pkganalyzer.adapters.registry import version_key
from pkganalyzer.errors import (
    AmbiguousPackageError,
    ArgumentError,
    PackageNotFoundError,
    TreeHashMismatchError,
    UnsupportedManifestError,
)
from pkganalyzer.models.schemas import Added, Dev, Release, Trunk
from pkganalyzer.stdlibs import JULIA_UUID, is_stdlib

logger = logging.getLogger(__name__)

STABLE = "stable"
DEV = "dev"


def _stable_version(info: PackageInfo) -> str | None:
    candidates = [v for v, vi in info.versions.items() if not vi.yanked]
    if not candidates:
        return None
    return max(candidates, key=version_key)


def _release(info: PackageInfo, version: str) -> Release:
    return Release(
        name=info.name,
        uuid=info.uuid,
        repo=info.repo or "",
        subdir=info.subdir or "",
        tree_hash=info.versions[version].tree_hash,
        version=version,
    )


def find_package(
    name: str,
    registries: list[BaseRegistry],
    version: str | None = None,
) -> Release:
    """Find the release of `name` at `version` (highest non-yanked by default).

    When the package is in several registries, the registry offering the
    highest version wins, or the first one holding the requested version.

    Raises:
        PackageNotFoundError: If no registry has the package (or the version).
        AmbiguousPackageError: If the name maps to more than one UUID.
    """
    hits: list[tuple[BaseRegistry, UUID]] = []
    for registry in registries:
        for uuid in registry.uuids_from_name(name):
            hits.append((registry, uuid))

    if not hits:
        raise PackageNotFoundError(name, stdlib=is_stdlib(name))

    uuids = list(dict.fromkeys(uuid for _, uuid in hits))
    if len(uuids) > 1:
        raise AmbiguousPackageError(name, uuids)

    candidates: list[tuple[PackageInfo, str]] = []
    for registry, uuid in hits:
        info = registry.package_info(uuid)
        if info is None:
            continue
        if version is None or version == STABLE:
            chosen = _stable_version(info)
        else:
            chosen = version if version in info.versions else None
        if chosen is not None:
            candidates.append((info, chosen))

    if not candidates:
        raise PackageNotFoundError(name, version=version or STABLE)

    info, chosen = max(candidates, key=lambda c: version_key(c[1]))
    return _release(info, chosen)


def find_packages(
    names: Iterable[str],
    registries: list[BaseRegistry],
    version: str | None = None,
) -> list[Release]:
    """Find several packages; names no registry knows are logged and skipped."""
    results = []
    for name in names:
        try:
            results.append(find_package(name, registries, version))
        except PackageNotFoundError as e:
            if e.stdlib:
                logger.debug(f"Skipping standard library {name}")
            else:
                logger.error(f"Could not find package {name} in any registry")
    return results


def _default_filter(uuid: UUID, info: PackageInfo) -> bool:
    # JLL wrappers are generated and have no tests or docs; "julia" is Julia itself
    return not info.name.endswith("_jll") and uuid != JULIA_UUID


def find_all_packages(
    registries: list[BaseRegistry],
    filter: Callable[[UUID, PackageInfo], bool] = _default_filter,
) -> list[Release]:
    """Every package of every registry at its stable version."""
    best: dict[UUID, Release] = {}
    for registry in registries:
        for uuid in registry.all_uuids():
            info = registry.package_info(uuid)
            if info is None or not filter(uuid, info):
                continue
            version = _stable_version(info)
            if version is None:
                continue
            current = best.get(uuid)
            if current is None or version_key(version) > version_key(current.version):
                best[uuid] = _release(info, version)
    return list(best.values())


def match_pkg(
    uuid: UUID,
    version: str,
    registries: list[BaseRegistry],
) -> tuple[PackageInfo, VersionInfo] | None:
    """First registry entry holding `version` of `uuid`."""
    for registry in registries:
        info = registry.package_info(uuid)
        if info is None:
            continue
        version_info = info.versions.get(version)
        if version_info is not None:
            return info, version_info
    return None


def _manifest_entries(manifest: dict, path: Path) -> dict:
    raw_format = str(manifest.get("manifest_format", "1.0"))
    major = raw_format.split(".")[0]
    if major == "2":
        return manifest.get("deps", {})
    if major == "1":
        return manifest
    raise UnsupportedManifestError(f"Unsupported manifest format {raw_format} in {path}")


def _local_path(value: str, base: Path) -> Path | None:
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate if candidate.is_dir() else None


def find_packages_in_manifest(
    path: str | os.PathLike,
    registries: list[BaseRegistry],
) -> list[Release | Added | Dev]:
    """Descriptors for every non-stdlib package pinned in a Manifest.toml.

    - no ``git-tree-sha1``: developed in place, a ``Dev`` of its ``path``
    - ``repo-url``: an ``Added`` package (local path or remote URL)
    - otherwise a ``Release`` looked up by (uuid, version)

    Raises:
        UnsupportedManifestError: For manifest formats other than 1.x and 2.x.
        TreeHashMismatchError: If a release's tree hash disagrees with the registry.
    """
    path = Path(path)
    with open(path, "rb") as f:
        manifest = tomllib.load(f)
    base = path.parent

    results: list[Release | Added | Dev] = []
    for name, entries in _manifest_entries(manifest, path).items():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            uuid = UUID(entry["uuid"])
            if is_stdlib(uuid):
                continue

            tree_hash = entry.get("git-tree-sha1", "")
            if not tree_hash:
                pkg_path = entry.get("path")
                if not pkg_path:
                    logger.debug(f"Skipping {name}: no tree hash and no path in manifest")
                    continue
                local = _local_path(pkg_path, base)
                results.append(Dev(name=name, uuid=uuid, path=str(local or pkg_path)))
                continue

            repo_url = entry.get("repo-url", "")
            if repo_url:
                subdir = entry.get("repo-subdir", "")
                local = _local_path(repo_url, base)
                if local is not None:
                    results.append(
                        Added(name=name, uuid=uuid, path=str(local), tree_hash=tree_hash, subdir=subdir)
                    )
                else:
                    results.append(
                        Added(name=name, uuid=uuid, repo_url=repo_url, tree_hash=tree_hash, subdir=subdir)
                    )
                continue

            version = entry.get("version", "")
            match = match_pkg(uuid, version, registries)
            if match is None:
                logger.error(
                    f"Could not find {name} ({uuid}) version {version} in any registry; skipping"
                )
                continue

            info, version_info = match
            if version_info.tree_hash != tree_hash:
                raise TreeHashMismatchError(name, version, version_info.tree_hash, tree_hash)
            results.append(_release(info, version))

    return results


def resolve_input(
    value: str,
    registries: list[BaseRegistry],
    *,
    version: str | None = None,
    subdir: str = "",
) -> Release | Dev | Trunk:
    """Classify user input as a package name, a local directory or a URL.

    - a valid identifier is looked up in the registries; ``version="dev"``
      asks for the default branch of its repository instead of a release
    - an existing directory is analyzed in place
    - anything else is treated as a repository URL

    Raises:
        ArgumentError: For a version or subdir that does not apply to the input.
    """
    if value.isidentifier():
        if subdir:
            raise ArgumentError("`subdir` is not supported for registered packages; it comes from the registry")
        if version == DEV:
            release = find_package(value, registries)
            if not release.repo:
                raise ArgumentError(f"Package {value} has no repository URL to clone")
            return Trunk(repo_url=release.repo, subdir=release.subdir)
        return find_package(value, registries, version or STABLE)

    if os.path.isdir(value):
        if version is not None:
            raise ArgumentError("Passing a `version` is unsupported for local directories.")
        if subdir:
            raise ArgumentError("Passing a `subdir` is unsupported for local directories.")
        return Dev(path=value)

    if version is not None:
        raise ArgumentError("Passing a `version` is unsupported for remote URLs.")
    return Trunk(repo_url=value, subdir=subdir)
