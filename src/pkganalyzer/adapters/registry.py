"""Adapter for unpacked Julia registries (such as General) on local disk."""

from __future__ import annotations

import logging
import re
import threading
import tomllib
from pathlib import Path
from uuid import UUID

from pkganalyzer.adapters.base import BaseRegistry, PackageInfo, VersionInfo

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


def _ident_key(part: str) -> tuple[int, int | str]:
    return (0, int(part)) if part.isdigit() else (1, part)


def version_key(version: str) -> tuple:
    """Sort key for semantic versions; pre-releases sort below their release."""
    match = _VERSION_RE.match(version.strip())
    if match is None:
        return ((-1, -1, -1), 0, ())
    numbers = tuple(int(match.group(g) or 0) for g in ("major", "minor", "patch"))
    pre = match.group("pre")
    if pre is None:
        return (numbers, 1, ())
    return (numbers, 0, tuple(_ident_key(p) for p in pre.split(".")))


class LocalRegistry(BaseRegistry):
    """Read-only view of a Julia registry checked out on disk.

    ``Registry.toml`` is parsed on first use; the ``Package.toml`` and
    ``Versions.toml`` of each package are parsed when first asked for and
    then cached. Instances are safe to share between threads.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._registry_name: str | None = None
        self._entries: dict[UUID, tuple[str, str]] | None = None  # uuid -> (name, relpath)
        self._by_name: dict[str, list[UUID]] | None = None
        self._info: dict[UUID, PackageInfo] = {}

    def __repr__(self) -> str:
        return f"LocalRegistry({str(self.path)!r})"

    @property
    def name(self) -> str:
        self._ensure_index()
        return self._registry_name or self.path.name

    def _ensure_index(self) -> None:
        if self._entries is not None:
            return

        with open(self.path / "Registry.toml", "rb") as f:
            data = tomllib.load(f)

        entries: dict[UUID, tuple[str, str]] = {}
        by_name: dict[str, list[UUID]] = {}
        for uuid_str, entry in data.get("packages", {}).items():
            uuid = UUID(uuid_str)
            entries[uuid] = (entry["name"], entry["path"])
            by_name.setdefault(entry["name"], []).append(uuid)

        with self._lock:
            if self._entries is None:
                self._registry_name = data.get("name")
                self._by_name = by_name
                self._entries = entries
                logger.debug(f"Loaded {len(entries)} packages from registry at {self.path}")

    def all_uuids(self) -> list[UUID]:
        self._ensure_index()
        return list(self._entries)

    def uuids_from_name(self, name: str) -> list[UUID]:
        self._ensure_index()
        return list(self._by_name.get(name, []))

    def package_info(self, uuid: UUID) -> PackageInfo | None:
        self._ensure_index()
        cached = self._info.get(uuid)
        if cached is not None:
            return cached

        entry = self._entries.get(uuid)
        if entry is None:
            return None

        info = self._read_package(uuid, *entry)
        with self._lock:
            return self._info.setdefault(uuid, info)

    def _read_package(self, uuid: UUID, name: str, relpath: str) -> PackageInfo:
        pkg_dir = self.path / relpath

        with open(pkg_dir / "Package.toml", "rb") as f:
            package = tomllib.load(f)

        versions: dict[str, VersionInfo] = {}
        versions_file = pkg_dir / "Versions.toml"
        if versions_file.exists():
            with open(versions_file, "rb") as f:
                for version, data in tomllib.load(f).items():
                    versions[version] = VersionInfo(
                        tree_hash=data["git-tree-sha1"],
                        yanked=bool(data.get("yanked", False)),
                    )

        return PackageInfo(
            name=package.get("name", name),
            uuid=uuid,
            repo=package.get("repo"),
            subdir=package.get("subdir"),
            versions=versions,
        )


def discover_registries(depots: list[Path]) -> list[LocalRegistry]:
    """Find unpacked registries under ``<depot>/registries`` of each depot."""
    registries = []
    seen: set[Path] = set()
    for depot in depots:
        reg_root = depot / "registries"
        if not reg_root.is_dir():
            continue
        for candidate in sorted(reg_root.iterdir()):
            if not (candidate / "Registry.toml").is_file():
                continue
            resolved = candidate.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            registries.append(LocalRegistry(candidate))
    if not registries:
        logger.debug(f"No unpacked registries found in depots {[str(d) for d in depots]}")
    return registries
