"""Abstract base class for package registries, plus repository URL parsing."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import UUID

from pkganalyzer.models.schemas import Platform, RepoRef


@dataclass(frozen=True)
class VersionInfo:
    """One registered version of a package."""

    tree_hash: str
    yanked: bool = False


@dataclass
class PackageInfo:
    """Registry metadata for one package."""

    name: str
    uuid: UUID
    repo: str | None = None
    subdir: str | None = None
    versions: dict[str, VersionInfo] = field(default_factory=dict)


class BaseRegistry(ABC):
    """Base class for package registries.

    A registry maps package names to UUIDs and, per UUID, records the
    repository location and the tree hash of every registered version.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable registry name."""
        ...

    @abstractmethod
    def uuids_from_name(self, name: str) -> list[UUID]:
        """Return every UUID registered under `name` (usually zero or one)."""
        ...

    @abstractmethod
    def package_info(self, uuid: UUID) -> PackageInfo | None:
        """Return metadata for `uuid`, or None if this registry lacks it."""
        ...

    @abstractmethod
    def all_uuids(self) -> list[UUID]:
        """Return every UUID in the registry."""
        ...


def parse_repo_url(url: str) -> RepoRef | None:
    """Parse a repository URL into a RepoRef.

    Supports GitHub, GitLab, and Bitbucket URLs. Julia repository names
    usually end in ``.jl``, so dots are allowed in the repository part.

    Args:
        url: Repository URL to parse.

    Returns:
        RepoRef if the URL can be parsed, None otherwise.
    """
    if not url:
        return None

    hosts = [
        (Platform.GITHUB, r"github\.com"),
        (Platform.GITLAB, r"gitlab\.com"),
        (Platform.BITBUCKET, r"bitbucket\.org"),
    ]

    for platform, host in hosts:
        # https://github.com/owner/repo(.git)
        # git://github.com/owner/repo.git
        # git@github.com:owner/repo.git
        patterns = [
            rf"(?:https?://|git://)?(?:www\.)?{host}/([^/\s]+)/([^/\s]+?)(?:\.git)?/?$",
            rf"git@{host}:([^/\s]+)/([^/\s]+?)(?:\.git)?/?$",
        ]
        for pattern in patterns:
            match = re.match(pattern, url.strip())
            if match:
                return RepoRef(platform=platform, owner=match.group(1), repo=match.group(2))

    return None


def github_slug(url: str) -> str | None:
    """Return ``owner/repo`` for a GitHub URL, None for anything else."""
    ref = parse_repo_url(url)
    if ref is None or ref.platform != Platform.GITHUB:
        return None
    return ref.slug
