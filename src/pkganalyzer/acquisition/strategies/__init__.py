"""Acquisition strategies, one module per way of getting code."""

from dataclasses import dataclass, field

from pkganalyzer.acquisition.strategies.base import Acquired, Outcome, Strategy, Unreachable
from pkganalyzer.acquisition.strategies.git import CloneArchive, LatestClone
from pkganalyzer.acquisition.strategies.github_tarball import GitHubTarball, TreeHashFetch
from pkganalyzer.acquisition.strategies.local import LocalArchive, LocalReuse


@dataclass
class StrategySet:
    """Which strategy handles which kind of descriptor."""

    local_reuse: Strategy = field(default_factory=LocalReuse)
    latest_clone: Strategy = field(default_factory=LatestClone)
    tree_hash_fetch: Strategy = field(default_factory=TreeHashFetch)
    local_archive: Strategy = field(default_factory=LocalArchive)


__all__ = [
    "Acquired",
    "CloneArchive",
    "GitHubTarball",
    "LatestClone",
    "LocalArchive",
    "LocalReuse",
    "Outcome",
    "Strategy",
    "StrategySet",
    "TreeHashFetch",
    "Unreachable",
]
