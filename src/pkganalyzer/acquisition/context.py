"""Explicit context shared by the resolver, the strategies and the analyzers."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from pkganalyzer.acquisition.strategies import StrategySet
from pkganalyzer.adapters.base import BaseRegistry
from pkganalyzer.adapters.registry import LocalRegistry, discover_registries
from pkganalyzer.monitoring.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def github_token_from_env() -> str | None:
    """GitHub token from GITHUB_TOKEN, or GITHUB_AUTH as a fallback."""
    return os.environ.get("GITHUB_TOKEN") or os.environ.get("GITHUB_AUTH") or None


def default_depots() -> list[Path]:
    """Julia depots from JULIA_DEPOT_PATH, or ``~/.julia``.

    As in Julia, an empty entry stands for the default depot.
    """
    default = Path.home() / ".julia"
    value = os.environ.get("JULIA_DEPOT_PATH")
    if not value:
        return [default]
    depots = []
    for entry in value.split(os.pathsep):
        depot = Path(entry).expanduser() if entry else default
        if depot not in depots:
            depots.append(depot)
    return depots


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}")
        return None


@dataclass
class AcquireContext:
    """Everything acquisition needs, built once and passed down.

    Attributes:
        cache_root: Directory holding ``<name>/<slug>`` trees and trunk clones.
        depots: Julia depots searched for already-installed releases.
        registries: Registries used to resolve names and versions.
        github_token: Token for the GitHub API and GitHub clones, if any.
        http_client: Shared httpx client; one is created per request if None.
        git: git executable.
        git_timeout: Seconds before a git process is abandoned.
        sleep: Seconds to wait before each contributor request.
        workers: Default thread pool size for batch runs.
    """

    cache_root: Path
    depots: list[Path] = field(default_factory=list)
    registries: list[BaseRegistry] = field(default_factory=list)
    github_token: str | None = None
    http_client: httpx.Client | None = None
    git: str = "git"
    git_timeout: float | None = None
    sleep: float = 0.0
    workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    metrics: MetricsCollector = field(default_factory=MetricsCollector)
    strategies: StrategySet = field(default_factory=StrategySet)

    def __post_init__(self) -> None:
        self.cache_root = Path(self.cache_root)
        self.depots = [Path(d) for d in self.depots]

    @property
    def authenticated(self) -> bool:
        return bool(self.github_token)

    @classmethod
    def from_env(
        cls,
        cache_root: str | Path | None = None,
        registries: list[BaseRegistry] | None = None,
        **overrides,
    ) -> AcquireContext:
        """Build a context from environment variables.

        Recognised variables: GITHUB_TOKEN / GITHUB_AUTH, JULIA_DEPOT_PATH,
        PKGANALYZER_CACHE_ROOT, PKGANALYZER_REGISTRIES, PKGANALYZER_WORKERS,
        PKGANALYZER_SLEEP, PKGANALYZER_GIT, PKGANALYZER_GIT_TIMEOUT and
        PKGANALYZER_METRICS_FILE.
        Explicit arguments win over the environment. Without either, the
        cache goes to a new temporary directory that the caller must remove.
        """
        if cache_root is None:
            cache_root = os.environ.get("PKGANALYZER_CACHE_ROOT") or tempfile.mkdtemp(
                prefix="pkganalyzer-"
            )
        cache_root = Path(cache_root).expanduser()
        cache_root.mkdir(parents=True, exist_ok=True)

        depots = overrides.pop("depots", None) or default_depots()

        if registries is None:
            explicit = os.environ.get("PKGANALYZER_REGISTRIES")
            if explicit:
                registries = [
                    LocalRegistry(Path(p).expanduser()) for p in explicit.split(os.pathsep) if p
                ]
            else:
                registries = discover_registries(depots)

        settings = {
            "github_token": github_token_from_env(),
            "git": os.environ.get("PKGANALYZER_GIT", "git"),
            "git_timeout": _env_float("PKGANALYZER_GIT_TIMEOUT"),
            "sleep": _env_float("PKGANALYZER_SLEEP") or 0.0,
        }
        workers = _env_float("PKGANALYZER_WORKERS")
        if workers:
            settings["workers"] = max(1, int(workers))
        metrics_file = os.environ.get("PKGANALYZER_METRICS_FILE")
        if metrics_file:
            settings["metrics"] = MetricsCollector(Path(metrics_file).expanduser())
        settings.update({k: v for k, v in overrides.items() if v is not None})

        return cls(cache_root=cache_root, depots=depots, registries=registries, **settings)
