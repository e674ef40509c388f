"""Strategies that work from code already on this machine."""

from __future__ import annotations

import logging
import subprocess
import tarfile
from pathlib import Path
from typing import TYPE_CHECKING

from pkganalyzer.acquisition.archive import ArchiveExtractionError
from pkganalyzer.acquisition.strategies.base import (
    Acquired,
    Outcome,
    Strategy,
    Unreachable,
    git_archive_into,
    git_failure,
)
from pkganalyzer.models.schemas import Added, Dev

if TYPE_CHECKING:
    from pkganalyzer.acquisition.context import AcquireContext

logger = logging.getLogger(__name__)


class LocalReuse(Strategy):
    """Use a development checkout where it lies. Nothing is copied."""

    name = "local_reuse"

    def acquire(self, descriptor: Dev, dest: Path | None, ctx: AcquireContext) -> Outcome:
        path = Path(descriptor.path)
        if not path.is_dir():
            return Unreachable(f"{path} is not a directory")
        return Acquired(path)


class LocalArchive(Strategy):
    """Export a pinned tree from a local git repository with ``git archive``."""

    name = "local_archive"

    def acquire(self, descriptor: Added, dest: Path, ctx: AcquireContext) -> Outcome:
        repo_dir = Path(descriptor.path)
        if not repo_dir.is_dir():
            return Unreachable(f"{repo_dir} is not a directory")
        try:
            git_archive_into(ctx, repo_dir, descriptor.tree_hash, dest)
        except (OSError, subprocess.SubprocessError, tarfile.TarError, ArchiveExtractionError) as e:
            logger.debug(f"git archive of {descriptor.tree_hash} in {repo_dir} failed: {e}")
            return Unreachable(f"git archive failed: {git_failure(e)}")
        return Acquired(dest)
