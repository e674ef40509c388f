"""Git clone strategies."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tarfile
import tempfile
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
    pinned_repo_url,
    run_git,
)
from pkganalyzer.models.schemas import Trunk

if TYPE_CHECKING:
    from pkganalyzer.acquisition.context import AcquireContext

logger = logging.getLogger(__name__)


class LatestClone(Strategy):
    """Shallow clone of the default branch.

    Private or deleted repositories would make git ask for credentials; with
    stdin closed and prompting disabled they simply fail and come back as
    unreachable.
    """

    name = "latest_clone"

    def acquire(self, descriptor: Trunk, dest: Path, ctx: AcquireContext) -> Outcome:
        url = descriptor.repo_url
        logger.info(f"Cloning latest code from {url}")
        try:
            run_git(ctx, ["clone", "-q", "--depth", "1", url, str(dest)], repo_url=url)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Clone of {url} failed; maybe unreachable: {e}")
            return Unreachable(f"git clone failed: {git_failure(e)}")
        return Acquired(dest)


class CloneArchive(Strategy):
    """Full clone into scratch space, then ``git archive`` the pinned tree."""

    name = "clone_archive"

    def acquire(self, descriptor, dest: Path, ctx: AcquireContext) -> Outcome:
        url = pinned_repo_url(descriptor)
        dest.parent.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix=".clone-", dir=dest.parent))
        try:
            logger.debug(f"Falling back to full clone of {url}")
            run_git(ctx, ["clone", "-q", url, str(scratch / "repo")], repo_url=url)
            git_archive_into(ctx, scratch / "repo", descriptor.tree_hash, dest)
        except (OSError, subprocess.SubprocessError, tarfile.TarError, ArchiveExtractionError) as e:
            logger.debug(f"Clone and archive of {url} failed; maybe unreachable: {e}")
            return Unreachable(f"clone and archive failed: {git_failure(e)}")
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        return Acquired(dest)
