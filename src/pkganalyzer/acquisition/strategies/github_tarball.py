"""Fetch a pinned tree through the GitHub tarball API, falling back to git."""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from pkganalyzer.acquisition.archive import ArchiveExtractionError, extract_into
from pkganalyzer.acquisition.strategies.base import (
    Acquired,
    Outcome,
    Strategy,
    Unreachable,
    pinned_repo_url,
)
from pkganalyzer.acquisition.strategies.git import CloneArchive
from pkganalyzer.adapters.base import github_slug
from pkganalyzer.models.schemas import Added, Release

if TYPE_CHECKING:
    from pkganalyzer.acquisition.context import AcquireContext

logger = logging.getLogger(__name__)


class GitHubTarball(Strategy):
    """Download ``/repos/{owner}/{repo}/tarball/{tree_hash}`` and unpack it.

    GitHub wraps the tree in a single ``owner-repo-sha/`` directory, which
    is stripped so the destination holds exactly the pinned tree.
    """

    name = "github_tarball"
    BASE_URL = "https://api.github.com"

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _get_client(self, ctx: AcquireContext) -> httpx.Client:
        if ctx.http_client is not None:
            return ctx.http_client
        return httpx.Client(timeout=60.0, follow_redirects=True)

    def acquire(self, descriptor: Release | Added, dest: Path, ctx: AcquireContext) -> Outcome:
        slug = github_slug(pinned_repo_url(descriptor))
        if slug is None:
            return Unreachable("not a GitHub repository")

        url = f"{self.BASE_URL}/repos/{slug}/tarball/{descriptor.tree_hash}"
        client = self._get_client(ctx)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with tempfile.TemporaryFile(dir=dest.parent) as buf:
                with client.stream(
                    "GET",
                    url,
                    headers=self._headers(ctx.github_token),
                    follow_redirects=True,
                ) as response:
                    if response.status_code != 200:
                        return Unreachable(f"GitHub returned {response.status_code} for {slug}")
                    for chunk in response.iter_bytes():
                        buf.write(chunk)
                buf.seek(0)
                extract_into(buf, dest, strip_root=True)
        except (httpx.HTTPError, OSError, tarfile.TarError, ArchiveExtractionError) as e:
            logger.debug(f"Tarball download of {slug}@{descriptor.tree_hash} failed: {e}")
            if dest.exists():
                shutil.rmtree(dest, ignore_errors=True)
            return Unreachable(f"tarball download failed: {e}")
        finally:
            if ctx.http_client is None:
                client.close()

        logger.debug(f"Downloaded {slug}@{descriptor.tree_hash} via the GitHub API")
        return Acquired(dest)


class TreeHashFetch(Strategy):
    """Remote pinned fetch: GitHub tarball first, full clone plus archive after."""

    name = "tree_hash_fetch"

    def __init__(
        self,
        fast: Strategy | None = None,
        fallback: Strategy | None = None,
    ) -> None:
        self.fast = fast or GitHubTarball()
        self.fallback = fallback or CloneArchive()

    def acquire(self, descriptor: Release | Added, dest: Path, ctx: AcquireContext) -> Outcome:
        outcome = self.fast.acquire(descriptor, dest, ctx)
        if isinstance(outcome, Acquired):
            return outcome
        logger.debug(f"{self.fast.name} failed for {descriptor.label} ({outcome.reason})")
        return self.fallback.acquire(descriptor, dest, ctx)
