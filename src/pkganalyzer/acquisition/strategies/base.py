"""Shared pieces of the acquisition strategies.

Strategies report ordinary failures (network, auth, missing revisions,
git exiting non-zero) as an ``Unreachable`` outcome instead of raising.
Only malformed descriptors raise.
"""

from __future__ import annotations

import base64
import logging
import os
import subprocess
import tarfile
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pkganalyzer.acquisition.archive import extract_into
from pkganalyzer.adapters.base import github_slug
from pkganalyzer.errors import AcquisitionError
from pkganalyzer.models.schemas import Added, Release

if TYPE_CHECKING:
    from pkganalyzer.acquisition.context import AcquireContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Acquired:
    """The source tree is available at `path`."""

    path: Path


@dataclass(frozen=True)
class Unreachable:
    """The source could not be obtained."""

    reason: str


Outcome = Acquired | Unreachable


def pinned_repo_url(descriptor: Release | Added) -> str:
    """Remote URL a pinned descriptor should be fetched from."""
    match descriptor:
        case Release(repo=repo) if repo:
            return repo
        case Added(repo_url=url) if url:
            return url
        case _:
            raise AcquisitionError(f"{descriptor.label} has no repository URL to fetch from")


class Strategy(ABC):
    """One way of materializing a source tree at a destination path."""

    name: str = "strategy"

    @abstractmethod
    def acquire(self, descriptor, dest: Path, ctx: AcquireContext) -> Outcome:
        """Materialize `descriptor` at `dest`, which does not exist yet."""
        ...


def git_env(ctx: AcquireContext, repo_url: str = "") -> dict[str, str]:
    """Environment for non-interactive git.

    git never gets a chance to prompt: there is no terminal prompt and no
    askpass helper. A configured GitHub token is handed over as an HTTP
    header through git's config environment, so it never shows up in argv.
    """
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_ASKPASS"] = ""
    env["SSH_ASKPASS"] = ""
    env["GCM_INTERACTIVE"] = "never"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")

    if ctx.github_token and github_slug(repo_url):
        basic = base64.b64encode(f"x-access-token:{ctx.github_token}".encode()).decode()
        env["GIT_CONFIG_COUNT"] = "1"
        env["GIT_CONFIG_KEY_0"] = "http.https://github.com/.extraheader"
        env["GIT_CONFIG_VALUE_0"] = f"AUTHORIZATION: basic {basic}"
    return env


def run_git(
    ctx: AcquireContext,
    args: list[str],
    *,
    cwd: Path | None = None,
    repo_url: str = "",
) -> str:
    """Run git with stdin closed and no controlling terminal.

    Returns:
        The stdout output of the command.

    Raises:
        subprocess.CalledProcessError: If git exits with non-zero status.
        subprocess.TimeoutExpired: If git outlives the configured timeout.
        OSError: If git cannot be started.
    """
    cmd = [ctx.git, *args]
    logger.debug(f"Running {' '.join(cmd[:3])} ...")
    p = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=git_env(ctx, repo_url),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        timeout=ctx.git_timeout,
        start_new_session=True,
        check=True,
    )
    return p.stdout.decode("utf-8", errors="ignore")


def git_archive_into(ctx: AcquireContext, repo_dir: Path, tree_hash: str, dest: Path) -> None:
    """Stream ``git archive <tree_hash>`` from `repo_dir` into `dest`.

    Raises:
        subprocess.CalledProcessError: If git archive fails, with git's
            messages as ``stderr``.
        ArchiveExtractionError: If the archive fails a safety check.
        tarfile.TarError: If git produced no readable archive.
    """
    # stderr goes to a file; a pipe nobody reads can fill up and stall git
    with tempfile.TemporaryFile() as errors:
        proc = subprocess.Popen(
            [ctx.git, "archive", "--format=tar", tree_hash],
            cwd=str(repo_dir),
            env=git_env(ctx),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=errors,
            start_new_session=True,
        )
        try:
            extract_into(proc.stdout, dest)
        except tarfile.TarError:
            # an empty stream usually means git refused; its exit status decides
            proc.stdout.close()
            if proc.wait(timeout=ctx.git_timeout) == 0:
                raise
        except BaseException:
            proc.kill()
            raise
        finally:
            proc.stdout.close()
            proc.wait(timeout=ctx.git_timeout)
        if proc.returncode != 0:
            errors.seek(0)
            raise subprocess.CalledProcessError(
                proc.returncode, ["git", "archive", tree_hash], stderr=errors.read()
            )


def git_failure(e: Exception) -> str:
    """Git's own last complaint for a failed command, else the exception text."""
    stderr = getattr(e, "stderr", None)
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    return lines[-1] if lines else str(e)
