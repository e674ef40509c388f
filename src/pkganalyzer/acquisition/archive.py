"""Safe tar extraction for downloaded and git-archived source trees.

Protects against:
- Path traversal (``../``, absolute member names)
- Symlinks and hard links pointing outside the destination
- Device files and FIFOs
- Archives with an absurd number of members
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 200_000


class ArchiveExtractionError(Exception):
    """Raised when archive extraction fails due to safety checks."""


class PathTraversalError(ArchiveExtractionError):
    """Raised when a member would land outside the destination."""


class SymlinkError(ArchiveExtractionError):
    """Raised when a link member points outside the destination."""


class TooManyFilesError(ArchiveExtractionError):
    """Raised when an archive contains too many members."""


def is_path_safe(member_path: str, dest_dir: Path) -> tuple[bool, str | None]:
    """Check if a member path is safe to extract.

    Returns:
        Tuple of (is_safe, error_reason)
    """
    normalized = os.path.normpath(member_path)

    if os.path.isabs(normalized):
        return False, f"absolute_path:{member_path}"

    if normalized == ".." or normalized.startswith("../") or "/../" in normalized:
        return False, f"path_traversal:{member_path}"

    try:
        final_path = (dest_dir / normalized).resolve()
        final_path.relative_to(dest_dir.resolve())
    except ValueError:
        return False, f"escapes_dest:{member_path}"
    except OSError as e:
        return False, f"path_resolution_error:{member_path}:{e}"

    return True, None


def _check_member(member: tarfile.TarInfo, dest_dir: Path) -> bool:
    """Validate one member; False means skip it, errors mean abort."""
    safe, reason = is_path_safe(member.name, dest_dir)
    if not safe:
        raise PathTraversalError(reason)

    if member.issym():
        if os.path.isabs(member.linkname):
            raise SymlinkError(f"absolute_symlink:{member.name}->{member.linkname}")
        target = os.path.join(os.path.dirname(member.name), member.linkname)
        safe, reason = is_path_safe(target, dest_dir)
        if not safe:
            raise SymlinkError(f"symlink_escapes:{member.name}->{member.linkname}")
    elif member.islnk():
        safe, reason = is_path_safe(member.linkname, dest_dir)
        if not safe:
            raise SymlinkError(f"hardlink_escapes:{member.name}->{member.linkname}")
    elif not (member.isfile() or member.isdir()):
        logger.debug(f"Skipping special tar member {member.name}")
        return False
    return True


def safe_extract_tar(
    fileobj: IO[bytes],
    dest_dir: Path,
    *,
    max_files: int = DEFAULT_MAX_FILES,
) -> int:
    """Extract a (possibly compressed) tar stream into `dest_dir`.

    The stream is read sequentially, so it may be a pipe.

    Returns:
        Number of members extracted.

    Raises:
        ArchiveExtractionError: If a member fails a safety check.
        tarfile.TarError: If the stream is not a readable tar archive.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    count = 0
    with tarfile.open(fileobj=fileobj, mode="r|*") as tar:
        for member in tar:
            if not _check_member(member, dest_dir):
                continue
            count += 1
            if count > max_files:
                raise TooManyFilesError(f"more than {max_files} members")
            tar.extract(member, dest_dir, filter="tar")
    return count


def extract_into(
    fileobj: IO[bytes],
    dest: Path,
    *,
    strip_root: bool = False,
) -> None:
    """Extract a tar stream so that its contents end up exactly at `dest`.

    `dest` must not exist yet. With `strip_root`, the archive is expected to
    hold a single wrapper directory (as GitHub tarballs do) whose contents
    become `dest`.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    scratch = Path(tempfile.mkdtemp(prefix=".extract-", dir=dest.parent))
    try:
        safe_extract_tar(fileobj, scratch)
        source = scratch
        if strip_root:
            children = list(scratch.iterdir())
            if len(children) != 1 or not children[0].is_dir():
                raise ArchiveExtractionError(
                    f"expected a single top-level directory, found {len(children)} entries"
                )
            source = children[0]
        os.rename(source, dest)
    finally:
        if scratch.exists():
            shutil.rmtree(scratch, ignore_errors=True)
