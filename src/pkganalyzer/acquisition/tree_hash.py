"""Content addressing for source trees.

``tree_hash`` computes the SHA-1 git would assign to the tree object of a
directory, so a tree on disk can be compared with the ``git-tree-sha1``
recorded in registries and manifests. ``version_slug`` derives the short
directory name Julia uses under ``packages/<name>/`` for a given
(uuid, tree hash) pair.
"""

import hashlib
import logging
import os
import stat
from pathlib import Path
from uuid import UUID

MODE_FILE = "100644"
MODE_EXECUTABLE = "100755"
MODE_SYMLINK = "120000"
MODE_DIR = "40000"

EMPTY_TREE_HASH = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

_CHUNK_SIZE = 1 << 16

logger = logging.getLogger(__name__)


def _object_header(kind: str, size: int) -> bytes:
    return f"{kind} {size}\0".encode()


def blob_hash(path: str | os.PathLike) -> bytes:
    """Git blob hash of a regular file, streamed in chunks."""
    size = os.path.getsize(path)
    digest = hashlib.sha1(_object_header("blob", size))
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.digest()


def _symlink_hash(path: str) -> bytes:
    target = os.fsencode(os.readlink(path))
    return hashlib.sha1(_object_header("blob", len(target)) + target).digest()


def _tree_entries(directory: str) -> list[tuple[bytes, str, bytes]]:
    entries = []
    with os.scandir(directory) as it:
        for entry in it:
            if entry.name == ".git":
                continue
            if entry.is_symlink():
                entries.append((os.fsencode(entry.name), MODE_SYMLINK, _symlink_hash(entry.path)))
            elif entry.is_dir():
                digest = _hash_directory(entry.path)
                if digest is not None:
                    entries.append((os.fsencode(entry.name), MODE_DIR, digest))
            else:
                st_mode = entry.stat().st_mode
                # sockets, FIFOs and devices have no place in a git tree
                if not stat.S_ISREG(st_mode):
                    logger.debug(f"Skipping special file {entry.path}")
                    continue
                executable = st_mode & stat.S_IXUSR
                mode = MODE_EXECUTABLE if executable else MODE_FILE
                entries.append((os.fsencode(entry.name), mode, blob_hash(entry.path)))
    return entries


def _hash_directory(directory: str) -> bytes | None:
    """Hash one tree level; None when nothing hashable is inside."""
    entries = _tree_entries(directory)
    if not entries:
        return None

    # git orders trees as if directory names ended in "/"
    entries.sort(key=lambda e: e[0] + b"/" if e[1] == MODE_DIR else e[0])
    body = b"".join(f"{mode} ".encode() + name + b"\0" + digest for name, mode, digest in entries)
    return hashlib.sha1(_object_header("tree", len(body)) + body).digest()


def tree_hash(directory: str | os.PathLike) -> str:
    """Compute the git tree hash of `directory` as 40 lowercase hex characters.

    Timestamps, ownership and every permission bit except the owner execute
    bit are ignored. Entries named ``.git``, empty directories and anything
    that is not a regular file, directory or symlink are skipped.

    Raises:
        OSError: If `directory` does not exist or cannot be read.
    """
    digest = _hash_directory(os.fspath(directory))
    if digest is None:
        return EMPTY_TREE_HASH
    return digest.hex()


def tree_hash_matches(directory: Path, expected: str) -> bool:
    """True if `directory` is a directory whose tree hash equals `expected`."""
    if not directory.is_dir():
        return False
    try:
        return tree_hash(directory) == expected.lower()
    except OSError:
        return False


def _make_crc32c_table() -> list[int]:
    table = []
    for n in range(256):
        crc = n
        for _ in range(8):
            crc = (crc >> 1) ^ 0x82F63B78 if crc & 1 else crc >> 1
        table.append(crc)
    return table


_CRC32C_TABLE = _make_crc32c_table()


def crc32c(data: bytes, crc: int = 0) -> int:
    """CRC-32C (Castagnoli); pass a previous result as `crc` to continue it."""
    crc ^= 0xFFFFFFFF
    for byte in data:
        crc = _CRC32C_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


SLUG_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"


def slug(value: int, length: int = 5) -> str:
    chars = []
    for _ in range(length):
        value, digit = divmod(value, len(SLUG_CHARS))
        chars.append(SLUG_CHARS[digit])
    return "".join(chars)


def version_slug(uuid: UUID, tree_hash_hex: str, length: int = 5) -> str:
    """Directory slug for a package version, identical to Julia's depot layout."""
    crc = crc32c(uuid.int.to_bytes(16, "little"))
    crc = crc32c(bytes.fromhex(tree_hash_hex), crc)
    return slug(crc, length)
