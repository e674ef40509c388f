"""Turn a package descriptor into a source tree on disk.

Pinned descriptors (``Release``, ``Added``) are content addressed: their
tree lives at ``<cache_root>/<name>/<version_slug>`` and is only trusted
after its tree hash has been recomputed. The lookup order is

1. an installed copy in one of the Julia depots,
2. an existing copy in the cache (deleted if its hash is wrong),
3. a fresh acquisition, verified before it is reported reachable.

Floating descriptors (``Dev``, ``Trunk``) have no hash to check; ``Dev``
is used in place and ``Trunk`` is cloned afresh on every call.

Every step is idempotent, so concurrent workers asking for the same pinned
tree can race safely: fresh trees are built in a private staging directory
and published with a single ``os.rename``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid as uuid_mod
from pathlib import Path
from typing import assert_never

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.acquisition.strategies import Acquired, Strategy, Unreachable
from pkganalyzer.acquisition.tree_hash import tree_hash_matches, version_slug
from pkganalyzer.errors import AcquisitionError
from pkganalyzer.models.schemas import AcquisitionResult, Added, Dev, PackageDescriptor, Release, Trunk
from pkganalyzer.monitoring.metrics import StageTimer

logger = logging.getLogger(__name__)


def cache_path(descriptor: Release | Added, root: Path) -> Path:
    """Content-addressed location of a pinned descriptor under `root`."""
    return root / descriptor.name / version_slug(descriptor.uuid, descriptor.tree_hash)


def _discard(path: Path) -> None:
    """Remove `path`, tolerating another worker removing it first."""
    trash = path.with_name(f".{path.name}.trash-{uuid_mod.uuid4().hex}")
    try:
        os.rename(path, trash)
    except FileNotFoundError:
        return
    if trash.is_dir() and not trash.is_symlink():
        shutil.rmtree(trash, ignore_errors=True)
    else:
        trash.unlink(missing_ok=True)


def _publish(staging: Path, dest: Path) -> None:
    """Move a finished staging tree into place, or drop it if beaten to it."""
    try:
        os.rename(staging, dest)
    except OSError:
        # another worker published first; its copy gets verified like ours
        logger.debug(f"{dest} appeared while acquiring; keeping the existing copy")
        shutil.rmtree(staging, ignore_errors=True)


def _run_strategy(strategy: Strategy, descriptor, dest: Path, ctx: AcquireContext):
    ctx.metrics.record_strategy(strategy.name)
    with StageTimer(ctx.metrics, strategy.name):
        return strategy.acquire(descriptor, dest, ctx)


def _obtain_pinned(descriptor: Release | Added, ctx: AcquireContext) -> AcquisitionResult:
    version = descriptor.version if isinstance(descriptor, Release) else None
    expected = descriptor.tree_hash

    if isinstance(descriptor, Release) and not descriptor.repo:
        raise AcquisitionError(
            f"Package {descriptor.name} has no associated repository URL in its registry"
        )

    tail = cache_path(descriptor, Path())
    for depot in ctx.depots:
        installed = depot / "packages" / tail
        if tree_hash_matches(installed, expected):
            logger.debug(f"Found installed copy of {descriptor.label} at {installed}")
            ctx.metrics.record_depot_hit()
            return AcquisitionResult(path=installed, reachable=True, version=version)

    dest = ctx.cache_root / tail
    if dest.exists() or dest.is_symlink():
        if tree_hash_matches(dest, expected):
            logger.debug(f"Found existing download of {descriptor.label} at {dest}")
            ctx.metrics.record_cache_hit()
            return AcquisitionResult(path=dest, reachable=True, version=version)
        logger.warning(f"Cached copy of {descriptor.label} at {dest} is corrupt; re-acquiring")
        ctx.metrics.record_cache_eviction()
        _discard(dest)

    if isinstance(descriptor, Added) and descriptor.path:
        strategy = ctx.strategies.local_archive
    else:
        strategy = ctx.strategies.tree_hash_fetch

    dest.parent.mkdir(parents=True, exist_ok=True)
    staging = dest.with_name(f".{dest.name}.tmp-{uuid_mod.uuid4().hex}")
    logger.info(f"Acquiring {descriptor.label} with {strategy.name}")
    outcome = _run_strategy(strategy, descriptor, staging, ctx)

    match outcome:
        case Unreachable(reason=reason):
            shutil.rmtree(staging, ignore_errors=True)
            logger.warning(f"{descriptor.label} is unreachable: {reason}")
            return AcquisitionResult(path=dest, reachable=False, version=version)
        case Acquired():
            _publish(staging, dest)
        case _:
            assert_never(outcome)

    if not tree_hash_matches(dest, expected):
        logger.warning(
            f"Tree hash of {dest} does not match {expected}; download corrupted or mislabelled"
        )
        ctx.metrics.record_hash_mismatch()
        return AcquisitionResult(path=dest, reachable=False, version=version)

    return AcquisitionResult(path=dest, reachable=True, version=version)


def _obtain_dev(descriptor: Dev, ctx: AcquireContext) -> AcquisitionResult:
    outcome = _run_strategy(ctx.strategies.local_reuse, descriptor, None, ctx)
    reachable = isinstance(outcome, Acquired)
    if not reachable:
        logger.warning(f"{descriptor.label} is unreachable: {outcome.reason}")
    return AcquisitionResult(path=Path(descriptor.path), reachable=reachable)


def _obtain_trunk(descriptor: Trunk, ctx: AcquireContext) -> AcquisitionResult:
    # a fresh directory every time; the default branch may have moved
    ctx.cache_root.mkdir(parents=True, exist_ok=True)
    dest = Path(tempfile.mkdtemp(prefix="trunk-", dir=ctx.cache_root))
    outcome = _run_strategy(ctx.strategies.latest_clone, descriptor, dest, ctx)
    if isinstance(outcome, Unreachable):
        logger.warning(f"{descriptor.label} is unreachable: {outcome.reason}")
        shutil.rmtree(dest, ignore_errors=True)
        return AcquisitionResult(path=dest, reachable=False, subdir=descriptor.subdir)
    return AcquisitionResult(path=dest, reachable=True, subdir=descriptor.subdir)


def obtain_code(descriptor: PackageDescriptor, ctx: AcquireContext) -> AcquisitionResult:
    """Materialize the source tree for `descriptor`.

    Unreachable sources are reported with ``reachable=False``, never raised.

    Raises:
        AcquisitionError: If a release has no repository URL.
    """
    match descriptor:
        case Release() | Added():
            return _obtain_pinned(descriptor, ctx)
        case Dev():
            return _obtain_dev(descriptor, ctx)
        case Trunk():
            return _obtain_trunk(descriptor, ctx)
        case _:
            assert_never(descriptor)
