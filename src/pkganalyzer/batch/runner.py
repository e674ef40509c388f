"""Analyze many packages on a thread pool, keeping input order."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import assert_never

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.analyzers.pipeline import AnalysisPipeline, name_from_url
from pkganalyzer.batch.work_queue import QueuedPackage, WorkQueue
from pkganalyzer.models.schemas import NIL_UUID, Added, Dev, PackageDescriptor, PackageReport, Release, Trunk

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def unreachable_report(descriptor: PackageDescriptor) -> PackageReport:
    """Placeholder report for a package whose analysis failed outright."""
    match descriptor:
        case Release():
            return PackageReport(
                name=descriptor.name,
                uuid=descriptor.uuid,
                repo=descriptor.repo,
                subdir=descriptor.subdir,
                version=descriptor.version,
            )
        case Added():
            return PackageReport(
                name=descriptor.name,
                uuid=descriptor.uuid,
                repo=descriptor.repo_url,
                subdir=descriptor.subdir,
            )
        case Dev():
            return PackageReport(name=descriptor.name or descriptor.path, uuid=descriptor.uuid)
        case Trunk():
            return PackageReport(
                name=name_from_url(descriptor.repo_url),
                uuid=NIL_UUID,
                repo=descriptor.repo_url,
                subdir=descriptor.subdir,
            )
        case _:
            assert_never(descriptor)


def analyze_all(
    descriptors: Iterable[PackageDescriptor],
    ctx: AcquireContext,
    *,
    workers: int | None = None,
    analyze: Callable[[PackageDescriptor], PackageReport] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[PackageReport]:
    """Analyze every descriptor; the i-th report belongs to the i-th descriptor.

    A failure inside one analysis becomes an unreachable report for that
    package and never stops the others.

    Args:
        descriptors: Packages to analyze.
        ctx: Shared acquisition context.
        workers: Thread count. Defaults to ``ctx.workers``.
        analyze: Per-package function. Defaults to ``AnalysisPipeline(ctx).analyze``.
        progress_callback: Optional callback(completed, total, label).
    """
    queue = WorkQueue(descriptors)
    total = len(queue)
    if total == 0:
        return []

    analyze = analyze or AnalysisPipeline(ctx).analyze
    n_workers = max(1, min(workers or ctx.workers, total))
    ctx.metrics.start_batch(total)

    results: list[tuple[int, PackageReport]] = []
    results_lock = threading.Lock()

    def run_one(item: QueuedPackage) -> PackageReport:
        try:
            return analyze(item.descriptor)
        except Exception as e:
            logger.warning(f"Analysis of {item.label} failed: {e}", exc_info=True)
            ctx.metrics.record_error(item.label, type(e).__name__, str(e))
            return unreachable_report(item.descriptor)

    def worker() -> None:
        while (item := queue.get_next_package()) is not None:
            report = run_one(item)
            with results_lock:
                results.append((item.index, report))
            completed = queue.mark_completed(item, report.reachable)
            ctx.metrics.complete_package(item.label, report.reachable)
            if progress_callback:
                progress_callback(completed, total, item.label)

    logger.info(f"Analyzing {total} packages with {n_workers} workers")
    with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="pkganalyzer") as pool:
        futures = [pool.submit(worker) for _ in range(n_workers)]
        for future in futures:
            future.result()

    stats = queue.get_stats()
    kinds = ", ".join(f"{n} {kind}" for kind, n in sorted(stats.kinds.items()))
    logger.info(
        f"Finished {stats.completed}/{stats.total} packages ({kinds}): "
        f"{stats.reachable} reachable, {stats.unreachable} unreachable"
    )

    results.sort(key=lambda pair: pair[0])
    return [report for _, report in results]

