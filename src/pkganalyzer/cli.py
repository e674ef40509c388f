"""CLI entry point for pkganalyzer."""

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.acquisition.tree_hash import tree_hash as compute_tree_hash
from pkganalyzer.analyzers.licenses import is_osi_approved
from pkganalyzer.analyzers.pipeline import AnalysisPipeline, save_reports, summarize_reports
from pkganalyzer.batch import analyze_all
from pkganalyzer.errors import PkgAnalyzerError
from pkganalyzer.finder import (
    find_all_packages,
    find_packages,
    find_packages_in_manifest,
    resolve_input,
)
from pkganalyzer.models.schemas import PackageReport

app = typer.Typer(help="Acquire Julia packages by content hash and report on their health.")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _build_context(root: Path | None, workers: int | None = None) -> AcquireContext:
    return AcquireContext.from_env(cache_root=root, workers=workers)


@contextmanager
def _cache_root(root: Path | None) -> Iterator[Path | None]:
    """The cache directory for one command.

    Without --root or PKGANALYZER_CACHE_ROOT downloads go to a temporary
    directory that is removed when the command finishes.
    """
    if root is not None or os.environ.get("PKGANALYZER_CACHE_ROOT"):
        yield root
        return
    with tempfile.TemporaryDirectory(prefix="pkganalyzer-") as tmp:
        yield Path(tmp)


def _percent(part: int, whole: int) -> str:
    if whole == 0:
        return "-"
    return f"{100 * part / whole:.1f}%"


def _print_report(report: PackageReport) -> None:
    """Render one report the way a human wants to read it."""
    console.print()
    console.print(f"[bold cyan]{report.name}[/bold cyan] {report.version or ''}")

    if not report.reachable:
        console.print(
            Panel(
                f"[bold yellow]Code not reachable[/bold yellow]\n\n{report.repo or '-'}",
                title="Unreachable",
                expand=False,
                border_style="yellow",
            )
        )
        return

    info_table = Table(show_header=False, box=None)
    info_table.add_column("Key", style="bold")
    info_table.add_column("Value")

    info_table.add_row("Repository", report.repo or "-")
    if report.subdir:
        info_table.add_row("Subdirectory", report.subdir)
    info_table.add_row("UUID", str(report.uuid))
    info_table.add_row("Tree hash", report.tree_hash or "-")

    if report.lines_of_code:
        l_src = report.count_loc("src")
        l_test = report.count_loc("test")
        l_docs = report.count_docs()
        info_table.add_row("Julia code in src", f"{l_src:,} lines")
        info_table.add_row(
            "Julia code in test", f"{l_test:,} lines ({_percent(l_test, l_test + l_src)} of test + src)"
        )
        info_table.add_row(
            "Documentation in docs", f"{l_docs:,} lines ({_percent(l_docs, l_docs + l_src)} of docs + src)"
        )
        info_table.add_row("Documentation in README", f"{report.count_readme():,} lines")

    if report.license_files:
        lic = report.license_files[0]
        osi = all(is_osi_approved(x) for x in lic.licenses_found)
        info_table.add_row(
            "License", f"{', '.join(lic.licenses_found)} ({lic.license_filename}, OSI approved: {osi})"
        )
    else:
        info_table.add_row("License", "[red]none found[/red]")
    if report.licenses_in_project:
        info_table.add_row("License in Project.toml", ", ".join(report.licenses_in_project))

    if report.contributors:
        info_table.add_row(
            "Contributors",
            f"{report.count_contributors()} (and {report.count_contributors('Anonymous')} anonymous)",
        )
        info_table.add_row("Commits", f"{report.count_commits():,}")

    info_table.add_row("docs/make.jl", "Yes" if report.docs else "No")
    info_table.add_row("test/runtests.jl", "Yes" if report.runtests else "No")
    services = report.ci_services()
    info_table.add_row("CI", ", ".join(services) if services else "[yellow]none[/yellow]")

    console.print(info_table)


def _print_summary(reports: list[PackageReport]) -> None:
    summary = summarize_reports(reports)
    reachable = summary["reachable_packages"]
    l_src = summary["julia_src_lines"]
    l_test = summary["julia_test_lines"]
    l_ext = summary["julia_ext_lines"]
    l_docs = summary["doc_lines"]
    l_inline = summary["readme_lines"] + summary["src_docstring_lines"]

    table = Table(title="Summary", show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Packages", str(summary["total_packages"]))
    table.add_row("Reachable", str(reachable))
    table.add_row("With docs", _percent(summary["with_docs"], reachable))
    table.add_row("With tests", _percent(summary["with_tests"], reachable))
    table.add_row("With CI", _percent(summary["with_ci"], reachable))
    table.add_row("Julia code in src", f"{l_src:,} lines")
    table.add_row("Julia code in ext", f"{l_ext:,} lines ({_percent(l_ext, l_src + l_test + l_ext)} of src + test + ext)")
    table.add_row("Julia code in test", f"{l_test:,} lines ({_percent(l_test, l_src + l_test + l_ext)} of src + test + ext)")
    table.add_row("Documentation in docs", f"{l_docs:,} lines ({_percent(l_docs, l_docs + l_src + l_ext)} of docs + src + ext)")
    table.add_row("README and docstrings", f"{l_inline:,} lines ({_percent(l_inline, l_inline + l_src)} of README + src)")
    console.print(table)

    if summary["loc_by_language"]:
        loc_table = Table(title="Code by language")
        loc_table.add_column("Language", style="cyan")
        loc_table.add_column("Lines", justify="right")
        for language, lines in summary["loc_by_language"].items():
            loc_table.add_row(language, f"{lines:,}")
        console.print(loc_table)

    if summary["license_packages"]:
        lic_table = Table(title="Licenses")
        lic_table.add_column("License", style="cyan")
        lic_table.add_column("Count", justify="right")
        lic_table.add_column("Packages")
        for name, packages in summary["license_packages"].items():
            lic_table.add_row(name, str(len(packages)), ", ".join(packages))
        console.print(lic_table)


def _run_batch(descriptors, ctx: AcquireContext, workers: int | None) -> list[PackageReport]:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Analyzing...", total=len(descriptors))

        def on_progress(completed: int, total: int, label: str) -> None:
            progress.update(task, completed=completed, description=f"Analyzed {label}")

        return analyze_all(descriptors, ctx, workers=workers, progress_callback=on_progress)


def _save(reports: list[PackageReport], output: Path | None) -> None:
    if output:
        save_reports(reports, output)
        console.print(f"\n[green]Saved to {output}[/green]")


@app.command()
def analyze(
    package: str = typer.Argument(..., help="Package name, local directory or repository URL"),
    version: str | None = typer.Option(None, "--version", help="Version, 'stable' or 'dev'"),
    subdir: str = typer.Option("", "--subdir", help="Package subdirectory within a repository URL"),
    root: Path | None = typer.Option(None, "--root", "-r", help="Cache directory for downloads"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Analyze a single package."""
    with _cache_root(root) as cache_root, httpx.Client(timeout=60.0, follow_redirects=True) as client:
        ctx = _build_context(cache_root)
        ctx.http_client = client
        try:
            descriptor = resolve_input(package, ctx.registries, version=version, subdir=subdir)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task(f"Analyzing {descriptor.label}...", total=None)
                report = AnalysisPipeline(ctx).analyze(descriptor)
        except PkgAnalyzerError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    _print_report(report)
    _save([report], output)


@app.command()
def analyze_manifest(
    manifest: Path = typer.Argument(Path("Manifest.toml"), help="Path to a Manifest.toml"),
    root: Path | None = typer.Option(None, "--root", "-r", help="Cache directory for downloads"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Parallel workers"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Analyze every package pinned in a manifest."""
    with _cache_root(root) as cache_root, httpx.Client(timeout=60.0, follow_redirects=True) as client:
        ctx = _build_context(cache_root, workers)
        ctx.http_client = client
        try:
            descriptors = find_packages_in_manifest(manifest, ctx.registries)
        except (PkgAnalyzerError, OSError) as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        reports = _run_batch(descriptors, ctx, workers)

    _print_summary(reports)
    _save(reports, output)


@app.command()
def analyze_batch(
    names: list[str] | None = typer.Argument(None, help="Package names"),
    all_packages: bool = typer.Option(False, "--all", help="Analyze every registered package"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Analyze at most this many"),
    root: Path | None = typer.Option(None, "--root", "-r", help="Cache directory for downloads"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Parallel workers"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
) -> None:
    """Analyze many registered packages in parallel."""
    if not names and not all_packages:
        console.print("[red]Give package names or --all[/red]")
        raise typer.Exit(1)

    with _cache_root(root) as cache_root, httpx.Client(timeout=60.0, follow_redirects=True) as client:
        ctx = _build_context(cache_root, workers)
        ctx.http_client = client
        if all_packages:
            descriptors = find_all_packages(ctx.registries)
        else:
            descriptors = find_packages(names, ctx.registries)
        if limit is not None:
            descriptors = descriptors[:limit]
        reports = _run_batch(descriptors, ctx, workers)

    _print_summary(reports)
    _save(reports, output)


@app.command()
def find(
    package: str = typer.Argument(..., help="Package name, local directory or repository URL"),
    version: str | None = typer.Option(None, "--version", help="Version, 'stable' or 'dev'"),
    subdir: str = typer.Option("", "--subdir", help="Package subdirectory within a repository URL"),
) -> None:
    """Show what an input resolves to, without downloading anything."""
    with _cache_root(None) as cache_root:
        ctx = _build_context(cache_root)
    try:
        descriptor = resolve_input(package, ctx.registries, version=version, subdir=subdir)
    except PkgAnalyzerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=descriptor.label, show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in descriptor.model_dump(mode="json").items():
        table.add_row(key, str(value) if value != "" else "-")
    table.add_row("pinned", "yes" if descriptor.is_pinned else "no (always re-fetched)")
    console.print(table)


@app.command()
def tree_hash(
    directory: Path = typer.Argument(..., help="Directory to hash"),
) -> None:
    """Print the git tree hash of a directory."""
    try:
        console.print(compute_tree_hash(directory))
    except OSError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from pkganalyzer import __version__

    console.print(f"pkganalyzer v{__version__}")


if __name__ == "__main__":
    app()
