"""End-to-end analysis: acquire a package's code, then inspect it."""

from __future__ import annotations

import json
import logging
import time
import tomllib
from collections import Counter, defaultdict
from pathlib import Path
from typing import assert_never
from uuid import UUID

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.acquisition.resolver import obtain_code
from pkganalyzer.acquisition.tree_hash import tree_hash
from pkganalyzer.adapters.base import github_slug
from pkganalyzer.analyzers.github import GitHubFetcher
from pkganalyzer.analyzers.licenses import find_licenses
from pkganalyzer.analyzers.loc import count_loc
from pkganalyzer.models.schemas import (
    NIL_UUID,
    Added,
    Dev,
    LicenseFile,
    PackageDescriptor,
    PackageReport,
    Release,
    Trunk,
)
from pkganalyzer.monitoring.metrics import StageTimer

logger = logging.getLogger(__name__)

INVALID_PROJECT = "Invalid Project.toml"

# Bots that live in .github/workflows but are not CI
IGNORED_WORKFLOWS = frozenset({"compathelper.yml", "tagbot.yml"})

CI_FILES: dict[str, tuple[str, ...]] = {
    "travis": (".travis.yml",),
    "appveyor": ("appveyor.yml",),
    "cirrus": (".cirrus.yml",),
    "circle": (".circleci", "config.yml"),
    "drone": (".drone.yml",),
    "azure_pipelines": ("azure-pipelines.yml",),
    "buildkite": (".buildkite", "pipeline.yml"),
    "gitlab_pipeline": (".gitlab-ci.yml",),
}


def parse_project(directory: Path) -> tuple[str, UUID, list[str]]:
    """Name, UUID and declared licenses from a package's Project.toml.

    Anything unreadable yields ``("Invalid Project.toml", nil UUID, [])``.
    """
    for filename in ("JuliaProject.toml", "Project.toml"):
        path = directory / filename
        if path.is_file():
            break
    else:
        return INVALID_PROJECT, NIL_UUID, []

    try:
        with open(path, "rb") as f:
            project = tomllib.load(f)
        name = project["name"]
        uuid = UUID(project["uuid"])
    except (OSError, tomllib.TOMLDecodeError, KeyError, TypeError, ValueError) as e:
        logger.debug(f"Could not parse {path}: {e}")
        return INVALID_PROJECT, NIL_UUID, []

    licenses = project.get("license", [])
    if isinstance(licenses, str):
        licenses = [licenses]
    return name, uuid, [str(lic) for lic in licenses]


def has_github_actions(directory: Path) -> bool:
    workflows = directory / ".github" / "workflows"
    if not workflows.is_dir():
        return False
    return any(
        f.is_file() and f.name.lower() not in IGNORED_WORKFLOWS for f in workflows.iterdir()
    )


def name_from_url(url: str) -> str:
    """Best guess at a package name from its repository URL."""
    tail = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    for suffix in (".git", ".jl"):
        tail = tail.removesuffix(suffix)
    return tail


class AnalysisPipeline:
    """Acquires packages and turns their source trees into reports.

    Pipeline stages:
    1. Obtain the code (depot, cache, or a fresh download)
    2. Detect docs, tests and CI configuration
    3. Identify licenses and count lines of code
    4. Fetch contributors from GitHub (authenticated only)
    """

    def __init__(self, ctx: AcquireContext, github: GitHubFetcher | None = None) -> None:
        self.ctx = ctx
        self.github = github or GitHubFetcher(token=ctx.github_token, client=ctx.http_client)

    def analyze(self, descriptor: PackageDescriptor) -> PackageReport:
        """Acquire and analyze one package."""
        with StageTimer(self.ctx.metrics, "acquire"):
            result = obtain_code(descriptor, self.ctx)

        match descriptor:
            case Release():
                name, uuid, repo, subdir = descriptor.name, descriptor.uuid, descriptor.repo, descriptor.subdir
                only_subdir = True
            case Added():
                name, uuid, repo, subdir = descriptor.name, descriptor.uuid, descriptor.repo_url, descriptor.subdir
                only_subdir = True
            case Dev():
                name, uuid, repo, subdir = descriptor.name, descriptor.uuid, "", ""
                only_subdir = True
            case Trunk():
                name, uuid, repo, subdir = name_from_url(descriptor.repo_url), NIL_UUID, descriptor.repo_url, result.subdir
                only_subdir = False
            case _:
                assert_never(descriptor)

        if not result.reachable:
            return PackageReport(
                name=name or descriptor.label,
                uuid=uuid,
                repo=repo,
                subdir=subdir,
                reachable=False,
                version=result.version,
            )

        with StageTimer(self.ctx.metrics, "analyze"):
            return self.analyze_code(
                result.path,
                repo=repo,
                subdir=subdir,
                only_subdir=only_subdir,
                version=result.version,
            )

    def analyze_code(
        self,
        directory: str | Path,
        repo: str = "",
        subdir: str = "",
        only_subdir: bool = False,
        version: str | None = None,
    ) -> PackageReport:
        """Analyze the package whose source code is at `directory`.

        Docs, tests, licenses and lines of code are looked up in the package
        directory; CI configuration at the top of `directory`. With
        `only_subdir`, `directory` already is the package directory and
        `subdir` only records where it lives within its repository.
        """
        directory = Path(directory)
        pkgdir = directory if only_subdir else directory / subdir
        name, uuid, licenses_in_project = parse_project(pkgdir)

        ci = {field: (directory.joinpath(*parts)).is_file() for field, parts in CI_FILES.items()}

        # with only_subdir the top of the repository is not available
        if only_subdir and subdir:
            license_files: list[LicenseFile] = []
        else:
            license_files = find_licenses(directory)

        if pkgdir.is_dir():
            if subdir:
                subdir_licenses = [
                    lic.model_copy(update={"license_filename": f"{subdir}/{lic.license_filename}"})
                    for lic in find_licenses(pkgdir)
                ]
                license_files = subdir_licenses + license_files
            lines_of_code = count_loc(pkgdir)
            content_hash = tree_hash(pkgdir)
        else:
            license_files = []
            lines_of_code = []
            content_hash = ""

        contributors = []
        slug = github_slug(repo)
        if self.github.authenticated and slug:
            if self.ctx.sleep:
                time.sleep(self.ctx.sleep)
            contributors = self.github.fetch_contributors(slug)

        return PackageReport(
            name=name,
            uuid=uuid,
            repo=repo,
            subdir=subdir,
            reachable=True,
            docs=(pkgdir / "docs" / "make.jl").is_file() or (pkgdir / "doc" / "make.jl").is_file(),
            runtests=(pkgdir / "test" / "runtests.jl").is_file(),
            github_actions=has_github_actions(directory),
            license_files=license_files,
            licenses_in_project=licenses_in_project,
            lines_of_code=lines_of_code,
            contributors=contributors,
            version=version,
            tree_hash=content_hash,
            **ci,
        )


def save_reports(reports: list[PackageReport], path: Path) -> Path:
    """Write reports as a JSON array."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [report.model_dump(mode="json") for report in reports]
    path.write_text(json.dumps(data, indent=2, default=str))
    return path


def summarize_reports(reports: list[PackageReport]) -> dict:
    """Collection-level totals for a batch of reports.

    ``license_packages`` maps every license seen in any license file to the
    sorted names of the packages carrying it, least used licenses first.
    """
    reachable = [r for r in reports if r.reachable]
    licenses: Counter[str] = Counter()
    ci_services: Counter[str] = Counter()
    license_packages: dict[str, set[str]] = defaultdict(set)
    loc_by_language: Counter[str] = Counter()
    for report in reachable:
        if report.license_files:
            licenses.update(report.license_files[0].licenses_found)
        else:
            licenses["(none)"] += 1
        ci_services.update(report.ci_services())
        for lic in report.license_files:
            for found in lic.licenses_found:
                license_packages[found].add(report.name)
        for row in report.lines_of_code:
            if row.sublanguage is None:
                loc_by_language[row.language] += row.code

    return {
        "total_packages": len(reports),
        "reachable_packages": len(reachable),
        "with_docs": sum(r.docs for r in reachable),
        "with_tests": sum(r.runtests for r in reachable),
        "with_ci": sum(r.has_ci for r in reachable),
        "licenses": dict(licenses.most_common()),
        "ci_services": dict(ci_services.most_common()),
        "julia_src_lines": sum(r.count_loc("src") for r in reachable),
        "julia_test_lines": sum(r.count_loc("test") for r in reachable),
        # package extensions live in ext/
        "julia_ext_lines": sum(r.count_loc("ext") for r in reachable),
        "doc_lines": sum(r.count_docs() for r in reachable),
        "readme_lines": sum(r.count_readme() for r in reachable),
        "src_docstring_lines": sum(r.count_docstrings("src") for r in reachable),
        "loc_by_language": dict(loc_by_language.most_common()),
        "license_packages": {
            name: sorted(packages)
            for name, packages in sorted(license_packages.items(), key=lambda kv: (len(kv[1]), kv[0]))
        },
    }
