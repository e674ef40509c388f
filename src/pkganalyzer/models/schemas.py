"""Pydantic models for package descriptors, acquisitions and reports."""

import re
from enum import Enum
from pathlib import Path
from typing import Annotated, ClassVar, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NIL_UUID = UUID(int=0)

_TREE_HASH_RE = re.compile(r"^[0-9a-f]{40}$")


class Platform(str, Enum):
    """Source code hosting platforms."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    OTHER = "other"


class RepoRef(BaseModel):
    """Reference to a source code repository."""

    platform: Platform
    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


def _check_tree_hash(value: str) -> str:
    value = value.strip().lower()
    if not _TREE_HASH_RE.match(value):
        raise ValueError(f"tree hash must be 40 hex characters, got {value!r}")
    return value


class Release(BaseModel):
    """A registered release: registry entry plus version."""

    model_config = ConfigDict(frozen=True)
    is_pinned: ClassVar[bool] = True

    kind: Literal["release"] = "release"
    name: str
    uuid: UUID
    repo: str
    subdir: str = ""
    tree_hash: str
    version: str

    @field_validator("tree_hash")
    @classmethod
    def _valid_tree_hash(cls, value: str) -> str:
        return _check_tree_hash(value)

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}"


class Added(BaseModel):
    """A package pinned by tree hash, sourced from a local path or a repo URL."""

    model_config = ConfigDict(frozen=True)
    is_pinned: ClassVar[bool] = True

    kind: Literal["added"] = "added"
    name: str
    uuid: UUID
    path: str = ""
    repo_url: str = ""
    tree_hash: str
    subdir: str = ""

    @field_validator("tree_hash")
    @classmethod
    def _valid_tree_hash(cls, value: str) -> str:
        return _check_tree_hash(value)

    @model_validator(mode="after")
    def _one_source(self) -> "Added":
        if bool(self.path) == bool(self.repo_url):
            raise ValueError("exactly one of `path` and `repo_url` must be given")
        return self

    @property
    def label(self) -> str:
        return f"{self.name}@{self.tree_hash[:10]}"


class Dev(BaseModel):
    """A local development checkout, analyzed in place."""

    model_config = ConfigDict(frozen=True)
    is_pinned: ClassVar[bool] = False

    kind: Literal["dev"] = "dev"
    name: str = ""
    uuid: UUID = NIL_UUID
    path: str

    @property
    def label(self) -> str:
        return self.name or self.path


class Trunk(BaseModel):
    """The default branch of a repository, whatever it currently holds."""

    model_config = ConfigDict(frozen=True)
    is_pinned: ClassVar[bool] = False

    kind: Literal["trunk"] = "trunk"
    repo_url: str
    subdir: str = ""

    @property
    def label(self) -> str:
        if self.subdir:
            return f"{self.repo_url}:{self.subdir}"
        return self.repo_url


PackageDescriptor = Annotated[Release | Added | Dev | Trunk, Field(discriminator="kind")]


class AcquisitionResult(BaseModel):
    """Where a descriptor's source tree ended up, and whether it is usable."""

    path: Path
    reachable: bool
    version: str | None = None
    subdir: str = ""


class LicenseFile(BaseModel):
    """A file that looks like a license, and what it appears to contain."""

    license_filename: str
    licenses_found: list[str] = Field(default_factory=list)
    license_file_percent_covered: float = 0.0


class LocRow(BaseModel):
    """Line counts for one language within one top-level directory."""

    directory: str
    language: str
    sublanguage: str | None = None
    files: int = 0
    code: int = 0
    comments: int = 0
    blanks: int = 0


class Contributor(BaseModel):
    """A GitHub contributor ("User", "Bot" or "Anonymous")."""

    login: str | None = None
    id: int | None = None
    name: str | None = None
    type: str
    contributions: int = 0


CI_SERVICES: dict[str, str] = {
    "github_actions": "GitHub Actions",
    "travis": "Travis",
    "appveyor": "AppVeyor",
    "cirrus": "Cirrus",
    "circle": "Circle",
    "drone": "Drone CI",
    "buildkite": "Buildkite",
    "azure_pipelines": "Azure Pipelines",
    "gitlab_pipeline": "GitLab Pipeline",
}


class PackageReport(BaseModel):
    """Complete analysis of one package.

    An unreachable package keeps its identifying fields and leaves every
    detection field at its default.
    """

    name: str
    uuid: UUID = NIL_UUID
    repo: str = ""
    subdir: str = ""
    reachable: bool = False
    docs: bool = False
    runtests: bool = False
    github_actions: bool = False
    travis: bool = False
    appveyor: bool = False
    cirrus: bool = False
    circle: bool = False
    drone: bool = False
    buildkite: bool = False
    azure_pipelines: bool = False
    gitlab_pipeline: bool = False
    license_files: list[LicenseFile] = Field(default_factory=list)
    licenses_in_project: list[str] = Field(default_factory=list)
    lines_of_code: list[LocRow] = Field(default_factory=list)
    contributors: list[Contributor] = Field(default_factory=list)
    version: str | None = None
    tree_hash: str = ""

    def ci_services(self) -> list[str]:
        """Names of the CI services this package is configured for."""
        return [label for field, label in CI_SERVICES.items() if getattr(self, field)]

    @property
    def has_ci(self) -> bool:
        return bool(self.ci_services())

    def count_loc(self, directory: str, language: str = "Julia") -> int:
        """Lines of code (no docstrings) in `directory` for `language`."""
        return sum(
            row.code
            for row in self.lines_of_code
            if row.directory == directory and row.language == language and row.sublanguage is None
        )

    def count_docstrings(self, directory: str = "src") -> int:
        """Julia docstring lines in `directory`."""
        return sum(
            row.code
            for row in self.lines_of_code
            if row.directory == directory and row.language == "Julia" and row.sublanguage == "Markdown"
        )

    def count_docs(self, directories: tuple[str, ...] = ("docs", "doc")) -> int:
        """Code plus comment lines in the documentation directories."""
        return sum(
            row.code + row.comments
            for row in self.lines_of_code
            if row.directory in directories
        )

    def count_readme(self) -> int:
        return sum(
            row.code + row.comments
            for row in self.lines_of_code
            if row.directory.lower().startswith("readme")
        )

    def count_contributors(self, type: str = "User") -> int:
        return sum(1 for c in self.contributors if c.type == type)

    def count_commits(self) -> int:
        return sum(c.contributions for c in self.contributors)
