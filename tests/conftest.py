from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from uuid import UUID

import pytest

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.adapters.registry import LocalRegistry

EXAMPLE_UUID = UUID("7876af07-990d-54b4-ab0e-23690620f79a")
SUB_UUID = UUID("c1f3a2b4-0000-4000-8000-000000000001")
ORPHAN_UUID = UUID("c1f3a2b4-0000-4000-8000-000000000002")
JLL_UUID = UUID("c1f3a2b4-0000-4000-8000-000000000003")

HASH_053 = "a" * 40
HASH_054 = "b" * 40
HASH_060 = "c" * 40
HASH_SUB = "d" * 40
HASH_ORPHAN = "e" * 40
HASH_JLL = "f" * 40


def write_registry(root: Path, name: str, packages: list[dict]) -> Path:
    """Lay out an unpacked registry the way General is laid out on disk.

    Each package dict has ``name``, ``uuid``, ``versions`` ({version: (hash, yanked)})
    and optionally ``repo`` and ``subdir``.
    """
    root.mkdir(parents=True, exist_ok=True)
    lines = [f'name = "{name}"', f'uuid = "{UUID(int=len(name))}"', "", "[packages]"]
    for pkg in packages:
        relpath = f"{pkg['name'][0].upper()}/{pkg['name']}"
        lines.append(f'{pkg["uuid"]} = {{ name = "{pkg["name"]}", path = "{relpath}" }}')

        pkg_dir = root / relpath
        pkg_dir.mkdir(parents=True, exist_ok=True)
        package_toml = [f'name = "{pkg["name"]}"', f'uuid = "{pkg["uuid"]}"']
        if pkg.get("repo"):
            package_toml.append(f'repo = "{pkg["repo"]}"')
        if pkg.get("subdir"):
            package_toml.append(f'subdir = "{pkg["subdir"]}"')
        (pkg_dir / "Package.toml").write_text("\n".join(package_toml) + "\n")

        versions = []
        for version, (tree_hash, yanked) in pkg["versions"].items():
            versions.append(f'["{version}"]')
            versions.append(f'git-tree-sha1 = "{tree_hash}"')
            if yanked:
                versions.append("yanked = true")
            versions.append("")
        (pkg_dir / "Versions.toml").write_text("\n".join(versions))

    (root / "Registry.toml").write_text("\n".join(lines) + "\n")
    return root


GENERAL_PACKAGES = [
    {
        "name": "Example",
        "uuid": EXAMPLE_UUID,
        "repo": "https://github.com/JuliaLang/Example.jl.git",
        "versions": {
            "0.5.3": (HASH_053, False),
            "0.5.4": (HASH_054, False),
            "0.6.0": (HASH_060, True),
        },
    },
    {
        "name": "SubPkg",
        "uuid": SUB_UUID,
        "repo": "https://github.com/Owner/Mono.jl.git",
        "subdir": "lib/SubPkg",
        "versions": {"1.0.0": (HASH_SUB, False)},
    },
    {
        "name": "Orphan",
        "uuid": ORPHAN_UUID,
        "versions": {"0.1.0": (HASH_ORPHAN, False)},
    },
    {
        "name": "Foo_jll",
        "uuid": JLL_UUID,
        "repo": "https://github.com/JuliaBinaryWrappers/Foo_jll.jl.git",
        "versions": {"1.0.0+0": (HASH_JLL, False)},
    },
]


@pytest.fixture
def registry_path(tmp_path: Path) -> Path:
    return write_registry(tmp_path / "registries" / "General", "General", GENERAL_PACKAGES)


@pytest.fixture
def registry(registry_path: Path) -> LocalRegistry:
    return LocalRegistry(registry_path)


@pytest.fixture
def ctx(tmp_path: Path, registry: LocalRegistry) -> AcquireContext:
    return AcquireContext(
        cache_root=tmp_path / "cache",
        depots=[tmp_path / "depot"],
        registries=[registry],
        workers=2,
    )


@pytest.fixture(autouse=True)
def no_github_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_AUTH", raising=False)


def git(cwd: Path, *args: str) -> str:
    p = subprocess.run(
        [
            "git",
            "-c", "user.name=Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            "-c", "init.defaultBranch=main",
            *args,
        ],
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        check=True,
    )
    return p.stdout.decode().strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> tuple[Path, str]:
    """A committed repository with nested dirs, an executable and a symlink.

    Returns the working tree and git's own hash of the committed tree.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "upstream"
    (repo / "src").mkdir(parents=True)
    (repo / "a").mkdir()
    (repo / "src" / "Example.jl").write_text("module Example\nhello(who) = \"Hello, $who\"\nend\n")
    (repo / "a" / "inner.txt").write_text("inner\n")
    (repo / "a.b").write_text("sorts before the directory a\n")
    (repo / "Project.toml").write_text(
        'name = "Example"\nuuid = "7876af07-990d-54b4-ab0e-23690620f79a"\n'
    )
    script = repo / "build.sh"
    script.write_text("#!/bin/sh\necho hi\n")
    script.chmod(0o755)
    (repo / "link").symlink_to("src/Example.jl")

    git(repo, "init", "-q")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "initial")
    return repo, git(repo, "rev-parse", "HEAD^{tree}")
