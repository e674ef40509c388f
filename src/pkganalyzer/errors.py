"""Exceptions raised for bad input or broken metadata.

Unreachable sources are not errors: they are reported through the
``reachable`` flag of an acquisition result.
"""

from uuid import UUID


class PkgAnalyzerError(Exception):
    """Base class for all pkganalyzer errors."""


class ArgumentError(PkgAnalyzerError, ValueError):
    """Raised when a combination of arguments makes no sense."""


class PackageNotFoundError(PkgAnalyzerError):
    """Raised when a package cannot be found in any registry."""

    def __init__(self, name: str, version: str | None = None, stdlib: bool = False) -> None:
        self.name = name
        self.version = version
        self.stdlib = stdlib
        if stdlib:
            message = f"Package '{name}' is a standard library package and is not in any registry"
        elif version:
            message = f"Package '{name}' has no version {version} in the available registries"
        else:
            message = f"Package '{name}' not found in the available registries"
        super().__init__(message)


class AmbiguousPackageError(PkgAnalyzerError):
    """Raised when one name is registered under several different UUIDs."""

    def __init__(self, name: str, uuids: list[UUID]) -> None:
        self.name = name
        self.uuids = uuids
        listing = ", ".join(str(u) for u in uuids)
        super().__init__(f"Package name '{name}' is ambiguous; registered under UUIDs: {listing}")


class TreeHashMismatchError(PkgAnalyzerError):
    """Raised when a manifest pins a tree hash the registry disagrees with."""

    def __init__(self, name: str, version: str, expected: str, found: str) -> None:
        self.name = name
        self.version = version
        self.expected = expected
        self.found = found
        super().__init__(
            f"Tree hash mismatch for {name}@{version}: manifest has {found}, registry has {expected}"
        )


class UnsupportedManifestError(PkgAnalyzerError):
    """Raised for manifest formats other than 1.x and 2.x."""


class AcquisitionError(PkgAnalyzerError):
    """Raised when a descriptor cannot be acquired because it is malformed."""
