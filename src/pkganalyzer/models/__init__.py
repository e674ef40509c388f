"""Data models and schemas."""

from pkganalyzer.models.schemas import (
    AcquisitionResult,
    Added,
    Dev,
    PackageDescriptor,
    PackageReport,
    Release,
    Trunk,
)

__all__ = [
    "AcquisitionResult",
    "Added",
    "Dev",
    "PackageDescriptor",
    "PackageReport",
    "Release",
    "Trunk",
]
