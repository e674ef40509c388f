"""Package registry adapters."""

from pkganalyzer.adapters.base import BaseRegistry, PackageInfo, VersionInfo
from pkganalyzer.adapters.registry import LocalRegistry, discover_registries

__all__ = ["BaseRegistry", "LocalRegistry", "PackageInfo", "VersionInfo", "discover_registries"]
