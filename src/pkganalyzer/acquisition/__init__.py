"""Source acquisition: content addressing, strategies and the cache resolver."""

from pkganalyzer.acquisition.context import AcquireContext
from pkganalyzer.acquisition.resolver import cache_path, obtain_code
from pkganalyzer.acquisition.tree_hash import tree_hash, version_slug

__all__ = ["AcquireContext", "cache_path", "obtain_code", "tree_hash", "version_slug"]
