"""Package analyzers."""

from pkganalyzer.analyzers.github import GitHubFetcher
from pkganalyzer.analyzers.pipeline import AnalysisPipeline

__all__ = ["AnalysisPipeline", "GitHubFetcher"]
