"""
Orchestrator for a complete bundle run: fetch or use a local directory,
walk it, and load file contents for rendering.
"""

from pathlib import Path
from typing import Callable, Optional

from ..models import BundleConfig, BundleReport, FetchConfig
from ..services.github_fetcher import RepositoryFetcher
from .renderer import load_documents
from .walker import TreeWalker

from repobundle.infrastructure.logger import logger


FetcherFactory = Callable[[FetchConfig], RepositoryFetcher]


class ContextBuilder:
    """
    Builds a `BundleReport` from a `BundleConfig`.

    The builder only sequences the steps; selection rules live in the
    filter and the walker.
    """

    def __init__(self, fetcher_factory: Optional[FetcherFactory] = None):
        self.fetcher_factory = fetcher_factory or RepositoryFetcher

    def build(self, config: BundleConfig) -> BundleReport:
        """
        Execute the bundle run.

        Args:
            config: Run configuration

        Returns:
            BundleReport with matched entries, contents and warnings

        Raises:
            ConfigError: If the GitHub URL is malformed
            FetchError: If the remote repository cannot be obtained
            WalkError: If the root directory cannot be walked at all
        """

        if config.is_remote:
            # Contents must be read before the fetcher drops its temp directory
            with self.fetcher_factory(config.fetch) as fetcher:
                root = fetcher.fetch(config.github_url)
                return self._collect(config, root, source=config.github_url)

        root = Path(config.root)
        return self._collect(config, root, source=str(root))

    def _collect(self, config: BundleConfig, root: Path, source: str) -> BundleReport:
        logger.debug(f"Collecting files from {root}")
        walk_result = TreeWalker(config.filters).walk(root)

        report = BundleReport(
            source=source,
            root=walk_result.root,
            entries=list(walk_result.entries),
            warnings=list(walk_result.warnings),
            include_contents=config.filters.print_contents
        )

        if config.filters.print_contents:
            documents, render_warnings = load_documents(report.entries)
            report.documents = documents
            report.warnings.extend(render_warnings)

        logger.info(
            f"Matched {report.file_count} files in {source} "
            f"({len(report.warnings)} warnings)"
        )
        return report


def build(config: BundleConfig) -> BundleReport:
    """Build a report with the default collaborators."""

    return ContextBuilder().build(config)


__all__ = [
    "ContextBuilder",
    "build",
]
