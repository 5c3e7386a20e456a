"""
Core data models API surface for repobundle.

This file re-exports model classes from domain-specific modules so callers
can write `from repobundle.models import X`.
"""

from .github import (
    RepoLocation,
    parse_github_url,
)
from .bundle import (
    FileEntry,
    WalkResult,
    FileDocument,
    BundleReport,
)
from .config import FilterConfig, FetchConfig, BundleConfig

__all__ = [
    # GitHub models
    "RepoLocation",
    "parse_github_url",
    # Bundle models
    "FileEntry",
    "WalkResult",
    "FileDocument",
    "BundleReport",
    # Config models
    "FilterConfig",
    "FetchConfig",
    "BundleConfig",
]
