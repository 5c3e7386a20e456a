"""
Configuration models for repobundle runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Tuple


def _clean(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(value for value in values if value)


def _dotted(extension: str) -> str:
    return extension if extension.startswith('.') else f'.{extension}'


@dataclass(frozen=True)
class FilterConfig:
    """
    Immutable file selection rules.

    Extensions keep their case; a missing leading dot is added.
    Empty names are dropped from every set.
    """

    extensions: FrozenSet[str] = frozenset()
    ignored_dirs: FrozenSet[str] = frozenset()
    ignored_files: FrozenSet[str] = frozenset()
    print_contents: bool = False

    def __post_init__(self) -> None:
        # frozen: assign through object.__setattr__
        object.__setattr__(
            self, 'extensions', frozenset(_dotted(e) for e in _clean(self.extensions))
        )
        object.__setattr__(self, 'ignored_dirs', _clean(self.ignored_dirs))
        object.__setattr__(self, 'ignored_files', _clean(self.ignored_files))


@dataclass
class FetchConfig:
    """
    Settings for downloading and unpacking a repository archive.
    """

    timeout: float = 60.0
    chunk_size: int = 8192
    max_retries: int = 2
    retry_delay: float = 1.0
    keep_temp: bool = False
    token: Optional[str] = None
    query_default_branch: bool = True
    api_url: str = 'https://api.github.com'
    fallback_branches: Tuple[str, ...] = ('main', 'master')

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if not self.fallback_branches:
            raise ValueError("At least one fallback branch is required")


@dataclass
class BundleConfig:
    """Everything a single bundle run needs."""

    filters: FilterConfig = field(default_factory=FilterConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    github_url: Optional[str] = None
    root: Path = field(default_factory=lambda: Path('.'))
    verbosity: int = 0

    @property
    def is_remote(self) -> bool:
        return bool(self.github_url)


__all__ = [
    "FilterConfig",
    "FetchConfig",
    "BundleConfig",
]
