"""
Path filtering for bundle walks.
"""

from pathlib import PurePath
from typing import Union

from ..models import FilterConfig


PathLike = Union[str, PurePath]


def accepts(path: PathLike, config: FilterConfig) -> bool:
    """
    Check whether a file path qualifies under `config`.

    Ignore rules win over extension matches. Every directory segment of
    `path` is checked, so pass it relative to the walk root.

    Args:
        path: File path, usually relative to the walk root
        config: Filter rules

    Returns:
        True if the file should be part of the bundle
    """

    pure = PurePath(path)

    if any(part in config.ignored_dirs for part in pure.parts[:-1]):
        return False

    if pure.name in config.ignored_files:
        return False

    if config.extensions and pure.suffix not in config.extensions:
        return False

    return True


class PathFilter:
    """Filter bound to one `FilterConfig`, as used by the tree walker."""

    def __init__(self, config: FilterConfig):
        self.config = config

    def accepts(self, path: PathLike) -> bool:
        return accepts(path, self.config)

    def is_pruned(self, dir_name: str) -> bool:
        """True if a directory with this name must not be descended into."""

        return dir_name in self.config.ignored_dirs


__all__ = [
    "accepts",
    "PathFilter",
]
