"""
Deterministic, pruning directory walker.
"""

import os
from pathlib import Path
from typing import Iterator, List, Tuple, Union

from ..models import FileEntry, FilterConfig, WalkResult
from ..infrastructure.error_handler import WalkError
from .filter import PathFilter

from repobundle.infrastructure.logger import logger


class TreeWalker:
    """
    Walks a directory tree depth-first, visiting the entries of every
    directory in lexicographic order. Ignored directories are pruned before
    they are listed and symbolic links are never followed.
    """

    def __init__(self, config: FilterConfig):
        self.config = config
        self.path_filter = PathFilter(config)

    def walk(self, root: Union[str, Path]) -> WalkResult:
        """
        Collect every qualifying file beneath `root`.

        Args:
            root: Directory to walk

        Returns:
            WalkResult with ordered entries and per-directory warnings

        Raises:
            WalkError: If `root` is missing, is not a directory or cannot be listed
        """

        root = Path(root).resolve()
        if not root.exists():
            raise WalkError(f"Directory not found: {root}", root)
        if not root.is_dir():
            raise WalkError(f"Not a directory: {root}", root)

        try:
            top = self._scan(root)
        except OSError as e:
            raise WalkError(f"Cannot read directory {root}: {e}", root) from e

        result = WalkResult(root=root)
        logger.debug(f"Walking {root}")

        # One sorted iterator per open directory, innermost last
        stack: List[Tuple[Iterator[os.DirEntry], Tuple[str, ...]]] = [(iter(top), ())]
        while stack:
            entries, rel_parts = stack[-1]
            entry = next(entries, None)
            if entry is None:
                stack.pop()
                continue

            entry_parts = rel_parts + (entry.name,)
            relative = '/'.join(entry_parts)

            if entry.is_symlink():
                logger.debug(f"Skipping symlink: {relative}")
                continue

            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = not is_dir and entry.is_file(follow_symlinks=False)
            except OSError as e:
                self._record(result, f"Cannot stat {entry.path}: {e}", entry.path)
                continue

            if is_dir:
                if self.path_filter.is_pruned(entry.name):
                    logger.debug(f"Pruned directory: {relative}")
                    continue
                children = self._list_directory(Path(entry.path), result)
                stack.append((iter(children), entry_parts))
            elif is_file and self.path_filter.accepts(relative):
                logger.info(f"Found file: {relative}")
                result.entries.append(FileEntry(Path(entry.path), relative))

        logger.debug(
            f"Walk finished: {len(result.entries)} files matched, "
            f"{len(result.warnings)} warnings"
        )
        return result

    @staticmethod
    def _scan(directory: Path) -> List[os.DirEntry]:
        with os.scandir(directory) as iterator:
            return sorted(iterator, key=lambda entry: entry.name)

    def _list_directory(self, directory: Path, result: WalkResult) -> List[os.DirEntry]:
        try:
            return self._scan(directory)
        except OSError as e:
            self._record(result, f"Cannot read directory {directory}: {e}", directory)
            return []

    @staticmethod
    def _record(result: WalkResult, message: str, path) -> None:
        logger.warning(message)
        result.warnings.append(WalkError(message, path))


def walk(root: Union[str, Path], config: FilterConfig) -> WalkResult:
    """Walk `root` with `config`; see `TreeWalker.walk`."""

    return TreeWalker(config).walk(root)


__all__ = [
    "TreeWalker",
    "walk",
]
