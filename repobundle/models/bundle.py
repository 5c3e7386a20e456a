"""
Bundle domain models for repobundle.

This module contains the data classes passed between the walker, the
content loader and the renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..infrastructure.error_handler import RenderError, WalkError


@dataclass(frozen=True)
class FileEntry:
    """A matched file: absolute path plus its path relative to the walk root."""

    path: Path
    relative_path: str

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class WalkResult:
    """Ordered matches of a single walk and the directories it had to skip."""

    root: Path
    entries: List[FileEntry] = field(default_factory=list)
    warnings: List[WalkError] = field(default_factory=list)

    @property
    def relative_paths(self) -> List[str]:
        return [entry.relative_path for entry in self.entries]


@dataclass
class FileDocument:
    """Contents of one matched file, or the reason they could not be read."""

    entry: FileEntry
    text: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.error is None):
            raise ValueError("Exactly one of text or error must be set")

    @property
    def is_readable(self) -> bool:
        return self.error is None


@dataclass
class BundleReport:
    """Final result of a bundle run, ready for rendering."""

    source: str
    root: Path
    entries: List[FileEntry] = field(default_factory=list)
    documents: List[FileDocument] = field(default_factory=list)
    warnings: List[Union[WalkError, RenderError]] = field(default_factory=list)
    include_contents: bool = False

    @property
    def file_count(self) -> int:
        return len(self.entries)


__all__ = [
    "FileEntry",
    "WalkResult",
    "FileDocument",
    "BundleReport",
]
