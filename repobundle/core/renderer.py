"""
Content loading and plain-text rendering of bundle reports.
"""

from typing import Iterable, List, Tuple

from ..models import BundleReport, FileDocument, FileEntry
from ..infrastructure.error_handler import RenderError

from repobundle.infrastructure.logger import logger


ENCODING = 'utf-8'


def load_documents(entries: Iterable[FileEntry]) -> Tuple[List[FileDocument], List[RenderError]]:
    """
    Read every entry as text.

    Files that cannot be read or decoded become documents carrying an
    error marker instead of aborting the run.

    Returns:
        Tuple of (documents, render warnings)
    """

    documents: List[FileDocument] = []
    warnings: List[RenderError] = []

    for entry in entries:
        try:
            data = entry.path.read_bytes()
            documents.append(FileDocument(entry, text=data.decode(ENCODING)))
        except UnicodeDecodeError:
            message = f"could not decode {entry.relative_path} as {ENCODING}"
        except OSError as e:
            message = f"could not read {entry.relative_path}: {e.strerror or e}"
        else:
            continue

        logger.warning(f"Error reading file {entry.relative_path}: {message}")
        warnings.append(RenderError(message, entry.path))
        documents.append(FileDocument(entry, error=message))

    return documents, warnings


def render_report(report: BundleReport) -> str:
    """
    Render a report as plain text.

    Layout::

        Found <n> file(s) in <source>
        <relative path>
        ...

        --- <relative path> ---
        <contents>
    """

    noun = 'file' if report.file_count == 1 else 'files'
    lines = [f"Found {report.file_count} {noun} in {report.source}"]
    lines.extend(entry.relative_path for entry in report.entries)

    if report.include_contents:
        for document in report.documents:
            lines.append('')
            lines.append(f"--- {document.entry.relative_path} ---")
            if document.is_readable:
                text = document.text
                lines.append(text[:-1] if text.endswith('\n') else text)
            else:
                lines.append(f"[error: {document.error}]")

    return '\n'.join(lines) + '\n'


__all__ = [
    "load_documents",
    "render_report",
]
