"""
GitHub domain models for repobundle.

This module holds the parsed form of a repository URL and the parser that
produces it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from ..infrastructure.error_handler import ConfigError


GITHUB_HOSTS = ('github.com', 'www.github.com')


@dataclass(frozen=True)
class RepoLocation:
    """Immutable pointer to a repository, branch and folder on GitHub."""

    owner: str
    name: str
    branch: Optional[str] = None
    subpath: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.owner or not self.name:
            raise ValueError("Repository owner and name are required")

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.name}'

    @property
    def html_url(self) -> str:
        return f'https://github.com/{self.full_name}'

    def archive_url(self, branch: str) -> str:
        """Zip archive URL for `branch`."""

        return f'{self.html_url}/archive/{branch}.zip'


def parse_github_url(url: str) -> RepoLocation:
    """
    Parse a GitHub repository URL.

    Accepted forms::

        https://github.com/<owner>/<repo>
        https://github.com/<owner>/<repo>.git
        https://github.com/<owner>/<repo>/tree/<branch>
        https://github.com/<owner>/<repo>/tree/<branch>/<sub/path>

    Raises:
        ConfigError: If the URL is not a GitHub repository URL
    """

    parsed = urlparse(url.strip())
    if parsed.scheme not in ('http', 'https') or parsed.netloc.lower() not in GITHUB_HOSTS:
        raise ConfigError(f"Not a valid GitHub URL: {url}")

    segments = [segment for segment in parsed.path.split('/') if segment]
    if len(segments) < 2:
        raise ConfigError(f"URL doesn't contain a repository path: {url}")

    owner, name = segments[0], segments[1]
    if name.endswith('.git'):
        name = name[:-len('.git')]
    if not name:
        raise ConfigError(f"URL doesn't contain a repository path: {url}")

    branch = subpath = None
    rest = segments[2:]
    if rest:
        if rest[0] != 'tree' or len(rest) < 2:
            raise ConfigError(
                f"Expected '/tree/<branch>[/<path>]' after the repository in: {url}"
            )
        branch = rest[1]
        subpath = '/'.join(rest[2:]) or None

    return RepoLocation(owner=owner, name=name, branch=branch, subpath=subpath)


__all__ = [
    "RepoLocation",
    "parse_github_url",
]
