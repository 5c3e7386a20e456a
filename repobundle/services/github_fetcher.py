"""
Fetches a GitHub repository archive and resolves the directory to bundle.
"""

import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import List, Optional

import httpx
from github import Auth, Github

from ..models import FetchConfig, RepoLocation, parse_github_url
from ..infrastructure.error_handler import (
    FetchError, RepositoryNotFoundError, SubpathNotFoundError,
    handle_api_error, retry_on_error
)

from repobundle.infrastructure.logger import logger


USER_AGENT = 'repobundle'


class RepositoryFetcher:
    """
    Downloads a repository archive into a private temporary directory.

    Use as a context manager so the directory is removed on every exit
    path; set `FetchConfig.keep_temp` to leave it for inspection.
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        client: Optional[httpx.Client] = None,
        github: Optional[Github] = None
    ):
        self.config = config or FetchConfig()
        self._client = client
        self._owns_client = client is None
        self._github = github
        self._workdir: Optional[Path] = None

    def __enter__(self) -> 'RepositoryFetcher':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def workdir(self) -> Optional[Path]:
        """Temporary directory of the last fetch, if it still exists."""

        return self._workdir

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                follow_redirects=True,
                headers={'User-Agent': USER_AGENT}
            )
        return self._client

    def fetch(self, url: str) -> Path:
        """
        Download and extract the repository named by `url`.

        Args:
            url: GitHub URL, optionally with `/tree/<branch>/<subpath>`

        Returns:
            Local directory to walk

        Raises:
            ConfigError: If `url` is not a GitHub repository URL
            FetchError: If download, extraction or subpath resolution fails
        """

        location = parse_github_url(url)
        self.cleanup()

        try:
            self._workdir = Path(tempfile.mkdtemp(prefix='repobundle-'))
        except OSError as e:
            raise FetchError("Could not create temporary directory", e) from e
        logger.debug(f"Using temporary directory {self._workdir}")

        archive_path = self._workdir / 'repo.zip'
        branch = self.download_archive(location, archive_path)
        top_level = self.extract_archive(archive_path, self._workdir / 'extracted')
        logger.info(f"Repository {location.full_name}@{branch} extracted to {top_level}")

        return self.resolve_root(top_level, location.subpath)

    def candidate_branches(self, location: RepoLocation) -> List[str]:
        """
        Branches to try, in order.

        An explicit branch wins. Otherwise the default branch reported by
        the GitHub API is used, and if the API cannot be reached the
        configured fallback branches are tried.
        """

        if location.branch:
            return [location.branch]

        if self.config.query_default_branch:
            try:
                return [self._query_default_branch(location)]
            except RepositoryNotFoundError:
                raise
            except FetchError as e:
                logger.warning(
                    f"Could not query default branch of {location.full_name}: {e}; "
                    f"trying {', '.join(self.config.fallback_branches)}"
                )

        return list(self.config.fallback_branches)

    @handle_api_error
    def _query_default_branch(self, location: RepoLocation) -> str:
        if self._github is None:
            auth = Auth.Token(self.config.token) if self.config.token else None
            # No client-side retry: a rate limit must fail fast, not sleep until reset
            self._github = Github(
                auth=auth,
                base_url=self.config.api_url,
                timeout=int(self.config.timeout),
                retry=None
            )
        branch = self._github.get_repo(location.full_name).default_branch
        logger.debug(f"Default branch of {location.full_name} is {branch}")
        return branch

    def download_archive(self, location: RepoLocation, destination: Path) -> str:
        """
        Download the archive of the first candidate branch that exists.

        Returns:
            The branch that was downloaded

        Raises:
            RepositoryNotFoundError: If no candidate branch has an archive
            FetchError: On any other network or disk failure
        """

        tried = []
        for branch in self.candidate_branches(location):
            url = location.archive_url(branch)
            logger.info(f"Downloading repository from: {url}")
            try:
                self._download(url, destination)
                return branch
            except RepositoryNotFoundError:
                logger.debug(f"No archive at {url}")
                tried.append(branch)

        raise RepositoryNotFoundError(
            f"No archive found for {location.full_name} "
            f"(tried branches: {', '.join(tried)})"
        )

    def _download(self, url: str, destination: Path) -> int:
        download = retry_on_error(
            max_retries=self.config.max_retries,
            delay=self.config.retry_delay
        )(self._stream_to_file)
        return handle_api_error(download)(url, destination)

    def _stream_to_file(self, url: str, destination: Path) -> int:
        written = 0
        with self.client.stream('GET', url) as response:
            response.raise_for_status()
            with open(destination, 'wb') as fh:
                for chunk in response.iter_bytes(self.config.chunk_size):
                    fh.write(chunk)
                    written += len(chunk)

        logger.debug(f"Downloaded {url} ({written} bytes)")
        return written

    @staticmethod
    def extract_archive(archive_path: Path, destination: Path) -> Path:
        """
        Extract a zip archive and locate its top-level folder.

        Returns:
            The single top-level directory of the archive, or `destination`
            when the archive has no single top-level directory

        Raises:
            FetchError: If the archive is corrupt, unsafe or cannot be written
        """

        try:
            destination.mkdir(parents=True, exist_ok=True)
            base = destination.resolve()
            with zipfile.ZipFile(archive_path) as archive:
                for name in archive.namelist():
                    target = (base / name).resolve()
                    if target != base and base not in target.parents:
                        raise FetchError(f"Archive member escapes extraction directory: {name}")
                archive.extractall(base)
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
            # RuntimeError: encrypted member, NotImplementedError: unsupported compression
            raise FetchError(f"Corrupt archive: {archive_path.name}", e) from e
        except OSError as e:
            raise FetchError(f"Could not extract archive: {e}", e) from e

        children = list(base.iterdir())
        if len(children) == 1 and children[0].is_dir():
            return children[0]
        return base

    @staticmethod
    def resolve_root(top_level: Path, subpath: Optional[str]) -> Path:
        """
        Join `subpath` onto the extracted top-level directory.

        Raises:
            SubpathNotFoundError: If the folder does not exist in the repository
        """

        if not subpath:
            return top_level

        root = (top_level / subpath).resolve()
        base = top_level.resolve()
        if base not in root.parents or not root.is_dir():
            raise SubpathNotFoundError(
                f"Specified folder '{subpath}' not found in the repository"
            )
        return root

    def cleanup(self) -> None:
        """Remove the temporary directory unless configured to keep it."""

        if self._workdir is None:
            return

        if self.config.keep_temp:
            logger.info(f"Keeping temporary directory {self._workdir}")
        else:
            try:
                shutil.rmtree(self._workdir)
                logger.debug(f"Removed temporary directory {self._workdir}")
            except OSError as e:
                logger.warning(f"Could not remove temporary directory {self._workdir}: {e}")
        self._workdir = None

    def close(self) -> None:
        """Clean up and close the HTTP client if this fetcher created it."""

        self.cleanup()
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None


__all__ = [
    "RepositoryFetcher",
]
