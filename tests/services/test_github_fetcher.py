"""
Unit tests for RepositoryFetcher in repobundle.services.github_fetcher.
"""

import io
import json
import shutil
import threading
import time
import zipfile
import zlib
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import httpx
import pytest
from github import Auth, GithubException

from repobundle.infrastructure.error_handler import (
    ConfigError, FetchError, RepositoryNotFoundError, SubpathNotFoundError
)
from repobundle.models import FetchConfig, parse_github_url
from repobundle.services.github_fetcher import RepositoryFetcher


# ---- Helpers ---------------------------------------------------------------

def make_zip(files, top='r-main') -> bytes:
    """Build an in-memory archive shaped like GitHub's: one top-level folder."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        if top:
            archive.writestr(f'{top}/', '')
        for rel, text in files.items():
            archive.writestr(f'{top}/{rel}' if top else rel, text)
    return buffer.getvalue()


class ArchiveServer:
    """MockTransport handler serving archives per branch and recording requests."""

    def __init__(self, archives=None, error=None):
        self.archives = archives or {}
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        if self.error:
            raise self.error(f"simulated failure for {request.url}", request=request)
        branch = request.url.path.rsplit('/', 1)[-1][:-len('.zip')]
        if branch not in self.archives:
            return httpx.Response(404, text='Not Found')
        return httpx.Response(200, content=self.archives[branch])


def make_fetcher(server, github=None, **overrides) -> RepositoryFetcher:
    options = dict(query_default_branch=False, retry_delay=0, max_retries=0)
    options.update(overrides)
    client = httpx.Client(transport=httpx.MockTransport(server), follow_redirects=True)
    return RepositoryFetcher(FetchConfig(**options), client=client, github=github)


# ---- Root resolution -------------------------------------------------------

def test_fetch_resolves_subpath():
    """Scenario: tree/main/sub resolves to <extracted>/sub"""
    server = ArchiveServer({'main': make_zip({'sub/a.md': 'A', 'top.md': 'T'})})

    with make_fetcher(server) as fetcher:
        root = fetcher.fetch('https://github.com/o/r/tree/main/sub')

        assert server.requests == ['https://github.com/o/r/archive/main.zip']
        assert root.name == 'sub'
        assert root.parent.name == 'r-main'
        assert (root / 'a.md').read_text() == 'A'


def test_fetch_without_subpath_returns_top_level_folder():
    """Scenario: The top-level folder is found whatever it is called"""
    server = ArchiveServer({'main': make_zip({'README.md': 'hi'}, top='r-0123abc')})

    with make_fetcher(server) as fetcher:
        root = fetcher.fetch('https://github.com/o/r/tree/main')

        assert root.name == 'r-0123abc'
        assert (root / 'README.md').read_text() == 'hi'


def test_fetch_missing_subpath_fails():
    """Scenario: A nonexistent folder fails instead of returning the repository root"""
    server = ArchiveServer({'main': make_zip({'src/a.py': ''})})

    with make_fetcher(server) as fetcher:
        with pytest.raises(SubpathNotFoundError) as excinfo:
            fetcher.fetch('https://github.com/o/r/tree/main/docs')

    assert isinstance(excinfo.value, FetchError)
    assert 'docs' in str(excinfo.value)


def test_subpath_cannot_escape_repository():
    server = ArchiveServer({'main': make_zip({'a.py': ''})})

    with make_fetcher(server) as fetcher:
        with pytest.raises(SubpathNotFoundError):
            fetcher.fetch('https://github.com/o/r/tree/main/../../..')


# ---- Branch resolution -----------------------------------------------------

def test_fallback_from_main_to_master():
    """Scenario: 404 on main falls back to master"""
    server = ArchiveServer({'master': make_zip({'x.py': ''}, top='r-master')})

    with make_fetcher(server) as fetcher:
        root = fetcher.fetch('https://github.com/o/r')

    assert server.requests == [
        'https://github.com/o/r/archive/main.zip',
        'https://github.com/o/r/archive/master.zip',
    ]
    assert root.name == 'r-master'


def test_no_branch_found_raises_not_found():
    server = ArchiveServer({})

    with make_fetcher(server) as fetcher:
        with pytest.raises(RepositoryNotFoundError) as excinfo:
            fetcher.fetch('https://github.com/o/r')

    assert 'main, master' in str(excinfo.value)


def test_explicit_branch_has_no_fallback():
    server = ArchiveServer({'main': make_zip({})})

    with make_fetcher(server) as fetcher:
        with pytest.raises(RepositoryNotFoundError):
            fetcher.fetch('https://github.com/o/r/tree/feature')

    assert server.requests == ['https://github.com/o/r/archive/feature.zip']


def test_default_branch_from_api():
    """Scenario: The host API names the default branch"""
    github = MagicMock()
    github.get_repo.return_value.default_branch = 'develop'
    server = ArchiveServer({'develop': make_zip({'a.py': ''}, top='r-develop')})

    with make_fetcher(server, github=github, query_default_branch=True) as fetcher:
        root = fetcher.fetch('https://github.com/o/r')

    github.get_repo.assert_called_once_with('o/r')
    assert server.requests == ['https://github.com/o/r/archive/develop.zip']
    assert root.name == 'r-develop'


def test_api_failure_falls_back_to_conventional_branches():
    github = MagicMock()
    github.get_repo.side_effect = GithubException(500, {'message': 'boom'}, None)
    server = ArchiveServer({'main': make_zip({'a.py': ''})})

    with make_fetcher(server, github=github, query_default_branch=True) as fetcher:
        fetcher.fetch('https://github.com/o/r')

    assert server.requests == ['https://github.com/o/r/archive/main.zip']


def test_api_not_found_aborts():
    github = MagicMock()
    github.get_repo.side_effect = GithubException(404, {'message': 'Not Found'}, None)
    server = ArchiveServer({'main': make_zip({})})

    with make_fetcher(server, github=github, query_default_branch=True) as fetcher:
        with pytest.raises(RepositoryNotFoundError):
            fetcher.fetch('https://github.com/o/r')

    assert server.requests == []


# ---- Failures --------------------------------------------------------------

def test_network_failure_raises_fetch_error_after_retries():
    """Scenario: A simulated network failure surfaces as FetchError"""
    server = ArchiveServer(error=httpx.ConnectError)

    with make_fetcher(server, max_retries=2) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch('https://github.com/o/r/tree/main')

    assert len(server.requests) == 3
    assert isinstance(excinfo.value.original_error, httpx.ConnectError)


def test_timeout_raises_fetch_error():
    server = ArchiveServer(error=httpx.ReadTimeout)

    with make_fetcher(server) as fetcher:
        with pytest.raises(FetchError, match='timed out'):
            fetcher.fetch('https://github.com/o/r/tree/main')


def test_server_error_raises_fetch_error():
    def handler(request):
        return httpx.Response(500, text='oops')

    with make_fetcher(handler) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch('https://github.com/o/r/tree/main')

    assert not isinstance(excinfo.value, RepositoryNotFoundError)


def test_corrupt_archive_raises_fetch_error():
    server = ArchiveServer({'main': b'definitely not a zip'})

    with make_fetcher(server) as fetcher:
        with pytest.raises(FetchError, match='Corrupt archive'):
            fetcher.fetch('https://github.com/o/r/tree/main')


def test_unsafe_archive_member_is_refused():
    server = ArchiveServer({'main': make_zip({'../evil.txt': 'x'}, top=None)})

    with make_fetcher(server) as fetcher:
        with pytest.raises(FetchError, match='escapes'):
            fetcher.fetch('https://github.com/o/r/tree/main')
        assert not (fetcher.workdir / 'evil.txt').exists()


def test_invalid_url_fails_before_any_request():
    server = ArchiveServer({'main': make_zip({})})

    with make_fetcher(server) as fetcher:
        with pytest.raises(ConfigError):
            fetcher.fetch('https://gitlab.com/o/r')

    assert server.requests == []


# ---- Temporary directory lifecycle ----------------------------------------

def test_temporary_directory_removed_on_exit():
    server = ArchiveServer({'main': make_zip({'a.py': ''})})

    with make_fetcher(server) as fetcher:
        fetcher.fetch('https://github.com/o/r/tree/main')
        workdir = fetcher.workdir
        assert workdir.is_dir()

    assert not workdir.exists()
    assert fetcher.workdir is None


def test_temporary_directory_removed_on_failure():
    server = ArchiveServer({'main': make_zip({'a.py': ''})})

    with pytest.raises(SubpathNotFoundError):
        with make_fetcher(server) as fetcher:
            try:
                fetcher.fetch('https://github.com/o/r/tree/main/missing')
            finally:
                workdir = fetcher.workdir

    assert not workdir.exists()


def test_keep_temp_leaves_directory():
    server = ArchiveServer({'main': make_zip({'a.py': ''})})

    with make_fetcher(server, keep_temp=True) as fetcher:
        root = fetcher.fetch('https://github.com/o/r/tree/main')
        workdir = fetcher.workdir

    try:
        assert workdir.is_dir()
        assert (root / 'a.py').exists()
    finally:
        shutil.rmtree(workdir)


def test_cleanup_failure_is_not_fatal(monkeypatch):
    server = ArchiveServer({'main': make_zip({'a.py': ''})})
    fetcher = make_fetcher(server)
    fetcher.fetch('https://github.com/o/r/tree/main')
    workdir = fetcher.workdir

    def failing_rmtree(path):
        raise PermissionError(13, 'Permission denied', str(path))

    monkeypatch.setattr('repobundle.services.github_fetcher.shutil.rmtree', failing_rmtree)
    fetcher.close()

    assert fetcher.workdir is None
    monkeypatch.undo()
    shutil.rmtree(workdir)


# ---- Real GitHub client ----------------------------------------------------

class ApiHandler(BaseHTTPRequestHandler):
    """Answers every request with the server's canned (status, body, headers)."""

    def do_GET(self):
        self.server.paths.append(self.path)
        status, body, headers = self.server.reply
        payload = json.dumps(body).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(payload)))
        for name, value in headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def api_server():
    """Local stand-in for api.github.com."""
    server = ThreadingHTTPServer(('127.0.0.1', 0), ApiHandler)
    server.paths = []
    server.reply = (200, {}, {})
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def api_url(server) -> str:
    host, port = server.server_address[:2]
    return f'http://{host}:{port}'


def test_rate_limited_api_falls_back_without_waiting(api_server, monkeypatch):
    """Scenario: An exhausted API quota fails fast and the conventional branches are used"""
    reset = int(time.time()) + 3000
    api_server.reply = (
        403,
        {'message': 'API rate limit exceeded for 127.0.0.1.',
         'documentation_url': 'https://docs.github.com/rest/overview/rate-limits'},
        {'X-RateLimit-Limit': '60', 'X-RateLimit-Remaining': '0', 'X-RateLimit-Reset': str(reset)}
    )
    sleeps = []
    monkeypatch.setattr(time, 'sleep', sleeps.append)
    fetcher = RepositoryFetcher(FetchConfig(api_url=api_url(api_server), timeout=5))

    branches = fetcher.candidate_branches(parse_github_url('https://github.com/o/r'))

    assert branches == ['main', 'master']
    assert api_server.paths == ['/repos/o/r']
    assert sleeps == []


def test_default_branch_from_real_client(api_server):
    api_server.reply = (200, {'name': 'r', 'full_name': 'o/r', 'default_branch': 'trunk'}, {})
    fetcher = RepositoryFetcher(FetchConfig(api_url=api_url(api_server), timeout=5))

    assert fetcher.candidate_branches(parse_github_url('https://github.com/o/r')) == ['trunk']
    assert api_server.paths == ['/repos/o/r']


def test_real_client_not_found_aborts(api_server):
    api_server.reply = (404, {'message': 'Not Found'}, {})
    fetcher = RepositoryFetcher(FetchConfig(api_url=api_url(api_server), timeout=5))

    with pytest.raises(RepositoryNotFoundError):
        fetcher.candidate_branches(parse_github_url('https://github.com/o/r'))


def test_github_client_construction(monkeypatch):
    """Scenario: Token, timeout and retry policy reach the GitHub client"""
    github_cls = MagicMock()
    github_cls.return_value.get_repo.return_value.default_branch = 'main'
    monkeypatch.setattr('repobundle.services.github_fetcher.Github', github_cls)
    config = FetchConfig(token='secret', timeout=7, api_url='https://ghe.example.com/api/v3')

    RepositoryFetcher(config).candidate_branches(parse_github_url('https://github.com/o/r'))

    kwargs = github_cls.call_args.kwargs
    assert isinstance(kwargs['auth'], Auth.Token)
    assert kwargs['auth'].token == 'secret'
    assert kwargs['timeout'] == 7
    assert kwargs['retry'] is None
    assert kwargs['base_url'] == 'https://ghe.example.com/api/v3'


def test_github_client_without_token(monkeypatch):
    github_cls = MagicMock()
    github_cls.return_value.get_repo.return_value.default_branch = 'main'
    monkeypatch.setattr('repobundle.services.github_fetcher.Github', github_cls)

    RepositoryFetcher(FetchConfig()).candidate_branches(parse_github_url('https://github.com/o/r'))

    assert github_cls.call_args.kwargs['auth'] is None


# ---- Damaged archives ------------------------------------------------------

def test_corrupt_compressed_data_raises_fetch_error(tmp_path):
    """Scenario: Intact central directory, damaged deflate stream"""
    text = ''.join(f'line {i} {i * i}\n' for i in range(2000)).encode()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr('r-main/a.txt', text)
    raw = bytearray(buffer.getvalue())

    with zipfile.ZipFile(io.BytesIO(bytes(raw))) as archive:
        info = archive.getinfo('r-main/a.txt')
    start = info.header_offset + 30 + len(info.filename.encode())
    for i in range(start + 10, start + min(info.compress_size, 400)):
        raw[i] ^= 0xFF

    archive_path = tmp_path / 'repo.zip'
    archive_path.write_bytes(bytes(raw))

    with pytest.raises(FetchError, match='Corrupt archive') as excinfo:
        RepositoryFetcher.extract_archive(archive_path, tmp_path / 'out')
    assert excinfo.value.original_error is not None


@pytest.mark.parametrize("error", [
    zlib.error("invalid bit length repeat"),
    RuntimeError("File is encrypted, password required for extraction"),
    NotImplementedError("That compression method is not supported"),
])
def test_unreadable_members_raise_fetch_error(tmp_path, monkeypatch, error):
    archive_path = tmp_path / 'repo.zip'
    archive_path.write_bytes(make_zip({'a.py': ''}))

    def failing_extractall(self, path=None, members=None, pwd=None):
        raise error

    monkeypatch.setattr(zipfile.ZipFile, 'extractall', failing_extractall)

    with pytest.raises(FetchError, match='Corrupt archive') as excinfo:
        RepositoryFetcher.extract_archive(archive_path, tmp_path / 'out')
    assert excinfo.value.original_error is error
