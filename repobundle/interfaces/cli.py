"""
Command line interface for repobundle.
"""

from pathlib import Path
from typing import Iterable, List, Optional

import click

from .. import __version__
from ..core.builder import ContextBuilder
from ..core.renderer import render_report
from ..models import BundleConfig, FetchConfig, FilterConfig, parse_github_url
from ..infrastructure.error_handler import BundleError, ConfigError
from ..infrastructure.logger import configure_logging, logger


def split_values(values: Iterable[str]) -> List[str]:
    """Flatten repeated options that may also hold comma separated lists."""

    result = []
    for value in values:
        result.extend(part.strip() for part in value.split(',') if part.strip())
    return result


def build_config(
    github_url: Optional[str],
    root: Optional[Path],
    extensions: Iterable[str],
    ignored_dirs: Iterable[str],
    ignored_files: Iterable[str],
    print_contents: bool,
    verbose: int = 0,
    keep_temp: bool = False,
    timeout: float = 60.0,
    token: Optional[str] = None
) -> BundleConfig:
    """
    Turn raw CLI values into a validated `BundleConfig`.

    Raises:
        ConfigError: On conflicting options or a malformed GitHub URL
    """

    if github_url and root is not None:
        raise ConfigError("--github_url and --root cannot be used together")
    if github_url:
        parse_github_url(github_url)

    try:
        fetch = FetchConfig(timeout=timeout, keep_temp=keep_temp, token=token)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    filters = FilterConfig(
        extensions=frozenset(split_values(extensions)),
        ignored_dirs=frozenset(split_values(ignored_dirs)),
        ignored_files=frozenset(split_values(ignored_files)),
        print_contents=print_contents
    )

    return BundleConfig(
        filters=filters,
        fetch=fetch,
        github_url=github_url or None,
        root=root if root is not None else Path('.'),
        verbosity=verbose
    )


@click.command(name='repobundle')
@click.option('-g', '--github_url', default=None,
              help='GitHub URL to download and search, optionally with /tree/<branch>/<path>')
@click.option('-r', '--root', type=click.Path(path_type=Path), default=None,
              help='Local directory to search (default: current directory)')
@click.option('-e', '--extensions', multiple=True,
              help='File extensions to include, e.g. -e .py -e .md or -e ".py,.md"')
@click.option('-i', '--ignored_dirs', multiple=True,
              help='Directory names to skip entirely')
@click.option('-x', '--ignored_files', multiple=True,
              help='File names to exclude')
@click.option('-p', '--print_contents', is_flag=True,
              help='Print the contents of every matched file')
@click.option('-v', '--verbose', count=True,
              help='Increase output verbosity (-v info, -vv debug)')
@click.option('--keep_temp', is_flag=True,
              help='Keep the downloaded repository on disk for inspection')
@click.option('--timeout', type=float, default=60.0, show_default=True,
              help='Download timeout in seconds')
@click.option('--token', envvar='GITHUB_TOKEN', default=None,
              help='GitHub token used to look up the default branch')
@click.version_option(version=__version__, prog_name='repobundle')
def main(
    github_url, root, extensions, ignored_dirs, ignored_files,
    print_contents, verbose, keep_temp, timeout, token
):
    """Search a local directory or a GitHub repository and bundle matching files."""

    try:
        config = build_config(
            github_url, root, extensions, ignored_dirs, ignored_files,
            print_contents, verbose, keep_temp, timeout, token
        )
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    configure_logging(config.verbosity)

    try:
        report = ContextBuilder().build(config)
    except BundleError as e:
        logger.debug(f"Run aborted: {e!r}")
        raise click.ClickException(str(e)) from e

    for warning in report.warnings:
        click.echo(f"Warning: {warning}", err=True)

    click.echo(render_report(report), nl=False)


__all__ = [
    "main",
    "build_config",
    "split_values",
]
