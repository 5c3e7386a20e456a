"""
Error taxonomy and error handling helpers for repobundle.
"""

import functools
import time
from pathlib import Path
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union

import httpx
from github import GithubException, RateLimitExceededException

from .logger import logger


T = TypeVar('T')


####
##      EXCEPTIONS
#####
class BundleError(Exception):
    """Base exception for repobundle errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigError(BundleError):
    """Malformed URL or conflicting options, raised before any I/O."""


class FetchError(BundleError):
    """Remote repository could not be downloaded, extracted or resolved."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message} (Original: {self.original_error})"
        return self.message


class RateLimitError(FetchError):
    """GitHub rate limit exceeded."""


class AuthenticationError(FetchError):
    """GitHub rejected the credentials."""


class RepositoryNotFoundError(FetchError):
    """Repository or branch does not exist or is not accessible."""


class SubpathNotFoundError(FetchError):
    """Requested folder does not exist inside the downloaded repository."""


class WalkError(BundleError):
    """A directory could not be walked."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = path
        super().__init__(message)


class RenderError(BundleError):
    """A matched file could not be read or decoded."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = path
        super().__init__(message)


####
##      DECORATORS
#####
def handle_api_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Translate GitHub API and HTTP errors into the fetch error taxonomy.

    Args:
        func: Function to decorate

    Returns:
        Decorated function
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)

        except FetchError:
            raise

        except GithubException as e:
            status = getattr(e, 'status', None)
            if isinstance(e, RateLimitExceededException) or (
                status in (403, 429) and 'rate limit' in str(e).lower()
            ):
                raise RateLimitError("GitHub API rate limit exceeded") from e
            elif status in (401, 403):
                raise AuthenticationError("Authentication failed") from e
            elif status == 404:
                raise RepositoryNotFoundError("Repository not found") from e
            else:
                raise FetchError(f"GitHub API error: {e}", e) from e

        except httpx.TimeoutException as e:
            raise FetchError("Request timed out", e) from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise RepositoryNotFoundError(f"Not found: {e.request.url}") from e
            elif status == 429:
                raise RateLimitError("Rate limit exceeded") from e
            elif status in (401, 403):
                raise AuthenticationError("Authentication failed") from e
            raise FetchError(f"HTTP {status} for {e.request.url}", e) from e

        except httpx.RequestError as e:
            if '429' in str(e):
                raise RateLimitError("Rate limit exceeded") from e
            raise FetchError(f"Network error: {e}", e) from e

        except OSError as e:
            raise FetchError(f"I/O error: {e}", e) from e

    return wrapper


RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
)


def retry_on_error(
    max_retries: int = 2,
    delay: float = 1.0,
    retryable: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a call on transient errors with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        delay: Initial delay in seconds, doubled on each retry
        retryable: Exception types worth another attempt

    Returns:
        Decorator
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except retryable as e:
                    if attempt >= max_retries:
                        raise
                    wait = delay * (2 ** attempt)
                    attempt += 1
                    logger.warning(
                        f"Attempt {attempt}/{max_retries + 1} failed: {e}. "
                        f"Retrying in {wait:.1f}s"
                    )
                    if wait > 0:
                        time.sleep(wait)

        return wrapper

    return decorator


__all__ = [
    "BundleError",
    "ConfigError",
    "FetchError",
    "RateLimitError",
    "AuthenticationError",
    "RepositoryNotFoundError",
    "SubpathNotFoundError",
    "WalkError",
    "RenderError",
    "handle_api_error",
    "retry_on_error",
    "RETRYABLE_ERRORS",
]
