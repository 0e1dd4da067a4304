# src/fontfin/utils.py
import importlib.metadata
import os
import threading
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore

from fontfin.constants import (
    APP_NAME,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    GITHUB_API_HOST,
    RETRY_STATUS_FORCELIST,
)
from fontfin.exceptions import HTTPError, NetworkError, OperationCancelledError
from fontfin.log_utils import logger

ProgressCallback = Callable[[int, Optional[int]], None]

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `fontfin/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def get_effective_github_token(github_token: Optional[str] = None) -> Optional[str]:
    """
    Determine the GitHub token to use, preferring the explicit argument over the `GITHUB_TOKEN` environment variable.

    Returns:
        Optional[str]: The chosen token with surrounding whitespace removed, or `None` if no token is available.
    """
    candidate = (github_token or "").strip()
    if candidate:
        return candidate
    env_token = os.environ.get("GITHUB_TOKEN")
    return env_token.strip() if env_token and env_token.strip() else None


def build_request_headers(url: str) -> Dict[str, str]:
    """
    Build request headers for `url`.

    Requests to the GitHub API additionally get the GitHub media type and, when a token is available, an Authorization header.
    """
    headers = {"User-Agent": get_user_agent()}
    if urlsplit(url).hostname == GITHUB_API_HOST:
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        token = get_effective_github_token()
        if token:
            headers["Authorization"] = f"token {token}"
    return headers


def create_session() -> requests.Session:
    """
    Create a requests session that retries transient failures.

    Connection, read and retryable HTTP status errors (408, 429 and 5xx) are retried with exponential backoff, honouring Retry-After headers.

    Returns:
        requests.Session: A session with the retrying adapter mounted for http and https.
    """
    session = requests.Session()
    retry_strategy: Retry = Retry(
        total=DEFAULT_CONNECT_RETRIES,
        connect=DEFAULT_CONNECT_RETRIES,
        read=DEFAULT_CONNECT_RETRIES,
        status=DEFAULT_CONNECT_RETRIES,
        backoff_factor=DEFAULT_BACKOFF_FACTOR,
        status_forcelist=list(RETRY_STATUS_FORCELIST),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


_thread_local = threading.local()


def get_session() -> requests.Session:
    """Return this thread's retrying session, creating it on first use."""
    session = getattr(_thread_local, "session", None)
    if session is None:
        session = create_session()
        _thread_local.session = session
    return session


def _raise_for_status(response: requests.Response, url: str) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError as e:
        status = response.status_code
        raise HTTPError(
            f"Request failed with HTTP {status}",
            status_code=status,
            url=url,
            is_retryable=status in RETRY_STATUS_FORCELIST,
            details=str(e),
        ) from e


def fetch_text(url: str, timeout: int = DEFAULT_REQUEST_TIMEOUT) -> str:
    """
    Fetch `url` and return the response body as text.

    Parameters:
        url (str): The URL to fetch.
        timeout (int): Request timeout in seconds.

    Returns:
        str: The decoded response body.

    Raises:
        HTTPError: If the server answers with an error status.
        NetworkError: For connection-level failures.
    """
    logger.debug(f"Fetching page: {url}")
    try:
        response = get_session().get(
            url, headers=build_request_headers(url), timeout=timeout
        )
    except requests.RequestException as e:
        raise NetworkError(
            "Could not fetch page", url=url, is_retryable=True, details=str(e)
        ) from e

    try:
        _raise_for_status(response, url)
        return response.text
    finally:
        response.close()


def download_bytes(
    url: str,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: int = DEFAULT_REQUEST_TIMEOUT,
) -> bytes:
    """
    Stream `url` into memory while reporting progress.

    The total comes from the Content-Length header when present. If the body turns out to be larger than announced, the total is raised to match what has been received.

    Parameters:
        url (str): Direct download URL.
        progress (Optional[ProgressCallback]): Called as `progress(done, total)` after every chunk; `total` may be `None`.
        cancel_event (Optional[threading.Event]): When set, the download stops at the next chunk.
        timeout (int): Request timeout in seconds.

    Returns:
        bytes: The full response body.

    Raises:
        OperationCancelledError: If `cancel_event` was set during the transfer.
        HTTPError: If the server answers with an error status.
        NetworkError: For connection-level failures.
    """
    logger.debug(f"Downloading {url}")
    try:
        response = get_session().get(
            url, headers=build_request_headers(url), stream=True, timeout=timeout
        )
    except requests.RequestException as e:
        raise NetworkError(
            "Download failed", url=url, is_retryable=True, details=str(e)
        ) from e

    try:
        _raise_for_status(response, url)
        total: Optional[int]
        try:
            total = int(response.headers.get("Content-Length", ""))
        except ValueError:
            total = None

        buffer = bytearray()
        if progress:
            progress(0, total)
        for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Download cancelled", url)
            if not chunk:
                continue
            buffer.extend(chunk)
            if total is not None and len(buffer) > total:
                total = len(buffer)
            if progress:
                progress(len(buffer), total)
        return bytes(buffer)
    except requests.RequestException as e:
        raise NetworkError(
            "Download interrupted", url=url, is_retryable=True, details=str(e)
        ) from e
    finally:
        response.close()


def url_basename(url: str) -> str:
    """Return the last path segment of `url`, ignoring any query or fragment."""
    path = urlsplit(url).path
    return path.rstrip("/").rsplit("/", 1)[-1]


def collapse_home(path: str) -> str:
    """Replace a leading home directory in `path` with `~`."""
    home = os.path.expanduser("~")
    if home and home != "/" and (path == home or path.startswith(home + os.sep)):
        return "~" + path[len(home) :]
    return path


def expand_home(path: str) -> str:
    """Expand a leading `~` in `path`."""
    return os.path.expanduser(path)


def format_size(num_bytes: float) -> str:
    """
    Format a byte count for display.

    Returns:
        str: e.g. "512 B", "1.5 KB", "3.2 MB".
    """
    for unit in ("B", "KB", "MB", "GB"):
        if num_bytes < 1024 or unit == "GB":
            if unit == "B":
                return f"{int(num_bytes)} {unit}"
            return f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.1f} GB"
