"""
Page cache for the fontfin download subsystem.

Webpage fetches are deduplicated in memory for the lifetime of the process and
persisted on disk with a timestamp so later runs can reuse them until they go
stale.
"""

import hashlib
import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fontfin.constants import (
    CACHE_FILE_EXTENSION,
    CACHE_FILENAME_HASH_LENGTH,
    CACHE_FILENAME_MAX_LENGTH,
    CACHE_FILENAME_REPLACED_CHARS,
    PAGE_CACHE_POLL_INTERVAL,
)
from fontfin.exceptions import FontfinError, NetworkError
from fontfin.log_utils import logger
from fontfin.utils import fetch_text

from .files import _atomic_write_json

FetchFunc = Callable[[str], str]


def now_minutes() -> int:
    """Return the current time in whole minutes since the Unix epoch."""
    return int(time.time() // 60)


def cache_filename(url: str) -> str:
    """
    Turn a URL into a filesystem-friendly cache file name.

    The scheme is dropped and characters that are awkward in file names are replaced with underscores. Names that would exceed the length limit are truncated and suffixed with a short hash of the URL so they stay unique.

    Parameters:
        url (str): The page URL.

    Returns:
        str: File name including the cache extension.
    """
    name = url.replace("https://", "", 1) if url.startswith("https://") else url
    for char in CACHE_FILENAME_REPLACED_CHARS:
        name = name.replace(char, "_")

    limit = CACHE_FILENAME_MAX_LENGTH - len(CACHE_FILE_EXTENSION)
    if len(name) > limit:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        name = name[: limit - CACHE_FILENAME_HASH_LENGTH] + digest[
            :CACHE_FILENAME_HASH_LENGTH
        ]
    return name + CACHE_FILE_EXTENSION


@dataclass
class CacheEntry:
    """A cached page. `contents` is `None` while the first fetch is in flight."""

    time: int
    """Minutes since the Unix epoch when the page was fetched"""

    contents: Optional[str] = None


class PageCache:
    """
    Deduplicating, disk-backed cache of webpage text.

    At most one fetch per URL is in flight across all threads. The first caller
    for a URL inserts a placeholder under the lock and does the work outside it;
    concurrent callers for the same URL poll until the placeholder resolves or
    disappears. A failed fetch removes the placeholder so a later call can retry.
    """

    def __init__(
        self,
        cache_dir: str,
        fetch_func: Optional[FetchFunc] = None,
        poll_interval: float = PAGE_CACHE_POLL_INTERVAL,
    ):
        """
        Parameters:
            cache_dir (str): Directory where page files are persisted.
            fetch_func (Optional[FetchFunc]): Default fetch function; `fetch_text` when omitted.
            poll_interval (float): Seconds between checks while another caller fetches the same URL.
        """
        self.cache_dir = cache_dir
        self.fetch_func = fetch_func or fetch_text
        self.poll_interval = poll_interval
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def cache_file_path(self, url: str) -> str:
        return os.path.join(self.cache_dir, cache_filename(url))

    def fetch(
        self,
        url: str,
        ttl_minutes: int,
        force_refresh: bool = False,
        fetch_func: Optional[FetchFunc] = None,
    ) -> str:
        """
        Return the text of `url`, fetching it at most once per process.

        Parameters:
            url (str): Page URL.
            ttl_minutes (int): Maximum age of an on-disk copy that may be reused.
            force_refresh (bool): Ignore the on-disk copy and fetch again.
            fetch_func (Optional[FetchFunc]): Overrides the default fetch function for this call.

        Returns:
            str: The page text.

        Raises:
            NetworkError: If the page could not be fetched.
        """
        key = cache_filename(url)
        while True:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._entries[key] = CacheEntry(time=now_minutes())
                    break
                if entry.contents is not None:
                    logger.debug(f"Page cache hit (memory): {url}")
                    return entry.contents
            time.sleep(self.poll_interval)

        try:
            entry = self._load_or_fetch(
                url, ttl_minutes, force_refresh, fetch_func or self.fetch_func
            )
        except Exception as e:
            with self._lock:
                self._entries.pop(key, None)
            if isinstance(e, FontfinError):
                raise
            raise NetworkError(
                "Could not fetch page", url=url, details=str(e)
            ) from e

        with self._lock:
            self._entries[key] = entry
        return entry.contents or ""

    def _load_or_fetch(
        self, url: str, ttl_minutes: int, force_refresh: bool, fetch_func: FetchFunc
    ) -> CacheEntry:
        path = self.cache_file_path(url)
        if not force_refresh:
            cached = self._read_entry(path)
            if cached is not None and not self.is_stale(cached, ttl_minutes):
                logger.debug(f"Page cache hit (disk): {url}")
                return cached

        logger.debug(f"Page cache miss: {url}")
        entry = CacheEntry(time=now_minutes(), contents=fetch_func(url))
        if not _atomic_write_json(
            path, {"time": entry.time, "contents": entry.contents}
        ):
            logger.warning(f"Could not persist cached page for {url}")
        return entry

    @staticmethod
    def is_stale(entry: CacheEntry, ttl_minutes: int) -> bool:
        age = now_minutes() - entry.time
        return age < 0 or age >= ttl_minutes

    @staticmethod
    def _read_entry(path: str) -> Optional[CacheEntry]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable cache file {path}: {e}")
            return None

        if (
            not isinstance(data, dict)
            or not isinstance(data.get("time"), int)
            or not isinstance(data.get("contents"), str)
        ):
            logger.debug(f"Ignoring malformed cache file {path}")
            return None
        return CacheEntry(time=data["time"], contents=data["contents"])
