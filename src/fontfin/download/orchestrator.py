"""
Install Pipeline Orchestrator

This module coordinates a fontfin run: it selects installers from name
filters, resolves them concurrently on a bounded worker pool, installs them
one at a time on a worker thread the supervisor can stop waiting on, and
aggregates per-item results into a summary.
"""

import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fontfin.constants import (
    CANCEL_POLL_INTERVAL,
    DEFAULT_CACHE_TIMEOUT,
    DEFAULT_INSTALL_DIR,
    DEFAULT_MAX_WORKERS,
    INSTALLER_FILE_EXTENSION,
    PAGES_DIR_NAME,
    STAGING_DIR_NAME,
)
from fontfin.exceptions import (
    DescriptorError,
    FontfinError,
    LockHeldError,
    OperationCancelledError,
)
from fontfin.log_utils import logger
from fontfin.utils import download_bytes
from fontfin.wildcards import filter_wildcards

from .cache import FetchFunc, PageCache
from .descriptor import load_descriptor
from .installed import InstalledFonts
from .installer import Downloader, FontInstaller, InstallContext
from .interfaces import InstallResult, ProgressSink
from .source import SourceResolver

SinkFactory = Callable[[str], ProgressSink]


def split_filter(item: str) -> Tuple[str, Optional[str]]:
    """Split a `name[:tag]` filter into its name and optional tag."""
    name, _, tag = item.partition(":")
    return name, tag or None


@dataclass
class RunOptions:
    """Per-run switches taken from the command line."""

    refresh: bool = False
    """Ignore cached pages on disk"""

    reinstall: bool = False
    """Install even when nothing changed"""

    force: bool = False
    """Remove whole install directories when uninstalling"""

    cache_only: bool = False
    """Treat every cached page as fresh"""


class InstallOrchestrator:
    """
    Coordinates install, reinstall, update and remove runs.

    This class owns:
    - The page cache and source resolver shared by all items
    - The installed-fonts manifest
    - The cancel event checked by every worker
    - Result aggregation and reporting
    """

    def __init__(
        self,
        config: Dict[str, Any],
        installers_dir: str,
        cache_dir: str,
        installed_path: str,
        options: Optional[RunOptions] = None,
        sink_factory: Optional[SinkFactory] = None,
        fetch_func: Optional[FetchFunc] = None,
        downloader: Optional[Downloader] = None,
    ):
        """
        Parameters:
            config (Dict[str, Any]): Loaded configuration (INSTALL_DIR, CACHE_TIMEOUT, MAX_WORKERS).
            installers_dir (str): Directory holding `<name>.yaml` descriptors.
            cache_dir (str): Directory holding the `pages` and `staging` subdirectories.
            installed_path (str): Path of the installed-fonts manifest.
            options (Optional[RunOptions]): Command-line switches.
            sink_factory (Optional[SinkFactory]): Builds a progress sink per installer.
            fetch_func (Optional[FetchFunc]): Page fetch function; plain HTTP GET by default.
            downloader (Optional[Downloader]): Download function; `download_bytes` by default.
        """
        self.config = config
        self.options = options or RunOptions()
        self.installers_dir = installers_dir
        self.sink_factory = sink_factory or (lambda _name: ProgressSink())
        self.max_workers = max(1, int(config.get("MAX_WORKERS", DEFAULT_MAX_WORKERS)))
        self.cancel_event = threading.Event()

        ttl = (
            sys.maxsize
            if self.options.cache_only
            else int(config.get("CACHE_TIMEOUT", DEFAULT_CACHE_TIMEOUT))
        )
        self.page_cache = PageCache(os.path.join(cache_dir, PAGES_DIR_NAME), fetch_func)
        self.installed = InstalledFonts.read(installed_path)
        self.context = InstallContext(
            install_dir=str(config.get("INSTALL_DIR", DEFAULT_INSTALL_DIR)),
            staging_dir=os.path.join(cache_dir, STAGING_DIR_NAME),
            installed=self.installed,
            resolver=SourceResolver(self.page_cache, ttl, self.options.refresh),
            cancel_event=self.cancel_event,
            downloader=downloader or download_bytes,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def available_installers(self) -> List[str]:
        """Return the sorted names of all descriptor files in the installers directory."""
        try:
            entries = os.listdir(self.installers_dir)
        except FileNotFoundError:
            return []
        return sorted(
            entry[: -len(INSTALLER_FILE_EXTENSION)]
            for entry in entries
            if entry.endswith(INSTALLER_FILE_EXTENSION)
            and os.path.isfile(os.path.join(self.installers_dir, entry))
        )

    @staticmethod
    def _select(
        candidates: List[str], filters: Iterable[str], missing_label: str
    ) -> List[str]:
        parsed = [(item, *split_filter(item)) for item in filters]
        groups = filter_wildcards(candidates, [pattern for _, pattern, _ in parsed])
        selected = set()
        for item, pattern, tag in parsed:
            matches = groups[pattern]
            if not matches:
                logger.warning(f"{missing_label}: '{item}'")
            for name in matches:
                selected.add(f"{name}:{tag}" if tag else name)
        return sorted(selected)

    def find_installers(self, filters: Iterable[str]) -> List[str]:
        """
        Match `name[:tag]` filters against the available installers.

        Filters that match nothing are logged. The tag, when given, is carried
        over to every installer the filter matched.

        Returns:
            List[str]: Sorted, de-duplicated `name` or `name:tag` entries.
        """
        return self._select(self.available_installers(), filters, "No installers")

    def find_installed(self, filters: Iterable[str]) -> List[str]:
        """Like `find_installers`, but against installed items."""
        return self._select(self.installed.names(), filters, "Not installed")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @staticmethod
    def check_lock(lock_state: Optional[str]) -> None:
        """
        Refuse to start while another mutating action holds the install state.

        Raises:
            LockHeldError: If `lock_state` is set.
        """
        if lock_state is not None:
            raise LockHeldError(lock_state, details=f"state: {lock_state}")

    def cancel(self) -> None:
        """Ask every worker to stop at its next checkpoint."""
        if not self.cancel_event.is_set():
            logger.warning("Cancelling; waiting for running work to stop")
        self.cancel_event.set()

    @staticmethod
    def _failure(name: str, error: Exception) -> InstallResult:
        return InstallResult(
            name=name,
            success=False,
            error_message=str(error),
            error_type=type(error).__name__,
        )

    def _resolve_item(self, item: str) -> FontInstaller:
        if self.cancel_event.is_set():
            raise OperationCancelledError(f"{item}: cancelled")
        name, tag = split_filter(item)
        path = os.path.join(self.installers_dir, name + INSTALLER_FILE_EXTENSION)
        if not os.path.isfile(path):
            raise DescriptorError(f"{name}: no installer found", value=path)
        descriptor = load_descriptor(path, name)
        return FontInstaller.resolve(name, descriptor, self.context, tag)

    def prepare(
        self, items: List[str], check_updates: bool
    ) -> Tuple[List[FontInstaller], List[InstallResult]]:
        """
        Load and resolve `items` concurrently.

        Parameters:
            items (List[str]): `name[:tag]` entries.
            check_updates (bool): Drop items whose installation is already current.

        Returns:
            Tuple[List[FontInstaller], List[InstallResult]]: Installers still to run, in name order, and results for items that failed or were skipped.
        """
        installers: List[FontInstaller] = []
        results: List[InstallResult] = []
        if not items:
            return installers, results

        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._resolve_item, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                name, _ = split_filter(item)
                try:
                    installer = future.result()
                except FontfinError as e:
                    logger.error(f"{e}")
                    results.append(self._failure(name, e))
                    continue
                except Exception as e:
                    logger.exception(f"{name}: unexpected error while resolving")
                    results.append(self._failure(name, e))
                    continue

                if check_updates and not installer.has_updates():
                    logger.info(f"{name}: already up to date")
                    results.append(
                        InstallResult(
                            name=name, success=True, was_skipped=True, url=installer.url
                        )
                    )
                    continue
                installers.append(installer)

        installers.sort(key=lambda i: i.installer_name)
        return installers, results

    def _wait_for(self, future) -> None:
        while not future.done():
            wait([future], timeout=CANCEL_POLL_INTERVAL)

    def install_items(self, installers: List[FontInstaller]) -> List[InstallResult]:
        """
        Install resolved items one at a time and write the manifest once.

        Each item runs on a worker thread; a failure only fails that item. Once
        cancellation is requested, items not yet started are reported as
        cancelled and the running one stops at its next checkpoint.

        Returns:
            List[InstallResult]: One result per installer, in order.
        """
        results: List[InstallResult] = []
        try:
            with ThreadPoolExecutor(max_workers=1) as executor:
                for installer in installers:
                    name = installer.installer_name
                    if self.cancel_event.is_set():
                        results.append(
                            self._failure(name, OperationCancelledError(f"{name}: cancelled"))
                        )
                        continue

                    logger.info(f"Installing {name} from {installer.url}")
                    future = executor.submit(installer.install, self.sink_factory(name))
                    self._wait_for(future)
                    try:
                        files = future.result()
                    except OperationCancelledError as e:
                        results.append(self._failure(name, e))
                        continue
                    except FontfinError as e:
                        logger.error(f"{e}")
                        results.append(self._failure(name, e))
                        continue
                    except Exception as e:
                        logger.exception(f"{name}: unexpected error while installing")
                        results.append(self._failure(name, e))
                        continue
                    results.append(
                        InstallResult(
                            name=name, success=True, url=installer.url, files=files
                        )
                    )
        finally:
            self.installed.write()
        return results

    def _run(self, items: List[str], check_updates: bool) -> List[InstallResult]:
        installers, results = self.prepare(items, check_updates)
        results.extend(self.install_items(installers))
        return sorted(results, key=lambda r: r.name)

    def install(
        self, filters: Iterable[str], lock_state: Optional[str] = None
    ) -> List[InstallResult]:
        """Install the installers matching `filters`, skipping current ones unless reinstalling."""
        self.check_lock(lock_state)
        items = self.find_installers(filters)
        return self._run(items, check_updates=not self.options.reinstall)

    def reinstall(
        self, filters: Iterable[str], lock_state: Optional[str] = None
    ) -> List[InstallResult]:
        """Install the installed items matching `filters` again, even when current."""
        self.check_lock(lock_state)
        items = self.find_installed(filters)
        return self._run(items, check_updates=False)

    def update(
        self, filters: Iterable[str], lock_state: Optional[str] = None
    ) -> List[InstallResult]:
        """Update installed items matching `filters`; every installed item when none are given."""
        self.check_lock(lock_state)
        items = self.find_installed(list(filters) or ["*"])
        return self._run(items, check_updates=not self.options.reinstall)

    def remove(
        self, filters: Iterable[str], lock_state: Optional[str] = None
    ) -> List[InstallResult]:
        """Uninstall installed items matching `filters`."""
        self.check_lock(lock_state)
        results: List[InstallResult] = []
        try:
            for item in self.find_installed(filters):
                name, _ = split_filter(item)
                if self.cancel_event.is_set():
                    results.append(
                        self._failure(name, OperationCancelledError(f"{name}: cancelled"))
                    )
                    continue
                try:
                    self.installed.uninstall(name, force=self.options.force)
                except FontfinError as e:
                    logger.error(f"{name}: {e}")
                    results.append(self._failure(name, e))
                    continue
                logger.info(f"Removed {name}")
                results.append(InstallResult(name=name, success=True))
        finally:
            self.installed.write()
        return results

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def log_summary(
        self, results: List[InstallResult], action: str, start_time: Optional[float] = None
    ) -> bool:
        """
        Log a concise summary of a run.

        Parameters:
            results (List[InstallResult]): Results of the run.
            action (str): Verb for the log line, e.g. "Install".
            start_time (Optional[float]): `time.time()` at the start of the run.

        Returns:
            bool: `True` if no item failed.
        """
        done = [r for r in results if r.success and not r.was_skipped]
        skipped = [r for r in results if r.success and r.was_skipped]
        failed = [r for r in results if not r.success]

        if start_time is not None:
            logger.debug(f"Time taken: {time.time() - start_time:.2f} seconds")
        logger.info(
            "%s: %d done, %d up to date, %d failed",
            action,
            len(done),
            len(skipped),
            len(failed),
        )
        for result in failed:
            logger.error(f"  {result.name}: {result.error_message}")
        return not failed
