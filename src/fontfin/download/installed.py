"""
Installed-fonts manifest.

Records, per installer, the URL the files came from, the directory they were
installed to and the list of files installed there. The manifest is kept in
memory behind a lock and written back only when something changed.
"""

import copy
import os
import shutil
import threading
from typing import Dict, Iterable, List, Optional

import yaml

from fontfin.exceptions import FileSystemError
from fontfin.log_utils import logger
from fontfin.utils import expand_home

from .files import _atomic_write_yaml
from .interfaces import InstalledFont


def remove_files(base_dir: str, files: Iterable[str]) -> None:
    """
    Delete `files` (relative to `base_dir`) and every directory left empty by that.

    Missing files are skipped. A file that cannot be deleted does not stop the
    rest: every file is tried and the emptied directories are still removed
    before the failures are reported. Directories are tried innermost-first,
    `base_dir` itself included, and only removed when empty.

    Raises:
        FileSystemError: If any existing file could not be deleted.
    """
    directories = {""}
    failures: Dict[str, str] = {}
    for relative in files:
        path = os.path.join(base_dir, relative)
        parent = os.path.dirname(relative)
        while parent:
            directories.add(parent)
            parent = os.path.dirname(parent)
        if not os.path.lexists(path):
            logger.debug(f"Already gone: {path}")
            continue
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")
            failures[relative] = str(e)

    for relative_dir in sorted(directories, reverse=True):
        path = os.path.join(base_dir, relative_dir) if relative_dir else base_dir
        try:
            if os.path.isdir(path) and not os.listdir(path):
                os.rmdir(path)
        except OSError as e:
            logger.debug(f"Leaving directory {path}: {e}")

    if failures:
        raise FileSystemError(
            f"Could not remove {len(failures)} file(s)",
            path=base_dir,
            details=", ".join(f"{name}: {error}" for name, error in failures.items()),
        )


class InstalledFonts:
    """
    The persisted `name -> InstalledFont` manifest.

    All access goes through a single lock that is never held across filesystem
    work other than the final write. `write()` is a no-op unless an entry was
    added, replaced or removed since the last write.
    """

    def __init__(self, path: str, entries: Optional[Dict[str, InstalledFont]] = None):
        self.path = path
        self._entries: Dict[str, InstalledFont] = dict(entries or {})
        self._changed = False
        self._lock = threading.Lock()

    @classmethod
    def read(cls, path: str) -> "InstalledFonts":
        """
        Load the manifest from `path`; a missing file is an empty manifest.

        Raises:
            FileSystemError: If the file exists but cannot be read or parsed.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return cls(path)
        except (OSError, yaml.YAMLError) as e:
            raise FileSystemError(
                "Could not read installed fonts", path=path, details=str(e)
            ) from e

        if not isinstance(data, dict):
            raise FileSystemError("Installed fonts file is malformed", path=path)

        entries = {}
        for name, record in data.items():
            if not isinstance(record, dict):
                logger.warning(f"Ignoring malformed installed entry: {name}")
                continue
            entries[str(name)] = InstalledFont(
                url=str(record.get("url", "")),
                dir=str(record.get("dir", "")),
                files=[str(f) for f in record.get("files") or []],
            )
        return cls(path, entries)

    @property
    def changed(self) -> bool:
        with self._lock:
            return self._changed

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def get(self, name: str) -> Optional[InstalledFont]:
        """Return a copy of the entry for `name`, or `None`."""
        with self._lock:
            entry = self._entries.get(name)
            return copy.deepcopy(entry) if entry else None

    def update_entry(self, name: str, entry: InstalledFont) -> None:
        with self._lock:
            if self._entries.get(name) == entry:
                return
            self._entries[name] = copy.deepcopy(entry)
            self._changed = True

    def remove_entry(self, name: str) -> Optional[InstalledFont]:
        with self._lock:
            removed = self._entries.pop(name, None)
            if removed is not None:
                self._changed = True
            return removed

    def write(self) -> bool:
        """
        Persist the manifest if it changed.

        Returns:
            bool: `True` if a write happened.

        Raises:
            FileSystemError: If the write failed.
        """
        with self._lock:
            if not self._changed:
                return False
            data = {
                name: {"url": e.url, "dir": e.dir, "files": list(e.files)}
                for name, e in sorted(self._entries.items())
            }
            if not _atomic_write_yaml(self.path, data):
                raise FileSystemError("Could not write installed fonts", path=self.path)
            self._changed = False
        logger.debug(f"Wrote installed fonts to {self.path}")
        return True

    def cleanup(
        self, name: str, old_files: Iterable[str], new_files: Iterable[str]
    ) -> List[str]:
        """
        Delete files owned by a previous installation that the new one no longer has.

        Returns:
            List[str]: The stray files that were removed.
        """
        entry = self.get(name)
        if entry is None:
            return []
        stray = sorted(set(old_files) - set(new_files))
        if stray:
            logger.debug(f"{name}: removing {len(stray)} stale file(s)")
            remove_files(expand_home(entry.dir), stray)
        return stray

    def uninstall(self, name: str, force: bool = False) -> bool:
        """
        Remove an installed item from disk and from the manifest.

        A missing install directory only drops the entry. With `force` the whole
        directory is removed; otherwise only the recorded files and any
        directories they leave empty.

        Returns:
            bool: `False` if `name` is not installed.

        Raises:
            FileSystemError: If removing files fails; the entry is kept in that case.
        """
        entry = self.get(name)
        if entry is None:
            return False

        install_dir = expand_home(entry.dir)
        if not os.path.isdir(install_dir):
            logger.debug(f"{name}: install directory already gone")
        elif force:
            try:
                shutil.rmtree(install_dir)
            except OSError as e:
                raise FileSystemError(
                    "Could not remove directory", path=install_dir, details=str(e)
                ) from e
        else:
            remove_files(install_dir, entry.files)

        self.remove_entry(name)
        return True
