"""
Install state lock.

A plain marker file holding the name of the mutating action in progress
("installing", "updating", ...). It is not a real inter-process lock and has no
crash recovery: a lock left behind by a killed run stays until it is cleared
with `fontfin clean state`.
"""

import os
from typing import Optional

from fontfin.exceptions import FileSystemError
from fontfin.log_utils import logger


class StateLock:
    """Reads and writes the install state marker file."""

    def __init__(self, path: str):
        self.path = path
        self._acquired = False

    def read(self) -> Optional[str]:
        """Return the recorded action, or `None` if no lock file exists."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read().strip() or "unknown"
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FileSystemError(
                "Could not read lock file", path=self.path, details=str(e)
            ) from e

    def acquire(self, action: str) -> None:
        """Record `action` as in progress."""
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(action)
        except OSError as e:
            raise FileSystemError(
                "Could not write lock file", path=self.path, details=str(e)
            ) from e
        self._acquired = True
        logger.debug(f"Install state locked: {action}")

    def release(self) -> None:
        """Remove the lock file, but only if this instance created it."""
        if not self._acquired:
            return
        self.clear()
        self._acquired = False

    def clear(self) -> bool:
        """
        Remove the lock file regardless of who wrote it.

        Returns:
            bool: `True` if a lock file was removed.
        """
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FileSystemError(
                "Could not remove lock file", path=self.path, details=str(e)
            ) from e
        logger.debug("Install state unlocked")
        return True
