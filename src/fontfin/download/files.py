"""
File operations for the fontfin download subsystem.

Atomic writes, path safety checks and the archive stager that turns a
downloaded buffer into a set of files inside an isolated staging directory.
"""

import io
import json
import os
import posixpath
import shutil
import tarfile
import tempfile
import zipfile
from typing import Any, Callable, List, Optional

import yaml

from fontfin.constants import (
    TAR_EXTENSION,
    TAR_GZ_EXTENSIONS,
    TAR_XZ_EXTENSIONS,
    ZIP_EXTENSION,
)
from fontfin.exceptions import ArchiveError, ExtractionError, FileSystemError
from fontfin.log_utils import logger
from fontfin.utils import ProgressCallback, url_basename
from fontfin.wildcards import match_any_wildcard

from .interfaces import Action, ArchiveKind, ExtractAction, SingleFileAction


def _sanitize_path_component(component: Optional[str]) -> Optional[str]:
    """
    Validate and sanitize a single filesystem path component.

    Returns None when the component is empty after trimming, equals "." or "..", is absolute, contains a null byte or contains a path separator.

    Parameters:
        component (Optional[str]): The candidate path component.

    Returns:
        Optional[str]: The trimmed, safe component, or `None` if it is unsafe.
    """
    if component is None:
        return None

    sanitized = component.strip()
    if not sanitized or sanitized in {".", ".."}:
        return None

    if os.path.isabs(sanitized):
        return None

    if "\x00" in sanitized:
        return None

    for separator in (os.sep, os.altsep):
        if separator and separator in sanitized:
            return None

    return sanitized


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    """
    Determine whether the candidate path resides within the given base directory.

    Returns:
        True if the candidate path is inside `real_base_dir`, False otherwise.
    """
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def safe_extract_path(extract_dir: str, file_path: str) -> str:
    """
    Resolve a safe absolute extraction path and prevent directory traversal.

    Parameters:
        extract_dir (str): Base directory intended for extraction.
        file_path (str): Member path from the archive to be extracted.

    Returns:
        str: Absolute, normalized path inside extract_dir.

    Raises:
        ValueError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    prospective_path = os.path.join(real_extract_dir, file_path)
    normalized_path = os.path.realpath(prospective_path)

    if not _is_within_base(real_extract_dir, normalized_path):
        raise ValueError(
            f"Unsafe extraction path '{file_path}' is outside base '{extract_dir}'"
        )

    return normalized_path


def _is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith("/") or member_name.startswith("\\"):
        return False
    normalized = os.path.normpath(member_name)
    # Reject absolute paths (including Windows drive-letter paths)
    if os.path.isabs(normalized):
        return False
    if normalized == "..":
        return False
    if normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    if "\x00" in normalized:
        return False
    return True


def _atomic_write(
    file_path: str, writer_func: Callable[[Any], None], suffix: str = ".tmp"
) -> bool:
    """
    Write data to a file atomically by writing to a temporary file and replacing the target on success.

    Parameters:
        file_path (str): Destination file path to be written.
        writer_func (Callable[[Any], None]): Callable that receives an open text file object and writes the content to it.
        suffix (str): Suffix to use for the temporary file name (default ".tmp").

    Returns:
        bool: `True` if the temporary write and atomic replace succeeded, `False` on any error.
    """
    try:
        os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=os.path.dirname(file_path) or ".", prefix="tmp-", suffix=suffix
        )
    except OSError as e:
        logger.error(f"Could not create temporary file for {file_path}: {e}")
        return False

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as temp_f:
            writer_func(temp_f)
        os.replace(temp_path, file_path)
    except (OSError, UnicodeEncodeError, yaml.YAMLError) as e:
        logger.error(f"Could not write to {file_path}: {e}")
        return False
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
    return True


def _atomic_write_json(file_path: str, data: dict) -> bool:
    """Atomically write `data` to `file_path` as pretty-printed JSON."""
    return _atomic_write(
        file_path, lambda f: json.dump(data, f, indent=2), suffix=".json"
    )


def _atomic_write_yaml(file_path: str, data: dict) -> bool:
    """Atomically write `data` to `file_path` as block-style YAML."""
    return _atomic_write(
        file_path,
        lambda f: yaml.safe_dump(
            data, f, default_flow_style=False, sort_keys=True, allow_unicode=True
        ),
        suffix=".yaml",
    )


def remove_path(path: str) -> None:
    """Remove a file or directory tree if it exists."""
    if os.path.islink(path) or os.path.isfile(path):
        os.remove(path)
    elif os.path.isdir(path):
        shutil.rmtree(path)


def detect_archive_kind(filename: str) -> ArchiveKind:
    """
    Derive the archive kind from a file name's extension.

    Returns:
        ArchiveKind: ZIP, TAR, TAR_GZ or TAR_XZ for known archive extensions, UNSUPPORTED otherwise.
    """
    lowered = filename.lower()
    if lowered.endswith(ZIP_EXTENSION):
        return ArchiveKind.ZIP
    if lowered.endswith(TAR_GZ_EXTENSIONS):
        return ArchiveKind.TAR_GZ
    if lowered.endswith(TAR_XZ_EXTENSIONS):
        return ArchiveKind.TAR_XZ
    if lowered.endswith(TAR_EXTENSION):
        return ArchiveKind.TAR
    return ArchiveKind.UNSUPPORTED


class ArchiveStager:
    """
    Extracts a downloaded buffer into a fresh staging directory.

    Members are kept when their full path inside the archive matches at least one
    include wildcard and no exclude wildcard. Without `keep_folders` every kept
    file is flattened to its basename, and later members silently overwrite
    earlier ones with the same name. With `keep_folders`, directory entries are
    created even when none of their files survive filtering.
    """

    def stage(
        self,
        action: Action,
        data: bytes,
        staging_dir: str,
        source_url: str,
        progress: Optional[ProgressCallback] = None,
    ) -> List[str]:
        """
        Stage `data` according to `action`.

        Parameters:
            action (Action): The validated extract or single-file action.
            data (bytes): The downloaded (and verified) content.
            staging_dir (str): Per-item staging directory; wiped before use.
            source_url (str): Resolved download URL, used to name single files.
            progress (Optional[ProgressCallback]): Called as `progress(done, total)` per archive entry.

        Returns:
            List[str]: Paths written, relative to `staging_dir` and `/`-separated.

        Raises:
            ArchiveError: If the archive cannot be read.
            ExtractionError: If writing an entry fails.
            FileSystemError: If the staging directory cannot be prepared.
        """
        self.prepare_staging_dir(staging_dir)

        if isinstance(action, SingleFileAction):
            return self._stage_single_file(data, staging_dir, source_url, progress)

        kind = action.archive_kind
        if kind == ArchiveKind.ZIP:
            return self._stage_zip(action, data, staging_dir, progress)
        if kind in (ArchiveKind.TAR, ArchiveKind.TAR_GZ):
            return self._stage_tar(action, data, staging_dir, progress)
        raise ArchiveError(
            "Unsupported file extension", archive_path=action.file, details=kind.value
        )

    def prepare_staging_dir(self, staging_dir: str) -> None:
        try:
            remove_path(staging_dir)
            os.makedirs(staging_dir, exist_ok=True)
        except OSError as e:
            raise FileSystemError(
                "Could not prepare staging directory", path=staging_dir, details=str(e)
            ) from e

    @staticmethod
    def is_wanted(member_name: str, action: ExtractAction) -> bool:
        return match_any_wildcard(member_name, action.include) and not (
            match_any_wildcard(member_name, action.exclude)
        )

    def _stage_single_file(
        self,
        data: bytes,
        staging_dir: str,
        source_url: str,
        progress: Optional[ProgressCallback],
    ) -> List[str]:
        file_name = _sanitize_path_component(url_basename(source_url))
        if file_name is None:
            raise ExtractionError(
                "Cannot derive a file name from the download URL",
                archive_path=source_url,
            )
        self._write(staging_dir, file_name, io.BytesIO(data))
        if progress:
            progress(1, 1)
        return [file_name]

    def _stage_zip(
        self,
        action: ExtractAction,
        data: bytes,
        staging_dir: str,
        progress: Optional[ProgressCallback],
    ) -> List[str]:
        written: List[str] = []
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                infos = zf.infolist()
                total = len(infos)
                for index, info in enumerate(infos, start=1):
                    name = info.filename
                    if info.is_dir():
                        if action.keep_folders:
                            self._make_dir(staging_dir, name)
                    elif self.is_wanted(name, action):
                        with zf.open(info) as source:
                            self._record(
                                written,
                                self._write_member(action, staging_dir, name, source),
                            )
                    if progress:
                        progress(index, total)
        except zipfile.BadZipFile as e:
            raise ArchiveError(
                "Corrupted zip archive", archive_path=action.file, details=str(e)
            ) from e
        logger.debug(f"Staged {len(written)} file(s) from {action.file}")
        return written

    def _stage_tar(
        self,
        action: ExtractAction,
        data: bytes,
        staging_dir: str,
        progress: Optional[ProgressCallback],
    ) -> List[str]:
        mode = "r:gz" if action.archive_kind == ArchiveKind.TAR_GZ else "r:"
        written: List[str] = []
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode=mode) as tf:
                members = tf.getmembers()
                total = len(members)
                for index, member in enumerate(members, start=1):
                    name = member.name
                    while name.startswith("./"):
                        name = name[2:]
                    if member.isdir():
                        if action.keep_folders and name not in ("", "."):
                            self._make_dir(staging_dir, name)
                    elif member.isfile() and self.is_wanted(name, action):
                        source = tf.extractfile(member)
                        if source is not None:
                            with source:
                                self._record(
                                    written,
                                    self._write_member(
                                        action, staging_dir, name, source
                                    ),
                                )
                    elif not member.isfile():
                        logger.debug(f"Skipping non-regular archive member: {name}")
                    if progress:
                        progress(index, total)
        except tarfile.TarError as e:
            raise ArchiveError(
                "Corrupted tar archive", archive_path=action.file, details=str(e)
            ) from e
        logger.debug(f"Staged {len(written)} file(s) from {action.file}")
        return written

    @staticmethod
    def _record(written: List[str], relative: Optional[str]) -> None:
        if relative is not None and relative not in written:
            written.append(relative)

    def _make_dir(self, staging_dir: str, name: str) -> None:
        if not _is_safe_archive_member(name):
            logger.warning(f"Skipping unsafe archive directory: {name}")
            return
        try:
            os.makedirs(safe_extract_path(staging_dir, name.rstrip("/")), exist_ok=True)
        except ValueError as e:
            logger.warning(f"Skipping unsafe archive directory {name}: {e}")
        except OSError as e:
            raise ExtractionError(
                "Could not create directory", archive_path=name, details=str(e)
            ) from e

    def _write_member(
        self, action: ExtractAction, staging_dir: str, name: str, source
    ) -> Optional[str]:
        if not _is_safe_archive_member(name):
            logger.warning(f"Skipping unsafe archive member: {name}")
            return None
        relative = name if action.keep_folders else posixpath.basename(name)
        try:
            self._write(staging_dir, relative, source)
        except ValueError as e:
            logger.warning(f"Skipping unsafe archive member {name}: {e}")
            return None
        return relative

    @staticmethod
    def _write(staging_dir: str, relative: str, source) -> None:
        target = safe_extract_path(staging_dir, relative)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as destination:
                shutil.copyfileobj(source, destination)
        except OSError as e:
            raise ExtractionError(
                "Could not write staged file", archive_path=relative, details=str(e)
            ) from e
