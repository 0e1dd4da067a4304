"""
Per-item install pipeline.

A FontInstaller is created once its descriptor has been validated and its
source resolved. Installing then runs download, verify, stage and finalize in
order on one thread, checking for cancellation between stages.
"""

import errno
import os
import shutil
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from fontfin.constants import (
    STAGE_DOWNLOAD,
    STAGE_INSTALL,
    STAGE_STAGE,
    STAGE_VERIFY,
)
from fontfin.exceptions import FileSystemError, InstallError, OperationCancelledError
from fontfin.log_utils import logger
from fontfin.utils import (
    ProgressCallback,
    collapse_home,
    download_bytes,
    expand_home,
    format_size,
    url_basename,
)

from .checksum import ChecksumVerifier
from .descriptor import prepare_descriptor
from .files import ArchiveStager, _is_within_base, remove_path
from .installed import InstalledFonts
from .interfaces import Descriptor, InstalledFont, ProgressSink
from .source import Resolution, SourceResolver

Downloader = Callable[..., bytes]


@dataclass
class InstallContext:
    """Shared state every installer in a run works against."""

    install_dir: str
    """Root directory new items are installed under; may start with `~`"""

    staging_dir: str
    """Parent of the per-item staging directories"""

    installed: InstalledFonts
    resolver: SourceResolver
    cancel_event: threading.Event = field(default_factory=threading.Event)
    downloader: Downloader = download_bytes


def _move_file(source: str, destination: str) -> None:
    try:
        os.replace(source, destination)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        shutil.move(source, destination)


class FontInstaller:
    """Downloads, verifies, stages and installs one resolved descriptor."""

    def __init__(
        self,
        installer_name: str,
        descriptor: Descriptor,
        resolution: Resolution,
        context: InstallContext,
    ):
        self.installer_name = installer_name
        self.descriptor = descriptor
        self.resolution = resolution
        self.context = context

    @classmethod
    def resolve(
        cls,
        installer_name: str,
        descriptor: Descriptor,
        context: InstallContext,
        tag_override: Optional[str] = None,
    ) -> "FontInstaller":
        """
        Validate `descriptor` and resolve its source to a direct URL.

        Parameters:
            installer_name (str): Manifest key and name used in messages.
            descriptor (Descriptor): Parsed descriptor.
            context (InstallContext): Run-wide context.
            tag_override (Optional[str]): Tag from a `name:tag` filter.

        Returns:
            FontInstaller: Ready to install.
        """
        prepared = prepare_descriptor(descriptor, tag_override)
        resolution = context.resolver.resolve(
            prepared.source, prepared.action.file, installer_name
        )
        logger.debug(f"{installer_name}: resolved to {resolution.source.url}")
        return cls(installer_name, prepared, resolution, context)

    @property
    def url(self) -> str:
        return self.resolution.source.url

    @property
    def tag(self) -> Optional[str]:
        return self.resolution.source.tag

    @property
    def staging_path(self) -> str:
        return os.path.join(self.context.staging_dir, self.descriptor.name)

    def has_updates(self) -> bool:
        """
        Whether installing would change anything.

        Returns:
            bool: `True` if the item is not installed, was installed from a different URL, or its install directory is missing.
        """
        entry = self.context.installed.get(self.installer_name)
        if entry is None:
            return True
        if entry.url != self.url:
            return True
        return not os.path.isdir(expand_home(entry.dir))

    def _check_cancelled(self) -> None:
        if self.context.cancel_event.is_set():
            raise OperationCancelledError(f"{self.installer_name}: cancelled")

    def download(self, progress: Optional[ProgressCallback] = None) -> bytes:
        self._check_cancelled()
        data = self.context.downloader(
            self.url, progress=progress, cancel_event=self.context.cancel_event
        )
        logger.debug(f"{self.installer_name}: downloaded {format_size(len(data))}")
        return data

    def verify(self, data: bytes, progress: Optional[ProgressCallback] = None) -> None:
        """Check `data` against the published checksum; does nothing without a `check`."""
        if self.descriptor.check is None:
            return
        self._check_cancelled()
        verifier = ChecksumVerifier(self.descriptor.check)
        checksum_text = verifier.obtain(
            self.resolution.page, self.tag, self.context.resolver, self.installer_name
        )
        verifier.verify(data, checksum_text, url_basename(self.url), progress)

    def stage(self, data: bytes, progress: Optional[ProgressCallback] = None) -> List[str]:
        self._check_cancelled()
        return ArchiveStager().stage(
            self.descriptor.action, data, self.staging_path, self.url, progress
        )

    def _target_dir(self) -> tuple[str, List[str]]:
        entry = self.context.installed.get(self.installer_name)
        if entry is not None:
            return expand_home(entry.dir), entry.files

        root = os.path.realpath(expand_home(self.context.install_dir))
        target = os.path.realpath(os.path.join(root, self.descriptor.name))
        if target == root or not _is_within_base(root, target):
            raise FileSystemError(
                f"{self.installer_name}: install directory escapes the install root",
                path=target,
            )
        return target, []

    def finalize_install(
        self, files: List[str], progress: Optional[ProgressCallback] = None
    ) -> None:
        """
        Move staged files into place and reconcile the manifest.

        Files go to the directory recorded for this installer, or to
        `<install_dir>/<name>/` for a new install. Every file is attempted even
        after a failure. Only when all moves succeed is the manifest entry
        replaced and files from the previous installation that are no longer
        part of it deleted. Files already moved are not rolled back on failure.

        Raises:
            InstallError: If any file could not be moved; the manifest is unchanged.
            FileSystemError: If the target cannot be created, or stale files cannot be removed.
        """
        target, previous_files = self._target_dir()
        try:
            os.makedirs(target, exist_ok=True)
        except OSError as e:
            raise FileSystemError(
                "Could not create install directory", path=target, details=str(e)
            ) from e

        failures = {}
        total = len(files)
        for index, relative in enumerate(files, start=1):
            source = os.path.join(self.staging_path, relative)
            destination = os.path.join(target, relative)
            try:
                os.makedirs(os.path.dirname(destination), exist_ok=True)
                _move_file(source, destination)
            except OSError as e:
                logger.error(f"{self.installer_name}: could not install {relative}: {e}")
                failures[relative] = str(e)
            if progress:
                progress(index, total)

        if failures:
            raise InstallError(
                f"{self.installer_name}: {len(failures)} file(s) failed to install",
                failures=failures,
                path=target,
            )

        entry_dir = collapse_home(target.rstrip(os.sep) + "/")
        self.context.installed.update_entry(
            self.installer_name, InstalledFont(url=self.url, dir=entry_dir, files=list(files))
        )
        self.context.installed.cleanup(self.installer_name, previous_files, files)

        try:
            remove_path(self.staging_path)
        except OSError as e:
            logger.debug(f"Could not remove staging directory {self.staging_path}: {e}")

    def install(self, sink: Optional[ProgressSink] = None) -> List[str]:
        """
        Run download, verify, stage and finalize.

        Parameters:
            sink (Optional[ProgressSink]): Receives per-stage progress.

        Returns:
            List[str]: The installed files, relative to the install directory.

        Raises:
            OperationCancelledError: If cancellation was requested before a stage completed.
            FontfinError: Whatever the failing stage raised.
        """
        sink = sink or ProgressSink()

        def reporter(stage: str) -> ProgressCallback:
            return lambda done, total: sink.update(stage, done, total)

        data = self._run_stage(
            sink, STAGE_DOWNLOAD, lambda: self.download(reporter(STAGE_DOWNLOAD))
        )
        self._run_stage(sink, STAGE_VERIFY, lambda: self.verify(data, reporter(STAGE_VERIFY)))
        files = self._run_stage(
            sink, STAGE_STAGE, lambda: self.stage(data, reporter(STAGE_STAGE))
        )
        self._check_cancelled()
        self._run_stage(
            sink,
            STAGE_INSTALL,
            lambda: self.finalize_install(files, reporter(STAGE_INSTALL)),
        )
        logger.debug(f"{self.installer_name}: installed {len(files)} file(s)")
        return files

    @staticmethod
    def _run_stage(sink: ProgressSink, stage: str, run):
        try:
            result = run()
        except Exception:
            sink.finish(stage, False)
            raise
        sink.finish(stage, True)
        return result
