"""
Core data structures for the fontfin download subsystem.

This module defines the declarative descriptor model (sources, actions and
checksums), the manifest record, per-item results and the progress sink that
the pipeline reports to.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


@dataclass(frozen=True)
class RepositorySource:
    """A release published in a GitHub repository."""

    owner: str
    """Repository owner (user or organisation)"""

    project: str
    """Repository name"""

    tag: Optional[str] = None
    """Release tag; resolved to "latest" when unset"""


@dataclass(frozen=True)
class WebpageSource:
    """A webpage that links to the target file somewhere in its text."""

    url: str
    """Page URL; may contain `$tag`"""

    tag: Optional[str] = None


@dataclass(frozen=True)
class DirectSource:
    """A direct download URL. Terminal state of source resolution."""

    url: str
    """Download URL; a declared template must end with `$file`"""

    tag: Optional[str] = None


Source = Union[RepositorySource, WebpageSource, DirectSource]


class ArchiveKind(Enum):
    """Archive format derived from the target file extension."""

    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ExtractAction:
    """Download an archive and keep the members matching the include patterns."""

    file: str
    """Archive file name to look for; may contain `$tag`"""

    include: List[str]
    """Wildcards for archive members to keep; must not be empty"""

    exclude: List[str] = field(default_factory=list)
    """Wildcards for archive members to drop even when included"""

    keep_folders: bool = False
    """Keep the archive directory layout instead of flattening to basenames"""

    archive_kind: ArchiveKind = ArchiveKind.UNSUPPORTED
    """Filled in during validation"""


@dataclass(frozen=True)
class SingleFileAction:
    """Download one file and install it as-is."""

    file: str


Action = Union[ExtractAction, SingleFileAction]


@dataclass(frozen=True)
class ChecksumSpec:
    """Where to find the published digest for the downloaded file."""

    algorithm: str
    """hashlib algorithm name: sha224, sha256, sha384 or sha512"""

    file: Optional[str] = None
    """Checksum file linked from the resolved webpage; the webpage itself when unset"""


@dataclass(frozen=True)
class Descriptor:
    """A parsed installer descriptor."""

    name: str
    """Directory name used for staging and installing"""

    source: Source
    action: Action
    check: Optional[ChecksumSpec] = None


@dataclass
class InstalledFont:
    """One manifest record."""

    url: str
    """URL the installed files were downloaded from"""

    dir: str
    """Install directory, with a trailing slash and `~` for the home directory"""

    files: List[str] = field(default_factory=list)
    """Installed file paths relative to `dir`"""


@dataclass
class InstallResult:
    """Outcome of processing one installer."""

    name: str
    """Installer name"""

    success: bool
    """Whether the operation succeeded"""

    was_skipped: bool = False
    """True when the item was already up to date"""

    url: Optional[str] = None
    """Resolved download URL, when resolution got that far"""

    files: Optional[List[str]] = None
    """Installed files (if successful)"""

    error_message: Optional[str] = None
    """Error message (if failed)"""

    error_type: Optional[str] = None
    """Exception class name (if failed)"""


class ProgressSink:
    """
    Receives progress for the stages of a single item.

    The base class ignores everything, so it doubles as the no-op sink.
    """

    def update(self, stage: str, done: int, total: Optional[int]) -> None:
        """Report `done` out of `total` units for `stage`; `total` may be unknown."""

    def finish(self, stage: str, success: bool) -> None:
        """Report that `stage` has ended."""
