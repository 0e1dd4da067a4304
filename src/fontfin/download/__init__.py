"""
fontfin Download Subsystem

This package turns installer descriptors into installed fonts.

Core Components:
- interfaces: Descriptor, source, action and result data types
- descriptor: Descriptor loading and validation
- source: Source resolution (repository -> webpage -> direct URL)
- cache: Deduplicating, disk-backed page cache
- checksum: Checksum lookup and verification
- files: Atomic writes, path safety and the archive stager
- installed: Installed-fonts manifest
- installer: Per-item install pipeline and reconciler
- orchestrator: Run coordination
- lock: Install state marker file
"""

from .cache import PageCache, cache_filename
from .checksum import ChecksumVerifier
from .descriptor import load_descriptor, prepare_descriptor
from .files import ArchiveStager
from .installed import InstalledFonts
from .installer import FontInstaller, InstallContext
from .interfaces import (
    ArchiveKind,
    ChecksumSpec,
    Descriptor,
    DirectSource,
    ExtractAction,
    InstalledFont,
    InstallResult,
    ProgressSink,
    RepositorySource,
    SingleFileAction,
    WebpageSource,
)
from .lock import StateLock
from .orchestrator import InstallOrchestrator, RunOptions
from .source import SourceResolver, find_direct_link

__all__ = [
    # Interfaces
    "ArchiveKind",
    "ChecksumSpec",
    "Descriptor",
    "DirectSource",
    "ExtractAction",
    "InstalledFont",
    "InstallResult",
    "ProgressSink",
    "RepositorySource",
    "SingleFileAction",
    "WebpageSource",
    # Components
    "ArchiveStager",
    "ChecksumVerifier",
    "FontInstaller",
    "InstallContext",
    "InstallOrchestrator",
    "InstalledFonts",
    "PageCache",
    "RunOptions",
    "SourceResolver",
    "StateLock",
    # Helpers
    "cache_filename",
    "find_direct_link",
    "load_descriptor",
    "prepare_descriptor",
]
