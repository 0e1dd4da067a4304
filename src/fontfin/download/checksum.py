"""
Checksum verification for downloaded data.

The published checksum text is either the resolved webpage itself (a GitHub
release JSON lists a digest for every asset) or a checksum file linked from
that page. A download passes when its hex digest appears anywhere in the text,
which covers both bare digests and `<digest>  <file>` listings.
"""

import hashlib
from typing import Optional

from fontfin.constants import HASH_CHUNK_SIZE
from fontfin.exceptions import IntegrityError, ResolutionError
from fontfin.log_utils import logger
from fontfin.utils import ProgressCallback

from .descriptor import validate_file
from .interfaces import ChecksumSpec
from .source import SourceResolver, find_direct_link


class ChecksumVerifier:
    """Fetches published checksum text and checks downloads against it."""

    def __init__(self, spec: ChecksumSpec):
        self.spec = spec

    def obtain(
        self,
        page: Optional[str],
        tag: Optional[str],
        resolver: SourceResolver,
        item: str,
    ) -> str:
        """
        Get the text that should contain the digest.

        Parameters:
            page (Optional[str]): Text of the page the download was found on.
            tag (Optional[str]): Tag used for `$tag` in the checksum file name.
            resolver (SourceResolver): Used to fetch the checksum file through the page cache.
            item (str): Installer name, for messages.

        Returns:
            str: The checksum text.

        Raises:
            ResolutionError: If there is no page to search, or the checksum file is not linked from it.
            ValidationError: If the checksum file name is invalid.
        """
        if page is None:
            raise ResolutionError(
                f"{item}: checksum requires a webpage or repository source",
                item=item,
                target=self.spec.file,
            )
        if self.spec.file is None:
            return page

        file = validate_file(self.spec.file, tag)
        link = find_direct_link(page, file, item)
        logger.debug(f"{item}: fetching checksum file {link}")
        return resolver.fetch_page(link)

    def digest(self, data: bytes, progress: Optional[ProgressCallback] = None) -> str:
        """Return the lowercase hex digest of `data`, reporting progress per chunk."""
        hasher = hashlib.new(self.spec.algorithm)
        total = len(data)
        view = memoryview(data)
        for offset in range(0, total, HASH_CHUNK_SIZE):
            hasher.update(view[offset : offset + HASH_CHUNK_SIZE])
            if progress:
                progress(min(offset + HASH_CHUNK_SIZE, total), total)
        return hasher.hexdigest()

    def verify(
        self,
        data: bytes,
        checksum_text: str,
        filename: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Check `data` against `checksum_text`.

        Raises:
            IntegrityError: If the digest does not occur in the checksum text.
        """
        digest = self.digest(data, progress)
        if digest not in checksum_text.lower():
            raise IntegrityError(
                f"{filename}: Integrity check failed: sum mismatch",
                filename=filename,
                algorithm=self.spec.algorithm,
            )
        logger.debug(f"{filename}: {self.spec.algorithm} {digest} verified")
