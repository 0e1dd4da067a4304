"""
Source resolution for the fontfin download subsystem.

A declared source is turned into a direct download URL by repeatedly applying a
single pure transition:

    RepositorySource -> WebpageSource -> DirectSource

A repository becomes its GitHub release API page, a webpage is fetched through
the page cache and searched for a link to the target file, and a direct source
is terminal.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from fontfin.constants import (
    DEFAULT_RELEASE_TAG,
    FILE_PLACEHOLDER,
    FORBIDDEN_REPOSITORY_CHARS,
    GITHUB_LATEST_RELEASE_TEMPLATE,
    GITHUB_TAGGED_RELEASE_TEMPLATE,
    TAG_PLACEHOLDER,
    URL_TERMINATOR_CHARS,
)
from fontfin.exceptions import ResolutionError, ValidationError
from fontfin.log_utils import logger
from fontfin.wildcards import match_wildcard, wildcard_substring

from .cache import PageCache
from .interfaces import DirectSource, RepositorySource, Source, WebpageSource

WEBPAGE_URL_PATTERN = "*://*.*/*"


def substitute_tag(value: str, tag: Optional[str], field_name: str) -> str:
    """
    Replace `$tag` in `value`.

    Raises:
        ValidationError: If `value` uses `$tag` but no tag is available.
    """
    if TAG_PLACEHOLDER not in value:
        return value
    if tag is None:
        raise ValidationError(
            f"Use of missing field: `{TAG_PLACEHOLDER}`", field=field_name, value=value
        )
    return value.replace(TAG_PLACEHOLDER, tag)


def apply_tag(source: Source, override: Optional[str] = None) -> Source:
    """
    Settle the tag a source will use.

    An override always wins. Repositories otherwise fall back to their own tag and then to "latest"; webpages and direct URLs keep their own tag, which may be `None`.
    """
    if isinstance(source, RepositorySource):
        return replace(source, tag=override or source.tag or DEFAULT_RELEASE_TAG)
    if override:
        return replace(source, tag=override)
    return source


def _validate_repository_part(value: str, field_name: str) -> None:
    if not value:
        raise ValidationError(f"Repository {field_name} cannot be empty", field_name)
    for char in FORBIDDEN_REPOSITORY_CHARS:
        if char in value:
            raise ValidationError(
                f"Repository {field_name} contains illegal character '{char}'",
                field=field_name,
                value=value,
            )


def validate_source(source: Source, file: str) -> Source:
    """
    Validate a tagged source and fill in its placeholders.

    Parameters:
        source (Source): Source after `apply_tag`.
        file (str): Target file name, already tag-substituted.

    Returns:
        Source: The source with `$tag` (and for direct URLs `$file`) substituted.

    Raises:
        ValidationError: On malformed repository names or URLs, or unresolved placeholders.
    """
    if isinstance(source, RepositorySource):
        _validate_repository_part(source.owner, "owner")
        _validate_repository_part(source.project, "project")
        return source

    if isinstance(source, WebpageSource):
        if not match_wildcard(source.url, WEBPAGE_URL_PATTERN):
            raise ValidationError("Invalid webpage URL", field="url", value=source.url)
        return replace(source, url=substitute_tag(source.url, source.tag, "url"))

    if not source.url.endswith(FILE_PLACEHOLDER):
        raise ValidationError(
            f"Direct URL must end with `{FILE_PLACEHOLDER}`",
            field="url",
            value=source.url,
        )
    url = substitute_tag(source.url[: -len(FILE_PLACEHOLDER)], source.tag, "url")
    return replace(source, url=url + file)


def release_page_url(owner: str, project: str, tag: Optional[str]) -> str:
    """Return the GitHub API URL describing a release of `owner/project`."""
    if not tag or tag == DEFAULT_RELEASE_TAG:
        return GITHUB_LATEST_RELEASE_TEMPLATE.format(owner=owner, project=project)
    return GITHUB_TAGGED_RELEASE_TEMPLATE.format(owner=owner, project=project, tag=tag)


def find_direct_link(contents: str, file: str, item: str) -> str:
    """
    Find the first `https://` link to `file` in a webpage.

    The wildcard between the scheme and the file name never crosses a quote, angle bracket or whitespace, so the match stays within a single URL.

    Parameters:
        contents (str): Page text (HTML, JSON, ...).
        file (str): File name the link must end with.
        item (str): Installer name, for the error message.

    Returns:
        str: The link.

    Raises:
        ResolutionError: If no link to `file` is present.
    """
    link = wildcard_substring(
        contents, f"https://*{file}", exclude=URL_TERMINATOR_CHARS
    )
    if link is None:
        raise ResolutionError(
            f'{item}: File "{file}" could not be found within the webpage',
            item=item,
            target=file,
        )
    return link


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a source."""

    source: DirectSource
    """The terminal source"""

    page: Optional[str] = None
    """Text of the last webpage visited, if any"""


class SourceResolver:
    """Resolves validated sources to direct URLs through the page cache."""

    def __init__(
        self, page_cache: PageCache, ttl_minutes: int, force_refresh: bool = False
    ):
        self.page_cache = page_cache
        self.ttl_minutes = ttl_minutes
        self.force_refresh = force_refresh

    def fetch_page(self, url: str) -> str:
        return self.page_cache.fetch(url, self.ttl_minutes, self.force_refresh)

    def resolve_step(
        self, source: Source, file: str, item: str
    ) -> Tuple[Source, Optional[str]]:
        """
        Apply one resolution transition.

        Returns:
            Tuple[Source, Optional[str]]: The next source and the page text fetched on the way, if any.
        """
        if isinstance(source, RepositorySource):
            url = release_page_url(source.owner, source.project, source.tag)
            return WebpageSource(url=url, tag=source.tag), None

        if isinstance(source, WebpageSource):
            page = self.fetch_page(source.url)
            link = find_direct_link(page, file, item)
            logger.debug(f"{item}: found {link} on {source.url}")
            return DirectSource(url=link, tag=source.tag), page

        return source, None

    def resolve(self, source: Source, file: str, item: str) -> Resolution:
        """
        Resolve `source` to a direct URL.

        Parameters:
            source (Source): A validated source.
            file (str): Target file name.
            item (str): Installer name, for messages.

        Returns:
            Resolution: The direct source and the last page seen.
        """
        page: Optional[str] = None
        while not isinstance(source, DirectSource):
            source, fetched = self.resolve_step(source, file, item)
            if fetched is not None:
                page = fetched
        return Resolution(source=source, page=page)
