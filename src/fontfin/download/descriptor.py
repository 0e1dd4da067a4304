"""
Installer descriptor loading and validation.

Descriptors are YAML files in the installers directory. The file stem is the
installer name; the document describes where to get the font, what to do with
the download and, optionally, how to verify it:

    name: JetBrainsMono
    source:
      repository: {owner: JetBrains, project: JetBrainsMono}
    action:
      extract: {file: "JetBrainsMono-$tag.zip", include: ["*.ttf"]}
    check:
      sha256: {file: "SHA256SUMS"}
"""

import os
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from fontfin.constants import CHECKSUM_ALGORITHMS
from fontfin.exceptions import DescriptorError, ValidationError
from fontfin.wildcards import match_wildcard

from .files import detect_archive_kind
from .interfaces import (
    Action,
    ArchiveKind,
    ChecksumSpec,
    Descriptor,
    DirectSource,
    ExtractAction,
    RepositorySource,
    SingleFileAction,
    Source,
    WebpageSource,
)
from .source import apply_tag, substitute_tag, validate_source


def _normalize_key(key: Any) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


def _single_variant(value: Any, field_name: str) -> Tuple[str, Any]:
    if isinstance(value, str):
        return _normalize_key(value), None
    if not isinstance(value, dict) or len(value) != 1:
        raise DescriptorError(
            f"`{field_name}` must contain exactly one variant", field=field_name
        )
    key, body = next(iter(value.items()))
    return _normalize_key(key), body


def _string_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise DescriptorError(f"`{field_name}` must be a list of strings", field=field_name)


def _required_str(body: Dict[str, Any], key: str, field_name: str) -> str:
    value = body.get(key)
    if not isinstance(value, str):
        raise DescriptorError(
            f"`{field_name}.{key}` is required and must be a string", field=key
        )
    return value


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    return str(value)


def parse_source(value: Any) -> Source:
    kind, body = _single_variant(value, "source")
    if not isinstance(body, dict):
        raise DescriptorError("`source` variant must be a mapping", field="source")

    if kind in ("repository", "github"):
        owner = body.get("owner", body.get("author"))
        if not isinstance(owner, str):
            raise DescriptorError(
                "`source.owner` is required and must be a string", field="owner"
            )
        return RepositorySource(
            owner=owner,
            project=_required_str(body, "project", "source"),
            tag=_optional_str(body, "tag"),
        )
    if kind == "webpage":
        return WebpageSource(
            url=_required_str(body, "url", "source"), tag=_optional_str(body, "tag")
        )
    if kind == "direct":
        return DirectSource(
            url=_required_str(body, "url", "source"), tag=_optional_str(body, "tag")
        )
    raise DescriptorError(f"Unknown source type `{kind}`", field="source", value=kind)


def parse_action(value: Any) -> Action:
    kind, body = _single_variant(value, "action")
    if not isinstance(body, dict):
        raise DescriptorError("`action` variant must be a mapping", field="action")

    if kind == "extract":
        return ExtractAction(
            file=_required_str(body, "file", "action"),
            include=_string_list(body.get("include"), "include"),
            exclude=_string_list(body.get("exclude"), "exclude"),
            keep_folders=bool(body.get("keep_folders", False)),
        )
    if kind == "singlefile":
        return SingleFileAction(file=_required_str(body, "file", "action"))
    raise DescriptorError(f"Unknown action type `{kind}`", field="action", value=kind)


def parse_check(value: Any) -> Optional[ChecksumSpec]:
    if value is None:
        return None
    algorithm, body = _single_variant(value, "check")
    if algorithm not in CHECKSUM_ALGORITHMS:
        raise DescriptorError(
            f"Unsupported checksum algorithm `{algorithm}`",
            field="check",
            value=algorithm,
        )
    if body is None:
        return ChecksumSpec(algorithm=algorithm)
    if not isinstance(body, dict):
        raise DescriptorError("`check` variant must be a mapping", field="check")
    return ChecksumSpec(algorithm=algorithm, file=_optional_str(body, "file"))


def parse_descriptor(data: Any, installer_name: str) -> Descriptor:
    """
    Build a Descriptor from a parsed YAML document.

    Raises:
        DescriptorError: If required fields are missing or have the wrong shape.
    """
    if not isinstance(data, dict):
        raise DescriptorError(f"{installer_name}: descriptor must be a mapping")
    for key in ("name", "source", "action"):
        if key not in data:
            raise DescriptorError(f"{installer_name}: missing `{key}`", field=key)
    name = data["name"]
    if not isinstance(name, str):
        raise DescriptorError(f"{installer_name}: `name` must be a string", field="name")
    return Descriptor(
        name=name,
        source=parse_source(data["source"]),
        action=parse_action(data["action"]),
        check=parse_check(data.get("check")),
    )


def load_descriptor(path: str, installer_name: Optional[str] = None) -> Descriptor:
    """
    Read and parse a descriptor file.

    Parameters:
        path (str): Path to the YAML file.
        installer_name (Optional[str]): Name used in messages; the file stem by default.

    Returns:
        Descriptor: The parsed, not yet validated descriptor.

    Raises:
        DescriptorError: If the file cannot be read or parsed.
    """
    installer_name = installer_name or os.path.splitext(os.path.basename(path))[0]
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise DescriptorError(
            f"{installer_name}: could not read installer", details=str(e)
        ) from e
    except yaml.YAMLError as e:
        raise DescriptorError(
            f"{installer_name}: invalid installer YAML", details=str(e)
        ) from e
    return parse_descriptor(data, installer_name)


def validate_name(name: str) -> str:
    """
    Check that an item name is safe to use as a directory under the install root.

    Raises:
        ValidationError: If the name is empty once dots and slashes are removed, contains "..", is absolute, or contains a backslash or NUL.
    """
    if not name.replace(".", "").replace("/", "").strip():
        raise ValidationError("Invalid name: empty", field="name", value=name)
    if ".." in name:
        raise ValidationError("Invalid name: contains `..`", field="name", value=name)
    if os.path.isabs(name) or "\\" in name or "\x00" in name:
        raise ValidationError("Invalid name: not a relative path", field="name", value=name)
    return name


def validate_file(file: str, tag: Optional[str]) -> str:
    """
    Validate a target file name and substitute `$tag`.

    Raises:
        ValidationError: If the name has no extension, ends with `*`, is too short, or uses `$tag` without a tag.
    """
    if len(file) < 2 or file.endswith("*") or not match_wildcard(file, "*.*"):
        raise ValidationError(
            "File must have an extension", field="file", value=file
        )
    return substitute_tag(file, tag, "file")


def validate_action(action: Action, tag: Optional[str]) -> Action:
    """
    Validate an action and substitute `$tag` in its file name and wildcards.

    Returns:
        Action: The substituted action; extract actions get their archive kind filled in.

    Raises:
        ValidationError: On an invalid file name, an empty include list or an unsupported archive kind.
    """
    file = validate_file(action.file, tag)
    if isinstance(action, SingleFileAction):
        return replace(action, file=file)

    if not action.include:
        raise ValidationError("Include list cannot be empty", field="include")
    kind = detect_archive_kind(file)
    if kind == ArchiveKind.TAR_XZ:
        raise ValidationError(
            "Unsupported file extension",
            field="file",
            value=file,
            details="tar.xz archives are not supported",
        )
    if kind == ArchiveKind.UNSUPPORTED:
        raise ValidationError("Unsupported file extension", field="file", value=file)
    return replace(
        action,
        file=file,
        include=[substitute_tag(p, tag, "include") for p in action.include],
        exclude=[substitute_tag(p, tag, "exclude") for p in action.exclude],
        archive_kind=kind,
    )


def prepare_descriptor(
    descriptor: Descriptor, tag_override: Optional[str] = None
) -> Descriptor:
    """
    Validate a parsed descriptor and settle its tag and placeholders.

    Parameters:
        descriptor (Descriptor): As returned by `load_descriptor`.
        tag_override (Optional[str]): Tag given on the command line (`name:tag`).

    Returns:
        Descriptor: Ready for resolution.
    """
    validate_name(descriptor.name)
    source = apply_tag(descriptor.source, tag_override)
    action = validate_action(descriptor.action, source.tag)
    source = validate_source(source, action.file)
    return replace(descriptor, source=source, action=action)
