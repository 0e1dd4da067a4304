"""Descriptor parsing and validation tests."""

import pytest

from fontfin.download.descriptor import (
    load_descriptor,
    parse_descriptor,
    prepare_descriptor,
    validate_action,
    validate_file,
    validate_name,
)
from fontfin.download.interfaces import (
    ArchiveKind,
    ChecksumSpec,
    DirectSource,
    ExtractAction,
    RepositorySource,
    SingleFileAction,
    WebpageSource,
)
from fontfin.exceptions import DescriptorError, ValidationError

pytestmark = [pytest.mark.unit]

JETBRAINS_YAML = """\
name: JetBrainsMono
source:
  repository:
    owner: JetBrains
    project: JetBrainsMono
action:
  extract:
    file: "JetBrainsMono-$tag.zip"
    include: ["*.ttf"]
    exclude: ["*NL*"]
check:
  sha256:
    file: "SHA256SUMS"
"""


class TestParse:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "jetbrains-mono.yaml"
        path.write_text(JETBRAINS_YAML)

        descriptor = load_descriptor(str(path))

        assert descriptor.name == "JetBrainsMono"
        assert descriptor.source == RepositorySource("JetBrains", "JetBrainsMono")
        assert descriptor.action == ExtractAction(
            file="JetBrainsMono-$tag.zip", include=["*.ttf"], exclude=["*NL*"]
        )
        assert descriptor.check == ChecksumSpec(algorithm="sha256", file="SHA256SUMS")

    def test_camel_case_variants_and_author_alias(self):
        descriptor = parse_descriptor(
            {
                "name": "Foo",
                "source": {"GitHub": {"author": "me", "project": "foo", "tag": 2}},
                "action": {"SingleFile": {"file": "Foo.otf"}},
                "check": {"SHA512": None},
            },
            "foo",
        )
        assert descriptor.source == RepositorySource("me", "foo", "2")
        assert descriptor.action == SingleFileAction("Foo.otf")
        assert descriptor.check == ChecksumSpec(algorithm="sha512")

    @pytest.mark.parametrize("key,expected", [("keep_folders", True), ("keepfolders", False)])
    def test_keep_folders_key(self, key, expected):
        descriptor = parse_descriptor(
            {
                "name": "Foo",
                "source": {"direct": {"url": "https://x/Foo.zip"}},
                "action": {"extract": {"file": "Foo.zip", "include": ["*"], key: True}},
            },
            "foo",
        )
        assert descriptor.action.keep_folders is expected

    def test_bare_checksum_algorithm(self):
        descriptor = parse_descriptor(
            {
                "name": "Foo",
                "source": {"webpage": {"url": "https://example.com/fonts"}},
                "action": {"single_file": {"file": "Foo.otf"}},
                "check": "sha256",
            },
            "foo",
        )
        assert descriptor.source == WebpageSource("https://example.com/fonts")
        assert descriptor.check == ChecksumSpec(algorithm="sha256")

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"source": {}, "action": {}},
            {"name": "x", "source": {"ftp": {"url": "x"}}, "action": {"single_file": {"file": "a.b"}}},
            {"name": "x", "source": {"direct": {"url": "https://x/$file"}}, "action": {"copy": {}}},
            {
                "name": "x",
                "source": {"direct": {"url": "https://x/$file"}},
                "action": {"single_file": {"file": "a.b"}},
                "check": {"md5": None},
            },
        ],
    )
    def test_malformed_descriptors(self, data):
        with pytest.raises(DescriptorError):
            parse_descriptor(data, "x")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("name: [unclosed")
        with pytest.raises(DescriptorError, match="broken: invalid installer YAML"):
            load_descriptor(str(path))


class TestValidation:
    @pytest.mark.parametrize("name", ["", ".", "/", "./.", "../x", "a/../b", "/abs", "a\\b"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ValidationError):
            validate_name(name)

    @pytest.mark.parametrize("name", ["Foo", "nerd-fonts/Hack", "Foo.Bar"])
    def test_accepts_names(self, name):
        assert validate_name(name) == name

    @pytest.mark.parametrize("file", ["noext", "x", "font.*", "*"])
    def test_rejects_files_without_extension(self, file):
        with pytest.raises(ValidationError):
            validate_file(file, "v1")

    def test_file_tag_substitution(self):
        assert validate_file("foo-$tag.ttf", "v2") == "foo-v2.ttf"
        with pytest.raises(ValidationError, match="Use of missing field"):
            validate_file("foo-$tag.ttf", None)

    def test_extract_requires_include(self):
        with pytest.raises(ValidationError, match="Include list cannot be empty"):
            validate_action(ExtractAction(file="a.zip", include=[]), None)

    @pytest.mark.parametrize(
        "file,kind",
        [
            ("a.zip", ArchiveKind.ZIP),
            ("a.tar", ArchiveKind.TAR),
            ("a.tar.gz", ArchiveKind.TAR_GZ),
            ("a.tgz", ArchiveKind.TAR_GZ),
        ],
    )
    def test_archive_kind_detection(self, file, kind):
        action = validate_action(ExtractAction(file=file, include=["*"]), None)
        assert action.archive_kind == kind

    @pytest.mark.parametrize("file", ["a.tar.xz", "a.7z", "a.rar"])
    def test_unsupported_archives(self, file):
        with pytest.raises(ValidationError, match="Unsupported file extension"):
            validate_action(ExtractAction(file=file, include=["*"]), None)

    def test_include_and_exclude_tag_substitution(self):
        action = validate_action(
            ExtractAction(file="F-$tag.zip", include=["*$tag*.ttf"], exclude=["*$tag-NL*"]),
            "v1",
        )
        assert action.file == "F-v1.zip"
        assert action.include == ["*v1*.ttf"]
        assert action.exclude == ["*v1-NL*"]


class TestPrepare:
    def test_direct_source_end_to_end_substitution(self):
        descriptor = parse_descriptor(
            {
                "name": "Foo",
                "source": {"direct": {"url": "https://x/$file"}},
                "action": {"single_file": {"file": "foo-$tag.ttf"}},
            },
            "Foo",
        )
        prepared = prepare_descriptor(descriptor, "v2")
        assert prepared.source == DirectSource("https://x/foo-v2.ttf", tag="v2")
        assert prepared.action == SingleFileAction("foo-v2.ttf")

    def test_missing_tag_for_direct_source(self):
        descriptor = parse_descriptor(
            {
                "name": "Foo",
                "source": {"direct": {"url": "https://x/$file"}},
                "action": {"single_file": {"file": "foo-$tag.ttf"}},
            },
            "Foo",
        )
        with pytest.raises(ValidationError):
            prepare_descriptor(descriptor)

    def test_invalid_name_is_rejected_first(self):
        descriptor = parse_descriptor(
            {
                "name": "../escape",
                "source": {"direct": {"url": "https://x/$file"}},
                "action": {"single_file": {"file": "foo.ttf"}},
            },
            "escape",
        )
        with pytest.raises(ValidationError, match="Invalid name"):
            prepare_descriptor(descriptor)
