"""
Install pipeline tests: resolution into an installer, the full
download/verify/stage/finalize sequence and manifest reconciliation.
"""

import hashlib
import os
import threading
from unittest.mock import MagicMock

import pytest

from fontfin.download import installed as installed_module
from fontfin.download import installer as installer_module
from fontfin.download.cache import PageCache
from fontfin.download.installed import InstalledFonts
from fontfin.download.installer import FontInstaller, InstallContext
from fontfin.download.interfaces import (
    ChecksumSpec,
    Descriptor,
    DirectSource,
    ExtractAction,
    InstalledFont,
    ProgressSink,
    SingleFileAction,
    WebpageSource,
)
from fontfin.download.source import SourceResolver
from fontfin.exceptions import (
    FileSystemError,
    InstallError,
    IntegrityError,
    OperationCancelledError,
)

pytestmark = [pytest.mark.integration]

FOO = Descriptor(
    name="Foo",
    source=DirectSource("https://x/$file"),
    action=SingleFileAction("foo-$tag.ttf"),
)


class RecordingSink(ProgressSink):
    def __init__(self):
        self.updates = []
        self.finished = []

    def update(self, stage, done, total):
        self.updates.append((stage, done, total))

    def finish(self, stage, success):
        self.finished.append((stage, success))


@pytest.fixture
def context(tmp_path):
    def make(downloader, pages=None):
        fetch = MagicMock(side_effect=lambda url: pages[url]) if pages else MagicMock()
        return InstallContext(
            install_dir=str(tmp_path / "fonts"),
            staging_dir=str(tmp_path / "staging"),
            installed=InstalledFonts(str(tmp_path / "installed.yaml")),
            resolver=SourceResolver(PageCache(str(tmp_path / "pages"), fetch), 90),
            downloader=downloader,
        )

    return make


def fake_downloader(payload):
    def download(url, progress=None, cancel_event=None):
        if progress:
            progress(len(payload), len(payload))
        return payload

    return MagicMock(side_effect=download)


class TestSingleFileInstall:
    def test_direct_source_with_tag(self, tmp_path, context):
        downloader = fake_downloader(b"font data")
        ctx = context(downloader)

        installer = FontInstaller.resolve("Foo", FOO, ctx, tag_override="v2")
        assert installer.url == "https://x/foo-v2.ttf"
        assert installer.has_updates()

        sink = RecordingSink()
        files = installer.install(sink)

        target = os.path.realpath(str(tmp_path / "fonts")) + "/Foo/"
        assert files == ["foo-v2.ttf"]
        assert open(os.path.join(target, "foo-v2.ttf"), "rb").read() == b"font data"
        assert ctx.installed.get("Foo") == InstalledFont(
            url="https://x/foo-v2.ttf", dir=target, files=["foo-v2.ttf"]
        )
        assert not os.path.exists(installer.staging_path)
        assert [stage for stage, _ in sink.finished] == [
            "download",
            "verify",
            "stage",
            "install",
        ]
        assert all(success for _, success in sink.finished)
        downloader.assert_called_once()
        assert not installer.has_updates()

    def test_stages_under_item_name(self, tmp_path, context):
        installer = FontInstaller.resolve("Foo", FOO, context(fake_downloader(b"x")), "v2")

        assert installer.stage(b"font data") == ["foo-v2.ttf"]

        staged = tmp_path / "staging" / "Foo" / "foo-v2.ttf"
        assert installer.staging_path == str(tmp_path / "staging" / "Foo")
        assert staged.read_bytes() == b"font data"

    def test_finalizing_twice_is_idempotent(self, context, mocker):
        ctx = context(fake_downloader(b"font data"))
        FontInstaller.resolve("Foo", FOO, ctx, "v2").install()
        first = ctx.installed.get("Foo")

        remove_files = mocker.spy(installed_module, "remove_files")
        FontInstaller.resolve("Foo", FOO, ctx, "v2").install()

        assert ctx.installed.get("Foo") == first
        remove_files.assert_not_called()

    def test_has_updates_after_url_change(self, context):
        ctx = context(fake_downloader(b"x"))
        FontInstaller.resolve("Foo", FOO, ctx, "v1").install()
        assert FontInstaller.resolve("Foo", FOO, ctx, "v2").has_updates()

    def test_has_updates_when_directory_missing(self, tmp_path, context):
        ctx = context(fake_downloader(b"x"))
        ctx.installed.update_entry(
            "Foo", InstalledFont("https://x/foo-v1.ttf", str(tmp_path / "nowhere") + "/", [])
        )
        assert FontInstaller.resolve("Foo", FOO, ctx, "v1").has_updates()

    def test_cancel_before_start(self, context):
        downloader = fake_downloader(b"x")
        ctx = context(downloader)
        installer = FontInstaller.resolve("Foo", FOO, ctx, "v2")
        ctx.cancel_event.set()

        sink = RecordingSink()
        with pytest.raises(OperationCancelledError):
            installer.install(sink)

        downloader.assert_not_called()
        assert sink.finished == [("download", False)]
        assert ctx.installed.get("Foo") is None

    def test_cancel_between_stages(self, context):
        ctx = context(None)

        def download(url, progress=None, cancel_event=None):
            cancel_event.set()
            return b"x"

        ctx.downloader = download
        installer = FontInstaller.resolve("Foo", FOO, ctx, "v2")
        with pytest.raises(OperationCancelledError):
            installer.install()
        assert ctx.installed.get("Foo") is None


class TestArchiveInstall:
    def webpage_descriptor(self, check=True):
        return Descriptor(
            name="Bar",
            source=WebpageSource("https://example.com/releases"),
            action=ExtractAction(file="Bar.zip", include=["*.ttf"]),
            check=ChecksumSpec("sha256") if check else None,
        )

    def page_for(self, data):
        digest = hashlib.sha256(data).hexdigest()
        return {
            "https://example.com/releases": (
                '{"browser_download_url": "https://example.com/dl/Bar.zip", '
                f'"digest": "sha256:{digest}"}}'
            )
        }

    def test_checked_archive_install(self, tmp_path, context, zip_factory):
        data = zip_factory([("Bar/Bar-Regular.ttf", b"r"), ("Bar/Bar-Bold.ttf", b"b")])
        ctx = context(fake_downloader(data), self.page_for(data))

        files = FontInstaller.resolve("bar", self.webpage_descriptor(), ctx).install()

        assert sorted(files) == ["Bar-Bold.ttf", "Bar-Regular.ttf"]
        assert sorted(os.listdir(tmp_path / "fonts" / "Bar")) == sorted(files)
        assert ctx.installed.get("bar").url == "https://example.com/dl/Bar.zip"

    def test_integrity_failure_installs_nothing(self, tmp_path, context, zip_factory):
        data = zip_factory([("Bar-Regular.ttf", b"r")])
        ctx = context(fake_downloader(data + b"tampered"), self.page_for(data))

        sink = RecordingSink()
        with pytest.raises(IntegrityError):
            FontInstaller.resolve("bar", self.webpage_descriptor(), ctx).install(sink)

        assert sink.finished[-1] == ("verify", False)
        assert not (tmp_path / "fonts").exists()
        assert ctx.installed.get("bar") is None

    def test_update_removes_dropped_files(self, tmp_path, context, zip_factory):
        old = zip_factory([("a.ttf", b"a"), ("b.ttf", b"b"), ("c.ttf", b"c")])
        new = zip_factory([("a.ttf", b"a2"), ("b.ttf", b"b2")])
        descriptor = self.webpage_descriptor(check=False)

        ctx = context(fake_downloader(old), self.page_for(old))
        FontInstaller.resolve("bar", descriptor, ctx).install()
        ctx.downloader = fake_downloader(new)
        FontInstaller.resolve("bar", descriptor, ctx).install()

        install_dir = tmp_path / "fonts" / "Bar"
        assert sorted(os.listdir(install_dir)) == ["a.ttf", "b.ttf"]
        assert (install_dir / "a.ttf").read_bytes() == b"a2"
        assert ctx.installed.get("bar").files == ["a.ttf", "b.ttf"]


class TestFinalizeFailures:
    def test_move_failure_leaves_manifest_untouched(self, context, mocker):
        ctx = context(fake_downloader(b"font"))
        previous = InstalledFont("https://x/foo-v1.ttf", "~/elsewhere/Foo/", ["foo-v1.ttf"])
        ctx.installed.update_entry("Foo", previous)
        mocker.patch.object(
            installer_module, "_move_file", side_effect=OSError("disk full")
        )

        with pytest.raises(InstallError) as excinfo:
            FontInstaller.resolve("Foo", FOO, ctx, "v2").install()

        assert excinfo.value.failures == {"foo-v2.ttf": "disk full"}
        assert ctx.installed.get("Foo") == previous

    def test_escaping_name_is_rejected(self, context):
        ctx = context(fake_downloader(b"font"))
        installer = FontInstaller.resolve("Foo", FOO, ctx, "v2")
        installer.descriptor = Descriptor(
            name="../../outside", source=FOO.source, action=SingleFileAction("foo-v2.ttf")
        )
        with pytest.raises(FileSystemError, match="escapes the install root"):
            installer.finalize_install([])


def test_context_defaults(tmp_path):
    ctx = InstallContext(
        install_dir="~/fonts",
        staging_dir=str(tmp_path),
        installed=InstalledFonts(str(tmp_path / "i.yaml")),
        resolver=MagicMock(),
    )
    assert isinstance(ctx.cancel_event, threading.Event)
    assert ctx.downloader is installer_module.download_bytes
