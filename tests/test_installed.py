"""Installed-fonts manifest tests."""

import os

import pytest
import yaml

from fontfin.download import installed as installed_module
from fontfin.download.installed import InstalledFonts, remove_files
from fontfin.download.interfaces import InstalledFont
from fontfin.exceptions import FileSystemError

pytestmark = [pytest.mark.unit]


def populate(root, files):
    for relative in files:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x")


class TestRemoveFiles:
    def test_removes_files_and_emptied_directories(self, tmp_path):
        base = tmp_path / "Foo"
        populate(base, ["ttf/a.ttf", "ttf/b.ttf", "otf/c.otf"])

        remove_files(str(base), ["ttf/a.ttf", "ttf/b.ttf", "otf/c.otf"])

        assert not base.exists()

    def test_keeps_directories_with_foreign_files(self, tmp_path):
        base = tmp_path / "Foo"
        populate(base, ["ttf/a.ttf", "ttf/user-added.ttf"])

        remove_files(str(base), ["ttf/a.ttf"])

        assert sorted(os.listdir(base / "ttf")) == ["user-added.ttf"]

    def test_missing_files_are_skipped(self, tmp_path):
        base = tmp_path / "Foo"
        populate(base, ["a.ttf"])
        remove_files(str(base), ["gone.ttf", "a.ttf"])
        assert not base.exists()

    def test_failure_does_not_stop_remaining_files(self, tmp_path):
        base = tmp_path / "Foo"
        populate(base, ["a.ttf/inside", "sub/b.ttf"])

        with pytest.raises(FileSystemError, match="a.ttf") as excinfo:
            remove_files(str(base), ["a.ttf", "sub/b.ttf"])

        assert excinfo.value.path == str(base)
        assert not (base / "sub").exists()
        assert (base / "a.ttf" / "inside").exists()


class TestInstalledFonts:
    def test_read_missing_file_is_empty(self, tmp_path):
        fonts = InstalledFonts.read(str(tmp_path / "installed.yaml"))
        assert fonts.names() == []
        assert not fonts.changed

    def test_write_only_when_changed(self, tmp_path):
        path = tmp_path / "installed.yaml"
        fonts = InstalledFonts.read(str(path))

        assert fonts.write() is False
        assert not path.exists()

        fonts.update_entry("Foo", InstalledFont("https://x/foo.ttf", "~/fonts/Foo/", ["foo.ttf"]))
        assert fonts.changed
        assert fonts.write() is True
        assert not fonts.changed
        assert fonts.write() is False

        reloaded = InstalledFonts.read(str(path))
        assert reloaded.get("Foo") == InstalledFont(
            "https://x/foo.ttf", "~/fonts/Foo/", ["foo.ttf"]
        )

    def test_written_yaml_layout(self, tmp_path):
        path = tmp_path / "installed.yaml"
        fonts = InstalledFonts(str(path))
        fonts.update_entry("Foo", InstalledFont("u", "d/", ["a", "b"]))
        fonts.write()
        assert yaml.safe_load(path.read_text()) == {
            "Foo": {"url": "u", "dir": "d/", "files": ["a", "b"]}
        }

    def test_failed_write_raises(self, tmp_path, mocker):
        fonts = InstalledFonts(str(tmp_path / "installed.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", "d/", []))
        mocker.patch.object(installed_module, "_atomic_write_yaml", return_value=False)
        with pytest.raises(FileSystemError):
            fonts.write()
        assert fonts.changed

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "installed.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(FileSystemError, match="malformed"):
            InstalledFonts.read(str(path))

    def test_get_returns_copy(self, tmp_path):
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", "d/", ["a"]))
        fonts.get("Foo").files.append("b")
        assert fonts.get("Foo").files == ["a"]

    def test_remove_entry(self, tmp_path):
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        assert fonts.remove_entry("missing") is None
        assert not fonts.changed
        fonts.update_entry("Foo", InstalledFont("u", "d/", []))
        assert fonts.remove_entry("Foo").url == "u"

    def test_identical_update_is_not_a_change(self, tmp_path):
        path = tmp_path / "i.yaml"
        fonts = InstalledFonts(str(path))
        fonts.update_entry("Foo", InstalledFont("u", "d/", ["a"]))
        fonts.write()

        fonts.update_entry("Foo", InstalledFont("u", "d/", ["a"]))
        assert not fonts.changed
        assert fonts.write() is False

        fonts.update_entry("Foo", InstalledFont("u", "d/", ["a", "b"]))
        assert fonts.changed


class TestCleanupAndUninstall:
    def test_cleanup_removes_only_dropped_files(self, tmp_path):
        install_dir = tmp_path / "fonts" / "Foo"
        populate(install_dir, ["a.ttf", "b.ttf", "extra/c.ttf"])
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry(
            "Foo", InstalledFont("u", str(install_dir) + "/", ["a.ttf", "b.ttf", "extra/c.ttf"])
        )

        stray = fonts.cleanup("Foo", ["a.ttf", "b.ttf", "extra/c.ttf"], ["a.ttf", "b.ttf"])

        assert stray == ["extra/c.ttf"]
        assert sorted(os.listdir(install_dir)) == ["a.ttf", "b.ttf"]

    def test_cleanup_for_unknown_name(self, tmp_path):
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        assert fonts.cleanup("Foo", ["a"], []) == []

    def test_uninstall_removes_recorded_files_only(self, tmp_path):
        install_dir = tmp_path / "fonts" / "Foo"
        populate(install_dir, ["a.ttf", "mine.txt"])
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", str(install_dir) + "/", ["a.ttf"]))

        assert fonts.uninstall("Foo") is True

        assert os.listdir(install_dir) == ["mine.txt"]
        assert fonts.get("Foo") is None
        assert fonts.changed

    def test_forced_uninstall_removes_directory(self, tmp_path):
        install_dir = tmp_path / "fonts" / "Foo"
        populate(install_dir, ["a.ttf", "mine.txt"])
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", str(install_dir) + "/", ["a.ttf"]))

        assert fonts.uninstall("Foo", force=True) is True
        assert not install_dir.exists()

    def test_uninstall_with_missing_directory_drops_entry(self, tmp_path):
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", str(tmp_path / "gone") + "/", ["a.ttf"]))
        assert fonts.uninstall("Foo") is True
        assert fonts.names() == []

    def test_uninstall_unknown(self, tmp_path):
        assert InstalledFonts(str(tmp_path / "i.yaml")).uninstall("Foo") is False

    def test_home_relative_directory(self, tmp_path):
        home = os.path.expanduser("~")
        install_dir = os.path.join(home, "fonts", "Foo")
        os.makedirs(install_dir)
        with open(os.path.join(install_dir, "a.ttf"), "wb") as f:
            f.write(b"x")
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", "~/fonts/Foo/", ["a.ttf"]))

        fonts.uninstall("Foo")

        assert not os.path.exists(install_dir)

    def test_uninstall_failure_keeps_entry_and_removes_the_rest(self, tmp_path):
        install_dir = tmp_path / "fonts" / "Foo"
        populate(install_dir, ["a.ttf/inside", "b.ttf"])
        fonts = InstalledFonts(str(tmp_path / "i.yaml"))
        fonts.update_entry("Foo", InstalledFont("u", str(install_dir) + "/", ["a.ttf", "b.ttf"]))

        with pytest.raises(FileSystemError):
            fonts.uninstall("Foo")

        assert not (install_dir / "b.ttf").exists()
        assert fonts.get("Foo").files == ["a.ttf", "b.ttf"]
