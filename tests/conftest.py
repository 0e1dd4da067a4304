import io
import tarfile
import time
import zipfile

import platformdirs
import pytest
import requests

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point every platformdirs location and HOME into a private temporary tree.

    Also disables file logging and clears any GitHub token so request headers are predictable.
    """
    base = tmp_path_factory.mktemp("fontfin")
    cache_dir = base / "cache"
    config_dir = base / "config"
    log_dir = base / "log"
    home_dir = base / "home"

    for path in (cache_dir, config_dir, log_dir, home_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("FONTFIN_DISABLE_FILE_LOGGING", "1")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """Replace the synchronous requests entry points with a blocker."""
    requests.get = _block_network
    requests.post = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """
    Make time.sleep instant for all tests to prevent delays.

    Tests that require real timing behavior should monkeypatch sleep back within the test.
    """
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


def make_zip(entries):
    """
    Build an in-memory zip archive.

    Parameters:
        entries: Iterable of (name, data) pairs; a name ending in "/" with data None becomes a directory entry.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            if data is None:
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, data)
    return buffer.getvalue()


def make_tar(entries, mode="w"):
    """Build an in-memory tar archive; `mode` "w:gz" gives a tar.gz."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as tf:
        for name, data in entries:
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                tf.addfile(info)
            else:
                payload = data.encode() if isinstance(data, str) else data
                info.size = len(payload)
                tf.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


@pytest.fixture
def zip_factory():
    return make_zip


@pytest.fixture
def tar_factory():
    return make_tar
