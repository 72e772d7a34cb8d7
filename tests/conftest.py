import io
import logging
import sys
import tarfile
from pathlib import Path

# Add src to path so the package imports without an install
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

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
    """
    Register the markers used by the test suite.
    """
    config.addinivalue_line("markers", "unit: fast tests without external effects")
    config.addinivalue_line(
        "markers", "integration: tests that run several stages together"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Run every test from an empty working directory with isolated config dirs.

    The default uploader binary and archive paths are relative, so the working
    directory is switched to a fresh temp dir. platformdirs and XDG variables
    are pointed at temp directories so no real user configuration is read.
    """
    base = tmp_path_factory.mktemp("romupload")
    config_dir = base / "config"
    work_dir = base / "work"
    for path in (config_dir, work_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.delenv("ROMUPLOAD_CONFIG", raising=False)
    monkeypatch.delenv("ROMUPLOAD_LOG_LEVEL", raising=False)
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.chdir(work_dir)


@pytest.fixture(autouse=True)
def _reset_logging():
    """
    Restore the romupload logger level and drop file handlers added by a test.
    """
    from romupload import log_utils

    original_level = log_utils.logger.level
    yield
    handler = log_utils._file_handler
    if handler is not None and handler in log_utils.logger.handlers:
        log_utils.logger.removeHandler(handler)
        handler.close()
    log_utils._file_handler = None
    log_utils.set_log_level(logging.getLevelName(original_level))


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


@pytest.fixture
def propagating_logger(monkeypatch):
    """
    Let romupload records reach the root logger so caplog can capture them.
    """
    from romupload.log_utils import logger

    monkeypatch.setattr(logger, "propagate", True)
    return logger


@pytest.fixture
def make_build_dir(tmp_path):
    """
    Provide a factory that creates a build output directory with the given files.

    Returns:
        factory (callable): `factory(*names, device="bluejay")` creates
        `out/target/product/<device>/` under tmp_path, writes an empty file per
        name and returns the directory Path.
    """

    def _make(*names, device="bluejay"):
        build_dir = tmp_path / "out" / "target" / "product" / device
        build_dir.mkdir(parents=True, exist_ok=True)
        for name in names:
            (build_dir / name).write_bytes(b"data")
        return build_dir

    return _make


@pytest.fixture
def make_pd_archive(tmp_path):
    """
    Provide a factory that writes a gzip tar archive with the given members.

    Returns:
        factory (callable): `factory(members, name="pd.tar.gz")` where
        `members` maps member names to bytes content. Returns the archive Path.
    """

    def _make(members, name="pd.tar.gz"):
        archive_path = tmp_path / name
        with tarfile.open(archive_path, "w:gz") as archive:
            for member_name, content in members.items():
                info = tarfile.TarInfo(member_name)
                info.size = len(content)
                info.mode = 0o644
                archive.addfile(info, io.BytesIO(content))
        return archive_path

    return _make


@pytest.fixture
def pd_archive_bytes(make_pd_archive):
    """Bytes of a realistic pd release archive."""
    archive_path = make_pd_archive(
        {
            "LICENSE": b"MIT",
            "README.md": b"# pd",
            "pd": b"#!/bin/sh\nexit 0\n",
        },
        name="release.tar.gz",
    )
    return Path(archive_path).read_bytes()
