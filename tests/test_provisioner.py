"""
Tests for uploader binary provisioning.
"""

import os
import stat

import pytest
import requests

from romupload import provisioner
from romupload.config import Settings
from romupload.constants import PD_AMD64_URL, PD_ARM64_URL
from romupload.exceptions import (
    CorruptedArchiveError,
    ExtractionError,
    FileSystemError,
    HTTPError,
    NetworkError,
    UnsupportedArchitectureError,
)


def _mock_session(mocker, content=b"", status_code=200, get_side_effect=None):
    """
    Patch the provisioner's session factory with a mock streaming `content`.

    Returns:
        The mock session whose `get` returns a mock response.
    """
    response = mocker.Mock()
    response.status_code = status_code
    response.iter_content.return_value = [content[i : i + 4] for i in range(0, len(content), 4)]
    if status_code >= 400:
        error = requests.exceptions.HTTPError(f"{status_code} Client Error")
        error.response = response
        response.raise_for_status.side_effect = error
    session = mocker.Mock()
    if get_side_effect is not None:
        session.get.side_effect = get_side_effect
    else:
        session.get.return_value = response
    mocker.patch("romupload.provisioner._create_session", return_value=session)
    return session


class TestArchitecture:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "machine,expected",
        [
            ("x86_64", "amd64"),
            ("AMD64", "amd64"),
            ("aarch64", "arm64"),
            ("arm64", "arm64"),
            ("riscv64", "riscv64"),
        ],
    )
    def test_normalize_architecture(self, machine, expected):
        assert provisioner.normalize_architecture(machine) == expected

    @pytest.mark.unit
    def test_normalize_uses_platform_machine(self, mocker):
        mocker.patch("romupload.provisioner.platform.machine", return_value="aarch64")
        assert provisioner.normalize_architecture() == "arm64"

    @pytest.mark.unit
    def test_resolve_download_url(self):
        urls = Settings().download_urls
        assert provisioner.resolve_download_url(urls, "x86_64") == PD_AMD64_URL
        assert provisioner.resolve_download_url(urls, "aarch64") == PD_ARM64_URL

    @pytest.mark.unit
    def test_unsupported_architecture(self):
        with pytest.raises(UnsupportedArchitectureError) as exc_info:
            provisioner.resolve_download_url(Settings().download_urls, "riscv64")

        assert exc_info.value.architecture == "riscv64"
        assert "Unsupported architecture: riscv64" in str(exc_info.value)

    @pytest.mark.unit
    def test_extra_architecture_from_mapping(self):
        urls = {"riscv64": "https://example.com/pd_riscv64.tar.gz"}
        assert (
            provisioner.resolve_download_url(urls, "riscv64")
            == "https://example.com/pd_riscv64.tar.gz"
        )


class TestDownloadArchive:
    @pytest.mark.unit
    def test_streams_content_to_file(self, mocker, tmp_path):
        session = _mock_session(mocker, content=b"archive-bytes")
        dest = tmp_path / "pd.tar.gz"

        result = provisioner.download_archive("https://example.com/pd.tar.gz", str(dest))

        assert result == str(dest)
        assert dest.read_bytes() == b"archive-bytes"
        session.get.assert_called_once_with(
            "https://example.com/pd.tar.gz", stream=True, timeout=None
        )
        session.close.assert_called_once()

    @pytest.mark.unit
    def test_http_error_status(self, mocker, tmp_path):
        _mock_session(mocker, status_code=404)

        with pytest.raises(HTTPError) as exc_info:
            provisioner.download_archive(
                "https://example.com/missing.tar.gz", str(tmp_path / "pd.tar.gz")
            )

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://example.com/missing.tar.gz"

    @pytest.mark.unit
    def test_connection_error(self, mocker, tmp_path):
        _mock_session(
            mocker,
            get_side_effect=requests.exceptions.ConnectionError("Name resolution failed"),
        )

        with pytest.raises(NetworkError, match="Name resolution failed"):
            provisioner.download_archive(
                "https://example.com/pd.tar.gz", str(tmp_path / "pd.tar.gz")
            )

    @pytest.mark.unit
    def test_unwritable_destination(self, mocker, tmp_path):
        _mock_session(mocker, content=b"data")
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(FileSystemError):
            provisioner.download_archive(
                "https://example.com/pd.tar.gz", str(blocker / "pd.tar.gz")
            )

    @pytest.mark.unit
    def test_session_has_user_agent(self):
        session = provisioner._create_session(0)
        try:
            assert session.headers["User-Agent"].startswith("romupload/")
        finally:
            session.close()

    @pytest.mark.unit
    def test_session_retries_mounted_when_requested(self):
        session = provisioner._create_session(3)
        try:
            adapter = session.get_adapter("https://example.com")
            assert adapter.max_retries.total == 3
        finally:
            session.close()


class TestExtractBinary:
    @pytest.mark.unit
    def test_extracts_matching_member(self, make_pd_archive, tmp_path):
        archive = make_pd_archive(
            {"README.md": b"readme", "pd_0.7.5_linux_amd64/pd": b"binary"}
        )
        target = tmp_path / "bin" / "pd"

        result = provisioner.extract_binary(str(archive), str(target), "pd")

        assert result == str(target)
        assert target.read_bytes() == b"binary"
        assert os.stat(target).st_mode & stat.S_IXUSR
        assert not list(target.parent.glob("pd.tmp.*"))

    @pytest.mark.unit
    def test_no_matching_member_raises(self, make_pd_archive, tmp_path):
        archive = make_pd_archive({"README.md": b"readme"})
        target = tmp_path / "pd"

        with pytest.raises(ExtractionError, match="No pd binary found"):
            provisioner.extract_binary(str(archive), str(target), "pd")

        assert not target.exists()

    @pytest.mark.unit
    def test_corrupted_archive(self, tmp_path):
        archive = tmp_path / "pd.tar.gz"
        archive.write_bytes(b"this is not a tarball")

        with pytest.raises(CorruptedArchiveError):
            provisioner.extract_binary(str(archive), str(tmp_path / "pd"), "pd")

    @pytest.mark.unit
    def test_missing_archive(self, tmp_path):
        with pytest.raises(FileSystemError):
            provisioner.extract_binary(
                str(tmp_path / "absent.tar.gz"), str(tmp_path / "pd"), "pd"
            )


class TestEnsureBinary:
    @pytest.mark.unit
    def test_existing_binary_skips_network(self, mocker, tmp_path):
        binary = tmp_path / "pd"
        binary.write_bytes(b"binary")
        create_session = mocker.patch("romupload.provisioner._create_session")
        settings = Settings(binary_path=str(binary))

        assert provisioner.ensure_binary(settings, machine="riscv64") == str(binary)
        create_session.assert_not_called()

    @pytest.mark.unit
    def test_directory_at_binary_path_is_not_a_binary(self, tmp_path):
        (tmp_path / "pd").mkdir()
        settings = Settings(binary_path=str(tmp_path / "pd"))

        with pytest.raises(UnsupportedArchitectureError):
            provisioner.ensure_binary(settings, machine="sparc")

    @pytest.mark.unit
    def test_unsupported_architecture_before_network(self, mocker):
        create_session = mocker.patch("romupload.provisioner._create_session")

        with pytest.raises(UnsupportedArchitectureError):
            provisioner.ensure_binary(Settings(), machine="mips")

        create_session.assert_not_called()

    @pytest.mark.integration
    def test_downloads_and_extracts(self, mocker, tmp_path, pd_archive_bytes):
        session = _mock_session(mocker, content=pd_archive_bytes)
        settings = Settings(
            binary_path=str(tmp_path / "pd"),
            archive_path=str(tmp_path / "pd.tar.gz"),
        )

        result = provisioner.ensure_binary(settings, machine="x86_64")

        assert result == str(tmp_path / "pd")
        assert (tmp_path / "pd").read_bytes() == b"#!/bin/sh\nexit 0\n"
        # Archive is left on disk
        assert (tmp_path / "pd.tar.gz").exists()
        assert session.get.call_args[0][0] == PD_AMD64_URL

    @pytest.mark.integration
    def test_second_run_uses_cached_binary(self, mocker, tmp_path, pd_archive_bytes):
        session = _mock_session(mocker, content=pd_archive_bytes)
        settings = Settings(
            binary_path=str(tmp_path / "pd"),
            archive_path=str(tmp_path / "pd.tar.gz"),
        )

        provisioner.ensure_binary(settings, machine="aarch64")
        provisioner.ensure_binary(settings, machine="aarch64")

        assert session.get.call_count == 1
