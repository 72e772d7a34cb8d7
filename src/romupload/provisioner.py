"""
Uploader binary provisioning.

Makes sure the `pd` executable exists locally. When it is missing, the
archive for the running architecture is downloaded and the binary is
extracted from it. Existence of the binary is the only freshness check.
"""

import gzip
import importlib.metadata
import os
import platform
import shutil
import tarfile
import time
import zlib
from typing import Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore

from romupload.constants import (
    APP_NAME,
    ARCHITECTURE_ALIASES,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_DOWNLOAD_TIMEOUT,
    EXECUTABLE_PERMISSIONS,
)
from romupload.exceptions import (
    CorruptedArchiveError,
    ExtractionError,
    FileSystemError,
    HTTPError,
    NetworkError,
    UnsupportedArchitectureError,
)
from romupload.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Return the User-Agent string `romupload/{version}` used for downloads.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def normalize_architecture(machine: Optional[str] = None) -> str:
    """
    Map a `platform.machine()` value onto the architecture names used in
    download URL mappings (`amd64`, `arm64`). Unknown values are returned
    lower-cased.
    """
    if machine is None:
        machine = platform.machine()
    machine = (machine or "").strip().lower()
    return ARCHITECTURE_ALIASES.get(machine, machine)


def resolve_download_url(
    urls: Mapping[str, str], machine: Optional[str] = None
) -> str:
    """
    Return the archive URL for the running (or given) machine.

    Raises:
        UnsupportedArchitectureError: If the mapping has no entry for the
            architecture. Raised before any network activity.
    """
    arch = normalize_architecture(machine)
    url = urls.get(arch)
    if not url:
        raise UnsupportedArchitectureError(arch or "unknown", list(urls))
    return url


def binary_present(path: str) -> bool:
    return os.path.isfile(path)


def _create_session(retries: int) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": get_user_agent()})
    if retries > 0:
        retry_strategy = Retry(
            total=retries,
            connect=retries,
            read=retries,
            status=retries,
            backoff_factor=DEFAULT_BACKOFF_FACTOR,
            status_forcelist=[408, 429, 500, 502, 503, 504],
            allowed_methods=frozenset({"GET", "HEAD"}),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


def download_archive(
    url: str,
    dest: str,
    timeout: Optional[float] = DEFAULT_DOWNLOAD_TIMEOUT,
    retries: int = DEFAULT_DOWNLOAD_RETRIES,
) -> str:
    """
    Stream `url` into `dest`.

    No checksum is verified. A partially written archive is left in place
    on failure; it is overwritten by the next download.

    Parameters:
        url (str): Archive URL.
        dest (str): Destination file path.
        timeout (float | None): Request timeout in seconds; None waits forever.
        retries (int): urllib3 retry budget; 0 issues a single request.

    Returns:
        str: `dest`.

    Raises:
        HTTPError: If the server returns an error status.
        NetworkError: If the connection fails.
        FileSystemError: If `dest` cannot be written.
    """
    logger.debug(f"Downloading {url} to {dest}")
    session = _create_session(retries)
    response = None
    try:
        start_time = time.time()
        response = session.get(url, stream=True, timeout=timeout)
        logger.debug(
            f"Received HTTP response status code: {response.status_code} for URL: {url}"
        )
        response.raise_for_status()

        parent_dir = os.path.dirname(dest)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        downloaded_bytes = 0
        with open(dest, "wb") as file:
            for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                if chunk:
                    file.write(chunk)
                    downloaded_bytes += len(chunk)

        logger.debug(
            "Downloaded %d bytes in %.2fs from %s",
            downloaded_bytes,
            time.time() - start_time,
            url,
        )
        return dest
    except requests.exceptions.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        raise HTTPError(
            f"Download failed with HTTP status {status_code}",
            status_code=status_code,
            url=url,
            details=str(e),
        ) from e
    except requests.exceptions.RequestException as e:
        raise NetworkError("Download failed", url=url, details=str(e)) from e
    except OSError as e:
        raise FileSystemError(
            f"Unable to write {dest}", path=dest, details=str(e)
        ) from e
    finally:
        if response is not None:
            response.close()
        session.close()


def _discard(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.debug(f"Error removing temporary file {path}: {e}")


def extract_binary(archive_path: str, target_path: str, binary_name: str) -> str:
    """
    Extract the uploader binary from a gzip tar archive.

    The first regular file whose member name ends with `binary_name` is
    streamed to a temporary sibling of `target_path`, marked executable and
    moved into place.

    Returns:
        str: `target_path`.

    Raises:
        CorruptedArchiveError: If the archive cannot be opened or read.
        ExtractionError: If no member matches `binary_name`.
        FileSystemError: If the binary cannot be written.
    """
    temp_path = f"{target_path}.tmp.{os.getpid()}"
    try:
        parent_dir = os.path.dirname(target_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        with tarfile.open(archive_path, "r:gz") as archive:
            for member in archive:
                if not member.isreg() or not member.name.endswith(binary_name):
                    continue
                source = archive.extractfile(member)
                if source is None:
                    continue
                with source, open(temp_path, "wb") as target:
                    shutil.copyfileobj(source, target)
                os.chmod(temp_path, EXECUTABLE_PERMISSIONS)
                os.replace(temp_path, target_path)
                logger.debug(f"Extracted {member.name} to {target_path}")
                return target_path
    except (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError) as e:
        _discard(temp_path)
        raise CorruptedArchiveError(
            f"Unable to read archive {archive_path}",
            archive_path=archive_path,
            details=str(e),
        ) from e
    except OSError as e:
        _discard(temp_path)
        raise FileSystemError(
            f"Unable to extract {binary_name}", path=target_path, details=str(e)
        ) from e

    raise ExtractionError(
        f"No {binary_name} binary found in archive",
        archive_path=archive_path,
    )


def ensure_binary(settings, machine: Optional[str] = None) -> str:
    """
    Guarantee the uploader binary exists at `settings.binary_path`.

    If the file is already there nothing else happens, in particular no
    network request is made. Otherwise the archive for the architecture is
    downloaded to `settings.archive_path` (and left there) and the binary is
    extracted.

    Returns:
        str: The binary path.
    """
    binary_path = settings.binary_path
    if binary_present(binary_path):
        logger.info(f"{settings.binary_name} binary found, skipping download.")
        return binary_path

    url = resolve_download_url(settings.download_urls, machine)
    logger.info(
        f"Downloading {settings.binary_name} for architecture: {normalize_architecture(machine)}"
    )
    download_archive(
        url,
        settings.archive_path,
        timeout=settings.download_timeout,
        retries=settings.download_retries,
    )
    logger.info(f"Extracting {settings.binary_name} binary...")
    extract_binary(settings.archive_path, binary_path, settings.binary_name)
    return binary_path
