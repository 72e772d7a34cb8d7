"""
Upload dispatch through the external uploader binary.
"""

import os
import subprocess
from typing import List, Sequence

from romupload.constants import UPLOAD_SUBCOMMAND
from romupload.exceptions import UploadError
from romupload.log_utils import logger


def build_upload_command(binary_path: str, files: Sequence[str]) -> List[str]:
    """
    Return the argv for `<binary> upload <file> [<file> ...]`.

    A bare binary name such as `pd` is made absolute so the binary in the
    working directory is run instead of one found on PATH.
    """
    if not os.path.dirname(binary_path):
        binary_path = os.path.abspath(binary_path)
    return [binary_path, UPLOAD_SUBCOMMAND, *files]


def upload_files(binary_path: str, files: Sequence[str]) -> None:
    """
    Run the uploader once for all files and wait for it to exit.

    The child inherits stdout and stderr, so its output reaches the caller
    unmodified. There are no retries; the run succeeds only on exit status 0.

    Raises:
        ValueError: If `files` is empty.
        UploadError: If the process cannot be started or exits non-zero.
    """
    if not files:
        raise ValueError("No files to upload")

    command = build_upload_command(binary_path, files)
    logger.info(f"Uploading files: {list(files)}")
    logger.debug(f"Running: {command}")
    try:
        result = subprocess.run(command, check=False)
    except OSError as e:
        raise UploadError(
            f"Unable to run {binary_path}", returncode=None, details=str(e)
        ) from e

    if result.returncode != 0:
        raise UploadError(
            f"Uploader exited with status {result.returncode}",
            returncode=result.returncode,
        )
    logger.info("Upload completed successfully!")
