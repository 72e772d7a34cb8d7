"""
Artifact selection for a device build directory.

Finds the newest non-OTA release package by a recency key parsed from its
filename and appends the auxiliary partition images that are present.
"""

import glob
import os
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from romupload.constants import (
    DEFAULT_BUILD_DIR_TEMPLATE,
    DEFAULT_KEY_STRATEGY,
    DEFAULT_OTA_SUFFIX,
    DEFAULT_PACKAGE_EXTENSION,
    FILENAME_DELIMITER,
    KEY_STRATEGY_TIMESTAMP,
    KEY_STRATEGY_VERSION,
)
from romupload.exceptions import ConfigurationError
from romupload.log_utils import logger

KeyFunc = Callable[[str], Optional[int]]

_LEADING_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Candidate:
    path: str
    key: int


def _split_stem(filename: str) -> List[str]:
    stem, _ext = os.path.splitext(os.path.basename(filename))
    return stem.split(FILENAME_DELIMITER)


def key_from_timestamp(filename: str) -> Optional[int]:
    """
    Build a key from the two trailing date and time segments.

    `rom-2024-0102-0900.zip` yields `int("0102" + "0900")`. Only the leading
    digits of the joined segments count, so `20240315-UNOFFICIAL` yields
    20240315 and a name with no leading digits there yields 0. Names with
    fewer than three `-` separated segments yield None.
    """
    parts = _split_stem(filename)
    if len(parts) < 3:
        return None
    match = _LEADING_DIGITS.match(parts[-2] + parts[-1])
    if match is None:
        return 0
    return int(match.group())


def key_from_version(filename: str) -> Optional[int]:
    """
    Build a key from a trailing numeric version token such as `-42` or `-v42`.
    """
    parts = _split_stem(filename)
    if len(parts) < 2:
        return None
    token = parts[-1]
    if token[:1] in ("v", "V"):
        token = token[1:]
    if not token.isdecimal():
        return None
    return int(token)


KEY_STRATEGIES: Dict[str, KeyFunc] = {
    KEY_STRATEGY_TIMESTAMP: key_from_timestamp,
    KEY_STRATEGY_VERSION: key_from_version,
}


def get_key_strategy(name: str) -> KeyFunc:
    """
    Return the recency key function registered under `name`.

    Raises:
        ConfigurationError: If no strategy has that name.
    """
    try:
        return KEY_STRATEGIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown key strategy: {name}",
            f"choose from {', '.join(list_key_strategies())}",
        ) from None


def list_key_strategies() -> List[str]:
    """
    Return available key strategy names.
    """
    return sorted(KEY_STRATEGIES.keys())


def resolve_build_dir(device: str, template: str = DEFAULT_BUILD_DIR_TEMPLATE) -> str:
    return template.format(device=device)


def is_ota_package(
    path: str,
    ota_suffix: str = DEFAULT_OTA_SUFFIX,
    extension: str = DEFAULT_PACKAGE_EXTENSION,
) -> bool:
    """
    Return True if the file name ends with the OTA marker, ignoring case.
    """
    marker = f"{ota_suffix}{extension}".lower()
    return os.path.basename(path).lower().endswith(marker)


def scan_candidates(
    directory: str,
    extension: str = DEFAULT_PACKAGE_EXTENSION,
    ota_suffix: str = DEFAULT_OTA_SUFFIX,
    key_func: KeyFunc = key_from_timestamp,
) -> List[Candidate]:
    """
    List the non-OTA packages directly inside `directory` that yield a key.

    The glob result is sorted so the scan order, and therefore tie breaking,
    does not depend on the filesystem. A directory that does not exist simply
    has no matches.

    Parameters:
        directory (str): Build output directory; not searched recursively.
        extension (str): Package extension including the dot.
        ota_suffix (str): Marker that precedes the extension on OTA packages.
        key_func (Callable): Recency key strategy.

    Returns:
        List[Candidate]: Candidates in scan order.
    """
    pattern = os.path.join(glob.escape(directory), f"*{extension}")
    candidates: List[Candidate] = []
    for path in sorted(glob.glob(pattern)):
        if not os.path.isfile(path):
            continue
        if is_ota_package(path, ota_suffix, extension):
            logger.info(f"Ignoring OTA package: {path}")
            continue
        key = key_func(os.path.basename(path))
        if key is None:
            logger.debug(f"Skipping {path}: no recency key in file name")
            continue
        candidates.append(Candidate(path=path, key=key))
    return candidates


def pick_latest(candidates: Iterable[Candidate]) -> Optional[Candidate]:
    latest: Optional[Candidate] = None
    for candidate in candidates:
        # Strict comparison keeps the first candidate on ties
        if latest is None or candidate.key > latest.key:
            latest = candidate
    return latest


def select_release_package(
    directory: str,
    extension: str = DEFAULT_PACKAGE_EXTENSION,
    ota_suffix: str = DEFAULT_OTA_SUFFIX,
    key_strategy: str = DEFAULT_KEY_STRATEGY,
) -> Optional[str]:
    """
    Return the path of the newest normal release package, or None.
    """
    key_func = get_key_strategy(key_strategy)
    latest = pick_latest(scan_candidates(directory, extension, ota_suffix, key_func))
    if latest is None:
        logger.info(f"No normal {extension} package found in {directory} (OTA ignored).")
        return None
    logger.info(f"Latest package found: {latest.path}")
    return latest.path


def find_auxiliary_images(directory: str, names: Iterable[str]) -> List[str]:
    """
    Return the auxiliary images present in `directory`, in the order given.

    Missing images are logged as warnings and left out.
    """
    found: List[str] = []
    for name in names:
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            found.append(path)
        else:
            logger.warning(f"No file found at {path}, skipping...")
    return found


def build_upload_set(directory: str, settings) -> List[str]:
    """
    Assemble the ordered upload set for a build directory.

    Parameters:
        directory (str): Build output directory to scan.
        settings (Settings): Supplies the package extension, OTA suffix, key
            strategy and auxiliary image names.

    Returns:
        List[str]: At most one release package followed by the present
        auxiliary images. May be empty.
    """
    upload_files: List[str] = []
    package = select_release_package(
        directory,
        extension=settings.package_extension,
        ota_suffix=settings.ota_suffix,
        key_strategy=settings.key_strategy,
    )
    if package:
        upload_files.append(package)
    upload_files.extend(find_auxiliary_images(directory, settings.auxiliary_images))
    return upload_files
