"""
Configuration loading for romupload.

Settings come from three layers: the defaults in `romupload.constants`, an
optional YAML file, and command-line overrides. The merged result is an
immutable `Settings` object that is passed to the selector, provisioner and
dispatcher so URLs and paths can be substituted in tests.
"""

import os
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import platformdirs
import yaml

from romupload.constants import (
    APP_NAME,
    ARCHITECTURE_ALIASES,
    CONFIG_FILE_ENV_VAR,
    CONFIG_FILE_NAME,
    DEFAULT_ARCHIVE_PATH,
    DEFAULT_AUXILIARY_IMAGES,
    DEFAULT_BINARY_PATH,
    DEFAULT_BUILD_DIR_TEMPLATE,
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_DOWNLOAD_URLS,
    DEFAULT_KEY_STRATEGY,
    DEFAULT_OTA_SUFFIX,
    DEFAULT_PACKAGE_EXTENSION,
    PD_BINARY_NAME,
)
from romupload.exceptions import ConfigFileError, ConfigValidationError
from romupload.log_utils import logger
from romupload.selector import list_key_strategies


@dataclass(frozen=True)
class Settings:
    download_urls: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_DOWNLOAD_URLS)
    )
    binary_path: str = DEFAULT_BINARY_PATH
    binary_name: str = PD_BINARY_NAME
    archive_path: str = DEFAULT_ARCHIVE_PATH
    build_dir_template: str = DEFAULT_BUILD_DIR_TEMPLATE
    package_extension: str = DEFAULT_PACKAGE_EXTENSION
    ota_suffix: str = DEFAULT_OTA_SUFFIX
    key_strategy: str = DEFAULT_KEY_STRATEGY
    auxiliary_images: Tuple[str, ...] = DEFAULT_AUXILIARY_IMAGES
    download_timeout: Optional[float] = DEFAULT_DOWNLOAD_TIMEOUT
    download_retries: int = DEFAULT_DOWNLOAD_RETRIES
    log_level: Optional[str] = None
    log_dir: Optional[str] = None


# Config file keys mapped to Settings attributes
_KEY_MAP = {
    "DOWNLOAD_URLS": "download_urls",
    "BINARY_PATH": "binary_path",
    "BINARY_NAME": "binary_name",
    "ARCHIVE_PATH": "archive_path",
    "BUILD_DIR_TEMPLATE": "build_dir_template",
    "PACKAGE_EXTENSION": "package_extension",
    "OTA_SUFFIX": "ota_suffix",
    "KEY_STRATEGY": "key_strategy",
    "AUXILIARY_IMAGES": "auxiliary_images",
    "DOWNLOAD_TIMEOUT": "download_timeout",
    "DOWNLOAD_RETRIES": "download_retries",
    "LOG_LEVEL": "log_level",
    "LOG_DIR": "log_dir",
}

_STRING_FIELDS = {
    "binary_path",
    "binary_name",
    "archive_path",
    "build_dir_template",
    "package_extension",
    "ota_suffix",
    "key_strategy",
}


def get_config_file() -> str:
    """
    Return the default configuration file path.

    `ROMUPLOAD_CONFIG` takes precedence over the platformdirs user config
    directory.
    """
    env_path = os.environ.get(CONFIG_FILE_ENV_VAR)
    if env_path:
        return env_path
    return os.path.join(platformdirs.user_config_dir(APP_NAME), CONFIG_FILE_NAME)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the YAML configuration file.

    Parameters:
        path (str | None): Explicit configuration file. When omitted the
            default location is used and a missing file is not an error.

    Returns:
        dict: The parsed mapping, or an empty dict when no default file exists.

    Raises:
        ConfigFileError: If an explicit file is missing, unreadable, not valid
            YAML, or does not contain a mapping.
    """
    explicit = path is not None
    config_path = path if explicit else get_config_file()

    if not os.path.exists(config_path):
        if explicit:
            raise ConfigFileError("Configuration file not found", config_path)
        logger.debug(f"No configuration file at {config_path}; using defaults")
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML in {config_path}", str(e)) from e
    except OSError as e:
        raise ConfigFileError(f"Unable to read {config_path}", str(e)) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigFileError(
            f"{config_path} must contain a YAML mapping",
            f"got {type(config).__name__}",
        )

    logger.debug(f"Loaded configuration from {config_path}")
    return config


def _check_build_dir_template(template: str) -> None:
    # The template is formatted with the device codename as its only field
    try:
        fields = {name for _, name, _, _ in string.Formatter().parse(template)}
        template.format(device="device")
    except (AttributeError, KeyError, IndexError, ValueError) as e:
        raise ConfigValidationError(
            "BUILD_DIR_TEMPLATE may only use the {device} placeholder",
            f"{template!r}: {e!r}",
        ) from e
    if "device" not in fields:
        raise ConfigValidationError(
            "BUILD_DIR_TEMPLATE must contain the {device} placeholder",
            repr(template),
        )


def _validate_value(attr: str, value: Any) -> Any:
    if attr in _STRING_FIELDS:
        if not isinstance(value, str) or not value:
            raise ConfigValidationError(
                f"{attr} must be a non-empty string", repr(value)
            )
        if attr == "build_dir_template":
            _check_build_dir_template(value)
        return value

    if attr == "download_urls":
        if not isinstance(value, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in value.items()
        ):
            raise ConfigValidationError(
                "DOWNLOAD_URLS must map architecture names to URLs", repr(value)
            )
        merged = dict(DEFAULT_DOWNLOAD_URLS)
        for arch, url in value.items():
            arch = arch.lower()
            merged[ARCHITECTURE_ALIASES.get(arch, arch)] = url
        return merged

    if attr == "auxiliary_images":
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)) or not all(
            isinstance(item, str) for item in value
        ):
            raise ConfigValidationError(
                "AUXILIARY_IMAGES must be a list of file names", repr(value)
            )
        return tuple(value)

    if attr == "download_timeout":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigValidationError(
                "DOWNLOAD_TIMEOUT must be a number of seconds", repr(value)
            )
        if value <= 0:
            raise ConfigValidationError(
                "DOWNLOAD_TIMEOUT must be positive", repr(value)
            )
        return float(value)

    if attr == "download_retries":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigValidationError(
                "DOWNLOAD_RETRIES must be a non-negative integer", repr(value)
            )
        return value

    if attr in ("log_level", "log_dir"):
        if value is None:
            return None
        return str(value)

    return value


def build_settings(
    config: Optional[Mapping[str, Any]] = None, **overrides: Any
) -> Settings:
    """
    Merge a loaded configuration mapping and CLI overrides into Settings.

    Unknown configuration keys are ignored with a warning. Overrides use the
    Settings attribute names and are skipped when `None`.

    Raises:
        ConfigValidationError: If a value has the wrong type or the key
            strategy name is unknown.
    """
    values: Dict[str, Any] = {}
    for key, value in (config or {}).items():
        attr = _KEY_MAP.get(str(key).upper())
        if attr is None:
            logger.warning(f"Ignoring unknown configuration key: {key}")
            continue
        values[attr] = _validate_value(attr, value)

    for attr, value in overrides.items():
        if attr not in Settings.__dataclass_fields__:
            raise TypeError(f"Unknown setting: {attr}")
        if value is None:
            continue
        values[attr] = _validate_value(attr, value)

    settings = Settings(**values)
    if settings.key_strategy not in list_key_strategies():
        raise ConfigValidationError(
            f"Unknown key strategy: {settings.key_strategy}",
            f"choose from {', '.join(list_key_strategies())}",
        )
    return settings
