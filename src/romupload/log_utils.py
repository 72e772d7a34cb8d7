import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from romupload.constants import (
    DEBUG_LOG_FORMAT,
    INFO_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_NAME,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)
from romupload.exceptions import FileSystemError

logger = logging.getLogger(LOGGER_NAME)

# Kept module-level so add_file_logging() can replace an earlier handler
_file_handler: Optional[RotatingFileHandler] = None


def _resolve_level(level_name: str) -> Optional[int]:
    level = getattr(logging, str(level_name).upper(), None)
    if not isinstance(level, int):
        return None
    return level


def _formatter_for(handler: logging.Handler, level: int) -> logging.Formatter:
    """
    Pick the formatter for a handler at the given level.

    The Rich console handler always gets a message-only formatter since it
    renders time and level itself. File handlers get the informational format
    at INFO and above and the debug format (with logger name) below INFO.
    """
    if isinstance(handler, RichHandler):
        return logging.Formatter("%(message)s")
    if level >= logging.INFO:
        return logging.Formatter(INFO_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    return logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the romupload logger and all attached handlers.

    If `level_name` is not a valid logging level name, a warning is logged and
    the current configuration is left unchanged.

    Parameters:
        level_name (str): Case-insensitive level name such as "debug" or "INFO".
    """
    level = _resolve_level(level_name)
    if level is None:
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(_formatter_for(handler, level))

    logger.log(level, f"Log level set to {logging.getLevelName(level)}")


def add_file_logging(log_dir_path: Path, level_name: str = "INFO") -> Path:
    """
    Enable rotating file logging for the romupload logger.

    Creates the directory if necessary and attaches a RotatingFileHandler that
    writes `romupload.log` inside it. Any file handler previously added by this
    function is removed and closed once the new one is open. Invalid level names fall back to INFO.

    Returns:
        Path: The log file path.

    Raises:
        FileSystemError: If the directory or log file cannot be created. The
            previous file handler, if any, stays attached.
    """
    global _file_handler
    log_dir_path = Path(log_dir_path)
    log_file = log_dir_path / LOG_FILE_NAME

    file_log_level = _resolve_level(level_name)
    if file_log_level is None:
        logger.warning(
            f"Invalid file log level name: {level_name}. Defaulting to INFO."
        )
        file_log_level = logging.INFO

    try:
        log_dir_path.mkdir(parents=True, exist_ok=True)
        new_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        raise FileSystemError(
            "Unable to create log file", str(log_file), str(e)
        ) from e

    if _file_handler and _file_handler in logger.handlers:
        logger.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = new_handler
    _file_handler.setFormatter(_formatter_for(_file_handler, file_log_level))
    _file_handler.setLevel(file_log_level)

    logger.addHandler(_file_handler)
    # The logger itself must let file-level records through
    if logger.level > file_log_level:
        logger.setLevel(file_log_level)
    logger.info(
        f"File logging enabled at {log_file} with level {logging.getLevelName(file_log_level)}"
    )
    return log_file


def _initialize_logger() -> None:
    """
    Initialize the romupload logger with a Rich console handler.

    Existing handlers are removed, propagation to the root logger is disabled
    and the initial level is read from ROMUPLOAD_LOG_LEVEL (INFO if unset or
    invalid).
    """
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )

    default_log_level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    initial_level = _resolve_level(default_log_level)
    if initial_level is None:
        logger.warning(
            f"Invalid {LOG_LEVEL_ENV_VAR}={default_log_level}; defaulting to INFO."
        )
        initial_level = logging.INFO

    console_handler.setFormatter(_formatter_for(console_handler, initial_level))
    logger.addHandler(console_handler)

    logger.setLevel(initial_level)
    console_handler.setLevel(initial_level)


# Initialize the logger when the module is imported
_initialize_logger()
