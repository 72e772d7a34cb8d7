"""
Constants and default configuration values for romupload.

This module contains the pinned download URLs, file names, build layout
defaults and logging settings used throughout the application.
"""

# Uploader binary (pd, go-pixeldrain) download locations
PD_VERSION = "0.7.5"
PD_RELEASES_BASE = (
    f"https://github.com/jkawamoto/go-pixeldrain/releases/download/v{PD_VERSION}"
)
PD_AMD64_URL = f"{PD_RELEASES_BASE}/pd_{PD_VERSION}_linux_amd64.tar.gz"
PD_ARM64_URL = f"{PD_RELEASES_BASE}/pd_{PD_VERSION}_linux_arm64.tar.gz"

DEFAULT_DOWNLOAD_URLS = {
    "amd64": PD_AMD64_URL,
    "arm64": PD_ARM64_URL,
}

# platform.machine() spellings mapped to download keys
ARCHITECTURE_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8l": "arm64",
}

# File names
PD_BINARY_NAME = "pd"
PD_ARCHIVE_NAME = "pd.tar.gz"
DEFAULT_BINARY_PATH = PD_BINARY_NAME
DEFAULT_ARCHIVE_PATH = PD_ARCHIVE_NAME
EXECUTABLE_PERMISSIONS = 0o755

# Uploader invocation
UPLOAD_SUBCOMMAND = "upload"

# Build output layout
DEFAULT_BUILD_DIR_TEMPLATE = "out/target/product/{device}"
ZIP_EXTENSION = ".zip"
DEFAULT_PACKAGE_EXTENSION = ZIP_EXTENSION
DEFAULT_OTA_SUFFIX = "-ota"
FILENAME_DELIMITER = "-"

# Partition images uploaded next to the release package, in upload order
DEFAULT_AUXILIARY_IMAGES = (
    "dtbo.img",
    "vendor_boot.img",
    "boot.img",
    "vendor_dlkm.img",
)

# Recency key strategies
KEY_STRATEGY_TIMESTAMP = "timestamp"
KEY_STRATEGY_VERSION = "version"
DEFAULT_KEY_STRATEGY = KEY_STRATEGY_TIMESTAMP

# Network settings (None disables the timeout)
DEFAULT_DOWNLOAD_TIMEOUT = None
DEFAULT_DOWNLOAD_RETRIES = 0
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_CHUNK_SIZE = 8192

# Configuration file
APP_NAME = "romupload"
CONFIG_FILE_NAME = "romupload.yaml"

# Logging configuration
LOGGER_NAME = "romupload"
LOG_FILE_NAME = "romupload.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "ROMUPLOAD_LOG_LEVEL"
CONFIG_FILE_ENV_VAR = "ROMUPLOAD_CONFIG"

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
