"""
Custom exceptions for romupload.

Every failure that should end a run is raised as a subclass of
RomUploadError; the CLI catches the base class, logs it and exits with a
non-zero status.
"""

from typing import Optional


class RomUploadError(Exception):
    """
    Base exception for all romupload errors.

    Attributes:
        message: The primary error message.
        details: Optional additional context, usually the underlying cause.
    """

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(RomUploadError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Unknown recency key strategy names
    - Configuration values of the wrong type
    - Configuration file parsing errors
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or parsed."""

    pass


class ConfigValidationError(ConfigurationError):
    """Exception raised when a configuration value fails validation."""

    pass


# =============================================================================
# Host Environment Errors
# =============================================================================


class HostEnvironmentError(RomUploadError):
    """Exception raised when the host cannot run this tool as requested."""

    pass


class UnsupportedArchitectureError(HostEnvironmentError):
    """
    Exception raised when no uploader download exists for the machine.

    Attributes:
        architecture: The normalized architecture name that was looked up.
    """

    def __init__(
        self,
        architecture: str,
        supported: Optional[list] = None,
    ) -> None:
        details = None
        if supported:
            details = f"supported: {', '.join(sorted(supported))}"
        super().__init__(f"Unsupported architecture: {architecture}", details)
        self.architecture = architecture


class MissingFileError(HostEnvironmentError):
    """
    Exception raised when a file the user asked for does not exist.

    Attributes:
        path: The missing path.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, path)
        self.path = path


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(RomUploadError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url


class NetworkError(DownloadError):
    """
    Exception raised for connection-level download failures.

    This includes:
    - Connection timeouts
    - DNS resolution failures
    - Connection refused errors
    - SSL/TLS errors
    """

    pass


class HTTPError(DownloadError):
    """
    Exception raised when the server answers with an error status.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, url, details)
        self.status_code = status_code


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(RomUploadError):
    """
    Exception raised when a local file cannot be created, written or moved.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(RomUploadError):
    """
    Exception raised for archive-related errors.

    Attributes:
        archive_path: Path to the problematic archive.
    """

    def __init__(
        self,
        message: str,
        archive_path: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class CorruptedArchiveError(ArchiveError):
    """Exception raised when an archive cannot be opened or read."""

    pass


class ExtractionError(ArchiveError):
    """Exception raised when the expected member is missing from an archive."""

    pass


# =============================================================================
# Upload Errors
# =============================================================================


class UploadError(RomUploadError):
    """
    Exception raised when the uploader process fails.

    Attributes:
        returncode: Exit status of the uploader, or None if it never started.
    """

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.returncode = returncode
