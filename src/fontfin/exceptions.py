"""
Custom exceptions for the fontfin application.

Every failure in the resolve, download, verify, stage and install pipeline is
raised as one of these types so callers can tell per-item failures apart from
run-wide preconditions.
"""


class FontfinError(Exception):
    """
    Base exception for all fontfin errors.

    All custom exceptions in fontfin inherit from this class so that callers
    can catch every application-specific error in one place.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
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


class ConfigurationError(FontfinError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Invalid configuration values
    - Configuration file parsing errors
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or written."""

    pass


class ConfigValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(FontfinError):
    """
    Exception raised when a descriptor field fails validation.

    This includes:
    - Unsafe or empty item names
    - Target files without an extension
    - Unresolved placeholders such as `$tag`
    - Unsupported archive kinds

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the validation exception.

        Args:
            message: The primary error message.
            field: The name of the field that failed validation.
            value: The value that failed validation.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.field = field
        self.value = value


class DescriptorError(ValidationError):
    """Exception raised when a descriptor file cannot be read or has the wrong shape."""

    pass


# =============================================================================
# Resolution Errors
# =============================================================================


class ResolutionError(FontfinError):
    """
    Exception raised when a declared source cannot be turned into a direct URL.

    Attributes:
        item: The installer being resolved.
        target: The file that was being looked for.
    """

    def __init__(
        self,
        message: str,
        item: str | None = None,
        target: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.item = item
        self.target = target


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(FontfinError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        retry_count: Number of retry attempts made before failure.
        is_retryable: Whether the error could be retried.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        """
        Initialize the download exception.

        Args:
            message: The primary error message.
            url: The URL that was being downloaded.
            retry_count: Number of retry attempts made.
            is_retryable: Whether this error could be retried.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.url = url
        self.retry_count = retry_count
        self.is_retryable = is_retryable


class NetworkError(DownloadError):
    """
    Exception raised for network-related download failures.

    This includes:
    - Connection timeouts
    - DNS resolution failures
    - Connection refused errors
    - SSL/TLS errors
    """

    pass


class HTTPError(DownloadError):
    """
    Exception raised for HTTP-related download failures.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, retry_count, is_retryable, details)
        self.status_code = status_code


# =============================================================================
# Integrity Errors
# =============================================================================


class IntegrityError(FontfinError):
    """
    Exception raised when downloaded data does not match its published checksum.

    Attributes:
        filename: Name of the file whose digest did not match.
        algorithm: The hash algorithm that was used.
    """

    def __init__(
        self,
        message: str,
        filename: str | None = None,
        algorithm: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.filename = filename
        self.algorithm = algorithm


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(FontfinError):
    """
    Exception raised for file system-related errors.

    This includes:
    - Permission denied errors
    - Disk full errors
    - Paths escaping the install root
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the file system exception.

        Args:
            message: The primary error message.
            path: The file path that caused the error.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.path = path


class InstallError(FileSystemError):
    """
    Exception raised when one or more staged files could not be moved into place.

    Attributes:
        failures: Mapping of file name to the error message seen while moving it.
    """

    def __init__(
        self,
        message: str,
        failures: dict[str, str] | None = None,
        path: str | None = None,
    ) -> None:
        self.failures = dict(failures or {})
        details = ", ".join(f"{name}: {err}" for name, err in self.failures.items())
        super().__init__(message, path, details or None)


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(FontfinError):
    """
    Exception raised for archive-related errors.

    This includes:
    - Corrupted ZIP or tar files
    - Extraction failures
    """

    def __init__(
        self,
        message: str,
        archive_path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class ExtractionError(ArchiveError):
    """Exception raised when writing an extracted entry fails."""

    pass


# =============================================================================
# Run-wide Errors
# =============================================================================


class ConcurrencyPreconditionError(FontfinError):
    """Exception raised when a run cannot start because shared state is busy."""

    pass


class LockHeldError(ConcurrencyPreconditionError):
    """
    Exception raised when another mutating action holds the install state lock.

    Attributes:
        state: The action recorded in the lock file.
    """

    def __init__(self, state: str, details: str | None = None) -> None:
        super().__init__("Install state is locked; refusing to continue", details)
        self.state = state


class OperationCancelledError(FontfinError):
    """Exception raised inside a worker once cancellation has been requested."""

    pass
