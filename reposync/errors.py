"""Error types and structured error reporting for reposync."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCategory(Enum):
    """Categories of errors for structured error handling."""
    CONFIGURATION = "configuration"
    GIT_CLIENT = "git_client"
    GIT_OPERATION = "git_operation"
    AUTHENTICATION = "authentication"
    REF_RESOLUTION = "ref_resolution"
    ARCHIVE_DOWNLOAD = "archive_download"
    FILE_IO = "file_io"
    SYSTEM = "system"


class SyncError(Exception):
    """Base class for errors that abort a repository synchronization."""

    error_code = "SYNC_ERROR"
    category = ErrorCategory.SYSTEM

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(SyncError):
    """Invalid or incomplete configuration (missing temp directory, ssh client, ...)."""
    error_code = "CONFIGURATION_ERROR"
    category = ErrorCategory.CONFIGURATION


class GitNotAvailableError(SyncError):
    """No usable git (or git-lfs) client could be bound to the working directory."""
    error_code = "GIT_NOT_AVAILABLE"
    category = ErrorCategory.GIT_CLIENT


class GitOperationError(SyncError):
    """A git subcommand failed."""
    error_code = "GIT_COMMAND_FAILED"
    category = ErrorCategory.GIT_OPERATION

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = "",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.exit_code = exit_code
        self.stderr = stderr


class AuthPlaceholderError(SyncError):
    """The auth placeholder could not be located exactly once in the git config."""
    error_code = "AUTH_PLACEHOLDER_MISMATCH"
    category = ErrorCategory.AUTHENTICATION


class RefResolutionError(SyncError):
    """The requested ref/commit could not be mapped to a fetch or checkout target."""
    error_code = "REF_RESOLUTION_FAILED"
    category = ErrorCategory.REF_RESOLUTION


class ArchiveDownloadError(SyncError):
    """The repository archive could not be downloaded or extracted."""
    error_code = "ARCHIVE_DOWNLOAD_FAILED"
    category = ErrorCategory.ARCHIVE_DOWNLOAD


class ArchiveServerError(ArchiveDownloadError):
    """The archive API answered with a server error or a rate limit; another attempt may succeed."""


@dataclass
class ErrorResponse:
    """Standardized error response format for sync operations."""
    error: str
    error_code: str
    message: str
    timestamp: str
    category: str
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert error response to dictionary format."""
        result = {
            "error": self.error,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp,
            "category": self.category
        }
        if self.context:
            result["context"] = self.context
        return result


class ErrorHandler:
    """Turns exceptions raised by sync operations into structured responses."""

    def __init__(self):
        self.logger = logging.getLogger('reposync.error_handler')

    def to_response(self, error: Exception, operation: str, context: Dict[str, Any] = None) -> ErrorResponse:
        """Build an ErrorResponse for an exception raised by `operation`."""
        context = dict(context or {})

        if isinstance(error, SyncError):
            error_code = error.error_code
            category = error.category.value
            message = error.message
            context.update(error.context)
        elif isinstance(error, ValueError):
            error_code = "VALIDATION_ERROR"
            category = ErrorCategory.CONFIGURATION.value
            message = f"Invalid input: {error}"
        elif isinstance(error, PermissionError):
            error_code = "FILE_PERMISSION_DENIED"
            category = ErrorCategory.FILE_IO.value
            message = f"Permission denied: {error}"
        elif isinstance(error, OSError):
            error_code = "FILE_IO_ERROR"
            category = ErrorCategory.FILE_IO.value
            message = f"File system error: {error}"
        else:
            error_code = "UNEXPECTED_ERROR"
            category = ErrorCategory.SYSTEM.value
            message = f"{operation} failed: {error}"

        response = ErrorResponse(
            error=f"{operation} failed",
            error_code=error_code,
            message=message,
            timestamp=datetime.now().isoformat(),
            category=category,
            context=context or None
        )

        self.logger.error(
            f"{operation} error: {message}",
            extra={
                'operation': operation,
                'error_code': error_code
            }
        )

        return response

    def create_success_response(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a standardized success response."""
        return {
            "success": True,
            "operation": operation,
            "timestamp": datetime.now().isoformat(),
            "data": data
        }


# Initialize global error handler
error_handler = ErrorHandler()
