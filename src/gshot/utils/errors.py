"""
Error handling framework for gshot.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error responses
- Exit codes for the command line front end
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from contextlib import contextmanager

from .logging import get_logger


logger = get_logger("gshot.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    STORAGE = "storage"
    NOT_FOUND = "not_found"
    SERIALIZATION = "serialization"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class GshotError(Exception):
    """Base exception for all gshot errors."""

    code: str = "GSHOT_ERROR"
    default_message: str = "An error occurred in gshot"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    exit_code: int = 1

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        **metadata
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.context.metadata.update(metadata)
        self.cause = cause
        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "suggestions": self.get_suggestions(),
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "metadata": self.context.metadata
                }
            }
        }


# Storage Errors

class StorageError(GshotError):
    """Filesystem read, write or traversal failure."""
    code = "STORAGE_ERROR"
    default_message = "Storage operation failed"
    category = ErrorCategory.STORAGE
    exit_code = 3

    def __init__(self, operation: str, path: str, cause: Optional[BaseException] = None, **kwargs):
        self.operation = operation
        self.path = str(path)
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"{operation} failed for '{self.path}'{detail}",
            cause=cause,
            operation=operation,
            path=self.path,
            **kwargs
        )

    def get_suggestions(self) -> List[str]:
        return [
            f"Check that '{self.path}' exists and is accessible",
            "Verify file and directory permissions"
        ]


# Not Found Errors

class NotFoundError(GshotError):
    """A requested object does not exist."""
    code = "NOT_FOUND"
    default_message = "Object not found"
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.WARNING
    exit_code = 2


class CommitNotFoundError(NotFoundError):
    """Unknown commit id."""
    code = "COMMIT_NOT_FOUND"

    def __init__(self, commit_id: Any, **kwargs):
        self.commit_id = commit_id
        super().__init__(f"Commit {commit_id} not found", commit_id=str(commit_id), **kwargs)

    def get_suggestions(self) -> List[str]:
        return ["Run 'gshot log' to list the recorded commits"]


class BlobNotFoundError(NotFoundError):
    """A referenced digest has no blob in the store."""
    code = "BLOB_NOT_FOUND"

    def __init__(self, digest: str, **kwargs):
        self.digest = digest
        super().__init__(f"Blob {digest} not found", digest=digest, **kwargs)


class RepositoryNotFoundError(NotFoundError):
    """The working copy has not been initialized."""
    code = "REPOSITORY_NOT_FOUND"

    def __init__(self, path: str, **kwargs):
        self.path = str(path)
        super().__init__(f"No gshot repository at '{self.path}'", path=self.path, **kwargs)

    def get_suggestions(self) -> List[str]:
        return ["Run 'gshot init' in the project root first"]


# Serialization Errors

class SerializationError(GshotError):
    """Corrupt or unparseable history or branch file."""
    code = "SERIALIZATION_ERROR"
    default_message = "Failed to parse stored data"
    category = ErrorCategory.SERIALIZATION
    severity = ErrorSeverity.CRITICAL
    exit_code = 4

    def __init__(self, path: str, reason: str, **kwargs):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read '{self.path}': {reason}", path=self.path, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [
            f"Inspect '{self.path}' by hand; it is never rewritten while unreadable",
        ]


# Validation / Configuration Errors

class ValidationError(GshotError):
    """Input validation errors."""
    code = "VALIDATION_ERROR"
    default_message = "Validation error"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING
    exit_code = 5

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(f"Validation failed for field '{field}': {constraint}", **kwargs)

    def get_suggestions(self) -> List[str]:
        return [f"Ensure '{self.field}' meets the constraint: {self.constraint}"]


class ConfigurationError(GshotError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION
    exit_code = 6

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Check GSHOT_* environment variables"
        ]


@contextmanager
def error_context(component: str, operation: str, **metadata):
    """
    Attach component/operation context to errors raised in the block.

    GshotErrors are annotated and re-raised. A bare OSError is wrapped in a
    StorageError so callers only ever see the gshot hierarchy.
    """
    try:
        yield
    except GshotError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.debug("gshot_error_in_context", component=component, operation=operation, code=e.code)
        raise
    except OSError as e:
        error = StorageError(
            operation,
            e.filename or metadata.get("path", ""),
            cause=e,
        )
        error.context.component = component
        logger.error("storage_error_in_context", component=component, operation=operation, error=str(e))
        raise error from e


__all__ = [
    'GshotError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'StorageError',
    'NotFoundError',
    'CommitNotFoundError',
    'BlobNotFoundError',
    'RepositoryNotFoundError',
    'SerializationError',
    'ValidationError',
    'ConfigurationError',
    'error_context',
]
