"""Error types and a central handler that keeps context for debugging."""

import traceback
from typing import Any, Dict, Optional, List
from datetime import datetime, timezone
from contextlib import contextmanager
import threading
from dataclasses import dataclass, field
from enum import Enum
import logging


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    SOURCE_DATA = "source_data"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    BUILD = "build"
    UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ErrorContext:
    """Where an error happened."""
    operation: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    build_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "operation": self.operation,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
            "build_id": self.build_id,
        }


class CasefileError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.cause = cause
        self.severity = severity
        self.category = category
        self.timestamp = _utcnow()

        # Only meaningful when raised while handling another exception
        self.stack_trace = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            # "message" clashes with LogRecord attributes
            "error_message": self.message,
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
            "severity": self.severity.value,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "stack_trace": self.stack_trace,
        }


class SourceDataError(CasefileError):
    """A source file is missing, unreadable or not a list of records.

    This is the only fatal condition of a build.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.SOURCE_DATA,
        )
        self.path = path


class RecordValidationError(CasefileError):
    """A typed source record failed validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.VALIDATION,
        )
        self.field = field
        self.value = value


class ConfigurationError(CasefileError):
    """Invalid engine configuration."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
        )
        self.key = key


class ErrorHandler:
    """Centralized error handler with context preservation."""

    def __init__(self, audit_logger=None, max_history_size: int = 1000):
        """Initialize error handler.

        Args:
            audit_logger: Optional BuildAuditLogger that also records errors
            max_history_size: Number of handled errors kept for statistics
        """
        self.audit_logger = audit_logger
        self._context_stack = threading.local()
        self.logger = logging.getLogger(__name__)

        self._error_counts: Dict[str, int] = {}
        self._error_history: List[CasefileError] = []
        self._max_history_size = max_history_size

    @contextmanager
    def error_context(self, **kwargs):
        """Context manager for error context.

        Usage:
            with error_handler.error_context(operation="load_source", resource_id="contacts.json"):
                ...
        """
        if not hasattr(self._context_stack, "contexts"):
            self._context_stack.contexts = []

        context = ErrorContext(**kwargs)
        self._context_stack.contexts.append(context)

        try:
            yield context
        finally:
            if self._context_stack.contexts:
                self._context_stack.contexts.pop()

    def get_current_context(self) -> Optional[ErrorContext]:
        """Get current error context."""
        if hasattr(self._context_stack, "contexts") and self._context_stack.contexts:
            return self._context_stack.contexts[-1]
        return None

    def handle_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        reraise: bool = True,
    ) -> Optional[CasefileError]:
        """Handle an error with context preservation.

        Args:
            error: The error to handle
            operation: Operation being performed
            reraise: Whether to re-raise the (possibly wrapped) error

        Returns:
            The wrapped error when not re-raised
        """
        context = self.get_current_context()
        if operation and context:
            context.operation = operation

        if isinstance(error, CasefileError):
            wrapped_error = error
            if not wrapped_error.context and context:
                wrapped_error.context = context
        else:
            wrapped_error = self._wrap_error(error, context)

        self._log_error(wrapped_error)
        self._update_error_stats(wrapped_error)

        if reraise:
            if wrapped_error is error:
                raise wrapped_error
            raise wrapped_error from error

        return wrapped_error

    def _wrap_error(self, error: Exception, context: Optional[ErrorContext]) -> CasefileError:
        """Wrap a foreign exception in the matching error type."""
        error_str = str(error)

        if isinstance(error, (FileNotFoundError, PermissionError, IsADirectoryError)):
            return SourceDataError(
                error_str,
                path=getattr(error, "filename", None),
                context=context,
                cause=error,
            )
        elif isinstance(error, ValueError) and "invalid" in error_str.lower():
            return RecordValidationError(error_str, context=context)
        else:
            return CasefileError(error_str, context=context, cause=error)

    def _log_error(self, error: CasefileError) -> None:
        """Log error with appropriate severity."""
        error_dict = error.to_dict()

        if self.audit_logger is not None:
            self.audit_logger.log_error(
                error_type=error.__class__.__name__,
                error_message=error.message,
                context=error_dict,
            )

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(f"Critical error: {error.message}", extra=error_dict)
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error(f"Error: {error.message}", extra=error_dict)
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(f"Warning: {error.message}", extra=error_dict)
        else:
            self.logger.info(f"Info: {error.message}", extra=error_dict)

    def _update_error_stats(self, error: CasefileError) -> None:
        error_type = error.__class__.__name__
        self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

        self._error_history.append(error)
        if len(self._error_history) > self._max_history_size:
            self._error_history = self._error_history[-self._max_history_size:]

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics."""
        severity_dist = {severity.value: 0 for severity in ErrorSeverity}
        for error in self._error_history:
            severity_dist[error.severity.value] += 1

        return {
            "total_errors": sum(self._error_counts.values()),
            "error_counts": self._error_counts.copy(),
            "severity_distribution": severity_dist,
        }

    def create_user_friendly_message(self, error: CasefileError) -> str:
        """Create a one-line message for the command line."""
        if isinstance(error, SourceDataError):
            if error.path:
                return f"Cannot read source data from '{error.path}': {error.message}"
            return f"Source data error: {error.message}"
        elif isinstance(error, RecordValidationError):
            if error.field:
                return f"Invalid record field '{error.field}': {error.message}"
            return f"Invalid record: {error.message}"
        elif isinstance(error, ConfigurationError):
            if error.key:
                return f"Invalid configuration for '{error.key}': {error.message}"
            return f"Configuration error: {error.message}"

        return f"An error occurred: {error.message}"
