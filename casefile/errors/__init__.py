"""Error handling for index builds."""

from .handlers import (
    ErrorHandler,
    ErrorContext,
    ErrorSeverity,
    ErrorCategory,
    CasefileError,
    SourceDataError,
    RecordValidationError,
    ConfigurationError,
)

__all__ = [
    "ErrorHandler",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "CasefileError",
    "SourceDataError",
    "RecordValidationError",
    "ConfigurationError",
]
