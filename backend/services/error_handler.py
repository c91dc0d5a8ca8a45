"""
Unified Error Handler Service
Provides the error taxonomy of the evacuation service and consistent handling
with structured logging, daily error files and error statistics.
"""

import json
import traceback
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

MAX_ERROR_HISTORY = 1000


class ErrorSeverity(Enum):
    """Error severity levels for classification and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for better organization and handling."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PROCESSING = "processing"
    AUTHORIZATION = "authorization"
    AUDIT = "audit"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


# ===== Exception taxonomy =====

class EvacuationServiceError(Exception):
    """Base class for errors raised by the occupancy and evacuation services."""
    error_code = "UNKNOWN_ERROR"


class ValidationError(EvacuationServiceError):
    """Malformed request; rejected before any ledger access."""
    error_code = "INVALID_REQUEST"


class NotFoundError(EvacuationServiceError):
    """A required table or column is missing."""
    error_code = "LEDGER_NOT_FOUND"


class DuplicateIdentityError(ValidationError):
    """The identity is already registered in the personnel directory."""
    error_code = "DUPLICATE_IDENTITY"


class RecordNotFoundError(NotFoundError):
    """No personnel record matches the identity."""
    error_code = "RECORD_NOT_FOUND"


class AuthorizationError(EvacuationServiceError):
    """The caller is not listed as an administrator."""
    error_code = "ADMIN_REQUIRED"


class ProcessingError(EvacuationServiceError):
    """Failure while scanning or writing the ledger."""
    error_code = "PROCESSING_FAILED"


class ConcurrentModificationError(ProcessingError):
    """The ledger row changed between the scan and the write."""
    error_code = "CONCURRENT_MODIFICATION"


class AuditError(EvacuationServiceError):
    """Audit or log write failure. Never propagated to evacuation callers."""
    error_code = "AUDIT_WRITE_FAILED"


@dataclass
class ErrorContext:
    """Context information for error handling."""

    error_id: str
    timestamp: str
    service_name: str
    operation_name: str
    session_id: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


@dataclass
class StandardError:
    """Standardized error structure for consistent handling."""

    error_id: str
    error_code: str
    message: str
    user_message: str
    severity: ErrorSeverity
    category: ErrorCategory
    context: ErrorContext
    technical_details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "error_id": self.error_id,
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "category": self.category.value,
            "timestamp": self.context.timestamp,
            "session_id": self.context.session_id,
        }


ERROR_CODES: Dict[str, Dict[str, Any]] = {
    "INVALID_REQUEST": {
        "category": ErrorCategory.VALIDATION,
        "severity": ErrorSeverity.MEDIUM,
        "user_message": "The evacuation request is invalid. Select at least one person.",
    },
    "LEDGER_NOT_FOUND": {
        "category": ErrorCategory.NOT_FOUND,
        "severity": ErrorSeverity.HIGH,
        "user_message": "The access ledger is not available. Check the system configuration.",
    },
    "DUPLICATE_IDENTITY": {
        "category": ErrorCategory.VALIDATION,
        "severity": ErrorSeverity.LOW,
        "user_message": "That identity is already registered.",
    },
    "RECORD_NOT_FOUND": {
        "category": ErrorCategory.NOT_FOUND,
        "severity": ErrorSeverity.LOW,
        "user_message": "No personnel record was found for that identity.",
    },
    "ADMIN_REQUIRED": {
        "category": ErrorCategory.AUTHORIZATION,
        "severity": ErrorSeverity.MEDIUM,
        "user_message": "This identity is not authorized for administrative access.",
    },
    "PROCESSING_FAILED": {
        "category": ErrorCategory.PROCESSING,
        "severity": ErrorSeverity.HIGH,
        "user_message": "The evacuation could not be completed. No result was returned for this batch.",
    },
    "CONCURRENT_MODIFICATION": {
        "category": ErrorCategory.PROCESSING,
        "severity": ErrorSeverity.HIGH,
        "user_message": "The ledger was modified by another operation. Refresh and try again.",
    },
    "AUDIT_WRITE_FAILED": {
        "category": ErrorCategory.AUDIT,
        "severity": ErrorSeverity.MEDIUM,
        "user_message": "The audit record could not be written.",
    },
    "NOTIFICATION_FAILED": {
        "category": ErrorCategory.NOTIFICATION,
        "severity": ErrorSeverity.LOW,
        "user_message": "The evacuation notification could not be sent.",
    },
    "UNKNOWN_ERROR": {
        "category": ErrorCategory.UNKNOWN,
        "severity": ErrorSeverity.HIGH,
        "user_message": "An unexpected error occurred. Please try again or contact support.",
    },
}


class ErrorHandler:
    """
    Unified error handler for consistent error management across services.
    Provides logging, user feedback, and error tracking capabilities.
    """

    def __init__(self, service_name: str, log_dir: Optional[str] = None,
                 max_history: int = MAX_ERROR_HISTORY):
        """
        Initialize error handler for a specific service.

        Args:
            service_name: Name of the service using this error handler
            log_dir: Directory for error logs; high severity errors are only
                logged through structlog when omitted
            max_history: Number of recent errors kept in memory; older ones
                still count in error_counts
        """
        self.service_name = service_name
        self.log_dir = Path(log_dir) if log_dir else None

        self.error_history = deque(maxlen=max_history)
        self.error_counts = {}

    def handle_error(
        self,
        error: Union[Exception, str],
        operation_name: str = "unknown_operation",
        error_code: Optional[str] = None,
        session_id: Optional[str] = None,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> StandardError:
        """
        Handle an error with consistent logging and user feedback.

        Args:
            error: Exception or error message
            operation_name: Name of the operation that failed
            error_code: Explicit error code; inferred from the exception otherwise
            session_id: Evacuation session the error belongs to
            additional_data: Additional context data

        Returns:
            StandardError object with all error details
        """
        error_id = str(uuid.uuid4())
        context = ErrorContext(
            error_id=error_id,
            timestamp=datetime.now().isoformat(),
            service_name=self.service_name,
            operation_name=operation_name,
            session_id=session_id,
            additional_data=additional_data,
        )

        technical_details = None
        if isinstance(error, Exception):
            error_code = error_code or self._infer_error_code(error)
            if error.__traceback__ is not None:
                technical_details = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )
        else:
            error_code = error_code or "UNKNOWN_ERROR"

        config = ERROR_CODES.get(error_code, ERROR_CODES["UNKNOWN_ERROR"])
        standard_error = StandardError(
            error_id=error_id,
            error_code=error_code,
            message=str(error),
            user_message=config["user_message"],
            severity=config["severity"],
            category=config["category"],
            context=context,
            technical_details=technical_details,
        )

        self._log_error(standard_error)
        self._track_error(standard_error)
        self.error_history.append(standard_error)
        return standard_error

    def _infer_error_code(self, error: Exception) -> str:
        """Infer error code from exception type."""
        if isinstance(error, EvacuationServiceError):
            return error.error_code
        if isinstance(error, (KeyError, IndexError, OSError, TypeError, ValueError)):
            return "PROCESSING_FAILED"
        return "UNKNOWN_ERROR"

    def _log_error(self, error: StandardError):
        """Log error with appropriate level based on severity."""
        log_data = {
            "error_id": error.error_id,
            "error_code": error.error_code,
            "message": error.message,
            "severity": error.severity.value,
            "category": error.category.value,
            "service": self.service_name,
            "operation": error.context.operation_name,
            "session_id": error.context.session_id,
        }

        if error.severity == ErrorSeverity.CRITICAL:
            logger.critical("Critical error occurred", **log_data, technical_details=error.technical_details)
        elif error.severity == ErrorSeverity.HIGH:
            logger.error("High severity error occurred", **log_data, technical_details=error.technical_details)
        elif error.severity == ErrorSeverity.MEDIUM:
            logger.warning("Medium severity error occurred", **log_data)
        else:
            logger.info("Low severity error occurred", **log_data)

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            self._write_error_log(error)

    def _write_error_log(self, error: StandardError):
        """Append a detailed error entry to the daily error file."""
        if self.log_dir is None:
            return
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_file = self.log_dir / f"errors_{datetime.now().strftime('%Y%m%d')}.json"

            entry = {
                "timestamp": error.context.timestamp,
                "error_id": error.error_id,
                "service": self.service_name,
                "error_code": error.error_code,
                "message": error.message,
                "severity": error.severity.value,
                "category": error.category.value,
                "operation": error.context.operation_name,
                "session_id": error.context.session_id,
                "technical_details": error.technical_details,
                "additional_data": error.context.additional_data,
            }

            with open(log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry, default=str) + '\n')

        except Exception as e:
            logger.warning(f"Failed to write error log: {e}")

    def _track_error(self, error: StandardError):
        """Track error statistics for monitoring."""
        error_key = f"{error.category.value}:{error.error_code}"

        if error_key not in self.error_counts:
            self.error_counts[error_key] = {
                "count": 0,
                "first_occurrence": error.context.timestamp,
                "last_occurrence": error.context.timestamp,
                "severity": error.severity.value,
            }

        self.error_counts[error_key]["count"] += 1
        self.error_counts[error_key]["last_occurrence"] = error.context.timestamp

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics for monitoring and analysis."""
        total_errors = len(self.error_history)

        if total_errors == 0:
            return {"message": "No errors recorded"}

        severity_counts = {}
        category_counts = {}
        for error in self.error_history:
            severity_counts[error.severity.value] = severity_counts.get(error.severity.value, 0) + 1
            category_counts[error.category.value] = category_counts.get(error.category.value, 0) + 1

        return {
            "summary": {
                "total_errors": total_errors,
                "service": self.service_name,
            },
            "by_severity": severity_counts,
            "by_category": category_counts,
            "error_counts": self.error_counts,
            "recent_errors": [
                {
                    "error_id": error.error_id,
                    "error_code": error.error_code,
                    "severity": error.severity.value,
                    "timestamp": error.context.timestamp,
                    "operation": error.context.operation_name,
                }
                for error in list(self.error_history)[-10:]
            ],
        }


_error_handlers: Dict[str, ErrorHandler] = {}


def get_error_handler(service_name: str, log_dir: Optional[str] = None) -> ErrorHandler:
    """Get or create error handler for a service."""
    if service_name not in _error_handlers:
        _error_handlers[service_name] = ErrorHandler(service_name, log_dir=log_dir)
    return _error_handlers[service_name]
