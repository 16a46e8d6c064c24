"""
Error handling module for batch orchestration.

This module provides the error system shared by every stage of a batch:
- Custom exception hierarchy
- Error classification
- Structured error details stored on target and file results
- Human-readable message extraction from remote error payloads
"""
from typing import Optional, Dict, Any, List
from enum import Enum
from datetime import datetime, timezone
from pydantic import BaseModel, Field

DEFAULT_ERROR_MESSAGE = "An error occurred. Please try again."
REAUTH_MESSAGE = "Please reconnect your advertising account to continue"
AUTH_FAILED_MESSAGE = "Authentication failed. Please log in again."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please refresh the page."

class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

class ErrorCategory(str, Enum):
    """Categories of errors that can occur."""
    PRECONDITION = "precondition"
    REMOTE_API = "remote_api"
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    UPLOAD = "upload"
    CHANNEL = "channel"
    STATE = "state"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"

class ErrorDetail(BaseModel):
    """Structured error recorded against a failed target or file."""
    message: str
    category: ErrorCategory = ErrorCategory.UNEXPECTED
    operation: Optional[str] = None
    status_code: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

class BaseError(Exception):
    """Base error class with common attributes."""
    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.details = details or {}
        self.category = category
        self.severity = severity
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format."""
        return {
            "status": "error",
            "message": self.message,
            "operation": self.operation,
            "details": self.details,
            "category": self.category,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat()
        }

    def to_detail(self) -> ErrorDetail:
        """Convert error to the structured detail stored on results."""
        return ErrorDetail(
            message=self.message,
            category=self.category,
            operation=self.operation,
            payload=self.details
        )

class PreconditionError(BaseError):
    """Raised when a batch must not start for the current selection."""
    def __init__(
        self,
        message: str,
        hard_errors: Optional[List[str]] = None,
        soft_warnings: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            operation="validate",
            details={
                "hard_errors": hard_errors or [],
                "soft_warnings": soft_warnings or []
            },
            category=ErrorCategory.PRECONDITION,
            severity=ErrorSeverity.ERROR
        )
        self.hard_errors = hard_errors or []
        self.soft_warnings = soft_warnings or []

class RemoteAPIError(BaseError):
    """A call to the remote API gateway failed."""
    def __init__(
        self,
        message: str,
        operation: str,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None
    ):
        if status_code in (401, 403):
            category = ErrorCategory.AUTHENTICATION
        elif status_code is None:
            category = ErrorCategory.NETWORK
        else:
            category = ErrorCategory.REMOTE_API
        super().__init__(
            message=message,
            operation=operation,
            details=payload,
            category=category,
            severity=ErrorSeverity.ERROR
        )
        self.status_code = status_code
        self.payload = payload or {}

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(
            message=self.message,
            category=self.category,
            operation=self.operation,
            status_code=self.status_code,
            payload=self.payload
        )

class PerTargetRemoteError(BaseError):
    """The remote call for one target reported a failure."""
    def __init__(
        self,
        message: str,
        target_id: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            operation=operation,
            details={**(details or {}), "target_id": target_id},
            category=ErrorCategory.REMOTE_API,
            severity=ErrorSeverity.ERROR
        )
        self.target_id = target_id

class PerFileUploadError(BaseError):
    """One file within an upload batch failed."""
    def __init__(
        self,
        message: str,
        file_name: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            operation="upload",
            details={**(details or {}), "file": file_name},
            category=ErrorCategory.UPLOAD,
            severity=ErrorSeverity.WARNING
        )
        self.file_name = file_name

class ChannelError(BaseError):
    """The progress event channel dropped or never connected."""
    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            operation="progress_channel",
            details={**(details or {}), "session_id": session_id},
            category=ErrorCategory.CHANNEL,
            severity=ErrorSeverity.WARNING
        )
        self.session_id = session_id

class InvalidTransitionError(BaseError):
    """Raised when a result status would move backwards."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            operation="transition",
            details=details,
            category=ErrorCategory.STATE,
            severity=ErrorSeverity.CRITICAL
        )

def _text(value: Any) -> Optional[str]:
    """Return a usable message from a string or a nested error object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        nested = value.get("error_user_msg") or value.get("message")
        if nested:
            return str(nested)
    return str(value)

def extract_error_message(
    payload: Any,
    status_code: Optional[int] = None,
    fallback: str = DEFAULT_ERROR_MESSAGE
) -> str:
    """
    Select the most actionable message from a remote error payload.

    The remote API nests its human-readable text inconsistently, so the
    first present of these wins: ``error_user_msg``, re-authentication
    needed (403 with ``needsAuth``), authentication failed (403), session
    expired (401), ``error``, ``details``, then the fallback.

    Args:
        payload: Parsed error body (dict), plain text, or None
        status_code: HTTP status of the response, if any
        fallback: Message used when nothing better is present

    Returns:
        str: Message to show the user
    """
    if isinstance(payload, str):
        payload = {"error": payload}
    data = payload if isinstance(payload, dict) else {}

    user_msg = data.get("error_user_msg")
    if not user_msg and isinstance(data.get("error"), dict):
        user_msg = data["error"].get("error_user_msg")
    if user_msg:
        return str(user_msg)

    if status_code == 403 and data.get("needsAuth"):
        return REAUTH_MESSAGE
    if status_code == 403:
        return AUTH_FAILED_MESSAGE
    if status_code == 401:
        return SESSION_EXPIRED_MESSAGE

    error = _text(data.get("error"))
    if error:
        return error

    details = _text(data.get("details"))
    if details:
        return details

    return fallback

def describe_exception(exc: BaseException, operation: Optional[str] = None) -> ErrorDetail:
    """
    Turn any exception raised by an operation into a structured detail.

    Args:
        exc: The exception raised
        operation: Name of the operation that raised it

    Returns:
        ErrorDetail: Structured error with an extracted message
    """
    if isinstance(exc, RemoteAPIError):
        detail = exc.to_detail()
        detail.message = extract_error_message(exc.payload, exc.status_code, fallback=exc.message)
    elif isinstance(exc, BaseError):
        detail = exc.to_detail()
    else:
        detail = ErrorDetail(
            message=str(exc) or exc.__class__.__name__,
            category=ErrorCategory.UNEXPECTED,
            payload={"type": exc.__class__.__name__}
        )
    if operation and not detail.operation:
        detail.operation = operation
    return detail
