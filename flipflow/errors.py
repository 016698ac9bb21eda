"""
Error taxonomy and classification.

Every failure that reaches the user is mapped to an ``ErrorType`` with a
canned message, a severity and a retry hint. Platform, storage and payment
clients raise the typed exceptions below; anything else is classified by
inspecting its message, the same way the browser client used to.
"""

import logging
import secrets
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from flipflow.utils.messages import (
    ERROR_AUTH, ERROR_CLIENT, ERROR_NETWORK, ERROR_NOT_FOUND_GENERIC,
    ERROR_PERMISSION_DENIED, ERROR_SERVER, ERROR_TIMEOUT, ERROR_UNKNOWN,
    ERROR_VALIDATION, ERROR_SESSION_EXPIRED,
)

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    NETWORK = 'network'
    AUTH = 'auth'
    PERMISSION = 'permission'
    VALIDATION = 'validation'
    TIMEOUT = 'timeout'
    NOT_FOUND = 'not_found'
    SERVER = 'server'
    CLIENT = 'client'
    UNKNOWN = 'unknown'


class FlipFlowError(Exception):
    """Base class for errors raised by FlipFlow services."""

    error_type = ErrorType.UNKNOWN
    status_code = 500

    def __init__(self, message: str = '', *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(FlipFlowError):
    error_type = ErrorType.NETWORK
    status_code = 503


class RequestTimeoutError(FlipFlowError):
    error_type = ErrorType.TIMEOUT
    status_code = 504


class AuthError(FlipFlowError):
    error_type = ErrorType.AUTH
    status_code = 401


class SessionExpiredError(AuthError):
    pass


class PermissionDeniedError(FlipFlowError):
    error_type = ErrorType.PERMISSION
    status_code = 403

    def __init__(self, message: str = '', *, result=None, details=None):
        super().__init__(message, details=details)
        self.result = result


class ValidationError(FlipFlowError):
    error_type = ErrorType.VALIDATION
    status_code = 400


class NotFoundError(FlipFlowError):
    error_type = ErrorType.NOT_FOUND
    status_code = 404


class ServerError(FlipFlowError):
    error_type = ErrorType.SERVER
    status_code = 502


class PlanLimitError(FlipFlowError):
    """Raised when the user's plan does not allow an action."""

    error_type = ErrorType.PERMISSION
    status_code = 402

    def __init__(self, message: str = '', *, validation=None, details=None):
        super().__init__(message, details=details)
        self.validation = validation


class PDFLoadError(FlipFlowError):
    error_type = ErrorType.VALIDATION
    status_code = 422

    def __init__(self, message: str = 'Failed to load PDF document', **kwargs):
        super().__init__(message, **kwargs)


class PaymentError(FlipFlowError):
    error_type = ErrorType.SERVER
    status_code = 502


class ConfigurationError(FlipFlowError):
    """Raised at startup when required configuration is missing."""


# Errors that will not succeed on a second attempt
NON_RETRYABLE = (AuthError, PermissionDeniedError, ValidationError, NotFoundError,
                 PlanLimitError, ConfigurationError)


@dataclass
class ErrorClassification:
    type: ErrorType
    severity: str
    user_message: Any
    technical_message: str
    should_retry: bool
    retry_delay: float


@dataclass
class ErrorReport:
    id: str
    message: str
    type: ErrorType
    severity: str
    context: Dict[str, Any] = field(default_factory=dict)
    stack: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


_TYPED = {
    ErrorType.NETWORK: ('medium', ERROR_NETWORK, True, 2.0),
    ErrorType.TIMEOUT: ('medium', ERROR_TIMEOUT, True, 3.0),
    ErrorType.AUTH: ('high', ERROR_AUTH, False, 0.0),
    ErrorType.PERMISSION: ('medium', ERROR_PERMISSION_DENIED, False, 0.0),
    ErrorType.VALIDATION: ('low', ERROR_VALIDATION, False, 0.0),
    ErrorType.NOT_FOUND: ('low', ERROR_NOT_FOUND_GENERIC, False, 0.0),
    ErrorType.SERVER: ('high', ERROR_SERVER, True, 5.0),
    ErrorType.CLIENT: ('critical', ERROR_CLIENT, False, 0.0),
    ErrorType.UNKNOWN: ('medium', ERROR_UNKNOWN, True, 2.0),
}

# Ordered keyword rules for untyped exceptions
_KEYWORDS = (
    (ErrorType.TIMEOUT, ('timeout', 'timed out', 'aborted')),
    (ErrorType.NETWORK, ('network', 'fetch', 'connection')),
    (ErrorType.AUTH, ('auth', 'unauthorized', 'token', 'jwt')),
    (ErrorType.PERMISSION, ('permission', 'forbidden', 'access denied', 'row-level security')),
    (ErrorType.NOT_FOUND, ('not found',)),
    (ErrorType.VALIDATION, ('validation', 'invalid', 'required')),
    (ErrorType.SERVER, ('server', 'database', 'supabase', '500')),
)


def classify_error(error: BaseException) -> ErrorClassification:
    """Map any exception to an error type, severity and user-facing message."""
    technical = str(error) or error.__class__.__name__

    if isinstance(error, FlipFlowError):
        error_type = error.error_type
    else:
        error_type = ErrorType.UNKNOWN
        lowered = technical.lower()
        for candidate, keywords in _KEYWORDS:
            if any(k in lowered for k in keywords):
                error_type = candidate
                break
        else:
            if isinstance(error, (TypeError, AttributeError, NameError, KeyError)):
                error_type = ErrorType.CLIENT

    severity, message, should_retry, delay = _TYPED[error_type]
    if isinstance(error, SessionExpiredError):
        message = ERROR_SESSION_EXPIRED
    return ErrorClassification(
        type=error_type,
        severity=severity,
        user_message=message,
        technical_message=technical,
        should_retry=should_retry,
        retry_delay=delay,
    )


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, NON_RETRYABLE):
        return False
    return classify_error(error).should_retry


def generate_error_id() -> str:
    return f"err_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def handle_error(error: BaseException, context: Optional[Dict[str, Any]] = None,
                 log: bool = True) -> ErrorReport:
    """Classify, log and return a report for an error."""
    classification = classify_error(error)
    report = ErrorReport(
        id=generate_error_id(),
        message=classification.technical_message,
        type=classification.type,
        severity=classification.severity,
        context=dict(context or {}),
        stack=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
    )

    if log:
        extra = {'error_id': report.id, 'error_type': report.type.value,
                 'severity': report.severity, 'context': report.context}
        if report.severity in ('high', 'critical'):
            logger.error(f"ErrorHandler: [{report.id}] {report.message}", extra=extra)
        else:
            logger.warning(f"ErrorHandler: [{report.id}] {report.message}", extra=extra)

    return report


class ErrorHandler:
    """Entry points used by views and services."""

    classify_error = staticmethod(classify_error)
    handle_error = staticmethod(handle_error)
    is_retryable_error = staticmethod(is_retryable_error)
    generate_error_id = staticmethod(generate_error_id)
