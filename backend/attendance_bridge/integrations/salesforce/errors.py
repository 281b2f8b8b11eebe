"""
Error taxonomy and logging helpers for the Salesforce integration.
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple


sf_logger = logging.getLogger('salesforce_integration')


class ErrorSeverity:
    """Error severity levels for Salesforce operations."""
    LOW = "low"           # Degraded but handled, caller unaffected
    MEDIUM = "medium"     # Request failed, service healthy
    HIGH = "high"         # Integration unusable until fixed
    CRITICAL = "critical"


class ErrorCategory:
    """Error categories for better classification."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NETWORK = "network"
    SCHEMA = "schema"
    QUERY = "query"
    BATCH = "batch"
    SESSION = "session"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class SalesforceError(Exception):
    """Base exception for Salesforce integration errors with diagnostic metadata."""

    status_code = 500

    def __init__(
        self,
        message: str,
        category: str = ErrorCategory.UNKNOWN,
        severity: str = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_code = error_code
        self.details = details or {}
        self.retryable = retryable
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            'message': self.message,
            'category': self.category,
            'severity': self.severity,
            'error_code': self.error_code,
            'details': self.details,
            'retryable': self.retryable,
            'timestamp': self.timestamp.isoformat(),
            'traceback': (
                ''.join(traceback.format_exception(self.original_exception))
                if self.original_exception else None
            )
        }

    def to_response(self) -> Dict[str, Any]:
        """Body returned to HTTP clients."""
        return {
            'success': False,
            'error': type(self).__name__,
            'message': self.message,
            'errorCode': self.error_code,
            'details': self.details or None,
        }


class ValidationError(SalesforceError):
    """Missing or malformed request input. Raised before any remote call."""

    status_code = 400

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            retryable=False,
            **kwargs
        )


class AuthenticationError(SalesforceError):
    """Credential acquisition against the login endpoint failed."""

    status_code = 502

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            **kwargs
        )


class NetworkError(SalesforceError):
    """Transport failure or timeout talking to Salesforce."""

    status_code = 502

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            retryable=True,
            **kwargs
        )


class SchemaResolutionError(SalesforceError):
    """Describe call failed. Never surfaced; the resolver falls back."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.SCHEMA,
            severity=ErrorSeverity.LOW,
            retryable=True,
            **kwargs
        )


class RemoteQueryError(SalesforceError):
    """Salesforce rejected a query or record operation."""

    def __init__(self, message: str, query: Optional[str] = None, status: Optional[int] = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if query is not None:
            details['query'] = query
        if status is not None:
            details['status'] = status
        super().__init__(
            message,
            category=ErrorCategory.QUERY,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            details=details,
            **kwargs
        )
        self.query = query
        self.status = status


class PartialBatchFailure(SalesforceError):
    """One or more composite sub-requests failed; the whole batch was rolled back."""

    def __init__(self, message: str, results: List[Dict[str, Any]], **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.BATCH,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            details={'results': results},
            **kwargs
        )
        self.results = results


class SessionUpsertError(SalesforceError):
    """Session bookkeeping failed. Logged and swallowed by the session manager."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.SESSION,
            severity=ErrorSeverity.LOW,
            retryable=True,
            **kwargs
        )


class UserNotFoundError(SalesforceError):
    """No Contact matches the supplied login identifier."""

    status_code = 404

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class UnauthorizedRoleError(SalesforceError):
    """Matched user exists but holds a role that may not take attendance."""

    status_code = 403

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.AUTHORIZATION,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


def log_salesforce_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log an error with full context at a level matching its severity.

    Args:
        error: The error to log
        context: Additional context information
    """
    if isinstance(error, SalesforceError):
        error_dict = error.to_dict()
    else:
        error_dict = {
            'message': str(error),
            'category': ErrorCategory.UNKNOWN,
            'severity': ErrorSeverity.MEDIUM,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    if context:
        error_dict.update(context)

    severity = error_dict.get('severity', ErrorSeverity.MEDIUM)
    log_message = f"Salesforce error [{severity.upper()}]: {error_dict['message']}"
    # 'message' is reserved on LogRecord
    extra = {'sf_error': error_dict}

    if severity == ErrorSeverity.CRITICAL:
        sf_logger.critical(log_message, extra=extra)
    elif severity == ErrorSeverity.HIGH:
        sf_logger.error(log_message, extra=extra)
    elif severity == ErrorSeverity.MEDIUM:
        sf_logger.warning(log_message, extra=extra)
    else:
        sf_logger.info(log_message, extra=extra)


def parse_error_body(text: str) -> Tuple[str, Optional[str], Any]:
    """
    Pull (message, error_code, parsed_body) out of a Salesforce error response.

    REST endpoints answer with ``[{"message": ..., "errorCode": ...}]``; the
    OAuth endpoint with ``{"error": ..., "error_description": ...}``.
    """
    try:
        body = json.loads(text) if text else None
    except ValueError:
        return (text or "Empty response", None, text)

    first = body[0] if isinstance(body, list) and body else body
    if isinstance(first, dict):
        message = first.get('message') or first.get('error_description') or first.get('error')
        code = first.get('errorCode') or first.get('error')
        return (message or text, code, body)
    return (text or "Empty response", None, body)
