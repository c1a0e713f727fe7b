"""
Failure taxonomy for remote calls.

Every failure that reaches a flow carries a category; the category decides
whether it is retried and what the user is told.
"""

from enum import Enum
from typing import Optional

import requests

DASHBOARD_URL = "https://osint-copilot.com/dashboard/"

TRANSIENT_PATTERNS = [
    "network", "failed to fetch", "connection", "timeout", "timed out",
    "econnreset", "econnrefused", "enotfound", "socket", "dns",
    "502", "503", "504", "service unavailable", "temporarily unavailable",
]

BACKEND_OUTAGE_PATTERNS = ["ssl", "certificate", "n8n"]


class ErrorCategory(str, Enum):
    TRANSIENT_NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    AUTH_FAILURE = "auth"
    QUOTA_EXHAUSTED = "quota"
    LICENSE_EXPIRED = "license-expired"
    LICENSE_INACTIVE = "license-inactive"
    BACKEND_UNAVAILABLE = "backend-unavailable"
    NOT_FOUND = "not-found"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


USER_MESSAGES = {
    ErrorCategory.TRANSIENT_NETWORK: "Network connection failed. Please check your internet connection and try again.",
    ErrorCategory.TIMEOUT: "Request timed out. The server may be busy or your connection is slow. Try again in a moment.",
    ErrorCategory.RATE_LIMITED: "Too many requests. Please wait a moment before trying again.",
    ErrorCategory.SERVER_ERROR: "The server is experiencing issues. Please try again later.",
    ErrorCategory.AUTH_FAILURE: "License key required or rejected. Please re-enter your license key in settings.",
    ErrorCategory.QUOTA_EXHAUSTED: f"Quota exhausted. Please upgrade your plan or wait for quota renewal. Visit {DASHBOARD_URL} to manage your subscription.",
    ErrorCategory.LICENSE_EXPIRED: f"Your license key or trial has expired. Please renew your subscription at {DASHBOARD_URL}",
    ErrorCategory.LICENSE_INACTIVE: f"Your license key is inactive. Please check your account status at {DASHBOARD_URL}",
    ErrorCategory.BACKEND_UNAVAILABLE: "Backend service temporarily unavailable. Please try again in a few minutes.",
    ErrorCategory.NOT_FOUND: "The requested resource was not found on the server.",
    ErrorCategory.VALIDATION: "The request was rejected as invalid.",
    ErrorCategory.CANCELLED: "Request was cancelled.",
    ErrorCategory.UNKNOWN: "An unexpected error occurred. Please try again.",
}


class RemoteError(Exception):
    """A classified failure from the remote service or the network."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.category = category
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT_NETWORK,
            ErrorCategory.TIMEOUT,
            ErrorCategory.RATE_LIMITED,
            ErrorCategory.SERVER_ERROR,
        )

    def user_message(self) -> str:
        """Short diagnosis plus next step, for the assistant message."""
        base = USER_MESSAGES[self.category]
        if self.category in (ErrorCategory.VALIDATION, ErrorCategory.NOT_FOUND, ErrorCategory.UNKNOWN) and str(self):
            return f"{base} ({self})"
        return base


class HttpStatusError(RemoteError):
    """Non-2xx response."""

    def __init__(self, status_code: int, body: str = ""):
        category = classify_http_status(status_code, body)
        super().__init__(f"HTTP {status_code}: {body[:200]}", category, status_code)
        self.body = body


class JobFailedError(RemoteError):
    """The remote job itself reported failure."""

    def __init__(self, backend_error: str):
        lowered = (backend_error or "").lower()
        if any(p in lowered for p in BACKEND_OUTAGE_PATTERNS):
            category = ErrorCategory.BACKEND_UNAVAILABLE
        else:
            category = ErrorCategory.UNKNOWN
        super().__init__(backend_error or "Unknown error", category)


class CancelledError(RemoteError):
    """Explicit user cancellation. Never retried."""

    def __init__(self, message: str = "Cancelled by user"):
        super().__init__(message, ErrorCategory.CANCELLED)


def classify_http_status(status_code: int, body: str = "") -> ErrorCategory:
    """Map an HTTP status (and its body, for 403) to a category."""
    lowered = (body or "").lower()
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    if 500 <= status_code < 600:
        return ErrorCategory.SERVER_ERROR
    if status_code == 401:
        return ErrorCategory.AUTH_FAILURE
    if status_code == 403:
        if "quota" in lowered or "exhausted" in lowered or "exceeded" in lowered:
            return ErrorCategory.QUOTA_EXHAUSTED
        if "expired" in lowered:
            return ErrorCategory.LICENSE_EXPIRED
        if "inactive" in lowered:
            return ErrorCategory.LICENSE_INACTIVE
        return ErrorCategory.AUTH_FAILURE
    if status_code == 404:
        return ErrorCategory.NOT_FOUND
    if status_code in (400, 422):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


def is_transient_message(message: str) -> bool:
    lowered = message.lower()
    return any(p in lowered for p in TRANSIENT_PATTERNS)


def to_remote_error(error: BaseException, status_code: Optional[int] = None) -> RemoteError:
    """Wrap any exception raised by a network call into a RemoteError."""
    if isinstance(error, RemoteError):
        return error
    if status_code is not None:
        return HttpStatusError(status_code, str(error))
    if isinstance(error, requests.exceptions.Timeout) or isinstance(error, TimeoutError):
        return RemoteError(str(error) or "timed out", ErrorCategory.TIMEOUT)
    if isinstance(error, (requests.exceptions.ConnectionError, ConnectionError)):
        return RemoteError(str(error) or "connection failed", ErrorCategory.TRANSIENT_NETWORK)
    if isinstance(error, (ValueError, TypeError)) and not is_transient_message(str(error)):
        return RemoteError(str(error), ErrorCategory.VALIDATION)
    if is_transient_message(str(error)):
        if "timeout" in str(error).lower() or "timed out" in str(error).lower():
            return RemoteError(str(error), ErrorCategory.TIMEOUT)
        return RemoteError(str(error), ErrorCategory.TRANSIENT_NETWORK)
    return RemoteError(str(error), ErrorCategory.UNKNOWN)
