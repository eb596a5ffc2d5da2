"""
Failure classification for Freshdesk API calls
Maps transport and HTTP failures into a fixed set of error kinds
and decides which of them are worth retrying
"""

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import httpx


class ErrorKind(str, Enum):
    """Kinds of classified failures"""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.SERVER_ERROR, ErrorKind.NETWORK})


class FreshdeskError(Exception):
    """
    A classified failure of one request attempt.

    Carries the kind, a human readable message, the HTTP status when a
    response was received, and for rate limiting the server's retry-after
    hint in whole seconds.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self._kind = ErrorKind(kind)
        self._message = message
        self._status_code = status_code
        self._retry_after = retry_after if self._kind is ErrorKind.RATE_LIMIT else None
        self._details = dict(details or {})

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> Optional[int]:
        return self._status_code

    @property
    def retry_after(self) -> Optional[int]:
        return self._retry_after

    @property
    def details(self) -> Dict[str, Any]:
        return dict(self._details)

    @property
    def retryable(self) -> bool:
        return is_retryable(self._kind)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the tool layer"""
        result: Dict[str, Any] = {
            "error": True,
            "kind": self._kind.value,
            "message": self._message,
            "retryable": self.retryable,
        }
        if self._status_code is not None:
            result["status_code"] = self._status_code
        if self._retry_after is not None:
            result["retry_after"] = self._retry_after
        if self._details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"FreshdeskError(kind={self._kind.value!r}, message={self._message!r}, "
            f"status_code={self._status_code!r})"
        )


class AccessDeniedError(FreshdeskError):
    """Raised by the access gate; never produced by a network call"""

    def __init__(self, message: str, missing_permissions: Optional[List[str]] = None):
        details = {"missing_permissions": list(missing_permissions)} if missing_permissions else None
        super().__init__(ErrorKind.AUTHORIZATION, message, details=details)


def is_retryable(error: Union[FreshdeskError, ErrorKind]) -> bool:
    kind = error.kind if isinstance(error, FreshdeskError) else error
    return kind in RETRYABLE_KINDS


def kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 401:
        return ErrorKind.AUTHENTICATION
    if status_code == 403:
        return ErrorKind.AUTHORIZATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (400, 422):
        return ErrorKind.VALIDATION
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if 500 <= status_code <= 599:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header given as delta-seconds or an HTTP date"""
    if value is None:
        return None

    value = str(value).strip()
    if not value:
        return None

    if value.isdigit():
        return int(value)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0, int(round(delta)))


def extract_error_message(status_code: int, reason: str, data: Any) -> str:
    """Extract meaningful error message from a Freshdesk error body"""
    if isinstance(data, dict):
        # Freshdesk validation format: {"description": ..., "errors": [{field, message, code}]}
        if isinstance(data.get("errors"), list) and data["errors"]:
            errors = []
            for error in data["errors"]:
                if isinstance(error, dict):
                    msg = error.get("message", error.get("code", str(error)))
                    field = error.get("field", "")
                    errors.append(f"{field}: {msg}" if field else msg)
                else:
                    errors.append(str(error))
            prefix = data.get("description")
            joined = "; ".join(errors)
            return f"{prefix}: {joined}" if prefix else joined

        if "error" in data:
            error = data["error"]
            if isinstance(error, dict):
                return error.get("message", str(error))
            return str(error)

        if data.get("message"):
            return str(data["message"])

        if data.get("description"):
            return str(data["description"])

    # Fallback to HTTP status
    return f"HTTP {status_code}: {reason}"


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw_response": response.text}


def classify_response(response: httpx.Response) -> FreshdeskError:
    """Classify a non-success HTTP response"""
    status = response.status_code
    kind = kind_for_status(status)
    data = _response_body(response)
    message = extract_error_message(status, response.reason_phrase, data)

    details: Dict[str, Any] = {}
    if isinstance(data, dict) and isinstance(data.get("errors"), list):
        details["errors"] = data["errors"]

    retry_after = None
    if kind is ErrorKind.RATE_LIMIT:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))

    return FreshdeskError(kind, message, status_code=status, retry_after=retry_after, details=details)


def classify_transport_error(exc: Exception) -> FreshdeskError:
    """Classify a failure where no response was received"""
    if isinstance(exc, httpx.TimeoutException):
        return FreshdeskError(ErrorKind.NETWORK, f"⏰ Request timed out: {exc}")
    if isinstance(exc, httpx.TransportError):
        return FreshdeskError(ErrorKind.NETWORK, f"🔌 Network error: {exc}")
    return FreshdeskError(ErrorKind.UNKNOWN, f"💥 Unexpected error: {exc}")
