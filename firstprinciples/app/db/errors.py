"""
Typed errors for backend calls.

The hosted backend reports failures as JSON bodies of the form
``{"code": ..., "message": ..., "details": ..., "hint": ...}``. The code is
what distinguishes a legitimate empty result from a policy failure, so every
error keeps it.

Codes that matter here:
- PGRST116: single-row request matched zero or several rows
- 42P17: infinite recursion detected in a row-level policy
- 42501: row-level policy denied the operation
- 23505: unique constraint violation
"""

import re
from typing import Any, Dict, Optional

NOT_FOUND_CODE = "PGRST116"
POLICY_RECURSION_CODE = "42P17"
PERMISSION_DENIED_CODE = "42501"
UNIQUE_VIOLATION_CODE = "23505"

_ROW_COUNT = re.compile(r"(\d+) rows?")


class BackendError(Exception):
    """Base class for errors reported by the hosted backend."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "hint": self.hint,
        }


class AuthenticationError(BackendError):
    """Sign-in or token validation was rejected by the auth subsystem."""


class NotFoundError(BackendError):
    """A single-row query matched no rows."""


class MultipleRowsError(BackendError):
    """A single-row query matched more than one row."""


class PolicyRecursionError(BackendError):
    """A row-level policy queried its own table while being evaluated."""


class PermissionDeniedError(BackendError):
    """A row-level policy rejected the request."""


class UniqueViolationError(BackendError):
    """An insert collided with an existing row."""


class TransportError(BackendError):
    """The backend could not be reached or returned an unreadable body."""


def _single_row_error(payload: Dict[str, Any], status_code: int) -> BackendError:
    details = payload.get("details") or ""
    match = _ROW_COUNT.search(details)
    cls = NotFoundError
    if match and int(match.group(1)) > 1:
        cls = MultipleRowsError
    return cls(
        payload.get("message") or "JSON object requested, multiple (or no) rows returned",
        code=NOT_FOUND_CODE,
        details=payload.get("details"),
        hint=payload.get("hint"),
        status_code=status_code,
    )


def error_from_payload(status_code: int, payload: Any) -> BackendError:
    """
    Build the matching BackendError subclass for an error response.

    Args:
        status_code: HTTP status of the response
        payload: Decoded JSON body (may be None or non-dict)

    Returns:
        BackendError instance (not raised)
    """
    if not isinstance(payload, dict):
        return BackendError(f"Backend returned HTTP {status_code}", status_code=status_code)

    code = payload.get("code")
    if code is not None:
        code = str(code)

    if code == NOT_FOUND_CODE:
        return _single_row_error(payload, status_code)

    mapping = {
        POLICY_RECURSION_CODE: PolicyRecursionError,
        PERMISSION_DENIED_CODE: PermissionDeniedError,
        UNIQUE_VIOLATION_CODE: UniqueViolationError,
    }
    cls = mapping.get(code, BackendError)
    message = payload.get("message") or payload.get("msg") or f"Backend returned HTTP {status_code}"
    return cls(
        message,
        code=code,
        details=payload.get("details"),
        hint=payload.get("hint"),
        status_code=status_code,
    )


def auth_error_from_payload(status_code: int, payload: Any) -> AuthenticationError:
    """
    Build an AuthenticationError from an auth endpoint response.

    The auth subsystem has used both ``{"error", "error_description"}`` and
    ``{"code", "error_code", "msg"}`` shapes; both are accepted.
    """
    if not isinstance(payload, dict):
        return AuthenticationError(f"Authentication failed (HTTP {status_code})", status_code=status_code)

    message = (
        payload.get("error_description")
        or payload.get("msg")
        or payload.get("message")
        or f"Authentication failed (HTTP {status_code})"
    )
    code = payload.get("error_code") or payload.get("error")
    return AuthenticationError(message, code=code, status_code=status_code)
