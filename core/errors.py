"""
core/errors.py -- Error taxonomy shared by every Saiqa layer.

Every expected failure is raised as ServiceError carrying an ErrorKind. The
HTTP boundary (api/main.py) maps the kind to a status code and a flat JSON
body. Callers branch on `exc.kind`, never on the message text.

Messages are deliberately generic for the 401 kinds: a caller must not be
able to tell "unknown email" from "wrong password", or "bad signature" from
"expired token".

Layer rule: core/ is the kernel. No imports from api/, auth/, org/, or audit/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Failure kinds with their wire code, HTTP status and default message."""

    INVALID_CREDENTIALS = ("invalid_credentials", 401, "Invalid credentials")
    AUTHENTICATION_REQUIRED = ("authentication_required", 401, "Authentication required")
    AUTHENTICATION_FAILED = ("authentication_failed", 401, "Authentication failed")
    INVALID_OR_EXPIRED_TOKEN = ("invalid_token", 401, "Invalid or expired token")
    REFRESH_REQUIRED = ("refresh_required", 401, "Refresh token required")
    USER_NOT_FOUND = ("user_not_found", 401, "User not found")
    INSUFFICIENT_PERMISSIONS = ("insufficient_permissions", 403, "Insufficient permissions")
    VALIDATION_ERROR = ("validation_error", 400, "Validation failed")
    CONFLICT = ("conflict", 400, "Request conflicts with existing data")
    NOT_FOUND = ("not_found", 404, "Resource not found")
    INTERNAL_ERROR = ("internal_error", 500, "Internal server error")

    def __init__(self, code: str, status_code: int, default_message: str) -> None:
        self.code = code
        self.status_code = status_code
        self.default_message = default_message


class ServiceError(Exception):
    """An expected, classified failure of a Saiqa operation."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        self.message = message or kind.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_body(self) -> dict:
        return {"error": self.message, "code": self.kind.code}
