"""Error kinds raised by the access layer.

Each carries the HTTP status the API surfaces it as. ``NotFound`` is used
both for absent rows and for rows the caller may not read, so the two
cases are indistinguishable from outside.
"""

from __future__ import annotations


class AccessError(Exception):
    status_code = 500
    error = "access_error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.error)
        self.detail = detail or self.error


class Unauthenticated(AccessError):
    status_code = 401
    error = "unauthenticated"


class Forbidden(AccessError):
    status_code = 403
    error = "forbidden"


class NotFound(AccessError):
    status_code = 404
    error = "not_found"


class Conflict(AccessError):
    status_code = 409
    error = "conflict"


class ValidationFailed(AccessError):
    status_code = 422
    error = "validation_failed"

    def __init__(self, detail: str = "", fields: list[str] | None = None):
        super().__init__(detail)
        self.fields = sorted(fields or [])
