# Overview: Error taxonomy shared by the store, services, and HTTP boundary.

"""
CodeBook error taxonomy.

Every failure the core raises on purpose is a CodebookError. The HTTP boundary
maps `status_code` straight onto the response, so services never deal with
transport concerns and routes never decide status codes.

    ValidationError  400  malformed input, impossible totals
    Unauthenticated  401  missing, malformed or expired credential
    Forbidden        403  role or identity mismatch, demo account mutation
    NotFound         404  entity id does not resolve
    Conflict         409  unique key, status guard, stock, double refund
    Throttled        429  downstream rate limit or lock contention
    Unavailable      503  downstream outage
    Internal         500  unexpected; rendered with a correlation id only
"""

from __future__ import annotations


class CodebookError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CodebookError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(CodebookError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(CodebookError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(CodebookError):
    status_code = 404
    default_message = "Not found"


class Conflict(CodebookError):
    status_code = 409
    default_message = "Conflict"


class Throttled(CodebookError):
    status_code = 429
    default_message = "Service is busy, retry later"


class Unavailable(CodebookError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class Internal(CodebookError):
    status_code = 500
