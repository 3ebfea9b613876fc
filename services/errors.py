# services/errors.py
from __future__ import annotations
from typing import Any


class InvoiceError(Exception):
    """Base for every outcome the invoice services report to callers."""
    status_code = 500
    message = "Server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(InvoiceError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, message: str | None = None, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class DuplicateKey(InvoiceError):
    status_code = 409
    message = "Invoice number already exists"


class NotFound(InvoiceError):
    status_code = 404
    message = "Invoice not found"


class AttachmentMissing(InvoiceError):
    status_code = 404
    message = "PDF not found for this invoice"


class AccessDenied(InvoiceError):
    status_code = 403
    message = "Access denied"


class UpstreamFailure(InvoiceError):
    status_code = 500
    message = "Storage failure"


# Leading loc entries FastAPI adds for request parameters.
_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _field(loc) -> str:
    parts = list(loc)
    if len(parts) > 1 and parts[0] in _REQUEST_LOCATIONS:
        parts = parts[1:]
    return ".".join(str(p) for p in parts)


def from_pydantic(exc) -> ValidationError:
    """Flatten a pydantic (or FastAPI request) validation error into our 400 payload."""
    errors = [
        {"field": _field(e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    return ValidationError(errors=errors)
