"""Typed errors raised by the ingestion pipeline.

Every error carries a machine readable ``code`` and a human readable message.
Details are returned to API clients, so URLs are reduced to origin + path
before they are stored on the exception.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .utils import sanitize_url


class InvoiceError(Exception):
    """Base class for all pipeline errors."""

    code = "INVOICE_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = _sanitize_details(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


def _sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(details)
    if isinstance(cleaned.get("url"), str):
        cleaned["url"] = sanitize_url(cleaned["url"])
    return cleaned


class InvalidFormatError(InvoiceError):
    code = "INVOICE_INVALID_FORMAT"
    http_status = 400


class InvoiceParseError(InvoiceError):
    code = "INVOICE_PARSE_ERROR"
    http_status = 422


class InvoiceKeyNotFoundError(InvoiceError):
    code = "INVOICE_KEY_NOT_FOUND"
    http_status = 404


class NetworkError(InvoiceError):
    code = "INVOICE_NETWORK_ERROR"
    http_status = 502
    retryable = True


class FetchTimeoutError(InvoiceError):
    code = "INVOICE_TIMEOUT"
    http_status = 504
    retryable = True


class AIParseError(InvoiceError):
    code = "AI_PARSE_ERROR"
    http_status = 502


class InvoiceValidationError(InvoiceError):
    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, errors: List[str], message: str = "Invoice data failed validation") -> None:
        super().__init__(message, details={"errors": list(errors)})
        self.errors = list(errors)


class DuplicateInvoiceError(InvoiceError):
    code = "INVOICE_DUPLICATE"
    http_status = 409

    def __init__(self, existing_id: str, created_at: Optional[datetime] = None) -> None:
        super().__init__(
            "Invoice already registered",
            details={
                "existing_invoice_id": existing_id,
                "created_at": created_at.isoformat() if created_at else None,
            },
        )
        self.existing_id = existing_id
        self.created_at = created_at


class NotFoundError(InvoiceError):
    code = "INVOICE_NOT_FOUND"
    http_status = 404


class PartialWriteError(InvoiceError):
    """Raised when compensating cleanup after a failed write also fails."""

    code = "INVOICE_PARTIAL_WRITE"
    http_status = 500

    def __init__(self, original: BaseException, cleanup: BaseException) -> None:
        super().__init__(
            "Invoice creation failed and cleanup could not complete",
            details={"original_error": str(original), "cleanup_error": str(cleanup)},
        )
        self.original = original
        self.cleanup = cleanup


class InvoiceServiceError(InvoiceError):
    code = "INVOICE_SERVICE_ERROR"


__all__ = [
    "InvoiceError",
    "InvalidFormatError",
    "InvoiceParseError",
    "InvoiceKeyNotFoundError",
    "NetworkError",
    "FetchTimeoutError",
    "AIParseError",
    "InvoiceValidationError",
    "DuplicateInvoiceError",
    "NotFoundError",
    "PartialWriteError",
    "InvoiceServiceError",
]
