"""
Domain errors raised by the services.

Each error carries the HTTP status it maps to; main.py renders every
DealError as ``{"error": message, "code": code, **details}``.
"""
from typing import Any, Dict, Optional

from fastapi import status


class DealError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "DEAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(DealError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} {resource_id} not found")


class NotAuthorized(DealError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NOT_AUTHORIZED"


class InvalidStateTransition(DealError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, current_status: str = None):
        details = {"current_status": current_status} if current_status else None
        super().__init__(message, details)


class QuoteNotPending(DealError):
    code = "QUOTE_NOT_PENDING"

    def __init__(self, quote_id: int, current_status: str):
        super().__init__(
            f"Quote {quote_id} was already processed",
            {"current_status": current_status}
        )


class InsufficientContext(DealError):
    code = "INSUFFICIENT_CONTEXT"


class InsufficientCredit(DealError):
    code = "INSUFFICIENT_CREDIT"

    def __init__(self, required: int, current: int):
        super().__init__(
            f"Insufficient credit: {required:,} required, {current:,} available",
            {"required": required, "current": current}
        )
        self.required = required
        self.current = current


class AlreadyProcessed(DealError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_PROCESSED"


class PaymentMethodNotImplemented(DealError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    code = "NOT_IMPLEMENTED"

    def __init__(self, method: str):
        super().__init__(f"Payment method '{method}' is coming soon", {"payment_method": method})


class ValidationFailed(DealError):
    code = "VALIDATION_ERROR"
