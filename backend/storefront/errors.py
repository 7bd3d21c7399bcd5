"""
API error taxonomy.

Every failure on the checkout path is raised as an ``ApiError`` subclass and
rendered by the handlers in ``register_exception_handlers`` as a JSON envelope:

    {"success": false, "statusCode": 400, "message": "...", "data": {...}}

Gateway and storage internals never reach the client; ``debug_detail`` is
only rendered when DEBUG is on.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.config import get_settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map to a structured API response."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(
        self,
        message: Optional[str] = None,
        data: Optional[dict] = None,
        debug_detail: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.data = data
        self.debug_detail = debug_detail
        super().__init__(self.message)


# --- Validation (400) --------------------------------------------------------

class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Invalid request"


class InvalidAmount(ValidationFailed):
    default_message = "Valid amount is required"


class MissingPaymentDetails(ValidationFailed):
    default_message = "Missing payment details"


class ShippingAddressRequired(ValidationFailed):
    default_message = "Shipping address is required"


class InvalidSignature(ValidationFailed):
    default_message = "Invalid payment signature"


class CancellationReasonRequired(ValidationFailed):
    default_message = "Cancellation reason is required"


# --- Business rule conflicts (400) -------------------------------------------

class BusinessRuleViolation(ApiError):
    status_code = 400
    default_message = "Request conflicts with current state"


class PaymentAlreadyProcessed(BusinessRuleViolation):
    default_message = "Payment already processed"


class StalePaymentForCancelledOrder(BusinessRuleViolation):
    default_message = "This order was previously cancelled. Please start a new checkout process."


class EmptyCart(BusinessRuleViolation):
    default_message = "No items in cart"


class InsufficientStock(BusinessRuleViolation):

    def __init__(self, variant_id: str, product_name: Optional[str] = None, available: Optional[int] = None):
        self.variant_id = variant_id
        label = product_name or variant_id
        data = {"variantId": variant_id}
        if available is not None:
            data["available"] = available
        super().__init__(f"Not enough stock for {label}", data=data)


class CouponAlreadyConsumed(BusinessRuleViolation):
    default_message = "This coupon has already been used"


class OrderNotCancellable(BusinessRuleViolation):
    default_message = "This order cannot be cancelled"


class InvalidStatusTransition(BusinessRuleViolation):

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change order status from {current} to {requested}",
            data={"currentStatus": current, "requestedStatus": requested},
        )


# --- Not found (404) ---------------------------------------------------------

class NotFound(ApiError):
    status_code = 404
    default_message = "Related record not found"


class ShippingAddressNotFound(NotFound):
    default_message = "Shipping address not found"


class OrderNotFound(NotFound):
    default_message = "Order not found"


class VariantNotFound(NotFound):
    default_message = "Product variant not found or inactive"


class CartItemNotFound(NotFound):
    default_message = "Cart item not found"


# --- External dependencies (500) ---------------------------------------------

class ExternalServiceError(ApiError):
    status_code = 500
    default_message = "Payment gateway request failed"


FOREIGN_KEY_VIOLATION = "23503"


def is_foreign_key_violation(error: IntegrityError) -> bool:
    """True when the driver reports a missing referenced row (SQLSTATE 23503 or SQLite's message)."""
    orig = error.orig
    if getattr(orig, "sqlstate", None) == FOREIGN_KEY_VIOLATION or getattr(orig, "pgcode", None) == FOREIGN_KEY_VIOLATION:
        return True
    if type(getattr(orig, "__cause__", None)).__name__ == "ForeignKeyViolationError":
        return True
    return "foreign key constraint" in str(orig).lower()


def map_storage_error(error: Exception) -> ApiError:
    """
    Translate low-level storage failures into the API taxonomy.

    A foreign key violation means a referenced row vanished mid-transaction
    and maps to NotFound; any other integrity violation is the unique
    payment id and maps to PaymentAlreadyProcessed.
    """
    if isinstance(error, IntegrityError):
        if is_foreign_key_violation(error):
            return NotFound(debug_detail=str(error.orig))
        return PaymentAlreadyProcessed("Duplicate payment record", debug_detail=str(error.orig))
    if isinstance(error, NoResultFound):
        return NotFound(debug_detail=str(error))
    return ApiError(debug_detail=str(error))


def _envelope(status_code: int, message: str, data: Any = None, debug_detail: Optional[str] = None) -> dict:
    body = {"success": False, "statusCode": status_code, "message": message}
    if data is not None:
        body["data"] = data
    if debug_detail and get_settings().DEBUG:
        body["error"] = debug_detail
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error envelope handlers to ``app``."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.debug_detail})")
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(exc.status_code, exc.message, exc.data, exc.debug_detail),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"Invalid value for {field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(status_code=400, content=_envelope(400, message))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=_envelope(500, "Internal Server Error", debug_detail=repr(exc)))
