"""Service error taxonomy and the FastAPI handlers that render it.

Every error carries the HTTP status it maps to and a message that is safe to
show a client. Internal details stay in the logs.
"""
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = structlog.get_logger(__name__)


class ServiceError(Exception):
    """Base exception for all order, payment and fulfillment errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class InvalidSignature(ValidationError):
    default_message = "Invalid payment signature"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class CustomerNotFound(NotFoundError):
    default_message = "Customer not found"


class ShopNotFound(NotFoundError):
    default_message = "Shop not found"


class OrderNotFound(NotFoundError):
    default_message = "Order not found"


class AgentNotFound(NotFoundError):
    default_message = "Delivery agent not found"


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int, variant_id: int | None = None):
        self.product_id = product_id
        self.variant_id = variant_id
        msg = f"Product {product_id} not found"
        if variant_id is not None:
            msg = f"Product {product_id} variant {variant_id} not found"
        super().__init__(msg)


class ForbiddenError(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Conflict"


class InsufficientStock(ConflictError):
    def __init__(self, product_id: int, variant_id: int | None, requested: int, available: int):
        self.product_id = product_id
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        super().__init__(f"Not enough stock for product {product_id}")


class OrderAlreadyAssigned(ConflictError):
    default_message = "Order is already assigned to a delivery agent"


class AgentBusy(ConflictError):
    default_message = "Delivery agent already has an active delivery"


class DuplicatePaymentCapture(ConflictError):
    default_message = "Payment already captured for this order"


class IllegalTransition(ConflictError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}")


class IntegrityError(ServiceError):
    status_code = 500
    default_message = "Order state could not be updated"


class PaymentCaptureIncomplete(IntegrityError):
    default_message = "Payment verified but could not be recorded; it will be retried"


class UpstreamError(ServiceError):
    status_code = 502
    default_message = "Upstream provider failed"


class InternalError(ServiceError):
    pass


def error_body(message: str) -> dict:
    return {"success": False, "error": message}


async def service_error_handler(request: Request, exc: ServiceError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()]
    logger.info("request_invalid", path=request.url.path, fields=fields)
    return JSONResponse(status_code=400, content=error_body(f"Invalid request: {', '.join(fields)}"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
