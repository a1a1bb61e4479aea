"""Error kinds surfaced by the reservation core.

Every failure that reaches a caller is one of the ``ReservationError``
subclasses below. Store exceptions never leave the service layer untranslated.
"""
import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ReservationError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidInputError(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST


class FlightUnavailableError(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND


class PurchaseNotFoundError(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateCodeError(ReservationError):
    """Ticket code already taken. Retried by the orchestrator, never shown to buyers."""
    status_code = status.HTTP_409_CONFLICT


class FlightNotFoundError(ReservationError):
    """Insert referenced a flight row that does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class TicketCodeExhaustionError(ReservationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class TransactionError(ReservationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InventoryUpdateError(TransactionError):
    pass


class NotificationError(ReservationError):
    status_code = status.HTTP_502_BAD_GATEWAY


def error_body(kind: str, detail) -> dict:
    return {"error": kind, "detail": detail}


async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[%s] %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Report pydantic failures with the same envelope as service-level validation
    problems = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={**error_body(InvalidInputError.__name__, "Invalid request"), "problems": problems},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("InternalError", "Something went wrong, please try again"),
    )


EXCEPTION_HANDLERS = {
    ReservationError: reservation_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
