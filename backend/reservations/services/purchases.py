"""Purchase orchestration.

``purchase`` walks Validating -> CheckingAvailability -> GeneratingCode ->
Persisting -> AdjustingInventory -> (commit) -> Notifying -> Completed.
Persisting and AdjustingInventory share one store transaction: the purchase
row and the seat decrement commit together or not at all.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reservations.core.config import settings
from reservations.core.errors import (
    DuplicateCodeError,
    FlightNotFoundError,
    FlightUnavailableError,
    InvalidInputError,
    InventoryUpdateError,
    NotificationError,
    PurchaseNotFoundError,
    TicketCodeExhaustionError,
    TransactionError,
)
from reservations.models.flight import MAX_FLIGHT_ID
from reservations.schemas.flight import flight_summary
from reservations.schemas.purchase import EMAIL_PATTERN, PurchaseReceipt, PurchaseRecord, PurchaseStats, TicketDetails
from reservations.services.inventory import FlightInventory
from reservations.services.ledger import PurchaseLedger
from reservations.services.notifier import Notifier, TRAVEL_INSTRUCTIONS
from reservations.services.ticket_codes import generate_ticket_code, is_ticket_code

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(EMAIL_PATTERN)
MIN_TICKET_CODE_LENGTH = 10
TICKET_STATUS_CONFIRMED = "Confirmed"
NOTIFICATION_WARNING = "The confirmation email could not be sent; keep your ticket code for lookups"


def validate_email(value) -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        raise InvalidInputError("A valid buyer email is required")
    return value.strip().lower()


def validate_ticket_code(value) -> str:
    code = value.strip().upper() if isinstance(value, str) else ""
    if len(code) < MIN_TICKET_CODE_LENGTH or not is_ticket_code(code):
        raise InvalidInputError("Invalid ticket code, expected format BOL-YYYY-XXXXXX")
    return code


def _details(record: PurchaseRecord) -> TicketDetails:
    return TicketDetails(
        ticket_code=record.ticket_code,
        status=TICKET_STATUS_CONFIRMED,
        flight=record.flight,
        buyer_email=record.buyer_email,
        purchased_at=record.purchased_at,
        instructions=list(TRAVEL_INSTRUCTIONS),
    )


class PurchaseService:
    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        code_generator: Callable[[], str] = generate_ticket_code,
        max_code_attempts: int | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.code_generator = code_generator
        if max_code_attempts is None:
            max_code_attempts = settings.ticket_code_max_attempts
        if max_code_attempts < 1:
            raise ValueError(f"max_code_attempts must be at least 1, got {max_code_attempts}")
        self.max_code_attempts = max_code_attempts
        self.inventory = FlightInventory(db)
        self.ledger = PurchaseLedger(db)

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.exception("[purchase] rollback failed")

    def purchase(self, flight_id, buyer_email) -> PurchaseReceipt:
        # Validating
        if isinstance(flight_id, bool) or not isinstance(flight_id, int) or flight_id <= 0:
            raise InvalidInputError("flight_id must be a positive integer")
        email = validate_email(buyer_email)
        if flight_id > MAX_FLIGHT_ID:
            raise FlightUnavailableError(f"Flight {flight_id} does not exist")
        logger.info("[purchase] start flight=%s email=%s", flight_id, email)

        # CheckingAvailability
        try:
            flight = self.inventory.get_flight(flight_id)
        except SQLAlchemyError as e:
            self._rollback()
            logger.exception("[purchase] availability check failed for flight %s", flight_id)
            raise TransactionError("Could not check seat availability") from e
        if flight is None:
            raise FlightUnavailableError(f"Flight {flight_id} does not exist or has no seats available")
        summary = flight_summary(flight)

        purchase_id, ticket_code, purchased_at, seats_remaining = self._commit_purchase(flight_id, email)

        # Notifying: the sale is durable at this point
        receipt = PurchaseReceipt(
            purchase_id=purchase_id,
            ticket_code=ticket_code,
            flight=summary,
            buyer_email=email,
            purchased_at=purchased_at,
            seats_remaining=seats_remaining,
            instructions=list(TRAVEL_INSTRUCTIONS),
        )
        try:
            self.notifier.send_ticket(ticket_code, summary, email, purchased_at)
        except Exception as e:
            # Any notifier fault is soft; wrap unknown ones for a uniform log line
            err = e if isinstance(e, NotificationError) else NotificationError(str(e))
            logger.warning("[purchase] ticket %s sold but mail to %s failed: %s", ticket_code, email, err.message)
            receipt.notification_sent = False
            receipt.warnings.append(NOTIFICATION_WARNING)
        logger.info("[purchase] completed id=%s code=%s seats_left=%s", purchase_id, ticket_code, seats_remaining)
        return receipt

    def _commit_purchase(self, flight_id: int, email: str) -> tuple[int, str, datetime, int]:
        """Persisting + AdjustingInventory, retried with a fresh code on collisions."""
        for attempt in range(1, self.max_code_attempts + 1):
            # GeneratingCode
            ticket_code = self.code_generator()
            purchased_at = datetime.now(timezone.utc)
            # Persisting
            try:
                purchase_id = self.ledger.insert_purchase(flight_id, email, ticket_code, purchased_at)
            except DuplicateCodeError:
                self._rollback()
                logger.info("[purchase] code collision on attempt %s/%s", attempt, self.max_code_attempts)
                continue
            except FlightNotFoundError as e:
                self._rollback()
                raise FlightUnavailableError(f"Flight {flight_id} is no longer available") from e
            except TransactionError:
                self._rollback()
                logger.error("[purchase] insert failed flight=%s code=%s", flight_id, ticket_code)
                raise
            except SQLAlchemyError as e:
                self._rollback()
                logger.exception("[purchase] insert failed flight=%s code=%s", flight_id, ticket_code)
                raise TransactionError("The purchase could not be recorded") from e

            # AdjustingInventory
            try:
                seats_remaining = self.inventory.decrement_seat(flight_id)
            except SQLAlchemyError as e:
                self._rollback()
                logger.exception("[purchase] seat decrement failed flight=%s code=%s", flight_id, ticket_code)
                raise InventoryUpdateError("Seat inventory could not be updated; the purchase was not made") from e
            if seats_remaining is None:
                self._rollback()
                logger.info("[purchase] flight %s sold out before commit, code %s discarded", flight_id, ticket_code)
                raise FlightUnavailableError(f"Flight {flight_id} has no seats available")

            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self._rollback()
                logger.exception("[purchase] commit failed flight=%s code=%s", flight_id, ticket_code)
                raise TransactionError("The purchase could not be completed") from e
            return purchase_id, ticket_code, purchased_at, seats_remaining

        logger.error(
            "[purchase] no unique ticket code after %s attempts (flight=%s email=%s)",
            self.max_code_attempts, flight_id, email,
        )
        raise TicketCodeExhaustionError("Could not allocate a ticket code, please try again later")

    def lookup(self, ticket_code) -> TicketDetails:
        code = validate_ticket_code(ticket_code)
        try:
            record = self.ledger.find_purchase_by_code(code)
        except SQLAlchemyError as e:
            logger.exception("[lookup] failed for %s", code)
            raise TransactionError("Could not look up the ticket") from e
        if record is None:
            raise PurchaseNotFoundError(f"No purchase found with ticket code {code}")
        return _details(record)

    def purchases_for(self, email) -> list[TicketDetails]:
        address = validate_email(email)
        try:
            records = self.ledger.list_purchases_by_email(address)
        except SQLAlchemyError as e:
            logger.exception("[lookup] listing purchases for %s failed", address)
            raise TransactionError("Could not list purchases") from e
        return [_details(r) for r in records]

    def cancel(self, ticket_code) -> bool:
        code = validate_ticket_code(ticket_code)
        return self.ledger.cancel_purchase(code)

    def stats(self) -> PurchaseStats:
        try:
            return self.ledger.purchase_stats()
        except SQLAlchemyError as e:
            logger.exception("[stats] query failed")
            raise TransactionError("Could not compute purchase statistics") from e
