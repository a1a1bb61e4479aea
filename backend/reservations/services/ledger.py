import logging
from datetime import datetime, timezone

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reservations.core.errors import DuplicateCodeError, FlightNotFoundError, TransactionError
from reservations.models.flight import Flight
from reservations.models.purchase import Purchase
from reservations.schemas.flight import flight_summary
from reservations.schemas.purchase import PurchaseRecord, PurchaseStats
from reservations.services.inventory import FlightInventory

logger = logging.getLogger(__name__)

# SQLSTATE (Postgres), errno (MySQL)
_UNIQUE_CODES = {"23505", 1062}
_FOREIGN_KEY_CODES = {"23503", 1452}


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back naive; they were written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def classify_integrity_error(exc: IntegrityError) -> str:
    """Return 'unique', 'foreign_key' or 'other' for a driver integrity error."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is None and getattr(orig, "args", None):
        code = orig.args[0]
    if code in _UNIQUE_CODES:
        return "unique"
    if code in _FOREIGN_KEY_CODES:
        return "foreign_key"
    msg = str(orig).lower()
    if "unique" in msg or "duplicate" in msg:
        return "unique"
    if "foreign key" in msg:
        return "foreign_key"
    return "other"


def _to_record(purchase: Purchase, flight: Flight) -> PurchaseRecord:
    return PurchaseRecord(
        id=purchase.id,
        ticket_code=purchase.ticket_code,
        buyer_email=purchase.buyer_email,
        purchased_at=_as_utc(purchase.purchased_at),
        flight=flight_summary(flight),
    )


class PurchaseLedger:
    def __init__(self, db: Session):
        self.db = db

    def insert_purchase(self, flight_id: int, buyer_email: str, ticket_code: str, purchased_at: datetime | None = None) -> int:
        """Stage a purchase row in the current transaction and return its id.

        Raises DuplicateCodeError when the code is taken and FlightNotFoundError
        when the flight row is gone. The caller must roll back after either.
        """
        purchase = Purchase(
            flight_id=flight_id,
            buyer_email=buyer_email,
            ticket_code=ticket_code,
            purchased_at=purchased_at or datetime.now(timezone.utc),
        )
        self.db.add(purchase)
        try:
            self.db.flush()
        except IntegrityError as e:
            kind = classify_integrity_error(e)
            if kind == "unique":
                logger.warning("[ledger] duplicate ticket code %s", ticket_code)
                raise DuplicateCodeError(f"Ticket code {ticket_code} already exists") from e
            if kind == "foreign_key":
                logger.warning("[ledger] flight %s does not exist", flight_id)
                raise FlightNotFoundError(f"Flight {flight_id} does not exist") from e
            raise TransactionError("Could not record the purchase") from e
        return purchase.id

    def find_purchase_by_code(self, ticket_code: str) -> PurchaseRecord | None:
        row = self.db.execute(
            select(Purchase, Flight)
            .join(Flight, Purchase.flight_id == Flight.id)
            .where(Purchase.ticket_code == ticket_code)
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            return None
        return _to_record(row.Purchase, row.Flight)

    def list_purchases_by_email(self, email: str) -> list[PurchaseRecord]:
        rows = self.db.execute(
            select(Purchase, Flight)
            .join(Flight, Purchase.flight_id == Flight.id)
            .where(Purchase.buyer_email == email)
            .order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
            .execution_options(populate_existing=True)
        ).all()
        return [_to_record(r.Purchase, r.Flight) for r in rows]

    def cancel_purchase(self, ticket_code: str) -> bool:
        """Delete the purchase and give its seat back, in one transaction.

        Commits only when both statements touched exactly one row; anything else
        is rolled back and reported as False.
        """
        try:
            flight_id = self.db.execute(
                select(Purchase.flight_id).where(Purchase.ticket_code == ticket_code)
            ).scalar_one_or_none()
            if flight_id is None:
                self.db.rollback()
                logger.info("[ledger] nothing to cancel for %s", ticket_code)
                return False
            deleted = self.db.execute(
                delete(Purchase)
                .where(Purchase.ticket_code == ticket_code)
                .execution_options(synchronize_session=False)
            ).rowcount
            restored = FlightInventory(self.db).restore_seat(flight_id)
            if deleted == 1 and restored:
                self.db.commit()
                logger.info("[ledger] cancelled %s, seat returned to flight %s", ticket_code, flight_id)
                return True
            self.db.rollback()
            logger.error("[ledger] cancellation of %s rolled back (deleted=%s restored=%s)", ticket_code, deleted, restored)
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("[ledger] cancellation of %s failed", ticket_code)
            raise TransactionError("Cancellation could not be completed") from e

    def purchase_stats(self) -> PurchaseStats:
        row = self.db.execute(
            select(
                func.count(Purchase.id),
                func.count(distinct(Purchase.buyer_email)),
                func.sum(Flight.price),
                func.min(Purchase.purchased_at),
                func.max(Purchase.purchased_at),
            )
            .select_from(Purchase)
            .join(Flight, Purchase.flight_id == Flight.id)
        ).one()
        total, buyers, revenue, first_at, last_at = row
        total = int(total or 0)
        revenue = float(revenue or 0)
        return PurchaseStats(
            total_purchases=total,
            unique_buyers=int(buyers or 0),
            total_revenue=round(revenue, 2),
            average_price=round(revenue / total, 2) if total else 0.0,
            first_purchase_at=_as_utc(first_at),
            last_purchase_at=_as_utc(last_at),
        )
