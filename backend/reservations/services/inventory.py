import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from reservations.core.errors import InvalidInputError
from reservations.models.flight import Flight

logger = logging.getLogger(__name__)


class FlightInventory:
    """Seat counters of the ``flights`` table.

    Works inside whatever transaction the injected session has open; callers
    own commit and rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_flight(self, flight_id: int) -> Flight | None:
        """Return the flight only while it still has seats to sell."""
        return self.db.execute(
            select(Flight)
            .where(Flight.id == flight_id, Flight.seats_available > 0)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_flight_details(self, flight_id: int) -> Flight | None:
        return self.db.get(Flight, flight_id, populate_existing=True)

    def search_flights(self, origin: str, destination: str, day: date) -> list[Flight]:
        start_dt = datetime.combine(day, time.min)
        end_dt = start_dt + timedelta(days=1)
        q = (
            select(Flight)
            .where(
                Flight.origin == origin,
                Flight.destination == destination,
                Flight.departure >= start_dt,
                Flight.departure < end_dt,
                Flight.seats_available > 0,
            )
            .order_by(Flight.departure.asc(), Flight.id.asc())
        )
        return list(self.db.execute(q).scalars().all())

    def set_seats_available(self, flight_id: int, new_count: int) -> bool:
        """Overwrite the counter. Not safe for selling seats: use decrement_seat."""
        if new_count < 0:
            raise InvalidInputError("seats_available cannot be negative")
        result = self.db.execute(
            update(Flight)
            .where(Flight.id == flight_id)
            .values(seats_available=new_count)
            .execution_options(synchronize_session=False)
        )
        logger.info("[inventory] flight %s seats overwritten to %s (rows=%s)", flight_id, new_count, result.rowcount)
        return result.rowcount == 1

    def decrement_seat(self, flight_id: int) -> int | None:
        """Take one seat if any is left; return the seats remaining or None.

        The guard lives in the UPDATE itself, so two buyers racing for the last
        seat cannot both succeed: the store serializes the row and the loser
        matches zero rows.
        """
        result = self.db.execute(
            update(Flight)
            .where(Flight.id == flight_id, Flight.seats_available > 0)
            .values(seats_available=Flight.seats_available - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        # Row is write-locked by this transaction until commit/rollback
        return self.db.execute(
            select(Flight.seats_available).where(Flight.id == flight_id)
        ).scalar_one()

    def restore_seat(self, flight_id: int) -> bool:
        result = self.db.execute(
            update(Flight)
            .where(Flight.id == flight_id)
            .values(seats_available=Flight.seats_available + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
