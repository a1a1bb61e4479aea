from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class FlightSummary(BaseModel):
    """Flight fields echoed on receipts, lookups and confirmation mails."""
    id: int
    origin: str
    destination: str
    departure: datetime
    price: float


class FlightOut(FlightSummary):
    seats_available: int
    sold_out: bool = False


class FlightSearchResult(BaseModel):
    items: list[FlightOut]
    total: int
    # Set only when nothing matched, so "no flights" differs from a bad query
    message: Optional[str] = None


def flight_summary(flight) -> FlightSummary:
    return FlightSummary(
        id=flight.id,
        origin=flight.origin,
        destination=flight.destination,
        departure=flight.departure,
        price=float(flight.price),
    )


def flight_out(flight) -> FlightOut:
    return FlightOut(
        **flight_summary(flight).model_dump(),
        seats_available=flight.seats_available,
        sold_out=flight.seats_available <= 0,
    )
