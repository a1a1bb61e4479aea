from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from reservations.models.base import Base

# Largest id the INTEGER primary key can hold
MAX_FLIGHT_ID = 2**31 - 1

class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        CheckConstraint("seats_available >= 0", name="ck_flights_seats_non_negative"),
        CheckConstraint("price >= 0", name="ck_flights_price_non_negative"),
        Index("ix_flights_route_departure", "origin", "destination", "departure"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    origin: Mapped[str] = mapped_column(String(64))
    destination: Mapped[str] = mapped_column(String(64))
    departure: Mapped[datetime] = mapped_column(DateTime)
    # Only the inventory store writes this column
    seats_available: Mapped[int] = mapped_column(Integer, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
