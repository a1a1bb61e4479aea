import logging
from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from reservations.models import Base, Flight

logger = logging.getLogger(__name__)

# (origin, destination, days ahead, departure time, seats, price)
DEMO_FLIGHTS = [
    ("Santiago", "Antofagasta", 1, time(8, 30), 120, "89990.00"),
    ("Santiago", "Antofagasta", 1, time(18, 15), 60, "74990.00"),
    ("Santiago", "Puerto Montt", 2, time(7, 0), 150, "65990.00"),
    ("Concepcion", "Santiago", 3, time(12, 45), 1, "50000.00"),
]


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def seed_demo_data(session_factory: sessionmaker) -> int:
    """Insert demo flights once; a non-empty flights table is left alone."""
    db: Session = session_factory()
    try:
        if db.execute(select(func.count(Flight.id))).scalar_one():
            return 0
        today = datetime.now().date()
        flights = [
            Flight(
                origin=origin,
                destination=destination,
                departure=datetime.combine(today + timedelta(days=days), at),
                seats_available=seats,
                price=Decimal(price),
            )
            for origin, destination, days, at, seats, price in DEMO_FLIGHTS
        ]
        db.add_all(flights)
        db.commit()
        logger.info("[seed] inserted %s demo flights", len(flights))
        return len(flights)
    finally:
        db.close()
