from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from reservations.core.config import Settings
from reservations.db.init_db import create_tables
from reservations.db.session import build_engine, build_session_factory
from reservations.main import create_app
from reservations.models import Flight
from reservations.services.notifier import LogNotifier

DEPARTURE = datetime(2099, 1, 1, 10, 0)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'reservations.db'}",
        ENV="test",
        SMTP_HOST=None,
        SEED_DEMO_DATA=False,
        TICKET_CODE_MAX_ATTEMPTS=5,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.database_url, busy_timeout=settings.db_busy_timeout)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def seed_flight(session_factory):
    def _seed(seats: int = 5, price: str = "100.00", origin: str = "AAA", destination: str = "BBB",
              departure: datetime = DEPARTURE) -> int:
        session = session_factory()
        f = Flight(origin=origin, destination=destination, departure=departure,
                   seats_available=seats, price=Decimal(price))
        session.add(f)
        session.commit()
        flight_id = f.id
        session.close()
        return flight_id
    return _seed


@pytest.fixture
def seats_of(session_factory):
    def _seats(flight_id: int) -> int:
        session = session_factory()
        try:
            return session.get(Flight, flight_id).seats_available
        finally:
            session.close()
    return _seats


@pytest.fixture
def client(settings, engine, notifier):
    return TestClient(create_app(settings=settings, engine=engine, notifier=notifier))
