import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from reservations.core.errors import (
    FlightUnavailableError,
    InvalidInputError,
    InventoryUpdateError,
    NotificationError,
    PurchaseNotFoundError,
    TicketCodeExhaustionError,
    TransactionError,
)
from reservations.models import Flight, Purchase
from reservations.services.inventory import FlightInventory
from reservations.services.notifier import LogNotifier
from reservations.schemas.purchase import PurchaseRequest
from reservations.services.purchases import PurchaseService, validate_email

CODE_RE = re.compile(r"^BOL-\d{4}-[A-Z0-9]{6}$")


def _purchase_count(session_factory) -> int:
    session = session_factory()
    try:
        return session.execute(select(func.count(Purchase.id))).scalar_one()
    finally:
        session.close()


def _codes(*codes):
    it = iter(codes)
    return lambda: next(it)


class FailingNotifier:
    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    def send_ticket(self, ticket_code, flight, buyer_email, purchased_at):
        self.calls += 1
        raise self.exc


def test_purchase_last_seat_then_sold_out(db, notifier, seed_flight, seats_of):
    flight_id = seed_flight(seats=1, price="50000.00")
    service = PurchaseService(db, notifier)

    receipt = service.purchase(flight_id, "a@x.com")
    assert CODE_RE.match(receipt.ticket_code)
    assert receipt.seats_remaining == 0
    assert receipt.buyer_email == "a@x.com"
    assert receipt.flight.price == 50000.0
    assert receipt.notification_sent is True
    assert receipt.warnings == []
    assert seats_of(flight_id) == 0

    with pytest.raises(FlightUnavailableError):
        service.purchase(flight_id, "b@x.com")
    assert seats_of(flight_id) == 0


def test_purchase_sends_ticket_mail(db, notifier, seed_flight):
    flight_id = seed_flight(seats=3)
    receipt = PurchaseService(db, notifier).purchase(flight_id, "Buyer@X.com")
    assert receipt.buyer_email == "buyer@x.com"
    assert len(notifier.sent) == 1
    msg = notifier.sent[0]
    assert msg["To"] == "buyer@x.com"
    assert receipt.ticket_code in msg["Subject"]


def test_purchase_unknown_flight(db, notifier, session_factory):
    with pytest.raises(FlightUnavailableError):
        PurchaseService(db, notifier).purchase(404, "a@x.com")
    assert _purchase_count(session_factory) == 0
    assert notifier.sent == []


@pytest.mark.parametrize("flight_id", [0, -3, "1", 1.0, True, None])
def test_purchase_rejects_bad_flight_id(flight_id):
    db = MagicMock()
    with pytest.raises(InvalidInputError):
        PurchaseService(db, LogNotifier()).purchase(flight_id, "a@x.com")
    db.execute.assert_not_called()


@pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@x.com", "@x.com", None, 42])
def test_purchase_rejects_bad_email(email):
    db = MagicMock()
    with pytest.raises(InvalidInputError):
        PurchaseService(db, LogNotifier()).purchase(1, email)
    db.execute.assert_not_called()


def test_duplicate_code_is_regenerated(db, notifier, seed_flight, seats_of, session_factory):
    flight_id = seed_flight(seats=5)
    first = PurchaseService(db, notifier, code_generator=_codes("BOL-2025-AAAAAA")).purchase(flight_id, "a@x.com")
    assert first.ticket_code == "BOL-2025-AAAAAA"

    service = PurchaseService(db, notifier, code_generator=_codes("BOL-2025-AAAAAA", "BOL-2025-BBBBBB"))
    second = service.purchase(flight_id, "b@x.com")

    assert second.ticket_code == "BOL-2025-BBBBBB"
    assert second.seats_remaining == 3
    assert _purchase_count(session_factory) == 2
    assert seats_of(flight_id) == 3


def test_code_exhaustion(db, notifier, seed_flight, seats_of, session_factory):
    flight_id = seed_flight(seats=5)
    PurchaseService(db, notifier, code_generator=lambda: "BOL-2025-AAAAAA").purchase(flight_id, "a@x.com")

    service = PurchaseService(db, notifier, code_generator=lambda: "BOL-2025-AAAAAA", max_code_attempts=3)
    with pytest.raises(TicketCodeExhaustionError):
        service.purchase(flight_id, "b@x.com")
    assert _purchase_count(session_factory) == 1
    assert seats_of(flight_id) == 4


def test_flight_vanishing_before_insert(db, notifier, monkeypatch, session_factory):
    ghost = Flight(id=999, origin="AAA", destination="BBB", departure=datetime(2099, 1, 1),
                   seats_available=3, price=Decimal("10.00"))
    monkeypatch.setattr(FlightInventory, "get_flight", lambda self, flight_id: ghost)
    with pytest.raises(FlightUnavailableError):
        PurchaseService(db, notifier).purchase(999, "a@x.com")
    assert _purchase_count(session_factory) == 0


def test_decrement_failure_rolls_back_insert(db, notifier, seed_flight, seats_of, session_factory, monkeypatch):
    flight_id = seed_flight(seats=2)
    generated = []

    def gen():
        code = f"BOL-2025-FAIL0{len(generated)}"
        generated.append(code)
        return code

    def broken(self, flight_id):
        raise OperationalError("UPDATE flights", {}, Exception("disk I/O error"))

    monkeypatch.setattr(FlightInventory, "decrement_seat", broken)
    service = PurchaseService(db, notifier, code_generator=gen)
    with pytest.raises(InventoryUpdateError) as exc_info:
        service.purchase(flight_id, "a@x.com")
    assert isinstance(exc_info.value, TransactionError)

    monkeypatch.undo()
    assert _purchase_count(session_factory) == 0
    assert seats_of(flight_id) == 2
    for code in generated:
        with pytest.raises(PurchaseNotFoundError):
            service.lookup(code)
    assert notifier.sent == []


def test_zero_row_decrement_rolls_back_insert(db, notifier, seed_flight, seats_of, session_factory, monkeypatch):
    flight_id = seed_flight(seats=2)
    monkeypatch.setattr(FlightInventory, "decrement_seat", lambda self, flight_id: None)
    with pytest.raises(FlightUnavailableError):
        PurchaseService(db, notifier).purchase(flight_id, "a@x.com")
    assert _purchase_count(session_factory) == 0
    assert seats_of(flight_id) == 2


def test_commit_failure_is_transaction_error(db, notifier, seed_flight, session_factory, monkeypatch):
    flight_id = seed_flight(seats=2)

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(TransactionError):
        PurchaseService(db, notifier).purchase(flight_id, "a@x.com")
    assert _purchase_count(session_factory) == 0


@pytest.mark.parametrize("exc", [NotificationError("smtp down"), RuntimeError("template blew up")])
def test_notification_failure_keeps_purchase(db, seed_flight, seats_of, exc):
    flight_id = seed_flight(seats=2)
    failing = FailingNotifier(exc)
    service = PurchaseService(db, failing, code_generator=lambda: "BOL-2025-MAIL01")

    receipt = service.purchase(flight_id, "a@x.com")

    assert failing.calls == 1
    assert receipt.ticket_code == "BOL-2025-MAIL01"
    assert receipt.notification_sent is False
    assert receipt.warnings
    assert seats_of(flight_id) == 1
    assert service.lookup("BOL-2025-MAIL01").buyer_email == "a@x.com"


def test_no_overselling_under_concurrency(session_factory, seed_flight, seats_of):
    seats = 5
    flight_id = seed_flight(seats=seats)
    notifier = LogNotifier()
    start = threading.Barrier(seats + 3)

    def buy(n):
        session = session_factory()
        try:
            start.wait()
            PurchaseService(session, notifier).purchase(flight_id, f"buyer{n}@x.com")
            return "ok"
        except FlightUnavailableError:
            return "unavailable"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=seats + 3) as pool:
        outcomes = list(pool.map(buy, range(seats + 3)))

    assert outcomes.count("ok") == seats
    assert outcomes.count("unavailable") == 3
    assert seats_of(flight_id) == 0
    assert _purchase_count(session_factory) == seats


def test_lookup(db, notifier, seed_flight):
    flight_id = seed_flight(seats=2, price="75.50")
    service = PurchaseService(db, notifier)
    receipt = service.purchase(flight_id, "a@x.com")

    details = service.lookup(receipt.ticket_code.lower())
    assert details.ticket_code == receipt.ticket_code
    assert details.status == "Confirmed"
    assert details.flight.price == 75.5
    assert details.buyer_email == "a@x.com"
    assert details.instructions


@pytest.mark.parametrize("code", ["", "BOL-1", "BOL-2025-ABC12", "XYZ-2025-ABC123", None])
def test_lookup_rejects_malformed_code_before_store(code):
    db = MagicMock()
    with pytest.raises(InvalidInputError):
        PurchaseService(db, LogNotifier()).lookup(code)
    db.execute.assert_not_called()


def test_lookup_unknown_code(db, notifier):
    with pytest.raises(PurchaseNotFoundError):
        PurchaseService(db, notifier).lookup("BOL-2025-ZZZZZZ")


def test_cancel_then_lookup(db, notifier, seed_flight, seats_of):
    flight_id = seed_flight(seats=2)
    service = PurchaseService(db, notifier)
    receipt = service.purchase(flight_id, "a@x.com")
    assert seats_of(flight_id) == 1

    assert service.cancel(receipt.ticket_code) is True
    assert seats_of(flight_id) == 2
    with pytest.raises(PurchaseNotFoundError):
        service.lookup(receipt.ticket_code)

    assert service.cancel(receipt.ticket_code) is False
    assert seats_of(flight_id) == 2


def test_purchases_for_email(db, notifier, seed_flight):
    flight_id = seed_flight(seats=5)
    service = PurchaseService(db, notifier)
    codes = [service.purchase(flight_id, "a@x.com").ticket_code for _ in range(2)]
    service.purchase(flight_id, "b@x.com")

    listed = [d.ticket_code for d in service.purchases_for("A@x.com")]
    assert sorted(listed) == sorted(codes)
    with pytest.raises(InvalidInputError):
        service.purchases_for("not-an-email")


@pytest.mark.parametrize("flight_id", [2**31, 2**64])
def test_flight_id_beyond_integer_column(db, notifier, session_factory, flight_id):
    with pytest.raises(FlightUnavailableError):
        PurchaseService(db, notifier).purchase(flight_id, "a@x.com")
    assert _purchase_count(session_factory) == 0


def test_email_rule_matches_request_schema():
    accepted = ["a@x.test", "first.last+tag@mail.example.org"]
    for email in accepted:
        assert PurchaseRequest(flight_id=1, buyer_email=email).buyer_email == email
        assert validate_email(email) == email
    for email in ["a@b", "a b@x.com"]:
        with pytest.raises(ValidationError):
            PurchaseRequest(flight_id=1, buyer_email=email)
        with pytest.raises(InvalidInputError):
            validate_email(email)


@pytest.mark.parametrize("attempts", [0, -1])
def test_max_code_attempts_must_be_positive(attempts):
    with pytest.raises(ValueError):
        PurchaseService(MagicMock(), LogNotifier(), max_code_attempts=attempts)


def test_max_code_attempts_defaults_from_settings(monkeypatch):
    from reservations.services import purchases as purchases_module

    monkeypatch.setattr(purchases_module.settings, "ticket_code_max_attempts", 7)
    assert PurchaseService(MagicMock(), LogNotifier()).max_code_attempts == 7
    assert PurchaseService(MagicMock(), LogNotifier(), max_code_attempts=2).max_code_attempts == 2
