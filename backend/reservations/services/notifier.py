"""Ticket confirmation mail.

The purchase flow calls ``send_ticket`` only after its transaction is committed;
any failure raised from here is reported as ``NotificationError`` and never
undoes a sale.
"""
from __future__ import annotations

import html
import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Protocol

from reservations.core.config import Settings
from reservations.core.errors import NotificationError
from reservations.schemas.flight import FlightSummary

logger = logging.getLogger(__name__)

TRAVEL_INSTRUCTIONS = [
    "Show this digital ticket at check-in",
    "Arrive at the airport at least 1 hour before departure",
    "Carry a valid identity document",
]


class Notifier(Protocol):
    def send_ticket(self, ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> None:
        ...


def _fmt_departure(value: datetime) -> str:
    return value.strftime("%A %d %B %Y, %H:%M")


def _fmt_price(value: float) -> str:
    return f"${value:,.2f}"


def render_ticket_text(ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> str:
    lines = [
        "YOUR FLIGHT TICKET",
        "==================",
        "",
        f"Ticket code: {ticket_code}",
        "",
        "FLIGHT",
        "------",
        f"From:      {flight.origin}",
        f"To:        {flight.destination}",
        f"Departure: {_fmt_departure(flight.departure)}",
        f"Price:     {_fmt_price(flight.price)}",
        "",
        "PURCHASE",
        "--------",
        f"Email:     {buyer_email}",
        f"Purchased: {purchased_at.strftime('%d %B %Y, %H:%M %Z').strip()}",
        "",
        "BEFORE YOU FLY",
        "--------------",
    ]
    lines += [f"- {item}" for item in TRAVEL_INSTRUCTIONS]
    lines += [f"- Keep your code {ticket_code} for future lookups", "", "This is an automated message, please do not reply."]
    return "\n".join(lines)


def render_ticket_html(ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> str:
    e = html.escape
    rows = [
        ("From", flight.origin),
        ("To", flight.destination),
        ("Departure", _fmt_departure(flight.departure)),
        ("Price", _fmt_price(flight.price)),
    ]
    cells = "".join(
        f'<tr><td style="color:#666;padding:4px 12px 4px 0">{e(label)}</td><td><strong>{e(value)}</strong></td></tr>'
        for label, value in rows
    )
    items = "".join(f"<li>{e(item)}</li>" for item in TRAVEL_INSTRUCTIONS)
    return (
        '<!DOCTYPE html><html><body style="font-family:Arial,sans-serif;color:#333">'
        "<h1>Your flight ticket</h1>"
        f'<p style="font-size:24px;letter-spacing:2px;color:#667eea"><strong>{e(ticket_code)}</strong></p>'
        f"<table>{cells}</table>"
        f"<h3>Before you fly</h3><ul>{items}<li>Keep your code <strong>{e(ticket_code)}</strong> for future lookups</li></ul>"
        f"<p>Purchased on {e(purchased_at.strftime('%d %B %Y, %H:%M'))} by {e(buyer_email)}</p>"
        '<p style="font-size:12px;color:#666">This is an automated message, please do not reply.</p>'
        "</body></html>"
    )


def build_ticket_message(sender: str, ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"Your flight ticket - {ticket_code}"
    msg["From"] = sender
    msg["To"] = buyer_email
    msg["Message-ID"] = make_msgid(domain=sender.rsplit("@", 1)[-1].rstrip(">"))
    msg.set_content(render_ticket_text(ticket_code, flight, buyer_email, purchased_at))
    msg.add_alternative(render_ticket_html(ticket_code, flight, buyer_email, purchased_at), subtype="html")
    return msg


class SmtpNotifier:
    def __init__(self, host: str, port: int = 587, user: str | None = None, password: str | None = None,
                 starttls: bool = True, timeout: float = 10.0, sender: str = "reservations@airline.example",
                 sender_name: str | None = None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout
        self.sender = formataddr((sender_name, sender)) if sender_name else sender

    def _connect(self) -> smtplib.SMTP:
        client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.starttls:
            client.starttls()
        if self.user:
            client.login(self.user, self.password or "")
        return client

    def verify(self) -> bool:
        try:
            with self._connect() as client:
                client.noop()
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("[mail] SMTP check against %s:%s failed: %s", self.host, self.port, e)
            return False

    def send_ticket(self, ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> None:
        msg = build_ticket_message(self.sender, ticket_code, flight, buyer_email, purchased_at)
        try:
            with self._connect() as client:
                client.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationError("Mail server rejected the credentials") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise NotificationError(f"Recipient {buyer_email} was refused") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Could not deliver ticket mail: {e}") from e
        logger.info("[mail] ticket %s sent to %s (%s)", ticket_code, buyer_email, msg["Message-ID"])


class LogNotifier:
    """Writes confirmations to the log instead of a mail server.

    Keeps every message in ``sent`` so tests and the dev console can inspect them.
    """

    def __init__(self, sender: str = "reservations@airline.example"):
        self.sender = sender
        self.sent: list[EmailMessage] = []

    def verify(self) -> bool:
        return True

    def send_ticket(self, ticket_code: str, flight: FlightSummary, buyer_email: str, purchased_at: datetime) -> None:
        msg = build_ticket_message(self.sender, ticket_code, flight, buyer_email, purchased_at)
        self.sent.append(msg)
        logger.info("[mail] (log only) ticket %s for %s: %s -> %s", ticket_code, buyer_email, flight.origin, flight.destination)


def build_notifier(settings: Settings) -> SmtpNotifier | LogNotifier:
    if settings.smtp_enabled:
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout,
            sender=settings.mail_from,
            sender_name=settings.mail_from_name,
        )
    logger.info("[mail] SMTP_HOST not set, ticket mails will only be logged")
    return LogNotifier(sender=settings.mail_from)
