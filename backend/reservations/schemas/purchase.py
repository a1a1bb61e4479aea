from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, StringConstraints

from reservations.models.flight import MAX_FLIGHT_ID
from reservations.schemas.flight import FlightSummary

# Shared with the purchase service so HTTP and direct callers accept the same addresses
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class PurchaseRequest(BaseModel):
    flight_id: int = Field(..., gt=0, le=MAX_FLIGHT_ID, description="Flight to buy a seat on")
    buyer_email: Annotated[str, StringConstraints(strip_whitespace=True, pattern=EMAIL_PATTERN)]


class PurchaseRecord(BaseModel):
    """A purchase row joined with its flight."""
    id: int
    ticket_code: str
    buyer_email: str
    purchased_at: datetime
    flight: FlightSummary


class PurchaseReceipt(BaseModel):
    purchase_id: int
    ticket_code: str
    flight: FlightSummary
    buyer_email: str
    purchased_at: datetime
    seats_remaining: int
    notification_sent: bool = True
    warnings: list[str] = []
    instructions: list[str] = []


class TicketDetails(BaseModel):
    ticket_code: str
    status: str
    flight: FlightSummary
    buyer_email: str
    purchased_at: datetime
    instructions: list[str] = []


class CancellationResult(BaseModel):
    ticket_code: str
    cancelled: bool


class PurchaseStats(BaseModel):
    total_purchases: int = 0
    unique_buyers: int = 0
    total_revenue: float = 0.0
    average_price: float = 0.0
    first_purchase_at: Optional[datetime] = None
    last_purchase_at: Optional[datetime] = None
