from reservations.models.base import Base
from reservations.models.flight import MAX_FLIGHT_ID, Flight
from reservations.models.purchase import Purchase

__all__ = ["Base", "Flight", "MAX_FLIGHT_ID", "Purchase"]
