from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from reservations.core.errors import FlightUnavailableError, InvalidInputError
from reservations.db.session import get_db
from reservations.models.flight import MAX_FLIGHT_ID
from reservations.schemas.flight import FlightOut, FlightSearchResult, flight_out
from reservations.services.inventory import FlightInventory

router = APIRouter()

NO_FLIGHTS_MESSAGE = "No flights available for the given route and date"


@router.get("/", response_model=FlightSearchResult)
def search_flights(
    db: Session = Depends(get_db),
    origin: str | None = Query(None, description="Origin city or airport"),
    destination: str | None = Query(None, description="Destination city or airport"),
    date: str | None = Query(None, description="Departure date YYYY-MM-DD"),
):
    """Flights with seats left for one route and day, earliest departure first."""
    origin = (origin or "").strip()
    destination = (destination or "").strip()
    if not origin or not destination or not date:
        raise InvalidInputError("origin, destination and date are required")
    try:
        day = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidInputError("Invalid date format, expected YYYY-MM-DD")
    flights = FlightInventory(db).search_flights(origin, destination, day)
    items = [flight_out(f) for f in flights]
    return FlightSearchResult(
        items=items,
        total=len(items),
        message=None if items else NO_FLIGHTS_MESSAGE,
    )


@router.get("/{flight_id}", response_model=FlightOut)
def flight_detail(flight_id: int = Path(..., gt=0, le=MAX_FLIGHT_ID), db: Session = Depends(get_db)):
    # Sold-out flights stay visible here (sold_out=true); only purchases skip them
    f = FlightInventory(db).get_flight_details(flight_id)
    if not f:
        raise FlightUnavailableError(f"Flight {flight_id} not found")
    return flight_out(f)
