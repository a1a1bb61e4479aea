from fastapi import APIRouter, Depends, Query, status

from reservations.api.deps import get_purchase_service
from reservations.schemas.purchase import (
    CancellationResult,
    PurchaseReceipt,
    PurchaseRequest,
    PurchaseStats,
    TicketDetails,
)
from reservations.services.purchases import PurchaseService

router = APIRouter()


@router.post("", response_model=PurchaseReceipt, status_code=status.HTTP_201_CREATED, include_in_schema=False)
@router.post("/", response_model=PurchaseReceipt, status_code=status.HTTP_201_CREATED)
def create_purchase(payload: PurchaseRequest, service: PurchaseService = Depends(get_purchase_service)):
    """Buy one seat and mail the ticket.

    ``notification_sent`` is false when the sale went through but the mail did not.
    """
    return service.purchase(payload.flight_id, payload.buyer_email)


@router.get("/", response_model=list[TicketDetails])
def purchases_by_email(
    email: str = Query(..., description="Buyer email"),
    service: PurchaseService = Depends(get_purchase_service),
):
    return service.purchases_for(email)


@router.get("/stats", response_model=PurchaseStats)
def purchase_stats(service: PurchaseService = Depends(get_purchase_service)):
    return service.stats()


@router.get("/{ticket_code}", response_model=TicketDetails)
def get_purchase(ticket_code: str, service: PurchaseService = Depends(get_purchase_service)):
    return service.lookup(ticket_code)


@router.delete("/{ticket_code}", response_model=CancellationResult)
def cancel_purchase(ticket_code: str, service: PurchaseService = Depends(get_purchase_service)):
    """Delete the purchase and return its seat. Unknown codes report cancelled=false."""
    return CancellationResult(ticket_code=ticket_code.strip().upper(), cancelled=service.cancel(ticket_code))
