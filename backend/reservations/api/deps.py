from fastapi import Depends, Request
from sqlalchemy.orm import Session

from reservations.db.session import get_db
from reservations.services.notifier import Notifier
from reservations.services.purchases import PurchaseService


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_purchase_service(
    request: Request,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> PurchaseService:
    return PurchaseService(
        db,
        notifier,
        max_code_attempts=request.app.state.settings.ticket_code_max_attempts,
    )
