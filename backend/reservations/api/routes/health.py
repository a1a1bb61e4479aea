import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reservations.db.session import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
def health(
    request: Request,
    db: Session = Depends(get_db),
    check_mail: bool = Query(False, description="Also open a session with the mail server"),
):
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("[health] database check failed: %s", e)
        database = "unavailable"
    # The SMTP round trip can block for the full mail timeout, so it is opt-in
    mail = "skipped"
    if check_mail:
        notifier = request.app.state.notifier
        mail = "ok" if getattr(notifier, "verify", lambda: True)() else "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "mail": mail,
        "service": request.app.state.settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
