from sqlalchemy import String, Integer, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from reservations.models.base import Base

class Purchase(Base):
    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    flight_id: Mapped[int] = mapped_column(Integer, ForeignKey("flights.id"), index=True)
    buyer_email: Mapped[str] = mapped_column(String(255), index=True)
    ticket_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
