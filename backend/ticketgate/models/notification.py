from sqlalchemy import Integer, String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from ticketgate.core.clock import utcnow
from ticketgate.models.base import Base

class Notification(Base):
    """Outbox row; an external mailer drains unsent rows."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_email: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(64))  # lottery_confirmed, concert_tickets
    message: Mapped[str] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    sent: Mapped[bool] = mapped_column(Boolean, default=False)
