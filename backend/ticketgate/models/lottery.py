from sqlalchemy import String, Integer, ForeignKey, DateTime, Numeric, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
import uuid

from ticketgate.models.base import Base

class LotteryTicket(Base):
    __tablename__ = "lottery_tickets"
    __table_args__ = (
        CheckConstraint("status IN ('available', 'soft-locked', 'sold')", name="ck_lottery_tickets_status"),
        CheckConstraint("ticket_number > 0", name="ck_lottery_tickets_number_positive"),
        # sweeper scans soft-locked rows by age
        Index("ix_lottery_tickets_status_locked_at", "status", "locked_at"),
    )

    ticket_number: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    status: Mapped[str] = mapped_column(String(16), default="available")  # available, soft-locked, sold
    holder_session: Mapped[str | None] = mapped_column(String(128), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # set while a pending order holds the lock; expiry and release skip pinned rows
    pending_order_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class LotteryOrder(Base):
    __tablename__ = "lottery_orders"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_lottery_orders_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ticket_number: Mapped[int] = mapped_column(Integer, ForeignKey("lottery_tickets.ticket_number"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(32))
    email: Mapped[str] = mapped_column(String(255))
    parish: Mapped[str] = mapped_column(String(255))
    transaction_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    amount: Mapped[float] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending, confirmed, cancelled
    session_id: Mapped[str] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
