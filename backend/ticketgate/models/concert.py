from sqlalchemy import String, Integer, ForeignKey, DateTime, Numeric, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from ticketgate.models.base import Base

class TierInventory(Base):
    __tablename__ = "concert_ticket_inventory"
    __table_args__ = (
        CheckConstraint("sold_tickets >= 0", name="ck_inventory_sold_non_negative"),
        CheckConstraint("sold_tickets <= total_tickets", name="ck_inventory_sold_within_total"),
    )

    tier: Mapped[str] = mapped_column(String(32), primary_key=True)  # stored lower case
    price: Mapped[float] = mapped_column(Numeric(10, 2))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_tickets: Mapped[int] = mapped_column(Integer, default=0)
    sold_tickets: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ConcertTicket(Base):
    __tablename__ = "concert_tickets"
    __table_args__ = (
        CheckConstraint("status IN ('unused', 'used', 'void')", name="ck_concert_tickets_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tier: Mapped[str] = mapped_column(String(32), ForeignKey("concert_ticket_inventory.tier"), index=True)
    status: Mapped[str] = mapped_column(String(16), default="unused")  # unused, used, void
    scanned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    scanned_by: Mapped[str | None] = mapped_column(String(128), nullable=True)  # device id
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), index=True)
    phone: Mapped[str] = mapped_column(String(32))
    order_id: Mapped[str] = mapped_column(String(64), index=True)
    payment_amount: Mapped[float] = mapped_column(Numeric(10, 2))
    qr_data: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime)
