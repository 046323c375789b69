"""Validated views of persisted rows.

The inventory store parses every row it reads into one of these models, so a
malformed row is rejected at the store boundary instead of leaking into the
reservation or scan logic.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LotteryStatus(str, Enum):
    AVAILABLE = "available"
    SOFT_LOCKED = "soft-locked"
    SOLD = "sold"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ConcertStatus(str, Enum):
    UNUSED = "unused"
    USED = "used"
    VOID = "void"


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class LotteryTicketRecord(_Record):
    ticket_number: int = Field(gt=0)
    status: LotteryStatus
    holder_session: Optional[str] = None
    locked_at: Optional[datetime] = None
    order_id: Optional[str] = None
    pending_order_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_lock_fields(self):
        if self.status == LotteryStatus.SOFT_LOCKED:
            if not self.holder_session or self.locked_at is None:
                raise ValueError("soft-locked ticket needs holder_session and locked_at")
        elif self.holder_session is not None or self.locked_at is not None:
            raise ValueError(f"{self.status.value} ticket must not carry a lock")
        if self.status == LotteryStatus.SOLD and not self.order_id:
            raise ValueError("sold ticket needs order_id")
        if self.status != LotteryStatus.SOLD and self.order_id is not None:
            raise ValueError("only sold tickets carry order_id")
        if self.status != LotteryStatus.SOFT_LOCKED and self.pending_order_id is not None:
            raise ValueError("only soft-locked tickets can be pinned by an order")
        return self


class LotteryOrderRecord(_Record):
    id: str
    ticket_number: int
    name: str
    phone: str
    email: str
    parish: str
    transaction_id: str
    amount: Decimal
    status: OrderStatus
    session_id: str
    created_at: datetime
    confirmed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_confirmation(self):
        if (self.status == OrderStatus.CONFIRMED) != (self.confirmed_at is not None):
            raise ValueError("confirmed_at is set iff the order is confirmed")
        return self


class ConcertTicketRecord(_Record):
    id: str
    tier: str
    status: ConcertStatus
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None
    name: str
    email: str
    phone: str
    order_id: str
    payment_amount: Decimal
    qr_data: str
    created_at: datetime

    @model_validator(mode="after")
    def _check_scan_fields(self):
        if self.status == ConcertStatus.USED and self.scanned_at is None:
            raise ValueError("used ticket needs scanned_at")
        if self.status == ConcertStatus.UNUSED and self.scanned_at is not None:
            raise ValueError("unused ticket must not carry scanned_at")
        return self


class TierInventoryRecord(_Record):
    tier: str
    price: Decimal = Field(ge=0)
    description: Optional[str] = None
    total_tickets: int = Field(ge=0)
    sold_tickets: int = Field(ge=0)

    @property
    def available(self) -> int:
        return max(0, self.total_tickets - self.sold_tickets)

    @property
    def display_name(self) -> str:
        return self.description or self.tier.capitalize()
