"""Typed outcomes of reservation and admission operations.

Losing a race, finding a ticket already consumed or presenting a forged QR
are ordinary business outcomes; they are returned, not raised.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ticketgate.schemas.records import (
    ConcertTicketRecord,
    LotteryOrderRecord,
    LotteryTicketRecord,
    TierInventoryRecord,
)


class ReservationOutcome(str, Enum):
    LOCKED = "locked"
    RELEASED = "released"
    SOLD = "sold"
    ALREADY_LOCKED = "already_locked"
    ALREADY_SOLD = "already_sold"
    NOT_HELD_BY_SESSION = "not_held_by_session"
    EXPIRED = "expired"
    ORDER_PENDING = "order_pending"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ReservationResult:
    outcome: ReservationOutcome
    ticket: Optional[LotteryTicketRecord] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (ReservationOutcome.LOCKED, ReservationOutcome.RELEASED, ReservationOutcome.SOLD)


class OrderOutcome(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    NOT_HELD_BY_SESSION = "not_held_by_session"
    EXPIRED = "expired"
    NOT_PENDING = "not_pending"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class OrderResult:
    outcome: OrderOutcome
    order: Optional[LotteryOrderRecord] = None
    existing_order_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (OrderOutcome.PLACED, OrderOutcome.CONFIRMED)


class IssueOutcome(str, Enum):
    ISSUED = "issued"
    SOLD_OUT = "sold_out"
    UNKNOWN_TIER = "unknown_tier"


@dataclass(frozen=True)
class IssueResult:
    outcome: IssueOutcome
    order_id: Optional[str] = None
    tickets: tuple[ConcertTicketRecord, ...] = ()
    tier: Optional[TierInventoryRecord] = None


class VerifyOutcome(str, Enum):
    VALID = "valid"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    NOT_FOUND = "not_found"
    VOID = "void"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class VerifyResult:
    outcome: VerifyOutcome
    ticket: Optional[ConcertTicketRecord] = None

    @property
    def valid(self) -> bool:
        return self.outcome == VerifyOutcome.VALID


class ScanOutcome(str, Enum):
    SCANNED = "scanned"
    ALREADY_SCANNED = "already_scanned"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    ID_MISMATCH = "id_mismatch"
    SIGNATURE_REQUIRED = "signature_required"
    NOT_FOUND = "not_found"
    VOID = "void"


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    ticket: Optional[ConcertTicketRecord] = None
    verified: bool = False

    @property
    def success(self) -> bool:
        return self.outcome == ScanOutcome.SCANNED

    @property
    def scanned_at(self) -> Optional[datetime]:
        return self.ticket.scanned_at if self.ticket else None


class SyncOutcome(str, Enum):
    SYNCED = "synced"
    ALREADY_SYNCED = "already_synced"
    CONFLICT = "conflict"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    ID_MISMATCH = "id_mismatch"
    SIGNATURE_REQUIRED = "signature_required"
    NOT_FOUND = "not_found"
    VOID = "void"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    ticket: Optional[ConcertTicketRecord] = None

    @property
    def conflict(self) -> bool:
        return self.outcome == SyncOutcome.CONFLICT

    @property
    def success(self) -> bool:
        return self.outcome in (SyncOutcome.SYNCED, SyncOutcome.ALREADY_SYNCED, SyncOutcome.CONFLICT)


class VoidOutcome(str, Enum):
    VOIDED = "voided"
    ALREADY_VOID = "already_void"
    ALREADY_USED = "already_used"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class VoidResult:
    outcome: VoidOutcome
    ticket: Optional[ConcertTicketRecord] = None
