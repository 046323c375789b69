"""Concert tier inventory and ticket issuance."""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from ticketgate.core.clock import utcnow
from ticketgate.core.logging_config import get_logger
from ticketgate.schemas.records import ConcertStatus, TierInventoryRecord
from ticketgate.schemas.results import IssueOutcome, IssueResult, VoidOutcome, VoidResult
from ticketgate.services.notifier import OutboxNotifier
from ticketgate.services.qr_signature import QRSignatureCodec
from ticketgate.stores.inventory import InventoryStore

logger = get_logger(__name__)


def normalize_tier(tier: str) -> str:
    return tier.strip().lower()


def display_tier(tier: str) -> str:
    return tier[:1].upper() + tier[1:].lower()


@dataclass(frozen=True)
class ConcertBuyer:
    name: str
    email: str
    phone: str


class TicketIssuer:
    def __init__(
        self,
        store: InventoryStore,
        codec: QRSignatureCodec,
        notifier: OutboxNotifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._codec = codec
        self._notifier = notifier
        self._clock = clock

    def _new_order_id(self, now: datetime) -> str:
        return f"ORD-{int(now.timestamp() * 1000)}-{secrets.token_hex(5)[:9]}"

    def issue_tickets(self, tier: str, quantity: int, buyer: ConcertBuyer) -> IssueResult:
        """Sell ``quantity`` tickets of a tier, minting a signed QR for each.

        The capacity check and the sold counter increment are one conditional
        UPDATE; tickets are inserted in the same transaction.
        """
        tier = normalize_tier(tier)
        now = self._clock()
        if self._store.get_tier(tier) is None:
            return IssueResult(IssueOutcome.UNKNOWN_TIER)

        reserved = self._store.reserve_tier_capacity(tier, quantity, now)
        if reserved is None:
            self._store.rollback()
            return IssueResult(IssueOutcome.SOLD_OUT, tier=self._store.get_tier(tier))

        order_id = self._new_order_id(now)
        rows = []
        for _ in range(quantity):
            ticket_id = str(uuid.uuid4())
            payload = self._codec.mint(ticket_id, buyer.name, tier)
            rows.append({
                "id": ticket_id,
                "tier": tier,
                "name": buyer.name,
                "email": buyer.email.lower(),
                "phone": buyer.phone,
                "order_id": order_id,
                "payment_amount": reserved.price,
                "qr_data": self._codec.sign(payload),
                "created_at": now,
            })
        tickets = self._store.insert_concert_tickets(rows)
        self._store.commit()
        logger.info(
            "Concert tickets issued",
            extra={"order_id": order_id, "tier": tier, "quantity": quantity, "sold": reserved.sold_tickets},
        )

        if self._notifier is not None:
            self._notifier.notify(
                [buyer.email],
                "concert_tickets",
                f"Order {order_id}: {quantity} {display_tier(tier)} ticket(s). "
                "Show the QR code of each ticket at the entrance.",
            )
        return IssueResult(IssueOutcome.ISSUED, order_id=order_id, tickets=tuple(tickets), tier=reserved)

    def void_ticket(self, ticket_id: str) -> VoidResult:
        voided = self._store.compare_and_set_concert(ticket_id, ConcertStatus.UNUSED, ConcertStatus.VOID)
        if voided is not None:
            self._store.commit()
            logger.warning("Ticket voided", extra={"ticket_id": ticket_id})
            return VoidResult(VoidOutcome.VOIDED, voided)
        self._store.rollback()
        current = self._store.get_concert_ticket(ticket_id)
        if current is None:
            return VoidResult(VoidOutcome.NOT_FOUND)
        if current.status == ConcertStatus.VOID:
            return VoidResult(VoidOutcome.ALREADY_VOID, current)
        return VoidResult(VoidOutcome.ALREADY_USED, current)

    def tier_availability(self) -> list[TierInventoryRecord]:
        return self._store.list_tiers()

    def upsert_tier(
        self,
        tier: str,
        price: Decimal | None = None,
        total_tickets: int | None = None,
        description: str | None = None,
    ) -> Optional[TierInventoryRecord]:
        """None when the new total would fall below tickets already sold."""
        record = self._store.upsert_tier(
            normalize_tier(tier),
            price=price,
            total_tickets=total_tickets,
            description=description,
            now=self._clock(),
        )
        if record is None:
            self._store.rollback()
            return None
        self._store.commit()
        logger.info("Tier configuration updated", extra={"tier": record.tier, "total": record.total_tickets})
        return record
