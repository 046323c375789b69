"""Lottery reservation engine.

Numbered tickets move ``available -> soft-locked -> sold`` (or back to
``available`` on release/expiry). The engine keeps no state of its own: each
decision reads the store and then writes through a compare-and-set, and the
write's outcome is what gets reported. A lost race is a normal
``ReservationResult``, not an exception.

A soft lock expires ``ttl`` after ``locked_at``. Once the holder places an
order the ticket row records that pending order as its pin and the lock no
longer expires; the admin confirmation of that order turns it into a sale.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from ticketgate.core.clock import utcnow
from ticketgate.core.logging_config import get_logger
from ticketgate.schemas.records import LotteryStatus, LotteryTicketRecord, OrderStatus
from ticketgate.schemas.results import (
    OrderOutcome,
    OrderResult,
    ReservationOutcome,
    ReservationResult,
)
from ticketgate.services.notifier import OutboxNotifier
from ticketgate.stores.inventory import InventoryStore

logger = get_logger(__name__)

_CLEARED_LOCK = {"holder_session": None, "locked_at": None, "pending_order_id": None}


@dataclass(frozen=True)
class BuyerDetails:
    name: str
    phone: str
    email: str
    parish: str


class ReservationEngine:
    def __init__(
        self,
        store: InventoryStore,
        ttl: timedelta,
        notifier: OutboxNotifier | None = None,
        admin_emails: list[str] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if ttl <= timedelta(0):
            raise ValueError("lock ttl must be positive")
        self._store = store
        self._ttl = ttl
        self._notifier = notifier
        self._admin_emails = admin_emails or []
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def is_expired(self, ticket: LotteryTicketRecord, now: datetime) -> bool:
        return (
            ticket.status == LotteryStatus.SOFT_LOCKED
            and ticket.locked_at is not None
            and now >= ticket.locked_at + self._ttl
        )

    def _expire_one(self, ticket: LotteryTicketRecord, now: datetime) -> bool:
        """Reset one stale lock, conditioned on it being the lock we saw."""
        reset = self._store.compare_and_set_lottery(
            ticket.ticket_number,
            LotteryStatus.SOFT_LOCKED,
            LotteryStatus.AVAILABLE,
            _CLEARED_LOCK,
            guard={"holder_session": ticket.holder_session, "locked_at": ticket.locked_at},
            locked_before=now - self._ttl,
            require_unpinned=True,
        )
        return reset is not None

    def _classify_taken(self, ticket: Optional[LotteryTicketRecord], session_id: str) -> ReservationResult:
        if ticket is None:
            return ReservationResult(ReservationOutcome.NOT_FOUND)
        if ticket.status == LotteryStatus.SOLD:
            return ReservationResult(ReservationOutcome.ALREADY_SOLD, ticket)
        if ticket.status == LotteryStatus.SOFT_LOCKED and ticket.holder_session == session_id:
            return ReservationResult(ReservationOutcome.LOCKED, ticket)
        if ticket.status == LotteryStatus.SOFT_LOCKED:
            return ReservationResult(ReservationOutcome.ALREADY_LOCKED, ticket)
        return ReservationResult(ReservationOutcome.NOT_HELD_BY_SESSION, ticket)

    def acquire_lock(self, ticket_number: int, session_id: str, now: datetime | None = None) -> ReservationResult:
        now = now or self._clock()
        ticket = self._store.get_lottery_ticket(ticket_number)
        if ticket is None:
            return ReservationResult(ReservationOutcome.NOT_FOUND)

        # Lazy expiry: a stale lock on the target ticket is cleared before judging availability.
        if self.is_expired(ticket, now):
            if self._expire_one(ticket, now):
                logger.info("Expired stale lock on acquire", extra={"ticket_number": ticket_number})
                self._store.commit()
            ticket = self._store.get_lottery_ticket(ticket_number)
            if ticket is None:
                return ReservationResult(ReservationOutcome.NOT_FOUND)

        if ticket.status != LotteryStatus.AVAILABLE:
            return self._classify_taken(ticket, session_id)

        locked = self._store.compare_and_set_lottery(
            ticket_number,
            LotteryStatus.AVAILABLE,
            LotteryStatus.SOFT_LOCKED,
            {"holder_session": session_id, "locked_at": now},
        )
        if locked is None:
            self._store.rollback()
            return self._classify_taken(self._store.get_lottery_ticket(ticket_number), session_id)
        self._store.commit()
        logger.info("Ticket soft-locked", extra={"ticket_number": ticket_number})
        return ReservationResult(ReservationOutcome.LOCKED, locked)

    def confirm_lock(
        self, ticket_number: int, session_id: str, order_id: str, now: datetime | None = None
    ) -> ReservationResult:
        now = now or self._clock()
        ticket = self._store.get_lottery_ticket(ticket_number)
        if ticket is None:
            return ReservationResult(ReservationOutcome.NOT_FOUND)
        if ticket.status == LotteryStatus.SOLD:
            return ReservationResult(ReservationOutcome.ALREADY_SOLD, ticket)
        if ticket.status != LotteryStatus.SOFT_LOCKED or ticket.holder_session != session_id:
            return ReservationResult(ReservationOutcome.NOT_HELD_BY_SESSION, ticket)
        if ticket.pending_order_id is not None:
            # The payment-proof order decides this sale; see confirm_order.
            return ReservationResult(ReservationOutcome.ORDER_PENDING, ticket)
        if self.is_expired(ticket, now):
            return ReservationResult(ReservationOutcome.EXPIRED, ticket)

        sold = self._store.compare_and_set_lottery(
            ticket_number,
            LotteryStatus.SOFT_LOCKED,
            LotteryStatus.SOLD,
            {**_CLEARED_LOCK, "order_id": order_id},
            guard={"holder_session": session_id, "locked_at": ticket.locked_at, "pending_order_id": None},
        )
        if sold is None:
            self._store.rollback()
            current = self._store.get_lottery_ticket(ticket_number)
            if current is not None and current.status == LotteryStatus.SOLD:
                return ReservationResult(ReservationOutcome.ALREADY_SOLD, current)
            if current is not None and current.pending_order_id is not None:
                return ReservationResult(ReservationOutcome.ORDER_PENDING, current)
            return ReservationResult(ReservationOutcome.NOT_HELD_BY_SESSION, current)
        self._store.commit()
        logger.info("Ticket sold", extra={"ticket_number": ticket_number, "order_id": order_id})
        return ReservationResult(ReservationOutcome.SOLD, sold)

    def release_lock(self, ticket_number: int, session_id: str) -> ReservationResult:
        """Client-initiated release. A lock pinned by a pending order is no longer the session's to release."""
        ticket = self._store.get_lottery_ticket(ticket_number)
        if ticket is None:
            return ReservationResult(ReservationOutcome.NOT_FOUND)
        if ticket.status != LotteryStatus.SOFT_LOCKED or ticket.holder_session != session_id:
            return ReservationResult(ReservationOutcome.NOT_HELD_BY_SESSION, ticket)
        released = self._store.compare_and_set_lottery(
            ticket_number,
            LotteryStatus.SOFT_LOCKED,
            LotteryStatus.AVAILABLE,
            _CLEARED_LOCK,
            guard={"holder_session": session_id},
            require_unpinned=True,
        )
        if released is None:
            self._store.rollback()
            return ReservationResult(ReservationOutcome.NOT_HELD_BY_SESSION, self._store.get_lottery_ticket(ticket_number))
        self._store.commit()
        logger.info("Ticket released", extra={"ticket_number": ticket_number})
        return ReservationResult(ReservationOutcome.RELEASED, released)

    def expire_stale_locks(self, now: datetime | None = None, ttl: timedelta | None = None) -> list[int]:
        """Reset every unpinned lock with ``locked_at <= now - ttl``; returns the reset numbers.

        Idempotent and safe next to concurrent acquisition: each reset is
        conditioned on the exact lock that was found stale.
        """
        now = now or self._clock()
        ttl = ttl if ttl is not None else self._ttl
        if ttl <= timedelta(0):
            raise ValueError("lock ttl must be positive")
        cutoff = now - ttl
        reset = []
        for ticket in self._store.stale_lock_candidates(cutoff):
            done = self._store.compare_and_set_lottery(
                ticket.ticket_number,
                LotteryStatus.SOFT_LOCKED,
                LotteryStatus.AVAILABLE,
                _CLEARED_LOCK,
                guard={"holder_session": ticket.holder_session, "locked_at": ticket.locked_at},
                locked_before=cutoff,
                require_unpinned=True,
            )
            if done is not None:
                reset.append(ticket.ticket_number)
        self._store.commit()
        if reset:
            logger.info("Expired stale locks", extra={"count": len(reset), "ticket_numbers": reset})
        return reset

    def list_tickets(self) -> list[LotteryTicketRecord]:
        return self._store.list_lottery_tickets()

    # --- orders ----------------------------------------------------------

    def place_order(
        self,
        ticket_number: int,
        session_id: str,
        buyer: BuyerDetails,
        transaction_id: str,
        amount: Decimal,
        now: datetime | None = None,
    ) -> OrderResult:
        """Record payment proof against a held ticket; the order starts pending."""
        now = now or self._clock()
        existing = self._store.find_order_by_transaction(transaction_id)
        if existing is not None:
            return OrderResult(OrderOutcome.DUPLICATE_TRANSACTION, existing_order_id=existing.id)

        ticket = self._store.get_lottery_ticket(ticket_number)
        if ticket is None:
            return OrderResult(OrderOutcome.NOT_FOUND)
        if ticket.status != LotteryStatus.SOFT_LOCKED or ticket.holder_session != session_id:
            return OrderResult(OrderOutcome.NOT_HELD_BY_SESSION)
        if ticket.pending_order_id is not None:
            return OrderResult(OrderOutcome.NOT_HELD_BY_SESSION)
        if self.is_expired(ticket, now):
            return OrderResult(OrderOutcome.EXPIRED)

        order = self._store.insert_order(
            ticket_number=ticket_number,
            session_id=session_id,
            name=buyer.name,
            phone=buyer.phone,
            email=buyer.email,
            parish=buyer.parish,
            transaction_id=transaction_id,
            amount=amount,
            created_at=now,
        )
        if order is None:
            raced = self._store.find_order_by_transaction(transaction_id)
            return OrderResult(OrderOutcome.DUPLICATE_TRANSACTION, existing_order_id=raced.id if raced else None)
        # The order only counts if the lock it pins is still the one we checked.
        if not self._store.pin_lottery_lock(ticket_number, session_id, ticket.locked_at, order.id):
            self._store.rollback()
            return OrderResult(OrderOutcome.NOT_HELD_BY_SESSION)
        self._store.commit()
        logger.info("Lottery order placed", extra={"order_id": order.id, "ticket_number": ticket_number})

        if self._notifier is not None:
            self._notifier.notify(
                [buyer.email],
                "lottery_order_received",
                f"We received your order {order.id} for ticket #{ticket_number}. "
                "Your e-ticket follows once the payment is verified.",
            )
            self._notifier.notify(
                self._admin_emails,
                "lottery_order_pending",
                f"New lottery order {order.id}: ticket #{ticket_number}, {buyer.name}, "
                f"transaction {transaction_id}, amount {amount}.",
            )
        return OrderResult(OrderOutcome.PLACED, order)

    def confirm_order(self, order_id: str, now: datetime | None = None) -> OrderResult:
        """Admin verification: order pending -> confirmed and its ticket soft-locked -> sold, together."""
        now = now or self._clock()
        order = self._store.get_order(order_id)
        if order is None:
            return OrderResult(OrderOutcome.NOT_FOUND)
        if order.status != OrderStatus.PENDING:
            return OrderResult(OrderOutcome.NOT_PENDING, order)

        confirmed = self._store.compare_and_set_order(
            order_id, OrderStatus.PENDING, OrderStatus.CONFIRMED, {"confirmed_at": now}
        )
        if confirmed is None:
            self._store.rollback()
            return OrderResult(OrderOutcome.NOT_PENDING, self._store.get_order(order_id))
        sold = self._store.compare_and_set_lottery(
            order.ticket_number,
            LotteryStatus.SOFT_LOCKED,
            LotteryStatus.SOLD,
            {**_CLEARED_LOCK, "order_id": order.id},
            guard={"holder_session": order.session_id, "pending_order_id": order.id},
        )
        if sold is None:
            self._store.rollback()
            logger.warning(
                "Order ticket no longer held",
                extra={"order_id": order_id, "ticket_number": order.ticket_number},
            )
            return OrderResult(OrderOutcome.NOT_HELD_BY_SESSION, order)
        self._store.commit()
        logger.info("Lottery order confirmed", extra={"order_id": order_id, "ticket_number": order.ticket_number})

        if self._notifier is not None:
            self._notifier.notify(
                [confirmed.email],
                "lottery_confirmed",
                f"Your payment is verified. Lottery ticket #{confirmed.ticket_number} (order {confirmed.id}) is yours.",
            )
        return OrderResult(OrderOutcome.CONFIRMED, confirmed)

    def reset_ticket(self, ticket_number: int) -> ReservationResult:
        """Administrative reset of any ticket back to available.

        Pending orders on the ticket are cancelled in the same transaction so
        none of them can pin the next holder's lock.
        """
        ticket = self._store.get_lottery_ticket(ticket_number)
        if ticket is None:
            return ReservationResult(ReservationOutcome.NOT_FOUND)
        if ticket.status == LotteryStatus.AVAILABLE:
            return ReservationResult(ReservationOutcome.RELEASED, ticket)
        reset = self._store.compare_and_set_lottery(
            ticket_number,
            ticket.status,
            LotteryStatus.AVAILABLE,
            {**_CLEARED_LOCK, "order_id": None},
            administrative=True,
        )
        if reset is None:
            self._store.rollback()
            # Status moved underneath us; retry against the fresh state.
            return self.reset_ticket(ticket_number)
        cancelled = self._store.cancel_pending_orders(ticket_number)
        self._store.commit()
        logger.warning(
            "Ticket reset by admin",
            extra={"ticket_number": ticket_number, "previous": ticket.status.value, "cancelled_orders": cancelled},
        )
        return ReservationResult(ReservationOutcome.RELEASED, reset)
