"""Inventory store: the only writer of ticket, order and tier state.

Every status change is a single conditional UPDATE whose WHERE clause repeats
the status the caller expects (plus any guard columns); the affected row count
decides the outcome. Nothing here reads a status and then writes it in a
separate unconditioned statement.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ticketgate.core.errors import InvalidTransitionError, RecordDecodeError, StoreUnavailableError
from ticketgate.core.logging_config import get_logger
from ticketgate.models.concert import ConcertTicket, TierInventory
from ticketgate.models.lottery import LotteryOrder, LotteryTicket
from ticketgate.schemas.records import (
    ConcertStatus,
    ConcertTicketRecord,
    LotteryOrderRecord,
    LotteryStatus,
    LotteryTicketRecord,
    OrderStatus,
    TierInventoryRecord,
)

logger = get_logger(__name__)

R = TypeVar("R", bound=BaseModel)

LOTTERY_EDGES = {
    (LotteryStatus.AVAILABLE, LotteryStatus.SOFT_LOCKED),
    (LotteryStatus.SOFT_LOCKED, LotteryStatus.SOLD),
    (LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE),
}
# Administrative reset is the only way out of "sold".
LOTTERY_ADMIN_EDGES = LOTTERY_EDGES | {(LotteryStatus.SOLD, LotteryStatus.AVAILABLE)}
CONCERT_EDGES = {
    (ConcertStatus.UNUSED, ConcertStatus.USED),
    (ConcertStatus.UNUSED, ConcertStatus.VOID),
}
ORDER_EDGES = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
}


class InventoryStore:
    def __init__(self, db: Session):
        self._db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Store operation failed", extra={"operation": operation}, exc_info=True)
            raise StoreUnavailableError(f"{operation} failed") from exc

    def _decode(self, model: Type[R], row: Any, table: str, key: object) -> R:
        try:
            return model.model_validate(row)
        except ValidationError as exc:
            logger.error("Malformed row", extra={"table": table, "key": str(key)})
            raise RecordDecodeError(table, key, str(exc)) from exc

    def commit(self) -> None:
        with self._guard("commit"):
            self._db.commit()

    def rollback(self) -> None:
        self._db.rollback()

    # --- lottery tickets -------------------------------------------------

    def _load_lottery(self, ticket_number: int) -> Optional[LotteryTicketRecord]:
        row = self._db.execute(
            select(LotteryTicket)
            .where(LotteryTicket.ticket_number == ticket_number)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        return self._decode(LotteryTicketRecord, row, "lottery_tickets", ticket_number)

    def get_lottery_ticket(self, ticket_number: int) -> Optional[LotteryTicketRecord]:
        with self._guard("get_lottery_ticket"):
            return self._load_lottery(ticket_number)

    def list_lottery_tickets(self, status: LotteryStatus | None = None) -> list[LotteryTicketRecord]:
        with self._guard("list_lottery_tickets"):
            q = select(LotteryTicket).order_by(LotteryTicket.ticket_number)
            if status is not None:
                q = q.where(LotteryTicket.status == status.value)
            rows = self._db.execute(q.execution_options(populate_existing=True)).scalars().all()
            return [self._decode(LotteryTicketRecord, r, "lottery_tickets", r.ticket_number) for r in rows]

    def lottery_status_counts(self) -> dict[LotteryStatus, int]:
        with self._guard("lottery_status_counts"):
            rows = self._db.execute(
                select(LotteryTicket.status, func.count()).group_by(LotteryTicket.status)
            ).all()
        counts = {status: 0 for status in LotteryStatus}
        for status, count in rows:
            counts[LotteryStatus(status)] = count
        return counts

    def add_lottery_tickets(self, numbers: list[int]) -> int:
        """Insert any missing ticket numbers as available; returns how many were added."""
        with self._guard("add_lottery_tickets"):
            existing = set(
                self._db.execute(
                    select(LotteryTicket.ticket_number).where(LotteryTicket.ticket_number.in_(numbers))
                ).scalars()
            )
            added = [n for n in numbers if n not in existing]
            for n in added:
                self._db.add(LotteryTicket(ticket_number=n, status=LotteryStatus.AVAILABLE.value))
            self._db.flush()
            return len(added)

    def compare_and_set_lottery(
        self,
        ticket_number: int,
        expected: LotteryStatus,
        new: LotteryStatus,
        fields: Mapping[str, Any] | None = None,
        *,
        guard: Mapping[str, Any] | None = None,
        locked_before: datetime | None = None,
        require_unpinned: bool = False,
        administrative: bool = False,
    ) -> Optional[LotteryTicketRecord]:
        """Move a ticket from ``expected`` to ``new`` if it is still ``expected``.

        ``guard`` adds column equality conditions (``None`` matches NULL),
        ``locked_before`` requires ``locked_at <= locked_before`` and
        ``require_unpinned`` requires that no pending order pins the ticket.

        Returns the updated record, or None when the conditions no longer hold
        (someone else won the race).

        Raises:
            InvalidTransitionError: ``expected -> new`` is not a legal edge.
        """
        edges = LOTTERY_ADMIN_EDGES if administrative else LOTTERY_EDGES
        if (expected, new) not in edges:
            raise InvalidTransitionError("lottery ticket", expected.value, new.value)

        conditions = [
            LotteryTicket.ticket_number == ticket_number,
            LotteryTicket.status == expected.value,
        ]
        for name, value in (guard or {}).items():
            column = getattr(LotteryTicket, name)
            conditions.append(column.is_(None) if value is None else column == value)
        if locked_before is not None:
            conditions.append(LotteryTicket.locked_at <= locked_before)
        if require_unpinned:
            conditions.append(LotteryTicket.pending_order_id.is_(None))

        stmt = (
            update(LotteryTicket)
            .where(*conditions)
            .values(status=new.value, **dict(fields or {}))
            .execution_options(synchronize_session=False)
        )
        with self._guard("compare_and_set_lottery"):
            result = self._db.execute(stmt)
            if result.rowcount != 1:
                return None
            return self._load_lottery(ticket_number)

    def pin_lottery_lock(self, ticket_number: int, session_id: str, locked_at: datetime, order_id: str) -> bool:
        """Record ``order_id`` as the pending order holding this exact lock.

        False when the lock is no longer the one that was read or is already
        pinned. The pin lives on the ticket row, so a concurrent expiry that
        re-checks the row after this commits sees it.
        """
        stmt = (
            update(LotteryTicket)
            .where(
                LotteryTicket.ticket_number == ticket_number,
                LotteryTicket.status == LotteryStatus.SOFT_LOCKED.value,
                LotteryTicket.holder_session == session_id,
                LotteryTicket.locked_at == locked_at,
                LotteryTicket.pending_order_id.is_(None),
            )
            .values(pending_order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        with self._guard("pin_lottery_lock"):
            return self._db.execute(stmt).rowcount == 1

    def stale_lock_candidates(self, cutoff: datetime) -> list[LotteryTicketRecord]:
        with self._guard("stale_lock_candidates"):
            rows = self._db.execute(
                select(LotteryTicket)
                .where(
                    LotteryTicket.status == LotteryStatus.SOFT_LOCKED.value,
                    LotteryTicket.locked_at <= cutoff,
                    LotteryTicket.pending_order_id.is_(None),
                )
                .order_by(LotteryTicket.ticket_number)
                .execution_options(populate_existing=True)
            ).scalars().all()
            return [self._decode(LotteryTicketRecord, r, "lottery_tickets", r.ticket_number) for r in rows]

    # --- lottery orders --------------------------------------------------

    def _load_order(self, order_id: str) -> Optional[LotteryOrderRecord]:
        row = self._db.execute(
            select(LotteryOrder).where(LotteryOrder.id == order_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        return self._decode(LotteryOrderRecord, row, "lottery_orders", order_id)

    def get_order(self, order_id: str) -> Optional[LotteryOrderRecord]:
        with self._guard("get_order"):
            return self._load_order(order_id)

    def find_order_by_transaction(self, transaction_id: str) -> Optional[LotteryOrderRecord]:
        with self._guard("find_order_by_transaction"):
            row = self._db.execute(
                select(LotteryOrder).where(LotteryOrder.transaction_id == transaction_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            return self._decode(LotteryOrderRecord, row, "lottery_orders", row.id)

    def insert_order(
        self,
        *,
        ticket_number: int,
        session_id: str,
        name: str,
        phone: str,
        email: str,
        parish: str,
        transaction_id: str,
        amount: Decimal,
        created_at: datetime,
    ) -> Optional[LotteryOrderRecord]:
        """Insert a pending order; None if the transaction id is already used.

        Must be the first write of its transaction: a duplicate rolls the
        whole transaction back.
        """
        order = LotteryOrder(
            ticket_number=ticket_number,
            session_id=session_id,
            name=name,
            phone=phone,
            email=email,
            parish=parish,
            transaction_id=transaction_id,
            amount=amount,
            status=OrderStatus.PENDING.value,
            created_at=created_at,
        )
        try:
            self._db.add(order)
            self._db.flush()
        except IntegrityError:
            self._db.rollback()
            return None
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Store operation failed", extra={"operation": "insert_order"}, exc_info=True)
            raise StoreUnavailableError("insert_order failed") from exc
        return self._decode(LotteryOrderRecord, order, "lottery_orders", order.id)

    def compare_and_set_order(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        fields: Mapping[str, Any] | None = None,
    ) -> Optional[LotteryOrderRecord]:
        if (expected, new) not in ORDER_EDGES:
            raise InvalidTransitionError("lottery order", expected.value, new.value)
        stmt = (
            update(LotteryOrder)
            .where(LotteryOrder.id == order_id, LotteryOrder.status == expected.value)
            .values(status=new.value, **dict(fields or {}))
            .execution_options(synchronize_session=False)
        )
        with self._guard("compare_and_set_order"):
            if self._db.execute(stmt).rowcount != 1:
                return None
            return self._load_order(order_id)

    def cancel_pending_orders(self, ticket_number: int) -> int:
        """Move every pending order on a ticket to cancelled; returns how many."""
        stmt = (
            update(LotteryOrder)
            .where(
                LotteryOrder.ticket_number == ticket_number,
                LotteryOrder.status == OrderStatus.PENDING.value,
            )
            .values(status=OrderStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        with self._guard("cancel_pending_orders"):
            return self._db.execute(stmt).rowcount

    # --- concert tickets -------------------------------------------------

    def _load_concert(self, ticket_id: str) -> Optional[ConcertTicketRecord]:
        row = self._db.execute(
            select(ConcertTicket).where(ConcertTicket.id == ticket_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        return self._decode(ConcertTicketRecord, row, "concert_tickets", ticket_id)

    def get_concert_ticket(self, ticket_id: str) -> Optional[ConcertTicketRecord]:
        with self._guard("get_concert_ticket"):
            return self._load_concert(ticket_id)

    def compare_and_set_concert(
        self,
        ticket_id: str,
        expected: ConcertStatus,
        new: ConcertStatus,
        fields: Mapping[str, Any] | None = None,
    ) -> Optional[ConcertTicketRecord]:
        if (expected, new) not in CONCERT_EDGES:
            raise InvalidTransitionError("concert ticket", expected.value, new.value)
        stmt = (
            update(ConcertTicket)
            .where(ConcertTicket.id == ticket_id, ConcertTicket.status == expected.value)
            .values(status=new.value, **dict(fields or {}))
            .execution_options(synchronize_session=False)
        )
        with self._guard("compare_and_set_concert"):
            if self._db.execute(stmt).rowcount != 1:
                return None
            return self._load_concert(ticket_id)

    def insert_concert_tickets(self, rows: list[dict[str, Any]]) -> list[ConcertTicketRecord]:
        with self._guard("insert_concert_tickets"):
            tickets = [ConcertTicket(status=ConcertStatus.UNUSED.value, **row) for row in rows]
            self._db.add_all(tickets)
            self._db.flush()
            return [self._decode(ConcertTicketRecord, t, "concert_tickets", t.id) for t in tickets]

    def count_concert_by_status(self, tier: str | None = None) -> dict[ConcertStatus, int]:
        with self._guard("count_concert_by_status"):
            q = select(ConcertTicket.status, func.count()).group_by(ConcertTicket.status)
            if tier is not None:
                q = q.where(ConcertTicket.tier == tier)
            rows = self._db.execute(q).all()
        counts = {status: 0 for status in ConcertStatus}
        for status, count in rows:
            counts[ConcertStatus(status)] = count
        return counts

    # --- tier inventory --------------------------------------------------

    def _load_tier(self, tier: str) -> Optional[TierInventoryRecord]:
        row = self._db.execute(
            select(TierInventory).where(TierInventory.tier == tier).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            return None
        return self._decode(TierInventoryRecord, row, "concert_ticket_inventory", tier)

    def get_tier(self, tier: str) -> Optional[TierInventoryRecord]:
        with self._guard("get_tier"):
            return self._load_tier(tier)

    def list_tiers(self) -> list[TierInventoryRecord]:
        """Tier summary for availability display, most expensive first."""
        with self._guard("list_tiers"):
            rows = self._db.execute(
                select(TierInventory).order_by(TierInventory.price.desc(), TierInventory.tier)
            ).scalars().all()
            return [self._decode(TierInventoryRecord, r, "concert_ticket_inventory", r.tier) for r in rows]

    def reserve_tier_capacity(self, tier: str, quantity: int, now: datetime) -> Optional[TierInventoryRecord]:
        """Atomically add ``quantity`` to sold_tickets if capacity remains; None otherwise."""
        if quantity < 1:
            raise ValueError("quantity must be positive")
        stmt = (
            update(TierInventory)
            .where(
                TierInventory.tier == tier,
                TierInventory.sold_tickets + quantity <= TierInventory.total_tickets,
            )
            .values(sold_tickets=TierInventory.sold_tickets + quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._guard("reserve_tier_capacity"):
            if self._db.execute(stmt).rowcount != 1:
                return None
            return self._load_tier(tier)

    def upsert_tier(
        self,
        tier: str,
        *,
        price: Decimal | None,
        total_tickets: int | None,
        description: str | None,
        now: datetime,
    ) -> Optional[TierInventoryRecord]:
        """Create or update tier configuration; None if total would drop below sold.

        Admin-only, low-contention field; the capacity floor is still checked in
        the UPDATE itself because sales run concurrently.
        """
        with self._guard("upsert_tier"):
            existing = self._db.get(TierInventory, tier)
            if existing is None:
                self._db.add(
                    TierInventory(
                        tier=tier,
                        price=price if price is not None else Decimal("0"),
                        description=description,
                        total_tickets=total_tickets or 0,
                        sold_tickets=0,
                        updated_at=now,
                    )
                )
                self._db.flush()
                return self._load_tier(tier)
            values: dict[str, Any] = {"updated_at": now}
            if price is not None:
                values["price"] = price
            if description is not None:
                values["description"] = description
            conditions = [TierInventory.tier == tier]
            if total_tickets is not None:
                values["total_tickets"] = total_tickets
                conditions.append(TierInventory.sold_tickets <= total_tickets)
            result = self._db.execute(
                update(TierInventory).where(*conditions).values(**values).execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return self._load_tier(tier)
