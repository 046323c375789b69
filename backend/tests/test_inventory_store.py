from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from ticketgate.core.errors import InvalidTransitionError, RecordDecodeError
from ticketgate.db.session import SessionLocal
from ticketgate.models.lottery import LotteryTicket
from ticketgate.schemas.records import ConcertStatus, LotteryStatus, OrderStatus
from ticketgate.stores.inventory import InventoryStore

from conftest import T0


def _lock(store, number, session="sess-aaaa", at=T0):
    return store.compare_and_set_lottery(
        number, LotteryStatus.AVAILABLE, LotteryStatus.SOFT_LOCKED, {"holder_session": session, "locked_at": at}
    )


def test_add_lottery_tickets_is_idempotent(store):
    assert store.add_lottery_tickets([1, 2, 3]) == 3
    assert store.add_lottery_tickets([2, 3, 4]) == 1
    store.commit()
    assert [t.ticket_number for t in store.list_lottery_tickets()] == [1, 2, 3, 4]
    assert store.lottery_status_counts()[LotteryStatus.AVAILABLE] == 4


def test_compare_and_set_moves_only_from_expected_status(seeded_store):
    locked = _lock(seeded_store, 1)
    assert locked.status == LotteryStatus.SOFT_LOCKED
    assert locked.holder_session == "sess-aaaa"
    # Second attempt expects available but finds soft-locked.
    assert _lock(seeded_store, 1, session="sess-bbbb") is None
    seeded_store.commit()
    assert seeded_store.get_lottery_ticket(1).holder_session == "sess-aaaa"


def test_guard_columns_must_match(seeded_store):
    _lock(seeded_store, 2)
    seeded_store.commit()
    assert seeded_store.compare_and_set_lottery(
        2, LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE,
        {"holder_session": None, "locked_at": None}, guard={"holder_session": "someone-else"},
    ) is None
    released = seeded_store.compare_and_set_lottery(
        2, LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE,
        {"holder_session": None, "locked_at": None}, guard={"holder_session": "sess-aaaa"},
    )
    assert released.status == LotteryStatus.AVAILABLE
    assert released.locked_at is None


def test_locked_before_bounds_expiry(seeded_store):
    _lock(seeded_store, 3, at=T0)
    seeded_store.commit()
    cleared = {"holder_session": None, "locked_at": None}
    assert seeded_store.compare_and_set_lottery(
        3, LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE, cleared, locked_before=T0 - timedelta(seconds=1)
    ) is None
    assert seeded_store.compare_and_set_lottery(
        3, LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE, cleared, locked_before=T0
    ) is not None


def test_pinned_lock_survives_expiry_write(seeded_store):
    _lock(seeded_store, 4, at=T0)
    assert seeded_store.pin_lottery_lock(4, "sess-aaaa", T0, "order-1")
    # One pin per lock, and only on the exact lock that was read.
    assert not seeded_store.pin_lottery_lock(4, "sess-aaaa", T0, "order-2")
    assert not seeded_store.pin_lottery_lock(4, "sess-aaaa", T0 + timedelta(seconds=1), "order-3")
    seeded_store.commit()
    assert seeded_store.get_lottery_ticket(4).pending_order_id == "order-1"

    cleared = {"holder_session": None, "locked_at": None, "pending_order_id": None}
    assert seeded_store.compare_and_set_lottery(
        4, LotteryStatus.SOFT_LOCKED, LotteryStatus.AVAILABLE, cleared,
        locked_before=T0 + timedelta(days=1), require_unpinned=True,
    ) is None
    assert seeded_store.stale_lock_candidates(T0 + timedelta(days=1)) == []


@pytest.mark.parametrize(
    "expected, new",
    [
        (LotteryStatus.AVAILABLE, LotteryStatus.SOLD),
        (LotteryStatus.SOLD, LotteryStatus.AVAILABLE),
        (LotteryStatus.SOLD, LotteryStatus.SOFT_LOCKED),
    ],
)
def test_illegal_lottery_edges_raise(seeded_store, expected, new):
    with pytest.raises(InvalidTransitionError):
        seeded_store.compare_and_set_lottery(1, expected, new)


def test_sold_to_available_only_administratively(seeded_store):
    _lock(seeded_store, 4)
    seeded_store.compare_and_set_lottery(
        4, LotteryStatus.SOFT_LOCKED, LotteryStatus.SOLD,
        {"holder_session": None, "locked_at": None, "order_id": "ord-1"},
    )
    reset = seeded_store.compare_and_set_lottery(
        4, LotteryStatus.SOLD, LotteryStatus.AVAILABLE, {"order_id": None}, administrative=True
    )
    assert reset.status == LotteryStatus.AVAILABLE
    assert reset.order_id is None


@pytest.mark.parametrize(
    "expected, new",
    [
        (ConcertStatus.USED, ConcertStatus.UNUSED),
        (ConcertStatus.USED, ConcertStatus.VOID),
        (ConcertStatus.VOID, ConcertStatus.UNUSED),
        (ConcertStatus.VOID, ConcertStatus.USED),
    ],
)
def test_illegal_concert_edges_raise(store, expected, new):
    with pytest.raises(InvalidTransitionError):
        store.compare_and_set_concert("any", expected, new)


def test_order_cannot_leave_confirmed(store):
    with pytest.raises(InvalidTransitionError):
        store.compare_and_set_order("any", OrderStatus.CONFIRMED, OrderStatus.PENDING)


def test_interleaved_sessions_only_one_lock_wins(seeded_store):
    """Two sessions read 'available' and both try to write; one conditional update lands."""
    other_db = SessionLocal()
    try:
        other = InventoryStore(other_db)
        assert seeded_store.get_lottery_ticket(5).status == LotteryStatus.AVAILABLE
        assert other.get_lottery_ticket(5).status == LotteryStatus.AVAILABLE

        first = _lock(seeded_store, 5, session="sess-first")
        seeded_store.commit()
        second = _lock(other, 5, session="sess-second")
        other.commit()

        assert first is not None
        assert second is None
        assert other.get_lottery_ticket(5).holder_session == "sess-first"
    finally:
        other_db.close()


def test_tier_capacity_never_oversold(seeded_store):
    assert seeded_store.reserve_tier_capacity("gold", 2, T0).sold_tickets == 2
    assert seeded_store.reserve_tier_capacity("gold", 2, T0) is None
    assert seeded_store.reserve_tier_capacity("gold", 1, T0).available == 0
    seeded_store.commit()
    assert seeded_store.get_tier("gold").sold_tickets == 3


def test_upsert_tier_respects_sold_floor(seeded_store):
    seeded_store.reserve_tier_capacity("silver", 4, T0)
    seeded_store.commit()
    assert seeded_store.upsert_tier("silver", price=None, total_tickets=3, description=None, now=T0) is None
    seeded_store.rollback()
    updated = seeded_store.upsert_tier("silver", price=Decimal("300"), total_tickets=4, description="Silver", now=T0)
    assert updated.price == Decimal("300")
    assert updated.available == 0


def test_list_tiers_by_price_descending(seeded_store):
    seeded_store.upsert_tier("diamond", price=Decimal("1000"), total_tickets=1, description=None, now=T0)
    assert [t.tier for t in seeded_store.list_tiers()] == ["diamond", "gold", "silver"]
    assert seeded_store.get_tier("silver").display_name == "Silver"


def test_duplicate_transaction_insert_returns_none(seeded_store):
    _lock(seeded_store, 1)
    seeded_store.commit()
    kwargs = dict(
        ticket_number=1, session_id="sess-aaaa", name="A", phone="5551234", email="a@example.com",
        parish="Kingston", amount=Decimal("1000"), created_at=T0,
    )
    assert seeded_store.insert_order(transaction_id="TX-1", **kwargs) is not None
    seeded_store.commit()
    assert seeded_store.insert_order(transaction_id="TX-1", **kwargs) is None
    assert seeded_store.find_order_by_transaction("TX-1").status == OrderStatus.PENDING


def test_corrupt_row_is_rejected_on_read(seeded_store, db):
    # Soft-locked without holder or lockedAt violates the record schema.
    db.execute(update(LotteryTicket).where(LotteryTicket.ticket_number == 1).values(status="soft-locked"))
    db.commit()
    with pytest.raises(RecordDecodeError):
        seeded_store.get_lottery_ticket(1)
