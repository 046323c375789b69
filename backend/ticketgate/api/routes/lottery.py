from decimal import Decimal
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ticketgate.api.deps import get_reservation_engine, get_store, order_limiter, rate_limited, require_roles
from ticketgate.schemas.records import LotteryOrderRecord, LotteryTicketRecord
from ticketgate.schemas.results import OrderOutcome, ReservationOutcome
from ticketgate.services.lock_sweeper import sweep_once
from ticketgate.services.reservation import BuyerDetails, ReservationEngine
from ticketgate.stores.inventory import InventoryStore

router = APIRouter()

# Session ids are opaque client tokens kept in browser storage.
SessionId = Annotated[str, Field(alias="sessionId", min_length=8, max_length=64)]

class LockBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    ticket_number: int = Field(alias="ticketNumber", gt=0)
    session_id: SessionId

class SessionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    session_id: SessionId

class ConfirmLockBody(SessionBody):
    order_id: str = Field(alias="orderId", min_length=1, max_length=64)

class LotteryOrderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    ticket_number: int = Field(alias="ticketNumber", gt=0)
    session_id: SessionId
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=5, max_length=32)
    email: EmailStr
    parish: str = Field(min_length=1, max_length=64)
    transaction_id: str = Field(alias="transactionId", min_length=3, max_length=128)
    amount: Decimal = Field(gt=0)

class AddTicketsBody(BaseModel):
    count: int = Field(ge=1, le=10000)

def _ticket_out(t: LotteryTicketRecord, session_id: Optional[str] = None) -> dict:
    return {
        "ticketNumber": t.ticket_number,
        "status": t.status.value,
        "lockedAt": t.locked_at.isoformat() if t.locked_at else None,
        "mine": session_id is not None and t.holder_session == session_id,
    }

def _order_out(o: LotteryOrderRecord) -> dict:
    return {
        "id": o.id,
        "ticketNumber": o.ticket_number,
        "status": o.status.value,
        "transactionId": o.transaction_id,
        "amount": float(o.amount),
        "createdAt": o.created_at.isoformat(),
        "confirmedAt": o.confirmed_at.isoformat() if o.confirmed_at else None,
    }

_RESERVATION_ERRORS = {
    ReservationOutcome.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Ticket not found"),
    ReservationOutcome.ALREADY_LOCKED: (status.HTTP_409_CONFLICT, "Ticket is being purchased by someone else"),
    ReservationOutcome.ALREADY_SOLD: (status.HTTP_409_CONFLICT, "Ticket already sold"),
    ReservationOutcome.NOT_HELD_BY_SESSION: (status.HTTP_409_CONFLICT, "Ticket is not held by this session"),
    ReservationOutcome.EXPIRED: (status.HTTP_409_CONFLICT, "Reservation expired, please select the ticket again"),
    ReservationOutcome.ORDER_PENDING: (status.HTTP_409_CONFLICT, "Ticket has a pending order; confirm the order instead"),
}

_ORDER_ERRORS = {
    OrderOutcome.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Not found"),
    OrderOutcome.NOT_HELD_BY_SESSION: (status.HTTP_409_CONFLICT, "Ticket is not held by this session"),
    OrderOutcome.EXPIRED: (status.HTTP_409_CONFLICT, "Reservation expired, please select the ticket again"),
    OrderOutcome.NOT_PENDING: (status.HTTP_409_CONFLICT, "Order is not pending"),
}

def _raise_reservation(outcome: ReservationOutcome):
    code, message = _RESERVATION_ERRORS[outcome]
    raise HTTPException(status_code=code, detail=message)

@router.get("/tickets")
def list_tickets(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    engine: ReservationEngine = Depends(get_reservation_engine),
    store: InventoryStore = Depends(get_store),
):
    """Ticket board; ``mine`` marks locks held by the calling session."""
    tickets = [_ticket_out(t, session_id) for t in engine.list_tickets()]
    counts = {k.value: v for k, v in store.lottery_status_counts().items()}
    return {"tickets": tickets, "counts": counts, "lockSeconds": int(engine.ttl.total_seconds())}

@router.post("/locks")
def acquire_lock(body: LockBody, engine: ReservationEngine = Depends(get_reservation_engine)):
    result = engine.acquire_lock(body.ticket_number, body.session_id)
    if not result.ok:
        _raise_reservation(result.outcome)
    t = result.ticket
    return {
        "ticketNumber": t.ticket_number,
        "status": t.status.value,
        "lockedAt": t.locked_at.isoformat(),
        "expiresAt": (t.locked_at + engine.ttl).isoformat(),
    }

@router.delete("/locks/{ticket_number}")
def release_lock(ticket_number: int, body: SessionBody, engine: ReservationEngine = Depends(get_reservation_engine)):
    result = engine.release_lock(ticket_number, body.session_id)
    if not result.ok:
        _raise_reservation(result.outcome)
    return {"ticketNumber": ticket_number, "status": result.ticket.status.value}

@router.post("/locks/{ticket_number}/confirm", dependencies=[Depends(require_roles("admin"))])
def confirm_lock(ticket_number: int, body: ConfirmLockBody, engine: ReservationEngine = Depends(get_reservation_engine)):
    result = engine.confirm_lock(ticket_number, body.session_id, body.order_id)
    if not result.ok:
        _raise_reservation(result.outcome)
    return {"ticketNumber": ticket_number, "status": result.ticket.status.value, "orderId": result.ticket.order_id}

@router.post("/orders", dependencies=[Depends(rate_limited(order_limiter, "Too many orders. Please wait before trying again."))])
def place_order(body: LotteryOrderBody, engine: ReservationEngine = Depends(get_reservation_engine)):
    buyer = BuyerDetails(name=body.name, phone=body.phone, email=body.email, parish=body.parish)
    result = engine.place_order(body.ticket_number, body.session_id, buyer, body.transaction_id, body.amount)
    if result.outcome == OrderOutcome.DUPLICATE_TRANSACTION:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": "This transaction ID has already been used", "existingOrderId": result.existing_order_id},
        )
    if not result.ok:
        code, message = _ORDER_ERRORS[result.outcome]
        raise HTTPException(status_code=code, detail=message)
    return {"success": True, "order": _order_out(result.order)}

@router.post("/admin/orders/{order_id}/confirm", dependencies=[Depends(require_roles("admin"))])
def confirm_order(order_id: str, engine: ReservationEngine = Depends(get_reservation_engine)):
    result = engine.confirm_order(order_id)
    if not result.ok:
        code, message = _ORDER_ERRORS[result.outcome]
        raise HTTPException(status_code=code, detail=message)
    return {"success": True, "order": _order_out(result.order)}

@router.post("/admin/tickets/{ticket_number}/reset", dependencies=[Depends(require_roles("admin"))])
def reset_ticket(ticket_number: int, engine: ReservationEngine = Depends(get_reservation_engine)):
    result = engine.reset_ticket(ticket_number)
    if result.outcome == ReservationOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return _ticket_out(result.ticket)

@router.post("/admin/tickets", dependencies=[Depends(require_roles("admin"))])
def add_tickets(body: AddTicketsBody, store: InventoryStore = Depends(get_store)):
    """Extend the board up to ``count`` tickets numbered from 1."""
    added = store.add_lottery_tickets(list(range(1, body.count + 1)))
    store.commit()
    return {"added": added}

@router.post("/admin/sweep", dependencies=[Depends(require_roles("admin"))])
def sweep_locks():
    return {"reset": len(sweep_once())}
