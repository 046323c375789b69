from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ticketgate.api.deps import (
    availability_limiter,
    get_admission_service,
    get_store,
    get_ticket_issuer,
    order_limiter,
    rate_limited,
    require_roles,
)
from ticketgate.schemas.records import ConcertStatus, ConcertTicketRecord
from ticketgate.schemas.results import IssueOutcome, ScanOutcome, SyncOutcome, VerifyOutcome, VoidOutcome
from ticketgate.services.admission import AdmissionService
from ticketgate.services.issuance import ConcertBuyer, TicketIssuer, display_tier
from ticketgate.stores.inventory import InventoryStore

router = APIRouter()

class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class VerifyBody(_CamelBody):
    qr_data: str | dict[str, Any] = Field(alias="qrData")

class ScanBody(_CamelBody):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    qr_data: str | dict[str, Any] | None = Field(default=None, alias="qrData")
    device_id: str | None = Field(default=None, alias="deviceId", max_length=128)

class SyncScanBody(_CamelBody):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    scanned_at: datetime = Field(alias="scannedAt")
    device_id: str = Field(alias="deviceId", min_length=1, max_length=128)
    qr_data: str | dict[str, Any] | None = Field(default=None, alias="qrData")

class ConcertOrderBody(BaseModel):
    tier: str = Field(min_length=1, max_length=32)
    quantity: int = Field(1, ge=1, le=10, description="Number of tickets to purchase (1-10)")
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=5, max_length=32)

class TierConfigBody(BaseModel):
    tier: str = Field(min_length=1, max_length=32)
    price: Optional[Decimal] = Field(default=None, ge=0)
    total: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=255)

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None

def _ticket_out(t: ConcertTicketRecord, with_buyer: bool = True) -> dict:
    data = {
        "id": t.id,
        "tier": display_tier(t.tier),
        "status": t.status.value,
        "scannedAt": _iso(t.scanned_at),
    }
    if with_buyer:
        data.update({
            "buyerName": t.name,
            "buyerEmail": t.email,
            "buyerPhone": t.phone,
            "orderId": t.order_id,
            "paymentAmount": float(t.payment_amount),
        })
    return data

_QR_REJECTIONS = {
    ScanOutcome.MALFORMED: (status.HTTP_400_BAD_REQUEST, "Invalid QR format"),
    ScanOutcome.BAD_SIGNATURE: (status.HTTP_401_UNAUTHORIZED, "Invalid ticket signature. This ticket may be fake."),
    ScanOutcome.ID_MISMATCH: (status.HTTP_400_BAD_REQUEST, "ID mismatch"),
    ScanOutcome.SIGNATURE_REQUIRED: (status.HTTP_400_BAD_REQUEST, "Missing security signature. Please update the scanner."),
}

_SYNC_REJECTIONS = {SyncOutcome(o.value): o for o in _QR_REJECTIONS}

@router.post("/verify")
def verify_ticket(body: VerifyBody, service: AdmissionService = Depends(get_admission_service)):
    """Pre-check a presented QR without admitting the holder."""
    result = service.verify(body.qr_data)
    if result.outcome == VerifyOutcome.MALFORMED:
        return JSONResponse(status_code=400, content={"valid": False, "error": "Invalid QR code format"})
    if result.outcome == VerifyOutcome.BAD_SIGNATURE:
        return JSONResponse(status_code=400, content={"valid": False, "error": "Invalid ticket signature - possible forgery!"})
    if result.outcome == VerifyOutcome.NOT_FOUND:
        return JSONResponse(status_code=404, content={"valid": False, "error": "Ticket not found"})
    t = result.ticket
    if result.outcome == VerifyOutcome.VOID:
        return {"valid": False, "error": "This ticket has been voided", "ticket": _ticket_out(t, with_buyer=False)}
    if result.outcome == VerifyOutcome.ALREADY_USED:
        return {
            "valid": False,
            "error": "This ticket has already been scanned!",
            "alreadyScanned": True,
            "scannedAt": _iso(t.scanned_at),
            "ticket": _ticket_out(t),
        }
    return {"valid": True, "message": "Ticket is valid!", "ticket": _ticket_out(t)}

@router.post("/scan")
def scan_ticket(body: ScanBody, service: AdmissionService = Depends(get_admission_service)):
    result = service.scan(body.ticket_id, body.qr_data, device_id=body.device_id)
    if result.outcome in _QR_REJECTIONS:
        code, message = _QR_REJECTIONS[result.outcome]
        return JSONResponse(status_code=code, content={"success": False, "error": message})
    if result.outcome == ScanOutcome.NOT_FOUND:
        return JSONResponse(status_code=404, content={"success": False, "error": "Ticket not found"})
    if result.outcome == ScanOutcome.VOID:
        return JSONResponse(status_code=409, content={"success": False, "error": "This ticket has been voided"})
    if result.outcome == ScanOutcome.ALREADY_SCANNED:
        return {
            "success": False,
            "error": "Ticket already scanned!",
            "alreadyScanned": True,
            "scannedAt": _iso(result.scanned_at),
            "scannedBy": result.ticket.scanned_by,
        }
    return {
        "success": True,
        "message": "Ticket marked as scanned!",
        "verified": result.verified,
        "scannedAt": _iso(result.scanned_at),
        "ticket": _ticket_out(result.ticket),
    }

@router.post("/sync-scan")
def sync_scan(body: SyncScanBody, service: AdmissionService = Depends(get_admission_service)):
    """Reconcile a scan recorded while the device was offline."""
    result = service.sync_offline_scan(body.ticket_id, body.scanned_at, body.device_id, body.qr_data)
    if result.outcome in _SYNC_REJECTIONS:
        code, message = _QR_REJECTIONS[_SYNC_REJECTIONS[result.outcome]]
        return JSONResponse(status_code=code, content={"success": False, "error": message})
    if result.outcome == SyncOutcome.NOT_FOUND:
        return JSONResponse(status_code=404, content={"success": False, "error": "Ticket not found"})
    if result.outcome == SyncOutcome.VOID:
        return JSONResponse(status_code=409, content={"success": False, "error": "This ticket has been voided"})
    if result.outcome == SyncOutcome.CONFLICT:
        return {
            "success": True,
            "conflict": True,
            "message": "Ticket was already scanned by another device",
            "originalScan": {"scannedAt": _iso(result.ticket.scanned_at), "deviceId": result.ticket.scanned_by},
        }
    if result.outcome == SyncOutcome.ALREADY_SYNCED:
        return {"success": True, "conflict": False, "message": "Already synced"}
    return {"success": True, "conflict": False, "message": "Scan synced successfully"}

@router.get("/tiers", dependencies=[Depends(rate_limited(availability_limiter, "Too many requests. Please wait before trying again."))])
def tier_availability(issuer: TicketIssuer = Depends(get_ticket_issuer)):
    tiers = [
        {
            "tier": display_tier(t.tier),
            "price": float(t.price),
            "description": t.display_name,
            "total": t.total_tickets,
            "available": t.available,
            "sold": t.sold_tickets,
        }
        for t in issuer.tier_availability()
    ]
    return {"success": True, "tiers": tiers}

@router.post("/orders", dependencies=[Depends(rate_limited(order_limiter, "Too many orders. Please wait before trying again."))])
def create_concert_order(body: ConcertOrderBody, issuer: TicketIssuer = Depends(get_ticket_issuer)):
    result = issuer.issue_tickets(body.tier, body.quantity, ConcertBuyer(name=body.name, email=body.email, phone=body.phone))
    if result.outcome == IssueOutcome.UNKNOWN_TIER:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown tier")
    if result.outcome == IssueOutcome.SOLD_OUT:
        available = result.tier.available if result.tier else 0
        return JSONResponse(status_code=409, content={"success": False, "error": "Not enough tickets available", "available": available})
    return {
        "success": True,
        "orderId": result.order_id,
        "quantity": len(result.tickets),
        "totalAmount": float(sum(t.payment_amount for t in result.tickets)),
        "tickets": [{"id": t.id, "tier": display_tier(t.tier), "status": t.status.value, "qrData": t.qr_data} for t in result.tickets],
    }

@router.post("/admin/tiers", dependencies=[Depends(require_roles("admin"))])
def update_tier_config(body: TierConfigBody, issuer: TicketIssuer = Depends(get_ticket_issuer)):
    if body.price is None and body.total is None and body.description is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates provided")
    record = issuer.upsert_tier(body.tier, price=body.price, total_tickets=body.total, description=body.description)
    if record is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Total cannot be lower than tickets already sold")
    return {
        "tier": record.tier,
        "price": float(record.price),
        "description": record.display_name,
        "total": record.total_tickets,
        "sold": record.sold_tickets,
        "available": record.available,
    }

@router.post("/admin/tickets/{ticket_id}/void", dependencies=[Depends(require_roles("admin"))])
def void_ticket(ticket_id: str, issuer: TicketIssuer = Depends(get_ticket_issuer)):
    result = issuer.void_ticket(ticket_id)
    if result.outcome == VoidOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if result.outcome == VoidOutcome.ALREADY_USED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ticket already scanned")
    return {"status": result.ticket.status.value, "id": result.ticket.id}

@router.get("/admin/stats", dependencies=[Depends(require_roles("admin"))])
def admission_stats(store: InventoryStore = Depends(get_store)):
    tiers = []
    for t in store.list_tiers():
        counts = store.count_concert_by_status(t.tier)
        tiers.append({
            "tier": t.tier,
            "total": t.total_tickets,
            "sold": t.sold_tickets,
            "available": t.available,
            "revenue": float(t.price * t.sold_tickets),
            "admitted": counts[ConcertStatus.USED],
            "void": counts[ConcertStatus.VOID],
        })
    return {"tiers": tiers}
