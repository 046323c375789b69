from datetime import timedelta
from typing import List

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
import jwt

from ticketgate.core.config import settings
from ticketgate.core.security import decode_access_token
from ticketgate.db.session import SessionLocal, get_db
from ticketgate.services.admission import AdmissionService
from ticketgate.services.issuance import TicketIssuer
from ticketgate.services.notifier import OutboxNotifier
from ticketgate.services.qr_signature import QRSignatureCodec
from ticketgate.services.rate_limit import FixedWindowRateLimiter
from ticketgate.services.reservation import ReservationEngine
from ticketgate.stores.inventory import InventoryStore

bearer_scheme = HTTPBearer()

# Process-wide collaborators, built once from the frozen settings.
qr_codec = QRSignatureCodec(settings.qr_signing_secret)
notifier = OutboxNotifier(SessionLocal)
availability_limiter = FixedWindowRateLimiter(settings.availability_rate_limit, settings.availability_rate_window_seconds)
order_limiter = FixedWindowRateLimiter(settings.order_rate_limit, settings.order_rate_window_seconds)

def get_current_roles(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> List[str]:
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        roles = [roles]
    return roles

def require_roles(*allowed: str):
    def checker(roles: List[str] = Depends(get_current_roles)):
        if not any(r in roles for r in allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return checker

def get_store(db: Session = Depends(get_db)) -> InventoryStore:
    return InventoryStore(db)

def get_reservation_engine(store: InventoryStore = Depends(get_store)) -> ReservationEngine:
    return ReservationEngine(
        store,
        timedelta(seconds=settings.lottery_lock_ttl_seconds),
        notifier=notifier,
        admin_emails=settings.admin_emails,
    )

def get_admission_service(store: InventoryStore = Depends(get_store)) -> AdmissionService:
    return AdmissionService(store, qr_codec, require_signed=settings.require_signed_scans)

def get_ticket_issuer(store: InventoryStore = Depends(get_store)) -> TicketIssuer:
    return TicketIssuer(store, qr_codec, notifier=notifier)

def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"

def rate_limited(limiter: FixedWindowRateLimiter, message: str):
    def checker(request: Request):
        result = limiter.limit(client_ip(request))
        if not result.success:
            retry_after = result.retry_after()
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": message, "retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )
    return checker
