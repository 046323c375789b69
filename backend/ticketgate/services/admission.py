"""Point-of-entry verification and admission for concert tickets.

Per ticket: ``unused -> used`` on the first successful scan; ``void`` is
never admissible; scanning a ``used`` ticket again reports the original scan
instead of overwriting it. When a QR payload is presented its signature is
checked before the ticket is looked up, so a forger learns nothing about
which ticket ids exist.
"""

from datetime import datetime
from typing import Any, Callable, Optional

from ticketgate.core.clock import to_naive_utc, utcnow
from ticketgate.core.errors import MalformedPayloadError
from ticketgate.core.logging_config import get_logger
from ticketgate.schemas.records import ConcertStatus, ConcertTicketRecord
from ticketgate.schemas.results import (
    ScanOutcome,
    ScanResult,
    SyncOutcome,
    SyncResult,
    VerifyOutcome,
    VerifyResult,
)
from ticketgate.services.qr_signature import QRPayload, QRSignatureCodec
from ticketgate.stores.inventory import InventoryStore

logger = get_logger(__name__)


class AdmissionService:
    def __init__(
        self,
        store: InventoryStore,
        codec: QRSignatureCodec,
        require_signed: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._codec = codec
        self._require_signed = require_signed
        self._clock = clock

    def _check_qr(self, ticket_id: str, qr_data: Any) -> tuple[Optional[ScanOutcome], bool]:
        """Return (rejection, verified). Rejection is None when the scan may proceed."""
        if qr_data is None:
            if self._require_signed:
                logger.warning("Unsigned scan rejected", extra={"event": "security.unsigned_scan", "ticket_id": ticket_id})
                return ScanOutcome.SIGNATURE_REQUIRED, False
            logger.warning("Scan without signature verification", extra={"event": "security.unsigned_scan", "ticket_id": ticket_id})
            return None, False
        try:
            payload = self._codec.load(qr_data)
        except MalformedPayloadError:
            logger.warning("Malformed QR presented", extra={"event": "security.malformed_qr", "ticket_id": ticket_id})
            return ScanOutcome.MALFORMED, False
        if not self._codec.verify(payload):
            logger.warning("Invalid QR signature", extra={"event": "security.forged_signature", "ticket_id": ticket_id})
            return ScanOutcome.BAD_SIGNATURE, False
        if payload.id != ticket_id:
            logger.warning(
                "QR id does not match scanned id",
                extra={"event": "security.id_mismatch", "ticket_id": ticket_id, "qr_id": payload.id},
            )
            return ScanOutcome.ID_MISMATCH, False
        return None, True

    def verify(self, qr_data: Any) -> VerifyResult:
        """Read-only pre-check of a presented QR; never changes state."""
        try:
            payload: QRPayload = self._codec.load(qr_data)
        except MalformedPayloadError:
            logger.warning("Malformed QR presented", extra={"event": "security.malformed_qr"})
            return VerifyResult(VerifyOutcome.MALFORMED)
        if not self._codec.verify(payload):
            logger.warning("Invalid QR signature", extra={"event": "security.forged_signature", "ticket_id": payload.id})
            return VerifyResult(VerifyOutcome.BAD_SIGNATURE)

        ticket = self._store.get_concert_ticket(payload.id)
        if ticket is None:
            return VerifyResult(VerifyOutcome.NOT_FOUND)
        if ticket.status == ConcertStatus.VOID:
            return VerifyResult(VerifyOutcome.VOID, ticket)
        if ticket.status == ConcertStatus.USED or ticket.scanned_at is not None:
            return VerifyResult(VerifyOutcome.ALREADY_USED, ticket)
        return VerifyResult(VerifyOutcome.VALID, ticket)

    def _mark_used(self, ticket_id: str, scanned_at: datetime, device_id: str | None) -> Optional[ConcertTicketRecord]:
        used = self._store.compare_and_set_concert(
            ticket_id,
            ConcertStatus.UNUSED,
            ConcertStatus.USED,
            {"scanned_at": scanned_at, "scanned_by": device_id},
        )
        if used is None:
            self._store.rollback()
            return None
        self._store.commit()
        return used

    def scan(
        self,
        ticket_id: str,
        qr_data: Any = None,
        device_id: str | None = None,
        now: datetime | None = None,
    ) -> ScanResult:
        rejection, verified = self._check_qr(ticket_id, qr_data)
        if rejection is not None:
            return ScanResult(rejection)

        used = self._mark_used(ticket_id, now or self._clock(), device_id)
        if used is not None:
            logger.info("Ticket admitted", extra={"ticket_id": ticket_id, "device_id": device_id, "verified": verified})
            return ScanResult(ScanOutcome.SCANNED, used, verified)

        current = self._store.get_concert_ticket(ticket_id)
        if current is None:
            return ScanResult(ScanOutcome.NOT_FOUND, verified=verified)
        if current.status == ConcertStatus.VOID:
            logger.warning("Void ticket presented", extra={"ticket_id": ticket_id, "device_id": device_id})
            return ScanResult(ScanOutcome.VOID, current, verified)
        logger.info(
            "Ticket already scanned",
            extra={"ticket_id": ticket_id, "scanned_at": str(current.scanned_at), "scanned_by": current.scanned_by},
        )
        return ScanResult(ScanOutcome.ALREADY_SCANNED, current, verified)

    def sync_offline_scan(
        self,
        ticket_id: str,
        scanned_at: datetime,
        device_id: str,
        qr_data: Any = None,
    ) -> SyncResult:
        """Reconcile a scan a device performed while disconnected.

        The device's own timestamp is recorded when the ticket is still
        unused. Offline clocks are not trusted to order competing scans: a
        ticket already used by another device is reported as a conflict for an
        operator, carrying the original scan.
        """
        rejection, _verified = self._check_qr(ticket_id, qr_data)
        if rejection is not None:
            return SyncResult(SyncOutcome(rejection.value))

        used = self._mark_used(ticket_id, to_naive_utc(scanned_at), device_id)
        if used is not None:
            logger.info("Offline scan synced", extra={"ticket_id": ticket_id, "device_id": device_id})
            return SyncResult(SyncOutcome.SYNCED, used)

        current = self._store.get_concert_ticket(ticket_id)
        if current is None:
            return SyncResult(SyncOutcome.NOT_FOUND)
        if current.status == ConcertStatus.VOID:
            return SyncResult(SyncOutcome.VOID, current)
        if current.scanned_by == device_id:
            return SyncResult(SyncOutcome.ALREADY_SYNCED, current)
        logger.warning(
            "Offline scan conflicts with an earlier scan",
            extra={
                "event": "admission.conflict",
                "ticket_id": ticket_id,
                "device_id": device_id,
                "original_device_id": current.scanned_by,
                "original_scanned_at": str(current.scanned_at),
            },
        )
        return SyncResult(SyncOutcome.CONFLICT, current)
