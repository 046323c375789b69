from datetime import datetime, timedelta
import asyncio

from ticketgate.core.clock import utcnow
from ticketgate.core.config import settings
from ticketgate.core.errors import TicketGateError
from ticketgate.core.logging_config import get_logger
from ticketgate.db.session import SessionLocal
from ticketgate.services.reservation import ReservationEngine
from ticketgate.stores.inventory import InventoryStore

logger = get_logger(__name__)

STARTUP_DELAY_SECONDS = 3

def sweep_once(now: datetime | None = None) -> list[int]:
    """Run one expiry pass in its own session."""
    db = SessionLocal()
    try:
        engine = ReservationEngine(InventoryStore(db), timedelta(seconds=settings.lottery_lock_ttl_seconds))
        return engine.expire_stale_locks(now or utcnow())
    finally:
        db.close()

async def lock_sweep_loop():
    await asyncio.sleep(STARTUP_DELAY_SECONDS)
    while True:
        try:
            await asyncio.to_thread(sweep_once)
        except TicketGateError:
            # Store already logged the cause; try again next interval.
            logger.warning("Lock sweep skipped")
        except Exception:
            logger.exception("Lock sweep crashed")
        await asyncio.sleep(settings.lock_sweep_interval_seconds)
