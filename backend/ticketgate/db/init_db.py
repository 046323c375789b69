from decimal import Decimal

from ticketgate.core.clock import utcnow
from ticketgate.core.config import settings
from ticketgate.core.logging_config import get_logger
from ticketgate.db.session import SessionLocal, engine
from ticketgate.models import concert, lottery, notification  # noqa: F401
from ticketgate.models.base import Base
from ticketgate.stores.inventory import InventoryStore

logger = get_logger(__name__)

def create_tables():
    Base.metadata.create_all(bind=engine)

def drop_tables():
    Base.metadata.drop_all(bind=engine)

def seed_dev_data():
    """Idempotent: only missing lottery numbers and tiers are inserted."""
    db = SessionLocal()
    try:
        store = InventoryStore(db)
        added = store.add_lottery_tickets(list(range(1, settings.lottery_ticket_count + 1)))
        now = utcnow()
        for tier, price, total in settings.concert_tiers:
            if store.get_tier(tier) is None:
                store.upsert_tier(
                    tier,
                    price=Decimal(str(price)),
                    total_tickets=total,
                    description=f"{tier.capitalize()} Ticket",
                    now=now,
                )
        store.commit()
        logger.info("Seed data ensured", extra={"lottery_tickets_added": added})
    finally:
        db.close()
