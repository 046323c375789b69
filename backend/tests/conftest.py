import os
import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

# Must be set before anything imports ticketgate.core.config.
_DB_DIR = tempfile.mkdtemp(prefix="ticketgate-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-operator-secret-with-enough-length"
os.environ["QR_SIGNING_SECRET"] = "test-qr-secret-with-enough-length-0001"
os.environ["ADMIN_EMAILS"] = "admin@example.com"

import pytest

from ticketgate.api import deps
from ticketgate.db.init_db import create_tables, drop_tables
from ticketgate.db.session import SessionLocal
from ticketgate.stores.inventory import InventoryStore

T0 = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def fresh_db():
    drop_tables()
    create_tables()
    deps.availability_limiter.clear()
    deps.order_limiter.clear()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return InventoryStore(db)


@pytest.fixture
def seeded_store(store):
    """Five lottery tickets and two small concert tiers."""
    store.add_lottery_tickets([1, 2, 3, 4, 5])
    store.upsert_tier("gold", price=Decimal("500"), total_tickets=3, description="Gold Ticket", now=T0)
    store.upsert_tier("silver", price=Decimal("250"), total_tickets=10, description=None, now=T0)
    store.commit()
    return store
