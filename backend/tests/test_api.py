from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from ticketgate.api.deps import qr_codec
from ticketgate.core.clock import utcnow
from ticketgate.core.security import create_access_token
from ticketgate.main import app
from ticketgate.schemas.records import LotteryStatus

client = TestClient(app)


def admin_headers():
    token = create_access_token("admin@example.com", roles=["admin"])
    return {"Authorization": f"Bearer {token}"}


def buy(tier="gold", quantity=1):
    r = client.post(
        "/concert/orders",
        json={"tier": tier, "quantity": quantity, "name": "Ana Brown", "email": "ana@example.com", "phone": "8765551234"},
    )
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture(autouse=True)
def inventory(seeded_store):
    return seeded_store


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_tiers_listed_by_price():
    r = client.get("/concert/tiers")
    assert r.status_code == 200
    tiers = r.json()["tiers"]
    assert [t["tier"] for t in tiers] == ["Gold", "Silver"]
    assert tiers[0] == {"tier": "Gold", "price": 500.0, "description": "Gold Ticket", "total": 3, "available": 3, "sold": 0}


def test_purchase_scan_and_rescan():
    order = buy(quantity=2)
    assert order["quantity"] == 2
    assert order["totalAmount"] == 1000.0
    ticket = order["tickets"][0]

    r = client.post("/concert/verify", json={"qrData": ticket["qrData"]})
    assert r.status_code == 200
    assert r.json()["valid"] is True

    r = client.post("/concert/scan", json={"ticketId": ticket["id"], "qrData": ticket["qrData"], "deviceId": "gate-1"})
    assert r.status_code == 200, r.text
    first = r.json()
    assert first["success"] is True
    assert first["verified"] is True

    r = client.post("/concert/scan", json={"ticketId": ticket["id"], "qrData": ticket["qrData"], "deviceId": "gate-2"})
    again = r.json()
    assert again["success"] is False
    assert again["alreadyScanned"] is True
    assert again["scannedAt"] == first["scannedAt"]
    assert again["scannedBy"] == "gate-1"


def test_not_enough_tickets_is_conflict():
    r = client.post(
        "/concert/orders",
        json={"tier": "gold", "quantity": 4, "name": "Ana", "email": "ana@example.com", "phone": "8765551234"},
    )
    assert r.status_code == 409
    assert r.json()["available"] == 3


def test_order_validation():
    r = client.post(
        "/concert/orders",
        json={"tier": "gold", "quantity": 11, "name": "Ana", "email": "not-an-email", "phone": "8765551234"},
    )
    assert r.status_code == 422
    r = client.post(
        "/concert/orders",
        json={"tier": "platinum", "quantity": 1, "name": "Ana", "email": "ana@example.com", "phone": "8765551234"},
    )
    assert r.status_code == 400


def test_forged_qr_rejected():
    ticket = buy()["tickets"][0]
    payload = qr_codec.parse(ticket["qrData"])
    forged = payload.model_copy(update={"tier": "diamond"}).model_dump()

    r = client.post("/concert/scan", json={"ticketId": ticket["id"], "qrData": forged})
    assert r.status_code == 401
    assert r.json()["success"] is False

    r = client.post("/concert/verify", json={"qrData": forged})
    assert r.status_code == 400
    assert r.json()["valid"] is False

    r = client.post("/concert/verify", json={"qrData": "garbage"})
    assert r.status_code == 400


def test_scan_unknown_ticket():
    r = client.post("/concert/scan", json={"ticketId": "nope"})
    assert r.status_code == 404


def test_sync_scan_conflict_reports_original():
    ticket = buy()["tickets"][0]
    client.post("/concert/scan", json={"ticketId": ticket["id"], "qrData": ticket["qrData"], "deviceId": "gate-1"})
    r = client.post(
        "/concert/sync-scan",
        json={"ticketId": ticket["id"], "scannedAt": "2026-01-01T11:00:00Z", "deviceId": "gate-9"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["conflict"] is True
    assert data["originalScan"]["deviceId"] == "gate-1"


def test_sync_scan_then_duplicate():
    ticket = buy()["tickets"][0]
    body = {"ticketId": ticket["id"], "scannedAt": "2026-01-01T11:00:00Z", "deviceId": "gate-9", "qrData": ticket["qrData"]}
    assert client.post("/concert/sync-scan", json=body).json()["message"] == "Scan synced successfully"
    dup = client.post("/concert/sync-scan", json=body).json()
    assert dup["conflict"] is False
    assert dup["message"] == "Already synced"


def test_tiers_rate_limited():
    for _ in range(30):
        assert client.get("/concert/tiers").status_code == 200
    r = client.get("/concert/tiers", headers={"X-Forwarded-For": "testclient"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
    assert r.json()["detail"]["retryAfter"] >= 1
    # Another forwarded client has its own window.
    assert client.get("/concert/tiers", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}).status_code == 200


def test_admin_routes_require_admin_role():
    ticket = buy()["tickets"][0]
    r = client.post(f"/concert/admin/tickets/{ticket['id']}/void")
    assert r.status_code in (401, 403)

    staff = create_access_token("ops@example.com", roles=["staff"])
    r = client.post(f"/concert/admin/tickets/{ticket['id']}/void", headers={"Authorization": f"Bearer {staff}"})
    assert r.status_code == 403

    r = client.post(f"/concert/admin/tickets/{ticket['id']}/void", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    r = client.post(f"/concert/admin/tickets/{ticket['id']}/void", headers=admin_headers())
    assert r.status_code == 200
    assert r.json()["status"] == "void"

    r = client.post("/concert/scan", json={"ticketId": ticket["id"], "qrData": ticket["qrData"]})
    assert r.status_code == 409


def test_admin_tier_update_and_stats():
    buy(quantity=2)
    r = client.post("/concert/admin/tiers", json={"tier": "gold", "total": 1}, headers=admin_headers())
    assert r.status_code == 409
    r = client.post("/concert/admin/tiers", json={"tier": "gold", "total": 5, "price": "600"}, headers=admin_headers())
    assert r.status_code == 200
    assert r.json()["available"] == 3

    stats = client.get("/concert/admin/stats", headers=admin_headers()).json()["tiers"]
    gold = next(t for t in stats if t["tier"] == "gold")
    assert gold["sold"] == 2
    assert gold["admitted"] == 0


def test_lottery_lock_order_and_confirm():
    r = client.post("/lottery/locks", json={"ticketNumber": 3, "sessionId": "session-aaaa"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "soft-locked"

    r = client.post("/lottery/locks", json={"ticketNumber": 3, "sessionId": "session-bbbb"})
    assert r.status_code == 409

    board = client.get("/lottery/tickets", params={"sessionId": "session-aaaa"}).json()
    mine = [t["ticketNumber"] for t in board["tickets"] if t["mine"]]
    assert mine == [3]
    assert board["counts"]["soft-locked"] == 1

    order_body = {
        "ticketNumber": 3, "sessionId": "session-aaaa", "name": "Ana Brown", "phone": "8765551234",
        "email": "ana@example.com", "parish": "Kingston", "transactionId": "TX-9001", "amount": "1000",
    }
    r = client.post("/lottery/orders", json=order_body)
    assert r.status_code == 200, r.text
    order_id = r.json()["order"]["id"]

    r = client.post("/lottery/orders", json={**order_body, "ticketNumber": 4})
    assert r.status_code == 409
    assert r.json()["existingOrderId"] == order_id

    r = client.post(f"/lottery/admin/orders/{order_id}/confirm")
    assert r.status_code in (401, 403)
    r = client.post(f"/lottery/admin/orders/{order_id}/confirm", headers=admin_headers())
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "confirmed"

    board = client.get("/lottery/tickets").json()
    assert board["counts"]["sold"] == 1

    r = client.post("/lottery/admin/tickets/3/reset", headers=admin_headers())
    assert r.status_code == 200
    assert r.json()["status"] == "available"


def test_lottery_release():
    client.post("/lottery/locks", json={"ticketNumber": 1, "sessionId": "session-aaaa"})
    r = client.request("DELETE", "/lottery/locks/1", json={"sessionId": "session-bbbb"})
    assert r.status_code == 409
    r = client.request("DELETE", "/lottery/locks/1", json={"sessionId": "session-aaaa"})
    assert r.status_code == 200
    assert r.json()["status"] == "available"


def test_lock_confirm_refused_while_order_pending():
    client.post("/lottery/locks", json={"ticketNumber": 2, "sessionId": "session-aaaa"})
    r = client.post(
        "/lottery/orders",
        json={
            "ticketNumber": 2, "sessionId": "session-aaaa", "name": "Ana Brown", "phone": "8765551234",
            "email": "ana@example.com", "parish": "Kingston", "transactionId": "TX-7001", "amount": "1000",
        },
    )
    assert r.status_code == 200, r.text
    r = client.post(
        "/lottery/locks/2/confirm",
        json={"sessionId": "session-aaaa", "orderId": "manual-1"},
        headers=admin_headers(),
    )
    assert r.status_code == 409
    assert "pending order" in r.json()["detail"]


def test_lottery_unknown_ticket():
    r = client.post("/lottery/locks", json={"ticketNumber": 404, "sessionId": "session-aaaa"})
    assert r.status_code == 404


def test_admin_sweep_resets_stale_locks(inventory):
    stale = utcnow() - timedelta(minutes=10)
    inventory.compare_and_set_lottery(
        2, LotteryStatus.AVAILABLE, LotteryStatus.SOFT_LOCKED, {"holder_session": "session-old1", "locked_at": stale}
    )
    inventory.commit()
    r = client.post("/lottery/admin/sweep", headers=admin_headers())
    assert r.status_code == 200
    assert r.json() == {"reset": 1}
    assert inventory.get_lottery_ticket(2).status == LotteryStatus.AVAILABLE


def test_admin_add_lottery_tickets():
    r = client.post("/lottery/admin/tickets", json={"count": 8}, headers=admin_headers())
    assert r.status_code == 200
    assert r.json() == {"added": 3}
