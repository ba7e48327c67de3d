from decimal import Decimal

from rentchain.services import booking_service

from conftest import auth, stay


def request_booking(client, tenant, prop, **extra):
    check_in, check_out = stay()
    body = {
        "propertyId": prop.id,
        "checkInDate": check_in.isoformat(),
        "checkOutDate": check_out.isoformat(),
        "numberOfGuests": 2,
        **extra,
    }
    return client.post("/api/v1/bookings/request", json=body, headers=auth(tenant))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_login_and_me(client, tenant):
    r = client.post("/api/v1/auth/login", json={"email": "tenant@example.com", "password": "secret123"})
    assert r.status_code == 200
    tokens = r.json()
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.json()["id"] == tenant.id
    assert me.json()["penaltyPoints"] == 0

    refreshed = client.post("/api/v1/auth/refresh", params={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200


def test_bad_password(client, tenant):
    r = client.post("/api/v1/auth/login", json={"email": "tenant@example.com", "password": "nope"})
    assert r.status_code == 401


def test_request_and_pay(client, tenant, prop, tenant_headers):
    r = request_booking(client, tenant, prop)
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "created"
    assert data["hasNegotiation"] is False
    booking = data["booking"]
    assert booking["tenantId"] == tenant.id
    assert booking["status"] == "PENDING_PAYMENT"
    assert Decimal(booking["totalPrice"]) == Decimal("300")
    assert set(booking["allowedActions"]) == {"CONFIRM_PAYMENT", "CANCEL", "HOST_CANCEL"}

    paid = client.post(f"/api/v1/bookings/{booking['id']}/payment", json={"transactionHash": "0xabc"},
                       headers=tenant_headers)
    assert paid.status_code == 200
    assert paid.json()["status"] == "CONFIRMED"

    current = client.get(f"/api/v1/bookings/tenant/{tenant.id}/current", headers=tenant_headers)
    assert current.json()["id"] == booking["id"]


def test_party_routes_need_a_token(client, db, book, tenant, host):
    b = book(tenant, requested_price=Decimal("250"))
    r = client.post(f"/api/v1/bookings/{b.id}/accept", params={"ownerId": host.id})
    assert r.status_code == 401
    assert client.get(f"/api/v1/bookings/{b.id}").status_code == 401
    assert client.get("/api/v1/reclamations/my-complaints", params={"userId": tenant.id}).status_code == 401
    db.refresh(b)
    assert b.status == "PENDING_NEGOTIATION"


def test_claimed_user_must_match_token(client, book, tenant, host, tenant_headers):
    b = book(tenant, requested_price=Decimal("250"))
    r = client.post(f"/api/v1/bookings/{b.id}/accept", params={"ownerId": host.id}, headers=tenant_headers)
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"

    body = {"userId": host.id, "propertyId": b.property_id,
            "checkInDate": stay()[0].isoformat(), "checkOutDate": stay()[1].isoformat()}
    r = client.post("/api/v1/bookings/request", json=body, headers=tenant_headers)
    assert r.status_code == 403


def test_other_users_bookings_are_private(client, book, tenant, other_tenant, admin_headers):
    b = book(tenant)
    stranger = auth(other_tenant)
    assert client.get(f"/api/v1/bookings/{b.id}", headers=stranger).status_code == 403
    assert client.get(f"/api/v1/bookings/tenant/{tenant.id}/pending", headers=stranger).status_code == 403
    assert client.get(f"/api/v1/bookings/{b.id}", headers=admin_headers).status_code == 200


def test_price_too_low_is_an_answer_not_an_error(client, tenant, prop):
    r = request_booking(client, tenant, prop, requestedPrice="100")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "rejected"
    assert data["error"] == "PRICE_TOO_LOW"
    assert Decimal(data["minPrice"]) == Decimal("240")
    assert data["booking"] is None


def test_negative_requested_price_is_refused(client, tenant, prop):
    r = request_booking(client, tenant, prop, requestedPrice="-50")
    assert r.status_code == 422


def test_negotiation_accept_via_api(client, tenant, host, prop, tenant_headers, host_headers):
    booking = request_booking(client, tenant, prop, requestedPrice="250").json()["booking"]
    assert booking["status"] == "PENDING_NEGOTIATION"

    pending = client.get(f"/api/v1/bookings/owner/{host.id}/pending-negotiations", headers=host_headers).json()
    assert [b["id"] for b in pending] == [booking["id"]]

    wrong = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=tenant_headers)
    assert wrong.status_code == 403
    assert wrong.json()["error"] == "FORBIDDEN"

    accepted = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=host_headers)
    assert accepted.json()["status"] == "CONFIRMED"
    assert Decimal(accepted.json()["totalPrice"]) == Decimal("250")


def test_invalid_transition_is_a_conflict(client, tenant, prop, tenant_headers):
    booking = request_booking(client, tenant, prop).json()["booking"]
    r = client.post(f"/api/v1/bookings/{booking['id']}/checkout/tenant", headers=tenant_headers)
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "INVALID_TRANSITION"
    assert body["context"] == {"current": "PENDING_PAYMENT", "action": "TENANT_CHECKOUT"}


def test_past_dates_are_a_validation_error(client, tenant, prop, tenant_headers):
    r = client.post("/api/v1/bookings/request", json={
        "propertyId": prop.id,
        "checkInDate": "2000-01-01",
        "checkOutDate": "2000-01-03",
    }, headers=tenant_headers)
    assert r.status_code == 422
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_unknown_booking(client, tenant_headers):
    r = client.get("/api/v1/bookings/missing", headers=tenant_headers)
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"


def test_unknown_status_filter_is_a_validation_error(client, admin_headers):
    r = client.get("/api/v1/admin/bookings/all", params={"status": "BOGUS"}, headers=admin_headers)
    assert r.status_code == 422
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_owner_checkout_reports_degraded_settlement(client, db, confirmed, tenant, host, gateway, host_headers):
    booking_service.tenant_checkout(db, confirmed.id, tenant.id)
    gateway.fail = True
    r = client.post(f"/api/v1/bookings/{confirmed.id}/checkout/owner", headers=host_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["booking"]["status"] == "COMPLETED"
    assert body["degraded"] is True
    assert body["settlement"]["status"] == "failed"


def test_admin_routes_need_admin(client, tenant_headers, admin_headers):
    assert client.get("/api/v1/admin/reclamations").status_code == 401
    assert client.get("/api/v1/admin/reclamations", headers=tenant_headers).status_code == 403
    assert client.get("/api/v1/admin/reclamations", headers=admin_headers).json() == []


def test_reclamation_round_trip(client, confirmed, tenant, host, tenant_headers, host_headers, admin_headers):
    created = client.post(
        "/api/v1/reclamations/create",
        data={
            "bookingId": confirmed.id,
            "complainantRole": "GUEST",
            "reclamationType": "SAFETY_HEALTH",
            "title": "Gas smell",
        },
        files=[("files", ("kitchen.png", b"\x89PNG fake", "image/png"))],
        headers=tenant_headers,
    )
    assert created.status_code == 200
    rec = created.json()
    assert rec["status"] == "OPEN"
    assert rec["complainantId"] == tenant.id
    assert len(rec["attachments"]) == 1

    download = client.get(rec["attachments"][0], headers=tenant_headers)
    assert download.status_code == 200
    assert download.content == b"\x89PNG fake"

    dup = client.post("/api/v1/reclamations/create", data={
        "bookingId": confirmed.id,
        "complainantRole": "GUEST",
        "reclamationType": "CLEANLINESS",
    }, headers=tenant_headers)
    assert dup.status_code == 409
    assert dup.json()["error"] == "DUPLICATE_RECLAMATION"

    base = f"/api/v1/admin/reclamations/{rec['id']}"
    view = client.get(base, headers=admin_headers).json()
    assert view["expected"]["penaltyPoints"] == 7

    client.put(f"{base}/severity", json={"severity": "HIGH"}, headers=admin_headers)
    client.post(f"{base}/review", headers=admin_headers)
    resolved = client.post(f"{base}/resolve", json={"notes": "confirmed by inspector"}, headers=admin_headers).json()
    assert resolved["status"] == "RESOLVED"
    assert Decimal(resolved["refundAmount"]) == Decimal("189")
    assert resolved["penaltyPoints"] == 15
    assert resolved["expected"] is None

    against = client.get("/api/v1/reclamations/against-me", headers=host_headers).json()
    assert [r["id"] for r in against] == [rec["id"]]
    stats = client.get("/api/v1/admin/reclamations/statistics", headers=admin_headers).json()
    assert stats["byStatus"]["RESOLVED"] == 1


def test_reclamation_on_behalf_of_someone_else_is_refused(client, confirmed, tenant, host_headers):
    r = client.post("/api/v1/reclamations/create", data={
        "bookingId": confirmed.id,
        "userId": tenant.id,
        "complainantRole": "GUEST",
        "reclamationType": "CLEANLINESS",
    }, headers=host_headers)
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"


def test_fixed_severity_via_api(client, confirmed, tenant_headers, admin_headers):
    rec = client.post("/api/v1/reclamations/create", data={
        "bookingId": confirmed.id,
        "complainantRole": "GUEST",
        "reclamationType": "ACCESS_ISSUE",
    }, headers=tenant_headers).json()
    assert rec["fixedSeverity"] is True
    r = client.put(f"/api/v1/admin/reclamations/{rec['id']}/severity", json={"severity": "LOW"},
                   headers=admin_headers)
    assert r.status_code == 422
    assert r.json()["error"] == "FIXED_SEVERITY"


def test_admin_settlement_retry(client, db, confirmed, tenant, host, gateway, admin_headers):
    booking_service.tenant_checkout(db, confirmed.id, tenant.id)
    gateway.fail = True
    booking_service.owner_confirm_checkout(db, confirmed.id, host.id)
    gateway.fail = False

    failed = client.get("/api/v1/admin/settlements", params={"status": "failed"}, headers=admin_headers).json()
    assert [s["bookingId"] for s in failed] == [confirmed.id]

    r = client.post(f"/api/v1/admin/settlements/{confirmed.id}/retry", headers=admin_headers)
    assert r.json()["status"] == "sent"
    assert r.json()["attempts"] == 2
