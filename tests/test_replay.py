import pytest
from fastapi.testclient import TestClient

from qrlogin.core.security import create_access_token
from qrlogin.main import create_app

from conftest import make_settings


def _create(client):
    return client.post("/login-ticket").json()


def _secret(ticket):
    return {"X-Creator-Secret": ticket["creator_secret"]}


def test_second_scan_is_conflict(client, alice, bob):
    t_id = _create(client)["ticket_id"]
    assert client.post(f"/login-ticket/{t_id}/scan", headers=alice).status_code == 200

    # Replay by the same device and hijack attempt by another
    assert client.post(f"/login-ticket/{t_id}/scan", headers=alice).status_code == 409
    assert client.post(f"/login-ticket/{t_id}/scan", headers=bob).status_code == 409


def test_confirm_by_other_user_is_forbidden(client, alice, bob):
    ticket = _create(client)
    t_id = ticket["ticket_id"]
    client.post(f"/login-ticket/{t_id}/scan", headers=alice)

    resp = client.post(f"/login-ticket/{t_id}/confirm", headers=bob)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Operation not permitted"

    resp = client.get(f"/login-ticket/{t_id}/status", headers=_secret(ticket))
    assert resp.json()["state"] == "scanned"


def test_confirm_without_scan_is_conflict(client, alice):
    t_id = _create(client)["ticket_id"]
    assert client.post(f"/login-ticket/{t_id}/confirm", headers=alice).status_code == 409


def test_expired_ticket(client, clock, alice):
    ticket = _create(client)
    t_id = ticket["ticket_id"]
    clock.advance(120)

    resp = client.post(f"/login-ticket/{t_id}/scan", headers=alice)
    assert resp.status_code == 410
    assert "expired" in resp.json()["detail"]

    resp = client.get(f"/login-ticket/{t_id}/status", headers=_secret(ticket))
    assert resp.json()["state"] == "expired"


def test_unknown_ticket_is_404(client, alice):
    assert client.post("/login-ticket/nope/scan", headers=alice).status_code == 404
    assert client.post("/login-ticket/nope/confirm", headers=alice).status_code == 404
    assert client.post("/login-ticket/nope/cancel").status_code == 404
    assert client.get("/login-ticket/nope/status").status_code == 404


def test_scan_requires_bearer(client, conf):
    t_id = _create(client)["ticket_id"]

    resp = client.post(f"/login-ticket/{t_id}/scan")
    assert resp.status_code == 401

    resp = client.post(f"/login-ticket/{t_id}/scan", headers={"Authorization": "Basic abc"})
    assert resp.status_code == 401

    resp = client.post(f"/login-ticket/{t_id}/scan", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_browser_credential_cannot_scan(client, conf):
    # A session credential handed to a web session is not a mobile identity
    t_id = _create(client)["ticket_id"]
    browser_token = create_access_token("alice", audience=conf.JWT_AUDIENCE, conf=conf)
    resp = client.post(f"/login-ticket/{t_id}/scan", headers={"Authorization": f"Bearer {browser_token}"})
    assert resp.status_code == 401


def test_poll_requires_creator_secret(client, alice):
    ticket = _create(client)
    t_id = ticket["ticket_id"]
    client.post(f"/login-ticket/{t_id}/scan", headers=alice)
    client.post(f"/login-ticket/{t_id}/confirm", headers=alice)

    # Someone who photographed the QR code only knows the ticket id
    assert client.get(f"/login-ticket/{t_id}/status").status_code == 403
    assert client.get(f"/login-ticket/{t_id}/status",
                      headers={"X-Creator-Secret": "guess"}).status_code == 403

    resp = client.get(f"/login-ticket/{t_id}/status", headers=_secret(ticket))
    assert resp.json()["session_credential"]


def test_poll_without_binding():
    app = create_app(make_settings(REQUIRE_CREATOR_BINDING=False))
    client = TestClient(app)
    t_id = client.post("/login-ticket").json()["ticket_id"]
    assert client.get(f"/login-ticket/{t_id}/status").json()["state"] == "pending"


def test_rate_limit_on_ticket_creation():
    app = create_app(make_settings(RATE_LIMIT_ENABLED=True, MAX_REQUESTS_PER_MINUTE=3))
    client = TestClient(app)
    for _ in range(3):
        assert client.post("/login-ticket").status_code == 200
    assert client.post("/login-ticket").status_code == 429


@pytest.mark.parametrize("path", ["scan", "confirm"])
def test_expired_bearer_rejected(client, conf, path):
    t_id = _create(client)["ticket_id"]
    token = create_access_token("alice", audience=conf.JWT_MOBILE_AUDIENCE, exp_seconds=-10, conf=conf)
    resp = client.post(f"/login-ticket/{t_id}/{path}", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
