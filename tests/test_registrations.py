import re

from fastapi.testclient import TestClient

from cinescan.core.mailer import get_outbox
from cinescan.main import app


def _admin_token(client: TestClient, promote_to_admin) -> str:
    r = client.post("/api/auth/register", json={"email": "admin@example.com", "name": "Admin", "password": "Password123!"})
    assert r.status_code == 201, r.text
    promote_to_admin("admin@example.com")
    return r.json()["access_token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _request_access(client: TestClient, email: str = "Newcomer@Example.com", name: str = "Newcomer"):
    return client.post("/api/registrations", json={"email": email, "name": name})


def test_request_access_notifies_admins(promote_to_admin):
    with TestClient(app) as client:
        _admin_token(client, promote_to_admin)
        r = _request_access(client)
        assert r.status_code == 201, r.text
        body = r.json()
        assert body["request"]["email"] == "newcomer@example.com"
        assert body["request"]["status"] == "PENDING"
        assert body["request"]["admin"] is None

        mails = get_outbox()
        assert len(mails) == 1
        assert mails[0]["to"] == ["admin@example.com"]
        assert mails[0]["subject"] == "New access request from Newcomer"
        assert "newcomer@example.com" in mails[0]["text"]
        assert mails[0]["delivered"] is False


def test_request_access_without_admins_still_succeeds():
    with TestClient(app) as client:
        assert _request_access(client).status_code == 201
        assert get_outbox() == []


def test_request_access_conflicts(promote_to_admin):
    with TestClient(app) as client:
        _admin_token(client, promote_to_admin)
        assert _request_access(client).status_code == 201
        r = _request_access(client, email="newcomer@example.com")
        assert r.status_code == 409
        assert r.json()["detail"] == "A request for this email is already pending"

        r = _request_access(client, email="admin@example.com", name="Someone")
        assert r.status_code == 409
        assert r.json()["detail"] == "An account with this email already exists"

        assert client.post("/api/registrations", json={"email": "bad", "name": "Newcomer"}).status_code == 422


def test_approve_creates_account_and_sends_invitation(promote_to_admin):
    with TestClient(app) as client:
        admin = _admin_token(client, promote_to_admin)
        reg_id = _request_access(client).json()["request"]["id"]

        r = client.get("/api/admin/registrations", headers=_auth(admin), params={"status": "PENDING"})
        assert r.status_code == 200
        assert [x["id"] for x in r.json()["requests"]] == [reg_id]

        r = client.post(
            f"/api/admin/registrations/{reg_id}/process",
            headers=_auth(admin),
            json={"action": "APPROVE", "admin_notes": " welcome "},
        )
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["request"]["status"] == "APPROVED"
        assert body["request"]["admin"]["name"] == "Admin"
        assert body["request"]["admin_notes"] == "welcome"
        assert body["request"]["processed_at"] is not None
        assert body["user"]["email"] == "newcomer@example.com"

        invitation = get_outbox()[-1]
        assert invitation["subject"] == "Your CineScan account is ready"
        assert invitation["to"] == ["newcomer@example.com"]
        temp_password = re.search(r"Temporary password: (\S+)", invitation["text"]).group(1)

        r = client.post("/api/auth/login", json={"email": "newcomer@example.com", "password": temp_password})
        assert r.status_code == 200, r.text

        r = client.post(f"/api/admin/registrations/{reg_id}/process", headers=_auth(admin), json={"action": "REJECT"})
        assert r.status_code == 400
        assert r.json()["detail"] == "This request has already been processed"

        actions = client.get("/api/admin/actions", headers=_auth(admin)).json()["actions"]
        assert actions[0]["action"] == "APPROVE_REGISTRATION"
        assert actions[0]["details"]["registration_id"] == reg_id


def test_reject_and_delete(promote_to_admin):
    with TestClient(app) as client:
        admin = _admin_token(client, promote_to_admin)
        reg_id = _request_access(client).json()["request"]["id"]
        outbox_before = len(get_outbox())

        r = client.post(f"/api/admin/registrations/{reg_id}/process", headers=_auth(admin), json={"action": "REJECT"})
        assert r.status_code == 200
        assert r.json()["request"]["status"] == "REJECTED"
        assert "user" not in r.json()
        assert len(get_outbox()) == outbox_before

        # a rejected request no longer blocks a fresh one
        assert _request_access(client).status_code == 201

        r = client.post(f"/api/admin/registrations/{reg_id}/process", headers=_auth(admin), json={"action": "MAYBE"})
        assert r.status_code == 422

        assert client.delete(f"/api/admin/registrations/{reg_id}", headers=_auth(admin)).status_code == 200
        assert client.delete(f"/api/admin/registrations/{reg_id}", headers=_auth(admin)).status_code == 404
        listing = client.get("/api/admin/registrations", headers=_auth(admin)).json()
        assert listing["pagination"]["total"] == 1


def test_registration_admin_routes_require_admin():
    with TestClient(app) as client:
        r = client.post("/api/auth/register", json={"email": "viewer@example.com", "name": "Viewer", "password": "Password123!"})
        token = r.json()["access_token"]
        assert client.get("/api/admin/registrations", headers=_auth(token)).status_code == 403
        assert client.get("/api/admin/registrations").status_code == 401
