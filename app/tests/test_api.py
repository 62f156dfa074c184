"""
API Integration Tests
Tests all API endpoints against in-memory mailbox and oracle fakes
"""
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.tests.fakes import make_message

USER = "user-1"


@pytest.fixture
def client(services):
    app = create_app(services=services, auto_start=False)
    with TestClient(app) as client:
        yield client


class TestHealth:
    """Test health endpoints"""

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.text == "Magic Code Server Running"

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestCodes:
    """Test the code listing used by the web app and extension"""

    def test_newest_first(self, client, services):
        for i, code in enumerate(["111111", "222222", "333333"]):
            services.code_store.store(USER, code, "example.com", f"msg-{i}")
        services.code_store.store("user-2", "999999", "other.com", "msg-x")

        r = client.get("/codes", params={"user": USER})

        assert r.status_code == 200
        assert [c["code"] for c in r.json()] == ["333333", "222222", "111111"]
        assert r.json()[0]["website"] == "example.com"

    def test_limit(self, client, services):
        for i in range(5):
            services.code_store.store(USER, str(1000 + i), "example.com", f"msg-{i}")

        r = client.get("/codes", params={"user": USER, "limit": 2})

        assert [c["code"] for c in r.json()] == ["1004", "1003"]

    def test_limit_out_of_range(self, client):
        assert client.get("/codes", params={"user": USER, "limit": 0}).status_code == 422
        assert client.get("/codes", params={"user": USER, "limit": 101}).status_code == 422

    def test_user_required(self, client):
        assert client.get("/codes").status_code == 422

    def test_unknown_user_has_no_codes(self, client):
        r = client.get("/codes", params={"user": "nobody"})
        assert r.status_code == 200
        assert r.json() == []


class TestUsers:
    """Test credential hand-off, logout and status"""

    def test_unknown_user_status(self, client):
        r = client.get("/users/nobody/status")
        assert r.status_code == 200
        assert r.json() == {"user_id": "nobody", "status": "unauthenticated", "is_polling": False}

    def test_put_credentials_starts_polling(self, client, services, mailbox):
        r = client.put(
            f"/users/{USER}/credentials",
            json={"access_token": "access", "refresh_token": "refresh", "email": "me@example.com"}
        )

        assert r.status_code == 200
        assert r.json()["status"] == "authenticated"
        assert r.json()["is_polling"] is True
        assert services.credential_store.get(USER).email == "me@example.com"

    def test_put_credentials_requires_both_tokens(self, client):
        r = client.put(f"/users/{USER}/credentials", json={"access_token": "access"})
        assert r.status_code == 422

    def test_status_after_token_rejected(self, client, services):
        services.credential_store.set(USER, "access", "refresh")
        services.credential_store.clear(USER)

        r = client.get(f"/users/{USER}/status")

        assert r.json()["status"] == "needs_reauth"

    def test_logout(self, client, services):
        services.credential_store.set(USER, "access", "refresh")

        r = client.delete(f"/users/{USER}/credentials")

        assert r.status_code == 200
        assert services.credential_store.get(USER) is None
        assert not services.supervisor.is_polling(USER)

    def test_logout_unknown_user(self, client):
        assert client.delete("/users/nobody/credentials").status_code == 404


class TestMonitor:
    """Test monitor control and ledger inspection"""

    def test_status(self, client):
        r = client.get("/monitor/status")

        assert r.status_code == 200
        data = r.json()
        assert data["active_users"] == []
        assert data["poll_interval_seconds"] == 3600
        assert data["retention_days"] == 30
        assert data["retention_sweep_running"] is True

    def test_manual_poll_stores_code(self, client, services, mailbox, oracle):
        services.credential_store.set(USER, "access", "refresh")
        message = make_message("msg-1")
        mailbox.add(message)
        oracle.responses[message.subject] = "482913"

        r = client.post(f"/monitor/{USER}/poll")

        assert r.status_code == 200
        # Background tasks finish before the test client returns
        assert services.code_store.list_recent(USER)[0].code == "482913"

    def test_manual_poll_unknown_user(self, client):
        assert client.post("/monitor/nobody/poll").status_code == 404

    def test_start_requires_credentials(self, client):
        assert client.post("/monitor/nobody/start").status_code == 404

    def test_stop_when_not_running(self, client):
        r = client.post(f"/monitor/{USER}/stop")
        assert r.status_code == 200
        assert r.json()["message"] == "Monitor is not running for this user"

    def test_checked_list(self, client, services):
        services.ledger.mark_checked(USER, "msg-1", found_code=True)
        services.ledger.mark_checked("user-2", "msg-2", found_code=False)

        r = client.get("/monitor/checked", params={"user": USER})

        assert r.status_code == 200
        assert [(c["email_id"], c["has_code"]) for c in r.json()] == [("msg-1", True)]
