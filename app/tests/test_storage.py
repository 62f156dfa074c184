"""
Tests for the Ingestion Ledger, Code Persistence and Credential Store
"""
from datetime import timedelta

import pytest

from app.core.database import utcnow
from app.models import CheckedEmail, User
from app.services.code_store import CodeStore, derive_website
from app.services.credential_store import (
    STATUS_AUTHENTICATED,
    STATUS_NEEDS_REAUTH,
    STATUS_UNAUTHENTICATED,
    CredentialStore,
)
from app.services.ingestion_ledger import IngestionLedger


@pytest.fixture
def credential_store(session_factory):
    return CredentialStore(session_factory)


@pytest.fixture
def ledger(session_factory, credential_store):
    credential_store.set("user-1", "access", "refresh")
    credential_store.set("user-2", "access-2", "refresh-2")
    return IngestionLedger(session_factory)


@pytest.fixture
def code_store(session_factory, credential_store):
    credential_store.set("user-1", "access", "refresh")
    credential_store.set("user-2", "access-2", "refresh-2")
    return CodeStore(session_factory)


class TestIngestionLedger:
    """Test the checked-email idempotence guard"""

    def test_mark_then_check(self, ledger):
        assert not ledger.has_been_checked("user-1", "msg-1")

        assert ledger.mark_checked("user-1", "msg-1", found_code=False) is True

        assert ledger.has_been_checked("user-1", "msg-1")
        assert not ledger.has_been_checked("user-2", "msg-1")

    def test_duplicate_mark_is_noop(self, ledger):
        ledger.mark_checked("user-1", "msg-1", found_code=True)

        assert ledger.mark_checked("user-1", "msg-1", found_code=False) is False

        rows = ledger.list_checked("user-1")
        assert len(rows) == 1
        assert rows[0].has_code is True

    def test_purge_removes_only_old_records(self, ledger, session_factory):
        ledger.mark_checked("user-1", "recent", found_code=False)
        db = session_factory()
        try:
            db.add(CheckedEmail(
                user_id="user-1",
                email_id="old",
                has_code=True,
                checked_at=utcnow() - timedelta(days=31)
            ))
            db.commit()
        finally:
            db.close()

        removed = ledger.purge_older_than(days=30)

        assert removed == 1
        assert not ledger.has_been_checked("user-1", "old")
        assert ledger.has_been_checked("user-1", "recent")

    def test_list_checked_filters_by_user(self, ledger):
        ledger.mark_checked("user-1", "a", found_code=False)
        ledger.mark_checked("user-2", "b", found_code=True)

        assert [r.email_id for r in ledger.list_checked("user-2")] == ["b"]
        assert len(ledger.list_checked()) == 2


class TestCodeStore:
    """Test append-only code persistence"""

    def test_store_and_list_newest_first(self, code_store):
        code_store.store("user-1", "111111", "example.com", "msg-1")
        code_store.store("user-1", "222222", "example.com", "msg-2")
        code_store.store("user-2", "333333", "other.com", "msg-3")

        codes = code_store.list_recent("user-1")

        assert [c.code for c in codes] == ["222222", "111111"]
        assert codes[0].website == "example.com"
        assert codes[0].email_id == "msg-2"

    def test_list_limit(self, code_store):
        for i in range(5):
            code_store.store("user-1", f"code-{i}", "example.com", f"msg-{i}")

        assert len(code_store.list_recent("user-1", limit=3)) == 3

    def test_one_code_per_message(self, code_store):
        first = code_store.store("user-1", "482913", "example.com", "msg-1")
        second = code_store.store("user-1", "482913", "example.com", "msg-1")

        assert first is not None
        assert second is None
        assert len(code_store.list_recent("user-1")) == 1
        assert code_store.exists_for_message("msg-1")
        assert not code_store.exists_for_message("msg-2")


class TestDeriveWebsite:
    """Test website derivation from the sender header"""

    def test_bare_address(self):
        assert derive_website("noreply@example.com") == "example.com"

    def test_display_name_and_subdomain(self):
        assert derive_website('"Acme Login" <security@mail.accounts.acme.io>') == "acme.io"

    def test_domain_is_lowercased(self):
        assert derive_website("Example <NoReply@Mail.Example.COM>") == "example.com"

    def test_no_address(self):
        assert derive_website("Acme Security") == "Unknown"
        assert derive_website("") == "Unknown"


class TestCredentialStore:
    """Test token storage, clearing and status"""

    def test_set_and_get(self, credential_store):
        credential_store.set("user-1", "access", "refresh", email="me@example.com")

        credential = credential_store.get("user-1")

        assert credential.access_token == "access"
        assert credential.refresh_token == "refresh"
        assert credential.email == "me@example.com"
        assert credential.refreshed_at is not None

    def test_unknown_user(self, credential_store):
        assert credential_store.get("nobody") is None
        assert credential_store.status("nobody") == STATUS_UNAUTHENTICATED

    def test_set_requires_both_tokens(self, credential_store):
        with pytest.raises(ValueError):
            credential_store.set("user-1", "access", "")

    def test_clear_is_idempotent_and_notifies(self, credential_store, session_factory):
        cleared = []
        credential_store.add_clear_listener(cleared.append)
        credential_store.set("user-1", "access", "refresh")

        credential_store.clear("user-1")
        credential_store.clear("user-1")
        credential_store.clear("nobody")

        assert credential_store.get("user-1") is None
        assert credential_store.status("user-1") == STATUS_NEEDS_REAUTH
        assert cleared == ["user-1", "user-1", "nobody"]

        db = session_factory()
        try:
            user = db.query(User).filter(User.id == "user-1").one()
            assert user.access_token is None
            assert user.refresh_token is None
        finally:
            db.close()

    def test_failing_listener_does_not_block_others(self, credential_store):
        seen = []

        def broken(user_id):
            raise RuntimeError("listener failed")

        credential_store.add_clear_listener(broken)
        credential_store.add_clear_listener(seen.append)
        credential_store.set("user-1", "access", "refresh")

        credential_store.clear("user-1")

        assert seen == ["user-1"]

    def test_set_after_clear_reauthenticates(self, credential_store):
        credential_store.set("user-1", "access", "refresh")
        credential_store.clear("user-1")

        credential_store.set("user-1", "new-access", "new-refresh")

        assert credential_store.status("user-1") == STATUS_AUTHENTICATED
        assert credential_store.get("user-1").access_token == "new-access"

    def test_update_refreshed_skips_cleared_user(self, credential_store):
        credential_store.set("user-1", "access", "refresh")
        credential_store.clear("user-1")

        assert credential_store.update_refreshed("user-1", "access-2", "refresh") is None
        assert credential_store.get("user-1") is None

    def test_clear_if_current_clears_rejected_tokens(self, credential_store):
        cleared = []
        credential_store.add_clear_listener(cleared.append)
        credential_store.set("user-1", "access", "refresh")

        assert credential_store.clear_if_current("user-1", "refresh") is True

        assert credential_store.status("user-1") == STATUS_NEEDS_REAUTH
        assert cleared == ["user-1"]

    def test_clear_if_current_keeps_replaced_tokens(self, credential_store):
        cleared = []
        credential_store.add_clear_listener(cleared.append)
        credential_store.set("user-1", "access", "refresh")
        credential_store.set("user-1", "new-access", "new-refresh")

        assert credential_store.clear_if_current("user-1", "refresh") is False

        assert credential_store.get("user-1").refresh_token == "new-refresh"
        assert cleared == []

    def test_clear_if_current_unknown_user(self, credential_store):
        assert credential_store.clear_if_current("nobody", "refresh") is False
        assert credential_store.status("nobody") == STATUS_UNAUTHENTICATED

    def test_list_authenticated(self, credential_store):
        credential_store.set("user-1", "access", "refresh")
        credential_store.set("user-2", "access", "refresh")
        credential_store.clear("user-2")

        assert [c.user_id for c in credential_store.list_authenticated()] == ["user-1"]
