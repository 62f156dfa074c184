"""
Tests for building the service graph
"""
import pytest
from sqlalchemy import text

from app.core.database import init_db
from app.services.wiring import build_services


class TestBuildServices:
    """Test that every store writes to the engine the graph was built with"""

    def test_stores_bound_to_given_engine(self, engine, mailbox, oracle):
        services = build_services(engine=engine, mailbox=mailbox, oracle=oracle)

        services.credential_store.set("user-1", "access", "refresh")
        services.code_store.store("user-1", "482913", "example.com", "msg-1")
        services.ledger.mark_checked("user-1", "msg-1", found_code=True)

        assert services.session_factory.kw["bind"] is engine
        with engine.connect() as conn:
            assert conn.execute(text("SELECT code FROM magic_codes")).scalars().all() == ["482913"]
            assert conn.execute(text("SELECT email_id FROM checked_emails")).scalars().all() == ["msg-1"]

    def test_engine_from_database_url(self, tmp_path, mailbox, oracle):
        url = f"sqlite:///{tmp_path / 'other.db'}"
        services = build_services(database_url=url, mailbox=mailbox, oracle=oracle)
        init_db(services.engine)

        services.credential_store.set("user-1", "access", "refresh")

        assert services.engine.url.database == str(tmp_path / 'other.db')
        assert services.credential_store.get("user-1").access_token == "access"
        services.engine.dispose()

    def test_session_factory_requires_engine(self, session_factory, mailbox, oracle):
        with pytest.raises(ValueError):
            build_services(session_factory=session_factory, mailbox=mailbox, oracle=oracle)
