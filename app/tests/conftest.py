"""
Shared test fixtures
"""
import pytest

from app.core.database import create_db_engine, create_session_factory, init_db
from app.services.wiring import build_services
from app.tests.fakes import FakeMailbox, ScriptedOracle


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads each get their own connection"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'magic_codes_test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def services(engine, session_factory, mailbox, oracle):
    return build_services(
        engine=engine,
        session_factory=session_factory,
        mailbox=mailbox,
        oracle=oracle,
        poll_interval=3600
    )
