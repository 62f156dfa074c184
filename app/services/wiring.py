"""
Service wiring
Builds the pipeline objects once per application and hands them around
explicitly instead of keeping module-level singletons.
"""
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.database import create_db_engine, create_session_factory
from app.services.code_store import CodeStore
from app.services.credential_store import CredentialStore
from app.services.extraction_oracle import ClaudeExtractionOracle, ExtractionOracle
from app.services.ingestion_ledger import IngestionLedger
from app.services.mailbox import GmailMailboxProvider, MailboxFetcher, MailboxProvider
from app.services.poll_scheduler import PollSupervisor
from app.services.retention import RetentionSweeper


@dataclass
class MagicCodeServices:
    engine: Engine
    session_factory: sessionmaker
    credential_store: CredentialStore
    ledger: IngestionLedger
    code_store: CodeStore
    fetcher: MailboxFetcher
    oracle: ExtractionOracle
    supervisor: PollSupervisor
    sweeper: RetentionSweeper


def build_services(
    engine: Engine = None,
    session_factory: sessionmaker = None,
    mailbox: MailboxProvider = None,
    oracle: ExtractionOracle = None,
    poll_interval: float = None,
    retention_initial_delay: float = None,
    database_url: str = None
) -> MagicCodeServices:
    """
    Create the full service graph; pass fakes for mailbox/oracle in tests.

    Without an engine one is created from database_url (DATABASE_URL by
    default). Without a session factory one is bound to that engine, so
    every store writes to the database init_db creates tables in.
    """
    if engine is None:
        if session_factory is not None:
            raise ValueError("A session_factory must come with the engine it is bound to")
        engine = create_db_engine(database_url)
    session_factory = session_factory or create_session_factory(engine)

    credential_store = CredentialStore(session_factory)
    ledger = IngestionLedger(session_factory)
    code_store = CodeStore(session_factory)
    fetcher = MailboxFetcher(mailbox or GmailMailboxProvider())
    oracle = oracle or ClaudeExtractionOracle()

    supervisor = PollSupervisor(
        credential_store=credential_store,
        fetcher=fetcher,
        ledger=ledger,
        code_store=code_store,
        oracle=oracle,
        poll_interval=poll_interval
    )

    return MagicCodeServices(
        engine=engine,
        session_factory=session_factory,
        credential_store=credential_store,
        ledger=ledger,
        code_store=code_store,
        fetcher=fetcher,
        oracle=oracle,
        supervisor=supervisor,
        sweeper=RetentionSweeper(ledger, initial_delay_seconds=retention_initial_delay),
    )
