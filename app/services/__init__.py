"""
Services
"""
from app.services.code_store import CodeStore, derive_website
from app.services.content_extractor import extract_text, html_to_text, decode_payload
from app.services.credential_store import CredentialStore, UserCredential
from app.services.extraction_oracle import (
    ClaudeExtractionOracle, ExtractionOracle, OracleFailure, OracleResult, validate_oracle_output
)
from app.services.ingestion_ledger import IngestionLedger
from app.services.mailbox import (
    GmailMailboxProvider, InvalidCredentialError, MailboxError, MailboxFetcher, MailboxProvider
)
from app.services.poll_scheduler import PollSupervisor, TickResult
from app.services.retention import RetentionSweeper

__all__ = [
    "CodeStore",
    "derive_website",
    "extract_text",
    "html_to_text",
    "decode_payload",
    "CredentialStore",
    "UserCredential",
    "ClaudeExtractionOracle",
    "ExtractionOracle",
    "OracleFailure",
    "OracleResult",
    "validate_oracle_output",
    "IngestionLedger",
    "GmailMailboxProvider",
    "InvalidCredentialError",
    "MailboxError",
    "MailboxFetcher",
    "MailboxProvider",
    "PollSupervisor",
    "TickResult",
    "RetentionSweeper",
]
