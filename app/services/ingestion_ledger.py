"""
Ingestion Ledger
Records which messages were already examined so a message is analyzed once,
whether or not it contained a code.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.core.database import utcnow
from app.models import CheckedEmail

logger = logging.getLogger(__name__)


class IngestionLedger:
    """Idempotence guard over the checked_emails table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def has_been_checked(self, user_id: str, message_id: str) -> bool:
        """Check if this message was already examined for the user"""
        db = self.session_factory()
        try:
            existing = db.query(CheckedEmail.id).filter(
                CheckedEmail.user_id == user_id,
                CheckedEmail.email_id == message_id
            ).first()
            return existing is not None
        finally:
            db.close()

    def mark_checked(self, user_id: str, message_id: str, found_code: bool) -> bool:
        """
        Record the message as examined.

        A second call for the same message id is a no-op. Returns True
        when a new row was written.
        """
        db = self.session_factory()
        try:
            exists = db.query(CheckedEmail.id).filter(
                CheckedEmail.email_id == message_id
            ).first()
            if exists:
                return False

            db.add(CheckedEmail(
                user_id=user_id,
                email_id=message_id,
                has_code=found_code
            ))
            db.commit()
            logger.debug(
                "Marked email %s as checked (has_code=%s) for user %s",
                message_id, found_code, user_id
            )
            return True
        except IntegrityError:
            # Another tick inserted the same message id first
            db.rollback()
            return False
        finally:
            db.close()

    def purge_older_than(self, days: int = 30, now: datetime = None) -> int:
        """Delete records whose checked_at is older than `days`. Returns rows removed."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        db = self.session_factory()
        try:
            removed = db.query(CheckedEmail).filter(
                CheckedEmail.checked_at < cutoff
            ).delete(synchronize_session=False)
            db.commit()
            return removed
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_checked(self, user_id: Optional[str] = None, limit: int = 100) -> List[CheckedEmail]:
        """Newest-first ledger rows, optionally for a single user"""
        db = self.session_factory()
        try:
            query = db.query(CheckedEmail)
            if user_id:
                query = query.filter(CheckedEmail.user_id == user_id)
            return query.order_by(
                CheckedEmail.checked_at.desc(), CheckedEmail.id.desc()
            ).limit(limit).all()
        finally:
            db.close()
