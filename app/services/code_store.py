"""
Code Persistence
Append-only storage of extracted magic codes
"""
import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.models import MagicCode

logger = logging.getLogger(__name__)

UNKNOWN_WEBSITE = "Unknown"

EMAIL_DOMAIN_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")


def derive_website(sender: str) -> str:
    """
    Website a code came from, taken from the sender address.

    "Acme <noreply@mail.acme.com>" -> "acme.com"
    """
    match = EMAIL_DOMAIN_PATTERN.search(sender or "")
    if not match:
        return UNKNOWN_WEBSITE

    labels = match.group(1).lower().split(".")
    return ".".join(labels[-2:])


class CodeStore:
    """Stores codes and lists them newest-first"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def store(
        self,
        user_id: str,
        code: str,
        website: str,
        message_id: str
    ) -> Optional[MagicCode]:
        """
        Insert a code for a message.
        Returns None if a code was already stored for this message id.
        """
        db = self.session_factory()
        try:
            record = MagicCode(
                user_id=user_id,
                code=code,
                website=website,
                email_id=message_id
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            logger.info("Stored magic code from %s for user %s", website, user_id)
            return record
        except IntegrityError:
            db.rollback()
            logger.info("Code for message %s already stored, skipping", message_id)
            return None
        finally:
            db.close()

    def exists_for_message(self, message_id: str) -> bool:
        """Check if a code was already extracted from this message"""
        db = self.session_factory()
        try:
            existing = db.query(MagicCode.id).filter(
                MagicCode.email_id == message_id
            ).first()
            return existing is not None
        finally:
            db.close()

    def list_recent(self, user_id: str, limit: int = 50) -> List[MagicCode]:
        """Most recent codes for a user"""
        db = self.session_factory()
        try:
            return db.query(MagicCode).filter(
                MagicCode.user_id == user_id
            ).order_by(
                MagicCode.created_at.desc(), MagicCode.id.desc()
            ).limit(limit).all()
        finally:
            db.close()
