"""
CheckedEmail Model - Tracks examined emails so each one is analyzed once
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index

from app.core.database import Base, utcnow


class CheckedEmail(Base):
    """One row per examined message, written whether or not a code was found"""
    __tablename__ = "checked_emails"
    __table_args__ = (
        Index("idx_checked_emails_user_email", "user_id", "email_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    email_id = Column(String(255), nullable=False, unique=True, index=True)

    has_code = Column(Boolean, default=False, nullable=False)
    checked_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<CheckedEmail(email_id={self.email_id}, has_code={self.has_code})>"
