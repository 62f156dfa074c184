"""
MagicCode Model - Codes and login links extracted from emails
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey

from app.core.database import Base, utcnow


class MagicCode(Base):
    """Append-only; a message contributes at most one code"""
    __tablename__ = "magic_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    code = Column(Text, nullable=False)  # digits, alphanumeric code or a full login URL
    website = Column(String(255), nullable=True)  # e.g. "example.com"
    email_id = Column(String(255), nullable=False, unique=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<MagicCode(user_id={self.user_id}, website={self.website}, email_id={self.email_id})>"
