"""
User Model - Google account whose mailbox is polled for magic codes
"""
from sqlalchemy import Column, String, DateTime, Text

from app.core.database import Base, utcnow


class User(Base):
    """
    A user with an OAuth token pair issued by the login layer.

    access_token/refresh_token are set to NULL when the provider rejects
    the refresh token; such a user needs to sign in again and is not polled.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)  # Google account id
    email = Column(String(255), nullable=True, unique=True)

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_refreshed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, has_tokens={self.has_tokens})>"
