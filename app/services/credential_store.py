"""
Credential Store
Holds each user's Google access/refresh token pair.

Clearing a credential notifies registered listeners so the poll scheduler
can stop the user's task and the login layer can ask for a new sign-in.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from app.core.database import utcnow
from app.models import User

logger = logging.getLogger(__name__)

# Values reported by status()
STATUS_AUTHENTICATED = "authenticated"
STATUS_NEEDS_REAUTH = "needs_reauth"
STATUS_UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class UserCredential:
    """Snapshot of a user's live token pair"""
    user_id: str
    access_token: str
    refresh_token: str
    refreshed_at: Optional[datetime] = None
    email: Optional[str] = None


class CredentialStore:
    """
    get/set/clear over the users table.

    Writes for one user are serialized with a per-user lock; reads are not.
    Database errors propagate to the caller.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self._clear_listeners: List[Callable[[str], None]] = []

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[user_id]

    def add_clear_listener(self, callback: Callable[[str], None]):
        """Register a callback invoked with the user id after clear()"""
        self._clear_listeners.append(callback)

    @staticmethod
    def _to_credential(user: User) -> Optional[UserCredential]:
        if not user or not user.has_tokens:
            return None
        return UserCredential(
            user_id=user.id,
            access_token=user.access_token,
            refresh_token=user.refresh_token,
            refreshed_at=user.token_refreshed_at,
            email=user.email,
        )

    def get(self, user_id: str) -> Optional[UserCredential]:
        """Live credential for the user, None if unknown or cleared"""
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            return self._to_credential(user)
        finally:
            db.close()

    def set(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        email: str = None,
        refreshed_at: datetime = None
    ) -> UserCredential:
        """Create or update the user's token pair"""
        if not access_token or not refresh_token:
            raise ValueError("Both access_token and refresh_token are required")

        with self._lock_for(user_id):
            db = self.session_factory()
            try:
                user = db.query(User).filter(User.id == user_id).first()
                if not user:
                    user = User(id=user_id)
                    db.add(user)
                if email:
                    user.email = email
                user.access_token = access_token
                user.refresh_token = refresh_token
                user.token_refreshed_at = refreshed_at or utcnow()
                db.commit()
                db.refresh(user)
                return self._to_credential(user)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def update_refreshed(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        refreshed_at: datetime = None
    ) -> Optional[UserCredential]:
        """
        Store a refreshed token pair.
        Returns None, writing nothing, if the user's tokens were cleared meanwhile.
        """
        with self._lock_for(user_id):
            db = self.session_factory()
            try:
                user = db.query(User).filter(User.id == user_id).first()
                if not user or not user.has_tokens:
                    return None
                user.access_token = access_token
                user.refresh_token = refresh_token
                user.token_refreshed_at = refreshed_at or utcnow()
                db.commit()
                db.refresh(user)
                return self._to_credential(user)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def clear(self, user_id: str):
        """Drop the user's tokens. Safe to call for unknown or cleared users."""
        with self._lock_for(user_id):
            self._drop_tokens(user_id)
        self._notify_cleared(user_id)

    def clear_if_current(self, user_id: str, refresh_token: str) -> bool:
        """
        Drop the user's tokens only if the stored refresh token is still the
        one that was rejected. A user who signed in again since keeps the new
        tokens and listeners are not notified. Returns True when cleared.
        """
        with self._lock_for(user_id):
            db = self.session_factory()
            try:
                stored = db.query(User.refresh_token).filter(User.id == user_id).scalar()
            finally:
                db.close()
            if stored != refresh_token:
                logger.info("Tokens for user %s were replaced, keeping them", user_id)
                return False
            self._drop_tokens(user_id)
        self._notify_cleared(user_id)
        return True

    def _drop_tokens(self, user_id: str):
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user and (user.access_token or user.refresh_token):
                user.access_token = None
                user.refresh_token = None
                db.commit()
                logger.info("Cleared stored tokens for user %s", user_id)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _notify_cleared(self, user_id: str):
        for callback in list(self._clear_listeners):
            try:
                callback(user_id)
            except Exception:
                logger.exception("Credential clear listener failed for user %s", user_id)

    def status(self, user_id: str) -> str:
        """authenticated, needs_reauth (known user without tokens) or unauthenticated"""
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                return STATUS_UNAUTHENTICATED
            return STATUS_AUTHENTICATED if user.has_tokens else STATUS_NEEDS_REAUTH
        finally:
            db.close()

    def list_authenticated(self) -> List[UserCredential]:
        """Every user that still has a usable token pair"""
        db = self.session_factory()
        try:
            users = db.query(User).filter(
                User.access_token.isnot(None),
                User.refresh_token.isnot(None)
            ).all()
            return [c for c in (self._to_credential(u) for u in users) if c]
        finally:
            db.close()
