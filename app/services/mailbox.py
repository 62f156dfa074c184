"""
Mailbox access for magic code polling

MailboxProvider is the boundary to the mail service. GmailMailboxProvider
implements it with the Gmail REST API using each user's stored OAuth tokens,
refreshing them through google-auth when they age out.

MailboxFetcher adds the polling policy on top: a bounded lookback window,
a per-tick result cap, the freshness threshold and the token refresh cadence.

Usage:
    fetcher = MailboxFetcher(GmailMailboxProvider())
    credential = fetcher.ensure_fresh(credential)
    for ref in fetcher.list_candidates(credential):
        message = fetcher.get_full_message(credential, ref)
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.core.config import settings
from app.core.database import utcnow
from app.services.content_extractor import MessagePart, UnsupportedPart, decode_payload
from app.services.credential_store import UserCredential

logger = logging.getLogger(__name__)

# Gmail API scopes; modify is needed to remove the UNREAD label
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.modify",
]

# Markers the OAuth token endpoint uses when a refresh token is no longer usable
INVALID_GRANT_MARKERS = ("invalid_grant", "invalid_rapt", "invalid_token")


class MailboxError(Exception):
    """Transient mailbox failure (network, rate limit, server error)"""


class InvalidCredentialError(MailboxError):
    """The provider rejected the user's token; the user must sign in again"""


@dataclass(frozen=True)
class MessageRef:
    """A listed message before its content is fetched"""
    message_id: str
    thread_id: Optional[str] = None
    internal_date: Optional[datetime] = None  # aware UTC


@dataclass
class MailMessage:
    """A fully fetched message"""
    message_id: str
    thread_id: Optional[str]
    sender: str
    subject: str
    internal_date: Optional[datetime]
    payload: MessagePart = field(default_factory=lambda: UnsupportedPart(mime_type=""))
    labels: List[str] = field(default_factory=list)


class MailboxProvider(ABC):
    """Operations the poller needs from a mail service"""

    @abstractmethod
    def list_unread(
        self,
        credential: UserCredential,
        lookback_hours: int,
        max_results: int
    ) -> List[MessageRef]:
        ...

    @abstractmethod
    def get_message(self, credential: UserCredential, ref: MessageRef) -> MailMessage:
        ...

    @abstractmethod
    def mark_read(self, credential: UserCredential, ref: MessageRef):
        ...

    @abstractmethod
    def refresh_token(self, credential: UserCredential) -> UserCredential:
        """Exchange the refresh token for a new access token"""
        ...


def parse_internal_date(value) -> Optional[datetime]:
    """Gmail internalDate (epoch milliseconds as a string) to aware UTC"""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def is_invalid_grant(error: Exception) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in INVALID_GRANT_MARKERS)


class GmailMailboxProvider(MailboxProvider):
    """
    Gmail API client working on per-user OAuth tokens.

    One Gmail service object is cached per user and rebuilt when the
    user's access token changes.
    """

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        token_uri: str = None
    ):
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self.token_uri = token_uri or settings.GOOGLE_TOKEN_URI
        self._services: Dict[str, Tuple[str, object]] = {}

    def _build_credentials(self, credential: UserCredential) -> Credentials:
        return Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES,
        )

    def _build_service(self, credential: UserCredential):
        """Gmail API service for the user, reused while the access token is unchanged"""
        cached = self._services.get(credential.user_id)
        if cached and cached[0] == credential.access_token:
            return cached[1]

        service = build(
            "gmail", "v1",
            credentials=self._build_credentials(credential),
            cache_discovery=False
        )
        self._services[credential.user_id] = (credential.access_token, service)
        return service

    def _execute(self, request, action: str):
        """Run an API request, mapping failures to mailbox errors"""
        try:
            return request.execute()
        except RefreshError as e:
            if is_invalid_grant(e):
                raise InvalidCredentialError(f"{action}: {e}") from e
            raise MailboxError(f"{action}: {e}") from e
        except HttpError as e:
            if e.resp is not None and e.resp.status == 401:
                raise InvalidCredentialError(f"{action}: {e}") from e
            raise MailboxError(f"{action}: {e}") from e
        except Exception as e:
            raise MailboxError(f"{action}: {e}") from e

    def list_unread(
        self,
        credential: UserCredential,
        lookback_hours: int,
        max_results: int
    ) -> List[MessageRef]:
        """
        Unread messages from the lookback window, newest first.

        Gmail search only understands whole days, so the window is
        rounded up. Each id is then fetched with format=minimal to learn
        its internalDate.
        """
        service = self._build_service(credential)
        days = max(1, math.ceil(lookback_hours / 24))
        query = f"is:unread newer_than:{days}d"

        results = self._execute(
            service.users().messages().list(userId="me", q=query, maxResults=max_results),
            "list messages"
        )

        refs = []
        for msg in results.get("messages", [])[:max_results]:
            meta = self._execute(
                service.users().messages().get(userId="me", id=msg["id"], format="minimal"),
                f"get message {msg['id']} metadata"
            )
            refs.append(MessageRef(
                message_id=msg["id"],
                thread_id=msg.get("threadId"),
                internal_date=parse_internal_date(meta.get("internalDate"))
            ))
        return refs

    def get_message(self, credential: UserCredential, ref: MessageRef) -> MailMessage:
        service = self._build_service(credential)
        msg = self._execute(
            service.users().messages().get(userId="me", id=ref.message_id, format="full"),
            f"get message {ref.message_id}"
        )
        return self._parse_message(msg)

    def _parse_message(self, msg: dict) -> MailMessage:
        """Parse Gmail API message into a MailMessage"""
        payload = msg.get("payload") or {}
        headers = {
            h.get("name", "").lower(): h.get("value", "")
            for h in payload.get("headers", [])
        }
        return MailMessage(
            message_id=msg["id"],
            thread_id=msg.get("threadId"),
            sender=headers.get("from", ""),
            subject=headers.get("subject", ""),
            internal_date=parse_internal_date(msg.get("internalDate")),
            payload=decode_payload(payload),
            labels=msg.get("labelIds", [])
        )

    def mark_read(self, credential: UserCredential, ref: MessageRef):
        service = self._build_service(credential)
        self._execute(
            service.users().messages().modify(
                userId="me",
                id=ref.message_id,
                body={"removeLabelIds": ["UNREAD"]}
            ),
            f"mark message {ref.message_id} read"
        )

    def refresh_token(self, credential: UserCredential) -> UserCredential:
        creds = self._build_credentials(credential)
        try:
            creds.refresh(Request())
        except RefreshError as e:
            if is_invalid_grant(e):
                raise InvalidCredentialError(f"refresh token: {e}") from e
            raise MailboxError(f"refresh token: {e}") from e
        except Exception as e:
            raise MailboxError(f"refresh token: {e}") from e

        self._services.pop(credential.user_id, None)
        return UserCredential(
            user_id=credential.user_id,
            access_token=creds.token,
            refresh_token=creds.refresh_token or credential.refresh_token,
            refreshed_at=utcnow(),
            email=credential.email,
        )


class MailboxFetcher:
    """Polling policy over a MailboxProvider"""

    def __init__(
        self,
        provider: MailboxProvider,
        lookback_hours: int = None,
        max_results: int = None,
        freshness_minutes: int = None,
        refresh_interval_minutes: int = None
    ):
        self.provider = provider
        self.lookback_hours = lookback_hours or settings.MAILBOX_LOOKBACK_HOURS
        self.max_results = max_results or settings.MAILBOX_MAX_RESULTS
        self.freshness = timedelta(
            minutes=freshness_minutes or settings.MESSAGE_FRESHNESS_MINUTES
        )
        self.refresh_interval = timedelta(
            minutes=refresh_interval_minutes or settings.TOKEN_REFRESH_INTERVAL_MINUTES
        )

    def is_fresh(self, ref: MessageRef, listed_at: datetime) -> bool:
        """Messages without a known timestamp are treated as fresh"""
        if ref.internal_date is None:
            return True
        return ref.internal_date >= listed_at - self.freshness

    def list_candidates(self, credential: UserCredential, now: datetime = None) -> List[MessageRef]:
        """
        Unread messages worth examining on this tick.

        Messages older than the freshness threshold at listing time are
        left out; they stay unchecked and can come back on a later tick.
        """
        listed_at = now or datetime.now(timezone.utc)
        refs = self.provider.list_unread(credential, self.lookback_hours, self.max_results)
        fresh = [ref for ref in refs[:self.max_results] if self.is_fresh(ref, listed_at)]

        skipped = len(refs) - len(fresh)
        if skipped:
            logger.debug("Skipping %d stale message(s) for user %s", skipped, credential.user_id)
        return fresh

    def get_full_message(self, credential: UserCredential, ref: MessageRef) -> MailMessage:
        return self.provider.get_message(credential, ref)

    def mark_read(self, credential: UserCredential, ref: MessageRef) -> bool:
        """Best effort; failures are logged and never raised"""
        try:
            self.provider.mark_read(credential, ref)
            return True
        except Exception as e:
            logger.warning("Could not mark message %s as read: %s", ref.message_id, e)
            return False

    def needs_refresh(self, credential: UserCredential, now: datetime = None) -> bool:
        if credential.refreshed_at is None:
            return True
        return (now or utcnow()) - credential.refreshed_at >= self.refresh_interval

    def ensure_fresh(self, credential: UserCredential, now: datetime = None) -> UserCredential:
        """Refresh the access token if it is due. Raises InvalidCredentialError."""
        if not self.needs_refresh(credential, now):
            return credential
        logger.debug("Refreshing access token for user %s", credential.user_id)
        return self.provider.refresh_token(credential)
