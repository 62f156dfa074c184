"""
Per-User Poll Scheduler
Runs one polling task per authenticated user and drives each tick through
fetch -> extract -> dedup -> oracle -> store -> mark checked -> mark read.

Each tick body (poll_once) is synchronous and runs in a worker thread, so a
slow mailbox or oracle call for one user never holds up another user.
Ticks for the same user never overlap: every tick holds that user's lock.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.services.code_store import CodeStore, derive_website
from app.services.content_extractor import extract_text
from app.services.credential_store import CredentialStore, UserCredential
from app.services.extraction_oracle import ExtractionOracle
from app.services.ingestion_ledger import IngestionLedger
from app.services.mailbox import (
    InvalidCredentialError,
    MailboxError,
    MailboxFetcher,
    MessageRef,
)

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """What one tick did for one user"""
    user_id: str
    candidates: int = 0
    examined: int = 0
    skipped: int = 0
    codes_found: int = 0
    errors: int = 0
    invalidated: bool = False  # credential rejected and cleared
    no_credential: bool = False  # nothing to poll with


class PollSupervisor:
    """
    Owns the mapping from user id to that user's polling task.

    start_polling() replaces any existing task for the user; stop_polling()
    prevents further ticks and lets an in-flight tick finish. Clearing a
    user's credential stops their task through the store's clear listener.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        fetcher: MailboxFetcher,
        ledger: IngestionLedger,
        code_store: CodeStore,
        oracle: ExtractionOracle,
        poll_interval: float = None
    ):
        self.credential_store = credential_store
        self.fetcher = fetcher
        self.ledger = ledger
        self.code_store = code_store
        self.oracle = oracle
        self.poll_interval = poll_interval or settings.EMAIL_POLL_INTERVAL_SECONDS

        self._tasks: Dict[str, asyncio.Task] = {}
        self._stop_events: Dict[str, asyncio.Event] = {}
        self._tick_locks: Dict[str, asyncio.Lock] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        credential_store.add_clear_listener(self.stop_polling)

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    def is_polling(self, user_id: str) -> bool:
        task = self._tasks.get(user_id)
        return task is not None and not task.done()

    def active_users(self) -> List[str]:
        return sorted(uid for uid in self._tasks if self.is_polling(uid))

    def start_polling(self, user_id: str) -> asyncio.Task:
        """Start (or restart) polling for a user. Must be called on the event loop."""
        loop = asyncio.get_running_loop()
        self._loop = loop

        if user_id in self._tasks:
            logger.info("Replacing existing polling task for user %s", user_id)
        self._stop(user_id)

        stop_event = asyncio.Event()
        task = loop.create_task(self._run(user_id, stop_event), name=f"email-poll-{user_id}")
        self._stop_events[user_id] = stop_event
        self._tasks[user_id] = task
        return task

    def stop_polling(self, user_id: str):
        """Stop scheduling ticks for a user. Safe to call from any thread."""
        loop = self._loop
        if loop is not None and loop.is_running() and not self._on_loop_thread(loop):
            loop.call_soon_threadsafe(self._stop, user_id)
            return
        self._stop(user_id)

    @staticmethod
    def _on_loop_thread(loop: asyncio.AbstractEventLoop) -> bool:
        try:
            return asyncio.get_running_loop() is loop
        except RuntimeError:
            return False

    def _stop(self, user_id: str) -> Optional[asyncio.Task]:
        stop_event = self._stop_events.pop(user_id, None)
        if stop_event is not None:
            stop_event.set()
            logger.info("Stopping email polling for user %s", user_id)
        return self._tasks.pop(user_id, None)

    async def start_all(self) -> int:
        """Resume polling for every user that still has tokens"""
        credentials = await asyncio.to_thread(self.credential_store.list_authenticated)
        for credential in credentials:
            self.start_polling(credential.user_id)
        logger.info("Email polling started for %d user(s)", len(credentials))
        return len(credentials)

    async def shutdown(self):
        """Stop every task and wait for in-flight ticks to finish"""
        tasks = [self._stop(user_id) for user_id in list(self._tasks)]
        tasks = [t for t in tasks if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, user_id: str, stop_event: asyncio.Event):
        """Tick immediately, then once per interval until stopped"""
        logger.info("Starting email polling for user %s every %s seconds", user_id, self.poll_interval)
        try:
            while not stop_event.is_set():
                try:
                    result = await self.run_tick(user_id)
                    if result.invalidated or result.no_credential:
                        break
                except Exception:
                    logger.exception("Error during poll for user %s", user_id)

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            current = asyncio.current_task()
            if self._tasks.get(user_id) is current:
                del self._tasks[user_id]
            if self._stop_events.get(user_id) is stop_event:
                del self._stop_events[user_id]

    async def run_tick(self, user_id: str) -> TickResult:
        """One tick for the user, serialized with any other tick for the same user"""
        lock = self._tick_locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            return await asyncio.to_thread(self.poll_once, user_id)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def poll_once(self, user_id: str) -> TickResult:
        """
        Poll the user's mailbox once and process new emails.

        A rejected credential is cleared, which stops the user's task, unless
        the user signed in again while the tick was running.
        Transient mailbox failures end the tick; the next tick retries.
        """
        result = TickResult(user_id=user_id)

        credential = self.credential_store.get(user_id)
        if credential is None:
            logger.info("No credentials for user %s, not polling", user_id)
            result.no_credential = True
            return result

        try:
            credential = self._refresh_if_due(credential)
            if credential is None:
                result.no_credential = True
                return result

            refs = self.fetcher.list_candidates(credential)
            result.candidates = len(refs)
            for ref in refs:
                self._process_message(credential, ref, result)

        except InvalidCredentialError as e:
            logger.warning(
                "OAuth token rejected for user %s, user needs to re-authenticate: %s",
                user_id, e
            )
            # Tokens set by a new sign-in during this tick stay in place
            result.invalidated = self.credential_store.clear_if_current(
                user_id, credential.refresh_token
            )
        except MailboxError as e:
            logger.warning("Mailbox unavailable for user %s, retrying next tick: %s", user_id, e)
            result.errors += 1

        if result.codes_found:
            logger.info("Found %d new magic code(s) for user %s", result.codes_found, user_id)
        return result

    def _refresh_if_due(self, credential: UserCredential) -> Optional[UserCredential]:
        fresh = self.fetcher.ensure_fresh(credential)
        if fresh is credential:
            return credential
        # None if the user signed out while the refresh was in flight
        return self.credential_store.update_refreshed(
            credential.user_id,
            fresh.access_token,
            fresh.refresh_token,
            refreshed_at=fresh.refreshed_at
        )

    def _process_message(self, credential: UserCredential, ref: MessageRef, result: TickResult):
        """Examine one message. Errors other than a rejected credential stay here."""
        user_id = credential.user_id
        message_id = ref.message_id

        try:
            if self.ledger.has_been_checked(user_id, message_id):
                result.skipped += 1
                return

            # Code stored but ledger write lost (crash between the two writes)
            if self.code_store.exists_for_message(message_id):
                self.ledger.mark_checked(user_id, message_id, found_code=True)
                result.skipped += 1
                return

            message = self.fetcher.get_full_message(credential, ref)
            body = extract_text(message.payload)
            logger.debug(
                "Analyzing email %s from %s (%d chars)",
                message_id, message.sender, len(body)
            )

            outcome = self.oracle.extract(message.subject, message.sender, body)
            result.examined += 1

            if outcome.is_transient:
                logger.warning(
                    "Oracle %s for email %s, will retry next tick",
                    outcome.failure.value, message_id
                )
                result.errors += 1
                return

            if outcome.found:
                self.code_store.store(
                    user_id,
                    outcome.code,
                    derive_website(message.sender),
                    message_id
                )
                result.codes_found += 1

            self.ledger.mark_checked(user_id, message_id, found_code=outcome.found)

            # Only messages with a code are marked read; the rest stay unread
            if outcome.found:
                self.fetcher.mark_read(credential, ref)

        except InvalidCredentialError:
            raise
        except MailboxError as e:
            logger.warning("Could not fetch email %s for user %s: %s", message_id, user_id, e)
            result.errors += 1
        except SQLAlchemyError:
            logger.exception("Database error while processing email %s", message_id)
            result.errors += 1
        except Exception:
            logger.exception("Error processing email %s for user %s", message_id, user_id)
            result.errors += 1
