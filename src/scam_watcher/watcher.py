"""Connection lifecycle for one watched account.

A ``Watcher`` owns the account's single ``MailSession`` and runs an event
loop on its own thread. Everything that happens to the account, whether
server pushes, timer ticks or stop requests, becomes an ``Event`` and is
handled there, one at a time::

    DISCONNECTED -> CONNECTING -> WATCHING -> RECONNECTING -> ... -> STOPPED

``STOPPED`` is only reached through an explicit stop or rejected
credentials; transport failures always go through the reconnection
scheduler.
"""

from __future__ import annotations

import logging
import queue
import random
import threading
from pathlib import Path

from .analyzer import Classifier
from .backfill import BackfillCoordinator
from .config import Settings
from .constants import IDLE_CHECK_INTERVAL, QUARANTINE_LOG_PATH
from .errors import AuthenticationFailure
from .models import AccountConfig, Event, EventKind, WatcherState
from .pipeline import ClassificationPipeline
from .processor import MailEventProcessor
from .scheduler import KeepaliveTimer, ReconnectScheduler
from .transport import MailSession, is_connection_lost
from .watermarks import Watermark, WatermarkStore

logger = logging.getLogger(__name__)


class Watcher:
    """Keep one account's inbox watched across network failures."""

    def __init__(
        self,
        account: AccountConfig,
        classifier,
        store: WatermarkStore | None = None,
        session_factory=MailSession.open,
        audit_log: Path | None = QUARANTINE_LOG_PATH,
        timer_factory=threading.Timer,
        clock=None,
        rng=random.random,
    ) -> None:
        self.account = account
        self.label = account.identifier
        self.state = WatcherState.DISCONNECTED
        self._session_factory = session_factory
        self._session: MailSession | None = None
        self._generation = 0
        self._events: queue.Queue[Event] = queue.Queue()
        self._stop_requested = threading.Event()

        self.watermark = Watermark(account.emails_analyzed_until, store, self.label, clock)
        self.pipeline = ClassificationPipeline(classifier, account.scam_threshold, self.label, audit_log)
        self.backfill = BackfillCoordinator(self.pipeline, self.watermark, self.label)
        self.processor = MailEventProcessor(self.pipeline, self.backfill, self.watermark, self.label)
        self.keepalive = KeepaliveTimer(self.post, timer_factory=timer_factory)
        self.reconnector = ReconnectScheduler(self.post, self.label, timer_factory=timer_factory, rng=rng)

        self._handlers = {
            EventKind.NOTIFICATION: self._on_notification,
            EventKind.ERROR: self._on_transport_error,
            EventKind.CLOSE: self._on_transport_close,
            EventKind.KEEPALIVE: self._on_keepalive,
            EventKind.RECONNECT: self._on_reconnect_due,
            EventKind.STOP: self._on_stop,
        }

    @property
    def connected(self) -> bool:
        return self._session is not None

    @property
    def generation(self) -> int:
        return self._generation

    def post(self, event: Event) -> None:
        """Queue an event for the watcher thread. Safe from any thread."""
        self._events.put(event)

    # --- lifecycle ---

    def start_watching(self) -> None:
        if self.state is WatcherState.WATCHING:
            logger.info("Already watching for new emails [%s]", self.label)
            return
        if self.state is WatcherState.STOPPED:
            logger.info("Watcher was stopped; not restarting [%s]", self.label)
            return

        self.state = WatcherState.CONNECTING
        try:
            self.connect()
        except AuthenticationFailure as e:
            logger.error("Invalid credentials [%s]: %s", self.label, e)
            self.stop_watching()
            return
        except Exception as e:
            logger.error("Failed to start watching emails [%s]: %s", self.label, e)
            self.state = WatcherState.DISCONNECTED
            self._schedule_reconnect()
            return

        self.state = WatcherState.WATCHING
        logger.info("Mail watcher is now active and listening for new emails [%s]", self.label)

    def connect(self) -> None:
        """Open, authenticate and select the inbox. Errors propagate unchanged."""
        logger.info("Connecting to IMAP server %s:%d [%s]...", self.account.host, self.account.port, self.label)
        session = self._session_factory(self.account)
        try:
            session.open_mailbox()
        except BaseException:
            session.close()
            raise

        self._generation += 1
        self._session = session
        self.processor.begin_connection()
        self.keepalive.start(self._generation)
        self.reconnector.reset()
        logger.info("Connected to IMAP server and opened %s [%s]", session.mailbox, self.label)

    def stop_watching(self) -> None:
        """Cancel timers, drop the connection and enter STOPPED. Idempotent."""
        self._stop_requested.set()
        self.reconnector.cancel()
        self._cleanup_connection()
        if self.state is not WatcherState.STOPPED:
            self.state = WatcherState.STOPPED
            logger.info("Stopped watching [%s]", self.label)

    def stop(self) -> None:
        """Ask the watcher thread to stop. Safe from any thread."""
        self._stop_requested.set()
        self.post(Event(EventKind.STOP))

    # --- event loop ---

    def run(self) -> None:
        """Watch until stopped. Meant to be the target of a thread."""
        self.start_watching()
        while self.state is not WatcherState.STOPPED:
            self.run_once()

    def run_once(self, timeout: float = IDLE_CHECK_INTERVAL) -> None:
        """Handle queued events, then wait up to *timeout* for server pushes."""
        if self._stop_requested.is_set():
            self.stop_watching()
            return

        self._drain()
        if self.state is WatcherState.STOPPED:
            return

        session = self._session
        if session is None:
            try:
                event = self._events.get(timeout=timeout)
            except queue.Empty:
                return
            self.dispatch(event)
            return

        generation = self._generation
        try:
            events = session.poll(timeout)
        except Exception as e:
            if is_connection_lost(e):
                self.dispatch(Event(EventKind.CLOSE, True, generation))
            else:
                self.dispatch(Event(EventKind.ERROR, e, generation))
            return

        for event in events:
            event.generation = generation
            self.dispatch(event)

    def _drain(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            self.dispatch(event)

    def dispatch(self, event: Event) -> None:
        if event.generation is not None and event.generation != self._generation:
            logger.debug("Dropping %s event from a closed connection [%s]", event.kind.value, self.label)
            return
        if self.state is WatcherState.STOPPED and event.kind is not EventKind.STOP:
            return

        try:
            self._handlers[event.kind](event)
        except Exception as e:
            if is_connection_lost(e):
                logger.error("Connection lost while handling %s [%s]: %s", event.kind.value, self.label, e)
                self._handle_connection_failure()
            else:
                logger.exception("Error handling %s event [%s]", event.kind.value, self.label)

    # --- handlers ---

    def _on_notification(self, event: Event) -> None:
        if self._session is None:
            return
        self.processor.handle_notification(self._session, event.payload)

    def _on_transport_error(self, event: Event) -> None:
        logger.error("IMAP error [%s]: %s", self.label, event.payload)
        self._handle_connection_failure()

    def _on_transport_close(self, event: Event) -> None:
        logger.warning(
            "IMAP connection closed %s [%s]",
            "with error" if event.payload else "normally",
            self.label,
        )
        self._handle_connection_failure()

    def _on_keepalive(self, event: Event) -> None:
        session = self._session
        if session is None or not session.authenticated:
            return
        try:
            session.open_mailbox()
        except Exception as e:
            logger.warning("Keepalive mailbox reopen failed [%s]: %s", self.label, e)
            self._handle_connection_failure()

    def _on_reconnect_due(self, event: Event) -> None:
        if self._session is not None:
            self.reconnector.attempt_finished()
            return

        try:
            self.connect()
        except AuthenticationFailure as e:
            self.reconnector.attempt_finished()
            logger.error("Invalid credentials [%s]: %s", self.label, e)
            self.stop_watching()
            return
        except Exception as e:
            logger.error("Reconnection attempt failed [%s]: %s", self.label, e)
            self.reconnector.attempt_finished()
            self.state = WatcherState.DISCONNECTED
            self._schedule_reconnect()
            return

        self.reconnector.attempt_finished()
        self.state = WatcherState.WATCHING
        logger.info("Successfully reconnected to IMAP server [%s]", self.label)

    def _on_stop(self, event: Event) -> None:
        self.stop_watching()

    # --- failure handling ---

    def _handle_connection_failure(self) -> None:
        if self.reconnector.in_progress:
            return
        self._cleanup_connection()
        self.state = WatcherState.DISCONNECTED
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.reconnector.schedule():
            self.state = WatcherState.RECONNECTING

    def _cleanup_connection(self) -> None:
        self.keepalive.stop()
        session, self._session = self._session, None
        # Anything still queued for the old connection is now stale
        self._generation += 1
        if session is not None:
            session.close()


def build_watcher(account: AccountConfig, settings: Settings, accounts_path: Path | None) -> Watcher:
    """Create a fully wired watcher for one configured account."""
    classifier = Classifier(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        body_max_chars=settings.body_max_chars,
    )
    store = WatermarkStore(accounts_path, user=account.user, label=account.label) if accounts_path else None
    return Watcher(account, classifier, store=store)


class WatcherGroup:
    """Run independent watchers side by side, one thread each."""

    def __init__(self, watchers: list[Watcher]) -> None:
        self.watchers = watchers
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for watcher in self.watchers:
            thread = threading.Thread(target=watcher.run, name=f"watcher-{watcher.label}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self) -> None:
        for watcher in self.watchers:
            watcher.stop()

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)
