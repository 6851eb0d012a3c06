"""IMAP session wrapper.

``MailSession`` is the only object that touches the ``IMAPClient``
connection. It exposes the handful of commands the watcher needs and turns
unsolicited server responses into ``Event`` objects: growth of the
mailbox's ``EXISTS`` count becomes a ``NOTIFICATION`` carrying the number
of new messages, ``EXPUNGE`` lowers the count it is measured against and
``BYE`` becomes a ``CLOSE``.
"""

from __future__ import annotations

import logging
import ssl
from datetime import date, datetime, timezone

from imapclient import IMAPClient
from imapclient.exceptions import CapabilityError, IMAPClientAbortError, IMAPClientError, LoginError

from .constants import FETCH_ITEMS, SOCKET_TIMEOUT, WATCHED_MAILBOX
from .errors import AuthenticationFailure, RelocationFailure, TransportFailure
from .models import AccountConfig, Event, EventKind

logger = logging.getLogger(__name__)


def is_connection_lost(exc: BaseException) -> bool:
    """True when *exc* means the socket or session is unusable."""
    if isinstance(exc, RelocationFailure) and exc.cause is not None:
        exc = exc.cause
    return isinstance(exc, (IMAPClientAbortError, OSError, TransportFailure))


def _body_of(data: dict) -> bytes:
    # Servers answer BODY.PEEK[] with BODY[]
    return data.get(b"BODY[]") or data.get(b"BODY.PEEK[]") or b""


class MailSession:
    """One authenticated IMAP connection watching a single mailbox."""

    def __init__(self, client: IMAPClient, mailbox: str = WATCHED_MAILBOX) -> None:
        self._client = client
        self.mailbox = mailbox
        self._known_total: int | None = None
        self._pending: list[Event] = []
        self._idling = False
        self._authenticated = True
        self._closed = False

    @classmethod
    def open(cls, account: AccountConfig, mailbox: str = WATCHED_MAILBOX) -> MailSession:
        """Connect and log in.

        Raises AuthenticationFailure on rejected credentials and
        TransportFailure when the server cannot be reached.
        """
        ssl_context = None
        if account.tls:
            ssl_context = ssl.create_default_context()
        try:
            client = IMAPClient(
                account.host,
                port=account.port,
                ssl=account.tls,
                ssl_context=ssl_context,
                timeout=SOCKET_TIMEOUT,
            )
        except OSError as e:
            raise TransportFailure(f"Cannot connect to {account.host}:{account.port}: {e}") from e
        try:
            client.login(account.user, account.password)
        except LoginError as e:
            try:
                client.shutdown()
            except OSError:
                pass
            raise AuthenticationFailure(f"Invalid credentials for {account.identifier}: {e}") from e
        return cls(client, mailbox=mailbox)

    # --- state ---

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    # --- mailbox ---

    def open_mailbox(self) -> int:
        """Select the watched mailbox and return its message count.

        The first call on a session queues the initial count announcement;
        later calls only report growth.
        """
        self._leave_idle()
        info = self._client.select_folder(self.mailbox)
        total = int(info.get(b"EXISTS", 0))
        self._observe_exists(total)
        return total

    def total_messages(self) -> int:
        """Re-query the mailbox size.

        Growth past the last seen count is queued as new mail, like any
        other arrival; see ``drain_new_mail``.
        """
        return self.open_mailbox()

    def drain_new_mail(self) -> int:
        """Take queued new-mail notifications and return how many messages they announce."""
        _found, count = self._take_notifications()
        return count

    def _take_notifications(self) -> tuple[bool, int]:
        found, count, rest = False, 0, []
        for event in self._pending:
            if event.kind is EventKind.NOTIFICATION:
                found = True
                count += event.payload
            else:
                rest.append(event)
        self._pending = rest
        return found, count

    def _observe_exists(self, total: int) -> None:
        if self._known_total is None:
            self._pending.append(Event(EventKind.NOTIFICATION, total))
        elif total > self._known_total:
            self._pending.append(Event(EventKind.NOTIFICATION, total - self._known_total))
        self._known_total = total

    def _observe_expunge(self) -> None:
        if self._known_total:
            self._known_total -= 1

    def _observe(self, responses) -> None:
        for response in responses or []:
            if len(response) >= 2 and isinstance(response[0], int):
                if response[1] == b"EXISTS":
                    self._observe_exists(response[0])
                elif response[1] == b"EXPUNGE":
                    self._observe_expunge()
            elif response and response[0] == b"BYE":
                self._authenticated = False
                self._pending.append(Event(EventKind.CLOSE, False))

    # --- events ---

    def poll(self, timeout: float) -> list[Event]:
        """Wait up to *timeout* seconds in IDLE and return queued events.

        Notifications queued since the last poll come back merged into
        one, ahead of any other event.
        """
        if not self._pending:
            try:
                if not self._idling:
                    self._client.idle()
                    self._idling = True
                responses = self._client.idle_check(timeout=timeout)
            except (IMAPClientAbortError, OSError) as e:
                raise TransportFailure(f"IDLE on {self.mailbox} failed: {e}") from e
            self._observe(responses)

        found, count = self._take_notifications()
        events, self._pending = self._pending, []
        if found:
            events.insert(0, Event(EventKind.NOTIFICATION, count))
        return events

    def _leave_idle(self) -> None:
        if self._idling:
            self._idling = False
            _text, responses = self._client.idle_done()
            self._observe(responses)

    # --- commands ---

    def _fetch(self, uids: list[int]) -> list[tuple[int, bytes, datetime | None]]:
        if not uids:
            return []
        fetched = self._client.fetch(uids, FETCH_ITEMS)
        rows = []
        for uid, data in fetched.items():
            internal = data.get(b"INTERNALDATE")
            if isinstance(internal, datetime) and internal.tzinfo is None:
                internal = internal.replace(tzinfo=timezone.utc)
            rows.append((uid, _body_of(data), internal))
        # Newest first
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        rows.sort(key=lambda row: (row[2] or epoch, row[0]), reverse=True)
        return rows

    def fetch_range(self, start: int, end: int) -> list[tuple[int, bytes, datetime | None]]:
        """Fetch messages by sequence number range (inclusive), newest first."""
        self._leave_idle()
        uids = self._client.search([f"{start}:{end}"])
        return self._fetch(list(uids))

    def fetch_since(self, day: date | None) -> list[tuple[int, bytes, datetime | None]]:
        """Fetch every message on or after *day* (all messages when None), newest first."""
        self._leave_idle()
        criteria = ["SINCE", day] if day is not None else ["ALL"]
        uids = self._client.search(criteria)
        return self._fetch(list(uids))

    def list_folders(self) -> list[tuple[str, str]]:
        """Return ``(delimiter, name)`` for every folder on the server."""
        self._leave_idle()
        folders = []
        for _flags, delimiter, name in self._client.list_folders():
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode("ascii", errors="replace")
            folders.append((delimiter or "/", name))
        return folders

    def create_folder(self, name: str) -> None:
        self._leave_idle()
        self._client.create_folder(name)

    def move(self, uid: int, folder: str) -> None:
        """Move one message by UID, falling back to COPY + delete without MOVE."""
        self._leave_idle()
        try:
            self._client.move([uid], folder)
        except CapabilityError:
            self._client.copy([uid], folder)
            self._client.delete_messages([uid])
            if self._client.has_capability("UIDPLUS"):
                self._client.uid_expunge([uid])
            else:
                # Also removes anything else already flagged \Deleted
                _text, responses = self._client.expunge()
                self._observe(responses)
                return
        self._observe_expunge()

    def close(self) -> None:
        """Log out, dropping the socket if the server does not answer."""
        if self._closed:
            return
        self._closed = True
        self._authenticated = False
        try:
            if self._idling:
                self._idling = False
                self._client.idle_done()
            self._client.logout()
        except (IMAPClientError, IMAPClientAbortError, OSError) as e:
            logger.debug("Logout failed, shutting the socket down: %s", e)
            try:
                self._client.shutdown()
            except OSError:
                pass
