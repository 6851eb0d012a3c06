"""Fakes shared by the test suite."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from pathlib import Path

from scam_watcher.config import parse_instant
from scam_watcher.models import ClassificationResult, Event, EventKind

NOW = datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


def make_raw(
    subject: str = "Hello",
    sender: str = "Alice <alice@example.com>",
    date: datetime | None = NOW,
    body: str = "Hi there",
    html: str | None = None,
) -> bytes:
    msg = EmailMessage()
    if subject is not None:
        msg["Subject"] = subject
    if sender is not None:
        msg["From"] = sender
    msg["To"] = "me@example.com"
    if date is not None:
        msg["Date"] = format_datetime(date)
    if body is not None:
        msg.set_content(body)
        if html is not None:
            msg.add_alternative(html, subtype="html")
    elif html is not None:
        msg.set_content(html, subtype="html")
    return msg.as_bytes()


class FakeSession:
    """In-memory stand-in for MailSession.

    ``messages`` holds ``(uid, raw, internal_date)`` in mailbox (sequence) order.
    The first ``open_mailbox`` queues the initial count announcement.
    """

    def __init__(self, messages=None, folders=None, mailbox: str = "INBOX") -> None:
        self.mailbox = mailbox
        self.messages = list(messages or [])
        self.folders = list(folders if folders is not None else [("/", "INBOX")])
        self.authenticated = True
        self.closed = False
        self.opened = 0
        self.events: list = []
        self.moved: list[tuple[int, str]] = []
        self.created: list[str] = []
        self.fetch_range_calls: list[tuple[int, int]] = []
        self.fetch_since_calls: list = []
        self.move_error: Exception | None = None
        self.poll_error: Exception | None = None
        self.open_error: Exception | None = None
        self.search_error: Exception | None = None

    def add(self, uid: int, raw: bytes, internal: datetime = NOW) -> None:
        self.messages.append((uid, raw, internal))

    @staticmethod
    def _newest_first(rows):
        return sorted(rows, key=lambda row: (row[2], row[0]), reverse=True)

    def open_mailbox(self) -> int:
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        if self.opened == 1:
            self.events.append(Event(EventKind.NOTIFICATION, len(self.messages)))
        return len(self.messages)

    def total_messages(self) -> int:
        return len(self.messages)

    def drain_new_mail(self) -> int:
        count = sum(e.payload for e in self.events if e.kind is EventKind.NOTIFICATION)
        self.events = [e for e in self.events if e.kind is not EventKind.NOTIFICATION]
        return count

    def poll(self, timeout: float):
        if self.poll_error is not None:
            raise self.poll_error
        events, self.events = self.events, []
        return events

    def fetch_range(self, start: int, end: int):
        self.fetch_range_calls.append((start, end))
        return self._newest_first(self.messages[start - 1 : end])

    def fetch_since(self, day):
        self.fetch_since_calls.append(day)
        if self.search_error is not None:
            raise self.search_error
        rows = [row for row in self.messages if day is None or row[2].date() >= day]
        return self._newest_first(rows)

    def list_folders(self):
        return list(self.folders)

    def create_folder(self, name: str) -> None:
        self.created.append(name)
        self.folders.append(("/", name))

    def move(self, uid: int, folder: str) -> None:
        if self.move_error is not None:
            raise self.move_error
        self.moved.append((uid, folder))

    def close(self) -> None:
        self.closed = True
        self.authenticated = False


class FakeClassifier:
    """Return scripted probabilities keyed by subject (default 0)."""

    def __init__(self, probabilities: dict[str, float] | None = None, default: float = 0.0) -> None:
        self.probabilities = probabilities or {}
        self.default = default
        self.calls = []

    def classify(self, email):
        self.calls.append(email)
        return ClassificationResult(scam_probability=self.probabilities.get(email.subject, self.default))


class ManualTimer:
    """threading.Timer look-alike that only fires when told to."""

    def __init__(self, interval, function, args=None, kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class TimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None) -> ManualTimer:
        timer = ManualTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


class Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class SessionFactory:
    """Stand-in for MailSession.open: hands out scripted sessions or errors.

    The last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, account):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def stored_watermark(path, user: str):
    """Read *user*'s ``emailsAnalyzedUntil`` straight from the accounts file."""
    for record in json.loads(Path(path).read_text()):
        if record.get("user") == user:
            return parse_instant(record.get("emailsAnalyzedUntil"))
    return None
