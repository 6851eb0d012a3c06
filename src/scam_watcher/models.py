"""Data models for Scam Watcher."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class MessageEnvelope:
    """A single fetched message, ready for classification."""

    uid: int
    subject: str
    sender: str  # Full From header value
    date: datetime  # Always timezone-aware
    text: str
    html: str | bool = False  # HTML source, or False when the message has none


@dataclass
class ClassificationResult:
    """Outcome of asking the classifier about one message."""

    scam_probability: float  # 0-100
    reason: str | None = None


@dataclass
class AccountConfig:
    """One entry of the accounts file."""

    user: str
    password: str
    host: str
    label: str | None = None
    port: int = 993
    tls: bool = True
    scam_threshold: float = 80.0
    emails_analyzed_until: datetime | None = None

    @property
    def identifier(self) -> str:
        return self.label or self.user


class WatcherState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


@dataclass
class ReconnectState:
    """Backoff bookkeeping owned by the reconnection scheduler."""

    attempt: int = 0
    timer: Any = None  # pending threading.Timer, if any
    in_progress: bool = False
    exhausted: bool = False


class EventKind(enum.Enum):
    NOTIFICATION = "notification"
    ERROR = "error"
    CLOSE = "close"
    KEEPALIVE = "keepalive"
    RECONNECT = "reconnect"
    STOP = "stop"


@dataclass
class Event:
    """Something a watcher must react to on its own thread.

    ``generation`` ties connection-bound events to the connection that
    produced them; ``None`` means the event is not connection-bound.
    """

    kind: EventKind
    payload: Any = None
    generation: int | None = None
