"""Exception types raised across Scam Watcher."""

from __future__ import annotations


class WatcherError(Exception):
    """Base class for all Scam Watcher errors."""


class ConfigError(WatcherError):
    """The accounts file or environment is missing or malformed."""


class AuthenticationFailure(WatcherError):
    """The server rejected the account's credentials. Retrying will not help."""


class TransportFailure(WatcherError):
    """The connection to the mail server failed or was lost."""


class ParseFailure(WatcherError):
    """A fetched message could not be turned into an envelope."""


class ClassificationFailure(WatcherError):
    """The classifier could not produce a usable answer."""


class RelocationFailure(WatcherError):
    """A flagged message could not be moved to the quarantine folder."""

    def __init__(self, uid: int, folder: str | None, cause: BaseException | None = None) -> None:
        self.uid = uid
        self.folder = folder
        self.cause = cause
        target = folder or "quarantine folder"
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to move message {uid} to {target}{detail}")


class PersistenceFailure(WatcherError):
    """The watermark could not be written to disk."""
