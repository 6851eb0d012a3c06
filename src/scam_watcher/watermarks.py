"""File-backed watermark store.

Watermarks live in the accounts file itself, in each entry's
``emailsAnalyzedUntil`` field. Several watchers in the same process may
update the same file, so every write is a full read-modify-write done
under a per-file lock and published with an atomic replace.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from .config import format_instant
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)

_locks: dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(path, threading.Lock())


def _matches(record: dict, user: str | None, label: str | None) -> bool:
    return bool((user and record.get("user") == user) or (label and record.get("label") == label))


class WatermarkStore:
    """Read and write one account's watermark inside a shared accounts file."""

    def __init__(self, path: Path, user: str | None = None, label: str | None = None) -> None:
        self.path = Path(path).resolve()
        self.user = user
        self.label = label
        self._lock = _lock_for(self.path)

    def save(self, instant: datetime) -> bool:
        """Persist *instant* for this account.

        Returns False when the account has no entry in the file. Raises
        PersistenceFailure when the file cannot be read or written.
        """
        with self._lock:
            try:
                data = self._read()
            except (OSError, ValueError) as e:
                raise PersistenceFailure(f"Cannot read {self.path}: {e}") from e

            for record in data:
                if isinstance(record, dict) and _matches(record, self.user, self.label):
                    record["emailsAnalyzedUntil"] = format_instant(instant)
                    break
            else:
                return False

            try:
                self._write(data)
            except OSError as e:
                raise PersistenceFailure(f"Cannot write {self.path}: {e}") from e
        return True

    # --- file I/O ---

    def _read(self) -> list:
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError("accounts file is not a JSON array")
        return data

    def _write(self, data: list) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise


class Watermark:
    """In-memory watermark for one account, mirrored to a WatermarkStore.

    The instant only ever moves forward. A failed write is logged and the
    in-memory value still advances, so the running process does not redo
    work; the file catches up on the next successful write.
    """

    def __init__(self, instant: datetime | None, store: WatermarkStore | None = None, label: str = "", clock=None) -> None:
        self.instant = instant
        self.store = store
        self.label = label
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def advance(self) -> datetime:
        now = self._clock()
        if self.instant is not None and now < self.instant:
            now = self.instant
        self.instant = now

        if self.store is not None:
            try:
                if not self.store.save(now):
                    logger.warning("No entry for %s in %s; watermark kept in memory only", self.label, self.store.path)
            except PersistenceFailure as e:
                logger.error("Failed to persist watermark [%s]: %s", self.label, e)
        return now
