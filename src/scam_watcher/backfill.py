"""Historical scan of messages received since the watermark."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from .models import MessageEnvelope
from .parser import parse_batch
from .pipeline import ClassificationPipeline
from .watermarks import Watermark

logger = logging.getLogger(__name__)


def filter_since(emails: list[MessageEnvelope], lower_bound: datetime | None, label: str = "") -> list[MessageEnvelope]:
    """Drop messages dated strictly before *lower_bound*.

    IMAP SINCE only has day precision, so the server hands back the whole
    watermark day; this trims it to the exact instant.
    """
    if lower_bound is None:
        return list(emails)
    kept = []
    for email in emails:
        if email.date < lower_bound:
            logger.debug(
                "Skipping email dated %s (subject: %r) older than %s [%s]",
                email.date.isoformat(),
                email.subject,
                lower_bound.isoformat(),
                label,
            )
            continue
        kept.append(email)
    return kept


class BackfillCoordinator:
    """Replay everything since the watermark, one scan at a time per account."""

    def __init__(self, pipeline: ClassificationPipeline, watermark: Watermark, label: str) -> None:
        self.pipeline = pipeline
        self.watermark = watermark
        self.label = label
        self._running = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running.locked()

    def run(self, session) -> bool:
        """Scan and classify, then advance the watermark.

        A trigger that arrives while a scan is in flight is ignored, not
        queued. Returns True when a scan ran to completion.
        """
        if not self._running.acquire(blocking=False):
            logger.info("Backfill already in progress; ignoring trigger [%s]", self.label)
            return False
        try:
            lower_bound = self.watermark.instant
            logger.info(
                "Backfill lower bound: %s [%s]",
                lower_bound.isoformat() if lower_bound else "(beginning of mailbox)",
                self.label,
            )
            self.scan(session, lower_bound)
            self.watermark.advance()
            return True
        finally:
            self._running.release()

    def scan(self, session, lower_bound: datetime | None) -> int:
        day = lower_bound.astimezone(timezone.utc).date() if lower_bound else None
        logger.info(
            "Searching messages with criteria: %s [%s]",
            f"SINCE {day:%d-%b-%Y}" if day else "ALL",
            self.label,
        )
        rows = session.fetch_since(day)
        logger.info("Found %d messages to analyze [%s]", len(rows), self.label)

        emails = filter_since(parse_batch(rows, self.label), lower_bound, self.label)
        return self.pipeline.process_batch(session, emails)
