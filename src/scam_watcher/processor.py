"""Interpret mailbox notifications: initial announcement vs new mail."""

from __future__ import annotations

import logging

from .backfill import BackfillCoordinator
from .parser import parse_batch
from .pipeline import ClassificationPipeline
from .watermarks import Watermark

logger = logging.getLogger(__name__)


def new_mail_range(total: int, count: int) -> tuple[int, int] | None:
    """Inclusive sequence range holding the *count* newest of *total* messages."""
    if total <= 0 or count <= 0:
        return None
    return max(total - count + 1, 1), total


class MailEventProcessor:
    """Turn "N messages" notifications into backfills or live batches.

    Right after the mailbox is opened the server announces its full size;
    that first notification (count equal to the current total) starts the
    historical backfill. Every other notification is new mail.
    """

    def __init__(
        self,
        pipeline: ClassificationPipeline,
        backfill: BackfillCoordinator,
        watermark: Watermark,
        label: str,
    ) -> None:
        self.pipeline = pipeline
        self.backfill = backfill
        self.watermark = watermark
        self.label = label
        self._announced = False

    def begin_connection(self) -> None:
        """Forget the previous connection's initial announcement."""
        self._announced = False

    def handle_notification(self, session, count: int) -> None:
        # The total may have moved since the notification was queued;
        # anything that arrived meanwhile joins this batch
        total = session.total_messages()
        count += session.drain_new_mail()

        if count == total and not self._announced:
            self._announced = True
            logger.info(
                "Initial messages count received %d; starting historical backfill [%s]",
                count,
                self.label,
            )
            self.backfill.run(session)
            return

        logger.info("New %d email%s received [%s]", count, "s" if count != 1 else "", self.label)
        self.process_new_mail(session, total, count)
        self.watermark.advance()

    def process_new_mail(self, session, total: int, count: int) -> int:
        """Fetch and classify the newest *count* messages. Returns how many were moved."""
        seq_range = new_mail_range(total, count)
        if seq_range is None:
            return 0
        start, end = seq_range
        logger.debug("Fetching messages %d:%d [%s]", start, end, self.label)
        emails = parse_batch(session.fetch_range(start, end), self.label)
        return self.pipeline.process_batch(session, emails)
