"""Classification + relocation pipeline shared by live mail and backfill."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path

from .errors import RelocationFailure
from .folders import move_to_spam
from .models import ClassificationResult, MessageEnvelope
from .transport import is_connection_lost

logger = logging.getLogger(__name__)

_audit_lock = threading.Lock()


def _save_quarantine_log(path: Path, entry: dict) -> None:
    """Append a relocation to the audit log."""
    with _audit_lock:
        path.parent.mkdir(parents=True, exist_ok=True)

        log: list = []
        if path.exists():
            with open(path) as f:
                try:
                    log = json.load(f)
                except json.JSONDecodeError:
                    log = []
            if not isinstance(log, list):
                log = []

        log.append(entry)

        with open(path, "w") as f:
            json.dump(log, f, indent=2)


class ClassificationPipeline:
    """Classify one message and quarantine it when it crosses the threshold."""

    def __init__(self, classifier, threshold: float, label: str, audit_log: Path | None = None) -> None:
        self.classifier = classifier
        self.threshold = threshold
        self.label = label
        self.audit_log = audit_log

    def process(self, session, email: MessageEnvelope) -> bool:
        """Return True when the message was moved to the quarantine folder.

        RelocationFailure propagates to the caller, which decides whether the
        rest of the batch continues.
        """
        logger.info("Analyzing email: %s [%s]", email.subject, self.label)
        result: ClassificationResult = self.classifier.classify(email)
        if result.reason:
            logger.debug("Classifier reason for %s: %s [%s]", email.uid, result.reason, self.label)

        if result.scam_probability < self.threshold:
            logger.info("Legitimate email: %s [%s]", email.subject, self.label)
            return False

        logger.warning(
            "Potential scam detected (%.1f%%): %s [%s]",
            result.scam_probability,
            email.subject,
            self.label,
        )
        folder = move_to_spam(session, email.uid)
        self._record(email, folder, result)
        return True

    def process_batch(self, session, emails: list[MessageEnvelope]) -> int:
        """Run every message through ``process``; one failure never stops the rest.

        Returns how many messages were relocated.
        """
        moved = 0
        for email in emails:
            try:
                if self.process(session, email):
                    moved += 1
            except RelocationFailure as e:
                if is_connection_lost(e):
                    # Connection is gone; the rest of the batch cannot be moved either
                    raise
                logger.error("%s [%s]", e, self.label)
            except Exception:
                logger.exception("Error processing message %s [%s]", email.uid, self.label)
        return moved

    def _record(self, email: MessageEnvelope, folder: str, result: ClassificationResult) -> None:
        if self.audit_log is None:
            return
        entry = {
            "date": datetime.now().isoformat(),
            "account": self.label,
            "uid": email.uid,
            "folder": folder,
            "scam_probability": result.scam_probability,
            "reason": result.reason,
        }
        try:
            _save_quarantine_log(self.audit_log, entry)
        except OSError as e:
            logger.warning("Could not write quarantine log %s: %s", self.audit_log, e)
