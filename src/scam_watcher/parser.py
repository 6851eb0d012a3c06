"""Turn raw RFC 822 bytes into MessageEnvelope objects."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser

import html2text

from scam_watcher.constants import NO_SUBJECT, UNKNOWN_SENDER
from scam_watcher.errors import ParseFailure
from scam_watcher.models import MessageEnvelope

logger = logging.getLogger(__name__)


def _html_to_text(source: str) -> str:
    converter = html2text.HTML2Text()
    converter.ignore_links = False
    converter.ignore_images = True
    converter.body_width = 0  # No line wrapping
    return converter.handle(source)


def _message_date(msg: EmailMessage, fallback: datetime) -> datetime:
    try:
        header = msg["Date"]
        value = header.datetime if header is not None else None
    except (TypeError, ValueError, AttributeError):
        value = None
    if value is None:
        return fallback
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _body_content(msg: EmailMessage, preference: tuple[str, ...]) -> str | None:
    part = msg.get_body(preferencelist=preference)
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, ValueError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def parse_message(uid: int, raw: bytes, fallback_date: datetime | None = None) -> MessageEnvelope:
    """Parse one fetched message.

    Missing headers fall back to placeholders; a missing or unreadable Date
    falls back to *fallback_date* (the fetch time when not given).
    """
    if not raw:
        raise ParseFailure(f"Message {uid} has an empty body")
    fallback = fallback_date or datetime.now(timezone.utc)

    try:
        msg = BytesParser(policy=policy.default).parsebytes(raw)
        subject = str(msg.get("Subject", "") or "").strip() or NO_SUBJECT
        sender = str(msg.get("From", "") or "").strip() or UNKNOWN_SENDER
        date = _message_date(msg, fallback)
        text = _body_content(msg, ("plain",))
        html_source = _body_content(msg, ("html",))
    except ParseFailure:
        raise
    except Exception as e:
        raise ParseFailure(f"Message {uid} could not be parsed: {e}") from e

    if text is None and html_source:
        text = _html_to_text(html_source)

    return MessageEnvelope(
        uid=uid,
        subject=subject,
        sender=sender,
        date=date,
        text=text or "",
        html=html_source or False,
    )


def parse_batch(rows, label: str = "") -> list[MessageEnvelope]:
    """Parse ``(uid, raw, internal_date)`` rows, skipping unparseable messages."""
    emails: list[MessageEnvelope] = []
    for uid, raw, internal_date in rows:
        try:
            emails.append(parse_message(uid, raw, fallback_date=internal_date))
        except ParseFailure as e:
            logger.error("Error parsing email: %s [%s]", e, label)
    return emails
