"""Locate the quarantine (spam/junk) folder and move messages into it."""

from __future__ import annotations

import logging

from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from .constants import FALLBACK_SPAM_FOLDER, SPAM_FOLDER_CANDIDATES
from .errors import RelocationFailure

logger = logging.getLogger(__name__)


def flatten_folders(folders: list[tuple[str, str]]) -> dict[str, str]:
    """Map "/"-joined full paths to the server's folder names.

    ``INBOX.Junk`` on a server using "." as delimiter becomes ``INBOX/Junk``,
    so every provider is matched against the same path shape.
    """
    paths: dict[str, str] = {}
    for delimiter, name in folders:
        path = name.replace(delimiter, "/") if delimiter and delimiter != "/" else name
        paths[path] = name
    return paths


def find_spam_folder(folders: list[tuple[str, str]]) -> str | None:
    """Return the server name of the best quarantine folder, or None.

    Exact (case-insensitive) full-path matches against the candidate list
    win, in candidate order. Failing that, the first folder whose last path
    segment matches a candidate is used.
    """
    paths = flatten_folders(folders)
    by_lower = {path.lower(): name for path, name in paths.items()}

    for candidate in SPAM_FOLDER_CANDIDATES:
        if candidate in by_lower:
            return by_lower[candidate]

    for candidate in SPAM_FOLDER_CANDIDATES:
        for path, name in paths.items():
            if path.rsplit("/", 1)[-1].lower() == candidate:
                return name
    return None


def resolve_spam_folder(session) -> str:
    """Find the account's quarantine folder, creating ``Spam`` when none exists."""
    target = find_spam_folder(session.list_folders())
    if target:
        return target

    try:
        session.create_folder(FALLBACK_SPAM_FOLDER)
        logger.info("Created quarantine folder %s", FALLBACK_SPAM_FOLDER)
    except IMAPClientError as e:
        # Usually means it already exists under a name we failed to match
        logger.warning("Could not create folder %s: %s", FALLBACK_SPAM_FOLDER, e)
    return FALLBACK_SPAM_FOLDER


def move_to_spam(session, uid: int) -> str:
    """Move message *uid* into the quarantine folder and return the folder name.

    Raises RelocationFailure: losing track of a flagged message is worse
    than leaving it in the inbox.
    """
    target = None
    try:
        target = resolve_spam_folder(session)
        session.move(uid, target)
    except (IMAPClientError, IMAPClientAbortError, OSError) as e:
        raise RelocationFailure(uid, target, e) from e
    logger.info("Moved message %s to spam folder: %s", uid, target)
    return target
