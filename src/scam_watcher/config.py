"""Settings and accounts-file loading."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from .constants import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_BODY_MAX_CHARS,
    DEFAULT_IMAP_PORT,
    DEFAULT_SCAM_THRESHOLD,
    ENV_ACCOUNTS_CONFIG_PATH,
    ENV_ANTHROPIC_API_KEY,
    ENV_ANTHROPIC_MODEL,
    ENV_BODY_MAX_CHARS,
    ENV_IMAP_PORT,
    ENV_IMAP_TLS,
    ENV_SCAM_THRESHOLD,
)
from .errors import ConfigError
from .models import AccountConfig

_REQUIRED_FIELDS = ("user", "password", "host")


@dataclass
class Settings:
    """Process-wide settings read from the environment."""

    accounts_path: Path | None = None
    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    scam_threshold: float = DEFAULT_SCAM_THRESHOLD
    body_max_chars: int = DEFAULT_BODY_MAX_CHARS
    imap_port: int = DEFAULT_IMAP_PORT
    imap_tls: bool = True


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def load_settings(dotenv: bool = True) -> Settings:
    """Read settings from the environment, after loading ``.env`` if present."""
    if dotenv:
        load_dotenv()

    accounts_path = os.environ.get(ENV_ACCOUNTS_CONFIG_PATH) or None
    return Settings(
        accounts_path=Path(accounts_path) if accounts_path else None,
        anthropic_api_key=os.environ.get(ENV_ANTHROPIC_API_KEY) or None,
        anthropic_model=os.environ.get(ENV_ANTHROPIC_MODEL) or DEFAULT_ANTHROPIC_MODEL,
        scam_threshold=_env_number(ENV_SCAM_THRESHOLD, DEFAULT_SCAM_THRESHOLD, float),
        body_max_chars=_env_number(ENV_BODY_MAX_CHARS, DEFAULT_BODY_MAX_CHARS, int),
        imap_port=_env_number(ENV_IMAP_PORT, DEFAULT_IMAP_PORT, int),
        imap_tls=os.environ.get(ENV_IMAP_TLS, "").strip().lower() != "false",
    )


def parse_instant(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant. Naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigError(f"Invalid ISO-8601 timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_instant(value: datetime) -> str:
    """Format an instant as UTC ISO-8601 with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_accounts_file(path: Path) -> list[dict]:
    """Return the raw account records stored at *path*."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Accounts config not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Accounts config is not valid JSON: {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigError("Accounts config must be an array of account objects")
    return data


def _account_from_record(record: dict, idx: int, settings: Settings) -> AccountConfig:
    if not isinstance(record, dict):
        raise ConfigError(f"Account at index {idx} must be an object")
    for key in _REQUIRED_FIELDS:
        if not record.get(key):
            raise ConfigError(f"Account at index {idx} is missing required field: {key}")

    threshold = record.get("scamThreshold")
    try:
        threshold = float(threshold) if threshold is not None else settings.scam_threshold
        port = int(record.get("port") or settings.imap_port)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Account at index {idx} has a non-numeric port or scamThreshold") from e

    tls = record.get("tls")
    return AccountConfig(
        user=record["user"],
        password=record["password"],
        host=record["host"],
        label=record.get("label") or None,
        port=port,
        tls=settings.imap_tls if tls is None else bool(tls),
        scam_threshold=threshold,
        emails_analyzed_until=parse_instant(record.get("emailsAnalyzedUntil")),
    )


def load_accounts(path: Path, settings: Settings | None = None) -> list[AccountConfig]:
    """Load and validate every account in the accounts file, in file order."""
    settings = settings or Settings()
    records = read_accounts_file(Path(path))
    return [_account_from_record(record, idx, settings) for idx, record in enumerate(records)]


def resolve_accounts_path(explicit: str | Path | None, settings: Settings) -> Path:
    """Pick the accounts file: explicit option first, then ACCOUNTS_CONFIG_PATH."""
    if explicit:
        return Path(explicit)
    if settings.accounts_path:
        return settings.accounts_path
    raise ConfigError(f"{ENV_ACCOUNTS_CONFIG_PATH} is not set and no --config was given")
