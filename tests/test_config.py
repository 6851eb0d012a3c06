"""Tests for settings and accounts-file loading."""

import json
from datetime import datetime, timezone

import pytest

from scam_watcher.config import (
    Settings,
    format_instant,
    load_accounts,
    load_settings,
    parse_instant,
    resolve_accounts_path,
)
from scam_watcher.errors import ConfigError


def test_load_accounts(accounts_file):
    accounts = load_accounts(accounts_file)
    assert [a.identifier for a in accounts] == ["alice", "bob@example.com"]

    alice, bob = accounts
    assert alice.port == 993
    assert alice.tls is True
    assert alice.scam_threshold == 80
    assert alice.emails_analyzed_until is None
    assert bob.scam_threshold == 90
    assert bob.emails_analyzed_until == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_missing_required_field(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps([{"user": "a@example.com", "host": "imap.example.com"}]))
    with pytest.raises(ConfigError, match="index 0 is missing required field: password"):
        load_accounts(path)


def test_accounts_must_be_a_list(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps({"user": "a"}))
    with pytest.raises(ConfigError, match="must be an array"):
        load_accounts(path)


def test_accounts_file_missing(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_accounts(tmp_path / "nope.json")


def test_settings_defaults_apply(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps([{"user": "a@example.com", "password": "x", "host": "h"}]))
    settings = Settings(scam_threshold=65, imap_port=143, imap_tls=False)
    (account,) = load_accounts(path, settings)
    assert account.scam_threshold == 65
    assert account.port == 143
    assert account.tls is False


def test_load_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ACCOUNTS_CONFIG_PATH", str(tmp_path / "accounts.json"))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.setenv("SCAM_THRESHOLD", "70")
    monkeypatch.setenv("ANALYZER_BODY_MAX_CHARS", "1500")
    monkeypatch.setenv("IMAP_TLS", "false")
    settings = load_settings(dotenv=False)
    assert settings.accounts_path == tmp_path / "accounts.json"
    assert settings.anthropic_api_key == "sk-test"
    assert settings.scam_threshold == 70
    assert settings.body_max_chars == 1500
    assert settings.imap_tls is False


def test_load_settings_rejects_bad_number(monkeypatch):
    monkeypatch.setenv("SCAM_THRESHOLD", "high")
    with pytest.raises(ConfigError, match="SCAM_THRESHOLD"):
        load_settings(dotenv=False)


def test_resolve_accounts_path(tmp_path):
    settings = Settings(accounts_path=tmp_path / "env.json")
    assert resolve_accounts_path(None, settings) == tmp_path / "env.json"
    assert resolve_accounts_path(tmp_path / "cli.json", settings) == tmp_path / "cli.json"
    with pytest.raises(ConfigError, match="ACCOUNTS_CONFIG_PATH"):
        resolve_accounts_path(None, Settings())


def test_instant_round_trip():
    instant = datetime(2026, 3, 14, 12, 30, 5, 123000, tzinfo=timezone.utc)
    text = format_instant(instant)
    assert text == "2026-03-14T12:30:05.123Z"
    assert parse_instant(text) == instant


def test_parse_instant_naive_is_utc():
    assert parse_instant("2026-03-14T12:00:00") == datetime(2026, 3, 14, 12, tzinfo=timezone.utc)
    assert parse_instant(None) is None
    with pytest.raises(ConfigError):
        parse_instant("yesterday")
