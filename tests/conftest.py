"""Shared fixtures for tests."""

from __future__ import annotations

import json

import pytest

from scam_watcher.models import AccountConfig
from tests.helpers import Clock, FakeClassifier, FakeSession, TimerFactory


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def timers() -> TimerFactory:
    return TimerFactory()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def account() -> AccountConfig:
    return AccountConfig(
        user="alice@example.com",
        password="secret",
        host="imap.example.com",
        label="alice",
    )


@pytest.fixture
def accounts_file(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(
        json.dumps(
            [
                {
                    "label": "alice",
                    "user": "alice@example.com",
                    "password": "secret",
                    "host": "imap.example.com",
                    "emailsAnalyzedUntil": None,
                },
                {
                    "user": "bob@example.com",
                    "password": "hunter2",
                    "host": "imap.mail.yahoo.com",
                    "port": 993,
                    "tls": True,
                    "scamThreshold": 90,
                    "emailsAnalyzedUntil": "2026-01-01T00:00:00.000Z",
                },
            ],
            indent=2,
        )
    )
    return path
