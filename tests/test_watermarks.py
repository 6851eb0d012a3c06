"""Tests for the file-backed watermark store."""

import json
import threading
from datetime import datetime, timedelta, timezone

from scam_watcher.watermarks import Watermark, WatermarkStore

from tests.helpers import NOW, stored_watermark


def test_save_round_trips_through_file(accounts_file):
    store = WatermarkStore(accounts_file, user="alice@example.com", label="alice")
    assert stored_watermark(accounts_file, "alice@example.com") is None

    assert store.save(NOW) is True
    assert stored_watermark(accounts_file, "alice@example.com") == NOW

    data = json.loads(accounts_file.read_text())
    assert data[0]["emailsAnalyzedUntil"] == "2026-03-14T12:00:00.000Z"


def test_save_leaves_other_accounts_untouched(accounts_file):
    before = json.loads(accounts_file.read_text())

    WatermarkStore(accounts_file, user="alice@example.com").save(NOW)

    after = json.loads(accounts_file.read_text())
    assert after[1] == before[1]
    assert after[0]["password"] == "secret"


def test_match_by_label(accounts_file):
    store = WatermarkStore(accounts_file, label="alice")
    assert store.save(NOW) is True


def test_unknown_account(accounts_file):
    store = WatermarkStore(accounts_file, user="nobody@example.com")
    assert store.save(NOW) is False


def test_concurrent_writers_keep_every_account(tmp_path):
    path = tmp_path / "accounts.json"
    records = [{"user": f"user{i}@example.com", "password": "x", "host": "h"} for i in range(8)]
    path.write_text(json.dumps(records))

    def _writer(i):
        store = WatermarkStore(path, user=f"user{i}@example.com")
        for step in range(10):
            store.save(NOW + timedelta(minutes=step))

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    data = json.loads(path.read_text())
    assert len(data) == 8
    assert all(r["emailsAnalyzedUntil"] == "2026-03-14T12:09:00.000Z" for r in data)
    assert not list(tmp_path.glob(".accounts.json.*.tmp"))


def test_watermark_advances_to_now(accounts_file, clock):
    store = WatermarkStore(accounts_file, user="alice@example.com")
    watermark = Watermark(None, store, "alice", clock)

    assert watermark.advance() == NOW
    assert watermark.instant == NOW
    assert stored_watermark(accounts_file, "alice@example.com") == NOW


def test_watermark_never_moves_backward(clock):
    later = NOW + timedelta(hours=1)
    watermark = Watermark(later, None, "alice", clock)
    assert watermark.advance() == later

    clock.tick(hours=2)
    assert watermark.advance() == NOW + timedelta(hours=2)


def test_persistence_failure_still_advances_in_memory(tmp_path, clock):
    store = WatermarkStore(tmp_path / "missing.json", user="alice@example.com")
    watermark = Watermark(None, store, "alice", clock)

    assert watermark.advance() == NOW
    assert watermark.instant == NOW


def test_naive_clock_values_are_stored_as_utc(accounts_file):
    store = WatermarkStore(accounts_file, user="alice@example.com")
    store.save(datetime(2026, 3, 14, 12, 0))
    assert stored_watermark(accounts_file, "alice@example.com") == datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
