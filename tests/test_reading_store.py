"""Unit tests for the durable reading history."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from app.schemas import Reading, Sensor
from datastore.errors import StorageError
from datastore.readings import ReadingStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _reading(timestamp: datetime, celsius: float = 20.0) -> Reading:
    return Reading(
        timestamp=timestamp,
        sensors=[Sensor(serial="S1", room="Kitchen", temperature_c=celsius, temperature_f=68.0)],
    )


def test_merge_is_idempotent_on_timestamp() -> None:
    store = ReadingStore()
    reading = _reading(NOW - timedelta(minutes=5))

    assert store.merge(reading, now=NOW) is True
    assert store.merge(reading, now=NOW) is False
    assert store.merge(_reading(reading.timestamp, celsius=25.0), now=NOW) is False

    stored = store.list()
    assert len(stored) == 1
    assert stored[0].sensors[0].temperature_c == 20.0


def test_list_is_ascending_regardless_of_insertion_order() -> None:
    store = ReadingStore()
    offsets = [15, 5, 30, 0, 20]
    for minutes in offsets:
        store.merge(_reading(NOW - timedelta(minutes=minutes)), now=NOW)

    timestamps = [reading.timestamp for reading in store.list()]
    assert timestamps == sorted(timestamps)
    assert len(timestamps) == len(offsets)
    assert store.latest().timestamp == NOW


def test_merge_trims_entries_outside_retention() -> None:
    store = ReadingStore(retention=timedelta(days=90))
    store.merge(_reading(NOW - timedelta(days=100)), now=NOW - timedelta(days=20))
    store.merge(_reading(NOW - timedelta(days=89)), now=NOW - timedelta(days=20))
    assert store.count() == 2

    store.merge(_reading(NOW), now=NOW)

    stored = store.list()
    assert [reading.timestamp for reading in stored] == [NOW - timedelta(days=89), NOW]
    assert all(NOW - reading.timestamp <= timedelta(days=90) for reading in stored)


def test_reading_older_than_retention_is_not_kept() -> None:
    store = ReadingStore(retention=timedelta(days=1))

    assert store.merge(_reading(NOW - timedelta(days=2)), now=NOW) is False
    assert store.list() == []


def test_history_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    store = ReadingStore(persistence_path=path)
    first = _reading(datetime.now(timezone.utc) - timedelta(minutes=10))
    second = _reading(datetime.now(timezone.utc))
    store.merge(second)
    store.merge(first)

    payload = json.loads(path.read_text())
    assert len(payload) == 2

    reloaded = ReadingStore(persistence_path=path)
    assert reloaded.list() == [first, second]
    assert not list(tmp_path.glob("*.tmp"))


def test_unreadable_entries_are_skipped_on_load(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    good = _reading(datetime.now(timezone.utc))
    path.write_text(
        json.dumps(
            [
                good.model_dump(mode="json"),
                {"timestamp": "2025-01-01T00:00:00Z", "sensors": [], "thermostats": []},
                {"nonsense": True},
            ]
        )
    )

    store = ReadingStore(persistence_path=path)

    assert store.list() == [good]


def test_failed_write_leaves_history_unchanged(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "readings.json"
    store = ReadingStore(persistence_path=path)
    kept = _reading(datetime.now(timezone.utc) - timedelta(minutes=5))
    store.merge(kept)

    def fail(*_args, **_kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr("datastore.readings.write_json_atomic", fail)

    with pytest.raises(StorageError):
        store.merge(_reading(datetime.now(timezone.utc)))

    assert store.list() == [kept]


def test_clear_empties_history(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    store = ReadingStore(persistence_path=path)
    store.merge(_reading(datetime.now(timezone.utc)))

    store.clear()

    assert store.list() == []
    assert ReadingStore(persistence_path=path).list() == []


def test_merge_accepts_naive_now_as_utc() -> None:
    store = ReadingStore()

    assert store.merge(_reading(NOW - timedelta(days=1)), now=NOW.replace(tzinfo=None)) is True
    assert store.merge(_reading(NOW - timedelta(days=91)), now=NOW.replace(tzinfo=None)) is False
    assert len(store.list()) == 1


def test_expired_entries_are_dropped_on_load(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    now = datetime.now(timezone.utc)
    fresh = _reading(now - timedelta(days=1))
    expired = _reading(now - timedelta(days=120))
    path.write_text(json.dumps([expired.model_dump(mode="json"), fresh.model_dump(mode="json")]))

    store = ReadingStore(persistence_path=path)

    assert store.list() == [fresh]
    assert store.latest() == fresh
    assert store.count() == 1
