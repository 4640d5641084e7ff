from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from glovectl.core.errors import StorageError
from glovectl.core.model import ConnectionState, GloveDevice, TherapySession, VibrationPattern
from glovectl.core.storage import MAX_SESSIONS, JsonFileStorage, default_store_path


@pytest.fixture
def storage(tmp_path: Path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "store.json")


def test_default_path_follows_xdg_data_home(isolated_xdg: Path) -> None:
    assert default_store_path() == isolated_xdg / "data" / "glovectl" / "store.json"
    assert JsonFileStorage().path == default_store_path()


def test_empty_store_reads_as_empty(storage: JsonFileStorage) -> None:
    assert storage.get_last_device() is None
    assert storage.get_patterns() == []
    assert storage.get_session_history() == []
    assert storage.get_session("missing") is None


def test_last_device_round_trip(storage: JsonFileStorage) -> None:
    stamp = datetime(2024, 3, 1, 12, 30)
    device = GloveDevice(
        id="F1:E2",
        name="BlueBuzzah Left",
        mac_address="F1:E2",
        battery_level=80,
        connection_state=ConnectionState.CONNECTED,
        signal_strength=-55,
        last_connected=stamp,
    )
    storage.save_last_device(device)

    loaded = storage.get_last_device()
    assert loaded == device
    assert loaded.name == "BlueBuzzah Left"
    assert loaded.connection_state is ConnectionState.CONNECTED
    assert loaded.last_connected == stamp
    assert loaded.battery_level == 80


def test_save_pattern_upserts_by_id_and_drops_active_flag(storage: JsonFileStorage) -> None:
    pattern = VibrationPattern(name="Custom", intensity=40, is_active=True)
    storage.save_pattern(pattern)
    pattern.intensity = 45
    storage.save_pattern(pattern)
    storage.save_pattern(VibrationPattern(name="Other"))

    patterns = storage.get_patterns()
    assert [p.name for p in patterns] == ["Custom", "Other"]
    assert patterns[0].id == pattern.id
    assert patterns[0].intensity == 45
    assert patterns[0].is_active is False

    storage.delete_pattern(pattern.id)
    assert [p.name for p in storage.get_patterns()] == ["Other"]


def test_session_history_is_newest_first_and_limited(storage: JsonFileStorage) -> None:
    base = datetime(2024, 1, 1)
    for offset in (2, 0, 1):
        storage.save_session(TherapySession(start_time=base + timedelta(days=offset), pattern_name=f"day{offset}"))

    assert [s.pattern_name for s in storage.get_session_history()] == ["day2", "day1", "day0"]
    assert [s.pattern_name for s in storage.get_session_history(limit=2)] == ["day2", "day1"]


def test_save_session_updates_existing_record(storage: JsonFileStorage) -> None:
    session = TherapySession(start_time=datetime(2024, 1, 1), pattern_name="Gentle")
    storage.save_session(session)
    session.end_time = datetime(2024, 1, 1, 0, 10)
    session.is_completed = True
    storage.save_session(session)

    history = storage.get_session_history()
    assert len(history) == 1
    loaded = storage.get_session(session.id)
    assert loaded.is_completed is True
    assert loaded.duration == timedelta(minutes=10)

    storage.delete_session(session.id)
    assert storage.get_session_history() == []


def test_session_history_is_capped(storage: JsonFileStorage) -> None:
    base = datetime(2024, 1, 1)
    for minute in range(MAX_SESSIONS + 5):
        storage.save_session(TherapySession(start_time=base + timedelta(minutes=minute)))

    history = storage.get_session_history()
    assert len(history) == MAX_SESSIONS
    assert history[0].start_time == base + timedelta(minutes=MAX_SESSIONS + 4)
    assert history[-1].start_time == base + timedelta(minutes=5)


def test_corrupt_store_is_treated_as_empty(storage: JsonFileStorage) -> None:
    storage.path.write_text("{not json", encoding="utf-8")
    assert storage.get_patterns() == []

    storage.save_pattern(VibrationPattern(name="Recovered"))
    assert [p.name for p in storage.get_patterns()] == ["Recovered"]


def test_non_object_root_is_treated_as_empty(storage: JsonFileStorage) -> None:
    storage.path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    assert storage.get_session_history() == []


def test_clear_all_keeps_unrelated_keys(storage: JsonFileStorage) -> None:
    storage.save_pattern(VibrationPattern(name="Custom"))
    storage.save_last_device(GloveDevice(id="a"))
    storage.save_session(TherapySession())
    doc = json.loads(storage.path.read_text(encoding="utf-8"))
    doc["other"] = 1
    storage.path.write_text(json.dumps(doc), encoding="utf-8")

    storage.clear_all()

    assert json.loads(storage.path.read_text(encoding="utf-8")) == {"other": 1}


def test_write_failure_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    storage = JsonFileStorage(blocker / "store.json")

    with pytest.raises(StorageError, match="Could not write store"):
        storage.save_pattern(VibrationPattern(name="Custom"))
