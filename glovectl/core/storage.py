"""Local persistence for sessions, saved patterns and the last glove."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from glovectl.core.errors import StorageError
from glovectl.core.model import ConnectionState, GloveDevice, TherapySession, VibrationPattern

SESSIONS_KEY = "therapy_sessions"
PATTERNS_KEY = "vibration_patterns"
LAST_DEVICE_KEY = "last_device"
MAX_SESSIONS = 100
LOGGER = logging.getLogger(__name__)


class Storage(Protocol):
    def save_last_device(self, device: GloveDevice) -> None: ...

    def get_last_device(self) -> GloveDevice | None: ...

    def save_pattern(self, pattern: VibrationPattern) -> None: ...

    def get_patterns(self) -> list[VibrationPattern]: ...

    def delete_pattern(self, pattern_id: str) -> None: ...

    def save_session(self, session: TherapySession) -> None: ...

    def get_session_history(self, limit: int = 0) -> list[TherapySession]: ...

    def get_session(self, session_id: str) -> TherapySession | None: ...

    def delete_session(self, session_id: str) -> None: ...

    def clear_all(self) -> None: ...


def default_store_path() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "glovectl" / "store.json"


def _datetime_or_none(value: Any) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


def device_to_dict(device: GloveDevice) -> dict[str, Any]:
    data = asdict(device)
    data["connection_state"] = device.connection_state.value
    data["last_connected"] = device.last_connected.isoformat() if device.last_connected else None
    return data


def device_from_dict(data: dict[str, Any]) -> GloveDevice:
    values = _known_fields(GloveDevice, data)
    values["connection_state"] = ConnectionState(values.get("connection_state", "disconnected"))
    values["last_connected"] = _datetime_or_none(values.get("last_connected"))
    return GloveDevice(**values)


def pattern_to_dict(pattern: VibrationPattern) -> dict[str, Any]:
    data = asdict(pattern)
    data.pop("is_active")
    return data


def pattern_from_dict(data: dict[str, Any]) -> VibrationPattern:
    values = _known_fields(VibrationPattern, data)
    values.pop("is_active", None)
    return VibrationPattern(**values)


def session_to_dict(session: TherapySession) -> dict[str, Any]:
    data = asdict(session)
    data["start_time"] = session.start_time.isoformat()
    data["end_time"] = session.end_time.isoformat() if session.end_time else None
    return data


def session_from_dict(data: dict[str, Any]) -> TherapySession:
    values = _known_fields(TherapySession, data)
    values["start_time"] = datetime.fromisoformat(values["start_time"])
    values["end_time"] = _datetime_or_none(values.get("end_time"))
    return TherapySession(**values)


class JsonFileStorage:
    """Stores everything in one JSON document.

    A missing file reads as empty. An unreadable or corrupt section is logged
    and treated as empty so the caller keeps working; write failures raise
    `StorageError`.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_store_path()

    def save_last_device(self, device: GloveDevice) -> None:
        doc = self._load()
        doc[LAST_DEVICE_KEY] = device_to_dict(device)
        self._dump(doc)

    def get_last_device(self) -> GloveDevice | None:
        raw = self._load().get(LAST_DEVICE_KEY)
        if not raw:
            return None
        try:
            return device_from_dict(raw)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable last device in %s: %s", self.path, exc)
            return None

    def save_pattern(self, pattern: VibrationPattern) -> None:
        doc = self._load()
        patterns = [p for p in doc.get(PATTERNS_KEY, []) if p.get("id") != pattern.id]
        patterns.append(pattern_to_dict(pattern))
        doc[PATTERNS_KEY] = patterns
        self._dump(doc)

    def get_patterns(self) -> list[VibrationPattern]:
        try:
            return [pattern_from_dict(p) for p in self._load().get(PATTERNS_KEY, [])]
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable patterns in %s: %s", self.path, exc)
            return []

    def delete_pattern(self, pattern_id: str) -> None:
        doc = self._load()
        patterns = doc.get(PATTERNS_KEY, [])
        remaining = [p for p in patterns if p.get("id") != pattern_id]
        if len(remaining) != len(patterns):
            doc[PATTERNS_KEY] = remaining
            self._dump(doc)

    def save_session(self, session: TherapySession) -> None:
        sessions = [s for s in self.get_session_history() if s.id != session.id]
        sessions.append(session)
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        doc = self._load()
        doc[SESSIONS_KEY] = [session_to_dict(s) for s in sessions[:MAX_SESSIONS]]
        self._dump(doc)

    def get_session_history(self, limit: int = 0) -> list[TherapySession]:
        """Return sessions newest first; `limit` of 0 returns all of them."""
        try:
            sessions = [session_from_dict(s) for s in self._load().get(SESSIONS_KEY, [])]
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable sessions in %s: %s", self.path, exc)
            return []
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions[:limit] if limit > 0 else sessions

    def get_session(self, session_id: str) -> TherapySession | None:
        return next((s for s in self.get_session_history() if s.id == session_id), None)

    def delete_session(self, session_id: str) -> None:
        sessions = self.get_session_history()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) != len(sessions):
            doc = self._load()
            doc[SESSIONS_KEY] = [session_to_dict(s) for s in remaining]
            self._dump(doc)

    def clear_all(self) -> None:
        doc = self._load()
        for key in (SESSIONS_KEY, PATTERNS_KEY, LAST_DEVICE_KEY):
            doc.pop(key, None)
        self._dump(doc)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Could not read store {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            LOGGER.warning("Store %s is corrupt, starting fresh: %s", self.path, exc)
            return {}
        if not isinstance(loaded, dict):
            LOGGER.warning("Store %s must contain an object at root, starting fresh", self.path)
            return {}
        return loaded

    def _dump(self, doc: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not write store {self.path}: {exc}") from exc
