"""Glove device profiles: packaged YAML files plus per-user overrides.

A profile names the advertised-name prefix used to pick gloves out of a scan,
the GATT service and characteristic UUIDs, the write mode and the scan and
connect time bounds. Every file is checked against
`glovectl/schemas/profile.schema.json` before it becomes a `GloveProfile`.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from glovectl.core.errors import ProfileLoadError, ProfileValidationError
from glovectl.core.model import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_SCAN_TIMEOUT_S,
    GattSpec,
    GloveProfile,
)

DEFAULT_PROFILE_ID = "bluebuzzah"
PROFILE_SUFFIXES = (".yaml", ".yml")
BLUETOOTH_BASE_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_GATT_FIELDS = (
    "service_uuid",
    "vibration_char_uuid",
    "battery_char_uuid",
    "status_char_uuid",
    "pattern_config_char_uuid",
)

_SHORT_UUID_RE = re.compile(r"^(?:[0-9a-f]{4}|[0-9a-f]{8})$")
_FULL_UUID_RE = re.compile(r"^[0-9a-f]{8}(?:-[0-9a-f]{4}){3}-[0-9a-f]{12}$")
LOGGER = logging.getLogger(__name__)


class ProfileYamlLoader(yaml.SafeLoader):
    """Safe YAML loader that refuses repeated keys in a mapping."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                line = key_node.start_mark.line + 1
                raise ProfileValidationError(f"Duplicate key '{key}' on line {line}")
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, GloveProfile]
    warnings: tuple[str, ...]


@lru_cache(maxsize=1)
def _schema_validator() -> Any:
    schema_file = resources.files("glovectl.schemas") / "profile.schema.json"
    schema = json.loads(schema_file.read_text(encoding="utf-8"))
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_profile_dirs() -> list[Path]:
    """Directories searched for user profiles, lowest precedence first."""
    config_home = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    data_home = Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local/share")
    return [config_home / "glovectl" / "profiles", data_home / "glovectl" / "profiles"]


def _profile_sources() -> Iterator[tuple[Path | Traversable, bool]]:
    """Yield `(path, is_user)` pairs: packaged files first, then user files."""
    packaged = resources.files("glovectl.profiles")
    for entry in sorted(packaged.iterdir(), key=lambda e: e.name):
        if entry.name.endswith(PROFILE_SUFFIXES):
            yield entry, False

    for directory in user_profile_dirs():
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if path.suffix in PROFILE_SUFFIXES:
                yield path, True


def _parse(source: Path | Traversable) -> dict[str, Any]:
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {source}: {exc}") from exc

    try:
        doc = yaml.load(text, Loader=ProfileYamlLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {source}: {exc}") from exc

    if not isinstance(doc, dict):
        raise ProfileValidationError(f"Profile file {source} must contain a mapping at root")
    return doc


def expand_uuid(value: str, *, context: str) -> str:
    """Lower-case a UUID and widen 16/32-bit forms onto the Bluetooth base UUID."""
    text = value.strip().lower()
    if _FULL_UUID_RE.match(text):
        return text
    if _SHORT_UUID_RE.match(text):
        return f"{text.rjust(8, '0')}{BLUETOOTH_BASE_SUFFIX}"
    raise ProfileValidationError(f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string")


def _to_profile(doc: dict[str, Any], source: Path | Traversable) -> GloveProfile:
    try:
        _schema_validator().validate(doc)
    except ValidationError as exc:
        location = ".".join(str(part) for part in exc.path)
        suffix = f" ({location})" if location else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{suffix}: {exc.message}") from exc

    profile_id = doc["id"]
    gatt = doc["gatt"]
    timeouts = doc.get("timeouts", {})
    return GloveProfile(
        id=profile_id,
        name=doc["name"],
        name_prefix=doc["match"]["name_prefix"].strip(),
        gatt=GattSpec(
            **{key: expand_uuid(gatt[key], context=f"{profile_id}.gatt.{key}") for key in _GATT_FIELDS}
        ),
        write_with_response=doc.get("write_with_response", True),
        scan_timeout_s=float(timeouts.get("scan_s", DEFAULT_SCAN_TIMEOUT_S)),
        connect_timeout_s=float(timeouts.get("connect_s", DEFAULT_CONNECT_TIMEOUT_S)),
    )


def load_profiles() -> LoadedProfiles:
    """Load packaged profiles, then let user profiles replace them by id."""
    profiles: dict[str, GloveProfile] = {}
    warnings: list[str] = []

    for source, is_user in _profile_sources():
        profile = _to_profile(_parse(source), source)
        if is_user and profile.id in profiles:
            message = f"User profile '{profile.id}' from {source} overrides packaged profile"
            LOGGER.warning(message)
            warnings.append(message)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
