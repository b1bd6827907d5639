"""
Settings loader (``rental_config.loader``).

Responsibility
--------------
Reads a settings YAML file and parses it into ``EngineSettings``.
Callers outside this package use ``rental_config.get_active_settings()``
or ``load_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from rental_config.settings import EngineSettings

_TOP_LEVEL_KEYS = frozenset({
    "database_url",
    "currency",
    "money_decimal_places",
    "caution",
    "reminders",
    "system_actor_id",
    "log_level",
})
_CAUTION_KEYS = frozenset({
    "allowed_advance_months",
    "allowed_deposit_months",
    "allowed_broker_months",
})
_REMINDER_KEYS = frozenset({"courtesy_day", "deadline_day", "escalation_day"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str, allowed: frozenset[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _months(value: Any, name: str) -> tuple[int, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"'{name}' must be a list of month counts")
    return tuple(int(v) for v in value)


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse a settings dict (as loaded from YAML) into ``EngineSettings``."""
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown settings keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in ("database_url", "currency", "log_level"):
        if key in data:
            kwargs[key] = str(data[key])
    if "money_decimal_places" in data:
        kwargs["money_decimal_places"] = int(data["money_decimal_places"])
    if "system_actor_id" in data:
        kwargs["system_actor_id"] = UUID(str(data["system_actor_id"]))

    for key, value in _section(data, "caution", _CAUTION_KEYS).items():
        kwargs[key] = _months(value, key)
    for key, value in _section(data, "reminders", _REMINDER_KEYS).items():
        kwargs[key] = int(value)

    return EngineSettings(**kwargs)


def load_settings(path: Path | str) -> EngineSettings:
    """Load ``EngineSettings`` from a YAML file."""
    return parse_settings(load_yaml_file(Path(path)))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a settings dict."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
