"""Persisted user settings: last .ork path, stability window, per-key bounds and flags."""

from __future__ import annotations

import logging
import math
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from airtune.engine.optimizer.models import (
    ALTITUDE_SCORE,
    DURATION_SCORE,
    PARAMETER_KEYS,
    STAGE_KEYS,
    OptimizationConfig,
    Range,
)

logger = logging.getLogger("airtune.backend")

CRITERIA_KEYS = (ALTITUDE_SCORE, DURATION_SCORE)
ENTRY_KEYS = PARAMETER_KEYS + CRITERIA_KEYS + STAGE_KEYS


def _coerce_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


@dataclass
class SettingsEntry:
    enabled: bool = True
    min: float | None = None
    max: float | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "SettingsEntry":
        if not isinstance(data, dict):
            return cls()
        enabled = data.get("enabled", True)
        return cls(
            enabled=enabled if isinstance(enabled, bool) else str(enabled).lower() == "true",
            min=_coerce_float(data.get("min")),
            max=_coerce_float(data.get("max")),
        )


def _default_entries() -> dict[str, SettingsEntry]:
    entries = {key: SettingsEntry() for key in ENTRY_KEYS}
    for key in STAGE_KEYS:
        entries[key].enabled = False
    return entries


@dataclass
class UserSettings:
    ork_path: str = ""
    stability_min: float | None = None
    stability_max: float | None = None
    algorithm: str = "nelder_mead"
    entries: dict[str, SettingsEntry] = field(default_factory=_default_entries)

    @classmethod
    def from_dict(cls, data: Any) -> "UserSettings":
        settings = cls()
        if not isinstance(data, dict):
            return settings
        settings.ork_path = str(data.get("ork_path") or "")
        settings.stability_min = _coerce_float(data.get("stability_min"))
        settings.stability_max = _coerce_float(data.get("stability_max"))
        if data.get("algorithm") in ("nelder_mead", "grid"):
            settings.algorithm = data["algorithm"]
        raw_entries = data.get("entries") or {}
        if isinstance(raw_entries, dict):
            for key in ENTRY_KEYS:
                if key in raw_entries:
                    settings.entries[key] = SettingsEntry.from_dict(raw_entries[key])
        return settings

    def to_dict(self) -> dict[str, Any]:
        return {
            "ork_path": self.ork_path,
            "stability_min": self.stability_min,
            "stability_max": self.stability_max,
            "algorithm": self.algorithm,
            "entries": {
                key: {"enabled": entry.enabled, "min": entry.min, "max": entry.max}
                for key, entry in self.entries.items()
            },
        }

    def to_optimization_config(
        self, ork_path: str | None = None
    ) -> tuple[OptimizationConfig, dict[str, tuple[float | None, float | None]]]:
        """Build a run config plus the per-parameter bounds to feed ``update_bounds``."""
        altitude = self.entries[ALTITUDE_SCORE]
        duration = self.entries[DURATION_SCORE]
        config = OptimizationConfig(
            ork_path=ork_path or self.ork_path,
            altitude_range=Range.of(altitude.min, altitude.max),
            duration_range=Range.of(duration.min, duration.max),
            stability_range=Range.of(self.stability_min, self.stability_max),
            enabled={key: entry.enabled for key, entry in self.entries.items()},
            algorithm=self.algorithm,  # type: ignore[arg-type]
        )
        bounds = {key: (self.entries[key].min, self.entries[key].max) for key in PARAMETER_KEYS}
        return config, bounds


def load_user_settings(path: str | os.PathLike) -> UserSettings:
    settings_path = Path(path)
    if not settings_path.exists():
        return UserSettings()
    try:
        data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("ignoring unreadable settings file %s: %s", settings_path, exc)
        return UserSettings()
    if data is not None and not isinstance(data, dict):
        logger.warning("ignoring malformed settings file %s", settings_path)
        return UserSettings()
    return UserSettings.from_dict(data)


def save_user_settings(settings: UserSettings, path: str | os.PathLike) -> None:
    settings_path = Path(path)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".airtune-", suffix=".yaml", dir=settings_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(settings.to_dict(), handle, sort_keys=False)
        os.replace(tmp_name, settings_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
