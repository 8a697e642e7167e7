from __future__ import annotations

import logging
from typing import Any

import jpype

from airtune.core.units import m_to_cm
from airtune.engine.openrocket.runner import ensure_openrocket_initialized
from airtune.engine.optimizer.models import NO_PARACHUTE

logger = logging.getLogger("airtune.openrocket")


def preset_display_name(manufacturer: str, part_no: str, diameter_m: float) -> str:
    return f"{manufacturer} - {part_no} ({m_to_cm(diameter_m):.1f} cm)"


class OpenRocketParachuteCatalog:
    """Parachute presets from OpenRocket's component preset database."""

    def __init__(self):
        self._presets: list[Any] | None = None

    def list_presets(self) -> list[Any]:
        if self._presets is None:
            ensure_openrocket_initialized()
            Application = jpype.JClass("net.sf.openrocket.startup.Application")
            PresetType = jpype.JClass("net.sf.openrocket.preset.ComponentPreset$Type")
            self._presets = list(Application.getComponentPresetDao().listForType(PresetType.PARACHUTE))
            logger.info("loaded %d parachute presets", len(self._presets))
        return self._presets

    def display_name(self, preset: Any) -> str:
        ComponentPreset = jpype.JClass("net.sf.openrocket.preset.ComponentPreset")
        return preset_display_name(
            str(preset.getManufacturer().getDisplayName()),
            str(preset.getPartNo()),
            float(preset.get(ComponentPreset.DIAMETER)),
        )

    def apply_preset(self, parachute: Any, preset: Any) -> None:
        if preset is not None:
            parachute.loadPreset(preset)

    def find_by_display_name(self, name: str) -> Any | None:
        if not name or name == NO_PARACHUTE:
            return None
        return next((p for p in self.list_presets() if self.display_name(p) == name), None)
