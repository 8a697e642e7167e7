from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from airtune.engine.optimizer.interfaces import Airframe, ParachuteCatalog
from airtune.engine.optimizer.models import NO_PARACHUTE, STAGE_KEYS

LogFn = Callable[..., None]


@dataclass
class ParachuteStage:
    """A recovery stage: its component, original preset and current selection."""

    number: int
    key: str
    component: Any | None
    original_preset: Any | None
    original_name: str
    current: str
    enabled: bool = False

    @property
    def present(self) -> bool:
        return self.component is not None

    def select(self, name: str) -> None:
        self.current = name

    def restore(self, catalog: ParachuteCatalog) -> None:
        self.current = self.original_name
        self._apply_original(catalog)

    def apply(self, catalog: ParachuteCatalog, log: LogFn) -> None:
        if self.component is None:
            return
        if not self.enabled:
            self._apply_original(catalog)
            return
        preset = None
        if self.current != NO_PARACHUTE:
            preset = catalog.find_by_display_name(self.current)
        if preset is not None:
            catalog.apply_preset(self.component, preset)
            return
        if self.current not in (NO_PARACHUTE, self.original_name):
            log(
                f"Warning: Could not find preset for {self.current}. Applying original preset instead.",
                logging.WARNING,
            )
        self._apply_original(catalog)

    def _apply_original(self, catalog: ParachuteCatalog) -> None:
        if self.component is not None and self.original_preset is not None:
            catalog.apply_preset(self.component, self.original_preset)


def build_stages(airframe: Airframe, catalog: ParachuteCatalog) -> list[ParachuteStage]:
    chutes = list(airframe.parachutes())[: len(STAGE_KEYS)]
    stages: list[ParachuteStage] = []
    for index, key in enumerate(STAGE_KEYS):
        component = chutes[index] if index < len(chutes) else None
        preset = airframe.preset_of(component) if component is not None else None
        if component is None:
            name = ""
        elif preset is None:
            name = NO_PARACHUTE
        else:
            name = catalog.display_name(preset)
        stages.append(
            ParachuteStage(
                number=index + 1,
                key=key,
                component=component,
                original_preset=preset,
                original_name=name,
                current=name,
            )
        )
    return stages


def stage_options(
    stage: ParachuteStage,
    catalog: ParachuteCatalog,
    presets: list[Any] | None,
) -> list[str]:
    """Candidate selections for one stage: "None", every catalog preset, and the original."""
    if not stage.enabled or presets is None:
        return [stage.current]
    options = [NO_PARACHUTE] + [catalog.display_name(preset) for preset in presets]
    if stage.original_name and stage.original_name not in options:
        options.append(stage.original_name)
    return list(dict.fromkeys(options))
