"""Collaborators the optimizer drives but does not implement.

The OpenRocket adapters in ``airtune.engine.openrocket`` satisfy these; tests use
in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol

from airtune.engine.optimizer.results import FlightSummary

# Numeric fields understood by ``Component.get_value`` / ``set_value`` (SI units).
FIN_THICKNESS = "thickness"
FIN_ROOT_CHORD = "length"
FIN_HEIGHT = "height"
FIN_COUNT = "fin_count"
NOSE_LENGTH = "length"
NOSE_WALL_THICKNESS = "thickness"
NOSE_BASE_RADIUS = "base_radius"
TUBE_LENGTH = "length"
TUBE_OUTER_RADIUS = "outer_radius"


class Component(Protocol):
    def get_value(self, field: str) -> float: ...

    def set_value(self, field: str, value: float) -> None: ...


class Airframe(Protocol):
    def fin_set(self) -> Component | None:
        """Last elliptical fin set in depth-first order."""

    def body_tube(self) -> Component | None:
        """Body tube carrying the fin set."""

    def nose_cone(self) -> Component | None: ...

    def parachutes(self) -> list[Any]:
        """Parachute components in depth-first order."""

    def preset_of(self, parachute: Any) -> Any | None: ...

    def refresh(self) -> None:
        """Recompute aerodynamic and mass dependent state after edits."""

    def detach(self) -> "Airframe":
        """Independent copy for a simulation that may outlive its caller."""


class AirframeRepository(Protocol):
    def load(self, path: str) -> Airframe: ...

    def save(self, airframe: Airframe, path: str) -> list[str]:
        """Persist the airframe, returning non-fatal warnings."""


class FlightSimulator(Protocol):
    def simulate(self, airframe: Airframe) -> FlightSummary: ...

    def interrupt(self) -> None:
        """Ask a simulation running on another thread to stop early."""


class StabilityCalculator(Protocol):
    def compute_margin(self, airframe: Airframe) -> float:
        """Stability margin in calibers, NaN when it cannot be computed."""


class ParachuteCatalog(Protocol):
    def list_presets(self) -> list[Any]: ...

    def display_name(self, preset: Any) -> str: ...

    def apply_preset(self, parachute: Any, preset: Any) -> None: ...

    def find_by_display_name(self, name: str) -> Any | None: ...
