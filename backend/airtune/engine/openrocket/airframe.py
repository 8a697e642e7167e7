from __future__ import annotations

import logging
from typing import Any, Iterator

import jpype

from airtune.engine.openrocket.runner import load_document, save_document
from airtune.engine.optimizer import interfaces

logger = logging.getLogger("airtune.openrocket")

_ACCESSORS = {
    interfaces.FIN_THICKNESS: ("getThickness", "setThickness"),
    interfaces.FIN_ROOT_CHORD: ("getLength", "setLength"),
    interfaces.FIN_HEIGHT: ("getHeight", "setHeight"),
    interfaces.FIN_COUNT: ("getFinCount", "setFinCount"),
    interfaces.NOSE_BASE_RADIUS: ("getBaseRadius", None),
    interfaces.TUBE_OUTER_RADIUS: ("getOuterRadius", "setOuterRadius"),
}


class OpenRocketComponent:
    """Numeric field access on a Java ``RocketComponent`` (values in SI units)."""

    def __init__(self, component):
        self.component = component

    def _accessor(self, field: str, index: int) -> str:
        try:
            name = _ACCESSORS[field][index]
        except KeyError:
            raise KeyError(f"unsupported field: {field}") from None
        if name is None:
            raise AttributeError(f"field {field} is read-only")
        return name

    def get_value(self, field: str) -> float:
        return float(getattr(self.component, self._accessor(field, 0))())

    def set_value(self, field: str, value: float) -> None:
        setter = getattr(self.component, self._accessor(field, 1))
        if field == interfaces.FIN_COUNT:
            setter(int(value))
        else:
            setter(float(value))

    def __repr__(self) -> str:
        return f"OpenRocketComponent({self.component.getName()})"


def _walk(component) -> Iterator[Any]:
    yield component
    for child in component.getChildren():
        yield from _walk(child)


class OpenRocketAirframe:
    def __init__(self, document, rocket=None):
        self.document = document
        self.rocket = rocket if rocket is not None else document.getRocket()
        self.base_options = document.getSimulations().get(0).getOptions()
        self._fin_set = None
        self._nose_cone = None
        self._parachutes: list[Any] = []
        self._discover()

    def _discover(self) -> None:
        EllipticalFinSet = jpype.JClass("net.sf.openrocket.rocketcomponent.EllipticalFinSet")
        NoseCone = jpype.JClass("net.sf.openrocket.rocketcomponent.NoseCone")
        Parachute = jpype.JClass("net.sf.openrocket.rocketcomponent.Parachute")
        for component in _walk(self.rocket):
            if isinstance(component, EllipticalFinSet):
                self._fin_set = component
            elif isinstance(component, NoseCone) and self._nose_cone is None:
                self._nose_cone = component
            elif isinstance(component, Parachute):
                self._parachutes.append(component)

    def fin_set(self) -> OpenRocketComponent | None:
        return OpenRocketComponent(self._fin_set) if self._fin_set is not None else None

    def body_tube(self) -> OpenRocketComponent | None:
        BodyTube = jpype.JClass("net.sf.openrocket.rocketcomponent.BodyTube")
        if self._fin_set is None:
            return None
        parent = self._fin_set.getParent()
        return OpenRocketComponent(parent) if isinstance(parent, BodyTube) else None

    def nose_cone(self) -> OpenRocketComponent | None:
        return OpenRocketComponent(self._nose_cone) if self._nose_cone is not None else None

    def parachutes(self) -> list[Any]:
        return list(self._parachutes)

    def preset_of(self, parachute) -> Any | None:
        return parachute.getPresetComponent()

    def refresh(self) -> None:
        ComponentChangeEvent = jpype.JClass("net.sf.openrocket.rocketcomponent.ComponentChangeEvent")
        self.rocket.enableEvents()
        self.rocket.fireComponentChangeEvent(
            ComponentChangeEvent.AERODYNAMIC_CHANGE
            | ComponentChangeEvent.MASS_CHANGE
            | ComponentChangeEvent.MOTOR_CHANGE
        )
        self.rocket.update()

    def detach(self) -> "OpenRocketAirframe":
        return OpenRocketAirframe(self.document, self.rocket.copyWithOriginalID())


class OpenRocketRepository:
    def load(self, path: str) -> OpenRocketAirframe:
        return OpenRocketAirframe(load_document(path))

    def save(self, airframe: OpenRocketAirframe, path: str) -> list[str]:
        airframe.refresh()
        warnings = save_document(airframe.document, path)
        if warnings:
            logger.warning("save of %s produced %d warning(s)", path, len(warnings))
        return warnings
