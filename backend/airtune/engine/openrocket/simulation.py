from __future__ import annotations

import logging
import math

import jpype

from airtune.engine.openrocket.airframe import OpenRocketAirframe
from airtune.engine.optimizer.results import FlightSummary

logger = logging.getLogger("airtune.openrocket")

STABILITY_MACH = 0.3
_EPSILON = 1e-9


class OpenRocketSimulator:
    """Runs a fresh simulation with the conditions of the document's first simulation.

    ``interrupt()`` interrupts the Java thread of the simulation in flight; the
    OpenRocket engine checks the interrupt flag between steps and aborts.
    """

    def __init__(self):
        self._java_thread = None

    def simulate(self, airframe: OpenRocketAirframe) -> FlightSummary:
        Simulation = jpype.JClass("net.sf.openrocket.document.Simulation")
        Thread = jpype.JClass("java.lang.Thread")
        simulation = Simulation(airframe.document, airframe.rocket)
        simulation.getOptions().copyConditionsFrom(airframe.base_options)
        self._java_thread = Thread.currentThread()
        try:
            simulation.simulate()
        finally:
            self._java_thread = None
        data = simulation.getSimulatedData()
        return FlightSummary(
            apogee_m=float(data.getMaxAltitude()),
            flight_time_s=float(data.getFlightTime()),
        )

    def interrupt(self) -> None:
        thread = self._java_thread
        if thread is not None:
            logger.warning("interrupting simulation thread %s", thread.getName())
            thread.interrupt()


class BarrowmanStability:
    """Static margin in calibers from the worst-case Barrowman CP and the launch CG."""

    def compute_margin(self, airframe: OpenRocketAirframe) -> float:
        try:
            return self._margin(airframe)
        except Exception as exc:
            logger.warning("Error during stability calculation: %s", exc)
            return math.nan

    def _margin(self, airframe: OpenRocketAirframe) -> float:
        MassCalculator = jpype.JClass("net.sf.openrocket.masscalc.MassCalculator")
        BarrowmanCalculator = jpype.JClass("net.sf.openrocket.aerodynamics.BarrowmanCalculator")
        FlightConditions = jpype.JClass("net.sf.openrocket.aerodynamics.FlightConditions")
        WarningSet = jpype.JClass("net.sf.openrocket.aerodynamics.WarningSet")
        SymmetricComponent = jpype.JClass("net.sf.openrocket.rocketcomponent.SymmetricComponent")

        config = airframe.rocket.getSelectedConfiguration()
        cg = MassCalculator.calculateLaunch(config).getCM()
        if cg.weight <= _EPSILON:
            return math.nan

        conditions = FlightConditions(config)
        conditions.setMach(STABILITY_MACH)
        conditions.setAOA(0.0)
        conditions.setRollRate(0.0)
        cp = BarrowmanCalculator().getWorstCP(config, conditions, WarningSet())
        if cp.weight <= _EPSILON:
            return math.nan

        caliber = 0.0
        for component in config.getAllComponents():
            if isinstance(component, SymmetricComponent):
                radius = max(float(component.getForeRadius()), float(component.getAftRadius()))
                caliber = max(caliber, radius * 2.0)
        if caliber <= _EPSILON:
            return math.nan
        return (float(cp.x) - float(cg.x)) / caliber
