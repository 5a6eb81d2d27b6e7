"""
===============================================================================
ORBITPLAN - Mission Phase Tracker
===============================================================================
Follows a spacecraft along a FlightPlan and reports which mission phase it
is in.

The phase is a pure function of time: it is read off the flight-plan
segment active at the queried time, never from integrated state.  Callers
pull states by calling ``update(time)`` once per simulation tick and may
move time backwards (pause, rewind) as freely as forwards; every change of
phase or reference body is logged and recorded in the mission timeline.

Phase sequence of a planet-to-moon mission:

    READY -> PARKING -> TRANSFER -> APPROACH -> CAPTURED -> COMPLETE
===============================================================================
"""

import logging
from enum import IntEnum, auto
from typing import Dict, List, Optional, Tuple

from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.dynamics.orbital_mechanics import OrbitalState
from orbitplan.guidance.flight_plan import FlightPlan, TrajectorySegment, TrajectoryType

logger = logging.getLogger(__name__)


# =============================================================================
# MISSION PHASE ENUMERATION
# =============================================================================

class MissionPhase(IntEnum):
    """Mission phases in chronological order."""
    READY = 0
    PARKING = auto()
    TRANSFER = auto()
    APPROACH = auto()
    CAPTURED = auto()
    COMPLETE = auto()


PHASE_DESCRIPTIONS: Dict[MissionPhase, str] = {
    MissionPhase.READY: "Awaiting the start of the flight plan",
    MissionPhase.PARKING: "Circular parking orbit about the departure body",
    MissionPhase.TRANSFER: "Coasting on the transfer ellipse",
    MissionPhase.APPROACH: "Inside the target SOI, approaching periapsis",
    MissionPhase.CAPTURED: "Circular orbit about the target",
    MissionPhase.COMPLETE: "Flight plan exhausted; holding the final state",
}

# Segment phase names produced by the mission builder
SEGMENT_PHASES: Dict[str, MissionPhase] = {
    "parking": MissionPhase.PARKING,
    "transfer": MissionPhase.TRANSFER,
    "approach": MissionPhase.APPROACH,
    "capture": MissionPhase.CAPTURED,
    "circularize": MissionPhase.CAPTURED,
}


def phase_for_segment(segment: TrajectorySegment) -> MissionPhase:
    """Mission phase a segment belongs to, by name then by trajectory type."""
    phase = SEGMENT_PHASES.get(segment.phase_name.lower())
    if phase is not None:
        return phase
    if segment.trajectory_type is TrajectoryType.CIRCULARIZE:
        return MissionPhase.CAPTURED
    if segment.trajectory_type is TrajectoryType.HOHMANN_TRANSFER:
        return MissionPhase.TRANSFER
    return MissionPhase.PARKING


# =============================================================================
# MISSION TRACKER
# =============================================================================

class MissionTracker:
    """
    Time-driven mission phase tracker for one flight plan.

    Attributes:
        plan:                   The flight plan being followed.
        current_phase:          Phase at the last update.
        current_reference_body: Frame of the last returned state.
        current_time:           Time of the last update (s).
        timeline:               Ordered list of (time, phase, reason) tuples.
        handoffs:               (time, from_body, to_body) reference changes.
    """

    def __init__(self, plan: FlightPlan) -> None:
        self.plan = plan
        self.current_phase: MissionPhase = MissionPhase.READY
        self.current_reference_body: Optional[CelestialBody] = None
        self.current_time: float = plan.start_time
        self.phase_start_time: float = plan.start_time

        self.timeline: List[Tuple[float, MissionPhase, str]] = [
            (plan.start_time, MissionPhase.READY, "mission_initialized"),
        ]
        self.handoffs: List[Tuple[float, str, str]] = []

        logger.info(
            "MissionTracker initialized for %r. Starting phase: %s",
            plan, self.current_phase.name,
        )

    # -------------------------------------------------------------------------
    # Phase Queries
    # -------------------------------------------------------------------------

    def phase_at(self, time: float) -> MissionPhase:
        """Phase the mission is in at *time*; does not change tracker state."""
        if time < self.plan.start_time:
            return MissionPhase.READY
        if time > self.plan.end_time:
            return MissionPhase.COMPLETE
        return phase_for_segment(self.plan.segment_at(time))

    def get_current_phase(self) -> MissionPhase:
        return self.current_phase

    def get_mission_elapsed_time(self) -> float:
        """Time since the start of the flight plan (s); negative before it."""
        return self.current_time - self.plan.start_time

    def get_phase_elapsed_time(self) -> float:
        return self.current_time - self.phase_start_time

    def get_mission_timeline(self) -> List[Tuple[float, MissionPhase, str]]:
        """
        Return the complete mission timeline.

        Returns:
            List of (time_s, phase, reason) tuples in the order the
            transitions were observed.
        """
        return list(self.timeline)

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update(self, time: float) -> OrbitalState:
        """
        Advance (or rewind) the tracker to *time* and return the state.

        The returned state is expressed relative to
        ``current_reference_body`` after the call.
        """
        state, body = self.plan.evaluate(time)
        new_phase = self.phase_at(time)

        if new_phase != self.current_phase:
            reason = "segment_boundary" if time >= self.current_time else "time_rewound"
            self.log_phase_transition(self.current_phase, new_phase, time, reason)
            self.current_phase = new_phase
            self.phase_start_time = time

        if body is not self.current_reference_body:
            if self.current_reference_body is not None:
                self.handoffs.append((time, self.current_reference_body.name, body.name))
                logger.info(
                    "Reference body hand-off at t=%.1f s: %s -> %s",
                    time, self.current_reference_body.name, body.name,
                )
            self.current_reference_body = body

        self.current_time = time
        return state

    def log_phase_transition(
        self,
        old_phase: MissionPhase,
        new_phase: MissionPhase,
        time: float,
        reason: str,
    ) -> None:
        """Record a phase transition in the mission timeline."""
        self.timeline.append((time, new_phase, reason))
        logger.info(
            "TIMELINE [t %.1f s]: %s -> %s (%s)",
            time, old_phase.name, new_phase.name, reason,
        )

    # -------------------------------------------------------------------------
    # Summary and Display
    # -------------------------------------------------------------------------

    def get_status_summary(self) -> str:
        """Return a human-readable summary of the current mission state."""
        body = self.current_reference_body.name if self.current_reference_body else "-"
        return (
            f"Mission Phase: {self.current_phase.name}\n"
            f"  Description:     {PHASE_DESCRIPTIONS[self.current_phase]}\n"
            f"  Reference Body:  {body}\n"
            f"  MET:             {self.get_mission_elapsed_time():.1f} s\n"
            f"  Phase Elapsed:   {self.get_phase_elapsed_time():.1f} s\n"
            f"  Hand-offs:       {len(self.handoffs)}\n"
        )

    def __repr__(self) -> str:
        return (
            f"MissionTracker(phase={self.current_phase.name}, "
            f"t={self.current_time:.1f}s)"
        )
