"""
===============================================================================
ORBITPLAN - Exit Condition Evaluation
===============================================================================
Segment exit conditions are metadata on a TrajectorySegment: the segment's
explicit end time is what the flight plan actually uses.  This module makes
them checkable against live states so that a caller can confirm, for
example, that a transfer really enters the target's SOI where it ends.

Every condition is reduced to a scalar event function g(state) whose sign
change marks the event:

    TIME_ELAPSED        g = t - end_time                   (- -> +)
    ENTER_TARGET_SOI    g = |r - r_target| - r_soi         (+ -> -)
    REACH_ALTITUDE      g = (|r| - R_body) - h_target      (either way)
    APOAPSIS_REACHED    g = radial velocity                (+ -> -)
    PERIAPSIS_REACHED   g = radial velocity                (- -> +)

find_exit_time samples g across the segment window and refines the first
crossing with Brent's method.
===============================================================================
"""

import logging
from typing import Callable, Optional

import numpy as np
from scipy.optimize import brentq

from orbitplan.core.errors import DomainError
from orbitplan.dynamics.orbital_mechanics import OrbitalState
from orbitplan.guidance.flight_plan import ExitCondition, TrajectorySegment

logger = logging.getLogger(__name__)

# |g| at or below this counts as "on the boundary" (m or m/s)
DEFAULT_VALUE_TOLERANCE = 1e-3

# Sign change each condition fires on: -1 falling, +1 rising, 0 either
_CROSSING_DIRECTION = {
    ExitCondition.TIME_ELAPSED: +1,
    ExitCondition.ENTER_TARGET_SOI: -1,
    ExitCondition.REACH_ALTITUDE: 0,
    ExitCondition.APOAPSIS_REACHED: -1,
    ExitCondition.PERIAPSIS_REACHED: +1,
}


def distance_to_target(state: OrbitalState, segment: TrajectorySegment) -> float:
    """Distance (m) from the spacecraft to the segment's target body."""
    target = segment.target_body
    if target is None:
        raise DomainError(f"Segment '{segment.phase_name}' has no target body")
    if target.parent is not segment.reference_body:
        raise DomainError(
            f"Target '{target.name}' does not orbit '{segment.reference_body.name}'"
        )
    target_state = target.state_at(state.time)
    return float(np.linalg.norm(state.position - target_state.position))


def condition_value(
    condition: ExitCondition, state: OrbitalState, segment: TrajectorySegment
) -> float:
    """Event function g for *condition* at *state*."""
    if condition is ExitCondition.TIME_ELAPSED:
        return state.time - segment.end_time
    if condition is ExitCondition.ENTER_TARGET_SOI:
        return distance_to_target(state, segment) - segment.target_body.soi_radius
    if condition is ExitCondition.REACH_ALTITUDE:
        if segment.target_altitude is None:
            raise DomainError(f"Segment '{segment.phase_name}' has no target altitude")
        altitude = state.r_mag - segment.reference_body.radius
        return altitude - segment.target_altitude
    if condition in (ExitCondition.APOAPSIS_REACHED, ExitCondition.PERIAPSIS_REACHED):
        return state.radial_velocity
    raise ValueError(f"Unsupported exit condition: {condition}")


def _crossed(direction: int, g_prev: float, g: float) -> bool:
    if direction < 0:
        return g_prev > 0.0 >= g
    if direction > 0:
        return g_prev < 0.0 <= g
    return (g_prev < 0.0 <= g) or (g_prev > 0.0 >= g)


def is_condition_met(
    condition: ExitCondition,
    state: OrbitalState,
    segment: TrajectorySegment,
    previous_state: Optional[OrbitalState] = None,
    tolerance: float = DEFAULT_VALUE_TOLERANCE,
) -> bool:
    """
    Check *condition* at *state*.

    Time and SOI conditions are level tests (past the end time, inside the
    SOI).  Altitude and apsis conditions are events: with a
    *previous_state* they are met when g changed sign in the expected
    direction between the two states, otherwise when |g| <= *tolerance*.
    """
    g = condition_value(condition, state, segment)
    if condition is ExitCondition.TIME_ELAPSED:
        return g >= 0.0
    if condition is ExitCondition.ENTER_TARGET_SOI:
        return g <= tolerance
    if previous_state is not None:
        g_prev = condition_value(condition, previous_state, segment)
        if _crossed(_CROSSING_DIRECTION[condition], g_prev, g):
            return True
    return abs(g) <= tolerance


def find_exit_time(
    segment: TrajectorySegment,
    condition: Optional[ExitCondition] = None,
    samples: int = 64,
    xtol: float = 1e-6,
    tolerance: float = DEFAULT_VALUE_TOLERANCE,
) -> Optional[float]:
    """
    First time within the segment window at which *condition* (default:
    the segment's own exit condition) fires.

    Args:
        segment: Segment to search.
        condition: Condition to locate; defaults to segment.exit_condition.
        samples: Number of coarse samples used to bracket the crossing.
        xtol: Absolute time tolerance (s) passed to brentq.
        tolerance: |g| treated as zero at the window end.

    Returns:
        Event time (s), or None if the condition never fires.
    """
    condition = segment.exit_condition if condition is None else condition
    if condition is ExitCondition.TIME_ELAPSED:
        return segment.end_time
    if samples < 2:
        raise ValueError(f"samples must be >= 2, got {samples}")

    direction = _CROSSING_DIRECTION[condition]
    g = event_function(segment, condition)

    times = np.linspace(segment.start_time, segment.end_time, samples)
    values = [g(t) for t in times]

    for i in range(1, samples):
        if values[i - 1] == 0.0:
            return float(times[i - 1])
        if _crossed(direction, values[i - 1], values[i]):
            if values[i] == 0.0:
                return float(times[i])
            event = brentq(g, times[i - 1], times[i], xtol=xtol)
            logger.debug(
                "%s on segment '%s' at t=%.6f s",
                condition.name, segment.phase_name, event,
            )
            return float(event)

    if abs(values[-1]) <= tolerance:
        return float(times[-1])
    return None


def event_function(
    segment: TrajectorySegment, condition: Optional[ExitCondition] = None
) -> Callable[[float], float]:
    """g(t) for a segment, suitable for external root finders."""
    condition = segment.exit_condition if condition is None else condition

    def g(t: float) -> float:
        return condition_value(condition, segment.evaluate(t), segment)

    return g
