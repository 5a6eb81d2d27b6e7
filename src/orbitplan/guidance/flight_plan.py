"""
===============================================================================
ORBITPLAN - Flight Plan
===============================================================================
A mission timeline built from ordered trajectory segments.

Each TrajectorySegment wraps one trajectory (usually a KeplerOrbit) together
with an explicit [start, end] window and planning metadata.  Consecutive
segments may be expressed in different reference frames; FlightPlan.evaluate
returns the reference body with every state so that callers can follow
sphere-of-influence hand-offs.

Lookup policy for FlightPlan.evaluate(t):
    t < first start   -> clamp to first start, first segment
    t > last end      -> clamp to last end, last segment
    otherwise         -> first segment with start <= t <= end
    no match (gap)    -> last segment with a warning, or FlightPlanError
                         once the plan has been finalized
===============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from orbitplan.core.errors import FlightPlanError
from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.dynamics.orbital_mechanics import OrbitalState, Trajectory

logger = logging.getLogger(__name__)

# Default allowed mismatch (s) between one segment's end and the next start
DEFAULT_CONTINUITY_TOLERANCE = 1e-6


# =============================================================================
# SEGMENT METADATA
# =============================================================================

class TrajectoryType(Enum):
    """What the spacecraft is doing during a segment."""
    ORBIT_PROPAGATION = auto()
    LAUNCH = auto()
    HOHMANN_TRANSFER = auto()
    CIRCULARIZE = auto()
    LANDING = auto()
    AEROBRAKING = auto()


class ExitCondition(Enum):
    """
    Event that ends a segment.  Advisory: segment boundaries are always
    the explicit start/end times.  See guidance.exit_conditions for
    evaluating them against live states.
    """
    TIME_ELAPSED = auto()
    ENTER_TARGET_SOI = auto()
    REACH_ALTITUDE = auto()
    APOAPSIS_REACHED = auto()
    PERIAPSIS_REACHED = auto()


@dataclass(frozen=True, eq=False)
class TrajectorySegment:
    """
    One leg of a flight plan.

    Attributes
    ----------
    trajectory : Trajectory
        The conic flown during this leg.
    start_time, end_time : float, optional
        Authoritative segment window (s).  Default to the trajectory's own
        window.
    phase_name : str
        Free-form label used in logs and tables.
    trajectory_type : TrajectoryType
    exit_condition : ExitCondition
    next_reference_body : CelestialBody, optional
        Frame the following segment is expressed in when this leg ends
        with an SOI hand-off.
    target_body : CelestialBody, optional
        Body whose SOI ends the leg (ENTER_TARGET_SOI).
    target_altitude : float, optional
        Altitude (m) above the reference body that ends the leg
        (REACH_ALTITUDE).
    """
    trajectory: Trajectory
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    phase_name: str = ''
    trajectory_type: TrajectoryType = TrajectoryType.ORBIT_PROPAGATION
    exit_condition: ExitCondition = ExitCondition.TIME_ELAPSED
    next_reference_body: Optional[CelestialBody] = None
    target_body: Optional[CelestialBody] = None
    target_altitude: Optional[float] = None

    def __post_init__(self):
        start = self.trajectory.start_time if self.start_time is None else self.start_time
        end = self.trajectory.end_time if self.end_time is None else self.end_time
        if end < start:
            raise FlightPlanError(
                f"Segment '{self.phase_name}' ends before it starts: [{start}, {end}]"
            )
        object.__setattr__(self, 'start_time', float(start))
        object.__setattr__(self, 'end_time', float(end))

    @property
    def reference_body(self) -> CelestialBody:
        return self.trajectory.reference_body

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def contains(self, time: float) -> bool:
        return self.start_time <= time <= self.end_time

    def evaluate(self, time: float) -> OrbitalState:
        return self.trajectory.evaluate(time)

    def get_path_points(self, resolution: int) -> np.ndarray:
        """Positions at *resolution* evenly spaced times over the segment window."""
        if resolution < 1:
            raise ValueError(f"resolution must be >= 1, got {resolution}")
        if resolution == 1:
            times = np.array([self.start_time])
        else:
            times = np.linspace(self.start_time, self.end_time, resolution)
        return np.array([self.trajectory.evaluate(t).position for t in times])

    def __repr__(self) -> str:
        return (
            f"TrajectorySegment({self.phase_name!r}, body={self.reference_body.name!r}, "
            f"[{self.start_time:.1f}, {self.end_time:.1f}] s, "
            f"{self.trajectory_type.name}, exit={self.exit_condition.name})"
        )


# =============================================================================
# FLIGHT PLAN
# =============================================================================

class FlightPlan:
    """
    Ordered sequence of TrajectorySegments forming one mission timeline.

    Segments must be appended in chronological order; the plan does not
    sort them.  Call ``finalize`` to check the timeline for gaps, overlaps
    and disorder; a finalized plan refuses to paper over gaps during
    lookup.
    """

    def __init__(self, segments: Optional[Sequence[TrajectorySegment]] = None):
        self._segments: List[TrajectorySegment] = []
        self._finalized = False
        self._tolerance = DEFAULT_CONTINUITY_TOLERANCE
        for segment in segments or ():
            self.add_segment(segment)

    # -----------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------

    def add_segment(self, segment: TrajectorySegment) -> None:
        """
        Append a segment to the end of the timeline.

        On a finalized plan the new segment must start where the current
        last one ends (within the finalize tolerance).
        """
        if self._finalized and self._segments:
            self._check_adjacent(self._segments[-1], segment, len(self._segments))
        self._segments.append(segment)
        logger.debug("Added segment %d: %r", len(self._segments) - 1, segment)

    def finalize(self, tolerance: float = DEFAULT_CONTINUITY_TOLERANCE) -> 'FlightPlan':
        """
        Validate the timeline and switch lookups to strict mode.

        Raises
        ------
        FlightPlanError
            Empty plan, or consecutive segments that are out of order,
            separated by a gap, or overlapping by more than *tolerance*.
        """
        if not self._segments:
            raise FlightPlanError("Cannot finalize an empty flight plan")
        for index in range(1, len(self._segments)):
            self._check_adjacent(
                self._segments[index - 1], self._segments[index], index, tolerance
            )
        self._finalized = True
        self._tolerance = tolerance
        logger.debug(
            "Flight plan finalized: %d segments over [%.1f, %.1f] s",
            len(self._segments), self.start_time, self.end_time,
        )
        return self

    def _check_adjacent(
        self,
        previous: TrajectorySegment,
        current: TrajectorySegment,
        index: int,
        tolerance: Optional[float] = None,
    ) -> None:
        tol = self._tolerance if tolerance is None else tolerance
        if current.start_time < previous.start_time:
            raise FlightPlanError(
                f"Segment {index} ('{current.phase_name}') starts at "
                f"{current.start_time:.6f} s, before segment {index - 1} "
                f"('{previous.phase_name}') at {previous.start_time:.6f} s"
            )
        mismatch = current.start_time - previous.end_time
        if mismatch > tol:
            raise FlightPlanError(
                f"Gap of {mismatch:.6f} s between segment {index - 1} "
                f"('{previous.phase_name}') and segment {index} ('{current.phase_name}')"
            )
        if mismatch < -tol:
            raise FlightPlanError(
                f"Segments {index - 1} ('{previous.phase_name}') and {index} "
                f"('{current.phase_name}') overlap by {-mismatch:.6f} s"
            )

    # -----------------------------------------------------------------
    # Timeline properties
    # -----------------------------------------------------------------

    @property
    def segments(self) -> Tuple[TrajectorySegment, ...]:
        return tuple(self._segments)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def start_time(self) -> float:
        self._require_segments()
        return self._segments[0].start_time

    @property
    def end_time(self) -> float:
        self._require_segments()
        return self._segments[-1].end_time

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[TrajectorySegment]:
        return iter(self._segments)

    def __getitem__(self, index: int) -> TrajectorySegment:
        return self._segments[index]

    def _require_segments(self) -> None:
        if not self._segments:
            raise FlightPlanError("Flight plan has no segments")

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def _locate(self, time: float) -> Tuple[int, float]:
        """Index of the segment active at *time*, and the (clamped) time."""
        self._require_segments()
        first, last = self._segments[0], self._segments[-1]

        if time < first.start_time:
            return 0, first.start_time
        if time > last.end_time:
            return len(self._segments) - 1, last.end_time

        for index, segment in enumerate(self._segments):
            if segment.contains(time):
                return index, time

        if self._finalized:
            # Boundaries that met within tolerance
            for index, segment in enumerate(self._segments):
                if segment.start_time - self._tolerance <= time <= segment.end_time + self._tolerance:
                    return index, time
            raise FlightPlanError(f"No segment covers t={time:.6f} s")

        logger.warning(
            "No segment covers t=%.3f s; falling back to the last segment ('%s')",
            time, last.phase_name,
        )
        return len(self._segments) - 1, time

    def segment_index_at(self, time: float) -> int:
        return self._locate(time)[0]

    def segment_at(self, time: float) -> TrajectorySegment:
        return self._segments[self._locate(time)[0]]

    def evaluate(self, time: float) -> Tuple[OrbitalState, CelestialBody]:
        """
        State at *time* and the reference body it is expressed in.

        The reference body can change between consecutive queries
        (SOI hand-off); callers must re-read it on every call.
        """
        index, clamped = self._locate(time)
        segment = self._segments[index]
        return segment.evaluate(clamped), segment.reference_body

    def evaluate_in_frame(self, time: float, body: CelestialBody) -> OrbitalState:
        """
        State at *time* re-expressed relative to *body*, which must be the
        active reference body or one of its ancestors.
        """
        state, reference = self.evaluate(time)
        while reference is not body:
            if reference.parent is None:
                raise FlightPlanError(
                    f"'{body.name}' is not an ancestor of reference body '{state.frame}'"
                )
            state = reference.to_parent_frame(state)
            reference = reference.parent
        return state

    def get_path_points(self, resolution: int) -> List[np.ndarray]:
        """Per-segment position samples, each in its own reference frame."""
        return [segment.get_path_points(resolution) for segment in self._segments]

    def handoffs(self) -> List[Tuple[float, CelestialBody, CelestialBody]]:
        """(time, from_body, to_body) for every change of reference body."""
        changes = []
        for previous, current in zip(self._segments, self._segments[1:]):
            if current.reference_body is not previous.reference_body:
                changes.append(
                    (current.start_time, previous.reference_body, current.reference_body)
                )
        return changes

    def __repr__(self) -> str:
        if not self._segments:
            return "FlightPlan(empty)"
        return (
            f"FlightPlan({len(self._segments)} segments, "
            f"[{self.start_time:.1f}, {self.end_time:.1f}] s, "
            f"finalized={self._finalized})"
        )
