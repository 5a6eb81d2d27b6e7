"""
===============================================================================
ORBITPLAN - Mission Tracker Test Suite
===============================================================================
Phase reporting, timeline bookkeeping and reference-body hand-offs while
scrubbing time through an Earth -> Moon flight plan.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from orbitplan.core.config import DEFAULT_CONFIG, merge_config
from orbitplan.core.constants import MOON_RADIUS
from orbitplan.dynamics.bodies import earth_moon_system
from orbitplan.dynamics.orbital_mechanics import KeplerOrbit, OrbitParameters
from orbitplan.guidance.flight_plan import TrajectorySegment, TrajectoryType
from orbitplan.guidance.mission_builder import MissionBuilder
from orbitplan.guidance.mission_planner import (
    PHASE_DESCRIPTIONS,
    MissionPhase,
    MissionTracker,
    phase_for_segment,
)


@pytest.fixture(scope='module')
def bodies():
    return earth_moon_system()


@pytest.fixture(scope='module')
def plan(bodies):
    earth, moon = bodies
    config = merge_config(DEFAULT_CONFIG, {'mission': {'capture_altitude_m': 1.0e7 - MOON_RADIUS}})
    return MissionBuilder(config).create_planet_to_moon_plan(earth, moon, 1000.0)


@pytest.fixture
def tracker(plan):
    return MissionTracker(plan)


def midpoint(segment):
    return (segment.start_time + segment.end_time) / 2.0


# =============================================================================
# Test: Phase mapping
# =============================================================================

class TestPhaseMapping:

    def test_phases_are_ordered(self):
        assert MissionPhase.READY < MissionPhase.PARKING < MissionPhase.TRANSFER
        assert MissionPhase.APPROACH < MissionPhase.CAPTURED < MissionPhase.COMPLETE
        assert set(PHASE_DESCRIPTIONS) == set(MissionPhase)

    def test_builder_segments(self, plan):
        phases = [phase_for_segment(s) for s in plan]
        assert phases == [
            MissionPhase.PARKING, MissionPhase.TRANSFER,
            MissionPhase.APPROACH, MissionPhase.CAPTURED,
        ]

    def test_unnamed_segment_uses_type(self, bodies):
        earth, _ = bodies
        orbit = KeplerOrbit(earth, OrbitParameters.circular(7.0e6, earth.mu), 0.0, 10.0)
        circularize = TrajectorySegment(orbit, trajectory_type=TrajectoryType.CIRCULARIZE)
        transfer = TrajectorySegment(orbit, trajectory_type=TrajectoryType.HOHMANN_TRANSFER)
        coast = TrajectorySegment(orbit)
        assert phase_for_segment(circularize) is MissionPhase.CAPTURED
        assert phase_for_segment(transfer) is MissionPhase.TRANSFER
        assert phase_for_segment(coast) is MissionPhase.PARKING


# =============================================================================
# Test: Tracker
# =============================================================================

class TestMissionTracker:

    def test_initial_state(self, tracker, plan):
        assert tracker.get_current_phase() is MissionPhase.READY
        assert tracker.get_mission_timeline() == [
            (plan.start_time, MissionPhase.READY, "mission_initialized"),
        ]
        assert tracker.get_mission_elapsed_time() == 0.0

    def test_phase_at_outside_plan(self, tracker, plan):
        assert tracker.phase_at(plan.start_time - 1.0) is MissionPhase.READY
        assert tracker.phase_at(plan.end_time + 1.0) is MissionPhase.COMPLETE
        assert tracker.phase_at(midpoint(plan[2])) is MissionPhase.APPROACH

    def test_forward_sweep(self, tracker, plan, bodies):
        earth, moon = bodies
        for segment in plan:
            tracker.update(midpoint(segment))
        tracker.update(plan.end_time + 100.0)

        timeline = tracker.get_mission_timeline()
        assert [phase for _, phase, _ in timeline] == [
            MissionPhase.READY, MissionPhase.PARKING, MissionPhase.TRANSFER,
            MissionPhase.APPROACH, MissionPhase.CAPTURED, MissionPhase.COMPLETE,
        ]
        assert all(reason in ("mission_initialized", "segment_boundary")
                   for _, _, reason in timeline)
        assert tracker.handoffs == [(midpoint(plan[2]), 'earth', 'moon')]
        assert tracker.current_reference_body is moon

    def test_rewind(self, tracker, plan, bodies):
        earth, _ = bodies
        tracker.update(midpoint(plan[3]))
        state = tracker.update(midpoint(plan[0]))

        assert tracker.get_current_phase() is MissionPhase.PARKING
        assert tracker.get_mission_timeline()[-1][2] == "time_rewound"
        assert tracker.current_reference_body is earth
        assert tracker.handoffs[-1][1:] == ('moon', 'earth')
        assert_allclose(state.r_mag, earth.radius + 200000.0, rtol=1e-9)

    def test_update_matches_plan(self, tracker, plan):
        t = midpoint(plan[1])
        state = tracker.update(t)
        expected, _ = plan.evaluate(t)
        assert state == expected
        again = tracker.update(t)
        assert again == expected
        # No phase change on a repeated query
        assert len(tracker.get_mission_timeline()) == 2

    def test_elapsed_times(self, tracker, plan):
        tracker.update(plan[1].start_time + 10.0)
        tracker.update(plan[1].start_time + 110.0)
        assert_allclose(tracker.get_mission_elapsed_time(),
                        plan[1].start_time + 110.0 - plan.start_time)
        assert_allclose(tracker.get_phase_elapsed_time(), 100.0)

    def test_status_summary(self, tracker, plan):
        tracker.update(midpoint(plan[3]))
        summary = tracker.get_status_summary()
        assert "CAPTURED" in summary
        assert "moon" in summary
        assert "CAPTURED" in repr(tracker)

    def test_dense_sweep_counts_transitions(self, tracker, plan):
        for t in np.linspace(plan.start_time, plan.end_time, 400):
            tracker.update(t)
        phases = [phase for _, phase, _ in tracker.get_mission_timeline()]
        assert phases[-1] is MissionPhase.CAPTURED
        assert len(tracker.handoffs) == 1
