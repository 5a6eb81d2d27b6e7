"""
===============================================================================
ORBITPLAN - Flight Plan Ephemeris
===============================================================================
Tabular views of a FlightPlan for post-processing: a per-segment summary
and a time-sampled state table, both as pandas DataFrames, plus CSV export.

State rows are expressed in the active segment's reference frame unless a
common frame body is requested, in which case every row is converted into
that body's frame.
===============================================================================
"""

import logging
import os
from typing import Optional

import numpy as np
import pandas as pd

from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.guidance.flight_plan import FlightPlan
from orbitplan.guidance.mission_planner import phase_for_segment

logger = logging.getLogger(__name__)

EPHEMERIS_COLUMNS = [
    'time_s', 'segment', 'phase', 'reference_body',
    'x_m', 'y_m', 'z_m', 'vx_mps', 'vy_mps', 'vz_mps',
    'radius_m', 'speed_mps',
]


def summarize_plan(plan: FlightPlan) -> pd.DataFrame:
    """One row per segment: name, body, window, type and exit condition."""
    rows = []
    for index, segment in enumerate(plan):
        rows.append({
            'index': index,
            'segment': segment.phase_name,
            'reference_body': segment.reference_body.name,
            'start_s': segment.start_time,
            'end_s': segment.end_time,
            'duration_s': segment.duration,
            'trajectory_type': segment.trajectory_type.name,
            'exit_condition': segment.exit_condition.name,
        })
    return pd.DataFrame(rows)


def sample_flight_plan(
    plan: FlightPlan,
    n_points: int = 500,
    frame_body: Optional[CelestialBody] = None,
) -> pd.DataFrame:
    """
    Sample a flight plan at evenly spaced times over its whole duration.

    Args:
        plan: Flight plan to sample.
        n_points: Number of rows (>= 2).
        frame_body: If given, express every state relative to this body
                    (must be the active reference body or an ancestor).

    Returns:
        DataFrame with columns EPHEMERIS_COLUMNS.
    """
    if n_points < 2:
        raise ValueError(f"n_points must be >= 2, got {n_points}")

    times = np.linspace(plan.start_time, plan.end_time, n_points)
    rows = []
    for t in times:
        segment = plan.segment_at(t)
        if frame_body is None:
            state, body = plan.evaluate(t)
            body_name = body.name
        else:
            state = plan.evaluate_in_frame(t, frame_body)
            body_name = frame_body.name
        rows.append((
            float(t), segment.phase_name, phase_for_segment(segment).name, body_name,
            *state.position, *state.velocity,
            state.r_mag, state.v_mag,
        ))

    df = pd.DataFrame(rows, columns=EPHEMERIS_COLUMNS)
    logger.debug("Sampled %d ephemeris rows over [%.1f, %.1f] s", len(df), times[0], times[-1])
    return df


def save_ephemeris(df: pd.DataFrame, path: str) -> str:
    """Write an ephemeris (or summary) table to CSV; returns the path."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Ephemeris saved to %s (%d rows)", path, len(df))
    return path
