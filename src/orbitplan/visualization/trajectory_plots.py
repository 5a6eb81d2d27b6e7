"""
===============================================================================
ORBITPLAN - Trajectory Visualization
===============================================================================
Static plots of a FlightPlan:

  1. Mission overview in the departure body's frame: every segment
     converted into that frame, the target's orbit and its SOI at the
     hand-off time.
  2. Close-up of the segments flown relative to the target body.

Distances are plotted in km; all computation stays in SI.
===============================================================================
"""

import logging
from typing import Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for saving
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Circle

from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.guidance.flight_plan import FlightPlan

logger = logging.getLogger(__name__)

COLORS = {
    'primary': '#3498db',
    'target': '#95a5a6',
    'soi': '#bdc3c7',
    'Parking': '#27ae60',
    'Transfer': '#2c3e50',
    'Approach': '#e74c3c',
    'Capture': '#9b59b6',
    'Circularize': '#9b59b6',
}
DEFAULT_SEGMENT_COLOR = '#f39c12'


def _segment_positions_in_frame(
    plan: FlightPlan, index: int, frame_body: CelestialBody, resolution: int
) -> np.ndarray:
    segment = plan[index]
    times = np.linspace(segment.start_time, segment.end_time, max(resolution, 2))
    points = []
    for t in times:
        state = segment.evaluate(t)
        body = segment.reference_body
        while body is not frame_body:
            state = body.to_parent_frame(state)
            body = body.parent
        points.append(state.position)
    return np.array(points)


def _root_of(body: CelestialBody) -> CelestialBody:
    while body.parent is not None:
        body = body.parent
    return body


def plot_flight_plan(
    plan: FlightPlan,
    output_path: Optional[str] = None,
    frame_body: Optional[CelestialBody] = None,
    resolution: int = 300,
):
    """
    Plot a flight plan; optionally save it.

    Args:
        plan: Flight plan to draw.
        output_path: If given, the figure is saved there (PNG) and closed.
        frame_body: Frame of the overview panel.  Defaults to the root of
                    the first segment's reference body.
        resolution: Samples per segment.

    Returns:
        The matplotlib Figure.
    """
    frame_body = frame_body or _root_of(plan[0].reference_body)
    local_indices = [
        i for i, seg in enumerate(plan) if seg.reference_body is not frame_body
    ]
    n_panels = 2 if local_indices else 1

    fig, axes = plt.subplots(1, n_panels, figsize=(8 * n_panels, 8), squeeze=False)
    overview = axes[0, 0]

    # --- Overview in the frame body ---
    overview.add_patch(Circle((0.0, 0.0), frame_body.radius / 1000.0,
                              color=COLORS['primary'], alpha=0.8, label=frame_body.name))

    drawn_targets = set()
    for index, segment in enumerate(plan):
        pos = _segment_positions_in_frame(plan, index, frame_body, resolution) / 1000.0
        overview.plot(pos[:, 0], pos[:, 1],
                      color=COLORS.get(segment.phase_name, DEFAULT_SEGMENT_COLOR),
                      label=segment.phase_name)

        target = segment.target_body or segment.next_reference_body
        if target is None or target.parent is not frame_body or target.name in drawn_targets:
            continue
        drawn_targets.add(target.name)
        orbit = target.orbit_around_parent().get_path_points(resolution) / 1000.0
        overview.plot(orbit[:, 0], orbit[:, 1], '--', color=COLORS['target'],
                      linewidth=0.8, label=f"{target.name} orbit")
        at_end = target.state_at(segment.end_time).position / 1000.0
        overview.add_patch(Circle((at_end[0], at_end[1]), target.soi_radius / 1000.0,
                                  fill=False, linestyle=':', color=COLORS['soi']))
        overview.plot(at_end[0], at_end[1], 'o', color=COLORS['target'])

    overview.set_aspect('equal', adjustable='datalim')
    overview.set_xlabel('X (km)')
    overview.set_ylabel('Y (km)')
    overview.set_title(f"Flight plan ({frame_body.name} frame)")
    overview.legend(loc='upper right')
    overview.grid(True, alpha=0.3)

    # --- Close-up in the target frame ---
    if local_indices:
        local = axes[0, 1]
        body = plan[local_indices[0]].reference_body
        local.add_patch(Circle((0.0, 0.0), body.radius / 1000.0,
                               color=COLORS['target'], alpha=0.8, label=body.name))
        for index in local_indices:
            segment = plan[index]
            if segment.reference_body is not body:
                continue
            pos = segment.get_path_points(resolution) / 1000.0
            local.plot(pos[:, 0], pos[:, 1],
                       color=COLORS.get(segment.phase_name, DEFAULT_SEGMENT_COLOR),
                       label=segment.phase_name)
        local.set_aspect('equal', adjustable='datalim')
        local.set_xlabel('X (km)')
        local.set_ylabel('Y (km)')
        local.set_title(f"Approach and capture ({body.name} frame)")
        local.legend(loc='upper right')
        local.grid(True, alpha=0.3)

    fig.tight_layout()
    if output_path:
        fig.savefig(output_path, dpi=150, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        plt.close(fig)
        logger.info("Saved plot: %s", output_path)
    return fig
