"""
===============================================================================
ORBITPLAN - Trajectory Calculator
===============================================================================
Coplanar transfer construction for the mission builder.

    - Hohmann transfers returned as ready-to-evaluate KeplerOrbits together
      with their flight time and the two burn magnitudes.
    - Launch-window timing for apogee-rendezvous transfers to a body on a
      near-circular orbit.

Sign conventions and units:
    - All distances in meters, velocities in m/s, times in seconds
    - All angles in radians
    - Delta-V values are signed: positive is a prograde burn
===============================================================================
"""

import logging
from typing import NamedTuple

import numpy as np

from orbitplan.core.constants import PI
from orbitplan.core.errors import DomainError
from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.dynamics.kepler import normalize_angle
from orbitplan.dynamics.orbital_mechanics import (
    KeplerOrbit,
    OrbitParameters,
    circular_velocity,
    mean_motion,
    vis_viva,
)

logger = logging.getLogger(__name__)


class HohmannTransfer(NamedTuple):
    """Result of calculate_hohmann_transfer."""
    orbit: KeplerOrbit
    duration: float
    delta_v1: float
    delta_v2: float

    @property
    def total_delta_v(self) -> float:
        return abs(self.delta_v1) + abs(self.delta_v2)


# -------------------------------------------------------------------------
# Hohmann Transfer
# -------------------------------------------------------------------------

def calculate_hohmann_transfer(
    body: CelestialBody,
    r1: float,
    r2: float,
    start_time: float,
    omega: float = 0.0,
) -> HohmannTransfer:
    """
    Build the half-ellipse connecting two coplanar circular orbits.

    Equations:
        a_t      = (r1 + r2) / 2
        duration = pi * sqrt(a_t^3 / mu)          (half the transfer period)
        e_t      = |r2 - r1| / (r1 + r2)
        dv1      = sqrt(mu*(2/r1 - 1/a_t)) - sqrt(mu/r1)
        dv2      = sqrt(mu/r2) - sqrt(mu*(2/r2 - 1/a_t))

    The departure point always lies in the direction *omega*.  For an
    ascending transfer (r1 < r2) that point is the periapsis (M0 = 0); for
    a descending one the ellipse is turned through 180 degrees so the
    departure is at apoapsis (M0 = pi) and both burns come out negative.

    Args:
        body: Central body of both circular orbits.
        r1: Departure orbit radius (m).
        r2: Arrival orbit radius (m).
        start_time: Time of the first burn (s).
        omega: In-plane angle of the departure point (rad).

    Returns:
        HohmannTransfer(orbit, duration, delta_v1, delta_v2); the orbit
        spans [start_time, start_time + duration].
    """
    if r1 <= 0.0 or r2 <= 0.0:
        raise DomainError(f"Orbit radii must be positive, got r1={r1}, r2={r2}")

    mu = body.mu
    a_transfer = (r1 + r2) / 2.0
    duration = PI * np.sqrt(a_transfer**3 / mu)
    eccentricity = abs(r2 - r1) / (r1 + r2)

    v_circ_1 = circular_velocity(r1, mu)
    v_circ_2 = circular_velocity(r2, mu)
    v_transfer_1 = vis_viva(r1, a_transfer, mu)
    v_transfer_2 = vis_viva(r2, a_transfer, mu)
    dv1 = v_transfer_1 - v_circ_1
    dv2 = v_circ_2 - v_transfer_2

    if r1 <= r2:
        arg_periapsis, m0 = omega, 0.0
    else:
        arg_periapsis, m0 = omega + PI, PI

    params = OrbitParameters(
        semi_major_axis=a_transfer,
        eccentricity=eccentricity,
        argument_of_periapsis=normalize_angle(arg_periapsis),
        mean_anomaly_at_epoch=m0,
        mean_motion=mean_motion(a_transfer, mu),
    )
    orbit = KeplerOrbit(body, params, start_time, start_time + duration)

    logger.debug(
        "Hohmann transfer about %s: r1=%.0f m, r2=%.0f m, tof=%.1f s, "
        "dv1=%.1f m/s, dv2=%.1f m/s",
        body.name, r1, r2, duration, dv1, dv2,
    )
    return HohmannTransfer(orbit, float(duration), float(dv1), float(dv2))


# -------------------------------------------------------------------------
# Launch Window
# -------------------------------------------------------------------------

def mean_longitude(body: CelestialBody, time: float) -> float:
    """
    Mean longitude RAAN + omega + M(t) of a body about its parent, wrapped
    into [0, 2*pi).  Equal to the true in-plane angle for circular orbits.
    """
    if body.parent is None or body.orbit is None:
        raise DomainError(f"Body '{body.name}' does not orbit anything")
    params = body.orbit.bound_to(body.parent.mu)
    M = params.mean_anomaly_at_epoch + params.mean_motion * (time - body.orbit_epoch)
    return normalize_angle(
        params.longitude_of_ascending_node + params.argument_of_periapsis + M
    )


def find_next_launch_window(
    origin_body: CelestialBody,
    target_body: CelestialBody,
    transfer_duration: float,
    current_time: float,
    departure_angle: float = 0.0,
) -> float:
    """
    Earliest time >= *current_time* at which a half-ellipse transfer of
    *transfer_duration* arrives at its apoapsis together with the target.

    The target must orbit on a near-circular path.  Two arrangements are
    supported:

        origin is the target's parent
            The ship departs from a parking orbit about the origin at
            *departure_angle*.  The target must lead that point by
            pi - n_t * T at launch.

        origin and target share a parent
            The departure point moves with the origin, so the relative
            phase target - origin must equal pi - n_t * T; it drifts at
            the synodic rate n_t - n_o.

    Only outbound (apogee-rendezvous) transfers are handled.

    Returns:
        Absolute launch time (s).
    """
    if target_body.parent is None or target_body.orbit is None:
        raise DomainError(f"Target '{target_body.name}' does not orbit anything")

    n_target = target_body.orbit.bound_to(target_body.parent.mu).mean_motion
    target_phase = mean_longitude(target_body, current_time)

    if origin_body is target_body.parent:
        phase = target_phase - departure_angle
        rate = n_target
    elif origin_body.parent is not None and origin_body.parent is target_body.parent:
        n_origin = origin_body.orbit.bound_to(origin_body.parent.mu).mean_motion
        phase = target_phase - mean_longitude(origin_body, current_time)
        rate = n_target - n_origin
    else:
        raise DomainError(
            f"No launch window geometry between '{origin_body.name}' "
            f"and '{target_body.name}'"
        )

    if rate == 0.0:
        raise DomainError("Origin and target have identical mean motion; phase never changes")

    required = normalize_angle(PI - n_target * transfer_duration)
    if rate > 0.0:
        gap = normalize_angle(required - phase)
    else:
        gap = normalize_angle(phase - required)
    wait = gap / abs(rate)

    logger.debug(
        "Launch window: phase=%.4f rad, required=%.4f rad, wait=%.1f s",
        normalize_angle(phase), required, wait,
    )
    return float(current_time + wait)
