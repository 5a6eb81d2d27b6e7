"""
===============================================================================
ORBITPLAN - Orbital Math Kernel
===============================================================================
Free functions shared by the propagator and the mission builder:

    1. **Kepler's equation** -- Newton-Raphson solvers for the elliptic
       form  M = E - e*sin(E)  and the hyperbolic form  M = e*sinh(H) - H.

    2. **Anomaly conversions** -- eccentric/hyperbolic anomaly to true
       anomaly and back.

    3. **Time of flight** -- closed-form time from periapsis to a given
       radius on both ellipses and hyperbolas.

    4. **Patched-conic geometry** -- the "apogee rendezvous" model that
       maps a transfer apogee radius to the periapsis of the resulting
       hyperbola about the target body, and the bisection search that
       inverts it.

Every iterative routine has a fixed iteration cap so that the worst-case
cost is bounded.  With ``strict=True`` (the default) a solver that exhausts
its cap raises ConvergenceError; with ``strict=False`` it logs a warning and
returns the last iterate.

All angles are in radians, all distances in meters, all times in seconds.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
    [2] Curtis, "Orbital Mechanics for Engineering Students", 4th ed.
    [3] Gooding & Odell, "The hyperbolic Kepler equation (and the elliptic
        equation revisited)", Celestial Mechanics 44, 1988.
===============================================================================
"""

import logging
from typing import Tuple

import numpy as np

from orbitplan.core.constants import (
    APOGEE_SEARCH_MAX_ITERATIONS,
    APOGEE_SEARCH_SOI_FRACTION,
    APOGEE_SEARCH_TOLERANCE,
    HYPERBOLIC_LARGE_ECCENTRICITY,
    KEPLER_HIGH_ECCENTRICITY,
    KEPLER_MAX_ITERATIONS,
    KEPLER_TOLERANCE,
    PI,
    TWO_PI,
)
from orbitplan.core.errors import ConvergenceError, DomainError, GeometryUnreachable

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def normalize_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    wrapped = float(np.fmod(angle, TWO_PI))
    if wrapped < 0.0:
        wrapped += TWO_PI
    # fmod of a tiny negative number can round back up to exactly 2*pi
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def cross_2d(a: np.ndarray, b: np.ndarray) -> float:
    """z-component of the cross product of two in-plane vectors."""
    return float(a[0] * b[1] - a[1] * b[0])


def _not_converged(
    name: str, iterations: int, last: float, strict: bool
) -> float:
    message = (
        f"{name} did not converge in {iterations} iterations "
        f"(last iterate {last:.12g})"
    )
    if strict:
        raise ConvergenceError(message, iterations=iterations, last_iterate=last)
    logger.warning("%s; returning last iterate", message)
    return last


# =============================================================================
# ELLIPTIC KEPLER EQUATION
# =============================================================================

def solve_kepler(
    mean_anomaly: float,
    eccentricity: float,
    max_iter: int = KEPLER_MAX_ITERATIONS,
    tol: float = KEPLER_TOLERANCE,
    strict: bool = True,
) -> float:
    """
    Solve Kepler's equation for the eccentric anomaly.

        M = E - e * sin(E)

    Newton-Raphson iteration:

        E_{n+1} = E_n - (E_n - e*sin(E_n) - M) / (1 - e*cos(E_n))

    M is first wrapped into [0, 2*pi).  The initial guess is E0 = M, except
    for e > 0.8 where E0 = pi avoids the overshoot Newton shows near
    periapsis on highly eccentric orbits.

    Parameters
    ----------
    mean_anomaly : float
        Mean anomaly M (rad), any real value.
    eccentricity : float
        Eccentricity, 0 <= e < 1.
    max_iter : int
        Iteration cap.
    tol : float
        Convergence threshold on |E_{n+1} - E_n| (rad).
    strict : bool
        Raise ConvergenceError when the cap is reached.

    Returns
    -------
    float
        Eccentric anomaly E (rad).

    Raises
    ------
    DomainError
        If e is outside [0, 1).
    ConvergenceError
        If ``strict`` and the iteration cap is exhausted.
    """
    e = float(eccentricity)
    if not 0.0 <= e < 1.0:
        raise DomainError(f"Elliptic Kepler solver requires 0 <= e < 1, got e={e}")

    M = normalize_angle(mean_anomaly)
    E = M if e <= KEPLER_HIGH_ECCENTRICITY else PI

    for iteration in range(max_iter):
        E_next = E - (E - e * np.sin(E) - M) / (1.0 - e * np.cos(E))
        if abs(E_next - E) < tol:
            logger.debug(
                "solve_kepler converged in %d iterations (M=%.6f, e=%.6f)",
                iteration + 1, M, e,
            )
            return float(E_next)
        E = E_next

    return _not_converged("solve_kepler", max_iter, float(E), strict)


def eccentric_to_true_anomaly(E: float, e: float) -> float:
    """
    Convert eccentric anomaly to true anomaly on an ellipse.

        nu = 2 * atan( sqrt((1+e)/(1-e)) * tan(E/2) )

    The result lies in (-pi, pi].
    """
    if not 0.0 <= e < 1.0:
        raise DomainError(f"Eccentric anomaly is defined only for 0 <= e < 1, got e={e}")
    return float(2.0 * np.arctan(np.sqrt((1.0 + e) / (1.0 - e)) * np.tan(E / 2.0)))


def true_to_eccentric_anomaly(nu: float, e: float) -> float:
    """Inverse of eccentric_to_true_anomaly; result in (-pi, pi]."""
    if not 0.0 <= e < 1.0:
        raise DomainError(f"Eccentric anomaly is defined only for 0 <= e < 1, got e={e}")
    return float(2.0 * np.arctan(np.sqrt((1.0 - e) / (1.0 + e)) * np.tan(nu / 2.0)))


# =============================================================================
# HYPERBOLIC KEPLER EQUATION
# =============================================================================

def solve_kepler_hyperbolic(
    mean_anomaly: float,
    eccentricity: float,
    max_iter: int = KEPLER_MAX_ITERATIONS,
    tol: float = KEPLER_TOLERANCE,
    strict: bool = True,
) -> float:
    """
    Solve the hyperbolic Kepler equation for the hyperbolic anomaly.

        M = e * sinh(H) - H

    Newton-Raphson with derivative  dM/dH = e*cosh(H) - 1.  M is not
    wrapped: on a hyperbola it grows without bound and its sign tells the
    inbound (M < 0) leg from the outbound (M > 0) leg.

    Starting guesses:
        e > 1.6, |M| <= e   H0 = M - e  (M < 0)  or  M + e  (M >= 0)
        |M| < 0.1           H0 = M / (e - 1)
        otherwise           H0 = +/- ln(2|M|/e + 1.8)

    Raises
    ------
    DomainError
        If e <= 1.
    ConvergenceError
        If ``strict`` and the iteration cap is exhausted.
    """
    e = float(eccentricity)
    M = float(mean_anomaly)
    if e <= 1.0:
        raise DomainError(f"Hyperbolic Kepler solver requires e > 1, got e={e}")

    # Far from periapsis the root grows like ln|M|
    if e > HYPERBOLIC_LARGE_ECCENTRICITY and abs(M) <= e:
        H = M - e if M < 0.0 else M + e
    elif abs(M) < 0.1:
        H = M / (e - 1.0)
    elif M > 0.0:
        H = np.log(2.0 * M / e + 1.8)
    else:
        H = -np.log(2.0 * abs(M) / e + 1.8)

    for iteration in range(max_iter):
        f = e * np.sinh(H) - H - M
        df = e * np.cosh(H) - 1.0
        H_next = H - f / df
        if abs(H_next - H) < tol:
            logger.debug(
                "solve_kepler_hyperbolic converged in %d iterations (M=%.6f, e=%.6f)",
                iteration + 1, M, e,
            )
            return float(H_next)
        H = H_next

    return _not_converged("solve_kepler_hyperbolic", max_iter, float(H), strict)


def hyperbolic_to_true_anomaly(H: float, e: float) -> float:
    """
    Convert hyperbolic anomaly to true anomaly.

        nu = 2 * atan( sqrt((e+1)/(e-1)) * tanh(H/2) )
    """
    if e <= 1.0:
        raise DomainError(f"Hyperbolic anomaly is defined only for e > 1, got e={e}")
    return float(2.0 * np.arctan(np.sqrt((e + 1.0) / (e - 1.0)) * np.tanh(H / 2.0)))


# =============================================================================
# TIME OF FLIGHT
# =============================================================================

def calculate_hyperbolic_time_to_periapsis(
    a: float, e: float, mu: float, r_boundary: float
) -> float:
    """
    Time between periapsis and radius *r_boundary* on a hyperbola.

    Inverts the orbit equation for the hyperbolic anomaly,

        r = |a| * (e*cosh(H) - 1)   =>   cosh(H) = (r/|a| + 1) / e

    (clamped to cosh(H) >= 1), then applies the hyperbolic Kepler equation
    and the mean motion n = sqrt(mu/|a|^3).  The result is never negative
    and, by symmetry of the hyperbola, equals the time from SOI entry to
    periapsis as well as from periapsis back out to the boundary.

    Parameters
    ----------
    a : float
        Semi-major axis (m); sign ignored.
    e : float
        Eccentricity, e > 1.
    mu : float
        Gravitational parameter of the focal body (m^3/s^2).
    r_boundary : float
        Radius of the boundary crossing, usually the SOI radius (m).
    """
    if e <= 1.0:
        raise DomainError(f"Hyperbolic time of flight requires e > 1, got e={e}")
    if mu <= 0.0:
        raise DomainError(f"Gravitational parameter must be positive, got mu={mu}")
    a_abs = abs(a)
    if a_abs == 0.0:
        raise DomainError("Semi-major axis must be non-zero")

    cosh_H = max((r_boundary / a_abs + 1.0) / e, 1.0)
    H = np.arccosh(cosh_H)
    M = e * np.sinh(H) - H
    n = np.sqrt(mu / a_abs**3)
    return float(M / n)


def calculate_time_from_periapsis_to_radius(
    a: float, e: float, mu: float, r_target: float
) -> float:
    """
    Time from periapsis to radius *r_target* on an ellipse, outbound leg.

        cos(E) = (1 - r/a) / e        (clamped to [-1, 1])
        M      = E - e*sin(E)
        t      = M / n,   n = sqrt(mu / a^3)

    A radius outside [r_p, r_a] is clamped to the nearer apsis.
    """
    if not 0.0 < e < 1.0:
        raise DomainError(f"Elliptic time from radius requires 0 < e < 1, got e={e}")
    if a <= 0.0 or mu <= 0.0:
        raise DomainError(f"Need a > 0 and mu > 0, got a={a}, mu={mu}")

    cos_E = np.clip((1.0 - r_target / a) / e, -1.0, 1.0)
    E = np.arccos(cos_E)
    M = E - e * np.sin(E)
    n = np.sqrt(mu / a**3)
    return float(M / n)


# =============================================================================
# PATCHED-CONIC GEOMETRY
# =============================================================================

def transfer_phase_angle(
    r_apogee: float, r_target_dist: float, r_target_soi: float
) -> float:
    """
    Angle at the primary between the target and a ship at the transfer
    apogee, when the ship sits exactly on the target's SOI boundary.

    Law of cosines on the triangle (primary, target, ship) with sides
    r_target_dist, r_apogee and r_target_soi:

        cos(phi) = (d^2 + r_a^2 - r_soi^2) / (2 * d * r_a)

    Raises
    ------
    GeometryUnreachable
        If the triangle does not close (|cos(phi)| > 1): the apogee either
        falls short of the SOI or overshoots it.
    """
    numerator = r_target_dist**2 + r_apogee**2 - r_target_soi**2
    denominator = 2.0 * r_target_dist * r_apogee
    if denominator == 0.0:
        raise GeometryUnreachable("Degenerate triangle: zero-length side")
    cos_phi = numerator / denominator
    if cos_phi < -1.0 or cos_phi > 1.0:
        raise GeometryUnreachable(
            f"Apogee {r_apogee:.6g} m does not reach the SOI "
            f"(d={r_target_dist:.6g} m, r_soi={r_target_soi:.6g} m)"
        )
    return float(np.arccos(cos_phi))


def apogee_rendezvous_state(
    r_apogee: float,
    r_park_primary: float,
    r_target_dist: float,
    r_target_soi: float,
    mu_primary: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Target-centred position and velocity of the ship at SOI entry under the
    apogee rendezvous model.

    Frame: primary at the origin, target on the +x axis at r_target_dist
    moving in +y on a circular orbit, ship at apogee leading the target by
    phi.  Returned vectors are 2-element arrays (m, m/s).
    """
    phi = transfer_phase_angle(r_apogee, r_target_dist, r_target_soi)

    v_target = np.array([0.0, np.sqrt(mu_primary / r_target_dist)])

    a_transfer = (r_park_primary + r_apogee) / 2.0
    v_ship_mag = np.sqrt(mu_primary * (2.0 / r_apogee - 1.0 / a_transfer))
    # Apogee velocity is perpendicular to the radius vector
    v_ship = np.array([-v_ship_mag * np.sin(phi), v_ship_mag * np.cos(phi)])

    pos_rel = np.array([
        r_apogee * np.cos(phi) - r_target_dist,
        r_apogee * np.sin(phi),
    ])
    return pos_rel, v_ship - v_target


def calculate_target_periapsis_from_transfer_apogee(
    r_apogee_transfer: float,
    r_park_primary: float,
    r_target_dist: float,
    r_target_soi: float,
    mu_primary: float,
    mu_target: float,
) -> float:
    """
    Periapsis radius about the target produced by a transfer whose apogee
    is *r_apogee_transfer*, assuming the ship meets the target's SOI at
    apogee.

    With the relative state from apogee_rendezvous_state:

        h      = r_rel x v_rel                       (2D cross product)
        energy = |v_rel|^2 / 2 - mu_t / r_soi
        e_hyp  = sqrt(1 + 2 * energy * h^2 / mu_t^2)
        r_p    = (h^2 / mu_t) / (1 + e_hyp)

    Raises
    ------
    GeometryUnreachable
        If the triangle does not close for this apogee.
    """
    pos_rel, v_rel = apogee_rendezvous_state(
        r_apogee_transfer, r_park_primary, r_target_dist, r_target_soi, mu_primary,
    )
    h = cross_2d(pos_rel, v_rel)
    h_sq = h * h
    specific_energy = float(np.dot(v_rel, v_rel)) / 2.0 - mu_target / r_target_soi

    e_hyp = np.sqrt(max(1.0 + 2.0 * specific_energy * h_sq / mu_target**2, 0.0))
    return float((h_sq / mu_target) / (1.0 + e_hyp))


def find_optimal_apogee_radius_for_moon_transfer(
    target_periapsis_radius: float,
    r_park_primary: float,
    r_target_dist: float,
    r_target_soi: float,
    mu_primary: float,
    mu_target: float,
    max_iter: int = APOGEE_SEARCH_MAX_ITERATIONS,
    tolerance: float = APOGEE_SEARCH_TOLERANCE,
    soi_fraction: float = APOGEE_SEARCH_SOI_FRACTION,
) -> float:
    """
    Bisection for the transfer apogee that yields a requested periapsis
    about the target.

    The bracket is the inside-the-orbit branch

        [r_target_dist - soi_fraction * r_target_soi,  r_target_dist]

    which keeps the capture prograde.  On this branch the periapsis falls
    monotonically as the apogee rises toward the target's orbit:

        r_p < target   ->  max_ra = mid   (too close, back off)
        r_p >= target  ->  min_ra = mid   (too far, move closer)

    An apogee whose triangle does not close has not reached the SOI yet
    and raises the floor.  The search stops when |r_p - target| <
    *tolerance* and otherwise returns the midpoint of the final bracket,
    so the result is always finite.
    """
    min_ra = r_target_dist - r_target_soi * soi_fraction
    max_ra = r_target_dist

    for iteration in range(max_iter):
        mid_ra = (min_ra + max_ra) / 2.0
        try:
            calculated_rp = calculate_target_periapsis_from_transfer_apogee(
                mid_ra, r_park_primary, r_target_dist, r_target_soi,
                mu_primary, mu_target,
            )
        except GeometryUnreachable:
            min_ra = mid_ra
            continue

        if calculated_rp < target_periapsis_radius:
            max_ra = mid_ra
        else:
            min_ra = mid_ra

        if abs(calculated_rp - target_periapsis_radius) < tolerance:
            logger.debug(
                "Apogee search converged after %d bisections: r_a=%.1f m, r_p=%.1f m",
                iteration + 1, mid_ra, calculated_rp,
            )
            return float(mid_ra)

    result = (min_ra + max_ra) / 2.0
    logger.debug(
        "Apogee search exhausted %d bisections; returning r_a=%.1f m",
        max_iter, result,
    )
    return float(result)


def hyperbolic_periapsis_angle(
    v_inf_angle: float, e_hyp: float, prograde: bool
) -> float:
    """
    Direction of periapsis of an approach hyperbola from the direction of
    its incoming velocity.

    The incoming asymptote makes the angle beta = acos(1/e) with the
    periapsis direction, so

        omega = v_inf_angle - beta     (prograde, counter-clockwise)
        omega = v_inf_angle + beta     (retrograde, clockwise)

    Returns the in-plane periapsis angle wrapped into [0, 2*pi).
    """
    if e_hyp <= 1.0:
        raise DomainError(f"Asymptote angle requires e > 1, got e={e_hyp}")
    beta = np.arccos(1.0 / e_hyp)
    omega = v_inf_angle - beta if prograde else v_inf_angle + beta
    return normalize_angle(omega)
