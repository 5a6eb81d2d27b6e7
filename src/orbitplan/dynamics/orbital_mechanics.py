"""
===============================================================================
ORBITPLAN - Orbital Mechanics Engine
===============================================================================
Closed-form two-body propagation of fixed Keplerian elements.

This module is the computational heart of the trajectory subsystem.  It
provides:

    1. **State representation** -- The OrbitalState dataclass bundles
       position, velocity, time, and reference frame into a single
       immutable snapshot that can be passed between modules.

    2. **Orbital elements** -- OrbitParameters holds the classical
       elements (a, e, i, RAAN, omega, M0) and the mean motion, and
       validates them against a gravitational parameter.

    3. **Keplerian trajectories** -- KeplerOrbit binds elements to a
       reference body, an epoch and a validity window, and answers
       ``evaluate(t)`` for any time.  Elliptic and hyperbolic orbits are
       both supported; parabolic (e = 1) orbits are rejected.

    4. **Orbit geometry** -- vis-viva, orbital period, circular velocity,
       eccentricity vector.

All vectors are in SI units (m, m/s, s) and expressed in the inertial
frame of the trajectory's reference body.  Evaluation is a pure function
of (elements, epoch, t): scrubbing time backward and forward always
reproduces the same states.

References
----------
    [1] Vallado, "Fundamentals of Astrodynamics and Applications", 4th ed.
    [2] Bate, Mueller & White, "Fundamentals of Astrodynamics", Dover.
    [3] Curtis, "Orbital Mechanics for Engineering Students", 4th ed.

===============================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional, Protocol

import numpy as np

from orbitplan.core.constants import (
    DEG2RAD,
    KEPLER_MAX_ITERATIONS,
    KEPLER_TOLERANCE,
    TWO_PI,
)
from orbitplan.core.errors import DomainError
from orbitplan.dynamics.kepler import (
    eccentric_to_true_anomaly,
    hyperbolic_to_true_anomaly,
    solve_kepler,
    solve_kepler_hyperbolic,
)

if TYPE_CHECKING:
    from orbitplan.dynamics.bodies import CelestialBody

logger = logging.getLogger(__name__)

# Relative tolerance when checking a supplied mean motion against sqrt(mu/|a|^3)
MEAN_MOTION_RTOL = 1e-6


# =============================================================================
# ORBITAL STATE DATACLASS
# =============================================================================

@dataclass(frozen=True, eq=False)
class OrbitalState:
    """
    Snapshot of a spacecraft's translational state at a single instant.

    Attributes
    ----------
    position : np.ndarray
        3-element position vector (m) relative to the reference body.
    velocity : np.ndarray
        3-element velocity vector (m/s) relative to the reference body.
    time : float
        Absolute simulation time (s) at which this state is valid.
    frame : str
        Name of the reference body.  Used for bookkeeping; the numerical
        values are assumed to be consistent with this frame.
    """
    position: np.ndarray
    velocity: np.ndarray
    time: float
    frame: str = ''

    def __post_init__(self):
        position = np.array(self.position, dtype=np.float64).reshape(3)
        velocity = np.array(self.velocity, dtype=np.float64).reshape(3)
        position.flags.writeable = False
        velocity.flags.writeable = False
        object.__setattr__(self, 'position', position)
        object.__setattr__(self, 'velocity', velocity)
        object.__setattr__(self, 'time', float(self.time))

    @property
    def r_mag(self) -> float:
        """Magnitude of the position vector (m)."""
        return float(np.linalg.norm(self.position))

    @property
    def v_mag(self) -> float:
        """Magnitude of the velocity vector (m/s)."""
        return float(np.linalg.norm(self.velocity))

    @property
    def radial_velocity(self) -> float:
        """Rate of change of |r| (m/s); negative while approaching."""
        r = self.r_mag
        if r == 0.0:
            return 0.0
        return float(np.dot(self.position, self.velocity) / r)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrbitalState):
            return NotImplemented
        return (
            self.time == other.time
            and self.frame == other.frame
            and np.array_equal(self.position, other.position)
            and np.array_equal(self.velocity, other.velocity)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"OrbitalState(t={self.time:.3f}s, frame={self.frame!r}, "
            f"|r|={self.r_mag:.1f} m, |v|={self.v_mag:.3f} m/s)"
        )


# =============================================================================
# ORBIT GEOMETRY
# =============================================================================

def vis_viva(r: float, a: float, mu: float) -> float:
    """
    Orbital speed from the vis-viva equation.

        v^2 = mu * (2/r - 1/a)

    For hyperbolic orbits pass a negative semi-major axis.
    """
    return float(np.sqrt(mu * (2.0 / r - 1.0 / a)))


def circular_velocity(r: float, mu: float) -> float:
    """Speed of a circular orbit of radius r: sqrt(mu / r)."""
    return float(np.sqrt(mu / r))


def orbital_period(a: float, mu: float) -> float:
    """
    Period of an elliptical orbit, T = 2*pi*sqrt(a^3/mu).

    Raises
    ------
    DomainError
        If a <= 0 (no period for unbound orbits) or mu <= 0.
    """
    if a <= 0.0 or mu <= 0.0:
        raise DomainError(
            f"Orbital period requires a > 0 and mu > 0, got a={a}, mu={mu}"
        )
    return float(TWO_PI * np.sqrt(a**3 / mu))


def mean_motion(a: float, mu: float) -> float:
    """Mean motion n = sqrt(mu / |a|^3) (rad/s)."""
    if mu <= 0.0:
        raise DomainError(f"Gravitational parameter must be positive, got mu={mu}")
    if a == 0.0:
        raise DomainError("Semi-major axis must be non-zero")
    return float(np.sqrt(mu / abs(a) ** 3))


def eccentricity_vector(r_vec: np.ndarray, v_vec: np.ndarray, mu: float) -> np.ndarray:
    """
    Eccentricity vector, pointing from the focus toward periapsis.

        e_vec = ((v^2 - mu/r) * r_vec - (r . v) * v_vec) / mu
    """
    r_vec = np.asarray(r_vec, dtype=np.float64)
    v_vec = np.asarray(v_vec, dtype=np.float64)
    r_mag = np.linalg.norm(r_vec)
    v_sq = float(np.dot(v_vec, v_vec))
    return ((v_sq - mu / r_mag) * r_vec - np.dot(r_vec, v_vec) * v_vec) / mu


def perifocal_to_inertial(RAAN: float, i: float, omega: float) -> np.ndarray:
    """
    Rotation matrix from the perifocal (PQW) frame to the reference frame,
    the 3-1-3 Euler sequence R = Rz(-RAAN) * Rx(-i) * Rz(-omega).

    With RAAN = i = 0 it reduces to an in-plane rotation by omega; i = pi
    mirrors the orbit so that it is traversed clockwise.
    """
    cos_O, sin_O = np.cos(RAAN), np.sin(RAAN)
    cos_i, sin_i = np.cos(i), np.sin(i)
    cos_w, sin_w = np.cos(omega), np.sin(omega)

    return np.array([
        [cos_O * cos_w - sin_O * sin_w * cos_i,
         -cos_O * sin_w - sin_O * cos_w * cos_i,
         sin_O * sin_i],
        [sin_O * cos_w + cos_O * sin_w * cos_i,
         -sin_O * sin_w + cos_O * cos_w * cos_i,
         -cos_O * sin_i],
        [sin_w * sin_i,
         cos_w * sin_i,
         cos_i],
    ], dtype=np.float64)


# =============================================================================
# ORBIT PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class OrbitParameters:
    """
    Classical Keplerian elements.  Angles in radians.

    Attributes
    ----------
    semi_major_axis : float
        a (m).  Stored as a positive magnitude; whether the orbit is an
        ellipse or a hyperbola is carried by the eccentricity.
    eccentricity : float
        e >= 0; e < 1 ellipse, e > 1 hyperbola.  e == 1 is unsupported.
    argument_of_periapsis : float
        omega (rad).
    mean_anomaly_at_epoch : float
        M0 (rad), the mean anomaly at the owning trajectory's epoch.
    inclination : float
        i (rad).  Zero for the planar orbits produced by the planner.
    longitude_of_ascending_node : float
        RAAN (rad).
    mean_motion : float, optional
        n (rad/s).  When None it is derived from the reference body's mu
        at the time the elements are bound to a KeplerOrbit.
    """
    semi_major_axis: float
    eccentricity: float
    argument_of_periapsis: float = 0.0
    mean_anomaly_at_epoch: float = 0.0
    inclination: float = 0.0
    longitude_of_ascending_node: float = 0.0
    mean_motion: Optional[float] = None

    @classmethod
    def from_degrees(
        cls,
        semi_major_axis: float,
        eccentricity: float,
        argument_of_periapsis_deg: float = 0.0,
        mean_anomaly_at_epoch_deg: float = 0.0,
        inclination_deg: float = 0.0,
        longitude_of_ascending_node_deg: float = 0.0,
        mean_motion: Optional[float] = None,
    ) -> 'OrbitParameters':
        """Build elements from angles given in degrees."""
        return cls(
            semi_major_axis=semi_major_axis,
            eccentricity=eccentricity,
            argument_of_periapsis=argument_of_periapsis_deg * DEG2RAD,
            mean_anomaly_at_epoch=mean_anomaly_at_epoch_deg * DEG2RAD,
            inclination=inclination_deg * DEG2RAD,
            longitude_of_ascending_node=longitude_of_ascending_node_deg * DEG2RAD,
            mean_motion=mean_motion,
        )

    @classmethod
    def circular(
        cls,
        radius: float,
        mu: float,
        argument_of_periapsis: float = 0.0,
        mean_anomaly_at_epoch: float = 0.0,
        inclination: float = 0.0,
    ) -> 'OrbitParameters':
        """Circular orbit of the given radius about a body with this mu."""
        return cls(
            semi_major_axis=radius,
            eccentricity=0.0,
            argument_of_periapsis=argument_of_periapsis,
            mean_anomaly_at_epoch=mean_anomaly_at_epoch,
            inclination=inclination,
            mean_motion=mean_motion(radius, mu),
        )

    # -----------------------------------------------------------------
    # Derived geometry
    # -----------------------------------------------------------------

    @property
    def is_hyperbolic(self) -> bool:
        return self.eccentricity > 1.0

    @property
    def semi_latus_rectum(self) -> float:
        """p = |a| * |1 - e^2| (m)."""
        return abs(self.semi_major_axis) * abs(1.0 - self.eccentricity**2)

    @property
    def periapsis_radius(self) -> float:
        return abs(self.semi_major_axis) * abs(1.0 - self.eccentricity)

    @property
    def apoapsis_radius(self) -> float:
        """Apoapsis radius (m); infinite for hyperbolic orbits."""
        if self.is_hyperbolic:
            return float('inf')
        return abs(self.semi_major_axis) * (1.0 + self.eccentricity)

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def validate(self, mu: Optional[float] = None) -> None:
        """
        Check the elements (and, if *mu* is given, their mean motion).

        Raises
        ------
        DomainError
            e < 0, e == 1, a == 0, non-finite values, mu <= 0, or a
            mean motion that disagrees with sqrt(mu/|a|^3).
        """
        a = self.semi_major_axis
        e = self.eccentricity
        if not (np.isfinite(a) and np.isfinite(e)):
            raise DomainError(f"Non-finite elements: a={a}, e={e}")
        if e < 0.0:
            raise DomainError(f"Eccentricity must be non-negative, got e={e}")
        if e == 1.0:
            raise DomainError("Parabolic orbits (e == 1) are not supported")
        if a == 0.0:
            raise DomainError("Semi-major axis must be non-zero")

        if mu is None:
            return
        if mu <= 0.0:
            raise DomainError(f"Gravitational parameter must be positive, got mu={mu}")
        if self.mean_motion is not None:
            expected = mean_motion(a, mu)
            if not np.isclose(self.mean_motion, expected, rtol=MEAN_MOTION_RTOL, atol=0.0):
                raise DomainError(
                    f"Mean motion {self.mean_motion:.9g} rad/s is inconsistent "
                    f"with a={a:.6g} m and mu={mu:.6g} (expected {expected:.9g})"
                )

    def bound_to(self, mu: float) -> 'OrbitParameters':
        """Validated copy with the mean motion filled in from *mu*."""
        self.validate(mu)
        if self.mean_motion is not None:
            return self
        return replace(self, mean_motion=mean_motion(self.semi_major_axis, mu))


# =============================================================================
# TRAJECTORY PROTOCOL
# =============================================================================

class Trajectory(Protocol):
    """Anything that can be queried for a state at an absolute time."""

    @property
    def reference_body(self) -> 'CelestialBody': ...

    @property
    def start_time(self) -> float: ...

    @property
    def end_time(self) -> float: ...

    def evaluate(self, time: float) -> OrbitalState: ...

    def get_path_points(self, resolution: int) -> np.ndarray: ...


# =============================================================================
# KEPLER ORBIT
# =============================================================================

@dataclass(frozen=True, eq=False)
class KeplerOrbit:
    """
    Fixed Keplerian elements bound to a reference body, an epoch and a
    validity window.

    ``evaluate`` is unbounded: querying outside [start_time, end_time]
    extrapolates along the same conic.  The window only drives
    ``get_path_points``.

    Parameters
    ----------
    reference_body : CelestialBody
        Focal body; only its ``mu`` and ``name`` are read.
    parameters : OrbitParameters
        Elements.  A missing mean motion is derived from the body's mu.
    start_time, end_time : float
        Validity window (s).
    epoch : float, optional
        Time at which ``mean_anomaly_at_epoch`` applies.  Defaults to
        start_time.
    strict, max_iter, tol
        Passed to the Kepler solvers.

    Raises
    ------
    DomainError
        Invalid elements, mu <= 0, or end_time < start_time.
    """
    reference_body: 'CelestialBody'
    parameters: OrbitParameters
    start_time: float
    end_time: float
    epoch: Optional[float] = None
    strict: bool = True
    max_iter: int = KEPLER_MAX_ITERATIONS
    tol: float = KEPLER_TOLERANCE
    mu: float = field(init=False)
    _rotation: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        mu = float(self.reference_body.mu)
        params = self.parameters.bound_to(mu)
        if self.end_time < self.start_time:
            raise DomainError(
                f"Trajectory window ends before it starts: "
                f"[{self.start_time}, {self.end_time}]"
            )
        object.__setattr__(self, 'mu', mu)
        object.__setattr__(self, 'parameters', params)
        object.__setattr__(self, 'start_time', float(self.start_time))
        object.__setattr__(self, 'end_time', float(self.end_time))
        if self.epoch is None:
            object.__setattr__(self, 'epoch', self.start_time)
        object.__setattr__(
            self,
            '_rotation',
            perifocal_to_inertial(
                params.longitude_of_ascending_node,
                params.inclination,
                params.argument_of_periapsis,
            ),
        )

    # -----------------------------------------------------------------
    # Derived quantities
    # -----------------------------------------------------------------

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def period(self) -> float:
        """Orbital period (s); infinite for hyperbolic trajectories."""
        if self.parameters.is_hyperbolic:
            return float('inf')
        return orbital_period(self.parameters.semi_major_axis, self.mu)

    @property
    def is_prograde(self) -> bool:
        """True when the orbit is traversed counter-clockwise about +z."""
        return bool(self._rotation[2, 2] >= 0.0)

    def mean_anomaly_at(self, time: float) -> float:
        """M(t) = M0 + n * (t - epoch); not wrapped."""
        p = self.parameters
        return p.mean_anomaly_at_epoch + p.mean_motion * (time - self.epoch)

    def true_anomaly_at(self, time: float) -> float:
        """True anomaly (rad) at *time*."""
        e = self.parameters.eccentricity
        M = self.mean_anomaly_at(time)
        if e < 1.0:
            E = solve_kepler(M, e, self.max_iter, self.tol, self.strict)
            return eccentric_to_true_anomaly(E, e)
        H = solve_kepler_hyperbolic(M, e, self.max_iter, self.tol, self.strict)
        return hyperbolic_to_true_anomaly(H, e)

    # -----------------------------------------------------------------
    # Evaluation
    # -----------------------------------------------------------------

    def evaluate(self, time: float) -> OrbitalState:
        """
        Position and velocity at absolute *time*.

        Procedure:
            1. M = M0 + n * (t - epoch)
            2. Solve Kepler's equation (elliptic or hyperbolic) and
               convert to the true anomaly nu.
            3. Perifocal state:

                   p     = |a| * |1 - e^2|
                   r     = p / (1 + e*cos(nu))
                   r_pqw = r * [cos(nu), sin(nu), 0]
                   v_pqw = sqrt(mu/p) * [-sin(nu), e + cos(nu), 0]

            4. Rotate PQW -> reference frame (RAAN, i, omega).
        """
        p = self.parameters
        e = p.eccentricity
        nu = self.true_anomaly_at(time)

        semi_latus = p.semi_latus_rectum
        r = semi_latus / (1.0 + e * np.cos(nu))

        cos_nu = np.cos(nu)
        sin_nu = np.sin(nu)
        r_pqw = r * np.array([cos_nu, sin_nu, 0.0], dtype=np.float64)
        v_pqw = np.sqrt(self.mu / semi_latus) * np.array(
            [-sin_nu, e + cos_nu, 0.0], dtype=np.float64
        )

        return OrbitalState(
            position=self._rotation @ r_pqw,
            velocity=self._rotation @ v_pqw,
            time=time,
            frame=self.reference_body.name,
        )

    def get_path_points(self, resolution: int) -> np.ndarray:
        """
        Positions at *resolution* evenly spaced times across the window.

        Returns an array of shape (resolution, 3).  A resolution of 1
        yields the start point only.
        """
        if resolution < 1:
            raise ValueError(f"resolution must be >= 1, got {resolution}")
        if resolution == 1:
            times = np.array([self.start_time])
        else:
            times = np.linspace(self.start_time, self.end_time, resolution)
        return np.array([self.evaluate(t).position for t in times])

    def __repr__(self) -> str:
        p = self.parameters
        return (
            f"KeplerOrbit(body={self.reference_body.name!r}, a={p.semi_major_axis:.6g} m, "
            f"e={p.eccentricity:.6f}, window=[{self.start_time:.1f}, {self.end_time:.1f}] s)"
        )
