"""
===============================================================================
ORBITPLAN - Celestial Body Catalogue
===============================================================================
Read-only description of the bodies a mission moves between: mass, radius,
sphere-of-influence radius, parent link and the body's own orbit about its
parent.

The catalogue belongs to whoever drives the simulation.  The trajectory
engine only reads it: mu is always derived as G * mass so that every
trajectory bound to a body agrees on the gravitational parameter.
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from orbitplan.core.config import get_section
from orbitplan.core.constants import GRAVITATIONAL_CONSTANT
from orbitplan.core.errors import ConfigError, DomainError
from orbitplan.dynamics.orbital_mechanics import (
    KeplerOrbit,
    OrbitalState,
    OrbitParameters,
    orbital_period,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class CelestialBody:
    """
    A gravitating body.

    Attributes
    ----------
    name : str
        Unique identifier; also used as the frame label on states.
    mass : float
        kg.
    radius : float
        Mean surface radius (m).
    soi_radius : float
        Sphere-of-influence radius (m); infinite for a root body.
    parent : CelestialBody, optional
        Body this one orbits.
    orbit : OrbitParameters, optional
        Elements of this body's orbit about ``parent``.
    orbit_epoch : float
        Time (s) at which ``orbit.mean_anomaly_at_epoch`` applies.
    """
    name: str
    mass: float
    radius: float
    soi_radius: float = float('inf')
    parent: Optional['CelestialBody'] = None
    orbit: Optional[OrbitParameters] = None
    orbit_epoch: float = 0.0

    def __post_init__(self):
        if self.mass <= 0.0:
            raise DomainError(f"Body '{self.name}' must have positive mass, got {self.mass}")
        if self.radius < 0.0:
            raise DomainError(f"Body '{self.name}' has negative radius {self.radius}")
        if (self.parent is None) != (self.orbit is None):
            raise DomainError(
                f"Body '{self.name}' needs both a parent and orbit elements, or neither"
            )

    @property
    def mu(self) -> float:
        """Gravitational parameter G * mass (m^3/s^2)."""
        return GRAVITATIONAL_CONSTANT * self.mass

    @property
    def orbit_radius(self) -> float:
        """Semi-major axis of the orbit about the parent (m)."""
        if self.orbit is None:
            raise DomainError(f"Body '{self.name}' does not orbit anything")
        return self.orbit.semi_major_axis

    def orbit_around_parent(self) -> KeplerOrbit:
        """
        This body's orbit as a trajectory in the parent's frame.

        The window spans one revolution from the orbit epoch; evaluate()
        is valid at any time.
        """
        if self.parent is None or self.orbit is None:
            raise DomainError(f"Body '{self.name}' does not orbit anything")
        params = self.orbit.bound_to(self.parent.mu)
        window = 0.0
        if not params.is_hyperbolic:
            window = orbital_period(params.semi_major_axis, self.parent.mu)
        return KeplerOrbit(
            reference_body=self.parent,
            parameters=params,
            start_time=self.orbit_epoch,
            end_time=self.orbit_epoch + window,
            epoch=self.orbit_epoch,
        )

    def state_at(self, time: float) -> OrbitalState:
        """State of this body relative to its parent at *time*.

        A root body sits at the origin of its own frame.
        """
        if self.parent is None:
            return OrbitalState(np.zeros(3), np.zeros(3), time, frame=self.name)
        return self.orbit_around_parent().evaluate(time)

    def to_parent_frame(self, state: OrbitalState) -> OrbitalState:
        """Re-express a state relative to this body in the parent's frame."""
        if self.parent is None:
            raise DomainError(f"Body '{self.name}' has no parent frame")
        if state.frame and state.frame != self.name:
            raise DomainError(
                f"State is expressed relative to '{state.frame}', not '{self.name}'"
            )
        own = self.state_at(state.time)
        return OrbitalState(
            position=state.position + own.position,
            velocity=state.velocity + own.velocity,
            time=state.time,
            frame=self.parent.name,
        )

    def __repr__(self) -> str:
        parent = self.parent.name if self.parent is not None else None
        return f"CelestialBody({self.name!r}, mass={self.mass:.4g} kg, parent={parent!r})"


# =============================================================================
# CATALOGUE CONSTRUCTION
# =============================================================================

def _orbit_from_config(name: str, orbit_cfg: Dict[str, Any]) -> Tuple[OrbitParameters, float]:
    try:
        sma = float(orbit_cfg['semi_major_axis_m'])
    except KeyError:
        raise ConfigError(f"Body '{name}' orbit is missing semi_major_axis_m") from None
    params = OrbitParameters.from_degrees(
        semi_major_axis=sma,
        eccentricity=float(orbit_cfg.get('eccentricity', 0.0)),
        argument_of_periapsis_deg=float(orbit_cfg.get('argument_of_periapsis_deg', 0.0)),
        mean_anomaly_at_epoch_deg=float(orbit_cfg.get('mean_anomaly_at_epoch_deg', 0.0)),
        inclination_deg=float(orbit_cfg.get('inclination_deg', 0.0)),
        longitude_of_ascending_node_deg=float(
            orbit_cfg.get('longitude_of_ascending_node_deg', 0.0)
        ),
    )
    return params, float(orbit_cfg.get('epoch_s', 0.0))


def build_bodies(config: Optional[Dict[str, Any]] = None) -> Dict[str, CelestialBody]:
    """
    Build the body catalogue from the ``bodies`` section of a config.

    Parents are resolved by name and may be listed in any order.

    Raises
    ------
    ConfigError
        Missing fields, an unknown parent, or a parent cycle.
    """
    section = get_section(config, 'bodies')
    pending = dict(section)
    bodies: Dict[str, CelestialBody] = {}

    while pending:
        progressed = False
        for name in list(pending):
            body_cfg = pending[name]
            parent_name = body_cfg.get('parent')
            if parent_name is not None and parent_name not in bodies:
                if parent_name not in section:
                    raise ConfigError(f"Body '{name}' has unknown parent '{parent_name}'")
                continue

            try:
                mass = float(body_cfg['mass_kg'])
                radius = float(body_cfg['radius_m'])
            except KeyError as exc:
                raise ConfigError(f"Body '{name}' is missing {exc.args[0]}") from None

            orbit, epoch = None, 0.0
            if parent_name is not None:
                if 'orbit' not in body_cfg:
                    raise ConfigError(f"Body '{name}' has a parent but no orbit")
                orbit, epoch = _orbit_from_config(name, body_cfg['orbit'])

            bodies[name] = CelestialBody(
                name=name,
                mass=mass,
                radius=radius,
                soi_radius=float(body_cfg.get('soi_radius_m', float('inf'))),
                parent=bodies[parent_name] if parent_name is not None else None,
                orbit=orbit,
                orbit_epoch=epoch,
            )
            logger.debug("Registered body %s (parent=%s)", name, parent_name)
            del pending[name]
            progressed = True

        if not progressed:
            raise ConfigError(f"Cyclic parent links among bodies: {sorted(pending)}")

    return bodies


def earth_moon_system(config: Optional[Dict[str, Any]] = None) -> Tuple[CelestialBody, CelestialBody]:
    """Convenience accessor for the ('earth', 'moon') pair of a catalogue."""
    bodies = build_bodies(config)
    try:
        return bodies['earth'], bodies['moon']
    except KeyError as exc:
        raise ConfigError(f"Catalogue has no body named {exc.args[0]!r}") from None
