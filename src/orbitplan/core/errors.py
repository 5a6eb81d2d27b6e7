"""
===============================================================================
ORBITPLAN - Error Taxonomy
===============================================================================
Typed failures raised by the trajectory engine. Every failure is a
deterministic function of its inputs, so none of them is worth retrying:
the caller has to supply different elements or a different geometry.

Each class also derives from the builtin exception a caller would
naturally catch (ValueError for bad inputs, RuntimeError for solver
failures).
===============================================================================
"""

from typing import Optional


class OrbitPlanError(Exception):
    """Root of every error raised by orbitplan."""


class DomainError(OrbitPlanError, ValueError):
    """Orbital elements or body parameters outside the supported domain.

    Raised for e < 0, e == 1 (parabolic), a == 0, mu <= 0, or a mean motion
    inconsistent with (a, mu).
    """


class ConvergenceError(OrbitPlanError, RuntimeError):
    """An iterative solver hit its iteration cap without meeting tolerance."""

    def __init__(
        self,
        message: str,
        iterations: int,
        last_iterate: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.iterations = iterations
        self.last_iterate = last_iterate


class GeometryUnreachable(OrbitPlanError, ValueError):
    """Patched-conic geometry that cannot be realised.

    Either the (primary, target, ship) triangle does not close for the
    requested apogee, or the spacecraft state at the SOI boundary is not
    heading into the target's sphere of influence.
    """


class FlightPlanError(OrbitPlanError, ValueError):
    """Invalid flight plan structure (empty, gaps, overlaps, disorder)."""


class ConfigError(OrbitPlanError, ValueError):
    """Malformed or unsupported configuration value."""
