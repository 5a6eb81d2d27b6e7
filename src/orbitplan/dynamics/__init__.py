"""
===============================================================================
ORBITPLAN - Dynamics Module
===============================================================================
Two-body orbital dynamics.

Submodules:
    kepler            -- Kepler equation solvers, anomaly conversions, time of
                         flight and patched-conic apogee geometry
    orbital_mechanics -- OrbitalState, OrbitParameters, KeplerOrbit
    bodies            -- CelestialBody catalogue built from configuration
===============================================================================
"""
