"""
===============================================================================
ORBITPLAN - Patched-Conic Trajectory Engine
===============================================================================
Keplerian two-body propagation and multi-phase flight-plan synthesis
(parking orbit -> transfer ellipse -> SOI approach -> capture orbit).

Subpackages:
    core          -- Constants, error taxonomy, YAML configuration
    dynamics      -- Kepler solvers, orbital elements, trajectories, bodies
    guidance      -- Hohmann transfers, flight plans, mission synthesis,
                     exit conditions, mission phase tracking
    simulation    -- Tabular ephemeris sampling of flight plans
    visualization -- Static trajectory plots
===============================================================================
"""

__version__ = "0.1.0"
