"""
===============================================================================
ORBITPLAN - Guidance Package
===============================================================================
Mission-level trajectory planning on top of the dynamics layer.

Modules:
    trajectory_calculator : Hohmann transfers and launch-window timing
    flight_plan           : Ordered trajectory segments queried by time
    mission_builder       : Patched-conic planet-to-moon plan synthesis
    exit_conditions       : Evaluation of segment exit conditions
    mission_planner       : Time-driven mission phase tracking
===============================================================================
"""
