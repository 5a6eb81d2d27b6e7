"""
===============================================================================
ORBITPLAN - Visualization Package
===============================================================================
Modules:
    trajectory_plots -- Matplotlib plots of flight plans
===============================================================================
"""
