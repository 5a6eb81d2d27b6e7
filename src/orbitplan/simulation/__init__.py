"""
===============================================================================
ORBITPLAN - Simulation Package
===============================================================================
Modules:
    ephemeris -- Sample a flight plan into a pandas DataFrame and export CSV
===============================================================================
"""
