"""
===============================================================================
ORBITPLAN - Physical and Astronomical Constants
===============================================================================
Central repository for the physical constants and planning defaults used
throughout the trajectory engine. SI units throughout (meters, seconds,
kilograms, radians).

Body values come from IAU 2012 / IERS standards where applicable. The
gravitational parameter of every body is derived as G * mass so that the
engine and the body catalogue can never disagree about mu.
===============================================================================
"""

import numpy as np


# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
TWO_PI = 2.0 * np.pi
DEG2RAD = PI / 180.0

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================
GRAVITATIONAL_CONSTANT = 6.67430e-11   # m^3 / (kg * s^2)

# =============================================================================
# TIME
# =============================================================================
SECONDS_PER_HOUR = 3600.0
SECONDS_PER_DAY = 86400.0
SECONDS_PER_WEEK = 7.0 * SECONDS_PER_DAY

# =============================================================================
# EARTH PARAMETERS
# =============================================================================
EARTH_RADIUS = 6371000.0               # Mean radius (m)
EARTH_MASS = 5.97237e24                # kg
EARTH_SOI_RADIUS = 9.24e8              # Sphere of Influence radius (m)

# =============================================================================
# MOON PARAMETERS
# =============================================================================
MOON_RADIUS = 1737400.0                # Mean radius (m)
MOON_MASS = 7.342e22                   # kg
MOON_SMA = 384400000.0                 # Semi-major axis of lunar orbit (m)
MOON_SOI_RADIUS = 6.61e7               # ~66,100 km

# =============================================================================
# MISSION PLANNING DEFAULTS
# =============================================================================
PARKING_ALTITUDE = 200000.0            # m above the primary's surface
CAPTURE_ALTITUDE = 500000.0            # m above the target's surface
PARKING_WAIT = SECONDS_PER_HOUR        # s spent in the parking orbit
CAPTURE_DURATION = SECONDS_PER_WEEK    # s the terminal capture orbit persists

# Patched-conic apogee search
APOGEE_SEARCH_MAX_ITERATIONS = 30
APOGEE_SEARCH_TOLERANCE = 100.0        # m on the resulting periapsis radius
APOGEE_SEARCH_SOI_FRACTION = 0.99      # lower bracket = d - fraction * r_soi

# =============================================================================
# SOLVER DEFAULTS
# =============================================================================
KEPLER_MAX_ITERATIONS = 100
KEPLER_TOLERANCE = 1e-6                # rad, step size at convergence
KEPLER_HIGH_ECCENTRICITY = 0.8         # above this E0 = pi
HYPERBOLIC_LARGE_ECCENTRICITY = 1.6    # above this H0 = M +/- e
