"""
===============================================================================
ORBITPLAN - Configuration Loading
===============================================================================
Mission configuration is a plain nested dictionary, normally read from a
YAML file and merged over DEFAULT_CONFIG so that a scenario file only needs
to list what it changes.

Expected layout::

    bodies:
        earth:
            mass_kg: 5.97237e+24
            radius_m: 6371000.0
            soi_radius_m: 9.24e+8
        moon:
            parent: earth
            mass_kg: 7.342e+22
            radius_m: 1737400.0
            soi_radius_m: 6.61e+7
            orbit:
                semi_major_axis_m: 3.844e+8
                eccentricity: 0.0
                argument_of_periapsis_deg: 0.0
                mean_anomaly_at_epoch_deg: 0.0
    mission:
        parking_altitude_m: 200000.0
        capture_altitude_m: 500000.0
        parking_wait_s: 3600.0
        capture_duration_s: 604800.0
        phase_offset: leading          # leading | trailing | auto
        hyperbola_orientation: state_vector   # state_vector | asymptote
        apogee_search:
            max_iterations: 30
            tolerance_m: 100.0
            soi_fraction: 0.99
    solver:
        max_iterations: 100
        tolerance: 1.0e-6
        strict: true
===============================================================================
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from orbitplan.core.constants import (
    APOGEE_SEARCH_MAX_ITERATIONS,
    APOGEE_SEARCH_SOI_FRACTION,
    APOGEE_SEARCH_TOLERANCE,
    CAPTURE_ALTITUDE,
    CAPTURE_DURATION,
    EARTH_MASS,
    EARTH_RADIUS,
    EARTH_SOI_RADIUS,
    KEPLER_MAX_ITERATIONS,
    KEPLER_TOLERANCE,
    MOON_MASS,
    MOON_RADIUS,
    MOON_SMA,
    MOON_SOI_RADIUS,
    PARKING_ALTITUDE,
    PARKING_WAIT,
)
from orbitplan.core.errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "bodies": {
        "earth": {
            "mass_kg": EARTH_MASS,
            "radius_m": EARTH_RADIUS,
            "soi_radius_m": EARTH_SOI_RADIUS,
        },
        "moon": {
            "parent": "earth",
            "mass_kg": MOON_MASS,
            "radius_m": MOON_RADIUS,
            "soi_radius_m": MOON_SOI_RADIUS,
            "orbit": {
                "semi_major_axis_m": MOON_SMA,
                "eccentricity": 0.0,
                "inclination_deg": 0.0,
                "longitude_of_ascending_node_deg": 0.0,
                "argument_of_periapsis_deg": 0.0,
                "mean_anomaly_at_epoch_deg": 0.0,
                "epoch_s": 0.0,
            },
        },
    },
    "mission": {
        "parking_altitude_m": PARKING_ALTITUDE,
        "capture_altitude_m": CAPTURE_ALTITUDE,
        "parking_wait_s": PARKING_WAIT,
        "capture_duration_s": CAPTURE_DURATION,
        "phase_offset": "leading",
        "hyperbola_orientation": "state_vector",
        "apogee_search": {
            "max_iterations": APOGEE_SEARCH_MAX_ITERATIONS,
            "tolerance_m": APOGEE_SEARCH_TOLERANCE,
            "soi_fraction": APOGEE_SEARCH_SOI_FRACTION,
        },
    },
    "solver": {
        "max_iterations": KEPLER_MAX_ITERATIONS,
        "tolerance": KEPLER_TOLERANCE,
        "strict": True,
    },
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge *override* into a deep copy of *base*.

    Nested dictionaries are merged key by key; any other value in
    *override* replaces the one in *base*.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load mission configuration from a YAML file.

    Args:
        config_path: Path to a YAML scenario file. When None the built-in
                     defaults are returned unchanged.

    Returns:
        Configuration dictionary with every default filled in.

    Raises:
        ConfigError: If the file does not contain a YAML mapping.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    logger.info("Loading configuration from: %s", config_path)
    with open(config_path, "r") as f:
        user_config = yaml.safe_load(f)

    if user_config is None:
        user_config = {}
    if not isinstance(user_config, dict):
        raise ConfigError(
            f"Configuration file {config_path} must contain a mapping, "
            f"got {type(user_config).__name__}"
        )
    return merge_config(DEFAULT_CONFIG, user_config)


def get_section(config: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    """Return config[name], falling back to the default section."""
    if config is None:
        return copy.deepcopy(DEFAULT_CONFIG[name])
    if name not in config:
        return copy.deepcopy(DEFAULT_CONFIG.get(name, {}))
    section = config[name]
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section
