"""
===============================================================================
ORBITPLAN - Trajectory Calculator Test Suite
===============================================================================
Hohmann transfer construction and launch-window timing, checked against the
textbook vis-viva formulas and against the body ephemerides themselves.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from orbitplan.core.constants import PI, SECONDS_PER_DAY, TWO_PI
from orbitplan.core.errors import DomainError
from orbitplan.dynamics.bodies import build_bodies, earth_moon_system
from orbitplan.guidance.trajectory_calculator import (
    calculate_hohmann_transfer,
    find_next_launch_window,
    mean_longitude,
)

R_LEO = 6.578e6
R_MOON = 3.844e8


@pytest.fixture
def earth_moon():
    return earth_moon_system()


@pytest.fixture
def solar_system():
    """Sun with two coplanar circular planets; the outer one starts 2 rad ahead."""
    config = {'bodies': {
        'sun': {'mass_kg': 1.989e30, 'radius_m': 6.957e8},
        'inner': {'parent': 'sun', 'mass_kg': 5.97e24, 'radius_m': 6.371e6,
                  'orbit': {'semi_major_axis_m': 1.496e11}},
        'outer': {'parent': 'sun', 'mass_kg': 6.42e23, 'radius_m': 3.39e6,
                  'orbit': {'semi_major_axis_m': 2.279e11,
                            'mean_anomaly_at_epoch_deg': np.degrees(2.0)}},
    }}
    return build_bodies(config)


def angle_difference(a, b):
    """Signed smallest difference a - b in (-pi, pi]."""
    return (a - b + PI) % TWO_PI - PI


# =============================================================================
# Test: Hohmann transfer
# =============================================================================

class TestHohmannTransfer:

    def test_leo_to_lunar_distance(self, earth_moon):
        earth, _ = earth_moon
        transfer = calculate_hohmann_transfer(earth, R_LEO, R_MOON, 0.0)
        assert 4.1 * SECONDS_PER_DAY < transfer.duration < 5.0 * SECONDS_PER_DAY

        mu = earth.mu
        a_t = (R_LEO + R_MOON) / 2.0
        dv1 = np.sqrt(mu * (2.0 / R_LEO - 1.0 / a_t)) - np.sqrt(mu / R_LEO)
        dv2 = np.sqrt(mu / R_MOON) - np.sqrt(mu * (2.0 / R_MOON - 1.0 / a_t))
        assert_allclose(transfer.delta_v1, dv1, rtol=1e-6)
        assert_allclose(transfer.delta_v2, dv2, rtol=1e-6)
        assert_allclose(transfer.total_delta_v, dv1 + dv2, rtol=1e-6)
        assert 3000.0 < transfer.delta_v1 < 3300.0

    def test_orbit_spans_perigee_to_apogee(self, earth_moon):
        earth, _ = earth_moon
        transfer = calculate_hohmann_transfer(earth, R_LEO, R_MOON, 1000.0)
        orbit = transfer.orbit
        assert orbit.start_time == 1000.0
        assert_allclose(orbit.end_time, 1000.0 + transfer.duration)

        start = orbit.evaluate(orbit.start_time)
        end = orbit.evaluate(orbit.end_time)
        assert_allclose(start.position, [R_LEO, 0.0, 0.0], atol=1.0)
        assert_allclose(end.position, [-R_MOON, 0.0, 0.0], atol=1.0)
        v_circ = np.sqrt(earth.mu / R_LEO)
        assert_allclose(start.velocity, [0.0, v_circ + transfer.delta_v1, 0.0], atol=1e-6)

    def test_departure_direction(self, earth_moon):
        earth, _ = earth_moon
        omega = 2.2
        transfer = calculate_hohmann_transfer(earth, R_LEO, R_MOON, 0.0, omega=omega)
        start = transfer.orbit.evaluate(0.0).position
        end = transfer.orbit.evaluate(transfer.duration).position
        assert_allclose(start, R_LEO * np.array([np.cos(omega), np.sin(omega), 0.0]), atol=1.0)
        assert_allclose(np.arctan2(end[1], end[0]), angle_difference(omega + PI, 0.0), atol=1e-9)

    def test_descending_transfer(self, earth_moon):
        earth, _ = earth_moon
        r1, r2, omega = 4.0e7, 7.0e6, 0.5
        transfer = calculate_hohmann_transfer(earth, r1, r2, 0.0, omega=omega)
        assert transfer.delta_v1 < 0.0
        assert transfer.delta_v2 < 0.0

        start = transfer.orbit.evaluate(0.0)
        end = transfer.orbit.evaluate(transfer.duration)
        assert_allclose(start.position, r1 * np.array([np.cos(omega), np.sin(omega), 0.0]),
                        atol=1.0)
        assert_allclose(end.r_mag, r2, rtol=1e-9)
        assert np.cross(start.position, start.velocity)[2] > 0.0

    def test_same_radius_is_trivial(self, earth_moon):
        earth, _ = earth_moon
        transfer = calculate_hohmann_transfer(earth, R_LEO, R_LEO, 0.0)
        assert transfer.orbit.parameters.eccentricity == 0.0
        assert transfer.total_delta_v == pytest.approx(0.0, abs=1e-9)

    @pytest.mark.parametrize("r1, r2", [(0.0, R_MOON), (R_LEO, -1.0)])
    def test_rejects_non_positive_radius(self, earth_moon, r1, r2):
        earth, _ = earth_moon
        with pytest.raises(DomainError):
            calculate_hohmann_transfer(earth, r1, r2, 0.0)


# =============================================================================
# Test: Launch window
# =============================================================================

class TestLaunchWindow:

    def test_mean_longitude(self, earth_moon):
        earth, moon = earth_moon
        period = moon.orbit_around_parent().period
        assert mean_longitude(moon, 0.0) == pytest.approx(0.0)
        assert_allclose(mean_longitude(moon, period / 4.0), PI / 2.0, rtol=1e-12)
        with pytest.raises(DomainError):
            mean_longitude(earth, 0.0)

    @pytest.mark.parametrize("departure_angle", [0.0, 1.0, 4.0])
    def test_moon_arrives_at_apogee(self, earth_moon, departure_angle):
        earth, moon = earth_moon
        transfer_duration = calculate_hohmann_transfer(earth, R_LEO, R_MOON, 0.0).duration
        t_launch = find_next_launch_window(
            earth, moon, transfer_duration, 5000.0, departure_angle=departure_angle,
        )
        period = moon.orbit_around_parent().period
        assert 5000.0 <= t_launch < 5000.0 + period

        arrival = mean_longitude(moon, t_launch + transfer_duration)
        assert_allclose(angle_difference(arrival, departure_angle + PI), 0.0, atol=1e-9)

    def test_window_repeats_each_period(self, earth_moon):
        earth, moon = earth_moon
        period = moon.orbit_around_parent().period
        t1 = find_next_launch_window(earth, moon, 4.0e5, 0.0)
        t2 = find_next_launch_window(earth, moon, 4.0e5, t1 + 1.0)
        assert_allclose(t2 - t1, period, rtol=1e-9)

    def test_sibling_bodies_use_synodic_rate(self, solar_system):
        sun, inner, outer = solar_system['sun'], solar_system['inner'], solar_system['outer']
        transfer = calculate_hohmann_transfer(sun, inner.orbit_radius, outer.orbit_radius, 0.0)
        t_launch = find_next_launch_window(inner, outer, transfer.duration, 0.0)

        n_inner = inner.orbit.bound_to(sun.mu).mean_motion
        n_outer = outer.orbit.bound_to(sun.mu).mean_motion
        synodic_period = TWO_PI / abs(n_outer - n_inner)
        assert 0.0 <= t_launch < synodic_period

        separation = (mean_longitude(outer, t_launch + transfer.duration)
                      - mean_longitude(inner, t_launch))
        assert_allclose(angle_difference(separation, PI), 0.0, atol=1e-9)

    def test_unrelated_bodies(self, earth_moon, solar_system):
        _, moon = earth_moon
        with pytest.raises(DomainError):
            find_next_launch_window(solar_system['inner'], moon, 1.0e5, 0.0)
        with pytest.raises(DomainError):
            find_next_launch_window(moon, solar_system['sun'], 1.0e5, 0.0)
