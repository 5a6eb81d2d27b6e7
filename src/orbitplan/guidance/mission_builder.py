"""
===============================================================================
ORBITPLAN - Mission Builder (Patched-Conic Synthesis)
===============================================================================
Turns a (planet, moon, request time) triple into a finalized FlightPlan.

Planet-to-moon profile, four segments:

    1. Parking    -- circular orbit about the planet until the launch burn
    2. Transfer   -- planet-centred ellipse from launch to SOI entry at its
                     apogee
    3. Approach   -- moon-centred hyperbola from SOI entry to periapsis
    4. Capture    -- moon-centred circular orbit at the periapsis radius

The transfer apogee is chosen by bisection so that the approach periapsis
matches the requested capture radius (apogee-rendezvous model).  The
apogee is placed ahead of (``leading``) or behind (``trailing``) the moon's
position at SOI entry by the law-of-cosines phase angle; the ``auto``
setting takes the first of the two whose SOI entry is inbound.

A coplanar Hohmann rendezvous plan (parking -> transfer -> circularize,
all about the primary) is also available for targets where an SOI capture
is not wanted.

Mission phase sequence: Ready -> Parking -> Transfer -> Approach -> Captured.
===============================================================================
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

import numpy as np

from orbitplan.core.config import get_section
from orbitplan.core.constants import PI
from orbitplan.core.errors import ConfigError, DomainError, GeometryUnreachable
from orbitplan.dynamics.bodies import CelestialBody
from orbitplan.dynamics.kepler import (
    calculate_hyperbolic_time_to_periapsis,
    calculate_target_periapsis_from_transfer_apogee,
    calculate_time_from_periapsis_to_radius,
    cross_2d,
    find_optimal_apogee_radius_for_moon_transfer,
    hyperbolic_periapsis_angle,
    normalize_angle,
    transfer_phase_angle,
)
from orbitplan.dynamics.orbital_mechanics import (
    KeplerOrbit,
    OrbitalState,
    OrbitParameters,
    eccentricity_vector,
    mean_motion,
)
from orbitplan.guidance.flight_plan import (
    ExitCondition,
    FlightPlan,
    TrajectorySegment,
    TrajectoryType,
)
from orbitplan.guidance.trajectory_calculator import (
    HohmannTransfer,
    calculate_hohmann_transfer,
    find_next_launch_window,
)

logger = logging.getLogger(__name__)

PHASE_OFFSETS = ('leading', 'trailing', 'auto')
HYPERBOLA_ORIENTATIONS = ('state_vector', 'asymptote')

# Orbits with |sin(i)| below this are treated as lying in the reference plane
COPLANAR_TOLERANCE = 1e-9


@dataclass(frozen=True)
class PatchedConicSolution:
    """Intermediate results of the planet-to-moon synthesis."""
    launch_time: float
    soi_entry_time: float
    periapsis_time: float
    apogee_radius: float
    target_periapsis_radius: float
    periapsis_radius: float
    converged: bool
    phase_offset: str
    phase_angle: float
    prograde: bool
    transfer: HohmannTransfer
    approach_parameters: OrbitParameters
    soi_entry_state: OrbitalState

    @property
    def transfer_duration(self) -> float:
        return self.soi_entry_time - self.launch_time


class MissionBuilder:
    """
    Builds finalized flight plans from a configuration dictionary.

    The ``mission`` section controls margins, durations and the patched-
    conic options; the ``solver`` section is applied to every KeplerOrbit
    the builder creates.

    Typical usage:
        earth, moon = earth_moon_system(config)
        plan = MissionBuilder(config).create_planet_to_moon_plan(earth, moon, 0.0)
        state, body = plan.evaluate(t)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        mission = get_section(config, 'mission')
        solver = get_section(config, 'solver')
        search = mission.get('apogee_search', {})

        self.parking_altitude = float(mission.get('parking_altitude_m', 200000.0))
        self.capture_altitude = float(mission.get('capture_altitude_m', 500000.0))
        self.parking_wait = float(mission.get('parking_wait_s', 3600.0))
        self.capture_duration = float(mission.get('capture_duration_s', 604800.0))
        self.phase_offset = str(mission.get('phase_offset', 'leading'))
        self.hyperbola_orientation = str(mission.get('hyperbola_orientation', 'state_vector'))

        self.search_max_iter = int(search.get('max_iterations', 30))
        self.search_tolerance = float(search.get('tolerance_m', 100.0))
        self.search_soi_fraction = float(search.get('soi_fraction', 0.99))

        self.solver_strict = bool(solver.get('strict', True))
        self.solver_max_iter = int(solver.get('max_iterations', 100))
        self.solver_tolerance = float(solver.get('tolerance', 1e-6))

        if self.phase_offset not in PHASE_OFFSETS:
            raise ConfigError(
                f"phase_offset must be one of {PHASE_OFFSETS}, got '{self.phase_offset}'"
            )
        if self.hyperbola_orientation not in HYPERBOLA_ORIENTATIONS:
            raise ConfigError(
                f"hyperbola_orientation must be one of {HYPERBOLA_ORIENTATIONS}, "
                f"got '{self.hyperbola_orientation}'"
            )
        if self.parking_wait < 0.0 or self.capture_duration < 0.0:
            raise ConfigError("parking_wait_s and capture_duration_s must be non-negative")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _orbit(
        self,
        body: CelestialBody,
        params: OrbitParameters,
        start: float,
        end: float,
        epoch: Optional[float] = None,
    ) -> KeplerOrbit:
        return KeplerOrbit(
            body, params, start, end, epoch=epoch,
            strict=self.solver_strict,
            max_iter=self.solver_max_iter,
            tol=self.solver_tolerance,
        )

    def _with_solver(self, orbit: KeplerOrbit, start: float, end: float) -> KeplerOrbit:
        return replace(
            orbit, start_time=start, end_time=end, epoch=orbit.epoch,
            strict=self.solver_strict,
            max_iter=self.solver_max_iter,
            tol=self.solver_tolerance,
        )

    def _circular(
        self,
        body: CelestialBody,
        radius: float,
        angle: float,
        epoch: float,
        start: float,
        end: float,
        prograde: bool = True,
    ) -> KeplerOrbit:
        """Circular orbit that sits at in-plane *angle* at *epoch*."""
        if prograde:
            params = OrbitParameters.circular(radius, body.mu, argument_of_periapsis=angle)
        else:
            params = OrbitParameters.circular(
                radius, body.mu,
                argument_of_periapsis=normalize_angle(-angle),
                inclination=PI,
            )
        return self._orbit(body, params, start, end, epoch=epoch)

    @staticmethod
    def _require_coplanar(body: CelestialBody) -> None:
        if abs(np.sin(body.orbit.inclination)) > COPLANAR_TOLERANCE:
            raise DomainError(
                f"'{body.name}' orbit is inclined; only coplanar transfers are supported"
            )

    # -------------------------------------------------------------------------
    # Planet -> moon (patched conic)
    # -------------------------------------------------------------------------

    def solve_planet_to_moon(
        self, planet: CelestialBody, moon: CelestialBody, request_time: float
    ) -> PatchedConicSolution:
        """
        Run the patched-conic synthesis without assembling segments.

        Raises
        ------
        DomainError
            The moon does not orbit the planet, its SOI is unbounded, or
            its orbit is not coplanar with the planet's equator.
        GeometryUnreachable
            No phase offset produces an inbound SOI entry.
        """
        if moon.parent is not planet:
            raise DomainError(f"'{moon.name}' does not orbit '{planet.name}'")
        if not np.isfinite(moon.soi_radius):
            raise DomainError(f"'{moon.name}' has no finite sphere of influence")
        self._require_coplanar(moon)

        mu_planet = planet.mu
        mu_moon = moon.mu
        r_park = planet.radius + self.parking_altitude
        r_capture = moon.radius + self.capture_altitude
        r_moon = moon.orbit_radius
        r_soi = moon.soi_radius

        # Step 1: transfer apogee for the requested periapsis
        r_apogee = find_optimal_apogee_radius_for_moon_transfer(
            r_capture, r_park, r_moon, r_soi, mu_planet, mu_moon,
            max_iter=self.search_max_iter,
            tolerance=self.search_tolerance,
            soi_fraction=self.search_soi_fraction,
        )
        try:
            predicted_rp = calculate_target_periapsis_from_transfer_apogee(
                r_apogee, r_park, r_moon, r_soi, mu_planet, mu_moon,
            )
        except GeometryUnreachable:
            logger.warning(
                "Apogee search gave an unreachable geometry; falling back to the "
                "moon's mean distance %.0f m", r_moon,
            )
            r_apogee = r_moon
            predicted_rp = calculate_target_periapsis_from_transfer_apogee(
                r_apogee, r_park, r_moon, r_soi, mu_planet, mu_moon,
            )
        converged = abs(predicted_rp - r_capture) < self.search_tolerance
        if not converged:
            logger.warning(
                "Apogee search missed the requested periapsis: wanted %.0f m, "
                "model gives %.0f m at r_a=%.0f m",
                r_capture, predicted_rp, r_apogee,
            )

        # Step 2: transfer timing
        t_launch = request_time + self.parking_wait
        probe = calculate_hohmann_transfer(planet, r_park, r_apogee, t_launch)
        t_soi = t_launch + probe.duration

        # Step 3: phasing against the moon at SOI entry
        moon_state = moon.state_at(t_soi)
        moon_angle = float(np.arctan2(moon_state.position[1], moon_state.position[0]))
        phi = transfer_phase_angle(r_apogee, r_moon, r_soi)

        offsets = ('leading', 'trailing') if self.phase_offset == 'auto' else (self.phase_offset,)
        for offset in offsets:
            apogee_angle = moon_angle + phi if offset == 'leading' else moon_angle - phi
            launch_angle = normalize_angle(apogee_angle - PI)
            transfer = calculate_hohmann_transfer(
                planet, r_park, r_apogee, t_launch, omega=launch_angle,
            )
            ship_state = transfer.orbit.evaluate(t_soi)
            r_rel = ship_state.position - moon_state.position
            v_rel = ship_state.velocity - moon_state.velocity
            if np.dot(r_rel, v_rel) < 0.0:
                break
            logger.debug("Phase offset '%s' gives an outbound SOI entry", offset)
        else:
            raise GeometryUnreachable(
                f"SOI entry is not inbound for phase offset '{self.phase_offset}'"
            )

        # Step 4: moon-centred approach conic
        soi_state = OrbitalState(r_rel, v_rel, t_soi, frame=moon.name)
        prograde = cross_2d(r_rel, v_rel) > 0.0
        approach, time_to_periapsis, periapsis_angle = self._approach_conic(
            soi_state, mu_moon, prograde,
        )
        t_periapsis = t_soi + time_to_periapsis
        rp = approach.periapsis_radius
        if rp <= moon.radius:
            logger.warning(
                "Approach periapsis %.0f m lies below the surface of %s (%.0f m)",
                rp, moon.name, moon.radius,
            )

        logger.info(
            "Patched conic %s->%s: r_a=%.0f m, phi=%.4f rad (%s), r_p=%.0f m, "
            "e_hyp=%.4f, %s capture, dv1=%.1f m/s",
            planet.name, moon.name, r_apogee, phi, offset, rp,
            approach.eccentricity, 'prograde' if prograde else 'retrograde',
            transfer.delta_v1,
        )
        return PatchedConicSolution(
            launch_time=t_launch,
            soi_entry_time=t_soi,
            periapsis_time=t_periapsis,
            apogee_radius=r_apogee,
            target_periapsis_radius=r_capture,
            periapsis_radius=rp,
            converged=converged,
            phase_offset=offset,
            phase_angle=phi,
            prograde=prograde,
            transfer=transfer,
            approach_parameters=approach,
            soi_entry_state=soi_state,
        )

    def _approach_conic(
        self, state: OrbitalState, mu: float, prograde: bool
    ) -> Tuple[OrbitParameters, float, float]:
        """
        Elements of the target-centred conic through *state*, with M0 = 0
        at periapsis.

        Returns (elements, time from *state* to periapsis, in-plane angle
        of periapsis).
        """
        r = state.r_mag
        energy = state.v_mag**2 / 2.0 - mu / r
        if energy == 0.0:
            raise DomainError("Parabolic approach (zero energy) is not supported")
        a = -mu / (2.0 * energy)
        e_vec = eccentricity_vector(state.position, state.velocity, mu)
        e = float(np.linalg.norm(e_vec))
        periapsis_angle = float(np.arctan2(e_vec[1], e_vec[0]))

        if e > 1.0:
            if self.hyperbola_orientation == 'asymptote':
                v_inf_angle = float(np.arctan2(state.velocity[1], state.velocity[0]))
                periapsis_angle = hyperbolic_periapsis_angle(v_inf_angle, e, prograde)
            time_to_periapsis = calculate_hyperbolic_time_to_periapsis(abs(a), e, mu, r)
        else:
            logger.debug("Approach is bound (e=%.6f); using elliptic time of flight", e)
            time_to_periapsis = calculate_time_from_periapsis_to_radius(a, e, mu, r)

        periapsis_angle = normalize_angle(periapsis_angle)
        if prograde:
            omega, inclination = periapsis_angle, 0.0
        else:
            omega, inclination = normalize_angle(-periapsis_angle), PI

        params = OrbitParameters(
            semi_major_axis=abs(a),
            eccentricity=e,
            argument_of_periapsis=omega,
            mean_anomaly_at_epoch=0.0,
            inclination=inclination,
            mean_motion=mean_motion(a, mu),
        )
        return params, time_to_periapsis, periapsis_angle

    def create_planet_to_moon_plan(
        self, planet: CelestialBody, moon: CelestialBody, request_time: float
    ) -> FlightPlan:
        """
        Four-segment patched-conic plan from a parking orbit about *planet*
        to a circular capture orbit about *moon*.

        Args:
            planet: Primary body; the parking and transfer orbits are
                    centred on it.
            moon: Target body orbiting *planet*.
            request_time: Absolute time (s) at which the plan begins.

        Returns:
            Finalized FlightPlan: Parking, Transfer, Approach, Capture.
        """
        solution = self.solve_planet_to_moon(planet, moon, request_time)
        r_park = planet.radius + self.parking_altitude
        launch_angle = solution.transfer.orbit.parameters.argument_of_periapsis

        parking = self._circular(
            planet, r_park, launch_angle,
            epoch=solution.launch_time,
            start=request_time,
            end=solution.launch_time,
        )
        transfer = self._with_solver(
            solution.transfer.orbit, solution.launch_time, solution.soi_entry_time,
        )
        approach = self._orbit(
            moon, solution.approach_parameters,
            solution.soi_entry_time, solution.periapsis_time,
            epoch=solution.periapsis_time,
        )
        periapsis_angle = approach.parameters.argument_of_periapsis
        if not solution.prograde:
            periapsis_angle = normalize_angle(-periapsis_angle)
        capture = self._circular(
            moon, solution.periapsis_radius, periapsis_angle,
            epoch=solution.periapsis_time,
            start=solution.periapsis_time,
            end=solution.periapsis_time + self.capture_duration,
            prograde=solution.prograde,
        )

        plan = FlightPlan([
            TrajectorySegment(
                parking,
                phase_name='Parking',
                trajectory_type=TrajectoryType.ORBIT_PROPAGATION,
                exit_condition=ExitCondition.TIME_ELAPSED,
            ),
            TrajectorySegment(
                transfer,
                phase_name='Transfer',
                trajectory_type=TrajectoryType.HOHMANN_TRANSFER,
                exit_condition=ExitCondition.ENTER_TARGET_SOI,
                next_reference_body=moon,
                target_body=moon,
            ),
            TrajectorySegment(
                approach,
                phase_name='Approach',
                trajectory_type=TrajectoryType.ORBIT_PROPAGATION,
                exit_condition=ExitCondition.PERIAPSIS_REACHED,
            ),
            TrajectorySegment(
                capture,
                phase_name='Capture',
                trajectory_type=TrajectoryType.CIRCULARIZE,
                exit_condition=ExitCondition.TIME_ELAPSED,
            ),
        ]).finalize()

        logger.info(
            "Built %s->%s plan: launch t=%.1f s, SOI entry t=%.1f s, periapsis t=%.1f s",
            planet.name, moon.name, solution.launch_time,
            solution.soi_entry_time, solution.periapsis_time,
        )
        return plan

    # -------------------------------------------------------------------------
    # Coplanar Hohmann rendezvous
    # -------------------------------------------------------------------------

    def create_hohmann_rendezvous_plan(
        self, primary: CelestialBody, target: CelestialBody, request_time: float
    ) -> FlightPlan:
        """
        Three-segment plan that stays in the primary's frame: wait in the
        parking orbit for the next launch window, fly a Hohmann transfer
        to the target's orbital radius, then circularize alongside the
        target.
        """
        if target.parent is not primary:
            raise DomainError(f"'{target.name}' does not orbit '{primary.name}'")
        self._require_coplanar(target)

        r_park = primary.radius + self.parking_altitude
        r_target = target.orbit_radius
        probe = calculate_hohmann_transfer(primary, r_park, r_target, request_time)
        t_launch = find_next_launch_window(primary, target, probe.duration, request_time)

        transfer = calculate_hohmann_transfer(primary, r_park, r_target, t_launch)
        t_arrival = t_launch + transfer.duration
        arrival_angle = normalize_angle(transfer.orbit.parameters.argument_of_periapsis + PI)

        parking = self._circular(
            primary, r_park, 0.0, epoch=t_launch, start=request_time, end=t_launch,
        )
        circular = self._circular(
            primary, r_target, arrival_angle,
            epoch=t_arrival, start=t_arrival, end=t_arrival + self.capture_duration,
        )

        plan = FlightPlan([
            TrajectorySegment(parking, phase_name='Parking'),
            TrajectorySegment(
                self._with_solver(transfer.orbit, t_launch, t_arrival),
                phase_name='Transfer',
                trajectory_type=TrajectoryType.HOHMANN_TRANSFER,
                exit_condition=ExitCondition.APOAPSIS_REACHED,
                target_body=target,
            ),
            TrajectorySegment(
                circular,
                phase_name='Circularize',
                trajectory_type=TrajectoryType.CIRCULARIZE,
            ),
        ]).finalize()

        logger.info(
            "Built %s rendezvous plan about %s: wait %.1f s, tof %.1f s, "
            "dv1=%.1f m/s, dv2=%.1f m/s",
            target.name, primary.name, t_launch - request_time,
            transfer.duration, transfer.delta_v1, transfer.delta_v2,
        )
        return plan


# =============================================================================
# MODULE-LEVEL ENTRY POINTS
# =============================================================================

def create_planet_to_moon_plan(
    planet: CelestialBody,
    moon: CelestialBody,
    request_time: float,
    config: Optional[Dict[str, Any]] = None,
) -> FlightPlan:
    return MissionBuilder(config).create_planet_to_moon_plan(planet, moon, request_time)


def create_hohmann_rendezvous_plan(
    primary: CelestialBody,
    target: CelestialBody,
    request_time: float,
    config: Optional[Dict[str, Any]] = None,
) -> FlightPlan:
    return MissionBuilder(config).create_hohmann_rendezvous_plan(primary, target, request_time)
