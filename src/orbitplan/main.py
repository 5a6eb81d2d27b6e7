"""
===============================================================================
ORBITPLAN - Mission Planning Entry Point
===============================================================================
Builds a flight plan for a configured body pair and reports it.

USAGE:
    python -m orbitplan                                  Earth -> Moon plan
    python -m orbitplan --config config/mission_config.yaml
    python -m orbitplan --mission rendezvous             Hohmann rendezvous
    python -m orbitplan --csv output/ephemeris.csv --plot output/plan.png

OUTPUTS:
    stdout        - Segment summary and mission phase timeline
    --csv PATH    - Sampled ephemeris (pandas DataFrame as CSV)
    --plot PATH   - Trajectory plot (PNG)

DEPENDENCIES:
    numpy, scipy, matplotlib, pandas, pyyaml
===============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np

from orbitplan.core.config import load_config
from orbitplan.core.errors import OrbitPlanError
from orbitplan.dynamics.bodies import build_bodies
from orbitplan.guidance.mission_builder import MissionBuilder
from orbitplan.guidance.mission_planner import MissionTracker
from orbitplan.simulation.ephemeris import (
    sample_flight_plan,
    save_ephemeris,
    summarize_plan,
)

logger = logging.getLogger('orbitplan.main')

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='orbitplan',
        description='Patched-conic flight plan synthesis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  orbitplan                                  Earth -> Moon, t=0
  orbitplan --request-time 86400             Start one day later
  orbitplan --mission rendezvous             Coplanar Hohmann rendezvous
  orbitplan --csv out/eph.csv --samples 2000 Export ephemeris
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to mission config YAML')
    parser.add_argument('--request-time', type=float, default=0.0,
                        help='Absolute start time of the plan in seconds (default: 0)')
    parser.add_argument('--mission', choices=('moon', 'rendezvous'), default='moon',
                        help='Mission profile (default: moon)')
    parser.add_argument('--planet', type=str, default='earth',
                        help='Departure body name (default: earth)')
    parser.add_argument('--target', type=str, default='moon',
                        help='Target body name (default: moon)')
    parser.add_argument('--csv', type=str, default=None,
                        help='Write a sampled ephemeris to this CSV path')
    parser.add_argument('--plot', type=str, default=None,
                        help='Write a trajectory plot to this PNG path')
    parser.add_argument('--samples', type=int, default=500,
                        help='Ephemeris samples (default: 500)')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging')
    return parser


def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    bodies = build_bodies(config)
    try:
        planet = bodies[args.planet]
        target = bodies[args.target]
    except KeyError as exc:
        logger.error("Unknown body %s; configured: %s", exc.args[0], ", ".join(sorted(bodies)))
        return 2

    builder = MissionBuilder(config)
    if args.mission == 'moon':
        plan = builder.create_planet_to_moon_plan(planet, target, args.request_time)
    else:
        plan = builder.create_hohmann_rendezvous_plan(planet, target, args.request_time)

    print("=" * 70)
    print(f"  FLIGHT PLAN: {planet.name} -> {target.name} ({args.mission})")
    print("=" * 70)
    print(summarize_plan(plan).to_string(index=False))

    tracker = MissionTracker(plan)
    for t in np.linspace(plan.start_time, plan.end_time, max(args.samples, 2)):
        tracker.update(t)

    print("-" * 70)
    print("  Mission timeline")
    for t, phase, reason in tracker.get_mission_timeline():
        print(f"    t={t:14.1f} s  {phase.name:<10s} {reason}")
    print("=" * 70)

    if args.csv:
        save_ephemeris(sample_flight_plan(plan, args.samples), args.csv)
    if args.plot:
        # Deferred so that plain runs never load matplotlib
        from orbitplan.visualization.trajectory_plots import plot_flight_plan
        plot_flight_plan(plan, output_path=args.plot)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point. Parses command line arguments, builds the requested
    plan and writes the requested outputs.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    try:
        return run(args)
    except OrbitPlanError as exc:
        logger.error("Planning failed: %s", exc)
        return 1


if __name__ == '__main__':
    sys.exit(main())
