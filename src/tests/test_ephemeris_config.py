"""
===============================================================================
ORBITPLAN - Configuration, Ephemeris and Output Test Suite
===============================================================================
YAML configuration loading, pandas ephemeris tables, CSV export, trajectory
plotting and the command-line entry point.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pandas as pd
import pytest
import yaml
from numpy.testing import assert_allclose

from orbitplan.core.config import DEFAULT_CONFIG, get_section, load_config, merge_config
from orbitplan.core.constants import MOON_RADIUS
from orbitplan.core.errors import ConfigError
from orbitplan.dynamics.bodies import earth_moon_system
from orbitplan.guidance.mission_builder import MissionBuilder
from orbitplan.main import build_parser, main
from orbitplan.simulation.ephemeris import (
    EPHEMERIS_COLUMNS,
    sample_flight_plan,
    save_ephemeris,
    summarize_plan,
)
from orbitplan.visualization.trajectory_plots import plot_flight_plan

REACHABLE_MISSION = {'capture_altitude_m': 1.0e7 - MOON_RADIUS}
SAMPLE_CONFIG = os.path.join(os.path.dirname(__file__), '..', '..', 'config', 'mission_config.yaml')


@pytest.fixture(scope='module')
def bodies():
    return earth_moon_system()


@pytest.fixture(scope='module')
def plan(bodies):
    earth, moon = bodies
    config = merge_config(DEFAULT_CONFIG, {'mission': REACHABLE_MISSION})
    return MissionBuilder(config).create_planet_to_moon_plan(earth, moon, 0.0)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'scenario.yaml'
    path.write_text(yaml.safe_dump({
        'mission': dict(REACHABLE_MISSION, parking_wait_s=7200.0),
        'solver': {'tolerance': 1.0e-8},
    }))
    return str(path)


# =============================================================================
# Test: Configuration
# =============================================================================

class TestConfig:

    def test_defaults_returned_as_copy(self):
        config = load_config()
        assert config == DEFAULT_CONFIG
        config['mission']['parking_wait_s'] = 0.0
        assert DEFAULT_CONFIG['mission']['parking_wait_s'] == 3600.0

    def test_yaml_overrides_merge_with_defaults(self, config_file):
        config = load_config(config_file)
        assert config['mission']['parking_wait_s'] == 7200.0
        assert config['mission']['phase_offset'] == 'leading'
        assert config['solver']['tolerance'] == 1.0e-8
        assert config['solver']['max_iterations'] == 100
        assert set(config['bodies']) == {'earth', 'moon'}

    def test_sample_config_matches_defaults(self):
        assert load_config(SAMPLE_CONFIG) == DEFAULT_CONFIG

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        assert load_config(str(path)) == DEFAULT_CONFIG

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_merge_is_recursive(self):
        merged = merge_config({'a': {'b': 1, 'c': 2}, 'd': 3}, {'a': {'c': 5}})
        assert merged == {'a': {'b': 1, 'c': 5}, 'd': 3}

    def test_get_section(self):
        assert get_section(None, 'solver') == DEFAULT_CONFIG['solver']
        assert get_section({}, 'solver') == DEFAULT_CONFIG['solver']
        with pytest.raises(ConfigError):
            get_section({'solver': 5}, 'solver')

    def test_missing_section_returned_as_copy(self):
        section = get_section({}, 'mission')
        section['parking_wait_s'] = 0.0
        assert DEFAULT_CONFIG['mission']['parking_wait_s'] == 3600.0
        assert get_section({}, 'mission')['parking_wait_s'] == 3600.0

    def test_builder_reads_yaml(self, config_file, bodies):
        earth, moon = bodies
        plan = MissionBuilder(load_config(config_file)).create_planet_to_moon_plan(earth, moon, 0.0)
        assert_allclose(plan[0].end_time, 7200.0)
        assert plan[1].trajectory.tol == 1.0e-8


# =============================================================================
# Test: Ephemeris tables
# =============================================================================

class TestEphemeris:

    def test_summary(self, plan):
        summary = summarize_plan(plan)
        assert list(summary['segment']) == ['Parking', 'Transfer', 'Approach', 'Capture']
        assert list(summary['reference_body']) == ['earth', 'earth', 'moon', 'moon']
        assert_allclose(summary['duration_s'].sum(), plan.duration)
        assert summary.loc[1, 'exit_condition'] == 'ENTER_TARGET_SOI'

    def test_sampled_states(self, plan):
        df = sample_flight_plan(plan, n_points=50)
        assert list(df.columns) == EPHEMERIS_COLUMNS
        assert len(df) == 50
        assert df['time_s'].iloc[0] == plan.start_time
        assert df['time_s'].iloc[-1] == plan.end_time
        assert df['time_s'].is_monotonic_increasing
        assert set(df['reference_body']) == {'earth', 'moon'}
        radius = np.linalg.norm(df[['x_m', 'y_m', 'z_m']].to_numpy(), axis=1)
        assert_allclose(df['radius_m'], radius, rtol=1e-12)

    def test_common_frame(self, plan, bodies):
        earth, _ = bodies
        df = sample_flight_plan(plan, n_points=30, frame_body=earth)
        assert set(df['reference_body']) == {'earth'}
        # Capture orbit stays near the moon, far from the earth
        assert df['radius_m'].iloc[-1] > 3.0e8

    def test_too_few_points(self, plan):
        with pytest.raises(ValueError):
            sample_flight_plan(plan, n_points=1)

    def test_csv_round_trip(self, plan, tmp_path):
        df = sample_flight_plan(plan, n_points=20)
        path = save_ephemeris(df, str(tmp_path / 'out' / 'ephemeris.csv'))
        loaded = pd.read_csv(path)
        assert list(loaded.columns) == EPHEMERIS_COLUMNS
        assert_allclose(loaded['x_m'].to_numpy(), df['x_m'].to_numpy(), rtol=1e-12)


# =============================================================================
# Test: Plotting and command line
# =============================================================================

class TestOutputs:

    def test_plot_saved(self, plan, tmp_path):
        path = tmp_path / 'plan.png'
        fig = plot_flight_plan(plan, output_path=str(path), resolution=40)
        assert path.exists()
        assert len(fig.axes) == 2

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.mission == 'moon'
        assert args.planet == 'earth'
        assert args.target == 'moon'
        assert args.request_time == 0.0

    def test_cli_writes_csv(self, config_file, tmp_path, capsys):
        csv_path = tmp_path / 'eph.csv'
        code = main(['--config', config_file, '--csv', str(csv_path), '--samples', '25'])
        assert code == 0
        assert csv_path.exists()
        assert len(pd.read_csv(csv_path)) == 25
        assert "FLIGHT PLAN: earth -> moon" in capsys.readouterr().out

    def test_cli_rendezvous(self, capsys):
        assert main(['--mission', 'rendezvous', '--samples', '10']) == 0
        assert "Circularize" in capsys.readouterr().out

    def test_cli_unknown_body(self):
        assert main(['--target', 'mars']) == 2

    def test_cli_planning_error(self):
        # The moon does not orbit itself
        assert main(['--planet', 'moon', '--target', 'moon']) == 1
