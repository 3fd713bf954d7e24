"""Tests for tolerance configuration."""

from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from brep_mc.config import DEFAULT_TOLERANCES, Tolerances, load_tolerances, resolve
from brep_mc.errors import ConfigurationError

CONFIG_DIR = Path(__file__).parent.parent / 'configs'


def test_defaults():
    tol = Tolerances()
    assert tol.extra_u == 1.0e-10
    assert tol.max_walk_steps is None
    assert tol.walk_cap(100) == 264
    assert tol.column_cap(10, 5) == 124
    assert not tol.progress
    assert load_tolerances() is DEFAULT_TOLERANCES
    assert resolve(None) is DEFAULT_TOLERANCES
    assert resolve(tol) is tol


def test_frozen():
    with pytest.raises(FrozenInstanceError):
        DEFAULT_TOLERANCES.extra_u = 1.0


def test_shipped_config_matches_defaults():
    assert load_tolerances(CONFIG_DIR / 'tolerances.yaml') == Tolerances()


def test_top_level_keys(tmp_path):
    path = tmp_path / 'tol.yaml'
    path.write_text("extra_u: 1e-8\nmax_walk_steps: 500\nprogress: true\n")
    tol = Tolerances.from_yaml(path)
    assert tol.extra_u == 1.0e-8
    assert tol.walk_cap(10 ** 6) == 500
    assert tol.progress


def test_nested_keys(tmp_path):
    path = tmp_path / 'tol.yaml'
    path.write_text("tolerances:\n  max_column_steps: 7\n")
    assert Tolerances.from_yaml(path).column_cap(100, 100) == 7


@pytest.mark.parametrize("values", [
    {'extra_u': 0.0},
    {'extra_u': -1.0e-10},
    {'grid_push': 2.0},
    {'grid_tolerance': 'abc'},
    {'max_csg_steps': 0},
    {'max_csg_steps': None},
    {'max_walk_steps': 2.5},
    {'progress': 1},
    {'no_such_key': 1},
])
def test_invalid_values(values):
    with pytest.raises(ConfigurationError):
        Tolerances.from_dict(values)


def test_from_dict_requires_mapping():
    assert Tolerances.from_dict(None) == Tolerances()
    with pytest.raises(ConfigurationError):
        Tolerances.from_dict([1, 2, 3])


def test_with_overrides():
    tol = Tolerances().with_overrides(max_csg_steps=10)
    assert tol.max_csg_steps == 10
    assert tol.to_dict()['max_csg_steps'] == 10
    with pytest.raises(ConfigurationError):
        Tolerances().with_overrides(bogus=1)
    with pytest.raises(ConfigurationError):
        Tolerances().with_overrides(backtrack_tolerance=-1.0)


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_tolerances(tmp_path / 'missing.yaml')
    path = tmp_path / 'bad.yaml'
    path.write_text("extra_u: [1, 2\n")
    with pytest.raises(ConfigurationError):
        load_tolerances(path)
