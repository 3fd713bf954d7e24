"""
Numerical tolerances for the intersection engine.

All of the small constants that keep the boundary walks terminating live
here so they can be tuned from a YAML file instead of being scattered
through the code.

Usage:
    tol = load_tolerances('configs/tolerances.yaml')
    mesh = Mesh(table, tolerances=tol)
"""

import logging
from dataclasses import dataclass, fields, asdict, replace
from pathlib import Path
from typing import Optional, Union

import yaml

from brep_mc.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tolerances:
    """
    Tuning constants shared by all shapes.

    Attributes:
        extra_u: Overshoot (in segment-parameter units) used to step past a
            crossing before re-querying. Guarantees forward progress.
        grid_tolerance: Relative tolerance for deciding that a point lies on
            a height-map grid line, node or cell diagonal.
        grid_push: Nudge (relative to the cell spacing) applied to a start
            point that sits on a height-map grid line.
        boundary_nudge: Initial displacement (relative to the remaining leg)
            used to step just outside the mesh surface. Doubled on failure.
        backtrack_tolerance: Slack in u when detecting a walk that bounces
            straight back out of the mesh.
        max_csg_steps: Iteration cap for CSG union/intersection stepping.
        max_walk_steps: Cap on mesh walk steps (None: 2 * n_tets + 64).
        max_column_steps: Cap on height-map column steps (None: 4 * (nx + ny) + 64).
        progress: Show tqdm progress bars in batch queries.
    """
    extra_u: float = 1.0e-10
    grid_tolerance: float = 1.01e-7
    grid_push: float = 1.0e-9
    boundary_nudge: float = 1.0e-16
    backtrack_tolerance: float = 1.0e-9
    max_csg_steps: int = 100000
    max_walk_steps: Optional[int] = None
    max_column_steps: Optional[int] = None
    progress: bool = False

    def __post_init__(self):
        for name in ('extra_u', 'grid_tolerance', 'grid_push',
                     'boundary_nudge', 'backtrack_tolerance'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) \
                    or not value > 0.0:
                raise ConfigurationError(
                    f"Tolerance '{name}' must be a positive number, got {value!r}")
            if value >= 1.0:
                raise ConfigurationError(
                    f"Tolerance '{name}' must be smaller than 1, got {value!r}")

        for name in ('max_csg_steps', 'max_walk_steps', 'max_column_steps'):
            value = getattr(self, name)
            if value is None and name != 'max_csg_steps':
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(
                    f"Step cap '{name}' must be a positive integer, got {value!r}")

        if not isinstance(self.progress, bool):
            raise ConfigurationError(
                f"'progress' must be true or false, got {self.progress!r}")

    def walk_cap(self, n_elements: int) -> int:
        """Step cap for a mesh walk over n_elements tetrahedra."""
        if self.max_walk_steps is not None:
            return self.max_walk_steps
        return 2 * n_elements + 64

    def column_cap(self, nx: int, ny: int) -> int:
        """Step cap for a height-map column walk over an nx by ny grid."""
        if self.max_column_steps is not None:
            return self.max_column_steps
        return 4 * (nx + ny) + 64

    def with_overrides(self, **kwargs) -> 'Tolerances':
        """Copy with some fields replaced (validated like the constructor)."""
        unknown = set(kwargs) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown tolerance keys: {sorted(unknown)}")
        return replace(self, **kwargs)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Optional[dict]) -> 'Tolerances':
        """
        Build tolerances from a mapping, missing keys take their defaults.

        Parameters:
            values: Mapping of field name to value (None means all defaults)

        Returns:
            Validated Tolerances
        """
        if values is None:
            return cls()
        if not isinstance(values, dict):
            raise ConfigurationError(
                f"Tolerance configuration must be a mapping, got {type(values).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown tolerance keys: {sorted(unknown)}")

        # YAML reads 1e-10 (no decimal point) as a string
        cleaned = {}
        for key, value in values.items():
            if isinstance(value, str):
                try:
                    value = float(value)
                except ValueError:
                    raise ConfigurationError(
                        f"Tolerance '{key}' is not a number: {value!r}") from None
            cleaned[key] = value
        return cls(**cleaned)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'Tolerances':
        """
        Load tolerances from a YAML file.

        The file may either hold the fields at top level or under a
        'tolerances' key.

        Parameters:
            path: YAML file path

        Returns:
            Validated Tolerances
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Tolerance file not found: {path}")

        with open(path, 'r') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Could not parse {path}: {e}") from e

        if isinstance(data, dict) and 'tolerances' in data:
            data = data['tolerances']

        tol = cls.from_dict(data)
        logger.debug(f"Loaded tolerances from {path}: {tol}")
        return tol


DEFAULT_TOLERANCES = Tolerances()


def load_tolerances(path: Union[str, Path, None] = None) -> Tolerances:
    """Load tolerances from a YAML file, or the defaults when path is None."""
    if path is None:
        return DEFAULT_TOLERANCES
    return Tolerances.from_yaml(path)


def resolve(tolerances: Optional[Tolerances]) -> Tolerances:
    """Return tolerances, falling back to DEFAULT_TOLERANCES."""
    return DEFAULT_TOLERANCES if tolerances is None else tolerances
