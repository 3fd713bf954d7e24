"""
Read and write height maps in the $HeightMapFormat text format.

File layout (whitespace separated tokens):

    $HeightMapFormat
    below flag      nonzero: the shape is below the surface
    x0
    y0
    nx              number of points along x
    dX              spacing along x
    ny
    dY
    zunit           scale factor applied to every height
    z values        nx * ny heights in scan order, x varying fastest
"""

import logging
import numpy as np
from pathlib import Path
from typing import Optional, Union

from brep_mc.config import Tolerances
from brep_mc.errors import ConfigurationError
from brep_mc.surfaces.heightmap import HeightMapSurface

logger = logging.getLogger(__name__)

HEIGHT_MAP_TOKEN = "$HeightMapFormat"


def parse_height_map(text: str, source: str = "<string>"):
    """
    Parse $HeightMapFormat text.

    Returns:
        dict with keys is_below, x0, y0, dX, dY, data ((nx, ny) heights
        already multiplied by zunit)
    """
    tokens = text.split()
    if not tokens or tokens[0] != HEIGHT_MAP_TOKEN:
        raise ConfigurationError(f"{source}: 1st token was not {HEIGHT_MAP_TOKEN}")
    if len(tokens) < 9:
        raise ConfigurationError(f"{source}: header is incomplete")
    try:
        is_below = float(tokens[1]) != 0.0
        x0, y0 = float(tokens[2]), float(tokens[3])
        nx, dX = int(tokens[4]), float(tokens[5])
        ny, dY = int(tokens[6]), float(tokens[7])
        zunit = float(tokens[8])
        values = np.array([float(t) for t in tokens[9:]])
    except ValueError as e:
        raise ConfigurationError(f"{source}: {e}") from e

    if nx <= 0 or ny <= 0:
        raise ConfigurationError(f"{source}: grid dimensions must be positive, got {nx} x {ny}")
    if values.size != nx * ny:
        raise ConfigurationError(
            f"{source}: expected {nx * ny} heights, found {values.size}")

    # Rows of the scan are successive y, so x is the fast index
    data = values.reshape(ny, nx).T * zunit
    return dict(is_below=is_below, x0=x0, y0=y0, dX=dX, dY=dY, data=data)


def read_height_map(path: Union[str, Path],
                    tolerances: Optional[Tolerances] = None) -> HeightMapSurface:
    """
    Build a HeightMapSurface from a $HeightMapFormat file.

    Parameters:
        path: File to read
        tolerances: Numerical tolerances for the surface

    Returns:
        HeightMapSurface
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Height map file not found: {path}")
    fields = parse_height_map(path.read_text(), source=str(path))
    nx, ny = fields['data'].shape
    logger.info(f"Loaded {nx}x{ny} height map from {path.name}")
    return HeightMapSurface(tolerances=tolerances, **fields)


def write_height_map(path: Union[str, Path], x0: float, y0: float, dX: float, dY: float,
                     data, is_below: bool = True, zunit: float = 1.0) -> Path:
    """
    Write heights in $HeightMapFormat.

    `data` is (nx, ny) with the first index along x; values are divided by
    zunit before writing.
    """
    path = Path(path)
    data = np.atleast_2d(np.asarray(data, dtype=np.float64))
    nx, ny = data.shape
    lines = [HEIGHT_MAP_TOKEN, "1" if is_below else "0", repr(float(x0)), repr(float(y0)),
             str(nx), repr(float(dX)), str(ny), repr(float(dY)), repr(float(zunit))]
    scaled = data / zunit
    for j in range(ny):
        lines.append(" ".join(repr(float(v)) for v in scaled[:, j]))
    path.write_text("\n".join(lines) + "\n")
    return path
