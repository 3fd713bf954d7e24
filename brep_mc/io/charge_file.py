"""
Save and restore the electrical state of a mesh.

Export format:

    $NodePotentials
    <number of nodes>
    <one potential per line, node order>
    $VolumeElementCharges
    <number of charged elements>
    <element index (1-based)>\t<charge number>     one line per charged element

The file is only meaningful for the mesh it was written from: node and
element order must match.
"""

import logging
import numpy as np
from pathlib import Path
from typing import Union

from brep_mc.core.shape import as_point
from brep_mc.errors import ConfigurationError

logger = logging.getLogger(__name__)

POTENTIALS_TOKEN = "$NodePotentials"
CHARGES_TOKEN = "$VolumeElementCharges"


def export_charge_and_potentials(mesh, path: Union[str, Path]) -> Path:
    """Write node potentials and nonzero element charges of `mesh` to `path`."""
    path = Path(path)
    table = mesh.table
    potentials = table.node_potentials
    charges = table.charge_numbers
    charged = np.flatnonzero(charges)

    lines = [POTENTIALS_TOKEN, str(potentials.size)]
    lines.extend(repr(float(v)) for v in potentials)
    lines.append(CHARGES_TOKEN)
    lines.append(str(charged.size))
    lines.extend(f"{i + 1}\t{charges[i]}" for i in charged)
    path.write_text("\n".join(lines) + "\n")

    logger.info(f"Exported {potentials.size} node potentials and "
                f"{charged.size} charged elements to {path.name}")
    return path


def import_charge_and_potentials(mesh, path: Union[str, Path]) -> None:
    """
    Load a file written by export_charge_and_potentials into `mesh`.

    All charges not listed in the file are set to zero. Potentials of the
    cached elements are refitted afterwards.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Charge file not found: {path}")
    tokens = path.read_text().split()
    table = mesh.table

    try:
        if not tokens or tokens[0] != POTENTIALS_TOKEN:
            raise ConfigurationError(f"{path}: 1st token was not {POTENTIALS_TOKEN}")
        n_nodes = int(tokens[1])
        if n_nodes != table.num_nodes:
            raise ConfigurationError(
                f"{path}: file has {n_nodes} nodes, mesh has {table.num_nodes}")
        potentials = np.array([float(t) for t in tokens[2:2 + n_nodes]])

        pos = 2 + n_nodes
        if tokens[pos] != CHARGES_TOKEN:
            raise ConfigurationError(
                f"{path}: encountered token {tokens[pos]} instead of {CHARGES_TOKEN}")
        count = int(tokens[pos + 1])
        pairs = [int(t) for t in tokens[pos + 2:pos + 2 + 2 * count]]
    except ConfigurationError:
        raise
    except (IndexError, ValueError) as e:
        raise ConfigurationError(f"{path}: malformed charge file ({e})") from e
    if len(pairs) != 2 * count:
        raise ConfigurationError(f"{path}: expected {count} charge entries")

    charges = np.zeros(table.num_elements, dtype=np.int64)
    for index, n in zip(pairs[0::2], pairs[1::2]):
        if not 1 <= index <= table.num_elements:
            raise ConfigurationError(f"{path}: element index {index} out of range")
        charges[index - 1] = n

    table.set_node_potentials(potentials)
    for i in range(table.num_elements):
        table.set_charge_number(i, int(charges[i]))
    mesh.update_all_potentials()
    logger.info(f"Imported electrical state from {path.name}")


def write_charge_and_potential_map(mesh, p0, dx, dy, nx: int, ny: int,
                                   path: Union[str, Path]) -> np.ndarray:
    """
    Sample charge density and potential on a planar raster.

    Points are p0 + i*dx + j*dy for i < nx, j < ny (dx and dy are 3-vectors).
    The file starts with p0, dx, dy, nx and ny on five lines, followed by
    one "charge_density potential" line per point with i varying fastest.
    Points outside the mesh get zeros.

    Returns:
        (ny, nx, 2) array of the values written
    """
    path = Path(path)
    p0, dx, dy = as_point(p0), as_point(dx), as_point(dy)
    shape = mesh.shape
    nearest = shape.anchor
    values = np.zeros((ny, nx, 2))
    for j in range(ny):
        for i in range(nx):
            p = p0 + i * dx + j * dy
            if shape.contains(p, start=nearest):
                nearest = shape.containing_element()
                values[j, i] = nearest.charge_density, nearest.potential(p)

    lines = [" ".join(repr(float(v)) for v in vec) for vec in (p0, dx, dy)]
    lines += [str(nx), str(ny)]
    lines += [f"{repr(float(c))} {repr(float(v))}" for c, v in values.reshape(-1, 2)]
    path.write_text("\n".join(lines) + "\n")
    return values
