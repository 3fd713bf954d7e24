"""I/O module: height-map files and mesh electrical state."""

from brep_mc.io.heightmap_file import read_height_map, write_height_map
from brep_mc.io.charge_file import (
    export_charge_and_potentials,
    import_charge_and_potentials,
    write_charge_and_potential_map,
)

__all__ = [
    "read_height_map",
    "write_height_map",
    "export_charge_and_potentials",
    "import_charge_and_potentials",
    "write_charge_and_potential_map",
]
