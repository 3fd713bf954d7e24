"""
Convert plain ASCII height grids to $HeightMapFormat and binary NumPy format.

Input files (*.txt) hold one row of heights per line, successive lines
being successive y. Spacing and origin come from the command line.

Binary .npy caches load much faster than parsing text:
- ASCII loadtxt: ~10-50ms for a 500 x 500 grid
- Binary np.load: ~0.5ms
"""

import argparse
import numpy as np
from pathlib import Path
import time
import sys

# Add parent directory to path to import brep_mc
sys.path.insert(0, str(Path(__file__).parent.parent))

from brep_mc.io.heightmap_file import read_height_map, write_height_map


def convert_grid(txt_file: Path, x0: float, y0: float, dX: float, dY: float,
                 zunit: float, is_below: bool):
    """Convert one grid file; returns (ascii seconds, binary seconds)."""
    print(f"Processing: {txt_file.name}")

    start = time.time()
    rows = np.atleast_2d(np.loadtxt(txt_file))
    time_ascii = time.time() - start
    data = rows.T
    print(f"  ASCII load: {time_ascii*1000:.1f}ms ({data.shape[0]} x {data.shape[1]} points)")

    hm_file = txt_file.with_suffix('.hm')
    write_height_map(hm_file, x0, y0, dX, dY, data, is_below=is_below, zunit=zunit)
    print(f"  ✓ Saved: {hm_file.name}")

    npy_file = txt_file.with_suffix('.npy')
    np.save(npy_file, data)

    start = time.time()
    loaded = np.load(npy_file)
    time_binary = time.time() - start
    print(f"  Binary load: {time_binary*1000:.1f}ms")

    # Verify correctness
    surface = read_height_map(hm_file)
    assert np.allclose(surface.data, loaded), "Data mismatch!"

    speedup = time_ascii / time_binary if time_binary > 0 else float('inf')
    print(f"  Speedup: {speedup:.0f}x faster")
    print(f"  ✓ Saved: {npy_file.name}\n")
    return time_ascii, time_binary


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('data_dir', type=Path, help='Directory with *.txt height grids')
    parser.add_argument('--x0', type=float, default=0.0)
    parser.add_argument('--y0', type=float, default=0.0)
    parser.add_argument('--dx', type=float, required=True, help='Spacing along x')
    parser.add_argument('--dy', type=float, required=True, help='Spacing along y')
    parser.add_argument('--zunit', type=float, default=1.0, help='Height unit written to the file')
    parser.add_argument('--above', action='store_true', help='Shape is the region above the surface')
    args = parser.parse_args()

    if not args.data_dir.exists():
        print(f"Error: {args.data_dir} does not exist")
        return 1

    txt_files = sorted(args.data_dir.glob('*.txt'))
    if not txt_files:
        print(f"No .txt files found in {args.data_dir}")
        return 1

    print(f"Found {len(txt_files)} height grids")
    print(f"Converting ASCII → $HeightMapFormat + binary NumPy...\n")

    total_ascii = 0.0
    total_binary = 0.0
    for txt_file in txt_files:
        t_ascii, t_binary = convert_grid(txt_file, args.x0, args.y0, args.dx, args.dy,
                                         args.zunit, not args.above)
        total_ascii += t_ascii
        total_binary += t_binary

    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Files converted: {len(txt_files)}")
    print(f"Total ASCII load time: {total_ascii*1000:.1f}ms")
    print(f"Total binary load time: {total_binary*1000:.1f}ms")
    if total_binary > 0:
        print(f"Overall speedup: {total_ascii / total_binary:.0f}x faster")
    return 0


if __name__ == '__main__':
    sys.exit(main())
