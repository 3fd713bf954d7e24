#!/usr/bin/env python3
"""
Quick script to verify installation.

Run this after setting up the environment to check everything works.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

print("="*70)
print("BREP_MC Installation Check")
print("="*70)

# Check 1: Import packages
print("\n1. Checking imports...")
try:
    import numpy as np
    print("   ✓ NumPy:", np.__version__)
except ImportError as e:
    print(f"   ✗ NumPy failed: {e}")
    sys.exit(1)

try:
    import numba
    print("   ✓ Numba:", numba.__version__)
except ImportError as e:
    print(f"   ✗ Numba failed: {e}")
    sys.exit(1)

try:
    import scipy
    print("   ✓ SciPy:", scipy.__version__)
except ImportError as e:
    print(f"   ✗ SciPy failed: {e}")
    sys.exit(1)

try:
    import yaml
    print("   ✓ PyYAML:", yaml.__version__)
except ImportError as e:
    print(f"   ✗ PyYAML failed: {e}")
    sys.exit(1)

# Check 2: Import brep_mc
print("\n2. Checking brep_mc imports...")
try:
    from brep_mc import ConnectivityTable, Mesh, Sphere, Union2, load_tolerances
    from brep_mc.core.polytope import block, half_space
    print("   ✓ Shapes imported")
except ImportError as e:
    print(f"   ✗ Failed: {e}")
    sys.exit(1)

# Check 3: Tolerance file
print("\n3. Checking tolerance configuration...")
config_file = Path(__file__).parent.parent.parent / 'configs' / 'tolerances.yaml'
if config_file.exists():
    tol = load_tolerances(config_file)
    print(f"   ✓ Loaded: {config_file.name} (extra_u = {tol.extra_u:g})")
else:
    tol = load_tolerances()
    print(f"   ⚠ Missing: {config_file}, using defaults")

# Check 4: CSG union
print("\n4. Checking CSG union...")
union = Union2(Sphere([0, 0, 0], 1.0), half_space([0, 0, 1], [0, 0, 0]), tolerances=tol)
hit = union.first_normal([0, 0, -2], [0, 0, 2])
print(f"   ✓ Sphere over half-space: u = {hit.u:.4f}, normal = {hit.normal}")
print(f"     (Expected: u = 0.75, normal = [0 0 1])")

# Check 5: Mesh walk on a unit cube of 6 tetrahedra
print("\n5. Checking mesh point location...")
nodes = np.array([[i, j, k] for k in (0, 1) for j in (0, 1) for i in (0, 1)], dtype=float)
tets = [[0, 1, 3, 7], [0, 1, 5, 7], [0, 2, 3, 7], [0, 2, 6, 7], [0, 4, 5, 7], [0, 4, 6, 7]]
mesh = Mesh(ConnectivityTable(nodes, tets), tolerances=tol)
inside = mesh.shape.contains([0.6, 0.3, 0.1])
outside = mesh.shape.contains([1.6, 0.3, 0.1])
if inside and not outside:
    print(f"   ✓ Walk located element {mesh.shape.containing_element().index}")
else:
    print(f"   ✗ Unexpected result: inside={inside}, outside={outside}")
    sys.exit(1)

# Check 6: Numba JIT compilation
print("\n6. Checking Numba JIT compilation...")
try:
    from brep_mc.core.polytope import clip_segment
    import time

    box = block([1.0, 1.0, 1.0], [0.5, 0.5, 0.5])
    p0 = np.array([0.5, 0.5, -1.0])
    p1 = np.array([0.5, 0.5, 1.0])

    # Warm up (trigger compilation)
    _ = clip_segment(box.normals, box.offsets, p0, p1)

    # Time it
    start = time.time()
    for _ in range(10000):
        clip_segment(box.normals, box.offsets, p0, p1)
    elapsed = (time.time() - start) / 10000

    print(f"   ✓ JIT compilation successful")
    print(f"   ✓ Segment clip: {elapsed*1e6:.2f} µs")
except Exception as e:
    print(f"   ✗ Failed: {e}")

# Summary
print("\n" + "="*70)
print("Installation check complete!")
print("="*70)
print("\nNext steps:")
print("  1. Run examples/scripts/ray_through_mesh.py")
print("  2. Run examples/scripts/heightmap_profile.py")
