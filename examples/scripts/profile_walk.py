#!/usr/bin/env python3
"""
Profile mesh point location to identify bottlenecks.
"""
import numpy as np
import time
import cProfile
import pstats
from io import StringIO
from itertools import permutations

from brep_mc.config import Tolerances
from brep_mc.mesh.connectivity import ConnectivityTable
from brep_mc.mesh.mesh import Mesh


def build_mesh(n, tolerances=None):
    m = n + 1
    nodes = np.array([(i, j, k) for k in range(m) for j in range(m) for i in range(m)],
                     dtype=float) / n
    tets = []
    for k in range(n):
        for j in range(n):
            for i in range(n):
                for perm in permutations(range(3)):
                    corner = [i, j, k]
                    tet = [i + m * (j + m * k)]
                    for axis in perm:
                        corner[axis] += 1
                        tet.append(corner[0] + m * (corner[1] + m * corner[2]))
                    tets.append(tet)
    return Mesh(ConnectivityTable(nodes, tets), tolerances=tolerances)


def profile_walk(n=8, n_points=2000):
    """Profile walk-based point location in detail."""
    print("\n" + "="*70)
    print("PROFILING MESH WALK")
    print("="*70)

    start = time.time()
    mesh = build_mesh(n)
    print(f"\n1. Mesh setup ({mesh.table.num_volume_elements} tetrahedra): "
          f"{time.time() - start:.3f}s")

    rng = np.random.default_rng(0)
    points = rng.uniform(-0.1, 1.1, size=(n_points, 3))

    # Warm up (element cache and JIT compilation)
    for p in points[:50]:
        mesh.shape.contains(p)

    print(f"\n2. Walk from the anchor ({n_points} points):")
    profiler = cProfile.Profile()
    profiler.enable()
    start = time.time()
    found = sum(mesh.shape.contains(p) for p in points)
    elapsed = time.time() - start
    profiler.disable()
    print(f"   Time: {elapsed:.3f}s ({elapsed/n_points*1e6:.1f} µs per point)")
    print(f"   Inside: {found}")

    print("\n   Top function calls:")
    s = StringIO()
    ps = pstats.Stats(profiler, stream=s).sort_stats('cumulative')
    ps.print_stats(15)
    print(s.getvalue())


def compare_start_hints(n=8, n_points=2000):
    """Walk from the anchor vs. from the previous result along a track."""
    print("\n" + "="*70)
    print("ANCHOR vs. PREVIOUS-ELEMENT START")
    print("="*70)

    mesh = build_mesh(n)
    t = np.linspace(0.0, 1.0, n_points)[:, None]
    track = np.array([0.05, 0.1, 0.15]) + t * np.array([0.9, 0.75, 0.7])

    start = time.time()
    for p in track:
        mesh.shape.contains(p)
    anchor_time = time.time() - start

    start = time.time()
    previous = None
    for p in track:
        mesh.shape.contains(p, start=previous)
        previous = mesh.shape.containing_element()
    hinted_time = time.time() - start

    print(f"\n   From anchor:   {anchor_time:.3f}s")
    print(f"   From previous: {hinted_time:.3f}s")
    print(f"   Speedup: {anchor_time/hinted_time:.2f}x")


def compare_brute_force(n=6, n_points=500):
    """Walk vs. testing every element."""
    print("\n" + "="*70)
    print("WALK vs. BRUTE FORCE")
    print("="*70)

    mesh = build_mesh(n, tolerances=Tolerances(progress=True))
    rng = np.random.default_rng(1)
    points = rng.uniform(0.0, 1.0, size=(n_points, 3))

    start = time.time()
    walked = [mesh.shape.contains(p) for p in points]
    walk_time = time.time() - start

    start = time.time()
    brute = [mesh.shape.brute_force_contains(p) for p in points]
    brute_time = time.time() - start

    print(f"\n   Walk:        {walk_time:.3f}s")
    print(f"   Brute force: {brute_time:.3f}s")
    print(f"   Agreement: {sum(a == b for a, b in zip(walked, brute))}/{n_points}")

    # Batch query with a progress bar
    mesh.table.set_node_potentials(mesh.table.nodes[:, 2])
    mesh.update_all_potentials()
    values = mesh.potential_at(points)
    print(f"   Max |potential - z|: {np.max(np.abs(values - points[:, 2])):.2e}")


if __name__ == '__main__':
    profile_walk()
    compare_start_hints()
    compare_brute_force()
