"""
Ray Through a Tetrahedral Mesh

Follows a straight track through a meshed sample the way a transport code
would: enter through the mesh surface, then hop from element to element
through shared faces until the track leaves the mesh.

This example demonstrates:
    - MeshBoundary surface crossings (entry and exit)
    - Element-to-element stepping with Tetrahedron.first_normal / next_element
    - Point location with the directed walk
"""

import numpy as np
import matplotlib.pyplot as plt
from itertools import permutations
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from brep_mc.logging_config import setup_logging
from brep_mc.mesh.connectivity import ConnectivityTable
from brep_mc.mesh.mesh import Mesh


def cube_mesh(n: int, size: float = 1.0) -> Mesh:
    """
    Cube [0, size]^3 of n^3 cells, each cut into 6 tetrahedra.

    Parameters:
        n: Cells per side
        size: Edge length

    Returns:
        Mesh
    """
    m = n + 1
    nodes = np.array([(i, j, k) for k in range(m) for j in range(m) for i in range(m)],
                     dtype=float) * (size / n)
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
    return Mesh(ConnectivityTable(nodes, tets))


def trace(mesh: Mesh, p0, p1):
    """
    Track p0 -> p1 through the mesh.

    Returns:
        List of (element index, u_in, u_out) segments inside the mesh
    """
    p0 = np.asarray(p0, dtype=float)
    p1 = np.asarray(p1, dtype=float)
    delta = p1 - p0
    shape = mesh.shape
    segments = []

    if shape.contains(p0, p1):
        element = shape.containing_element()
        u_start = 0.0
    else:
        hit = shape.first_normal(p0, p1)
        if not hit.hit:
            return segments
        element = shape.next_element()
        u_start = hit.u

    while element is not None and u_start < 1.0:
        start = p0 + u_start * delta
        hit = element.first_normal(start, p1)
        u_end = u_start + hit.u * (1.0 - u_start) if hit.hit else 1.0
        segments.append((element.index, u_start, u_end))
        if not hit.hit:
            break
        element = element.next_element()
        u_start = u_end

    return segments


def plot_track(mesh: Mesh, p0, p1, segments, save_path=None):
    """
    Draw the mesh surface and the track, colored by element.

    Parameters:
        mesh: Mesh
        p0, p1: Track end points
        segments: Output of trace()
        save_path: Path to save figure (optional)
    """
    fig = plt.figure(figsize=(9, 8))
    ax = fig.add_subplot(111, projection='3d')

    for tri in mesh.boundary_triangles:
        corners = np.vstack([tri.vertices, tri.vertices[:1]])
        ax.plot(corners[:, 0], corners[:, 1], corners[:, 2], color='gray',
                linewidth=0.4, alpha=0.4)

    p0 = np.asarray(p0, dtype=float)
    delta = np.asarray(p1, dtype=float) - p0
    colors = plt.cm.viridis(np.linspace(0, 1, max(len(segments), 1)))
    for (index, u_in, u_out), color in zip(segments, colors):
        a, b = p0 + u_in * delta, p0 + u_out * delta
        ax.plot([a[0], b[0]], [a[1], b[1]], [a[2], b[2]], color=color, linewidth=2.5)
        ax.scatter(*a, color=color, s=12)

    ax.set_xlabel('x', fontsize=12)
    ax.set_ylabel('y', fontsize=12)
    ax.set_zlabel('z', fontsize=12)
    ax.set_title(f'Track through {len(segments)} elements', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=200, bbox_inches='tight')
        print(f"Figure saved: {save_path}")

    return fig


if __name__ == '__main__':
    setup_logging()

    mesh = cube_mesh(4)
    p0 = [-0.5, 0.13, 0.21]
    p1 = [1.5, 0.87, 0.74]

    print(f"\n{'='*70}")
    print(f"Ray Through Mesh")
    print(f"{'='*70}")
    print(f"  Elements: {mesh.table.num_volume_elements}")
    print(f"  Surface triangles: {len(mesh.boundary_triangles)}")
    print(f"  Track: {p0} -> {p1}")
    print(f"{'='*70}\n")

    segments = trace(mesh, p0, p1)
    path_length = np.linalg.norm(np.subtract(p1, p0))
    inside = sum(u_out - u_in for _, u_in, u_out in segments) * path_length

    for index, u_in, u_out in segments:
        print(f"  element {index:4d}: u = {u_in:.6f} .. {u_out:.6f}")
    print(f"\n  Elements crossed: {len(segments)}")
    print(f"  Path length inside: {inside:.6f}")

    save_path = Path(__file__).parent / 'ray_through_mesh.png'
    plot_track(mesh, p0, p1, segments, save_path=save_path)
