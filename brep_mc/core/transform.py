"""
Rigid-body transforms for shapes and meshes.

Rotations use Z-Y-Z Euler angles: first phi about z, then theta about y,
then psi about z, i.e. R = Rz(psi) @ Ry(theta) @ Rz(phi).
"""

import numpy as np
from scipy.spatial.transform import Rotation


def rotation_matrix(phi: float, theta: float, psi: float) -> np.ndarray:
    """
    3x3 rotation matrix for Z-Y-Z Euler angles.

    Parameters:
        phi: First rotation about z [rad]
        theta: Rotation about y [rad]
        psi: Final rotation about z [rad]

    Returns:
        Rotation matrix R (apply as R @ v)
    """
    # Intrinsic 'ZYZ' composes left to right: Rz(psi) @ Ry(theta) @ Rz(phi)
    return Rotation.from_euler('ZYZ', [psi, theta, phi]).as_matrix()


def rotate_points(points: np.ndarray, pivot, phi: float, theta: float,
                  psi: float) -> np.ndarray:
    """Rotate one point (shape (3,)) or many (shape (n, 3)) about pivot."""
    pts = np.asarray(points, dtype=np.float64)
    pivot = np.asarray(pivot, dtype=np.float64)
    R = rotation_matrix(phi, theta, psi)
    return (pts - pivot) @ R.T + pivot


def rotate_vectors(vectors: np.ndarray, phi: float, theta: float,
                   psi: float) -> np.ndarray:
    """Rotate direction vectors (no pivot)."""
    vecs = np.asarray(vectors, dtype=np.float64)
    return vecs @ rotation_matrix(phi, theta, psi).T


def translate_points(points: np.ndarray, distance) -> np.ndarray:
    return np.asarray(points, dtype=np.float64) + np.asarray(distance, dtype=np.float64)
