"""
Coordinate System Conversions

Meshes are built in MagicaVoxel space and converted by the exporters.

Coordinate Systems:
- MagicaVoxel: Right-handed, Z-up (+X Right, +Y Back, +Z Up)
- glTF: Right-handed, Y-up (+X Right, +Y Up, +Z Front)
- Blender: Right-handed, Z-up (same as MagicaVoxel)

All predefined conversions are rotations, so triangle winding is kept.
"""

from enum import Enum

import numpy as np


class CoordinateSystem(Enum):
    """Target coordinate system for export."""
    MAGICAVOXEL = "magicavoxel"  # Z-up, right-handed (native)
    GLTF = "gltf"                # Y-up, right-handed
    BLENDER = "blender"          # Z-up, right-handed (same as native)


# MagicaVoxel to glTF: x' = x, y' = z, z' = -y
_MAGICAVOXEL_TO_GLTF = np.array([
    [1, 0, 0],
    [0, 0, 1],
    [0, -1, 0]
], dtype=np.float64)

_TRANSFORMS = {
    (CoordinateSystem.MAGICAVOXEL, CoordinateSystem.GLTF): _MAGICAVOXEL_TO_GLTF,
    (CoordinateSystem.MAGICAVOXEL, CoordinateSystem.BLENDER): np.eye(3, dtype=np.float64),
}


def get_coordinate_transform(
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Get the 3x3 transformation matrix between coordinate systems.

    Args:
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        3x3 transformation matrix
    """
    if source == target:
        return np.eye(3, dtype=np.float64)

    if (source, target) in _TRANSFORMS:
        return _TRANSFORMS[(source, target)]

    # Rotation matrices invert by transposition
    if (target, source) in _TRANSFORMS:
        return _TRANSFORMS[(target, source)].T

    # Chain through native
    to_native = get_coordinate_transform(source, CoordinateSystem.MAGICAVOXEL)
    from_native = get_coordinate_transform(CoordinateSystem.MAGICAVOXEL, target)
    return from_native @ to_native


def transform_vertices(
    vertices: np.ndarray,
    source: CoordinateSystem,
    target: CoordinateSystem
) -> np.ndarray:
    """
    Transform an array of positions or normals between coordinate systems.

    Args:
        vertices: Array of shape (N, 3)
        source: Source coordinate system
        target: Target coordinate system

    Returns:
        Transformed float32 array of shape (N, 3)
    """
    matrix = get_coordinate_transform(source, target)
    return (vertices @ matrix.T).astype(np.float32)
