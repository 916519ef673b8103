"""
Greedy Meshing Algorithm with Numba JIT Compilation

This module implements the Greedy Meshing algorithm for optimal polygon
reduction of voxel geometry. The algorithm merges adjacent faces with the
same palette index into larger rectangular quads.

Performance: Numba JIT provides ~100x speedup over pure Python.
Reduction: Typically 80-95% vertex reduction for solid objects.

Algorithm Overview:
1. Face Culling: Only generate faces between solid and empty cells
2. Greedy Sweep: For each 2D slice, merge adjacent faces into quads
3. Emit Geometry: Generate vertex and index data, four vertices per quad

Plane Layout:
For a face direction along axis a, slices are indexed along a and the two
in-plane axes are u = (a + 1) % 3 and v = (a + 2) % 3. (u, v, a) is always a
right-handed basis, so quad corners listed counter-clockwise in (u, v) face
+a.
"""

import hashlib
from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
from numba import njit

from .palette import PALETTE_SIZE, Color, Material, Palette


class FaceDirection(IntEnum):
    """Face normal directions."""
    WEST = 0   # -X
    EAST = 1   # +X
    SOUTH = 2  # -Y
    NORTH = 3  # +Y
    BOTTOM = 4 # -Z
    TOP = 5    # +Z

    @property
    def axis(self) -> int:
        return self.value // 2

    @property
    def positive(self) -> bool:
        return self.value % 2 == 1


# Normal vectors for each face direction
FACE_NORMALS = np.array([
    [-1, 0, 0],  # WEST
    [1, 0, 0],   # EAST
    [0, -1, 0],  # SOUTH
    [0, 1, 0],   # NORTH
    [0, 0, -1],  # BOTTOM
    [0, 0, 1],   # TOP
], dtype=np.float32)

# Corner order of a quad in (u, v); reversed winding for negative faces
_CORNERS_POSITIVE = np.array([0, 1, 2, 3])
_CORNERS_NEGATIVE = np.array([0, 3, 2, 1])


class MeshMode(Enum):
    """How colors are carried by the mesh."""
    VERTEX_COLOR = "vertex_color"      # one material, per-vertex colors
    MATERIAL_SLOTS = "material_slots"  # one material slot per distinct color


class MeshData(NamedTuple):
    """Container for mesh geometry data."""
    vertices: np.ndarray         # (N, 3) float32 positions
    normals: np.ndarray          # (N, 3) float32 normals
    colors: np.ndarray           # (N, 4) uint8 RGBA colors
    uvs: np.ndarray              # (N, 2) float32 palette texture coordinates
    indices: np.ndarray          # (M,) uint32 triangle indices
    palette_indices: np.ndarray  # (M/3,) uint8 palette index per triangle
    face_materials: np.ndarray   # (M/3,) int32 material slot per triangle
    material_slots: Tuple[Material, ...] = ()

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def quad_count(self) -> int:
        return len(self.vertices) // 4

    @property
    def triangles(self) -> np.ndarray:
        """Triangle index triples of shape (M/3, 3)."""
        return self.indices.reshape(-1, 3)

    def sections(self) -> List[Tuple[Material, np.ndarray]]:
        """
        Split the triangle indices by material slot.

        Returns:
            List of (material, indices) in slot order
        """
        triangles = self.triangles
        return [
            (material, triangles[self.face_materials == material.slot].ravel())
            for material in self.material_slots
        ]

    def transformed(
        self,
        translation: Tuple[float, float, float] = (0.0, 0.0, 0.0),
        scale: float = 1.0
    ) -> "MeshData":
        """Return a copy with vertices moved by translation, then scaled."""
        offset = np.asarray(translation, dtype=np.float32)
        vertices = ((self.vertices + offset) * np.float32(scale)).astype(np.float32)
        return self._replace(vertices=vertices)

    def content_hash(self) -> str:
        """SHA-256 over the geometry and material colors, for asset caching."""
        digest = hashlib.sha256()
        for array in (self.vertices, self.normals, self.colors, self.uvs,
                      self.indices, self.palette_indices, self.face_materials):
            digest.update(np.ascontiguousarray(array).tobytes())
        for material in self.material_slots:
            digest.update(bytes(material.color))
        return digest.hexdigest()


def empty_mesh() -> MeshData:
    """A mesh with no geometry."""
    return MeshData(
        vertices=np.zeros((0, 3), dtype=np.float32),
        normals=np.zeros((0, 3), dtype=np.float32),
        colors=np.zeros((0, 4), dtype=np.uint8),
        uvs=np.zeros((0, 2), dtype=np.float32),
        indices=np.zeros((0,), dtype=np.uint32),
        palette_indices=np.zeros((0,), dtype=np.uint8),
        face_materials=np.zeros((0,), dtype=np.int32),
        material_slots=(),
    )


def exposed_faces(voxels: np.ndarray, direction: FaceDirection) -> np.ndarray:
    """
    Find the faces exposed in one direction.

    A face is exposed if its cell is solid and the neighbour in the face
    direction is empty or outside the grid.

    Args:
        voxels: Palette index grid of shape (X, Y, Z)
        direction: Face direction

    Returns:
        Array of shape (layers, U, V) holding the palette index of every
        exposed face and 0 elsewhere, laid out in plane order
    """
    axis = direction.axis
    solid = voxels > 0

    neighbour = np.zeros_like(solid)
    src = [slice(None)] * 3
    dst = [slice(None)] * 3
    if direction.positive:
        src[axis] = slice(1, None)
        dst[axis] = slice(None, -1)
    else:
        src[axis] = slice(None, -1)
        dst[axis] = slice(1, None)
    neighbour[tuple(dst)] = solid[tuple(src)]

    faces = np.where(solid & ~neighbour, voxels, 0).astype(np.uint8)
    order = (axis, (axis + 1) % 3, (axis + 2) % 3)
    return np.ascontiguousarray(faces.transpose(order))


@njit(cache=True, nogil=True)
def _greedy_merge(faces: np.ndarray, capacity: int) -> np.ndarray:
    """
    Merge exposed faces of every slice into maximal rectangles.

    Args:
        faces: Exposed face indices of shape (layers, U, V)
        capacity: Upper bound on the number of quads (number of faces)

    Returns:
        Array of shape (Q, 6) with rows (layer, u, v, du, dv, palette_index)
    """
    num_layers, u_size, v_size = faces.shape
    quads = np.zeros((capacity, 6), dtype=np.int32)
    consumed = np.zeros((u_size, v_size), dtype=np.bool_)
    quad_count = 0

    for layer in range(num_layers):
        consumed[:, :] = False

        for u in range(u_size):
            v = 0
            while v < v_size:
                index = faces[layer, u, v]

                # Skip if no face here or already merged
                if index == 0 or consumed[u, v]:
                    v += 1
                    continue

                # Expand width (along v)
                width = 1
                while (v + width < v_size and
                       not consumed[u, v + width] and
                       faces[layer, u, v + width] == index):
                    width += 1

                # Expand height (along u), the whole row must match
                height = 1
                done = False
                while u + height < u_size and not done:
                    for w in range(width):
                        if (consumed[u + height, v + w] or
                                faces[layer, u + height, v + w] != index):
                            done = True
                            break
                    if not done:
                        height += 1

                # Mark the region as processed
                for h in range(height):
                    for w in range(width):
                        consumed[u + h, v + w] = True

                quads[quad_count, 0] = layer
                quads[quad_count, 1] = u
                quads[quad_count, 2] = v
                quads[quad_count, 3] = height
                quads[quad_count, 4] = width
                quads[quad_count, 5] = index
                quad_count += 1

                v += width

    return quads[:quad_count]


def _quad_vertices(quads: np.ndarray, direction: FaceDirection) -> np.ndarray:
    """
    Convert plane-space quads to corner positions.

    Args:
        quads: Array of shape (Q, 6) from _greedy_merge
        direction: Face direction of the quads

    Returns:
        float32 array of shape (Q, 4, 3), corners wound counter-clockwise
        when seen from outside
    """
    axis = direction.axis
    u_axis = (axis + 1) % 3
    v_axis = (axis + 2) % 3

    layer, u, v, du, dv = (quads[:, k] for k in range(5))
    plane = layer + 1 if direction.positive else layer

    cu = np.stack([u, u + du, u + du, u], axis=1)
    cv = np.stack([v, v, v + dv, v + dv], axis=1)
    order = _CORNERS_POSITIVE if direction.positive else _CORNERS_NEGATIVE

    corners = np.empty((len(quads), 4, 3), dtype=np.float32)
    corners[:, :, axis] = plane[:, None]
    corners[:, :, u_axis] = cu[:, order]
    corners[:, :, v_axis] = cv[:, order]
    return corners


class MeshBuilder:
    """
    High-performance greedy meshing for voxel grids.

    This class wraps the Numba-accelerated meshing kernels and
    assembles their quads into a MeshData.

    Usage:
        builder = MeshBuilder()
        mesh = builder.build(grid, palette, MeshMode.MATERIAL_SLOTS)
    """

    def __init__(self, mode: MeshMode = MeshMode.VERTEX_COLOR):
        """
        Initialize the mesher.

        Args:
            mode: Default mesh mode when build() is not given one
        """
        self.mode = mode

    def merge(self, faces: np.ndarray) -> np.ndarray:
        """Turn the exposed faces of one direction into quads."""
        capacity = int(np.count_nonzero(faces))
        if capacity == 0:
            return np.zeros((0, 6), dtype=np.int32)
        return _greedy_merge(faces, capacity)

    def quads(self, voxels: np.ndarray) -> List[np.ndarray]:
        """
        Compute the quads of every face direction.

        Args:
            voxels: Palette index grid of shape (X, Y, Z)

        Returns:
            List of six (Q, 6) arrays in FaceDirection order
        """
        if voxels.ndim != 3:
            raise ValueError("Voxels must have shape (X, Y, Z)")
        return [self.merge(exposed_faces(voxels, d)) for d in FaceDirection]

    def build(self, grid, palette: Palette, mode: Optional[MeshMode] = None) -> MeshData:
        """
        Generate the mesh of a voxel grid.

        Args:
            grid: VoxelGrid instance
            palette: Palette resolving the grid's indices
            mode: Mesh mode (defaults to the builder's mode)

        Returns:
            MeshData in grid space, one unit per voxel
        """
        mode = mode or self.mode
        per_direction = self.quads(grid.data)

        quads = np.concatenate(per_direction)
        if len(quads) == 0:
            return empty_mesh()

        corners = np.concatenate([
            _quad_vertices(q, d) for q, d in zip(per_direction, FaceDirection)
        ])
        normals = np.concatenate([
            np.repeat(FACE_NORMALS[d][None, :], len(q), axis=0)
            for q, d in zip(per_direction, FaceDirection)
        ])
        quad_indices = quads[:, 5].astype(np.uint8)

        if mode is MeshMode.MATERIAL_SLOTS:
            materials, lookup = palette.material_slots(np.unique(quad_indices))
            quad_slots = lookup[quad_indices]
            # Group quads by slot so every section is contiguous
            order = np.argsort(quad_slots, kind="stable")
            corners = corners[order]
            normals = normals[order]
            quad_indices = quad_indices[order]
            quad_slots = quad_slots[order]
        else:
            materials = [Material(
                slot=0,
                color=Color(255, 255, 255, 255),
                palette_indices=tuple(int(i) for i in np.unique(quad_indices)),
            )]
            quad_slots = np.zeros(len(quads), dtype=np.int32)

        return _assemble(corners, normals, quad_indices, quad_slots, palette, materials)


class CulledMesher(MeshBuilder):
    """
    Face-culled meshing without merging.

    Emits one quad per exposed voxel face. Useful for comparison and
    for hosts that need per-voxel faces.
    """

    def merge(self, faces: np.ndarray) -> np.ndarray:
        cells = np.argwhere(faces)
        quads = np.ones((len(cells), 6), dtype=np.int32)
        quads[:, :3] = cells
        quads[:, 5] = faces[cells[:, 0], cells[:, 1], cells[:, 2]]
        return quads


def _assemble(
    corners: np.ndarray,
    normals: np.ndarray,
    quad_indices: np.ndarray,
    quad_slots: np.ndarray,
    palette: Palette,
    materials: List[Material]
) -> MeshData:
    """Expand per-quad data to per-vertex and per-triangle arrays."""
    num_quads = len(corners)

    # Generate two triangles for each quad
    # Triangle 1: 0, 1, 2
    # Triangle 2: 0, 2, 3
    base = (np.arange(num_quads, dtype=np.uint32) * 4)[:, None]
    indices = (base + np.array([0, 1, 2, 0, 2, 3], dtype=np.uint32)).ravel()

    vertex_indices = np.repeat(quad_indices, 4)
    uvs = np.empty((num_quads * 4, 2), dtype=np.float32)
    uvs[:, 0] = (vertex_indices.astype(np.float32) - 0.5) / PALETTE_SIZE
    uvs[:, 1] = 0.5

    return MeshData(
        vertices=corners.reshape(-1, 3),
        normals=np.repeat(normals, 4, axis=0).astype(np.float32),
        colors=palette.colors[vertex_indices],
        uvs=uvs,
        indices=indices,
        palette_indices=np.repeat(quad_indices, 2),
        face_materials=np.repeat(quad_slots, 2).astype(np.int32),
        material_slots=tuple(materials),
    )


def compare_mesh_stats(greedy_mesh: MeshData, culled_mesh: MeshData) -> dict:
    """
    Compare statistics between greedy and culled meshing.

    Args:
        greedy_mesh: MeshData from MeshBuilder
        culled_mesh: MeshData from CulledMesher

    Returns:
        Dictionary with comparison statistics
    """
    greedy_verts = greedy_mesh.vertex_count
    culled_verts = culled_mesh.vertex_count
    greedy_tris = greedy_mesh.triangle_count
    culled_tris = culled_mesh.triangle_count

    reduction_verts = (1 - greedy_verts / culled_verts) * 100 if culled_verts > 0 else 0
    reduction_tris = (1 - greedy_tris / culled_tris) * 100 if culled_tris > 0 else 0

    return {
        "greedy_vertices": greedy_verts,
        "culled_vertices": culled_verts,
        "greedy_triangles": greedy_tris,
        "culled_triangles": culled_tris,
        "vertex_reduction_percent": reduction_verts,
        "triangle_reduction_percent": reduction_tris,
    }
