"""
Voxel Grid

Dense 3D array of palette indices for one model. Index 0 means "no voxel",
1-255 reference the palette.

Memory consideration: MagicaVoxel models are at most 256³, so a dense uint8
grid is at most 16 MB and gives O(1) lookups and vectorised face culling.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .errors import (
    DegenerateModel, GeometryError, InvalidColorIndex, OutOfBounds, OversizedModel
)
from .reader import ModelSize, VoxelList

logger = logging.getLogger(__name__)

# XYZI coordinates are single bytes
MAX_DIMENSION = 256


@dataclass
class VoxelGrid:
    """
    Dense voxel grid of palette indices.

    Coordinate system: MagicaVoxel native, X-right, Y-back, Z-up.

    Attributes:
        size_x, size_y, size_z: Grid dimensions
        warnings: Recoverable problems found while building the grid
    """

    size_x: int
    size_y: int
    size_z: int
    warnings: List[GeometryError] = field(default_factory=list, repr=False)
    _data: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        """Initialize the index array."""
        shape = (self.size_x, self.size_y, self.size_z)
        if min(shape) <= 0:
            raise DegenerateModel(shape)
        if max(shape) > MAX_DIMENSION:
            raise OversizedModel(shape, MAX_DIMENSION)
        self._data = np.zeros(shape, dtype=np.uint8)

    @classmethod
    def build(cls, size: ModelSize, voxels: VoxelList) -> "VoxelGrid":
        """
        Build a grid from a SIZE payload and the XYZI payload that follows it.

        Voxels outside the declared size and voxels with color index 0 are
        skipped and recorded in grid.warnings. When a coordinate appears more
        than once the last entry wins.

        Args:
            size: Decoded SIZE chunk
            voxels: Decoded XYZI chunk

        Returns:
            Populated VoxelGrid

        Raises:
            DegenerateModel: If any dimension is zero or negative
            OversizedModel: If any dimension exceeds MAX_DIMENSION
        """
        grid = cls(size.x, size.y, size.z)
        entries = voxels.voxels
        if len(entries) == 0:
            return grid

        xs = entries[:, 0].astype(np.int64)
        ys = entries[:, 1].astype(np.int64)
        zs = entries[:, 2].astype(np.int64)
        cs = entries[:, 3]

        in_bounds = (xs < size.x) & (ys < size.y) & (zs < size.z)
        valid = in_bounds & (cs != 0)

        for i in np.flatnonzero(~valid):
            coord = (int(xs[i]), int(ys[i]), int(zs[i]))
            if not in_bounds[i]:
                grid.warnings.append(OutOfBounds(coord, size.shape))
            else:
                grid.warnings.append(InvalidColorIndex(coord))

        if grid.warnings:
            logger.debug("Skipped %d of %d voxels", len(grid.warnings), len(entries))

        xs, ys, zs, cs = xs[valid], ys[valid], zs[valid], cs[valid]
        if len(cs) == 0:
            return grid

        # Last write wins: keep the final occurrence of every coordinate
        linear = np.ravel_multi_index((xs, ys, zs), grid.shape)
        _, first_in_reversed = np.unique(linear[::-1], return_index=True)
        keep = len(linear) - 1 - first_in_reversed

        grid._data[xs[keep], ys[keep], zs[keep]] = cs[keep]
        return grid

    @classmethod
    def from_mesh(
        cls,
        mesh,
        shape: Tuple[int, int, int],
        interior_index: int = 1
    ) -> "VoxelGrid":
        """
        Recover a grid from a local-space mesh produced by a mesher.

        Every quad paints the cells directly behind it with its palette
        index. Solid cells are found by sweeping along X: a -X face enters
        solid space, a +X face leaves it. Solid cells no quad touches are
        interior and get interior_index.

        Args:
            mesh: MeshData built without centering, offsets or scaling
            shape: Grid dimensions (x, y, z)
            interior_index: Palette index for enclosed cells

        Returns:
            New VoxelGrid
        """
        grid = cls(*shape)
        num_quads = len(mesh.vertices) // 4
        if num_quads == 0:
            return grid

        corners = np.rint(mesh.vertices).astype(np.int64).reshape(num_quads, 4, 3)
        lo = corners.min(axis=1)
        hi = corners.max(axis=1)
        normals = mesh.normals[::4]
        axes = np.abs(normals).argmax(axis=1)
        positive = normals[np.arange(num_quads), axes] > 0
        indices = mesh.palette_indices[::2]

        # Sweep deltas along X: +1 where solid starts, -1 where it ends
        delta = np.zeros((grid.size_x + 1, grid.size_y, grid.size_z), dtype=np.int32)

        for q in range(num_quads):
            axis = axes[q]
            cell_lo = lo[q].copy()
            cell_hi = hi[q].copy()
            layer = lo[q, axis] - 1 if positive[q] else lo[q, axis]
            cell_lo[axis] = layer
            cell_hi[axis] = layer + 1
            region = tuple(slice(a, b) for a, b in zip(cell_lo, cell_hi))
            grid._data[region] = indices[q]

            if axis == 0:
                step = -1 if positive[q] else 1
                delta[lo[q, 0], lo[q, 1]:hi[q, 1], lo[q, 2]:hi[q, 2]] += step

        solid = np.cumsum(delta, axis=0)[:grid.size_x] > 0
        grid._data[~solid] = 0
        grid._data[solid & (grid._data == 0)] = interior_index
        return grid

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Get grid dimensions (x, y, z)."""
        return (self.size_x, self.size_y, self.size_z)

    @property
    def data(self) -> np.ndarray:
        """Get the raw palette index array."""
        return self._data

    @property
    def occupancy(self) -> np.ndarray:
        """Get binary occupancy mask (True where voxel exists)."""
        return self._data > 0

    @property
    def occupied_bounds(self) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
        """Get tight bounds around occupied voxels."""
        occupied = np.argwhere(self.occupancy)
        if len(occupied) == 0:
            return ((0, 0, 0), (0, 0, 0))
        min_coords = occupied.min(axis=0)
        max_coords = occupied.max(axis=0) + 1  # exclusive upper bound
        return (tuple(int(v) for v in min_coords), tuple(int(v) for v in max_coords))

    def _in_bounds(self, x: int, y: int, z: int) -> bool:
        """Check if coordinates are within grid bounds."""
        return (
            0 <= x < self.size_x and
            0 <= y < self.size_y and
            0 <= z < self.size_z
        )

    def set_voxel(self, x: int, y: int, z: int, index: int):
        """
        Set a voxel at the given coordinates.

        Args:
            x, y, z: Voxel coordinates
            index: Palette index (1-255), 0 clears the cell

        Raises:
            OutOfBounds: If the coordinates are outside the grid
        """
        if not self._in_bounds(x, y, z):
            raise OutOfBounds((x, y, z), self.shape)
        if not 0 <= index <= 255:
            raise ValueError(f"Palette index out of range: {index}")
        self._data[x, y, z] = index

    def get_index(self, x: int, y: int, z: int) -> Optional[int]:
        """
        Get the palette index at coordinates.

        Returns:
            Palette index or None if empty/out of bounds
        """
        if not self._in_bounds(x, y, z):
            return None
        index = int(self._data[x, y, z])
        return index or None

    def is_solid(self, x: int, y: int, z: int) -> bool:
        """Check if a voxel exists at the given coordinates."""
        if not self._in_bounds(x, y, z):
            return False
        return self._data[x, y, z] > 0

    def count_voxels(self) -> int:
        """Count the number of solid voxels."""
        return int(np.count_nonzero(self._data))

    def used_indices(self) -> np.ndarray:
        """Sorted palette indices referenced by at least one voxel."""
        used = np.unique(self._data)
        return used[used != 0]

    def iterate_voxels(self) -> Iterator[Tuple[int, int, int, int]]:
        """
        Iterate over all solid voxels, outer Z, middle Y, inner X.

        Yields:
            Tuples of (x, y, z, palette_index)
        """
        coords, indices = self.to_sparse()
        for (x, y, z), index in zip(coords, indices):
            yield (int(x), int(y), int(z), int(index))

    def to_sparse(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert to sparse representation in iteration order.

        Returns:
            Tuple of (coordinates, indices) where:
            - coordinates: Array of shape (N, 3) with xyz positions
            - indices: Array of shape (N,) with palette indices
        """
        zyx = np.argwhere(self._data.transpose(2, 1, 0))
        coords = zyx[:, ::-1]
        indices = self._data[coords[:, 0], coords[:, 1], coords[:, 2]]
        return coords, indices

    def rotate_xy(self) -> "VoxelGrid":
        """
        Return a new grid turned a quarter turn about Z so +X faces forward.

        Voxel (x, y, z) moves to (y, size_x - 1 - x, z). Being a rotation,
        the model keeps its handedness.
        """
        rotated = VoxelGrid(self.size_y, self.size_x, self.size_z, warnings=list(self.warnings))
        rotated._data = np.ascontiguousarray(self._data.transpose(1, 0, 2)[:, ::-1, :])
        return rotated
