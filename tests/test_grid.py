"""
Unit tests for VoxelGrid.
"""

import sys
import unittest
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_importer.errors import (
    DegenerateModel, GeometryError, InvalidColorIndex, OutOfBounds, OversizedModel
)
from vox_importer.greedy_mesh import MeshBuilder
from vox_importer.grid import MAX_DIMENSION, VoxelGrid
from vox_importer.palette import Palette
from vox_importer.reader import ModelSize, VoxelList


def voxel_list(*voxels) -> VoxelList:
    return VoxelList(np.array(voxels, dtype=np.uint8).reshape(-1, 4))


def random_grid(shape, seed, colors=3, fill=0.4) -> VoxelGrid:
    rng = np.random.default_rng(seed)
    grid = VoxelGrid(*shape)
    solid = rng.random(shape) < fill
    grid.data[solid] = rng.integers(1, colors + 1, size=int(solid.sum()), dtype=np.uint8)
    return grid


class TestVoxelGrid(unittest.TestCase):
    """Tests for VoxelGrid basics."""

    def test_create_grid(self):
        """Test grid creation."""
        grid = VoxelGrid(16, 8, 4)
        assert grid.shape == (16, 8, 4)
        assert grid.data.dtype == np.uint8
        assert grid.count_voxels() == 0

    def test_degenerate_size(self):
        """Test zero or negative dimensions raise DegenerateModel."""
        with self.assertRaises(DegenerateModel):
            VoxelGrid(0, 4, 4)
        with self.assertRaises(DegenerateModel):
            VoxelGrid(4, -1, 4)

    def test_set_get_voxel(self):
        """Test setting and getting voxels."""
        grid = VoxelGrid(8, 8, 8)
        grid.set_voxel(1, 2, 3, 42)

        assert grid.get_index(1, 2, 3) == 42
        assert grid.get_index(0, 0, 0) is None
        assert grid.is_solid(1, 2, 3)
        assert not grid.is_solid(3, 2, 1)

    def test_out_of_bounds(self):
        """Test out-of-bounds access."""
        grid = VoxelGrid(8, 8, 8)
        with self.assertRaises(OutOfBounds):
            grid.set_voxel(100, 0, 0, 1)
        assert grid.get_index(100, 0, 0) is None
        assert not grid.is_solid(-1, 0, 0)

    def test_set_voxel_rejects_bad_index(self):
        """Test palette indices must fit in a byte."""
        grid = VoxelGrid(2, 2, 2)
        with self.assertRaises(ValueError):
            grid.set_voxel(0, 0, 0, 256)

    def test_occupancy(self):
        """Test occupancy mask and bounds."""
        grid = VoxelGrid(4, 4, 4)
        grid.set_voxel(1, 1, 1, 5)
        grid.set_voxel(2, 3, 2, 9)

        assert grid.count_voxels() == 2
        assert grid.occupancy.sum() == 2
        assert grid.occupied_bounds == ((1, 1, 1), (3, 4, 3))
        assert grid.used_indices().tolist() == [5, 9]

    def test_empty_bounds(self):
        """Test bounds of an empty grid."""
        assert VoxelGrid(3, 3, 3).occupied_bounds == ((0, 0, 0), (0, 0, 0))

    def test_iteration_order(self):
        """Test iteration is outer Z, middle Y, inner X."""
        grid = VoxelGrid(2, 2, 2)
        for x, y, z in [(0, 0, 1), (0, 1, 0), (1, 0, 0), (0, 0, 0), (1, 1, 1)]:
            grid.set_voxel(x, y, z, 1 + x + 2 * y + 4 * z)

        order = [(x, y, z) for x, y, z, _ in grid.iterate_voxels()]
        assert order == [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 0, 1), (1, 1, 1)]

        coords, indices = grid.to_sparse()
        assert coords.tolist() == [list(c) for c in order]
        assert indices.tolist() == [1, 2, 3, 5, 8]

    def test_oversized(self):
        """Test dimensions beyond 256 raise OversizedModel."""
        VoxelGrid(MAX_DIMENSION, 1, 1)
        with self.assertRaises(OversizedModel) as ctx:
            VoxelGrid(1, MAX_DIMENSION + 1, 1)
        assert isinstance(ctx.exception, GeometryError)
        assert ctx.exception.size == (1, 257, 1)

    def test_rotate_xy(self):
        """Test the quarter turn moves (x, y, z) to (y, size_x - 1 - x, z)."""
        grid = VoxelGrid(3, 2, 1)
        grid.set_voxel(2, 1, 0, 7)
        grid.set_voxel(0, 0, 0, 5)

        rotated = grid.rotate_xy()

        assert rotated.shape == (2, 3, 1)
        assert rotated.get_index(1, 0, 0) == 7
        assert rotated.get_index(0, 2, 0) == 5
        assert grid.get_index(2, 1, 0) == 7

    def test_rotate_xy_keeps_handedness(self):
        """Test a chiral voxel path keeps the sign of its edge determinant."""
        path = [(0, 0, 0), (1, 0, 0), (1, 1, 0), (1, 1, 1)]
        grid = VoxelGrid(2, 2, 2)
        for index, (x, y, z) in enumerate(path, start=1):
            grid.set_voxel(x, y, z, index)

        def handedness(g):
            coords, indices = g.to_sparse()
            points = coords[np.argsort(indices)]
            return round(np.linalg.det(np.diff(points, axis=0)))

        assert handedness(grid) == 1
        assert handedness(grid.rotate_xy()) == 1
        assert handedness(grid.rotate_xy().rotate_xy()) == 1


class TestBuild(unittest.TestCase):
    """Tests for building grids from decoded chunks."""

    def test_build(self):
        """Test voxels are placed at their coordinates."""
        grid = VoxelGrid.build(ModelSize(3, 3, 3), voxel_list((0, 1, 2, 10), (2, 2, 2, 20)))

        assert grid.count_voxels() == 2
        assert grid.get_index(0, 1, 2) == 10
        assert grid.get_index(2, 2, 2) == 20
        assert grid.warnings == []

    def test_out_of_bounds_voxel_skipped(self):
        """Test a voxel beyond the size is skipped with a warning."""
        grid = VoxelGrid.build(ModelSize(2, 2, 2), voxel_list((0, 0, 0, 1), (5, 0, 0, 2)))

        assert grid.count_voxels() == 1
        assert len(grid.warnings) == 1
        warning = grid.warnings[0]
        assert isinstance(warning, OutOfBounds)
        assert warning.coord == (5, 0, 0)
        assert warning.size == (2, 2, 2)

    def test_zero_index_skipped(self):
        """Test index 0 entries are skipped with a warning."""
        grid = VoxelGrid.build(ModelSize(2, 2, 2), voxel_list((1, 1, 1, 0), (0, 0, 0, 3)))

        assert grid.count_voxels() == 1
        assert not grid.is_solid(1, 1, 1)
        assert isinstance(grid.warnings[0], InvalidColorIndex)

    def test_last_write_wins(self):
        """Test repeated coordinates keep the last entry."""
        grid = VoxelGrid.build(
            ModelSize(2, 2, 2),
            voxel_list((0, 0, 0, 1), (1, 0, 0, 4), (0, 0, 0, 7), (1, 0, 0, 9), (0, 0, 0, 3)),
        )
        assert grid.get_index(0, 0, 0) == 3
        assert grid.get_index(1, 0, 0) == 9

    def test_empty_voxel_list(self):
        """Test a model without voxels builds an empty grid."""
        grid = VoxelGrid.build(ModelSize(4, 4, 4), voxel_list())
        assert grid.count_voxels() == 0
        assert grid.warnings == []

    def test_degenerate_model(self):
        """Test a SIZE with a zero dimension fails the build."""
        with self.assertRaises(DegenerateModel):
            VoxelGrid.build(ModelSize(4, 0, 4), voxel_list((0, 0, 0, 1)))


class TestFromMesh(unittest.TestCase):
    """Tests for recovering occupancy from a mesh."""

    def test_single_voxel(self):
        """Test a single voxel comes back with its index."""
        grid = VoxelGrid(3, 3, 3)
        grid.set_voxel(1, 2, 0, 12)
        mesh = MeshBuilder().build(grid, Palette())

        recovered = VoxelGrid.from_mesh(mesh, grid.shape)

        assert np.array_equal(recovered.data, grid.data)

    def test_solid_block_interior(self):
        """Test enclosed cells get the interior index."""
        grid = VoxelGrid(3, 3, 3)
        grid.data[:] = 4
        mesh = MeshBuilder().build(grid, Palette())

        recovered = VoxelGrid.from_mesh(mesh, grid.shape, interior_index=4)

        assert np.array_equal(recovered.data, grid.data)

    def test_round_trip_triangle_count(self):
        """Test re-meshing recovered occupancy yields the same triangle count."""
        palette = Palette()
        builder = MeshBuilder()
        for seed in range(5):
            grid = random_grid((6, 5, 4), seed)
            mesh = builder.build(grid, palette)

            recovered = VoxelGrid.from_mesh(mesh, grid.shape)
            remeshed = builder.build(recovered, palette)

            assert np.array_equal(recovered.occupancy, grid.occupancy)
            assert remeshed.triangle_count == mesh.triangle_count

    def test_empty_mesh(self):
        """Test an empty mesh gives an empty grid."""
        mesh = MeshBuilder().build(VoxelGrid(2, 2, 2), Palette())
        assert VoxelGrid.from_mesh(mesh, (2, 2, 2)).count_voxels() == 0


if __name__ == "__main__":
    unittest.main(verbosity=2)
