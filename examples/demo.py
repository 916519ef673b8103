#!/usr/bin/env python3
"""
vox_importer Demo Script

This script demonstrates the full import pipeline by:
1. Creating synthetic .vox files (no external assets needed)
2. Importing them with greedy and culled meshing
3. Exporting to all supported formats
4. Printing statistics and comparisons

Run with: python examples/demo.py
"""

import sys
import time
from pathlib import Path

import numpy as np

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_importer import ImportOptions, MeshMode, VoxelGrid, import_vox
from vox_importer.exporters import GLTFExporter, OBJExporter, VoxExporter
from vox_importer.greedy_mesh import CulledMesher, MeshBuilder, compare_mesh_stats
from vox_importer.palette import Palette


def create_sphere(size: int = 32) -> VoxelGrid:
    """Solid sphere with two color bands."""
    grid = VoxelGrid(size, size, size)
    center = (size - 1) / 2
    x, y, z = np.indices(grid.shape)
    dist = np.sqrt((x - center) ** 2 + (y - center) ** 2 + (z - center) ** 2)
    inside = dist < size / 2 - 1
    grid.data[inside] = np.where(z[inside] < size // 2, 79, 121).astype(np.uint8)
    return grid


def create_tree(size: int = 24) -> VoxelGrid:
    """Trunk with a stepped cone of foliage."""
    grid = VoxelGrid(size, size, size * 2)
    cx = size // 2
    grid.data[cx - 1:cx + 1, cx - 1:cx + 1, :size] = 153  # trunk
    for z in range(size // 2, size * 2 - 2):
        radius = max(1, (size * 2 - z) // 3)
        grid.data[cx - radius:cx + radius, cx - radius:cx + radius, z] = 219  # foliage
    return grid


def create_checker(size: int = 16) -> VoxelGrid:
    """Flat checkerboard, the worst case for greedy merging."""
    grid = VoxelGrid(size, size, 1)
    x, y = np.indices((size, size))
    grid.data[:, :, 0] = np.where((x + y) % 2 == 0, 1, 2).astype(np.uint8)
    return grid


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("vox_importer - Demo")
    print("=" * 60)

    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    models = [("sphere", create_sphere()), ("tree", create_tree()), ("checker", create_checker())]
    vox_bytes = VoxExporter().to_bytes(
        [grid for _, grid in models],
        names=[name for name, _ in models],
        translations=[(0, 0, 0), (40, 0, 0), (0, 40, 0)],
    )
    (output_dir / "demo.vox").write_bytes(vox_bytes)
    print(f"\nWrote {len(vox_bytes)} bytes to {output_dir / 'demo.vox'}")

    total_start = time.time()

    for mode in MeshMode:
        print(f"\n--- Importing with mode: {mode.value} ---")
        start = time.time()
        result = import_vox(vox_bytes, ImportOptions(mode=mode, scale=0.1))
        print(f"  Import: {(time.time() - start) * 1000:.1f}ms")

        for model in result.models:
            mesh = model.mesh
            print(f"  {model.name}:")
            print(f"    Voxels: {model.grid.count_voxels()}")
            print(f"    Vertices: {mesh.vertex_count}")
            print(f"    Triangles: {mesh.triangle_count}")
            print(f"    Material slots: {len(mesh.material_slots)}")

            base_path = output_dir / f"{model.name}_{mode.value}"
            GLTFExporter().export(mesh, base_path.with_suffix(".glb"), name=model.name)
            obj_mode = "mtl" if mode is MeshMode.MATERIAL_SLOTS else "extended"
            OBJExporter(vertex_colors_mode=obj_mode).export(
                mesh, base_path.with_suffix(".obj"), model.name, palette=result.palette
            )
            print(f"    Saved: {base_path.with_suffix('.glb')}, {base_path.with_suffix('.obj')}")

    print(f"\nDemo complete! Total time: {time.time() - total_start:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


def benchmark_greedy_meshing():
    """Benchmark greedy meshing performance."""
    print("\n--- Greedy Meshing Benchmark ---\n")

    palette = Palette()

    for size in [16, 32, 64, 128]:
        # Create a solid cube
        grid = VoxelGrid(size, size, size)
        grid.data[:] = 1

        start = time.time()
        greedy_mesh = MeshBuilder().build(grid, palette)
        greedy_time = time.time() - start

        start = time.time()
        culled_mesh = CulledMesher().build(grid, palette)
        culled_time = time.time() - start

        stats = compare_mesh_stats(greedy_mesh, culled_mesh)

        print(f"Grid size: {size}x{size}x{size}")
        print(f"  Greedy: {greedy_time*1000:.1f}ms, {stats['greedy_vertices']} verts")
        print(f"  Culled: {culled_time*1000:.1f}ms, {stats['culled_vertices']} verts")
        print(f"  Reduction: {stats['vertex_reduction_percent']:.1f}%")
        print()


if __name__ == "__main__":
    run_demo()

    # Uncomment to run benchmark
    # benchmark_greedy_meshing()
