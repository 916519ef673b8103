"""
vox_importer
============

MagicaVoxel .vox import pipeline producing greedy-meshed triangle meshes.

This package parses the chunked .vox container, rebuilds every model's voxel
grid and palette, and converts each model into a watertight triangle mesh
whose coplanar same-colored faces are merged into maximal rectangles.

Key Features:
- Strict chunk reader with typed payloads and a closed chunk enumeration
- High-performance Greedy Meshing with Numba JIT compilation
- Per-model partial success and cooperative cancellation
- Vertex color or material slot meshes with palette texture coordinates
- Export to glTF 2.0 (.glb), Wavefront (.obj) and back to MagicaVoxel (.vox)

Example Usage:
    from vox_importer import import_vox, ImportOptions, MeshMode

    with open("castle.vox", "rb") as f:
        result = import_vox(f.read(), ImportOptions(mode=MeshMode.MATERIAL_SLOTS))

    for model in result.models:
        print(model.name, model.mesh.triangle_count if model.ok else model.error)
"""

__version__ = "1.0.0"

from .errors import (
    VoxImportError,
    FormatError,
    BadMagic,
    UnsupportedVersion,
    Truncated,
    MalformedChunk,
    GeometryError,
    OutOfBounds,
    InvalidColorIndex,
    UndefinedPaletteEntry,
    DegenerateModel,
    OversizedModel,
)
from .reader import Chunk, ChunkKind, ChunkTree, FormatReader, parse
from .grid import VoxelGrid
from .palette import Color, Material, Palette, srgb_to_linear
from .greedy_mesh import MeshBuilder, CulledMesher, MeshData, MeshMode, compare_mesh_stats
from .pipeline import (
    CancellationToken,
    ImportOptions,
    ImportPipeline,
    ImportResult,
    ModelResult,
    import_vox,
)

__all__ = [
    "VoxImportError",
    "FormatError",
    "BadMagic",
    "UnsupportedVersion",
    "Truncated",
    "MalformedChunk",
    "GeometryError",
    "OutOfBounds",
    "InvalidColorIndex",
    "UndefinedPaletteEntry",
    "DegenerateModel",
    "OversizedModel",
    "Chunk",
    "ChunkKind",
    "ChunkTree",
    "FormatReader",
    "parse",
    "VoxelGrid",
    "Color",
    "Material",
    "Palette",
    "srgb_to_linear",
    "MeshBuilder",
    "CulledMesher",
    "MeshData",
    "MeshMode",
    "compare_mesh_stats",
    "CancellationToken",
    "ImportOptions",
    "ImportPipeline",
    "ImportResult",
    "ModelResult",
    "import_vox",
]
