"""
Export modules for various formats.

Supported formats:
- MagicaVoxel (.vox) - Writing models and palettes back to voxel form
- glTF 2.0 (.glb) - Optimal for game engines (Godot, Unity)
- Wavefront (.obj) - Universal legacy support
"""

from .vox_exporter import VoxExporter
from .gltf_exporter import GLTFExporter
from .obj_exporter import OBJExporter

__all__ = ["VoxExporter", "GLTFExporter", "OBJExporter"]
