"""
glTF 2.0 Exporter (.glb binary format)

glTF is the preferred format for game engines (Godot, Unity, Unreal).
This exporter generates binary glTF files with:
- Vertex colors and palette texture coordinates
- Proper sRGB to Linear conversion
- Z-up to Y-up conversion
- One primitive per material slot

glTF Structure:
- JSON header describing scene graph
- Binary buffer containing geometry data
  - Positions (float32 vec3)
  - Normals (float32 vec3)
  - Texture coordinates (float32 vec2)
  - Colors (uint8 vec4 normalized)
  - Indices per primitive (uint16/uint32)
"""

import json
import struct
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import numpy as np

from ..coords import CoordinateSystem, transform_vertices
from ..greedy_mesh import MeshData
from ..palette import srgb_to_linear


# glTF constants
GLTF_VERSION = "2.0"
GENERATOR = "vox_importer"

# Component types
UNSIGNED_BYTE = 5121
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

# Buffer view targets
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

# Primitive modes
TRIANGLES = 4

GLB_MAGIC = 0x46546C67  # "glTF"
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942


def _pad4(data: bytes, fill: bytes = b'\x00') -> bytes:
    return data + fill * ((4 - len(data) % 4) % 4)


class GLTFExporter:
    """
    Export mesh data to glTF 2.0 binary format (.glb).

    Features:
    - Vertex colors with sRGB to Linear conversion
    - Flat shading normals
    - Material slots as separate primitives
    """

    def __init__(
        self,
        convert_colors: bool = True,
        coordinate_system: CoordinateSystem = CoordinateSystem.GLTF
    ):
        """
        Initialize the exporter.

        Args:
            convert_colors: If True, convert sRGB to Linear for vertex colors
            coordinate_system: Target coordinate system
        """
        self.convert_colors = convert_colors
        self.coordinate_system = coordinate_system

    def export(
        self,
        mesh: MeshData,
        output_path: Union[str, Path],
        name: str = "VoxelModel"
    ):
        """
        Export mesh to .glb file.

        Args:
            mesh: MeshData from MeshBuilder
            output_path: Output file path
            name: Node and mesh name
        """
        Path(output_path).write_bytes(self.to_bytes(mesh, name))

    def to_bytes(self, mesh: MeshData, name: str = "VoxelModel") -> bytes:
        """
        Serialize a mesh to GLB bytes.

        Raises:
            ValueError: If the mesh has no geometry
        """
        if len(mesh.vertices) == 0:
            raise ValueError("Cannot export empty mesh")

        vertices = transform_vertices(
            mesh.vertices, CoordinateSystem.MAGICAVOXEL, self.coordinate_system
        )
        normals = transform_vertices(
            mesh.normals, CoordinateSystem.MAGICAVOXEL, self.coordinate_system
        )

        # Convert colors from sRGB to Linear
        if self.convert_colors:
            colors = np.round(srgb_to_linear(mesh.colors) * 255).astype(np.uint8)
        else:
            colors = mesh.colors.astype(np.uint8)

        # Vertex attributes first; every element is a multiple of 4 bytes
        attributes = [
            ("POSITION", vertices.astype(np.float32), FLOAT, "VEC3", False),
            ("NORMAL", normals.astype(np.float32), FLOAT, "VEC3", False),
            ("TEXCOORD_0", mesh.uvs.astype(np.float32), FLOAT, "VEC2", False),
            ("COLOR_0", colors, UNSIGNED_BYTE, "VEC4", True),
        ]

        buffer = bytearray()
        accessors: List[Dict[str, Any]] = []
        buffer_views: List[Dict[str, Any]] = []
        attribute_ids: Dict[str, int] = {}

        for key, array, component_type, kind, normalized in attributes:
            view = {
                "buffer": 0,
                "byteOffset": len(buffer),
                "byteLength": array.nbytes,
                "target": ARRAY_BUFFER,
            }
            buffer += array.tobytes()
            accessor = {
                "bufferView": len(buffer_views),
                "componentType": component_type,
                "count": len(array),
                "type": kind,
            }
            if normalized:
                accessor["normalized"] = True
            if key == "POSITION":
                accessor["min"] = array.min(axis=0).tolist()
                accessor["max"] = array.max(axis=0).tolist()
            attribute_ids[key] = len(accessors)
            buffer_views.append(view)
            accessors.append(accessor)

        # Determine index type
        if len(mesh.vertices) <= 65536:
            index_dtype, index_type = np.uint16, UNSIGNED_SHORT
        else:
            index_dtype, index_type = np.uint32, UNSIGNED_INT

        primitives = []
        materials = []
        for material, indices in mesh.sections():
            if len(indices) == 0:
                continue
            data = indices.astype(index_dtype).tobytes()
            buffer_views.append({
                "buffer": 0,
                "byteOffset": len(buffer),
                "byteLength": len(data),
                "target": ELEMENT_ARRAY_BUFFER,
            })
            buffer += _pad4(data)
            accessors.append({
                "bufferView": len(buffer_views) - 1,
                "componentType": index_type,
                "count": len(indices),
                "type": "SCALAR",
            })
            primitives.append({
                "attributes": dict(attribute_ids),
                "indices": len(accessors) - 1,
                "material": len(materials),
                "mode": TRIANGLES,
            })
            materials.append(self._material(material))

        gltf = {
            "asset": {"version": GLTF_VERSION, "generator": GENERATOR},
            "scene": 0,
            "scenes": [{"nodes": [0]}],
            "nodes": [{"mesh": 0, "name": name}],
            "meshes": [{"primitives": primitives, "name": name}],
            "materials": materials,
            "accessors": accessors,
            "bufferViews": buffer_views,
            "buffers": [{"byteLength": len(buffer)}],
        }
        return self._pack_glb(gltf, bytes(buffer))

    @staticmethod
    def _material(material) -> Dict[str, Any]:
        """
        glTF material for one slot.

        The base color stays white since COLOR_0 carries the voxel colors;
        the slot color and palette indices are kept in extras for hosts
        that assign their own materials.
        """
        result = {
            "name": material.name,
            "extras": {
                "color": list(material.color),
                "paletteIndices": list(material.palette_indices),
            },
            "pbrMetallicRoughness": {
                "baseColorFactor": [1.0, 1.0, 1.0, 1.0],
                "metallicFactor": 0.0,
                "roughnessFactor": 0.9,
            },
            "doubleSided": False,
        }
        if material.color.a < 255:
            result["alphaMode"] = "BLEND"
        return result

    @staticmethod
    def _pack_glb(gltf: Dict[str, Any], buffer_data: bytes) -> bytes:
        """Assemble the GLB container."""
        json_bytes = _pad4(json.dumps(gltf, separators=(',', ':')).encode('utf-8'), b' ')
        buffer_data = _pad4(buffer_data)
        total_length = 12 + 8 + len(json_bytes) + 8 + len(buffer_data)

        return b''.join([
            struct.pack('<III', GLB_MAGIC, 2, total_length),
            struct.pack('<II', len(json_bytes), CHUNK_JSON),
            json_bytes,
            struct.pack('<II', len(buffer_data), CHUNK_BIN),
            buffer_data,
        ])


def read_glb_json(data: bytes) -> Tuple[Dict[str, Any], bytes]:
    """
    Split GLB bytes into the JSON document and the binary chunk.

    Raises:
        ValueError: If the container header is invalid
    """
    magic, version, length = struct.unpack_from('<III', data, 0)
    if magic != GLB_MAGIC or version != 2 or length != len(data):
        raise ValueError("Invalid GLB container")
    json_length, _ = struct.unpack_from('<II', data, 12)
    document = json.loads(data[20:20 + json_length].decode('utf-8'))
    bin_offset = 20 + json_length
    bin_length, _ = struct.unpack_from('<II', data, bin_offset)
    return document, data[bin_offset + 8:bin_offset + 8 + bin_length]
