"""
MagicaVoxel .vox Format Exporter

The .vox format is a RIFF-style chunk-based binary format used by MagicaVoxel.
It stores voxels as sparse data with a 256-color palette.

File Structure:
- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container)
  - PACK chunk: model count (only written for more than one model)
  - SIZE chunk: dimensions (x, y, z)
  - XYZI chunk: voxel data (x, y, z, color_index per voxel)
  - nTRN / nGRP / nSHP chunks: scene graph (names and translations)
  - RGBA chunk: 256-color palette (omitted for the default palette)

Limitations:
- Maximum 255 colors
- Maximum 256x256x256 dimensions per model
- Coordinates are uint8
"""

import struct
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..grid import MAX_DIMENSION
from ..palette import PALETTE_SIZE, Palette
from ..reader import VOX_MAGIC

VOX_VERSION = 150


def pack_string(value: str) -> bytes:
    raw = value.encode('utf-8')
    return struct.pack('<i', len(raw)) + raw


def pack_dict(values: Dict[str, str]) -> bytes:
    parts = [struct.pack('<i', len(values))]
    for key, value in values.items():
        parts.append(pack_string(key))
        parts.append(pack_string(value))
    return b''.join(parts)


class VoxChunk:
    """Base class for VOX chunks."""

    def __init__(self, chunk_id: bytes, content: bytes = b''):
        self.chunk_id = chunk_id
        self.content = content
        self.children = b''

    def add_child(self, chunk: "VoxChunk"):
        """Append a serialized child chunk."""
        self.children += chunk.pack()

    def pack(self) -> bytes:
        """Pack the chunk into bytes."""
        return (
            self.chunk_id +
            struct.pack('<ii', len(self.content), len(self.children)) +
            self.content +
            self.children
        )


class PackChunk(VoxChunk):
    """PACK chunk containing the model count."""

    def __init__(self, count: int):
        super().__init__(b'PACK', struct.pack('<i', count))


class SizeChunk(VoxChunk):
    """SIZE chunk containing model dimensions."""

    def __init__(self, size_x: int, size_y: int, size_z: int):
        # Note: VOX uses x, y, z where z is up
        super().__init__(b'SIZE', struct.pack('<iii', size_x, size_y, size_z))


class XYZIChunk(VoxChunk):
    """
    XYZI chunk containing voxel positions and color indices.

    Values are written as given; coordinates outside the model size or
    index 0 produce a file the importer reports warnings for.
    """

    def __init__(self, voxels=None):
        """
        Args:
            voxels: Sequence or (N, 4) array of (x, y, z, color_index)
        """
        super().__init__(b'XYZI')
        self._voxels: List[Tuple[int, int, int, int]] = [
            tuple(int(c) for c in voxel) for voxel in (voxels if voxels is not None else ())
        ]
        self.finalize()

    def add_voxel(self, x: int, y: int, z: int, color_index: int):
        """
        Add a voxel to the chunk.

        Args:
            x, y, z: Voxel coordinates (0-255)
            color_index: Palette index (1-255, 0 is air)
        """
        self._voxels.append((x, y, z, color_index))
        self.finalize()

    def finalize(self):
        """Build the content bytes from added voxels."""
        data = np.array(self._voxels, dtype=np.uint8).reshape(-1, 4)
        self.content = struct.pack('<i', len(data)) + data.tobytes()


class RGBAChunk(VoxChunk):
    """RGBA chunk containing the 256-color palette."""

    def __init__(self, palette: Palette):
        # Entry k holds the color of palette index k + 1
        entries = np.zeros((PALETTE_SIZE, 4), dtype=np.uint8)
        entries[:PALETTE_SIZE - 1] = palette.colors[1:]
        super().__init__(b'RGBA', entries.tobytes())


class MaterialChunk(VoxChunk):
    """MATL chunk with material properties for one palette index."""

    def __init__(self, material_id: int, properties: Dict[str, str]):
        super().__init__(b'MATL', struct.pack('<i', material_id) + pack_dict(properties))


class TransformChunk(VoxChunk):
    """nTRN scene node with a single frame."""

    def __init__(
        self,
        node_id: int,
        child_id: int,
        name: Optional[str] = None,
        translation: Optional[Tuple[int, int, int]] = None,
        layer_id: int = -1
    ):
        attributes = {"_name": name} if name else {}
        frame = {"_t": " ".join(str(int(t)) for t in translation)} if translation else {}
        super().__init__(b'nTRN', (
            struct.pack('<i', node_id) + pack_dict(attributes) +
            struct.pack('<iiii', child_id, -1, layer_id, 1) + pack_dict(frame)
        ))


class GroupChunk(VoxChunk):
    """nGRP scene node."""

    def __init__(self, node_id: int, child_ids: Sequence[int]):
        content = struct.pack('<i', node_id) + pack_dict({})
        content += struct.pack('<i', len(child_ids))
        content += b''.join(struct.pack('<i', c) for c in child_ids)
        super().__init__(b'nGRP', content)


class ShapeChunk(VoxChunk):
    """nSHP scene node referencing one model."""

    def __init__(self, node_id: int, model_id: int):
        super().__init__(b'nSHP', (
            struct.pack('<i', node_id) + pack_dict({}) +
            struct.pack('<ii', 1, model_id) + pack_dict({})
        ))


class MainChunk(VoxChunk):
    """MAIN container chunk."""

    def __init__(self, children: Sequence[VoxChunk] = ()):
        super().__init__(b'MAIN')
        for chunk in children:
            self.add_child(chunk)


def build_vox(children: Sequence[VoxChunk], version: int = VOX_VERSION) -> bytes:
    """
    Assemble a complete .vox buffer.

    Args:
        children: Chunks placed under MAIN, in order
        version: Header version

    Returns:
        File contents
    """
    return VOX_MAGIC + struct.pack('<i', version) + MainChunk(children).pack()


class VoxExporter:
    """
    Export voxel grids to MagicaVoxel .vox format.

    Usage:
        exporter = VoxExporter()
        exporter.export([grid], "output.vox", palette)
    """

    def __init__(self, version: int = VOX_VERSION):
        """
        Initialize the exporter.

        Args:
            version: Header version to write
        """
        self.version = version

    def to_bytes(
        self,
        grids: Sequence,
        palette: Optional[Palette] = None,
        names: Optional[Sequence[Optional[str]]] = None,
        translations: Optional[Sequence[Tuple[int, int, int]]] = None
    ) -> bytes:
        """
        Serialize grids and palette to .vox bytes.

        A scene graph is written when names or translations are given.

        Args:
            grids: VoxelGrid instances, one model each
            palette: Palette to write; no RGBA chunk for None or the default
            names: Optional model names
            translations: Optional model translations

        Returns:
            File contents
        """
        chunks: List[VoxChunk] = []
        if len(grids) > 1:
            chunks.append(PackChunk(len(grids)))

        for grid in grids:
            if any(s > MAX_DIMENSION for s in grid.shape):
                raise ValueError(
                    f"VOX format limited to 256x256x256. Grid size: {grid.shape}"
                )
            chunks.append(SizeChunk(*grid.shape))
            chunks.append(XYZIChunk(np.column_stack(grid.to_sparse())))

        if names is not None or translations is not None:
            chunks.extend(self._scene_chunks(len(grids), names, translations))

        if palette is not None and not palette.is_default:
            chunks.append(RGBAChunk(palette))
            for index, material in sorted(palette.materials.items()):
                chunks.append(MaterialChunk(index, material.properties))

        return build_vox(chunks, self.version)

    @staticmethod
    def _scene_chunks(count, names, translations) -> List[VoxChunk]:
        """Root transform -> group -> (transform -> shape) per model."""
        names = list(names) if names is not None else [None] * count
        translations = list(translations) if translations is not None else [None] * count

        chunks: List[VoxChunk] = [TransformChunk(0, 1)]
        chunks.append(GroupChunk(1, [2 + 2 * i for i in range(count)]))
        for i in range(count):
            chunks.append(TransformChunk(2 + 2 * i, 3 + 2 * i, names[i], translations[i], layer_id=0))
            chunks.append(ShapeChunk(3 + 2 * i, i))
        return chunks

    def export(
        self,
        grids: Sequence,
        output_path: Union[str, Path],
        palette: Optional[Palette] = None,
        names: Optional[Sequence[Optional[str]]] = None,
        translations: Optional[Sequence[Tuple[int, int, int]]] = None
    ):
        """
        Export grids to a .vox file.

        Args:
            grids: VoxelGrid instances
            output_path: Output file path
            palette: Palette to write
            names: Optional model names
            translations: Optional model translations
        """
        Path(output_path).write_bytes(self.to_bytes(grids, palette, names, translations))
