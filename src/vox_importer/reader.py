"""
MagicaVoxel .vox Format Reader

The .vox format is a RIFF-style chunk-based binary format used by MagicaVoxel.

File Structure:
- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container)
  - PACK chunk: number of models (optional)
  - SIZE chunk: dimensions (x, y, z)
  - XYZI chunk: voxel data (x, y, z, color_index per voxel)
  - ... more SIZE/XYZI pairs for multi-model files
  - RGBA chunk: 256-color palette (optional)
  - MATL chunks: material properties (optional)
  - nTRN / nGRP / nSHP chunks: scene graph (optional)

Every chunk starts with a 12 byte header: id (4 bytes), content size
(int32) and children size (int32), followed by the content and then the
nested children. Chunk ids this reader does not know are skipped by their
declared sizes, so files written by newer tools still load.
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .errors import BadMagic, MalformedChunk, Truncated, UnsupportedVersion

logger = logging.getLogger(__name__)


# VOX format constants
VOX_MAGIC = b'VOX '
SUPPORTED_VERSIONS = (150, 200)
HEADER_SIZE = 8
CHUNK_HEADER_SIZE = 12
PALETTE_SIZE = 256
MAX_NESTING = 64


class ChunkKind(Enum):
    """Chunk ids understood by the reader."""
    MAIN = b'MAIN'
    PACK = b'PACK'
    SIZE = b'SIZE'
    XYZI = b'XYZI'
    RGBA = b'RGBA'
    MATL = b'MATL'
    TRANSFORM = b'nTRN'
    GROUP = b'nGRP'
    SHAPE = b'nSHP'


_KINDS: Dict[bytes, ChunkKind] = {kind.value: kind for kind in ChunkKind}


@dataclass(frozen=True)
class ModelCount:
    """PACK chunk payload."""
    count: int


@dataclass(frozen=True)
class ModelSize:
    """SIZE chunk payload."""
    x: int
    y: int
    z: int

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True, eq=False)
class VoxelList:
    """XYZI chunk payload: array of shape (N, 4) with x, y, z, color_index."""
    voxels: np.ndarray

    def __len__(self) -> int:
        return len(self.voxels)


@dataclass(frozen=True, eq=False)
class PaletteData:
    """RGBA chunk payload: the 256 raw entries exactly as stored."""
    entries: np.ndarray


@dataclass(frozen=True)
class MaterialData:
    """MATL chunk payload."""
    material_id: int
    properties: Dict[str, str]


@dataclass(frozen=True)
class TransformNode:
    """nTRN chunk payload."""
    node_id: int
    attributes: Dict[str, str]
    child_id: int
    reserved_id: int
    layer_id: int
    frames: Tuple[Dict[str, str], ...]
    translation: Tuple[int, int, int] = (0, 0, 0)

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get("_name")


@dataclass(frozen=True)
class GroupNode:
    """nGRP chunk payload."""
    node_id: int
    attributes: Dict[str, str]
    child_ids: Tuple[int, ...]


@dataclass(frozen=True)
class ShapeNode:
    """nSHP chunk payload."""
    node_id: int
    attributes: Dict[str, str]
    model_ids: Tuple[int, ...]


@dataclass(frozen=True, eq=False)
class Chunk:
    """A decoded chunk and its nested children."""
    chunk_id: bytes
    kind: ChunkKind
    content: bytes
    children: Tuple["Chunk", ...]
    data: object = None
    offset: int = 0
    children_size: int = 0

    @property
    def size(self) -> int:
        """Total serialized size including header and children, skipped ones too."""
        return CHUNK_HEADER_SIZE + len(self.content) + self.children_size

    def iter_children(self, kind: ChunkKind) -> Iterator["Chunk"]:
        """Iterate over direct children of the given kind."""
        return (c for c in self.children if c.kind is kind)


class _ContentReader:
    """Sequential reader over one chunk's content."""

    def __init__(self, chunk_id: bytes, content: bytes, offset: int):
        self.chunk_id = chunk_id
        self.content = content
        self.offset = offset
        self.pos = 0

    def _fail(self, message: str):
        raise MalformedChunk(self.chunk_id, message, self.offset + self.pos)

    def int32(self) -> int:
        if self.pos + 4 > len(self.content):
            self._fail("unexpected end of content")
        value = struct.unpack_from('<i', self.content, self.pos)[0]
        self.pos += 4
        return value

    def count(self) -> int:
        value = self.int32()
        if value < 0:
            self._fail(f"negative count {value}")
        return value

    def string(self) -> str:
        length = self.count()
        if self.pos + length > len(self.content):
            self._fail("string runs past end of content")
        raw = self.content[self.pos:self.pos + length]
        self.pos += length
        return raw.decode('utf-8', errors='replace')

    def dict(self) -> Dict[str, str]:
        result = {}
        for _ in range(self.count()):
            key = self.string()
            result[key] = self.string()
        return result

    def finish(self):
        if self.pos != len(self.content):
            self._fail(f"{len(self.content) - self.pos} unexpected trailing bytes")


def _expect_length(chunk_id: bytes, content: bytes, offset: int, expected: int):
    if len(content) != expected:
        raise MalformedChunk(
            chunk_id, f"content is {len(content)} bytes, expected {expected}", offset
        )


def _decode_main(chunk_id: bytes, content: bytes, offset: int) -> None:
    return None


def _decode_pack(chunk_id: bytes, content: bytes, offset: int) -> ModelCount:
    _expect_length(chunk_id, content, offset, 4)
    count = struct.unpack('<i', content)[0]
    if count < 0:
        raise MalformedChunk(chunk_id, f"negative model count {count}", offset)
    return ModelCount(count)


def _decode_size(chunk_id: bytes, content: bytes, offset: int) -> ModelSize:
    _expect_length(chunk_id, content, offset, 12)
    return ModelSize(*struct.unpack('<iii', content))


def _decode_xyzi(chunk_id: bytes, content: bytes, offset: int) -> VoxelList:
    if len(content) < 4:
        raise MalformedChunk(chunk_id, "missing voxel count", offset)
    num_voxels = struct.unpack_from('<i', content, 0)[0]
    if num_voxels < 0:
        raise MalformedChunk(chunk_id, f"negative voxel count {num_voxels}", offset)
    _expect_length(chunk_id, content, offset, 4 + num_voxels * 4)
    voxels = np.frombuffer(content, dtype=np.uint8, count=num_voxels * 4, offset=4)
    return VoxelList(voxels.reshape((num_voxels, 4)))


def _decode_rgba(chunk_id: bytes, content: bytes, offset: int) -> PaletteData:
    _expect_length(chunk_id, content, offset, PALETTE_SIZE * 4)
    entries = np.frombuffer(content, dtype=np.uint8).reshape((PALETTE_SIZE, 4))
    return PaletteData(entries)


def _decode_matl(chunk_id: bytes, content: bytes, offset: int) -> MaterialData:
    reader = _ContentReader(chunk_id, content, offset)
    material_id = reader.int32()
    properties = reader.dict()
    reader.finish()
    return MaterialData(material_id, properties)


def _decode_transform(chunk_id: bytes, content: bytes, offset: int) -> TransformNode:
    reader = _ContentReader(chunk_id, content, offset)
    node_id = reader.int32()
    attributes = reader.dict()
    child_id = reader.int32()
    reserved_id = reader.int32()
    layer_id = reader.int32()
    frames = tuple(reader.dict() for _ in range(reader.count()))
    reader.finish()

    # Only the first frame's "_t" is used; rotation ("_r") is left to the host
    translation = (0, 0, 0)
    value = frames[0].get("_t") if frames else None
    if value:
        try:
            tx, ty, tz = (int(part) for part in value.split())
        except ValueError:
            raise MalformedChunk(chunk_id, f"invalid translation {value!r}", offset)
        translation = (tx, ty, tz)

    return TransformNode(
        node_id, attributes, child_id, reserved_id, layer_id, frames, translation
    )


def _decode_group(chunk_id: bytes, content: bytes, offset: int) -> GroupNode:
    reader = _ContentReader(chunk_id, content, offset)
    node_id = reader.int32()
    attributes = reader.dict()
    child_ids = tuple(reader.int32() for _ in range(reader.count()))
    reader.finish()
    return GroupNode(node_id, attributes, child_ids)


def _decode_shape(chunk_id: bytes, content: bytes, offset: int) -> ShapeNode:
    reader = _ContentReader(chunk_id, content, offset)
    node_id = reader.int32()
    attributes = reader.dict()
    model_ids = []
    for _ in range(reader.count()):
        model_ids.append(reader.int32())
        reader.dict()  # per-model attributes (animation frame index)
    reader.finish()
    return ShapeNode(node_id, attributes, tuple(model_ids))


_DECODERS: Dict[ChunkKind, Callable[[bytes, bytes, int], object]] = {
    ChunkKind.MAIN: _decode_main,
    ChunkKind.PACK: _decode_pack,
    ChunkKind.SIZE: _decode_size,
    ChunkKind.XYZI: _decode_xyzi,
    ChunkKind.RGBA: _decode_rgba,
    ChunkKind.MATL: _decode_matl,
    ChunkKind.TRANSFORM: _decode_transform,
    ChunkKind.GROUP: _decode_group,
    ChunkKind.SHAPE: _decode_shape,
}


@dataclass(eq=False)
class ChunkTree:
    """
    Result of parsing a .vox buffer.

    Attributes:
        version: File format version from the header
        root: The MAIN chunk
        models: (SIZE chunk, XYZI chunk) pairs in file order
        skipped: Ids of chunks skipped because their kind is unknown
    """

    version: int
    root: Chunk
    models: List[Tuple[Chunk, Chunk]] = field(default_factory=list)
    skipped: List[bytes] = field(default_factory=list)

    @property
    def declared_model_count(self) -> Optional[int]:
        """Model count from the PACK chunk, if present."""
        pack = next(self.root.iter_children(ChunkKind.PACK), None)
        return pack.data.count if pack is not None else None

    @property
    def palette(self) -> Optional[PaletteData]:
        """The file palette, or None if the file relies on the default."""
        palettes = list(self.root.iter_children(ChunkKind.RGBA))
        return palettes[-1].data if palettes else None

    @property
    def materials(self) -> Dict[int, MaterialData]:
        return {c.data.material_id: c.data for c in self.root.iter_children(ChunkKind.MATL)}

    @property
    def transforms(self) -> List[TransformNode]:
        return [c.data for c in self.root.iter_children(ChunkKind.TRANSFORM)]

    @property
    def groups(self) -> List[GroupNode]:
        return [c.data for c in self.root.iter_children(ChunkKind.GROUP)]

    @property
    def shapes(self) -> List[ShapeNode]:
        return [c.data for c in self.root.iter_children(ChunkKind.SHAPE)]


class FormatReader:
    """
    Decode a .vox buffer into a ChunkTree.

    Usage:
        tree = FormatReader().parse(data)
        for size_chunk, voxel_chunk in tree.models:
            ...
    """

    def __init__(self, supported_versions: Tuple[int, ...] = SUPPORTED_VERSIONS):
        self.supported_versions = supported_versions

    def parse(self, data: bytes) -> ChunkTree:
        """
        Parse a complete .vox file held in memory.

        Args:
            data: Raw file bytes

        Returns:
            ChunkTree with the MAIN chunk and paired models

        Raises:
            FormatError: If the container is invalid in any way
        """
        data = memoryview(data).cast('B')
        magic = bytes(data[:4])
        if magic != VOX_MAGIC:
            raise BadMagic(magic)
        if len(data) < HEADER_SIZE:
            raise Truncated("File header", 0, HEADER_SIZE, len(data))

        version = struct.unpack_from('<i', data, 4)[0]
        if version not in self.supported_versions:
            raise UnsupportedVersion(version)

        skipped: List[bytes] = []
        root, end = self._read_chunk(data, HEADER_SIZE, len(data), 0, skipped)
        if root is None or root.kind is not ChunkKind.MAIN:
            chunk_id = root.chunk_id if root is not None else skipped[-1]
            raise MalformedChunk(chunk_id, "root chunk must be MAIN", HEADER_SIZE)
        if end < len(data):
            logger.warning("Ignoring %d trailing bytes after MAIN chunk", len(data) - end)

        tree = ChunkTree(version=version, root=root, skipped=skipped)
        tree.models = self._pair_models(root)

        declared = tree.declared_model_count
        if declared is not None and declared != len(tree.models):
            logger.warning(
                "PACK declares %d models but %d SIZE/XYZI pairs were found",
                declared, len(tree.models)
            )

        logger.debug(
            "Parsed VOX v%d: %d models, %d chunks skipped",
            version, len(tree.models), len(skipped)
        )
        return tree

    def _read_chunk(
        self,
        data: memoryview,
        pos: int,
        end: int,
        depth: int,
        skipped: List[bytes]
    ) -> Tuple[Optional[Chunk], int]:
        """
        Read one chunk starting at pos inside the region [pos, end).

        Returns:
            (chunk, next_pos); chunk is None when the id was skipped
        """
        available = end - pos
        if available < CHUNK_HEADER_SIZE:
            raise Truncated("Chunk header", pos, CHUNK_HEADER_SIZE, available)

        chunk_id = bytes(data[pos:pos + 4])
        content_size, children_size = struct.unpack_from('<ii', data, pos + 4)
        if content_size < 0 or children_size < 0:
            raise MalformedChunk(
                chunk_id, f"negative sizes ({content_size}, {children_size})", pos
            )

        body = pos + CHUNK_HEADER_SIZE
        body_size = content_size + children_size
        if body_size > end - body:
            raise Truncated(
                f"Chunk {chunk_id!r} body", pos, body_size, end - body
            )
        next_pos = body + body_size

        kind = _KINDS.get(chunk_id)
        if kind is None:
            logger.debug("Skipping unknown chunk %r (%d bytes)", chunk_id, body_size)
            skipped.append(chunk_id)
            return None, next_pos

        if depth >= MAX_NESTING:
            raise MalformedChunk(chunk_id, "chunks nested too deeply", pos)

        content = bytes(data[body:body + content_size])
        children = self._read_children(data, body + content_size, next_pos, depth + 1, skipped)
        decoded = _DECODERS[kind](chunk_id, content, body)

        return Chunk(
            chunk_id=chunk_id,
            kind=kind,
            content=content,
            children=tuple(children),
            data=decoded,
            offset=pos,
            children_size=children_size,
        ), next_pos

    def _read_children(
        self,
        data: memoryview,
        pos: int,
        end: int,
        depth: int,
        skipped: List[bytes]
    ) -> List[Chunk]:
        """Read chunks until the children region is consumed exactly."""
        children = []
        while pos < end:
            chunk, pos = self._read_chunk(data, pos, end, depth, skipped)
            if chunk is not None:
                children.append(chunk)
        return children

    @staticmethod
    def _pair_models(root: Chunk) -> List[Tuple[Chunk, Chunk]]:
        """Pair every SIZE chunk with the XYZI chunk that follows it."""
        pairs = []
        pending: Optional[Chunk] = None

        for chunk in root.children:
            if chunk.kind is ChunkKind.SIZE:
                if pending is not None:
                    raise MalformedChunk(
                        chunk.chunk_id, "SIZE without matching XYZI", pending.offset
                    )
                pending = chunk
            elif chunk.kind is ChunkKind.XYZI:
                if pending is None:
                    raise MalformedChunk(chunk.chunk_id, "XYZI before SIZE", chunk.offset)
                pairs.append((pending, chunk))
                pending = None

        if pending is not None:
            raise MalformedChunk(pending.chunk_id, "SIZE without matching XYZI", pending.offset)

        return pairs


def parse(data: bytes) -> ChunkTree:
    """Parse a .vox buffer with the default reader."""
    return FormatReader().parse(data)
