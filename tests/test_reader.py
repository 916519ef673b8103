"""
Unit tests for the .vox chunk reader and scene flattening.
"""

import struct
import sys
import unittest
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_importer.errors import (
    BadMagic, FormatError, MalformedChunk, Truncated, UnsupportedVersion
)
from vox_importer.exporters.vox_exporter import (
    GroupChunk, MainChunk, MaterialChunk, PackChunk, ShapeChunk, SizeChunk,
    TransformChunk, VoxChunk, XYZIChunk, build_vox, pack_dict
)
from vox_importer.reader import ChunkKind, FormatReader, VOX_MAGIC, parse
from vox_importer.scene import flatten_scene


def single_voxel_chunks():
    return [SizeChunk(1, 1, 1), XYZIChunk([(0, 0, 0, 1)])]


class TestHeader(unittest.TestCase):
    """Tests for magic and version validation."""

    def test_minimal_file(self):
        """Test parsing a single model."""
        tree = parse(build_vox(single_voxel_chunks()))

        assert tree.version == 150
        assert tree.root.kind is ChunkKind.MAIN
        assert len(tree.models) == 1
        size_chunk, xyzi_chunk = tree.models[0]
        assert size_chunk.data.shape == (1, 1, 1)
        assert xyzi_chunk.data.voxels.tolist() == [[0, 0, 0, 1]]

    def test_bad_magic(self):
        """Test wrong magic raises BadMagic."""
        data = b'ABCD' + build_vox(single_voxel_chunks())[4:]
        with self.assertRaises(BadMagic):
            parse(data)

    def test_bad_magic_is_value_error(self):
        """Test format errors can be caught as ValueError."""
        with self.assertRaises(ValueError):
            parse(b'not a vox file')

    def test_empty_buffer(self):
        """Test an empty buffer is rejected."""
        with self.assertRaises(BadMagic):
            parse(b'')

    def test_header_truncated(self):
        """Test a buffer holding only the magic."""
        with self.assertRaises(Truncated):
            parse(VOX_MAGIC + b'\x96')

    def test_unsupported_version(self):
        """Test unknown versions are rejected."""
        with self.assertRaises(UnsupportedVersion) as ctx:
            parse(build_vox(single_voxel_chunks(), version=151))
        assert ctx.exception.version == 151

    def test_version_200(self):
        """Test version 200 files are accepted."""
        assert parse(build_vox(single_voxel_chunks(), version=200)).version == 200

    def test_custom_supported_versions(self):
        """Test the reader honours its supported versions."""
        reader = FormatReader(supported_versions=(200,))
        with self.assertRaises(UnsupportedVersion):
            reader.parse(build_vox(single_voxel_chunks(), version=150))


class TestChunkStructure(unittest.TestCase):
    """Tests for chunk header and layout validation."""

    def test_truncated_file(self):
        """Test a cut-off buffer raises Truncated."""
        data = build_vox(single_voxel_chunks())
        with self.assertRaises(Truncated):
            parse(data[:-3])

    def test_truncated_error_is_format_error(self):
        """Test Truncated belongs to the format error family."""
        data = build_vox(single_voxel_chunks())
        with self.assertRaises(FormatError) as ctx:
            parse(data[:20])
        assert ctx.exception.offset is not None

    def test_root_must_be_main(self):
        """Test a non-MAIN root chunk is rejected."""
        data = VOX_MAGIC + struct.pack('<i', 150) + SizeChunk(1, 1, 1).pack()
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_negative_size(self):
        """Test negative declared sizes are rejected."""
        main = MainChunk()
        main.children += b'SIZE' + struct.pack('<ii', -1, 0)
        data = VOX_MAGIC + struct.pack('<i', 150) + main.pack()
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_size_chunk_wrong_length(self):
        """Test SIZE content must be 12 bytes."""
        data = build_vox([VoxChunk(b'SIZE', struct.pack('<ii', 1, 1)), XYZIChunk()])
        with self.assertRaises(MalformedChunk) as ctx:
            parse(data)
        assert ctx.exception.chunk_id == b'SIZE'

    def test_xyzi_count_mismatch(self):
        """Test XYZI content must hold exactly count voxels."""
        data = build_vox([
            SizeChunk(2, 2, 2),
            VoxChunk(b'XYZI', struct.pack('<i', 2) + bytes([0, 0, 0, 1])),
        ])
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_rgba_wrong_length(self):
        """Test RGBA content must be 1024 bytes."""
        data = build_vox(single_voxel_chunks() + [VoxChunk(b'RGBA', bytes(1020))])
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_pack_wrong_length(self):
        """Test PACK content must be 4 bytes."""
        data = build_vox([VoxChunk(b'PACK', bytes(8))] + single_voxel_chunks())
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_dictionary_overrun(self):
        """Test a string running past the content is rejected."""
        content = struct.pack('<i', 1) + struct.pack('<i', 1) + struct.pack('<i', 50) + b'_type'
        data = build_vox(single_voxel_chunks() + [VoxChunk(b'MATL', content)])
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_xyzi_before_size(self):
        """Test XYZI must follow a SIZE chunk."""
        data = build_vox([XYZIChunk([(0, 0, 0, 1)]), SizeChunk(1, 1, 1)])
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_size_without_xyzi(self):
        """Test a trailing SIZE chunk is rejected."""
        data = build_vox(single_voxel_chunks() + [SizeChunk(2, 2, 2)])
        with self.assertRaises(MalformedChunk):
            parse(data)

    def test_unknown_chunks_skipped(self):
        """Test unknown chunk ids are skipped by their declared size."""
        note = VoxChunk(b'NOTE', b'some notes')
        layer = VoxChunk(b'LAYR', bytes(16))
        layer.add_child(VoxChunk(b'rOBJ', b'child'))
        data = build_vox([note, SizeChunk(1, 1, 1), layer, XYZIChunk([(0, 0, 0, 3)])])

        tree = parse(data)

        assert tree.skipped == [b'NOTE', b'LAYR']
        assert len(tree.models) == 1
        assert tree.models[0][1].data.voxels[0, 3] == 3

    def test_trailing_bytes_warn(self):
        """Test bytes after MAIN are ignored with a warning."""
        data = build_vox(single_voxel_chunks()) + b'\x00\x00'
        with self.assertLogs("vox_importer.reader", level="WARNING"):
            tree = parse(data)
        assert len(tree.models) == 1

    def test_pack_count_mismatch_warns(self):
        """Test a wrong PACK count is only a warning."""
        data = build_vox([PackChunk(3)] + single_voxel_chunks())
        with self.assertLogs("vox_importer.reader", level="WARNING"):
            tree = parse(data)
        assert tree.declared_model_count == 3
        assert len(tree.models) == 1

    def test_chunk_size(self):
        """Test serialized size bookkeeping."""
        data = build_vox(single_voxel_chunks())
        tree = parse(data)
        assert tree.root.size == len(data) - 8

    def test_chunk_size_counts_skipped_children(self):
        """Test unknown children still count toward the serialized size."""
        layer = VoxChunk(b'LAYR', bytes(16))
        layer.add_child(VoxChunk(b'rOBJ', b'child'))
        data = build_vox(single_voxel_chunks() + [layer, VoxChunk(b'NOTE', b'x')])

        tree = parse(data)

        assert tree.skipped == [b'LAYR', b'NOTE']
        assert tree.root.size == len(data) - 8
        assert tree.root.children_size == sum(c.size for c in tree.root.children) + len(layer.pack()) + 13


class TestPayloads(unittest.TestCase):
    """Tests for decoded chunk payloads."""

    def test_multiple_models(self):
        """Test SIZE/XYZI pairs are kept in file order."""
        data = build_vox([
            PackChunk(2),
            SizeChunk(1, 2, 3), XYZIChunk([(0, 1, 2, 5)]),
            SizeChunk(4, 4, 4), XYZIChunk(),
        ])
        tree = parse(data)

        assert tree.declared_model_count == 2
        assert [s.data.shape for s, _ in tree.models] == [(1, 2, 3), (4, 4, 4)]
        assert len(tree.models[1][1].data) == 0

    def test_rgba_payload(self):
        """Test RGBA entries are stored as read."""
        entries = np.zeros((256, 4), dtype=np.uint8)
        entries[0] = [10, 20, 30, 255]
        data = build_vox(single_voxel_chunks() + [VoxChunk(b'RGBA', entries.tobytes())])

        tree = parse(data)

        assert tree.palette is not None
        assert tree.palette.entries[0].tolist() == [10, 20, 30, 255]

    def test_no_palette(self):
        """Test files without RGBA report no palette."""
        assert parse(build_vox(single_voxel_chunks())).palette is None

    def test_materials(self):
        """Test MATL dictionaries are decoded."""
        data = build_vox(single_voxel_chunks() + [
            MaterialChunk(1, {"_type": "_metal", "_rough": "0.2"}),
        ])
        tree = parse(data)
        assert tree.materials[1].properties == {"_type": "_metal", "_rough": "0.2"}

    def test_invalid_translation(self):
        """Test a non-numeric frame translation is rejected."""
        content = (
            struct.pack('<i', 0) + pack_dict({}) +
            struct.pack('<iiii', 1, -1, -1, 1) + pack_dict({"_t": "a b c"})
        )
        data = build_vox(single_voxel_chunks() + [VoxChunk(b'nTRN', content)])
        with self.assertRaises(MalformedChunk):
            parse(data)


class TestSceneGraph(unittest.TestCase):
    """Tests for flat scene placement."""

    def test_names_and_translations(self):
        """Test each model takes its parent transform's name and offset."""
        data = build_vox([
            SizeChunk(1, 1, 1), XYZIChunk([(0, 0, 0, 1)]),
            SizeChunk(1, 1, 1), XYZIChunk([(0, 0, 0, 2)]),
            TransformChunk(0, 1),
            GroupChunk(1, [2, 4]),
            TransformChunk(2, 3, name="house", translation=(5, -3, 2)),
            ShapeChunk(3, 0),
            TransformChunk(4, 5, name="tree"),
            ShapeChunk(5, 1),
        ])
        tree = parse(data)
        placements = flatten_scene(tree)

        assert placements[0].name == "house"
        assert placements[0].translation == (5, -3, 2)
        assert placements[1].name == "tree"
        assert placements[1].translation == (0, 0, 0)

    def test_instanced_model_first_placement(self):
        """Test a model referenced twice keeps its first placement."""
        data = build_vox(single_voxel_chunks() + [
            TransformChunk(0, 1),
            GroupChunk(1, [2, 4]),
            TransformChunk(2, 3, name="first", translation=(1, 0, 0)),
            ShapeChunk(3, 0),
            TransformChunk(4, 5, name="second", translation=(9, 0, 0)),
            ShapeChunk(5, 0),
        ])
        placements = flatten_scene(parse(data))

        assert len(placements) == 1
        assert placements[0].name == "first"
        assert placements[0].translation == (1, 0, 0)

    def test_no_scene_graph(self):
        """Test files without scene nodes have no placements."""
        assert flatten_scene(parse(build_vox(single_voxel_chunks()))) == {}


if __name__ == "__main__":
    unittest.main(verbosity=2)
