"""
Unit tests for the command-line interface.
"""

import io
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_importer.cli import build_options, create_parser, main, safe_name
from vox_importer.exporters import VoxExporter
from vox_importer.exporters.vox_exporter import SizeChunk, XYZIChunk, build_vox
from vox_importer.greedy_mesh import MeshMode
from vox_importer.grid import VoxelGrid


def write_cube_file(directory: Path, name="house") -> Path:
    grid = VoxelGrid(2, 2, 2)
    grid.data[:] = 3
    path = directory / "scene.vox"
    path.write_bytes(VoxExporter().to_bytes([grid], names=[name]))
    return path


def run(argv):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main([str(a) for a in argv])
    return code, out.getvalue(), err.getvalue()


class TestArguments(unittest.TestCase):
    """Tests for argument parsing."""

    def test_defaults(self):
        """Test default options."""
        options = build_options(create_parser().parse_args(["in.vox"]))

        assert options.mode is MeshMode.VERTEX_COLOR
        assert options.optimize
        assert options.center_xy
        assert options.apply_scene_offsets
        assert not options.x_forward
        assert options.scale == 1.0

    def test_flags(self):
        """Test flags map onto options."""
        args = create_parser().parse_args([
            "in.vox", "--mode", "material", "--no-optimize", "--no-center",
            "--x-forward", "--no-offsets", "--scale", "0.1", "--workers", "3",
        ])
        options = build_options(args)

        assert options.mode is MeshMode.MATERIAL_SLOTS
        assert not options.optimize
        assert not options.center_xy
        assert options.x_forward
        assert not options.apply_scene_offsets
        assert options.scale == 0.1
        assert options.max_workers == 3

    def test_safe_name(self):
        """Test model names are made file-system safe."""
        assert safe_name("house") == "house"
        assert safe_name("my house/roof") == "my_house_roof"
        assert safe_name("..") == "model"


class TestMain(unittest.TestCase):
    """Tests for the import command."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_export_glb(self):
        """Test the default run writes one .glb per model."""
        path = write_cube_file(self.tmp)

        code, out, _ = run([path])

        assert code == 0
        assert (self.tmp / "scene_house.glb").exists()
        assert "Exported:" in out

    def test_output_prefix(self):
        """Test -o sets the output prefix and creates its directory."""
        path = write_cube_file(self.tmp)

        code, _, _ = run([path, "-o", self.tmp / "out" / "castle", "-f", "glb", "obj"])

        assert code == 0
        assert (self.tmp / "out" / "castle_house.glb").exists()
        assert (self.tmp / "out" / "castle_house.obj").exists()

    def test_material_obj_with_palette(self):
        """Test material mode OBJ output with the palette texture."""
        path = write_cube_file(self.tmp)

        code, _, _ = run([path, "-f", "obj", "--mode", "material", "--palette-png"])

        assert code == 0
        assert (self.tmp / "scene_house.obj").exists()
        assert (self.tmp / "scene_house.mtl").exists()
        assert (self.tmp / "scene_palette.png").exists()

    def test_stats(self):
        """Test statistics are printed."""
        path = write_cube_file(self.tmp)

        code, out, _ = run([path, "--stats"])

        assert code == 0
        assert "Mesh Statistics:" in out
        assert "Triangles: 12 (culled 48)" in out

    def test_missing_file(self):
        """Test an unreadable input exits with status 1."""
        code, _, err = run([self.tmp / "missing.vox"])
        assert code == 1
        assert "Error:" in err

    def test_invalid_file(self):
        """Test a non-.vox input exits with status 1."""
        path = self.tmp / "bad.vox"
        path.write_bytes(b"not a voxel file")

        code, _, err = run([path])

        assert code == 1
        assert "Error:" in err

    def test_invalid_scale(self):
        """Test invalid options exit with status 1."""
        code, _, _ = run([write_cube_file(self.tmp), "--scale", "0"])
        assert code == 1

    def test_failed_model(self):
        """Test a failed model exits with status 2 after exporting the rest."""
        path = self.tmp / "partial.vox"
        path.write_bytes(build_vox([
            SizeChunk(0, 0, 0), XYZIChunk(),
            SizeChunk(1, 1, 1), XYZIChunk([(0, 0, 0, 1)]),
        ]))

        code, _, err = run([path])

        assert code == 2
        assert "Failed: model_0" in err
        assert (self.tmp / "partial_model_1.glb").exists()
        assert not (self.tmp / "partial_model_0.glb").exists()


if __name__ == "__main__":
    unittest.main(verbosity=2)
