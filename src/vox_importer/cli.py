"""
Command-Line Interface for vox_importer

Usage:
    vox-import castle.vox -o build/castle
    vox-import castle.vox --mode material -f glb obj --palette-png
    vox-import castle.vox --no-center --scale 0.1 --stats -v

"""

import argparse
import logging
import re
import sys
import time
from pathlib import Path
from typing import List, Optional

from . import __version__
from .errors import VoxImportError
from .exporters import GLTFExporter, OBJExporter
from .greedy_mesh import CulledMesher, MeshMode, compare_mesh_stats
from .pipeline import ImportOptions, ImportResult, import_vox

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(verbose: bool = False):
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vox-import",
        description="Import MagicaVoxel .vox files as greedy-meshed triangle meshes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vox-import castle.vox
      Write castle_<model>.glb for every model

  vox-import castle.vox -o out/castle -f glb obj --mode material
      One material slot per color, export glTF and OBJ

  vox-import castle.vox --no-optimize --stats
      Per-voxel faces, print greedy vs culled statistics

Exit Status:
  0  every model imported
  1  the file could not be read or is not a valid .vox file
  2  at least one model failed to import
        """
    )

    parser.add_argument(
        "input",
        help="Input .vox file"
    )

    parser.add_argument(
        "-o", "--output",
        help="Output path prefix (default: input path without extension)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["glb", "obj"],
        default=["glb"],
        help="Output format(s) (default: glb)"
    )

    parser.add_argument(
        "--mode",
        choices=["vertex", "material"],
        default="vertex",
        help="Vertex colors or one material slot per color (default: vertex)"
    )

    parser.add_argument(
        "--no-optimize",
        action="store_true",
        help="Emit one quad per voxel face instead of greedy merging"
    )

    parser.add_argument(
        "--no-center",
        action="store_true",
        help="Keep the model origin at its corner instead of its X/Y center"
    )

    parser.add_argument(
        "--x-forward",
        action="store_true",
        help="Turn models a quarter turn about Z so +X faces forward"
    )

    parser.add_argument(
        "--no-offsets",
        action="store_true",
        help="Ignore scene graph translations"
    )

    parser.add_argument(
        "--scale",
        type=float,
        default=1.0,
        help="Output scale factor (default: 1.0)"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Models meshed concurrently (default: 1)"
    )

    parser.add_argument(
        "--palette-png",
        action="store_true",
        help="Write the palette texture and reference it from OBJ materials"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print mesh statistics"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def build_options(args) -> ImportOptions:
    """Map parsed arguments onto ImportOptions."""
    return ImportOptions(
        mode=MeshMode.MATERIAL_SLOTS if args.mode == "material" else MeshMode.VERTEX_COLOR,
        optimize=not args.no_optimize,
        center_xy=not args.no_center,
        x_forward=args.x_forward,
        apply_scene_offsets=not args.no_offsets,
        scale=args.scale,
        max_workers=args.workers,
    )


def print_stats(result: ImportResult, options: ImportOptions):
    """Print per-model mesh statistics."""
    print("\nMesh Statistics:")
    culled = CulledMesher(options.mode)
    for model in result.models:
        if not model.ok:
            print(f"  {model.name}: failed ({model.error})")
            continue
        culled_mesh = culled.build(model.grid, result.palette, options.mode)
        stats = compare_mesh_stats(model.mesh, culled_mesh)
        print(f"  {model.name}:")
        print(f"    Voxels: {model.grid.count_voxels()}")
        print(f"    Grid size: {model.grid.shape}")
        print(f"    Vertices: {stats['greedy_vertices']} (culled {stats['culled_vertices']})")
        print(f"    Triangles: {stats['greedy_triangles']} (culled {stats['culled_triangles']})")
        print(f"    Vertex reduction: {stats['vertex_reduction_percent']:.1f}%")
        print(f"    Warnings: {model.warning_count}")


def safe_name(name: str) -> str:
    """Model name usable as a file name component."""
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name).strip(".") or "model"


def export_models(result: ImportResult, output_base: Path, args) -> List[Path]:
    """Write one file per format for every successful, non-empty model."""
    written = []
    palette_arg = result.palette if args.palette_png else None
    obj_mode = "mtl" if args.mode == "material" else "extended"

    for model in result.models:
        if not model.ok:
            continue
        if model.mesh.vertex_count == 0:
            logger.info("Model %s is empty, nothing to export", model.name)
            continue

        stem = f"{output_base.name}_{safe_name(model.name)}"
        for fmt in args.format:
            path = output_base.with_name(f"{stem}.{fmt}")
            if fmt == "glb":
                GLTFExporter().export(model.mesh, path, name=model.name)
            else:
                OBJExporter(vertex_colors_mode=obj_mode).export(
                    model.mesh, path, model_name=model.name, palette=palette_arg
                )
            logger.debug("Exported %s", path)
            written.append(path)

    if args.palette_png:
        path = output_base.with_name(f"{output_base.name}_palette.png")
        result.palette.to_image().save(path)
        written.append(path)

    return written


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    input_path = Path(args.input)
    output_base = Path(args.output) if args.output else input_path.with_suffix("")

    start_time = time.time()

    try:
        options = build_options(args)
        data = input_path.read_bytes()
        result = import_vox(data, options)
        if args.stats:
            print_stats(result, options)
        output_base.parent.mkdir(parents=True, exist_ok=True)
        written = export_models(result, output_base, args)
    except (VoxImportError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            logger.exception("Import failed")
        return 1

    for path in written:
        print(f"Exported: {path}")

    for model in result.failed:
        print(f"Failed: {model.name}: {model.error}", file=sys.stderr)

    logger.info("Completed in %.2fs", time.time() - start_time)
    return 2 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
