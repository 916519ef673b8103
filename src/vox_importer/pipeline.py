"""
Import Pipeline

This is the primary interface for importing .vox files.
It orchestrates:
1. Parsing the chunk tree (once per import)
2. Palette resolution
3. Grid building per model
4. Mesh generation (Greedy Meshing)
5. Flat scene placement

Example Usage:
    result = import_vox(Path("castle.vox").read_bytes())
    for model in result.models:
        if model.ok:
            GLTFExporter().export(model.mesh, f"{model.name}.glb")
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import GeometryError
from .greedy_mesh import CulledMesher, MeshBuilder, MeshData, MeshMode
from .grid import VoxelGrid
from .palette import Palette
from .reader import Chunk, FormatReader
from .scene import Placement, flatten_scene

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag, safe to set from any thread.

    The pipeline checks it between models; a model already being meshed
    runs to completion.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ImportOptions:
    """
    Import configuration.

    Attributes:
        mode: Vertex colors with one material, or one material slot per color
        optimize: Greedy merge faces; False emits one quad per voxel face
        center_xy: Move the origin of unplaced models to the center of their
            X/Y footprint
        x_forward: Turn the scene a quarter turn about Z so +X faces forward
        apply_scene_offsets: Place models at their transform node's pivot
        scale: Uniform scale applied last
        max_workers: Models meshed concurrently
        cancel: Optional cancellation token
    """
    mode: MeshMode = MeshMode.VERTEX_COLOR
    optimize: bool = True
    center_xy: bool = True
    x_forward: bool = False
    apply_scene_offsets: bool = True
    scale: float = 1.0
    max_workers: int = 1
    cancel: Optional[CancellationToken] = None

    def __post_init__(self):
        if self.scale <= 0:
            raise ValueError(f"Scale must be positive, got {self.scale}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled


@dataclass
class ModelResult:
    """
    Outcome of importing one model.

    Exactly one of mesh and error is set.
    """
    model_id: int
    name: str
    mesh: Optional[MeshData] = None
    grid: Optional[VoxelGrid] = field(default=None, repr=False)
    warnings: List[GeometryError] = field(default_factory=list)
    error: Optional[GeometryError] = None
    offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


@dataclass
class ImportResult:
    """Per-model results in file order."""
    models: List[ModelResult]
    palette: Palette
    version: int = 0
    cancelled: bool = False

    @property
    def failed(self) -> List[ModelResult]:
        return [m for m in self.models if not m.ok]

    def meshes(self) -> List[MeshData]:
        """Meshes of the models that imported successfully."""
        return [m.mesh for m in self.models if m.ok]


class ImportPipeline:
    """
    Turns .vox bytes into one mesh per model.

    A FormatError raised while parsing aborts the import. A GeometryError
    fails only the model it belongs to.
    """

    def __init__(self, options: Optional[ImportOptions] = None, reader: Optional[FormatReader] = None):
        """
        Initialize the pipeline.

        Args:
            options: Import configuration, defaults when None
            reader: Chunk reader, a FormatReader with supported versions when None
        """
        self.options = options or ImportOptions()
        self.reader = reader or FormatReader()

    def _mesher(self) -> MeshBuilder:
        if self.options.optimize:
            return MeshBuilder(self.options.mode)
        return CulledMesher(self.options.mode)

    def run(self, data: bytes) -> ImportResult:
        """
        Import every model in a .vox buffer.

        Args:
            data: Complete file contents

        Returns:
            ImportResult; when cancelled, holds the models completed
            before cancellation was observed

        Raises:
            FormatError: If the container is invalid
        """
        tree = self.reader.parse(data)
        palette = Palette.from_chunk(tree.palette, tree.materials)
        placements = flatten_scene(tree)
        mesher = self._mesher()

        logger.info(
            "Importing %d model(s), version %d, %s palette",
            len(tree.models), tree.version, "default" if palette.is_default else "file",
        )

        def job(model_id: int, chunks: Tuple[Chunk, Chunk]) -> Optional[ModelResult]:
            if self.options.cancelled:
                return None
            size_chunk, xyzi_chunk = chunks
            return self._import_model(
                model_id, size_chunk, xyzi_chunk, palette, placements.get(model_id), mesher
            )

        if self.options.max_workers > 1 and len(tree.models) > 1:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
                futures = [pool.submit(job, i, chunks) for i, chunks in enumerate(tree.models)]
                outcomes = [future.result() for future in futures]
        else:
            outcomes = []
            for i, chunks in enumerate(tree.models):
                outcome = job(i, chunks)
                outcomes.append(outcome)
                if outcome is None:
                    break

        models: List[ModelResult] = []
        cancelled = False
        for outcome in outcomes:
            if outcome is None:
                cancelled = True
                break
            models.append(outcome)

        if cancelled:
            logger.info("Import cancelled after %d of %d model(s)", len(models), len(tree.models))

        return ImportResult(models=models, palette=palette, version=tree.version, cancelled=cancelled)

    def _model_offset(self, grid: VoxelGrid, placement: Optional[Placement]) -> Tuple[float, float, float]:
        """
        Translation from grid coordinates to the model's place in the scene.

        A transform's "_t" is the model's pivot, so a placed voxel lands at
        t + v - size // 2 on every axis. Unplaced models are centered on
        their X/Y footprint when center_xy is set.
        """
        if self.options.apply_scene_offsets and placement is not None:
            return tuple(float(t - s // 2) for t, s in zip(placement.translation, grid.shape))
        if self.options.center_xy:
            return (-grid.size_x / 2, -grid.size_y / 2, 0.0)
        return (0.0, 0.0, 0.0)

    def _import_model(
        self,
        model_id: int,
        size_chunk: Chunk,
        xyzi_chunk: Chunk,
        palette: Palette,
        placement: Optional[Placement],
        mesher: MeshBuilder
    ) -> ModelResult:
        """Build the grid and mesh of one model."""
        options = self.options
        name = placement.name if placement is not None and placement.name else f"model_{model_id}"
        result = ModelResult(model_id=model_id, name=name)

        try:
            grid = VoxelGrid.build(size_chunk.data, xyzi_chunk.data)
        except GeometryError as exc:
            logger.warning("Model %d (%s) failed: %s", model_id, name, exc)
            result.error = exc
            return result

        offset = self._model_offset(grid, placement)
        if options.x_forward:
            # World (x, y) turns to (y, -x); rotated voxels start at y = size_x - x
            offset = (offset[1], -offset[0] - grid.size_x, offset[2])
            grid = grid.rotate_xy()
        result.offset = offset

        model_palette, palette_warnings = palette.with_fallbacks(grid.used_indices())
        result.warnings = grid.warnings + palette_warnings
        result.grid = grid

        mesh = mesher.build(grid, model_palette, options.mode)
        result.mesh = mesh.transformed(result.offset, options.scale)

        if result.warnings:
            logger.warning(
                "Model %d (%s): %d warning(s), first: %s",
                model_id, name, len(result.warnings), result.warnings[0],
            )
        logger.info(
            "Model %d (%s): %d voxels, %d quads, %d triangles",
            model_id, name, grid.count_voxels(), mesh.quad_count, mesh.triangle_count,
        )
        return result


def import_vox(data: bytes, options: Optional[ImportOptions] = None) -> ImportResult:
    """
    Import a .vox buffer.

    Args:
        data: Complete file contents
        options: Import configuration

    Returns:
        ImportResult with one ModelResult per model

    Raises:
        FormatError: If the container is invalid
    """
    return ImportPipeline(options).run(data)
