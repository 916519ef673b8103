"""
Wavefront OBJ Format Exporter

OBJ is a universal text-based format supported by virtually all 3D software.
While it doesn't natively support vertex colors, we provide options for:
- Geometry-only export
- MTL file with one material per mesh material slot
- Extended format with vertex colors (v x y z r g b)

When a palette is given, texture coordinates are written and every material
references the palette texture (map_Kd).

Limitations:
- Text format = larger file sizes
- No native vertex color support
- Requires MTL file for materials
"""

from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from ..coords import CoordinateSystem, transform_vertices
from ..greedy_mesh import MeshData
from ..palette import Palette


class OBJExporter:
    """
    Export mesh data to Wavefront OBJ format.

    Supports:
    - Standard OBJ with MTL materials
    - Extended OBJ with vertex colors (v x y z r g b)
    - Palette texture coordinates
    """

    def __init__(
        self,
        coordinate_system: CoordinateSystem = CoordinateSystem.BLENDER,
        include_normals: bool = True,
        vertex_colors_mode: str = "extended"
    ):
        """
        Initialize the exporter.

        Args:
            coordinate_system: Target coordinate system
            include_normals: Whether to include vertex normals
            vertex_colors_mode: How to handle vertex colors
                - "none": No colors
                - "extended": v x y z r g b format
                - "mtl": Generate MTL file with materials
        """
        if vertex_colors_mode not in ("none", "extended", "mtl"):
            raise ValueError(f"Unknown vertex colors mode: {vertex_colors_mode}")
        self.coordinate_system = coordinate_system
        self.include_normals = include_normals
        self.vertex_colors_mode = vertex_colors_mode

    def export(
        self,
        mesh: MeshData,
        output_path: Union[str, Path],
        model_name: str = "voxel_model",
        palette: Optional[Palette] = None
    ):
        """
        Export mesh to OBJ file.

        Args:
            mesh: MeshData from MeshBuilder
            output_path: Output file path (.obj)
            model_name: Name for the model/object
            palette: Palette whose texture the UVs address; written as
                <name>_palette.png beside the OBJ
        """
        output_path = Path(output_path)

        if len(mesh.vertices) == 0:
            raise ValueError("Cannot export empty mesh")

        vertices = transform_vertices(
            mesh.vertices, CoordinateSystem.MAGICAVOXEL, self.coordinate_system
        )
        normals = transform_vertices(
            mesh.normals, CoordinateSystem.MAGICAVOXEL, self.coordinate_system
        )

        texture_path = None
        if palette is not None:
            texture_path = output_path.with_name(f"{output_path.stem}_palette.png")

        lines = [
            "# vox_importer OBJ Export",
            f"# Vertices: {mesh.vertex_count}",
            f"# Triangles: {mesh.triangle_count}",
            "",
        ]

        # MTL reference if using materials
        if self.vertex_colors_mode == "mtl":
            lines.append(f"mtllib {output_path.with_suffix('.mtl').name}")
            lines.append("")

        lines.append(f"o {model_name}")
        lines.append("")

        if self.vertex_colors_mode == "extended":
            colors = mesh.colors[:, :3] / 255.0
            lines.extend(
                f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f} {c[0]:.4f} {c[1]:.4f} {c[2]:.4f}"
                for v, c in zip(vertices, colors)
            )
        else:
            lines.extend(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}" for v in vertices)
        lines.append("")

        if texture_path is not None:
            lines.extend(f"vt {uv[0]:.6f} {uv[1]:.6f}" for uv in mesh.uvs)
            lines.append("")

        normal_indices = None
        if self.include_normals:
            unique_normals, normal_indices = np.unique(normals, axis=0, return_inverse=True)
            normal_indices = normal_indices.ravel()
            lines.extend(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}" for n in unique_normals)
            lines.append("")

        if self.vertex_colors_mode == "mtl":
            for material, indices in mesh.sections():
                lines.append(f"usemtl {material.name}")
                lines.extend(self._faces(indices, normal_indices, texture_path is not None))
                lines.append("")
        else:
            lines.extend(self._faces(mesh.indices, normal_indices, texture_path is not None))

        output_path.write_text('\n'.join(lines) + '\n')

        if self.vertex_colors_mode == "mtl":
            self._write_mtl(mesh, output_path.with_suffix('.mtl'), texture_path)
        if texture_path is not None:
            palette.to_image().save(texture_path)

    @staticmethod
    def _faces(
        indices: np.ndarray,
        normal_indices: Optional[np.ndarray],
        textured: bool
    ) -> List[str]:
        """Format face lines (OBJ indices are 1-based)."""
        faces = []
        for tri in indices.reshape(-1, 3):
            corners = []
            for i in tri:
                v = int(i) + 1
                if normal_indices is None:
                    corners.append(f"{v}/{v}" if textured else f"{v}")
                else:
                    n = int(normal_indices[i]) + 1
                    corners.append(f"{v}/{v}/{n}" if textured else f"{v}//{n}")
            faces.append("f " + " ".join(corners))
        return faces

    def _write_mtl(self, mesh: MeshData, mtl_path: Path, texture_path: Optional[Path]):
        """Write one MTL material per mesh material slot."""
        lines = ["# vox_importer MTL Export", ""]

        for material in mesh.material_slots:
            r, g, b, a = (c / 255.0 for c in material.color)
            lines.append(f"newmtl {material.name}")
            lines.append(f"Kd {r:.4f} {g:.4f} {b:.4f}")  # Diffuse color
            lines.append(f"Ka {r*0.1:.4f} {g*0.1:.4f} {b*0.1:.4f}")  # Ambient
            lines.append("Ks 0.0 0.0 0.0")  # Specular (none for voxels)
            lines.append("Ns 0")  # Specular exponent
            lines.append(f"d {a:.4f}")  # Opacity
            lines.append("illum 1")  # Illumination model
            if texture_path is not None:
                lines.append(f"map_Kd {texture_path.name}")
            lines.append("")

        mtl_path.write_text('\n'.join(lines))

    def export_geometry_only(
        self,
        mesh: MeshData,
        output_path: Union[str, Path]
    ):
        """
        Export geometry without any color information.

        Args:
            mesh: MeshData
            output_path: Output file path
        """
        OBJExporter(self.coordinate_system, self.include_normals, "none").export(mesh, output_path)
