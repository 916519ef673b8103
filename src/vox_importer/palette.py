"""
Palette Mapping

Resolves palette indices to RGBA colors and groups colors into material
slots.

MagicaVoxel Palette Background:
- Index 0 is "no voxel" and never resolved
- An RGBA chunk stores 256 entries; entry k holds the color of index k + 1
- Files without an RGBA chunk use the built-in default palette
- Mesh UVs address a 256x1 palette texture: u = (index - 1 + 0.5) / 256
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from numba import njit, prange
from PIL import Image

from .errors import GeometryError, UndefinedPaletteEntry
from .reader import MaterialData, PaletteData

logger = logging.getLogger(__name__)


PALETTE_SIZE = 256

# MagicaVoxel default palette, 0xAABBGGRR per index
_DEFAULT_PALETTE_ABGR = (
    0x00000000, 0xffffffff, 0xffccffff, 0xff99ffff, 0xff66ffff, 0xff33ffff, 0xff00ffff, 0xffffccff,
    0xffccccff, 0xff99ccff, 0xff66ccff, 0xff33ccff, 0xff00ccff, 0xffff99ff, 0xffcc99ff, 0xff9999ff,
    0xff6699ff, 0xff3399ff, 0xff0099ff, 0xffff66ff, 0xffcc66ff, 0xff9966ff, 0xff6666ff, 0xff3366ff,
    0xff0066ff, 0xffff33ff, 0xffcc33ff, 0xff9933ff, 0xff6633ff, 0xff3333ff, 0xff0033ff, 0xffff00ff,
    0xffcc00ff, 0xff9900ff, 0xff6600ff, 0xff3300ff, 0xff0000ff, 0xffffffcc, 0xffccffcc, 0xff99ffcc,
    0xff66ffcc, 0xff33ffcc, 0xff00ffcc, 0xffffcccc, 0xffcccccc, 0xff99cccc, 0xff66cccc, 0xff33cccc,
    0xff00cccc, 0xffff99cc, 0xffcc99cc, 0xff9999cc, 0xff6699cc, 0xff3399cc, 0xff0099cc, 0xffff66cc,
    0xffcc66cc, 0xff9966cc, 0xff6666cc, 0xff3366cc, 0xff0066cc, 0xffff33cc, 0xffcc33cc, 0xff9933cc,
    0xff6633cc, 0xff3333cc, 0xff0033cc, 0xffff00cc, 0xffcc00cc, 0xff9900cc, 0xff6600cc, 0xff3300cc,
    0xff0000cc, 0xffffff99, 0xffccff99, 0xff99ff99, 0xff66ff99, 0xff33ff99, 0xff00ff99, 0xffffcc99,
    0xffcccc99, 0xff99cc99, 0xff66cc99, 0xff33cc99, 0xff00cc99, 0xffff9999, 0xffcc9999, 0xff999999,
    0xff669999, 0xff339999, 0xff009999, 0xffff6699, 0xffcc6699, 0xff996699, 0xff666699, 0xff336699,
    0xff006699, 0xffff3399, 0xffcc3399, 0xff993399, 0xff663399, 0xff333399, 0xff003399, 0xffff0099,
    0xffcc0099, 0xff990099, 0xff660099, 0xff330099, 0xff000099, 0xffffff66, 0xffccff66, 0xff99ff66,
    0xff66ff66, 0xff33ff66, 0xff00ff66, 0xffffcc66, 0xffcccc66, 0xff99cc66, 0xff66cc66, 0xff33cc66,
    0xff00cc66, 0xffff9966, 0xffcc9966, 0xff999966, 0xff669966, 0xff339966, 0xff009966, 0xffff6666,
    0xffcc6666, 0xff996666, 0xff666666, 0xff336666, 0xff006666, 0xffff3366, 0xffcc3366, 0xff993366,
    0xff663366, 0xff333366, 0xff003366, 0xffff0066, 0xffcc0066, 0xff990066, 0xff660066, 0xff330066,
    0xff000066, 0xffffff33, 0xffccff33, 0xff99ff33, 0xff66ff33, 0xff33ff33, 0xff00ff33, 0xffffcc33,
    0xffcccc33, 0xff99cc33, 0xff66cc33, 0xff33cc33, 0xff00cc33, 0xffff9933, 0xffcc9933, 0xff999933,
    0xff669933, 0xff339933, 0xff009933, 0xffff6633, 0xffcc6633, 0xff996633, 0xff666633, 0xff336633,
    0xff006633, 0xffff3333, 0xffcc3333, 0xff993333, 0xff663333, 0xff333333, 0xff003333, 0xffff0033,
    0xffcc0033, 0xff990033, 0xff660033, 0xff330033, 0xff000033, 0xffffff00, 0xffccff00, 0xff99ff00,
    0xff66ff00, 0xff33ff00, 0xff00ff00, 0xffffcc00, 0xffcccc00, 0xff99cc00, 0xff66cc00, 0xff33cc00,
    0xff00cc00, 0xffff9900, 0xffcc9900, 0xff999900, 0xff669900, 0xff339900, 0xff009900, 0xffff6600,
    0xffcc6600, 0xff996600, 0xff666600, 0xff336600, 0xff006600, 0xffff3300, 0xffcc3300, 0xff993300,
    0xff663300, 0xff333300, 0xff003300, 0xffff0000, 0xffcc0000, 0xff990000, 0xff660000, 0xff330000,
    0xff0000ee, 0xff0000dd, 0xff0000bb, 0xff0000aa, 0xff000088, 0xff000077, 0xff000055, 0xff000044,
    0xff000022, 0xff000011, 0xff00ee00, 0xff00dd00, 0xff00bb00, 0xff00aa00, 0xff008800, 0xff007700,
    0xff005500, 0xff004400, 0xff002200, 0xff001100, 0xffee0000, 0xffdd0000, 0xffbb0000, 0xffaa0000,
    0xff880000, 0xff770000, 0xff550000, 0xff440000, 0xff220000, 0xff110000, 0xffeeeeee, 0xffdddddd,
    0xffbbbbbb, 0xffaaaaaa, 0xff888888, 0xff777777, 0xff555555, 0xff444444, 0xff222222, 0xff111111,
)


def _decode_abgr(values) -> np.ndarray:
    """Unpack 0xAABBGGRR integers into an (N, 4) RGBA array."""
    packed = np.array(values, dtype='<u4')
    return packed.view(np.uint8).reshape(-1, 4).copy()


DEFAULT_PALETTE = _decode_abgr(_DEFAULT_PALETTE_ABGR)


class Color(NamedTuple):
    """An RGBA color with 0-255 components."""
    r: int
    g: int
    b: int
    a: int


@dataclass(frozen=True)
class Material:
    """
    One material slot of a mesh.

    Attributes:
        slot: Position in the mesh's material_slots
        color: Shared RGBA color of every index in the slot
        palette_indices: Palette indices grouped into this slot
        properties: MATL properties of the lowest index, if the file has any
    """
    slot: int
    color: Color
    palette_indices: Tuple[int, ...]
    properties: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        r, g, b, a = self.color
        return f"vox_{r:02x}{g:02x}{b:02x}{a:02x}"


class Palette:
    """
    256-entry RGBA palette indexed by voxel color index.

    Usage:
        palette = Palette.from_chunk(tree.palette, tree.materials)
        color = palette.resolve(12)
    """

    def __init__(
        self,
        colors: Optional[np.ndarray] = None,
        materials: Optional[Dict[int, MaterialData]] = None
    ):
        """
        Initialize the palette.

        Args:
            colors: Array of shape (256, 4) indexed by palette index; the
                default palette when None
            materials: MATL payloads keyed by palette index
        """
        self.is_default = colors is None
        if colors is None:
            colors = DEFAULT_PALETTE
        colors = np.asarray(colors, dtype=np.uint8)
        if colors.shape != (PALETTE_SIZE, 4):
            raise ValueError(f"Palette must have shape (256, 4), got {colors.shape}")

        self._colors = colors.copy()
        self._colors[0] = 0
        self._colors.setflags(write=False)
        self.materials = dict(materials or {})

    @classmethod
    def from_chunk(
        cls,
        chunk: Optional[PaletteData],
        materials: Optional[Dict[int, MaterialData]] = None
    ) -> "Palette":
        """
        Build the palette from a decoded RGBA chunk.

        Args:
            chunk: RGBA payload, or None to use the default palette
            materials: MATL payloads keyed by palette index

        Returns:
            Palette
        """
        if chunk is None:
            return cls(None, materials)

        colors = np.zeros((PALETTE_SIZE, 4), dtype=np.uint8)
        colors[1:] = chunk.entries[:PALETTE_SIZE - 1]
        return cls(colors, materials)

    @property
    def colors(self) -> np.ndarray:
        """Read-only (256, 4) RGBA table indexed by palette index."""
        return self._colors

    def resolve(self, index: int) -> Color:
        """
        Get the color of a palette index.

        Args:
            index: Palette index (1-255)

        Returns:
            Color

        Raises:
            ValueError: For index 0 or an index outside 1-255
        """
        if not 1 <= index < PALETTE_SIZE:
            raise ValueError(f"Cannot resolve palette index {index}")
        r, g, b, a = (int(c) for c in self._colors[index])
        return Color(r, g, b, a)

    def is_defined(self, index: int) -> bool:
        """
        Check whether an index holds a color.

        A file palette entry that is entirely zero is treated as undefined;
        the default palette defines every index.
        """
        if self.is_default:
            return 1 <= index < PALETTE_SIZE
        return 1 <= index < PALETTE_SIZE and bool(self._colors[index].any())

    def with_fallbacks(self, indices) -> Tuple["Palette", List[GeometryError]]:
        """
        Replace undefined entries among indices with default palette colors.

        Args:
            indices: Palette indices used by a model

        Returns:
            Tuple of (palette, warnings); the palette is self when every
            index is defined
        """
        missing = [int(i) for i in indices if not self.is_defined(int(i))]
        if not missing:
            return self, []

        logger.debug("Default colors substituted for palette indices %s", missing)
        colors = self._colors.copy()
        colors[missing] = DEFAULT_PALETTE[missing]
        patched = Palette(colors, self.materials)
        return patched, [UndefinedPaletteEntry(i) for i in missing]

    def uv(self, index: int) -> Tuple[float, float]:
        """Palette texture coordinate of an index."""
        return ((index - 1 + 0.5) / PALETTE_SIZE, 0.5)

    def material_slots(self, indices) -> Tuple[List[Material], np.ndarray]:
        """
        Group palette indices into material slots by exact color equality.

        Slots are ordered by the lowest palette index of each color.

        Args:
            indices: Palette indices to group (any order, duplicates allowed)

        Returns:
            Tuple of (materials, slot_lookup) where slot_lookup is an int32
            array of shape (256,) mapping palette index -> slot, -1 if unused
        """
        lookup = np.full(PALETTE_SIZE, -1, dtype=np.int32)
        groups: Dict[Color, List[int]] = {}

        for index in sorted({int(i) for i in indices}):
            groups.setdefault(self.resolve(index), []).append(index)

        materials = []
        for slot, (color, members) in enumerate(groups.items()):
            material = self.materials.get(members[0])
            materials.append(Material(
                slot=slot,
                color=color,
                palette_indices=tuple(members),
                properties=dict(material.properties) if material else {},
            ))
            lookup[members] = slot

        return materials, lookup

    def to_image(self) -> Image.Image:
        """
        Render the palette as a 256x1 RGBA texture.

        Pixel k holds the color of palette index k + 1, matching mesh UVs.
        """
        pixels = np.zeros((1, PALETTE_SIZE, 4), dtype=np.uint8)
        pixels[0, :PALETTE_SIZE - 1] = self._colors[1:]
        return Image.fromarray(pixels)


@njit(cache=True)
def _srgb_to_linear_component(c: float) -> float:
    """
    Convert a single sRGB component to Linear.

    The sRGB standard uses a piecewise function:
    - Linear below threshold (0.04045)
    - Gamma curve above threshold
    """
    if c <= 0.04045:
        return c / 12.92
    else:
        return ((c + 0.055) / 1.055) ** 2.4


@njit(cache=True, parallel=True)
def srgb_to_linear(colors: np.ndarray) -> np.ndarray:
    """
    Convert sRGB colors to Linear color space.

    Args:
        colors: Array of shape (N, 4) with uint8 sRGB values

    Returns:
        Array of same shape with float32 Linear values [0, 1]
    """
    n = colors.shape[0]
    result = np.empty((n, 4), dtype=np.float32)

    for i in prange(n):
        for c in range(3):  # Only convert RGB, not alpha
            result[i, c] = _srgb_to_linear_component(colors[i, c] / 255.0)
        result[i, 3] = colors[i, 3] / 255.0

    return result
