"""
Error Taxonomy

Two families of errors are raised while importing a .vox file:

- FormatError: the container itself cannot be trusted (bad magic, unknown
  version, truncated buffer, malformed chunk). Always fatal to the import.
- GeometryError: something is wrong with a single model (voxel outside its
  bounds, zero-sized model, ...). Recoverable: either recorded as a warning
  on the model result or, when fatal to the model, only that model fails.

I/O errors (OSError) belong to whoever reads the file from disk.
"""

from typing import Optional, Tuple


class VoxImportError(Exception):
    """Base class for all errors raised by vox_importer."""


class FormatError(VoxImportError, ValueError):
    """The binary container is invalid; the whole import is aborted."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class BadMagic(FormatError):
    """The first four bytes are not the .vox magic tag."""

    def __init__(self, magic: bytes):
        super().__init__(f"Invalid VOX file: bad magic {magic!r}", offset=0)
        self.magic = magic


class UnsupportedVersion(FormatError):
    """The header declares a version this reader does not understand."""

    def __init__(self, version: int):
        super().__init__(f"Unsupported VOX version: {version}", offset=4)
        self.version = version


class Truncated(FormatError):
    """A declared size runs past the end of the enclosing region."""

    def __init__(self, message: str, offset: Optional[int] = None, needed: int = 0, available: int = 0):
        super().__init__(f"{message}: need {needed} bytes, {available} available", offset)
        self.needed = needed
        self.available = available


class MalformedChunk(FormatError):
    """A chunk's content does not match the fixed layout of its kind."""

    def __init__(self, chunk_id: bytes, message: str, offset: Optional[int] = None):
        super().__init__(f"Malformed {chunk_id.decode('latin-1')} chunk: {message}", offset)
        self.chunk_id = chunk_id


class GeometryError(VoxImportError):
    """A problem confined to one model."""


class OutOfBounds(GeometryError):
    """A voxel coordinate lies outside the model's declared size."""

    def __init__(self, coord: Tuple[int, int, int], size: Tuple[int, int, int]):
        super().__init__(f"Voxel {coord} outside model bounds {size}")
        self.coord = coord
        self.size = size


class InvalidColorIndex(GeometryError):
    """A voxel list entry carries palette index 0 (empty)."""

    def __init__(self, coord: Tuple[int, int, int]):
        super().__init__(f"Voxel {coord} has color index 0")
        self.coord = coord


class UndefinedPaletteEntry(GeometryError):
    """A voxel references a custom palette slot that holds no color."""

    def __init__(self, index: int):
        super().__init__(
            f"Palette index {index} is undefined in the file palette, "
            f"using the default palette entry"
        )
        self.index = index


class DegenerateModel(GeometryError):
    """A model declares a zero or negative dimension."""

    def __init__(self, size: Tuple[int, int, int]):
        super().__init__(f"Degenerate model size {size}")
        self.size = size


class OversizedModel(GeometryError):
    """A model declares a dimension beyond what XYZI coordinates can address."""

    def __init__(self, size: Tuple[int, int, int], limit: int):
        super().__init__(f"Model size {size} exceeds the {limit} voxel limit per axis")
        self.size = size
        self.limit = limit
