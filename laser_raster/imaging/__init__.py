"""Image side of the rasterizer: color filters and the tile grid."""

from laser_raster.imaging.color_pipeline import apply_filters, to_grayscale
from laser_raster.imaging.tile_grid import (
    BufferMovedError,
    OutOfRangeAccess,
    TileBuffer,
    TileGrid,
    TileLayout,
    build_tiles,
)

__all__ = [
    "BufferMovedError",
    "OutOfRangeAccess",
    "TileBuffer",
    "TileGrid",
    "TileLayout",
    "apply_filters",
    "build_tiles",
    "to_grayscale",
]
