"""Tile grid: bounded-size tiles covering the scaled bitmap.

A target bitmap of ``width`` x ``height`` device pixels is cut into a grid
of tiles no larger than ``buffer_limit`` on either axis.  Every tile is a
full-width tile except the last column (and last row), which takes the
remainder; when the dimension is an exact multiple of the limit the last
tile is a full one, never an empty one.

Two sides share this module:

    orchestrator  build_tiles()  -> TileLayout + [TileBuffer, ...]
    engine        TileGrid.put() -> power(x, y) / raw_row(y)

``TileBuffer.detach()`` moves a tile's pixels out of its holder.  After
the move the holder refuses reads, so the sender cannot touch a buffer
the engine now owns.

Power convention:
    raw    S = (255 - mean(R, G, B)) / 255      white -> 0, black -> 1
    mapped S * (max - min) + min                 into the firmware range
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from PIL import Image

from laser_raster.configs.loader import PowerRange, Settings
from laser_raster.imaging.color_pipeline import apply_filters

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class OutOfRangeAccess(IndexError):
    """Raised when a pixel outside ``[0, width) x [0, height)`` is requested."""

    pass


class BufferMovedError(RuntimeError):
    """Raised when a tile buffer is read after ownership was transferred."""

    pass


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def axis_extents(total: int, limit: int) -> List[int]:
    """Tile sizes along one axis.

    Parameters
    ----------
    total : int
        Axis length in device pixels (>= 0).
    limit : int
        Maximum tile size (> 0).

    Returns
    -------
    List[int]
        ``ceil(total / limit)`` sizes summing to *total*.

    Examples
    --------
    >>> axis_extents(5000, 2048)
    [2048, 2048, 904]
    >>> axis_extents(4096, 2048)
    [2048, 2048]
    """
    if limit <= 0:
        raise ValueError(f"buffer limit must be > 0, got {limit}")
    count = math.ceil(total / limit)
    sizes = [limit] * count
    if count:
        sizes[-1] = total - (count - 1) * limit
    return sizes


@dataclass(frozen=True)
class TileLayout:
    """Geometry of a tile grid over a ``width`` x ``height`` target."""

    width: int
    height: int
    buffer_limit: int
    col_widths: Tuple[int, ...] = field(init=False)
    row_heights: Tuple[int, ...] = field(init=False)

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Target size must be non-negative, got {self.width}x{self.height}"
            )
        object.__setattr__(
            self, "col_widths", tuple(axis_extents(self.width, self.buffer_limit))
        )
        object.__setattr__(
            self, "row_heights", tuple(axis_extents(self.height, self.buffer_limit))
        )

    @property
    def cols(self) -> int:
        return len(self.col_widths)

    @property
    def rows(self) -> int:
        return len(self.row_heights)

    def tile_size(self, col: int, row: int) -> Tuple[int, int]:
        """(width, height) of tile ``(col, row)``."""
        return self.col_widths[col], self.row_heights[row]

    def tile_origin(self, col: int, row: int) -> Tuple[int, int]:
        """Top-left device pixel of tile ``(col, row)``."""
        return col * self.buffer_limit, row * self.buffer_limit

    def cells(self) -> Iterator[Tuple[int, int]]:
        """Yield every ``(col, row)`` in row-major order."""
        for row in range(self.rows):
            for col in range(self.cols):
                yield col, row


# ---------------------------------------------------------------------------
# Orchestrator side
# ---------------------------------------------------------------------------


class TileBuffer:
    """Sender-side holder of one filtered tile.

    The pixels stay readable until ``detach()`` hands them over; after
    that every read raises ``BufferMovedError``.
    """

    __slots__ = ("col", "row", "_pixels")

    def __init__(self, col: int, row: int, pixels: np.ndarray):
        self.col = col
        self.row = row
        self._pixels: Optional[np.ndarray] = pixels

    @property
    def detached(self) -> bool:
        return self._pixels is None

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise BufferMovedError(
                f"Tile ({self.col}, {self.row}) buffer was moved to the engine"
            )
        return self._pixels

    def detach(self) -> np.ndarray:
        """Move the pixel array out, leaving this holder empty.

        Returns
        -------
        np.ndarray
            The (H, W, 4) uint8 array, marked read-only.
        """
        pixels = self.pixels
        self._pixels = None
        pixels.setflags(write=False)
        return pixels

    def __repr__(self) -> str:
        if self._pixels is None:
            state = "moved"
        else:
            state = f"{self._pixels.shape[1]}x{self._pixels.shape[0]}"
        return f"TileBuffer(col={self.col}, row={self.row}, {state})"


def _flatten_on_white(image: Image.Image) -> Image.Image:
    """Composite *image* over opaque white so transparency never burns."""
    rgba = image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    return Image.alpha_composite(background, rgba)


def _source_box(
    layout: TileLayout,
    col: int,
    row: int,
    ratio: float,
    source_size: Tuple[int, int],
) -> Tuple[float, float, float, float]:
    """Source-image region that scales onto tile ``(col, row)``.

    The box is clamped to the source bounds; rounding of the target size
    can push the last tile's region a fraction of a pixel past the edge.
    """
    tw, th = layout.tile_size(col, row)
    ox, oy = layout.tile_origin(col, row)
    sw, sh = source_size

    left = min(ox / ratio, sw)
    top = min(oy / ratio, sh)
    right = min(left + tw / ratio, sw)
    bottom = min(top + th / ratio, sh)

    if right - left <= 0:
        left = max(0.0, right - tw / ratio)
    if bottom - top <= 0:
        top = max(0.0, bottom - th / ratio)
    return left, top, right, bottom


def render_tile(
    source: Image.Image,
    layout: TileLayout,
    col: int,
    row: int,
    settings: Settings,
) -> np.ndarray:
    """Scale one source region into a tile and run the color filters.

    Parameters
    ----------
    source : Image.Image
        RGBA source already flattened on white.
    layout : TileLayout
        Grid geometry.
    col, row : int
        Tile coordinate.
    settings : Settings
        Scale ratio, smoothing and filter parameters.

    Returns
    -------
    np.ndarray
        Filtered (H, W, 4) uint8 tile.
    """
    tw, th = layout.tile_size(col, row)
    resample = Image.Resampling.BILINEAR if settings.smoothing else Image.Resampling.NEAREST
    box = _source_box(layout, col, row, settings.scale_ratio, source.size)

    scaled = source.resize((tw, th), resample=resample, box=box)
    pixels = np.array(scaled, dtype=np.uint8)
    return apply_filters(pixels, settings)


def build_tiles(
    image: Image.Image,
    settings: Settings,
) -> Tuple[TileLayout, List[TileBuffer]]:
    """Cut *image* into filtered tiles at the settings' scale.

    Parameters
    ----------
    image : Image.Image
        Decoded source bitmap, any PIL mode.
    settings : Settings
        Resolution, beam size, buffer size, smoothing and filters.

    Returns
    -------
    layout : TileLayout
        Grid geometry over the target size.
    tiles : List[TileBuffer]
        One holder per cell, row-major.
    """
    width, height = settings.target_size(*image.size)
    layout = TileLayout(width, height, settings.buffer_size)
    source = _flatten_on_white(image)

    tiles = []
    for col, row in layout.cells():
        pixels = render_tile(source, layout, col, row, settings)
        tiles.append(TileBuffer(col, row, pixels))
        logger.debug(
            "Rendered tile (%d, %d): %dx%d px", col, row, pixels.shape[1], pixels.shape[0]
        )

    logger.info(
        "Built %dx%d tile grid for %dx%d px target (limit %d)",
        layout.cols, layout.rows, width, height, layout.buffer_limit,
    )
    return layout, tiles


# ---------------------------------------------------------------------------
# Engine side
# ---------------------------------------------------------------------------


class TileGrid:
    """Receiver-side stitched grid with a virtual pixel accessor.

    Parameters
    ----------
    layout : TileLayout
        Grid geometry; incoming tiles must match it.
    power_range : PowerRange
        Firmware interval that ``power()`` maps raw intensity into.
    """

    def __init__(self, layout: TileLayout, power_range: PowerRange):
        self.layout = layout
        self.power_range = power_range
        self._tiles: Dict[Tuple[int, int], np.ndarray] = {}

    @property
    def width(self) -> int:
        return self.layout.width

    @property
    def height(self) -> int:
        return self.layout.height

    def put(self, col: int, row: int, pixels: np.ndarray) -> None:
        """Store tile ``(col, row)``; tiles may arrive in any order.

        Raises
        ------
        ValueError
            If the coordinate is outside the grid, the tile was already
            received, or its shape does not match the layout.
        """
        if not (0 <= col < self.layout.cols and 0 <= row < self.layout.rows):
            raise ValueError(
                f"Tile ({col}, {row}) outside {self.layout.cols}x{self.layout.rows} grid"
            )
        if (col, row) in self._tiles:
            raise ValueError(f"Tile ({col}, {row}) received twice")

        tw, th = self.layout.tile_size(col, row)
        if pixels.shape != (th, tw, 4):
            raise ValueError(
                f"Tile ({col}, {row}) has shape {pixels.shape}, expected {(th, tw, 4)}"
            )

        if pixels.flags.writeable:
            pixels.setflags(write=False)
        self._tiles[(col, row)] = pixels

    def missing(self) -> List[Tuple[int, int]]:
        """Cells not yet received, row-major."""
        return [cell for cell in self.layout.cells() if cell not in self._tiles]

    def is_complete(self) -> bool:
        return len(self._tiles) == self.layout.cols * self.layout.rows

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfRangeAccess(
                f"Pixel ({x}, {y}) outside {self.width}x{self.height} grid"
            )

    def _tile(self, col: int, row: int) -> np.ndarray:
        try:
            return self._tiles[(col, row)]
        except KeyError:
            raise RuntimeError(f"Tile ({col}, {row}) has not been received") from None

    def raw_power(self, x: int, y: int) -> float:
        """Unmapped intensity in [0, 1] at device pixel ``(x, y)``.

        Raises
        ------
        OutOfRangeAccess
            If ``(x, y)`` lies outside the target.
        """
        self._check_bounds(x, y)
        limit = self.layout.buffer_limit
        tile = self._tile(x // limit, y // limit)
        r, g, b = (int(c) for c in tile[y % limit, x % limit, :3])
        return (255.0 - (r + g + b) / 3.0) / 255.0

    def power(self, x: int, y: int) -> float:
        """Intensity at ``(x, y)`` mapped into the firmware power range."""
        return self.raw_power(x, y) * self.power_range.span + self.power_range.min

    def raw_row(self, y: int) -> np.ndarray:
        """Raw intensities of device row *y*, stitched across tile columns.

        Raises
        ------
        OutOfRangeAccess
            If *y* lies outside the target.
        """
        if not 0 <= y < self.height:
            raise OutOfRangeAccess(f"Row {y} outside {self.width}x{self.height} grid")
        limit = self.layout.buffer_limit
        row, local_y = divmod(y, limit)

        parts = []
        for col in range(self.layout.cols):
            rgb = self._tile(col, row)[local_y, :, :3].astype(np.float64)
            parts.append((255.0 - rgb.sum(axis=1) / 3.0) / 255.0)
        if not parts:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate(parts)

    def power_row(self, y: int) -> np.ndarray:
        """Mapped intensities of device row *y*."""
        return self.raw_row(y) * self.power_range.span + self.power_range.min
