"""Tests for tile layout, tile rendering and the virtual pixel accessor.

Validates tiling totality (including exact multiples of the buffer limit),
accessor bounds, power mapping, alpha flattening, and buffer moves.
"""

from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from laser_raster.configs.loader import PowerRange, Settings
from laser_raster.imaging.tile_grid import (
    BufferMovedError,
    OutOfRangeAccess,
    TileBuffer,
    TileGrid,
    TileLayout,
    axis_extents,
    build_tiles,
)


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------


def unit_settings(**kwargs) -> Settings:
    """Settings with a 1:1 source-to-device pixel ratio."""
    kwargs.setdefault("ppi", 25.4)
    kwargs.setdefault("beam_size", 1.0)
    kwargs.setdefault("grayscale", "average")
    return Settings(**kwargs)


def gray_image(values: list[list[int]]) -> Image.Image:
    arr = np.array(values, dtype=np.uint8)
    return Image.fromarray(np.stack([arr, arr, arr], axis=-1))


def grid_from(image: Image.Image, settings: Settings) -> TileGrid:
    layout, tiles = build_tiles(image, settings)
    grid = TileGrid(layout, settings.power_range)
    for tile in tiles:
        grid.put(tile.col, tile.row, tile.detach())
    return grid


@pytest.fixture()
def ramp() -> Image.Image:
    """5x3 image with a distinct gray per pixel."""
    return gray_image([[0, 10, 20, 30, 40], [50, 60, 70, 80, 90], [100, 110, 120, 130, 255]])


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestAxisExtents:
    def test_remainder_tile(self) -> None:
        assert axis_extents(5000, 2048) == [2048, 2048, 904]

    def test_exact_multiple_has_no_empty_tile(self) -> None:
        assert axis_extents(4096, 2048) == [2048, 2048]

    def test_smaller_than_limit(self) -> None:
        assert axis_extents(10, 2048) == [10]

    def test_zero_length(self) -> None:
        assert axis_extents(0, 2048) == []

    def test_invalid_limit(self) -> None:
        with pytest.raises(ValueError):
            axis_extents(10, 0)


class TestTileLayout:
    @pytest.mark.parametrize(
        "width, height, limit",
        [(1, 1, 1), (7, 5, 2), (8, 6, 2), (2048, 2049, 2048), (300, 17, 64), (13, 13, 13)],
    )
    def test_tiles_cover_target_exactly(self, width: int, height: int, limit: int) -> None:
        layout = TileLayout(width, height, limit)
        assert sum(layout.col_widths) == width
        assert sum(layout.row_heights) == height
        assert all(0 < w <= limit for w in layout.col_widths)
        assert all(0 < h <= limit for h in layout.row_heights)

        covered = np.zeros((height, width), dtype=np.int32)
        for col, row in layout.cells():
            ox, oy = layout.tile_origin(col, row)
            tw, th = layout.tile_size(col, row)
            covered[oy:oy + th, ox:ox + tw] += 1
        assert (covered == 1).all()

    def test_grid_dimensions(self) -> None:
        layout = TileLayout(5000, 100, 2048)
        assert (layout.cols, layout.rows) == (3, 1)

    def test_cells_row_major(self) -> None:
        layout = TileLayout(3, 3, 2)
        assert list(layout.cells()) == [(0, 0), (1, 0), (0, 1), (1, 1)]

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            TileLayout(-1, 5, 2)


# ---------------------------------------------------------------------------
# Building tiles
# ---------------------------------------------------------------------------


class TestBuildTiles:
    def test_tile_shapes_follow_layout(self, ramp: Image.Image) -> None:
        layout, tiles = build_tiles(ramp, unit_settings(buffer_size=2))
        assert (layout.width, layout.height) == (5, 3)
        assert (layout.cols, layout.rows) == (3, 2)
        for tile in tiles:
            tw, th = layout.tile_size(tile.col, tile.row)
            assert tile.pixels.shape == (th, tw, 4)

    def test_stitched_grid_matches_source(self, ramp: Image.Image) -> None:
        grid = grid_from(ramp, unit_settings(buffer_size=2))
        source = np.asarray(ramp)[..., 0].astype(float)
        for y in range(3):
            expected = (255.0 - source[y]) / 255.0
            np.testing.assert_allclose(grid.raw_row(y), expected)

    def test_tiling_does_not_change_pixels(self, ramp: Image.Image) -> None:
        small = grid_from(ramp, unit_settings(buffer_size=2))
        whole = grid_from(ramp, unit_settings(buffer_size=2048))
        for y in range(3):
            np.testing.assert_array_equal(small.raw_row(y), whole.raw_row(y))

    def test_upscale_nearest(self) -> None:
        image = gray_image([[0, 255]])
        settings = unit_settings(beam_size=0.5)  # ratio 2
        grid = grid_from(image, settings)
        assert (grid.width, grid.height) == (4, 2)
        np.testing.assert_allclose(grid.raw_row(0), [1.0, 1.0, 0.0, 0.0])
        np.testing.assert_allclose(grid.raw_row(1), [1.0, 1.0, 0.0, 0.0])

    def test_transparent_pixels_become_white(self) -> None:
        rgba = np.array([[[0, 0, 0, 0], [0, 0, 0, 255]]], dtype=np.uint8)
        grid = grid_from(Image.fromarray(rgba), unit_settings())
        assert grid.raw_power(0, 0) == 0.0
        assert grid.raw_power(1, 0) == 1.0

    def test_filters_applied_per_tile(self) -> None:
        image = gray_image([[100, 100, 100]])
        grid = grid_from(image, unit_settings(buffer_size=1, brightness=155))
        np.testing.assert_allclose(grid.raw_row(0), [0.0, 0.0, 0.0])

    def test_smoothing_produces_intermediate_values(self) -> None:
        image = gray_image([[0, 255]])
        grid = grid_from(image, unit_settings(beam_size=0.25, smoothing=True))
        row = grid.raw_row(0)
        assert ((row > 0.0) & (row < 1.0)).any()


# ---------------------------------------------------------------------------
# Accessor
# ---------------------------------------------------------------------------


class TestAccessor:
    @pytest.mark.parametrize("limit", [1, 2, 3, 2048])
    def test_total_inside_and_fails_outside(self, ramp: Image.Image, limit: int) -> None:
        grid = grid_from(ramp, unit_settings(buffer_size=limit))
        for y in range(grid.height):
            for x in range(grid.width):
                assert 0.0 <= grid.power(x, y) <= 1.0
        for x, y in [(-1, 0), (0, -1), (5, 0), (0, 3), (5, 3), (100, 100)]:
            with pytest.raises(OutOfRangeAccess):
                grid.power(x, y)

    def test_out_of_range_is_index_error(self, ramp: Image.Image) -> None:
        grid = grid_from(ramp, unit_settings())
        with pytest.raises(IndexError):
            grid.raw_power(5, 0)

    def test_raw_row_bounds(self, ramp: Image.Image) -> None:
        grid = grid_from(ramp, unit_settings())
        with pytest.raises(OutOfRangeAccess):
            grid.raw_row(3)
        with pytest.raises(OutOfRangeAccess):
            grid.raw_row(-1)

    def test_black_and_white_extremes(self, ramp: Image.Image) -> None:
        grid = grid_from(ramp, unit_settings())
        assert grid.raw_power(0, 0) == 1.0
        assert grid.raw_power(4, 2) == 0.0

    def test_power_maps_into_range(self, ramp: Image.Image) -> None:
        settings = unit_settings(firmware_range=PowerRange(0.0, 1000.0))
        grid = grid_from(ramp, settings)
        assert grid.power(0, 0) == pytest.approx(1000.0)
        assert grid.power(4, 2) == pytest.approx(0.0)
        assert grid.power(1, 0) == pytest.approx((255 - 10) / 255 * 1000.0)

    def test_power_with_offset_range(self) -> None:
        grid = grid_from(gray_image([[255, 0]]), unit_settings())
        grid.power_range = PowerRange(10.0, 20.0)
        assert grid.power(0, 0) == pytest.approx(10.0)
        assert grid.power(1, 0) == pytest.approx(20.0)
        np.testing.assert_allclose(grid.power_row(0), [10.0, 20.0])


# ---------------------------------------------------------------------------
# Receiving tiles
# ---------------------------------------------------------------------------


class TestTileGridPut:
    @pytest.fixture()
    def grid(self) -> TileGrid:
        return TileGrid(TileLayout(3, 2, 2), PowerRange(0.0, 1.0))

    @staticmethod
    def blank(w: int, h: int) -> np.ndarray:
        return np.full((h, w, 4), 255, dtype=np.uint8)

    def test_any_order_completes(self, grid: TileGrid) -> None:
        grid.put(1, 0, self.blank(1, 2))
        assert not grid.is_complete()
        assert grid.missing() == [(0, 0)]
        grid.put(0, 0, self.blank(2, 2))
        assert grid.is_complete()

    def test_wrong_shape_rejected(self, grid: TileGrid) -> None:
        with pytest.raises(ValueError, match="shape"):
            grid.put(1, 0, self.blank(2, 2))

    def test_duplicate_rejected(self, grid: TileGrid) -> None:
        grid.put(0, 0, self.blank(2, 2))
        with pytest.raises(ValueError, match="twice"):
            grid.put(0, 0, self.blank(2, 2))

    def test_outside_grid_rejected(self, grid: TileGrid) -> None:
        with pytest.raises(ValueError, match="outside"):
            grid.put(2, 0, self.blank(1, 2))

    def test_received_tiles_read_only(self, grid: TileGrid) -> None:
        pixels = self.blank(2, 2)
        grid.put(0, 0, pixels)
        assert not pixels.flags.writeable


# ---------------------------------------------------------------------------
# Buffer moves
# ---------------------------------------------------------------------------


class TestTileBuffer:
    def test_detach_moves_buffer(self) -> None:
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        holder = TileBuffer(0, 0, pixels)
        moved = holder.detach()
        assert moved is pixels
        assert holder.detached
        with pytest.raises(BufferMovedError):
            holder.pixels
        with pytest.raises(BufferMovedError):
            holder.detach()

    def test_detached_array_is_read_only(self) -> None:
        moved = TileBuffer(0, 0, np.zeros((1, 1, 4), dtype=np.uint8)).detach()
        with pytest.raises(ValueError):
            moved[0, 0, 0] = 1

    def test_repr_reports_state(self) -> None:
        holder = TileBuffer(1, 2, np.zeros((3, 4, 4), dtype=np.uint8))
        assert "4x3" in repr(holder)
        holder.detach()
        assert "moved" in repr(holder)
