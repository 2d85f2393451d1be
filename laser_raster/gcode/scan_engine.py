"""Scan engine -- walks the tile grid row by row and emits G-code.

State machine::

    IDLE --initialize()--> INITIALIZED --commit()--> SCANNING --scan()--> DONE

``INITIALIZED`` accepts tiles in any order; ``commit()`` refuses an
incomplete grid.  ``DONE`` is terminal: every further call raises
``ProtocolError``.

Horizontal serpentine scan
--------------------------
Device rows run from ``height - 1`` down to 0.  For each row:

1. With trim on, the active range spans the first to the last pixel of
   nonzero raw power; a row without any is skipped outright.
2. The direction flips (the first emitted row runs left to right).
3. A ``G0`` travel places the beam at the range start of the current
   direction and the row's Y.
4. Each pixel emits ``G1 X S`` (or ``G0 X`` for zero power when
   burn-white is off).  With join on, a pixel whose rendered S equals
   the next pixel's in the range is skipped, so an equal-power run
   collapses into the command of its last pixel.

Coordinates are pixel centers in mm::

    X = x * beam + beam / 2 + offset_x
    Y = (height - 1 - y) * beam + beam / 2 + offset_y
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional

import numpy as np

from laser_raster.configs.loader import Settings, ensure_scan_supported, round_half_up
from laser_raster.gcode.emitter import BURN, TRAVEL, EmitterState, emit, format_number
from laser_raster.imaging.tile_grid import TileGrid, TileLayout
from laser_raster.transport.messages import ProtocolError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class EngineState(Enum):
    """Current scan-engine state."""

    IDLE = auto()
    INITIALIZED = auto()
    SCANNING = auto()
    DONE = auto()


@dataclass(frozen=True)
class CommandLine:
    """Commands of one device row with its completion percentage."""

    text: str
    row_index: int
    percent: int


def row_percent(y: int, height: int) -> int:
    """Completion after device row *y* (rows are scanned high to low)."""
    if height <= 1:
        return 100
    return 100 - round_half_up(y / (height - 1) * 100)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ScanEngine:
    """Single-run raster scanner.

    One instance serves exactly one run; create a new engine for the next
    image.
    """

    def __init__(self) -> None:
        self._state = EngineState.IDLE
        self._settings: Optional[Settings] = None
        self._grid: Optional[TileGrid] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def grid(self) -> Optional[TileGrid]:
        return self._grid

    def _require(self, expected: EngineState, action: str) -> None:
        if self._state is not expected:
            raise ProtocolError(
                f"Cannot {action} in state {self._state.name} "
                f"(expected {expected.name})"
            )

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def initialize(self, settings: Settings, layout: TileLayout) -> None:
        """Accept the run configuration.

        Raises
        ------
        ProtocolError
            If the engine was already initialized.
        ConfigError
            If the settings select an unsupported scan mode.
        """
        self._require(EngineState.IDLE, "initialize")
        ensure_scan_supported(settings)
        self._settings = settings
        self._grid = TileGrid(layout, settings.power_range)
        self._state = EngineState.INITIALIZED
        logger.debug(
            "Engine initialized: %dx%d px, %dx%d tiles",
            layout.width, layout.height, layout.cols, layout.rows,
        )

    def receive_tile(self, col: int, row: int, pixels: np.ndarray) -> None:
        """Store one tile buffer.

        Raises
        ------
        ProtocolError
            Outside ``INITIALIZED``, or if the tile does not fit the layout.
        """
        self._require(EngineState.INITIALIZED, "receive a tile")
        try:
            self._grid.put(col, row, pixels)
        except ValueError as exc:
            raise ProtocolError(str(exc)) from exc
        logger.debug("Received tile (%d, %d)", col, row)

    def commit(self) -> None:
        """Close tile intake and arm the scan.

        Raises
        ------
        ProtocolError
            Outside ``INITIALIZED``, or if any tile is still missing.
        """
        self._require(EngineState.INITIALIZED, "commit")
        missing = self._grid.missing()
        if missing:
            raise ProtocolError(f"Commit with {len(missing)} missing tile(s): {missing[:4]}")
        self._state = EngineState.SCANNING

    def scan(self) -> Iterator[CommandLine]:
        """Yield one ``CommandLine`` per emitted row, highest row first.

        The emitter state lives only for this generator; the engine moves
        to ``DONE`` once row 0 has been processed.
        """
        self._require(EngineState.SCANNING, "scan")
        settings = self._settings
        height = self._grid.height
        state = EmitterState()
        reverse = True
        emitted = 0

        logger.info("Scan started: %d rows", height)
        for y in range(height - 1, -1, -1):
            text = self._scan_row(y, not reverse, state, settings)
            if text is None:
                logger.debug("Row %d skipped (blank)", y)
                continue
            reverse = not reverse
            emitted += 1
            yield CommandLine(text, y, row_percent(y, height))

        self._state = EngineState.DONE
        logger.info("Scan complete: %d of %d rows emitted", emitted, height)

    # ------------------------------------------------------------------
    # Row walk
    # ------------------------------------------------------------------

    def _active_range(self, raw: np.ndarray, trim: bool) -> Optional[tuple[int, int]]:
        """Inclusive ``(start, end)`` columns to walk, ``None`` to skip."""
        if raw.size == 0:
            return None
        if not trim:
            return 0, raw.size - 1
        nonzero = np.flatnonzero(raw)
        if nonzero.size == 0:
            return None
        return int(nonzero[0]), int(nonzero[-1])

    def _scan_row(
        self,
        y: int,
        reverse: bool,
        state: EmitterState,
        settings: Settings,
    ) -> Optional[str]:
        """Render device row *y*; ``None`` when the row has nothing to burn."""
        raw = self._grid.raw_row(y)
        bounds = self._active_range(raw, settings.trim_line)
        if bounds is None:
            return None
        start, end = bounds

        power = self._grid.power_range
        mapped = raw * power.span + power.min

        beam = settings.beam_size
        half = beam / 2.0
        off = settings.offsets
        prec = settings.precision
        verbose = settings.verbose_g

        def x_mm(col: int) -> float:
            return col * beam + half + off.x

        y_mm = (self._grid.height - 1 - y) * beam + half + off.y

        lines: List[str] = []

        def push(text: str) -> None:
            if text:
                lines.append(text)

        push(emit(state, TRAVEL, x=x_mm(end if reverse else start), y=y_mm,
                  precision=prec, verbose=verbose))

        cols = range(end, start - 1, -1) if reverse else range(start, end + 1)
        last = len(cols) - 1
        for i, col in enumerate(cols):
            s = float(mapped[col])

            if settings.join_pixel and i < last:
                nxt = float(mapped[cols[i + 1]])
                if format_number(s, prec.s) == format_number(nxt, prec.s):
                    continue

            if not settings.burn_white and s == 0:
                push(emit(state, TRAVEL, x=x_mm(col), precision=prec, verbose=verbose))
            else:
                push(emit(state, BURN, x=x_mm(col), s=s, precision=prec, verbose=verbose))

        return "\n".join(lines)
