"""Rasterizer -- orchestrates image loading, tiling and the engine run.

Owns the decoded bitmap and its tiles, and drives one ``EngineWorker``
per run::

    load_file(path)      extension check, decode (Pillow)
    load_image(image)    target size, tile grid
    rasterize()          Init -> Tile* -> Commit, returns a RasterJob

Errors
------
Every failure goes through ``_fail``.  With an ``ErrorOccurred``
subscriber the error is published and the call returns ``None``;
without one the exception propagates to the caller.

Usage::

    rasterizer = Rasterizer(load_settings())
    rasterizer.subscribe(RowReady, lambda ev: print(ev.percent))
    rasterizer.load_file("logo.png")
    gcode = rasterizer.rasterize().gcode()
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Type, Union

import numpy as np
from PIL import Image

from laser_raster import __version__
from laser_raster.configs.loader import ConfigError, Settings, ensure_scan_supported
from laser_raster.events import (
    Completed,
    ErrorOccurred,
    Event,
    FileAccepted,
    ImageLoaded,
    RowReady,
    TilesReady,
)
from laser_raster.gcode.header import header_lines
from laser_raster.imaging.tile_grid import TileBuffer, TileLayout, build_tiles
from laser_raster.transport.messages import (
    Commit,
    Complete,
    Failed,
    Init,
    ProtocolError,
    Row,
    Tile,
)
from laser_raster.transport.worker import EngineWorker

logger = logging.getLogger(__name__)

Handler = Callable[[Event], None]
ImageInput = Union[Image.Image, np.ndarray]


class NoImageLoaded(RuntimeError):
    """Raised when an operation needs a bitmap and none is loaded."""

    pass


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class RasterJob:
    """Handle on one running scan.

    Rows are pulled from the engine as the caller iterates; ``wait()``
    and ``gcode()`` drain the remainder.
    """

    def __init__(
        self,
        owner: Rasterizer,
        worker: EngineWorker,
        header: List[str],
        started_at: float,
    ) -> None:
        self._owner = owner
        self._worker = worker
        self._header = header
        self._started_at = started_at
        self._rows: List[Row] = []
        self._finished = False
        self.error: Optional[BaseException] = None
        self.elapsed: Optional[float] = None

    @property
    def done(self) -> bool:
        return self._finished

    @property
    def rows(self) -> List[Row]:
        """Rows received so far."""
        return list(self._rows)

    @property
    def header(self) -> List[str]:
        return list(self._header)

    def iter_rows(self) -> Iterator[Row]:
        """Yield rows as the engine produces them.

        Each row is also published as ``RowReady``; the terminal message
        publishes ``Completed`` or routes the engine error through the
        rasterizer.  Rows already consumed are not yielded again.
        """
        while not self._finished:
            message = self._worker.receive()

            if isinstance(message, Row):
                self._rows.append(message)
                self._owner.publish(
                    RowReady(message.text, message.row_index, message.percent)
                )
                yield message

            elif isinstance(message, Complete):
                self._finished = True
                self.elapsed = time.monotonic() - self._started_at
                logger.info(
                    "Rasterization complete: %d rows in %.3f s (engine %.3f s)",
                    len(self._rows), self.elapsed, message.elapsed,
                )
                self._owner.publish(Completed(self.elapsed, len(self._rows)))

            elif isinstance(message, Failed):
                self._finished = True
                self.error = message.error
                self._owner._fail(message.error)

            else:
                self._finished = True
                self._owner._fail(
                    ProtocolError(f"Unexpected message from the engine: {message!r}")
                )

    def wait(self) -> RasterJob:
        """Block until the run is over."""
        for _ in self.iter_rows():
            pass
        return self

    def gcode(self) -> Optional[str]:
        """Full program text: header, then every row.

        Returns ``None`` if the run failed and the error was handled by a
        subscriber.
        """
        self.wait()
        if self.error is not None:
            return None
        lines = self._header + [row.text for row in self._rows]
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Rasterizer:
    """Image-to-G-code orchestrator.

    Parameters
    ----------
    settings : Settings, optional
        Run settings; defaults to ``Settings()``.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings if settings is not None else Settings()
        self._subscribers: Dict[Type[Event], List[Handler]] = {}
        self.image: Optional[Image.Image] = None
        self.layout: Optional[TileLayout] = None
        self._tiles: List[TileBuffer] = []

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def tiles(self) -> List[TileBuffer]:
        return list(self._tiles)

    def configure(self, settings: Settings) -> None:
        """Replace the settings; reloads an already loaded image."""
        self._settings = settings
        if self.image is not None:
            self.load_image(self.image)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event_type: Type[Event], handler: Handler) -> None:
        """Call *handler* for every published event of *event_type*."""
        self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[Event], handler: Handler) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Event) -> None:
        for handler in list(self._subscribers.get(type(event), [])):
            handler(event)

    def _fail(self, error: BaseException) -> None:
        """Route *error* to ``ErrorOccurred`` subscribers, or raise it."""
        logger.error("%s: %s", type(error).__name__, error)
        if not self._subscribers.get(ErrorOccurred):
            raise error
        self.publish(ErrorOccurred(str(error), error))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_file(self, path: Union[str, Path]) -> Optional[TileLayout]:
        """Accept, decode and load an image file.

        Returns
        -------
        TileLayout or None
            Grid of the loaded image; ``None`` when an error was handled.

        Raises
        ------
        ConfigError
            Unsupported extension, or the file cannot be decoded (only
            without an ``ErrorOccurred`` subscriber).
        """
        path = Path(path)
        try:
            image = self._open(path)
        except ConfigError as exc:
            return self._fail(exc)
        return self.load_image(image)

    def _open(self, path: Path) -> Image.Image:
        extension = path.suffix.lower()
        accept = self._settings.accept
        if extension not in accept:
            raise ConfigError(
                f"Unsupported file extension: {extension or '(none)'}, "
                f"allowed: {','.join(accept)}"
            )

        try:
            size = path.stat().st_size
        except OSError as exc:
            raise ConfigError(f"Unable to load the image {path}: {exc}") from exc

        self.publish(FileAccepted(path, size))
        logger.info("File accepted: %s (%d bytes)", path, size)

        try:
            with Image.open(path) as img:
                img.load()
                return img.copy()
        except (OSError, Image.DecompressionBombError) as exc:
            raise ConfigError(f"Unable to load the image {path}: {exc}") from exc

    def load_image(self, image: ImageInput) -> Optional[TileLayout]:
        """Load a decoded bitmap and build its tile grid.

        Parameters
        ----------
        image : PIL.Image.Image or np.ndarray
            Decoded image, or an (H, W, 3|4) uint8 array.

        Returns
        -------
        TileLayout or None
            Grid of the loaded image; ``None`` when an error was handled.
        """
        try:
            image = _as_image(image)
            width, height = image.size
            target_w, target_h = self._settings.target_size(width, height)
            if target_w < 1 or target_h < 1:
                raise ConfigError(
                    f"Image {width}x{height} px scales to an empty "
                    f"{target_w}x{target_h} target"
                )
        except ConfigError as exc:
            return self._fail(exc)

        self.image = image
        beam = self._settings.beam_size
        self.publish(
            ImageLoaded(
                width, height, target_w, target_h, target_w * beam, target_h * beam
            )
        )
        logger.info(
            "Image loaded: %dx%d px -> %dx%d px (%.2f x %.2f mm)",
            width, height, target_w, target_h, target_w * beam, target_h * beam,
        )

        self._build_tiles()
        return self.layout

    def _build_tiles(self) -> None:
        self.layout, self._tiles = build_tiles(self.image, self._settings)
        self.publish(TilesReady(self.layout.cols, self.layout.rows))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def rasterize(self) -> Optional[RasterJob]:
        """Start a scan of the loaded image on a fresh engine worker.

        Returns
        -------
        RasterJob or None
            Handle on the run; ``None`` when an error was handled.

        Raises
        ------
        NoImageLoaded
            If no image has been loaded.
        ConfigError
            If the settings select an unsupported scan mode.
        """
        try:
            if self.image is None:
                raise NoImageLoaded("No image loaded")
            ensure_scan_supported(self._settings)
        except (NoImageLoaded, ConfigError) as exc:
            return self._fail(exc)

        # A previous run moved the buffers out
        if any(tile.detached for tile in self._tiles):
            self._build_tiles()

        settings = self._settings
        layout = self.layout
        started_at = time.monotonic()

        worker = EngineWorker()
        worker.start()
        worker.send(Init(settings, layout))
        for tile in self._tiles:
            worker.send(Tile(tile.col, tile.row, tile.detach()))
        worker.send(Commit())

        logger.info(
            "Rasterization started: %dx%d px in %d tile(s)",
            layout.width, layout.height, len(self._tiles),
        )
        header = header_lines(settings, layout.width, layout.height, __version__)
        return RasterJob(self, worker, header, started_at)


def _as_image(image: ImageInput) -> Image.Image:
    """Normalize supported bitmap inputs to a PIL image."""
    if isinstance(image, Image.Image):
        return image
    if isinstance(image, np.ndarray):
        if image.dtype != np.uint8 or image.ndim != 3 or image.shape[2] not in (3, 4):
            raise ConfigError(
                f"Expected an (H, W, 3|4) uint8 array, got {image.dtype} {image.shape}"
            )
        return Image.fromarray(np.ascontiguousarray(image))
    raise ConfigError(
        f"Image instance required, got {type(image).__name__}"
    )
