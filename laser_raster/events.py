"""Events published by the ``Rasterizer`` to its subscribers.

Subscribers register per event type::

    rasterizer.subscribe(RowReady, lambda ev: print(ev.percent))
    rasterizer.subscribe(ErrorOccurred, on_error)

Events are delivered synchronously on the thread that drives the
operation (``load_file``/``load_image``/``rasterize`` on the caller's
thread, ``RowReady``/``Completed`` on the thread iterating the job).
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Event(ABC):
    """Base class for all rasterizer events."""

    pass


@dataclass(frozen=True, slots=True)
class FileAccepted(Event):
    """Input file passed the extension check."""

    path: Path
    size_bytes: int


@dataclass(frozen=True, slots=True)
class ImageLoaded(Event):
    """Bitmap decoded and its target size derived.

    Parameters
    ----------
    width, height : int
        Source size in pixels.
    target_width, target_height : int
        Device-pixel size after scaling.
    width_mm, height_mm : float
        Physical engraving size.
    """

    width: int
    height: int
    target_width: int
    target_height: int
    width_mm: float
    height_mm: float


@dataclass(frozen=True, slots=True)
class TilesReady(Event):
    """Tile grid built and filtered."""

    cols: int
    rows: int


@dataclass(frozen=True, slots=True)
class RowReady(Event):
    """One device row of commands arrived from the engine."""

    text: str
    row_index: int
    percent: int


@dataclass(frozen=True, slots=True)
class Completed(Event):
    """Run finished; *rows* command lines were produced."""

    elapsed_s: float
    rows: int


@dataclass(frozen=True, slots=True)
class ErrorOccurred(Event):
    """An operation failed with *error*."""

    message: str
    error: BaseException = field(compare=False)
