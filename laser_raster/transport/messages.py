"""Messages exchanged between the orchestrator and the scan engine.

Every message is an immutable, slotted dataclass.  A run is one fixed
conversation over a pair of queues:

    orchestrator -> engine    Init, Tile*, Commit
    engine -> orchestrator    Row*, Complete | Failed

Ordering
--------
Tiles may arrive in any order but all of them precede ``Commit``; the
engine never produces a ``Row`` before ``Commit`` because any device row
can cross every tile column.  Rows arrive from the highest row index down
to 0 with non-decreasing ``percent``.  ``Complete`` and ``Failed`` are
terminal: nothing follows either of them.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field

import numpy as np

from laser_raster.configs.loader import Settings
from laser_raster.imaging.tile_grid import TileLayout


class ProtocolError(RuntimeError):
    """Raised when a message arrives in a state that does not accept it."""

    pass


@dataclass(frozen=True, slots=True)
class Message(ABC):
    """Base class for all transport messages."""

    pass


# ---------------------------------------------------------------------------
# Orchestrator -> engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Init(Message):
    """Configuration snapshot for one run, sent once.

    Parameters
    ----------
    settings : Settings
        Frozen run settings.
    layout : TileLayout
        Target size and tile geometry the incoming tiles must match.
    """

    settings: Settings
    layout: TileLayout


@dataclass(frozen=True, slots=True)
class Tile(Message):
    """Ownership of one filtered tile buffer.

    The sender must obtain ``buffer`` from ``TileBuffer.detach()`` so its
    own holder can no longer read it.
    """

    col: int
    row: int
    buffer: np.ndarray = field(compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class Commit(Message):
    """All tiles of the run have been sent."""

    pass


# ---------------------------------------------------------------------------
# Engine -> orchestrator
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Row(Message):
    """Commands of one device row.

    Parameters
    ----------
    text : str
        Newline-separated command lines.
    row_index : int
        Device row (0 = top of the bitmap).
    percent : int
        Completion in [0, 100].
    """

    text: str
    row_index: int
    percent: int


@dataclass(frozen=True, slots=True)
class Complete(Message):
    """Scan finished; ``elapsed`` is the engine-side time in seconds."""

    elapsed: float


@dataclass(frozen=True, slots=True)
class Failed(Message):
    """Scan aborted by *error*; no further messages follow."""

    message: str
    error: BaseException = field(compare=False)
