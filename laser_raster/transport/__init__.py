"""Message protocol between the orchestrator and the scan engine.

The engine thread lives in ``laser_raster.transport.worker``.
"""

from laser_raster.transport.messages import (
    Commit,
    Complete,
    Failed,
    Init,
    Message,
    ProtocolError,
    Row,
    Tile,
)

__all__ = [
    "Commit",
    "Complete",
    "Failed",
    "Init",
    "Message",
    "ProtocolError",
    "Row",
    "Tile",
]
