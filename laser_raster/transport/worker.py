"""Engine execution context: a daemon thread fed through a message queue.

The orchestrator and the scan engine share no mutable state.  Everything
crosses the boundary as a ``Message`` on one of two queues:

    inbox   orchestrator -> engine   (Init, Tile, Commit)
    outbox  engine -> orchestrator   (Row, Complete, Failed)

A worker serves exactly one run and exits after its terminal message.
There is no cancel message; abandoning a run means dropping the worker
(it is a daemon thread) and starting a new one.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Optional

from laser_raster.gcode.scan_engine import EngineState, ScanEngine
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

logger = logging.getLogger(__name__)


class EngineWorker(threading.Thread):
    """Runs one ``ScanEngine`` conversation on a background thread.

    Parameters
    ----------
    name : str
        Thread name, shown in log records.
    """

    def __init__(self, name: str = "raster-engine") -> None:
        super().__init__(name=name, daemon=True)
        self.inbox: queue.Queue[Message] = queue.Queue()
        self.outbox: queue.Queue[Message] = queue.Queue()
        self.engine = ScanEngine()
        self._started_at: Optional[float] = None

    def send(self, message: Message) -> None:
        """Queue *message* for the engine."""
        self.inbox.put(message)

    def receive(self, timeout: Optional[float] = None) -> Message:
        """Block until the engine posts its next message.

        Raises
        ------
        queue.Empty
            If *timeout* elapses first.
        """
        return self.outbox.get(timeout=timeout)

    # ------------------------------------------------------------------
    # Thread body
    # ------------------------------------------------------------------

    def run(self) -> None:
        try:
            self._serve()
        except Exception as exc:  # noqa: BLE001
            logger.error("Engine failed: %s", exc)
            self.outbox.put(Failed(str(exc), exc))

    def _serve(self) -> None:
        while True:
            message = self.inbox.get()
            if self.handle(message):
                return

    def handle(self, message: Message) -> bool:
        """Apply one inbound message; return True once the run is over.

        Raises
        ------
        ProtocolError
            For an unknown message or one the engine state rejects.
        """
        engine = self.engine

        if isinstance(message, Init):
            self._started_at = time.monotonic()
            engine.initialize(message.settings, message.layout)
            return False

        if isinstance(message, Tile):
            engine.receive_tile(message.col, message.row, message.buffer)
            return False

        if isinstance(message, Commit):
            engine.commit()
            for line in engine.scan():
                self.outbox.put(Row(line.text, line.row_index, line.percent))
            elapsed = time.monotonic() - (self._started_at or time.monotonic())
            self.outbox.put(Complete(elapsed))
            return engine.state is EngineState.DONE

        raise ProtocolError(f"Unexpected message for the engine: {message!r}")
