"""Logging setup for the rasterize CLI and library callers.

Records go to stderr as human-readable lines and, optionally, to a log
file as human or JSON lines.  Fields pushed with ``push_context`` (for
example ``app=rasterize``) are attached to every record written from the
same context; the engine worker thread starts with an empty one.

Line formats:
    2026-10-18T13:45:12.345Z | INFO     | app=rasterize | Scan complete: 120 of 120 rows emitted
    {"t": "2026-10-18T13:45:12.345000+00:00", "lvl": "INFO", "name": "...", "app": "rasterize", "msg": "..."}

Calling ``setup_logging`` again swaps out the handlers it installed the
previous time; handlers added by anyone else are left alone.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context: contextvars.ContextVar = contextvars.ContextVar("log_context", default={})

# Handlers owned by the last setup_logging() call
_installed: List[logging.Handler] = []

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


class ContextFormatter(logging.Formatter):
    """Render records together with the current context fields.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` or ``"json"``.
    use_color : bool
        Color the level name; ignored unless stderr is a terminal.
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        fields = _context.get()
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)

        if self.fmt_mode == "json":
            payload: Dict[str, Any] = {
                "t": ts.isoformat(),
                "lvl": record.levelname,
                "name": record.name,
                **fields,
                "msg": record.getMessage(),
            }
            if record.exc_info:
                payload["exc"] = self.formatException(record.exc_info)
            return json.dumps(payload)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{LEVEL_COLORS.get(record.levelname, '')}{level}{RESET}"

        parts = [ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z", level]
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        parts.append(record.getMessage())

        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json_format: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL".
    log_file : str, optional
        Also write records to this file (parents are created).
    json_format : bool
        Write the log file as JSON lines.
    color : bool
        Color level names on the console.
    to_stderr : bool
        Log to the console.
    capture_warnings : bool
        Route ``warnings.warn`` through logging.
    quiet_libs : list[str], optional
        Loggers raised to WARNING, e.g. ``["PIL"]``.
    context : dict, optional
        Fields attached to every record, e.g. ``{"app": "rasterize"}``.

    Returns
    -------
    list[logging.Handler]
        The handlers installed by this call.
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color))
        _installed.append(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            ContextFormatter("json" if json_format else "human", use_color=False)
        )
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)
    for lib in quiet_libs or []:
        logging.getLogger(lib).setLevel(logging.WARNING)
    if capture_warnings:
        logging.captureWarnings(True)

    return list(_installed)


def push_context(**fields: Any) -> None:
    """Attach *fields* to every later record of the current context."""
    _context.set({**_context.get(), **fields})


def install_excepthook() -> None:
    """Log uncaught exceptions at CRITICAL; Ctrl-C keeps its default output."""

    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = log_exception
