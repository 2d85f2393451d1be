"""
G-code generation module.

Walks the stitched tile grid row by row and renders a state-diffed
command stream with its comment header.
"""

from laser_raster.gcode.emitter import EmitterState, emit, format_number
from laser_raster.gcode.header import header_lines
from laser_raster.gcode.scan_engine import CommandLine, EngineState, ScanEngine

__all__ = [
    "CommandLine",
    "EmitterState",
    "EngineState",
    "ScanEngine",
    "emit",
    "format_number",
    "header_lines",
]
