"""
Laser Raster Package.

Converts raster images into G-code for laser engravers: every pixel's
brightness becomes a beam power and every pixel row a serpentine pass of
travel and burn moves.

Subpackages:
    configs: Settings loading and validation
    imaging: Color filters and the bounded-size tile grid
    gcode: Scan engine, command emitter and file header
    transport: Messages and the background engine thread
    scripts: Command-line entry points

Modules:
    rasterizer: Orchestrator (load, tile, run)
    events: Events published to subscribers
"""

__version__ = "1.0.0"

__all__ = ["configs", "imaging", "gcode", "transport", "rasterizer", "events"]
