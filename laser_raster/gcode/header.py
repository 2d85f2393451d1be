"""Comment header and feed-rate preamble of a raster G-code file."""

from __future__ import annotations

from typing import List

from laser_raster.configs.loader import Settings


def header_lines(
    settings: Settings,
    width: int,
    height: int,
    version: str,
) -> List[str]:
    """Build the header block for a ``width`` x ``height`` device-pixel job.

    The block ends with an empty line; it does not touch any emitter
    state, so the first travel command of the scan still carries ``G0``.

    Parameters
    ----------
    settings : Settings
        Run settings.
    width, height : int
        Target size in device pixels.
    version : str
        Generator version written into the first comment.

    Returns
    -------
    List[str]
        Header lines without trailing newlines.
    """
    feed = f"{settings.feed_rate_mm_min:g}"
    size_x = width * settings.beam_size
    size_y = height * settings.beam_size
    power = settings.beam_power

    return [
        f"; Generated by laser-raster {version}",
        f"; Size       : {size_x:.2f} x {size_y:.2f} mm",
        f"; Resolution : {settings.ppm:g} PPM - {settings.ppi:g} PPI",
        f"; Beam size  : {settings.beam_size:g} mm",
        f"; Beam power : {power.min:g}% to {power.max:g}%",
        f"; Feed rate  : {feed} mm/min",
        "",
        f"G0 F{feed}",
        f"G1 F{feed}",
        "",
    ]
