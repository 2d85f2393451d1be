#!/usr/bin/env python3
"""
Rasterize Script.

Convert an image file into laser-engraving G-code.

Usage:
    python -m laser_raster.scripts.rasterize logo.png
    python -m laser_raster.scripts.rasterize logo.png -o out/logo.gcode
    python -m laser_raster.scripts.rasterize logo.png -c my_settings.yaml --ppi 508
    python -m laser_raster.scripts.rasterize photo.jpg --beam-size 0.2 --no-trim --no-join

Output defaults to the input path with a ``.gcode`` suffix and is written
atomically.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from laser_raster.configs.loader import ConfigError, load_settings
from laser_raster.events import Completed, RowReady
from laser_raster.rasterizer import NoImageLoaded, Rasterizer
from src.utils.fs import atomic_write_text
from src.utils.logging_config import install_excepthook, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert an image into laser-engraving G-code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", type=Path, help="Image file to rasterize")
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="G-code output path (default: <input>.gcode)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Settings file path (default: bundled settings.yaml)",
    )

    # Setting overrides
    parser.add_argument("--ppi", type=float, help="Source resolution (pixels per inch)")
    parser.add_argument("--beam-size", type=float, help="Beam diameter (mm)")
    parser.add_argument("--feed-rate", type=float, help="Feed rate (settings feed_unit)")
    parser.add_argument(
        "--no-trim",
        action="store_true",
        help="Scan full rows instead of trimming blank ends",
    )
    parser.add_argument(
        "--no-join",
        action="store_true",
        help="Emit one command per pixel",
    )
    parser.add_argument(
        "--no-burn-white",
        action="store_true",
        help="Travel over zero-power pixels instead of burning at S0",
    )
    parser.add_argument(
        "--verbose-g",
        action="store_true",
        help="Repeat G0/G1 on every command",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", type=str, help="Also write the log to this file")
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Write the log file as JSON lines",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Map command-line flags onto ``load_settings`` overrides."""
    overrides: Dict[str, Any] = {}
    if args.ppi is not None:
        overrides["ppi"] = args.ppi
    if args.beam_size is not None:
        overrides["beam_size"] = args.beam_size
    if args.feed_rate is not None:
        overrides["feed_rate"] = args.feed_rate
    if args.no_trim:
        overrides["trim_line"] = False
    if args.no_join:
        overrides["join_pixel"] = False
    if args.no_burn_white:
        overrides["burn_white"] = False
    if args.verbose_g:
        overrides["verbose_g"] = True
    return overrides


class ProgressLogger:
    """Logs rasterization progress every *step* percent."""

    def __init__(self, step: int = 10) -> None:
        self.step = step
        self._next = step

    def __call__(self, event: RowReady) -> None:
        if event.percent >= self._next:
            logger.info("Progress: %d%%", event.percent)
            self._next = (event.percent // self.step + 1) * self.step


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        log_level=args.log_level,
        log_file=args.log_file,
        json_format=args.log_json,
        quiet_libs=["PIL"],
        context={"app": "rasterize"},
    )
    install_excepthook()

    output = args.output or args.input.with_suffix(".gcode")

    try:
        settings = load_settings(args.config, **overrides_from_args(args))
    except (ConfigError, FileNotFoundError) as e:
        logger.error("Error loading settings: %s", e)
        return 1

    rasterizer = Rasterizer(settings)
    rasterizer.subscribe(RowReady, ProgressLogger())
    rasterizer.subscribe(
        Completed,
        lambda ev: logger.info("Done: %d rows in %.2f s", ev.rows, ev.elapsed_s),
    )

    try:
        rasterizer.load_file(args.input)
        gcode = rasterizer.rasterize().gcode()
    except (ConfigError, NoImageLoaded) as e:
        logger.error("Rasterization failed: %s", e)
        return 1

    atomic_write_text(output, gcode)
    logger.info("G-code written to %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
