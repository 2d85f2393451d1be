"""Raster settings loading and validation."""

from laser_raster.configs.loader import (
    GRAYSCALE_ALGORITHMS,
    GRAYSCALE_ALIASES,
    ConfigError,
    Offsets,
    PowerRange,
    Precision,
    Settings,
    ensure_scan_supported,
    load_settings,
    round_half_up,
)

__all__ = [
    "GRAYSCALE_ALGORITHMS",
    "GRAYSCALE_ALIASES",
    "ConfigError",
    "Offsets",
    "PowerRange",
    "Precision",
    "Settings",
    "ensure_scan_supported",
    "load_settings",
    "round_half_up",
]
