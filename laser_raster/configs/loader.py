"""Settings loader for laser rasterization.

Loads and validates ``settings.yaml`` into a typed, frozen ``Settings``
dataclass.  Every run snapshots one ``Settings`` instance; nothing in the
pipeline mutates it afterwards.

Feed rates may be configured in mm/min or mm/sec.  Conversion to the
G-code ``F`` parameter (mm/min) is exposed as ``Settings.feed_rate_mm_min``
and happens only at the output boundary.

Usage::

    from laser_raster.configs.loader import load_settings
    settings = load_settings()                          # default path
    settings = load_settings("/custom/settings.yaml")   # explicit path
    settings = load_settings(ppi=508, beam_size=0.05)   # overrides
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from src.utils.fs import load_yaml
from src.utils.validators import RasterSettingsV1, validate_raster_settings

logger = logging.getLogger(__name__)

GRAYSCALE_ALGORITHMS = (
    "average",
    "luma",
    "luma-601",
    "luma-709",
    "luma-240",
    "desaturation",
    "decomposition-min",
    "decomposition-max",
    "red-channel",
    "green-channel",
    "blue-channel",
)
"""Recognized grayscale selectors; anything else reduces with ``average``."""

GRAYSCALE_ALIASES = {
    "red-chanel": "red-channel",
    "green-chanel": "green-channel",
    "blue-chanel": "blue-channel",
}
"""Legacy selector spellings, normalized on load."""

FEED_UNITS = ("mm/min", "mm/sec")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when settings are invalid or an input cannot be accepted."""

    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward (``2.5 -> 3``)."""
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PowerRange:
    """Closed ``[min, max]`` power interval."""

    min: float
    max: float

    @property
    def span(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class Precision:
    """Decimal places rendered for each command letter."""

    x: int = 2
    y: int = 2
    s: int = 4


@dataclass(frozen=True)
class Offsets:
    """Global coordinate offsets in mm."""

    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Settings:
    """Complete, immutable configuration of one rasterization run.

    All linear dimensions are in **millimeters**.  ``beam_power`` is a
    percentage of ``firmware_range``; see ``power_range`` for the
    resulting S interval.
    """

    ppi: float = 254.0
    beam_size: float = 0.1
    smoothing: bool = False

    contrast: float = 0.0
    brightness: float = 0.0
    gamma: float = 0.0
    grayscale: str = "luma"
    shades_of_gray: int = 256

    firmware_range: PowerRange = PowerRange(0.0, 1.0)
    beam_power: PowerRange = PowerRange(0.0, 100.0)
    feed_rate: float = 1500.0
    feed_unit: str = "mm/min"

    trim_line: bool = True
    join_pixel: bool = True
    burn_white: bool = True
    verbose_g: bool = False
    diagonal: bool = False

    precision: Precision = field(default_factory=Precision)
    offsets: Offsets = field(default_factory=Offsets)
    buffer_size: int = 2048
    accept: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif", ".bmp")

    def __post_init__(self) -> None:
        _validate_settings(self)

    # -- Derived values -----------------------------------------------------

    @property
    def ppm(self) -> float:
        """Millimeters per source pixel (25.4 / ppi, 10 decimals)."""
        return round(2540.0 / (self.ppi * 100.0), 10)

    @property
    def scale_ratio(self) -> float:
        """Device pixels per source pixel."""
        return self.ppm / self.beam_size

    @property
    def power_range(self) -> PowerRange:
        """Firmware S interval actually used after the beam-power percentages."""
        fw = self.firmware_range
        return PowerRange(
            fw.min + fw.span * self.beam_power.min / 100.0,
            fw.min + fw.span * self.beam_power.max / 100.0,
        )

    @property
    def feed_rate_mm_min(self) -> float:
        """Feed rate converted to the G-code ``F`` unit (mm/min)."""
        if self.feed_unit == "mm/sec":
            return self.feed_rate * 60.0
        return self.feed_rate

    def target_size(self, width: int, height: int) -> tuple[int, int]:
        """Device-pixel size of a ``width`` x ``height`` source bitmap."""
        ratio = self.scale_ratio
        return round_half_up(width * ratio), round_half_up(height * ratio)

    def replace(self, **changes: Any) -> Settings:
        """Return a validated copy with *changes* applied."""
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_settings(cfg: Settings) -> None:
    """Check cross-field invariants that the YAML schema cannot express."""
    if not cfg.ppi > 0:
        raise ConfigError(f"ppi must be > 0, got {cfg.ppi}")
    if not cfg.beam_size > 0:
        raise ConfigError(f"beam_size must be > 0, got {cfg.beam_size}")
    if cfg.firmware_range.min > cfg.firmware_range.max:
        raise ConfigError(
            f"firmware_range min ({cfg.firmware_range.min}) must be <= "
            f"max ({cfg.firmware_range.max})"
        )
    bp = cfg.beam_power
    if not 0.0 <= bp.min <= bp.max <= 100.0:
        raise ConfigError(
            f"beam_power must satisfy 0 <= min <= max <= 100, got "
            f"[{bp.min}, {bp.max}]"
        )
    if not 2 <= cfg.shades_of_gray <= 256:
        raise ConfigError(
            f"shades_of_gray must be in [2, 256], got {cfg.shades_of_gray}"
        )
    if not -255 <= cfg.contrast <= 255:
        raise ConfigError(f"contrast must be in [-255, 255], got {cfg.contrast}")
    if not -255 <= cfg.brightness <= 255:
        raise ConfigError(
            f"brightness must be in [-255, 255], got {cfg.brightness}"
        )
    if cfg.gamma < 0:
        raise ConfigError(f"gamma must be >= 0, got {cfg.gamma}")
    if cfg.feed_unit not in FEED_UNITS:
        raise ConfigError(
            f"feed_unit must be one of {FEED_UNITS}, got {cfg.feed_unit!r}"
        )
    if not cfg.feed_rate > 0:
        raise ConfigError(f"feed_rate must be > 0, got {cfg.feed_rate}")
    if cfg.buffer_size <= 0:
        raise ConfigError(f"buffer_size must be > 0, got {cfg.buffer_size}")
    for name in ("x", "y", "s"):
        digits = getattr(cfg.precision, name)
        if digits < 0:
            raise ConfigError(f"precision.{name} must be >= 0, got {digits}")


def ensure_scan_supported(cfg: Settings) -> None:
    """Reject settings that select a scan mode without a toolpath algorithm.

    Raises
    ------
    ConfigError
        If ``diagonal`` is enabled.
    """
    if cfg.diagonal:
        raise ConfigError(
            "Diagonal scan is not supported; disable 'diagonal' to rasterize"
        )


# ---------------------------------------------------------------------------
# Model conversion
# ---------------------------------------------------------------------------


def settings_from_model(model: RasterSettingsV1) -> Settings:
    """Freeze a validated schema model into ``Settings``."""
    grayscale = GRAYSCALE_ALIASES.get(model.grayscale, model.grayscale)
    if grayscale not in GRAYSCALE_ALGORITHMS:
        logger.warning(
            "Unknown grayscale algorithm %r, falling back to 'average'",
            grayscale,
        )
    return Settings(
        ppi=model.ppi,
        beam_size=model.beam_size,
        smoothing=model.smoothing,
        contrast=model.contrast,
        brightness=model.brightness,
        gamma=model.gamma,
        grayscale=grayscale,
        shades_of_gray=model.shades_of_gray,
        firmware_range=PowerRange(model.firmware_range.min, model.firmware_range.max),
        beam_power=PowerRange(model.beam_power.min, model.beam_power.max),
        feed_rate=model.feed_rate,
        feed_unit=model.feed_unit,
        trim_line=model.trim_line,
        join_pixel=model.join_pixel,
        burn_white=model.burn_white,
        verbose_g=model.verbose_g,
        diagonal=model.diagonal,
        precision=Precision(model.precision.x, model.precision.y, model.precision.s),
        offsets=Offsets(model.offsets.x, model.offsets.y),
        buffer_size=model.buffer_size,
        accept=tuple(model.accept),
    )


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_settings(path: str | Path | None = None, **overrides: Any) -> Settings:
    """Load and validate raster settings from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to a settings file.  ``None`` loads the default
        ``settings.yaml`` shipped alongside this module.
    **overrides
        Values applied on top of the file before validation.  Nested
        sections take dicts, e.g. ``precision={"s": 2}``.

    Returns
    -------
    Settings
        Fully validated, frozen settings.

    Raises
    ------
    ConfigError
        If the file is not valid YAML, or any field is unknown or fails
        validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "settings.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    logger.info("Loading settings from %s", path)

    try:
        data = load_yaml(path) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file is not valid YAML: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file must contain a mapping: {path}")

    try:
        model = validate_raster_settings(_merge(data, overrides))
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    settings = settings_from_model(model)
    logger.info(
        "Settings loaded: %.4g ppi, beam %.4g mm, S %s..%s",
        settings.ppi,
        settings.beam_size,
        settings.power_range.min,
        settings.power_range.max,
    )
    return settings
