"""YAML schema validation for raster settings files.

Provides centralized validation for configuration files using pydantic:
    - Raster settings schema (raster_settings.v1): resolution, beam, power
      ranges, feed, scan policies, output precision, image filters

All loaders fail fast with actionable messages (offending key, expected
range). Unknown keys are rejected so a typo never silently falls back to
a default.

Units:
    - Geometry: millimeters (mm)
    - Resolution: pixels per inch (ppi)
    - Feed: mm/min or mm/sec (``feed_unit``)
    - Beam power: percent of the firmware range

Usage:
    from src.utils import validators

    model = validators.validate_raster_settings({"ppi": 508, "beam_size": 0.05})
"""

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


# ============================================================================
# RASTER SETTINGS SCHEMA V1
# ============================================================================

class RangeV1(BaseModel):
    """Closed numeric range with ``min <= max``."""
    model_config = ConfigDict(extra="forbid")

    min: float = Field(..., description="Lower bound")
    max: float = Field(..., description="Upper bound")

    @model_validator(mode='after')
    def validate_order(self) -> 'RangeV1':
        if self.min > self.max:
            raise ValueError(f"Range min ({self.min}) must be <= max ({self.max})")
        return self


class BeamPowerV1(RangeV1):
    """Beam power as a percentage of the firmware range."""
    min: float = Field(0.0, ge=0.0, le=100.0, description="Minimum power (%)")
    max: float = Field(100.0, ge=0.0, le=100.0, description="Maximum power (%)")


class PrecisionV1(BaseModel):
    """Number of decimals rendered per command letter."""
    model_config = ConfigDict(extra="forbid")

    x: int = Field(2, ge=0, le=10, description="X decimals")
    y: int = Field(2, ge=0, le=10, description="Y decimals")
    s: int = Field(4, ge=0, le=10, description="S decimals")


class OffsetsV1(BaseModel):
    """Global XY offsets added to every emitted coordinate (mm)."""
    model_config = ConfigDict(extra="forbid")

    x: float = Field(0.0, description="X offset (mm)")
    y: float = Field(0.0, description="Y offset (mm)")


class RasterSettingsV1(BaseModel):
    """Raster settings file (raster_settings.v1 schema).

    Every field is optional; omitted fields take the documented default.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_version: str = Field("raster_settings.v1", alias="schema", description="Schema version")

    # Resolution / beam
    ppi: float = Field(254.0, gt=0.0, description="Source pixels per inch")
    beam_size: float = Field(0.1, gt=0.0, le=10.0, description="Beam diameter (mm)")
    smoothing: bool = Field(False, description="Smoothed (bilinear) instead of nearest resampling")

    # Image filters
    contrast: float = Field(0.0, ge=-255.0, le=255.0, description="Contrast, 0 disables")
    brightness: float = Field(0.0, ge=-255.0, le=255.0, description="Brightness, 0 disables")
    gamma: float = Field(0.0, ge=0.0, le=7.99, description="Gamma, 0 disables")
    grayscale: str = Field("luma", description="Grayscale algorithm name")
    shades_of_gray: int = Field(256, ge=2, le=256, description="Posterization level, 256 disables")

    # Power / feed
    firmware_range: RangeV1 = Field(default_factory=lambda: RangeV1(min=0.0, max=1.0))
    beam_power: BeamPowerV1 = Field(default_factory=BeamPowerV1)
    feed_rate: float = Field(1500.0, gt=0.0, description="Burn/travel feed rate")
    feed_unit: Literal["mm/min", "mm/sec"] = Field("mm/min", description="Unit of feed_rate")

    # Scan policies
    trim_line: bool = True
    join_pixel: bool = True
    burn_white: bool = True
    verbose_g: bool = False
    diagonal: bool = False

    # Output
    precision: PrecisionV1 = Field(default_factory=PrecisionV1)
    offsets: OffsetsV1 = Field(default_factory=OffsetsV1)
    buffer_size: int = Field(2048, gt=0, description="Tile edge limit (px)")
    accept: List[str] = Field(
        default_factory=lambda: [".png", ".jpg", ".jpeg", ".gif", ".bmp"],
        description="Accepted input file extensions",
    )

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "raster_settings.v1":
            raise ValueError(f"Expected schema 'raster_settings.v1', got '{v}'")
        return v

    @field_validator('accept')
    @classmethod
    def validate_accept(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                raise ValueError("Empty file extension in 'accept'")
            normalized.append(ext if ext.startswith('.') else f".{ext}")
        return normalized


def validate_raster_settings(data: Dict[str, Any]) -> RasterSettingsV1:
    """Validate a raw settings mapping.

    Parameters
    ----------
    data : Dict[str, Any]
        Parsed YAML (or hand-built) settings mapping

    Returns
    -------
    RasterSettingsV1
        Validated settings model

    Raises
    ------
    ValueError
        If validation fails (message names the offending keys)
    """
    try:
        return RasterSettingsV1.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Raster settings validation failed: {e}") from e

