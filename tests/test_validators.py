"""Test raster settings schema validation.

Tests for src.utils.validators:
    - Defaults of the raster_settings.v1 schema
    - Range, enum and unknown-key rejection
    - Settings file shipped with the package

Run:
    pytest tests/test_validators.py -v
"""

from pathlib import Path

import pytest

from src.utils import fs, validators


@pytest.fixture(scope="module")
def bundled_settings():
    """Path of the settings file shipped with the package."""
    return Path(__file__).parent.parent / "laser_raster" / "configs" / "settings.yaml"


# ============================================================================
# SCHEMA DEFAULTS
# ============================================================================

def test_empty_mapping_gives_defaults():
    model = validators.validate_raster_settings({})
    assert model.schema_version == "raster_settings.v1"
    assert model.ppi == 254.0
    assert model.beam_size == 0.1
    assert model.firmware_range.min == 0.0
    assert model.firmware_range.max == 1.0
    assert model.beam_power.max == 100.0
    assert model.precision.s == 4
    assert model.accept == [".png", ".jpg", ".jpeg", ".gif", ".bmp"]


def test_bundled_file_is_valid(bundled_settings):
    model = validators.validate_raster_settings(fs.load_yaml(bundled_settings))
    assert model == validators.validate_raster_settings({})


def test_schema_alias():
    model = validators.validate_raster_settings({"schema": "raster_settings.v1"})
    assert model.schema_version == "raster_settings.v1"


# ============================================================================
# REJECTION
# ============================================================================

def test_wrong_schema_version():
    with pytest.raises(ValueError, match="raster_settings.v1"):
        validators.validate_raster_settings({"schema": "machine.v1"})


def test_unknown_top_level_key():
    with pytest.raises(ValueError, match="laser_power"):
        validators.validate_raster_settings({"laser_power": 50})


def test_unknown_nested_key():
    with pytest.raises(ValueError):
        validators.validate_raster_settings({"offsets": {"z": 1.0}})


def test_inverted_range():
    with pytest.raises(ValueError, match="must be <="):
        validators.validate_raster_settings({"firmware_range": {"min": 255, "max": 0}})


def test_beam_power_bounds():
    with pytest.raises(ValueError):
        validators.validate_raster_settings({"beam_power": {"min": -5, "max": 100}})


def test_feed_unit_literal():
    with pytest.raises(ValueError):
        validators.validate_raster_settings({"feed_unit": "ipm"})
    model = validators.validate_raster_settings({"feed_unit": "mm/sec"})
    assert model.feed_unit == "mm/sec"


def test_non_positive_ppi():
    with pytest.raises(ValueError):
        validators.validate_raster_settings({"ppi": 0})


def test_empty_accept_entry():
    with pytest.raises(ValueError, match="Empty file extension"):
        validators.validate_raster_settings({"accept": [".png", "  "]})


def test_accept_normalization():
    model = validators.validate_raster_settings({"accept": ["PNG", " .Bmp "]})
    assert model.accept == [".png", ".bmp"]


def test_error_lists_every_field():
    with pytest.raises(ValueError) as excinfo:
        validators.validate_raster_settings({"ppi": -1, "buffer_size": 0})
    message = str(excinfo.value)
    assert message.startswith("Raster settings validation failed")
    assert "ppi" in message
    assert "buffer_size" in message
