"""Shared support layer for laser_raster.

Architecture layers (strict one-way dependency):
    laser_raster/scripts/ → laser_raster/ → src/utils/

Only cross-cutting utilities live here (logging, atomic file I/O, YAML
schema validation); all rasterization logic lives in ``laser_raster``.
"""
