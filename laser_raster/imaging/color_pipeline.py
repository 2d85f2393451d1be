"""Per-pixel color filters that turn a tile into grayscale burn intensity.

Steps run in a fixed order on every pixel of an RGBA tile:

    contrast -> brightness -> gamma -> grayscale -> posterize

Each of contrast, brightness and gamma is skipped when its setting is 0,
and posterization is skipped at 256 shades.  The gray value is truncated
to an integer and written back into R, G and B; alpha is left untouched.

All arithmetic is done in float64 on whole arrays, so a 2048x2048 tile
costs a handful of vectorized passes rather than a Python loop.
"""

from __future__ import annotations

import numpy as np

from laser_raster.configs.loader import Settings

# (R, G, B) weights of the weighted-sum algorithms
LUMA_WEIGHTS = {
    "luma": (0.3, 0.59, 0.11),
    "luma-601": (0.299, 0.587, 0.114),
    "luma-709": (0.2126, 0.7152, 0.0722),
    "luma-240": (0.212, 0.701, 0.087),
}

CHANNELS = {
    "red-channel": 0,
    "green-channel": 1,
    "blue-channel": 2,
    # Spellings written by older settings files
    "red-chanel": 0,
    "green-chanel": 1,
    "blue-chanel": 2,
}


def contrast_factor(contrast: float) -> float:
    """Contrast multiplier ``259(c + 255) / (255(259 - c))``."""
    return (259.0 * (contrast + 255.0)) / (255.0 * (259.0 - contrast))


def adjust_contrast(rgb: np.ndarray, contrast: float) -> np.ndarray:
    """Stretch channel values around mid-gray."""
    return np.clip(contrast_factor(contrast) * (rgb - 128.0) + 128.0, 0.0, 255.0)


def adjust_brightness(rgb: np.ndarray, brightness: float) -> np.ndarray:
    return np.clip(rgb + brightness, 0.0, 255.0)


def adjust_gamma(rgb: np.ndarray, gamma: float) -> np.ndarray:
    """Apply ``255 * (v / 255) ** (1 / gamma)``."""
    return np.clip(255.0 * np.power(rgb / 255.0, 1.0 / gamma), 0.0, 255.0)


def to_grayscale(rgb: np.ndarray, algorithm: str) -> np.ndarray:
    """Reduce an ``(..., 3)`` float array to one luminance value per pixel.

    Parameters
    ----------
    rgb : np.ndarray
        Channel values in [0, 255], last axis R, G, B.
    algorithm : str
        One of ``laser_raster.configs.GRAYSCALE_ALGORITHMS``.  Unknown
        names reduce with ``average``.

    Returns
    -------
    np.ndarray
        Float gray values, shape ``rgb.shape[:-1]``.
    """
    if algorithm in CHANNELS:
        return rgb[..., CHANNELS[algorithm]]
    if algorithm == "desaturation":
        return (rgb.max(axis=-1) + rgb.min(axis=-1)) / 2.0
    if algorithm == "decomposition-min":
        return rgb.min(axis=-1)
    if algorithm == "decomposition-max":
        return rgb.max(axis=-1)

    if algorithm not in LUMA_WEIGHTS:
        return rgb.sum(axis=-1) / 3.0

    wr, wg, wb = LUMA_WEIGHTS[algorithm]
    return rgb[..., 0] * wr + rgb[..., 1] * wg + rgb[..., 2] * wb


def posterize(gray: np.ndarray, shades: int) -> np.ndarray:
    """Quantize to *shades* evenly spaced levels; no-op outside (1, 256)."""
    if not 1 < shades < 256:
        return gray
    step = 255.0 / (shades - 1)
    return np.floor(np.round(gray / step, 9)) * step


def apply_filters(pixels: np.ndarray, settings: Settings) -> np.ndarray:
    """Run the full filter chain on an RGBA tile.

    Parameters
    ----------
    pixels : np.ndarray
        Tile samples, shape (H, W, 4), dtype uint8.
    settings : Settings
        Filter parameters (contrast, brightness, gamma, grayscale,
        shades_of_gray).

    Returns
    -------
    np.ndarray
        New (H, W, 4) uint8 array with R = G = B = gray and the input
        alpha.  The pixel count is always preserved.
    """
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError(f"Expected an (H, W, 4) RGBA tile, got shape {pixels.shape}")

    rgb = pixels[..., :3].astype(np.float64)

    if settings.contrast != 0:
        rgb = adjust_contrast(rgb, settings.contrast)
    if settings.brightness != 0:
        rgb = adjust_brightness(rgb, settings.brightness)
    if settings.gamma != 0:
        rgb = adjust_gamma(rgb, settings.gamma)

    gray = to_grayscale(rgb, settings.grayscale)
    gray = posterize(gray, settings.shades_of_gray)

    # Round off float noise (255 * 0.3 + ... = 254.99999...) before truncating
    gray = np.clip(np.trunc(np.round(gray, 9)), 0.0, 255.0).astype(np.uint8)

    out = np.empty_like(pixels, dtype=np.uint8)
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    out[..., 3] = pixels[..., 3]
    return out
