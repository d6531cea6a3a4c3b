"""
Vectorized color helpers shared by the stage functions.

All functions work on float arrays in 0..1 unless stated otherwise, so a
whole image is converted in a handful of NumPy operations.
"""

import numpy as np


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 601 luma of an (..., 3) array, same scale as the input."""
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def quantize(values: np.ndarray) -> np.ndarray:
    """Round half up and clamp to [0, 255], returning uint8."""
    return np.clip(np.floor(np.asarray(values, dtype=np.float64) + 0.5), 0, 255).astype(np.uint8)


def rgb_to_hsl(rgb: np.ndarray):
    """Convert normalized RGB (..., 3) to (h, s, l), each in 0..1.

    Achromatic pixels (max == min) get h = s = 0.
    """
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    mx = np.max(rgb, axis=-1)
    mn = np.min(rgb, axis=-1)
    l = (mx + mn) * 0.5
    d = mx - mn
    chromatic = d > 0

    denom = np.where(l > 0.5, 2.0 - mx - mn, mx + mn)
    s = np.divide(d, denom, out=np.zeros_like(d), where=chromatic & (denom > 0))

    safe_d = np.where(chromatic, d, 1.0)
    h = np.zeros_like(d)
    is_r = chromatic & (mx == r)
    is_g = chromatic & ~is_r & (mx == g)
    is_b = chromatic & ~is_r & ~is_g
    h = np.where(is_r, ((g - b) / safe_d + np.where(g < b, 6.0, 0.0)) / 6.0, h)
    h = np.where(is_g, ((b - r) / safe_d + 2.0) / 6.0, h)
    h = np.where(is_b, ((r - g) / safe_d + 4.0) / 6.0, h)
    return h, s, l


def _hue_to_channel(p: np.ndarray, q: np.ndarray, t: np.ndarray) -> np.ndarray:
    t = np.where(t < 0, t + 1.0, t)
    t = np.where(t > 1, t - 1.0, t)
    return np.select(
        [t < 1.0 / 6.0, t < 0.5, t < 2.0 / 3.0],
        [p + (q - p) * 6.0 * t, q, p + (q - p) * (2.0 / 3.0 - t) * 6.0],
        default=p,
    )


def hsl_to_rgb(h, s, l) -> np.ndarray:
    """Convert (h, s, l) in 0..1 to RGB in 0..1, shape (..., 3).

    Arguments broadcast against each other, so a scalar hue can be combined
    with per-pixel saturation and lightness.
    """
    h, s, l = np.broadcast_arrays(
        np.asarray(h, dtype=np.float64),
        np.asarray(s, dtype=np.float64),
        np.asarray(l, dtype=np.float64),
    )
    q = np.where(l < 0.5, l * (1.0 + s), l + s - l * s)
    p = 2.0 * l - q
    rgb = np.stack(
        [
            _hue_to_channel(p, q, h + 1.0 / 3.0),
            _hue_to_channel(p, q, h),
            _hue_to_channel(p, q, h - 1.0 / 3.0),
        ],
        axis=-1,
    )
    gray = (s == 0)[..., np.newaxis]
    return np.where(gray, l[..., np.newaxis], rgb)


def hex_hue_degrees(rgb: np.ndarray, delta: np.ndarray) -> np.ndarray:
    """Hexcone hue in degrees (0..360) for normalized RGB, given max - min."""
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    mx = np.max(rgb, axis=-1)
    safe = np.where(delta > 0, delta, 1.0)
    hue = np.where(
        mx == r,
        np.mod((g - b) / safe, 6.0),
        np.where(mx == g, (b - r) / safe + 2.0, (r - g) / safe + 4.0),
    )
    return np.mod(hue * 60.0 + 360.0, 360.0)


def hue_rotation_matrix(degrees: float) -> np.ndarray:
    """Luma-preserving 3x3 hue rotation (value and saturation scale of 1)."""
    rad = np.deg2rad(degrees % 360.0)
    u = np.cos(rad)
    w = np.sin(rad)
    return np.array([
        [0.299 + 0.701 * u + 0.167 * w, 0.587 - 0.587 * u + 0.330 * w, 0.114 - 0.114 * u - 0.497 * w],
        [0.299 - 0.299 * u - 0.328 * w, 0.587 + 0.413 * u + 0.035 * w, 0.114 - 0.114 * u + 0.293 * w],
        [0.299 - 0.300 * u + 1.250 * w, 0.587 - 0.586 * u - 1.050 * w, 0.114 + 0.886 * u - 0.200 * w],
    ], dtype=np.float64)


SEPIA_MATRIX = np.array([
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
], dtype=np.float64)

GRAYSCALE_WEIGHTS = np.array([0.34, 0.5, 0.16], dtype=np.float64)
