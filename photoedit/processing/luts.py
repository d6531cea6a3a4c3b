"""
Lookup-table builders.

Every builder is a pure function of its parameters. Results are memoized and
returned as read-only arrays, so a table built once can be shared by any
number of concurrent renders.
"""

import functools
import math
from typing import Optional, Sequence

import numpy as np

from ..config import settings
from ..model.edit_state import (
    ChannelCurves,
    ColorHSL,
    CurvePoint,
    HUE_BUCKETS,
    IDENTITY_CURVE,
    normalize_curve,
)
from ..utils.logger import get_logger
from .color import quantize

logger = get_logger(__name__)

LEVELS = np.arange(256, dtype=np.float64)

# Hue centers (degrees) of the eight HSL buckets
HUE_CENTERS = {
    "red": 0.0,
    "orange": 30.0,
    "yellow": 60.0,
    "green": 120.0,
    "aqua": 180.0,
    "blue": 225.0,
    "purple": 270.0,
    "magenta": 315.0,
}


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def identity_lut() -> np.ndarray:
    return np.arange(256, dtype=np.uint8)


# --- Curves ---

def _catmull_rom(points: Sequence[CurvePoint]) -> np.ndarray:
    xs = np.array([p.x for p in points], dtype=np.float64)
    ys = np.array([p.y for p in points], dtype=np.float64)
    out = np.empty(256, dtype=np.float64)
    n = len(points)
    for i, x in enumerate(LEVELS):
        if x <= xs[0]:
            out[i] = ys[0]
            continue
        if x >= xs[-1]:
            out[i] = ys[-1]
            continue
        seg = int(np.searchsorted(xs, x, side="left")) - 1
        seg = min(max(seg, 0), n - 2)
        p0 = ys[max(0, seg - 1)]
        p1 = ys[seg]
        p2 = ys[seg + 1]
        p3 = ys[min(n - 1, seg + 2)]
        span = xs[seg + 1] - xs[seg] or 1.0
        t = (x - xs[seg]) / span
        t2 = t * t
        t3 = t2 * t
        out[i] = 0.5 * (
            2 * p1
            + (-p0 + p2) * t
            + (2 * p0 - 5 * p1 + 4 * p2 - p3) * t2
            + (-p0 + 3 * p1 - 3 * p2 + p3) * t3
        )
    return out


@functools.lru_cache(maxsize=128)
def _curve_lut_cached(points: tuple, interpolation: str) -> np.ndarray:
    if points == IDENTITY_CURVE:
        return _frozen(identity_lut())

    if interpolation == "catmull_rom":
        values = _catmull_rom(points)
    else:
        if interpolation != "linear":
            logger.warning("Unknown curve interpolation %r; using linear", interpolation)
        # Duplicate x values keep the last y
        by_x = {}
        for p in points:
            by_x[p.x] = p.y
        xs = np.array(sorted(by_x), dtype=np.float64)
        ys = np.array([by_x[x] for x in xs], dtype=np.float64)
        # np.interp holds the endpoint y outside [xs[0], xs[-1]]
        values = np.interp(LEVELS, xs, ys)
    return _frozen(quantize(values))


def build_curve_lut(points, interpolation: Optional[str] = None) -> np.ndarray:
    """Build a 256-entry table from curve control points.

    Points need not be sorted. Fewer than two points gives the identity table.
    Inputs outside the first/last point take that endpoint's y.
    """
    interpolation = interpolation or settings.PIPELINE_DEFAULTS.get("curve_interpolation", "linear")
    return _curve_lut_cached(normalize_curve(points), interpolation)


@functools.lru_cache(maxsize=64)
def _curves_luts_cached(curves: ChannelCurves, strength: float, interpolation: str) -> np.ndarray:
    rgb = _curve_lut_cached(curves.rgb, interpolation)
    tables = np.empty((3, 256), dtype=np.uint8)
    for idx, channel in enumerate(("red", "green", "blue")):
        chan = _curve_lut_cached(getattr(curves, channel), interpolation)
        curved = chan[rgb].astype(np.float64)
        tables[idx] = quantize((1.0 - strength) * LEVELS + strength * curved)
    return _frozen(tables)


def build_curves_luts(curves: ChannelCurves, strength: Optional[float] = None,
                      interpolation: Optional[str] = None) -> np.ndarray:
    """Per-channel (3, 256) tables for the whole curves stage.

    The master curve is applied first, then the channel curve, and the result
    is blended with the input at ``strength``.
    """
    if strength is None:
        strength = float(settings.PIPELINE_DEFAULTS["curves_strength"])
    interpolation = interpolation or settings.PIPELINE_DEFAULTS.get("curve_interpolation", "linear")
    return _curves_luts_cached(curves, float(strength), interpolation)


def is_identity_curve(points) -> bool:
    return normalize_curve(points) == IDENTITY_CURVE


# --- Light ---

@functools.lru_cache(maxsize=64)
def build_exposure_lut(exposure: float) -> np.ndarray:
    return _frozen(quantize(LEVELS * math.pow(2.0, exposure)))


@functools.lru_cache(maxsize=64)
def build_tonal_lut(highlights: float, shadows: float, whites: float, blacks: float) -> np.ndarray:
    """Tonal-zone table. The four rules are cumulative, in this order."""
    v = LEVELS / 255.0
    v = np.where(v < 0.25, v + blacks * 0.5 * (0.25 - v), v)
    v = np.where(v < 0.5, v + shadows * 0.4 * np.sin(v * np.pi) * (0.5 - v), v)
    v = np.where(v > 0.5, v + highlights * 0.3 * np.sin((v - 0.5) * np.pi) * (v - 0.5), v)
    v = np.where(v > 0.75, v + whites * 0.5 * (v - 0.75), v)
    return _frozen(quantize(v * 255.0))


@functools.lru_cache(maxsize=64)
def build_brightness_lut(brightness: float) -> np.ndarray:
    return _frozen(quantize(LEVELS * (1.0 + brightness)))


@functools.lru_cache(maxsize=64)
def build_contrast_lut(contrast: float) -> np.ndarray:
    return _frozen(quantize(128.0 + (LEVELS - 128.0) * (1.0 + contrast)))


@functools.lru_cache(maxsize=64)
def _clarity_lut_cached(clarity: float, scale: float) -> np.ndarray:
    v = LEVELS / 255.0
    return _frozen(quantize((0.5 + (v - 0.5) * (1.0 + clarity * scale)) * 255.0))


def build_clarity_lut(clarity: float, scale: Optional[float] = None) -> np.ndarray:
    if scale is None:
        scale = float(settings.PIPELINE_DEFAULTS["clarity_scale"])
    return _clarity_lut_cached(float(clarity), float(scale))


@functools.lru_cache(maxsize=64)
def _temperature_luts_cached(temperature: float, scale: float) -> np.ndarray:
    shift = temperature * scale
    return _frozen(np.stack([
        quantize(LEVELS + shift),
        identity_lut(),
        quantize(LEVELS - shift),
    ]))


def build_temperature_luts(temperature: float, scale: Optional[float] = None) -> np.ndarray:
    """(3, 256) tables: red pushed up, blue pushed down, green untouched."""
    if scale is None:
        scale = float(settings.PIPELINE_DEFAULTS["temperature_scale"])
    return _temperature_luts_cached(float(temperature), float(scale))


# --- Hue (HSL) ---

def hue_weight(hue, center: float, full: Optional[float] = None, zero: Optional[float] = None):
    """Triangular weight of ``hue`` (degrees) for a hue center.

    1 within ``full`` degrees (circular distance), 0 beyond ``zero`` degrees,
    linear in between. Works on scalars and arrays.
    """
    if full is None:
        full = float(settings.PIPELINE_DEFAULTS["hsl_full_weight_degrees"])
    if zero is None:
        zero = float(settings.PIPELINE_DEFAULTS["hsl_zero_weight_degrees"])
    diff = np.abs(np.asarray(hue, dtype=np.float64) - center) % 360.0
    diff = np.where(diff > 180.0, 360.0 - diff, diff)
    weight = np.clip(1.0 - (diff - full) / (zero - full), 0.0, 1.0)
    if np.ndim(weight) == 0:
        return float(weight)
    return weight


@functools.lru_cache(maxsize=32)
def _hsl_luts_cached(color_hsl: ColorHSL, full: float, zero: float) -> np.ndarray:
    degrees = np.arange(360, dtype=np.float64)
    totals = np.zeros((3, 360), dtype=np.float64)
    weight_sum = np.zeros(360, dtype=np.float64)
    for name in HUE_BUCKETS:
        adj = getattr(color_hsl, name)
        weight = hue_weight(degrees, HUE_CENTERS[name], full, zero)
        totals[0] += adj.hue * weight
        totals[1] += adj.saturation * weight
        totals[2] += adj.luminance * weight
        weight_sum += weight
    tables = np.divide(totals, weight_sum, out=np.zeros_like(totals), where=weight_sum > 0)
    return _frozen(tables)


def build_hsl_luts(color_hsl: ColorHSL) -> np.ndarray:
    """(3, 360) float tables of weighted hue/saturation/luminance deltas.

    Row 0 is the hue shift, row 1 the saturation delta and row 2 the
    luminance delta, all in slider units (-100..100), indexed by whole degree.
    """
    return _hsl_luts_cached(
        color_hsl,
        float(settings.PIPELINE_DEFAULTS["hsl_full_weight_degrees"]),
        float(settings.PIPELINE_DEFAULTS["hsl_zero_weight_degrees"]),
    )


# --- Composition ---

def compose_luts(first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """Table equivalent to applying ``first`` then ``second``.

    Either argument may be a single (256,) table or per-channel (3, 256).
    """
    first = np.asarray(first)
    second = np.asarray(second)
    if first.ndim == 1:
        first = np.broadcast_to(first, (3, 256))
    if second.ndim == 1:
        second = np.broadcast_to(second, (3, 256))
    return np.stack([second[c][first[c]] for c in range(3)])


def clear_lut_caches() -> None:
    """Drop memoized tables, e.g. after settings were reloaded."""
    for fn in (
        _curve_lut_cached, _curves_luts_cached, build_exposure_lut, build_tonal_lut,
        build_brightness_lut, build_contrast_lut, _clarity_lut_cached,
        _temperature_luts_cached, _hsl_luts_cached,
    ):
        fn.cache_clear()
    logger.debug("LUT caches cleared")
