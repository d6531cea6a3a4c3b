# Pixel stage functions
"""
One function per adjustment family, plus the canonical stage list.

Every stage takes a uint8 (H, W, 3) RGB array and returns a new uint8 array of
the same shape; the input is never written to. Stages quantize their output
(round half up, clamp to 0..255), so running the per-channel stages one after
the other is exactly equivalent to looking up their composed tables.

Stage functions take explicit parameters rather than an EditState and never
catch exceptions; range checking happens in the EditState layer.
"""

import math
from enum import Enum
from typing import Dict, Optional

import cv2
import numpy as np

from ..config import settings
from ..model.edit_state import (
    ColorCalibration,
    ColorGrading,
    ColorHSL,
    EditState,
    SplitToning,
    StageGroup,
)
from ..utils.logger import get_logger
from . import luts
from .color import (
    GRAYSCALE_WEIGHTS,
    SEPIA_MATRIX,
    hex_hue_degrees,
    hsl_to_rgb,
    hue_rotation_matrix,
    luminance,
    quantize,
    rgb_to_hsl,
)

logger = get_logger(__name__)


def _param(name):
    return float(settings.PIPELINE_DEFAULTS[name])


class Stage(Enum):
    """Every pipeline stage, declared in canonical execution order."""
    CURVES = "curves"
    EXPOSURE = "exposure"
    TONAL = "tonal"
    CLARITY = "clarity"
    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    TEMPERATURE = "temperature"
    SATURATION = "saturation"
    LEGACY_HUE = "legacy_hue"
    VIBRANCE = "vibrance"
    HSL = "hsl"
    SPLIT_TONING = "split_toning"
    SHADOW_TINT = "shadow_tint"
    COLOR_GRADING = "color_grading"
    CALIBRATION = "calibration"
    DEHAZE = "dehaze"
    VIGNETTE = "vignette"
    GRAIN = "grain"
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    INVERT = "invert"
    BLUR = "blur"


STAGE_ORDER = tuple(Stage)

# None means the stage cannot be bypassed
STAGE_GROUPS: Dict[Stage, Optional[StageGroup]] = {
    Stage.CURVES: StageGroup.CURVES,
    Stage.EXPOSURE: StageGroup.LIGHT,
    Stage.TONAL: StageGroup.LIGHT,
    Stage.CLARITY: StageGroup.LIGHT,
    Stage.BRIGHTNESS: StageGroup.LIGHT,
    Stage.CONTRAST: StageGroup.LIGHT,
    Stage.TEMPERATURE: StageGroup.COLOR,
    Stage.SATURATION: StageGroup.COLOR,
    Stage.LEGACY_HUE: StageGroup.COLOR,
    Stage.VIBRANCE: StageGroup.COLOR,
    Stage.HSL: StageGroup.COLOR,
    Stage.SPLIT_TONING: StageGroup.COLOR,
    Stage.SHADOW_TINT: StageGroup.COLOR,
    Stage.COLOR_GRADING: StageGroup.COLOR,
    Stage.CALIBRATION: StageGroup.COLOR,
    Stage.DEHAZE: StageGroup.EFFECTS,
    Stage.VIGNETTE: StageGroup.EFFECTS,
    Stage.GRAIN: StageGroup.EFFECTS,
    Stage.GRAYSCALE: None,
    Stage.SEPIA: None,
    Stage.INVERT: None,
    Stage.BLUR: StageGroup.EFFECTS,
}

# Leading stages that are pure per-channel value maps and can be folded into tables
LUT_STAGES = (
    Stage.CURVES, Stage.EXPOSURE, Stage.TONAL, Stage.CLARITY,
    Stage.BRIGHTNESS, Stage.CONTRAST, Stage.TEMPERATURE,
)


def blur_radius(blur: float) -> int:
    return int(math.floor(blur * _param("blur_radius_scale") + 0.5))


def stage_is_active(stage: Stage, edit: EditState) -> bool:
    """True when the stage would change pixels for this edit."""
    if stage is Stage.CURVES:
        return edit.curves.is_modified()
    if stage is Stage.TONAL:
        return any((edit.highlights, edit.shadows, edit.whites, edit.blacks))
    if stage is Stage.LEGACY_HUE:
        return edit.hue != 0
    if stage is Stage.HSL:
        return edit.color_hsl.is_active()
    if stage is Stage.SPLIT_TONING:
        return edit.split_toning.is_active()
    if stage is Stage.COLOR_GRADING:
        return edit.color_grading.is_active()
    if stage is Stage.CALIBRATION:
        return edit.color_calibration.is_active()
    if stage in (Stage.GRAYSCALE, Stage.SEPIA, Stage.INVERT):
        return stage.value in edit.filters
    if stage is Stage.BLUR:
        return blur_radius(edit.blur) >= 1
    return getattr(edit, stage.value) != 0


def stage_lut(stage: Stage, edit: EditState) -> np.ndarray:
    """Table for one of the LUT_STAGES, (256,) or (3, 256)."""
    if stage is Stage.CURVES:
        return luts.build_curves_luts(edit.curves)
    if stage is Stage.EXPOSURE:
        return luts.build_exposure_lut(edit.exposure)
    if stage is Stage.TONAL:
        return luts.build_tonal_lut(edit.highlights, edit.shadows, edit.whites, edit.blacks)
    if stage is Stage.CLARITY:
        return luts.build_clarity_lut(edit.clarity)
    if stage is Stage.BRIGHTNESS:
        return luts.build_brightness_lut(edit.brightness)
    if stage is Stage.CONTRAST:
        return luts.build_contrast_lut(edit.contrast)
    if stage is Stage.TEMPERATURE:
        return luts.build_temperature_luts(edit.temperature)
    raise ValueError(f"{stage.name} is not a table stage")


def apply_lut(image: np.ndarray, lut: np.ndarray) -> np.ndarray:
    """Look up every channel in ``lut``; (256,) applies to all, (3, 256) per channel."""
    lut = np.asarray(lut)
    if lut.ndim == 1:
        return lut[image]
    out = np.empty_like(image)
    for c in range(3):
        out[..., c] = lut[c][image[..., c]]
    return out


# --- Curves / Light ---

def apply_curves(image, curves):
    return apply_lut(image, luts.build_curves_luts(curves))


def apply_exposure(image, exposure):
    return apply_lut(image, luts.build_exposure_lut(exposure))


def apply_tonal(image, highlights=0.0, shadows=0.0, whites=0.0, blacks=0.0):
    return apply_lut(image, luts.build_tonal_lut(highlights, shadows, whites, blacks))


def apply_clarity(image, clarity):
    return apply_lut(image, luts.build_clarity_lut(clarity))


def apply_brightness(image, brightness):
    return apply_lut(image, luts.build_brightness_lut(brightness))


def apply_contrast(image, contrast):
    return apply_lut(image, luts.build_contrast_lut(contrast))


def apply_temperature(image, temperature):
    return apply_lut(image, luts.build_temperature_luts(temperature))


# --- Basic color ---

def _gray_blend(rgb: np.ndarray, factor) -> np.ndarray:
    """gray + (c - gray) * factor, with gray the Rec. 601 luma; float in, float out."""
    gray = luminance(rgb)[..., np.newaxis]
    if np.ndim(factor) > 0:
        factor = np.asarray(factor)[..., np.newaxis]
    return gray + (rgb - gray) * factor


def apply_saturation(image, saturation):
    return quantize(_gray_blend(image.astype(np.float64), 1.0 + saturation))


def apply_vibrance(image, vibrance):
    """Saturation boost weighted by how unsaturated each pixel already is."""
    rgb = image.astype(np.float64)
    mx = rgb.max(axis=-1)
    mn = rgb.min(axis=-1)
    sat = np.divide(mx - mn, mx, out=np.zeros_like(mx), where=mx > 0)
    factor = 1.0 + vibrance * _param("vibrance_scale") * (1.0 - sat)
    return quantize(_gray_blend(rgb, factor))


def apply_legacy_hue(image, hue):
    """Luma-preserving hue rotation for the legacy hue slider (-1..1)."""
    degrees = (hue * _param("legacy_hue_degrees") + 360.0) % 360.0
    matrix = hue_rotation_matrix(degrees)
    return quantize(image.astype(np.float64) @ matrix.T)


def apply_dehaze(image, dehaze):
    rgb = image.astype(np.float64)
    rgb = 128.0 + (rgb - 128.0) * (1.0 + dehaze * _param("dehaze_contrast_scale"))
    return quantize(_gray_blend(rgb, 1.0 + dehaze * _param("dehaze_saturation_scale")))


# --- Per-hue engine ---

def _asymmetric_shift(value, delta, strength):
    """Positive deltas move toward 1 by the remaining headroom, negative ones scale down."""
    amount = delta / 100.0 * strength
    return np.where(delta > 0, value + (1.0 - value) * amount, value * (1.0 + amount))


def apply_hsl(image, color_hsl: ColorHSL):
    """Eight-bucket hue/saturation/luminance adjustment.

    Achromatic pixels (saturation below ``hsl_min_saturation``) pass through.
    """
    tables = luts.build_hsl_luts(color_hsl)
    rgb = image.astype(np.float64) / 255.0
    h, s, l = rgb_to_hsl(rgb)

    idx = np.floor(h * 360.0).astype(np.int64) % 360
    hue_adj = tables[0][idx]
    sat_adj = tables[1][idx]
    lum_adj = tables[2][idx]

    mask = (s > 0) & (s >= _param("hsl_min_saturation"))
    mask &= (hue_adj != 0) | (sat_adj != 0) | (lum_adj != 0)
    if not mask.any():
        return image.copy()

    new_h = np.mod(h + hue_adj / 360.0, 1.0)
    new_s = np.clip(_asymmetric_shift(s, sat_adj, _param("hsl_saturation_strength")), 0.0, 1.0)
    new_l = np.clip(_asymmetric_shift(l, lum_adj, _param("hsl_luminance_strength")), 0.0, 1.0)

    shifted = quantize(hsl_to_rgb(new_h, new_s, new_l) * 255.0)
    return np.where(mask[..., np.newaxis], shifted, image)


# --- Toning ---

def apply_split_toning(image, split: SplitToning):
    """Tint shadows and highlights, split at the balance threshold."""
    rgb = image.astype(np.float64) / 255.0
    lum = luminance(rgb)
    threshold = (split.balance + 100.0) / 200.0
    is_shadow = lum < threshold

    hue = np.where(is_shadow, split.shadow_hue, split.highlight_hue) / 360.0
    sat = np.where(is_shadow, split.shadow_saturation, split.highlight_saturation) / 100.0
    tone = hsl_to_rgb(hue, sat, lum)

    amount = (sat * np.where(is_shadow, 1.0 - lum, lum))[..., np.newaxis]
    toned = quantize((rgb * (1.0 - amount) + tone * amount) * 255.0)
    return np.where((sat > 0)[..., np.newaxis], toned, image)


def apply_shadow_tint(image, tint):
    """Magenta (tint > 0) or green (tint < 0) push that fades out toward white."""
    rgb = image.astype(np.float64)
    lum = luminance(rgb / 255.0)
    strength = abs(tint) * np.maximum(0.0, 1.0 - lum) * _param("shadow_tint_strength") * 255.0
    direction = np.array([1.0, -1.0, 1.0]) * (1.0 if tint > 0 else -1.0)
    return quantize(rgb + strength[..., np.newaxis] * direction)


def apply_color_grading(image, grading: ColorGrading):
    """Three-way luminance grading plus midtone and global tone colors."""
    rgb = image.astype(np.float64) / 255.0
    blending = grading.blending / 100.0
    lum_scale = _param("grading_luminance_scale")

    lum = luminance(rgb)
    shadow_w = np.maximum(0.0, 1.0 - lum * 2.0)
    highlight_w = np.maximum(0.0, lum * 2.0 - 1.0)
    midtone_w = 1.0 - np.abs(lum - 0.5) * 2.0

    final_lum = (
        lum
        + grading.shadow_lum / 100.0 * shadow_w * lum_scale
        + grading.midtone_lum / 100.0 * midtone_w * lum_scale
        + grading.highlight_lum / 100.0 * highlight_w * lum_scale
        + grading.global_lum / 100.0 * lum_scale
    )
    rgb = np.clip((rgb + (final_lum - lum)[..., np.newaxis]) * 255.0, 0.0, 255.0) / 255.0

    if grading.midtone_sat > 0:
        sat = grading.midtone_sat / 100.0 * np.maximum(midtone_w, 0.0)
        tone = hsl_to_rgb(grading.midtone_hue / 360.0, sat, final_lum)
        amount = (sat * blending)[..., np.newaxis]
        rgb = rgb * (1.0 - amount) + tone * amount

    if grading.global_sat > 0:
        sat = grading.global_sat / 100.0 * blending
        tone = hsl_to_rgb(grading.global_hue / 360.0, sat, luminance(rgb))
        rgb = rgb * (1.0 - sat) + tone * sat

    return quantize(rgb * 255.0)


def calibration_weights(hue: np.ndarray):
    """Red/green/blue influence of a hue in degrees (triangles around 0, 120, 240)."""
    red = np.where(
        (hue < 60) | (hue > 300),
        1.0 - np.abs(np.where(hue < 60, hue, hue - 360.0)) / 60.0,
        0.0,
    )
    green = np.where((hue >= 60) & (hue < 180), 1.0 - np.abs(hue - 120.0) / 60.0, 0.0)
    blue = np.where((hue >= 180) & (hue < 300), 1.0 - np.abs(hue - 240.0) / 60.0, 0.0)
    return red, green, blue


def apply_calibration(image, calibration: ColorCalibration):
    """Primary saturation calibration. Hue sliders are stored but have no effect."""
    rgb = image.astype(np.float64) / 255.0
    delta = rgb.max(axis=-1) - rgb.min(axis=-1)
    mask = delta > _param("calibration_min_delta")
    if not mask.any():
        return image.copy()

    red_w, green_w, blue_w = calibration_weights(hex_hue_degrees(rgb, delta))
    sat_adj = (
        red_w * calibration.red_saturation
        + green_w * calibration.green_saturation
        + blue_w * calibration.blue_saturation
    ) / 100.0
    adjusted = _gray_blend(rgb, 1.0 + sat_adj * _param("calibration_saturation_scale"))
    return np.where(mask[..., np.newaxis], quantize(adjusted * 255.0), image)


# --- Effects ---

def vignette_factor(height: int, width: int, amount: float) -> np.ndarray:
    """Per-pixel multiplier (H, W) for a radial falloff from the image center."""
    cx = width * 0.5
    cy = height * 0.5
    max_dist_sq = cx * cx + cy * cy
    ys, xs = np.ogrid[0:height, 0:width]
    dist_sq = ((xs - cx) ** 2 + (ys - cy) ** 2) / max_dist_sq
    falloff = dist_sq * amount
    return np.where(falloff < 1.0, 1.0 - falloff, 0.0)


def apply_vignette(image, amount):
    factor = vignette_factor(image.shape[0], image.shape[1], amount)
    return quantize(image.astype(np.float64) * factor[..., np.newaxis])


def grain_cell_size(grain_size: float) -> int:
    return 1 + int(math.floor(grain_size * 3.0 + 0.5))


def grain_noise(height, width, grain, grain_size=0.0, grain_roughness=0.0, rng=None):
    """Monochrome additive noise field (H, W), zero mean, span ``grain * grain_intensity``.

    Cells of ``grain_cell_size(grain_size)`` pixels share one value; roughness
    mixes independent per-pixel noise back into coarse cells.
    """
    if rng is None:
        rng = np.random.default_rng()
    intensity = grain * _param("grain_intensity")
    cell = grain_cell_size(grain_size)
    if cell == 1:
        noise = rng.random((height, width))
    else:
        coarse = rng.random((-(-height // cell), -(-width // cell)))
        noise = np.repeat(np.repeat(coarse, cell, axis=0), cell, axis=1)[:height, :width]
        if grain_roughness > 0:
            noise = (1.0 - grain_roughness) * noise + grain_roughness * rng.random((height, width))
    return (noise - 0.5) * intensity


def apply_grain(image, grain, grain_size=0.0, grain_roughness=0.0, rng=None, noise=None):
    """Add the same noise value to all three channels of a pixel.

    A precomputed ``noise`` field takes precedence over generating one.
    """
    if noise is None:
        noise = grain_noise(image.shape[0], image.shape[1], grain, grain_size, grain_roughness, rng)
    return quantize(image.astype(np.float64) + noise[..., np.newaxis])


# --- Legacy filters ---

def apply_grayscale(image):
    gray = quantize(image.astype(np.float64) @ GRAYSCALE_WEIGHTS)
    return np.repeat(gray[..., np.newaxis], 3, axis=-1)


def apply_sepia(image):
    return quantize(image.astype(np.float64) @ SEPIA_MATRIX.T)


def apply_invert(image):
    return 255 - image


def apply_blur(image, blur):
    radius = blur_radius(blur)
    if radius < 1:
        return image.copy()
    ksize = 2 * radius + 1
    return cv2.GaussianBlur(np.ascontiguousarray(image), (ksize, ksize), 0)
