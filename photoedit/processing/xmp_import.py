"""
Lightroom / Camera Raw XMP sidecar import.

Reads ``crs:`` develop settings and maps them onto EditState dictionary keys.
Slider values in percent are normalized to -1..1; panel values (HSL, split
toning, color grading, calibration) keep their native units.
"""

import os
import re
from typing import Any, Dict, List, Optional

from ..model.edit_state import CURVE_CHANNELS, HUE_BUCKETS, EditState
from ..utils.errors import ErrorCategory, FileIOError, log_and_continue
from ..utils.logger import get_logger

logger = get_logger(__name__)

# crs key -> EditState key; values are divided by 100
PERCENT_KEYS = {
    "Exposure2012": "exposure",
    "Contrast2012": "contrast",
    "Highlights2012": "highlights",
    "Shadows2012": "shadows",
    "Whites2012": "whites",
    "Blacks2012": "blacks",
    "Texture": "texture",
    "Vibrance": "vibrance",
    "Saturation": "saturation",
    "ShadowTint": "shadowTint",
    "Clarity2012": "clarity",
    "Dehaze": "dehaze",
    "GrainAmount": "grain",
    "GrainSize": "grainSize",
    "GrainFrequency": "grainRoughness",
}

SPLIT_TONING_KEYS = {
    "SplitToningShadowHue": "shadowHue",
    "SplitToningShadowSaturation": "shadowSaturation",
    "SplitToningHighlightHue": "highlightHue",
    "SplitToningHighlightSaturation": "highlightSaturation",
    "SplitToningBalance": "balance",
}

COLOR_GRADE_KEYS = {
    "ColorGradeShadowLum": "shadowLum",
    "ColorGradeMidtoneLum": "midtoneLum",
    "ColorGradeHighlightLum": "highlightLum",
    "ColorGradeMidtoneHue": "midtoneHue",
    "ColorGradeMidtoneSat": "midtoneSat",
    "ColorGradeGlobalHue": "globalHue",
    "ColorGradeGlobalSat": "globalSat",
    "ColorGradeGlobalLum": "globalLum",
    "ColorGradeBlending": "blending",
}

CALIBRATION_KEYS = {
    "RedHue": "redHue",
    "RedSaturation": "redSaturation",
    "GreenHue": "greenHue",
    "GreenSaturation": "greenSaturation",
    "BlueHue": "blueHue",
    "BlueSaturation": "blueSaturation",
}

NEUTRAL_TEMPERATURE = 5500.0
MONOCHROME_LOOK = "Adobe Monochrome"

_CURVE_TAGS = {
    "rgb": "ToneCurvePV2012",
    "red": "ToneCurvePV2012Red",
    "green": "ToneCurvePV2012Green",
    "blue": "ToneCurvePV2012Blue",
}
_LI = re.compile(r"<rdf:li>([^<]+)</rdf:li>")


def _extract_value(text: str, key: str) -> Optional[float]:
    match = re.search(rf'crs:{key}="([^"]+)"', text)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        log_and_continue(
            f"Ignoring non-numeric XMP value crs:{key}={match.group(1)!r}", ErrorCategory.USER_INPUT
        )
        return None


def _extract_group(text: str, keys: Dict[str, str]) -> Dict[str, float]:
    values = {}
    for crs_key, key in keys.items():
        value = _extract_value(text, crs_key)
        if value is not None:
            values[key] = value
    return values


def _extract_curve(text: str, tag: str) -> Optional[List[Dict[str, float]]]:
    pattern = rf"<crs:{tag}>\s*<rdf:Seq>(.*?)</rdf:Seq>\s*</crs:{tag}>"
    match = re.search(pattern, text, re.IGNORECASE | re.DOTALL)
    if not match:
        return None
    points = []
    for item in _LI.findall(match.group(1)):
        parts = [p.strip() for p in item.split(",")]
        if len(parts) != 2:
            continue
        try:
            points.append({"x": float(int(parts[0])), "y": float(int(parts[1]))})
        except ValueError:
            continue
    return points if len(points) >= 2 else None


def parse_xmp(text: str) -> Dict[str, Any]:
    """
    Map the develop settings of an XMP document to EditState keys.

    Only keys present in the document appear in the result.
    """
    settings: Dict[str, Any] = {}

    for crs_key, key in PERCENT_KEYS.items():
        value = _extract_value(text, crs_key)
        if value is not None:
            settings[key] = value / 100.0

    temperature = _extract_value(text, "Temperature")
    if temperature is not None:
        settings["temperature"] = (temperature - NEUTRAL_TEMPERATURE) / NEUTRAL_TEMPERATURE

    vignette = _extract_value(text, "PostCropVignetteAmount")
    if vignette is not None:
        settings["vignette"] = abs(vignette) / 100.0

    color_hsl = {}
    for color in HUE_BUCKETS:
        cap = color.capitalize()
        hue = _extract_value(text, f"HueAdjustment{cap}")
        sat = _extract_value(text, f"SaturationAdjustment{cap}")
        lum = _extract_value(text, f"LuminanceAdjustment{cap}")
        if hue is not None or sat is not None or lum is not None:
            color_hsl[color] = {
                "hue": hue or 0.0,
                "saturation": sat or 0.0,
                "luminance": lum or 0.0,
            }
    if color_hsl:
        settings["colorHSL"] = color_hsl

    split = _extract_group(text, SPLIT_TONING_KEYS)
    if split:
        settings["splitToning"] = split

    grading = _extract_group(text, COLOR_GRADE_KEYS)
    if grading:
        grading.setdefault("blending", 100.0)
        settings["colorGrading"] = grading

    calibration = _extract_group(text, CALIBRATION_KEYS)
    if calibration:
        settings["colorCalibration"] = calibration

    if re.search(rf'crs:Name="{MONOCHROME_LOOK}"', text):
        settings["filters"] = ["grayscale"]
        settings["saturation"] = -1.0

    curves = {}
    for channel in CURVE_CHANNELS:
        points = _extract_curve(text, _CURVE_TAGS[channel])
        if points is not None:
            curves[channel] = points
    # A two-point curve is the identity; only import real shapes
    if any(len(points) > 2 for points in curves.values()):
        settings["curves"] = curves

    logger.debug("Parsed %d develop settings from XMP", len(settings))
    return settings


def load_xmp(path: str) -> EditState:
    """Read an XMP sidecar and return its settings as a clamped EditState."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as e:
        raise FileIOError(f"Could not read XMP file '{path}'", file_path=path, original_error=e) from e
    edit = EditState.from_dict(parse_xmp(text))
    logger.info("Imported XMP preset '%s'", os.path.basename(path))
    return edit


def preset_name(path: str) -> str:
    """Preset name derived from an XMP file name."""
    name = os.path.basename(path)
    if name.lower().endswith(".xmp"):
        name = name[:-4]
    return name
