"""
Edit state value objects.

An EditState describes every adjustment for one image. Instances are frozen:
each UI change produces a new EditState (see ``EditState.replace``), and every
numeric field is clamped to its documented range on construction, so values
read back from presets or storage can never push the pipeline out of range.

Dictionary forms use the camelCase keys of the persisted edit record
(``colorHSL``, ``splitToning``, ``shadowTint``...), which keeps saved edits and
imported presets interchangeable.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from ..utils.logger import get_logger

logger = get_logger(__name__)


def _clamp_value(value: Any, lo: float, hi: float, name: str, default: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        logger.warning("Non-numeric value for %s (%r); using default %s", name, value, default)
        return float(default)
    if math.isnan(v):
        logger.warning("NaN value for %s; using default %s", name, default)
        return float(default)
    if v < lo or v > hi:
        clamped = min(max(v, lo), hi)
        logger.warning("%s=%s outside [%s, %s]; clamped to %s", name, v, lo, hi, clamped)
        return clamped
    return v


def _as_mapping(data: Any, name: str) -> Optional[Mapping[str, Any]]:
    """Return ``data`` if it is a mapping; otherwise warn and return None."""
    if data is None or isinstance(data, Mapping):
        return data
    logger.warning("Expected an object for %s, got %r; using defaults", name, data)
    return None


class _RangedValue:
    """Mixin for frozen dataclasses whose float fields carry a documented range.

    Subclasses declare ``_RANGES`` (field -> (lo, hi)) and ``_KEYS``
    (field -> persisted key).
    """

    _RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {}
    _KEYS: ClassVar[Dict[str, str]] = {}

    def __post_init__(self) -> None:
        defaults = {f.name: f.default for f in dataclasses.fields(self)}
        for name, (lo, hi) in self._RANGES.items():
            label = f"{type(self).__name__}.{name}"
            object.__setattr__(
                self, name, _clamp_value(getattr(self, name), lo, hi, label, defaults[name])
            )

    def to_dict(self) -> Dict[str, float]:
        return {self._KEYS.get(name, name): getattr(self, name) for name in self._RANGES}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]):
        data = _as_mapping(data, cls.__name__)
        if not data:
            return cls()
        kwargs = {}
        for name in cls._RANGES:
            key = cls._KEYS.get(name, name)
            if key in data and data[key] is not None:
                kwargs[name] = data[key]
            elif name in data and data[name] is not None:
                kwargs[name] = data[name]
        return cls(**kwargs)

    def is_default(self) -> bool:
        return self == type(self)()


# --- Curves ---

@dataclass(frozen=True)
class CurvePoint:
    """Control point on a tone curve; both axes in 0..255."""
    x: float
    y: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", _clamp_value(self.x, 0.0, 255.0, "CurvePoint.x", 0.0))
        object.__setattr__(self, "y", _clamp_value(self.y, 0.0, 255.0, "CurvePoint.y", 0.0))

    @classmethod
    def coerce(cls, value: Any) -> "CurvePoint":
        if isinstance(value, CurvePoint):
            return value
        if isinstance(value, Mapping):
            return cls(value.get("x", 0), value.get("y", 0))
        x, y = value
        return cls(x, y)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


IDENTITY_CURVE: Tuple[CurvePoint, ...] = (CurvePoint(0, 0), CurvePoint(255, 255))

CURVE_CHANNELS = ("rgb", "red", "green", "blue")


def normalize_curve(points: Optional[Iterable[Any]], name: str = "curve") -> Tuple[CurvePoint, ...]:
    """Sort points by x; anything with fewer than two points becomes the identity curve."""
    if points is None:
        return IDENTITY_CURVE
    try:
        coerced = [CurvePoint.coerce(p) for p in points]
    except (TypeError, ValueError):
        logger.warning("Malformed %s points %r; using identity curve", name, points)
        return IDENTITY_CURVE
    if len(coerced) < 2:
        logger.warning("%s has %d point(s); using identity curve", name, len(coerced))
        return IDENTITY_CURVE
    return tuple(sorted(coerced, key=lambda p: p.x))


def is_curve_modified(points: Tuple[CurvePoint, ...]) -> bool:
    if len(points) > 2:
        return True
    first, last = points[0], points[-1]
    return first.x != 0 or first.y != 0 or last.x != 255 or last.y != 255


@dataclass(frozen=True)
class ChannelCurves:
    """Master (rgb) curve plus one curve per channel."""
    rgb: Tuple[CurvePoint, ...] = IDENTITY_CURVE
    red: Tuple[CurvePoint, ...] = IDENTITY_CURVE
    green: Tuple[CurvePoint, ...] = IDENTITY_CURVE
    blue: Tuple[CurvePoint, ...] = IDENTITY_CURVE

    def __post_init__(self) -> None:
        for channel in CURVE_CHANNELS:
            object.__setattr__(
                self, channel, normalize_curve(getattr(self, channel), f"curves.{channel}")
            )

    def is_modified(self) -> bool:
        return any(is_curve_modified(getattr(self, c)) for c in CURVE_CHANNELS)

    def to_dict(self) -> Dict[str, list]:
        return {c: [p.to_dict() for p in getattr(self, c)] for c in CURVE_CHANNELS}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ChannelCurves":
        data = _as_mapping(data, "curves")
        if not data:
            return cls()
        return cls(**{c: data.get(c) for c in CURVE_CHANNELS})


# --- HSL / Color ---

@dataclass(frozen=True)
class HSLAdjustment(_RangedValue):
    """Hue/saturation/luminance shift for one hue bucket, each -100..100."""
    hue: float = 0.0
    saturation: float = 0.0
    luminance: float = 0.0

    _RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        "hue": (-100.0, 100.0),
        "saturation": (-100.0, 100.0),
        "luminance": (-100.0, 100.0),
    }


HUE_BUCKETS: Tuple[str, ...] = (
    "red", "orange", "yellow", "green", "aqua", "blue", "purple", "magenta",
)


def _coerce_hsl(value: Any) -> HSLAdjustment:
    if isinstance(value, HSLAdjustment):
        return value
    return HSLAdjustment.from_dict(value)


@dataclass(frozen=True)
class ColorHSL:
    """Per-bucket HSL adjustments for the eight named hue centers."""
    red: HSLAdjustment = field(default_factory=HSLAdjustment)
    orange: HSLAdjustment = field(default_factory=HSLAdjustment)
    yellow: HSLAdjustment = field(default_factory=HSLAdjustment)
    green: HSLAdjustment = field(default_factory=HSLAdjustment)
    aqua: HSLAdjustment = field(default_factory=HSLAdjustment)
    blue: HSLAdjustment = field(default_factory=HSLAdjustment)
    purple: HSLAdjustment = field(default_factory=HSLAdjustment)
    magenta: HSLAdjustment = field(default_factory=HSLAdjustment)

    def __post_init__(self) -> None:
        for name in HUE_BUCKETS:
            object.__setattr__(self, name, _coerce_hsl(getattr(self, name)))

    def is_active(self) -> bool:
        return any(not getattr(self, name).is_default() for name in HUE_BUCKETS)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {name: getattr(self, name).to_dict() for name in HUE_BUCKETS}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ColorHSL":
        data = _as_mapping(data, "colorHSL")
        if not data:
            return cls()
        return cls(**{name: data[name] for name in HUE_BUCKETS if data.get(name) is not None})


@dataclass(frozen=True)
class SplitToning(_RangedValue):
    shadow_hue: float = 0.0
    shadow_saturation: float = 0.0
    highlight_hue: float = 0.0
    highlight_saturation: float = 0.0
    balance: float = 0.0

    _RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        "shadow_hue": (0.0, 360.0),
        "shadow_saturation": (0.0, 100.0),
        "highlight_hue": (0.0, 360.0),
        "highlight_saturation": (0.0, 100.0),
        "balance": (-100.0, 100.0),
    }
    _KEYS: ClassVar[Dict[str, str]] = {
        "shadow_hue": "shadowHue",
        "shadow_saturation": "shadowSaturation",
        "highlight_hue": "highlightHue",
        "highlight_saturation": "highlightSaturation",
        "balance": "balance",
    }

    def is_active(self) -> bool:
        return self.shadow_saturation > 0 or self.highlight_saturation > 0


@dataclass(frozen=True)
class ColorGrading(_RangedValue):
    shadow_lum: float = 0.0
    midtone_lum: float = 0.0
    highlight_lum: float = 0.0
    midtone_hue: float = 0.0
    midtone_sat: float = 0.0
    global_hue: float = 0.0
    global_sat: float = 0.0
    global_lum: float = 0.0
    blending: float = 100.0

    _RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        "shadow_lum": (-100.0, 100.0),
        "midtone_lum": (-100.0, 100.0),
        "highlight_lum": (-100.0, 100.0),
        "midtone_hue": (0.0, 360.0),
        "midtone_sat": (0.0, 100.0),
        "global_hue": (0.0, 360.0),
        "global_sat": (0.0, 100.0),
        "global_lum": (-100.0, 100.0),
        "blending": (0.0, 100.0),
    }
    _KEYS: ClassVar[Dict[str, str]] = {
        "shadow_lum": "shadowLum",
        "midtone_lum": "midtoneLum",
        "highlight_lum": "highlightLum",
        "midtone_hue": "midtoneHue",
        "midtone_sat": "midtoneSat",
        "global_hue": "globalHue",
        "global_sat": "globalSat",
        "global_lum": "globalLum",
        "blending": "blending",
    }

    def is_active(self) -> bool:
        return (
            self.shadow_lum != 0 or self.midtone_lum != 0 or self.highlight_lum != 0
            or self.global_lum != 0 or self.midtone_sat > 0 or self.global_sat > 0
        )


@dataclass(frozen=True)
class ColorCalibration(_RangedValue):
    """Primary calibration sliders. Only the saturation sliders affect pixels."""
    red_hue: float = 0.0
    red_saturation: float = 0.0
    green_hue: float = 0.0
    green_saturation: float = 0.0
    blue_hue: float = 0.0
    blue_saturation: float = 0.0

    _RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        "red_hue": (-100.0, 100.0),
        "red_saturation": (-100.0, 100.0),
        "green_hue": (-100.0, 100.0),
        "green_saturation": (-100.0, 100.0),
        "blue_hue": (-100.0, 100.0),
        "blue_saturation": (-100.0, 100.0),
    }
    _KEYS: ClassVar[Dict[str, str]] = {
        "red_hue": "redHue",
        "red_saturation": "redSaturation",
        "green_hue": "greenHue",
        "green_saturation": "greenSaturation",
        "blue_hue": "blueHue",
        "blue_saturation": "blueSaturation",
    }

    def is_active(self) -> bool:
        return self.red_saturation != 0 or self.green_saturation != 0 or self.blue_saturation != 0


# --- Bypass groups ---

class StageGroup(str, Enum):
    """Groups of stages that can be bypassed together for A/B preview."""
    CURVES = "curves"
    LIGHT = "light"
    COLOR = "color"
    EFFECTS = "effects"


def normalize_bypass(bypass: Optional[Iterable[Any]]) -> FrozenSet[StageGroup]:
    """Turn a collection of group names or StageGroup members into a frozenset."""
    if not bypass:
        return frozenset()
    if isinstance(bypass, (str, StageGroup)):
        bypass = [bypass]
    groups = set()
    for item in bypass:
        try:
            groups.add(StageGroup(item.lower() if isinstance(item, str) else item))
        except ValueError:
            logger.warning("Ignoring unknown bypass group %r", item)
    return frozenset(groups)


LEGACY_FILTERS: Tuple[str, ...] = ("grayscale", "sepia", "invert")


def _normalize_filters(filters: Optional[Iterable[str]]) -> FrozenSet[str]:
    if not filters:
        return frozenset()
    if isinstance(filters, str):
        filters = [filters]
    elif not isinstance(filters, Iterable):
        logger.warning("Ignoring malformed filters %r", filters)
        return frozenset()
    result = set()
    for name in filters:
        key = str(name).lower()
        if key in LEGACY_FILTERS:
            result.add(key)
        else:
            logger.warning("Ignoring unknown filter %r", name)
    return frozenset(result)


# --- EditState ---

_SCALAR_RANGES: Dict[str, Tuple[float, float]] = {
    # Light
    "exposure": (-1.0, 1.0),
    "contrast": (-1.0, 1.0),
    "highlights": (-1.0, 1.0),
    "shadows": (-1.0, 1.0),
    "whites": (-1.0, 1.0),
    "blacks": (-1.0, 1.0),
    "texture": (-1.0, 1.0),
    # Color
    "temperature": (-1.0, 1.0),
    "vibrance": (-1.0, 1.0),
    "saturation": (-1.0, 1.0),
    "shadow_tint": (-1.0, 1.0),
    # Effects
    "clarity": (-1.0, 1.0),
    "dehaze": (-1.0, 1.0),
    "vignette": (0.0, 1.0),
    "grain": (0.0, 1.0),
    "grain_size": (0.0, 1.0),
    "grain_roughness": (0.0, 1.0),
    # Legacy
    "brightness": (-1.0, 1.0),
    "hue": (-1.0, 1.0),
    "blur": (0.0, 1.0),
}

_NESTED_TYPES = {
    "curves": ChannelCurves,
    "color_hsl": ColorHSL,
    "split_toning": SplitToning,
    "color_grading": ColorGrading,
    "color_calibration": ColorCalibration,
}

_CAMEL_KEYS = {
    "shadow_tint": "shadowTint",
    "grain_size": "grainSize",
    "grain_roughness": "grainRoughness",
    "color_hsl": "colorHSL",
    "split_toning": "splitToning",
    "color_grading": "colorGrading",
    "color_calibration": "colorCalibration",
}
_SNAKE_KEYS = {camel: snake for snake, camel in _CAMEL_KEYS.items()}

# Fields reset when a stage group is bypassed (texture has no stage but lives on the light tab).
GROUP_FIELDS: Dict[StageGroup, Tuple[str, ...]] = {
    StageGroup.CURVES: ("curves",),
    StageGroup.LIGHT: (
        "exposure", "contrast", "highlights", "shadows", "whites", "blacks",
        "texture", "clarity", "brightness",
    ),
    StageGroup.COLOR: (
        "temperature", "vibrance", "saturation", "hue", "shadow_tint", "color_hsl",
        "split_toning", "color_grading", "color_calibration",
    ),
    StageGroup.EFFECTS: (
        "dehaze", "vignette", "grain", "grain_size", "grain_roughness", "blur",
    ),
}


@dataclass(frozen=True)
class EditState:
    """Immutable set of adjustment parameters for one image."""

    # Light
    exposure: float = 0.0
    contrast: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0
    whites: float = 0.0
    blacks: float = 0.0
    texture: float = 0.0
    # Color
    temperature: float = 0.0
    vibrance: float = 0.0
    saturation: float = 0.0
    shadow_tint: float = 0.0
    color_hsl: ColorHSL = field(default_factory=ColorHSL)
    split_toning: SplitToning = field(default_factory=SplitToning)
    color_grading: ColorGrading = field(default_factory=ColorGrading)
    color_calibration: ColorCalibration = field(default_factory=ColorCalibration)
    # Effects
    clarity: float = 0.0
    dehaze: float = 0.0
    vignette: float = 0.0
    grain: float = 0.0
    grain_size: float = 0.0
    grain_roughness: float = 0.0
    # Curves
    curves: ChannelCurves = field(default_factory=ChannelCurves)
    # Legacy
    brightness: float = 0.0
    hue: float = 0.0
    blur: float = 0.0
    filters: FrozenSet[str] = frozenset()

    RANGES: ClassVar[Dict[str, Tuple[float, float]]] = _SCALAR_RANGES

    def __post_init__(self) -> None:
        for name, (lo, hi) in _SCALAR_RANGES.items():
            object.__setattr__(
                self, name, _clamp_value(getattr(self, name), lo, hi, f"EditState.{name}", 0.0)
            )
        for name, cls in _NESTED_TYPES.items():
            value = getattr(self, name)
            if not isinstance(value, cls):
                object.__setattr__(self, name, cls.from_dict(value))
        object.__setattr__(self, "filters", _normalize_filters(self.filters))

    # --- Derivation ---

    def replace(self, **changes: Any) -> "EditState":
        """Return a new EditState with ``changes`` applied (and clamped)."""
        changes = {_SNAKE_KEYS.get(k, k): v for k, v in changes.items()}
        return dataclasses.replace(self, **changes)

    def reset_group(self, group: Any) -> "EditState":
        """Return a copy with every field of ``group`` back at its default."""
        defaults = EditState()
        (group_member,) = normalize_bypass([group])
        return self.replace(**{name: getattr(defaults, name) for name in GROUP_FIELDS[group_member]})

    def without_groups(self, bypass: Optional[Iterable[Any]]) -> "EditState":
        state = self
        for group in normalize_bypass(bypass):
            state = state.reset_group(group)
        return state

    def is_default(self) -> bool:
        return self == EditState()

    # --- Serialization ---

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            key = _CAMEL_KEYS.get(f.name, f.name)
            if f.name in _NESTED_TYPES:
                data[key] = value.to_dict()
            elif f.name == "filters":
                data[key] = sorted(value)
            else:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "EditState":
        """Build an EditState from persisted or imported values.

        Accepts camelCase or snake_case keys. Missing keys keep their defaults,
        unknown keys are ignored and out-of-range values are clamped.
        """
        data = _as_mapping(data, "edit state")
        if not data:
            return cls()
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _SNAKE_KEYS.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown edit key %r", key)
                continue
            if value is None:
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def signature(self, bypass: Optional[Iterable[Any]] = None) -> str:
        """Stable digest of this state plus the bypass set, used as a cache key."""
        groups = ",".join(sorted(g.value for g in normalize_bypass(bypass)))
        payload = f"{self.to_json()}|bypass={groups}"
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()
