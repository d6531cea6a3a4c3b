# Model package initialization
from .edit_state import (
    EditState,
    CurvePoint,
    ChannelCurves,
    HSLAdjustment,
    ColorHSL,
    SplitToning,
    ColorGrading,
    ColorCalibration,
    StageGroup,
    normalize_bypass,
    IDENTITY_CURVE,
    HUE_BUCKETS,
    LEGACY_FILTERS,
)

__all__ = [
    'EditState',
    'CurvePoint',
    'ChannelCurves',
    'HSLAdjustment',
    'ColorHSL',
    'SplitToning',
    'ColorGrading',
    'ColorCalibration',
    'StageGroup',
    'normalize_bypass',
    'IDENTITY_CURVE',
    'HUE_BUCKETS',
    'LEGACY_FILTERS',
]
