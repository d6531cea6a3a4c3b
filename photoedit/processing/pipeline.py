# Reference edit pipeline
"""
Canonical ordered composition of the stage functions.

This is the reference CPU implementation that every backend adapter is
golden-tested against. It is a pure function of (pixels, edit, bypass, seed):
no globals are written and the caller's buffer is never modified, so it is
safe to call from several threads at once.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..model.edit_state import EditState, normalize_bypass
from ..utils.errors import InvalidBufferShape
from ..utils.logger import get_logger
from . import stages as st
from .luts import compose_luts
from .stages import LUT_STAGES, STAGE_GROUPS, STAGE_ORDER, Stage

logger = get_logger(__name__)

BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass
class PipelineResult:
    """Result of a pipeline run."""
    image: np.ndarray
    stages_executed: List[str]
    total_time: float
    stage_times: Dict[str, float] = field(default_factory=dict)
    backend: str = "CPU"


# Each runner takes (image, edit, rng) and returns a new image
STAGE_RUNNERS: Dict[Stage, Callable[[np.ndarray, EditState, Any], np.ndarray]] = {
    Stage.CURVES: lambda img, e, rng: st.apply_curves(img, e.curves),
    Stage.EXPOSURE: lambda img, e, rng: st.apply_exposure(img, e.exposure),
    Stage.TONAL: lambda img, e, rng: st.apply_tonal(img, e.highlights, e.shadows, e.whites, e.blacks),
    Stage.CLARITY: lambda img, e, rng: st.apply_clarity(img, e.clarity),
    Stage.BRIGHTNESS: lambda img, e, rng: st.apply_brightness(img, e.brightness),
    Stage.CONTRAST: lambda img, e, rng: st.apply_contrast(img, e.contrast),
    Stage.TEMPERATURE: lambda img, e, rng: st.apply_temperature(img, e.temperature),
    Stage.SATURATION: lambda img, e, rng: st.apply_saturation(img, e.saturation),
    Stage.LEGACY_HUE: lambda img, e, rng: st.apply_legacy_hue(img, e.hue),
    Stage.VIBRANCE: lambda img, e, rng: st.apply_vibrance(img, e.vibrance),
    Stage.HSL: lambda img, e, rng: st.apply_hsl(img, e.color_hsl),
    Stage.SPLIT_TONING: lambda img, e, rng: st.apply_split_toning(img, e.split_toning),
    Stage.SHADOW_TINT: lambda img, e, rng: st.apply_shadow_tint(img, e.shadow_tint),
    Stage.COLOR_GRADING: lambda img, e, rng: st.apply_color_grading(img, e.color_grading),
    Stage.CALIBRATION: lambda img, e, rng: st.apply_calibration(img, e.color_calibration),
    Stage.DEHAZE: lambda img, e, rng: st.apply_dehaze(img, e.dehaze),
    Stage.VIGNETTE: lambda img, e, rng: st.apply_vignette(img, e.vignette),
    Stage.GRAIN: lambda img, e, rng: st.apply_grain(img, e.grain, e.grain_size, e.grain_roughness, rng=rng),
    Stage.GRAYSCALE: lambda img, e, rng: st.apply_grayscale(img),
    Stage.SEPIA: lambda img, e, rng: st.apply_sepia(img),
    Stage.INVERT: lambda img, e, rng: st.apply_invert(img),
    Stage.BLUR: lambda img, e, rng: st.apply_blur(img, e.blur),
}


def coerce_edit(edit: Union[EditState, Mapping[str, Any], None]) -> EditState:
    """Accept an EditState or a persisted edit dictionary."""
    if isinstance(edit, EditState):
        return edit
    return EditState.from_dict(edit)


def validate_buffer(pixels: BufferLike, width: int, height: int, channels: int = 3) -> np.ndarray:
    """Check a pixel buffer against its declared size and return an (H, W, C) view.

    Raises:
        InvalidBufferShape: if the dimensions are not positive integers or the
            buffer does not hold exactly ``width * height * channels`` bytes.
    """
    try:
        width = int(width)
        height = int(height)
    except (TypeError, ValueError) as e:
        raise InvalidBufferShape(
            f"Image dimensions must be integers, got {width!r}x{height!r}", original_error=e
        ) from e
    if width <= 0 or height <= 0:
        raise InvalidBufferShape(
            f"Image dimensions must be positive, got {width}x{height}",
            width=width, height=height,
        )

    expected = width * height * channels
    if isinstance(pixels, np.ndarray):
        if pixels.dtype != np.uint8:
            raise InvalidBufferShape(
                f"Pixel array must be uint8, got {pixels.dtype}", width=width, height=height
            )
        actual = pixels.size
        if pixels.ndim == 3 and pixels.shape != (height, width, channels):
            raise InvalidBufferShape(
                f"Pixel array shape {pixels.shape} does not match {height}x{width}x{channels}",
                expected=expected, actual=actual, width=width, height=height,
            )
        data = pixels
    else:
        data = np.frombuffer(pixels, dtype=np.uint8)
        actual = data.size

    if actual != expected:
        raise InvalidBufferShape(
            f"Buffer holds {actual} bytes, expected {expected} for {width}x{height}x{channels}",
            expected=expected, actual=actual, width=width, height=height,
        )
    return data.reshape(height, width, channels)


def _validate_array(image: np.ndarray) -> np.ndarray:
    if not isinstance(image, np.ndarray) or image.ndim != 3:
        raise InvalidBufferShape(
            f"Expected an (H, W, 3) uint8 array, got {getattr(image, 'shape', type(image).__name__)}"
        )
    return validate_buffer(image, image.shape[1], image.shape[0])


def active_stages(edit: EditState, bypass: Optional[Iterable[Any]] = None) -> List[Stage]:
    """Stages that will run for ``edit`` with ``bypass`` applied, in canonical order."""
    groups = normalize_bypass(bypass)
    return [
        stage for stage in STAGE_ORDER
        if STAGE_GROUPS[stage] not in groups and st.stage_is_active(stage, edit)
    ]


def build_tone_luts(edit: EditState, stages: Sequence[Stage]) -> np.ndarray:
    """Fold the table stages among ``stages`` into one (3, 256) uint8 table set."""
    tables = np.tile(np.arange(256, dtype=np.uint8), (3, 1))
    for stage in stages:
        if stage in LUT_STAGES:
            tables = compose_luts(tables, st.stage_lut(stage, edit))
    return tables


def split_lut_prefix(stages: Sequence[Stage]):
    """Split ``stages`` into (leading table stages, the rest)."""
    count = 0
    for stage in stages:
        if stage not in LUT_STAGES:
            break
        count += 1
    return list(stages[:count]), list(stages[count:])


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def run_stages(
    image: np.ndarray,
    edit: EditState,
    stages: Sequence[Stage],
    rng: Optional[np.random.Generator] = None,
    stage_times: Optional[Dict[str, float]] = None,
) -> np.ndarray:
    """Run ``stages`` in the given order. Always returns a new array."""
    result = image
    for stage in stages:
        start = time.perf_counter()
        result = STAGE_RUNNERS[stage](result, edit, rng)
        if stage_times is not None:
            stage_times[stage.value] = time.perf_counter() - start
        logger.debug("Stage %s done", stage.value)
    if result is image:
        result = image.copy()
    return result


def apply_array(
    image: np.ndarray,
    edit: Union[EditState, Mapping[str, Any]],
    bypass: Optional[Iterable[Any]] = None,
    seed: Optional[int] = None,
) -> np.ndarray:
    """Run the pipeline on an (H, W, 3) uint8 array and return a new array."""
    edit = coerce_edit(edit)
    image = _validate_array(image)
    return run_stages(image, edit, active_stages(edit, bypass), make_rng(seed))


def apply_with_report(
    image: np.ndarray,
    edit: Union[EditState, Mapping[str, Any]],
    bypass: Optional[Iterable[Any]] = None,
    seed: Optional[int] = None,
) -> PipelineResult:
    """Like apply_array, but also reports which stages ran and how long each took."""
    edit = coerce_edit(edit)
    image = _validate_array(image)
    total_start = time.perf_counter()
    stages = active_stages(edit, bypass)
    stage_times: Dict[str, float] = {}
    result = run_stages(image, edit, stages, make_rng(seed), stage_times)
    total = time.perf_counter() - total_start
    logger.debug("Pipeline ran %d stage(s) in %.4fs", len(stages), total)
    return PipelineResult(
        image=result,
        stages_executed=[s.value for s in stages],
        total_time=total,
        stage_times=stage_times,
        backend="CPU",
    )


def apply(
    pixels: BufferLike,
    width: int,
    height: int,
    edit: Union[EditState, Mapping[str, Any]],
    bypass: Optional[Iterable[Any]] = frozenset(),
    *,
    seed: Optional[int] = None,
) -> Union[bytes, np.ndarray]:
    """Apply an edit to a packed RGB buffer.

    Args:
        pixels: ``width * height * 3`` bytes (bytes, bytearray, memoryview) or
            an (H, W, 3) uint8 array.
        width: Image width in pixels.
        height: Image height in pixels.
        edit: EditState (or its dictionary form).
        bypass: Stage groups to skip ("curves", "light", "color", "effects").
        seed: Optional seed for the grain noise.

    Returns:
        A new buffer of the same kind and size: ``bytes`` for buffer input,
        an ndarray for array input. The input is never modified.

    Raises:
        InvalidBufferShape: if the buffer does not match width and height.
    """
    image = validate_buffer(pixels, width, height)
    edit = coerce_edit(edit)
    result = run_stages(image, edit, active_stages(edit, bypass), make_rng(seed))
    if isinstance(pixels, np.ndarray):
        return result.reshape(pixels.shape)
    return result.tobytes()
