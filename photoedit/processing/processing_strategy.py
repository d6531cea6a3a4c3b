"""
Backend adapters for the edit pipeline.

Three executors of the same canonical stage list:

- ``ServerAdapter``: packed RGB buffers for export; runs the reference pipeline.
- ``CanvasAdapter``: interactive RGBA (ImageData-like) buffers; folds the
  leading per-channel stages into one table lookup and caches rendered output.
- ``GPUAdapter``: the wgpu/CuPy engine.

``ProcessingContext`` picks the best available adapter and falls back to the
CPU when the GPU fails.
"""

import hashlib
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Iterable, Optional, Tuple

import numpy as np

from ..config import settings
from ..model.edit_state import EditState
from ..utils.errors import GPUError
from ..utils.logger import get_logger
from . import pipeline
from .stages import Stage, apply_lut, grain_noise

logger = get_logger(__name__)


class ProcessingStrategy(ABC):
    """Abstract base class for pipeline backends."""

    @abstractmethod
    def process(
        self,
        image: np.ndarray,
        edit: EditState,
        bypass: Optional[Iterable[Any]] = None,
        seed: Optional[int] = None,
    ) -> np.ndarray:
        """
        Render ``edit`` over an image.

        Args:
            image: Input uint8 RGB image (H, W, 3).
            edit: Edit parameters.
            bypass: Stage groups to skip.
            seed: Optional grain seed.

        Returns:
            New uint8 RGB image of the same shape.
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend can run."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this backend."""
        pass


class ServerAdapter(ProcessingStrategy):
    """Raw-buffer CPU backend used for export."""

    @property
    def name(self) -> str:
        return "CPU"

    def is_available(self) -> bool:
        return True

    def process(self, image, edit, bypass=None, seed=None):
        return pipeline.apply_array(image, edit, bypass, seed)

    def apply_buffer(self, pixels, width, height, edit, bypass=frozenset(), seed=None) -> bytes:
        """Packed RGB bytes in, packed RGB bytes out."""
        return pipeline.apply(bytes(pixels), width, height, edit, bypass, seed=seed)


class _LRUCache:
    """Small thread-safe LRU map. Stored values are treated as read-only."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max(0, int(max_size))
        self._items: "OrderedDict[Any, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key):
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
                self.hits += 1
                return self._items[key]
            self.misses += 1
            return None

    def put(self, key, value) -> None:
        if self.max_size == 0:
            return
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._items)


class CanvasAdapter(ProcessingStrategy):
    """
    Interactive CPU backend for RGBA canvas buffers.

    The leading table stages are applied with one lookup per channel; the rest
    run through the reference stage functions. Alpha is passed through.
    """

    def __init__(self, cache_size: Optional[int] = None) -> None:
        if cache_size is None:
            cache_size = settings.RENDER_DEFAULTS.get("cache_size", 32)
        self._lut_cache = _LRUCache(cache_size)
        self._render_cache = _LRUCache(cache_size)

    @property
    def name(self) -> str:
        return "Canvas"

    def is_available(self) -> bool:
        return True

    def _tone_tables(self, edit: EditState, bypass, stages) -> np.ndarray:
        key = (edit.signature(bypass), settings.SETTINGS_GENERATION)
        tables = self._lut_cache.get(key)
        if tables is None:
            tables = pipeline.build_tone_luts(edit, stages)
            tables.setflags(write=False)
            self._lut_cache.put(key, tables)
        else:
            logger.debug("Canvas LUT cache hit %s", key[0][:8])
        return tables

    def process(self, image, edit, bypass=None, seed=None):
        edit = pipeline.coerce_edit(edit)
        image = pipeline.validate_buffer(image, image.shape[1], image.shape[0])
        stages = pipeline.active_stages(edit, bypass)
        table_stages, rest = pipeline.split_lut_prefix(stages)

        if table_stages:
            result = apply_lut(image, self._tone_tables(edit, bypass, table_stages))
        else:
            result = image
        return pipeline.run_stages(result, edit, rest, pipeline.make_rng(seed))

    def render(self, pixels, width: int, height: int, edit, bypass=frozenset(),
               seed: Optional[int] = None) -> bytes:
        """
        Render an RGBA buffer of ``width * height * 4`` bytes.

        Results are cached by edit signature, bypass set, a digest of the
        source pixels and the settings generation; a cache hit returns the
        stored bytes without rendering.
        """
        edit = pipeline.coerce_edit(edit)
        rgba = pipeline.validate_buffer(pixels, width, height, channels=4)
        digest = hashlib.blake2b(rgba.tobytes(), digest_size=16).hexdigest()
        key = (edit.signature(bypass), digest, width, height, seed, settings.SETTINGS_GENERATION)

        cached = self._render_cache.get(key)
        if cached is not None:
            logger.debug("Canvas render cache hit")
            return cached

        rgb = self.process(np.ascontiguousarray(rgba[..., :3]), edit, bypass, seed)
        out = np.empty_like(rgba)
        out[..., :3] = rgb
        out[..., 3] = rgba[..., 3]
        result = out.tobytes()
        self._render_cache.put(key, result)
        return result

    def cache_info(self) -> dict:
        return {
            "renders": len(self._render_cache),
            "hits": self._render_cache.hits,
            "misses": self._render_cache.misses,
            "luts": len(self._lut_cache),
        }

    def clear_cache(self) -> None:
        self._render_cache.clear()
        self._lut_cache.clear()


class GPUAdapter(ProcessingStrategy):
    """GPU backend using the shared GPU engine."""

    def __init__(self):
        self._engine = None
        self._available = None

    @property
    def name(self) -> str:
        return "GPU"

    def is_available(self) -> bool:
        if self._available is None:
            try:
                from ..utils.gpu_engine import has_gpu_engine
                self._available = has_gpu_engine()
            except Exception as e:
                logger.debug("GPU probe failed: %s", e)
                self._available = False
        return self._available

    def _get_engine(self):
        if self._engine is None:
            from ..utils.gpu_engine import get_gpu_engine
            self._engine = get_gpu_engine()
        return self._engine

    def process(self, image, edit, bypass=None, seed=None):
        edit = pipeline.coerce_edit(edit)
        image = pipeline.validate_buffer(image, image.shape[1], image.shape[0])
        stages = pipeline.active_stages(edit, bypass)

        noise = None
        if Stage.GRAIN in stages:
            noise = grain_noise(
                image.shape[0], image.shape[1], edit.grain, edit.grain_size,
                edit.grain_roughness, pipeline.make_rng(seed),
            )

        try:
            return self._get_engine().process_edit(image, edit, stages, noise)
        except Exception as e:
            raise GPUError(f"GPU render failed: {e}", original_error=e) from e


class ProcessingContext:
    """
    Selects a backend and falls back to the CPU if GPU processing fails.
    """

    def __init__(self, prefer_gpu: Optional[bool] = None):
        """
        Args:
            prefer_gpu: Whether to prefer GPU processing when available.
                Defaults to ``RENDER_DEFAULTS["prefer_gpu"]``.
        """
        if prefer_gpu is None:
            prefer_gpu = bool(settings.RENDER_DEFAULTS.get("prefer_gpu", True))
        self._gpu_strategy = GPUAdapter()
        self._cpu_strategy = ServerAdapter()
        self._prefer_gpu = prefer_gpu

    def get_strategy(self) -> ProcessingStrategy:
        """Get the best available backend."""
        if self._prefer_gpu and self._gpu_strategy.is_available():
            return self._gpu_strategy
        return self._cpu_strategy

    def process(
        self,
        image: np.ndarray,
        edit,
        bypass: Optional[Iterable[Any]] = None,
        seed: Optional[int] = None,
    ) -> Tuple[np.ndarray, str]:
        """
        Render with automatic fallback.

        Returns:
            Tuple of (uint8 RGB image, backend name used).
        """
        strategy = self.get_strategy()
        try:
            return strategy.process(image, edit, bypass, seed), strategy.name
        except GPUError as e:
            logger.warning("GPU processing failed, falling back to CPU: %s", e)
            result = self._cpu_strategy.process(image, edit, bypass, seed)
            return result, "CPU (fallback)"

    def apply(self, pixels, width: int, height: int, edit, bypass=frozenset(),
              seed: Optional[int] = None) -> Tuple[bytes, str]:
        """Packed RGB buffer variant of process()."""
        image = pipeline.validate_buffer(pixels, width, height)
        result, backend = self.process(image, edit, bypass, seed)
        return result.tobytes(), backend


def compare_backends(a: np.ndarray, b: np.ndarray) -> float:
    """Mean absolute channel difference between two renders (0..255 scale)."""
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape:
        raise ValueError(f"Cannot compare renders of shape {a.shape} and {b.shape}")
    if a.size == 0:
        return 0.0
    return float(np.mean(np.abs(a.astype(np.int16) - b.astype(np.int16))))


def backends_agree(a: np.ndarray, b: np.ndarray, tolerance: Optional[float] = None) -> bool:
    """True if two renders differ by no more than ``cross_backend_tolerance``."""
    if tolerance is None:
        tolerance = float(settings.RENDER_DEFAULTS.get("cross_backend_tolerance", 2.0))
    return compare_backends(a, b) <= tolerance
