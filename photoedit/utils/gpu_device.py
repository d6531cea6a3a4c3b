"""
Process-wide GPU handle for the edit pipeline.

Two kinds of acceleration are supported. A wgpu device (Vulkan, Metal or
DX12) runs the whole per-pixel edit shader; CuPy (CUDA or ROCm) only speeds up
the table lookups of the leading tone stages. ``RENDER_DEFAULTS["gpu_backends"]``
decides which is tried first. If neither comes up, ``backend`` stays None and
every render goes through the CPU pipeline.
"""

import threading
from typing import Any, Dict, Optional

from ..config import settings
from .logger import get_logger

logger = get_logger(__name__)


def _probe_wgpu() -> Optional[Dict[str, Any]]:
    import wgpu

    adapter = wgpu.gpu.request_adapter_sync(power_preference="high-performance")
    if adapter is None:
        logger.debug("wgpu found no usable adapter")
        return None
    device = adapter.request_device_sync()
    if device is None:
        logger.debug("wgpu adapter refused to create a device")
        return None

    # e.g. "NVIDIA GeForce RTX 3060 (Vulkan)"
    summary = str(adapter.summary)
    name, _, api = summary.partition("(")
    api = api.rstrip(")").strip() or "WebGPU"
    return {
        "backend": "wgpu",
        "device_name": f"{name.strip()} ({api})",
        "adapter": adapter,
        "device": device,
        "limits": dict(getattr(device, "limits", {}) or {}),
    }


def _probe_cupy() -> Optional[Dict[str, Any]]:
    import cupy as cp

    if cp.cuda.runtime.getDeviceCount() == 0:
        logger.debug("CuPy is installed but sees no GPU")
        return None

    name = cp.cuda.runtime.getDeviceProperties(0).get("name", b"GPU")
    if isinstance(name, bytes):
        name = name.decode("utf-8", errors="ignore")
    location = (cp.__file__ or "").lower()
    rocm = "rocm" in location or "hip" in location

    # The only device work on this path is a table gather
    table = cp.arange(256, dtype=cp.uint8)
    int(table[cp.asarray([0, 128, 255])].sum())

    return {
        "backend": "cupy-rocm" if rocm else "cupy-cuda",
        "device_name": f"{name} ({'ROCm' if rocm else 'CUDA'})",
        "cupy": cp,
    }


_PROBES = {"wgpu": _probe_wgpu, "cupy": _probe_cupy}


class GPUDevice:
    """
    Lazily probed singleton; obtain it with ``GPUDevice.get()``.

    The class lock makes sure concurrent renders share one probe.
    """

    _instance: Optional["GPUDevice"] = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        if GPUDevice._instance is not None:
            raise RuntimeError("GPUDevice is a singleton - use GPUDevice.get()")
        self._state: Dict[str, Any] = {}
        self._probe()

    @classmethod
    def get(cls) -> "GPUDevice":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = GPUDevice()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the probed device; the next get() probes again."""
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance._state = {}
                cls._instance = None

    def _probe(self) -> None:
        for name in settings.RENDER_DEFAULTS.get("gpu_backends", ["wgpu", "cupy"]):
            probe = _PROBES.get(name)
            if probe is None:
                logger.warning("Unknown GPU backend %r in settings", name)
                continue
            try:
                state = probe()
            except ImportError:
                logger.debug("%s is not installed", name)
                continue
            except Exception as e:
                logger.debug("%s initialization failed: %s", name, e)
                continue
            if state:
                self._state = state
                logger.info("GPU acceleration enabled: %s", self.device_name)
                return

        logger.info("No GPU acceleration available; rendering on the CPU")

    @property
    def backend(self) -> Optional[str]:
        """One of ``wgpu``, ``cupy-cuda``, ``cupy-rocm``, or None."""
        return self._state.get("backend")

    @property
    def device_name(self) -> str:
        return self._state.get("device_name", "CPU")

    @property
    def is_available(self) -> bool:
        return self.backend is not None

    @property
    def is_cupy(self) -> bool:
        return self.backend in ("cupy-cuda", "cupy-rocm")

    @property
    def is_wgpu(self) -> bool:
        return self.backend == "wgpu"

    @property
    def wgpu_device(self) -> Optional[Any]:
        return self._state.get("device")

    @property
    def cupy(self) -> Optional[Any]:
        return self._state.get("cupy")

    @property
    def max_texture_dimension(self) -> int:
        """Largest 2D texture edge the wgpu device accepts."""
        return int(self._state.get("limits", {}).get("max_texture_dimension_2d", 8192))

    def get_info(self) -> Dict[str, Any]:
        """Backend summary for logs and diagnostics."""
        return {
            "enabled": self.is_available,
            "backend": self.backend,
            "device_name": self.device_name,
            "is_cupy": self.is_cupy,
            "is_wgpu": self.is_wgpu,
            "max_texture_dimension": self.max_texture_dimension if self.is_wgpu else None,
        }
