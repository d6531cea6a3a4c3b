"""
WGSL source lookup and compilation for the edit shader.

Shader files live next to this module in ``shaders/``. Compiled modules belong
to the device that built them, so the cache is keyed by device as well as by
name; after ``GPUDevice.reset()`` the next load compiles again.
"""

import os
import threading
from typing import Any, Dict, Tuple

from .logger import get_logger

logger = get_logger(__name__)

SHADER_DIR = os.path.join(os.path.dirname(__file__), "shaders")


class ShaderLoader:

    _modules: Dict[Tuple[int, str], Any] = {}
    _lock = threading.Lock()

    @classmethod
    def get_shader_path(cls, shader_name: str) -> str:
        return os.path.join(SHADER_DIR, shader_name + ".wgsl")

    @classmethod
    def shader_exists(cls, shader_name: str) -> bool:
        return os.path.isfile(cls.get_shader_path(shader_name))

    @classmethod
    def read_source(cls, shader_name: str) -> str:
        """WGSL text of ``shader_name``; FileNotFoundError if it is not shipped."""
        path = cls.get_shader_path(shader_name)
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Shader not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    @classmethod
    def load(cls, shader_name: str) -> Any:
        """Compiled shader module for the current wgpu device.

        Raises RuntimeError when the active GPU backend is not wgpu.
        """
        from .gpu_device import GPUDevice

        gpu = GPUDevice.get()
        device = gpu.wgpu_device
        if not gpu.is_wgpu or device is None:
            raise RuntimeError(f"Cannot compile {shader_name}: no wgpu device")

        key = (id(device), shader_name)
        with cls._lock:
            module = cls._modules.get(key)
            if module is None:
                module = device.create_shader_module(code=cls.read_source(shader_name))
                cls._modules[key] = module
                logger.debug("Compiled %s.wgsl on %s", shader_name, gpu.device_name)
            return module

    @classmethod
    def clear_cache(cls) -> None:
        with cls._lock:
            cls._modules.clear()
