"""
GPU Resource Wrappers - textures for images, lookup tables and noise fields.

Images live in rgba32float textures (values on the 0..255 scale); tables and
the grain field live in single-channel r32float textures. Textures are pooled
by size and role so repeated renders of the same image reuse their memory.
"""

from typing import Any, Dict, Tuple

import numpy as np

from .logger import get_logger

logger = get_logger(__name__)

# Bytes per texel for each supported format
_TEXEL_BYTES = {"rgba32float": 16, "r32float": 4}


def _device():
    from .gpu_device import GPUDevice

    gpu = GPUDevice.get()
    if not gpu.is_wgpu or not gpu.wgpu_device:
        raise RuntimeError("wgpu device required for GPU textures")
    return gpu.wgpu_device


class GPUTexture:
    """
    2D float texture wrapper.

    ``rgba32float`` holds image data, ``r32float`` holds tables (one row per
    table) and per-pixel scalar fields.
    """

    def __init__(self, width: int, height: int, usage: int = 0, fmt: str = "rgba32float") -> None:
        import wgpu

        if fmt not in _TEXEL_BYTES:
            raise ValueError(f"Unsupported texture format: {fmt}")

        self.width = width
        self.height = height
        self.format = fmt

        if usage == 0:
            usage = (
                wgpu.TextureUsage.TEXTURE_BINDING |
                wgpu.TextureUsage.STORAGE_BINDING |
                wgpu.TextureUsage.COPY_DST |
                wgpu.TextureUsage.COPY_SRC
            )

        self._texture = _device().create_texture(
            size=(width, height, 1),
            format=self.format,
            usage=usage,
        )
        self._view = self._texture.create_view()

    @property
    def texture(self) -> Any:
        return self._texture

    @property
    def view(self) -> Any:
        return self._view

    @property
    def texel_bytes(self) -> int:
        return _TEXEL_BYTES[self.format]

    def upload(self, data: np.ndarray) -> None:
        """
        Upload an array to the texture.

        Args:
            data: (H, W, 3) or (H, W, 4) for rgba32float, (H, W) for r32float.
                Converted to float32; RGB gets an opaque alpha channel.
        """
        data = np.asarray(data, dtype=np.float32)

        if self.format == "rgba32float" and data.ndim == 3 and data.shape[2] == 3:
            rgba = np.full((data.shape[0], data.shape[1], 4), 255.0, dtype=np.float32)
            rgba[:, :, :3] = data
            data = rgba

        data = np.ascontiguousarray(data)
        _device().queue.write_texture(
            {"texture": self._texture},
            data,
            {"bytes_per_row": data.shape[1] * self.texel_bytes, "rows_per_image": data.shape[0]},
            (data.shape[1], data.shape[0], 1),
        )

    def readback(self) -> np.ndarray:
        """
        Copy texture contents back to the CPU.

        Returns:
            float32 array of shape (H, W, 4) for rgba32float or (H, W) for r32float
        """
        import wgpu

        device = _device()
        row_bytes = self.width * self.texel_bytes
        # Rows in a texture-to-buffer copy must be 256-byte aligned
        bytes_per_row = (row_bytes + 255) & ~255

        staging = device.create_buffer(
            size=bytes_per_row * self.height,
            usage=wgpu.BufferUsage.COPY_DST | wgpu.BufferUsage.MAP_READ,
        )
        encoder = device.create_command_encoder()
        encoder.copy_texture_to_buffer(
            {"texture": self._texture},
            {"buffer": staging, "bytes_per_row": bytes_per_row},
            (self.width, self.height, 1),
        )
        device.queue.submit([encoder.finish()])

        staging.map_sync(mode=wgpu.MapMode.READ)
        raw = staging.read_mapped()
        arr = np.frombuffer(raw, dtype=np.float32).reshape((self.height, bytes_per_row // 4))
        channels = self.texel_bytes // 4
        pixels = arr[:, :self.width * channels]
        if channels > 1:
            pixels = pixels.reshape((self.height, self.width, channels))
        result = pixels.copy()
        staging.unmap()
        staging.destroy()
        return result

    def destroy(self) -> None:
        self._view = None
        if self._texture is not None:
            self._texture.destroy()
            self._texture = None


class TexturePool:
    """
    Reusable textures keyed by (width, height, usage, format, label).

    The label keeps input and output textures of the same size apart.
    """

    def __init__(self) -> None:
        self._pool: Dict[Tuple[int, int, int, str, str], GPUTexture] = {}

    def get(self, width: int, height: int, usage: int, label: str = "",
            fmt: str = "rgba32float") -> GPUTexture:
        key = (width, height, usage, fmt, label)
        if key not in self._pool:
            self._pool[key] = GPUTexture(width, height, usage, fmt)
            logger.debug("Created pooled texture: %dx%d %s (%s)", width, height, fmt, label)
        return self._pool[key]

    def clear(self) -> None:
        """Release all pooled textures."""
        for tex in self._pool.values():
            tex.destroy()
        self._pool.clear()

    def __len__(self) -> int:
        return len(self._pool)
