"""
GPU Engine - runs the edit pipeline on the GPU.

wgpu: one upload, a single compute dispatch of ``edit_pipeline.wgsl`` for all
per-pixel stages, one readback. Tables (composed tone LUTs, HSL deltas) and
the grain field are built on the CPU with the same code the reference
pipeline uses, so the only differences are float32 rounding.

CuPy: tone tables are looked up on the GPU; the remaining stages run on the
CPU reference implementation after a single transfer back.

Spatial blur always runs on the CPU after readback.
"""

import struct
import threading
from typing import Any, Optional, Sequence

import numpy as np

from ..model.edit_state import EditState
from .errors import ErrorCategory, safe_operation
from .logger import get_logger

logger = get_logger(__name__)

# Constants
WORKGROUP_SIZE = 8
UNIFORM_SIZE = 1024
SHADER_NAME = "edit_pipeline"

# Shader flag bits, one per stage handled in the shader
SHADER_FLAGS = {
    "saturation": 1,
    "legacy_hue": 2,
    "vibrance": 4,
    "hsl": 8,
    "split_toning": 16,
    "shadow_tint": 32,
    "color_grading": 64,
    "calibration": 128,
    "dehaze": 256,
    "vignette": 512,
    "grain": 1024,
    "grayscale": 2048,
    "sepia": 4096,
    "invert": 8192,
}


class GPUEngine:
    """
    Edit-pipeline executor for the wgpu and CuPy backends.

    Device access is serialized with a lock: one render owns the pooled
    textures and the uniform buffer at a time.
    """

    def __init__(self) -> None:
        from .gpu_device import GPUDevice

        self.gpu = GPUDevice.get()
        self._initialized = False
        self._render_lock = threading.Lock()

        # wgpu-specific state
        self._pipeline: Optional[Any] = None
        self._uniform_buffer: Optional[Any] = None
        self._texture_pool: Optional[Any] = None

    def is_available(self) -> bool:
        return self.gpu.is_available

    def get_backend_name(self) -> str:
        if self.gpu.is_cupy:
            return "CuPy"
        elif self.gpu.is_wgpu:
            return "wgpu"
        return "CPU"

    # =========================================================================
    # Initialization
    # =========================================================================

    def _init_wgpu_resources(self) -> None:
        """Compile the pipeline shader and create the uniform buffer."""
        if self._initialized or not self.gpu.is_wgpu:
            return

        import wgpu
        from .gpu_resources import TexturePool
        from .gpu_shaders import ShaderLoader

        device = self.gpu.wgpu_device
        if not device:
            return

        self._texture_pool = TexturePool()

        module = ShaderLoader.load(SHADER_NAME)
        self._pipeline = device.create_compute_pipeline(
            layout="auto",
            compute={"module": module, "entry_point": "main"},
        )

        self._uniform_buffer = device.create_buffer(
            size=UNIFORM_SIZE,
            usage=wgpu.BufferUsage.UNIFORM | wgpu.BufferUsage.COPY_DST,
        )

        self._initialized = True
        logger.info("GPU Engine: wgpu edit pipeline initialized")

    def _get_texture(self, width: int, height: int, label: str, fmt: str = "rgba32float") -> Any:
        import wgpu

        if fmt == "rgba32float":
            usage = (
                wgpu.TextureUsage.TEXTURE_BINDING |
                wgpu.TextureUsage.STORAGE_BINDING |
                wgpu.TextureUsage.COPY_DST |
                wgpu.TextureUsage.COPY_SRC
            )
        else:
            usage = wgpu.TextureUsage.TEXTURE_BINDING | wgpu.TextureUsage.COPY_DST
        return self._texture_pool.get(width, height, usage, label, fmt)

    # =========================================================================
    # Edit API
    # =========================================================================

    def process_edit(
        self,
        image: np.ndarray,
        edit: EditState,
        stages: Sequence[Any],
        noise: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Render ``stages`` of ``edit`` over an (H, W, 3) uint8 image.

        Args:
            image: Input uint8 RGB image
            edit: Edit parameters
            stages: Active stages in canonical order (bypass already applied)
            noise: Grain field (H, W) when the grain stage is active

        Returns:
            Processed uint8 RGB image
        """
        if self.gpu.is_wgpu:
            return self._process_edit_wgpu(image, edit, stages, noise)
        elif self.gpu.is_cupy:
            return self._process_edit_cupy(image, edit, stages, noise)
        raise RuntimeError("No GPU backend available")

    def _process_edit_cupy(self, image, edit, stages, noise):
        """CuPy implementation - table stages on GPU, the rest on the CPU reference."""
        from ..processing.pipeline import build_tone_luts, run_stages, split_lut_prefix
        from ..processing.stages import Stage, apply_grain

        cp = self.gpu.cupy
        table_stages, rest = split_lut_prefix(stages)

        with self._render_lock:
            if table_stages:
                tables = cp.asarray(build_tone_luts(edit, table_stages))
                img = cp.asarray(image)
                out = cp.stack([tables[c][img[..., c]] for c in range(3)], axis=-1)
                result = cp.asnumpy(out)
            else:
                result = image.copy()

        if Stage.GRAIN in rest and noise is not None:
            before = rest[:rest.index(Stage.GRAIN)]
            after = rest[rest.index(Stage.GRAIN) + 1:]
            result = run_stages(result, edit, before)
            result = apply_grain(result, edit.grain, noise=noise)
            return run_stages(result, edit, after)
        return run_stages(result, edit, rest)

    def _process_edit_wgpu(self, image, edit, stages, noise):
        """wgpu implementation - single shader dispatch."""
        from ..processing.luts import build_hsl_luts
        from ..processing.pipeline import build_tone_luts, run_stages
        from ..processing.stages import Stage

        names = {stage.value for stage in stages}
        h, w = image.shape[:2]
        max_dim = self.gpu.max_texture_dimension
        if w > max_dim or h > max_dim:
            raise RuntimeError(f"Image {w}x{h} exceeds GPU texture limit {max_dim}")

        tone_tables = build_tone_luts(edit, stages).astype(np.float32)
        if "hsl" in names:
            hsl_tables = build_hsl_luts(edit.color_hsl).astype(np.float32)
        else:
            hsl_tables = np.zeros((3, 360), dtype=np.float32)
        has_noise = "grain" in names and noise is not None
        uniform_data = self._build_uniform_data(edit, names, w, h, has_noise)

        with self._render_lock:
            self._init_wgpu_resources()
            if not self._pipeline:
                raise RuntimeError("wgpu pipeline not initialized")

            device = self.gpu.wgpu_device

            tex_input = self._get_texture(w, h, "input")
            tex_output = self._get_texture(w, h, "output")
            tex_tone = self._get_texture(256, 3, "tone_lut", "r32float")
            tex_hsl = self._get_texture(360, 3, "hsl_lut", "r32float")
            if has_noise:
                tex_noise = self._get_texture(w, h, "noise", "r32float")
                tex_noise.upload(noise.astype(np.float32))
            else:
                tex_noise = self._get_texture(1, 1, "noise", "r32float")
                tex_noise.upload(np.zeros((1, 1), dtype=np.float32))

            tex_input.upload(image)
            tex_tone.upload(tone_tables)
            tex_hsl.upload(hsl_tables)
            device.queue.write_buffer(self._uniform_buffer, 0, uniform_data)

            bind_group = device.create_bind_group(
                layout=self._pipeline.get_bind_group_layout(0),
                entries=[
                    {"binding": 0, "resource": tex_input.view},
                    {"binding": 1, "resource": tex_output.view},
                    {"binding": 2, "resource": {"buffer": self._uniform_buffer}},
                    {"binding": 3, "resource": tex_tone.view},
                    {"binding": 4, "resource": tex_hsl.view},
                    {"binding": 5, "resource": tex_noise.view},
                ],
            )

            encoder = device.create_command_encoder()
            compute_pass = encoder.begin_compute_pass()
            compute_pass.set_pipeline(self._pipeline)
            compute_pass.set_bind_group(0, bind_group)
            wg_x = (w + WORKGROUP_SIZE - 1) // WORKGROUP_SIZE
            wg_y = (h + WORKGROUP_SIZE - 1) // WORKGROUP_SIZE
            compute_pass.dispatch_workgroups(wg_x, wg_y, 1)
            compute_pass.end()
            device.queue.submit([encoder.finish()])

            result = tex_output.readback()

        result = np.clip(np.floor(result[:, :, :3] + 0.5), 0, 255).astype(np.uint8)
        if Stage.BLUR in stages:
            result = run_stages(result, edit, [Stage.BLUR])
        return result

    def _build_uniform_data(self, edit: EditState, names, width: int, height: int,
                            has_noise: bool) -> bytes:
        """Pack the Params struct of edit_pipeline.wgsl."""
        from ..config import settings
        from ..processing.color import hue_rotation_matrix

        cfg = settings.PIPELINE_DEFAULTS
        flags = 0
        for name, bit in SHADER_FLAGS.items():
            if name in names and (name != "grain" or has_noise):
                flags |= bit

        hue_degrees = (edit.hue * float(cfg["legacy_hue_degrees"]) + 360.0) % 360.0
        m = hue_rotation_matrix(hue_degrees)
        split = edit.split_toning
        grade = edit.color_grading
        calib = edit.color_calibration

        # Must match the shader struct layout
        data = struct.pack("IIII", width, height, flags, 0)
        data += struct.pack(
            "ffff",  # basic
            edit.saturation, edit.vibrance * float(cfg["vibrance_scale"]), edit.dehaze, edit.vignette,
        )
        data += struct.pack(
            "ffffffffffff",  # legacy hue matrix rows (3 x vec4)
            m[0, 0], m[0, 1], m[0, 2], 0.0,
            m[1, 0], m[1, 1], m[1, 2], 0.0,
            m[2, 0], m[2, 1], m[2, 2], 0.0,
        )
        data += struct.pack(
            "ffff",  # split toning
            split.shadow_hue / 360.0, split.shadow_saturation / 100.0,
            split.highlight_hue / 360.0, split.highlight_saturation / 100.0,
        )
        data += struct.pack(
            "ffff",  # split2
            (split.balance + 100.0) / 200.0, edit.shadow_tint, float(cfg["shadow_tint_strength"]), 0.0,
        )
        data += struct.pack(
            "ffff",  # grading luminance
            grade.shadow_lum / 100.0, grade.midtone_lum / 100.0,
            grade.highlight_lum / 100.0, grade.global_lum / 100.0,
        )
        data += struct.pack(
            "ffff",  # grading colors
            grade.midtone_hue / 360.0, grade.midtone_sat / 100.0,
            grade.global_hue / 360.0, grade.global_sat / 100.0,
        )
        data += struct.pack(
            "ffff",  # grading misc
            grade.blending / 100.0, float(cfg["grading_luminance_scale"]), 0.0, 0.0,
        )
        data += struct.pack(
            "ffff",  # calibration
            calib.red_saturation / 100.0, calib.green_saturation / 100.0,
            calib.blue_saturation / 100.0, float(cfg["calibration_saturation_scale"]),
        )
        data += struct.pack(
            "ffff",  # constants
            float(cfg["hsl_saturation_strength"]), float(cfg["hsl_luminance_strength"]),
            float(cfg["hsl_min_saturation"]), float(cfg["calibration_min_delta"]),
        )
        data += struct.pack(
            "ffff",  # constants 2
            float(cfg["dehaze_contrast_scale"]), float(cfg["dehaze_saturation_scale"]), 0.0, 0.0,
        )
        return data

    # =========================================================================
    # Resource Management
    # =========================================================================

    def cleanup(self) -> None:
        """Release pooled textures (keeps the compiled pipeline)."""
        with self._render_lock:
            if self._texture_pool:
                self._texture_pool.clear()

    def destroy(self) -> None:
        """Release all GPU resources."""
        with safe_operation("releasing GPU textures", ErrorCategory.GPU):
            self.cleanup()
        self._pipeline = None
        self._uniform_buffer = None
        self._initialized = False


_engine: Optional[GPUEngine] = None
_engine_lock = threading.Lock()


def get_gpu_engine() -> GPUEngine:
    """Shared engine instance."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = GPUEngine()
        return _engine


def has_gpu_engine() -> bool:
    """True when a GPU backend initialized."""
    from .gpu_device import GPUDevice

    return GPUDevice.get().is_available
