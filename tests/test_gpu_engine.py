"""
Tests for GPU Engine and related infrastructure.
"""

import struct

import numpy as np
import pytest

from photoedit.model.edit_state import EditState
from photoedit.processing import pipeline
from photoedit.processing.stages import LUT_STAGES, Stage


class TestGPUDevice:
    """Tests for GPUDevice singleton."""

    def test_singleton_pattern(self):
        """GPUDevice should be a singleton."""
        from photoedit.utils.gpu_device import GPUDevice

        assert GPUDevice.get() is GPUDevice.get()

    def test_direct_construction_rejected(self):
        from photoedit.utils.gpu_device import GPUDevice

        GPUDevice.get()
        with pytest.raises(RuntimeError):
            GPUDevice()

    def test_device_info(self):
        """GPUDevice should provide device info."""
        from photoedit.utils.gpu_device import GPUDevice

        info = GPUDevice.get().get_info()

        for key in ("enabled", "backend", "device_name", "is_cupy", "is_wgpu"):
            assert key in info
        assert isinstance(info["enabled"], bool)

    def test_backend_detection(self):
        """Backend should be one of the valid options."""
        from photoedit.utils.gpu_device import GPUDevice

        device = GPUDevice.get()

        assert device.backend in [None, "cupy-cuda", "cupy-rocm", "wgpu"]
        assert not (device.is_cupy and device.is_wgpu)
        assert device.is_available == (device.backend is not None)


class TestShaderFlags:
    """The shader covers every per-pixel stage except blur."""

    def test_flag_names(self):
        from photoedit.utils.gpu_engine import SHADER_FLAGS

        expected = {
            stage.value for stage in Stage
            if stage not in LUT_STAGES and stage is not Stage.BLUR
        }
        assert set(SHADER_FLAGS) == expected

    def test_flags_are_distinct_bits(self):
        from photoedit.utils.gpu_engine import SHADER_FLAGS

        bits = list(SHADER_FLAGS.values())
        assert len(set(bits)) == len(bits)
        for bit in bits:
            assert bit > 0 and bit & (bit - 1) == 0


class TestUniformPacking:
    """Params struct layout."""

    @pytest.fixture
    def engine(self):
        from photoedit.utils.gpu_engine import get_gpu_engine
        return get_gpu_engine()

    def test_size(self, engine, full_edit):
        from photoedit.utils.gpu_engine import UNIFORM_SIZE

        data = engine._build_uniform_data(full_edit, {"saturation"}, 64, 32, False)
        assert len(data) == 208
        assert len(data) <= UNIFORM_SIZE

    def test_header(self, engine):
        edit = EditState(saturation=0.5, grain=0.4)
        data = engine._build_uniform_data(edit, {"saturation", "grain"}, 64, 32, False)
        width, height, flags, _ = struct.unpack("IIII", data[:16])
        assert (width, height) == (64, 32)
        # Grain without a noise field stays off
        assert flags == 1

    def test_grain_flag_with_noise(self, engine):
        from photoedit.utils.gpu_engine import SHADER_FLAGS

        data = engine._build_uniform_data(EditState(grain=0.4), {"grain"}, 8, 8, True)
        flags = struct.unpack("IIII", data[:16])[2]
        assert flags == SHADER_FLAGS["grain"]

    def test_basic_values(self, engine):
        edit = EditState(saturation=0.25, dehaze=-0.5, vignette=0.75)
        data = engine._build_uniform_data(edit, set(), 8, 8, False)
        saturation, _, dehaze, vignette = struct.unpack("ffff", data[16:32])
        assert saturation == pytest.approx(0.25)
        assert dehaze == pytest.approx(-0.5)
        assert vignette == pytest.approx(0.75)

    def test_identity_hue_matrix(self, engine):
        data = engine._build_uniform_data(EditState(), set(), 8, 8, False)
        rows = struct.unpack("f" * 12, data[32:80])
        matrix = np.array(rows, dtype=np.float32).reshape(3, 4)[:, :3]
        assert np.allclose(matrix, np.eye(3), atol=2e-3)


class TestGPUEngine:
    """Tests for GPUEngine processing."""

    @pytest.fixture
    def engine(self):
        from photoedit.utils.gpu_engine import get_gpu_engine
        return get_gpu_engine()

    def test_shared_engine(self, engine):
        from photoedit.utils.gpu_engine import get_gpu_engine
        assert get_gpu_engine() is engine

    def test_engine_availability(self, engine):
        """Engine should report availability consistently with the device."""
        from photoedit.utils.gpu_engine import has_gpu_engine

        assert engine.is_available() == has_gpu_engine()
        if not engine.is_available():
            assert engine.get_backend_name() == "CPU"

    def test_process_without_backend(self, engine, gradient_image):
        if engine.is_available():
            pytest.skip("GPU available")
        with pytest.raises(RuntimeError):
            engine.process_edit(gradient_image, EditState(), [])

    def test_tone_stages(self, engine, gradient_image):
        if not engine.is_available():
            pytest.skip("GPU not available")

        edit = EditState(exposure=0.3, contrast=0.2, temperature=-0.4)
        stages = pipeline.active_stages(edit)
        result = engine.process_edit(gradient_image, edit, stages)

        assert result.shape == gradient_image.shape
        assert result.dtype == np.uint8
        expected = pipeline.apply_array(gradient_image, edit)
        assert np.abs(result.astype(int) - expected.astype(int)).max() <= 1

    def test_identity(self, engine, gradient_image):
        if not engine.is_available():
            pytest.skip("GPU not available")
        result = engine.process_edit(gradient_image, EditState(), [])
        assert np.array_equal(result, gradient_image)


class TestGPUResources:
    """Tests for GPU resource management (wgpu only)."""

    def test_texture_pool(self):
        from photoedit.utils.gpu_device import GPUDevice

        if not GPUDevice.get().is_wgpu:
            pytest.skip("wgpu not available")

        import wgpu
        from photoedit.utils.gpu_resources import TexturePool

        pool = TexturePool()
        usage = wgpu.TextureUsage.TEXTURE_BINDING | wgpu.TextureUsage.STORAGE_BINDING
        tex1 = pool.get(100, 100, usage, "input")
        assert pool.get(100, 100, usage, "input") is tex1
        assert pool.get(100, 100, usage, "output") is not tex1
        assert pool.get(256, 3, usage, "lut", "r32float").format == "r32float"

        pool.clear()
        assert len(pool) == 0

    def test_unknown_format(self):
        from photoedit.utils.gpu_device import GPUDevice

        if not GPUDevice.get().is_wgpu:
            pytest.skip("wgpu not available")

        from photoedit.utils.gpu_resources import GPUTexture

        with pytest.raises(ValueError):
            GPUTexture(4, 4, 0, "rgba8unorm")


class TestShaderLoader:
    """Tests for shader lookup and compilation."""

    def test_shader_exists(self):
        from photoedit.utils.gpu_shaders import ShaderLoader

        assert ShaderLoader.shader_exists("edit_pipeline")
        assert not ShaderLoader.shader_exists("nonexistent_shader")

    def test_shader_source(self):
        from photoedit.utils.gpu_shaders import ShaderLoader

        source = ShaderLoader.read_source("edit_pipeline")
        assert "@compute" in source
        assert "fn main" in source

    def test_shader_loading(self):
        """Compiled modules are cached."""
        from photoedit.utils.gpu_device import GPUDevice

        if not GPUDevice.get().is_wgpu:
            pytest.skip("wgpu not available")

        from photoedit.utils.gpu_shaders import ShaderLoader

        module = ShaderLoader.load("edit_pipeline")
        assert module is not None
        assert ShaderLoader.load("edit_pipeline") is module

    def test_modules_cached_per_device(self, monkeypatch):
        """A new wgpu device compiles its own module."""
        from photoedit.utils import gpu_device
        from photoedit.utils.gpu_shaders import ShaderLoader

        class FakeWGPUDevice:
            def __init__(self):
                self.compiled = 0

            def create_shader_module(self, code):
                self.compiled += 1
                return object()

        class FakeGPU:
            is_wgpu = True
            device_name = "fake"

            def __init__(self):
                self.wgpu_device = FakeWGPUDevice()

        first, second = FakeGPU(), FakeGPU()
        ShaderLoader.clear_cache()
        try:
            monkeypatch.setattr(gpu_device.GPUDevice, "get", classmethod(lambda cls: first))
            module = ShaderLoader.load("edit_pipeline")
            assert ShaderLoader.load("edit_pipeline") is module
            assert first.wgpu_device.compiled == 1

            monkeypatch.setattr(gpu_device.GPUDevice, "get", classmethod(lambda cls: second))
            assert ShaderLoader.load("edit_pipeline") is not module
            assert second.wgpu_device.compiled == 1
        finally:
            ShaderLoader.clear_cache()

    def test_load_requires_wgpu(self, monkeypatch):
        from photoedit.utils import gpu_device
        from photoedit.utils.gpu_shaders import ShaderLoader

        class NoGPU:
            is_wgpu = False
            wgpu_device = None

        monkeypatch.setattr(gpu_device.GPUDevice, "get", classmethod(lambda cls: NoGPU()))
        with pytest.raises(RuntimeError):
            ShaderLoader.load("edit_pipeline")
