"""Tests for lookup-table builders."""

import numpy as np
import pytest

from photoedit.model.edit_state import ChannelCurves, ColorHSL, HUE_BUCKETS
from photoedit.processing import luts
from photoedit.processing.stages import apply_lut


IDENTITY = np.arange(256, dtype=np.uint8)


class TestCurveLUT:
    """Tone curve tables."""

    def test_identity(self, identity_curve):
        assert np.array_equal(luts.build_curve_lut(identity_curve), IDENTITY)

    def test_linear_interpolation(self):
        lut = luts.build_curve_lut([[0, 0], [128, 64], [255, 255]], interpolation="linear")
        assert lut[128] == 64
        assert lut[64] == 32
        assert lut[0] == 0 and lut[255] == 255

    def test_endpoints_held(self):
        lut = luts.build_curve_lut([[50, 20], [200, 220]], interpolation="linear")
        assert lut[0] == 20
        assert lut[50] == 20
        assert lut[255] == 220

    def test_unsorted_points(self, sample_curve):
        shuffled = [sample_curve[i] for i in (3, 0, 4, 1, 2)]
        assert np.array_equal(luts.build_curve_lut(shuffled), luts.build_curve_lut(sample_curve))

    def test_single_point_is_identity(self):
        assert np.array_equal(luts.build_curve_lut([[30, 200]]), IDENTITY)

    def test_catmull_rom_passes_through_points(self, sample_curve):
        lut = luts.build_curve_lut(sample_curve, interpolation="catmull_rom")
        for x, y in sample_curve:
            assert lut[x] == y

    def test_monotonic_s_curve(self, sample_curve):
        lut = luts.build_curve_lut(sample_curve, interpolation="linear")
        assert np.all(np.diff(lut.astype(int)) >= 0)

    def test_table_is_read_only(self, sample_curve):
        lut = luts.build_curve_lut(sample_curve)
        with pytest.raises(ValueError):
            lut[0] = 1


class TestCurvesLUTs:
    """Combined master + channel curve tables."""

    def test_identity_curves(self):
        tables = luts.build_curves_luts(ChannelCurves())
        assert tables.shape == (3, 256)
        for row in tables:
            assert np.array_equal(row, IDENTITY)

    def test_strength_blend(self):
        curves = ChannelCurves(red=[[0, 255], [255, 0]])
        tables = luts.build_curves_luts(curves, strength=0.6, interpolation="linear")
        # 0.4 * 0 + 0.6 * 255
        assert tables[0][0] == 153
        assert tables[0][255] == 102
        assert np.array_equal(tables[1], IDENTITY)

    def test_full_strength(self):
        curves = ChannelCurves(rgb=[[0, 255], [255, 0]])
        tables = luts.build_curves_luts(curves, strength=1.0, interpolation="linear")
        assert tables[2][0] == 255
        assert tables[2][255] == 0


class TestLightLUTs:
    """Exposure, brightness, contrast, clarity and tonal tables."""

    def test_exposure(self):
        lut = luts.build_exposure_lut(1.0)
        assert lut[100] == 200
        assert lut[200] == 255
        assert np.array_equal(luts.build_exposure_lut(0.0), IDENTITY)

    def test_negative_exposure(self):
        assert luts.build_exposure_lut(-1.0)[200] == 100

    def test_brightness(self):
        assert luts.build_brightness_lut(0.5)[100] == 150
        assert luts.build_brightness_lut(-1.0)[200] == 0

    def test_contrast(self):
        lut = luts.build_contrast_lut(1.0)
        assert lut[128] == 128
        assert lut[64] == 0
        assert lut[192] == 255

    def test_clarity(self):
        lut = luts.build_clarity_lut(1.0, scale=0.5)
        assert lut[128] == 128
        assert lut[0] == 0
        assert lut[255] == 255
        assert lut[64] < 64

    def test_tonal_zero_is_identity(self):
        assert np.array_equal(luts.build_tonal_lut(0.0, 0.0, 0.0, 0.0), IDENTITY)

    def test_tonal_shadows_lift_only_low_values(self):
        lut = luts.build_tonal_lut(0.0, 1.0, 0.0, 0.0)
        assert lut[64] > 64
        assert np.array_equal(lut[128:], IDENTITY[128:])

    def test_tonal_whites_only_top_quarter(self):
        lut = luts.build_tonal_lut(0.0, 0.0, 1.0, 0.0)
        assert np.array_equal(lut[:192], IDENTITY[:192])
        assert lut[230] > 230

    def test_temperature(self):
        tables = luts.build_temperature_luts(1.0, scale=30.0)
        assert tables[0][100] == 130
        assert tables[1][100] == 100
        assert tables[2][100] == 70
        assert tables[0][250] == 255
        assert tables[2][10] == 0


class TestHueWeights:
    """Triangular hue weights for the HSL engine."""

    def test_weights(self):
        assert luts.hue_weight(0.0, 0.0, 15.0, 45.0) == 1.0
        assert luts.hue_weight(15.0, 0.0, 15.0, 45.0) == 1.0
        assert luts.hue_weight(30.0, 0.0, 15.0, 45.0) == pytest.approx(0.5)
        assert luts.hue_weight(45.0, 0.0, 15.0, 45.0) == 0.0

    def test_circular_distance(self):
        assert luts.hue_weight(350.0, 0.0, 15.0, 45.0) == 1.0
        assert luts.hue_weight(330.0, 0.0, 15.0, 45.0) == pytest.approx(0.5)

    def test_scalar_returns_float(self):
        assert isinstance(luts.hue_weight(10.0, 0.0), float)

    def test_array_input(self):
        weights = luts.hue_weight(np.array([0.0, 30.0, 90.0]), 0.0, 15.0, 45.0)
        assert np.allclose(weights, [1.0, 0.5, 0.0])


class TestHSLTables:
    """Per-degree HSL delta tables."""

    def test_default_is_zero(self):
        tables = luts.build_hsl_luts(ColorHSL())
        assert tables.shape == (3, 360)
        assert not tables.any()

    def test_single_bucket_is_local(self):
        tables = luts.build_hsl_luts(ColorHSL.from_dict({"red": {"saturation": 100}}))
        assert tables[1][0] > 0
        assert tables[1][180] == 0
        assert not tables[0].any()

    def test_uniform_adjustment(self):
        hsl = ColorHSL.from_dict({name: {"saturation": 50} for name in HUE_BUCKETS})
        tables = luts.build_hsl_luts(hsl)
        assert np.allclose(tables[1], 50.0)


class TestComposition:
    """Composed tables match sequential application."""

    def test_compose_matches_sequential(self, gradient_image):
        exposure = luts.build_exposure_lut(0.4)
        temperature = luts.build_temperature_luts(-0.5)
        sequential = apply_lut(apply_lut(gradient_image, exposure), temperature)
        composed = apply_lut(gradient_image, luts.compose_luts(exposure, temperature))
        assert np.array_equal(sequential, composed)

    def test_compose_with_identity(self):
        contrast = luts.build_contrast_lut(0.3)
        composed = luts.compose_luts(IDENTITY, contrast)
        for row in composed:
            assert np.array_equal(row, contrast)

    def test_clear_caches(self):
        luts.build_exposure_lut(0.3)
        luts.clear_lut_caches()
        assert luts.build_exposure_lut.cache_info().currsize == 0
