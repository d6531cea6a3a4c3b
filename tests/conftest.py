import pytest
import numpy as np

from photoedit.model.edit_state import EditState


@pytest.fixture
def sample_image_uint8():
    """Returns a simple 100x100 uint8 RGB image."""
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    img[:50, :50] = [255, 0, 0]    # Red quadrant
    img[:50, 50:] = [0, 255, 0]    # Green quadrant
    img[50:, :50] = [0, 0, 255]    # Blue quadrant
    img[50:, 50:] = [255, 255, 0]  # Yellow quadrant
    return img


@pytest.fixture
def gradient_image():
    """Returns a 32x48 image with varied hues and tones."""
    h, w = 32, 48
    ys, xs = np.mgrid[0:h, 0:w]
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[..., 0] = (xs * 255 // (w - 1)).astype(np.uint8)
    img[..., 1] = (ys * 255 // (h - 1)).astype(np.uint8)
    img[..., 2] = ((xs + ys) * 255 // (w + h - 2)).astype(np.uint8)
    return img


@pytest.fixture
def gray_buffer_4x4():
    """Returns a 4x4 packed RGB buffer of mid gray."""
    return bytes([128] * (4 * 4 * 3))


@pytest.fixture
def identity_curve():
    """Returns identity curve points."""
    return [[0, 0], [255, 255]]


@pytest.fixture
def sample_curve():
    """Returns a simple S-curve."""
    return [[0, 0], [64, 48], [128, 128], [192, 207], [255, 255]]


@pytest.fixture
def default_edit():
    return EditState()


@pytest.fixture
def full_edit(sample_curve):
    """An EditState that activates every pipeline stage."""
    return EditState.from_dict({
        "exposure": 0.2,
        "contrast": 0.15,
        "highlights": -0.3,
        "shadows": 0.4,
        "whites": 0.1,
        "blacks": -0.2,
        "temperature": 0.25,
        "vibrance": 0.3,
        "saturation": 0.1,
        "shadowTint": 0.2,
        "clarity": 0.3,
        "dehaze": 0.2,
        "vignette": 0.4,
        "grain": 0.2,
        "grainSize": 0.5,
        "grainRoughness": 0.5,
        "brightness": 0.05,
        "hue": 0.1,
        "blur": 0.05,
        "curves": {"rgb": sample_curve, "red": [[0, 10], [255, 245]]},
        "colorHSL": {
            "red": {"hue": 10, "saturation": 20, "luminance": -10},
            "blue": {"hue": -15, "saturation": -30, "luminance": 15},
        },
        "splitToning": {"shadowHue": 220, "shadowSaturation": 30,
                        "highlightHue": 40, "highlightSaturation": 25, "balance": 10},
        "colorGrading": {"shadowLum": -10, "midtoneLum": 5, "highlightLum": 10,
                         "midtoneHue": 30, "midtoneSat": 20, "globalHue": 200,
                         "globalSat": 10, "globalLum": 5, "blending": 80},
        "colorCalibration": {"redSaturation": 20, "greenSaturation": -10, "blueSaturation": 15},
        "filters": ["grayscale", "sepia", "invert"],
    })
