# Export functionality using Pillow
import io
import os
from typing import Optional

import numpy as np
from PIL import Image

from ..config import settings
from ..utils.errors import FileIOError, ProcessingError, UnsupportedExportFormat
from ..utils.logger import get_logger

logger = get_logger(__name__)

# format -> (Pillow format name, MIME type, file extension)
EXPORT_FORMATS = {
    "jpeg": ("JPEG", "image/jpeg", "jpg"),
    "png": ("PNG", "image/png", "png"),
    "tiff": ("TIFF", "image/tiff", "tiff"),
}

_EXTENSION_FORMATS = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".tif": "tiff",
    ".tiff": "tiff",
}


def normalize_format(export_format: Optional[str]) -> str:
    """Lower-case format name, 'jpg'/'tif' accepted as aliases.

    Raises:
        UnsupportedExportFormat: for anything other than jpeg, png or tiff.
    """
    if export_format is None:
        export_format = settings.EXPORT_DEFAULTS.get("default_format", "jpeg")
    name = str(export_format).strip().lower()
    name = {"jpg": "jpeg", "tif": "tiff"}.get(name, name)
    if name not in EXPORT_FORMATS:
        raise UnsupportedExportFormat(
            f"Unsupported export format: {export_format!r}",
            export_format=str(export_format),
            user_message=f"Unsupported export format '{export_format}'. Use jpeg, png or tiff.",
        )
    return name


def format_for_path(file_path: str) -> str:
    """Export format implied by a file extension."""
    ext = os.path.splitext(file_path)[1].lower()
    if ext not in _EXTENSION_FORMATS:
        raise UnsupportedExportFormat(
            f"Cannot infer export format from '{file_path}'", export_format=ext or None
        )
    return _EXTENSION_FORMATS[ext]


def _save_kwargs(export_format: str, quality: int, png_compression: Optional[int]) -> dict:
    if export_format == "jpeg":
        # Clamp quality 1-100 for Pillow JPEG
        return {"quality": max(1, min(100, int(quality))), "optimize": True}
    if export_format == "png":
        if png_compression is None:
            png_compression = settings.EXPORT_DEFAULTS.get("default_png_compression", 6)
        return {"compress_level": max(0, min(9, int(png_compression)))}
    return {"compression": settings.EXPORT_DEFAULTS.get("tiff_compression", "tiff_lzw")}


def encode_image(
    image_rgb: np.ndarray,
    export_format: Optional[str] = "jpeg",
    quality: int = 95,
    png_compression: Optional[int] = None,
) -> bytes:
    """Encode an RGB image to jpeg, png or tiff bytes.

    Args:
        image_rgb: uint8 RGB image (H, W, 3).
        export_format: "jpeg", "png" or "tiff".
        quality: JPEG quality, clamped to 1..100.
        png_compression: PNG compress level 0..9; settings default when None.

    Raises:
        UnsupportedExportFormat: for unknown formats.
        ProcessingError: (step "encode") if the image cannot be encoded.
    """
    export_format = normalize_format(export_format)
    if image_rgb is None or image_rgb.size == 0:
        raise ProcessingError("Cannot encode an empty image", step="encode")
    if image_rgb.ndim != 3 or image_rgb.shape[2] != 3:
        raise ProcessingError(
            f"Image must be RGB (H, W, 3) to encode, got shape {image_rgb.shape}", step="encode"
        )
    if image_rgb.dtype != np.uint8:
        logger.warning("Image data type is not uint8. Clipping and converting.")
        image_rgb = np.clip(image_rgb, 0, 255).astype(np.uint8)

    pil_format = EXPORT_FORMATS[export_format][0]
    buffer = io.BytesIO()
    try:
        with Image.fromarray(np.ascontiguousarray(image_rgb)) as img:
            img.save(buffer, format=pil_format, **_save_kwargs(export_format, quality, png_compression))
    except (OSError, ValueError) as e:
        logger.error("Failed to encode %s image: %s", export_format, e)
        raise ProcessingError(
            f"Failed to encode {export_format} image", step="encode", original_error=e
        ) from e
    return buffer.getvalue()


def save_image(
    image_rgb: np.ndarray,
    file_path: str,
    export_format: Optional[str] = None,
    quality: int = 95,
    png_compression: Optional[int] = None,
) -> str:
    """Encode and write an RGB image; the format follows the extension unless given.

    Returns:
        The path written.
    """
    if export_format is None:
        export_format = format_for_path(file_path)
    data = encode_image(image_rgb, export_format, quality, png_compression)

    output_dir = os.path.dirname(file_path)
    try:
        if output_dir and not os.path.exists(output_dir):
            os.makedirs(output_dir)
            logger.info("Created output directory: %s", output_dir)
        with open(file_path, "wb") as f:
            f.write(data)
    except OSError as e:
        logger.error("Could not write image to '%s': %s", file_path, e)
        raise FileIOError(
            f"Could not write image to '{file_path}'", file_path=file_path, original_error=e
        ) from e
    logger.info("Successfully saved image to: '%s'", file_path)
    return file_path
