# Image import functionality using Pillow
import os

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import settings
from ..utils.errors import FileIOError, UnsupportedSourceFormat
from ..utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp")


def raw_extensions():
    """Lower-case source extensions that must be decoded elsewhere."""
    return tuple(
        ext.lower() for ext in settings.EXPORT_DEFAULTS.get("rejected_source_extensions", [])
    )


def is_raw_file(file_path):
    """True if the path has a RAW/DNG extension (case-insensitive)."""
    return os.path.splitext(str(file_path))[1].lower() in raw_extensions()


def check_source_path(file_path):
    """Reject RAW/DNG sources before anything is read from disk.

    Raises:
        UnsupportedSourceFormat: for RAW/DNG extensions.
    """
    ext = os.path.splitext(str(file_path))[1].lower()
    if ext in raw_extensions():
        raise UnsupportedSourceFormat(
            f"Cannot export from RAW source '{file_path}'", extension=ext, file_path=str(file_path)
        )


def image_from_pil(img):
    """Convert a Pillow image to an (H, W, 3) uint8 RGB array.

    EXIF orientation is applied. Alpha is dropped, not composited.
    """
    oriented = ImageOps.exif_transpose(img)
    try:
        if oriented.mode != "RGB":
            logger.debug("Converting image from mode '%s' to 'RGB'", oriented.mode)
            rgb = oriented.convert("RGB")
        else:
            rgb = oriented
        image_np = np.array(rgb, dtype=np.uint8)
        if rgb is not oriented:
            rgb.close()
    finally:
        if oriented is not img:
            oriented.close()
    return image_np


def load_image(file_path):
    """Loads an image from the specified file path using Pillow.

    Args:
        file_path (str): The path to the image file.

    Returns:
        numpy.ndarray: The image in RGB format (uint8), correctly oriented.

    Raises:
        UnsupportedSourceFormat: for RAW/DNG files.
        FileIOError: if the file is missing, unreadable or empty.
    """
    if not file_path:
        raise FileIOError("Invalid file path provided", file_path=file_path)
    file_path = str(file_path)
    check_source_path(file_path)

    if not os.path.isfile(file_path):
        raise FileIOError(
            f"File not found: '{file_path}'",
            file_path=file_path,
            user_message=f"File not found: {os.path.basename(file_path)}",
        )

    try:
        with Image.open(file_path) as img:
            image_np = image_from_pil(img)
    except UnidentifiedImageError as e:
        raise FileIOError(
            f"Pillow could not identify image file format or file is corrupted: '{file_path}'",
            file_path=file_path,
            original_error=e,
            user_message="Unrecognized or corrupted image file.",
        ) from e
    except OSError as e:
        raise FileIOError(
            f"Error reading image '{file_path}': {e}", file_path=file_path, original_error=e
        ) from e

    if image_np.size == 0:
        raise FileIOError(f"Loaded image is empty: '{file_path}'", file_path=file_path)

    logger.info("Loaded image '%s' (%dx%d)", file_path, image_np.shape[1], image_np.shape[0])
    return image_np
