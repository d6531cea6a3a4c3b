# IO package initialization
from .image_loader import (
    load_image,
    image_from_pil,
    is_raw_file,
    check_source_path,
    raw_extensions,
    SUPPORTED_EXTENSIONS,
)
from .image_saver import (
    encode_image,
    save_image,
    normalize_format,
    format_for_path,
    EXPORT_FORMATS,
)

__all__ = [
    'load_image',
    'image_from_pil',
    'is_raw_file',
    'check_source_path',
    'raw_extensions',
    'SUPPORTED_EXTENSIONS',
    'encode_image',
    'save_image',
    'normalize_format',
    'format_for_path',
    'EXPORT_FORMATS',
]
