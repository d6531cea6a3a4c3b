"""
Export boundary: source checks, the reference pipeline, encoding and the
response headers a download endpoint sends back.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from ..config import settings
from ..io import image_loader, image_saver
from ..model.edit_state import EditState
from ..processing import pipeline
from ..processing.processing_strategy import ServerAdapter
from ..utils.logger import get_logger

logger = get_logger(__name__)

EditsLike = Union[EditState, Mapping[str, Any], None]


def _default_quality() -> int:
    return int(settings.EXPORT_DEFAULTS.get("default_jpeg_quality", 95))


@dataclass(frozen=True)
class ExportRequest:
    source_path: str
    edits: EditsLike = None
    format: str = "jpeg"
    quality: int = field(default_factory=_default_quality)


@dataclass(frozen=True)
class ExportResult:
    content: bytes
    content_type: str
    filename: str
    headers: Dict[str, str]


def export_filename(export_format: str, timestamp_ms: Optional[int] = None) -> str:
    """``export-<ms>.<ext>``; jpeg exports use the ``jpg`` extension."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    ext = image_saver.EXPORT_FORMATS[image_saver.normalize_format(export_format)][2]
    return f"export-{timestamp_ms}.{ext}"


def _build_result(content: bytes, export_format: str) -> ExportResult:
    content_type = image_saver.EXPORT_FORMATS[export_format][1]
    filename = export_filename(export_format)
    headers = {
        "Content-Type": content_type,
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Content-Length": str(len(content)),
    }
    return ExportResult(content, content_type, filename, headers)


def _render_and_encode(image: np.ndarray, edits: EditsLike, export_format: str,
                       quality: int, adapter: Optional[ServerAdapter]) -> ExportResult:
    adapter = adapter or ServerAdapter()
    edit = pipeline.coerce_edit(edits)
    start = time.perf_counter()
    rendered = adapter.process(image, edit)
    content = image_saver.encode_image(rendered, export_format, quality)
    logger.info(
        "Exported %dx%d %s (%d bytes) in %.3fs",
        image.shape[1], image.shape[0], export_format, len(content), time.perf_counter() - start,
    )
    return _build_result(content, export_format)


def export_image(request: ExportRequest, adapter: Optional[ServerAdapter] = None) -> ExportResult:
    """
    Render a source file with its edits and encode it for download.

    RAW/DNG sources and unknown formats are rejected before the file is read.

    Raises:
        UnsupportedSourceFormat: RAW/DNG source extension.
        UnsupportedExportFormat: format other than jpeg, png or tiff.
        FileIOError: source cannot be read.
        ProcessingError: encoding failed.
    """
    image_loader.check_source_path(request.source_path)
    export_format = image_saver.normalize_format(request.format)
    image = image_loader.load_image(request.source_path)
    return _render_and_encode(image, request.edits, export_format, request.quality, adapter)


def export_buffer(
    pixels,
    width: int,
    height: int,
    edits: EditsLike = None,
    format: str = "jpeg",
    quality: Optional[int] = None,
    adapter: Optional[ServerAdapter] = None,
) -> ExportResult:
    """Export an already-decoded packed RGB buffer (or (h, w, 3) array)."""
    export_format = image_saver.normalize_format(format)
    image = pipeline.validate_buffer(pixels, width, height)
    if quality is None:
        quality = _default_quality()
    return _render_and_encode(image, edits, export_format, quality, adapter)
