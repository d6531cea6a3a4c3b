# Command-line entry point
import argparse
import json
import sys
import time
from typing import Iterable, Optional

from .config import settings
from .io import image_loader, image_saver
from .model.edit_state import EditState, StageGroup
from .processing.edit_presets import EditPresetManager
from .processing.processing_strategy import ProcessingContext
from .processing.xmp_import import load_xmp
from .utils.errors import AppError, ConfigurationError, FileIOError, format_user_error
from .utils.logger import LOG_LEVEL_MAP, get_logger, set_log_level

logger = get_logger(__name__)


def parse_arguments(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="photoedit",
        description="Render a photo with non-destructive edits and write the export.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("input", help="Source image (jpeg, png, tiff, ...).")
    parser.add_argument("output", help="Destination file.")
    parser.add_argument("--edits", help="JSON file with edit values (camelCase or snake_case keys).")
    parser.add_argument("--preset", help="ID of a saved edit preset applied before --edits.")
    parser.add_argument("--presets-file", help="Edit presets JSON file (default: user data dir).")
    parser.add_argument("--xmp", help="Lightroom XMP sidecar applied after --preset.")
    parser.add_argument(
        "--format",
        choices=sorted(image_saver.EXPORT_FORMATS),
        help="Output encoding; inferred from the output extension when omitted.",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=settings.EXPORT_DEFAULTS.get("default_jpeg_quality", 95),
        help="JPEG quality (1-100).",
    )
    parser.add_argument(
        "--bypass",
        nargs="+",
        default=[],
        choices=[group.value for group in StageGroup],
        help="Stage groups to skip.",
    )
    parser.add_argument("--cpu", action="store_true", help="Disable the GPU backend.")
    parser.add_argument("--seed", type=int, help="Seed for deterministic film grain.")
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVEL_MAP),
        type=str.upper,
        help="Override the configured logging level.",
    )
    return parser.parse_args(argv)


def read_edits_file(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise FileIOError(f"Could not read edits file '{path}'", file_path=path, original_error=e) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Edits file '{path}' is not valid JSON: {e}", setting_name="edits", original_error=e
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Edits file '{path}' must contain a JSON object", setting_name="edits")
    return data


def build_edit_state(args: argparse.Namespace) -> EditState:
    """Preset first, then the XMP sidecar, then the JSON edits on top."""
    edit = EditState()
    if args.preset:
        manager = EditPresetManager(args.presets_file)
        preset_edit = manager.get_edit_state(args.preset)
        if preset_edit is None:
            raise ConfigurationError(f"Unknown edit preset '{args.preset}'", setting_name="preset")
        edit = preset_edit
    if args.xmp:
        overlay = load_xmp(args.xmp).to_dict()
        edit = EditState.from_dict({**edit.to_dict(), **_changed_keys(overlay)})
    if args.edits:
        edit = EditState.from_dict({**edit.to_dict(), **read_edits_file(args.edits)})
    return edit


def _changed_keys(data: dict) -> dict:
    defaults = EditState().to_dict()
    return {key: value for key, value in data.items() if defaults.get(key) != value}


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_arguments(argv)
    if args.log_level:
        set_log_level(args.log_level)
    settings.flush_load_errors()

    try:
        image = image_loader.load_image(args.input)
        edit = build_edit_state(args)

        context = ProcessingContext(prefer_gpu=False if args.cpu else None)
        start = time.perf_counter()
        result, backend = context.process(image, edit, args.bypass, args.seed)
        elapsed = time.perf_counter() - start

        export_format = args.format or image_saver.format_for_path(args.output)
        image_saver.save_image(result, args.output, export_format, args.quality)
    except AppError as e:
        logger.debug("Export failed: %s", e)
        print(format_user_error(e), file=sys.stderr)
        return 1

    print(f"Rendered {args.input} -> {args.output} ({backend}, {elapsed:.2f}s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
