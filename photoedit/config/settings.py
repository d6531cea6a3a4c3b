# Application settings
import json
import os

# --- Configuration File ---
CONFIG_DIR = os.path.dirname(__file__)
USER_SETTINGS_PATH = os.environ.get(
    "PHOTOEDIT_SETTINGS", os.path.join(CONFIG_DIR, "user_settings.json")
)

# Errors while reading are collected here and logged once the logger exists
# (utils.logger imports this module, so it cannot be used at import time).
_load_errors = []


# --- Helper Function to Load Settings ---
def load_user_settings(path):
    """Loads settings from a JSON file, returning an empty dict if not found or invalid."""
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        _load_errors.append(f"Could not load user settings from {path}: {e}")
        return {}
    if not isinstance(data, dict):
        _load_errors.append(f"User settings in {path} must be a JSON object")
        return {}
    return data


# --- Load User Settings ---
user_settings = load_user_settings(USER_SETTINGS_PATH)

# --- Pipeline Constants (Defaults) ---
# Shared by every backend so CPU and GPU renders agree.
_PIPELINE_DEFAULTS_BASE = {
    # Curves are blended with the original at this strength
    "curves_strength": 0.6,
    "curve_interpolation": "linear",  # "linear" or "catmull_rom"

    # Light / basic color
    "temperature_scale": 30.0,
    "vibrance_scale": 1.5,
    "clarity_scale": 0.5,
    "dehaze_contrast_scale": 0.5,
    "dehaze_saturation_scale": 0.3,

    # Per-hue (HSL) engine
    "hsl_saturation_strength": 0.4,
    "hsl_luminance_strength": 0.25,
    "hsl_min_saturation": 0.05,
    "hsl_full_weight_degrees": 15.0,
    "hsl_zero_weight_degrees": 45.0,

    # Toning
    "shadow_tint_strength": 0.3,
    "grading_luminance_scale": 0.5,
    "calibration_saturation_scale": 0.5,
    "calibration_min_delta": 0.01,

    # Effects
    "grain_intensity": 50.0,
    "blur_radius_scale": 20.0,

    # Legacy hue slider maps -1..1 to degrees
    "legacy_hue_degrees": 180.0,
}

# --- Render Settings (Base) ---
_RENDER_DEFAULTS_BASE = {
    "max_workers": 2,
    "cache_size": 32,
    "prefer_gpu": True,
    # Mean absolute channel delta (0..255 scale) accepted between backends
    "cross_backend_tolerance": 2.0,
    # GPU backends tried in order; wgpu runs the whole per-pixel pipeline in one shader
    "gpu_backends": ["wgpu", "cupy"],
}

# --- Export Defaults (Base) ---
_EXPORT_DEFAULTS_BASE = {
    "default_format": "jpeg",
    "default_jpeg_quality": 95,
    "default_png_compression": 6,
    "tiff_compression": "tiff_lzw",
    "rejected_source_extensions": [".dng", ".raw", ".cr2", ".nef", ".arw"],
}

# --- Logging (Base) ---
_LOGGING_LEVEL_BASE = "INFO"  # Options: DEBUG, INFO, WARNING, ERROR

# --- Apply User Overrides ---
# User settings take precedence. Nested dicts are not merged.
PIPELINE_DEFAULTS = _PIPELINE_DEFAULTS_BASE.copy()
PIPELINE_DEFAULTS.update(user_settings.get("PIPELINE_DEFAULTS", {}))

RENDER_DEFAULTS = _RENDER_DEFAULTS_BASE.copy()
RENDER_DEFAULTS.update(user_settings.get("RENDER_DEFAULTS", {}))

EXPORT_DEFAULTS = _EXPORT_DEFAULTS_BASE.copy()
EXPORT_DEFAULTS.update(user_settings.get("EXPORT_DEFAULTS", {}))

LOGGING_LEVEL = user_settings.get("LOGGING_LEVEL", _LOGGING_LEVEL_BASE)

# Bumped by every reload; caches of rendered output include it in their keys
SETTINGS_GENERATION = 0

_SECTIONS = {
    "PIPELINE_DEFAULTS": (PIPELINE_DEFAULTS, _PIPELINE_DEFAULTS_BASE),
    "RENDER_DEFAULTS": (RENDER_DEFAULTS, _RENDER_DEFAULTS_BASE),
    "EXPORT_DEFAULTS": (EXPORT_DEFAULTS, _EXPORT_DEFAULTS_BASE),
}


# --- Functions to Save and Reload Settings ---

def reload_settings(path=None):
    """Reload settings from disk and update in-memory dicts in place.

    Memoized lookup tables are dropped, and ``SETTINGS_GENERATION`` is bumped
    so render caches keyed on it miss.
    """
    global user_settings, LOGGING_LEVEL, SETTINGS_GENERATION

    from ..utils.logger import get_logger, set_log_level

    logger = get_logger(__name__)
    source = path or USER_SETTINGS_PATH
    logger.info("Reloading user settings from %s", source)
    user_settings = load_user_settings(source)
    flush_load_errors()

    for section, (current, base) in _SECTIONS.items():
        merged = base.copy()
        merged.update(user_settings.get(section, {}))
        current.clear()
        current.update(merged)

    LOGGING_LEVEL = user_settings.get("LOGGING_LEVEL", _LOGGING_LEVEL_BASE)
    set_log_level(LOGGING_LEVEL)
    SETTINGS_GENERATION += 1

    from ..processing.luts import clear_lut_caches
    clear_lut_caches()
    logger.info("Settings reloaded. Logging level=%s", LOGGING_LEVEL)


def flush_load_errors():
    """Log any errors collected while reading the settings file."""
    if not _load_errors:
        return
    from ..utils.logger import get_logger

    logger = get_logger(__name__)
    for message in _load_errors:
        logger.error(message)
    _load_errors.clear()


def save_user_settings(settings_dict, path=None):
    """Saves the provided sections to the user settings JSON file."""
    from ..utils.logger import get_logger

    logger = get_logger(__name__)
    target = path or USER_SETTINGS_PATH
    save_data = {}
    # Only save sections that were actually provided
    for section in _SECTIONS:
        if section in settings_dict:
            save_data[section] = dict(settings_dict[section])
    if "LOGGING_LEVEL" in settings_dict:
        save_data["LOGGING_LEVEL"] = settings_dict["LOGGING_LEVEL"]

    try:
        with open(target, 'w') as f:
            json.dump(save_data, f, indent=4)
        logger.info("User settings saved to %s", target)
        return True
    except IOError:
        logger.exception("Could not save user settings to %s", target)
        return False
