# Processing package initialization
from .stages import Stage, STAGE_ORDER, STAGE_GROUPS
from .pipeline import PipelineResult, apply, apply_array, apply_with_report, active_stages
from .processing_strategy import (
    ProcessingStrategy,
    ProcessingContext,
    ServerAdapter,
    CanvasAdapter,
    GPUAdapter,
    compare_backends,
    backends_agree,
)
from .edit_presets import EditPresetManager, EditPreset
from .xmp_import import parse_xmp, load_xmp

__all__ = [
    'Stage',
    'STAGE_ORDER',
    'STAGE_GROUPS',
    'PipelineResult',
    'apply',
    'apply_array',
    'apply_with_report',
    'active_stages',
    'ProcessingStrategy',
    'ProcessingContext',
    'ServerAdapter',
    'CanvasAdapter',
    'GPUAdapter',
    'compare_backends',
    'backends_agree',
    'EditPresetManager',
    'EditPreset',
    'parse_xmp',
    'load_xmp',
]
