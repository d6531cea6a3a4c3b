# This file makes the 'utils' directory a Python package.

from .errors import (
    AppError,
    FileIOError,
    ProcessingError,
    GPUError,
    ConfigurationError,
    InvalidBufferShape,
    UnsupportedSourceFormat,
    UnsupportedExportFormat,
    ErrorCategory,
    safe_operation,
    log_and_continue,
    format_user_error,
)
from .logger import get_logger, set_log_level

__all__ = [
    # Errors
    'AppError',
    'FileIOError',
    'ProcessingError',
    'GPUError',
    'ConfigurationError',
    'InvalidBufferShape',
    'UnsupportedSourceFormat',
    'UnsupportedExportFormat',
    'ErrorCategory',
    'safe_operation',
    'log_and_continue',
    'format_user_error',
    # Logging
    'get_logger',
    'set_log_level',
]
