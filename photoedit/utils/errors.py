# Error types shared by the pipeline, I/O and render services
"""
Exception hierarchy and small helpers for reporting failures.

Every error raised by photoedit derives from ``AppError`` and carries an
``ErrorCategory`` plus a message suitable for showing to a user. Callers that
only want to tell the user what went wrong pass the exception to
``format_user_error``.
"""

from typing import Optional, Union
from enum import Enum

from .logger import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """How a failure should be treated by the caller."""
    RECOVERABLE = "recoverable"      # a fallback exists
    USER_INPUT = "user_input"        # bad argument or unsupported file
    FILE_IO = "file_io"
    PROCESSING = "processing"
    GPU = "gpu"                      # CPU fallback usually possible
    CONFIGURATION = "configuration"
    FATAL = "fatal"


class AppError(Exception):
    """
    Base class of all photoedit errors.

    Args:
        message: Technical description, used for logs and ``str()``.
        category: Overrides the class ``default_category``.
        original_error: Underlying exception, if this wraps one.
        user_message: Short text for display; defaults to ``message``.
    """

    default_category = ErrorCategory.RECOVERABLE

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        original_error: Optional[Exception] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.category = category or self.default_category
        self.original_error = original_error
        self.user_message = user_message or message

    @property
    def message(self) -> str:
        return self.args[0]

    def __str__(self) -> str:
        if self.original_error is None:
            return self.message
        return f"{self.message} [{type(self.original_error).__name__}]"


class FileIOError(AppError):
    """Reading or writing an image, preset or edits file failed."""

    default_category = ErrorCategory.FILE_IO

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.file_path = file_path


class ProcessingError(AppError):
    """A pipeline step failed; ``step`` names it (validate, encode, ...)."""

    default_category = ErrorCategory.PROCESSING

    def __init__(self, message: str, step: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.step = step


class GPUError(AppError):
    default_category = ErrorCategory.GPU

    def __init__(self, message: str, fallback_available: bool = True, **kwargs):
        super().__init__(message, **kwargs)
        self.fallback_available = fallback_available


class ConfigurationError(AppError):
    """Bad settings, presets or edit parameters."""

    default_category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, setting_name: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.setting_name = setting_name


class InvalidBufferShape(ProcessingError):
    """Pixel buffer length does not match width * height * channels.

    Fatal to the call: the pipeline never guesses at a shape.
    """

    default_category = ErrorCategory.FATAL

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("step", "validate")
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual
        self.width = width
        self.height = height


class UnsupportedSourceFormat(FileIOError):
    """Source image is in a format that must be decoded elsewhere (RAW/DNG)."""

    default_category = ErrorCategory.USER_INPUT

    def __init__(self, message: str, extension: Optional[str] = None, **kwargs):
        kwargs.setdefault(
            "user_message",
            "Export from DNG/RAW is not supported here. Export from the editor instead.",
        )
        super().__init__(message, **kwargs)
        self.extension = extension


class UnsupportedExportFormat(AppError):
    """Requested output encoding is not one of jpeg, png or tiff."""

    default_category = ErrorCategory.USER_INPUT

    def __init__(self, message: str, export_format: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.export_format = export_format


class _BestEffort:
    """Context object returned by safe_operation."""

    def __init__(self, operation_name: str, category: ErrorCategory):
        self.operation_name = operation_name
        self.category = category
        self.error: Optional[Exception] = None
        self.success = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.success = True
            return False
        if not issubclass(exc_type, Exception):
            # KeyboardInterrupt and friends still propagate
            return False
        self.error = exc_val
        logger.warning("%s failure while %s: %s", self.category.value, self.operation_name, exc_val)
        return True


def safe_operation(operation_name: str, category: ErrorCategory = ErrorCategory.RECOVERABLE):
    """
    Run a block whose failure must not abort the caller.

    Exceptions are logged and suppressed; afterwards ``ctx.success`` and
    ``ctx.error`` tell what happened::

        with safe_operation("releasing GPU textures", ErrorCategory.GPU) as ctx:
            engine.cleanup()
    """
    return _BestEffort(operation_name, category)


def log_and_continue(
    message: str,
    category: ErrorCategory = ErrorCategory.RECOVERABLE,
    level: str = "warning",
) -> None:
    """Log a non-critical problem under its category and return."""
    emit = getattr(logger, level, None)
    if not callable(emit):
        emit = logger.warning
    emit("[%s] %s", category.value, message)


_KNOWN_OS_ERRORS = (
    ("no such file or directory", "File not found"),
    ("permission denied", "Permission denied"),
    ("no space left on device", "Disk is full"),
)


def format_user_error(error: Union[Exception, str], context: Optional[str] = None) -> str:
    """
    Turn an exception into one line of text for the user.

    ``AppError`` instances supply their own ``user_message``. Common OS
    failures get a fixed wording with ``context`` appended; anything else is
    reported verbatim.
    """
    if isinstance(error, AppError):
        return error.user_message

    text = str(error)
    lowered = text.lower()
    suffix = f" while {context}" if context else ""

    for needle, wording in _KNOWN_OS_ERRORS:
        if needle in lowered:
            return wording + suffix
    if isinstance(error, MemoryError) or "out of memory" in lowered:
        return "Not enough memory to render this image. Try a smaller one."

    if context:
        return f"Error {context}: {text}"
    return f"An error occurred: {text}"
