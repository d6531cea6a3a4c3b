"""Tests for the photoedit error hierarchy and reporting helpers."""

import pytest

from photoedit.utils.errors import (
    AppError,
    ConfigurationError,
    ErrorCategory,
    FileIOError,
    GPUError,
    InvalidBufferShape,
    ProcessingError,
    UnsupportedExportFormat,
    UnsupportedSourceFormat,
    format_user_error,
    log_and_continue,
    safe_operation,
)


class TestAppError:
    """Behaviour shared by every photoedit error."""

    def test_defaults(self):
        error = AppError("render failed")
        assert str(error) == "render failed"
        assert error.message == "render failed"
        assert error.category is ErrorCategory.RECOVERABLE
        assert error.user_message == "render failed"
        assert error.original_error is None

    def test_explicit_category_wins(self):
        assert AppError("x", category=ErrorCategory.FATAL).category is ErrorCategory.FATAL
        assert GPUError("x", category=ErrorCategory.FATAL).category is ErrorCategory.FATAL

    def test_wrapped_cause_is_named(self):
        """The wrapped exception type shows up in str() but not in the user message."""
        cause = OSError("disk gone")
        error = FileIOError("Could not write 'out.png'", original_error=cause)
        assert error.original_error is cause
        assert "OSError" in str(error)
        assert "OSError" not in error.user_message

    def test_separate_user_message(self):
        error = ProcessingError("cv2 returned None", user_message="Could not render the image.")
        assert error.user_message == "Could not render the image."
        assert str(error) == "cv2 returned None"

    def test_is_catchable_as_exception(self):
        with pytest.raises(AppError):
            raise ConfigurationError("bad preset")


class TestCategories:
    """Each subclass lands in its own category by default."""

    @pytest.mark.parametrize("error, category", [
        (FileIOError("missing"), ErrorCategory.FILE_IO),
        (ProcessingError("failed"), ErrorCategory.PROCESSING),
        (GPUError("lost device"), ErrorCategory.GPU),
        (ConfigurationError("bad value"), ErrorCategory.CONFIGURATION),
        (InvalidBufferShape("short"), ErrorCategory.FATAL),
        (UnsupportedSourceFormat("raw"), ErrorCategory.USER_INPUT),
        (UnsupportedExportFormat("gif"), ErrorCategory.USER_INPUT),
    ])
    def test_default_category(self, error, category):
        assert error.category is category
        assert isinstance(error, AppError)

    def test_every_category_is_named(self):
        names = {c.name for c in ErrorCategory}
        assert names == {
            "RECOVERABLE", "USER_INPUT", "FILE_IO", "PROCESSING", "GPU", "CONFIGURATION", "FATAL",
        }


class TestErrorDetails:
    """Extra attributes carried by the subclasses."""

    def test_file_path(self):
        assert FileIOError("missing", file_path="shots/a.jpg").file_path == "shots/a.jpg"

    def test_processing_step(self):
        assert ProcessingError("encode failed", step="encode").step == "encode"
        assert ProcessingError("failed").step is None

    def test_gpu_fallback_flag(self):
        assert GPUError("lost").fallback_available
        assert not GPUError("lost", fallback_available=False).fallback_available

    def test_setting_name(self):
        assert ConfigurationError("bad", setting_name="jpeg_quality").setting_name == "jpeg_quality"

    def test_invalid_buffer_shape(self):
        error = InvalidBufferShape("bad buffer", expected=48, actual=47, width=4, height=4)
        assert isinstance(error, ProcessingError)
        assert error.step == "validate"
        assert (error.expected, error.actual, error.width, error.height) == (48, 47, 4, 4)

    def test_unsupported_source_format(self):
        error = UnsupportedSourceFormat("raw source", extension=".dng", file_path="a.dng")
        assert isinstance(error, FileIOError)
        assert error.extension == ".dng"
        assert error.file_path == "a.dng"
        assert "DNG" in error.user_message

    def test_unsupported_export_format(self):
        error = UnsupportedExportFormat("bad format", export_format="gif")
        assert error.export_format == "gif"


class TestSafeOperation:
    """safe_operation logs and swallows ordinary exceptions."""

    def test_clean_exit(self):
        with safe_operation("releasing textures") as ctx:
            pass
        assert ctx.success
        assert ctx.error is None

    def test_error_is_recorded(self):
        with safe_operation("releasing textures", ErrorCategory.GPU) as ctx:
            raise GPUError("device lost")
        assert not ctx.success
        assert isinstance(ctx.error, GPUError)

    def test_keyboard_interrupt_propagates(self):
        with pytest.raises(KeyboardInterrupt):
            with safe_operation("releasing textures"):
                raise KeyboardInterrupt


class TestFormatUserError:
    """format_user_error produces one line of display text."""

    def test_app_error_uses_user_message(self):
        error = FileIOError("ENOENT on /x.png", user_message="File not found: x.png")
        assert format_user_error(error, context="ignored") == "File not found: x.png"

    def test_raw_source(self):
        assert "not supported" in format_user_error(UnsupportedSourceFormat("raw", extension=".nef"))

    def test_missing_file_with_context(self):
        error = FileNotFoundError("[Errno 2] No such file or directory: 'in.jpg'")
        assert format_user_error(error, context="loading image") == "File not found while loading image"

    def test_permission_denied(self):
        error = PermissionError("[Errno 13] Permission denied: 'out.png'")
        assert format_user_error(error) == "Permission denied"

    def test_disk_full(self):
        assert format_user_error(OSError("No space left on device")).startswith("Disk is full")

    def test_memory_error(self):
        assert "memory" in format_user_error(MemoryError()).lower()

    def test_other_errors_verbatim(self):
        error = RuntimeError("unexpected stage")
        assert format_user_error(error, context="rendering") == "Error rendering: unexpected stage"
        assert format_user_error("plain text") == "An error occurred: plain text"


class TestLogAndContinue:

    @pytest.mark.parametrize("category", list(ErrorCategory))
    def test_every_category(self, category):
        log_and_continue(f"notice for {category.value}", category)

    def test_unknown_level_logs_as_warning(self):
        log_and_continue("notice", level="shout")
