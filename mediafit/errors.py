"""
Exception types raised by mediafit.

Parsing errors are recoverable by the caller (report and abort the single
request). Process-level errors carry enough context (return code, stderr
tail, offending effect) for the caller to phrase a message.
"""

from typing import Optional


class MediaFitError(Exception):
    """Base class for all mediafit errors."""


class MediaNotFoundError(MediaFitError, FileNotFoundError):
    """Input media does not exist or is empty."""

    def __init__(self, path: str):
        self.path = str(path)
        super().__init__(f"Media file not found: {self.path}")


class ProbeError(MediaFitError):
    """ffprobe could not read the input."""

    def __init__(self, path: str, message: str):
        self.path = str(path)
        self.message = message
        super().__init__(f"Failed to probe {self.path}: {message}")


class InvalidFilterSyntax(MediaFitError):
    """Filter text is not wrapped in the expected delimiters."""

    def __init__(self, text: str, message: str = "Expected format: {filter1=value1,filter2=value2}"):
        self.text = text
        self.message = message
        super().__init__(f"Invalid filter format '{text}'. {message}")


class UnknownEffect(MediaFitError):
    """Effect name is not in the registry after alias resolution."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown effect: {name}")


class TypeMismatch(MediaFitError):
    """A video or complex effect was requested for an audio-only asset."""

    def __init__(self, effect_name: str):
        self.effect_name = effect_name
        super().__init__(f"Effect '{effect_name}' requires a video stream but the input is audio-only")


class ProcessFailure(MediaFitError):
    """FFmpeg exited unsuccessfully or produced no usable output."""

    def __init__(
        self,
        message: str,
        return_code: Optional[int] = None,
        stderr: str = "",
        effect_name: Optional[str] = None,
    ):
        self.message = message
        self.return_code = return_code
        self.stderr = stderr
        self.effect_name = effect_name
        super().__init__(message)


class TranscodeTimeout(MediaFitError, TimeoutError):
    """A single FFmpeg invocation exceeded its deadline and was terminated."""

    def __init__(self, stage: str, deadline: float, effect_name: Optional[str] = None):
        self.stage = stage
        self.deadline = deadline
        self.effect_name = effect_name
        super().__init__(
            f"Processing timeout during '{stage}': operation took longer than {deadline:g}s"
        )


class SizeExceeded(MediaFitError):
    """No encode attempt produced output under the size ceiling."""

    def __init__(self, ceiling_bytes: int, best_size: Optional[int] = None):
        self.ceiling_bytes = ceiling_bytes
        self.best_size = best_size
        detail = f" (smallest attempt: {best_size} bytes)" if best_size is not None else ""
        super().__init__(f"Could not fit output under {ceiling_bytes} bytes{detail}")
