"""Exceptions raised by the conversion pipeline."""


class TranscodingError(Exception):
    """Base exception for conversion pipeline errors."""

    pass


class ValidationError(TranscodingError):
    """Raised when a job id is missing or invalid."""

    pass


class TransientIOError(TranscodingError):
    """Raised when a download or upload transfer fails."""

    pass


class ResourceError(TranscodingError):
    """Raised when local working state cannot be created."""

    pass


class JobInProgressError(TranscodingError):
    """Raised when a job with the same id is already running."""

    def __init__(self, object_id: str):
        super().__init__(f"Conversion already in progress for {object_id}")
        self.object_id = object_id


class InvalidPhaseTransition(TranscodingError):
    """Raised when a job phase would move backwards."""

    pass


class EngineError(TranscodingError):
    """Raised when an ffmpeg/ffprobe invocation fails."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class ExtractionError(EngineError):
    """Raised when a frame could not be extracted."""

    pass


class NoVideoStreamError(EngineError):
    """Raised when the source has no video stream."""

    pass


class InvalidDurationError(EngineError):
    """Raised when the source reports a non-positive duration."""

    pass


class TooShortError(EngineError):
    """Raised when the source is too short for a sprite sheet."""

    pass


class InsufficientFramesError(EngineError):
    """Raised when too few sprite frames were produced."""

    pass
