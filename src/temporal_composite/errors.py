"""
Pipeline Errors
===============

Typed error hierarchy shared by the extraction and compositing pipelines.

Taxonomy:
    - ConfigurationError: fatal to a run, raised before significant work
    - FrameExtractionError / FrameWriteError: transient per-item errors,
      recovered locally during extraction (item skipped and logged)
    - CompositeRenderError: fatal per-item errors during compositing,
      the whole render is aborted
    - StorageError: path outside the sandboxed storage root, or the frame
      index could not be written

Cancellation is not an error. Tasks report it as a distinct terminal
outcome with the status "Cancelled".
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""
    pass


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigurationError(PipelineError):
    """Run cannot start with the given inputs."""
    pass


class NoVideoTrackError(ConfigurationError):
    """Source has no usable video track."""
    pass


class NoFramesError(ConfigurationError):
    """Sampling the source yields zero frames."""
    pass


class EncoderConfigurationError(ConfigurationError):
    """Encoder sink cannot accept the requested output configuration."""
    pass


# =============================================================================
# Transient per-item errors (extraction)
# =============================================================================

class FrameExtractionError(PipelineError):
    """A single frame could not be seeked or decoded."""
    pass


class FrameWriteError(PipelineError):
    """A single frame could not be written to disk."""
    pass


# =============================================================================
# Fatal per-item errors (compositing)
# =============================================================================

class CompositeRenderError(PipelineError):
    """Composite render must be aborted."""
    pass


class PixelBufferError(CompositeRenderError):
    """Composite image could not be converted to the encoder pixel format."""
    pass


class EncoderAppendError(CompositeRenderError):
    """Encoder rejected or failed to write an appended frame."""
    pass


class EncoderFinalizationError(CompositeRenderError):
    """Encoder finished with a non-success terminal status."""

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(f"{message}: {diagnostic}" if diagnostic else message)
        self.diagnostic = diagnostic


# =============================================================================
# Misc
# =============================================================================

class StorageError(PipelineError):
    """Path escapes the storage root, or the frame index cannot be written."""
    pass


class BufferFullError(PipelineError):
    """FrameBuffer is at capacity and cannot accept a new index."""
    pass


class ImageCodecError(PipelineError):
    """Raised when image encoding, decoding or resizing fails."""
    pass
