"""
Error taxonomy for the capture-and-compositing pipeline.

Camera errors surface as a retry affordance, capture errors abort the
current run, composition errors send the user back to the camera step.
"""


class SnapBoothError(Exception):
    """Base class for all booth errors."""

    retryable = True

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# ==================== Camera ====================


class DeviceUnavailable(SnapBoothError):
    """No video device granted access."""


class Timeout(SnapBoothError):
    """The device did not reach the readiness threshold in time."""


class PlaybackError(SnapBoothError):
    """Playback of the acquired stream could not start."""


# ==================== Capture ====================


class NotReady(SnapBoothError):
    """Camera is not active/ready, or a run is already in progress."""


class NoFrameSelected(SnapBoothError):
    """A capture run was requested without a frame selection."""


class SourceNotReady(SnapBoothError):
    """The video source fell below the decodable threshold at capture time."""


class CaptureCancelled(SnapBoothError):
    """A capture run was cancelled before its last shot."""


# ==================== Composition / storage / upload ====================


class CompositionFailed(SnapBoothError):
    """The strip could not be composed at all."""


class StorageQuotaExceeded(SnapBoothError):
    """A custom frame did not fit into the frame store."""


class UploadFailed(SnapBoothError):
    """The upload collaborator reported failure."""
