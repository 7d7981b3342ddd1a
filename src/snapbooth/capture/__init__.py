"""
Capture module for SnapBooth.

Provides:
- CaptureSequencer: timed four-shot sequence over a CameraSession
"""

from .sequencer import (
    CaptureSequencer,
    Capturing,
    Completed,
    CountingDown,
    Failed,
    Idle,
    SequenceState,
    create_sequencer_from_config,
)

__all__ = [
    "CaptureSequencer",
    "Capturing",
    "Completed",
    "CountingDown",
    "Failed",
    "Idle",
    "SequenceState",
    "create_sequencer_from_config",
]
