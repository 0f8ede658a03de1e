"""Landmark sources. Requires the ``tracking`` extra (mediapipe, opencv-python)."""

from .mediapipe import HAND_CONNECTIONS, MediaPipeTracker, hand_frames_from_result

__all__ = [
    "HAND_CONNECTIONS",
    "MediaPipeTracker",
    "hand_frames_from_result",
]
