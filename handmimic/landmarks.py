"""Landmark layout and per-frame hand containers."""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

import numpy as np

logger = logging.getLogger(__name__)

# Type alias for handedness
Handedness = Literal["Left", "Right"]

HANDEDNESS_VALUES: tuple[Handedness, ...] = ("Left", "Right")

NUM_LANDMARKS = 21

EPS = 1e-6

AXIS_NAMES = ("pitch", "yaw", "roll")

# A joint value is either a single DOF (radians) or a {pitch, yaw, roll} subset.
JointValue = float | dict[str, float]


class HandLandmark(IntEnum):
    """MediaPipe hand landmark indices."""

    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_FINGER_MCP = 5
    INDEX_FINGER_PIP = 6
    INDEX_FINGER_DIP = 7
    INDEX_FINGER_TIP = 8
    MIDDLE_FINGER_MCP = 9
    MIDDLE_FINGER_PIP = 10
    MIDDLE_FINGER_DIP = 11
    MIDDLE_FINGER_TIP = 12
    RING_FINGER_MCP = 13
    RING_FINGER_PIP = 14
    RING_FINGER_DIP = 15
    RING_FINGER_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


FINGER_NAMES = ("thumb", "index", "middle", "ring", "pinky")

# Base-to-tip landmark chain for every finger
FINGER_LANDMARKS: dict[str, tuple[int, int, int, int]] = {
    "thumb": (HandLandmark.THUMB_CMC, HandLandmark.THUMB_MCP, HandLandmark.THUMB_IP, HandLandmark.THUMB_TIP),
    "index": (
        HandLandmark.INDEX_FINGER_MCP,
        HandLandmark.INDEX_FINGER_PIP,
        HandLandmark.INDEX_FINGER_DIP,
        HandLandmark.INDEX_FINGER_TIP,
    ),
    "middle": (
        HandLandmark.MIDDLE_FINGER_MCP,
        HandLandmark.MIDDLE_FINGER_PIP,
        HandLandmark.MIDDLE_FINGER_DIP,
        HandLandmark.MIDDLE_FINGER_TIP,
    ),
    "ring": (
        HandLandmark.RING_FINGER_MCP,
        HandLandmark.RING_FINGER_PIP,
        HandLandmark.RING_FINGER_DIP,
        HandLandmark.RING_FINGER_TIP,
    ),
    "pinky": (HandLandmark.PINKY_MCP, HandLandmark.PINKY_PIP, HandLandmark.PINKY_DIP, HandLandmark.PINKY_TIP),
}


def side_key(handedness: str) -> str:
    """Lower-case key used for per-hand state ('left' / 'right')."""
    return "left" if handedness == "Left" else "right"


def validate_landmarks(landmarks: np.ndarray | list | None) -> np.ndarray | None:
    """Return landmarks as a (21, 3) float array, or None if malformed."""
    if landmarks is None:
        return None
    try:
        array = np.asarray(landmarks, dtype=float)
    except (TypeError, ValueError):
        return None
    if array.shape != (NUM_LANDMARKS, 3):
        return None
    if not np.all(np.isfinite(array)):
        return None
    return array


@dataclass
class HandFrame:
    """One tracked hand in a capture tick."""

    handedness: Handedness
    landmarks: np.ndarray  # 21x3 array in normalized source space
    confidence: float = 1.0
    timestamp: float = 0.0  # seconds

    def is_valid(self) -> bool:
        return validate_landmarks(self.landmarks) is not None

    @property
    def side(self) -> str:
        return side_key(self.handedness)

    def landmark(self, index: int) -> np.ndarray:
        return np.asarray(self.landmarks[index], dtype=float)

    def finger(self, finger_name: str) -> np.ndarray:
        """Get the 4x3 base-to-tip chain of a finger."""
        indices = FINGER_LANDMARKS[finger_name]
        return np.asarray(self.landmarks, dtype=float)[list(indices)]


@dataclass
class JointAngle:
    """A joint value tagged with its joint name and hand side."""

    name: str
    side: Handedness
    value: JointValue | np.ndarray

    @property
    def is_multi_axis(self) -> bool:
        return isinstance(self.value, dict)

    @property
    def is_quaternion(self) -> bool:
        return isinstance(self.value, np.ndarray)


@dataclass
class HandAngles:
    """Joint angles extracted from a single hand."""

    joints: dict[str, JointValue] = field(default_factory=dict)
    wrist: dict[str, float] = field(default_factory=lambda: {"pitch": 0.0, "yaw": 0.0, "roll": 0.0})

    def tagged(self, side: Handedness) -> list[JointAngle]:
        angles = [JointAngle(name, side, value) for name, value in self.joints.items()]
        angles.append(JointAngle("wrist_orientation", side, dict(self.wrist)))
        return angles
