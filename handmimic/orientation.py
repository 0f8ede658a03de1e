"""Per-joint local frames as quaternions, built from landmark triples."""

import logging
from dataclasses import dataclass, field

import numpy as np

from .geometry import basis_to_quat, normalize, safe_cross
from .landmarks import FINGER_LANDMARKS, Handedness, HandLandmark, validate_landmarks

logger = logging.getLogger(__name__)

DEFAULT_UP = np.array([0.0, 1.0, 0.0])


def quaternion_from_landmarks(
    base: np.ndarray,
    mid: np.ndarray,
    tip: np.ndarray,
    up_reference: np.ndarray = DEFAULT_UP,
) -> np.ndarray:
    """Quaternion of the bone frame at ``mid``.

    forward = mid->tip, right = forward x up (renormalized), up = right x forward.
    When forward is parallel to ``up_reference`` the base->mid bone disambiguates.
    """
    forward = normalize(tip - mid)
    if not np.any(forward):
        forward = normalize(mid - base)
    if not np.any(forward):
        forward = np.array([0.0, 0.0, 1.0])
    backward = base - mid

    right = safe_cross(forward, up_reference, backward)
    up = safe_cross(right, forward)
    # Bone points down the frame's -Z axis so (right, up, -forward) stays right-handed
    return basis_to_quat(right, up, -forward)


def wrist_quaternion(landmarks: np.ndarray) -> np.ndarray:
    """Palm frame: columns (right, forward, -normal)."""
    wrist = landmarks[HandLandmark.WRIST]
    forward = normalize(landmarks[HandLandmark.MIDDLE_FINGER_MCP] - wrist)
    right = normalize(landmarks[HandLandmark.INDEX_FINGER_MCP] - landmarks[HandLandmark.PINKY_MCP])
    if not np.any(forward):
        forward = DEFAULT_UP.copy()
    normal = safe_cross(forward, right, np.array([0.0, 0.0, 1.0]))
    right = safe_cross(normal, forward)
    return basis_to_quat(right, forward, -normal)


def mirror_quaternion(q: np.ndarray) -> np.ndarray:
    """Mirror a rotation for the opposite hand by negating x and w."""
    mirrored = np.array(q, dtype=float)
    mirrored[0] = -mirrored[0]
    mirrored[1] = -mirrored[1]
    return mirrored


@dataclass
class HandQuaternions:
    """Local-frame quaternions of every tracked joint of one hand."""

    wrist: np.ndarray
    thumb: dict[str, np.ndarray] = field(default_factory=dict)  # cmc, mcp, ip
    index: dict[str, np.ndarray] = field(default_factory=dict)  # mcp, pip, dip
    middle: dict[str, np.ndarray] = field(default_factory=dict)
    ring: dict[str, np.ndarray] = field(default_factory=dict)
    pinky: dict[str, np.ndarray] = field(default_factory=dict)

    def get_finger(self, finger_name: str) -> dict[str, np.ndarray]:
        finger_map = {
            "thumb": self.thumb,
            "index": self.index,
            "middle": self.middle,
            "ring": self.ring,
            "pinky": self.pinky,
        }
        return finger_map[finger_name]

    def get(self, slot: str) -> np.ndarray | None:
        """Look up a quaternion by dotted slot name, e.g. ``"index.mcp"`` or ``"wrist"``."""
        if slot == "wrist":
            return self.wrist
        finger_name, _, joint = slot.partition(".")
        try:
            return self.get_finger(finger_name).get(joint)
        except KeyError:
            return None

    def items(self) -> list[tuple[str, np.ndarray]]:
        slots = [("wrist", self.wrist)]
        for finger_name in FINGER_LANDMARKS:
            for joint, q in self.get_finger(finger_name).items():
                slots.append((f"{finger_name}.{joint}", q))
        return slots

    @classmethod
    def from_items(cls, items: dict[str, np.ndarray]) -> "HandQuaternions":
        quats = cls(wrist=np.asarray(items.get("wrist", [1.0, 0.0, 0.0, 0.0]), dtype=float))
        for slot, q in items.items():
            if slot == "wrist":
                continue
            finger_name, _, joint = slot.partition(".")
            quats.get_finger(finger_name)[joint] = np.asarray(q, dtype=float)
        return quats


def landmarks_to_quaternions(landmarks: np.ndarray, handedness: Handedness = "Right") -> HandQuaternions | None:
    """Convert 21 landmarks to per-joint quaternions.

    Args:
        landmarks: 21x3 array of hand landmarks
        handedness: 'Left' or 'Right'; left-hand quaternions are mirrored

    Returns:
        HandQuaternions, or None if the landmarks are malformed
    """
    valid = validate_landmarks(landmarks)
    if valid is None:
        logger.warning("Invalid landmarks: expected 21 landmarks")
        return None

    wrist = valid[HandLandmark.WRIST]
    cmc, mcp, ip, tip = FINGER_LANDMARKS["thumb"]
    quats = HandQuaternions(
        wrist=wrist_quaternion(valid),
        thumb={
            "cmc": quaternion_from_landmarks(wrist, valid[cmc], valid[mcp]),
            "mcp": quaternion_from_landmarks(valid[cmc], valid[mcp], valid[ip]),
            "ip": quaternion_from_landmarks(valid[mcp], valid[ip], valid[tip]),
        },
    )

    for finger_name in ("index", "middle", "ring", "pinky"):
        mcp, pip, dip, tip = FINGER_LANDMARKS[finger_name]
        finger = quats.get_finger(finger_name)
        finger["mcp"] = quaternion_from_landmarks(wrist, valid[mcp], valid[pip])
        finger["pip"] = quaternion_from_landmarks(valid[mcp], valid[pip], valid[dip])
        finger["dip"] = quaternion_from_landmarks(valid[pip], valid[dip], valid[tip])

    if handedness == "Left":
        return HandQuaternions.from_items({slot: mirror_quaternion(q) for slot, q in quats.items()})
    return quats
