"""Joint angle extraction from hand landmarks.

Converts the 21 MediaPipe landmarks of one hand into either single-axis curl
angles (0 = straight, positive = flexed) or ``{pitch, yaw, roll}`` rotations
per joint, plus the wrist orientation.
"""

import logging
from collections.abc import Iterable

import numpy as np

from .geometry import angle_between, euler_xyz_from_matrix, normalize, project_onto_plane, safe_cross
from .landmarks import AXIS_NAMES, FINGER_LANDMARKS, HandAngles, Handedness, HandLandmark, validate_landmarks

logger = logging.getLogger(__name__)

# Thumb roll is only trusted once the thumb is abducted past this angle
THUMB_ROLL_YAW_THRESHOLD = np.deg2rad(30.0)

# Fractions of the upstream curl used for DOFs without their own landmark
THUMB_DIP_RATIO = 0.8
THUMB_TIP_RATIO = 0.5
FINGER_TIP_RATIO = 0.7

_Z_AXIS = np.array([0.0, 0.0, 1.0])


def finger_curl(landmarks: np.ndarray, base_idx: int, mid_idx: int, tip_idx: int) -> float:
    """Curl angle at ``mid`` formed by base-mid-tip.

    Returns:
        ``pi - angle(mid->base, mid->tip)`` clamped to >= 0 (0 = straight).
    """
    base = landmarks[base_idx]
    mid = landmarks[mid_idx]
    tip = landmarks[tip_idx]
    curl = np.pi - angle_between(base - mid, tip - mid)
    return max(0.0, float(curl))


def palm_normal(landmarks: np.ndarray, handedness: Handedness = "Right") -> np.ndarray:
    """Unit normal of the palm plane (wrist, index MCP, pinky MCP), mirrored for the left hand."""
    wrist = landmarks[HandLandmark.WRIST]
    to_index = landmarks[HandLandmark.INDEX_FINGER_MCP] - wrist
    to_pinky = landmarks[HandLandmark.PINKY_MCP] - wrist
    normal = safe_cross(to_index, to_pinky, _Z_AXIS)
    return -normal if handedness == "Left" else normal


def reference_up(landmarks: np.ndarray) -> np.ndarray:
    """Wrist to middle-MCP direction, shared by every joint of the hand for one frame."""
    up = normalize(landmarks[HandLandmark.MIDDLE_FINGER_MCP] - landmarks[HandLandmark.WRIST])
    if not np.any(up):
        return np.array([0.0, 1.0, 0.0])
    return up


def joint_rotation_3d(
    proximal: np.ndarray,
    middle: np.ndarray,
    distal: np.ndarray,
    up: np.ndarray,
    fallback: np.ndarray | None = None,
) -> dict[str, float]:
    """Pitch/yaw/roll of the joint at ``middle``.

    Args:
        proximal: Landmark before the joint
        middle: Joint landmark
        distal: Landmark after the joint
        up: Reference up direction for the hand (wrist to middle MCP)
        fallback: Secondary reference used when a cross product with ``up`` is degenerate

    Returns:
        Dictionary with ``pitch`` (flexion), ``yaw`` (lateral deviation) and ``roll`` (axial twist)
    """
    fallbacks = (fallback,) if fallback is not None else ()
    bone_in = normalize(middle - proximal)
    bone_out = normalize(distal - middle)

    pitch = np.pi - angle_between(bone_in, bone_out) if np.any(bone_in) and np.any(bone_out) else 0.0

    lateral_axis = safe_cross(bone_in, up, *fallbacks)
    yaw = np.arcsin(np.clip(np.dot(bone_out, lateral_axis), -1.0, 1.0))

    perpendicular = safe_cross(bone_out, up, *fallbacks)
    roll_reference = safe_cross(bone_out, perpendicular)
    roll = np.arcsin(np.clip(np.dot(up, roll_reference), -1.0, 1.0))

    return {"pitch": float(pitch), "yaw": float(yaw), "roll": float(roll)}


def thumb_rotation(landmarks: np.ndarray, handedness: Handedness = "Right") -> dict[str, float]:
    """Thumb base rotation measured against the palm plane.

    Yaw is the in-plane abduction between the thumb metacarpal (CMC->MCP) and the
    index metacarpal (wrist->index MCP). Roll is the elevation of the thumb
    metacarpal out of the palm plane; it is reported as 0 while yaw is below
    ``THUMB_ROLL_YAW_THRESHOLD``.
    """
    wrist = landmarks[HandLandmark.WRIST]
    cmc = landmarks[HandLandmark.THUMB_CMC]
    mcp = landmarks[HandLandmark.THUMB_MCP]
    normal = palm_normal(landmarks, handedness)

    metacarpal = normalize(mcp - cmc)
    thumb_in_plane = project_onto_plane(metacarpal, normal)
    index_in_plane = project_onto_plane(landmarks[HandLandmark.INDEX_FINGER_MCP] - wrist, normal)

    yaw = angle_between(thumb_in_plane, index_in_plane)
    if yaw < THUMB_ROLL_YAW_THRESHOLD:
        roll = 0.0
    else:
        roll = float(np.arcsin(np.clip(np.dot(metacarpal, normal), -1.0, 1.0)))

    pitch = finger_curl(landmarks, HandLandmark.WRIST, HandLandmark.THUMB_CMC, HandLandmark.THUMB_MCP)
    return {"pitch": pitch, "yaw": float(yaw), "roll": roll}


def wrist_orientation(
    landmarks: np.ndarray,
    handedness: Handedness = "Right",
    axes: Iterable[str] = AXIS_NAMES,
) -> dict[str, float]:
    """Wrist orientation as XYZ Euler angles of the palm basis.

    Args:
        landmarks: 21x3 array of hand landmarks
        handedness: 'Left' or 'Right'; pitch and roll are negated for the left hand
        axes: Subset of axes to report, the others are reported as 0

    Returns:
        Dictionary with ``pitch`` (x), ``yaw`` (y) and ``roll`` (z) in radians
    """
    valid = validate_landmarks(landmarks)
    if valid is None:
        return {"pitch": 0.0, "yaw": 0.0, "roll": 0.0}

    wrist = valid[HandLandmark.WRIST]
    forward = normalize(valid[HandLandmark.MIDDLE_FINGER_MCP] - wrist)
    right = normalize(valid[HandLandmark.INDEX_FINGER_MCP] - valid[HandLandmark.PINKY_MCP])
    if not np.any(forward):
        forward = np.array([0.0, 1.0, 0.0])
    normal = safe_cross(forward, right, _Z_AXIS)
    right = safe_cross(normal, forward)

    rotation = np.column_stack([right, normal, forward])
    pitch, yaw, roll = euler_xyz_from_matrix(rotation)

    if handedness == "Left":
        pitch = -pitch
        roll = -roll

    selected = set(axes)
    values = {"pitch": pitch, "yaw": yaw, "roll": roll}
    return {axis: (value if axis in selected else 0.0) for axis, value in values.items()}


def neutral_joint_angles() -> HandAngles:
    """All-zero pose with the same joint names as :func:`landmarks_to_joint_angles`."""
    joints: dict[str, float] = {"thumb_cmc": 0.0}
    for finger in FINGER_LANDMARKS:
        for segment in ("mcp", "pip", "dip", "tip"):
            joints[f"{finger}_{segment}"] = 0.0
    joints["wrist"] = 0.0
    return HandAngles(joints=dict(joints))


def neutral_rotations_3d() -> dict[str, dict[str, float]]:
    zero = {"pitch": 0.0, "yaw": 0.0, "roll": 0.0}
    return {name: dict(zero) for name in neutral_joint_angles().joints}


def landmarks_to_joint_angles(landmarks: np.ndarray, handedness: Handedness = "Right") -> HandAngles:
    """Convert 21 landmarks to single-axis curl angles plus the wrist orientation.

    Malformed input yields a neutral pose and a warning rather than an exception.
    """
    valid = validate_landmarks(landmarks)
    if valid is None:
        logger.warning("Invalid landmarks: expected %d finite 3D points, returning neutral pose", 21)
        return neutral_joint_angles()

    joints: dict[str, float] = {}

    # Thumb: CMC provides opposition, IP has no further landmark so DIP/TIP are derived
    cmc, mcp, ip, tip = FINGER_LANDMARKS["thumb"]
    joints["thumb_cmc"] = finger_curl(valid, HandLandmark.WRIST, cmc, mcp)
    thumb_ip_curl = finger_curl(valid, mcp, ip, tip)
    joints["thumb_mcp"] = finger_curl(valid, cmc, mcp, ip)
    joints["thumb_pip"] = thumb_ip_curl
    joints["thumb_dip"] = thumb_ip_curl * THUMB_DIP_RATIO
    joints["thumb_tip"] = thumb_ip_curl * THUMB_TIP_RATIO

    for finger in ("index", "middle", "ring", "pinky"):
        mcp, pip, dip, tip = FINGER_LANDMARKS[finger]
        dip_curl = finger_curl(valid, pip, dip, tip)
        joints[f"{finger}_mcp"] = finger_curl(valid, HandLandmark.WRIST, mcp, pip)
        joints[f"{finger}_pip"] = finger_curl(valid, mcp, pip, dip)
        joints[f"{finger}_dip"] = dip_curl
        joints[f"{finger}_tip"] = dip_curl * FINGER_TIP_RATIO

    # Legacy single-axis wrist
    joints["wrist"] = 0.0

    return HandAngles(joints=dict(joints), wrist=wrist_orientation(valid, handedness))


def _as_flexion(rotation: dict[str, float]) -> dict[str, float]:
    """Re-express a :func:`joint_rotation_3d` pitch as flexion away from straight."""
    return {**rotation, "pitch": float(np.pi - rotation["pitch"])}


def landmarks_to_rotations_3d(
    landmarks: np.ndarray,
    handedness: Handedness = "Right",
    pitch_as_flexion: bool = False,
) -> dict[str, dict[str, float]]:
    """Convert 21 landmarks to ``{pitch, yaw, roll}`` per joint.

    The ``wrist`` entry carries the palm orientation.

    Args:
        landmarks: 21x3 landmark array
        handedness: 'Left' or 'Right'
        pitch_as_flexion: Report finger joint pitch as ``angle(boneIn, boneOut)``
            (0 for a straight bone, same scale as the scalar curls) instead of
            ``pi - angle(boneIn, boneOut)``. Derived tips follow the reported pitch.
    """
    valid = validate_landmarks(landmarks)
    if valid is None:
        logger.warning("Invalid landmarks: expected %d finite 3D points, returning neutral pose", 21)
        return neutral_rotations_3d()

    up = reference_up(valid)
    normal = palm_normal(valid, handedness)
    rotations: dict[str, dict[str, float]] = {"wrist": wrist_orientation(valid, handedness)}

    def rotation(proximal: np.ndarray, middle: np.ndarray, distal: np.ndarray) -> dict[str, float]:
        measured = joint_rotation_3d(proximal, middle, distal, up, normal)
        return _as_flexion(measured) if pitch_as_flexion else measured

    cmc, mcp, ip, tip = FINGER_LANDMARKS["thumb"]
    rotations["thumb_cmc"] = thumb_rotation(valid, handedness)
    rotations["thumb_mcp"] = rotation(valid[cmc], valid[mcp], valid[ip])
    rotations["thumb_pip"] = rotation(valid[mcp], valid[ip], valid[tip])
    rotations["thumb_dip"] = dict(rotations["thumb_pip"])
    rotations["thumb_tip"] = {"pitch": rotations["thumb_pip"]["pitch"] * THUMB_TIP_RATIO, "yaw": 0.0, "roll": 0.0}

    wrist = valid[HandLandmark.WRIST]
    for finger in ("index", "middle", "ring", "pinky"):
        mcp, pip, dip, tip = FINGER_LANDMARKS[finger]
        rotations[f"{finger}_mcp"] = rotation(wrist, valid[mcp], valid[pip])
        rotations[f"{finger}_pip"] = rotation(valid[mcp], valid[pip], valid[dip])
        rotations[f"{finger}_dip"] = rotation(valid[pip], valid[dip], valid[tip])
        rotations[f"{finger}_tip"] = {
            "pitch": rotations[f"{finger}_dip"]["pitch"] * FINGER_TIP_RATIO,
            "yaw": 0.0,
            "roll": 0.0,
        }

    return rotations


def detect_hand_pose(joints: dict[str, float]) -> str:
    """Coarse pose label from MCP curls, for debugging overlays."""
    curls = [float(joints.get(f"{finger}_mcp", 0.0)) for finger in ("thumb", "index", "middle", "ring", "pinky")]
    average = sum(curls) / len(curls)

    if average < 0.2:
        return "OPEN_HAND"
    if average > 2.5:
        return "FIST"
    if curls[1] < 0.3 and average > 1.5:
        return "POINTING"
    return "CUSTOM"


def interpolate_rotations(start: dict[str, float], end: dict[str, float], alpha: float) -> dict[str, float]:
    """Linear blend between two scalar joint maps (missing joints count as 0)."""
    return {joint: start.get(joint, 0.0) + (end.get(joint, 0.0) - start.get(joint, 0.0)) * alpha for joint in end}
