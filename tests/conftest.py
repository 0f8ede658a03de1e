"""Shared fixtures: synthetic landmark sets and small joint graphs."""

import numpy as np
import pytest

from handmimic.joint_graph import JointGraph

# Finger directions in the palm plane, degrees from +Y towards +X
FINGER_DIRECTIONS = {"index": 12.0, "middle": 4.0, "ring": -4.0, "pinky": -12.0}
# Thumb sits 50 degrees away from the index metacarpal
THUMB_DIRECTION = FINGER_DIRECTIONS["index"] + 50.0

# Distance of each finger landmark from the wrist along an open finger
FINGER_RADII = (0.10, 0.14, 0.17, 0.19)
THUMB_RADII = (0.03, 0.07, 0.10, 0.125)

PALM_NORMAL = np.array([0.0, 0.0, 1.0])

# Fist: flexion at MCP, PIP and DIP (radians)
FIST_BENDS = (np.deg2rad(80.0), np.deg2rad(90.0), np.deg2rad(60.0))


def direction(degrees: float) -> np.ndarray:
    angle = np.deg2rad(degrees)
    return np.array([np.sin(angle), np.cos(angle), 0.0])


def make_open_hand() -> np.ndarray:
    """Flat open hand in the z=0 plane: every finger is a straight ray from the wrist."""
    landmarks = np.zeros((21, 3))
    thumb = direction(THUMB_DIRECTION)
    for offset, radius in enumerate(THUMB_RADII):
        landmarks[1 + offset] = radius * thumb
    for finger_index, (finger, degrees) in enumerate(FINGER_DIRECTIONS.items()):
        u = direction(degrees)
        for offset, radius in enumerate(FINGER_RADII):
            landmarks[5 + 4 * finger_index + offset] = radius * u
    return landmarks


def curl_chain(start: np.ndarray, u: np.ndarray, lengths: tuple[float, ...], bends: tuple[float, ...]) -> list:
    """Points of a finger bent towards the palm normal by ``bends`` (one per joint)."""
    points = [start]
    heading = 0.0
    for length, bend in zip(lengths, bends):
        heading += bend
        step = np.cos(heading) * u + np.sin(heading) * PALM_NORMAL
        points.append(points[-1] + length * step)
    return points


def make_fist() -> np.ndarray:
    """Fingers flexed by ``FIST_BENDS`` at MCP, PIP and DIP."""
    landmarks = make_open_hand()
    for finger_index, degrees in enumerate(FINGER_DIRECTIONS.values()):
        u = direction(degrees)
        base = 5 + 4 * finger_index
        points = curl_chain(landmarks[base], u, (0.04, 0.03, 0.02), FIST_BENDS)
        for offset, point in enumerate(points[1:], start=1):
            landmarks[base + offset] = point
    thumb = direction(THUMB_DIRECTION)
    points = curl_chain(landmarks[2], thumb, (0.03, 0.025), (np.deg2rad(30.0), np.deg2rad(45.0)))
    landmarks[3] = points[1]
    landmarks[4] = points[2]
    return landmarks


def displace_index_tip(landmarks: np.ndarray, distance: float) -> np.ndarray:
    """Move the index tip towards the palm (along the palm normal) by ``distance``."""
    moved = landmarks.copy()
    moved[8] = moved[8] + distance * PALM_NORMAL
    return moved


@pytest.fixture
def open_hand() -> np.ndarray:
    return make_open_hand()


@pytest.fixture
def fist() -> np.ndarray:
    return make_fist()


@pytest.fixture
def mimic_graph() -> JointGraph:
    """Two-axis index MCP, a PIP, and a DIP that mimics the PIP."""
    return JointGraph.from_dicts(
        [
            {"name": "base_fixed", "type": "fixed", "parent": "world", "child": "palm"},
            {"name": "index_mcp_pitch", "parent": "palm", "child": "index_base", "axis": [0, 1, 0], "limit": [0.0, 1.5]},
            {"name": "index_mcp_yaw", "parent": "index_base", "child": "index_prox", "axis": [0, 0, 1], "limit": [-0.3, 0.3]},
            {"name": "index_pip", "parent": "index_prox", "child": "index_mid", "axis": [0, 1, 0], "limit": [0.0, 1.6]},
            {
                "name": "index_dip",
                "parent": "index_mid",
                "child": "index_dist",
                "axis": [0, 1, 0],
                "limit": [0.0, 1.0],
                "mimic": {"joint": "index_pip", "multiplier": 0.8, "offset": 0.1},
            },
        ]
    )
