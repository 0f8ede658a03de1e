"""Tests for joint frames and swing-twist decomposition."""

import numpy as np
import pytest

from handmimic.decomposition import (
    ChainStep,
    JointSlot,
    QuaternionJointMap,
    apply_thumb_chain,
    decompose_chain,
    decompose_quaternion_around_axis,
    quaternions_to_joint_angles,
    remove_axis_rotation,
    swing_twist,
    thumb_chain_from_graph,
)
from handmimic.geometry import IDENTITY_QUAT, quat_from_axis_angle, quat_multiply, quat_to_matrix
from handmimic.joint_graph import JointGraph
from handmimic.orientation import HandQuaternions, landmarks_to_quaternions, quaternion_from_landmarks
from handmimic.tracing import RecordingTracer

X = np.array([1.0, 0.0, 0.0])
Z = np.array([0.0, 0.0, 1.0])


def test_bone_frame_reproduces_its_basis(open_hand: np.ndarray) -> None:
    quats = landmarks_to_quaternions(open_hand, "Right")
    forward = open_hand[7] - open_hand[6]
    forward = forward / np.linalg.norm(forward)

    rotation = quat_to_matrix(quats.get("index.pip"))
    np.testing.assert_allclose(rotation @ np.array([0.0, 0.0, -1.0]), forward, atol=1e-9)
    np.testing.assert_allclose(rotation @ rotation.T, np.eye(3), atol=1e-9)
    assert np.linalg.det(rotation) == pytest.approx(1.0)


def test_palm_frame_reproduces_its_basis(open_hand: np.ndarray) -> None:
    quats = landmarks_to_quaternions(open_hand, "Right")
    forward = open_hand[9] / np.linalg.norm(open_hand[9])

    # Columns are (right, forward, -normal)
    np.testing.assert_allclose(quat_to_matrix(quats.wrist)[:, 1], forward, atol=1e-9)


def test_frame_with_bone_along_up_reference() -> None:
    q = quaternion_from_landmarks(np.array([0.0, -1.0, 0.0]), np.zeros(3), np.array([0.0, 1.0, 0.0]))

    assert np.all(np.isfinite(q))
    assert np.linalg.norm(q) == pytest.approx(1.0)


def test_malformed_landmarks_have_no_quaternions() -> None:
    assert landmarks_to_quaternions(np.zeros((3, 3))) is None


def test_hand_quaternions_lookup(open_hand: np.ndarray) -> None:
    quats = landmarks_to_quaternions(open_hand)

    assert quats.get("wrist") is quats.wrist
    assert quats.get("index.pip") is not None
    assert quats.get("index.cmc") is None
    assert quats.get("elbow.mcp") is None


@pytest.mark.parametrize("angle", [-2.5, -0.7, 0.0, 0.3, 1.2, 3.0])
def test_decompose_around_arbitrary_axis(angle: float) -> None:
    axis = np.array([1.0, 2.0, 3.0])
    q = quat_from_axis_angle(axis, angle)

    assert decompose_quaternion_around_axis(q, axis) == pytest.approx(angle, abs=1e-9)
    assert decompose_quaternion_around_axis(q, -axis) == pytest.approx(-angle, abs=1e-9)


def test_decompose_ignores_swing() -> None:
    swing = quat_from_axis_angle(X, 0.4)
    twist = quat_from_axis_angle(Z, 0.6)

    assert decompose_quaternion_around_axis(quat_multiply(swing, twist), Z) == pytest.approx(0.6)


def test_half_turn_swing_has_no_twist() -> None:
    assert decompose_quaternion_around_axis(quat_from_axis_angle(X, np.pi), Z) == pytest.approx(0.0)


def test_zero_axis_decomposes_to_zero() -> None:
    assert decompose_quaternion_around_axis(quat_from_axis_angle(X, 0.5), np.zeros(3)) == 0.0


def test_swing_twist_recomposes() -> None:
    q = quat_multiply(quat_from_axis_angle(np.array([0.0, 1.0, 1.0]), 0.8), quat_from_axis_angle(X, -0.3))
    swing, twist = swing_twist(q, X)

    recomposed = quat_multiply(swing, twist)
    assert abs(float(np.dot(recomposed, q))) == pytest.approx(1.0, abs=1e-9)


def test_chain_clamps_before_removing_twist() -> None:
    tracer = RecordingTracer()
    q = quat_from_axis_angle(Z, 1.0)
    angles = decompose_chain(
        q,
        [ChainStep("first", Z, (0.0, 0.5)), ("second", Z, (-np.pi, np.pi))],
        tracer,
    )

    assert angles["first"] == pytest.approx(0.5)
    # The residual beyond the first limit reaches the next step
    assert angles["second"] == pytest.approx(0.5)
    assert tracer.counters["decompose.clamped"] == 1


def thumb_graph(pitch_limit: tuple[float, float] = (0.0, 1.0)) -> JointGraph:
    return JointGraph.from_dicts(
        [
            {"name": "thumb_cmc_roll", "parent": "palm", "child": "thumb_base", "axis": [0, 0, 1], "limit": [0.0, 1.0]},
            {
                "name": "thumb_cmc_pitch",
                "parent": "thumb_base",
                "child": "thumb_metacarpal",
                "axis": [1, 0, 0],
                "limit": list(pitch_limit),
            },
        ]
    )


def test_thumb_chain_decomposes_in_kinematic_order() -> None:
    # Roll is the innermost (right-most) rotation
    q = quat_multiply(quat_from_axis_angle(X, 0.2), quat_from_axis_angle(Z, 0.4))
    quats = HandQuaternions(wrist=IDENTITY_QUAT.copy(), thumb={"cmc": q})

    angles = apply_thumb_chain(quats, thumb_graph())

    assert angles == {"thumb_cmc_roll": pytest.approx(0.4), "thumb_cmc_pitch": pytest.approx(0.2)}


def test_thumb_chain_clamps_each_step() -> None:
    q = quat_multiply(quat_from_axis_angle(X, 0.2), quat_from_axis_angle(Z, 0.4))
    quats = HandQuaternions(wrist=IDENTITY_QUAT.copy(), thumb={"cmc": q})

    angles = apply_thumb_chain(quats, thumb_graph(pitch_limit=(0.0, 0.15)))

    assert angles["thumb_cmc_pitch"] == pytest.approx(0.15)


def test_thumb_chain_skipped_without_joints(mimic_graph: JointGraph) -> None:
    quats = HandQuaternions(wrist=IDENTITY_QUAT.copy(), thumb={"cmc": IDENTITY_QUAT.copy()})

    assert thumb_chain_from_graph(mimic_graph) == []
    assert apply_thumb_chain(quats, mimic_graph) == {}
    assert apply_thumb_chain(HandQuaternions(wrist=IDENTITY_QUAT.copy()), thumb_graph()) == {}


def test_joint_map_from_graph(mimic_graph: JointGraph) -> None:
    joint_map = QuaternionJointMap.from_graph(mimic_graph)

    assert joint_map.joints["index_mcp_pitch"] == JointSlot("index.mcp", parent_slot="wrist")
    assert joint_map.joints["index_pip"] == JointSlot("index.pip", parent_slot="index.mcp")
    # Mimic joints follow their master and are never decomposed
    assert "index_dip" not in joint_map.joints
    assert "base_fixed" not in joint_map.joints


def test_straight_finger_has_no_relative_pip_rotation(mimic_graph: JointGraph, open_hand: np.ndarray) -> None:
    quats = landmarks_to_quaternions(open_hand)
    angles = quaternions_to_joint_angles(quats, QuaternionJointMap.from_graph(mimic_graph), mimic_graph)

    assert angles["index_pip"] == pytest.approx(0.0, abs=1e-6)
    for name, value in angles.items():
        lower, upper = mimic_graph[name].limit
        assert lower <= value <= upper


def test_map_limits_override_graph_limits() -> None:
    quats = HandQuaternions(wrist=IDENTITY_QUAT.copy(), index={"mcp": quat_from_axis_angle(Z, 1.0)})
    joint_map = QuaternionJointMap(
        joints={"finger": JointSlot("index.mcp", axis=(0.0, 0.0, 1.0))},
        limits={"finger": (0.0, 0.25)},
    )

    assert quaternions_to_joint_angles(quats, joint_map) == {"finger": pytest.approx(0.25)}


def test_missing_slot_is_traced() -> None:
    tracer = RecordingTracer()
    joint_map = QuaternionJointMap(joints={"finger": JointSlot("ring.dip", axis=(1.0, 0.0, 0.0))})

    angles = quaternions_to_joint_angles(HandQuaternions(wrist=IDENTITY_QUAT.copy()), joint_map, tracer=tracer)

    assert angles == {}
    assert "decompose.skip" in tracer.names()


def random_rotations(count: int, seed: int = 7) -> list[tuple[np.ndarray, np.ndarray]]:
    """Seeded unit quaternions paired with unit axes."""
    rng = np.random.default_rng(seed)
    pairs = []
    for _ in range(count):
        q = rng.normal(size=4)
        axis = rng.normal(size=3)
        pairs.append((q / np.linalg.norm(q), axis / np.linalg.norm(axis)))
    return pairs


@pytest.mark.parametrize("q, axis", random_rotations(50))
def test_removing_twist_leaves_pure_swing(q: np.ndarray, axis: np.ndarray) -> None:
    angle = decompose_quaternion_around_axis(q, axis)
    swing = remove_axis_rotation(q, axis, angle)

    assert -np.pi <= angle <= np.pi
    recomposed = quat_multiply(swing, quat_from_axis_angle(axis, angle))
    assert abs(float(np.dot(recomposed, q))) == pytest.approx(1.0, abs=1e-9)
    assert decompose_quaternion_around_axis(swing, axis) == pytest.approx(0.0, abs=1e-6)
