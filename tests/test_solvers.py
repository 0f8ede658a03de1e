"""Tests for the hand pose solvers."""

import numpy as np
import pytest

from handmimic.calibration import CalibrationManager
from handmimic.filters import MotionFilter, MotionFilterConfig
from handmimic.joint_graph import JointGraph
from handmimic.landmarks import HandFrame
from handmimic.solvers import ChainIKConfig, ChainIKSolver, LandmarkAngleSolver, QuaternionDecompositionSolver


def frame(landmarks: np.ndarray, handedness: str = "Right", timestamp: float = 0.0) -> HandFrame:
    return HandFrame(handedness=handedness, landmarks=landmarks, timestamp=timestamp)


def test_landmark_solver_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError):
        LandmarkAngleSolver(mode="euler")


def test_landmark_solver_reports_wrist_orientation(open_hand: np.ndarray) -> None:
    result = LandmarkAngleSolver().solve(frame(open_hand))

    assert set(result["wrist"]) == {"pitch", "yaw", "roll"}
    assert result["index_mcp"] == pytest.approx(0.0, abs=1e-6)


def test_landmark_solver_3d_mode_open_hand_is_straight(open_hand: np.ndarray) -> None:
    result = LandmarkAngleSolver(mode="3d").solve(frame(open_hand))

    assert set(result["wrist"]) == {"pitch", "yaw", "roll"}
    for finger in ("index", "middle", "ring", "pinky"):
        for joint in ("mcp", "pip", "dip", "tip"):
            assert result[f"{finger}_{joint}"]["pitch"] == pytest.approx(0.0, abs=1e-6), f"{finger}_{joint}"
    assert result["thumb_mcp"]["pitch"] == pytest.approx(0.0, abs=1e-6)


def test_landmark_solver_3d_mode_fist(fist: np.ndarray) -> None:
    result = LandmarkAngleSolver(mode="3d").solve(frame(fist))

    assert result["index_mcp"]["pitch"] == pytest.approx(np.deg2rad(80.0), abs=1e-6)
    assert result["index_pip"]["pitch"] == pytest.approx(np.deg2rad(90.0), abs=1e-6)
    # DIP and TIP follow the couplings on the flexion scale
    assert result["index_dip"]["pitch"] == pytest.approx(0.67 * np.deg2rad(90.0))
    assert result["index_tip"]["pitch"] == pytest.approx(0.5 * result["index_dip"]["pitch"])
    assert result["thumb_mcp"]["pitch"] == pytest.approx(np.deg2rad(30.0), abs=1e-6)


def test_landmark_solver_applies_constraints(fist: np.ndarray) -> None:
    result = LandmarkAngleSolver().solve(frame(fist))

    # DIP follows PIP through the coupling, not its own measurement
    assert result["index_dip"] == pytest.approx(0.67 * result["index_pip"])


def test_calibration_needs_a_frame(fist: np.ndarray) -> None:
    solver = LandmarkAngleSolver()

    assert solver.calibrate("Right") is False

    solver.solve(frame(fist, timestamp=0.0))
    assert solver.calibrate("Right") is True
    result = solver.solve(frame(fist, timestamp=1.0))

    for name, value in result.items():
        if name != "wrist":
            assert value == pytest.approx(0.0, abs=1e-9), name
    assert not solver.calibration.is_calibrated("Left")


def test_reset_calibration_clears_filter_history(open_hand: np.ndarray, fist: np.ndarray) -> None:
    solver = LandmarkAngleSolver(motion_filter=MotionFilter(MotionFilterConfig(alpha=0.1)))
    solver.solve(frame(fist, "Left"))
    solver.solve(frame(fist, "Right"))
    assert solver.calibrate("Left") is True

    solver.reset_calibration("Left")

    assert not solver.calibration.is_calibrated("Left")
    assert "left" not in solver.last_filtered
    left = solver.solve(frame(open_hand, "Left", timestamp=1.0))
    assert left["index_mcp"] == pytest.approx(0.0, abs=1e-6)
    # The right hand keeps its smoothing history
    right = solver.solve(frame(open_hand, "Right", timestamp=1.0))
    assert right["index_mcp"] == pytest.approx(0.9 * np.deg2rad(80.0), abs=1e-6)


def test_landmark_solver_sides_are_independent(open_hand: np.ndarray, fist: np.ndarray) -> None:
    solver = LandmarkAngleSolver(motion_filter=MotionFilter(MotionFilterConfig(alpha=0.1)))
    solver.solve(frame(fist, "Left"))

    result = solver.solve(frame(open_hand, "Right"))

    assert result["index_mcp"] == pytest.approx(0.0, abs=1e-6)


def test_landmark_solver_reset(open_hand: np.ndarray, fist: np.ndarray) -> None:
    solver = LandmarkAngleSolver(motion_filter=MotionFilter(MotionFilterConfig(alpha=0.1)))
    solver.solve(frame(fist, "Left"))

    solver.reset("Left")
    result = solver.solve(frame(open_hand, "Left", timestamp=1.0))

    assert result["index_mcp"] == pytest.approx(0.0, abs=1e-6)
    assert "left" in solver.last_filtered


def test_landmark_solver_neutral_pose() -> None:
    pose = LandmarkAngleSolver(calibration=CalibrationManager(autoload=False)).neutral_pose()

    assert pose["wrist"] == {"pitch": 0.0, "yaw": 0.0, "roll": 0.0}
    assert pose["index_mcp"] == 0.0
    assert LandmarkAngleSolver(mode="3d").neutral_pose()["index_mcp"] == {"pitch": 0.0, "yaw": 0.0, "roll": 0.0}


def test_quaternion_solver(mimic_graph: JointGraph, open_hand: np.ndarray) -> None:
    solver = QuaternionDecompositionSolver(mimic_graph)

    result = solver.solve(frame(open_hand))

    assert set(result) == {"index_mcp_pitch", "index_mcp_yaw", "index_pip"}
    assert result["index_pip"] == pytest.approx(0.0, abs=1e-6)
    for name, value in result.items():
        lower, upper = mimic_graph[name].limit
        assert lower <= value <= upper


def test_quaternion_solver_malformed_frame(mimic_graph: JointGraph) -> None:
    solver = QuaternionDecompositionSolver(mimic_graph)

    assert solver.solve(frame(np.zeros((4, 3)))) == {"index_mcp_pitch": 0.0, "index_mcp_yaw": 0.0, "index_pip": 0.0}


def test_chain_ik_config_mirrors_right_hand(open_hand: np.ndarray) -> None:
    config = ChainIKConfig(scale=1.0)

    left = config.target_position(open_hand, 4, "left")
    right = config.target_position(open_hand, 4, "right")

    assert right[0] == pytest.approx(-left[0])
    assert right[1:] == pytest.approx(left[1:])
    # Image y (down) becomes -z
    thumb_tip = open_hand[4]
    np.testing.assert_allclose(left, [thumb_tip[0], thumb_tip[2], -thumb_tip[1]])
    assert config.rest_position("right")[0] == pytest.approx(-config.rest_target[0])


def test_chain_ik_config_validation_and_file(tmp_path) -> None:
    with pytest.raises(ValueError):
        ChainIKConfig(scale=0.0)

    config = ChainIKConfig(scale=0.25, offset=np.array([0.0, 0.01, 0.02]), mirror_right=False)
    path = str(tmp_path / "ik.json")
    config.save_config(path)
    loaded = ChainIKConfig.load_config(path)

    assert loaded.scale == 0.25
    assert loaded.mirror_right is False
    np.testing.assert_allclose(loaded.offset, config.offset)
    np.testing.assert_allclose(loaded.coord_transform, config.coord_transform)
    assert loaded.target_landmarks == {"thumb_target": 4}
    assert loaded.rest_target == config.rest_target


def test_chain_ik_solver(open_hand: np.ndarray) -> None:
    solver = ChainIKSolver(config=ChainIKConfig(scale=0.5))

    for handedness in ("Left", "Right"):
        result = solver.solve(frame(open_hand, handedness))

        assert set(result) == {"thumb_cmc_roll", "thumb_cmc_yaw", "thumb_cmc_pitch", "thumb_mcp", "thumb_ip"}
        for name, value in result.items():
            lower, upper = solver.spec.joint(name).limit
            assert np.isfinite(value)
            assert lower - 1e-3 <= value <= upper + 1e-3


def test_chain_ik_solver_malformed_frame_and_reset(open_hand: np.ndarray) -> None:
    solver = ChainIKSolver()

    assert solver.solve(frame(np.zeros((2, 3)))) == solver.neutral_pose()
    assert all(value == 0.0 for value in solver.neutral_pose().values())

    solver.solve(frame(open_hand, "Left"))
    solver.reset("Left")
    assert all(value == pytest.approx(0.0, abs=1e-9) for value in solver.skeletons["left"].joint_angles().values())
