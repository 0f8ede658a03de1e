"""Hand pose solvers: three strategies turning one tracked hand into joint values.

* :class:`LandmarkAngleSolver` measures curls (or 3-axis rotations) directly
  from landmark geometry, then filters and calibrates them.
* :class:`QuaternionDecompositionSolver` builds per-joint orientations and
  decomposes them onto the target model's joint axes.
* :class:`ChainIKSolver` drives a bone chain toward the tracked fingertip with CCD.

All of them return a ``{joint name: value}`` dictionary ready for
:class:`~handmimic.semantic.SemanticJointMapper`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol, Self

import numpy as np

from .angles import (
    landmarks_to_joint_angles,
    landmarks_to_rotations_3d,
    neutral_joint_angles,
    neutral_rotations_3d,
)
from .calibration import CalibrationManager
from .decomposition import QuaternionJointMap, apply_thumb_chain, quaternions_to_joint_angles, thumb_chain_from_graph
from .filters import MotionFilter, QuaternionMotionFilter
from .ik import LINKERHAND_L10_LEFT_THUMB, ModelIKSpec, Skeleton, build_skeleton_from_spec
from .joint_graph import JointGraph
from .landmarks import AXIS_NAMES, HandFrame, HandLandmark, JointValue, side_key, validate_landmarks
from .orientation import landmarks_to_quaternions
from .tracing import Tracer, default_tracer

logger = logging.getLogger(__name__)

ExtractionMode = Literal["scalar", "3d"]


class HandPoseSolver(Protocol):
    """One strategy for turning a tracked hand into joint values."""

    def solve(self, frame: HandFrame, timestamp: float | None = None) -> dict[str, JointValue]: ...

    def neutral_pose(self) -> dict[str, JointValue]: ...

    def reset(self, side: str | None = None) -> None: ...


def _normalize_side(side: str) -> str:
    return side_key(side) if side in ("Left", "Right") else side


class LandmarkAngleSolver:
    """Landmark geometry -> motion filter -> rest-pose calibration.

    The wrist orientation is reported under ``"wrist"`` as ``{pitch, yaw, roll}``.

    Args:
        mode: ``"scalar"`` for one curl per joint, ``"3d"`` for pitch/yaw/roll per joint
            (pitch reported as flexion, 0 for a straight joint)
        motion_filter: Filter applied before calibration
        calibration: Rest-pose offsets subtracted last
    """

    def __init__(
        self,
        mode: ExtractionMode = "scalar",
        motion_filter: MotionFilter | None = None,
        calibration: CalibrationManager | None = None,
    ) -> None:
        if mode not in ("scalar", "3d"):
            raise ValueError(f"Unsupported extraction mode: {mode}")
        self.mode = mode
        self.motion_filter = motion_filter or MotionFilter()
        self.calibration = calibration or CalibrationManager(autoload=False)
        # Filtered, uncalibrated values of the latest frame per side
        self.last_filtered: dict[str, dict[str, JointValue]] = {}

    def extract(self, frame: HandFrame) -> tuple[dict[str, JointValue], dict[str, float]]:
        """Raw joint values and wrist orientation of ``frame``."""
        if self.mode == "3d":
            rotations: dict[str, JointValue] = dict(
                landmarks_to_rotations_3d(frame.landmarks, frame.handedness, pitch_as_flexion=True)
            )
            wrist = rotations.pop("wrist")
            return rotations, dict(wrist) if isinstance(wrist, dict) else {}

        angles = landmarks_to_joint_angles(frame.landmarks, frame.handedness)
        joints: dict[str, JointValue] = dict(angles.joints)
        joints.pop("wrist", None)
        return joints, dict(angles.wrist)

    def solve(self, frame: HandFrame, timestamp: float | None = None) -> dict[str, JointValue]:
        timestamp = frame.timestamp if timestamp is None else timestamp
        joints, wrist = self.extract(frame)
        filtered, filtered_wrist = self.motion_filter.filter(joints, timestamp, frame.side, wrist)
        self.last_filtered[frame.side] = {**filtered, "wrist": dict(filtered_wrist or {})}

        result = self.calibration.apply_calibration(filtered, frame.handedness)
        result["wrist"] = dict(filtered_wrist or {})
        return result

    def calibrate(self, handedness: str = "Right") -> bool:
        """Use the latest filtered pose of ``handedness`` as its rest pose."""
        angles = self.last_filtered.get(_normalize_side(handedness))
        if not angles:
            logger.warning("Cannot calibrate %s hand: no frame seen yet", handedness)
            return False
        angles = {name: value for name, value in angles.items() if name != "wrist"}
        return self.calibration.calibrate(angles, handedness)

    def reset_calibration(self, side: str | None = None) -> None:
        """Drop the rest pose of ``side`` (both when None) along with its filter history."""
        self.calibration.reset_calibration(side)
        self.reset(side)

    def neutral_pose(self) -> dict[str, JointValue]:
        zero = {axis: 0.0 for axis in AXIS_NAMES}
        if self.mode == "3d":
            pose: dict[str, JointValue] = dict(neutral_rotations_3d())
        else:
            pose = dict(neutral_joint_angles().joints)
        pose["wrist"] = dict(zero)
        return pose

    def reset(self, side: str | None = None) -> None:
        self.motion_filter.reset(_normalize_side(side) if side is not None else None)
        if side is None:
            self.last_filtered.clear()
        else:
            self.last_filtered.pop(_normalize_side(side), None)


class QuaternionDecompositionSolver:
    """Per-joint quaternions, filtered, then decomposed onto the target joint axes.

    When the model has the multi-DOF thumb base, the thumb CMC quaternion is
    decomposed through that chain as well and overrides single-joint results.
    """

    def __init__(
        self,
        graph: JointGraph,
        joint_map: QuaternionJointMap | None = None,
        quaternion_filter: QuaternionMotionFilter | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.graph = graph
        self.joint_map = joint_map or QuaternionJointMap.from_graph(graph)
        self.quaternion_filter = quaternion_filter or QuaternionMotionFilter()
        self.tracer = default_tracer(tracer, logger)

    def solve(self, frame: HandFrame, timestamp: float | None = None) -> dict[str, JointValue]:
        timestamp = frame.timestamp if timestamp is None else timestamp
        quats = landmarks_to_quaternions(frame.landmarks, frame.handedness)
        if quats is None:
            return self.neutral_pose()
        quats = self.quaternion_filter.filter(quats, timestamp, frame.side)
        if quats is None:
            return self.neutral_pose()

        angles: dict[str, JointValue] = dict(quaternions_to_joint_angles(quats, self.joint_map, self.graph, self.tracer))
        angles.update(apply_thumb_chain(quats, self.graph, self.tracer))
        return angles

    def neutral_pose(self) -> dict[str, JointValue]:
        pose: dict[str, JointValue] = {}
        for name in self.joint_map.joints:
            spec = self.graph.get(name)
            if name in self.joint_map.limits:
                lower, upper = self.joint_map.limits[name]
                pose[name] = float(min(upper, max(lower, 0.0)))
            else:
                pose[name] = spec.clamp(0.0) if spec is not None else 0.0
        for step in thumb_chain_from_graph(self.graph):
            pose[step.name] = float(min(step.limit[1], max(step.limit[0], 0.0)))
        return pose

    def reset(self, side: str | None = None) -> None:
        self.quaternion_filter.reset(side)


@dataclass
class ChainIKConfig:
    """Configuration for :class:`ChainIKSolver`."""

    # Model units per landmark unit
    scale: float = 0.5

    # Target position of the wrist landmark in the model root frame
    offset: np.ndarray | None = None

    # Skeletons describe a left hand; right-hand targets are mirrored across X
    mirror_right: bool = True

    # Landmark -> model axes: model [x, y, z] = coord_transform @ landmark [x, y, z]
    coord_transform: np.ndarray | None = None

    # Target bone -> landmark it follows
    target_landmarks: dict[str, int] = field(default_factory=lambda: {"thumb_target": int(HandLandmark.THUMB_TIP)})

    # Target placement when no hand has been seen
    rest_target: tuple[float, float, float] = (0.03, 0.02, 0.12)

    def __post_init__(self) -> None:
        if self.scale <= 0.0:
            raise ValueError(f"scale must be positive, got {self.scale}")
        self.offset = np.zeros(3) if self.offset is None else np.asarray(self.offset, dtype=float).reshape(3)
        if self.coord_transform is None:
            # Image x stays x, depth becomes y, image y (pointing down) becomes -z
            self.coord_transform = np.array(
                [
                    [1.0, 0.0, 0.0],
                    [0.0, 0.0, 1.0],
                    [0.0, -1.0, 0.0],
                ]
            )
        else:
            self.coord_transform = np.asarray(self.coord_transform, dtype=float).reshape(3, 3)

    @classmethod
    def default_config(cls) -> Self:
        return cls()

    def save_config(self, filepath: str) -> None:
        assert self.offset is not None and self.coord_transform is not None
        config_dict = {
            "scale": self.scale,
            "offset": self.offset.tolist(),
            "mirror_right": self.mirror_right,
            "coord_transform": self.coord_transform.tolist(),
            "target_landmarks": self.target_landmarks,
            "rest_target": list(self.rest_target),
        }
        with open(filepath, "w") as f:
            json.dump(config_dict, f, indent=2)

    @classmethod
    def load_config(cls, filepath: str) -> Self:
        with open(filepath, "r") as f:
            config_dict = json.load(f)
        if "rest_target" in config_dict:
            config_dict["rest_target"] = tuple(config_dict["rest_target"])
        return cls(**config_dict)

    def target_position(self, landmarks: np.ndarray, index: int, side: str) -> np.ndarray:
        """Model-space position of landmark ``index`` relative to the wrist."""
        assert self.offset is not None and self.coord_transform is not None
        relative = landmarks[index] - landmarks[HandLandmark.WRIST]
        position = self.offset + self.scale * (self.coord_transform @ relative)
        if side == "right" and self.mirror_right:
            position[0] = -position[0]
        return position

    def rest_position(self, side: str) -> np.ndarray:
        position = np.array(self.rest_target, dtype=float)
        if side == "right" and self.mirror_right:
            position[0] = -position[0]
        return position


class ChainIKSolver:
    """CCD chain IK on one skeleton per hand side.

    Joint names in the result are the model's own joint names.
    """

    def __init__(
        self,
        spec: ModelIKSpec = LINKERHAND_L10_LEFT_THUMB,
        config: ChainIKConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.spec = spec
        self.config = config or ChainIKConfig.default_config()
        self.tracer = default_tracer(tracer, logger)
        self.skeletons: dict[str, Skeleton] = {
            side: build_skeleton_from_spec(spec, self.tracer) for side in ("left", "right")
        }
        for side in self.skeletons:
            self._place_rest_targets(side)

    def _place_rest_targets(self, side: str) -> None:
        skeleton = self.skeletons[side]
        for target in skeleton.targets:
            skeleton.set_target(target, self.config.rest_position(side))

    def solve(self, frame: HandFrame, timestamp: float | None = None) -> dict[str, JointValue]:
        landmarks = validate_landmarks(frame.landmarks)
        if landmarks is None:
            logger.warning("Invalid landmarks for IK, returning neutral pose")
            return self.neutral_pose()

        skeleton = self.skeletons[frame.side]
        for target, index in self.config.target_landmarks.items():
            if target not in skeleton.targets:
                logger.debug("Model '%s' has no target '%s'", self.spec.model_name, target)
                continue
            skeleton.set_target(target, self.config.target_position(landmarks, index, frame.side))

        return dict(skeleton.solve())

    def neutral_pose(self) -> dict[str, JointValue]:
        pose: dict[str, JointValue] = {}
        for joint in self.spec.joints:
            lower, upper = joint.limit if joint.limit is not None else (-np.inf, np.inf)
            pose[joint.name] = float(min(upper, max(lower, 0.0)))
        return pose

    def reset(self, side: str | None = None) -> None:
        sides = list(self.skeletons) if side is None else [_normalize_side(side)]
        for current in sides:
            self.skeletons[current].reset()
            self._place_rest_targets(current)
