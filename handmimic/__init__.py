"""HandMimic: retargeting tracked hand landmarks onto robot and avatar hand models."""

__version__ = "0.1.0"

from .angles import landmarks_to_joint_angles, landmarks_to_rotations_3d
from .calibration import CalibrationManager, InMemoryCalibrationStore, JsonFileCalibrationStore
from .filters import MotionFilter, MotionFilterConfig, QuaternionMotionFilter
from .joint_graph import JointGraph, JointSpec, MimicSpec
from .landmarks import HandAngles, HandFrame, HandLandmark, Handedness, JointAngle, JointValue
from .orientation import HandQuaternions, landmarks_to_quaternions
from .pipeline import FrameResult, PipelineConfig, RetargetingPipeline
from .semantic import SemanticJointMapper
from .solvers import (
    ChainIKConfig,
    ChainIKSolver,
    HandPoseSolver,
    LandmarkAngleSolver,
    QuaternionDecompositionSolver,
)
from .targets import InMemoryTargetModel, MujocoTargetModel, TargetModel

__all__ = [
    "CalibrationManager",
    "ChainIKConfig",
    "ChainIKSolver",
    "FrameResult",
    "HandAngles",
    "HandFrame",
    "HandLandmark",
    "HandPoseSolver",
    "HandQuaternions",
    "Handedness",
    "InMemoryCalibrationStore",
    "InMemoryTargetModel",
    "JointAngle",
    "JointGraph",
    "JointSpec",
    "JointValue",
    "JsonFileCalibrationStore",
    "LandmarkAngleSolver",
    "MimicSpec",
    "MotionFilter",
    "MotionFilterConfig",
    "MujocoTargetModel",
    "PipelineConfig",
    "QuaternionDecompositionSolver",
    "QuaternionMotionFilter",
    "RetargetingPipeline",
    "SemanticJointMapper",
    "TargetModel",
    "landmarks_to_joint_angles",
    "landmarks_to_quaternions",
    "landmarks_to_rotations_3d",
    "__version__",
]
