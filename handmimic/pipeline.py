"""Frame-synchronous retargeting pipeline.

One capture tick (0-2 :class:`~handmimic.landmarks.HandFrame`) goes through a
:class:`~handmimic.solvers.HandPoseSolver` and the
:class:`~handmimic.semantic.SemanticJointMapper` onto one target model per
hand side. Everything runs on the caller's thread.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Self

import numpy as np

from .landmarks import AXIS_NAMES, HandFrame, HandLandmark, JointValue, side_key
from .semantic import SemanticJointMapper
from .solvers import ExtractionMode, HandPoseSolver, LandmarkAngleSolver
from .targets import TargetModel
from .tracing import Tracer, default_tracer

logger = logging.getLogger(__name__)

SIDES = ("left", "right")

# Tick spacing assumed for recordings without timestamps (30 fps camera)
DEFAULT_FRAME_INTERVAL = 1.0 / 30.0


@dataclass
class PipelineConfig:
    """Configuration for :class:`RetargetingPipeline`."""

    # Consecutive frames without a hand before its solver state is reset
    reset_after_missing_frames: int = 30

    # Used only when the pipeline builds its own solver
    extraction_mode: ExtractionMode = "scalar"

    # Wrist orientation axes forwarded to the target; others are dropped
    wrist_axes: tuple[str, ...] = AXIS_NAMES

    def __post_init__(self) -> None:
        if self.reset_after_missing_frames < 1:
            raise ValueError(f"reset_after_missing_frames must be >= 1, got {self.reset_after_missing_frames}")
        if self.extraction_mode not in ("scalar", "3d"):
            raise ValueError(f"Unsupported extraction mode: {self.extraction_mode}")
        self.wrist_axes = tuple(self.wrist_axes)
        unknown = set(self.wrist_axes) - set(AXIS_NAMES)
        if unknown:
            raise ValueError(f"Unknown wrist axes: {sorted(unknown)}")

    @classmethod
    def default_config(cls) -> Self:
        return cls()

    def save_config(self, filepath: str) -> None:
        config_dict = asdict(self)
        config_dict["wrist_axes"] = list(self.wrist_axes)
        with open(filepath, "w") as f:
            json.dump(config_dict, f, indent=2)

    @classmethod
    def load_config(cls, filepath: str) -> Self:
        with open(filepath, "r") as f:
            config_dict = json.load(f)
        return cls(**config_dict)


@dataclass
class FrameResult:
    """Outcome of one :meth:`RetargetingPipeline.process` call, keyed by side."""

    joint_values: dict[str, dict[str, JointValue]] = field(default_factory=dict)
    written: dict[str, dict[str, float]] = field(default_factory=dict)
    wrist_positions: dict[str, np.ndarray | None] = field(default_factory=dict)
    detected: tuple[str, ...] = ()


def wrist_position(landmarks: np.ndarray) -> np.ndarray:
    """Wrist landmark moved from normalized image space to a centred, Y-up, Z-toward-viewer frame."""
    x, y, z = np.asarray(landmarks, dtype=float)[HandLandmark.WRIST]
    return np.array([(x - 0.5) * 2.0, -(y - 0.5) * 2.0, -z * 2.0])


class RetargetingPipeline:
    """Landmarks -> solver -> semantic mapper -> target models.

    Args:
        solver: Strategy producing joint values; a :class:`LandmarkAngleSolver`
            in ``config.extraction_mode`` when None
        mapper: Dispatches values onto the targets
        targets: Target model per side (``"left"`` / ``"right"``); sides
            without a target are solved but not written
        name_map: Optional solver name -> semantic/joint name overrides
        config: Pipeline policies
        tracer: Receives ``pipeline.*`` events
    """

    def __init__(
        self,
        solver: HandPoseSolver | None,
        mapper: SemanticJointMapper,
        targets: dict[str, TargetModel],
        name_map: dict[str, str] | None = None,
        config: PipelineConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.config = config or PipelineConfig.default_config()
        self.solver = solver if solver is not None else LandmarkAngleSolver(mode=self.config.extraction_mode)
        self.mapper = mapper
        self.targets = {side_key(side) if side in ("Left", "Right") else side: t for side, t in targets.items()}
        self.name_map = name_map
        self.tracer = default_tracer(tracer, logger)

        self.last_values: dict[str, dict[str, JointValue]] = {}
        self.missing_frames: dict[str, int] = {side: 0 for side in SIDES}

    def process(self, frames: Sequence[HandFrame], timestamp: float | None = None) -> FrameResult:
        """Run one capture tick.

        Hands present in ``frames`` are solved and written. Absent hands keep
        their last joint values (nothing is written for them) while their wrist
        position becomes unknown; after ``reset_after_missing_frames``
        consecutive misses their solver state is reset.
        """
        result = FrameResult()
        seen: set[str] = set()

        for frame in frames:
            side = frame.side
            if side in seen:
                logger.debug("Ignoring duplicate %s hand in one frame", side)
                continue
            seen.add(side)
            self.missing_frames[side] = 0

            if frame.is_valid():
                values = self.solver.solve(frame, timestamp)
                result.wrist_positions[side] = wrist_position(frame.landmarks)
            else:
                logger.warning("Malformed %s hand frame, using neutral pose", side)
                self.tracer.count("pipeline.malformed_frame")
                values = self.solver.neutral_pose()
                result.wrist_positions[side] = None

            values = self._select_wrist_axes(values)
            self.last_values[side] = values
            result.joint_values[side] = values

            target = self.targets.get(side)
            if target is not None:
                result.written[side] = self.mapper.dispatch_all(values, target, self.name_map)
            self.tracer.event("pipeline.hand", side=side, joints=len(values))

        for side in SIDES:
            if side in seen:
                continue
            result.wrist_positions[side] = None
            if side in self.last_values:
                result.joint_values[side] = self.last_values[side]
            self.missing_frames[side] += 1
            if self.missing_frames[side] == self.config.reset_after_missing_frames:
                logger.info("%s hand missing for %d frames, resetting its state", side, self.missing_frames[side])
                self.solver.reset(side)
                self.tracer.count("pipeline.reset")

        result.detected = tuple(sorted(seen))
        return result

    def process_trajectory(
        self,
        trajectory: Iterable[Sequence[HandFrame]],
        timestamps: Iterable[float] | None = None,
        frame_interval: float = DEFAULT_FRAME_INTERVAL,
    ) -> list[FrameResult]:
        """Process a recorded sequence of capture ticks in order.

        Args:
            trajectory: Capture ticks, oldest first
            timestamps: Time of each tick in seconds. When omitted, tick ``i`` is
                stamped ``i * frame_interval`` so velocity limiting sees time advance.
            frame_interval: Seconds between ticks when ``timestamps`` is omitted
        """
        if timestamps is None:
            if frame_interval <= 0.0:
                raise ValueError(f"frame_interval must be positive, got {frame_interval}")
            return [self.process(frames, index * frame_interval) for index, frames in enumerate(trajectory)]
        return [self.process(frames, ts) for frames, ts in zip(trajectory, timestamps)]

    def reset(self, side: str | None = None) -> None:
        sides = SIDES if side is None else (side_key(side) if side in ("Left", "Right") else side,)
        for current in sides:
            self.solver.reset(current)
            self.last_values.pop(current, None)
            self.missing_frames[current] = 0

    def _select_wrist_axes(self, values: dict[str, JointValue]) -> dict[str, JointValue]:
        wrist = values.get("wrist")
        if not isinstance(wrist, dict):
            return values
        selected = {axis: value for axis, value in wrist.items() if axis in self.config.wrist_axes}
        values = dict(values)
        if selected:
            values["wrist"] = selected
        else:
            values.pop("wrist")
        return values


def export_for_simulation(joint_values: dict[str, float], format: str = "json") -> str:
    """Serialize target joint values.

    Args:
        joint_values: Target joint name -> radians
        format: ``"json"`` or ``"array"`` (values ordered by joint name)

    Raises:
        ValueError: for any other format
    """
    if format == "json":
        return json.dumps(joint_values, indent=2)
    elif format == "array":
        return str([joint_values[name] for name in sorted(joint_values)])
    else:
        raise ValueError(f"Unsupported format: {format}")
