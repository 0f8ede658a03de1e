"""Temporal filtering and anatomical constraints for joint angles.

Scalar joints go through smoothing, then velocity limiting, then constraints.
Quaternion data is velocity limited first and smoothed afterwards; the two
filters intentionally keep their own stage order.
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Self

import numpy as np

from .geometry import quat_angle_to, quat_normalize, quat_slerp
from .landmarks import AXIS_NAMES, JointValue, side_key
from .orientation import HandQuaternions

logger = logging.getLogger(__name__)

FINGERS = ("index", "middle", "ring", "pinky")

DEFAULT_LIMITS: dict[str, tuple[float, float]] = {
    "wrist": (-0.5, 0.5),
    "thumb_mcp": (0.0, 1.5),
    "thumb_pip": (0.0, 1.57),
    "thumb_dip": (0.0, 1.4),
    "thumb_tip": (0.0, 1.2),
    **{f"{finger}_mcp": (0.0, 1.57) for finger in FINGERS},
    **{f"{finger}_pip": (0.0, 1.75) for finger in FINGERS},
    **{f"{finger}_dip": (0.0, 1.4) for finger in FINGERS},
    **{f"{finger}_tip": (0.0, 1.2) for finger in FINGERS},
}

# dependent joint -> (source joint, ratio); DIP entries precede TIP entries
DEFAULT_COUPLINGS: dict[str, tuple[str, float]] = {
    **{f"{finger}_dip": (f"{finger}_pip", 0.67) for finger in FINGERS},
    **{f"{finger}_tip": (f"{finger}_dip", 0.5) for finger in FINGERS},
}


class ExponentialMovingAverageFilter:
    """``filtered = alpha * new + (1 - alpha) * previous`` per key; lower alpha is smoother."""

    def __init__(self, alpha: float = 0.3) -> None:
        self.alpha = float(np.clip(alpha, 0.0, 1.0))
        self.previous_values: dict[tuple[str, str], float] = {}

    def filter(self, key: str, new_value: float, side: str = "") -> float:
        full_key = (side, key)
        if full_key not in self.previous_values:
            self.previous_values[full_key] = new_value
            return new_value

        filtered = self.alpha * new_value + (1.0 - self.alpha) * self.previous_values[full_key]
        self.previous_values[full_key] = filtered
        return filtered

    def filter_all(self, values: dict[str, float], side: str = "") -> dict[str, float]:
        return {key: self.filter(key, value, side) for key, value in values.items()}

    def reset(self, side: str | None = None) -> None:
        if side is None:
            self.previous_values.clear()
        else:
            self.previous_values = {k: v for k, v in self.previous_values.items() if k[0] != side}

    def set_alpha(self, alpha: float) -> None:
        self.alpha = float(np.clip(alpha, 0.0, 1.0))


class VelocityLimiter:
    """Caps angular velocity per key (radians per second)."""

    def __init__(self, max_velocity: float = 3.0) -> None:
        self.max_velocity = max(0.0, float(max_velocity))
        self.previous_values: dict[tuple[str, str], float] = {}
        self.previous_timestamps: dict[tuple[str, str], float] = {}

    def limit(self, key: str, new_value: float, timestamp: float, side: str = "") -> float:
        """Velocity-limited value.

        Args:
            key: Joint (or joint axis) identifier
            new_value: Raw value
            timestamp: Sample time in seconds
            side: Hand side the key belongs to

        Returns:
            ``new_value`` or the previous value stepped by at most ``max_velocity * dt``
            towards it. A non-positive ``dt`` returns the previous value.
        """
        full_key = (side, key)
        if full_key not in self.previous_values:
            self.previous_values[full_key] = new_value
            self.previous_timestamps[full_key] = timestamp
            return new_value

        previous = self.previous_values[full_key]
        delta_time = timestamp - self.previous_timestamps[full_key]
        if delta_time <= 0:
            return previous

        delta_value = new_value - previous
        limited = new_value
        max_delta = self.max_velocity * delta_time
        if abs(delta_value) > max_delta:
            limited = previous + float(np.sign(delta_value)) * max_delta

        self.previous_values[full_key] = limited
        self.previous_timestamps[full_key] = timestamp
        return limited

    def limit_all(self, values: dict[str, float], timestamp: float, side: str = "") -> dict[str, float]:
        return {key: self.limit(key, value, timestamp, side) for key, value in values.items()}

    def reset(self, side: str | None = None) -> None:
        if side is None:
            self.previous_values.clear()
            self.previous_timestamps.clear()
            return
        for store in (self.previous_values, self.previous_timestamps):
            for full_key in [k for k in store if k[0] == side]:
                del store[full_key]

    def set_max_velocity(self, max_velocity: float) -> None:
        self.max_velocity = max(0.0, float(max_velocity))


class JointConstraints:
    """Anatomical limits followed by joint couplings.

    Multi-axis values are limited and coupled through their ``pitch`` axis; the
    other axes pass through.
    """

    def __init__(
        self,
        limits: dict[str, tuple[float, float]] | None = None,
        couplings: dict[str, tuple[str, float]] | None = None,
    ) -> None:
        self.limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self.couplings = dict(DEFAULT_COUPLINGS if couplings is None else couplings)

    def _clamp(self, joint: str, value: float) -> float:
        if joint not in self.limits:
            return value
        lower, upper = self.limits[joint]
        return float(min(upper, max(lower, value)))

    def constrain(self, values: dict[str, JointValue]) -> dict[str, JointValue]:
        constrained: dict[str, JointValue] = {
            joint: dict(value) if isinstance(value, dict) else value for joint, value in values.items()
        }

        # Limit pass
        for joint, value in constrained.items():
            if isinstance(value, dict):
                if "pitch" in value:
                    value["pitch"] = self._clamp(joint, value["pitch"])
            else:
                constrained[joint] = self._clamp(joint, value)

        # Coupling pass, on already clamped sources
        for joint, (source, ratio) in self.couplings.items():
            source_value = _flexion(constrained.get(source))
            if source_value is None or joint not in constrained:
                continue
            coupled = self._clamp(joint, source_value * ratio)
            target = constrained[joint]
            if isinstance(target, dict):
                target["pitch"] = coupled
            else:
                constrained[joint] = coupled

        return constrained

    def set_limit(self, joint: str, lower: float, upper: float) -> None:
        if lower > upper:
            raise ValueError(f"Lower limit {lower} above upper limit {upper} for '{joint}'")
        self.limits[joint] = (lower, upper)

    def set_coupling(self, joint: str, source: str, ratio: float) -> None:
        self.couplings[joint] = (source, ratio)

    def remove_coupling(self, joint: str) -> None:
        self.couplings.pop(joint, None)


def _flexion(value: JointValue | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("pitch")
    return value


@dataclass
class MotionFilterConfig:
    """Configuration for :class:`MotionFilter`."""

    # Smoothing factor (0-1): lower = smoother but more lag
    alpha: float = 0.3

    # Maximum joint speed in radians per second
    max_velocity: float = 3.0

    enable_smoothing: bool = True
    enable_velocity_limiting: bool = True
    enable_constraints: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"alpha must be within [0, 1], got {self.alpha}")
        if self.max_velocity < 0.0:
            raise ValueError(f"max_velocity must be non-negative, got {self.max_velocity}")

    @classmethod
    def default_config(cls) -> Self:
        return cls()

    def save_config(self, filepath: str) -> None:
        with open(filepath, "w") as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load_config(cls, filepath: str) -> Self:
        with open(filepath, "r") as f:
            config_dict = json.load(f)
        return cls(**config_dict)


class MotionFilter:
    """Smoothing, velocity limiting and constraints over a hand's joint values.

    State is keyed by hand side so left and right hands never share history.
    """

    def __init__(self, config: MotionFilterConfig | None = None, constraints: JointConstraints | None = None) -> None:
        self.config = config or MotionFilterConfig.default_config()
        self.smoothing_filter = ExponentialMovingAverageFilter(self.config.alpha)
        self.velocity_limiter = VelocityLimiter(self.config.max_velocity)
        self.constraints = constraints or JointConstraints()

    def filter(
        self,
        joints: dict[str, JointValue],
        timestamp: float,
        side: str = "right",
        wrist: dict[str, float] | None = None,
    ) -> tuple[dict[str, JointValue], dict[str, float] | None]:
        """Run the enabled stages.

        Args:
            joints: Scalar or ``{pitch, yaw, roll}`` values per joint
            timestamp: Frame time in seconds
            side: 'left'/'right' (or 'Left'/'Right')
            wrist: Optional wrist orientation, filtered per axis without constraints

        Returns:
            Tuple of (filtered joints, filtered wrist or None)
        """
        side = side_key(side) if side in ("Left", "Right") else side
        flat = _flatten(joints)

        if self.config.enable_smoothing:
            flat = self.smoothing_filter.filter_all(flat, side)
        if self.config.enable_velocity_limiting:
            flat = self.velocity_limiter.limit_all(flat, timestamp, side)

        filtered = _unflatten(flat, joints)
        if self.config.enable_constraints:
            filtered = self.constraints.constrain(filtered)

        filtered_wrist = None
        if wrist is not None:
            wrist_flat = {f"wrist_orientation.{axis}": value for axis, value in wrist.items()}
            if self.config.enable_smoothing:
                wrist_flat = self.smoothing_filter.filter_all(wrist_flat, side)
            if self.config.enable_velocity_limiting:
                wrist_flat = self.velocity_limiter.limit_all(wrist_flat, timestamp, side)
            filtered_wrist = {key.split(".", 1)[1]: value for key, value in wrist_flat.items()}

        return filtered, filtered_wrist

    def reset(self, side: str | None = None) -> None:
        """Clear filter history for one side, or for both when ``side`` is None."""
        if side in ("Left", "Right"):
            side = side_key(side)
        self.smoothing_filter.reset(side)
        self.velocity_limiter.reset(side)

    def configure(
        self,
        smoothing: bool | None = None,
        velocity_limiting: bool | None = None,
        constraints: bool | None = None,
    ) -> None:
        if smoothing is not None:
            self.config.enable_smoothing = smoothing
        if velocity_limiting is not None:
            self.config.enable_velocity_limiting = velocity_limiting
        if constraints is not None:
            self.config.enable_constraints = constraints

    def set_smoothing_strength(self, alpha: float) -> None:
        self.smoothing_filter.set_alpha(alpha)
        self.config.alpha = self.smoothing_filter.alpha

    def set_max_velocity(self, max_velocity: float) -> None:
        self.velocity_limiter.set_max_velocity(max_velocity)
        self.config.max_velocity = self.velocity_limiter.max_velocity


def _flatten(joints: dict[str, JointValue]) -> dict[str, float]:
    flat: dict[str, float] = {}
    for joint, value in joints.items():
        if isinstance(value, dict):
            for axis in AXIS_NAMES:
                if axis in value:
                    flat[f"{joint}.{axis}"] = float(value[axis])
        else:
            flat[joint] = float(value)
    return flat


def _unflatten(flat: dict[str, float], template: dict[str, JointValue]) -> dict[str, JointValue]:
    joints: dict[str, JointValue] = {}
    for joint, value in template.items():
        if isinstance(value, dict):
            joints[joint] = {axis: flat[f"{joint}.{axis}"] for axis in AXIS_NAMES if axis in value}
        else:
            joints[joint] = flat[joint]
    return joints


class QuaternionMotionFilter:
    """Velocity limiting then SLERP smoothing of per-joint quaternions, per hand side."""

    DEFAULT_DELTA_TIME = 0.016
    MIN_DELTA_TIME = 0.001
    MAX_DELTA_TIME = 0.1

    def __init__(self, alpha: float = 0.3, max_angular_velocity: float = 5.0) -> None:
        self.alpha = float(np.clip(alpha, 0.0, 1.0))
        self.max_angular_velocity = max_angular_velocity
        self.previous: dict[str, dict[str, np.ndarray]] = {}
        self.previous_timestamps: dict[str, float | None] = {}

    def set_alpha(self, alpha: float) -> None:
        self.alpha = float(np.clip(alpha, 0.0, 1.0))

    def reset(self, side: str | None = None) -> None:
        if side is None:
            self.previous.clear()
            self.previous_timestamps.clear()
            return
        side = side_key(side) if side in ("Left", "Right") else side
        self.previous.pop(side, None)
        self.previous_timestamps.pop(side, None)

    def limit_velocity(self, current: np.ndarray, previous: np.ndarray, delta_time: float) -> np.ndarray:
        """Partial SLERP from ``previous`` towards ``current`` when the angular speed is too high."""
        if delta_time <= 0:
            return quat_normalize(current)
        distance = quat_angle_to(current, previous)
        if distance / delta_time <= self.max_angular_velocity:
            return quat_normalize(current)
        clamp_factor = self.max_angular_velocity * delta_time / distance
        return quat_slerp(previous, current, clamp_factor)

    def filter(
        self,
        quats: HandQuaternions | None,
        timestamp: float | None = None,
        side: str = "right",
    ) -> HandQuaternions | None:
        if quats is None:
            return None
        side = side_key(side) if side in ("Left", "Right") else side
        current = dict(quats.items())

        previous = self.previous.get(side)
        previous_timestamp = self.previous_timestamps.get(side)
        if previous is None:
            self.previous[side] = current
            self.previous_timestamps[side] = timestamp
            return quats

        delta_time = self.DEFAULT_DELTA_TIME
        if timestamp is not None and previous_timestamp is not None:
            delta_time = float(np.clip(timestamp - previous_timestamp, self.MIN_DELTA_TIME, self.MAX_DELTA_TIME))

        filtered: dict[str, np.ndarray] = {}
        for slot, q in current.items():
            prev = previous.get(slot)
            if prev is None:
                filtered[slot] = quat_normalize(q)
                continue
            limited = self.limit_velocity(q, prev, delta_time)
            filtered[slot] = quat_slerp(prev, limited, self.alpha)

        self.previous[side] = filtered
        self.previous_timestamps[side] = timestamp
        return HandQuaternions.from_items(filtered)
