"""Tests for smoothing, velocity limiting and anatomical constraints."""

import numpy as np
import pytest

from handmimic.filters import (
    ExponentialMovingAverageFilter,
    JointConstraints,
    MotionFilter,
    MotionFilterConfig,
    QuaternionMotionFilter,
    VelocityLimiter,
)
from handmimic.geometry import IDENTITY_QUAT, quat_angle_to, quat_from_axis_angle
from handmimic.orientation import HandQuaternions


def test_ema_first_value_passes_through() -> None:
    ema = ExponentialMovingAverageFilter(alpha=0.5)

    assert ema.filter("index_mcp", 1.0) == 1.0
    assert ema.filter("index_mcp", 0.0) == pytest.approx(0.5)
    assert ema.filter("index_mcp", 0.0) == pytest.approx(0.25)


def test_ema_alpha_is_clamped() -> None:
    assert ExponentialMovingAverageFilter(alpha=3.0).alpha == 1.0
    assert ExponentialMovingAverageFilter(alpha=-1.0).alpha == 0.0


def test_ema_reset_one_side() -> None:
    ema = ExponentialMovingAverageFilter(alpha=0.5)
    ema.filter("index_mcp", 1.0, side="left")
    ema.filter("index_mcp", 1.0, side="right")

    ema.reset("left")

    assert ema.filter("index_mcp", 0.0, side="left") == 0.0
    assert ema.filter("index_mcp", 0.0, side="right") == pytest.approx(0.5)


def test_velocity_limiter_caps_step() -> None:
    limiter = VelocityLimiter(max_velocity=1.0)

    assert limiter.limit("index_pip", 0.0, timestamp=0.0) == 0.0
    assert limiter.limit("index_pip", 1.0, timestamp=0.1) == pytest.approx(0.1)
    assert limiter.limit("index_pip", -1.0, timestamp=0.2) == pytest.approx(0.0)


def test_velocity_limiter_holds_on_non_increasing_time() -> None:
    limiter = VelocityLimiter(max_velocity=1.0)
    limiter.limit("index_pip", 0.5, timestamp=1.0)

    assert limiter.limit("index_pip", 1.5, timestamp=1.0) == 0.5
    assert limiter.limit("index_pip", 1.5, timestamp=0.5) == 0.5


@pytest.mark.parametrize("seed", range(10))
def test_velocity_limiter_bounds_every_step(seed: int) -> None:
    rng = np.random.default_rng(seed)
    max_velocity = 2.0
    limiter = VelocityLimiter(max_velocity=max_velocity)
    timestamp = 0.0
    previous = limiter.limit("index_pip", float(rng.uniform(-2.0, 2.0)), timestamp)

    for _ in range(100):
        delta_time = float(rng.uniform(0.001, 0.1))
        timestamp += delta_time
        raw = float(rng.uniform(-2.0, 2.0))

        limited = limiter.limit("index_pip", raw, timestamp)

        step = limited - previous
        assert abs(step) <= max_velocity * delta_time + 1e-12
        # Moves towards the raw sample without overshooting it
        assert min(previous, raw) - 1e-12 <= limited <= max(previous, raw) + 1e-12
        previous = limited


def test_constraints_clamp_then_couple() -> None:
    constraints = JointConstraints()

    result = constraints.constrain({"index_pip": 3.0, "index_dip": 0.2, "index_tip": 0.0, "index_mcp": -1.0})

    assert result["index_pip"] == pytest.approx(1.75)
    assert result["index_dip"] == pytest.approx(1.75 * 0.67)
    assert result["index_tip"] == pytest.approx(1.75 * 0.67 * 0.5)
    assert result["index_mcp"] == 0.0


def test_constraints_need_both_coupled_joints() -> None:
    result = JointConstraints().constrain({"index_pip": 1.0})

    assert result == {"index_pip": 1.0}


def test_constraints_on_multi_axis_values_touch_pitch_only() -> None:
    values = {"index_pip": {"pitch": 3.0, "yaw": 2.0}, "index_dip": {"pitch": 0.0, "roll": -2.0}}

    result = JointConstraints().constrain(values)

    assert result["index_pip"] == {"pitch": pytest.approx(1.75), "yaw": 2.0}
    assert result["index_dip"] == {"pitch": pytest.approx(1.75 * 0.67), "roll": -2.0}
    # Input is not modified
    assert values["index_pip"]["pitch"] == 3.0


def test_constraints_reject_inverted_limit() -> None:
    with pytest.raises(ValueError):
        JointConstraints().set_limit("index_mcp", 1.0, 0.0)


def test_motion_filter_stage_order() -> None:
    motion_filter = MotionFilter(MotionFilterConfig(alpha=0.5, max_velocity=1.0))
    motion_filter.filter({"index_pip": 0.0}, timestamp=0.0)

    joints, _ = motion_filter.filter({"index_pip": 1.0}, timestamp=0.1)

    # Smoothing gives 0.5, velocity limiting then allows only 0.1
    assert joints["index_pip"] == pytest.approx(0.1)


def test_motion_filter_keeps_sides_apart() -> None:
    motion_filter = MotionFilter(MotionFilterConfig(alpha=0.1))
    motion_filter.filter({"index_mcp": 1.0}, timestamp=0.0, side="left")

    joints, _ = motion_filter.filter({"index_mcp": 0.2}, timestamp=0.0, side="Right")

    assert joints["index_mcp"] == pytest.approx(0.2)


def test_motion_filter_wrist_is_not_constrained() -> None:
    motion_filter = MotionFilter()

    joints, wrist = motion_filter.filter({"wrist": 2.0}, timestamp=0.0, wrist={"pitch": 2.0, "yaw": -2.0, "roll": 0.0})

    assert joints["wrist"] == pytest.approx(0.5)
    assert wrist == {"pitch": 2.0, "yaw": -2.0, "roll": 0.0}


def test_motion_filter_configure_disables_stages() -> None:
    motion_filter = MotionFilter()
    motion_filter.configure(smoothing=False, velocity_limiting=False, constraints=False)
    motion_filter.filter({"index_mcp": 0.0}, timestamp=0.0)

    joints, wrist = motion_filter.filter({"index_mcp": 5.0}, timestamp=0.001)

    assert joints["index_mcp"] == 5.0
    assert wrist is None


def test_motion_filter_reset_forgets_history() -> None:
    motion_filter = MotionFilter(MotionFilterConfig(alpha=0.1))
    motion_filter.filter({"index_mcp": 1.0}, timestamp=0.0, side="left")

    motion_filter.reset("Left")
    joints, _ = motion_filter.filter({"index_mcp": 0.2}, timestamp=0.0, side="left")

    assert joints["index_mcp"] == pytest.approx(0.2)


def test_motion_filter_config_validation_and_file(tmp_path) -> None:
    with pytest.raises(ValueError):
        MotionFilterConfig(alpha=1.5)
    with pytest.raises(ValueError):
        MotionFilterConfig(max_velocity=-1.0)

    config = MotionFilterConfig(alpha=0.6, enable_constraints=False)
    path = str(tmp_path / "filter.json")
    config.save_config(path)

    assert MotionFilterConfig.load_config(path) == config


def wrist_only(q: np.ndarray) -> HandQuaternions:
    return HandQuaternions(wrist=q)


@pytest.mark.parametrize(
    "timestamps, expected",
    [
        ((0.0, 0.1), 0.5),
        # Gaps are clamped to 0.1 s
        ((0.0, 10.0), 0.5),
        # Missing timestamps fall back to 0.016 s
        ((None, None), 5.0 * 0.016),
    ],
)
def test_quaternion_filter_limits_angular_velocity(timestamps, expected: float) -> None:
    quaternion_filter = QuaternionMotionFilter(alpha=1.0, max_angular_velocity=5.0)
    quaternion_filter.filter(wrist_only(IDENTITY_QUAT.copy()), timestamps[0])

    filtered = quaternion_filter.filter(wrist_only(quat_from_axis_angle([0.0, 0.0, 1.0], np.pi / 2)), timestamps[1])

    assert quat_angle_to(filtered.wrist, IDENTITY_QUAT) == pytest.approx(expected, abs=1e-6)


def test_quaternion_filter_smooths_after_limiting() -> None:
    quaternion_filter = QuaternionMotionFilter(alpha=0.5, max_angular_velocity=100.0)
    quaternion_filter.filter(wrist_only(IDENTITY_QUAT.copy()), 0.0)

    filtered = quaternion_filter.filter(wrist_only(quat_from_axis_angle([1.0, 0.0, 0.0], 0.4)), 0.1)

    assert quat_angle_to(filtered.wrist, IDENTITY_QUAT) == pytest.approx(0.2, abs=1e-6)


def test_quaternion_filter_passes_none_and_resets() -> None:
    quaternion_filter = QuaternionMotionFilter(alpha=0.1)
    assert quaternion_filter.filter(None) is None

    quaternion_filter.filter(wrist_only(IDENTITY_QUAT.copy()), 0.0, side="Left")
    quaternion_filter.reset("left")
    target = quat_from_axis_angle([1.0, 0.0, 0.0], 0.4)
    filtered = quaternion_filter.filter(wrist_only(target), 0.1, side="left")

    np.testing.assert_allclose(filtered.wrist, target)
