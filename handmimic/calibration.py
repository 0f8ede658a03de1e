"""Rest-pose calibration with pluggable persistence.

The user holds a relaxed open hand, :meth:`CalibrationManager.calibrate`
captures the reading and later readings have it subtracted. Persistence goes
through a :class:`CalibrationStore`; the file-backed store writes on a
background worker so the per-frame path never waits on disk.
"""

import copy
import json
import logging
import re
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Protocol

from .landmarks import JointValue, side_key

logger = logging.getLogger(__name__)

CALIBRATION_KEY = "handmimic_calibration"

# Records older than this are discarded on load
MAX_AGE_SECONDS = 7 * 24 * 60 * 60


class CalibrationStore(Protocol):
    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, record: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCalibrationStore:
    """Dictionary-backed store, mostly for tests."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        record = self.records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def save(self, key: str, record: dict[str, Any]) -> None:
        self.records[key] = copy.deepcopy(record)

    def delete(self, key: str) -> None:
        self.records.pop(key, None)


class JsonFileCalibrationStore:
    """One JSON file per key under ``directory``.

    Writes and deletes are queued on a single worker thread, so they apply in
    order. A failed write is logged and otherwise ignored.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="calibration-store")
        self._pending: list[Future] = []

    def path_for(self, key: str) -> Path:
        return self.directory / f"{re.sub(r'[^A-Za-z0-9_.-]', '_', key)}.json"

    def load(self, key: str) -> dict[str, Any] | None:
        self.flush()
        path = self.path_for(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def save(self, key: str, record: dict[str, Any]) -> None:
        # Serialize now so later mutations of ``record`` are not persisted
        payload = json.dumps(record, indent=2)
        self._submit(self._write, self.path_for(key), payload)

    def delete(self, key: str) -> None:
        self._submit(self.path_for(key).unlink, missing_ok=True)

    def flush(self, timeout: float | None = None) -> None:
        """Block until queued writes and deletes have finished."""
        pending, self._pending = self._pending, []
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(self._log_failure)
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(future)

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            f.write(payload)
        tmp_path.replace(path)

    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Failed to persist calibration: %s", error)


def _is_flexion_only(joint: str) -> bool:
    return joint != "wrist" and "_" in joint


def _subtract(joint: str, raw: JointValue, offset: JointValue | None) -> JointValue:
    floor = _is_flexion_only(joint)
    if isinstance(raw, dict):
        calibrated = {}
        for axis, value in raw.items():
            axis_offset = offset.get(axis, 0.0) if isinstance(offset, dict) else 0.0
            calibrated[axis] = value - axis_offset
            if floor and axis == "pitch":
                calibrated[axis] = max(0.0, calibrated[axis])
        return calibrated

    if isinstance(offset, dict):
        offset = offset.get("pitch", 0.0)
    value = raw - (offset or 0.0)
    return max(0.0, value) if floor else value


class CalibrationManager:
    """Per-side rest-pose offsets, persisted through a :class:`CalibrationStore`.

    Args:
        store: Persistence backend; defaults to an in-memory store
        key: Storage key prefix, the side is appended (``<key>:left``)
        max_age: Records older than this many seconds are discarded on load
        clock: Returns the current time in seconds
        autoload: Load both sides from the store on construction
    """

    def __init__(
        self,
        store: CalibrationStore | None = None,
        key: str = CALIBRATION_KEY,
        max_age: float = MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
        autoload: bool = True,
    ) -> None:
        self.store = store if store is not None else InMemoryCalibrationStore()
        self.key = key
        self.max_age = max_age
        self.clock = clock

        self.offsets: dict[str, dict[str, JointValue]] = {}
        self.rest_pose: dict[str, dict[str, JointValue]] = {}
        self.timestamps: dict[str, float] = {}

        if autoload:
            for side in ("left", "right"):
                self.load(side)

    def storage_key(self, side: str) -> str:
        return f"{self.key}:{_side(side)}"

    def is_calibrated(self, side: str = "Right") -> bool:
        return bool(self.offsets.get(_side(side)))

    def calibrate(self, angles: dict[str, JointValue], side: str = "Right") -> bool:
        """Capture ``angles`` as the rest pose of ``side``.

        Returns:
            False (and changes nothing) when ``angles`` is empty, True otherwise
        """
        if not angles:
            logger.warning("Cannot calibrate: no joint angles provided")
            return False

        side = _side(side)
        snapshot = copy.deepcopy(dict(angles))
        self.offsets[side] = snapshot
        self.rest_pose[side] = copy.deepcopy(snapshot)
        self.timestamps[side] = self.clock()
        self.save(side)
        logger.info("Calibrated %s hand (%d joints)", side, len(snapshot))
        return True

    def apply_calibration(self, raw: dict[str, JointValue], side: str = "Right") -> dict[str, JointValue]:
        """Subtract the stored offsets from ``raw``.

        Flexion-only joints (any name with an underscore except ``wrist``) are
        floored at zero; for multi-axis values only ``pitch`` is floored.
        """
        offsets = self.offsets.get(_side(side))
        if not offsets:
            return raw
        return {joint: _subtract(joint, value, offsets.get(joint)) for joint, value in raw.items()}

    def reset_calibration(self, side: str | None = None) -> None:
        sides = ("left", "right") if side is None else (_side(side),)
        for current in sides:
            self.offsets.pop(current, None)
            self.rest_pose.pop(current, None)
            self.timestamps.pop(current, None)
            try:
                self.store.delete(self.storage_key(current))
            except Exception as e:
                logger.error("Failed to delete calibration for %s hand: %s", current, e)
        logger.info("Calibration reset (%s)", ", ".join(sides))

    def save(self, side: str = "Right") -> None:
        side = _side(side)
        if side not in self.offsets:
            return
        record = {
            "offsets": self.offsets[side],
            "restPose": self.rest_pose.get(side),
            "timestamp": int(self.timestamps.get(side, self.clock()) * 1000),
        }
        try:
            self.store.save(self.storage_key(side), record)
        except Exception as e:
            logger.error("Failed to save calibration for %s hand: %s", side, e)

    def load(self, side: str = "Right") -> bool:
        """Restore ``side`` from the store.

        Expired or unreadable records leave the side uncalibrated (expired ones are
        deleted). Never raises.
        """
        side = _side(side)
        try:
            record = self.store.load(self.storage_key(side))
        except Exception as e:
            logger.error("Failed to load calibration for %s hand: %s", side, e)
            return False
        if record is None:
            return False

        try:
            saved_at = float(record.get("timestamp", 0)) / 1000.0
            offsets = dict(record.get("offsets") or {})
            rest_pose = dict(record.get("restPose") or offsets)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Discarding malformed calibration record for %s hand: %s", side, e)
            self.reset_calibration(side)
            return False

        if self.clock() - saved_at > self.max_age:
            logger.info("Calibration for %s hand expired, removing", side)
            self.reset_calibration(side)
            return False

        if not offsets:
            return False
        self.offsets[side] = offsets
        self.rest_pose[side] = rest_pose
        self.timestamps[side] = saved_at
        logger.info("Calibration for %s hand loaded from storage", side)
        return True

    def get_status(self, side: str = "Right") -> dict[str, Any]:
        side = _side(side)
        return {
            "is_calibrated": self.is_calibrated(side),
            "joint_count": len(self.offsets.get(side, {})),
            "rest_pose": self.rest_pose.get(side),
            "timestamp": self.timestamps.get(side),
        }

    def export_calibration(self, side: str = "Right") -> dict[str, Any]:
        side = _side(side)
        return {
            "offsets": copy.deepcopy(self.offsets.get(side, {})),
            "restPose": copy.deepcopy(self.rest_pose.get(side)),
            "isCalibrated": self.is_calibrated(side),
        }

    def import_calibration(self, data: dict[str, Any], side: str = "Right") -> bool:
        if not isinstance(data, dict) or not data.get("offsets"):
            logger.error("Invalid calibration data")
            return False
        side = _side(side)
        self.offsets[side] = copy.deepcopy(dict(data["offsets"]))
        self.rest_pose[side] = copy.deepcopy(dict(data.get("restPose") or data["offsets"]))
        self.timestamps[side] = self.clock()
        self.save(side)
        return True


def _side(side: str) -> str:
    return side_key(side) if side in ("Left", "Right") else side.lower()


def mirror_rotations(rotations: dict[str, JointValue], source_hand: str, target_hand: str) -> dict[str, JointValue]:
    """Re-express rotations for the opposite hand: flexion is kept, yaw (abduction) is negated."""
    if source_hand == target_hand:
        return rotations
    mirrored: dict[str, JointValue] = {}
    for joint, value in rotations.items():
        if isinstance(value, dict):
            mirrored[joint] = {axis: -v if axis == "yaw" else v for axis, v in value.items()}
        else:
            mirrored[joint] = value
    return mirrored


def scale_rotations(rotations: dict[str, JointValue], scale: float = 1.0) -> dict[str, JointValue]:
    """Sensitivity adjustment; 1.0 leaves values unchanged."""
    return {
        joint: {axis: v * scale for axis, v in value.items()} if isinstance(value, dict) else value * scale
        for joint, value in rotations.items()
    }


def apply_dead_zone(rotations: dict[str, JointValue], threshold: float = 0.05) -> dict[str, JointValue]:
    """Zero out values whose magnitude is below ``threshold`` radians."""

    def _zone(v: float) -> float:
        return 0.0 if abs(v) < threshold else v

    return {
        joint: {axis: _zone(v) for axis, v in value.items()} if isinstance(value, dict) else _zone(value)
        for joint, value in rotations.items()
    }

