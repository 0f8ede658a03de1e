"""Typed joint table of a target hand model.

The graph is resolved once when a model is loaded (URDF text/file, MuJoCo
``MjModel`` or plain dictionaries), so per-frame code never has to inspect
arbitrary objects for joint-like attributes.
"""

import logging
import math
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import mujoco
import numpy as np

from .geometry import matrix_to_rpy, quat_to_matrix, rpy_to_matrix
from .landmarks import EPS

logger = logging.getLogger(__name__)

UNBOUNDED: tuple[float, float] = (-math.inf, math.inf)

# Joint types that carry a single actuated DOF
MOVABLE_TYPES = ("revolute", "continuous", "prismatic")


@dataclass(frozen=True)
class MimicSpec:
    """``value = multiplier * master + offset``."""

    joint: str
    multiplier: float = 1.0
    offset: float = 0.0

    def apply(self, master_value: float) -> float:
        return self.multiplier * master_value + self.offset


@dataclass(frozen=True, eq=False)
class JointSpec:
    """One joint of the target model.

    The axis is stored normalized but is not required to be aligned with any
    cardinal direction.
    """

    name: str
    type: str = "revolute"
    parent: str | None = None  # parent link
    child: str | None = None  # child link
    axis: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    limit: tuple[float, float] = UNBOUNDED
    mimic: MimicSpec | None = None
    origin_xyz: np.ndarray = field(default_factory=lambda: np.zeros(3))
    origin_rpy: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        axis = np.asarray(self.axis, dtype=float).reshape(3)
        norm = float(np.linalg.norm(axis))
        if not np.isfinite(norm) or norm < EPS:
            raise ValueError(f"Joint '{self.name}' has a zero or non-finite axis")
        lower, upper = (float(self.limit[0]), float(self.limit[1]))
        if lower > upper:
            raise ValueError(f"Joint '{self.name}' has lower limit {lower} above upper limit {upper}")
        object.__setattr__(self, "axis", axis / norm)
        object.__setattr__(self, "limit", (lower, upper))
        object.__setattr__(self, "origin_xyz", np.asarray(self.origin_xyz, dtype=float).reshape(3))
        object.__setattr__(self, "origin_rpy", np.asarray(self.origin_rpy, dtype=float).reshape(3))

    @property
    def is_movable(self) -> bool:
        return self.type in MOVABLE_TYPES

    @property
    def is_limited(self) -> bool:
        return math.isfinite(self.limit[0]) or math.isfinite(self.limit[1])

    def clamp(self, value: float) -> float:
        lower, upper = self.limit
        return float(min(upper, max(lower, value)))


class JointGraph:
    """Joint table keyed by name, validated at construction.

    Raises:
        ValueError: on duplicate joint names or a mimic whose master is missing
    """

    def __init__(self, joints: Iterable[JointSpec]) -> None:
        self._joints: dict[str, JointSpec] = {}
        for joint in joints:
            if joint.name in self._joints:
                raise ValueError(f"Duplicate joint name '{joint.name}'")
            self._joints[joint.name] = joint

        for joint in self._joints.values():
            if joint.mimic is None:
                continue
            if joint.mimic.joint == joint.name:
                raise ValueError(f"Joint '{joint.name}' mimics itself")
            if joint.mimic.joint not in self._joints:
                raise ValueError(f"Joint '{joint.name}' mimics unknown joint '{joint.mimic.joint}'")

        self._by_child_link = {joint.child: joint for joint in self._joints.values() if joint.child}

    def __contains__(self, name: object) -> bool:
        return name in self._joints

    def __getitem__(self, name: str) -> JointSpec:
        return self._joints[name]

    def __iter__(self) -> Iterator[JointSpec]:
        return iter(self._joints.values())

    def __len__(self) -> int:
        return len(self._joints)

    def get(self, name: str) -> JointSpec | None:
        return self._joints.get(name)

    def names(self) -> list[str]:
        return list(self._joints)

    def movable(self) -> list[JointSpec]:
        """Actuated joints in declaration order (fixed joints dropped)."""
        return [joint for joint in self._joints.values() if joint.is_movable]

    def mimic_joints(self) -> list[JointSpec]:
        return [joint for joint in self._joints.values() if joint.mimic is not None]

    def parent_joint(self, name: str) -> JointSpec | None:
        """Joint whose child link is this joint's parent link."""
        joint = self._joints[name]
        if joint.parent is None:
            return None
        return self._by_child_link.get(joint.parent)

    def path_to_root(self, name: str) -> list[JointSpec]:
        """Joints from the root down to ``name`` (inclusive)."""
        path: list[JointSpec] = []
        seen: set[str] = set()
        current: JointSpec | None = self._joints[name]
        while current is not None and current.name not in seen:
            seen.add(current.name)
            path.append(current)
            current = self.parent_joint(current.name)
        path.reverse()
        return path

    def axis_in_root_frame(self, name: str) -> np.ndarray:
        """Joint axis rotated through the origin RPY of every joint above it, at zero pose."""
        rotation = np.eye(3)
        for joint in self.path_to_root(name):
            rotation = rotation @ rpy_to_matrix(joint.origin_rpy)
        return rotation @ self._joints[name].axis

    def chain(self, names: Iterable[str]) -> list[JointSpec]:
        """The named joints that exist in this graph, in the given order."""
        return [self._joints[name] for name in names if name in self._joints]

    @classmethod
    def from_dicts(cls, joints: Iterable[dict[str, Any]]) -> "JointGraph":
        """Build a graph from plain dictionaries.

        Each dictionary carries ``name`` and optionally ``type``, ``parent``,
        ``child``, ``axis``, ``limit`` (``[lower, upper]`` or ``None``),
        ``mimic`` (``{"joint", "multiplier", "offset"}``), ``origin_xyz`` and
        ``origin_rpy``.
        """
        specs = []
        for data in joints:
            mimic = data.get("mimic")
            limit = data.get("limit")
            specs.append(
                JointSpec(
                    name=data["name"],
                    type=data.get("type", "revolute"),
                    parent=data.get("parent"),
                    child=data.get("child"),
                    axis=np.asarray(data.get("axis", [1.0, 0.0, 0.0]), dtype=float),
                    limit=tuple(limit) if limit is not None else UNBOUNDED,
                    mimic=MimicSpec(
                        joint=mimic["joint"],
                        multiplier=float(mimic.get("multiplier", 1.0)),
                        offset=float(mimic.get("offset", 0.0)),
                    )
                    if mimic
                    else None,
                    origin_xyz=np.asarray(data.get("origin_xyz", [0.0, 0.0, 0.0]), dtype=float),
                    origin_rpy=np.asarray(data.get("origin_rpy", [0.0, 0.0, 0.0]), dtype=float),
                )
            )
        return cls(specs)

    @classmethod
    def from_urdf(cls, source: str | Path) -> "JointGraph":
        """Parse the ``<joint>`` elements of a URDF document.

        Args:
            source: URDF XML text or a path to a URDF file
        """
        if isinstance(source, Path) or not source.lstrip().startswith("<"):
            root = ET.parse(source).getroot()
        else:
            root = ET.fromstring(source)

        specs = []
        for element in root.iter("joint"):
            name = element.get("name")
            if not name:
                logger.warning("Skipping URDF joint without a name")
                continue
            joint_type = element.get("type", "fixed")

            parent = element.find("parent")
            child = element.find("child")
            origin = element.find("origin")
            axis = element.find("axis")
            limit = element.find("limit")
            mimic = element.find("mimic")

            if joint_type == "continuous" or limit is None:
                bounds = UNBOUNDED
            else:
                bounds = (float(limit.get("lower", 0.0)), float(limit.get("upper", 0.0)))

            specs.append(
                JointSpec(
                    name=name,
                    type=joint_type,
                    parent=parent.get("link") if parent is not None else None,
                    child=child.get("link") if child is not None else None,
                    axis=_parse_vector(axis.get("xyz") if axis is not None else None, "1 0 0"),
                    limit=bounds,
                    mimic=MimicSpec(
                        joint=mimic.get("joint", ""),
                        multiplier=float(mimic.get("multiplier", 1.0)),
                        offset=float(mimic.get("offset", 0.0)),
                    )
                    if mimic is not None
                    else None,
                    origin_xyz=_parse_vector(origin.get("xyz") if origin is not None else None, "0 0 0"),
                    origin_rpy=_parse_vector(origin.get("rpy") if origin is not None else None, "0 0 0"),
                )
            )

        logger.info("Parsed %d joints from URDF", len(specs))
        return cls(specs)

    @classmethod
    def from_mujoco(cls, model: mujoco.MjModel) -> "JointGraph":
        """Read hinge/slide joints and joint-equality mimics from a ``mujoco.MjModel``.

        A joint equality ``obj1 = data[0] + data[1] * obj2`` becomes a mimic of
        ``obj1`` on ``obj2`` with ``offset=data[0]`` and ``multiplier=data[1]``.
        """
        mimics: dict[int, MimicSpec] = {}
        for eq_id in range(model.neq):
            if int(model.eq_type[eq_id]) != int(mujoco.mjtEq.mjEQ_JOINT) or model.eq_obj2id[eq_id] < 0:
                continue
            master = mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_JOINT, model.eq_obj2id[eq_id])
            data = model.eq_data[eq_id]
            mimics[int(model.eq_obj1id[eq_id])] = MimicSpec(
                joint=master, multiplier=float(data[1]), offset=float(data[0])
            )

        type_names = {
            int(mujoco.mjtJoint.mjJNT_HINGE): "revolute",
            int(mujoco.mjtJoint.mjJNT_SLIDE): "prismatic",
        }

        specs = []
        for jnt_id in range(model.njnt):
            joint_type = type_names.get(int(model.jnt_type[jnt_id]))
            name = mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_JOINT, jnt_id)
            if joint_type is None or not name:
                logger.debug("Skipping MuJoCo joint %d (multi-DOF or unnamed)", jnt_id)
                continue

            body_id = model.jnt_bodyid[jnt_id]
            parent_id = model.body_parentid[body_id]
            limited = bool(model.jnt_limited[jnt_id])
            specs.append(
                JointSpec(
                    name=name,
                    type=joint_type,
                    parent=mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_BODY, parent_id),
                    child=mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_BODY, body_id),
                    axis=np.array(model.jnt_axis[jnt_id], dtype=float),
                    limit=tuple(float(v) for v in model.jnt_range[jnt_id]) if limited else UNBOUNDED,
                    mimic=mimics.get(jnt_id),
                    origin_xyz=np.array(model.body_pos[body_id], dtype=float),
                    origin_rpy=matrix_to_rpy(quat_to_matrix(model.body_quat[body_id])),
                )
            )

        # Mimics pointing at skipped joints cannot be honoured
        names = {spec.name for spec in specs}
        for index, spec in enumerate(specs):
            if spec.mimic is not None and spec.mimic.joint not in names:
                logger.warning("Dropping mimic of '%s' on unsupported joint '%s'", spec.name, spec.mimic.joint)
                specs[index] = JointSpec(
                    name=spec.name,
                    type=spec.type,
                    parent=spec.parent,
                    child=spec.child,
                    axis=spec.axis,
                    limit=spec.limit,
                    origin_xyz=spec.origin_xyz,
                    origin_rpy=spec.origin_rpy,
                )

        return cls(specs)


def _parse_vector(text: str | None, default: str) -> np.ndarray:
    values = (text or default).split()
    if len(values) != 3:
        raise ValueError(f"Expected three components, got '{text}'")
    return np.array([float(v) for v in values])
