"""Semantic joint groups and dispatch of joint values onto a target model.

A target model exposes single-DOF joints with arbitrary names. Joints named
``<base>_<pitch|yaw|roll>`` are grouped under ``<base>``; every other movable
joint becomes its own group, labelled by the dominant component of its axis.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .joint_graph import JointGraph, MimicSpec
from .landmarks import JointValue
from .targets import TargetModel
from .tracing import Tracer, default_tracer

logger = logging.getLogger(__name__)

_MULTI_AXIS_PATTERN = re.compile(r"^(.+)_(pitch|yaw|roll)$", re.IGNORECASE)


def get_axis_name(axis: Iterable[float] | None) -> str:
    """Label an axis by its largest absolute component: x -> roll, y -> pitch, z -> yaw.

    Ties and malformed axes default to 'pitch'.
    """
    if axis is None:
        return "pitch"
    components = np.abs(np.asarray(list(axis), dtype=float))
    if components.shape != (3,):
        return "pitch"
    x, y, z = components
    if x > y and x > z:
        return "roll"
    if y > x and y > z:
        return "pitch"
    if z > x and z > y:
        return "yaw"
    return "pitch"


@dataclass
class SemanticGroup:
    """One control-facing joint, possibly spanning several target joints."""

    name: str
    axes: list[str] = field(default_factory=list)
    urdf_joints: dict[str, str] = field(default_factory=dict)  # axis -> joint name
    limits: dict[str, tuple[float, float]] = field(default_factory=dict)
    mimics: dict[str, MimicSpec] = field(default_factory=dict)  # axis -> mimic carried by that joint

    @property
    def primary_axis(self) -> str:
        """Axis a scalar (flexion) value drives: pitch when present, else the first axis."""
        if "pitch" in self.axes or not self.axes:
            return "pitch"
        return self.axes[0]

    @property
    def is_multi_axis(self) -> bool:
        return len(self.axes) > 1


def create_semantic_mapping(graph: JointGraph) -> dict[str, SemanticGroup]:
    """Group the movable joints of ``graph`` into semantic entries (fixed joints are dropped)."""
    mapping: dict[str, SemanticGroup] = {}

    for joint in graph.movable():
        match = _MULTI_AXIS_PATTERN.match(joint.name)
        if match:
            base, axis = match.group(1), match.group(2).lower()
        else:
            base, axis = joint.name, get_axis_name(joint.axis)

        group = mapping.setdefault(base, SemanticGroup(name=base))
        if axis in group.urdf_joints:
            logger.warning("Semantic group '%s' already has a %s joint, ignoring '%s'", base, axis, joint.name)
            continue
        group.axes.append(axis)
        group.urdf_joints[axis] = joint.name
        group.limits[axis] = joint.limit
        if joint.mimic is not None:
            group.mimics[axis] = joint.mimic

    return mapping


_FINGER_PATTERNS = {
    "thumb": ("thumb", "thj", "th_"),
    "index": ("index", "ffj", "if_", "ff_"),
    "middle": ("middle", "mfj", "mf_"),
    "ring": ("ring", "rfj", "rf_"),
    "pinky": ("pinky", "lfj", "lf_", "little"),
}

_SEGMENT_PATTERNS = {
    "mcp": ("mcp", "cmc", "j5", "j4", "metacarpal"),
    "pip": ("pip", "j3", "proximal"),
    "dip": ("dip", "j2", "j1", "distal"),
    "tip": ("tip", "j0"),
}


def infer_landmark_joint_name(urdf_name: str) -> str | None:
    """Guess the landmark-side joint name (``thumb_mcp``, ``wrist`` ...) of a target joint.

    Understands descriptive names (``index_pip``) as well as Shadow-style
    ``FFJ3`` / ``THJ5`` names. Returns None when nothing matches.
    """
    lower = urdf_name.lower()
    if "wrist" in lower or "wr_" in lower or lower == "wj":
        return "wrist"

    finger = next((name for name, patterns in _FINGER_PATTERNS.items() if any(p in lower for p in patterns)), None)
    segment = next((name for name, patterns in _SEGMENT_PATTERNS.items() if any(p in lower for p in patterns)), None)
    if finger and segment:
        return f"{finger}_{segment}"
    return None


def create_landmark_to_semantic_map(mapping: dict[str, SemanticGroup]) -> dict[str, str]:
    """Map landmark-side joint names to semantic group names.

    Semantic names always map to themselves; an inferred name is bound to the
    first group that produces it.
    """
    name_map: dict[str, str] = {name: name for name in mapping}
    for semantic_name, group in mapping.items():
        first_joint = next(iter(group.urdf_joints.values()), None)
        if first_joint is None:
            continue
        inferred = infer_landmark_joint_name(first_joint)
        if inferred is not None and inferred not in mapping:
            name_map.setdefault(inferred, semantic_name)
    return name_map


class SemanticJointMapper:
    """Dispatches joint values onto a target model through its semantic groups.

    Mimic joints are never written directly: each write to a joint is followed
    by ``multiplier * value + offset`` on every joint that mimics it, clamped
    to that joint's own limit.
    """

    def __init__(self, graph: JointGraph, tracer: Tracer | None = None) -> None:
        self.graph = graph
        self.tracer = default_tracer(tracer, logger)
        self.mapping = create_semantic_mapping(graph)
        self.landmark_map = create_landmark_to_semantic_map(self.mapping)

        self._joint_groups = {
            joint: (group.name, axis) for group in self.mapping.values() for axis, joint in group.urdf_joints.items()
        }

        self._followers: dict[str, list[str]] = {}
        for joint in graph.mimic_joints():
            if joint.mimic is not None:
                self._followers.setdefault(joint.mimic.joint, []).append(joint.name)

    def resolve(self, name: str, name_map: dict[str, str] | None = None) -> SemanticGroup | None:
        resolved = self.resolve_target(name, name_map)
        return resolved[0] if resolved is not None else None

    def resolve_target(self, name: str, name_map: dict[str, str] | None = None) -> tuple[SemanticGroup, str] | None:
        """Find the semantic group for ``name`` and the axis a scalar value should drive.

        ``name_map`` values may be semantic names or raw target joint names; a raw
        joint name selects that joint's axis inside its group.
        """
        if name_map and name in name_map:
            name = name_map[name]
        elif name not in self.mapping:
            name = self.landmark_map.get(name, name)

        group = self.mapping.get(name)
        if group is not None:
            return group, group.primary_axis
        if name in self._joint_groups:
            group_name, axis = self._joint_groups[name]
            return self.mapping[group_name], axis
        return None

    def dispatch(
        self,
        name: str,
        value: JointValue,
        adapter: TargetModel,
        name_map: dict[str, str] | None = None,
    ) -> dict[str, float]:
        """Write one joint value to ``adapter``.

        Args:
            name: Semantic (or landmark-side) joint name
            value: Scalar for the group's primary axis, or ``{axis: radians}``
            adapter: Target model receiving the values
            name_map: Optional explicit name -> semantic name overrides

        Returns:
            Every target joint written, including mimic followers
        """
        resolved = self.resolve_target(name, name_map)
        if resolved is None:
            self.tracer.event("mapper.skip", joint=name, reason="no semantic entry")
            self.tracer.count("mapper.unknown_joint")
            return {}

        group, scalar_axis = resolved
        axis_values = value if isinstance(value, dict) else {scalar_axis: value}
        written: dict[str, float] = {}

        for axis, raw in axis_values.items():
            joint_name = group.urdf_joints.get(axis)
            if joint_name is None:
                continue
            spec = self.graph.get(joint_name)
            if spec is None or joint_name not in adapter.joint_graph:
                self.tracer.event("mapper.skip", joint=joint_name, reason="missing target joint")
                continue
            if spec.mimic is not None:
                self.tracer.event("mapper.skip", joint=joint_name, reason=f"driven by mimic of {spec.mimic.joint}")
                continue
            if not np.isfinite(raw):
                self.tracer.event("mapper.skip", joint=joint_name, reason="non-finite value")
                continue

            lower, upper = group.limits.get(axis, spec.limit)
            clamped = float(min(upper, max(lower, raw)))
            adapter.set_joint_value(joint_name, clamped)
            written[joint_name] = clamped
            self._propagate(joint_name, clamped, adapter, written)

        return written

    def _propagate(self, master: str, value: float, adapter: TargetModel, written: dict[str, float]) -> None:
        for follower in self._followers.get(master, []):
            if follower in written or follower not in adapter.joint_graph:
                continue
            spec = self.graph[follower]
            if spec.mimic is None:
                continue
            mimic_value = spec.clamp(spec.mimic.apply(value))
            adapter.set_joint_value(follower, mimic_value)
            written[follower] = mimic_value
            self.tracer.event("mapper.mimic", master=master, joint=follower, value=mimic_value)
            self._propagate(follower, mimic_value, adapter, written)

    def dispatch_all(
        self,
        values: dict[str, JointValue],
        adapter: TargetModel,
        name_map: dict[str, str] | None = None,
    ) -> dict[str, float]:
        """Dispatch every value; a failing joint is traced and skipped."""
        written: dict[str, float] = {}
        for name, value in values.items():
            try:
                written.update(self.dispatch(name, value, adapter, name_map))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping joint '%s': %s", name, e)
                self.tracer.count("mapper.failed_joint")
        return written

    def map_to_multi_dof(
        self,
        rotations: dict[str, JointValue],
        name_map: dict[str, str] | None = None,
    ) -> dict[str, dict[str, float]]:
        """Re-key landmark-side values by semantic group, one value per group axis.

        Multi-axis values fill every group axis (missing axes become 0); scalars
        go to the primary axis (or the axis of an explicitly mapped joint).
        Unmapped joints are dropped.
        """
        result: dict[str, dict[str, float]] = {}
        for name, value in rotations.items():
            resolved = self.resolve_target(name, name_map)
            if resolved is None:
                self.tracer.event("mapper.unmapped", joint=name)
                continue
            group, scalar_axis = resolved
            axes = result.setdefault(group.name, {})
            if isinstance(value, dict):
                axes.update({axis: float(value.get(axis, 0.0)) for axis in group.axes})
            else:
                axes[scalar_axis] = float(value)
        return result

    def convert_single_axis(self, values: dict[str, float]) -> dict[str, dict[str, float]]:
        """Wrap scalar values of known semantic names as ``{primary_axis: value}``."""
        return {
            name: {self.mapping[name].primary_axis: float(value)}
            for name, value in values.items()
            if name in self.mapping
        }

    def clamp_to_limits(self, rotations: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
        clamped: dict[str, dict[str, float]] = {}
        for name, axes in rotations.items():
            group = self.mapping.get(name)
            if group is None:
                clamped[name] = dict(axes)
                continue
            clamped[name] = {}
            for axis, value in axes.items():
                if axis in group.limits:
                    lower, upper = group.limits[axis]
                    value = min(upper, max(lower, value))
                clamped[name][axis] = value
        return clamped

    def debug_info(self, inputs: dict[str, Any], outputs: dict[str, Any] | None = None) -> dict[str, Any]:
        outputs = outputs if outputs is not None else self.map_to_multi_dof(inputs)
        resolved = {name for name in inputs if self.resolve(name) is not None}
        return {
            "input_joint_count": len(inputs),
            "output_joint_count": len(outputs),
            "semantic_groups": len(self.mapping),
            "multi_axis_groups": sum(1 for group in self.mapping.values() if group.is_multi_axis),
            "unmapped_joints": sorted(set(inputs) - resolved),
            "mapping_success": (len(resolved) / len(inputs)) if inputs else 0.0,
        }
