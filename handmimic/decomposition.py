"""Swing-twist decomposition of joint quaternions onto target joint axes.

Real joint axes in target models are frequently not aligned to X/Y/Z, so the
angle around each axis is recovered with a swing-twist split rather than Euler
angles. Multi-DOF joints sharing one physical location (e.g. a 3-DOF thumb
base) are decomposed sequentially, clamping every step before its twist is
removed so downstream axes only see the residual rotation.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np

from .geometry import IDENTITY_QUAT, normalize, quat_conjugate, quat_from_axis_angle, quat_multiply, quat_normalize
from .joint_graph import JointGraph
from .landmarks import EPS
from .orientation import HandQuaternions
from .tracing import Tracer, default_tracer

logger = logging.getLogger(__name__)

# Kinematic order of the multi-DOF thumb base, outermost first
THUMB_CHAIN_ORDER = ("thumb_cmc_roll", "thumb_cmc_yaw", "thumb_cmc_pitch", "thumb_mcp", "thumb_ip")


def twist_quaternion(q: np.ndarray, axis: np.ndarray) -> np.ndarray:
    """Twist component of ``q`` around ``axis`` (identity when undefined)."""
    q = quat_normalize(q)
    n = normalize(axis)
    projection = float(np.dot(q[1:], n))
    twist = np.array([q[0], *(n * projection)])
    norm = np.linalg.norm(twist)
    if norm < EPS:
        # 180 degree swing perpendicular to the axis: no twist component
        return IDENTITY_QUAT.copy()
    twist = twist / norm
    if twist[0] < 0.0:
        twist = -twist
    return twist


def decompose_quaternion_around_axis(q: np.ndarray, axis: np.ndarray) -> float:
    """Signed rotation angle of ``q`` around ``axis``, in ``[-pi, pi]``.

    Args:
        q: Rotation as ``[w, x, y, z]``
        axis: Decomposition axis; any non-zero vector, need not be cardinal

    Returns:
        ``2 * atan2(|t.xyz|, t.w)`` signed by ``t.xyz . axis``, where ``t`` is the twist
    """
    n = normalize(axis)
    if not np.any(n):
        return 0.0
    twist = twist_quaternion(q, n)
    angle = 2.0 * float(np.arctan2(np.linalg.norm(twist[1:]), twist[0]))
    sign = 1.0 if float(np.dot(twist[1:], n)) >= 0.0 else -1.0
    return sign * angle


def remove_axis_rotation(q: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """``q * twist(axis, angle)^-1``: what remains of ``q`` once that twist is taken out."""
    twist = quat_from_axis_angle(axis, angle)
    return quat_normalize(quat_multiply(quat_normalize(q), quat_conjugate(twist)))


def swing_twist(q: np.ndarray, axis: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Split ``q`` into ``(swing, twist)`` with ``q == swing * twist``."""
    angle = decompose_quaternion_around_axis(q, axis)
    twist = quat_from_axis_angle(axis, angle)
    return remove_axis_rotation(q, axis, angle), twist


def extract_axis_rotation(q: np.ndarray, axis: np.ndarray) -> float:
    """Rotation of ``q`` around ``axis``.

    Cardinal and arbitrary axes go through the same swing-twist extraction, so
    ``-X`` simply yields the negated ``+X`` angle.
    """
    return decompose_quaternion_around_axis(q, axis)


@dataclass(frozen=True)
class ChainStep:
    """One DOF of a sequentially decomposed joint chain."""

    name: str
    axis: np.ndarray
    limit: tuple[float, float] = (-np.pi, np.pi)


def decompose_chain(
    q: np.ndarray,
    chain: Iterable[ChainStep | tuple[str, np.ndarray, tuple[float, float]]],
    tracer: Tracer | None = None,
) -> dict[str, float]:
    """Sequential decomposition of ``q`` through an ordered chain of axes.

    Each step extracts its angle from the remaining rotation, clamps it to
    that step's limit and removes the *clamped* twist before moving on.

    Returns:
        Dictionary of step name to clamped angle (radians)
    """
    tracer = default_tracer(tracer, logger)
    remaining = quat_normalize(q)
    angles: dict[str, float] = {}

    for step in chain:
        if not isinstance(step, ChainStep):
            step = ChainStep(*step)
        raw = decompose_quaternion_around_axis(remaining, step.axis)
        lower, upper = step.limit
        clamped = float(min(upper, max(lower, raw)))
        angles[step.name] = clamped
        remaining = remove_axis_rotation(remaining, step.axis, clamped)
        tracer.event("decompose.step", joint=step.name, raw=raw, clamped=clamped)
        if clamped != raw:
            tracer.count("decompose.clamped")

    return angles


@dataclass(frozen=True)
class JointSlot:
    """Where a target joint reads its rotation from.

    ``slot`` names a :class:`HandQuaternions` entry (``"index.mcp"``). With a
    ``parent_slot`` the rotation relative to that slot is decomposed instead of
    the absolute one. ``axis`` overrides the joint graph axis.
    """

    slot: str
    parent_slot: str | None = None
    axis: tuple[float, float, float] | None = None


@dataclass
class QuaternionJointMap:
    """Target joint name -> :class:`JointSlot`, plus fallback limits for joints absent from the graph."""

    joints: dict[str, JointSlot] = field(default_factory=dict)
    limits: dict[str, tuple[float, float]] = field(default_factory=dict)

    @classmethod
    def from_graph(cls, graph: JointGraph) -> "QuaternionJointMap":
        """Infer slots from joint names such as ``index_mcp_pitch`` or ``thumb_ip``.

        Joints handled by the thumb chain (see :func:`thumb_chain_from_graph`) are left out.
        """
        joints: dict[str, JointSlot] = {}
        for joint in graph.movable():
            if joint.name in THUMB_CHAIN_ORDER or joint.mimic is not None:
                continue
            slot = _slot_for_joint_name(joint.name)
            if slot is not None:
                joints[joint.name] = slot
        return cls(joints=joints)


_PARENT_SEGMENT = {"mcp": None, "pip": "mcp", "dip": "pip", "cmc": None, "ip": "mcp"}


def _slot_for_joint_name(name: str) -> JointSlot | None:
    tokens = name.lower().split("_")
    finger = next((token for token in tokens if token in ("thumb", "index", "middle", "ring", "pinky")), None)
    segment = next((token for token in tokens if token in _PARENT_SEGMENT), None)
    if finger is None or segment is None:
        return None
    if finger == "thumb" and segment in ("pip", "dip"):
        segment = "ip"
    if finger != "thumb" and segment in ("cmc", "ip"):
        return None
    parent = _PARENT_SEGMENT[segment]
    return JointSlot(
        slot=f"{finger}.{segment}",
        parent_slot=f"{finger}.{parent}" if parent else "wrist",
    )


# Fixed map for the Linker L6 hand: absolute quaternions against URDF axes
LINKER_L6_QUATERNION_MAP = QuaternionJointMap(
    joints={
        "thumb_cmc_roll": JointSlot("thumb.cmc", axis=(0.0, 0.0, 1.0)),
        "thumb_cmc_pitch": JointSlot("thumb.mcp", axis=(-1.0, 0.0, 0.0)),
        "thumb_dip": JointSlot("thumb.ip", axis=(-1.0, 0.0, 0.0)),
        **{
            name: JointSlot(slot, axis=(0.0, 1.0, 0.0))
            for finger in ("index", "middle", "ring", "pinky")
            for name, slot in ((f"{finger}_mcp_pitch", f"{finger}.mcp"), (f"{finger}_dip", f"{finger}.pip"))
        },
    },
    limits={
        "thumb_cmc_roll": (0.0, 1.39),
        "thumb_cmc_pitch": (0.0, 0.99),
        "thumb_dip": (0.0, 1.22),
        **{f"{finger}_mcp_pitch": (0.0, 1.26) for finger in ("index", "middle", "ring", "pinky")},
        **{f"{finger}_dip": (0.0, 1.14) for finger in ("index", "middle", "ring", "pinky")},
    },
)


def quaternions_to_joint_angles(
    quats: HandQuaternions,
    joint_map: QuaternionJointMap,
    graph: JointGraph | None = None,
    tracer: Tracer | None = None,
) -> dict[str, float]:
    """Decompose joint quaternions onto target joint axes.

    Args:
        quats: Per-joint quaternions of one hand
        joint_map: Which quaternion slot drives which target joint
        graph: Source of joint axes and limits; map overrides win
        tracer: Receives ``decompose.*`` events

    Returns:
        Dictionary of target joint name to clamped angle (radians)
    """
    tracer = default_tracer(tracer, logger)
    angles: dict[str, float] = {}

    for name, source in joint_map.joints.items():
        spec = graph.get(name) if graph is not None else None
        if source.axis is not None:
            axis = np.asarray(source.axis, dtype=float)
        elif spec is not None:
            axis = spec.axis
        else:
            tracer.event("decompose.skip", joint=name, reason="no axis")
            continue

        q = quats.get(source.slot)
        if q is None:
            tracer.event("decompose.skip", joint=name, reason=f"missing slot {source.slot}")
            continue
        if source.parent_slot is not None:
            parent = quats.get(source.parent_slot)
            if parent is not None:
                q = quat_multiply(quat_conjugate(quat_normalize(parent)), quat_normalize(q))

        angle = extract_axis_rotation(q, axis)
        if name in joint_map.limits:
            lower, upper = joint_map.limits[name]
            angle = float(min(upper, max(lower, angle)))
        elif spec is not None:
            angle = spec.clamp(angle)
        angles[name] = angle

    return angles


def thumb_chain_from_graph(graph: JointGraph, names: Sequence[str] = THUMB_CHAIN_ORDER) -> list[ChainStep]:
    """Build the thumb base chain from the joints present in ``graph``.

    Axes are expressed in the root frame; unlimited joints get ``[-pi, pi]``.
    """
    steps = []
    for joint in graph.chain(names):
        lower, upper = joint.limit
        limit = (max(lower, -np.pi), min(upper, np.pi))
        steps.append(ChainStep(joint.name, graph.axis_in_root_frame(joint.name), limit))
    return steps


def apply_thumb_chain(
    quats: HandQuaternions,
    graph: JointGraph,
    tracer: Tracer | None = None,
) -> dict[str, float]:
    """Override thumb joints by decomposing the thumb CMC quaternion through the thumb chain.

    Returns an empty dictionary when the quaternion or the chain is missing.
    """
    tracer = default_tracer(tracer, logger)
    cmc = quats.thumb.get("cmc")
    if cmc is None:
        tracer.event("thumb_chain.skip", reason="no thumb cmc quaternion")
        return {}
    steps = thumb_chain_from_graph(graph)
    if not steps:
        tracer.event("thumb_chain.skip", reason="no thumb chain joints in model")
        return {}
    return decompose_chain(cmc, steps, tracer)
