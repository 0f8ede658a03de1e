"""Skeleton built from a :class:`~handmimic.ik.spec.ModelIKSpec`, with joint constraints.

A solve runs in a fixed order: CCD, then per-joint axis limits, then mimic
joints. Mimics go last so they copy already-clamped master angles.
"""

import logging

import numpy as np

from ..decomposition import decompose_quaternion_around_axis, swing_twist
from ..geometry import IDENTITY_QUAT, normalize, quat_from_axis_angle, quat_multiply, quat_normalize
from ..tracing import Tracer, default_tracer
from .bone import Bone
from .ccd import CCDIKSolver, IKChain
from .spec import IKJointSpec, ModelIKSpec

logger = logging.getLogger(__name__)

# Corrections smaller than this are not applied
CORRECTION_TOLERANCE = 1e-4


class Skeleton:
    """Bones, IK targets and the CCD solver of one hand model."""

    def __init__(
        self,
        spec: ModelIKSpec,
        root: Bone,
        bones: dict[str, Bone],
        targets: dict[str, Bone],
        solver: CCDIKSolver,
        tracer: Tracer | None = None,
    ) -> None:
        self.spec = spec
        self.root = root
        self.bones = bones
        self.targets = targets
        self.solver = solver
        self.tracer = default_tracer(tracer, logger)

        # Joints whose child bone exists, in declaration order
        self.joints: dict[str, IKJointSpec] = {joint.name: joint for joint in spec.joints if joint.child in bones}

    def joint_bone(self, name: str) -> Bone:
        return self.bones[self.joints[name].child]

    def set_target(self, name: str, position: np.ndarray) -> None:
        """Place a target bone, ``position`` being in the root frame."""
        self.targets[name].set_world_position(np.asarray(position, dtype=float))

    def reset(self) -> None:
        """Return every joint to its rest pose."""
        for bone in self.bones.values():
            bone.rotation = IDENTITY_QUAT.copy()

    def solve(self) -> dict[str, float]:
        """Solve every chain, then apply axis and mimic constraints.

        A chain that raises or produces non-finite rotations is put back to its
        pose from before this solve; the remaining chains still run.

        Returns:
            Joint angles after the solve (see :meth:`joint_angles`)
        """
        for chain in self.solver.chains:
            snapshot = {bone.name: bone.rotation.copy() for bone in chain.links}
            try:
                self.solver.update_chain(chain)
                if not all(np.all(np.isfinite(bone.rotation)) for bone in chain.links):
                    raise FloatingPointError("non-finite rotation")
            except (ArithmeticError, ValueError) as e:
                logger.warning("IK chain '%s' failed (%s), keeping its last valid pose", chain.name, e)
                self.tracer.count("ik.chain_failed")
                for bone in chain.links:
                    bone.rotation = snapshot[bone.name]

        self.apply_axis_constraints()
        self.apply_mimic_constraints()
        return self.joint_angles()

    def apply_axis_constraints(self) -> None:
        """Clamp the rotation of every limited joint around its axis."""
        for joint in self.joints.values():
            if joint.limit is None:
                continue
            bone = self.bones[joint.child]
            axis = normalize(np.asarray(joint.axis, dtype=float))
            angle = decompose_quaternion_around_axis(bone.rotation, axis)
            lower, upper = joint.limit
            clamped = min(upper, max(lower, angle))
            delta = clamped - angle
            if abs(delta) > CORRECTION_TOLERANCE:
                bone.rotation = quat_normalize(quat_multiply(bone.rotation, quat_from_axis_angle(axis, delta)))
                self.tracer.event("ik.clamp", joint=joint.name, angle=angle, clamped=clamped)

    def apply_mimic_constraints(self) -> None:
        """Set each mimic joint's twist to ``multiplier * master + offset``, clamped to its own limit."""
        for joint in self.joints.values():
            if joint.mimic is None:
                continue
            master = self.joints.get(joint.mimic.joint)
            if master is None:
                logger.warning("Mimic: missing bone or master joint for %s", joint.name)
                continue

            master_angle = decompose_quaternion_around_axis(self.bones[master.child].rotation, master.axis)
            value = joint.mimic.apply(master_angle)
            if joint.limit is not None:
                value = min(joint.limit[1], max(joint.limit[0], value))

            bone = self.bones[joint.child]
            axis = normalize(np.asarray(joint.axis, dtype=float))
            swing, _ = swing_twist(bone.rotation, axis)
            bone.rotation = quat_normalize(quat_multiply(swing, quat_from_axis_angle(axis, value)))
            self.tracer.event("ik.mimic", master=master.name, joint=joint.name, value=value)

    def joint_angles(self) -> dict[str, float]:
        """Twist angle of every joint around its axis."""
        return {
            name: decompose_quaternion_around_axis(self.bones[joint.child].rotation, joint.axis)
            for name, joint in self.joints.items()
        }


def build_skeleton_from_spec(spec: ModelIKSpec, tracer: Tracer | None = None) -> Skeleton:
    """Create bones for every link, wire them through the joints and set up the solver.

    Joints naming an unknown parent or child link are skipped with a warning.
    Target bones are parented to the root.

    Raises:
        ValueError: if the spec has no links, or a chain names an unknown
            effector, target or link
    """
    if not spec.links:
        raise ValueError(f"Model '{spec.model_name}' has no links")

    bones = {link.name: Bone(link.name) for link in spec.links}

    for joint in spec.joints:
        parent = bones.get(joint.parent)
        child = bones.get(joint.child)
        if parent is None or child is None:
            logger.warning("Joint %s: missing parent or child bone", joint.name)
            continue
        parent.add(child)
        child.set_origin(np.asarray(joint.origin_xyz), np.asarray(joint.origin_rpy), spec.scale)

    root = bones.get("hand_base_link") or bones[spec.links[0].name]

    targets: dict[str, Bone] = {}
    for chain in spec.ik_chains:
        if chain.target in targets:
            continue
        target = Bone(chain.target)
        root.add(target)
        targets[chain.target] = target

    chains = []
    for chain in spec.ik_chains:
        effector = bones.get(chain.effector)
        if effector is None:
            raise ValueError(f"IK chain {chain.name}: missing effector or target bone")
        links = []
        for name in chain.links:
            if name not in bones:
                raise ValueError(f"IK chain {chain.name}: missing link {name}")
            links.append(bones[name])
        chains.append(
            IKChain(
                name=chain.name,
                effector=effector,
                target=targets[chain.target],
                links=links,
                iteration=chain.iteration,
                max_angle=chain.max_angle,
                min_angle=chain.min_angle,
            )
        )

    # Place targets on their effectors so a solve before the first target update is a no-op
    for chain in chains:
        chain.target.set_world_position(chain.effector.world_position())

    logger.info("Built skeleton '%s': %d bones, %d IK chains", spec.model_name, len(bones), len(chains))
    return Skeleton(spec, root, bones, targets, CCDIKSolver(chains), tracer)
