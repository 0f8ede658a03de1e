"""Cyclic coordinate descent over bone chains."""

import logging
from dataclasses import dataclass

import numpy as np

from ..geometry import normalize, quat_conjugate, quat_from_axis_angle, quat_multiply, quat_normalize, quat_rotate
from .bone import Bone

logger = logging.getLogger(__name__)

# Steps below this are treated as converged
CONVERGED_ANGLE = 1e-5


@dataclass
class IKChain:
    """Resolved CCD chain: bones instead of names. ``links`` run base to tip."""

    name: str
    effector: Bone
    target: Bone
    links: list[Bone]
    iteration: int = 3
    max_angle: float | None = None
    min_angle: float | None = None


class CCDIKSolver:
    """Rotates each chain link toward the target, tip to base, for ``iteration`` passes.

    Every step is computed in the link's own frame and post-multiplied onto its
    articulated rotation, so joint origins are never touched.
    """

    def __init__(self, chains: list[IKChain]) -> None:
        self.chains = chains

    def update(self) -> None:
        for chain in self.chains:
            self.update_chain(chain)

    def update_chain(self, chain: IKChain) -> bool:
        """Run CCD on one chain.

        Returns:
            True if any link was rotated
        """
        target_position = chain.target.world_position()
        moved = False

        for _ in range(chain.iteration):
            rotated = False
            for link in reversed(chain.links):
                link_position, link_quaternion = link.world_transform()
                inverse = quat_conjugate(link_quaternion)

                effector_vec = normalize(quat_rotate(inverse, chain.effector.world_position() - link_position))
                target_vec = normalize(quat_rotate(inverse, target_position - link_position))
                if not np.any(effector_vec) or not np.any(target_vec):
                    continue

                angle = float(np.arccos(np.clip(np.dot(effector_vec, target_vec), -1.0, 1.0)))
                if angle < CONVERGED_ANGLE:
                    continue
                if chain.min_angle is not None and angle < chain.min_angle:
                    continue
                if chain.max_angle is not None and angle > chain.max_angle:
                    angle = chain.max_angle

                axis = normalize(np.cross(effector_vec, target_vec))
                if not np.any(axis):
                    # Effector points straight away from the target
                    continue
                link.rotation = quat_normalize(quat_multiply(link.rotation, quat_from_axis_angle(axis, angle)))
                rotated = True

            moved = moved or rotated
            if not rotated:
                break

        return moved
