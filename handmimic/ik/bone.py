"""Minimal bone hierarchy for chain IK."""

import numpy as np

from ..geometry import IDENTITY_QUAT, quat_conjugate, quat_multiply, quat_normalize, quat_rotate, rpy_to_quat


class Bone:
    """A node of the skeleton.

    The local transform is split into a fixed rest part (the joint origin) and
    an articulated ``rotation`` applied after it, so the articulated angle can
    be read back without knowing the origin.
    """

    def __init__(
        self,
        name: str,
        position: np.ndarray | None = None,
        rest_rotation: np.ndarray | None = None,
    ) -> None:
        self.name = name
        self.parent: Bone | None = None
        self.children: list[Bone] = []
        self.position = np.zeros(3) if position is None else np.asarray(position, dtype=float)
        self.rest_rotation = IDENTITY_QUAT.copy() if rest_rotation is None else quat_normalize(rest_rotation)
        self.rotation = IDENTITY_QUAT.copy()

    def __repr__(self) -> str:
        return f"Bone({self.name!r})"

    def add(self, child: "Bone") -> None:
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)

    def set_origin(self, xyz: np.ndarray, rpy: np.ndarray, scale: float = 1.0) -> None:
        self.position = np.asarray(xyz, dtype=float) * scale
        self.rest_rotation = rpy_to_quat(np.asarray(rpy, dtype=float))

    @property
    def local_quaternion(self) -> np.ndarray:
        return quat_multiply(self.rest_rotation, self.rotation)

    def world_transform(self) -> tuple[np.ndarray, np.ndarray]:
        """World ``(position, quaternion)``, composed through every ancestor."""
        if self.parent is None:
            return self.position.copy(), quat_normalize(self.local_quaternion)
        parent_position, parent_quaternion = self.parent.world_transform()
        position = parent_position + quat_rotate(parent_quaternion, self.position)
        return position, quat_normalize(quat_multiply(parent_quaternion, self.local_quaternion))

    def world_position(self) -> np.ndarray:
        return self.world_transform()[0]

    def world_quaternion(self) -> np.ndarray:
        return self.world_transform()[1]

    def set_world_position(self, position: np.ndarray) -> None:
        """Move the bone so its world position is ``position`` (rotation untouched)."""
        position = np.asarray(position, dtype=float)
        if self.parent is None:
            self.position = position.copy()
            return
        parent_position, parent_quaternion = self.parent.world_transform()
        self.position = quat_rotate(quat_conjugate(parent_quaternion), position - parent_position)
