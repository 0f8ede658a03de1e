"""Target model adapters: a joint graph plus a per-joint setter."""

import logging
from typing import Protocol

import mujoco
import numpy as np

from .joint_graph import JointGraph

logger = logging.getLogger(__name__)


class TargetModel(Protocol):
    """What the mapper needs from a hand model.

    ``set_joint_value`` is expected to clamp defensively on its own.
    """

    joint_graph: JointGraph

    def set_joint_value(self, name: str, radians: float) -> None: ...


class InMemoryTargetModel:
    """Keeps joint values in a dictionary; useful for tests and headless runs."""

    def __init__(self, joint_graph: JointGraph) -> None:
        self.joint_graph = joint_graph
        self.values: dict[str, float] = {joint.name: 0.0 for joint in joint_graph.movable()}
        self.write_count = 0

    def set_joint_value(self, name: str, radians: float) -> None:
        spec = self.joint_graph.get(name)
        if spec is None:
            logger.debug("Ignoring value for unknown joint '%s'", name)
            return
        self.values[name] = spec.clamp(radians)
        self.write_count += 1

    def get_joint_value(self, name: str) -> float:
        return self.values[name]


class MujocoTargetModel:
    """Writes joint values into ``MjData.qpos`` of a MuJoCo model.

    Joint-equality constraints of the model become mimic relations of the joint
    graph, so followers are written explicitly rather than left to the solver.
    """

    def __init__(self, model: mujoco.MjModel, data: mujoco.MjData | None = None) -> None:
        self.model = model
        self.data = data if data is not None else mujoco.MjData(model)
        self.joint_graph = JointGraph.from_mujoco(model)

        self.qpos_addresses: dict[str, int] = {}
        for joint in self.joint_graph:
            jnt_id = mujoco.mj_name2id(model, mujoco.mjtObj.mjOBJ_JOINT, joint.name)
            if jnt_id >= 0:
                self.qpos_addresses[joint.name] = int(model.jnt_qposadr[jnt_id])

    @classmethod
    def from_xml_string(cls, xml: str) -> "MujocoTargetModel":
        return cls(mujoco.MjModel.from_xml_string(xml))

    @classmethod
    def from_xml_path(cls, path: str) -> "MujocoTargetModel":
        return cls(mujoco.MjModel.from_xml_path(path))

    def set_joint_value(self, name: str, radians: float) -> None:
        address = self.qpos_addresses.get(name)
        if address is None:
            logger.debug("Ignoring value for unknown joint '%s'", name)
            return
        self.data.qpos[address] = self.joint_graph[name].clamp(radians)

    def get_joint_value(self, name: str) -> float:
        return float(self.data.qpos[self.qpos_addresses[name]])

    def qpos(self) -> np.ndarray:
        return np.array(self.data.qpos)

    def forward(self) -> None:
        """Recompute kinematics after a batch of writes."""
        mujoco.mj_forward(self.model, self.data)
