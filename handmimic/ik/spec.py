"""Declarative description of a hand model for chain IK.

One :class:`ModelIKSpec` corresponds to one URDF: its links, the joints
connecting them and the IK chains solved over them. Specs can be written in
Python or loaded from the camelCase JSON layout used by the web tooling
(``modelName``, ``ikChains``, ``maxAngle`` ...).
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

import numpy as np

from ..joint_graph import UNBOUNDED, JointGraph, JointSpec, MimicSpec

# Typical CCD iteration range per solve
MIN_ITERATIONS = 2
MAX_ITERATIONS = 10


@dataclass(frozen=True)
class LinkSpec:
    """A rigid body of the hand; ``mesh`` is only used for visualization."""

    name: str
    mesh: str | None = None


@dataclass(frozen=True)
class IKJointSpec:
    """Connection between two links, with the child's transform in the parent frame."""

    name: str
    parent: str
    child: str
    origin_xyz: tuple[float, float, float] = (0.0, 0.0, 0.0)
    origin_rpy: tuple[float, float, float] = (0.0, 0.0, 0.0)
    axis: tuple[float, float, float] = (0.0, 1.0, 0.0)
    limit: tuple[float, float] | None = None
    mimic: MimicSpec | None = None

    def __post_init__(self) -> None:
        if not np.any(np.asarray(self.axis, dtype=float)):
            raise ValueError(f"Joint '{self.name}' has a zero axis")
        if self.limit is not None and self.limit[0] > self.limit[1]:
            raise ValueError(f"Joint '{self.name}' has lower limit above upper limit")

    def to_joint_spec(self) -> JointSpec:
        return JointSpec(
            name=self.name,
            type="revolute",
            parent=self.parent,
            child=self.child,
            axis=np.asarray(self.axis, dtype=float),
            limit=self.limit if self.limit is not None else UNBOUNDED,
            mimic=self.mimic,
            origin_xyz=np.asarray(self.origin_xyz, dtype=float),
            origin_rpy=np.asarray(self.origin_rpy, dtype=float),
        )


@dataclass(frozen=True)
class IKChainSpec:
    """One CCD chain.

    Attributes:
        name: Chain identifier for logs
        effector: Link that should reach the target (usually a fingertip)
        links: Links rotated by the solver, ordered base to tip
        target: Name of the virtual target bone
        iteration: CCD passes per solve
        max_angle: Largest rotation applied to one link in one step (radians)
        min_angle: Steps smaller than this are skipped (radians)
    """

    name: str
    effector: str
    links: tuple[str, ...]
    target: str
    iteration: int = 3
    max_angle: float | None = None
    min_angle: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "links", tuple(self.links))
        if not MIN_ITERATIONS <= self.iteration <= MAX_ITERATIONS:
            raise ValueError(
                f"IK chain '{self.name}': iteration must be within [{MIN_ITERATIONS}, {MAX_ITERATIONS}], "
                f"got {self.iteration}"
            )
        if self.max_angle is not None and self.max_angle <= 0.0:
            raise ValueError(f"IK chain '{self.name}': max_angle must be positive")


@dataclass(frozen=True)
class ModelIKSpec:
    """Links, joints and IK chains of one hand model."""

    model_name: str
    links: tuple[LinkSpec, ...]
    joints: tuple[IKJointSpec, ...]
    ik_chains: tuple[IKChainSpec, ...] = field(default_factory=tuple)
    scale: float = 1.0

    def joint(self, name: str) -> IKJointSpec | None:
        return next((joint for joint in self.joints if joint.name == name), None)

    def joint_graph(self) -> JointGraph:
        """The joints as a :class:`~handmimic.joint_graph.JointGraph` (validates mimic masters)."""
        return JointGraph(joint.to_joint_spec() for joint in self.joints)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a spec from its camelCase dictionary form.

        Raises:
            ValueError: if a required key is missing or a value is invalid
        """
        try:
            links = tuple(LinkSpec(name=link["name"], mesh=link.get("mesh")) for link in data["links"])
            joints = tuple(_joint_from_dict(joint) for joint in data["joints"])
            chains = tuple(
                IKChainSpec(
                    name=chain["name"],
                    effector=chain["effector"],
                    links=tuple(chain["links"]),
                    target=chain["target"],
                    iteration=int(chain.get("iteration", 3)),
                    max_angle=chain.get("maxAngle"),
                    min_angle=chain.get("minAngle"),
                )
                for chain in data.get("ikChains", [])
            )
            return cls(
                model_name=data["modelName"],
                links=links,
                joints=joints,
                ik_chains=chains,
                scale=float(data.get("scale", 1.0)),
            )
        except KeyError as e:
            raise ValueError(f"IK spec is missing required key {e}") from e

    @classmethod
    def load(cls, filepath: str | Path) -> Self:
        with open(filepath, "r") as f:
            return cls.from_dict(json.load(f))


def _joint_from_dict(data: dict[str, Any]) -> IKJointSpec:
    origin = data.get("origin", {})
    limit = data.get("limit")
    mimic = data.get("mimic")
    return IKJointSpec(
        name=data["name"],
        parent=data["parent"],
        child=data["child"],
        origin_xyz=tuple(origin.get("xyz", (0.0, 0.0, 0.0))),
        origin_rpy=tuple(origin.get("rpy", (0.0, 0.0, 0.0))),
        axis=tuple(data["axis"]),
        limit=(float(limit["lower"]), float(limit["upper"])) if limit else None,
        mimic=MimicSpec(
            joint=mimic["joint"],
            multiplier=float(mimic.get("multiplier", 1.0)),
            offset=float(mimic.get("offset", 0.0)),
        )
        if mimic
        else None,
    )
