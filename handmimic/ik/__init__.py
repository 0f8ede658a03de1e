"""Chain IK: CCD over a bone hierarchy built from a declarative model spec."""

from .bone import Bone
from .ccd import CCDIKSolver, IKChain
from .skeleton import Skeleton, build_skeleton_from_spec
from .spec import IKChainSpec, IKJointSpec, LinkSpec, ModelIKSpec
from .specs import LINKERHAND_L10_LEFT_THUMB, MODEL_SPECS

__all__ = [
    "Bone",
    "CCDIKSolver",
    "IKChain",
    "IKChainSpec",
    "IKJointSpec",
    "LINKERHAND_L10_LEFT_THUMB",
    "LinkSpec",
    "MODEL_SPECS",
    "ModelIKSpec",
    "Skeleton",
    "build_skeleton_from_spec",
]
