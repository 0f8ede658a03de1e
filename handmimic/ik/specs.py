"""Built-in IK model specs."""

import math

from ..joint_graph import MimicSpec
from .spec import IKChainSpec, IKJointSpec, LinkSpec, ModelIKSpec

# Linker Hand L10 (left), thumb only: 3-DOF CMC plus MCP/IP coupled to CMC pitch
LINKERHAND_L10_LEFT_THUMB = ModelIKSpec(
    model_name="linkerhand_l10_left_thumb",
    scale=1.0,
    links=tuple(
        LinkSpec(name, mesh=f"meshes/{name}.STL")
        for name in (
            "hand_base_link",
            "thumb_metacarpals_base1",
            "thumb_metacarpals_base2",
            "thumb_metacarpals",
            "thumb_proximal",
            "thumb_distal",
        )
    ),
    joints=(
        IKJointSpec(
            name="thumb_cmc_roll",
            parent="hand_base_link",
            child="thumb_metacarpals_base1",
            origin_xyz=(-0.013419, -0.012551, 0.060602),
            axis=(-0.99996, 0.0, -0.0087265),
            limit=(0.0, 1.1339),
        ),
        IKJointSpec(
            name="thumb_cmc_yaw",
            parent="thumb_metacarpals_base1",
            child="thumb_metacarpals_base2",
            origin_xyz=(0.035797, 0.00065879, 0.00045944),
            axis=(-0.008517, -0.21782, 0.97595),
            limit=(0.0, 1.9189),
        ),
        IKJointSpec(
            name="thumb_cmc_pitch",
            parent="thumb_metacarpals_base2",
            child="thumb_metacarpals",
            origin_xyz=(0.0046051, -0.014383, -0.0051478),
            origin_rpy=(-0.16356, -1.1191, 2.0038),
            axis=(0.0, 1.0, 0.0),
            limit=(0.0, 0.5149),
        ),
        IKJointSpec(
            name="thumb_mcp",
            parent="thumb_metacarpals",
            child="thumb_proximal",
            origin_xyz=(0.0061722, 0.0, 0.047968),
            axis=(0.0, 1.0, 0.0),
            limit=(0.0, 0.7152),
            mimic=MimicSpec("thumb_cmc_pitch", multiplier=1.3898),
        ),
        IKJointSpec(
            name="thumb_ip",
            parent="thumb_proximal",
            child="thumb_distal",
            origin_xyz=(-0.00017064, 0.0, 0.038665),
            axis=(0.0, 1.0, 0.0),
            limit=(0.0, 0.7763),
            mimic=MimicSpec("thumb_cmc_pitch", multiplier=1.508),
        ),
    ),
    ik_chains=(
        IKChainSpec(
            name="thumb_ik",
            effector="thumb_distal",
            # The MCP link is rotated by CCD, then overwritten by its mimic
            links=("thumb_metacarpals_base1", "thumb_metacarpals_base2", "thumb_metacarpals", "thumb_proximal"),
            target="thumb_target",
            iteration=3,
            max_angle=math.pi / 18,
        ),
    ),
)

MODEL_SPECS: dict[str, ModelIKSpec] = {
    LINKERHAND_L10_LEFT_THUMB.model_name: LINKERHAND_L10_LEFT_THUMB,
}
