"""Landmark-side joint name -> target joint name maps for known hand models.

The maps plug into :class:`~handmimic.semantic.SemanticJointMapper` as its
``name_map`` when name inference alone is not enough (numbered joints, or
models whose thumb naming differs from the landmark layout).
"""

import logging

logger = logging.getLogger(__name__)

FINGERS = ("index", "middle", "ring", "pinky")

# Shadow hand: WRJ wrist, THJ thumb, FF/MF/RF/LF index/middle/ring/little
SHADOW_HAND_JOINT_MAP = {
    "wrist": "WRJ1",
    "thumb_mcp": "THJ4",  # abduction
    "thumb_pip": "THJ3",  # MCP flexion
    "thumb_dip": "THJ2",  # IP flexion
    "thumb_tip": "THJ1",
    **{
        f"{finger}_{segment}": f"{prefix}J{number}"
        for finger, prefix in zip(FINGERS, ("FF", "MF", "RF", "LF"))
        for segment, number in (("mcp", 3), ("pip", 2), ("dip", 1))
    },
}

# Allegro: joint_0.0 .. joint_15.0, four per finger; the third finger drives the pinky slot
ALLEGRO_HAND_JOINT_MAP = {
    f"{finger}_{segment}": f"joint_{base + offset}.0"
    for finger, base in (("index", 0), ("middle", 4), ("pinky", 8), ("thumb", 12))
    for offset, segment in enumerate(("mcp", "pip", "dip", "tip"))
}

# LEAP: joints "0".."15", thumb first
LEAP_HAND_JOINT_MAP = {
    f"{finger}_{segment}": str(base + offset)
    for finger, base in (("thumb", 0), ("index", 4), ("middle", 8), ("ring", 12))
    for offset, segment in enumerate(("mcp", "pip", "dip", "tip"))
}

# Ability hand: q1 (MCP) and q2 (PIP) per finger
ABILITY_HAND_JOINT_MAP = {
    f"{finger}_{segment}": f"{finger}_{q}"
    for finger in ("thumb", *FINGERS)
    for segment, q in (("mcp", "q1"), ("pip", "q2"))
}

# Linker L6 (the thumb roll joint is spelled "thunb" in the vendor URDF)
LINKER_L6_JOINT_MAP = {
    "thumb_mcp": "thunb_cmc_roll",
    "thumb_pip": "thumb_cmc_pitch",
    "thumb_dip": "thumb_dip",
    **{f"{finger}_mcp": f"{finger}_mcp_pitch" for finger in FINGERS},
    **{f"{finger}_pip": f"{finger}_dip" for finger in FINGERS},
}

# Linker L10 and the L20 family share the same controllable names
LINKER_L20_JOINT_MAP = {
    "thumb_mcp": "thumb_cmc_pitch",
    "thumb_pip": "thumb_mcp",
    "thumb_dip": "thumb_ip",
    **{
        f"{finger}_{segment}": f"{finger}_{urdf}"
        for finger in FINGERS
        for segment, urdf in (("mcp", "mcp_pitch"), ("pip", "pip"), ("dip", "dip"))
    },
}
LINKER_L10_JOINT_MAP = dict(LINKER_L20_JOINT_MAP)

JOINT_MAPPINGS: dict[str, dict[str, str]] = {
    "ability_hand": ABILITY_HAND_JOINT_MAP,
    "shadow_hand": SHADOW_HAND_JOINT_MAP,
    "allegro_hand": ALLEGRO_HAND_JOINT_MAP,
    "leap_hand": LEAP_HAND_JOINT_MAP,
    "linker_l6": LINKER_L6_JOINT_MAP,
    "linker_l10": LINKER_L10_JOINT_MAP,
    **{
        name: LINKER_L20_JOINT_MAP
        for name in ("linker_l20", "linker_l20pro", "linker_l21", "linker_l25", "linker_l30", "linker_o6", "linker_o7")
    },
}

ABILITY_HAND_JOINT_LIMITS: dict[str, tuple[float, float]] = {
    "thumb_q1": (-2.0943951, 0.0),
    "thumb_q2": (0.0, 2.0943951),
    **{f"{finger}_q1": (0.0, 2.0943951) for finger in FINGERS},
    **{f"{finger}_q2": (0.0, 2.6586) for finger in FINGERS},
}

JOINT_LIMITS: dict[str, dict[str, tuple[float, float]]] = {
    "ability_hand": ABILITY_HAND_JOINT_LIMITS,
}


def get_joint_map(model: str) -> dict[str, str]:
    """Copy of the joint map for ``model``; empty (with a warning) for unknown models."""
    mapping = JOINT_MAPPINGS.get(model)
    if mapping is None:
        logger.warning("No joint mapping found for model: %s", model)
        return {}
    return dict(mapping)


def map_ui_joint_to_urdf(ui_joint: str, model: str) -> str | None:
    mapping = JOINT_MAPPINGS.get(model)
    if mapping is None:
        logger.warning("No joint mapping found for model: %s", model)
        return None
    urdf_joint = mapping.get(ui_joint)
    if urdf_joint is None:
        logger.debug("No URDF joint for '%s' in model %s", ui_joint, model)
    return urdf_joint


def map_urdf_joint_to_ui(urdf_joint: str, model: str) -> str | None:
    for ui_joint, name in JOINT_MAPPINGS.get(model, {}).items():
        if name == urdf_joint:
            return ui_joint
    return None


def get_available_joints(model: str) -> list[str]:
    return list(JOINT_MAPPINGS.get(model, {}))


def get_urdf_joint_names(model: str) -> list[str]:
    return list(JOINT_MAPPINGS.get(model, {}).values())


def get_joint_limits(urdf_joint: str, model: str) -> tuple[float, float] | None:
    return JOINT_LIMITS.get(model, {}).get(urdf_joint)


def clamp_joint_value(value: float, urdf_joint: str, model: str) -> float:
    """Clamp to the preset limits of ``urdf_joint``; values pass through when none are known."""
    limits = get_joint_limits(urdf_joint, model)
    if limits is None:
        return value
    lower, upper = limits
    return max(lower, min(upper, value))
