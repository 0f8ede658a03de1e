"""Tests for the built-in joint name maps."""

import pytest

from handmimic.joint_graph import JointGraph
from handmimic.presets import (
    JOINT_MAPPINGS,
    clamp_joint_value,
    get_available_joints,
    get_joint_limits,
    get_joint_map,
    get_urdf_joint_names,
    map_ui_joint_to_urdf,
    map_urdf_joint_to_ui,
)
from handmimic.semantic import SemanticJointMapper
from handmimic.targets import InMemoryTargetModel


def test_known_maps() -> None:
    assert get_joint_map("shadow_hand")["index_mcp"] == "FFJ3"
    assert get_joint_map("allegro_hand")["pinky_mcp"] == "joint_8.0"
    assert get_joint_map("leap_hand")["thumb_mcp"] == "0"
    assert get_joint_map("linker_l6")["thumb_mcp"] == "thunb_cmc_roll"
    assert JOINT_MAPPINGS["linker_l25"] is JOINT_MAPPINGS["linker_l20"]


def test_get_joint_map_returns_a_copy() -> None:
    mapping = get_joint_map("ability_hand")
    mapping["index_mcp"] = "changed"

    assert get_joint_map("ability_hand")["index_mcp"] == "index_q1"


def test_unknown_model() -> None:
    assert get_joint_map("robot_paw") == {}
    assert map_ui_joint_to_urdf("index_mcp", "robot_paw") is None
    assert get_available_joints("robot_paw") == []


def test_name_lookups() -> None:
    assert map_ui_joint_to_urdf("index_pip", "shadow_hand") == "FFJ2"
    assert map_ui_joint_to_urdf("index_tip", "shadow_hand") is None
    assert map_urdf_joint_to_ui("FFJ2", "shadow_hand") == "index_pip"
    assert map_urdf_joint_to_ui("XXJ9", "shadow_hand") is None
    assert "WRJ1" in get_urdf_joint_names("shadow_hand")


def test_limits() -> None:
    assert get_joint_limits("thumb_q1", "ability_hand") == pytest.approx((-2.0943951, 0.0))
    assert get_joint_limits("thumb_q1", "shadow_hand") is None
    assert clamp_joint_value(3.0, "index_q2", "ability_hand") == pytest.approx(2.6586)
    assert clamp_joint_value(3.0, "FFJ3", "shadow_hand") == 3.0


def test_preset_drives_numbered_joints() -> None:
    graph = JointGraph.from_dicts(
        [{"name": f"joint_{index}.0", "axis": [0, 1, 0], "limit": [-0.5, 1.6]} for index in range(16)]
    )
    mapper = SemanticJointMapper(graph)
    target = InMemoryTargetModel(graph)

    written = mapper.dispatch_all({"index_pip": 1.0, "thumb_tip": 2.0}, target, get_joint_map("allegro_hand"))

    assert written == {"joint_1.0": 1.0, "joint_15.0": 1.6}
