"""Tests for target model adapters."""

import pytest

from handmimic.joint_graph import JointGraph, MimicSpec
from handmimic.semantic import SemanticJointMapper
from handmimic.targets import InMemoryTargetModel, MujocoTargetModel

MJCF = """
<mujoco model="finger">
  <worldbody>
    <body name="palm">
      <geom type="box" size="0.04 0.01 0.04"/>
      <body name="index_proximal" pos="0 0 0.05">
        <joint name="index_pip" type="hinge" axis="0 1 0" limited="true" range="0 1.6"/>
        <geom type="capsule" fromto="0 0 0 0 0 0.03" size="0.008"/>
        <body name="index_distal" pos="0 0 0.03">
          <joint name="index_dip" type="hinge" axis="0 1 0" limited="true" range="0 1.0"/>
          <geom type="capsule" fromto="0 0 0 0 0 0.02" size="0.007"/>
        </body>
      </body>
    </body>
  </worldbody>
  <equality>
    <joint joint1="index_dip" joint2="index_pip" polycoef="0.1 0.8 0 0 0"/>
  </equality>
</mujoco>
"""


def test_in_memory_target_clamps(mimic_graph: JointGraph) -> None:
    target = InMemoryTargetModel(mimic_graph)

    target.set_joint_value("index_pip", 5.0)
    target.set_joint_value("no_such_joint", 1.0)

    assert target.get_joint_value("index_pip") == 1.6
    assert target.write_count == 1
    assert "base_fixed" not in target.values


def test_mujoco_target_reads_joint_equalities() -> None:
    target = MujocoTargetModel.from_xml_string(MJCF)

    graph = target.joint_graph
    assert graph.names() == ["index_pip", "index_dip"]
    assert graph["index_pip"].limit == pytest.approx((0.0, 1.6))
    assert graph["index_dip"].mimic == MimicSpec("index_pip", multiplier=pytest.approx(0.8), offset=pytest.approx(0.1))
    assert graph["index_dip"].parent == "index_proximal"
    assert graph["index_dip"].child == "index_distal"


def test_mujoco_target_receives_mimic_writes() -> None:
    target = MujocoTargetModel.from_xml_string(MJCF)
    mapper = SemanticJointMapper(target.joint_graph)

    written = mapper.dispatch("index_pip", 1.2, target)
    target.forward()

    assert target.get_joint_value("index_pip") == pytest.approx(1.2)
    assert target.get_joint_value("index_dip") == pytest.approx(1.0)
    assert written["index_dip"] == pytest.approx(1.0)
    assert target.qpos().shape == (2,)


def test_mujoco_target_clamps_and_ignores_unknown() -> None:
    target = MujocoTargetModel.from_xml_string(MJCF)

    target.set_joint_value("index_pip", -3.0)
    target.set_joint_value("elbow", 1.0)

    assert target.get_joint_value("index_pip") == 0.0
