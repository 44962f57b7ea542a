"""Shared kinematic trees for the test suite."""

import numpy as np
import pytest

from jax_kintree import Actuator, FixedLink, GenericLink, JointType, KinematicTree
from jax_kintree.transforms import se3


def translation(x=0.0, y=0.0, z=0.0):
    return np.asarray(se3.translation(np.array([x, y, z])))


def build_planar_arm():
    """Two 1 m revolute links rotating about world z."""
    tree = KinematicTree()
    for _ in range(2):
        assert tree.add_body(Actuator(JointType.REVOLUTE))
        assert tree.add_body(GenericLink(com=(0.5, 0.0, 0.0), output=translation(x=1.0)))
    return tree


def build_spatial_arm():
    """A 4-DoF chain with non-parallel axes, a prismatic joint and a twisted tube."""
    tree = KinematicTree(base_frame=np.asarray(se3.from_xyz_rpy([0.1, -0.2, 0.3], [0.2, -0.1, 0.4])))
    tree.add_body(Actuator.x5())
    tree.add_body(GenericLink(com=(0.0, 0.1, 0.05),
                              output=np.asarray(se3.from_xyz_rpy([0.0, 0.2, 0.1], [np.pi / 2, 0.0, 0.0]))))
    tree.add_body(Actuator(JointType.REVOLUTE, com=(0.01, 0.0, 0.02),
                           input_to_joint=np.asarray(se3.from_xyz_rpy([0.0, 0.0, 0.05], [0.0, 0.3, 0.0])),
                           joint_to_output=translation(z=0.04)))
    tree.add_body(FixedLink(0.3, np.pi / 3))
    tree.add_body(GenericLink(com=(0.0, 0.0, 0.0),
                              output=np.asarray(se3.from_xyz_rpy([0.25, 0.0, 0.0], [0.0, -np.pi / 2, 0.0]))))
    tree.add_body(Actuator(JointType.PRISMATIC, com=(0.0, 0.0, 0.01)))
    tree.add_body(Actuator(JointType.REVOLUTE, joint_to_output=translation(x=0.1, z=0.05)))
    return tree


def build_branching_tree():
    """A - B(1) - C - D, with E on B(2).

    A: one output, B: two outputs, C: actuator, D and E: leaves.
    """
    tree = KinematicTree()
    assert tree.add_body(GenericLink(com=(0.5, 0.0, 0.0), output=translation(x=1.0)))        # A
    assert tree.add_body(GenericLink(com=(0.0, 0.0, 0.0),
                                     output=[translation(x=1.0), translation(y=1.0)]))       # B
    assert tree.add_body(Actuator(JointType.REVOLUTE))                                       # C
    assert tree.add_body(GenericLink(com=(0.0, 0.0, 0.5), output=translation(z=1.0)))        # D
    assert tree.add_body(FixedLink(0.5), attach_to=(1, 1))                                   # E
    return tree


@pytest.fixture
def planar_arm():
    return build_planar_arm()


@pytest.fixture
def spatial_arm():
    return build_spatial_arm()


@pytest.fixture
def branching_tree():
    return build_branching_tree()
