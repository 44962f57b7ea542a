"""Tests for forward kinematics and Jacobian computation."""

import itertools

import jax
import jax.numpy as jnp
import jax.random as jrandom
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import build_spatial_arm
from jax_kintree import (Actuator, DimensionMismatchError, FixedLink, FrameType, KinematicTree,
                         UnsupportedTopologyError)
from jax_kintree.chain import (end_effector, forward_kinematics, jacobian_end_effector,
                               jacobians)
from jax_kintree.transforms import se3, so3


def vee(K):
    """Axial vector of the skew part of (..., 3, 3) matrices."""
    return 0.5 * np.stack([K[..., 2, 1] - K[..., 1, 2],
                           K[..., 0, 2] - K[..., 2, 0],
                           K[..., 1, 0] - K[..., 0, 1]], axis=-1)


def numerical_jacobians(model, frame_type, q, h=1e-6):
    """Central differences of frame position and orientation, shape (F, 6, D)."""
    q = np.asarray(q, dtype=np.float64)
    frames = np.asarray(forward_kinematics(model, frame_type, q))
    J = np.zeros((frames.shape[0], 6, q.shape[0]))
    for d in range(q.shape[0]):
        dq = np.zeros_like(q)
        dq[d] = h
        plus = np.asarray(forward_kinematics(model, frame_type, q + dq))
        minus = np.asarray(forward_kinematics(model, frame_type, q - dq))
        J[:, :3, d] = (plus[:, :3, 3] - minus[:, :3, 3]) / (2 * h)
        # Angular velocity from dR/dq @ R^T
        dR = (plus[:, :3, :3] - minus[:, :3, :3]) / (2 * h)
        J[:, 3:, d] = vee(dR @ np.swapaxes(frames[:, :3, :3], -1, -2))
    return J


def test_single_actuator_at_zero_is_identity():
    """One actuator, identity base, zero position: every frame is identity."""
    tree = KinematicTree()
    tree.add_body(Actuator())
    for frame_type in FrameType:
        frames = tree.forward_kinematics(frame_type, [0.0])
        assert frames.shape == (1, 4, 4)
        np.testing.assert_allclose(frames[0], jnp.eye(4), atol=1e-12)


def test_fk_planar_arm(planar_arm):
    """End effector of the planar arm follows the two-link formula."""
    q1, q2 = 0.4, -1.1
    T = planar_arm.end_effector(FrameType.OUTPUT, [q1, q2])
    expected = [np.cos(q1) + np.cos(q1 + q2), np.sin(q1) + np.sin(q1 + q2), 0.0]
    np.testing.assert_allclose(se3.get_position(T), expected, atol=1e-12)
    np.testing.assert_allclose(se3.get_rotation(T), so3.rot_z(q1 + q2), atol=1e-12)

    # CoM end effector is the middle of the second link
    T_com = planar_arm.end_effector(FrameType.CENTER_OF_MASS, [q1, q2])
    expected_com = [np.cos(q1) + 0.5 * np.cos(q1 + q2), np.sin(q1) + 0.5 * np.sin(q1 + q2), 0.0]
    np.testing.assert_allclose(se3.get_position(T_com), expected_com, atol=1e-12)


def test_fk_applies_base_frame(planar_arm):
    base = np.asarray(se3.from_xyz_rpy([0.0, 0.0, 1.0], [jnp.pi / 2, 0.0, 0.0]))
    q = [0.2, 0.3]
    before = planar_arm.forward_kinematics(FrameType.OUTPUT, q)
    planar_arm.set_base_frame(base)
    after = planar_arm.forward_kinematics(FrameType.OUTPUT, q)
    np.testing.assert_allclose(after, base @ np.asarray(before), atol=1e-12)


def test_frames_are_rigid(spatial_arm):
    q = jnp.array([0.1, -0.2, 0.3, -0.4])
    for frame_type in FrameType:
        frames = spatial_arm.forward_kinematics(frame_type, q)
        assert frames.shape == (spatial_arm.frame_count(frame_type), 4, 4)
        assert bool(jnp.all(se3.is_homogeneous(frames)))


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=20)
def test_com_frames_compose_local_transforms(seed):
    """CoM frame i == base @ prod(local output transforms of bodies 0..i-1) @ com_i."""
    tree = build_spatial_arm()
    q = jrandom.uniform(jrandom.PRNGKey(seed), (tree.dof_count,), minval=-jnp.pi, maxval=jnp.pi)
    frames = tree.forward_kinematics(FrameType.CENTER_OF_MASS, q)

    T = jnp.asarray(tree.base_frame)
    dof = 0
    for i, body in enumerate(tree.bodies):
        position = None
        if body.dof_count:
            position = q[dof]
            dof += 1
        np.testing.assert_allclose(frames[i], T @ body.com_transform(position), atol=1e-10)
        T = T @ body.transform(position)


def test_depth_first_frame_order(branching_tree):
    """CoM order A-B-C-D-E, output order A-B(1)-C-D-B(2)-E."""
    q = [jnp.pi / 2]
    com = branching_tree.forward_kinematics(FrameType.CENTER_OF_MASS, q)
    np.testing.assert_allclose(
        se3.get_position(com),
        [[0.5, 0.0, 0.0],   # A
         [1.0, 0.0, 0.0],   # B
         [2.0, 0.0, 0.0],   # C
         [2.0, 0.0, 0.5],   # D
         [1.0, 1.0, 0.25]],  # E
        atol=1e-12)

    outputs = branching_tree.forward_kinematics(FrameType.OUTPUT, q)
    np.testing.assert_allclose(
        se3.get_position(outputs),
        [[1.0, 0.0, 0.0],   # A
         [2.0, 0.0, 0.0],   # B(1)
         [2.0, 0.0, 0.0],   # C
         [2.0, 0.0, 1.0],   # D
         [1.0, 1.0, 0.0],   # B(2)
         [1.0, 1.0, 0.5]],  # E
        atol=1e-12)
    # C's rotation is carried by D's frame but not by E's
    np.testing.assert_allclose(se3.get_rotation(outputs[3]), so3.rot_z(jnp.pi / 2), atol=1e-12)
    np.testing.assert_allclose(se3.get_rotation(outputs[5]), jnp.eye(3), atol=1e-12)


def test_positions_length_mismatch(planar_arm):
    """Wrong-length positions fail fast instead of being truncated or padded."""
    for q in ([0.0], [0.0, 0.0, 0.0], [[0.0, 0.0]]):
        with pytest.raises(DimensionMismatchError):
            planar_arm.forward_kinematics(FrameType.OUTPUT, q)
        with pytest.raises(DimensionMismatchError):
            planar_arm.jacobians(FrameType.OUTPUT, q)


def test_end_effector_requires_single_leaf(branching_tree):
    """Multi-leaf trees fail explicitly instead of picking a branch."""
    for frame_type in FrameType:
        with pytest.raises(UnsupportedTopologyError):
            branching_tree.end_effector(frame_type, [0.0])
        with pytest.raises(UnsupportedTopologyError):
            branching_tree.jacobian_end_effector(frame_type, [0.0])


def test_end_effector_on_empty_tree():
    with pytest.raises(UnsupportedTopologyError):
        KinematicTree().end_effector(FrameType.OUTPUT, [])


def test_end_effector_is_last_frame(spatial_arm):
    q = [0.5, -0.5, 0.05, 1.0]
    for frame_type in FrameType:
        frames = spatial_arm.forward_kinematics(frame_type, q)
        np.testing.assert_allclose(spatial_arm.end_effector(frame_type, q), frames[-1])
        J = spatial_arm.jacobians(frame_type, q)
        np.testing.assert_allclose(spatial_arm.jacobian_end_effector(frame_type, q), J[-1])


def test_jacobian_shapes(spatial_arm, branching_tree):
    q = jnp.zeros(spatial_arm.dof_count)
    assert spatial_arm.jacobians(FrameType.CENTER_OF_MASS, q).shape == (7, 6, 4)
    assert spatial_arm.jacobians(FrameType.OUTPUT, q).shape == (7, 6, 4)
    assert branching_tree.jacobians(FrameType.OUTPUT, [0.0]).shape == (6, 6, 1)


def test_jacobian_planar_arm(planar_arm):
    """Closed-form Jacobian of the planar two-link arm."""
    q1, q2 = 0.3, 0.9
    J = planar_arm.jacobian_end_effector(FrameType.OUTPUT, [q1, q2])
    s1, c1 = np.sin(q1), np.cos(q1)
    s12, c12 = np.sin(q1 + q2), np.cos(q1 + q2)
    expected = np.array([
        [-s1 - s12, -s12],
        [c1 + c12, c12],
        [0.0, 0.0],
        [0.0, 0.0],
        [0.0, 0.0],
        [1.0, 1.0],
    ])
    np.testing.assert_allclose(J, expected, atol=1e-12)


@pytest.mark.parametrize("frame_type", list(FrameType))
def test_jacobian_numerical_verification(frame_type):
    """Jacobian columns match finite differences for several configurations."""
    tree = build_spatial_arm()
    model = tree.model()
    key = jrandom.PRNGKey(0)  # Deterministic for CI/caching
    for q in jrandom.uniform(key, (5, tree.dof_count), minval=-jnp.pi, maxval=jnp.pi):
        J = jacobians(model, frame_type, q)
        np.testing.assert_allclose(J, numerical_jacobians(model, frame_type, q), atol=1e-6)


def test_jacobian_matches_autodiff(spatial_arm):
    """Linear rows equal jax.jacfwd of frame positions."""
    model = spatial_arm.model()
    q = jnp.array([0.3, -0.6, 0.02, 1.4])

    def positions(joint_positions):
        return forward_kinematics(model, FrameType.OUTPUT, joint_positions)[:, :3, 3]

    J_auto = jax.jacfwd(positions)(q)  # (F, 3, D)
    np.testing.assert_allclose(jacobians(model, FrameType.OUTPUT, q)[:, :3, :], J_auto, atol=1e-10)


def test_non_ancestor_columns_are_zero(branching_tree):
    """C's joint does not move A, B, B(2) or E."""
    J = branching_tree.jacobians(FrameType.OUTPUT, [0.7])
    for frame in (0, 1, 4, 5):
        np.testing.assert_array_equal(J[frame], jnp.zeros((6, 1)))
    # C's own output sits on the joint axis: no linear velocity, unit angular velocity
    np.testing.assert_allclose(J[2, :, 0], [0.0, 0.0, 0.0, 0.0, 0.0, 1.0], atol=1e-12)
    # D is 1 m up the joint axis
    np.testing.assert_allclose(J[3, :, 0], [0.0, 0.0, 0.0, 0.0, 0.0, 1.0], atol=1e-12)


@pytest.mark.parametrize("twist, q1, axis", [
    (jnp.pi / 2, 0.0, [0.0, -1.0, 0.0]),
    (jnp.pi / 2, 0.7, [np.sin(0.7), -np.cos(0.7), 0.0]),
    (jnp.pi, 0.7, [0.0, 0.0, -1.0]),
    (0.0, 0.7, [0.0, 0.0, 1.0]),
])
def test_twisted_link_tilts_next_joint_axis(twist, q1, axis):
    """The joint axis after a twisted tube is rolled about the tube's x-axis."""
    tree = KinematicTree()
    tree.add_body(Actuator())
    tree.add_body(FixedLink(0.3, twist))
    tree.add_body(Actuator())

    J = tree.jacobian_end_effector(FrameType.OUTPUT, [q1, -0.4])
    np.testing.assert_allclose(J[3:, 0], [0.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(J[3:, 1], axis, atol=1e-12)
    # Both joints pass through the end effector, so neither moves it
    np.testing.assert_allclose(J[:3], jnp.zeros((3, 2)), atol=1e-12)

    T = tree.end_effector(FrameType.OUTPUT, [q1, -0.4])
    np.testing.assert_allclose(se3.get_rotation(T)[:, 2], axis, atol=1e-12)
    np.testing.assert_allclose(se3.get_position(T), [0.0, 0.0, 0.3], atol=1e-12)


def test_prismatic_column():
    tree = KinematicTree()
    tree.add_body(Actuator("prismatic"))
    J = tree.jacobian_end_effector(FrameType.OUTPUT, [0.4])
    np.testing.assert_allclose(J[:, 0], [0.0, 0.0, 1.0, 0.0, 0.0, 0.0])


def test_fk_jit_compatibility(spatial_arm):
    """Forward kinematics and Jacobians are JIT-compilable."""
    model = spatial_arm.model()

    @jax.jit
    def jit_fk(q):
        return forward_kinematics(model, FrameType.OUTPUT, q)

    @jax.jit
    def jit_jacobian(q):
        return jacobian_end_effector(model, FrameType.OUTPUT, q)

    q = jnp.array([0.1, -0.2, 0.3, -0.4])
    np.testing.assert_allclose(jit_fk(q), forward_kinematics(model, FrameType.OUTPUT, q), atol=1e-12)
    np.testing.assert_allclose(jit_jacobian(q), jacobian_end_effector(model, FrameType.OUTPUT, q), atol=1e-12)
    np.testing.assert_allclose(jit_fk(q)[-1], end_effector(model, FrameType.OUTPUT, q), atol=1e-12)


def test_jacobian_random_configs(spatial_arm):
    """Property test: Jacobian is finite and varies across random configurations."""
    model = spatial_arm.model()
    key = jrandom.PRNGKey(1)
    q_samples = jrandom.uniform(key, shape=(10, model.dof_count), minval=-jnp.pi, maxval=jnp.pi)
    Js = [jacobian_end_effector(model, FrameType.OUTPUT, q) for q in q_samples]

    for i, J in enumerate(Js):
        assert jnp.isfinite(J).all(), f"Jacobian {i} contains NaN/Inf"

    varied = any(jnp.linalg.norm(J_a - J_b) > 1e-6 for J_a, J_b in itertools.combinations(Js, 2))
    assert varied, "Jacobian did not change across random configurations"
