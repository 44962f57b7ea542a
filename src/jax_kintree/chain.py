"""Core kinematics algorithms: Forward Kinematics and Jacobian computation.

Forward kinematics walks the compiled tree depth-first with ``jax.lax.scan``,
composing ``base · attach · joint_offset · motion(q)`` for every body. The
geometric Jacobians are then read off the same traversal: each actuator on
the path from the root to a frame contributes ``[z x (p_frame - p_joint); z]``
(revolute) or ``[z; 0]`` (prismatic), all other columns are zero.
"""

from typing import Tuple

import jax
import jax.numpy as jnp
from jax import Array

from .core.model import FrameType, KinematicModel, PRISMATIC, REVOLUTE
from .errors import DimensionMismatchError, UnsupportedTopologyError
from .transforms import se3, so3


def check_positions(model: KinematicModel, positions) -> Array:
    """Return ``positions`` as a float array, failing fast on a length mismatch."""
    q = jnp.asarray(positions, dtype=model.base_frame.dtype)
    if q.ndim != 1 or q.shape[0] != model.dof_count:
        raise DimensionMismatchError(
            f"Expected {model.dof_count} joint positions, got shape {q.shape}")
    return q


def _joint_motion(kind: Array, q: Array) -> Array:
    return jnp.where(kind == REVOLUTE, se3.rotation_z(q),
                     jnp.where(kind == PRISMATIC, se3.translation_z(q), jnp.eye(4, dtype=q.dtype)))


def forward_kinematics_world(model: KinematicModel, q: Array) -> Tuple[Array, Array]:
    """Internal FK returning joint and body frames for every body.

    Args:
        model: Compiled kinematic tree with at least one body
        q: Validated joint positions of shape (num_dof,)

    Returns:
        Tuple ``(joint_frames, body_frames)``, each (num_bodies, 4, 4): the
        world pose of each joint frame before and after the joint motion.
    """
    num_bodies = model.num_bodies

    # Scatter the actuated positions into a per-body vector; fixed bodies get 0.
    q_full = jnp.zeros(num_bodies, dtype=q.dtype).at[model.dof_to_body].set(q)

    # Slot 0 holds the base frame, slot i + 1 the frame of body i.
    world_frames = jnp.broadcast_to(model.base_frame, (num_bodies + 1, 4, 4))

    def scan_body(carry, i):
        """Processes body `i` using its parent's world pose from `carry`."""
        T_world_to_parent = carry[model.parent_indices[i]]

        T_world_to_joint = se3.multiply(T_world_to_parent, model.attach_transforms[i] @ model.joint_offsets[i])
        T_world_to_body = se3.multiply(T_world_to_joint, _joint_motion(model.joint_kinds[i], q_full[i]))

        carry = carry.at[i + 1].set(T_world_to_body)
        return carry, T_world_to_joint

    # Bodies are stored depth-first, so every parent is resolved before its children.
    final_frames, joint_frames = jax.lax.scan(scan_body, world_frames, jnp.arange(num_bodies))

    return joint_frames, final_frames[1:]


def _frames(model: KinematicModel, frame_type: FrameType, body_frames: Array) -> Array:
    if FrameType(frame_type) is FrameType.CENTER_OF_MASS:
        return body_frames @ model.com_transforms
    return body_frames[model.output_owners] @ model.output_transforms


def frames_and_jacobians(model: KinematicModel, frame_type: FrameType, q: Array) -> Tuple[Array, Array]:
    """Frames (F, 4, 4) and their Jacobians (F, 6, D) from one traversal; `q` must be validated."""
    frame_type = FrameType(frame_type)
    joint_frames, body_frames = forward_kinematics_world(model, q)
    frames = _frames(model, frame_type, body_frames)

    # World axis and origin of every actuator's joint frame, in DoF order.
    joint_poses = joint_frames[model.dof_to_body]
    z = se3.get_rotation(joint_poses)[..., :, 2]                    # (D, 3)
    p = se3.get_position(joint_poses)                               # (D, 3)
    revolute = (model.joint_kinds[model.dof_to_body] == REVOLUTE)[None, :, None]

    lever = se3.get_position(frames)[:, None] - p[None]           # (F, D, 3)
    axis = jnp.broadcast_to(z[None], lever.shape)
    linear = jnp.where(revolute, jnp.einsum("...ij,...j->...i", so3.skew_symmetric(axis), lever), axis)
    angular = jnp.where(revolute, axis, 0.0)
    columns = jnp.concatenate([linear, angular], axis=-1)            # (F, D, 6)

    ancestry = model.com_ancestry if frame_type is FrameType.CENTER_OF_MASS else model.output_ancestry
    columns = jnp.where(ancestry[..., None], columns, 0.0)

    return frames, jnp.swapaxes(columns, -1, -2)


def end_effector_index(model: KinematicModel, frame_type: FrameType) -> int:
    """Index of the single end-effector frame of ``frame_type``.

    Raises:
        UnsupportedTopologyError: if the tree does not have exactly one leaf
            body, or (for output frames) that leaf does not have exactly one
            output.
    """
    if len(model.leaf_bodies) != 1:
        raise UnsupportedTopologyError(
            f"End effector is only defined for a single-leaf chain; "
            f"this tree has {len(model.leaf_bodies)} leaf bodies")
    leaf = model.leaf_bodies[0]
    if FrameType(frame_type) is FrameType.CENTER_OF_MASS:
        return leaf
    outputs = model.body_outputs[leaf]
    if len(outputs) != 1:
        raise UnsupportedTopologyError(
            f"End effector output frame is ambiguous: leaf body {leaf} has {len(outputs)} outputs")
    return outputs[0]


def forward_kinematics(model: KinematicModel, frame_type: FrameType, positions) -> Array:
    """Compute forward kinematics for every frame of the tree.

    Frames come out depth-first. For a body A with one output feeding B, B
    with two outputs, C on B's first output, D on C and E on B's second
    output, center of mass frames are A-B-C-D-E and output frames are
    A-B(1)-C-D-B(2)-E.

    Args:
        model: Compiled kinematic tree
        frame_type: Which frames to produce
        positions: Joint positions (SI units) of shape (num_dof,)

    Returns:
        Array of shape (num_frames, 4, 4) with world poses
    """
    q = check_positions(model, positions)
    if model.num_bodies == 0:
        return jnp.zeros((0, 4, 4), dtype=q.dtype)
    _, body_frames = forward_kinematics_world(model, q)
    return _frames(model, frame_type, body_frames)


def end_effector(model: KinematicModel, frame_type: FrameType, positions) -> Array:
    """World pose (4, 4) of the end-effector frame of a single-leaf chain."""
    index = end_effector_index(model, frame_type)
    return forward_kinematics(model, frame_type, positions)[index]


def jacobians(model: KinematicModel, frame_type: FrameType, positions) -> Array:
    """Compute the 6 x num_dof geometric Jacobian of every frame.

    Rows are ordered linear velocity first, then angular velocity, both in
    world coordinates. Columns follow DoF order.

    Args:
        model: Compiled kinematic tree
        frame_type: Which frames to differentiate
        positions: Joint positions (SI units) of shape (num_dof,)

    Returns:
        Array of shape (num_frames, 6, num_dof)
    """
    q = check_positions(model, positions)
    if model.num_bodies == 0:
        return jnp.zeros((0, 6, model.dof_count), dtype=q.dtype)
    _, J = frames_and_jacobians(model, frame_type, q)
    return J


def jacobian_end_effector(model: KinematicModel, frame_type: FrameType, positions) -> Array:
    """Jacobian (6, num_dof) of the end-effector frame of a single-leaf chain."""
    index = end_effector_index(model, frame_type)
    return jacobians(model, frame_type, positions)[index]
