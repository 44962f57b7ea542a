"""SO(3) rotation helpers in JAX.

Small, pure building blocks for the elementary rotations used by the body
models. All functions accept scalars or batched inputs and are JIT-able.
"""

import jax
import jax.numpy as jnp
from typing import Union

Array = jax.Array
Scalar = Union[float, Array]


def rot_x(angle: Scalar) -> Array:
    """
    Rotation about the x-axis.

    Args:
        angle: (...) rotation angle(s) in radians

    Returns:
        (..., 3, 3) rotation matrices
    """
    angle = jnp.asarray(angle, dtype=jnp.result_type(float))
    c, s = jnp.cos(angle), jnp.sin(angle)
    one, zero = jnp.ones_like(angle), jnp.zeros_like(angle)

    return jnp.stack([
        jnp.stack([one, zero, zero], axis=-1),
        jnp.stack([zero, c, -s], axis=-1),
        jnp.stack([zero, s, c], axis=-1)
    ], axis=-2)


def rot_y(angle: Scalar) -> Array:
    """Rotation about the y-axis, (...) -> (..., 3, 3)."""
    angle = jnp.asarray(angle, dtype=jnp.result_type(float))
    c, s = jnp.cos(angle), jnp.sin(angle)
    one, zero = jnp.ones_like(angle), jnp.zeros_like(angle)

    return jnp.stack([
        jnp.stack([c, zero, s], axis=-1),
        jnp.stack([zero, one, zero], axis=-1),
        jnp.stack([-s, zero, c], axis=-1)
    ], axis=-2)


def rot_z(angle: Scalar) -> Array:
    """Rotation about the z-axis, (...) -> (..., 3, 3)."""
    angle = jnp.asarray(angle, dtype=jnp.result_type(float))
    c, s = jnp.cos(angle), jnp.sin(angle)
    one, zero = jnp.ones_like(angle), jnp.zeros_like(angle)

    return jnp.stack([
        jnp.stack([c, -s, zero], axis=-1),
        jnp.stack([s, c, zero], axis=-1),
        jnp.stack([zero, zero, one], axis=-1)
    ], axis=-2)


def from_rpy(rpy: Array) -> Array:
    """
    Convert roll-pitch-yaw angles to a rotation matrix.

    Uses the fixed-axis convention R = Rz(yaw) @ Ry(pitch) @ Rx(roll).

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] angles in radians

    Returns:
        (..., 3, 3) rotation matrices
    """
    rpy = jnp.asarray(rpy, dtype=jnp.result_type(float))
    return jnp.matmul(rot_z(rpy[..., 2]), jnp.matmul(rot_y(rpy[..., 1]), rot_x(rpy[..., 0])))


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def is_rotation(R: Array, atol: float = 1e-6) -> Array:
    """Check orthonormality and positive determinant of (..., 3, 3) matrices."""
    RRt = jnp.matmul(R, jnp.swapaxes(R, -1, -2))
    orthonormal = jnp.all(jnp.abs(RRt - jnp.eye(3, dtype=R.dtype)) < atol, axis=(-2, -1))
    return orthonormal & (jnp.linalg.det(R) > 0)
