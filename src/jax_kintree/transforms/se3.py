"""SE(3) rigid-body transforms as homogeneous matrices in JAX.

Every function is pure and JIT-able; inputs may carry leading batch
dimensions.
"""


import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    p = jnp.asarray(p)
    R = jnp.asarray(R)
    dtype = jnp.result_type(p, R, float)

    # Ensure consistent batch shapes
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def translation(p: Array) -> Array:
    """Pure translation by (..., 3) vector p."""
    p = jnp.asarray(p, dtype=jnp.result_type(float))
    return from_position_and_rotation(p, jnp.eye(3, dtype=p.dtype))


def translation_z(d) -> Array:
    """Pure translation of d along the z-axis, (...) -> (..., 4, 4)."""
    d = jnp.asarray(d, dtype=jnp.result_type(float))
    zeros = jnp.zeros_like(d)
    return translation(jnp.stack([zeros, zeros, d], axis=-1))


def rotation_z(angle) -> Array:
    """Pure rotation about the z-axis, (...) -> (..., 4, 4)."""
    R = so3.rot_z(angle)
    return from_position_and_rotation(jnp.zeros(R.shape[:-2] + (3,), dtype=R.dtype), R)


def from_xyz_rpy(xyz: Array, rpy: Array) -> Array:
    """Transform from a translation and fixed-axis roll-pitch-yaw angles."""
    return from_position_and_rotation(jnp.asarray(xyz, dtype=jnp.result_type(float)), so3.from_rpy(rpy))


def multiply(T1: Array, T2: Array) -> Array:
    """
    Multiply two SE(3) transformation matrices.

    Args:
        T1: (..., 4, 4) first transformation matrix
        T2: (..., 4, 4) second transformation matrix

    Returns:
        (..., 4, 4) result of T1 @ T2
    """
    return jnp.matmul(T1, T2)


def get_position(T: Array) -> Array:
    """(..., 4, 4) -> (..., 3) translation part."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """(..., 4, 4) -> (..., 3, 3) rotation part."""
    return T[..., :3, :3]


def is_homogeneous(T: Array, atol: float = 1e-6) -> Array:
    """Check that (..., 4, 4) matrices are rigid transforms with bottom row [0, 0, 0, 1]."""
    bottom = jnp.array([0.0, 0.0, 0.0, 1.0], dtype=T.dtype)
    bottom_ok = jnp.all(jnp.abs(T[..., 3, :] - bottom) < atol, axis=-1)
    return bottom_ok & so3.is_rotation(get_rotation(T), atol=atol)
