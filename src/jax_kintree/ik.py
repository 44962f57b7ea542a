"""Position-only inverse kinematics by damped least squares.

WARNING: this interface is provisional. The solver is a best-effort local
search from the seed positions; a result is only a solution when its status
says so.
"""

import enum
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

import jax
import jax.numpy as jnp
from flax import struct
from jax import Array

from .chain import check_positions, end_effector_index, forward_kinematics_world, frames_and_jacobians
from .core.model import FrameType, KinematicModel
from .errors import DimensionMismatchError, UnsupportedTopologyError
from .transforms import se3

logger = logging.getLogger(__name__)


class IKStatus(enum.Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"


@struct.dataclass
class IKConfig:
    """Tuning for :func:`solve_ik`.

    Attributes:
        max_iterations: Cap on solver iterations; acts as the solver's timeout.
        tolerance: Converged once the end-effector position error (meters)
                   drops below this.
        damping: Initial damping lambda of ``J^T (J J^T + lambda^2 I)^-1``;
                 larger values are slower but stable near singularities.
        damping_factor: Damping is divided by this after an accepted step and
                        multiplied by it after a rejected one.
        min_damping: Lower clamp for the damping.
        max_damping: Upper clamp for the damping.
        max_step: Largest norm of a single joint update.
        frame_type: Frame type of the end effector being driven.
    """
    max_iterations: int = struct.field(pytree_node=False, default=200)
    tolerance: float = struct.field(pytree_node=False, default=1e-4)
    damping: float = struct.field(pytree_node=False, default=0.05)
    damping_factor: float = struct.field(pytree_node=False, default=2.0)
    min_damping: float = struct.field(pytree_node=False, default=1e-6)
    max_damping: float = struct.field(pytree_node=False, default=1e6)
    max_step: float = struct.field(pytree_node=False, default=0.5)
    frame_type: FrameType = struct.field(pytree_node=False, default=FrameType.OUTPUT)

    def __post_init__(self):
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {self.max_iterations}")
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if not self.damping >= 0:
            raise ValueError(f"damping must be non-negative, got {self.damping}")
        if not self.damping_factor > 1:
            raise ValueError(f"damping_factor must be greater than 1, got {self.damping_factor}")
        if not 0 < self.min_damping <= self.max_damping:
            raise ValueError(f"Need 0 < min_damping <= max_damping, got {self.min_damping}, {self.max_damping}")
        if not self.max_step > 0:
            raise ValueError(f"max_step must be positive, got {self.max_step}")
        object.__setattr__(self, "frame_type", FrameType(self.frame_type))


@dataclass(frozen=True)
class IKResult:
    """Outcome of :func:`solve_ik`.

    ``positions`` are the best positions found, whether or not the search
    converged; ``error`` is the end-effector distance to the target there.
    """
    positions: Array
    status: IKStatus
    iterations: int
    error: float

    @property
    def converged(self) -> bool:
        return self.status is IKStatus.CONVERGED


@partial(jax.jit, static_argnames=("frame_type", "index"))
def _position_error(model: KinematicModel, q: Array, target: Array, frame_type: FrameType, index: int):
    _, body_frames = forward_kinematics_world(model, q)
    if frame_type is FrameType.OUTPUT:
        frame = body_frames[model.output_owners[index]] @ model.output_transforms[index]
    else:
        frame = body_frames[index] @ model.com_transforms[index]
    return jnp.linalg.norm(target - se3.get_position(frame))


@partial(jax.jit, static_argnames=("frame_type", "index"))
def _dls_step(model: KinematicModel, q: Array, target: Array, damping: float, max_step: float,
              frame_type: FrameType, index: int):
    """One damped least-squares update for the position of frame `index`."""
    frames, J = frames_and_jacobians(model, frame_type, q)
    error = target - se3.get_position(frames[index])
    J_pos = J[index, :3, :]

    JJt = J_pos @ J_pos.T + (damping ** 2) * jnp.eye(3, dtype=q.dtype)
    dq = J_pos.T @ jnp.linalg.solve(JJt, error)

    step = jnp.linalg.norm(dq)
    return jnp.where(step > max_step, dq * (max_step / jnp.maximum(step, 1e-12)), dq)


def solve_ik(model: KinematicModel, target_xyz, initial_positions,
             config: Optional[IKConfig] = None) -> IKResult:
    """Solve for joint positions that move the end effector to ``target_xyz``.

    Steps that do not reduce the position error are rejected and the damping
    is raised; accepted steps lower it again (Levenberg-Marquardt style).
    The returned positions are therefore always the best seen so far.

    Args:
        model: Compiled single-leaf kinematic tree with at least one DoF
        target_xyz: Length 3 world position of the desired end effector
        initial_positions: Seed positions of shape (num_dof,)
        config: Solver tuning, defaults to ``IKConfig()``

    Returns:
        IKResult with the best positions found and whether they converged
    """
    config = IKConfig() if config is None else config
    if model.dof_count == 0:
        raise UnsupportedTopologyError("Inverse kinematics needs at least one degree of freedom")
    index = end_effector_index(model, config.frame_type)

    target = jnp.asarray(target_xyz, dtype=model.base_frame.dtype)
    if target.shape != (3,):
        raise DimensionMismatchError(f"target_xyz must have shape (3,), got {target.shape}")
    if not bool(jnp.all(jnp.isfinite(target))):
        raise ValueError(f"target_xyz must be finite, got {target}")
    q = check_positions(model, initial_positions)

    kwargs = dict(frame_type=config.frame_type, index=index)
    damping = min(max(config.damping, config.min_damping), config.max_damping)
    error = float(_position_error(model, q, target, **kwargs))

    for iteration in range(config.max_iterations):
        if error < config.tolerance:
            logger.debug("IK converged after %d iterations (error %.3e)", iteration, error)
            return IKResult(q, IKStatus.CONVERGED, iteration, error)

        candidate = q + _dls_step(model, q, target, damping, config.max_step, **kwargs)
        candidate_error = float(_position_error(model, candidate, target, **kwargs))
        if candidate_error < error:
            q, error = candidate, candidate_error
            damping = max(damping / config.damping_factor, config.min_damping)
        else:
            damping = min(damping * config.damping_factor, config.max_damping)
        logger.debug("IK iteration %d: error %.3e, damping %.1e", iteration, error, damping)

    if error < config.tolerance:
        return IKResult(q, IKStatus.CONVERGED, config.max_iterations, error)
    logger.warning("IK did not converge in %d iterations; best error %.3e",
                   config.max_iterations, error)
    return IKResult(q, IKStatus.MAX_ITERATIONS, config.max_iterations, error)
