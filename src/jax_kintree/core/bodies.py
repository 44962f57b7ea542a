"""Rigid bodies that make up a kinematic tree.

A body has one input frame, a center-of-mass frame and zero or more output
frames. Only an :class:`Actuator` carries a joint parameter; it moves about
(revolute) or along (prismatic) the z-axis of its joint frame.

Geometry is validated and stored as float64 NumPy arrays at construction
time; the local transforms are returned as JAX arrays.
"""

import enum
from typing import Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

from jax_kintree.errors import InvalidGeometryError
from jax_kintree.transforms import se3, so3

Array = jax.Array
MatrixLike = Union[np.ndarray, Array, Sequence[Sequence[float]]]

# Stock X5-series actuator geometry, in meters.
X5_OUTPUT_HEIGHT = 0.03105
X5_COM = (-0.0142, -0.0031, 0.0165)


class JointType(enum.Enum):
    REVOLUTE = "revolute"
    PRISMATIC = "prismatic"


def _as_vector3(value, name: str) -> np.ndarray:
    vec = np.asarray(value, dtype=np.float64)
    if vec.shape != (3,):
        raise InvalidGeometryError(f"{name} must be a 3-vector, got shape {vec.shape}")
    if not np.all(np.isfinite(vec)):
        raise InvalidGeometryError(f"{name} must be finite, got {vec}")
    return vec


def _as_scalar(value, name: str) -> float:
    try:
        scalar = float(value)
    except (TypeError, ValueError):
        raise InvalidGeometryError(f"{name} must be a real number, got {value!r}")
    if not np.isfinite(scalar):
        raise InvalidGeometryError(f"{name} must be finite, got {scalar}")
    return scalar


def as_transform(value: MatrixLike, name: str = "transform") -> np.ndarray:
    """Validate a 4x4 rigid transform and return it as a float64 array."""
    T = np.asarray(value, dtype=np.float64)
    if T.shape != (4, 4):
        raise InvalidGeometryError(f"{name} must have shape (4, 4), got {T.shape}")
    if not np.all(np.isfinite(T)):
        raise InvalidGeometryError(f"{name} must be finite")
    if not np.allclose(T[3], [0.0, 0.0, 0.0, 1.0]):
        raise InvalidGeometryError(f"{name} must have bottom row [0, 0, 0, 1], got {T[3]}")
    if not bool(se3.is_homogeneous(T)):
        raise InvalidGeometryError(f"{name} must have an orthonormal, right-handed rotation block")
    return T


def _translation(vec) -> np.ndarray:
    return np.asarray(se3.translation(vec))


class RigidBody:
    """Base class for the body variants.

    Subclasses fill in the four geometric pieces the tree compiles:

    * ``input_to_joint``: input frame to joint frame (identity for links)
    * ``joint_to_com``: joint frame (after joint motion) to the center of mass
    * ``outputs``: joint frame (after joint motion) to each output frame
    * ``joint_type``: ``None`` for bodies without a degree of freedom
    """

    joint_type: Optional[JointType] = None

    def __init__(self, com: np.ndarray, outputs: Tuple[np.ndarray, ...],
                 input_to_joint: Optional[np.ndarray] = None):
        self._input_to_joint = np.eye(4) if input_to_joint is None else input_to_joint
        self._com = com
        self._outputs = outputs
        self._owner = None

    @property
    def dof_count(self) -> int:
        return 0 if self.joint_type is None else 1

    @property
    def output_count(self) -> int:
        return len(self._outputs)

    @property
    def is_owned(self) -> bool:
        """True once the body has been added to a tree."""
        return self._owner is not None

    @property
    def input_to_joint(self) -> np.ndarray:
        return self._input_to_joint.copy()

    @property
    def joint_to_com(self) -> np.ndarray:
        return self._com.copy()

    @property
    def outputs(self) -> Tuple[np.ndarray, ...]:
        return tuple(T.copy() for T in self._outputs)

    def joint_motion(self, position=None) -> Array:
        """Transform contributed by the joint parameter (identity for links)."""
        if self.joint_type is None:
            if position is not None:
                raise ValueError(f"{type(self).__name__} has no joint parameter")
            return jnp.eye(4)
        if position is None:
            raise ValueError(f"{type(self).__name__} requires a joint position")
        if self.joint_type is JointType.REVOLUTE:
            return se3.rotation_z(position)
        return se3.translation_z(position)

    def com_transform(self, position=None) -> Array:
        """Local transform from the input frame to the center of mass."""
        return jnp.asarray(self._input_to_joint) @ self.joint_motion(position) @ jnp.asarray(self._com)

    def transform(self, position=None, output: int = 0) -> Array:
        """Local transform from the input frame to output frame ``output``."""
        if not 0 <= output < self.output_count:
            raise IndexError(f"{type(self).__name__} has {self.output_count} output(s), "
                             f"requested output {output}")
        return jnp.asarray(self._input_to_joint) @ self.joint_motion(position) @ jnp.asarray(self._outputs[output])

    def _mark_owned(self, owner) -> None:
        self._owner = owner

    def __repr__(self):
        return f"{type(self).__name__}(dof={self.dof_count}, outputs={self.output_count})"


class Actuator(RigidBody):
    """A one-DoF actuator.

    Args:
        joint_type: ``JointType`` (or its string value) of the joint.
        com: center of mass, relative to the joint frame after motion.
        input_to_joint: 4x4 transform from the input interface to the joint frame.
        joint_to_output: 4x4 transform from the moving joint frame to the output.
    """

    def __init__(self, joint_type: Union[JointType, str] = JointType.REVOLUTE,
                 com=(0.0, 0.0, 0.0),
                 input_to_joint: Optional[MatrixLike] = None,
                 joint_to_output: Optional[MatrixLike] = None):
        try:
            self.joint_type = JointType(joint_type)
        except ValueError:
            raise InvalidGeometryError(f"Unknown joint type {joint_type!r}")
        pre = np.eye(4) if input_to_joint is None else as_transform(input_to_joint, "input_to_joint")
        post = np.eye(4) if joint_to_output is None else as_transform(joint_to_output, "joint_to_output")
        super().__init__(_translation(_as_vector3(com, "com")), (post,), input_to_joint=pre)

    @classmethod
    def x5(cls) -> "Actuator":
        """Revolute actuator with stock X5-series geometry."""
        return cls(JointType.REVOLUTE, com=X5_COM,
                   joint_to_output=_translation(np.array([0.0, 0.0, X5_OUTPUT_HEIGHT])))


class FixedLink(RigidBody):
    """A rigid tube between two actuators.

    The output is offset by ``length`` along the input z-axis and then rolled
    by ``twist`` radians about its x-axis, which tilts the next actuator's
    joint axis. A zero twist gives a pure z-offset. A twist of pi leaves the
    output z-axis (the next joint axis) anti-parallel to the input one.
    """

    def __init__(self, length: float, twist: float = 0.0):
        self.length = _as_scalar(length, "length")
        self.twist = _as_scalar(twist, "twist")
        roll = se3.from_position_and_rotation(np.zeros(3), so3.rot_x(self.twist))
        output = np.asarray(se3.multiply(se3.translation_z(self.length), roll))
        super().__init__(_translation(np.array([0.0, 0.0, self.length / 2.0])), (output,))


class GenericLink(RigidBody):
    """A fixed transform between the input and one or more outputs.

    Args:
        com: 3-vector center of mass, relative to the input frame.
        output: a 4x4 transform to the output frame, or a sequence of them
            (one per output port; an empty sequence makes a leaf body).
    """

    def __init__(self, com, output: Union[MatrixLike, Sequence[MatrixLike]]):
        if _is_empty_sequence(output):
            raw = np.zeros((0, 4, 4))
        else:
            raw = np.asarray(output, dtype=np.float64)
        if raw.ndim == 2:
            outputs = (as_transform(raw, "output"),)
        elif raw.ndim == 3:
            outputs = tuple(as_transform(T, f"output[{i}]") for i, T in enumerate(raw))
        else:
            raise InvalidGeometryError(f"output must be (4, 4) or (n, 4, 4), got shape {raw.shape}")
        super().__init__(_translation(_as_vector3(com, "com")), outputs)


def _is_empty_sequence(value) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 0
