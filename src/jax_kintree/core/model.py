"""KinematicModel PyTree: the compiled, immutable form of a kinematic tree.

A :class:`~jax_kintree.core.tree.KinematicTree` is mutable while it is being
built; queries run on the flat, array-based snapshot defined here. Bodies are
stored in depth-first order (which is also their addition order), output
frames in depth-first output order.
"""

import enum
from typing import List, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .bodies import JointType, RigidBody

# Values of KinematicModel.joint_kinds
FIXED, REVOLUTE, PRISMATIC = 0, 1, 2
_JOINT_KINDS = {None: FIXED, JointType.REVOLUTE: REVOLUTE, JointType.PRISMATIC: PRISMATIC}


class FrameType(enum.Enum):
    """Which frames a forward kinematics or Jacobian query produces."""
    CENTER_OF_MASS = "center_of_mass"
    OUTPUT = "output"


@struct.dataclass
class KinematicModel:
    """Immutable PyTree representation of a kinematic tree.

    Attributes:
        leaf_bodies: Indices of bodies with nothing attached to any output.
                     Marked as a static field for JIT compilation.
        body_outputs: For each body, the indices of its output frames.
                      Static field.
        parent_indices: Array of shape (num_bodies,); 0 is the base frame and
                        i + 1 refers to body i.
        attach_transforms: (num_bodies, 4, 4) transform from the parent's joint
                           frame (after motion) to this body's input, i.e. the
                           parent's output transform. Identity for the root.
        joint_offsets: (num_bodies, 4, 4) input frame to joint frame.
        joint_kinds: (num_bodies,) FIXED, REVOLUTE or PRISMATIC.
        com_transforms: (num_bodies, 4, 4) joint frame to center of mass.
        output_owners: (num_outputs,) body index of each output frame.
        output_transforms: (num_outputs, 4, 4) joint frame to output frame.
        dof_to_body: (num_dof,) body index of each degree of freedom.
        com_ancestry: (num_bodies, num_dof) True where the DoF moves the body.
        output_ancestry: (num_outputs, num_dof) same for output frames.
        base_frame: (4, 4) world to root transform.
    """
    leaf_bodies: Tuple[int, ...] = struct.field(pytree_node=False)
    body_outputs: Tuple[Tuple[int, ...], ...] = struct.field(pytree_node=False)
    parent_indices: Array
    attach_transforms: Array
    joint_offsets: Array
    joint_kinds: Array
    com_transforms: Array
    output_owners: Array
    output_transforms: Array
    dof_to_body: Array
    com_ancestry: Array
    output_ancestry: Array
    base_frame: Array

    @property
    def num_bodies(self) -> int:
        return self.parent_indices.shape[0]

    @property
    def dof_count(self) -> int:
        return self.dof_to_body.shape[0]

    def frame_count(self, frame_type: FrameType) -> int:
        if FrameType(frame_type) is FrameType.CENTER_OF_MASS:
            return self.num_bodies
        return self.output_owners.shape[0]


def build_model(bodies: Sequence[RigidBody],
                attachments: Sequence[Tuple[int, int]],
                base_frame: np.ndarray) -> KinematicModel:
    """Flatten bodies into a KinematicModel.

    Args:
        bodies: Bodies in depth-first order.
        attachments: For each body, ``(parent_body, parent_output)``; the
                     root uses ``(-1, 0)`` for the base frame.
        base_frame: 4x4 world to root transform.
    """
    num_bodies = len(bodies)

    # Output frames in depth-first order: each output is emitted before the
    # subtree attached to it, and that subtree is resolved before the next
    # output of the same body.
    children = {attach: i for i, attach in enumerate(attachments)}
    output_slots: List[Tuple[int, int]] = []
    stack = [(0, 0)] if num_bodies else []
    while stack:
        body, slot = stack.pop()
        if slot >= bodies[body].output_count:
            continue
        output_slots.append((body, slot))
        stack.append((body, slot + 1))
        if (body, slot) in children:
            stack.append((children[(body, slot)], 0))

    output_index = {slot: k for k, slot in enumerate(output_slots)}
    body_outputs = tuple(
        tuple(output_index[(b, s)] for s in range(body.output_count))
        for b, body in enumerate(bodies))

    parent_indices = np.array([parent + 1 for parent, _ in attachments], dtype=np.int32)
    attach_transforms = _stack_transforms(
        [np.eye(4) if parent < 0 else bodies[parent].outputs[slot] for parent, slot in attachments])

    dof_to_body = np.array([i for i, body in enumerate(bodies) if body.dof_count], dtype=np.int32)

    # A DoF moves a body if its actuator lies on the path from the root to
    # the body, the body itself included.
    com_ancestry = np.zeros((num_bodies, len(dof_to_body)), dtype=bool)
    dof_of_body = {int(b): d for d, b in enumerate(dof_to_body)}
    for i in range(num_bodies):
        node = i
        while node >= 0:
            if node in dof_of_body:
                com_ancestry[i, dof_of_body[node]] = True
            node = attachments[node][0]

    output_owners = np.array([b for b, _ in output_slots], dtype=np.int32)

    return KinematicModel(
        leaf_bodies=tuple(i for i, body in enumerate(bodies)
                          if not any((i, s) in children for s in range(body.output_count))),
        body_outputs=body_outputs,
        parent_indices=jnp.asarray(parent_indices),
        attach_transforms=attach_transforms,
        joint_offsets=_stack_transforms([body.input_to_joint for body in bodies]),
        joint_kinds=jnp.asarray([_JOINT_KINDS[body.joint_type] for body in bodies], dtype=jnp.int32),
        com_transforms=_stack_transforms([body.joint_to_com for body in bodies]),
        output_owners=jnp.asarray(output_owners),
        output_transforms=_stack_transforms([bodies[b].outputs[s] for b, s in output_slots]),
        dof_to_body=jnp.asarray(dof_to_body),
        com_ancestry=jnp.asarray(com_ancestry),
        output_ancestry=jnp.asarray(com_ancestry[output_owners]),
        base_frame=jnp.asarray(base_frame, dtype=jnp.float64),
    )


def _stack_transforms(transforms: Sequence[np.ndarray]) -> Array:
    if not transforms:
        return jnp.zeros((0, 4, 4), dtype=jnp.float64)
    return jnp.asarray(np.stack(transforms), dtype=jnp.float64)
