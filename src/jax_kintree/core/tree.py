"""KinematicTree: the mutable builder for a chain (or partial tree) of bodies.

Bodies are added depth-first. Open output ports are kept on a stack; a new
body attaches to the top one unless an explicit ``attach_to`` port deeper in
the stack is requested, in which case the ports above it are closed. This
keeps addition order equal to depth-first order, so position vectors map to
actuators in the order they were added.

Mutation is a build-time operation and is not synchronised; finish building
before querying from several threads.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .bodies import RigidBody, as_transform
from .model import FrameType, KinematicModel, build_model
from jax_kintree import chain, ik

logger = logging.getLogger(__name__)

# Attachment point of the root body
BASE = (-1, 0)


def _as_port(value) -> Optional[Tuple[int, int]]:
    """``value`` as a ``(body_index, output_index)`` pair of ints, or None."""
    try:
        body, output = value
    except (TypeError, ValueError):
        return None
    if not all(isinstance(v, (int, np.integer)) and not isinstance(v, bool) for v in (body, output)):
        return None
    return int(body), int(output)


class KinematicTree:
    """A kinematic chain or tree of rigid bodies.

    (Currently, only kinematic chains are fully supported: end-effector and
    IK queries require a single leaf.)
    """

    def __init__(self, base_frame=None):
        self._base_frame = np.eye(4)
        self._bodies: List[RigidBody] = []
        self._attachments: List[Tuple[int, int]] = []
        self._open: List[Tuple[int, int]] = [BASE]
        self._model: Optional[KinematicModel] = None
        if base_frame is not None:
            self.set_base_frame(base_frame)

    # Build phase
    @property
    def base_frame(self) -> np.ndarray:
        """Transform from the world frame to the input of the root body."""
        return self._base_frame.copy()

    def set_base_frame(self, base_frame) -> None:
        self._base_frame = as_transform(base_frame, "base_frame")
        self._model = None

    def add_body(self, body: RigidBody, attach_to: Optional[Tuple[int, int]] = None) -> bool:
        """Add a body to an open output of the tree.

        Args:
            body: The body to add. The tree takes ownership; a body can only
                  ever be added once.
            attach_to: Optional ``(body_index, output_index)`` of the port to
                       attach to. Defaults to the current open port.

        Returns:
            True if the body was added, False if it was rejected (the tree is
            left unchanged).
        """
        if not isinstance(body, RigidBody):
            logger.warning("Rejected add_body: %r is not a RigidBody", body)
            return False
        if body.is_owned:
            logger.warning("Rejected add_body: %r is already owned by a tree", body)
            return False
        if not self._open:
            logger.warning("Rejected add_body: no open output to attach %r to", body)
            return False

        if attach_to is None:
            position = len(self._open) - 1
        else:
            port = _as_port(attach_to)
            if port is None:
                logger.warning("Rejected add_body: attach_to must be (body_index, output_index), got %r",
                               attach_to)
                return False
            if port not in self._open:
                logger.warning("Rejected add_body: output %s is not open", port)
                return False
            position = self._open.index(port)

        port = self._open[position]
        del self._open[position:]
        self._open.extend((len(self._bodies), slot) for slot in reversed(range(body.output_count)))
        self._bodies.append(body)
        self._attachments.append(port)
        body._mark_owned(self)
        self._model = None

        logger.debug("Added %r as body %d at %s (dof=%d)", body, len(self._bodies) - 1, port, self.dof_count)
        return True

    # Topology
    @property
    def bodies(self) -> Tuple[RigidBody, ...]:
        return tuple(self._bodies)

    @property
    def body_count(self) -> int:
        return len(self._bodies)

    @property
    def dof_count(self) -> int:
        """Number of settable degrees of freedom (the number of actuators)."""
        return sum(body.dof_count for body in self._bodies)

    @property
    def open_outputs(self) -> Tuple[Tuple[int, int], ...]:
        """Ports a body can currently be attached to, top of the stack last."""
        return tuple(self._open)

    @property
    def leaf_count(self) -> int:
        return len(self.model().leaf_bodies)

    def frame_count(self, frame_type: FrameType) -> int:
        """Number of frames produced for ``frame_type``.

        One per body for center of mass frames, one per output per body for
        output frames.
        """
        if FrameType(frame_type) is FrameType.CENTER_OF_MASS:
            return len(self._bodies)
        return sum(body.output_count for body in self._bodies)

    def model(self) -> KinematicModel:
        """Compiled snapshot of the current topology (cached until mutated)."""
        if self._model is None:
            self._model = build_model(self._bodies, self._attachments, self._base_frame)
        return self._model

    # Query phase
    def forward_kinematics(self, frame_type: FrameType, positions):
        return chain.forward_kinematics(self.model(), frame_type, positions)

    def end_effector(self, frame_type: FrameType, positions):
        return chain.end_effector(self.model(), frame_type, positions)

    def jacobians(self, frame_type: FrameType, positions):
        return chain.jacobians(self.model(), frame_type, positions)

    def jacobian_end_effector(self, frame_type: FrameType, positions):
        return chain.jacobian_end_effector(self.model(), frame_type, positions)

    def solve_ik(self, target_xyz: Sequence[float], initial_positions, config=None):
        return ik.solve_ik(self.model(), target_xyz, initial_positions, config)

    def __len__(self):
        return len(self._bodies)

    def __repr__(self):
        return f"KinematicTree(bodies={self.body_count}, dof={self.dof_count})"
