"""Core data structures for jax_kintree.

Bodies and the mutable tree used while building, plus the immutable
KinematicModel PyTree that the query functions consume.
"""

from .bodies import RigidBody, Actuator, FixedLink, GenericLink, JointType
from .model import FrameType, KinematicModel, build_model
from .tree import KinematicTree

__all__ = [
    "RigidBody",
    "Actuator",
    "FixedLink",
    "GenericLink",
    "JointType",
    "FrameType",
    "KinematicModel",
    "build_model",
    "KinematicTree",
]
