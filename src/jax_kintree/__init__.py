"""
jax_kintree: forward kinematics, Jacobians and inverse kinematics for chains
of actuators and rigid links.

Trees are built with mutable KinematicTree objects and compiled into
immutable, JIT-compatible KinematicModel PyTrees for querying.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import chain
from . import ik
from . import io
from .core import (
    Actuator,
    FixedLink,
    FrameType,
    GenericLink,
    JointType,
    KinematicModel,
    KinematicTree,
    RigidBody,
)
from .errors import (
    DimensionMismatchError,
    InvalidGeometryError,
    KinematicsError,
    RobotDescriptionError,
    UnsupportedTopologyError,
)
from .ik import IKConfig, IKResult, IKStatus, solve_ik

__version__ = "0.1.0"
__all__ = [
    "transforms", "core", "chain", "ik", "io",
    "Actuator", "FixedLink", "GenericLink", "RigidBody", "JointType",
    "FrameType", "KinematicModel", "KinematicTree",
    "IKConfig", "IKResult", "IKStatus", "solve_ik",
    "KinematicsError", "InvalidGeometryError", "DimensionMismatchError",
    "UnsupportedTopologyError", "RobotDescriptionError",
]
