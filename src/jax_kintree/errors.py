"""Exception types raised by jax_kintree.

Rejected ``add_body`` calls and IK non-convergence are reported as return
values (``False`` and ``IKResult.status``) rather than exceptions.
"""


class KinematicsError(Exception):
    """Base class for all kinematics errors."""


class InvalidGeometryError(KinematicsError, ValueError):
    """A body or base frame was given non-finite or malformed geometry."""


class DimensionMismatchError(KinematicsError, ValueError):
    """An input vector does not match the tree's DoF count (or 3 for targets)."""


class UnsupportedTopologyError(KinematicsError):
    """The query is only defined for single-leaf trees (kinematic chains)."""


class RobotDescriptionError(KinematicsError, ValueError):
    """A robot description document could not be turned into a tree."""
