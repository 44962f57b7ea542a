"""
Homogeneous-transform helpers used by the kinematics engine.

- SO(3) rotations (so3 module)
- SE(3) rigid body transforms (se3 module)

All functions are pure, stateless, and JIT-able.
"""

from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
