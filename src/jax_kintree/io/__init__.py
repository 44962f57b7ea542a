"""I/O utilities for loading kinematic trees from robot description files."""

from .robot_xml import load_robot, loads_robot

__all__ = ["load_robot", "loads_robot"]
