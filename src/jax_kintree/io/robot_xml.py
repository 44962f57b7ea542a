"""XML robot description loader.

Builds a KinematicTree from a small XML format:

    <robot base_xyz="0 0 0" base_rpy="0 0 0">
      <actuator type="X5"/>
      <actuator joint="prismatic" com="0 0 0.01" xyz="0 0 0.05" rpy="0 0 0"/>
      <actuator joint="revolute" input_xyz="0 0 0.02" input_rpy="1.5708 0 0"/>
      <link length="0.3" twist="3.14159"/>
      <rigid-body com="0.5 0 0">
        <output xyz="1 0 0" rpy="0 0 0"/>
      </rigid-body>
    </robot>

On an <actuator>, ``xyz``/``rpy`` place the output relative to the moving
joint frame and ``input_xyz``/``input_rpy`` place the joint frame relative to
the input interface.

Bodies are added in document order. Any body element may carry
``attach="body_index output_index"`` to attach to a deeper open output.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
from lxml import etree

from jax_kintree.core import Actuator, FixedLink, GenericLink, KinematicTree, RigidBody
from jax_kintree.errors import InvalidGeometryError, RobotDescriptionError
from jax_kintree.transforms import se3

logger = logging.getLogger(__name__)

ACTUATOR_TYPES = {"X5": Actuator.x5}


def load_robot(path: str) -> KinematicTree:
    """Load an XML robot description file into a KinematicTree.

    Args:
        path: Path to the XML file to load.

    Returns:
        KinematicTree: The tree with every described body added.
    """
    try:
        tree = etree.parse(path)
    except (OSError, etree.XMLSyntaxError) as exc:
        raise RobotDescriptionError(f"Could not read robot description {path}: {exc}") from exc
    return _build_tree(tree.getroot())


def loads_robot(text: str) -> KinematicTree:
    """Load an XML robot description from a string."""
    try:
        root = etree.fromstring(text.encode() if isinstance(text, str) else text)
    except etree.XMLSyntaxError as exc:
        raise RobotDescriptionError(f"Invalid robot description: {exc}") from exc
    return _build_tree(root)


def _build_tree(root) -> KinematicTree:
    if root.tag != "robot":
        raise RobotDescriptionError(f"Expected <robot> root element, got <{root.tag}>")

    kinematics = KinematicTree()
    try:
        kinematics.set_base_frame(_origin(root, "base_xyz", "base_rpy"))
    except InvalidGeometryError as exc:
        raise RobotDescriptionError(f"Invalid base frame: {exc}") from exc

    # Comments and processing instructions carry a non-string tag
    for elem in (e for e in root if isinstance(e.tag, str)):
        try:
            body = _parse_body(elem)
        except InvalidGeometryError as exc:
            raise RobotDescriptionError(f"Invalid <{elem.tag}> on line {elem.sourceline}: {exc}") from exc

        attach = _parse_attach(elem)
        if not kinematics.add_body(body, attach_to=attach):
            raise RobotDescriptionError(
                f"Could not attach <{elem.tag}> on line {elem.sourceline}; "
                f"open outputs are {list(kinematics.open_outputs)}")

    logger.debug("Loaded robot description with %d bodies and %d DoF",
                 kinematics.body_count, kinematics.dof_count)
    return kinematics


def _parse_body(elem) -> RigidBody:
    if elem.tag == "actuator":
        kind = elem.get("type")
        if kind is not None:
            if kind not in ACTUATOR_TYPES:
                raise RobotDescriptionError(
                    f"Unknown actuator type {kind!r} on line {elem.sourceline}; "
                    f"known types are {sorted(ACTUATOR_TYPES)}")
            return ACTUATOR_TYPES[kind]()
        return Actuator(
            joint_type=elem.get("joint", "revolute"),
            com=_floats(elem, "com", 3, default="0 0 0"),
            input_to_joint=_origin(elem, "input_xyz", "input_rpy"),
            joint_to_output=_origin(elem, "xyz", "rpy"),
        )
    if elem.tag == "link":
        return FixedLink(length=_float(elem, "length"), twist=_float(elem, "twist", default="0"))
    if elem.tag == "rigid-body":
        outputs = [_origin(out, "xyz", "rpy") for out in elem.findall("output")]
        return GenericLink(com=_floats(elem, "com", 3, default="0 0 0"), output=outputs)
    raise RobotDescriptionError(f"Unknown body element <{elem.tag}> on line {elem.sourceline}")


def _parse_attach(elem) -> Optional[Tuple[int, int]]:
    raw = elem.get("attach")
    if raw is None:
        return None
    values = raw.split()
    try:
        body, output = (int(v) for v in values)
    except ValueError:
        raise RobotDescriptionError(
            f"attach must be 'body_index output_index' on line {elem.sourceline}, got {raw!r}")
    return body, output


def _origin(elem, xyz_attr: str, rpy_attr: str) -> np.ndarray:
    xyz = _floats(elem, xyz_attr, 3, default="0 0 0")
    rpy = _floats(elem, rpy_attr, 3, default="0 0 0")
    return np.asarray(se3.from_xyz_rpy(xyz, rpy))


def _floats(elem, attr: str, count: int, default: str) -> List[float]:
    raw = elem.get(attr, default)
    try:
        values = [float(x) for x in raw.split()]
    except ValueError:
        raise RobotDescriptionError(f"Attribute {attr}={raw!r} on line {elem.sourceline} is not numeric")
    if len(values) != count:
        raise RobotDescriptionError(
            f"Attribute {attr} on line {elem.sourceline} needs {count} values, got {len(values)}")
    return values


def _float(elem, attr: str, default: Optional[str] = None) -> float:
    raw = elem.get(attr, default)
    if raw is None:
        raise RobotDescriptionError(f"<{elem.tag}> on line {elem.sourceline} is missing {attr}")
    return _floats(elem, attr, 1, default=raw)[0]
