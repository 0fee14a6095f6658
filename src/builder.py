"""Skeleton construction from a flat list of body descriptors.

This is the seam where topology loaders hand over their result: each
descriptor names its parent, and build_skeleton validates the whole forest
before creating anything.
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Sequence

from multibody.body_node import BodyNodeProperties
from multibody.exceptions import ConfigurationError
from multibody.joint import JointProperties
from multibody.skeleton import JointTypeLike, Skeleton, resolve_joint_type

logger = logging.getLogger(__name__)


@dataclass
class BodyNodeDescriptor:
    """Everything needed to create one body and its parent joint.

    Attributes:
        body_properties: Inertial and geometric properties of the body.
        joint_type: Joint class or name from JOINT_TYPES.
        joint_properties: Properties of the parent joint. Variant defaults
            when None.
        parent_name: Name of the parent body, or None for a root.
    """

    body_properties: BodyNodeProperties
    joint_type: JointTypeLike = 'weld'
    joint_properties: Optional[JointProperties] = None
    parent_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self.body_properties.name


@dataclass
class SkeletonDescription:
    """A named forest of body descriptors, in loader emission order."""

    name: str = 'skeleton'
    descriptors: List[BodyNodeDescriptor] = field(default_factory=list)
    mobile: bool = True


def _check_forest(descriptors: Sequence[BodyNodeDescriptor]) -> Dict[str, BodyNodeDescriptor]:
    by_name: Dict[str, BodyNodeDescriptor] = {}
    for d in descriptors:
        if d.name in by_name:
            raise ConfigurationError(f"Duplicate body name '{d.name}'")
        by_name[d.name] = d
        resolve_joint_type(d.joint_type)

    for d in descriptors:
        if d.parent_name is not None and d.parent_name not in by_name:
            raise ConfigurationError(f"Body '{d.name}' has unresolvable parent '{d.parent_name}'")

    # Walk up from every body; revisiting a body on the same walk is a cycle
    for d in descriptors:
        seen = {d.name}
        parent = d.parent_name
        while parent is not None:
            if parent in seen:
                raise ConfigurationError(f"Topology cycle through body '{parent}'")
            seen.add(parent)
            parent = by_name[parent].parent_name
    return by_name


def build_skeleton(
    name: str,
    descriptors: Sequence[BodyNodeDescriptor],
    mobile: bool = True,
) -> Skeleton:
    """Build a skeleton from descriptors.

    Bodies are created depth-first from each root, children in the order
    they appear in `descriptors`, so DOF indices follow the emission order
    of the loader parent-to-child.

    Args:
        name: Skeleton name.
        descriptors: Body descriptors in loader emission order.
        mobile: Whether the world integrates the skeleton.

    Returns:
        The new skeleton.

    Raises:
        ConfigurationError: On duplicate names, unresolvable parents,
            cycles or invalid properties. Nothing is built in that case.
    """
    _check_forest(descriptors)

    children: Dict[Optional[str], List[BodyNodeDescriptor]] = {}
    for d in descriptors:
        children.setdefault(d.parent_name, []).append(d)

    skeleton = Skeleton(name, mobile=mobile)
    stack = [(d, None) for d in reversed(children.get(None, []))]
    while stack:
        descriptor, parent = stack.pop()
        _, body = skeleton.create_joint_and_body_node(
            descriptor.joint_type,
            descriptor.joint_properties,
            descriptor.body_properties,
            parent,
        )
        stack.extend((c, body) for c in reversed(children.get(descriptor.name, [])))

    logger.debug("Built skeleton '%s' with %d bodies and %d DOFs",
                 name, skeleton.num_body_nodes, skeleton.num_dofs)
    return skeleton


def build_skeleton_from_description(description: SkeletonDescription) -> Skeleton:
    return build_skeleton(description.name, description.descriptors, description.mobile)
