"""Interface to the collision layer.

The dynamics core exposes body transforms and the collidability predicate;
a detector returns contacts that the constraint solver turns into
generalized forces. SphereCollisionDetector is a minimal detector over
sphere shapes, enough to drive contact handling end to end.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import combinations
import logging
from typing import Iterable, List

import numpy as np

from multibody.body_node import BodyNode
from multibody.shape import SphereShape
from multibody.skeleton import Skeleton

logger = logging.getLogger(__name__)


@dataclass
class Contact:
    """A single contact point between two bodies.

    Attributes:
        point: Contact point in world coordinates (3,).
        normal: Unit contact normal in world coordinates, pointing from
            body_node2 towards body_node1 (3,).
        penetration_depth: Overlap along the normal [m], positive when
            penetrating.
        body_node1: First body.
        body_node2: Second body.
    """

    point: np.ndarray
    normal: np.ndarray
    penetration_depth: float
    body_node1: BodyNode
    body_node2: BodyNode


def is_collidable(body1: BodyNode, body2: BodyNode) -> bool:
    """Whether the collision layer should test a pair of bodies.

    Pairs within one skeleton follow its self-collision settings. Pairs
    across skeletons need both bodies collidable and at least one of the
    skeletons mobile.
    """
    if body1.skeleton is body2.skeleton:
        return body1.skeleton.is_collidable(body1, body2)
    if not (body1.collidable and body2.collidable):
        return False
    return body1.skeleton.mobile or body2.skeleton.mobile


class CollisionDetector(ABC):
    """Abstract base class for collision detectors."""

    def detect_collision(self, skeletons: Iterable[Skeleton]) -> List[Contact]:
        """Find contacts among all collidable body pairs.

        Resets every body's colliding flag, then marks the bodies of each
        returned contact as colliding.
        """
        bodies = [b for skeleton in skeletons for b in skeleton.body_nodes]
        for body in bodies:
            body.set_colliding(False)

        contacts: List[Contact] = []
        for body1, body2 in combinations(bodies, 2):
            if is_collidable(body1, body2):
                contacts.extend(self.collide(body1, body2))

        for contact in contacts:
            contact.body_node1.set_colliding(True)
            contact.body_node2.set_colliding(True)
        logger.debug("Detected %d contacts among %d bodies", len(contacts), len(bodies))
        return contacts

    @abstractmethod
    def collide(self, body1: BodyNode, body2: BodyNode) -> List[Contact]:
        """Contacts between the shapes of two bodies."""


class SphereCollisionDetector(CollisionDetector):
    """Detects overlaps between SphereShapes; other shapes are ignored."""

    @staticmethod
    def _spheres(body: BodyNode):
        T = body.get_world_transform()
        for shape in body.shapes:
            if isinstance(shape, SphereShape):
                center = T[:3, :3] @ shape.local_transform[:3, 3] + T[:3, 3]
                yield center, shape.radius

    def collide(self, body1: BodyNode, body2: BodyNode) -> List[Contact]:
        contacts = []
        for c1, r1 in self._spheres(body1):
            for c2, r2 in self._spheres(body2):
                offset = c1 - c2
                distance = np.linalg.norm(offset)
                depth = r1 + r2 - distance
                if depth <= 0.0:
                    continue
                if distance > 1e-12:
                    normal = offset / distance
                else:
                    normal = np.array([0.0, 0.0, 1.0])
                point = c2 + normal * (r2 - 0.5 * depth)
                contacts.append(Contact(point, normal, float(depth), body1, body2))
        return contacts
