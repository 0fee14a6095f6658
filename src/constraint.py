"""Conversion of contacts and enforced joint limits into constraint forces.

A penalty law is used: every contact pushes its two bodies apart with
    f = max(0, k * depth - d * v_n)
along the contact normal, mapped into generalized forces through the point
Jacobians of both bodies. Enforced joint limits get the same treatment per
DOF. The result is written to each skeleton's constraint force vector,
kept separate from the actuator forces.
"""

from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

from multibody.body_node import BodyNode
from multibody.collision import Contact
from multibody.exceptions import ConfigurationError
from multibody.lie_algebra import inverse_transform
from multibody.skeleton import Skeleton

logger = logging.getLogger(__name__)


@dataclass
class ConstraintSolverConfig:
    """Penalty gains.

    Attributes:
        contact_stiffness: Normal stiffness per metre of penetration [N/m].
        contact_damping: Normal damping [N*s/m].
        limit_stiffness: Stiffness of enforced position limits.
        limit_damping: Damping of enforced position and velocity limits.
    """

    contact_stiffness: float = 1.0e4
    contact_damping: float = 1.0e2
    limit_stiffness: float = 1.0e4
    limit_damping: float = 1.0e2

    def __post_init__(self):
        for name in ('contact_stiffness', 'contact_damping', 'limit_stiffness', 'limit_damping'):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0.0:
                raise ConfigurationError(f"{name} must be finite and non-negative, got {value}")


class ConstraintSolver:
    """Penalty-based constraint force computation."""

    def __init__(self, config: Optional[ConstraintSolverConfig] = None) -> None:
        self.config = config if config is not None else ConstraintSolverConfig()

    def solve(self, skeletons: Iterable[Skeleton], contacts: List[Contact]) -> None:
        """Overwrite the constraint forces of every skeleton.

        Args:
            skeletons: Skeletons whose constraint forces are recomputed.
            contacts: Contacts from the collision detector.
        """
        skeletons = list(skeletons)
        forces: Dict[int, np.ndarray] = {id(s): np.zeros(s.num_dofs) for s in skeletons}

        for contact in contacts:
            self._apply_contact(contact, forces)

        for skeleton in skeletons:
            tau = forces[id(skeleton)]
            tau += self.compute_limit_forces(skeleton)
            skeleton.set_constraint_forces(tau)

        if contacts:
            logger.debug("Converted %d contacts into constraint forces", len(contacts))

    def compute_contact_force(self, contact: Contact) -> float:
        """Magnitude of the penalty force of one contact."""
        v1 = self._point_velocity(contact.body_node1, contact.point)
        v2 = self._point_velocity(contact.body_node2, contact.point)
        v_n = float(np.dot(contact.normal, v1 - v2))
        magnitude = (self.config.contact_stiffness * contact.penetration_depth
                     - self.config.contact_damping * v_n)
        return max(0.0, magnitude)

    @staticmethod
    def _local_point(body: BodyNode, point: np.ndarray) -> np.ndarray:
        T = inverse_transform(body.get_world_transform())
        return T[:3, :3] @ point + T[:3, 3]

    def _point_velocity(self, body: BodyNode, point: np.ndarray) -> np.ndarray:
        return body.get_linear_velocity(self._local_point(body, point))

    def _apply_contact(self, contact: Contact, forces: Dict[int, np.ndarray]) -> None:
        f = self.compute_contact_force(contact) * contact.normal
        for body, sign in ((contact.body_node1, 1.0), (contact.body_node2, -1.0)):
            tau = forces.get(id(body.skeleton))
            if tau is None:
                continue
            J = body.get_linear_jacobian(self._local_point(body, contact.point))
            tau += sign * (J.T @ f)

    def compute_limit_forces(self, skeleton: Skeleton) -> np.ndarray:
        """Restoring forces (n,) of the enforced joint limits of a skeleton."""
        cfg = self.config
        tau = np.zeros(skeleton.num_dofs)
        for joint in skeleton.joints:
            if not (joint.position_limit_enforced or joint.velocity_limit_enforced):
                continue
            q = joint._positions
            dq = joint._velocities
            lower, upper = joint.get_position_limits()
            v_lower, v_upper = joint.get_velocity_limits()
            for dof in joint.dofs:
                i = dof.index_in_joint
                f = 0.0
                if joint.position_limit_enforced:
                    if q[i] < lower[i]:
                        f += max(0.0, cfg.limit_stiffness * (lower[i] - q[i]) - cfg.limit_damping * dq[i])
                    elif q[i] > upper[i]:
                        f -= max(0.0, cfg.limit_stiffness * (q[i] - upper[i]) + cfg.limit_damping * dq[i])
                if joint.velocity_limit_enforced:
                    if dq[i] < v_lower[i]:
                        f += cfg.limit_damping * (v_lower[i] - dq[i])
                    elif dq[i] > v_upper[i]:
                        f -= cfg.limit_damping * (dq[i] - v_upper[i])
                tau[dof.index_in_skeleton] = f
        return tau
