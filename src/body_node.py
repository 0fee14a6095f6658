"""Rigid body node of a skeleton.

A BodyNode owns its inertial properties, shapes and external force
accumulator, and caches the kinematic quantities consumed by the dynamics
algorithms. Parent and child links are integer handles into the owning
skeleton's body arena.

Body quantities use the body frame at the body origin:
    V_i = [Ad_{T_rel^{-1}}] V_parent + S_i dq_i
    V̇_i = [Ad_{T_rel^{-1}}] V̇_parent + [ad_{V_i}] S_i dq_i + Ṡ_i dq_i + S_i ddq_i
    J_i = [Ad_{T_rel^{-1}}] J_parent + S_i (on the joint's own columns)
"""

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from multibody.cache import CachedValue
from multibody.exceptions import ConfigurationError
from multibody.lie_algebra import ad, adjoint_inverse, inverse_transform, skew
from multibody.shape import Shape
from multibody.spatial_inertia import is_physical_inertia, is_positive_definite, spatial_inertia_at_frame

if TYPE_CHECKING:
    from multibody.joint import Joint
    from multibody.skeleton import Skeleton

logger = logging.getLogger(__name__)


@dataclass
class BodyNodeProperties:
    """Inertial and geometric properties of a body.

    Attributes:
        name: Body name, unique within a skeleton.
        mass: Body mass [kg].
        local_com: CoM position in the body frame [m] (3,).
        inertia: Rotational inertia about the CoM, body axes [kg*m^2] (3, 3).
        shapes: Collision/visual shapes.
        collidable: Whether the collision layer may consider this body.
    """

    name: str = 'body'
    mass: float = 1.0
    local_com: np.ndarray = field(default_factory=lambda: np.zeros(3))
    inertia: np.ndarray = field(default_factory=lambda: np.eye(3))
    shapes: List[Shape] = field(default_factory=list)
    collidable: bool = True

    def __post_init__(self):
        self.mass = float(self.mass)
        if not np.isfinite(self.mass):
            raise ConfigurationError(f"Body '{self.name}': mass must be finite")
        self.local_com = np.asarray(self.local_com, dtype=np.float64).flatten()
        if self.local_com.shape != (3,):
            raise ConfigurationError(
                f"Body '{self.name}': local_com must have 3 components, got {self.local_com.shape[0]}")
        self.inertia = np.asarray(self.inertia, dtype=np.float64)
        if self.inertia.shape != (3, 3):
            raise ConfigurationError(
                f"Body '{self.name}': inertia must have shape (3, 3), got {self.inertia.shape}")
        if not np.allclose(self.inertia, self.inertia.T):
            raise ConfigurationError(f"Body '{self.name}': inertia must be symmetric")
        for shape in self.shapes:
            if not isinstance(shape, Shape):
                raise ConfigurationError(f"Body '{self.name}': {shape!r} is not a Shape")
        self.shapes = list(self.shapes)


class BodyNode:
    """Rigid body with one parent joint.

    Created by Skeleton.create_joint_and_body_node; not meant to be
    constructed directly.
    """

    def __init__(
        self,
        properties: BodyNodeProperties,
        skeleton: 'Skeleton',
        parent_joint: 'Joint',
    ) -> None:
        self.properties = properties
        self._skeleton = skeleton
        self._parent_joint = parent_joint
        self._index: Optional[int] = None
        self._parent_index: Optional[int] = None
        self._child_indices: List[int] = []
        self._subtree_end: Optional[int] = None
        self._colliding = False
        self._external_wrench = np.zeros(6)
        self._spatial_inertia = self._compute_spatial_inertia()
        self._warn_if_degenerate()

        self._world_transform = CachedValue('world_transform')
        self._spatial_velocity = CachedValue('spatial_velocity')
        self._spatial_acceleration = CachedValue('spatial_acceleration')
        self._jacobian = CachedValue('jacobian')
        self._jacobian_deriv = CachedValue('jacobian_deriv')

    def __repr__(self) -> str:
        return f'BodyNode({self.name!r}, index={self._index})'

    # Properties

    @property
    def name(self) -> str:
        return self.properties.name

    @property
    def mass(self) -> float:
        return self.properties.mass

    @mass.setter
    def mass(self, value: float) -> None:
        self.properties.mass = float(value)
        self._on_inertia_change()

    @property
    def local_com(self) -> np.ndarray:
        return self.properties.local_com.copy()

    @local_com.setter
    def local_com(self, value) -> None:
        value = np.asarray(value, dtype=np.float64).flatten()
        if value.shape != (3,):
            raise ConfigurationError(f"Body '{self.name}': local_com must have 3 components")
        self.properties.local_com = value
        self._on_inertia_change()

    @property
    def inertia(self) -> np.ndarray:
        return self.properties.inertia.copy()

    @inertia.setter
    def inertia(self, value) -> None:
        value = np.asarray(value, dtype=np.float64)
        if value.shape != (3, 3) or not np.allclose(value, value.T):
            raise ConfigurationError(f"Body '{self.name}': inertia must be a symmetric (3, 3) matrix")
        self.properties.inertia = value
        self._on_inertia_change()

    @property
    def spatial_inertia(self) -> np.ndarray:
        """Spatial inertia G (6, 6) at the body origin."""
        return self._spatial_inertia.copy()

    def _compute_spatial_inertia(self) -> np.ndarray:
        p = self.properties
        return spatial_inertia_at_frame(p.mass, p.inertia, p.local_com)

    def _warn_if_degenerate(self) -> None:
        p = self.properties
        if p.mass <= 0.0:
            logger.warning("Body '%s' has non-positive mass %g", p.name, p.mass)
        elif not is_physical_inertia(p.inertia):
            logger.warning("Body '%s': inertia violates the triangle inequality", p.name)
        elif not is_positive_definite(self._spatial_inertia):
            logger.warning("Body '%s': spatial inertia is singular", p.name)

    def _on_inertia_change(self) -> None:
        self._spatial_inertia = self._compute_spatial_inertia()
        self._warn_if_degenerate()
        self._skeleton._notify_inertia_update()

    @property
    def shapes(self) -> List[Shape]:
        return list(self.properties.shapes)

    def add_shape(self, shape: Shape) -> None:
        if not isinstance(shape, Shape):
            raise ConfigurationError(f"{shape!r} is not a Shape")
        self.properties.shapes.append(shape)

    @property
    def collidable(self) -> bool:
        return self.properties.collidable

    @collidable.setter
    def collidable(self, value: bool) -> None:
        self.properties.collidable = bool(value)

    # Topology

    @property
    def skeleton(self) -> 'Skeleton':
        return self._skeleton

    @property
    def index_in_skeleton(self) -> int:
        return self._index

    @property
    def parent_joint(self) -> 'Joint':
        return self._parent_joint

    @property
    def parent_body_node(self) -> Optional['BodyNode']:
        if self._parent_index is None:
            return None
        return self._skeleton.get_body_node(self._parent_index)

    @property
    def child_body_nodes(self) -> List['BodyNode']:
        return [self._skeleton.get_body_node(i) for i in self._child_indices]

    @property
    def num_child_body_nodes(self) -> int:
        return len(self._child_indices)

    def get_child_body_node(self, index: int) -> 'BodyNode':
        if not 0 <= index < len(self._child_indices):
            raise IndexError(
                f"Body '{self.name}' has {len(self._child_indices)} children, index {index} out of range")
        return self._skeleton.get_body_node(self._child_indices[index])

    def is_root(self) -> bool:
        return self._parent_index is None

    def is_adjacent(self, other: 'BodyNode') -> bool:
        """True if the two bodies are directly connected by a joint."""
        if other._skeleton is not self._skeleton:
            return False
        return other._parent_index == self._index or self._parent_index == other._index

    def get_subtree(self) -> List['BodyNode']:
        """This body and all its descendants, parents before children."""
        return [self._skeleton.get_body_node(i) for i in range(self._index, self._subtree_end)]

    def is_descendant_of(self, other: 'BodyNode') -> bool:
        if other._skeleton is not self._skeleton:
            return False
        return other._index <= self._index < other._subtree_end

    @property
    def dof_indices(self) -> List[int]:
        """Skeleton indices of the parent joint's DOFs."""
        return [dof.index_in_skeleton for dof in self._parent_joint.dofs]

    def get_dependent_dof_indices(self) -> List[int]:
        """Skeleton indices of every DOF between this body and its root."""
        indices = []
        body = self
        while body is not None:
            indices = body.dof_indices + indices
            body = body.parent_body_node
        return indices

    # Cache plumbing

    def _invalidate(self, position: bool = False, velocity: bool = False,
                    acceleration: bool = False) -> None:
        if position:
            self._world_transform.invalidate()
            self._jacobian.invalidate()
        if position or velocity:
            self._spatial_velocity.invalidate()
            self._jacobian_deriv.invalidate()
        if position or velocity or acceleration:
            self._spatial_acceleration.invalidate()

    def _generation(self) -> int:
        return self._skeleton.generation

    # Kinematics

    def get_world_transform(self) -> np.ndarray:
        """Pose of the body frame in the world (4, 4)."""
        return self._world_transform.get(self._compute_world_transform, self._generation())

    def _compute_world_transform(self) -> np.ndarray:
        T_rel = self._parent_joint.get_relative_transform()
        parent = self.parent_body_node
        if parent is None:
            return T_rel.copy()
        return parent.get_world_transform() @ T_rel

    def get_transform(self, relative_to: Optional['BodyNode'] = None) -> np.ndarray:
        """Pose of the body frame in `relative_to` (world when None)."""
        T = self.get_world_transform()
        if relative_to is None:
            return T
        if relative_to is self:
            return np.eye(4)
        return inverse_transform(relative_to.get_world_transform()) @ T

    def get_spatial_velocity(self) -> np.ndarray:
        """Body twist [ω, v] in the body frame (6,)."""
        return self._spatial_velocity.get(self._compute_spatial_velocity, self._generation())

    def _compute_spatial_velocity(self) -> np.ndarray:
        joint = self._parent_joint
        V = joint.get_relative_spatial_velocity()
        parent = self.parent_body_node
        if parent is not None:
            V = adjoint_inverse(joint.get_relative_transform()) @ parent.get_spatial_velocity() + V
        return V

    def get_spatial_acceleration(self) -> np.ndarray:
        """Body acceleration [α, a] (derivative of the body twist) (6,).

        Uses the generalized accelerations currently stored in the skeleton
        and excludes gravity.
        """
        return self._spatial_acceleration.get(self._compute_spatial_acceleration, self._generation())

    def _compute_spatial_acceleration(self) -> np.ndarray:
        joint = self._parent_joint
        V = self.get_spatial_velocity()
        S = joint.get_relative_jacobian()
        dq = joint._velocities
        A = ad(V) @ (S @ dq) + joint.get_relative_spatial_acceleration()
        parent = self.parent_body_node
        if parent is not None:
            A = adjoint_inverse(joint.get_relative_transform()) @ parent.get_spatial_acceleration() + A
        return A

    def get_jacobian(self) -> np.ndarray:
        """Body Jacobian (6, n) mapping generalized velocity to the body twist."""
        return self._jacobian.get(self._compute_jacobian, self._generation())

    def _compute_jacobian(self) -> np.ndarray:
        joint = self._parent_joint
        parent = self.parent_body_node
        if parent is None:
            J = np.zeros((6, self._skeleton.num_dofs))
        else:
            J = adjoint_inverse(joint.get_relative_transform()) @ parent.get_jacobian()
        J[:, self.dof_indices] += joint.get_relative_jacobian()
        return J

    def get_jacobian_time_deriv(self) -> np.ndarray:
        """Time derivative of the body Jacobian (6, n)."""
        return self._jacobian_deriv.get(self._compute_jacobian_deriv, self._generation())

    def _compute_jacobian_deriv(self) -> np.ndarray:
        joint = self._parent_joint
        parent = self.parent_body_node
        if parent is None:
            dJ = np.zeros((6, self._skeleton.num_dofs))
        else:
            X = adjoint_inverse(joint.get_relative_transform())
            XJ = X @ parent.get_jacobian()
            dJ = X @ parent.get_jacobian_time_deriv() - ad(joint.get_relative_spatial_velocity()) @ XJ
        dJ[:, self.dof_indices] += joint.get_relative_jacobian_time_deriv()
        return dJ

    def _rotation_into(self, in_coordinates_of: Optional['BodyNode']) -> np.ndarray:
        """Rotation mapping body-frame vectors into the given frame's coordinates."""
        R = self.get_world_transform()[:3, :3]
        if in_coordinates_of is None:
            return R
        if in_coordinates_of is self:
            return np.eye(3)
        return in_coordinates_of.get_world_transform()[:3, :3].T @ R

    @staticmethod
    def _offset(offset) -> np.ndarray:
        if offset is None:
            return np.zeros(3)
        offset = np.asarray(offset, dtype=np.float64).flatten()
        if offset.shape != (3,):
            raise ValueError(f"offset must have 3 components, got {offset.shape[0]}")
        return offset

    def get_angular_velocity(self, in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Angular velocity w.r.t. the world, in the given coordinates (3,)."""
        return self._rotation_into(in_coordinates_of) @ self.get_spatial_velocity()[:3]

    def get_linear_velocity(self, offset=None, in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Linear velocity of a body-fixed point w.r.t. the world (3,).

        Args:
            offset: Point in the body frame. Body origin when None.
            in_coordinates_of: Frame whose axes express the result. World when None.
        """
        p = self._offset(offset)
        V = self.get_spatial_velocity()
        v_point = V[3:] + np.cross(V[:3], p)
        return self._rotation_into(in_coordinates_of) @ v_point

    def get_linear_acceleration(self, offset=None,
                                in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Classical linear acceleration of a body-fixed point w.r.t. the world (3,)."""
        p = self._offset(offset)
        V = self.get_spatial_velocity()
        A = self.get_spatial_acceleration()
        u = V[3:] + np.cross(V[:3], p)
        du = A[3:] + np.cross(A[:3], p)
        return self._rotation_into(in_coordinates_of) @ (du + np.cross(V[:3], u))

    def get_com(self, relative_to: Optional['BodyNode'] = None) -> np.ndarray:
        """CoM position expressed in `relative_to` (world when None) (3,)."""
        T = self.get_transform(relative_to)
        return T[:3, :3] @ self.properties.local_com + T[:3, 3]

    def get_com_linear_velocity(self, in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        return self.get_linear_velocity(self.properties.local_com, in_coordinates_of)

    def get_com_linear_acceleration(self, in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        return self.get_linear_acceleration(self.properties.local_com, in_coordinates_of)

    def get_linear_jacobian(self, offset=None,
                            in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Jacobian (3, n) of the linear velocity of a body-fixed point."""
        p = self._offset(offset)
        J = self.get_jacobian()
        J_point = J[3:] - skew(p) @ J[:3]
        return self._rotation_into(in_coordinates_of) @ J_point

    def get_angular_jacobian(self, in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Jacobian (3, n) of the angular velocity."""
        return self._rotation_into(in_coordinates_of) @ self.get_jacobian()[:3]

    def get_world_jacobian(self, offset=None) -> np.ndarray:
        """Jacobian (6, n) of [ω, v_point] in world coordinates."""
        return np.vstack([self.get_angular_jacobian(), self.get_linear_jacobian(offset)])

    def get_linear_jacobian_time_deriv(self, offset=None,
                                       in_coordinates_of: Optional['BodyNode'] = None) -> np.ndarray:
        """Time derivative (3, n) of the linear Jacobian of a point.

        The derivative is taken in the world frame, so that
        J_dot @ dq + J @ ddq is the classical point acceleration. It is then
        expressed in the axes of `in_coordinates_of`.
        """
        p = self._offset(offset)
        J = self.get_jacobian()
        dJ = self.get_jacobian_time_deriv()
        omega = self.get_spatial_velocity()[:3]
        J_point = J[3:] - skew(p) @ J[:3]
        dJ_point = dJ[3:] - skew(p) @ dJ[:3]
        return self._rotation_into(in_coordinates_of) @ (dJ_point + skew(omega) @ J_point)

    # External forces

    def add_external_force(self, force, offset=None, is_force_local: bool = False,
                           is_offset_local: bool = True) -> None:
        """Accumulate a force applied at a point of the body.

        Args:
            force: Force vector (3,), in world coordinates unless is_force_local.
            offset: Application point, body frame unless not is_offset_local.
                Body origin when None.
        """
        force = np.asarray(force, dtype=np.float64).flatten()
        T = self.get_world_transform()
        f_b = force if is_force_local else T[:3, :3].T @ force
        p = self._offset(offset)
        if not is_offset_local:
            p = T[:3, :3].T @ (p - T[:3, 3])
        self._external_wrench[:3] += np.cross(p, f_b)
        self._external_wrench[3:] += f_b
        self._skeleton._notify_external_force_update()

    def add_external_torque(self, torque, is_local: bool = False) -> None:
        torque = np.asarray(torque, dtype=np.float64).flatten()
        if not is_local:
            torque = self.get_world_transform()[:3, :3].T @ torque
        self._external_wrench[:3] += torque
        self._skeleton._notify_external_force_update()

    def set_external_wrench(self, wrench) -> None:
        """Set the external wrench [m, f] in the body frame at the body origin."""
        wrench = np.asarray(wrench, dtype=np.float64).flatten()
        if wrench.shape != (6,):
            raise ValueError(f"wrench must have 6 components, got {wrench.shape[0]}")
        self._external_wrench[:] = wrench
        self._skeleton._notify_external_force_update()

    def get_external_wrench(self) -> np.ndarray:
        return self._external_wrench.copy()

    def clear_external_forces(self) -> None:
        self._external_wrench[:] = 0.0
        self._skeleton._notify_external_force_update()

    # Collision flags

    def set_colliding(self, colliding: bool) -> None:
        self._colliding = bool(colliding)

    def is_colliding(self) -> bool:
        return self._colliding

    # Energy

    def compute_kinetic_energy(self) -> float:
        V = self.get_spatial_velocity()
        return float(0.5 * V @ self._spatial_inertia @ V)

    def compute_potential_energy(self, gravity: np.ndarray) -> float:
        """Gravitational potential energy for the given gravity vector."""
        return float(-self.properties.mass * np.dot(gravity, self.get_com()))
