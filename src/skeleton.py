"""Skeleton: a forest of rigid bodies connected by joints.

The skeleton owns its bodies in an arena ordered depth-first (parents
before children, siblings in insertion order). Every subtree therefore
occupies a contiguous slice of the arena, which is what cache invalidation
walks when a joint coordinate changes. DOF indices follow the same order.

Whole-skeleton quantities (mass matrix, bias forces, COM) are cached in
CachedValue wrappers and invalidated by the change notifications that
joints and bodies send on every write.
"""

from contextlib import contextmanager
import logging
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union

import numpy as np

from multibody.articulated_body import ArticulatedBodyDynamics
from multibody.body_node import BodyNode, BodyNodeProperties
from multibody.cache import CachedValue
from multibody.degree_of_freedom import DegreeOfFreedom
from multibody.exceptions import ConfigurationError, NumericalDegeneracyError
from multibody.joint import ActuatorType, Joint, JointProperties
from multibody.joint_types import JOINT_TYPES
from multibody.lie_algebra import inverse_transform
from multibody.newton_euler import NewtonEulerDynamics

logger = logging.getLogger(__name__)

DEFAULT_GRAVITY = np.array([0.0, 0.0, -9.81])
DEFAULT_TIME_STEP = 1e-3

JointTypeLike = Union[str, Type[Joint]]


def resolve_joint_type(joint_type: JointTypeLike) -> Type[Joint]:
    """Map a joint type name or class onto the joint class."""
    if isinstance(joint_type, str):
        try:
            return JOINT_TYPES[joint_type.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown joint type '{joint_type}', expected one of {sorted(JOINT_TYPES)}") from None
    if isinstance(joint_type, type) and issubclass(joint_type, Joint):
        return joint_type
    raise ConfigurationError(f"Unknown joint type {joint_type!r}")


class Skeleton:
    """Articulated rigid-body system with lazily cached dynamics.

    Attributes:
        name: Skeleton name, unique within a World.
        mobile: Immobile skeletons are not integrated by the world.
    """

    def __init__(
        self,
        name: str = 'skeleton',
        gravity: Optional[np.ndarray] = None,
        time_step: float = DEFAULT_TIME_STEP,
        mobile: bool = True,
    ) -> None:
        self.name = name
        self.mobile = mobile
        self._gravity = DEFAULT_GRAVITY.copy() if gravity is None else self._check_gravity(gravity)
        self._time_step = self._check_time_step(time_step)

        self._body_nodes: List[BodyNode] = []
        self._dofs: List[DegreeOfFreedom] = []
        self._body_names: Dict[str, BodyNode] = {}
        self._joint_names: Dict[str, Joint] = {}
        self._dof_names: Dict[str, DegreeOfFreedom] = {}

        self._generation = 0
        self._batching = False
        self._self_collision = False
        self._adjacent_body_check = False

        self._mass_matrix = CachedValue('mass_matrix')
        self._inv_mass_matrix = CachedValue('inv_mass_matrix')
        self._coriolis_forces = CachedValue('coriolis_forces')
        self._gravity_forces = CachedValue('gravity_forces')
        self._coriolis_and_gravity_forces = CachedValue('coriolis_and_gravity_forces')
        self._external_forces = CachedValue('external_forces')
        self._com = CachedValue('com')
        self._com_jacobian = CachedValue('com_jacobian')

        self._newton_euler = NewtonEulerDynamics(self)
        self._articulated_body = ArticulatedBodyDynamics(self)

    def __repr__(self) -> str:
        return (f'Skeleton({self.name!r}, bodies={self.num_body_nodes}, '
                f'dofs={self.num_dofs})')

    @staticmethod
    def _check_gravity(gravity) -> np.ndarray:
        gravity = np.asarray(gravity, dtype=np.float64).flatten()
        if gravity.shape != (3,):
            raise ConfigurationError(f"gravity must have 3 components, got {gravity.shape[0]}")
        return gravity

    @staticmethod
    def _check_time_step(time_step: float) -> float:
        if not time_step > 0.0:
            raise ConfigurationError(f"time_step must be positive, got {time_step}")
        return float(time_step)

    # Simulation settings

    @property
    def gravity(self) -> np.ndarray:
        return self._gravity.copy()

    @gravity.setter
    def gravity(self, value) -> None:
        self._gravity = self._check_gravity(value)
        self._generation += 1
        self._gravity_forces.invalidate()
        self._coriolis_and_gravity_forces.invalidate()

    @property
    def time_step(self) -> float:
        return self._time_step

    @time_step.setter
    def time_step(self, value: float) -> None:
        self._time_step = self._check_time_step(value)

    @property
    def generation(self) -> int:
        """Counter advanced by every cache-invalidating write."""
        return self._generation

    # Construction

    def create_joint_and_body_node(
        self,
        joint_type: JointTypeLike,
        joint_properties: Optional[JointProperties] = None,
        body_properties: Optional[BodyNodeProperties] = None,
        parent: Optional[BodyNode] = None,
    ) -> Tuple[Joint, BodyNode]:
        """Create a body attached to `parent` (or the world) by a new joint.

        Args:
            joint_type: Joint class or name from JOINT_TYPES.
            joint_properties: Properties of the new joint. Defaults to the
                variant's defaults named after the body.
            body_properties: Properties of the new body.
            parent: Parent body in this skeleton, or None for a new root.

        Returns:
            Tuple of the new joint and the new body.

        Raises:
            ConfigurationError: On invalid properties, a parent from another
                skeleton, or a duplicate body, joint or DOF name.
        """
        joint_cls = resolve_joint_type(joint_type)
        if body_properties is None:
            body_properties = BodyNodeProperties(name=f'body{len(self._body_nodes)}')
        if joint_properties is None:
            joint_properties = joint_cls.PROPERTIES_TYPE(name=f'{body_properties.name}_joint')
        self._check_parent(parent)
        if body_properties.name in self._body_names:
            raise ConfigurationError(
                f"Skeleton '{self.name}' already has a body named '{body_properties.name}'")

        joint = joint_cls(joint_properties)
        self._check_joint_names(joint)
        body = BodyNode(body_properties, self, joint)
        joint._skeleton = self

        roots, children, parents = self._topology()
        children[id(body)] = []
        parents[id(body)] = parent
        if parent is None:
            roots.append(body)
        else:
            children[id(parent)].append(body)
        self._rebuild(roots, children, parents)

        logger.debug("Skeleton '%s': added body '%s' with %s '%s'",
                     self.name, body.name, type(joint).__name__, joint.name)
        return joint, body

    def _check_parent(self, parent: Optional[BodyNode]) -> None:
        if parent is not None and parent.skeleton is not self:
            raise ConfigurationError(
                f"Body '{parent.name}' does not belong to skeleton '{self.name}'")

    def _check_joint_names(self, joint: Joint, replacing: Optional[Joint] = None) -> None:
        taken_joints = {n for n, j in self._joint_names.items() if j is not replacing}
        if joint.name in taken_joints:
            raise ConfigurationError(f"Skeleton '{self.name}' already has a joint named '{joint.name}'")
        taken_dofs = {n for n, d in self._dof_names.items() if replacing is None or d.joint is not replacing}
        for dof in joint.dofs:
            if dof.name in taken_dofs:
                raise ConfigurationError(f"Skeleton '{self.name}' already has a DOF named '{dof.name}'")

    def _topology(self):
        """Current roots, children and parents keyed by body id."""
        roots = [b for b in self._body_nodes if b._parent_index is None]
        children = {id(b): [self._body_nodes[c] for c in b._child_indices] for b in self._body_nodes}
        parents = {id(b): (None if b._parent_index is None else self._body_nodes[b._parent_index])
                   for b in self._body_nodes}
        return roots, children, parents

    def _rebuild(self, roots: List[BodyNode], children, parents) -> None:
        """Lay the forest out depth-first and reassign every index."""
        order: List[BodyNode] = []
        stack = list(reversed(roots))
        while stack:
            body = stack.pop()
            order.append(body)
            stack.extend(reversed(children[id(body)]))

        for index, body in enumerate(order):
            body._index = index
        for body in order:
            parent = parents[id(body)]
            body._parent_index = None if parent is None else parent._index
            body._child_indices = [c._index for c in children[id(body)]]
            body._parent_joint._child_index = body._index
        for body in reversed(order):
            end = body._index + 1
            for c in children[id(body)]:
                end = max(end, c._subtree_end)
            body._subtree_end = end

        dofs = []
        for body in order:
            for dof in body.parent_joint.dofs:
                dof.index_in_skeleton = len(dofs)
                dofs.append(dof)

        self._body_nodes = order
        self._dofs = dofs
        self._body_names = {b.name: b for b in order}
        self._joint_names = {b.parent_joint.name: b.parent_joint for b in order}
        self._dof_names = {d.name: d for d in dofs}
        self.invalidate_all()

    # Topology queries

    @property
    def body_nodes(self) -> List[BodyNode]:
        return list(self._body_nodes)

    @property
    def joints(self) -> List[Joint]:
        return [b.parent_joint for b in self._body_nodes]

    @property
    def dofs(self) -> List[DegreeOfFreedom]:
        return list(self._dofs)

    @property
    def num_body_nodes(self) -> int:
        return len(self._body_nodes)

    @property
    def num_joints(self) -> int:
        return len(self._body_nodes)

    @property
    def num_dofs(self) -> int:
        return len(self._dofs)

    @property
    def root_body_nodes(self) -> List[BodyNode]:
        return [b for b in self._body_nodes if b._parent_index is None]

    @property
    def num_trees(self) -> int:
        return len(self.root_body_nodes)

    def get_root_body_node(self, tree_index: int = 0) -> BodyNode:
        roots = self.root_body_nodes
        if not 0 <= tree_index < len(roots):
            raise IndexError(f"Skeleton '{self.name}' has {len(roots)} trees, index {tree_index} out of range")
        return roots[tree_index]

    def get_body_node(self, key: Union[int, str]) -> BodyNode:
        """Body by arena index or by name."""
        if isinstance(key, str):
            try:
                return self._body_names[key]
            except KeyError:
                raise KeyError(f"Skeleton '{self.name}' has no body named '{key}'") from None
        if not 0 <= key < len(self._body_nodes):
            raise IndexError(
                f"Skeleton '{self.name}' has {len(self._body_nodes)} bodies, index {key} out of range")
        return self._body_nodes[key]

    def get_joint(self, key: Union[int, str]) -> Joint:
        """Joint by index (same as its child body) or by name."""
        if isinstance(key, str):
            try:
                return self._joint_names[key]
            except KeyError:
                raise KeyError(f"Skeleton '{self.name}' has no joint named '{key}'") from None
        return self.get_body_node(key).parent_joint

    def get_dof(self, key: Union[int, str]) -> DegreeOfFreedom:
        """DOF by generalized-coordinate index or by name."""
        if isinstance(key, str):
            try:
                return self._dof_names[key]
            except KeyError:
                raise KeyError(f"Skeleton '{self.name}' has no DOF named '{key}'") from None
        if not 0 <= key < len(self._dofs):
            raise IndexError(f"Skeleton '{self.name}' has {len(self._dofs)} DOFs, index {key} out of range")
        return self._dofs[key]

    # Cache invalidation

    def _position_caches(self):
        return (self._mass_matrix, self._inv_mass_matrix, self._coriolis_forces, self._gravity_forces,
                self._coriolis_and_gravity_forces, self._external_forces, self._com, self._com_jacobian)

    def _subtree_of(self, joint: Joint) -> List[BodyNode]:
        body = self._body_nodes[joint._child_index]
        return self._body_nodes[body._index:body._subtree_end]

    def _notify_position_update(self, joint: Joint) -> None:
        if self._batching:
            return
        self._generation += 1
        for body in self._subtree_of(joint):
            body._invalidate(position=True)
        for cache in self._position_caches():
            cache.invalidate()

    def _notify_velocity_update(self, joint: Joint) -> None:
        if self._batching:
            return
        self._generation += 1
        for body in self._subtree_of(joint):
            body._invalidate(velocity=True)
        self._coriolis_forces.invalidate()
        self._coriolis_and_gravity_forces.invalidate()

    def _notify_acceleration_update(self, joint: Joint) -> None:
        if self._batching:
            return
        self._generation += 1
        for body in self._subtree_of(joint):
            body._invalidate(acceleration=True)

    def _notify_inertia_update(self) -> None:
        self._generation += 1
        for cache in self._position_caches():
            cache.invalidate()

    def _notify_external_force_update(self) -> None:
        self._external_forces.invalidate()

    def invalidate_all(self) -> None:
        """Mark every cached quantity of the skeleton stale."""
        self._generation += 1
        for body in self._body_nodes:
            body.parent_joint._invalidate_caches()
            body._invalidate(position=True)
        for cache in self._position_caches():
            cache.invalidate()

    @contextmanager
    def _batch_update(self):
        """Suppress per-joint notifications; invalidate everything once at the end."""
        self._batching = True
        try:
            yield
        finally:
            self._batching = False
            self.invalidate_all()

    # Generalized-coordinate vectors

    def _check_vector(self, values, label: str) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64).flatten()
        if values.shape[0] != self.num_dofs:
            raise ValueError(f"Skeleton '{self.name}': expected {self.num_dofs} {label}, got {values.shape[0]}")
        return values

    def _gather(self, attribute: str) -> np.ndarray:
        if not self._body_nodes:
            return np.zeros(0)
        return np.concatenate([getattr(b.parent_joint, attribute) for b in self._body_nodes])

    def get_positions(self) -> np.ndarray:
        return self._gather('_positions')

    def set_positions(self, positions) -> None:
        positions = self._check_vector(positions, 'positions')
        for body in self._body_nodes:
            body.parent_joint.set_positions(positions[body.dof_indices], notify=False)
        self.invalidate_all()

    def get_velocities(self) -> np.ndarray:
        return self._gather('_velocities')

    def set_velocities(self, velocities) -> None:
        velocities = self._check_vector(velocities, 'velocities')
        for body in self._body_nodes:
            body.parent_joint.set_velocities(velocities[body.dof_indices], notify=False)
        self._generation += 1
        for body in self._body_nodes:
            body._invalidate(velocity=True)
        self._coriolis_forces.invalidate()
        self._coriolis_and_gravity_forces.invalidate()

    def get_accelerations(self) -> np.ndarray:
        return self._gather('_accelerations')

    def set_accelerations(self, accelerations) -> None:
        accelerations = self._check_vector(accelerations, 'accelerations')
        for body in self._body_nodes:
            body.parent_joint.set_accelerations(accelerations[body.dof_indices], notify=False)
        self._generation += 1
        for body in self._body_nodes:
            body._invalidate(acceleration=True)

    def get_forces(self) -> np.ndarray:
        return self._gather('_forces')

    def set_forces(self, forces) -> None:
        forces = self._check_vector(forces, 'forces')
        for body in self._body_nodes:
            body.parent_joint.set_forces(forces[body.dof_indices])

    def clear_internal_forces(self) -> None:
        for body in self._body_nodes:
            body.parent_joint._forces[:] = 0.0

    def get_commands(self) -> np.ndarray:
        return self._gather('_commands')

    def set_commands(self, commands) -> None:
        commands = self._check_vector(commands, 'commands')
        for body in self._body_nodes:
            body.parent_joint.set_commands(commands[body.dof_indices])

    def reset_commands(self) -> None:
        for body in self._body_nodes:
            body.parent_joint.reset_commands()

    def get_constraint_forces(self) -> np.ndarray:
        """Generalized forces imposed by contacts and enforced limits (n,)."""
        return self._gather('_constraint_forces')

    def set_constraint_forces(self, forces) -> None:
        forces = self._check_vector(forces, 'constraint forces')
        for body in self._body_nodes:
            body.parent_joint._constraint_forces[:] = forces[body.dof_indices]

    def clear_constraint_forces(self) -> None:
        for body in self._body_nodes:
            body.parent_joint._constraint_forces[:] = 0.0

    def get_position_limits(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._gather('_position_lower_limits'), self._gather('_position_upper_limits')

    def get_velocity_limits(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._gather('_velocity_lower_limits'), self._gather('_velocity_upper_limits')

    def get_force_limits(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._gather('_force_lower_limits'), self._gather('_force_upper_limits')

    def clear_external_forces(self) -> None:
        for body in self._body_nodes:
            body._external_wrench[:] = 0.0
        self._external_forces.invalidate()

    def _external_wrenches(self) -> List[np.ndarray]:
        return [b._external_wrench.copy() for b in self._body_nodes]

    # Dynamics

    def get_mass_matrix(self) -> np.ndarray:
        """Mass matrix M(q) (n, n)."""
        return self._mass_matrix.get(self._newton_euler.mass_matrix, self._generation)

    def get_inv_mass_matrix(self) -> np.ndarray:
        """Inverse mass matrix M(q)^{-1} (n, n), from unit-force ABA columns."""
        return self._inv_mass_matrix.get(self._articulated_body.inverse_mass_matrix, self._generation)

    def get_coriolis_forces(self) -> np.ndarray:
        """Coriolis and centrifugal forces c(q, q̇) (n,)."""
        return self._coriolis_forces.get(
            lambda: self._newton_euler.coriolis_forces(self.get_velocities()), self._generation)

    def get_gravity_forces(self) -> np.ndarray:
        """Gravity forces g(q) (n,)."""
        return self._gravity_forces.get(
            lambda: self._newton_euler.gravity_forces(self._gravity), self._generation)

    def get_coriolis_and_gravity_forces(self) -> np.ndarray:
        """c(q, q̇) + g(q) (n,)."""
        return self._coriolis_and_gravity_forces.get(
            lambda: self._newton_euler.coriolis_and_gravity_forces(self.get_velocities(), self._gravity),
            self._generation)

    def get_external_forces(self) -> np.ndarray:
        """Generalized forces of the body external wrenches, sum of J_b^T F_ext (n,)."""
        return self._external_forces.get(self._compute_external_forces, self._generation)

    def _compute_external_forces(self) -> np.ndarray:
        tau = np.zeros(self.num_dofs)
        for body in self._body_nodes:
            if np.any(body._external_wrench):
                tau += body.get_jacobian().T @ body._external_wrench
        return tau

    def get_spring_forces(self) -> np.ndarray:
        if not self._body_nodes:
            return np.zeros(0)
        return np.concatenate([b.parent_joint.get_spring_forces() for b in self._body_nodes])

    def get_damping_forces(self) -> np.ndarray:
        if not self._body_nodes:
            return np.zeros(0)
        return np.concatenate([b.parent_joint.get_damping_forces() for b in self._body_nodes])

    def get_passive_forces(self) -> np.ndarray:
        """Spring and damping forces after the servo spring policy is applied."""
        if not self._body_nodes:
            return np.zeros(0)
        return np.concatenate([b.parent_joint.get_passive_forces() for b in self._body_nodes])

    def compute_inverse_dynamics(
        self,
        accelerations: Optional[np.ndarray] = None,
        with_external_forces: bool = False,
        with_damping_forces: bool = False,
        with_spring_forces: bool = False,
        with_constraint_forces: bool = False,
    ) -> np.ndarray:
        """Generalized forces producing the given accelerations.

        Solves τ = M q̈ + c + g, moving the selected applied forces to the
        right-hand side so that τ is what the actuators must add to them.

        Args:
            accelerations: Generalized accelerations (n,). Defaults to the
                accelerations stored in the skeleton.

        Returns:
            tau: Generalized forces (n,).
        """
        if accelerations is None:
            accelerations = self.get_accelerations()
        accelerations = self._check_vector(accelerations, 'accelerations')
        wrenches = self._external_wrenches() if with_external_forces else None
        tau = self._newton_euler.inverse_dynamics(
            self.get_velocities(), accelerations, self._gravity, wrenches)
        if with_damping_forces:
            tau -= self.get_damping_forces()
        if with_spring_forces:
            tau -= self.get_spring_forces()
        if with_constraint_forces:
            tau -= self.get_constraint_forces()
        return tau

    def compute_forward_dynamics(self) -> np.ndarray:
        """Compute and store generalized accelerations.

        Applied forces are the FORCE-joint forces, spring and damping forces
        (subject to each joint's servo spring policy), constraint forces and
        body external wrenches. SERVO and LOCKED joints are driven towards
        their target velocity within one time step; SERVO efforts exceeding
        the force limits are clipped and those DOFs solved as force-driven.
        ACCELERATION joints follow their command. The solved efforts of
        kinematic joints are written to their forces.

        Returns:
            ddq: Generalized accelerations (n,).

        Raises:
            NumericalDegeneracyError: On singular articulated inertia. The
                skeleton state is left unchanged.
        """
        n = self.num_dofs
        dq = self.get_velocities()
        other = self.get_passive_forces() + self.get_constraint_forces()
        actuator = np.zeros(n)
        prescribed = np.zeros(n, dtype=bool)
        servo = np.zeros(n, dtype=bool)
        targets = np.zeros(n)
        dt = self._time_step

        for body in self._body_nodes:
            joint = body.parent_joint
            indices = body.dof_indices
            if joint.actuator_type is ActuatorType.FORCE:
                actuator[indices] = joint._forces
            elif joint.actuator_type is ActuatorType.SERVO:
                prescribed[indices] = True
                servo[indices] = True
                targets[indices] = (joint._commands - joint._velocities) / dt
            elif joint.actuator_type is ActuatorType.LOCKED:
                prescribed[indices] = True
                targets[indices] = -joint._velocities / dt
            elif joint.actuator_type is ActuatorType.ACCELERATION:
                prescribed[indices] = True
                targets[indices] = joint._commands

        lower, upper = self.get_force_limits()
        forces = actuator + other
        wrenches = self._external_wrenches()
        while True:
            ddq, tau = self._articulated_body.forward_dynamics(
                forces, dq, self._gravity, wrenches, prescribed, targets)
            effort = tau - other
            clipped = servo & prescribed & ((effort < lower) | (effort > upper))
            if not np.any(clipped):
                break
            logger.debug("Skeleton '%s': servo effort clipped on DOFs %s",
                         self.name, np.flatnonzero(clipped).tolist())
            prescribed = prescribed & ~clipped
            forces[clipped] = np.clip(effort, lower, upper)[clipped] + other[clipped]

        for body in self._body_nodes:
            joint = body.parent_joint
            if joint.is_kinematic:
                joint._forces[:] = effort[body.dof_indices]
        self.set_accelerations(ddq)
        return ddq

    def integrate_velocities(self, dt: float) -> None:
        with self._batch_update():
            for body in self._body_nodes:
                body.parent_joint.integrate_velocities(dt)

    def integrate_positions(self, dt: float) -> None:
        with self._batch_update():
            for body in self._body_nodes:
                body.parent_joint.integrate_positions(dt)

    # Center of mass

    def get_mass(self) -> float:
        return float(sum(b.mass for b in self._body_nodes))

    def _mass_weighted(self, values: Sequence[np.ndarray]) -> np.ndarray:
        total = self.get_mass()
        if total == 0.0:
            raise NumericalDegeneracyError(f"Skeleton '{self.name}' has zero total mass")
        return sum(b.mass * v for b, v in zip(self._body_nodes, values)) / total

    def get_com(self, relative_to: Optional[BodyNode] = None) -> np.ndarray:
        """Center of mass expressed in `relative_to` (world when None) (3,)."""
        com = self._com.get(
            lambda: self._mass_weighted([b.get_com() for b in self._body_nodes]), self._generation)
        if relative_to is None:
            return com
        T = inverse_transform(relative_to.get_world_transform())
        return T[:3, :3] @ com + T[:3, 3]

    @staticmethod
    def _world_to(in_coordinates_of: Optional[BodyNode], v: np.ndarray) -> np.ndarray:
        if in_coordinates_of is None:
            return v
        return in_coordinates_of.get_world_transform()[:3, :3].T @ v

    def get_com_linear_velocity(self, in_coordinates_of: Optional[BodyNode] = None) -> np.ndarray:
        """COM velocity (3,) in world coordinates or those of a body."""
        v = self._mass_weighted([b.get_com_linear_velocity() for b in self._body_nodes])
        return self._world_to(in_coordinates_of, v)

    def get_com_linear_acceleration(self, in_coordinates_of: Optional[BodyNode] = None) -> np.ndarray:
        """COM acceleration (3,) in world coordinates or those of a body."""
        a = self._mass_weighted([b.get_com_linear_acceleration() for b in self._body_nodes])
        return self._world_to(in_coordinates_of, a)

    def get_com_jacobian(self, in_coordinates_of: Optional[BodyNode] = None) -> np.ndarray:
        """Linear Jacobian (3, n) of the COM.

        The world-coordinate Jacobian is cached; other frames rotate it.
        """
        J = self._com_jacobian.get(
            lambda: self._mass_weighted([b.get_linear_jacobian(b.properties.local_com)
                                         for b in self._body_nodes]),
            self._generation)
        return self._world_to(in_coordinates_of, J)

    # Energy

    def compute_kinetic_energy(self) -> float:
        return float(sum(b.compute_kinetic_energy() for b in self._body_nodes))

    def compute_potential_energy(self) -> float:
        """Gravitational plus joint-spring potential energy."""
        return float(sum(b.compute_potential_energy(self._gravity) + b.parent_joint.compute_potential_energy()
                         for b in self._body_nodes))

    # Self collision

    def enable_self_collision(self, adjacent_bodies: bool = False) -> None:
        """Let the collision layer consider pairs of this skeleton's bodies.

        Args:
            adjacent_bodies: Whether directly joint-connected pairs are
                included as well.
        """
        self._self_collision = True
        self._adjacent_body_check = adjacent_bodies
        logger.info("Skeleton '%s': self-collision enabled (adjacent bodies %s)",
                    self.name, 'included' if adjacent_bodies else 'excluded')

    def disable_self_collision(self) -> None:
        self._self_collision = False
        self._adjacent_body_check = False
        logger.info("Skeleton '%s': self-collision disabled", self.name)

    @property
    def self_collision_enabled(self) -> bool:
        return self._self_collision

    @property
    def adjacent_body_check(self) -> bool:
        return self._adjacent_body_check

    def is_collidable(self, body1: BodyNode, body2: BodyNode) -> bool:
        """Whether a pair of this skeleton's bodies may collide."""
        if body1.skeleton is not self or body2.skeleton is not self:
            raise ConfigurationError(f"Both bodies must belong to skeleton '{self.name}'")
        if body1 is body2 or not self._self_collision:
            return False
        if not (body1.collidable and body2.collidable):
            return False
        if not self._adjacent_body_check and body1.is_adjacent(body2):
            return False
        return True

    # Editing

    def move_subtree(
        self,
        body: BodyNode,
        new_parent: Optional[BodyNode],
        joint_type: JointTypeLike,
        joint_properties: Optional[JointProperties] = None,
    ) -> Joint:
        """Reattach `body` and its descendants under `new_parent` with a new joint.

        Joints inside the subtree keep their coordinates. Every DOF index
        and cached quantity is rebuilt.

        Args:
            body: Root of the subtree to move.
            new_parent: New parent body, or None to make the subtree a new tree.
            joint_type: Variant of the joint replacing the body's parent joint.
            joint_properties: Properties of the new joint.

        Returns:
            The new parent joint of `body`.

        Raises:
            ConfigurationError: If a body belongs to another skeleton, the
                move would create a cycle, or the joint is invalid.
        """
        if body.skeleton is not self:
            raise ConfigurationError(f"Body '{body.name}' does not belong to skeleton '{self.name}'")
        self._check_parent(new_parent)
        if new_parent is not None and new_parent.is_descendant_of(body):
            raise ConfigurationError(
                f"Moving '{body.name}' under '{new_parent.name}' would create a cycle")

        joint_cls = resolve_joint_type(joint_type)
        if joint_properties is None:
            joint_properties = joint_cls.PROPERTIES_TYPE(name=f'{body.name}_joint')
        new_joint = joint_cls(joint_properties)
        old_joint = body.parent_joint
        self._check_joint_names(new_joint, replacing=old_joint)

        roots, children, parents = self._topology()
        old_parent = parents[id(body)]
        if old_parent is None:
            roots.remove(body)
        else:
            children[id(old_parent)].remove(body)
        if new_parent is None:
            roots.append(body)
        else:
            children[id(new_parent)].append(body)
        parents[id(body)] = new_parent

        old_joint._skeleton = None
        old_joint._child_index = None
        for dof in old_joint.dofs:
            dof.index_in_skeleton = None
        body._parent_joint = new_joint
        new_joint._skeleton = self
        self._rebuild(roots, children, parents)

        logger.debug("Skeleton '%s': moved subtree '%s' from '%s' to '%s'", self.name, body.name,
                     None if old_parent is None else old_parent.name,
                     None if new_parent is None else new_parent.name)
        return new_joint
