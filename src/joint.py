"""Joint base class.

A joint connects a parent body (or the world) to a child body. Its relative
transform is

    T_{parent,child}(q) = T_{parent,joint} @ Q(q) @ T_{child,joint}^{-1}

where Q(q) is the variant-specific motion of the joint frame and depends only
on this joint's own generalized coordinates. The motion subspace S maps the
joint velocity to the child body twist relative to the parent, expressed in
the child frame:

    V_rel = S @ dq,    S = [Ad_{T_{child,joint}}] @ S_local

Twists use the pymlg [ω, v] ordering.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np

from multibody.cache import CachedValue
from multibody.degree_of_freedom import DegreeOfFreedom
from multibody.exceptions import ConfigurationError
from multibody.lie_algebra import adjoint, inverse_transform

if TYPE_CHECKING:
    from multibody.body_node import BodyNode
    from multibody.skeleton import Skeleton

logger = logging.getLogger(__name__)


class ActuatorType(Enum):
    """How a joint's command is turned into motion.

    FORCE: the command is a generalized force, clipped to force limits.
    PASSIVE: the command is ignored; only spring and damping forces act.
    SERVO: the command is a target velocity enforced by the actuation stage
        of forward dynamics within the force limits. VELOCITY is an alias.
    ACCELERATION: the command is a prescribed generalized acceleration.
    LOCKED: the joint is held rigid (target velocity zero, unbounded force).
    """

    FORCE = 'force'
    PASSIVE = 'passive'
    SERVO = 'servo'
    VELOCITY = 'servo'
    ACCELERATION = 'acceleration'
    LOCKED = 'locked'


class ServoSpringPolicy(Enum):
    """Whether spring/damper forces act on SERVO, LOCKED and ACCELERATION DOFs.

    SUPPRESS: the kinematic command replaces spring and damper torques.
    ADD: spring and damper torques are still applied; the solved actuator
        effort absorbs them.
    """

    SUPPRESS = 'suppress'
    ADD = 'add'


KINEMATIC_ACTUATORS = (ActuatorType.SERVO, ActuatorType.ACCELERATION, ActuatorType.LOCKED)


def _check_transform(T: np.ndarray, label: str) -> np.ndarray:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ConfigurationError(f"{label} must have shape (4, 4), got {T.shape}")
    R = T[:3, :3]
    if not np.allclose(T[3], [0.0, 0.0, 0.0, 1.0]) or not np.allclose(R.T @ R, np.eye(3), atol=1e-8):
        raise ConfigurationError(f"{label} is not a rigid transform")
    return T


@dataclass
class JointProperties:
    """Properties shared by all joint variants.

    Per-DOF sequences default to None, meaning: zero for initial state and
    springs, and unbounded for limits. When given, their length must equal
    the number of DOFs of the joint.

    Attributes:
        name: Joint name.
        transform_from_parent_body_node: Pose of the joint frame in the
            parent body frame (4, 4).
        transform_from_child_body_node: Pose of the joint frame in the
            child body frame (4, 4).
        actuator_type: Actuation mode.
        position_limit_enforced: Whether the constraint layer enforces
            position limits.
        velocity_limit_enforced: Whether the constraint layer enforces
            velocity limits.
        servo_spring_policy: Spring/damper policy for kinematically
            actuated DOFs.
        dof_names: Optional names for the DOFs.
    """

    name: str = 'joint'
    transform_from_parent_body_node: np.ndarray = field(default_factory=lambda: np.eye(4))
    transform_from_child_body_node: np.ndarray = field(default_factory=lambda: np.eye(4))
    actuator_type: ActuatorType = ActuatorType.FORCE
    position_limit_enforced: bool = False
    velocity_limit_enforced: bool = False
    servo_spring_policy: ServoSpringPolicy = ServoSpringPolicy.SUPPRESS
    dof_names: Optional[Sequence[str]] = None
    initial_positions: Optional[Sequence[float]] = None
    initial_velocities: Optional[Sequence[float]] = None
    position_lower_limits: Optional[Sequence[float]] = None
    position_upper_limits: Optional[Sequence[float]] = None
    velocity_lower_limits: Optional[Sequence[float]] = None
    velocity_upper_limits: Optional[Sequence[float]] = None
    force_lower_limits: Optional[Sequence[float]] = None
    force_upper_limits: Optional[Sequence[float]] = None
    spring_stiffnesses: Optional[Sequence[float]] = None
    rest_positions: Optional[Sequence[float]] = None
    damping_coefficients: Optional[Sequence[float]] = None

    def __post_init__(self):
        self.transform_from_parent_body_node = _check_transform(
            self.transform_from_parent_body_node, 'transform_from_parent_body_node')
        self.transform_from_child_body_node = _check_transform(
            self.transform_from_child_body_node, 'transform_from_child_body_node')
        if not isinstance(self.actuator_type, ActuatorType):
            raise ConfigurationError(f"Unknown actuator type: {self.actuator_type!r}")


class Joint:
    """Base class of all joint variants.

    Subclasses set NUM_DOFS and PROPERTIES_TYPE and implement the local
    motion Q(q), its body Jacobian S_local(q) and dS_local/dt.

    Attributes:
        properties: The joint properties this joint was built from.
    """

    NUM_DOFS = 0
    PROPERTIES_TYPE = JointProperties
    DOF_SUFFIXES: Sequence[str] = ()

    def __init__(self, properties: Optional[JointProperties] = None) -> None:
        if properties is None:
            properties = self.PROPERTIES_TYPE()
        if not isinstance(properties, self.PROPERTIES_TYPE):
            raise ConfigurationError(
                f"{type(self).__name__} requires {self.PROPERTIES_TYPE.__name__}, "
                f"got {type(properties).__name__}"
            )
        self._validate_properties(properties)
        self.properties = properties

        n = self.NUM_DOFS
        p = properties
        self._positions = self._expand(p.initial_positions, 0.0, 'initial_positions')
        self._velocities = self._expand(p.initial_velocities, 0.0, 'initial_velocities')
        self._accelerations = np.zeros(n)
        self._forces = np.zeros(n)
        self._commands = np.zeros(n)
        self._constraint_forces = np.zeros(n)
        self._position_lower_limits = self._expand(p.position_lower_limits, -np.inf, 'position_lower_limits')
        self._position_upper_limits = self._expand(p.position_upper_limits, np.inf, 'position_upper_limits')
        self._velocity_lower_limits = self._expand(p.velocity_lower_limits, -np.inf, 'velocity_lower_limits')
        self._velocity_upper_limits = self._expand(p.velocity_upper_limits, np.inf, 'velocity_upper_limits')
        self._force_lower_limits = self._expand(p.force_lower_limits, -np.inf, 'force_lower_limits')
        self._force_upper_limits = self._expand(p.force_upper_limits, np.inf, 'force_upper_limits')
        self._spring_stiffnesses = self._expand(p.spring_stiffnesses, 0.0, 'spring_stiffnesses')
        self._rest_positions = self._expand(p.rest_positions, 0.0, 'rest_positions')
        self._damping_coefficients = self._expand(p.damping_coefficients, 0.0, 'damping_coefficients')

        if np.any(self._position_lower_limits > self._position_upper_limits):
            raise ConfigurationError(f"Joint '{p.name}': position lower limit above upper limit")
        if np.any(self._force_lower_limits > self._force_upper_limits):
            raise ConfigurationError(f"Joint '{p.name}': force lower limit above upper limit")

        if p.dof_names is not None:
            if len(p.dof_names) != n:
                raise ConfigurationError(
                    f"Joint '{p.name}': expected {n} dof_names, got {len(p.dof_names)}")
            names = list(p.dof_names)
        elif n == 1:
            names = [p.name]
        else:
            suffixes = self.DOF_SUFFIXES or [str(i) for i in range(n)]
            names = [f'{p.name}_{s}' for s in suffixes]
        self._dofs = [DegreeOfFreedom(self, i, names[i]) for i in range(n)]

        self._actuator_type = p.actuator_type
        self._skeleton: Optional['Skeleton'] = None
        self._child_index: Optional[int] = None

        self._relative_transform = CachedValue('relative_transform')
        self._relative_jacobian = CachedValue('relative_jacobian')
        self._relative_jacobian_deriv = CachedValue('relative_jacobian_deriv')

    def _expand(self, values: Optional[Sequence[float]], default: float, label: str) -> np.ndarray:
        n = self.NUM_DOFS
        if values is None:
            return np.full(n, default, dtype=np.float64)
        values = np.asarray(values, dtype=np.float64).flatten()
        if values.shape[0] != n:
            raise ConfigurationError(
                f"Joint '{self.properties.name}': {label} expects {n} values, got {values.shape[0]}")
        return values.copy()

    def _validate_properties(self, properties: JointProperties) -> None:
        """Variant-specific validation; raise ConfigurationError on failure."""

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.name!r}, dofs={self.num_dofs})'

    # Variant interface

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _local_jacobian_deriv(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        return np.zeros((6, self.NUM_DOFS))

    # Topology

    @property
    def name(self) -> str:
        return self.properties.name

    @property
    def num_dofs(self) -> int:
        return self.NUM_DOFS

    @property
    def dofs(self) -> List[DegreeOfFreedom]:
        return list(self._dofs)

    def get_dof(self, index: int) -> DegreeOfFreedom:
        if not 0 <= index < self.NUM_DOFS:
            raise IndexError(f"Joint '{self.name}' has {self.NUM_DOFS} DOFs, index {index} out of range")
        return self._dofs[index]

    @property
    def skeleton(self) -> Optional['Skeleton']:
        return self._skeleton

    @property
    def child_body_node(self) -> Optional['BodyNode']:
        if self._skeleton is None or self._child_index is None:
            return None
        return self._skeleton.get_body_node(self._child_index)

    @property
    def parent_body_node(self) -> Optional['BodyNode']:
        child = self.child_body_node
        return None if child is None else child.parent_body_node

    @property
    def actuator_type(self) -> ActuatorType:
        return self._actuator_type

    @actuator_type.setter
    def actuator_type(self, value: ActuatorType) -> None:
        if not isinstance(value, ActuatorType):
            raise ConfigurationError(f"Unknown actuator type: {value!r}")
        self._actuator_type = value

    @property
    def is_kinematic(self) -> bool:
        """True when the actuator prescribes motion rather than force."""
        return self._actuator_type in KINEMATIC_ACTUATORS

    @property
    def position_limit_enforced(self) -> bool:
        return self.properties.position_limit_enforced

    @position_limit_enforced.setter
    def position_limit_enforced(self, value: bool) -> None:
        self.properties.position_limit_enforced = bool(value)

    @property
    def velocity_limit_enforced(self) -> bool:
        return self.properties.velocity_limit_enforced

    @velocity_limit_enforced.setter
    def velocity_limit_enforced(self, value: bool) -> None:
        self.properties.velocity_limit_enforced = bool(value)

    @property
    def transform_from_parent_body_node(self) -> np.ndarray:
        return self.properties.transform_from_parent_body_node.copy()

    def set_transform_from_parent_body_node(self, T: np.ndarray) -> None:
        self.properties.transform_from_parent_body_node = _check_transform(
            T, 'transform_from_parent_body_node')
        self._on_position_change()

    @property
    def transform_from_child_body_node(self) -> np.ndarray:
        return self.properties.transform_from_child_body_node.copy()

    def set_transform_from_child_body_node(self, T: np.ndarray) -> None:
        self.properties.transform_from_child_body_node = _check_transform(
            T, 'transform_from_child_body_node')
        self._on_position_change()

    # Relative kinematics

    def _generation(self) -> Optional[int]:
        return None if self._skeleton is None else self._skeleton.generation

    def get_relative_transform(self) -> np.ndarray:
        """Pose of the child body frame in the parent body frame (4, 4)."""
        return self._relative_transform.get(self._compute_relative_transform, self._generation())

    def _compute_relative_transform(self) -> np.ndarray:
        p = self.properties
        return (p.transform_from_parent_body_node
                @ self._local_transform(self._positions)
                @ inverse_transform(p.transform_from_child_body_node))

    def get_relative_jacobian(self) -> np.ndarray:
        """Motion subspace S in the child body frame (6, k)."""
        return self._relative_jacobian.get(
            lambda: adjoint(self.properties.transform_from_child_body_node)
            @ self._local_jacobian(self._positions),
            self._generation(),
        )

    def get_relative_jacobian_time_deriv(self) -> np.ndarray:
        """Time derivative of the motion subspace in the child body frame (6, k)."""
        return self._relative_jacobian_deriv.get(
            lambda: self.compute_relative_jacobian_time_deriv(self._velocities),
            self._generation(),
        )

    def compute_relative_jacobian_time_deriv(self, velocities: np.ndarray) -> np.ndarray:
        """dS/dt at the current positions for arbitrary joint velocities (uncached)."""
        return (adjoint(self.properties.transform_from_child_body_node)
                @ self._local_jacobian_deriv(self._positions, velocities))

    def get_relative_spatial_velocity(self) -> np.ndarray:
        """Twist of the child relative to the parent, in the child frame (6,)."""
        return self.get_relative_jacobian() @ self._velocities

    def get_relative_spatial_acceleration(self) -> np.ndarray:
        """dS/dt @ dq + S @ ddq in the child frame (6,)."""
        return (self.get_relative_jacobian_time_deriv() @ self._velocities
                + self.get_relative_jacobian() @ self._accelerations)

    # Cache plumbing

    def _on_position_change(self) -> None:
        self._relative_transform.invalidate()
        self._relative_jacobian.invalidate()
        self._relative_jacobian_deriv.invalidate()
        if self._skeleton is not None:
            self._skeleton._notify_position_update(self)

    def _on_velocity_change(self) -> None:
        self._relative_jacobian_deriv.invalidate()
        if self._skeleton is not None:
            self._skeleton._notify_velocity_update(self)

    def _on_acceleration_change(self) -> None:
        if self._skeleton is not None:
            self._skeleton._notify_acceleration_update(self)

    def _invalidate_caches(self) -> None:
        self._relative_transform.invalidate()
        self._relative_jacobian.invalidate()
        self._relative_jacobian_deriv.invalidate()

    def _check_vector(self, values, label: str) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64).flatten()
        if values.shape[0] != self.NUM_DOFS:
            raise ValueError(
                f"Joint '{self.name}': expected {self.NUM_DOFS} {label}, got {values.shape[0]}")
        return values

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.NUM_DOFS:
            raise IndexError(f"Joint '{self.name}' has {self.NUM_DOFS} DOFs, index {index} out of range")

    # State access

    def get_positions(self) -> np.ndarray:
        return self._positions.copy()

    def set_positions(self, positions, notify: bool = True) -> None:
        self._positions[:] = self._check_vector(positions, 'positions')
        if notify:
            self._on_position_change()
        else:
            self._invalidate_caches()

    def get_position(self, index: int) -> float:
        self._check_index(index)
        return float(self._positions[index])

    def set_position(self, index: int, value: float) -> None:
        self._check_index(index)
        self._positions[index] = value
        self._on_position_change()

    def get_velocities(self) -> np.ndarray:
        return self._velocities.copy()

    def set_velocities(self, velocities, notify: bool = True) -> None:
        self._velocities[:] = self._check_vector(velocities, 'velocities')
        if notify:
            self._on_velocity_change()
        else:
            self._relative_jacobian_deriv.invalidate()

    def get_velocity(self, index: int) -> float:
        self._check_index(index)
        return float(self._velocities[index])

    def set_velocity(self, index: int, value: float) -> None:
        self._check_index(index)
        self._velocities[index] = value
        self._on_velocity_change()

    def get_accelerations(self) -> np.ndarray:
        return self._accelerations.copy()

    def set_accelerations(self, accelerations, notify: bool = True) -> None:
        self._accelerations[:] = self._check_vector(accelerations, 'accelerations')
        if notify:
            self._on_acceleration_change()

    def get_acceleration(self, index: int) -> float:
        self._check_index(index)
        return float(self._accelerations[index])

    def set_acceleration(self, index: int, value: float) -> None:
        self._check_index(index)
        self._accelerations[index] = value
        self._on_acceleration_change()

    def get_forces(self) -> np.ndarray:
        return self._forces.copy()

    def set_forces(self, forces) -> None:
        self._forces[:] = self._check_vector(forces, 'forces')

    def get_force(self, index: int) -> float:
        self._check_index(index)
        return float(self._forces[index])

    def set_force(self, index: int, value: float) -> None:
        self._check_index(index)
        self._forces[index] = value

    def get_constraint_forces(self) -> np.ndarray:
        return self._constraint_forces.copy()

    def get_commands(self) -> np.ndarray:
        return self._commands.copy()

    def set_commands(self, commands) -> None:
        self._commands[:] = self._check_vector(commands, 'commands')
        self._apply_commands()

    def get_command(self, index: int) -> float:
        self._check_index(index)
        return float(self._commands[index])

    def set_command(self, index: int, value: float) -> None:
        self._check_index(index)
        self._commands[index] = value
        self._apply_commands()

    def _apply_commands(self) -> None:
        if self._actuator_type is ActuatorType.FORCE:
            self._forces[:] = np.clip(self._commands, self._force_lower_limits, self._force_upper_limits)

    def reset_commands(self) -> None:
        self._commands[:] = 0.0

    # Limits

    def get_position_limits(self):
        return self._position_lower_limits.copy(), self._position_upper_limits.copy()

    def get_velocity_limits(self):
        return self._velocity_lower_limits.copy(), self._velocity_upper_limits.copy()

    def get_force_limits(self):
        return self._force_lower_limits.copy(), self._force_upper_limits.copy()

    def is_position_limit_violated(self, index: int) -> bool:
        self._check_index(index)
        q = self._positions[index]
        return bool(q < self._position_lower_limits[index] or q > self._position_upper_limits[index])

    def is_velocity_limit_violated(self, index: int) -> bool:
        self._check_index(index)
        dq = self._velocities[index]
        return bool(dq < self._velocity_lower_limits[index] or dq > self._velocity_upper_limits[index])

    # Passive forces

    def get_spring_forces(self) -> np.ndarray:
        return -self._spring_stiffnesses * (self._positions - self._rest_positions)

    def get_damping_forces(self) -> np.ndarray:
        return -self._damping_coefficients * self._velocities

    def get_passive_forces(self) -> np.ndarray:
        """Spring plus damping forces, honouring the servo spring policy."""
        tau = self.get_spring_forces() + self.get_damping_forces()
        if self.is_kinematic and self.properties.servo_spring_policy is ServoSpringPolicy.SUPPRESS:
            tau[:] = 0.0
        return tau

    def compute_potential_energy(self) -> float:
        """Potential energy stored in the joint springs."""
        dq = self._positions - self._rest_positions
        return float(0.5 * np.sum(self._spring_stiffnesses * dq * dq))

    # Integration

    def integrate_positions(self, dt: float) -> None:
        """Advance positions by dt using the current velocities."""
        self.set_positions(self._positions + self._velocities * dt)

    def integrate_velocities(self, dt: float) -> None:
        """Advance velocities by dt using the current accelerations."""
        self.set_velocities(self._velocities + self._accelerations * dt)
