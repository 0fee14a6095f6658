"""Single scalar generalized coordinate of a joint."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from multibody.joint import Joint
    from multibody.skeleton import Skeleton


class DegreeOfFreedom:
    """One generalized coordinate owned by a Joint.

    The numeric state lives in the owning joint's arrays; this object is a
    stable handle onto one slot of them. All writes go through the joint so
    that cached quantities of the skeleton are invalidated.

    Attributes:
        name: DOF name, unique within its skeleton by convention.
        index_in_joint: Position of this DOF within the joint's coordinates.
        index_in_skeleton: Position within the skeleton's generalized
            coordinate vector. None until the joint is added to a skeleton.
    """

    def __init__(self, joint: 'Joint', index_in_joint: int, name: str) -> None:
        self._joint = joint
        self.index_in_joint = index_in_joint
        self.index_in_skeleton: Optional[int] = None
        self.name = name

    def __repr__(self) -> str:
        return (f'DegreeOfFreedom({self.name!r}, joint={self._joint.name!r}, '
                f'index={self.index_in_skeleton})')

    @property
    def joint(self) -> 'Joint':
        return self._joint

    @property
    def skeleton(self) -> Optional['Skeleton']:
        return self._joint.skeleton

    # State

    @property
    def position(self) -> float:
        return float(self._joint._positions[self.index_in_joint])

    @position.setter
    def position(self, value: float) -> None:
        self._joint.set_position(self.index_in_joint, value)

    @property
    def velocity(self) -> float:
        return float(self._joint._velocities[self.index_in_joint])

    @velocity.setter
    def velocity(self, value: float) -> None:
        self._joint.set_velocity(self.index_in_joint, value)

    @property
    def acceleration(self) -> float:
        return float(self._joint._accelerations[self.index_in_joint])

    @acceleration.setter
    def acceleration(self, value: float) -> None:
        self._joint.set_acceleration(self.index_in_joint, value)

    @property
    def force(self) -> float:
        return float(self._joint._forces[self.index_in_joint])

    @force.setter
    def force(self, value: float) -> None:
        self._joint.set_force(self.index_in_joint, value)

    @property
    def command(self) -> float:
        return float(self._joint._commands[self.index_in_joint])

    @command.setter
    def command(self, value: float) -> None:
        self._joint.set_command(self.index_in_joint, value)

    @property
    def constraint_force(self) -> float:
        return float(self._joint._constraint_forces[self.index_in_joint])

    # Limits

    @property
    def position_lower_limit(self) -> float:
        return float(self._joint._position_lower_limits[self.index_in_joint])

    @position_lower_limit.setter
    def position_lower_limit(self, value: float) -> None:
        self._joint._position_lower_limits[self.index_in_joint] = value

    @property
    def position_upper_limit(self) -> float:
        return float(self._joint._position_upper_limits[self.index_in_joint])

    @position_upper_limit.setter
    def position_upper_limit(self, value: float) -> None:
        self._joint._position_upper_limits[self.index_in_joint] = value

    @property
    def velocity_lower_limit(self) -> float:
        return float(self._joint._velocity_lower_limits[self.index_in_joint])

    @velocity_lower_limit.setter
    def velocity_lower_limit(self, value: float) -> None:
        self._joint._velocity_lower_limits[self.index_in_joint] = value

    @property
    def velocity_upper_limit(self) -> float:
        return float(self._joint._velocity_upper_limits[self.index_in_joint])

    @velocity_upper_limit.setter
    def velocity_upper_limit(self, value: float) -> None:
        self._joint._velocity_upper_limits[self.index_in_joint] = value

    @property
    def force_lower_limit(self) -> float:
        return float(self._joint._force_lower_limits[self.index_in_joint])

    @force_lower_limit.setter
    def force_lower_limit(self, value: float) -> None:
        self._joint._force_lower_limits[self.index_in_joint] = value

    @property
    def force_upper_limit(self) -> float:
        return float(self._joint._force_upper_limits[self.index_in_joint])

    @force_upper_limit.setter
    def force_upper_limit(self, value: float) -> None:
        self._joint._force_upper_limits[self.index_in_joint] = value

    def is_position_limit_violated(self) -> bool:
        return self._joint.is_position_limit_violated(self.index_in_joint)

    def is_velocity_limit_violated(self) -> bool:
        return self._joint.is_velocity_limit_violated(self.index_in_joint)

    # Passive elements

    @property
    def spring_stiffness(self) -> float:
        return float(self._joint._spring_stiffnesses[self.index_in_joint])

    @spring_stiffness.setter
    def spring_stiffness(self, value: float) -> None:
        self._joint._spring_stiffnesses[self.index_in_joint] = value

    @property
    def rest_position(self) -> float:
        return float(self._joint._rest_positions[self.index_in_joint])

    @rest_position.setter
    def rest_position(self, value: float) -> None:
        self._joint._rest_positions[self.index_in_joint] = value

    @property
    def damping_coefficient(self) -> float:
        return float(self._joint._damping_coefficients[self.index_in_joint])

    @damping_coefficient.setter
    def damping_coefficient(self, value: float) -> None:
        self._joint._damping_coefficients[self.index_in_joint] = value

    def get_spring_force(self) -> float:
        return float(self._joint.get_spring_forces()[self.index_in_joint])

    def get_damping_force(self) -> float:
        return float(self._joint.get_damping_forces()[self.index_in_joint])
