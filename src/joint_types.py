"""Joint variants.

Each variant defines the local motion Q(q) of the joint frame, the body
Jacobian S_local (Q^{-1} dQ/dt = S_local dq, in [ω, v] order) and its time
derivative. All variants satisfy Q(0) = identity.

Ball and Free joints use body velocities as generalized velocities and
rotation vectors as positions, so their positions are advanced by
exponential-map integration rather than q += dq*dt.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from multibody.exceptions import ConfigurationError
from multibody.joint import Joint, JointProperties
from multibody.lie_algebra import (
    inverse_transform,
    rotation_sequence,
    rotation_sequence_jacobian,
    rotation_sequence_jacobian_deriv,
    rotation_transform,
    se3_exp,
    so3_exp,
    so3_log,
    transform_from_rotation_translation,
    translation_transform,
)


def _unit_axis(axis: Optional[Sequence[float]], joint_name: str, label: str = 'axis') -> np.ndarray:
    """Validate and normalise a joint axis."""
    if axis is None:
        raise ConfigurationError(f"Joint '{joint_name}': {label} is required")
    axis = np.asarray(axis, dtype=np.float64).flatten()
    if axis.shape != (3,):
        raise ConfigurationError(f"Joint '{joint_name}': {label} must have 3 components, got {axis.shape[0]}")
    norm = np.linalg.norm(axis)
    if not np.isfinite(norm) or norm < 1e-12:
        raise ConfigurationError(f"Joint '{joint_name}': {label} must be non-zero")
    return axis / norm


@dataclass
class WeldJointProperties(JointProperties):
    """Weld joint has no properties beyond the common ones."""


class WeldJoint(Joint):
    """Rigid attachment with zero DOFs."""

    NUM_DOFS = 0
    PROPERTIES_TYPE = WeldJointProperties

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return np.eye(4)

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        return np.zeros((6, 0))


@dataclass
class RevoluteJointProperties(JointProperties):
    """Attributes:
        axis: Rotation axis in the joint frame. Required.
    """

    axis: Optional[Sequence[float]] = None

    def __post_init__(self):
        super().__post_init__()
        self.axis = _unit_axis(self.axis, self.name)


class RevoluteJoint(Joint):
    """Rotation about a fixed axis; q is the angle [rad]."""

    NUM_DOFS = 1
    PROPERTIES_TYPE = RevoluteJointProperties

    @property
    def axis(self) -> np.ndarray:
        return self.properties.axis.copy()

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return rotation_transform(self.properties.axis, q[0])

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        S = np.zeros((6, 1))
        S[:3, 0] = self.properties.axis
        return S


@dataclass
class PrismaticJointProperties(JointProperties):
    """Attributes:
        axis: Translation axis in the joint frame. Required.
    """

    axis: Optional[Sequence[float]] = None

    def __post_init__(self):
        super().__post_init__()
        self.axis = _unit_axis(self.axis, self.name)


class PrismaticJoint(Joint):
    """Translation along a fixed axis; q is the displacement [m]."""

    NUM_DOFS = 1
    PROPERTIES_TYPE = PrismaticJointProperties

    @property
    def axis(self) -> np.ndarray:
        return self.properties.axis.copy()

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return translation_transform(self.properties.axis * q[0])

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        S = np.zeros((6, 1))
        S[3:, 0] = self.properties.axis
        return S


@dataclass
class ScrewJointProperties(JointProperties):
    """Attributes:
        axis: Screw axis in the joint frame. Required.
        pitch: Translation per full revolution [m/rev].
    """

    axis: Optional[Sequence[float]] = None
    pitch: float = 0.1

    def __post_init__(self):
        super().__post_init__()
        self.axis = _unit_axis(self.axis, self.name)
        if not np.isfinite(self.pitch):
            raise ConfigurationError(f"Joint '{self.name}': pitch must be finite")


class ScrewJoint(Joint):
    """Coupled rotation and translation along one axis; q is the angle [rad]."""

    NUM_DOFS = 1
    PROPERTIES_TYPE = ScrewJointProperties

    def _screw_axis(self) -> np.ndarray:
        a = self.properties.axis
        return np.concatenate([a, a * self.properties.pitch / (2.0 * np.pi)])

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return se3_exp(self._screw_axis(), q[0])

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        return self._screw_axis().reshape(6, 1)


@dataclass
class UniversalJointProperties(JointProperties):
    """Attributes:
        axis1: First rotation axis (applied first, nearest the parent). Required.
        axis2: Second rotation axis. Required.
    """

    axis1: Optional[Sequence[float]] = None
    axis2: Optional[Sequence[float]] = None

    def __post_init__(self):
        super().__post_init__()
        self.axis1 = _unit_axis(self.axis1, self.name, 'axis1')
        self.axis2 = _unit_axis(self.axis2, self.name, 'axis2')


def _rotation_sequence_transform(axes, q: np.ndarray) -> np.ndarray:
    return transform_from_rotation_translation(rotation_sequence(axes, q), np.zeros(3))


def _rotation_sequence_subspace(axes, q: np.ndarray) -> np.ndarray:
    S = np.zeros((6, len(axes)))
    S[:3, :] = rotation_sequence_jacobian(axes, q)
    return S


def _rotation_sequence_subspace_deriv(axes, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
    dS = np.zeros((6, len(axes)))
    dS[:3, :] = rotation_sequence_jacobian_deriv(axes, q, dq)
    return dS


class UniversalJoint(Joint):
    """Two successive rotations, Q = Rot(axis1, q1) Rot(axis2, q2)."""

    NUM_DOFS = 2
    PROPERTIES_TYPE = UniversalJointProperties

    def _axes(self):
        return (self.properties.axis1, self.properties.axis2)

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return _rotation_sequence_transform(self._axes(), q)

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        return _rotation_sequence_subspace(self._axes(), q)

    def _local_jacobian_deriv(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        return _rotation_sequence_subspace_deriv(self._axes(), q, dq)


class EulerAxisOrder(Enum):
    XYZ = 'xyz'
    ZYX = 'zyx'


_UNIT_AXES = {'x': np.array([1.0, 0.0, 0.0]),
              'y': np.array([0.0, 1.0, 0.0]),
              'z': np.array([0.0, 0.0, 1.0])}


@dataclass
class EulerJointProperties(JointProperties):
    """Attributes:
        axis_order: Order of the three elementary rotations.
    """

    axis_order: EulerAxisOrder = EulerAxisOrder.XYZ

    def __post_init__(self):
        super().__post_init__()
        if not isinstance(self.axis_order, EulerAxisOrder):
            raise ConfigurationError(f"Joint '{self.name}': unknown axis order {self.axis_order!r}")


class EulerJoint(Joint):
    """Three elementary rotations in a fixed axis order."""

    NUM_DOFS = 3
    PROPERTIES_TYPE = EulerJointProperties
    DOF_SUFFIXES = ('1', '2', '3')

    def _axes(self):
        return [_UNIT_AXES[c] for c in self.properties.axis_order.value]

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return _rotation_sequence_transform(self._axes(), q)

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        return _rotation_sequence_subspace(self._axes(), q)

    def _local_jacobian_deriv(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        return _rotation_sequence_subspace_deriv(self._axes(), q, dq)


@dataclass
class TranslationalJointProperties(JointProperties):
    """Translational joint has no properties beyond the common ones."""


class TranslationalJoint(Joint):
    """Free translation in three dimensions; q is the offset [m]."""

    NUM_DOFS = 3
    PROPERTIES_TYPE = TranslationalJointProperties
    DOF_SUFFIXES = ('x', 'y', 'z')

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return translation_transform(q)

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        S = np.zeros((6, 3))
        S[3:, :] = np.eye(3)
        return S


@dataclass
class BallJointProperties(JointProperties):
    """Ball joint has no properties beyond the common ones."""


class BallJoint(Joint):
    """Spherical joint.

    Positions are a rotation vector, velocities the body angular velocity
    of the joint frame.
    """

    NUM_DOFS = 3
    PROPERTIES_TYPE = BallJointProperties
    DOF_SUFFIXES = ('x', 'y', 'z')

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return transform_from_rotation_translation(so3_exp(q), np.zeros(3))

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        S = np.zeros((6, 3))
        S[:3, :] = np.eye(3)
        return S

    def integrate_positions(self, dt: float) -> None:
        R = so3_exp(self._positions) @ so3_exp(self._velocities * dt)
        self.set_positions(so3_log(R))


@dataclass
class FreeJointProperties(JointProperties):
    """Free joint has no properties beyond the common ones."""


class FreeJoint(Joint):
    """Six-DOF floating joint.

    Positions are [rotation vector, translation] of the joint frame motion,
    velocities the body twist [ω, v].
    """

    NUM_DOFS = 6
    PROPERTIES_TYPE = FreeJointProperties
    DOF_SUFFIXES = ('rot_x', 'rot_y', 'rot_z', 'pos_x', 'pos_y', 'pos_z')

    def _local_transform(self, q: np.ndarray) -> np.ndarray:
        return transform_from_rotation_translation(so3_exp(q[:3]), q[3:])

    def _local_jacobian(self, q: np.ndarray) -> np.ndarray:
        return np.eye(6)

    def integrate_positions(self, dt: float) -> None:
        T = self._local_transform(self._positions) @ se3_exp(self._velocities, dt)
        self.set_positions(np.concatenate([so3_log(T[:3, :3]), T[:3, 3]]))

    def set_relative_transform(self, T: np.ndarray) -> None:
        """Set positions so that the child sits at pose T in the parent frame."""
        p = self.properties
        Q = (inverse_transform(p.transform_from_parent_body_node)
             @ np.asarray(T, dtype=np.float64)
             @ p.transform_from_child_body_node)
        self.set_positions(np.concatenate([so3_log(Q[:3, :3]), Q[:3, 3]]))


JOINT_TYPES = {
    'weld': WeldJoint,
    'revolute': RevoluteJoint,
    'prismatic': PrismaticJoint,
    'screw': ScrewJoint,
    'universal': UniversalJoint,
    'euler': EulerJoint,
    'translational': TranslationalJoint,
    'ball': BallJoint,
    'free': FreeJoint,
}
