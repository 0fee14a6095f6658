"""Multibody package for articulated rigid-body kinematics and dynamics.

This package provides:
- Joint variants with their relative transforms and motion subspaces
- Body nodes and skeletons with lazily cached kinematic quantities
- Recursive Newton-Euler inverse dynamics and mass matrix
- Articulated Body Algorithm forward dynamics with servo actuation
- A World stepping skeletons with penalty contacts and joint limits

Based on Lynch and Park 2017, Chapter 8 (Dynamics of Open Chains), and
Featherstone 2008 for the articulated-body recursions.
Uses pymlg [ω, v] convention for internal calculations.
"""

from multibody.exceptions import (
    ConfigurationError,
    NumericalDegeneracyError,
)
from multibody.spatial_inertia import (
    spatial_inertia_at_com,
    spatial_inertia_at_frame,
    transform_spatial_inertia,
)
from multibody.cache import CachedValue
from multibody.degree_of_freedom import DegreeOfFreedom
from multibody.joint import (
    ActuatorType,
    Joint,
    JointProperties,
    ServoSpringPolicy,
)
from multibody.joint_types import (
    JOINT_TYPES,
    BallJoint,
    BallJointProperties,
    EulerAxisOrder,
    EulerJoint,
    EulerJointProperties,
    FreeJoint,
    FreeJointProperties,
    PrismaticJoint,
    PrismaticJointProperties,
    RevoluteJoint,
    RevoluteJointProperties,
    ScrewJoint,
    ScrewJointProperties,
    TranslationalJoint,
    TranslationalJointProperties,
    UniversalJoint,
    UniversalJointProperties,
    WeldJoint,
    WeldJointProperties,
)
from multibody.shape import (
    BoxShape,
    CylinderShape,
    Shape,
    SphereShape,
)
from multibody.body_node import (
    BodyNode,
    BodyNodeProperties,
)
from multibody.newton_euler import NewtonEulerDynamics
from multibody.articulated_body import ArticulatedBodyDynamics
from multibody.skeleton import Skeleton
from multibody.builder import (
    BodyNodeDescriptor,
    SkeletonDescription,
    build_skeleton,
    build_skeleton_from_description,
)
from multibody.collision import (
    CollisionDetector,
    Contact,
    SphereCollisionDetector,
    is_collidable,
)
from multibody.constraint import (
    ConstraintSolver,
    ConstraintSolverConfig,
)
from multibody.world import (
    World,
    WorldConfig,
)
from multibody.models import (
    create_ball,
    create_pendulum,
    create_ur5e_skeleton,
)

__all__ = [
    # exceptions
    'ConfigurationError',
    'NumericalDegeneracyError',
    # spatial_inertia
    'spatial_inertia_at_com',
    'spatial_inertia_at_frame',
    'transform_spatial_inertia',
    # cache
    'CachedValue',
    # joints
    'DegreeOfFreedom',
    'ActuatorType',
    'Joint',
    'JointProperties',
    'ServoSpringPolicy',
    'JOINT_TYPES',
    'BallJoint',
    'BallJointProperties',
    'EulerAxisOrder',
    'EulerJoint',
    'EulerJointProperties',
    'FreeJoint',
    'FreeJointProperties',
    'PrismaticJoint',
    'PrismaticJointProperties',
    'RevoluteJoint',
    'RevoluteJointProperties',
    'ScrewJoint',
    'ScrewJointProperties',
    'TranslationalJoint',
    'TranslationalJointProperties',
    'UniversalJoint',
    'UniversalJointProperties',
    'WeldJoint',
    'WeldJointProperties',
    # shapes and bodies
    'BoxShape',
    'CylinderShape',
    'Shape',
    'SphereShape',
    'BodyNode',
    'BodyNodeProperties',
    # dynamics
    'NewtonEulerDynamics',
    'ArticulatedBodyDynamics',
    'Skeleton',
    # builder
    'BodyNodeDescriptor',
    'SkeletonDescription',
    'build_skeleton',
    'build_skeleton_from_description',
    # collision and constraints
    'CollisionDetector',
    'Contact',
    'SphereCollisionDetector',
    'is_collidable',
    'ConstraintSolver',
    'ConstraintSolverConfig',
    # world
    'World',
    'WorldConfig',
    # models
    'create_ball',
    'create_pendulum',
    'create_ur5e_skeleton',
]
