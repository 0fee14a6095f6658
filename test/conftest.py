"""Pytest fixtures for multibody tests."""

import numpy as np
import pytest

from multibody.body_node import BodyNodeProperties
from multibody.joint_types import (
    BallJointProperties,
    EulerAxisOrder,
    EulerJointProperties,
    FreeJointProperties,
    PrismaticJointProperties,
    RevoluteJointProperties,
    ScrewJointProperties,
    TranslationalJointProperties,
    UniversalJointProperties,
    WeldJointProperties,
)
from multibody.lie_algebra import rotation_transform, translation_transform
from multibody.models import create_pendulum, create_ur5e_skeleton
from multibody.skeleton import Skeleton


def make_body(name, mass=1.0, com=(0.0, 0.0, 0.0), inertia=(0.01, 0.02, 0.03)):
    return BodyNodeProperties(name=name, mass=mass, local_com=com, inertia=np.diag(inertia))


def build_mixed_skeleton() -> Skeleton:
    """Branching tree using every joint variant.

    base (free)
    ├── upper (revolute) ── fore (universal) ── hand (euler) ── cap (weld)
    ├── leg (ball) ── foot (prismatic)
    └── tail (screw) ── tip (translational)
    """
    skeleton = Skeleton('mixed')
    _, base = skeleton.create_joint_and_body_node(
        'free', FreeJointProperties(name='root'),
        make_body('base', 3.0, (0.01, 0.02, -0.03), (0.05, 0.06, 0.07)))
    _, upper = skeleton.create_joint_and_body_node(
        'revolute',
        RevoluteJointProperties(
            name='shoulder', axis=[0.0, 1.0, 1.0],
            transform_from_parent_body_node=translation_transform([0.1, 0.0, 0.2]),
            transform_from_child_body_node=rotation_transform([1.0, 0.0, 0.0], 0.3)),
        make_body('upper', 1.5, (0.0, 0.0, -0.15), (0.02, 0.02, 0.004)), base)
    _, fore = skeleton.create_joint_and_body_node(
        'universal',
        UniversalJointProperties(
            name='elbow', axis1=[1.0, 0.0, 0.0], axis2=[0.0, 0.0, 1.0],
            transform_from_parent_body_node=translation_transform([0.0, 0.0, -0.3])),
        make_body('fore', 1.0, (0.02, 0.0, -0.12), (0.01, 0.012, 0.003)), upper)
    _, hand = skeleton.create_joint_and_body_node(
        'euler',
        EulerJointProperties(
            name='wrist', axis_order=EulerAxisOrder.ZYX,
            transform_from_parent_body_node=translation_transform([0.0, 0.05, -0.25])),
        make_body('hand', 0.4, (0.0, 0.01, -0.04), (0.002, 0.003, 0.001)), fore)
    skeleton.create_joint_and_body_node(
        'weld',
        WeldJointProperties(
            name='cap_weld',
            transform_from_parent_body_node=translation_transform([0.0, 0.0, -0.08])),
        make_body('cap', 0.1, (0.0, 0.0, -0.01), (1e-4, 1e-4, 1e-4)), hand)
    _, leg = skeleton.create_joint_and_body_node(
        'ball',
        BallJointProperties(
            name='hip', transform_from_parent_body_node=translation_transform([-0.1, 0.0, -0.2])),
        make_body('leg', 2.0, (0.0, 0.0, -0.2), (0.03, 0.03, 0.005)), base)
    skeleton.create_joint_and_body_node(
        'prismatic',
        PrismaticJointProperties(
            name='knee', axis=[0.0, 0.0, 1.0],
            transform_from_parent_body_node=translation_transform([0.0, 0.0, -0.4])),
        make_body('foot', 0.8, (0.05, 0.0, -0.02), (0.001, 0.004, 0.004)), leg)
    _, tail = skeleton.create_joint_and_body_node(
        'screw',
        ScrewJointProperties(
            name='tail_screw', axis=[1.0, 0.0, 0.0], pitch=0.2,
            transform_from_parent_body_node=translation_transform([0.0, -0.15, 0.0])),
        make_body('tail', 0.5, (-0.1, 0.0, 0.0), (0.001, 0.002, 0.002)), base)
    skeleton.create_joint_and_body_node(
        'translational',
        TranslationalJointProperties(
            name='tip_slide', transform_from_parent_body_node=translation_transform([-0.2, 0.0, 0.0])),
        make_body('tip', 0.2, (0.0, 0.0, 0.0), (1e-4, 2e-4, 3e-4)), tail)
    return skeleton


def randomize_state(skeleton: Skeleton, seed: int = 42) -> None:
    rng = np.random.RandomState(seed)
    n = skeleton.num_dofs
    skeleton.set_positions(rng.uniform(-1.0, 1.0, n))
    skeleton.set_velocities(rng.uniform(-1.0, 1.0, n))
    skeleton.set_accelerations(rng.uniform(-0.5, 0.5, n))


@pytest.fixture
def mixed_skeleton() -> Skeleton:
    """Branching skeleton covering all joint variants, random state."""
    skeleton = build_mixed_skeleton()
    randomize_state(skeleton)
    return skeleton


@pytest.fixture
def mixed_skeleton_factory():
    """Callable building fresh mixed skeletons at the zero configuration."""
    return build_mixed_skeleton


@pytest.fixture
def body_properties_factory():
    """Callable building BodyNodeProperties with diagonal inertia."""
    return make_body


@pytest.fixture
def ur5e() -> Skeleton:
    """UR5e arm skeleton."""
    return create_ur5e_skeleton()


@pytest.fixture
def pendulum() -> Skeleton:
    """Two-link pendulum released from a tilted pose."""
    return create_pendulum(num_links=2, initial_positions=[0.5, -0.3])


@pytest.fixture
def chain() -> Skeleton:
    """Four-body revolute chain A-B-C-D."""
    skeleton = Skeleton('chain')
    parent = None
    for i, name in enumerate('ABCD'):
        _, parent = skeleton.create_joint_and_body_node(
            'revolute',
            RevoluteJointProperties(
                name=f'j{name}', axis=[0.0, 1.0, 0.0],
                transform_from_parent_body_node=translation_transform([0.0, 0.0, 0.0 if i == 0 else -0.5]),
                initial_positions=[0.1 * (i + 1)]),
            make_body(name, 1.0, (0.0, 0.0, -0.25), (0.02, 0.02, 0.001)),
            parent)
    return skeleton


@pytest.fixture
def random_config() -> np.ndarray:
    """Random UR5e joint configuration within limits."""
    np.random.seed(42)
    return np.random.uniform(-np.pi, np.pi, 6)


@pytest.fixture
def random_velocity() -> np.ndarray:
    """Random UR5e joint velocity."""
    np.random.seed(43)
    return np.random.uniform(-1.0, 1.0, 6)


@pytest.fixture
def random_acceleration() -> np.ndarray:
    """Random UR5e joint acceleration."""
    np.random.seed(44)
    return np.random.uniform(-0.5, 0.5, 6)


@pytest.fixture
def gravity_vector() -> np.ndarray:
    """Standard gravity vector [m/s^2]."""
    return np.array([0.0, 0.0, -9.81])


def _perturbed(skeleton, h, compute):
    q0 = skeleton.get_positions()
    dq0 = skeleton.get_velocities()
    ddq0 = skeleton.get_accelerations()
    skeleton.integrate_positions(h)
    skeleton.set_velocities(dq0 + h * ddq0)
    value = np.array(compute(), copy=True)
    skeleton.set_positions(q0)
    skeleton.set_velocities(dq0)
    skeleton.set_accelerations(ddq0)
    return value


def _central_difference(skeleton, compute, h=1e-6):
    return (_perturbed(skeleton, h, compute) - _perturbed(skeleton, -h, compute)) / (2 * h)


@pytest.fixture
def perturbed():
    """Callable evaluating a quantity after advancing the state by h, then restoring it."""
    return _perturbed


@pytest.fixture
def central_difference():
    """Callable returning the time derivative of a quantity along the current motion."""
    return _central_difference
