"""Ready-made skeletons.

Provides an n-link pendulum, a free-floating ball and the UR5e arm. The
UR5e bodies sit at the standard DH frames, so the end-effector transform
of the skeleton equals the product of the DH transforms.
"""

from typing import Optional, Sequence

import numpy as np

from multibody.body_node import BodyNodeProperties
from multibody.joint import ActuatorType
from multibody.joint_types import FreeJointProperties, RevoluteJointProperties
from multibody.lie_algebra import inverse_transform, translation_transform
from multibody.shape import CylinderShape, SphereShape
from multibody.skeleton import Skeleton


# UR5e DH parameters (Standard DH convention)
# Format: [d, a, alpha] for each joint
UR5E_DH_PARAMS = np.array([
    [0.089159,   0,       np.pi/2],   # Joint 1
    [0,         -0.425,   0],          # Joint 2
    [0,         -0.39225, 0],          # Joint 3
    [0.10915,    0,       np.pi/2],   # Joint 4
    [0.09465,    0,      -np.pi/2],   # Joint 5
    [0.0823,     0,       0],          # Joint 6
])

# Link masses [kg]
UR5E_LINK_MASSES = np.array([3.7, 8.393, 2.275, 1.219, 1.219, 0.1879])

# Center of mass positions in the DH link frames [m]
UR5E_LINK_COM_POSITIONS = np.array([
    [0.0, -0.02561, 0.00193],      # Link 1
    [-0.2125, 0.0, 0.11336],       # Link 2
    [-0.15, 0.0, 0.0265],          # Link 3
    [0.0, -0.0018, 0.01634],       # Link 4
    [0.0, 0.0018, 0.01634],        # Link 5
    [0.0, 0.0, -0.001159],         # Link 6
])

# Principal moments of inertia at the CoM, aligned with the link frame [kg*m^2]
UR5E_LINK_INERTIAS = np.array([
    [0.010267, 0.010267, 0.00666],
    [0.22689, 0.22689, 0.0151074],
    [0.049443, 0.049443, 0.004095],
    [0.111172, 0.111172, 0.21942],
    [0.111172, 0.111172, 0.21942],
    [0.0171364, 0.0171364, 0.033822],
])

UR5E_JOINT_NAMES = (
    'shoulder_pan_joint',
    'shoulder_lift_joint',
    'elbow_joint',
    'wrist_1_joint',
    'wrist_2_joint',
    'wrist_3_joint',
)

UR5E_LINK_NAMES = (
    'shoulder_link',
    'upper_arm_link',
    'forearm_link',
    'wrist_1_link',
    'wrist_2_link',
    'wrist_3_link',
)

# Joint torque limits [N*m] and speed limits [rad/s]
UR5E_FORCE_LIMITS = np.array([150.0, 150.0, 150.0, 28.0, 28.0, 28.0])
UR5E_VELOCITY_LIMITS = np.array([np.pi, np.pi, np.pi, np.pi, np.pi, np.pi])


def dh_transform_standard(d: float, a: float, alpha: float, theta: float) -> np.ndarray:
    """Compute Standard DH transformation matrix.

    Standard DH convention:
    T = Rot_z(theta) * Trans_z(d) * Trans_x(a) * Rot_x(alpha)

    Args:
        d: Link offset along z.
        a: Link length along x.
        alpha: Link twist about x.
        theta: Joint angle about z.

    Returns:
        (4, 4) transformation matrix T_{i}^{i-1}.
    """
    ct = np.cos(theta)
    st = np.sin(theta)
    ca = np.cos(alpha)
    sa = np.sin(alpha)

    return np.array([
        [ct, -st * ca,  st * sa, a * ct],
        [st,  ct * ca, -ct * sa, a * st],
        [0,   sa,       ca,      d],
        [0,   0,        0,       1]
    ], dtype=np.float64)


def ur5e_forward_kinematics(q: np.ndarray) -> np.ndarray:
    """Pose of the last DH frame in the base frame for joint positions q (6,)."""
    q = np.asarray(q, dtype=np.float64).flatten()
    T = np.eye(4)
    for (d, a, alpha), theta in zip(UR5E_DH_PARAMS, q):
        T = T @ dh_transform_standard(d, a, alpha, theta)
    return T


def create_ur5e_skeleton(
    name: str = 'ur5e',
    actuator_type: ActuatorType = ActuatorType.FORCE,
) -> Skeleton:
    """UR5e arm as a chain of six revolute joints about the DH z-axes.

    Body i is placed at DH frame i. Joint i rotates about the z-axis of
    frame i-1, and the fixed part Trans_z(d) Trans_x(a) Rot_x(alpha) of the
    DH transform is the pose of the child body in the joint frame.
    """
    skeleton = Skeleton(name)
    parent = None
    for i in range(6):
        d, a, alpha = UR5E_DH_PARAMS[i]
        fixed = dh_transform_standard(d, a, alpha, 0.0)
        joint_properties = RevoluteJointProperties(
            name=UR5E_JOINT_NAMES[i],
            axis=[0.0, 0.0, 1.0],
            transform_from_child_body_node=inverse_transform(fixed),
            actuator_type=actuator_type,
            position_lower_limits=[-2.0 * np.pi],
            position_upper_limits=[2.0 * np.pi],
            velocity_lower_limits=[-UR5E_VELOCITY_LIMITS[i]],
            velocity_upper_limits=[UR5E_VELOCITY_LIMITS[i]],
            force_lower_limits=[-UR5E_FORCE_LIMITS[i]],
            force_upper_limits=[UR5E_FORCE_LIMITS[i]],
        )
        body_properties = BodyNodeProperties(
            name=UR5E_LINK_NAMES[i],
            mass=UR5E_LINK_MASSES[i],
            local_com=UR5E_LINK_COM_POSITIONS[i],
            inertia=np.diag(UR5E_LINK_INERTIAS[i]),
        )
        _, parent = skeleton.create_joint_and_body_node(
            'revolute', joint_properties, body_properties, parent)
    return skeleton


def create_pendulum(
    num_links: int = 2,
    link_length: float = 1.0,
    link_mass: float = 1.0,
    link_radius: float = 0.05,
    axis: Sequence[float] = (0.0, 1.0, 0.0),
    initial_positions: Optional[Sequence[float]] = None,
    damping: float = 0.0,
    name: str = 'pendulum',
) -> Skeleton:
    """Chain of uniform rods hanging along -z from revolute joints.

    Each body frame sits at its joint; the rod occupies [0, -link_length]
    along z, so the CoM is at [0, 0, -link_length / 2].

    Args:
        num_links: Number of links.
        link_length: Rod length [m].
        link_mass: Rod mass [kg].
        link_radius: Rod radius [m].
        axis: Common joint axis.
        initial_positions: Initial joint angles (num_links,).
        damping: Joint damping coefficient.
        name: Skeleton name.

    Returns:
        The pendulum skeleton.
    """
    if initial_positions is None:
        initial_positions = np.zeros(num_links)
    rod = CylinderShape(link_radius, link_length,
                        local_transform=translation_transform([0.0, 0.0, -0.5 * link_length]))
    inertia = rod.compute_inertia(link_mass)

    skeleton = Skeleton(name)
    parent = None
    for i in range(num_links):
        offset = np.zeros(3) if parent is None else np.array([0.0, 0.0, -link_length])
        joint_properties = RevoluteJointProperties(
            name=f'joint{i + 1}',
            axis=axis,
            transform_from_parent_body_node=translation_transform(offset),
            initial_positions=[initial_positions[i]],
            damping_coefficients=[damping],
        )
        body_properties = BodyNodeProperties(
            name=f'link{i + 1}',
            mass=link_mass,
            local_com=[0.0, 0.0, -0.5 * link_length],
            inertia=inertia,
            shapes=[CylinderShape(link_radius, link_length, local_transform=rod.local_transform)],
        )
        _, parent = skeleton.create_joint_and_body_node(
            'revolute', joint_properties, body_properties, parent)
    return skeleton


def create_ball(
    name: str = 'ball',
    radius: float = 0.1,
    mass: float = 1.0,
    position: Sequence[float] = (0.0, 0.0, 0.0),
    mobile: bool = True,
) -> Skeleton:
    """Single solid sphere on a free joint, centred at `position`."""
    sphere = SphereShape(radius)
    skeleton = Skeleton(name, mobile=mobile)
    skeleton.create_joint_and_body_node(
        'free',
        FreeJointProperties(name=f'{name}_joint',
                            initial_positions=np.concatenate([np.zeros(3), position])),
        BodyNodeProperties(name=f'{name}_body', mass=mass,
                           inertia=sphere.compute_inertia(mass), shapes=[sphere]),
    )
    return skeleton
