"""Lie algebra operations for SE(3) and SO(3).

Based on Lynch and Park (2017), Chapters 3 and 8.
Uses pymlg for underlying matrix operations and its [ω, v] twist ordering.
"""

from typing import Sequence

import numpy as np
from pymlg.numpy import SE3, SO3


def skew(v: np.ndarray) -> np.ndarray:
    """Convert a 3-vector to a skew-symmetric matrix.

    [v] = [[ 0, -v3,  v2],
           [v3,   0, -v1],
           [-v2, v1,   0]]

    Args:
        v: (3,) vector.

    Returns:
        (3, 3) skew-symmetric matrix.
    """
    v = np.asarray(v, dtype=np.float64).flatten()
    return SO3.wedge(v)


def unskew(S: np.ndarray) -> np.ndarray:
    """Convert a skew-symmetric matrix to a 3-vector."""
    return SO3.vee(S).flatten()


def ad(twist: np.ndarray) -> np.ndarray:
    """Compute the Lie bracket operator [ad_V].

    Based on Equation 8.38:
        [ad_V] = [[[omega],    0    ],
                  [ [v]  , [omega] ]]

    Args:
        twist: (6,) twist [omega, v].

    Returns:
        (6, 6) ad matrix.
    """
    twist = np.asarray(twist, dtype=np.float64).flatten()
    return SE3.adjoint_algebra(SE3.wedge(twist))


def adjoint(T: np.ndarray) -> np.ndarray:
    """Compute the Adjoint representation [Ad_T].

    For T = [[R, p], [0, 1]] in SE(3):
        [Ad_T] = [[R,       0],
                  [[p]*R,   R]]

    Args:
        T: (4, 4) homogeneous transformation matrix.

    Returns:
        (6, 6) Adjoint matrix.
    """
    return SE3.adjoint(np.asarray(T, dtype=np.float64))


def adjoint_inverse(T: np.ndarray) -> np.ndarray:
    """Compute [Ad_{T^{-1}}], mapping parent-frame twists into the child frame."""
    return SE3.adjoint(inverse_transform(T))


def se3_exp(twist: np.ndarray, theta: float = 1.0) -> np.ndarray:
    """Compute the matrix exponential exp([S]*theta).

    Args:
        twist: (6,) screw axis S = [omega, v].
        theta: Rotation angle (rad) or displacement for prismatic joints.

    Returns:
        (4, 4) homogeneous transformation matrix.
    """
    twist = np.asarray(twist, dtype=np.float64).flatten()
    return SE3.Exp(twist * theta)


def se3_log(T: np.ndarray) -> np.ndarray:
    """Compute the matrix logarithm of a transformation as a (6,) twist."""
    return SE3.Log(np.asarray(T, dtype=np.float64)).flatten()


def so3_exp(phi: np.ndarray) -> np.ndarray:
    """Rotation matrix of a rotation vector.

    Goes through SE3.Exp with zero translation, whose rotation block is
    the SO(3) exponential.
    """
    phi = np.asarray(phi, dtype=np.float64).flatten()
    return SE3.Exp(np.concatenate([phi, np.zeros(3)]))[:3, :3]


def so3_log(R: np.ndarray) -> np.ndarray:
    """Rotation vector of a rotation matrix."""
    T = SE3.from_components(np.asarray(R, dtype=np.float64), np.zeros(3))
    return SE3.Log(T).flatten()[:3]


def inverse_transform(T: np.ndarray) -> np.ndarray:
    """Compute the inverse of a homogeneous transformation.

    T^{-1} = [[R^T, -R^T*p], [0, 1]]
    """
    return SE3.inverse(np.asarray(T, dtype=np.float64))


def transform_from_rotation_translation(R: np.ndarray, p: np.ndarray) -> np.ndarray:
    """Create homogeneous transformation from rotation and translation.

    Args:
        R: (3, 3) rotation matrix.
        p: (3,) translation vector.

    Returns:
        (4, 4) homogeneous transformation matrix.
    """
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(p).flatten()
    return T


def translation_transform(p: np.ndarray) -> np.ndarray:
    """Pure translation by p."""
    return transform_from_rotation_translation(np.eye(3), p)


def rotation_transform(axis: np.ndarray, angle: float) -> np.ndarray:
    """Pure rotation of `angle` about the unit vector `axis`."""
    return transform_from_rotation_translation(
        so3_exp(np.asarray(axis, dtype=np.float64) * angle), np.zeros(3))


def rotation_sequence(axes: Sequence[np.ndarray], angles: np.ndarray) -> np.ndarray:
    """Compose elementary rotations R = R_1(q_1) R_2(q_2) ... R_n(q_n)."""
    R = np.eye(3)
    for axis, angle in zip(axes, angles):
        R = R @ so3_exp(np.asarray(axis) * angle)
    return R


def rotation_sequence_jacobian(axes: Sequence[np.ndarray], angles: np.ndarray) -> np.ndarray:
    """Body angular-velocity Jacobian of a rotation sequence.

    With P_j = R_{j+1} ... R_n, column j is w_j = P_j^T a_j so that the body
    angular velocity is sum_j w_j * dq_j.

    Returns:
        (3, n) matrix whose columns are w_j.
    """
    n = len(axes)
    W = np.zeros((3, n))
    P = np.eye(3)
    for j in range(n - 1, -1, -1):
        W[:, j] = P.T @ np.asarray(axes[j], dtype=np.float64)
        P = so3_exp(np.asarray(axes[j]) * angles[j]) @ P
    return W


def rotation_sequence_jacobian_deriv(
    axes: Sequence[np.ndarray],
    angles: np.ndarray,
    rates: np.ndarray,
) -> np.ndarray:
    """Time derivative of `rotation_sequence_jacobian`.

    dw_j/dt = sum_{k>j} dq_k * (w_j x w_k)
    """
    W = rotation_sequence_jacobian(axes, angles)
    n = len(axes)
    dW = np.zeros((3, n))
    for j in range(n):
        for k in range(j + 1, n):
            dW[:, j] += rates[k] * np.cross(W[:, j], W[:, k])
    return dW
