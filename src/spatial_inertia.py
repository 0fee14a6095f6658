"""6x6 spatial inertia of a rigid body in [ω, v] twist order.

A body with spatial inertia G expressed in its body frame obeys the
Newton-Euler equation

    F = G V̇ - ad_V^T G V

for body twist V and wrench F = [τ, f]. Body nodes store G about their own
frame origin; the helpers below build it from mass, CoM and rotational
inertia, and move it between frames.
"""

import numpy as np
from pymlg.numpy import SE3, SO3


def spatial_inertia_at_com(mass: float, inertia: np.ndarray) -> np.ndarray:
    """Block-diagonal spatial inertia diag(I_c, m*1) about the CoM."""
    G = np.zeros((6, 6))
    G[:3, :3] = np.asarray(inertia, dtype=np.float64)
    G[3:, 3:] = mass * np.eye(3)
    return G


def spatial_inertia_at_frame(
    mass: float,
    inertia_at_com: np.ndarray,
    com_position: np.ndarray,
) -> np.ndarray:
    """Spatial inertia about a frame whose origin is offset from the CoM.

    With c the CoM expressed in that frame (origin to CoM), the parallel
    axis theorem gives

        G = [[I_c - m [c]x [c]x,   m [c]x],
             [-m [c]x,             m 1   ]]

    Args:
        mass: Body mass [kg].
        inertia_at_com: (3, 3) rotational inertia about the CoM, axes
            aligned with the frame [kg*m^2].
        com_position: (3,) CoM in the frame [m].

    Returns:
        (6, 6) spatial inertia.
    """
    c = np.asarray(com_position, dtype=np.float64).ravel()
    c_hat = SO3.wedge(c)
    mc_hat = mass * c_hat

    G = spatial_inertia_at_com(mass, inertia_at_com)
    G[:3, :3] -= mc_hat @ c_hat
    G[:3, 3:] = mc_hat
    G[3:, :3] = -mc_hat
    return G


def transform_spatial_inertia(G: np.ndarray, T: np.ndarray) -> np.ndarray:
    """Re-express a spatial inertia given in frame A in frame B.

    T is the pose of A in B. Twists map as V_b = Ad_T V_a, so kinetic
    energy invariance requires G_b = Ad_T^{-T} G_a Ad_T^{-1}.
    """
    X = SE3.adjoint(SE3.inverse(T))
    return X.T @ G @ X


def is_symmetric(G: np.ndarray, tol: float = 1e-10) -> bool:
    return bool(np.allclose(G, G.T, atol=tol))


def is_positive_definite(G: np.ndarray, tol: float = 1e-10) -> bool:
    """True when the smallest eigenvalue of symmetric G exceeds tol."""
    return bool(np.linalg.eigvalsh(G).min() > tol)


def is_physical_inertia(inertia: np.ndarray, tol: float = 1e-12) -> bool:
    """Check that a rotational inertia belongs to some real rigid body.

    The tensor must be symmetric with non-negative principal moments that
    satisfy the triangle inequality (no moment exceeds the sum of the
    other two).
    """
    inertia = np.asarray(inertia, dtype=np.float64)
    if not is_symmetric(inertia):
        return False
    moments = np.linalg.eigvalsh(inertia)
    if moments.min() < -tol:
        return False
    return bool(np.all(2.0 * moments <= moments.sum() + tol))
