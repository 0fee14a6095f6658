"""Recursive Newton-Euler inverse dynamics over a kinematic tree.

Based on Lynch and Park (2017), Section 8.3.2 and 8.9.2 (tree structures).
Implements the twist-wrench formulation in body frames, visiting bodies
in the skeleton's depth-first arena order so that every parent precedes
its children.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

from multibody.lie_algebra import ad, adjoint_inverse

if TYPE_CHECKING:
    from multibody.skeleton import Skeleton


@dataclass
class DynamicsState:
    """State variables computed during the Newton-Euler algorithm.

    Attributes:
        twists: Body twists V_i for each body (6,).
        twist_dots: Body twist derivatives V̇_i for each body (6,).
        wrenches: Body wrenches F_i transmitted by each parent joint (6,).
        adjoints: [Ad_{T_{i,parent}}] for each body (6, 6).
    """

    twists: List[np.ndarray] = field(default_factory=list)
    twist_dots: List[np.ndarray] = field(default_factory=list)
    wrenches: List[np.ndarray] = field(default_factory=list)
    adjoints: List[np.ndarray] = field(default_factory=list)


class NewtonEulerDynamics:
    """Newton-Euler inverse dynamics for a skeleton.

    Positions are taken from the skeleton (through the cached joint
    transforms); velocities, accelerations, gravity and external wrenches
    are passed explicitly so that the mass matrix and bias forces can be
    evaluated without touching the skeleton state.

    Attributes:
        skeleton: The skeleton whose tree is traversed.
    """

    def __init__(self, skeleton: 'Skeleton') -> None:
        self.skeleton = skeleton

    def _forward_iterations(
        self,
        dq: np.ndarray,
        ddq: np.ndarray,
        gravity: np.ndarray,
    ) -> DynamicsState:
        """Perform forward iterations of Newton-Euler algorithm.

        Computes twists and twist derivatives for each body, root to leaf:
            V_i = [Ad_{T_{i,p}}] * V_p + S_i * q̇_i
            V̇_i = [Ad_{T_{i,p}}] * V̇_p + [ad_{V_i}] * S_i * q̇_i + Ṡ_i * q̇_i + S_i * q̈_i

        Args:
            dq: Generalized velocities (n,).
            ddq: Generalized accelerations (n,).
            gravity: Gravity vector in world frame [m/s²] (3,).

        Returns:
            DynamicsState with twists, twist_dots, and adjoints.
        """
        state = DynamicsState()

        # V̇_0 = -[0, g] (accounts for gravity as fictitious acceleration)
        base_twist = np.zeros(6)
        base_twist_dot = np.concatenate([np.zeros(3), -gravity])

        for body in self.skeleton.body_nodes:
            joint = body.parent_joint
            indices = body.dof_indices
            S = joint.get_relative_jacobian()
            dq_i = dq[indices]
            ddq_i = ddq[indices]

            Ad_T = adjoint_inverse(joint.get_relative_transform())
            state.adjoints.append(Ad_T)

            if body._parent_index is None:
                V_prev, Vdot_prev = base_twist, base_twist_dot
            else:
                V_prev = state.twists[body._parent_index]
                Vdot_prev = state.twist_dots[body._parent_index]

            S_dq = S @ dq_i
            V_i = Ad_T @ V_prev + S_dq
            Vdot_i = (Ad_T @ Vdot_prev + ad(V_i) @ S_dq
                      + joint.compute_relative_jacobian_time_deriv(dq_i) @ dq_i
                      + S @ ddq_i)
            state.twists.append(V_i)
            state.twist_dots.append(Vdot_i)

        return state

    def _backward_iterations(
        self,
        state: DynamicsState,
        external_wrenches: Optional[List[np.ndarray]] = None,
    ) -> Tuple[np.ndarray, DynamicsState]:
        """Perform backward iterations of Newton-Euler algorithm.

        Computes wrenches and generalized forces, leaf to root:
            F_i = sum_c [Ad_{T_{c,i}}]^T * F_c + G_i * V̇_i - [ad_{V_i}]^T * G_i * V_i - F_ext,i
            τ_i = S_i^T * F_i

        Args:
            state: DynamicsState from forward iterations.
            external_wrenches: Body-frame wrenches [moment, force] applied to
                each body. Default is zero.

        Returns:
            Tuple of:
                - tau: Generalized forces (n,).
                - state: Updated DynamicsState with wrenches.
        """
        bodies = self.skeleton.body_nodes
        tau = np.zeros(self.skeleton.num_dofs)
        state.wrenches = [np.zeros(6) for _ in bodies]

        for body in reversed(bodies):
            i = body.index_in_skeleton
            G_i = body._spatial_inertia
            V_i = state.twists[i]

            F_i = state.wrenches[i] + G_i @ state.twist_dots[i] - ad(V_i).T @ (G_i @ V_i)
            if external_wrenches is not None:
                F_i = F_i - external_wrenches[i]
            state.wrenches[i] = F_i

            tau[body.dof_indices] = body.parent_joint.get_relative_jacobian().T @ F_i

            # Propagate wrench to parent
            if body._parent_index is not None:
                state.wrenches[body._parent_index] += state.adjoints[i].T @ F_i

        return tau, state

    def inverse_dynamics(
        self,
        dq: np.ndarray,
        ddq: np.ndarray,
        gravity: Optional[np.ndarray] = None,
        external_wrenches: Optional[List[np.ndarray]] = None,
    ) -> np.ndarray:
        """Compute inverse dynamics: generalized forces given motion.

        Args:
            dq: Generalized velocities (n,).
            ddq: Generalized accelerations (n,).
            gravity: Gravity vector in world frame. Default is zero.
            external_wrenches: Body-frame external wrenches, one per body.

        Returns:
            tau: Generalized forces (n,).
        """
        n = self.skeleton.num_dofs
        dq = np.asarray(dq, dtype=np.float64).flatten()
        ddq = np.asarray(ddq, dtype=np.float64).flatten()
        if dq.shape[0] != n or ddq.shape[0] != n:
            raise ValueError(f"Expected arrays of length {n}")
        if gravity is None:
            gravity = np.zeros(3)
        gravity = np.asarray(gravity, dtype=np.float64).flatten()

        state = self._forward_iterations(dq, ddq, gravity)
        tau, _ = self._backward_iterations(state, external_wrenches)
        return tau

    def mass_matrix(self) -> np.ndarray:
        """Compute the mass matrix M(q) column by column.

        Column j is the inverse dynamics response to a unit acceleration of
        DOF j with zero velocity, zero gravity and no external wrenches.

        Returns:
            M: Mass matrix (n, n).
        """
        n = self.skeleton.num_dofs
        M = np.zeros((n, n))
        zeros = np.zeros(n)
        for j in range(n):
            ddq = np.zeros(n)
            ddq[j] = 1.0
            M[:, j] = self.inverse_dynamics(zeros, ddq)
        # Symmetrize to remove numerical noise
        return 0.5 * (M + M.T)

    def coriolis_forces(self, dq: np.ndarray) -> np.ndarray:
        """Coriolis and centrifugal forces c(q, q̇) (n,)."""
        n = self.skeleton.num_dofs
        return self.inverse_dynamics(dq, np.zeros(n))

    def gravity_forces(self, gravity: np.ndarray) -> np.ndarray:
        """Gravity forces g(q) (n,)."""
        n = self.skeleton.num_dofs
        return self.inverse_dynamics(np.zeros(n), np.zeros(n), gravity)

    def coriolis_and_gravity_forces(self, dq: np.ndarray, gravity: np.ndarray) -> np.ndarray:
        """Combined c(q, q̇) + g(q) from a single pass (n,)."""
        n = self.skeleton.num_dofs
        return self.inverse_dynamics(dq, np.zeros(n), gravity)
