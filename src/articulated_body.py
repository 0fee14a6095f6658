"""Articulated Body Algorithm with prescribed-acceleration DOFs.

Based on Featherstone (2008), Sections 7.3 and 9.2 (hybrid dynamics),
rewritten in the body-frame twist-wrench convention of Lynch and Park:
    F_i = I^A_i * V̇_i + p^A_i
with I^A the articulated-body inertia and p^A the bias wrench.

DOFs whose acceleration is prescribed take part in the algorithm as a
known bias acceleration; their generalized force is returned instead of
their acceleration. The remaining (free) DOFs are marginalised out through
the usual Cholesky-factored articulated inertia D = S^T I^A S.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from multibody.exceptions import NumericalDegeneracyError
from multibody.lie_algebra import ad, adjoint_inverse

if TYPE_CHECKING:
    from multibody.skeleton import Skeleton

logger = logging.getLogger(__name__)


class ArticulatedBodyDynamics:
    """O(n) forward dynamics for a skeleton.

    Attributes:
        skeleton: The skeleton whose tree is traversed.
    """

    def __init__(self, skeleton: 'Skeleton') -> None:
        self.skeleton = skeleton

    def forward_dynamics(
        self,
        forces: np.ndarray,
        dq: np.ndarray,
        gravity: Optional[np.ndarray] = None,
        external_wrenches: Optional[List[np.ndarray]] = None,
        prescribed: Optional[np.ndarray] = None,
        prescribed_accelerations: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Solve M q̈ + c + g = τ (+ J^T F_ext) for the free DOFs.

        Args:
            forces: Generalized forces τ (n,). Entries of prescribed DOFs
                are ignored.
            dq: Generalized velocities (n,).
            gravity: Gravity vector in world frame. Default is zero.
            external_wrenches: Body-frame external wrenches, one per body.
            prescribed: Boolean mask (n,) of DOFs with prescribed acceleration.
            prescribed_accelerations: Accelerations (n,) used where prescribed.

        Returns:
            Tuple of:
                - ddq: Generalized accelerations (n,).
                - tau: Generalized forces (n,); the given forces on free DOFs
                  and the solved efforts on prescribed DOFs.

        Raises:
            NumericalDegeneracyError: If an articulated inertia block is not
                positive definite or the result is not finite.
        """
        skeleton = self.skeleton
        n = skeleton.num_dofs
        bodies = skeleton.body_nodes

        forces = np.asarray(forces, dtype=np.float64).flatten()
        dq = np.asarray(dq, dtype=np.float64).flatten()
        if forces.shape[0] != n or dq.shape[0] != n:
            raise ValueError(f"Expected arrays of length {n}")
        if gravity is None:
            gravity = np.zeros(3)
        if prescribed is None:
            prescribed = np.zeros(n, dtype=bool)
        if prescribed_accelerations is None:
            prescribed_accelerations = np.zeros(n)
        prescribed = np.asarray(prescribed, dtype=bool)

        num_bodies = len(bodies)
        adjoints = [None] * num_bodies
        twists = [None] * num_bodies
        biases = [None] * num_bodies
        subspaces = [None] * num_bodies
        inertias = [None] * num_bodies
        bias_wrenches = [None] * num_bodies
        factors = [None] * num_bodies

        # Pass 1 (root to leaf): twists and velocity-product accelerations
        for body in bodies:
            i = body.index_in_skeleton
            joint = body.parent_joint
            indices = body.dof_indices
            S = joint.get_relative_jacobian()
            dq_i = dq[indices]
            S_dq = S @ dq_i

            Ad_T = adjoint_inverse(joint.get_relative_transform())
            V_prev = np.zeros(6) if body._parent_index is None else twists[body._parent_index]
            V_i = Ad_T @ V_prev + S_dq

            is_prescribed = prescribed[indices]
            S_free = S[:, ~is_prescribed]
            c_i = ad(V_i) @ S_dq + joint.compute_relative_jacobian_time_deriv(dq_i) @ dq_i
            c_i = c_i + S[:, is_prescribed] @ prescribed_accelerations[indices][is_prescribed]

            adjoints[i] = Ad_T
            twists[i] = V_i
            biases[i] = c_i
            subspaces[i] = S_free
            G_i = body._spatial_inertia
            inertias[i] = G_i.copy()
            bias_wrenches[i] = -ad(V_i).T @ (G_i @ V_i)
            if external_wrenches is not None:
                bias_wrenches[i] = bias_wrenches[i] - external_wrenches[i]

        # Pass 2 (leaf to root): articulated inertias and bias wrenches
        for body in reversed(bodies):
            i = body.index_in_skeleton
            I_A = inertias[i]
            p_A = bias_wrenches[i]
            S_free = subspaces[i]
            c_i = biases[i]

            if S_free.shape[1] > 0:
                free_indices = self._free_indices(body, prescribed)
                U = I_A @ S_free
                D = S_free.T @ U
                try:
                    D_factor = cho_factor(D)
                except LinAlgError as e:
                    raise NumericalDegeneracyError(
                        f"Articulated inertia of body '{body.name}' is not positive definite") from e
                u = forces[free_indices] - S_free.T @ p_A
                factors[i] = (U, D_factor, u)
                Pi = I_A - U @ cho_solve(D_factor, U.T)
                beta = p_A + Pi @ c_i + U @ cho_solve(D_factor, u)
            else:
                Pi = I_A
                beta = p_A + I_A @ c_i

            if body._parent_index is not None:
                Ad_T = adjoints[i]
                inertias[body._parent_index] = inertias[body._parent_index] + Ad_T.T @ Pi @ Ad_T
                bias_wrenches[body._parent_index] = bias_wrenches[body._parent_index] + Ad_T.T @ beta

        # Pass 3 (root to leaf): accelerations and prescribed efforts
        ddq = np.where(prescribed, prescribed_accelerations, 0.0).astype(np.float64)
        tau = forces.copy()
        base_twist_dot = np.concatenate([np.zeros(3), -np.asarray(gravity, dtype=np.float64)])
        twist_dots = [None] * num_bodies
        for body in bodies:
            i = body.index_in_skeleton
            Vdot_prev = base_twist_dot if body._parent_index is None else twist_dots[body._parent_index]
            a = adjoints[i] @ Vdot_prev + biases[i]
            if factors[i] is not None:
                U, D_factor, u = factors[i]
                ddq_free = cho_solve(D_factor, u - U.T @ a)
                ddq[self._free_indices(body, prescribed)] = ddq_free
                a = a + subspaces[i] @ ddq_free
            twist_dots[i] = a

            indices = np.asarray(body.dof_indices, dtype=int)
            if indices.size > 0:
                held = indices[prescribed[indices]]
                if held.size > 0:
                    S = body.parent_joint.get_relative_jacobian()[:, prescribed[indices]]
                    tau[held] = S.T @ (inertias[i] @ a + bias_wrenches[i])

        if not (np.all(np.isfinite(ddq)) and np.all(np.isfinite(tau))):
            raise NumericalDegeneracyError(
                f"Forward dynamics of skeleton '{skeleton.name}' produced non-finite values")
        return ddq, tau

    @staticmethod
    def _free_indices(body, prescribed: np.ndarray) -> np.ndarray:
        indices = np.asarray(body.dof_indices, dtype=int)
        if indices.size == 0:
            return indices
        return indices[~prescribed[indices]]

    def inverse_mass_matrix(self) -> np.ndarray:
        """Compute M^{-1} column by column from unit generalized forces.

        Returns:
            M_inv: Inverse mass matrix (n, n).
        """
        n = self.skeleton.num_dofs
        M_inv = np.zeros((n, n))
        zeros = np.zeros(n)
        for j in range(n):
            tau = np.zeros(n)
            tau[j] = 1.0
            M_inv[:, j], _ = self.forward_dynamics(tau, zeros)
        return 0.5 * (M_inv + M_inv.T)
