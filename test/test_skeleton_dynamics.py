"""Tests for mass matrix, bias forces, inverse dynamics and COM quantities."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from multibody.exceptions import NumericalDegeneracyError
from multibody.lie_algebra import ad
from multibody.models import create_pendulum
from multibody.skeleton import Skeleton


class TestMassMatrix:
    """Properties of M(q)."""

    def test_symmetric_positive_definite(self, mixed_skeleton):
        """M is symmetric positive definite."""
        M = mixed_skeleton.get_mass_matrix()
        assert M.shape == (20, 20)
        assert_allclose(M, M.T, atol=1e-12)
        assert np.all(np.linalg.eigvalsh(M) > 0.0)

    def test_matches_body_jacobians(self, mixed_skeleton):
        """M = sum_i J_i^T G_i J_i."""
        expected = sum(b.get_jacobian().T @ b.spatial_inertia @ b.get_jacobian()
                       for b in mixed_skeleton.body_nodes)
        assert_allclose(mixed_skeleton.get_mass_matrix(), expected, atol=1e-10)

    def test_inverse_dynamics_is_linear_in_acceleration(self, mixed_skeleton):
        """Inverse dynamics is affine in ddq with slope M."""
        ddq = mixed_skeleton.get_accelerations()
        tau = mixed_skeleton.compute_inverse_dynamics(ddq)
        tau0 = mixed_skeleton.compute_inverse_dynamics(np.zeros(mixed_skeleton.num_dofs))
        assert_allclose(tau - tau0, mixed_skeleton.get_mass_matrix() @ ddq, atol=1e-10)

    def test_inverse_times_mass_is_identity(self, mixed_skeleton):
        """The cached inverse inverts M."""
        M = mixed_skeleton.get_mass_matrix()
        M_inv = mixed_skeleton.get_inv_mass_matrix()
        assert_allclose(M_inv @ M, np.eye(mixed_skeleton.num_dofs), atol=1e-8)

    def test_ur5e_inverse(self, ur5e, random_config):
        """The inverse holds at random UR5e configurations."""
        ur5e.set_positions(random_config)
        assert_allclose(ur5e.get_inv_mass_matrix() @ ur5e.get_mass_matrix(), np.eye(6), atol=1e-9)

    def test_kinetic_energy(self, mixed_skeleton):
        """Kinetic energy is half dq^T M dq."""
        dq = mixed_skeleton.get_velocities()
        assert np.isclose(mixed_skeleton.compute_kinetic_energy(),
                          0.5 * dq @ mixed_skeleton.get_mass_matrix() @ dq)


class TestBiasForces:
    """Coriolis and gravity forces."""

    def test_equation_of_motion(self, mixed_skeleton):
        """Inverse dynamics equals M ddq plus bias forces."""
        ddq = mixed_skeleton.get_accelerations()
        expected = mixed_skeleton.get_mass_matrix() @ ddq + mixed_skeleton.get_coriolis_and_gravity_forces()
        assert_allclose(mixed_skeleton.compute_inverse_dynamics(), expected, atol=1e-10)

    def test_combined_is_sum(self, mixed_skeleton):
        """Coriolis plus gravity forces is the combined bias."""
        assert_allclose(mixed_skeleton.get_coriolis_forces() + mixed_skeleton.get_gravity_forces(),
                        mixed_skeleton.get_coriolis_and_gravity_forces(), atol=1e-10)

    def test_coriolis_matches_body_sum(self, mixed_skeleton):
        """Coriolis forces match the sum over bodies."""
        dq = mixed_skeleton.get_velocities()
        expected = np.zeros(mixed_skeleton.num_dofs)
        for body in mixed_skeleton.body_nodes:
            J = body.get_jacobian()
            G = body.spatial_inertia
            V = body.get_spatial_velocity()
            expected += J.T @ (G @ body.get_jacobian_time_deriv() @ dq - ad(V).T @ G @ V)
        assert_allclose(mixed_skeleton.get_coriolis_forces(), expected, atol=1e-10)

    def test_gravity_matches_com_jacobians(self, mixed_skeleton):
        """Gravity forces match the COM Jacobians."""
        g = mixed_skeleton.gravity
        expected = -sum(b.mass * b.get_linear_jacobian(b.local_com).T @ g for b in mixed_skeleton.body_nodes)
        assert_allclose(mixed_skeleton.get_gravity_forces(), expected, atol=1e-10)

    def test_gravity_is_potential_gradient(self, pendulum):
        """Gravity forces are the potential energy gradient."""
        q0 = pendulum.get_positions()
        h = 1e-6
        gradient = np.zeros(2)
        for j in range(2):
            dq = np.zeros(2)
            dq[j] = h
            pendulum.set_positions(q0 + dq)
            plus = pendulum.compute_potential_energy()
            pendulum.set_positions(q0 - dq)
            minus = pendulum.compute_potential_energy()
            gradient[j] = (plus - minus) / (2 * h)
        pendulum.set_positions(q0)
        assert_allclose(pendulum.get_gravity_forces(), gradient, atol=1e-6)

    def test_gravity_setter(self, pendulum):
        """Gravity forces scale with the gravity vector."""
        before = pendulum.get_gravity_forces().copy()
        pendulum.gravity = 2.0 * pendulum.gravity
        assert_allclose(pendulum.get_gravity_forces(), 2.0 * before)
        pendulum.gravity = np.zeros(3)
        assert_allclose(pendulum.get_gravity_forces(), np.zeros(2))

    def test_zero_velocity_has_no_coriolis(self, ur5e, random_config):
        """Coriolis forces vanish at rest."""
        ur5e.set_positions(random_config)
        assert_allclose(ur5e.get_coriolis_forces(), np.zeros(6), atol=1e-14)


class TestInverseDynamicsOptions:
    """Applied force terms moved to the right-hand side."""

    def test_external_forces(self, mixed_skeleton):
        """External forces move to the right-hand side."""
        hand = mixed_skeleton.get_body_node('hand')
        hand.add_external_force([0.0, 5.0, -1.0], [0.0, 0.0, -0.02])
        plain = mixed_skeleton.compute_inverse_dynamics()
        with_external = mixed_skeleton.compute_inverse_dynamics(with_external_forces=True)
        assert_allclose(with_external, plain - mixed_skeleton.get_external_forces(), atol=1e-10)

    def test_spring_and_damping(self, chain):
        """Spring and damping forces move to the right-hand side."""
        for dof in chain.dofs:
            dof.spring_stiffness = 3.0
            dof.damping_coefficient = 0.5
        chain.set_velocities([0.2, -0.1, 0.4, 0.3])
        plain = chain.compute_inverse_dynamics()
        both = chain.compute_inverse_dynamics(with_spring_forces=True, with_damping_forces=True)
        assert_allclose(both, plain - chain.get_spring_forces() - chain.get_damping_forces())

    def test_constraint_forces(self, chain):
        """Constraint forces move to the right-hand side."""
        chain.set_constraint_forces([1.0, 0.0, -1.0, 0.5])
        plain = chain.compute_inverse_dynamics()
        assert_allclose(chain.compute_inverse_dynamics(with_constraint_forces=True),
                        plain - np.array([1.0, 0.0, -1.0, 0.5]))

    def test_wrong_length(self, chain):
        """Accelerations must match the DOF count."""
        with pytest.raises(ValueError):
            chain.compute_inverse_dynamics(np.zeros(3))


class TestCenterOfMass:
    """COM position, velocity, acceleration and Jacobian."""

    def test_com_is_mass_weighted(self, mixed_skeleton):
        """The COM is the mass-weighted body COM."""
        bodies = mixed_skeleton.body_nodes
        expected = sum(b.mass * b.get_com() for b in bodies) / sum(b.mass for b in bodies)
        assert_allclose(mixed_skeleton.get_com(), expected, atol=1e-12)
        assert np.isclose(mixed_skeleton.get_mass(), 9.5)

    def test_com_relative_to_body(self, mixed_skeleton):
        """The COM can be expressed in a body frame."""
        base = mixed_skeleton.get_body_node('base')
        T = base.get_world_transform()
        assert_allclose(T[:3, :3] @ mixed_skeleton.get_com(relative_to=base) + T[:3, 3],
                        mixed_skeleton.get_com(), atol=1e-12)

    def test_com_jacobian(self, mixed_skeleton, central_difference):
        """The COM Jacobian maps dq to the COM velocity."""
        J = mixed_skeleton.get_com_jacobian()
        assert J.shape == (3, mixed_skeleton.num_dofs)
        dq = mixed_skeleton.get_velocities()
        assert_allclose(J @ dq, mixed_skeleton.get_com_linear_velocity(), atol=1e-12)
        assert_allclose(central_difference(mixed_skeleton, mixed_skeleton.get_com),
                        mixed_skeleton.get_com_linear_velocity(), atol=1e-7)

    def test_com_acceleration(self, mixed_skeleton, central_difference):
        """COM acceleration agrees with the differenced velocity."""
        assert_allclose(central_difference(mixed_skeleton, mixed_skeleton.get_com_linear_velocity),
                        mixed_skeleton.get_com_linear_acceleration(), atol=1e-6)

    def test_com_derivatives_in_body_coordinates(self, mixed_skeleton):
        """Velocity, acceleration and Jacobian of the COM re-expressed in a body frame."""
        hand = mixed_skeleton.get_body_node('hand')
        R = hand.get_world_transform()[:3, :3]
        v_local = mixed_skeleton.get_com_linear_velocity(in_coordinates_of=hand)
        J_local = mixed_skeleton.get_com_jacobian(in_coordinates_of=hand)

        assert_allclose(R @ v_local, mixed_skeleton.get_com_linear_velocity(), atol=1e-12)
        assert_allclose(R @ mixed_skeleton.get_com_linear_acceleration(in_coordinates_of=hand),
                        mixed_skeleton.get_com_linear_acceleration(), atol=1e-12)
        assert_allclose(R @ J_local, mixed_skeleton.get_com_jacobian(), atol=1e-12)
        assert_allclose(J_local @ mixed_skeleton.get_velocities(), v_local, atol=1e-12)

    def test_zero_mass_raises(self, body_properties_factory):
        """A massless skeleton has no COM."""
        skeleton = Skeleton('massless')
        skeleton.create_joint_and_body_node('weld', body_properties=body_properties_factory('a', mass=0.0))
        with pytest.raises(NumericalDegeneracyError):
            skeleton.get_com()


class TestEnergy:
    """Potential energy bookkeeping."""

    def test_pendulum_potential(self):
        """Single link hanging at rest."""
        pendulum = create_pendulum(num_links=1, link_length=2.0, link_mass=3.0)
        assert np.isclose(pendulum.compute_potential_energy(), -3.0 * 9.81 * 1.0)

    def test_spring_energy_included(self, chain):
        """Spring energy is included in the potential."""
        chain.get_dof('jA').spring_stiffness = 4.0
        without_spring = chain.compute_potential_energy() - 0.5 * 4.0 * 0.1 ** 2
        chain.get_dof('jA').spring_stiffness = 0.0
        assert np.isclose(chain.compute_potential_energy(), without_spring)
