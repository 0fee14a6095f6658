"""Tests for skeleton construction, lookups, state vectors and editing."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from multibody.collision import is_collidable
from multibody.exceptions import ConfigurationError
from multibody.joint import ActuatorType
from multibody.joint_types import (
    PrismaticJointProperties,
    RevoluteJoint,
    RevoluteJointProperties,
    WeldJointProperties,
)
from multibody.lie_algebra import inverse_transform
from multibody.skeleton import Skeleton, resolve_joint_type


class TestConstruction:
    """Creating bodies and joints."""

    def test_default_names(self):
        """Unnamed bodies, joints and DOFs get default names."""
        skeleton = Skeleton()
        joint, body = skeleton.create_joint_and_body_node('ball')
        assert body.name == 'body0'
        assert joint.name == 'body0_joint'
        assert [d.name for d in joint.dofs] == ['body0_joint_x', 'body0_joint_y', 'body0_joint_z']
        assert joint.skeleton is skeleton
        assert joint.child_body_node is body
        assert joint.parent_body_node is None

    def test_dof_order_is_depth_first(self, mixed_skeleton):
        """Bodies and DOFs are numbered depth-first."""
        assert [b.name for b in mixed_skeleton.body_nodes] == [
            'base', 'upper', 'fore', 'hand', 'cap', 'leg', 'foot', 'tail', 'tip']
        assert mixed_skeleton.num_dofs == 20
        assert [d.index_in_skeleton for d in mixed_skeleton.dofs] == list(range(20))
        assert mixed_skeleton.get_body_node('leg').dof_indices == [12, 13, 14]
        assert mixed_skeleton.get_dof('knee').index_in_skeleton == 15
        assert mixed_skeleton.get_dof(16).name == 'tail_screw'

    def test_child_added_later_is_placed_in_its_subtree(self, chain, body_properties_factory):
        """A late child is inserted into its parent's subtree."""
        b = chain.get_body_node('B')
        chain.create_joint_and_body_node(
            'prismatic', PrismaticJointProperties(name='jE', axis=[1.0, 0.0, 0.0]),
            body_properties_factory('E'), b)
        assert [body.name for body in chain.body_nodes] == ['A', 'B', 'C', 'D', 'E']
        assert [body.name for body in b.get_subtree()] == ['B', 'C', 'D', 'E']
        assert chain.get_body_node('E').dof_indices == [4]

    def test_forest(self, body_properties_factory):
        """Several roots form a forest."""
        skeleton = Skeleton()
        skeleton.create_joint_and_body_node('free', body_properties=body_properties_factory('a'))
        skeleton.create_joint_and_body_node('free', body_properties=body_properties_factory('b'))
        assert skeleton.num_trees == 2
        assert skeleton.get_root_body_node(1).name == 'b'
        with pytest.raises(IndexError):
            skeleton.get_root_body_node(2)

    def test_joint_type_by_class(self):
        """Joint types resolve from classes and names."""
        assert resolve_joint_type(RevoluteJoint) is RevoluteJoint
        assert resolve_joint_type('Revolute') is RevoluteJoint

    def test_unknown_joint_type(self):
        """Unknown joint types are rejected."""
        with pytest.raises(ConfigurationError):
            Skeleton().create_joint_and_body_node('hinge')

    def test_duplicate_body_name(self, mixed_skeleton, body_properties_factory):
        """Body names must be unique."""
        with pytest.raises(ConfigurationError):
            mixed_skeleton.create_joint_and_body_node('weld', body_properties=body_properties_factory('hand'))
        assert mixed_skeleton.num_body_nodes == 9

    def test_duplicate_joint_name(self, mixed_skeleton, body_properties_factory):
        """Joint names must be unique."""
        with pytest.raises(ConfigurationError):
            mixed_skeleton.create_joint_and_body_node(
                'weld', WeldJointProperties(name='hip'), body_properties_factory('extra'))
        assert mixed_skeleton.num_body_nodes == 9

    def test_duplicate_dof_name(self, mixed_skeleton, body_properties_factory):
        """DOF names must be unique."""
        with pytest.raises(ConfigurationError):
            mixed_skeleton.create_joint_and_body_node(
                'prismatic', PrismaticJointProperties(name='slider', axis=[1, 0, 0], dof_names=['shoulder']),
                body_properties_factory('extra'))
        assert mixed_skeleton.num_dofs == 20

    def test_parent_from_other_skeleton(self, chain, body_properties_factory):
        """Parents must belong to the same skeleton."""
        other = Skeleton('other')
        with pytest.raises(ConfigurationError):
            other.create_joint_and_body_node('weld', body_properties=body_properties_factory('x'),
                                             parent=chain.get_body_node('A'))

    def test_settings_validation(self):
        """Time step and gravity are validated."""
        with pytest.raises(ConfigurationError):
            Skeleton(time_step=0.0)
        with pytest.raises(ConfigurationError):
            Skeleton(gravity=[0.0, -9.81])


class TestLookups:
    """Index and name lookups."""

    def test_by_name(self, mixed_skeleton):
        """Joints and DOFs by name and index."""
        assert mixed_skeleton.get_joint('elbow').child_body_node.name == 'fore'
        assert mixed_skeleton.get_joint(3).name == 'wrist'
        assert mixed_skeleton.get_dof('hip_y').joint.name == 'hip'

    def test_index_errors(self, mixed_skeleton):
        """Out-of-range indices raise IndexError."""
        with pytest.raises(IndexError):
            mixed_skeleton.get_body_node(9)
        with pytest.raises(IndexError):
            mixed_skeleton.get_dof(20)
        with pytest.raises(IndexError):
            mixed_skeleton.get_joint(-1)

    def test_unknown_names(self, mixed_skeleton):
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError):
            mixed_skeleton.get_body_node('nose')
        with pytest.raises(KeyError):
            mixed_skeleton.get_joint('ankle')
        with pytest.raises(KeyError):
            mixed_skeleton.get_dof('ankle')


class TestStateVectors:
    """Whole-skeleton get/set of generalized vectors."""

    def test_positions_round_trip(self, mixed_skeleton):
        """Positions come back as set."""
        q = np.linspace(-0.5, 0.5, 20)
        mixed_skeleton.set_positions(q)
        assert_allclose(mixed_skeleton.get_positions(), q)
        assert_allclose(mixed_skeleton.get_joint('hip').get_positions(), q[12:15])

    def test_wrong_length(self, mixed_skeleton):
        """State vectors must match the DOF count."""
        with pytest.raises(ValueError):
            mixed_skeleton.set_positions(np.zeros(19))
        with pytest.raises(ValueError):
            mixed_skeleton.set_velocities(np.zeros(21))

    def test_commands_drive_forces(self, chain):
        """Commands drive clipped forces until reset."""
        chain.get_dof('jB').force_upper_limit = 1.0
        chain.set_commands([0.5, 2.0, -0.5, 0.0])
        assert_allclose(chain.get_forces(), [0.5, 1.0, -0.5, 0.0])
        chain.reset_commands()
        assert_allclose(chain.get_commands(), np.zeros(4))
        chain.clear_internal_forces()
        assert_allclose(chain.get_forces(), np.zeros(4))

    def test_constraint_forces(self, chain):
        """Constraint forces can be set and cleared."""
        chain.set_constraint_forces([1.0, 2.0, 3.0, 4.0])
        assert chain.get_dof('jC').constraint_force == 3.0
        chain.clear_constraint_forces()
        assert_allclose(chain.get_constraint_forces(), np.zeros(4))

    def test_limits(self, ur5e):
        """Force and velocity limit vectors."""
        lower, upper = ur5e.get_force_limits()
        assert_allclose(upper, [150.0, 150.0, 150.0, 28.0, 28.0, 28.0])
        assert_allclose(lower, -upper)
        v_lower, v_upper = ur5e.get_velocity_limits()
        assert_allclose(v_upper, np.full(6, np.pi))

    def test_integration(self, chain):
        """Explicit Euler steps for velocities and positions."""
        chain.set_velocities([1.0, 0.0, -1.0, 2.0])
        chain.set_accelerations([0.0, 10.0, 0.0, 0.0])
        q0 = chain.get_positions()
        chain.integrate_velocities(0.1)
        assert_allclose(chain.get_velocities(), [1.0, 1.0, -1.0, 2.0])
        chain.integrate_positions(0.1)
        assert_allclose(chain.get_positions(), q0 + 0.1 * np.array([1.0, 1.0, -1.0, 2.0]))


class TestMoveSubtree:
    """Topology editing."""

    def test_reattach_under_other_branch(self, mixed_skeleton):
        """Moving a subtree renumbers bodies and DOFs."""
        wrist_q = mixed_skeleton.get_joint('wrist').get_positions()
        joint = mixed_skeleton.move_subtree(
            mixed_skeleton.get_body_node('fore'), mixed_skeleton.get_body_node('leg'), 'revolute',
            RevoluteJointProperties(name='fore_hinge', axis=[1.0, 0.0, 0.0]))

        assert [b.name for b in mixed_skeleton.body_nodes] == [
            'base', 'upper', 'leg', 'foot', 'fore', 'hand', 'cap', 'tail', 'tip']
        assert mixed_skeleton.num_dofs == 19
        assert [d.index_in_skeleton for d in mixed_skeleton.dofs] == list(range(19))
        assert joint.get_dof(0).index_in_skeleton == 11
        assert_allclose(mixed_skeleton.get_joint('wrist').get_positions(), wrist_q)
        assert mixed_skeleton.get_body_node('fore').parent_body_node.name == 'leg'
        assert mixed_skeleton.get_body_node('upper').num_child_body_nodes == 0
        with pytest.raises(KeyError):
            mixed_skeleton.get_joint('elbow')
        assert mixed_skeleton.get_mass_matrix().shape == (19, 19)

    def test_moved_subtree_follows_new_parent(self, mixed_skeleton):
        """The moved subtree hangs off the new parent and moves with it."""
        fore = mixed_skeleton.get_body_node('fore')
        hand = mixed_skeleton.get_body_node('hand')
        leg = mixed_skeleton.get_body_node('leg')
        joint = mixed_skeleton.move_subtree(
            fore, leg, 'revolute', RevoluteJointProperties(name='fore_hinge', axis=[1.0, 0.0, 0.0]))
        joint.set_positions([0.4])

        assert_allclose(fore.get_world_transform(),
                        leg.get_world_transform() @ joint.get_relative_transform(), atol=1e-12)
        T_hand_in_fore = inverse_transform(fore.get_world_transform()) @ hand.get_world_transform()
        T_fore = fore.get_world_transform().copy()

        mixed_skeleton.get_joint('hip').set_positions([0.2, -0.5, 0.9])
        assert not np.allclose(fore.get_world_transform(), T_fore)
        assert_allclose(fore.get_world_transform(),
                        leg.get_world_transform() @ joint.get_relative_transform(), atol=1e-12)
        assert_allclose(inverse_transform(fore.get_world_transform()) @ hand.get_world_transform(),
                        T_hand_in_fore, atol=1e-12)

    def test_world_transforms_stay_consistent(self, mixed_skeleton):
        """A weld with the old pose keeps every world transform."""
        fore = mixed_skeleton.get_body_node('fore')
        leg = mixed_skeleton.get_body_node('leg')
        hand = mixed_skeleton.get_body_node('hand')
        T_fore = fore.get_world_transform().copy()
        T_hand = hand.get_world_transform().copy()

        mixed_skeleton.move_subtree(
            fore, leg, 'weld',
            WeldJointProperties(name='fore_weld',
                                transform_from_parent_body_node=inverse_transform(leg.get_world_transform())
                                @ T_fore))

        assert_allclose(fore.get_world_transform(), T_fore, atol=1e-12)
        assert_allclose(hand.get_world_transform(), T_hand, atol=1e-12)
        for body in mixed_skeleton.body_nodes:
            assert_allclose(body.get_jacobian() @ mixed_skeleton.get_velocities(), body.get_spatial_velocity(),
                            atol=1e-12)

    def test_new_root(self, mixed_skeleton):
        """A subtree moved to no parent becomes a new root."""
        leg = mixed_skeleton.get_body_node('leg')
        mixed_skeleton.move_subtree(leg, None, 'free')
        assert leg.is_root()
        assert mixed_skeleton.num_trees == 2
        assert leg.parent_joint.name == 'leg_joint'
        assert mixed_skeleton.num_dofs == 23

    def test_cycle_is_rejected(self, mixed_skeleton):
        """Moves that would create a cycle are rejected."""
        q = mixed_skeleton.get_positions()
        upper = mixed_skeleton.get_body_node('upper')
        with pytest.raises(ConfigurationError):
            mixed_skeleton.move_subtree(upper, mixed_skeleton.get_body_node('hand'), 'weld')
        with pytest.raises(ConfigurationError):
            mixed_skeleton.move_subtree(upper, upper, 'weld')
        assert upper.parent_body_node.name == 'base'
        assert mixed_skeleton.num_dofs == 20
        assert_allclose(mixed_skeleton.get_positions(), q)

    def test_reusing_replaced_joint_name(self, mixed_skeleton):
        """The replaced joint's name can be reused."""
        joint = mixed_skeleton.move_subtree(
            mixed_skeleton.get_body_node('leg'), mixed_skeleton.get_body_node('tail'), 'revolute',
            RevoluteJointProperties(name='hip', axis=[0.0, 0.0, 1.0]))
        assert mixed_skeleton.get_joint('hip') is joint

    def test_name_clash_with_other_joint(self, mixed_skeleton):
        """A new joint name may not clash with another joint."""
        with pytest.raises(ConfigurationError):
            mixed_skeleton.move_subtree(
                mixed_skeleton.get_body_node('leg'), None, 'weld', WeldJointProperties(name='knee'))
        assert mixed_skeleton.get_body_node('leg').parent_joint.name == 'hip'

    def test_body_from_other_skeleton(self, mixed_skeleton, chain):
        """Bodies from another skeleton cannot be moved."""
        with pytest.raises(ConfigurationError):
            mixed_skeleton.move_subtree(chain.get_body_node('B'), None, 'weld')


class TestSelfCollision:
    """Collidability of body pairs within one skeleton."""

    def test_disabled_by_default(self, chain):
        """Self collision is off by default."""
        a, c = chain.get_body_node('A'), chain.get_body_node('C')
        assert not chain.self_collision_enabled
        assert not chain.is_collidable(a, c)

    def test_non_adjacent_pairs(self, chain):
        """Non-adjacent pairs collide once enabled."""
        chain.enable_self_collision()
        a, b, c, d = (chain.get_body_node(n) for n in 'ABCD')
        assert chain.is_collidable(a, c)
        assert chain.is_collidable(a, d)
        assert not chain.is_collidable(a, b)
        assert not chain.is_collidable(c, d)
        assert not chain.is_collidable(a, a)

    def test_adjacent_pairs(self, chain):
        """Adjacent pairs collide when requested."""
        chain.enable_self_collision(adjacent_bodies=True)
        assert chain.adjacent_body_check
        assert chain.is_collidable(chain.get_body_node('A'), chain.get_body_node('B'))
        chain.disable_self_collision()
        assert not chain.is_collidable(chain.get_body_node('A'), chain.get_body_node('C'))

    def test_non_collidable_body(self, chain):
        """Non-collidable bodies never collide."""
        chain.enable_self_collision()
        chain.get_body_node('C').collidable = False
        assert not chain.is_collidable(chain.get_body_node('A'), chain.get_body_node('C'))

    def test_foreign_body(self, chain, ur5e):
        """Both bodies must belong to the skeleton."""
        with pytest.raises(ConfigurationError):
            chain.is_collidable(chain.get_body_node('A'), ur5e.get_body_node(0))

    def test_across_skeletons(self, chain, ur5e):
        """Pairs across skeletons need one mobile side and both collidable."""
        a = chain.get_body_node('A')
        link = ur5e.get_body_node('wrist_3_link')
        assert is_collidable(a, link)
        chain.mobile = False
        assert is_collidable(a, link)
        ur5e.mobile = False
        assert not is_collidable(a, link)
        ur5e.mobile = True
        link.collidable = False
        assert not is_collidable(a, link)


class TestActuatorSwitch:
    """Actuator type changes at runtime."""

    def test_switch_to_servo(self, chain):
        """Switching to servo makes the joint kinematic."""
        joint = chain.get_joint('jA')
        joint.actuator_type = ActuatorType.SERVO
        assert joint.is_kinematic
        joint.actuator_type = ActuatorType.VELOCITY
        assert joint.actuator_type is ActuatorType.SERVO
