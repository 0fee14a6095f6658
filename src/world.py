"""World: skeletons sharing gravity and a fixed time step.

One call to World.step advances every mobile skeleton by one time step:
contacts are detected, converted into constraint forces, forward dynamics
is solved and the state is integrated semi-implicitly (velocities first,
then positions with the new velocities).
"""

from dataclasses import dataclass, field
import logging
from typing import List, Optional, Union

import numpy as np

from multibody.collision import CollisionDetector, Contact, SphereCollisionDetector
from multibody.constraint import ConstraintSolver
from multibody.exceptions import ConfigurationError
from multibody.skeleton import DEFAULT_GRAVITY, DEFAULT_TIME_STEP, Skeleton

logger = logging.getLogger(__name__)


@dataclass
class WorldConfig:
    """Configuration of a World.

    Attributes:
        time_step: Integration step [s].
        gravity: Gravity vector in world frame [m/s²].
        detect_collisions: Whether the world creates a default collision
            detector when none is passed in.
    """

    time_step: float = DEFAULT_TIME_STEP
    gravity: np.ndarray = field(default_factory=lambda: DEFAULT_GRAVITY.copy())
    detect_collisions: bool = True

    def __post_init__(self):
        if not self.time_step > 0.0:
            raise ConfigurationError(f"time_step must be positive, got {self.time_step}")
        self.time_step = float(self.time_step)
        self.gravity = np.asarray(self.gravity, dtype=np.float64).flatten()
        if self.gravity.shape != (3,):
            raise ConfigurationError(f"gravity must have 3 components, got {self.gravity.shape[0]}")


class World:
    """Container that steps a set of skeletons forward in time.

    Attributes:
        name: World name.
        collision_detector: Contact source. Defaults to a
            SphereCollisionDetector unless config.detect_collisions is
            False; setting it to None later also disables collision checking.
        constraint_solver: Turns contacts and enforced limits into
            constraint forces.
    """

    def __init__(
        self,
        name: str = 'world',
        config: Optional[WorldConfig] = None,
        collision_detector: Optional[CollisionDetector] = None,
        constraint_solver: Optional[ConstraintSolver] = None,
    ) -> None:
        self.name = name
        self.config = config if config is not None else WorldConfig()
        if collision_detector is None and self.config.detect_collisions:
            collision_detector = SphereCollisionDetector()
        self.collision_detector = collision_detector
        self.constraint_solver = constraint_solver if constraint_solver is not None else ConstraintSolver()
        self._skeletons: List[Skeleton] = []
        self._last_contacts: List[Contact] = []
        self._time = 0.0
        self._frame = 0

    def __repr__(self) -> str:
        return f'World({self.name!r}, skeletons={self.num_skeletons}, time={self._time:.6g})'

    # Settings

    @property
    def time_step(self) -> float:
        return self.config.time_step

    @time_step.setter
    def time_step(self, value: float) -> None:
        if not value > 0.0:
            raise ConfigurationError(f"time_step must be positive, got {value}")
        self.config.time_step = float(value)
        for skeleton in self._skeletons:
            skeleton.time_step = value

    @property
    def gravity(self) -> np.ndarray:
        return self.config.gravity.copy()

    @gravity.setter
    def gravity(self, value) -> None:
        value = np.asarray(value, dtype=np.float64).flatten()
        if value.shape != (3,):
            raise ConfigurationError(f"gravity must have 3 components, got {value.shape[0]}")
        self.config.gravity = value
        for skeleton in self._skeletons:
            skeleton.gravity = value

    @property
    def time(self) -> float:
        return self._time

    @property
    def frame(self) -> int:
        return self._frame

    # Skeleton management

    @property
    def skeletons(self) -> List[Skeleton]:
        return list(self._skeletons)

    @property
    def num_skeletons(self) -> int:
        return len(self._skeletons)

    def _unique_name(self, name: str) -> str:
        taken = {s.name for s in self._skeletons}
        if name not in taken:
            return name
        k = 1
        while f'{name}_{k}' in taken:
            k += 1
        return f'{name}_{k}'

    def add_skeleton(self, skeleton: Skeleton) -> str:
        """Add a skeleton, renaming it if its name is taken.

        Returns:
            The name under which the skeleton was added.
        """
        if skeleton in self._skeletons:
            logger.warning("Skeleton '%s' is already in world '%s'", skeleton.name, self.name)
            return skeleton.name
        name = self._unique_name(skeleton.name)
        if name != skeleton.name:
            logger.warning("Skeleton name '%s' is taken in world '%s'; renamed to '%s'",
                           skeleton.name, self.name, name)
            skeleton.name = name
        skeleton.gravity = self.config.gravity
        skeleton.time_step = self.config.time_step
        self._skeletons.append(skeleton)
        logger.info("World '%s': added skeleton '%s'", self.name, name)
        return name

    def remove_skeleton(self, skeleton: Union[Skeleton, str]) -> Skeleton:
        if isinstance(skeleton, str):
            skeleton = self.get_skeleton(skeleton)
        if skeleton not in self._skeletons:
            raise KeyError(f"Skeleton '{skeleton.name}' is not in world '{self.name}'")
        self._skeletons.remove(skeleton)
        logger.info("World '%s': removed skeleton '%s'", self.name, skeleton.name)
        return skeleton

    def get_skeleton(self, key: Union[int, str]) -> Skeleton:
        """Skeleton by index or by name."""
        if isinstance(key, str):
            for skeleton in self._skeletons:
                if skeleton.name == key:
                    return skeleton
            raise KeyError(f"World '{self.name}' has no skeleton named '{key}'")
        if not 0 <= key < len(self._skeletons):
            raise IndexError(
                f"World '{self.name}' has {len(self._skeletons)} skeletons, index {key} out of range")
        return self._skeletons[key]

    # Simulation

    def step(self, reset_command: bool = True) -> None:
        """Advance the simulation by one time step.

        Args:
            reset_command: Zero the joint commands afterwards. When False,
                commands persist and FORCE joints re-derive their forces
                from them for the next step.
        """
        dt = self.config.time_step
        mobile = [s for s in self._skeletons if s.mobile]

        if self.collision_detector is not None:
            self._last_contacts = self.collision_detector.detect_collision(self._skeletons)
        else:
            self._last_contacts = []
        self.constraint_solver.solve(mobile, self._last_contacts)

        for skeleton in mobile:
            skeleton.compute_forward_dynamics()
        for skeleton in mobile:
            skeleton.integrate_velocities(dt)
            skeleton.integrate_positions(dt)

        for skeleton in self._skeletons:
            skeleton.invalidate_all()
            skeleton.clear_external_forces()
            skeleton.clear_internal_forces()
            if reset_command:
                skeleton.reset_commands()
            else:
                for joint in skeleton.joints:
                    joint._apply_commands()

        self._time += dt
        self._frame += 1
        logger.debug("World '%s': frame %d, t=%.6f, %d contacts",
                     self.name, self._frame, self._time, len(self._last_contacts))

    def get_last_contacts(self) -> List[Contact]:
        return list(self._last_contacts)

    def reset(self) -> None:
        """Rewind time and frame counters; skeleton state is untouched."""
        self._time = 0.0
        self._frame = 0
        self._last_contacts = []
