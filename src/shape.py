"""Collision and visual shapes attached to body nodes.

Shapes are geometry handles consumed by the collision layer. They also
provide the inertia of a uniform solid, which is convenient when building
bodies by hand.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from multibody.exceptions import ConfigurationError


class Shape(ABC):
    """Abstract base class for shapes.

    Attributes:
        local_transform: Pose of the shape in its body frame (4, 4).
    """

    def __init__(self, local_transform: Optional[np.ndarray] = None) -> None:
        if local_transform is None:
            local_transform = np.eye(4)
        local_transform = np.asarray(local_transform, dtype=np.float64)
        if local_transform.shape != (4, 4):
            raise ConfigurationError(
                f"local_transform must have shape (4, 4), got {local_transform.shape}")
        self.local_transform = local_transform

    @property
    @abstractmethod
    def volume(self) -> float:
        """Shape volume [m^3]."""

    @abstractmethod
    def compute_inertia(self, mass: float) -> np.ndarray:
        """Inertia (3, 3) about the shape centre for a uniform solid of given mass."""


class SphereShape(Shape):
    """Solid sphere."""

    def __init__(self, radius: float, local_transform: Optional[np.ndarray] = None) -> None:
        super().__init__(local_transform)
        if radius <= 0:
            raise ConfigurationError(f"Sphere radius must be positive, got {radius}")
        self.radius = float(radius)

    @property
    def volume(self) -> float:
        return 4.0 / 3.0 * np.pi * self.radius ** 3

    def compute_inertia(self, mass: float) -> np.ndarray:
        return 0.4 * mass * self.radius ** 2 * np.eye(3)


class BoxShape(Shape):
    """Solid box with side lengths `size` along the shape axes."""

    def __init__(self, size, local_transform: Optional[np.ndarray] = None) -> None:
        super().__init__(local_transform)
        size = np.asarray(size, dtype=np.float64).flatten()
        if size.shape != (3,) or np.any(size <= 0):
            raise ConfigurationError(f"Box size must be three positive lengths, got {size}")
        self.size = size

    @property
    def volume(self) -> float:
        return float(np.prod(self.size))

    def compute_inertia(self, mass: float) -> np.ndarray:
        x, y, z = self.size
        return mass / 12.0 * np.diag([y * y + z * z, x * x + z * z, x * x + y * y])


class CylinderShape(Shape):
    """Solid cylinder aligned with the shape z-axis."""

    def __init__(self, radius: float, height: float,
                 local_transform: Optional[np.ndarray] = None) -> None:
        super().__init__(local_transform)
        if radius <= 0 or height <= 0:
            raise ConfigurationError(
                f"Cylinder radius and height must be positive, got {radius}, {height}")
        self.radius = float(radius)
        self.height = float(height)

    @property
    def volume(self) -> float:
        return np.pi * self.radius ** 2 * self.height

    def compute_inertia(self, mass: float) -> np.ndarray:
        r, h = self.radius, self.height
        lateral = mass * (3.0 * r * r + h * h) / 12.0
        return np.diag([lateral, lateral, 0.5 * mass * r * r])
