"""Memoization wrapper for lazily evaluated kinematic and dynamic quantities.

Every cached quantity in a skeleton is held by a CachedValue. A value is
computed on first read, frozen (numpy arrays are made read-only), and
returned unchanged by later reads until the owner invalidates it.
"""

from typing import Callable, Generic, Optional, TypeVar

import numpy as np

T = TypeVar('T')


class CachedValue(Generic[T]):
    """A (value, valid-for-generation) pair with explicit invalidation.

    Attributes:
        name: Label used in repr and debugging.
        generation: Owner generation at which the value was last computed,
            or None if it has never been computed.
        num_computations: Number of times the value has been (re)computed.
    """

    __slots__ = ('name', '_value', '_valid', 'generation', 'num_computations')

    def __init__(self, name: str = '') -> None:
        self.name = name
        self._value: Optional[T] = None
        self._valid = False
        self.generation: Optional[int] = None
        self.num_computations = 0

    @property
    def is_valid(self) -> bool:
        return self._valid

    def get(self, compute: Callable[[], T], generation: Optional[int] = None) -> T:
        """Return the cached value, computing it first if invalid.

        Args:
            compute: Zero-argument callable producing a fresh value.
            generation: Owner generation to stamp on a fresh value.
        """
        if not self._valid:
            value = compute()
            if isinstance(value, np.ndarray):
                value.flags.writeable = False
            self._value = value
            self._valid = True
            self.generation = generation
            self.num_computations += 1
        return self._value

    def invalidate(self) -> None:
        self._valid = False

    def peek(self) -> Optional[T]:
        """Last computed value without triggering recomputation."""
        return self._value

    def __repr__(self) -> str:
        state = 'valid' if self._valid else 'stale'
        return f'CachedValue({self.name!r}, {state}, generation={self.generation})'
