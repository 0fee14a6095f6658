"""Exceptions raised by the multibody package."""


class ConfigurationError(ValueError):
    """Malformed joint or body properties, or an invalid topology.

    Raised before any state is mutated, so the skeleton that triggered it
    remains usable.
    """


class NumericalDegeneracyError(RuntimeError):
    """A dynamics computation met a singular or non-physical inertia.

    Raised by forward dynamics and mass-matrix solves instead of returning
    NaN or meaningless accelerations.
    """
