"""
Exceptions and warnings raised by the Cahn-Hilliard simulator.

Configuration problems are fatal and surface at construction time.
Energy drift is a non-fatal diagnostic reported through ``warnings``.
"""


class ConfigurationError(ValueError):
    """Invalid grid, material, clock or array shape. Raised at construction."""


class NumericalInstabilityError(RuntimeError):
    """The concentration field picked up NaN or Inf values during integration."""


class EnergyDriftWarning(RuntimeWarning):
    """Free energy changed by more than the configured tolerance between checks."""
