"""
Phase field simulation package for spinodal decomposition.

This package solves the Cahn-Hilliard equation for a binary mixture with a
double-well free energy f(c) = A c²(1 - c)², using explicit finite
differences on a periodic 2D grid and forward Euler time stepping.

Modules:
    config: Grid, material, clock and diagnostics parameters
    numerics: Periodic grid operators and the concentration field
    physics: Free energy and variational derivative
    solvers: Explicit Euler time evolution
    io: Snapshot and energy trace saving/loading

Example usage:
    from cahnhilliard import (SimulationConfig, generate_microstructure,
                              ExplicitEulerSolver)

    config = SimulationConfig.spinodal_64()
    field = generate_microstructure(config.grid, config.material,
                                    config.initial.noise, rng=42)
    solver = ExplicitEulerSolver(field, config.clock, config.diagnostics)
    solver.run()
"""

from .config import (GridDescriptor, MaterialParameters, SimulationClock,
                     SimulationConfig)
from .errors import ConfigurationError, NumericalInstabilityError, EnergyDriftWarning
from .numerics.grid import periodic_neighbors, laplacian_at, PeriodicOperators
from .numerics.field import ConcentrationField, generate_microstructure
from .physics.free_energy import (DoubleWellFreeEnergy, VariationalDerivative,
                                  laplacian_of_derivative, total_free_energy)
from .solvers.explicit_solver import ExplicitEulerSolver, SolverState, EnergyRecord

__version__ = "0.1.0"
