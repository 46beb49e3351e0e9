"""
Configuration module for Cahn-Hilliard spinodal decomposition simulations.

This module defines the parameter groups needed to set up a run: the
periodic grid, the material constants of the double-well free energy, the
simulation clock, the initial microstructure and the diagnostics. The
SimulationConfig dataclass aggregates them and handles JSON save/load.

The default values reproduce the classic 64 x 64 spinodal decomposition
example (c̄ = 0.4, M = 1, κ = 0.5, A = 1, Δt = 0.01).

References:
    Biner, Programming Phase-Field Modeling, Springer (2017)
    https://doi.org/10.1007/978-3-319-41196-5
"""

from dataclasses import dataclass, field, asdict
from typing import Optional
import numpy as np
import json

from .errors import ConfigurationError


def _is_integer(value) -> bool:
    """True for Python and numpy integers, but not for bool."""
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


@dataclass(frozen=True)
class GridDescriptor:
    """
    Immutable description of a uniform, periodic 2D grid.

    Attributes:
        nx: Number of grid points along axis 0.
        ny: Number of grid points along axis 1.
        dx: Grid spacing along axis 0.
        dy: Grid spacing along axis 1.

    The derived quantities (point_count, cell_area, domain_area) are
    properties, so they always agree with nx, ny, dx and dy.
    """
    nx: int = 64
    ny: int = 64
    dx: float = 1.0
    dy: float = 1.0

    def __post_init__(self):
        for name in ("nx", "ny"):
            value = getattr(self, name)
            if not _is_integer(value) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        for name in ("dx", "dy"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value!r}")

    @property
    def shape(self) -> tuple:
        """Array shape (nx, ny) of every field on this grid."""
        return (self.nx, self.ny)

    @property
    def point_count(self) -> int:
        """Total number of grid points."""
        return self.nx * self.ny

    @property
    def cell_area(self) -> float:
        """Area of one grid cell."""
        return self.dx * self.dy

    @property
    def domain_area(self) -> float:
        """Area of the whole periodic domain."""
        return (self.dx * self.nx) * (self.dy * self.ny)


@dataclass(frozen=True)
class MaterialParameters:
    """
    Physical constants of the double-well Cahn-Hilliard model.

    The bulk free energy density is:
        f(c) = A c² (1 - c)²

    with minima at c = 0 and c = 1. The full functional adds the gradient
    penalty (κ/2)|∇c|².

    Attributes:
        average_concentration: Target mean of the concentration field (c̄).
        mobility: Cahn-Hilliard mobility M. Must be positive.
        gradient_penalty: Gradient energy coefficient κ. Must be positive.
        barrier_height: Height A of the double-well barrier. Must be positive.
    """
    average_concentration: float = 0.4
    mobility: float = 1.0
    gradient_penalty: float = 0.5
    barrier_height: float = 1.0

    def __post_init__(self):
        if not np.isfinite(self.average_concentration):
            raise ConfigurationError(
                f"average_concentration must be finite, got {self.average_concentration!r}")
        for name in ("mobility", "gradient_penalty", "barrier_height"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value!r}")

    @property
    def characteristic_length(self) -> float:
        """Non-dimensional length scale L' = √(κ/A)."""
        return float(np.sqrt(self.gradient_penalty / self.barrier_height))

    @property
    def characteristic_energy(self) -> float:
        """Energy scale F' = A L'³."""
        return self.barrier_height * self.characteristic_length**3


@dataclass
class SimulationClock:
    """
    Simulation time and screen output settings.

    Attributes:
        total_steps: Number of time steps for the next run. May be 0.
        print_interval: Print progress every print_interval steps.
        time_step: Explicit Euler time increment Δt.
        current_time: Simulated time so far. Advanced only by the solver.
    """
    total_steps: int = 1000
    print_interval: int = 50
    time_step: float = 0.01
    current_time: float = 0.0

    def __post_init__(self):
        if not _is_integer(self.total_steps) or self.total_steps < 0:
            raise ConfigurationError(
                f"total_steps must be a non-negative integer, got {self.total_steps!r}")
        if not _is_integer(self.print_interval) or self.print_interval <= 0:
            raise ConfigurationError(
                f"print_interval must be a positive integer, got {self.print_interval!r}")
        if not np.isfinite(self.time_step) or self.time_step <= 0:
            raise ConfigurationError(f"time_step must be positive, got {self.time_step!r}")
        if not np.isfinite(self.current_time):
            raise ConfigurationError(f"current_time must be finite, got {self.current_time!r}")


@dataclass
class InitialConditionParams:
    """
    Parameters of the random initial microstructure.

    Attributes:
        noise: Amplitude of the uniform noise added around c̄. The initial
               field lies in [c̄ - noise/2, c̄ + noise/2).
        seed: Seed for the random generator. None draws fresh entropy.
    """
    noise: float = 0.02
    seed: Optional[int] = None


@dataclass
class DiagnosticParams:
    """
    Settings for the run-time checks performed by the solver.

    Attributes:
        check_energy: Recompute the total free energy after every step.
        energy_tolerance: Largest tolerated change in free energy between
                          two checks before an EnergyDriftWarning is issued.
        halt_on_nonfinite: Stop with NumericalInstabilityError when the
                           field contains NaN or Inf.
        verbose: Print progress lines every print_interval steps.
    """
    check_energy: bool = False
    energy_tolerance: float = 0.1
    halt_on_nonfinite: bool = True
    verbose: bool = True


@dataclass
class SimulationConfig:
    """
    Complete configuration for a spinodal decomposition run.

    Example usage:
        config = SimulationConfig.spinodal_64()
        config.clock.total_steps = 5000
        config.save("run.json")
        config = SimulationConfig.load("run.json")
    """
    grid: GridDescriptor = field(default_factory=GridDescriptor)
    material: MaterialParameters = field(default_factory=MaterialParameters)
    clock: SimulationClock = field(default_factory=SimulationClock)
    initial: InitialConditionParams = field(default_factory=InitialConditionParams)
    diagnostics: DiagnosticParams = field(default_factory=DiagnosticParams)

    def to_dict(self) -> dict:
        """Convert configuration to a nested dictionary, one entry per group."""
        return {
            'grid': asdict(self.grid),
            'material': asdict(self.material),
            'clock': asdict(self.clock),
            'initial': asdict(self.initial),
            'diagnostics': asdict(self.diagnostics),
        }

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'SimulationConfig':
        """
        Create configuration from a dictionary produced by to_dict().

        The 'initial' and 'diagnostics' groups are optional and fall back to
        their defaults. Invalid values raise ConfigurationError.
        """
        return cls(
            grid=GridDescriptor(**config_dict['grid']),
            material=MaterialParameters(**config_dict['material']),
            clock=SimulationClock(**config_dict['clock']),
            initial=InitialConditionParams(**config_dict.get('initial', {})),
            diagnostics=DiagnosticParams(**config_dict.get('diagnostics', {})),
        )

    def save(self, filepath: str) -> None:
        """Save configuration to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'SimulationConfig':
        """Load configuration from a JSON file."""
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)

    @classmethod
    def spinodal_64(cls) -> 'SimulationConfig':
        """The standard 64 x 64 spinodal decomposition example."""
        return cls(
            grid=GridDescriptor(nx=64, ny=64, dx=1.0, dy=1.0),
            material=MaterialParameters(average_concentration=0.4, mobility=1.0,
                                        gradient_penalty=0.5, barrier_height=1.0),
            clock=SimulationClock(total_steps=1000, print_interval=50,
                                  time_step=0.01, current_time=0.0),
            initial=InitialConditionParams(noise=0.02),
        )

    def summary(self) -> str:
        """Return a human-readable summary of the configuration."""
        g, m, c = self.grid, self.material, self.clock
        lines = [
            "=" * 60,
            "Cahn-Hilliard Simulation Configuration",
            "=" * 60,
            "",
            "Grid:",
            f"  {g.nx} x {g.ny} points, dx = {g.dx}, dy = {g.dy}",
            f"  Domain area: {g.domain_area}",
            "",
            "Material Parameters:",
            f"  c̄ = {m.average_concentration} (average concentration)",
            f"  M = {m.mobility} (mobility)",
            f"  κ = {m.gradient_penalty} (gradient penalty)",
            f"  A = {m.barrier_height} (barrier height)",
            f"  Characteristic length: L' = {m.characteristic_length:.3f}",
            "",
            "Clock:",
            f"  Steps: {c.total_steps}, print every {c.print_interval}",
            f"  Time step: {c.time_step}",
            f"  Current time: {c.current_time}",
            "",
            "Initial Microstructure:",
            f"  noise = {self.initial.noise}, seed = {self.initial.seed}",
            "",
            "Diagnostics:",
            f"  Energy check: {self.diagnostics.check_energy} "
            f"(tolerance {self.diagnostics.energy_tolerance})",
            "=" * 60
        ]
        return "\n".join(lines)


if __name__ == "__main__":
    # Demonstrate configuration usage
    config = SimulationConfig.spinodal_64()
    print(config.summary())

    print("\nDerived grid quantities:")
    print(f"  point_count = {config.grid.point_count}")
    print(f"  domain_area = {config.grid.domain_area}")

    print("\nRejecting an invalid grid:")
    try:
        GridDescriptor(nx=0)
    except ConfigurationError as exc:
        print(f"  ConfigurationError: {exc}")
