"""
Solver module for the Cahn-Hilliard equation on a periodic grid.

This module implements explicit (forward) Euler time stepping of

    ∂c/∂t = ∇²(M δF/δc)
    δF/δc = A μ(c) - κ∇²c

with constant scalar mobility M. Each step:
    1. Advance the clock by Δt
    2. Assemble δF/δc (bulk term plus gradient term via ∇²c)
    3. Take the Laplacian of δF/δc in a second, separate pass
    4. Update c in place: c += Δt · M · ∇²(δF/δc)
    5. Optionally recompute the total free energy and warn on large drift

The explicit scheme is only conditionally stable. The bi-Laplacian term
together with the bulk curvature f'' = 2A of the separated phases requires
Δt < h² / (8 M (A h + 4κ)), h = dx·dy. Larger steps are accepted
with a warning, and a blow-up to NaN/Inf is caught after the step in
which it happens.
"""

import numpy as np
from typing import Optional, Callable, List
from dataclasses import dataclass
from enum import Enum
import time
import warnings

from ..config import SimulationClock, DiagnosticParams
from ..errors import NumericalInstabilityError, EnergyDriftWarning
from ..numerics.field import ConcentrationField
from ..numerics.grid import PeriodicOperators
from ..physics.free_energy import (VariationalDerivative, laplacian_of_derivative,
                                   total_free_energy)


class SolverState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class EnergyRecord:
    """Total free energy at one diagnostic checkpoint."""
    step: int
    time: float
    energy: float


def stability_limit(grid, material) -> float:
    """
    Largest stable explicit Euler time step for the linearised dynamics.

    With h = dx·dy, the 5-point Laplacian has eigenvalues down to -8/h.
    Linearising about a separated phase (c near 0 or 1, where f''(c) = 2A),
    the right-hand side M ∇²(A f''(c) c - κ∇²c) has its largest rate

        λ = M (8/h) (2A + 8κ/h) = 16 M (A h + 4κ) / h²

    and forward Euler needs Δt · λ < 2, i.e.

        Δt < h² / (8 M (A h + 4κ))

    This gives 1/24 for dx = dy = 1, M = 1, κ = 0.5, A = 1.
    """
    h = grid.cell_area
    return h**2 / (8.0 * material.mobility *
                   (material.barrier_height * h + 4.0 * material.gradient_penalty))


class ExplicitEulerSolver:
    """
    Time evolution driver for a ConcentrationField.

    The solver owns no field data of its own apart from the ∇²(δF/δc)
    buffer. run() may be called repeatedly: every call restarts the step
    counter but continues from the current field and clock time.

    Example usage:
        field = generate_microstructure(grid, material, noise=0.02, rng=42)
        clock = SimulationClock(total_steps=1000, print_interval=50, time_step=0.01)
        solver = ExplicitEulerSolver(field, clock)
        solver.run()
        solver.run(total_steps=8000)   # run for longer
    """

    def __init__(self, field: ConcentrationField, clock: SimulationClock,
                 diagnostics: Optional[DiagnosticParams] = None):
        """
        Args:
            field: ConcentrationField to evolve in place
            clock: SimulationClock advanced by the solver
            diagnostics: Energy check, instability and output settings
        """
        self.field = field
        self.clock = clock
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticParams()

        self.operators = PeriodicOperators(field.grid)
        self.derivative = VariationalDerivative(field, self.operators)
        self._lap_dFdc = np.zeros(field.shape, dtype=np.float64)

        self.state = SolverState.IDLE
        self.steps_taken = 0
        self.energy_trace: List[EnergyRecord] = []
        self._last_energy = None

        self.dt_stability_limit = stability_limit(field.grid, field.material)
        if clock.time_step > self.dt_stability_limit:
            warnings.warn(
                f"time_step={clock.time_step} exceeds the explicit stability limit "
                f"{self.dt_stability_limit:.3e}; the field may blow up",
                RuntimeWarning, stacklevel=2)

    def free_energy(self) -> float:
        """Total free energy of the current field."""
        return total_free_energy(self.field, self.operators)

    def step(self) -> np.ndarray:
        """
        Advance the field by one explicit Euler step.

        Returns:
            The field's concentration array (updated in place)
        """
        dt = self.clock.time_step
        mobility = self.field.material.mobility

        self.clock.current_time += dt

        dFdc = self.derivative.compute()
        laplacian_of_derivative(self.field.grid, dFdc, out=self._lap_dFdc,
                                operators=self.operators)
        self.field.value += dt * mobility * self._lap_dFdc

        self.steps_taken += 1
        return self.field.value

    def _check_finite(self, istep: int):
        """Raise NumericalInstabilityError if the field holds NaN or Inf."""
        if self.diagnostics.halt_on_nonfinite and not np.all(np.isfinite(self.field.value)):
            self.state = SolverState.FAILED
            raise NumericalInstabilityError(
                f"Non-finite concentration at step {istep} (t={self.clock.current_time:.4f}); "
                f"time_step={self.clock.time_step} vs stability limit "
                f"{self.dt_stability_limit:.3e}")

    def _check_energy(self, istep: int):
        """Recompute F, warn on drift beyond the tolerance, and record it."""
        energy = self.free_energy()
        if self._last_energy is not None:
            delta = energy - self._last_energy
            if abs(delta) > self.diagnostics.energy_tolerance:
                warnings.warn(f"Change in total energy is {delta:.6e} at step {istep}",
                              EnergyDriftWarning, stacklevel=3)
        self._last_energy = energy
        self.energy_trace.append(EnergyRecord(self.steps_taken, self.clock.current_time, energy))
        return energy

    def _report(self, istep: int, energy: Optional[float]):
        """Print one progress line: step, time and (if tracked) energy."""
        if energy is None:
            print(f"{istep:5d} {self.clock.current_time:14.6e}")
        else:
            print(f"{istep:5d} {self.clock.current_time:14.6e} {energy:14.6e}")

    def run(self, total_steps: Optional[int] = None,
            callback: Optional[Callable] = None) -> ConcentrationField:
        """
        Evolve the field for total_steps explicit Euler steps.

        Args:
            total_steps: Number of steps. Defaults to clock.total_steps.
            callback: Optional function called every print_interval steps.
                      Signature: callback(solver, istep) -> bool
                      Return False to stop after the current step.

        Returns:
            The evolved ConcentrationField
        """
        if total_steps is None:
            total_steps = self.clock.total_steps
        if total_steps < 0:
            raise ValueError(f"total_steps must be non-negative, got {total_steps}")

        check_energy = self.diagnostics.check_energy
        verbose = self.diagnostics.verbose
        print_interval = self.clock.print_interval

        if check_energy and self._last_energy is None:
            self._last_energy = self.free_energy()
            self.energy_trace.append(
                EnergyRecord(self.steps_taken, self.clock.current_time, self._last_energy))

        if verbose and total_steps > 0:
            print(f"Running simulation: {total_steps} steps, dt={self.clock.time_step}, "
                  f"t0={self.clock.current_time}")
        start_time = time.time()

        self.state = SolverState.RUNNING
        try:
            for istep in range(1, total_steps + 1):
                self.step()
                self._check_finite(istep)

                energy = self._check_energy(istep) if check_energy else None

                if istep % print_interval == 0 or istep == 1:
                    if verbose:
                        self._report(istep, energy)
                    if callback is not None and istep % print_interval == 0:
                        if not callback(self, istep):
                            if verbose:
                                print("Simulation stopped by callback")
                            break
        except BaseException:
            # any exception out of the loop, including KeyboardInterrupt, ends the run as FAILED
            self.state = SolverState.FAILED
            raise

        self.state = SolverState.IDLE
        if verbose and total_steps > 0:
            print(f"Simulation complete in {time.time() - start_time:.1f}s")

        return self.field


if __name__ == "__main__":
    # Short spinodal decomposition run with energy tracking
    from ..config import SimulationConfig
    from ..numerics.field import generate_microstructure

    config = SimulationConfig.spinodal_64()
    config.clock.total_steps = 500
    config.diagnostics.check_energy = True
    config.diagnostics.energy_tolerance = 1.0
    print(config.summary())

    field = generate_microstructure(config.grid, config.material,
                                    config.initial.noise, rng=1)
    solver = ExplicitEulerSolver(field, config.clock, config.diagnostics)
    print(f"\nStability limit: dt < {solver.dt_stability_limit:.4f}")

    mean_before = field.mean()
    solver.run()
    print(f"\nMean concentration drift: {abs(field.mean() - mean_before):.2e}")
    print(f"Free energy: {solver.energy_trace[0].energy:.4f} -> "
          f"{solver.energy_trace[-1].energy:.4f}")
    print(f"Concentration range: [{field.value.min():.3f}, {field.value.max():.3f}]")
