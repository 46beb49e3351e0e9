"""
Physics module for the double-well Cahn-Hilliard model.

The free energy functional is:
    F[c] = ∫ [ f(c) + (κ/2)|∇c|² ] dv

with the bounded double-well bulk density
    f(c) = A c² (1 - c)²

which has minima at c = 0 and c = 1. The variational derivative
    δF/δc = A μ(c) - κ∇²c,   μ(c) = 2c(1 - c)² - 2c²(1 - c)

is the chemical potential that drives the dynamics
    ∂c/∂t = ∇²(M δF/δc)
"""

import numpy as np
from typing import Tuple, Optional

from ..config import GridDescriptor
from ..numerics.field import ConcentrationField
from ..numerics.grid import PeriodicOperators


def chemical_potential(c: np.ndarray) -> np.ndarray:
    """
    Unscaled bulk chemical potential μ(c) = 2c(1 - c)² - 2c²(1 - c).

    This is df/dc for f(c) = c²(1 - c)²; multiply by A for the barrier.
    """
    return 2.0 * c * (1.0 - c)**2 - 2.0 * c**2 * (1.0 - c)


class DoubleWellFreeEnergy:
    """
    Bulk thermodynamics of the double-well potential f(c) = A c²(1 - c)².
    """

    def __init__(self, barrier_height: float, gradient_penalty: float):
        """
        Args:
            barrier_height: Barrier height A (positive)
            gradient_penalty: Gradient energy coefficient κ (positive)
        """
        self.barrier_height = barrier_height
        self.gradient_penalty = gradient_penalty

    @classmethod
    def from_material(cls, material) -> 'DoubleWellFreeEnergy':
        """Build from the barrier height and gradient penalty of MaterialParameters."""
        return cls(material.barrier_height, material.gradient_penalty)

    def bulk_free_energy(self, c: np.ndarray) -> np.ndarray:
        """Bulk free energy density f(c) = A c²(1 - c)²."""
        return self.barrier_height * c**2 * (1.0 - c)**2

    def bulk_derivative(self, c: np.ndarray) -> np.ndarray:
        """df/dc = A μ(c)."""
        return self.barrier_height * chemical_potential(c)

    def bulk_second_derivative(self, c: np.ndarray) -> np.ndarray:
        """
        d²f/dc² = A (2 - 12c + 12c²).

        Negative inside the spinodal region, where a uniform mixture is
        unstable to small perturbations.
        """
        return self.barrier_height * (2.0 - 12.0 * c + 12.0 * c**2)

    def binodal_concentrations(self) -> Tuple[float, float]:
        """Equilibrium phase concentrations (the two minima of f)."""
        return (0.0, 1.0)

    def spinodal_concentrations(self) -> Tuple[float, float]:
        """Concentrations where d²f/dc² = 0: c = 1/2 ∓ √3/6."""
        delta = np.sqrt(3.0) / 6.0
        return (0.5 - delta, 0.5 + delta)


def total_free_energy(field: ConcentrationField,
                      operators: Optional[PeriodicOperators] = None) -> float:
    """
    Discrete total free energy of a concentration field.

        F = Σ_ij [ c_ij²(1 - c_ij)² + (κ/2)((c_{i+1,j} - c_ij)² + (c_{i,j+1} - c_ij)²) ]

    Forward differences wrap periodically. The sum is not weighted by the
    cell area and the bulk term is not scaled by A, so F is a
    diagnostic in grid units rather than a physical energy.

    Args:
        field: ConcentrationField to evaluate
        operators: Optional precomputed PeriodicOperators for field.grid

    Returns:
        Total free energy (scalar)
    """
    if operators is None:
        operators = PeriodicOperators(field.grid)
    c = field.value
    kappa = field.material.gradient_penalty

    f_bulk = c**2 * (1.0 - c)**2
    diff_i, diff_j = operators.forward_differences(c)
    f_gradient = 0.5 * kappa * (diff_i**2 + diff_j**2)

    return float(np.sum(f_bulk + f_gradient))


class VariationalDerivative:
    """
    Computes δF/δc over the grid for a ConcentrationField.

    Each call to compute() fills the field's laplacian_buffer with ∇²c and
    its gradient_buffer with
        δF/δc = A μ(c) - κ ∇²c
    and returns the gradient_buffer.
    """

    def __init__(self, field: ConcentrationField,
                 operators: Optional[PeriodicOperators] = None):
        self.field = field
        self.operators = operators if operators is not None else PeriodicOperators(field.grid)
        self.free_energy = DoubleWellFreeEnergy.from_material(field.material)

    def compute(self) -> np.ndarray:
        """
        Assemble δF/δc in field.gradient_buffer.

        Returns:
            field.gradient_buffer (reused across calls; copy to keep it)
        """
        field = self.field
        c = field.value

        self.operators.laplacian(c, out=field.laplacian_buffer)

        np.multiply(-self.free_energy.gradient_penalty, field.laplacian_buffer,
                    out=field.gradient_buffer)
        field.gradient_buffer += self.free_energy.bulk_derivative(c)
        return field.gradient_buffer


def laplacian_of_derivative(grid: GridDescriptor, dFdc: np.ndarray,
                            out: Optional[np.ndarray] = None,
                            operators: Optional[PeriodicOperators] = None) -> np.ndarray:
    """
    Apply the periodic 5-point Laplacian to a fully assembled δF/δc.

    This is a separate pass from VariationalDerivative.compute(), since every
    point needs the final δF/δc values of its four neighbours.

    Args:
        grid: GridDescriptor of dFdc
        dFdc: Variational derivative, shape (nx, ny)
        out: Optional output array
        operators: Optional precomputed PeriodicOperators for grid

    Returns:
        ∇²(δF/δc)
    """
    if operators is None:
        operators = PeriodicOperators(grid)
    return operators.laplacian(dFdc, out=out)


if __name__ == "__main__":
    # Test the physics module
    from ..config import GridDescriptor, MaterialParameters
    from ..numerics.field import generate_microstructure

    print("Testing DoubleWellFreeEnergy...")
    fe = DoubleWellFreeEnergy(barrier_height=1.0, gradient_penalty=0.5)
    print(f"Binodal concentrations: {fe.binodal_concentrations()}")
    print(f"Spinodal concentrations: {fe.spinodal_concentrations()}")
    print(f"f''(0.4) = {fe.bulk_second_derivative(np.array(0.4)):.3f} (negative: unstable)")

    print("\nTesting total_free_energy and VariationalDerivative...")
    grid = GridDescriptor(nx=16, ny=16)
    field = generate_microstructure(grid, MaterialParameters(), noise=0.02, rng=0)
    print(f"Total free energy: {total_free_energy(field):.6f}")
    dFdc = VariationalDerivative(field).compute()
    print(f"δF/δc range: [{dFdc.min():.4f}, {dFdc.max():.4f}]")
    lap = laplacian_of_derivative(grid, dFdc)
    print(f"Σ ∇²(δF/δc) = {lap.sum():.2e} (expected: ~0, mass conservation)")
