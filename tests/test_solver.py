# -*- coding: utf-8 -*-
"""
Tests for explicit Euler time evolution of the Cahn-Hilliard equation.

Covers the conservation and dissipation properties expected of the scheme:
the mean concentration is conserved to round-off, the total free energy is
non-increasing after a short transient for a stable time step, and a zero
step run leaves the state untouched. Also exercises run continuation,
early stopping, the energy drift warning and blow-up detection.
"""

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from cahnhilliard.config import (
    GridDescriptor,
    MaterialParameters,
    SimulationClock,
    DiagnosticParams,
)
from cahnhilliard.errors import EnergyDriftWarning, NumericalInstabilityError
from cahnhilliard.numerics.field import ConcentrationField, generate_microstructure
from cahnhilliard.solvers.explicit_solver import (
    ExplicitEulerSolver,
    SolverState,
    stability_limit,
)

QUIET = dict(verbose=False)


@pytest.fixture
def material():
    return MaterialParameters(average_concentration=0.4, mobility=1.0,
                              gradient_penalty=0.5, barrier_height=1.0)


@pytest.fixture
def noisy_field(material):
    grid = GridDescriptor(nx=32, ny=32, dx=1.0, dy=1.0)
    return generate_microstructure(grid, material, noise=0.02, rng=2023)


# ========= scenarios =========

def test_uniform_field_stays_uniform(material):
    grid = GridDescriptor(nx=8, ny=8, dx=1.0, dy=1.0)
    field = generate_microstructure(grid, material, noise=0.0, rng=0)
    assert np.all(field.value == 0.4)

    clock = SimulationClock(total_steps=1, print_interval=1, time_step=0.01)
    ExplicitEulerSolver(field, clock, DiagnosticParams(**QUIET)).run()

    assert np.all(field.value == 0.4)
    assert clock.current_time == pytest.approx(0.01)


def test_zero_step_run_is_idempotent(noisy_field):
    before = noisy_field.snapshot()
    clock = SimulationClock(total_steps=0, print_interval=10, time_step=0.01,
                            current_time=3.0)
    solver = ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET))
    solver.run()
    assert_array_equal(noisy_field.value, before)
    assert clock.current_time == 3.0
    assert solver.steps_taken == 0
    assert solver.state is SolverState.IDLE


def test_mean_concentration_conserved(noisy_field):
    before = noisy_field.snapshot()
    mean_before = noisy_field.mean()
    clock = SimulationClock(total_steps=300, print_interval=100, time_step=0.01)
    ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET)).run()
    assert abs(noisy_field.mean() - mean_before) < 1e-12
    # the field actually evolved
    assert np.max(np.abs(noisy_field.value - before)) > 1e-4


def test_free_energy_non_increasing_after_transient(noisy_field):
    clock = SimulationClock(total_steps=400, print_interval=100, time_step=0.01)
    diagnostics = DiagnosticParams(check_energy=True, energy_tolerance=1e6, **QUIET)
    solver = ExplicitEulerSolver(noisy_field, clock, diagnostics)
    solver.run()

    energies = np.array([record.energy for record in solver.energy_trace])
    assert len(energies) == 401
    diffs = np.diff(energies[5:])
    assert np.all(diffs <= 1e-10)
    assert energies[-1] < energies[0]


def test_time_advances_by_step_count(noisy_field):
    clock = SimulationClock(total_steps=25, print_interval=5, time_step=0.002,
                            current_time=1.0)
    ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET)).run()
    assert clock.current_time == pytest.approx(1.0 + 25 * 0.002)


def test_single_step_matches_hand_assembly(material):
    grid = GridDescriptor(nx=5, ny=4)
    field = generate_microstructure(grid, material, noise=0.1, rng=17)
    c = field.value.copy()

    def lap(f):
        return (np.roll(f, 1, 0) + np.roll(f, -1, 0) +
                np.roll(f, 1, 1) + np.roll(f, -1, 1) - 4 * f)

    mu = 2 * c * (1 - c)**2 - 2 * c**2 * (1 - c)
    expected = c + 0.01 * 1.0 * lap(mu - 0.5 * lap(c))

    clock = SimulationClock(total_steps=1, time_step=0.01)
    ExplicitEulerSolver(field, clock, DiagnosticParams(**QUIET)).step()
    assert_allclose(field.value, expected, atol=1e-14)


# ========= continuation & control =========

def test_run_continues_from_current_state(material):
    grid = GridDescriptor(nx=16, ny=16)
    a = generate_microstructure(grid, material, noise=0.05, rng=5)
    b = ConcentrationField(grid, material, a.value)

    clock_a = SimulationClock(total_steps=20, time_step=0.01)
    ExplicitEulerSolver(a, clock_a, DiagnosticParams(**QUIET)).run()

    clock_b = SimulationClock(total_steps=10, time_step=0.01)
    solver_b = ExplicitEulerSolver(b, clock_b, DiagnosticParams(**QUIET))
    solver_b.run()
    solver_b.run(total_steps=10)

    assert_array_equal(a.value, b.value)
    assert clock_b.current_time == pytest.approx(clock_a.current_time)
    assert solver_b.steps_taken == 20


def test_callback_stops_between_steps(noisy_field):
    calls = []

    def stop_early(solver, istep):
        calls.append(istep)
        return istep < 10

    clock = SimulationClock(total_steps=100, print_interval=5, time_step=0.01)
    solver = ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET))
    solver.run(callback=stop_early)

    assert calls == [5, 10]
    assert solver.steps_taken == 10
    assert clock.current_time == pytest.approx(0.1)
    assert solver.state is SolverState.IDLE


def test_interrupted_run_ends_failed(noisy_field):
    def interrupt(solver, istep):
        raise KeyboardInterrupt

    clock = SimulationClock(total_steps=100, print_interval=5, time_step=0.01)
    solver = ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET))
    with pytest.raises(KeyboardInterrupt):
        solver.run(callback=interrupt)

    assert solver.steps_taken == 5
    assert solver.state is SolverState.FAILED


def test_progress_output(noisy_field, capsys):
    clock = SimulationClock(total_steps=10, print_interval=5, time_step=0.01)
    ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(verbose=True)).run()
    out = capsys.readouterr().out
    lines = [line for line in out.splitlines() if line[:5].strip().isdigit()]
    assert [int(line[:5]) for line in lines] == [1, 5, 10]


# ========= diagnostics =========

def test_energy_drift_warning(noisy_field):
    clock = SimulationClock(total_steps=3, print_interval=1, time_step=0.01)
    diagnostics = DiagnosticParams(check_energy=True, energy_tolerance=1e-14, **QUIET)
    solver = ExplicitEulerSolver(noisy_field, clock, diagnostics)
    with pytest.warns(EnergyDriftWarning):
        solver.run()
    # drift is reported, not fatal
    assert solver.steps_taken == 3
    assert solver.state is SolverState.IDLE


def test_energy_trace_steps_are_cumulative(noisy_field):
    clock = SimulationClock(total_steps=4, print_interval=2, time_step=0.01)
    diagnostics = DiagnosticParams(check_energy=True, energy_tolerance=1e6, **QUIET)
    solver = ExplicitEulerSolver(noisy_field, clock, diagnostics)
    solver.run()
    solver.run(total_steps=2)
    assert [record.step for record in solver.energy_trace] == [0, 1, 2, 3, 4, 5, 6]
    assert solver.energy_trace[-1].time == pytest.approx(0.06)


def test_stability_limit_value(material):
    grid = GridDescriptor(nx=8, ny=8, dx=1.0, dy=1.0)
    assert stability_limit(grid, material) == pytest.approx(1.0 / 24.0)


def test_large_time_step_warns(noisy_field):
    clock = SimulationClock(total_steps=1, time_step=1.0)
    with pytest.warns(RuntimeWarning, match="stability limit"):
        ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET))


def test_step_between_bi_laplacian_and_full_limit_warns(noisy_field):
    # 1/32 < 0.05 < 1/24 would pass a bound that ignores the bulk curvature
    clock = SimulationClock(total_steps=1, time_step=0.05)
    with pytest.warns(RuntimeWarning, match="stability limit"):
        ExplicitEulerSolver(noisy_field, clock, DiagnosticParams(**QUIET))


def test_step_under_limit_stays_finite_through_phase_separation(material):
    grid = GridDescriptor(nx=64, ny=64, dx=1.0, dy=1.0)
    field = generate_microstructure(grid, material, noise=0.02, rng=1)
    dt = 0.8 * stability_limit(grid, material)
    clock = SimulationClock(total_steps=2000, print_interval=100, time_step=dt)
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        solver = ExplicitEulerSolver(field, clock, DiagnosticParams(**QUIET))
    solver.run()
    assert solver.state is SolverState.IDLE
    assert np.all(np.isfinite(field.value))
    # separated into c ~ 0 and c ~ 1 regions
    assert np.ptp(field.value) > 0.5


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_blow_up_is_detected(material):
    grid = GridDescriptor(nx=8, ny=8)
    field = generate_microstructure(grid, material, noise=0.1, rng=1)
    clock = SimulationClock(total_steps=5000, print_interval=100, time_step=10.0)
    solver = ExplicitEulerSolver(field, clock, DiagnosticParams(**QUIET))
    with pytest.raises(NumericalInstabilityError):
        solver.run()
    assert solver.state is SolverState.FAILED
    assert solver.steps_taken < 5000


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_blow_up_check_can_be_disabled(material):
    grid = GridDescriptor(nx=8, ny=8)
    field = generate_microstructure(grid, material, noise=0.1, rng=1)
    clock = SimulationClock(total_steps=500, print_interval=100, time_step=10.0)
    diagnostics = DiagnosticParams(halt_on_nonfinite=False, **QUIET)
    solver = ExplicitEulerSolver(field, clock, diagnostics)
    solver.run()
    assert solver.steps_taken == 500
    assert not np.all(np.isfinite(field.value))
