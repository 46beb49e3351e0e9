#!/usr/bin/env python
"""
Run a spinodal decomposition simulation and visualize the result.

This script demonstrates the basic usage of the cahnhilliard package:
generate a noisy microstructure, evolve it with the explicit Euler solver,
and save the final concentration field and free energy trace.

Usage:
    python run_simulation.py
    python run_simulation.py --steps 10000 --seed 1 --check-energy
    python run_simulation.py --config run.json --no_plot
"""

import argparse
import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path

from cahnhilliard.config import GridDescriptor, SimulationClock, SimulationConfig
from cahnhilliard.numerics.field import generate_microstructure
from cahnhilliard.solvers.explicit_solver import ExplicitEulerSolver
from cahnhilliard.io import save_snapshot, save_energy_trace


def parse_args():
    parser = argparse.ArgumentParser(description='Run Cahn-Hilliard spinodal decomposition')
    parser.add_argument('--config', type=str, default=None,
                        help='JSON configuration file (overrides the defaults)')
    parser.add_argument('--nx', type=int, default=None, help='Grid points along x')
    parser.add_argument('--ny', type=int, default=None, help='Grid points along y')
    parser.add_argument('--steps', type=int, default=None, help='Number of time steps')
    parser.add_argument('--dt', type=float, default=None, help='Time step')
    parser.add_argument('--noise', type=float, default=None,
                        help='Initial noise amplitude around the average concentration')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--check-energy', action='store_true',
                        help='Track the free energy and warn on drift')
    parser.add_argument('--output', type=str, default='results',
                        help='Output directory for results')
    parser.add_argument('--no_plot', action='store_true',
                        help='Skip plotting (useful for batch runs)')
    return parser.parse_args()


def build_config(args) -> SimulationConfig:
    if args.config:
        config = SimulationConfig.load(args.config)
    else:
        config = SimulationConfig.spinodal_64()

    if args.nx is not None or args.ny is not None:
        config.grid = GridDescriptor(
            nx=args.nx if args.nx is not None else config.grid.nx,
            ny=args.ny if args.ny is not None else config.grid.ny,
            dx=config.grid.dx, dy=config.grid.dy)
    if args.steps is not None or args.dt is not None:
        config.clock = SimulationClock(
            total_steps=args.steps if args.steps is not None else config.clock.total_steps,
            print_interval=config.clock.print_interval,
            time_step=args.dt if args.dt is not None else config.clock.time_step,
            current_time=config.clock.current_time)
    if args.noise is not None:
        config.initial.noise = args.noise
    if args.seed is not None:
        config.initial.seed = args.seed
    if args.check_energy:
        config.diagnostics.check_energy = True
    return config


def main():
    args = parse_args()
    config = build_config(args)
    print(config.summary())

    print("\nGenerating initial microstructure...")
    field = generate_microstructure(config.grid, config.material,
                                    config.initial.noise, rng=config.initial.seed)
    initial = field.snapshot()

    solver = ExplicitEulerSolver(field, config.clock, config.diagnostics)
    print("\nRunning simulation...")
    solver.run()

    print(f"\nMean concentration: {np.mean(initial):.6f} -> {field.mean():.6f}")
    print(f"Free energy: {solver.free_energy():.6e}")

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    config.save(output_dir / 'config.json')
    snapshot_path = save_snapshot(output_dir / 'snapshot.npz', field, config.clock)
    print(f"\nSnapshot saved to {snapshot_path}")
    if solver.energy_trace:
        save_energy_trace(output_dir / 'energy.csv', solver.energy_trace)
        print(f"Energy trace saved to {output_dir / 'energy.csv'}")

    if not args.no_plot:
        n_panels = 3 if solver.energy_trace else 2
        fig, axes = plt.subplots(1, n_panels, figsize=(5 * n_panels, 4.5))

        ax = axes[0]
        im = ax.imshow(initial.T, origin='lower', cmap='viridis')
        ax.set_title('Initial concentration')
        fig.colorbar(im, ax=ax)

        ax = axes[1]
        im = ax.imshow(field.value.T, origin='lower', cmap='viridis')
        ax.set_title(f't = {config.clock.current_time:.2f}')
        fig.colorbar(im, ax=ax)

        if solver.energy_trace:
            ax = axes[2]
            ax.plot([r.time for r in solver.energy_trace],
                    [r.energy for r in solver.energy_trace], 'b-')
            ax.set_xlabel('Time')
            ax.set_ylabel('Free energy')
            ax.set_title('Energy evolution')

        plt.tight_layout()
        plt.savefig(output_dir / 'simulation_results.png', dpi=150)
        print(f"Plot saved to {output_dir / 'simulation_results.png'}")
        plt.show()


if __name__ == '__main__':
    main()
