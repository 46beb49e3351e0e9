"""
Saving and loading simulation output.

Snapshots are stored as numpy .npz archives holding the concentration array
together with the scalars needed to resume: the current time and every grid
and material parameter. The free energy trace is exported through pandas.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import List, Tuple, Union

from .config import GridDescriptor, MaterialParameters, SimulationClock
from .errors import ConfigurationError
from .numerics.field import ConcentrationField

PathLike = Union[str, Path]

_GRID_KEYS = ('nx', 'ny', 'dx', 'dy')
_MATERIAL_KEYS = ('average_concentration', 'mobility', 'gradient_penalty', 'barrier_height')


def save_snapshot(filepath: PathLike, field: ConcentrationField,
                  clock: SimulationClock) -> Path:
    """
    Write the field and its resume parameters to an .npz file.

    Args:
        filepath: Output path (numpy appends .npz if missing)
        field: ConcentrationField to save
        clock: SimulationClock providing current_time

    Returns:
        Path of the written file
    """
    filepath = Path(filepath)
    if filepath.suffix != '.npz':
        filepath = filepath.with_suffix(filepath.suffix + '.npz')

    scalars = {key: getattr(field.grid, key) for key in _GRID_KEYS}
    scalars.update({key: getattr(field.material, key) for key in _MATERIAL_KEYS})
    np.savez(filepath, value=field.value, current_time=clock.current_time, **scalars)
    return filepath


def load_snapshot(filepath: PathLike) -> Tuple[ConcentrationField, float]:
    """
    Read a snapshot written by save_snapshot.

    Returns:
        Tuple (field, current_time)
    """
    with np.load(filepath) as data:
        missing = [key for key in ('value', 'current_time') + _GRID_KEYS + _MATERIAL_KEYS
                   if key not in data.files]
        if missing:
            raise ConfigurationError(f"Snapshot {filepath} is missing {missing}")

        grid = GridDescriptor(nx=int(data['nx']), ny=int(data['ny']),
                              dx=float(data['dx']), dy=float(data['dy']))
        material = MaterialParameters(**{key: float(data[key]) for key in _MATERIAL_KEYS})
        field = ConcentrationField(grid, material, data['value'])
        current_time = float(data['current_time'])

    return field, current_time


def energy_trace_frame(trace: List) -> pd.DataFrame:
    """
    Convert a list of EnergyRecord into a DataFrame.

    Columns: step, time, energy (one row per diagnostic checkpoint)
    """
    return pd.DataFrame(
        {
            'step': [record.step for record in trace],
            'time': [record.time for record in trace],
            'energy': [record.energy for record in trace],
        },
        columns=['step', 'time', 'energy'],
    )


def save_energy_trace(filepath: PathLike, trace: List) -> pd.DataFrame:
    """Write the energy trace to CSV and return the DataFrame."""
    df = energy_trace_frame(trace)
    df.to_csv(filepath, index=False)
    return df
