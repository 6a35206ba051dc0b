"""
HDF5 persistence for island gyrokinetic runs.

Layout of an output file:

    /grid        attrs: Nx, Nky, Nz, Nv, Nm, Ns, Lx, Ly, Lz, Lv, Lm
    /state       datasets f_real, f_imag (gzip); attrs time, step
    /metadata    attrs: version, timestamp, user metadata
    /Islands     attrs: MagIs, dMagIs_dx (owned radial range), Width,
                 Omega, Mode, Scale
    /Plasma      attrs: Debye2, beta, B0; dataset Species (table)
    /timeseries  datasets from EnergyHistory.to_dict()

Complex arrays are split into real and imaginary parts.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import warnings

import h5py
import jax.numpy as jnp
import numpy as np

from gkisland.diagnostics import EnergyHistory
from gkisland.grid import PhaseSpaceGrid
from gkisland.island import IslandProfile
from gkisland.plasma import Plasma
from gkisland.timestepping import SimulationState

IO_FORMAT_VERSION = "1.0.0"
COMPRESSION = "gzip"
COMPRESSION_LEVEL = 4

_GRID_ATTRS = ("Nx", "Nky", "Nz", "Nv", "Nm", "Ns", "Lx", "Ly", "Lz", "Lv", "Lm")


def _prepare_path(filename: str, overwrite: bool) -> Path:
    path = Path(filename)
    if path.exists() and not overwrite:
        raise FileExistsError(f"File {path} already exists (use overwrite=True)")
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _write_metadata(group: h5py.Group, metadata: Optional[Dict[str, Any]]) -> None:
    group.attrs["version"] = IO_FORMAT_VERSION
    group.attrs["timestamp"] = datetime.now().isoformat()
    for key, value in (metadata or {}).items():
        if isinstance(value, (int, float, str, bool, np.number)):
            group.attrs[key] = value
        else:
            group.attrs[key] = str(value)


def _read_metadata(attrs: h5py.AttributeManager) -> Dict[str, Any]:
    metadata = {}
    for key, value in attrs.items():
        metadata[key] = value.decode() if isinstance(value, bytes) else value
    version = metadata.get("version")
    if version != IO_FORMAT_VERSION:
        warnings.warn(
            f"File format version {version} differs from current version {IO_FORMAT_VERSION}",
            UserWarning,
        )
    return metadata


def _write_grid(group: h5py.Group, grid: PhaseSpaceGrid) -> None:
    for name in _GRID_ATTRS:
        group.attrs[name] = getattr(grid, name)


def _read_grid(group: h5py.Group) -> PhaseSpaceGrid:
    params = {name: group.attrs[name] for name in _GRID_ATTRS}
    ints = {k: int(v) for k, v in params.items() if k.startswith("N")}
    floats = {k: float(v) for k, v in params.items() if k.startswith("L")}
    return PhaseSpaceGrid.create(**ints, **floats)


# =============================================================================
# Checkpoints
# =============================================================================


def save_checkpoint(
    state: SimulationState,
    filename: str,
    metadata: Optional[Dict[str, Any]] = None,
    overwrite: bool = True,
) -> None:
    """
    Save the distribution and time to an HDF5 checkpoint.

    Args:
        state: Simulation state
        filename: Output path (parent directories are created)
        metadata: Optional user metadata (non-scalars are stored as strings)
        overwrite: Replace an existing file

    Raises:
        FileExistsError: If the file exists and overwrite is False
    """
    path = _prepare_path(filename, overwrite)
    f = np.asarray(state.f)

    with h5py.File(path, "w") as h5:
        _write_grid(h5.create_group("grid"), state.grid)

        group = h5.create_group("state")
        group.attrs["time"] = state.time
        group.attrs["step"] = state.step
        for part, data in (("f_real", f.real), ("f_imag", f.imag)):
            group.create_dataset(
                part, data=data, compression=COMPRESSION, compression_opts=COMPRESSION_LEVEL
            )

        _write_metadata(h5.create_group("metadata"), metadata)


def load_checkpoint(
    filename: str, validate_grid: bool = True
) -> Tuple[SimulationState, PhaseSpaceGrid, Dict[str, Any]]:
    """
    Load a checkpoint written by save_checkpoint.

    Args:
        filename: Checkpoint path
        validate_grid: Check the stored distribution shape against the grid

    Returns:
        (state, grid, metadata)

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If validate_grid and the shape does not match the grid
    """
    path = Path(filename)
    if not path.exists():
        raise FileNotFoundError(f"Checkpoint {path} not found")

    with h5py.File(path, "r") as h5:
        grid = _read_grid(h5["grid"])
        group = h5["state"]
        f_real = group["f_real"][()]
        f_imag = group["f_imag"][()]
        time = float(group.attrs["time"])
        step = int(group.attrs["step"])
        metadata = _read_metadata(h5["metadata"].attrs)

    if validate_grid and (f_real.shape != grid.shape or f_imag.shape != grid.shape):
        raise ValueError(
            f"Checkpoint f shape {f_real.shape} does not match grid shape {grid.shape}"
        )

    f = jnp.asarray(f_real + 1j * f_imag)
    return SimulationState(f=f, time=time, step=step, grid=grid), grid, metadata


# =============================================================================
# Island and plasma descriptions
# =============================================================================


def save_island_profile(profile: IslandProfile, grid: PhaseSpaceGrid, filename: str) -> None:
    """Append the /Islands group (replacing an existing one)."""
    domain = grid.x_domain
    with h5py.File(filename, "a") as h5:
        if "Islands" in h5:
            del h5["Islands"]
        group = h5.create_group("Islands")
        group.attrs["MagIs"] = np.asarray(profile.mag_is)[domain]
        group.attrs["dMagIs_dx"] = np.asarray(profile.dmag_is_dx)[domain]
        group.attrs["Width"] = profile.width
        group.attrs["Omega"] = profile.omega
        group.attrs["Mode"] = profile.mode
        group.attrs["Scale"] = profile.scale


SPECIES_DTYPE = np.dtype([
    ("name", "S64"),
    ("q", "f8"),
    ("m", "f8"),
    ("n0", "f8"),
    ("T0", "f8"),
    ("w_n", "f8"),
    ("w_T", "f8"),
    ("gyro_model", "S8"),
])


def save_plasma(plasma: Plasma, filename: str) -> None:
    """Append the /Plasma group with global parameters and the species table."""
    table = np.array(
        [
            (s.name.encode(), s.q, s.m, s.n0, s.T0, s.w_n, s.w_T, s.gyro_model.encode())
            for s in plasma.species
        ],
        dtype=SPECIES_DTYPE,
    )
    with h5py.File(filename, "a") as h5:
        if "Plasma" in h5:
            del h5["Plasma"]
        group = h5.create_group("Plasma")
        group.attrs["Debye2"] = plasma.debye2
        group.attrs["beta"] = plasma.beta
        group.attrs["B0"] = plasma.B0
        group.create_dataset("Species", data=table)


# =============================================================================
# Time series
# =============================================================================


def save_timeseries(
    history: EnergyHistory,
    filename: str,
    metadata: Optional[Dict[str, Any]] = None,
    overwrite: bool = True,
) -> None:
    """Save an EnergyHistory to its own HDF5 file."""
    path = _prepare_path(filename, overwrite)
    data = history.to_dict()
    with h5py.File(path, "w") as h5:
        group = h5.create_group("timeseries")
        for key, values in data.items():
            group.create_dataset(
                key, data=np.asarray(values, dtype=np.float64),
                compression=COMPRESSION, compression_opts=COMPRESSION_LEVEL,
            )
        _write_metadata(h5, metadata)
        h5.attrs["n_timesteps"] = len(history.times)
        if history.times:
            h5.attrs["t_start"] = history.times[0]
            h5.attrs["t_end"] = history.times[-1]


def load_timeseries(filename: str) -> Tuple[EnergyHistory, Dict[str, Any]]:
    """Load an EnergyHistory written by save_timeseries."""
    path = Path(filename)
    if not path.exists():
        raise FileNotFoundError(f"Timeseries {path} not found")

    with h5py.File(path, "r") as h5:
        group = h5["timeseries"]
        history = EnergyHistory(**{key: [float(v) for v in group[key][()]] for key in group.keys()})
        metadata = _read_metadata(h5.attrs)
    return history, metadata
