"""
Tests for HDF5 I/O functionality.

This module tests checkpoint and timeseries save/load operations, including:
- Roundtrip accuracy (save then load recovers original data)
- Error handling (file conflicts, missing files, invalid data)
- Metadata preservation
- Island profile and plasma groups
"""

import tempfile
from pathlib import Path

import h5py
import jax.numpy as jnp
import numpy as np
import pytest

from gkisland.diagnostics import EnergyHistory
from gkisland.grid import PhaseSpaceGrid
from gkisland.island import IslandConfig, IslandProfile
from gkisland.io import (
    IO_FORMAT_VERSION,
    load_checkpoint,
    load_timeseries,
    save_checkpoint,
    save_island_profile,
    save_plasma,
    save_timeseries,
)
from gkisland.plasma import AdiabaticSpecies, Plasma, Species
from gkisland.timestepping import SimulationState


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def grid():
    return PhaseSpaceGrid.create(Nx=8, Nky=4, Nz=1, Nv=8, Nm=2, Lx=10.0)


@pytest.fixture
def state(grid):
    """State with a random complex distribution."""
    rng = np.random.default_rng(0)
    f = rng.standard_normal(grid.shape) + 1j * rng.standard_normal(grid.shape)
    return SimulationState(f=jnp.asarray(f), time=1.25, step=42, grid=grid)


@pytest.fixture
def tmpdir():
    """Create temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


# =============================================================================
# Checkpoints
# =============================================================================


class TestCheckpoint:
    """Test checkpoint save/load."""

    def test_checkpoint_roundtrip(self, state, tmpdir):
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        loaded, grid, metadata = load_checkpoint(str(filename))

        assert jnp.array_equal(loaded.f, state.f)
        assert loaded.time == state.time
        assert loaded.step == state.step
        assert grid.shape == state.grid.shape
        assert grid.Lx == state.grid.Lx
        assert metadata["version"] == IO_FORMAT_VERSION

    def test_checkpoint_metadata(self, state, tmpdir):
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename), metadata={"equation": "2D_Island", "dt": 0.002, "extra": [1, 2]})
        _, _, metadata = load_checkpoint(str(filename))
        assert metadata["equation"] == "2D_Island"
        assert metadata["dt"] == pytest.approx(0.002)
        assert metadata["extra"] == "[1, 2]"

    def test_checkpoint_creates_directories(self, state, tmpdir):
        filename = tmpdir / "nested" / "run" / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        assert filename.exists()

    def test_checkpoint_no_overwrite(self, state, tmpdir):
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        with pytest.raises(FileExistsError):
            save_checkpoint(state, str(filename), overwrite=False)

    def test_checkpoint_missing(self, tmpdir):
        with pytest.raises(FileNotFoundError):
            load_checkpoint(str(tmpdir / "missing.h5"))

    def test_checkpoint_shape_mismatch(self, state, tmpdir):
        """A grid attribute that disagrees with the stored array is rejected."""
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        with h5py.File(filename, "a") as h5:
            h5["grid"].attrs["Nx"] = 16
        with pytest.raises(ValueError, match="does not match"):
            load_checkpoint(str(filename))

    def test_version_warning(self, state, tmpdir):
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        with h5py.File(filename, "a") as h5:
            h5["metadata"].attrs["version"] = "0.0.1"
        with pytest.warns(UserWarning, match="version"):
            load_checkpoint(str(filename))

    def test_checkpoint_compressed(self, state, tmpdir):
        filename = tmpdir / "checkpoint.h5"
        save_checkpoint(state, str(filename))
        with h5py.File(filename, "r") as h5:
            assert h5["state/f_real"].compression == "gzip"


# =============================================================================
# Island and plasma groups
# =============================================================================


class TestDescriptions:
    """Test the /Islands and /Plasma groups."""

    def test_island_group(self, grid, state, tmpdir):
        filename = tmpdir / "run.h5"
        save_checkpoint(state, str(filename))
        profile = IslandProfile.create(grid, IslandConfig(width=2.0))
        save_island_profile(profile, grid, str(filename))

        with h5py.File(filename, "r") as h5:
            group = h5["Islands"]
            np.testing.assert_allclose(group.attrs["MagIs"], np.asarray(profile.mag_is)[grid.x_domain])
            assert group.attrs["MagIs"].shape == (grid.Nx,)
            assert group.attrs["dMagIs_dx"].shape == (grid.Nx,)
            assert group.attrs["Width"] == 2.0
            assert group.attrs["Mode"] == 1
            assert group.attrs["Scale"] == pytest.approx(profile.scale)

    def test_island_group_replaced(self, grid, tmpdir):
        filename = str(tmpdir / "run.h5")
        save_island_profile(IslandProfile.create(grid, IslandConfig(width=1.0)), grid, filename)
        save_island_profile(IslandProfile.create(grid, IslandConfig(width=2.0)), grid, filename)
        with h5py.File(filename, "r") as h5:
            assert h5["Islands"].attrs["Width"] == 2.0

    def test_plasma_group(self, tmpdir):
        plasma = Plasma(
            species=(Species(name="Ion", q=1.0, m=1.0, n0=1.0, T0=1.0, w_n=1.0, w_T=3.0),),
            adiabatic=AdiabaticSpecies(name="Electron", q=-1.0, n0=1.0),
            beta=0.01,
        )
        filename = str(tmpdir / "run.h5")
        save_plasma(plasma, filename)

        with h5py.File(filename, "r") as h5:
            group = h5["Plasma"]
            assert group.attrs["beta"] == 0.01
            table = group["Species"][()]
            assert table.shape == (1,)
            assert table["name"][0] == b"Ion"
            assert table["w_T"][0] == 3.0
            assert table["gyro_model"][0] == b"Gyro"


# =============================================================================
# Timeseries
# =============================================================================


class TestTimeseries:
    """Test timeseries save/load."""

    @pytest.fixture
    def history(self):
        history = EnergyHistory()
        for index, t in enumerate([0.0, 0.5, 1.0]):
            field0 = jnp.full((2, 1, 4, 8), 0.1 * (index + 1), dtype=jnp.complex128)
            history.append(t, field0)
        return history

    def test_timeseries_roundtrip(self, history, tmpdir):
        filename = tmpdir / "timeseries.h5"
        save_timeseries(history, str(filename), metadata={"scheme": "RK3"})
        loaded, metadata = load_timeseries(str(filename))

        assert loaded.times == history.times
        np.testing.assert_allclose(loaded.E_phi, history.E_phi)
        np.testing.assert_allclose(loaded.E_Ap, history.E_Ap)
        np.testing.assert_allclose(loaded.E_total, history.E_total)
        assert metadata["scheme"] == "RK3"
        assert metadata["n_timesteps"] == 3
        assert metadata["t_end"] == 1.0

    def test_timeseries_missing(self, tmpdir):
        with pytest.raises(FileNotFoundError):
            load_timeseries(str(tmpdir / "missing.h5"))

    def test_timeseries_no_overwrite(self, history, tmpdir):
        filename = str(tmpdir / "timeseries.h5")
        save_timeseries(history, filename)
        with pytest.raises(FileExistsError):
            save_timeseries(history, filename, overwrite=False)
