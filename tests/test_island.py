"""
Tests for the island calibration and the mode-triad coupling.

Tests cover:
- Width round trip through the calibrated amplitude
- Zero-width and unreachable-width edge cases
- Tabulated profile and ky filter
- Coupling of a single mode to its neighbours, reality of the k=0 result
"""

import numpy as np
import jax.numpy as jnp
import pytest

from gkisland.errors import IslandConfigurationError
from gkisland.grid import PhaseSpaceGrid
from gkisland.island import (
    SCALE_BRACKET,
    IslandConfig,
    IslandProfile,
    calibrate_scale,
    island_coupling,
    island_psi0,
    island_shape,
    island_shape_derivative,
    island_width,
)


@pytest.fixture
def grid():
    return PhaseSpaceGrid.create(Nx=16, Nky=6, Nv=8, Lx=10.0)


class TestIslandShape:
    """Test the analytic radial shape."""

    def test_value_at_origin(self):
        assert island_shape(0.0) == pytest.approx(1.0)

    def test_symmetric(self):
        x = np.linspace(0.1, 5.0, 7)
        np.testing.assert_allclose(island_shape(x), island_shape(-x))

    def test_derivative(self):
        """Numerical derivative matches a coarse central difference."""
        x = np.array([0.5, 1.5, 3.0])
        h = 1e-4
        reference = (island_shape(x + h) - island_shape(x - h)) / (2 * h)
        np.testing.assert_allclose(island_shape_derivative(x), reference, rtol=1e-5)


class TestCalibration:
    """Test the width ↔ scale calibration."""

    def test_zero_scale(self):
        assert island_width(0.0, 2 * np.pi) == 0.0

    def test_width_grows_with_scale(self):
        widths = [island_width(w, 2 * np.pi) for w in (0.5, 1.0, 2.0)]
        assert widths[0] < widths[1] < widths[2]

    @pytest.mark.parametrize("width", [0.5, 2.0, 4.0])
    def test_round_trip(self, width):
        """width(calibrate_scale(width)) reproduces the target."""
        scale = calibrate_scale(width, 2 * np.pi)
        assert SCALE_BRACKET[0] < scale < SCALE_BRACKET[1]
        assert island_width(scale, 2 * np.pi) == pytest.approx(width, rel=1e-5)

    def test_zero_width(self):
        """Zero width gives zero scale without bisection."""
        assert calibrate_scale(0.0, 2 * np.pi) == 0.0

    def test_unreachable_width(self):
        """Widths beyond the scale bracket are a configuration error."""
        too_wide = 2.0 * island_width(SCALE_BRACKET[1], 2 * np.pi)
        with pytest.raises(IslandConfigurationError, match="not reachable"):
            calibrate_scale(too_wide, 2 * np.pi)

    def test_negative_width(self):
        with pytest.raises(IslandConfigurationError):
            calibrate_scale(-1.0, 2 * np.pi)


class TestIslandProfile:
    """Test the tabulated profile."""

    def test_profile_tables(self, grid):
        profile = IslandProfile.create(grid, IslandConfig(width=2.0))
        assert profile.mag_is.shape == (20,)
        assert profile.dmag_is_dx.shape == (20,)
        assert profile.ky_filter.shape == (6,)
        X = np.asarray(grid.X)
        np.testing.assert_allclose(profile.mag_is, 0.5 * profile.scale * island_shape(X))
        assert profile.enabled

    def test_disabled_island(self, grid):
        profile = IslandProfile.create(grid, IslandConfig(width=0.0))
        assert not profile.enabled
        assert jnp.all(profile.mag_is == 0.0)

    def test_ky_filter(self, grid):
        """Default sigmoid is 0.5 + 0.5·tanh(10 (ky - 1.2))."""
        profile = IslandProfile.create(grid, IslandConfig(width=1.0))
        ky = np.asarray(grid.ky_table)
        np.testing.assert_allclose(profile.ky_filter, 0.5 + 0.5 * np.tanh(10 * (ky - 1.2)))
        assert float(profile.ky_filter[0]) < 1e-6
        assert float(profile.ky_filter[-1]) == pytest.approx(1.0)

    def test_psi0(self, grid):
        profile = IslandProfile.create(grid, IslandConfig(width=2.0, mode=2))
        psi0 = island_psi0(profile, grid)
        assert psi0.shape == (6, 20)
        assert jnp.allclose(psi0[2], -profile.mag_is)
        assert jnp.all(psi0[jnp.arange(6) != 2] == 0.0)


class TestIslandCoupling:
    """Test the k ↔ k ± i coupling."""

    def test_single_mode_radially_constant(self, grid):
        """A radially constant mode 1 couples to modes 0 and 2 via ∂x MagIs only."""
        profile = IslandProfile.create(grid, IslandConfig(width=2.0, mode=1))
        a1 = 0.3 + 0.7j
        a = jnp.zeros((grid.Nky, grid.Nx + 4), dtype=jnp.complex128).at[1].set(a1)

        coupling = island_coupling(a, profile, grid, ky_axis=0, x_axis=1)
        dmag = np.asarray(profile.dmag_is_dx)[grid.x_domain]

        assert coupling.shape == (grid.Nky, grid.Nx)
        # k=0: i ky(-1) conj(a1) + i ky(1) a1 = -2 Im(a1)
        np.testing.assert_allclose(coupling[0], -2.0 * a1.imag * dmag, atol=1e-12)
        np.testing.assert_allclose(coupling[1], 0.0, atol=1e-12)
        np.testing.assert_allclose(coupling[2], 1j * a1 * dmag, atol=1e-12)
        np.testing.assert_allclose(coupling[3:], 0.0, atol=1e-12)

    def test_zero_mode_is_real(self, grid):
        """For a real-space field the k=0 coupling is real."""
        profile = IslandProfile.create(grid, IslandConfig(width=2.0))
        rng = np.random.default_rng(3)
        a = rng.standard_normal((grid.Nky, grid.Nx + 4)) + 1j * rng.standard_normal((grid.Nky, grid.Nx + 4))
        a[0] = a[0].real
        coupling = island_coupling(jnp.asarray(a), profile, grid, ky_axis=0, x_axis=1)
        np.testing.assert_allclose(np.imag(coupling[0]), 0.0, atol=1e-10)

    def test_gradient_term(self, grid):
        """A radial ramp in mode 0 drives mode 1 through MagIs·∂x."""
        profile = IslandProfile.create(grid, IslandConfig(width=2.0, mode=1))
        X = grid.X
        a = jnp.zeros((grid.Nky, grid.Nx + 4), dtype=jnp.complex128).at[0].set(X)

        coupling = island_coupling(a, profile, grid, ky_axis=0, x_axis=1)
        mag = np.asarray(profile.mag_is)[grid.x_domain]
        # k=1: dMagIs·(i ky(0) a[0] + i ky(2) a[2]) - MagIs·i ky(1)·(∂x a[0] - ∂x a[2])
        np.testing.assert_allclose(coupling[1], -1j * mag, atol=1e-10)
        # k=0: a[-1] = a[1] = 0, no coupling
        np.testing.assert_allclose(coupling[0], 0.0, atol=1e-12)

    def test_disabled_island_no_coupling(self, grid):
        profile = IslandProfile.create(grid, IslandConfig(width=0.0))
        a = jnp.ones((grid.Nky, grid.Nx + 4), dtype=jnp.complex128)
        coupling = island_coupling(a, profile, grid, ky_axis=0, x_axis=1)
        assert jnp.allclose(coupling, 0.0)
