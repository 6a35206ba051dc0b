"""
Tests for the reference field solver.

Tests cover:
- Quasi-neutrality with an adiabatic species and polarisation (1 - Γ0)
- Ampère's law for a parallel current
- Field layout with periodic halos
- Polarisation correction of the sources with μ points
"""

import numpy as np
import jax.numpy as jnp
import pytest
from scipy.special import i0e

from gkisland.fields import AP, BP, PHI, SpectralFieldSolver, fill_field_halo
from gkisland.grid import HALO, PhaseSpaceGrid
from gkisland.moments import velocity_moment_constant
from gkisland.plasma import AdiabaticSpecies, Plasma, Species, maxwellian_background


EPS = 1e-3


def make_plasma(beta=0.0, bp=False):
    return Plasma(
        species=(Species(name="Ion", q=1.0, m=1.0, n0=1.0, T0=1.0),),
        adiabatic=AdiabaticSpecies(name="Electron", q=-1.0, n0=1.0),
        beta=beta,
        bp=bp,
    )


@pytest.fixture
def grid():
    return PhaseSpaceGrid.create(Nx=8, Nky=4, Nz=1, Nv=32, Nm=1)


class TestQuasiNeutrality:
    """Test the electrostatic potential."""

    def test_zero_distribution(self, grid):
        plasma = make_plasma()
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        state = solver.solve(f0, jnp.zeros(grid.shape, dtype=jnp.complex128))
        assert state.field0.shape == grid.field0_shape(1)
        assert state.fields.shape == grid.field_shape(1)
        assert jnp.allclose(state.field0, 0.0)

    def test_single_mode_potential(self, grid):
        """δn = eps at ky = 1 gives φ = eps / (1 + 1 - Γ0(1))."""
        plasma = make_plasma()
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        f = jnp.zeros(grid.shape, dtype=jnp.complex128).at[:, :, :, 1].set(EPS * f0[:, :, :, 0])

        phi = solver.solve(f0, f).field0[PHI]
        expected = EPS / (1.0 + (1.0 - i0e(1.0)))
        np.testing.assert_allclose(phi[:, 1, :].real, expected, rtol=1e-5)
        np.testing.assert_allclose(phi[:, 1, :].imag, 0.0, atol=1e-14)
        np.testing.assert_allclose(np.abs(phi[:, [0, 2, 3], :]), 0.0, atol=1e-14)

    def test_potential_is_linear(self, grid):
        plasma = make_plasma()
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        rng = np.random.default_rng(0)
        f = jnp.asarray(rng.standard_normal(grid.shape) * 1e-3 + 0j)
        one = solver.solve(f0, f).field0
        three = solver.solve(f0, 3.0 * f).field0
        assert jnp.allclose(three, 3.0 * one)

    def test_drift_kinetic_gyro_average(self, grid):
        """μ = 0 makes the gyro-average the identity."""
        solver = SpectralFieldSolver(grid, make_plasma())
        a = jnp.asarray(np.random.default_rng(2).standard_normal((1, 4, 8)) + 0j)
        assert jnp.allclose(solver.gyro_average(a, 0, 0, forward=True), a)


class TestElectromagnetic:
    """Test A∥ and B∥."""

    def test_number_of_components(self, grid):
        assert SpectralFieldSolver(grid, make_plasma(beta=0.1)).n_fields == 2
        assert SpectralFieldSolver(grid, make_plasma(beta=0.1, bp=True)).n_fields == 3

    def test_ampere(self, grid):
        """j∥ from eps·v·f0 at ky = 1 gives A∥ = β j∥ / k⊥²."""
        plasma = make_plasma(beta=0.1)
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        V = grid.V[None, None, None, None, :]
        f = jnp.zeros(grid.shape, dtype=jnp.complex128).at[:, :, :, 1].set(EPS * V * f0[:, :, :, 0])

        state = solver.solve(f0, f)
        j_par = EPS * plasma.species[0].v_th * 0.5
        np.testing.assert_allclose(state.field0[AP][:, 1, :].real, 0.1 * j_par, rtol=1e-5)
        # Odd in v: no density, no potential
        np.testing.assert_allclose(np.abs(state.field0[PHI]), 0.0, atol=1e-14)

    def test_no_vector_potential_at_zero_wavenumber(self, grid):
        plasma = make_plasma(beta=0.1)
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        V = grid.V[None, None, None, None, :]
        f = jnp.zeros(grid.shape, dtype=jnp.complex128).at[:, :, :, 0].set(EPS * V * f0[:, :, :, 0])
        state = solver.solve(f0, f)
        np.testing.assert_allclose(np.abs(state.field0[AP][:, 0, :]), 0.0, atol=1e-14)

    def test_parallel_magnetic_field_shape(self, grid):
        plasma = make_plasma(beta=0.1, bp=True)
        solver = SpectralFieldSolver(grid, plasma)
        f0 = maxwellian_background(grid, plasma)
        state = solver.solve(f0, jnp.zeros(grid.shape, dtype=jnp.complex128))
        assert state.field0.shape == grid.field0_shape(3)
        assert jnp.allclose(state.field0[BP], 0.0)


class TestFieldHalo:
    """Test the periodic embedding of the fields."""

    def test_periodic_halo(self, grid):
        rng = np.random.default_rng(5)
        domain = jnp.asarray(rng.standard_normal((1, 1, 1, 1, 4, 8)))
        full = fill_field_halo(domain, grid)
        assert full.shape == (1, 1, 1, 1 + 2 * HALO, 4, 8 + 2 * HALO)
        assert jnp.allclose(full[..., HALO:-HALO, :, HALO:-HALO], domain)
        assert jnp.allclose(full[..., :HALO], full[..., -2 * HALO:-HALO])
        assert jnp.allclose(full[..., -HALO:], full[..., HALO:2 * HALO])


class TestFieldCorrections:
    """Test the polarisation correction of the field sources."""

    @pytest.fixture
    def gyro_grid(self):
        return PhaseSpaceGrid.create(Nx=8, Nky=4, Nz=1, Nv=32, Nm=4, Lm=6.0)

    def test_flag_reaches_moments_engine(self, gyro_grid):
        plasma = make_plasma()
        assert not SpectralFieldSolver(gyro_grid, plasma).moments.do_field_corrections
        assert SpectralFieldSolver(gyro_grid, plasma, do_field_corrections=True).moments.do_field_corrections

    def test_corrected_potential(self, gyro_grid):
        """φ' = φ - Y(0)·(φ - ⟨⟨φ⟩⟩) / (1 + 1 - Γ0(1)) at ky = 1."""
        plasma = make_plasma()
        plain = SpectralFieldSolver(gyro_grid, plasma)
        corrected = SpectralFieldSolver(gyro_grid, plasma, do_field_corrections=True)
        f0 = maxwellian_background(gyro_grid, plasma)
        f = jnp.zeros(gyro_grid.shape, dtype=jnp.complex128).at[:, :, :, 1].set(EPS * f0[:, :, :, 0])

        phi = plain.solve(f0, f).field0[PHI]
        phi_corrected = corrected.solve(f0, f).field0[PHI]

        Y0 = velocity_moment_constant(gyro_grid, 0)
        expected = phi - Y0 * (phi - plain.double_gyro_exp(phi, 0, 0)) / (2.0 - i0e(1.0))
        np.testing.assert_allclose(phi_corrected[:, 1, :], expected[:, 1, :], rtol=1e-10, atol=1e-16)
        assert float(jnp.max(jnp.abs(phi_corrected - phi))) > 1e-6

    def test_no_effect_in_drift_kinetic_limit(self, grid):
        """With the single point μ = 0 the double gyro-average is the identity."""
        plasma = make_plasma()
        f0 = maxwellian_background(grid, plasma)
        f = jnp.zeros(grid.shape, dtype=jnp.complex128).at[:, :, :, 1].set(EPS * f0[:, :, :, 0])
        plain = SpectralFieldSolver(grid, plasma).solve(f0, f).field0
        corrected = SpectralFieldSolver(grid, plasma, do_field_corrections=True).solve(f0, f).field0
        assert jnp.allclose(corrected, plain, atol=1e-16)
