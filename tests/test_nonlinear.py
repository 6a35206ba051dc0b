"""
Tests for the E×B nonlinearity and the Ξ/G adapter.
"""

import numpy as np
import jax.numpy as jnp
import pytest

from gkisland.grid import HALO, PhaseSpaceGrid
from gkisland.nonlinear import build_xi_and_g, exb_nonlinearity
from gkisland.plasma import AdiabaticSpecies, Plasma, Species, maxwellian_background, species_table


@pytest.fixture
def grid():
    return PhaseSpaceGrid.create(Nx=32, Nky=7, Nz=1, Nv=4, Nm=1, Lx=2 * np.pi)


def radial_mode(grid, kx, mode, amplitude):
    """amplitude·e^{i kx x} at poloidal mode `mode`, shape [Nky, Nx+4, 1]."""
    X = np.asarray(grid.X)
    a = np.zeros((grid.Nky, grid.Nx + 2 * HALO, 1), dtype=complex)
    a[mode, :, 0] = amplitude * np.exp(1j * kx * X)
    return jnp.asarray(a)


class TestExBNonlinearity:
    """Test the Poisson bracket."""

    def test_zero_input(self, grid):
        xi = jnp.zeros((grid.Nky, grid.Nx + 4, 1), dtype=jnp.complex128)
        g = jnp.zeros((grid.Nky, grid.Nx + 4, grid.Nv), dtype=jnp.complex128)
        nl, v_max = exb_nonlinearity(xi, g, grid)
        assert nl.shape == (grid.Nky, grid.Nx, grid.Nv)
        assert jnp.allclose(nl, 0.0)
        assert v_max == 0.0

    def test_self_bracket_vanishes(self, grid):
        """{φ, φ} = 0."""
        phi = radial_mode(grid, 1.0, 1, 0.1) + radial_mode(grid, 2.0, 2, 0.05j)
        nl, _ = exb_nonlinearity(phi, phi, grid)
        np.testing.assert_allclose(np.abs(nl), 0.0, atol=1e-12)

    def test_zonal_flow_shear(self, grid):
        """
        Zonal Ξ = 2 cos(x) (mode 0) advects a poloidal wave in y:
        N = -∂xΞ · ∂yG = -(-2 sin x)·(i ky G).
        """
        X = np.asarray(grid.X)
        xi = np.zeros((grid.Nky, grid.Nx + 4, 1), dtype=complex)
        xi[0, :, 0] = 2.0 * np.cos(X)
        g = radial_mode(grid, 0.0, 1, 0.1)

        nl, v_max = exb_nonlinearity(jnp.asarray(xi), g, grid)
        X_dom = np.asarray(grid.X_domain)
        # Effective wavenumber of the fourth-order stencil for kx = 1
        k_eff = (8.0 * np.sin(grid.dx) - np.sin(2.0 * grid.dx)) / (6.0 * grid.dx)
        dxi_dx = -2.0 * k_eff * np.sin(X_dom)
        expected = -dxi_dx * 1j * 1.0 * 0.1
        np.testing.assert_allclose(nl[1, :, 0], expected, atol=1e-12)
        assert v_max == pytest.approx(2.0, rel=1e-3)

    def test_zero_mode_real(self, grid):
        """Nonlinear ky=0 output is real."""
        rng = np.random.default_rng(4)
        shape = (grid.Nky, grid.Nx + 4, grid.Nv)
        g = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
        g[0] = g[0].real
        xi = rng.standard_normal(shape[:-1] + (1,)) + 1j * rng.standard_normal(shape[:-1] + (1,))
        xi[0] = xi[0].real
        nl, _ = exb_nonlinearity(jnp.asarray(xi), jnp.asarray(g), grid)
        np.testing.assert_allclose(np.imag(nl[0]), 0.0, atol=1e-14)

    def test_dealiased_output(self, grid):
        """Modes beyond 2/3 of the spectrum are zero."""
        phi = radial_mode(grid, 1.0, 2, 1.0)
        g = radial_mode(grid, 2.0, 3, 1.0)
        nl, _ = exb_nonlinearity(phi, g, grid)
        np.testing.assert_allclose(np.abs(nl[5:]), 0.0, atol=1e-14)


class TestXiAndG:
    """Test the electromagnetic adapter."""

    @pytest.fixture
    def setup(self):
        grid = PhaseSpaceGrid.create(Nx=8, Nky=4, Nz=1, Nv=8, Nm=2)
        plasma = Plasma(
            species=(Species(name="Ion", q=1.0, m=1.0, n0=1.0, T0=1.0),),
            adiabatic=AdiabaticSpecies(name="Electron", q=-1.0, n0=1.0),
            beta=0.5,
            bp=True,
        )
        f0 = maxwellian_background(grid, plasma)
        return grid, plasma, f0

    def test_shapes(self, setup):
        grid, plasma, f0 = setup
        fields = jnp.zeros(grid.field_shape(3), dtype=jnp.complex128)
        xi, G = build_xi_and_g(f0, f0, fields, species_table(plasma), plasma, grid)
        expected = (1, 2, 1, 4, 12, 8)
        assert xi.shape == expected
        assert G.shape == expected

    def test_potential_combination(self, setup):
        """Ξ = φ - α ε̂ β v A∥ - α ε̂ β μ B∥, G = g + σ φ f0."""
        grid, plasma, f0 = setup
        fields = jnp.zeros(grid.field_shape(3), dtype=jnp.complex128)
        fields = fields.at[0].set(0.1).at[1].set(0.2).at[2].set(0.3)
        f = jnp.zeros(grid.shape, dtype=jnp.complex128)

        xi, G = build_xi_and_g(f, f0, fields, species_table(plasma), plasma, grid)
        alpha = plasma.species[0].v_th / plasma.cs
        aeb = alpha * plasma.eps_hat * plasma.beta
        V = np.asarray(grid.V_domain)
        M = np.asarray(grid.M)
        expected = 0.1 - aeb * V[None, :] * 0.2 - aeb * M[:, None] * 0.3
        np.testing.assert_allclose(xi[0, :, 0, 1, 3, :], expected)

        background = f0[0, :, HALO, 0, 3, grid.v_domain]
        np.testing.assert_allclose(G[0, :, 0, 0, 3, :], 0.1 * background)

    def test_linear_potential(self, setup):
        """The linear Ξ keeps only the A∥ part."""
        grid, plasma, f0 = setup
        fields = jnp.zeros(grid.field_shape(3), dtype=jnp.complex128)
        fields = fields.at[0].set(0.1).at[1].set(0.2).at[2].set(0.3)
        xi, _ = build_xi_and_g(f0, f0, fields, species_table(plasma), plasma, grid, linear=True)
        aeb = plasma.species[0].v_th / plasma.cs * plasma.eps_hat * plasma.beta
        V = np.asarray(grid.V_domain)
        np.testing.assert_allclose(xi[0, 0, 0, 2, 5, :], -aeb * V * 0.2)
