"""
E×B nonlinearity and the electromagnetic Ξ/G adapter.

The nonlinear term is the Poisson bracket of the (generalised) potential Ξ
with the distribution G in the perpendicular plane:

    N = ∂yΞ · ∂xG - ∂xΞ · ∂yG

Radial derivatives use the fourth-order central stencil on the halo'd
radial axis; poloidal derivatives are spectral (multiplication by i·ky).
Products are formed in real poloidal space and transformed back; the 2/3
rule removes aliased modes and the Nyquist mode is never populated.

In electromagnetic runs the bracket acts on

    Ξ = φ - α ε̂ β v∥ A∥ - α ε̂ β μ B∥
    G = g + σ φ f0

built by build_xi_and_g, which hides which field components are active.
"""

from functools import partial
from typing import Tuple

import jax
import jax.numpy as jnp
from jax import Array

from gkisland.grid import PhaseSpaceGrid
from gkisland.plasma import Plasma, SpeciesTable
from gkisland.spectral import (
    ddx_cd4,
    dealias_y,
    force_real_zero_mode,
    owned,
    to_modes_y,
    to_real_y,
)

KY_AXIS = -3
X_AXIS = -2


@partial(jax.jit, static_argnames=["Ny"])
def _exb_nonlinearity_jit(xi: Array, g: Array, iky: Array, dx: float, Ny: int) -> Tuple[Array, Array]:
    """
    JIT-compiled Poisson bracket.

    Args:
        xi: Potential [..., Nky, Nx+4, Nv or 1]
        g: Distribution [..., Nky, Nx+4, Nv]
        iky: i·ky broadcastable along the mode axis
        dx: Radial spacing
        Ny: Real-space poloidal resolution (static)

    Returns:
        (bracket [..., Nky, Nx, Nv], max |v_ExB|)
    """
    xi = dealias_y(xi, KY_AXIS)
    g = dealias_y(g, KY_AXIS)

    dxi_dx = ddx_cd4(xi, dx, X_AXIS)
    dg_dx = ddx_cd4(g, dx, X_AXIS)
    dxi_dy = iky * owned(xi, X_AXIS)
    dg_dy = iky * owned(g, X_AXIS)

    dxi_dx_r = to_real_y(dxi_dx, Ny, KY_AXIS)
    dxi_dy_r = to_real_y(dxi_dy, Ny, KY_AXIS)
    dg_dx_r = to_real_y(dg_dx, Ny, KY_AXIS)
    dg_dy_r = to_real_y(dg_dy, Ny, KY_AXIS)

    bracket = to_modes_y(dxi_dy_r * dg_dx_r - dxi_dx_r * dg_dy_r, KY_AXIS)
    bracket = force_real_zero_mode(dealias_y(bracket, KY_AXIS), KY_AXIS)

    v_exb = jnp.maximum(jnp.max(jnp.abs(dxi_dx_r)), jnp.max(jnp.abs(dxi_dy_r)))
    return bracket.astype(jnp.complex128), v_exb


def exb_nonlinearity(xi: Array, g: Array, grid: PhaseSpaceGrid) -> Tuple[Array, float]:
    """
    E×B nonlinearity N = ∂yΞ ∂xG - ∂xΞ ∂yG.

    Both inputs carry the poloidal mode axis third from last and the radial
    axis (with halo) second from last; the trailing velocity axis of `xi` may
    have length 1.

    Args:
        xi: Potential, e.g. φ[..., None] or Ξ from build_xi_and_g
        g: Distribution on the owned velocity range
        grid: Phase-space grid

    Returns:
        (nonlinear term on the owned radial range, maximum E×B velocity)

    Example:
        >>> nl, v_max = exb_nonlinearity(phi[..., None], g, grid)
    """
    iky = (1j * grid.ky_table)[:, None, None]
    bracket, v_exb = _exb_nonlinearity_jit(xi, g, iky, grid.dx, grid.Ny)
    return bracket, float(v_exb)


def build_xi_and_g(
    f: Array,
    f0: Array,
    fields: Array,
    species: SpeciesTable,
    plasma: Plasma,
    grid: PhaseSpaceGrid,
    linear: bool = False,
) -> Tuple[Array, Array]:
    """
    Combined potential Ξ and distribution G for the electromagnetic bracket.

    Both are built over the full radial range including halo and the owned
    z and v ranges:

        Ξ = φ - [A∥ active] α ε̂ β v∥ A∥ - [B∥ active] α ε̂ β μ B∥
        G = g + σ φ f0

    In linear mode Ξ keeps only the A∥ part (island-only coupling).

    Args:
        f: Distribution [Ns, Nm, Nz+4, Nky, Nx+4, Nv+4]
        f0: Maxwellian background, same shape as f
        fields: Gyro-averaged fields [Nq, Ns, Nm, Nz+4, Nky, Nx+4]
        species: Packed species coefficients
        plasma: Plasma parameters (β, ε̂, number of fields)
        grid: Phase-space grid
        linear: Build the linear (island-only) potential

    Returns:
        (Ξ, G), each [Ns, Nm, Nz, Nky, Nx+4, Nv]
    """
    z, v = grid.z_domain, grid.v_domain
    g = f[:, :, z, :, :, v]
    background = f0[:, :, z, :, :, v]
    phi = fields[0][:, :, z, :, :, None]

    shape6 = (grid.Ns, 1, 1, 1, 1, 1)
    aeb = jnp.reshape(species.alpha, shape6) * plasma.eps_hat * plasma.beta
    sigma = jnp.reshape(species.sigma, shape6)
    V = grid.V_domain[None, None, None, None, None, :]
    M = grid.M[None, :, None, None, None, None]

    n_fields = fields.shape[0]
    xi = jnp.zeros(g.shape[:-1] + (1,), dtype=jnp.complex128) if linear else phi
    if n_fields >= 2:
        xi = xi - aeb * V * fields[1][:, :, z, :, :, None]
    if n_fields >= 3 and not linear:
        xi = xi - aeb * M * fields[2][:, :, z, :, :, None]

    G = g + sigma * phi * background
    return jnp.broadcast_to(xi, G.shape), G
