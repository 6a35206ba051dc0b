"""
Magnetic geometry: parallel wavenumber k∥ per (z, ky, x).

The Vlasov integrator only needs the complex parallel derivative operator
i·k∥ as a function of radial index, poloidal mode and parallel position.
Geometries expose it both as a vectorised table over the owned grid and as
a scalar accessor.
"""

from abc import ABC, abstractmethod

import jax.numpy as jnp
from jax import Array

from gkisland.grid import PhaseSpaceGrid


class Geometry(ABC):
    """Abstract geometry collaborator."""

    @abstractmethod
    def k_parallel(self, grid: PhaseSpaceGrid) -> Array:
        """
        Complex parallel wavenumber i·k∥ on the owned range.

        Returns:
            Array of shape [Nz, Nky, Nx]
        """

    def get_k_parallel(self, grid: PhaseSpaceGrid, x: int, iky: complex, z: int) -> complex:
        """i·k∥ at owned radial index x, mode i·ky and owned parallel index z."""
        ky = complex(iky).imag
        mode = int(round(ky * grid.Ly / (2.0 * jnp.pi)))
        return complex(self.k_parallel(grid)[z, mode, x])


class ShearedSlab(Geometry):
    """
    Sheared slab: k∥ = ky · ŝ · x.

    The geometric scaling ε̂ is a plasma parameter (Plasma.eps_hat) and only
    enters the electromagnetic coupling.

    Args:
        shear: Magnetic shear ŝ
    """

    def __init__(self, shear: float = 0.4):
        self.shear = shear

    def k_parallel(self, grid: PhaseSpaceGrid) -> Array:
        ky = grid.ky_table[None, :, None]
        X = grid.X_domain[None, None, :]
        kp = ky * self.shear * X
        return 1j * jnp.broadcast_to(kp, (grid.Nz, grid.Nky, grid.Nx))


class ShearlessSlab(Geometry):
    """Uniform parallel wavenumber k∥ = kz for every mode."""

    def __init__(self, kz: float = 0.0):
        self.kz = kz

    def k_parallel(self, grid: PhaseSpaceGrid) -> Array:
        return jnp.full((grid.Nz, grid.Nky, grid.Nx), 1j * self.kz, dtype=jnp.complex128)
