"""
Collision operator collaborators.

The Vlasov integrator adds a precomputed collision array, shaped like the
distribution, verbatim to the tendency. Operators only need to provide
that array for the current stage input.
"""

from abc import ABC, abstractmethod

import jax.numpy as jnp
from jax import Array

from gkisland.grid import PhaseSpaceGrid


class CollisionOperator(ABC):
    """Produces the collision contribution for a distribution snapshot."""

    def __init__(self, grid: PhaseSpaceGrid):
        self.grid = grid

    @abstractmethod
    def compute(self, f: Array, f0: Array) -> Array:
        """Collision term with the shape of `f`."""


class NoCollisions(CollisionOperator):
    """Collisionless plasma."""

    def compute(self, f: Array, f0: Array) -> Array:
        return jnp.zeros(self.grid.shape, dtype=jnp.complex128)


class KrookCollisions(CollisionOperator):
    """
    Krook relaxation C(g) = -ν g on the owned range (halo left at zero).

    Args:
        grid: Phase-space grid
        nu: Relaxation rate ν ≥ 0
    """

    def __init__(self, grid: PhaseSpaceGrid, nu: float):
        if nu < 0.0:
            raise ValueError(f"Krook collision frequency must be non-negative, got {nu}")
        super().__init__(grid)
        self.nu = nu

    def compute(self, f: Array, f0: Array) -> Array:
        coll = jnp.zeros(self.grid.shape, dtype=jnp.complex128)
        return coll.at[self.grid.domain].set(-self.nu * f[self.grid.domain])
