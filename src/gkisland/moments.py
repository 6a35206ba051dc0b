"""
Generalised velocity-space moments of the distribution function.

Eight moments ∫ v∥^a μ^(b/2) f dv dμ are computed per species on the owned
(z, ky, x) range, with the fixed (a, b) table

    index :   0      1      2      3      4      5      6      7
    (a, b): (0,0)  (2,0)  (0,2)  (1,0)  (3,0)  (1,2)  (2,2)  (0,4)

For each species and μ point the v∥ sum is scaled by

    d_pre = ρ_ref/L_ref · n_ref · n0 · (c_ref v_th)^(a+b)
    d_DK  = d_pre · π · dv · dm[m] · B0^(b/2)

then transformed back from gyro-centre to particle coordinates by the field
solver and accumulated over μ. Partial results are combined with an
order-independent reduction hook (identity in a single process).

With field corrections enabled, the polarisation contribution

    d_pre · Y(a) · q · (φ0 - ⟨⟨φ0⟩⟩_(b/2))

is subtracted, where Y(a) = Σ_v v^a exp(-v²) dv / √π is evaluated on the
velocity grid (nominally 1/2 for a = 2) and ⟨⟨·⟩⟩ is the solver's double
gyro-average.
"""

from typing import Callable, Optional

import numpy as np
import jax.numpy as jnp
from jax import Array

from gkisland.grid import PhaseSpaceGrid
from gkisland.plasma import Plasma
from gkisland.spectral import drop_nyquist


MOMENT_POWERS = ((0, 0), (2, 0), (0, 2), (1, 0), (3, 0), (1, 2), (2, 2), (0, 4))


def velocity_moment_constant(grid: PhaseSpaceGrid, a: int) -> float:
    """Y(a) = Σ_v v^a exp(-v²) dv / √π over the owned velocity range."""
    V = np.asarray(grid.V_domain)
    return float(np.sum(V**a * np.exp(-V**2)) * grid.dv / np.sqrt(np.pi))


def _identity(a: Array) -> Array:
    return a


class MomentsEngine:
    """
    Velocity-space moment integrator.

    Args:
        grid: Phase-space grid
        plasma: Plasma parameter table
        solver: Field solver providing gyro_average and double_gyro_exp
        do_field_corrections: Subtract the finite-Larmor-radius polarisation
            correction
        allreduce: Cross-process sum of partial moments

    Example:
        >>> engine = MomentsEngine(grid, plasma, solver)
        >>> moments = engine.get_moments(f, field_state.field0)
        >>> moments.shape
        (8, Ns, Nz, Nky, Nx)
    """

    def __init__(
        self,
        grid: PhaseSpaceGrid,
        plasma: Plasma,
        solver,
        do_field_corrections: bool = True,
        allreduce: Callable[[Array], Array] = _identity,
    ):
        self.grid = grid
        self.plasma = plasma
        self.solver = solver
        self.do_field_corrections = do_field_corrections
        self.allreduce = allreduce
        self._Y = {a: velocity_moment_constant(grid, a) for a in range(5)}

    def prefactor(self, s: int, a: int, b: int) -> float:
        """d_pre for species s and powers (a, b)."""
        p = self.plasma
        sp = p.species[s]
        return p.rho_ref / p.L_ref * p.n_ref * sp.n0 * (p.c_ref * sp.v_th) ** (a + b)

    def get_moment(self, f: Array, field0: Optional[Array], a: int, b: int) -> Array:
        """
        Single moment ∫ v∥^a μ^(b/2) f.

        Args:
            f: Distribution [Ns, Nm, Nz+4, Nky, Nx+4, Nv+4]
            field0: Drift-coordinate fields [Nq, Nz, Nky, Nx] for the field
                correction (ignored when None or corrections are disabled)
            a: Power of v∥
            b: Power of √μ

        Returns:
            Moment [Ns, Nz, Nky, Nx]
        """
        grid, plasma = self.grid, self.plasma
        f_dom = f[grid.domain]
        V = grid.V_domain
        Va = V**a

        # Σ_v v^a f  → [Ns, Nm, Nz, Nky, Nx]
        vsum = drop_nyquist(jnp.sum(f_dom * Va, axis=-1), axis=-2)

        moments = []
        for s in range(grid.Ns):
            d_pre = self.prefactor(s, a, b)
            mom_s = jnp.zeros((grid.Nz, grid.Nky, grid.Nx), dtype=jnp.complex128)
            for m in range(grid.Nm):
                d_dk = d_pre * np.pi * grid.dv * float(grid.dm[m]) * plasma.B0 ** (0.5 * b)
                weight = float(grid.M[m]) ** (0.5 * b) if b > 0 else 1.0
                mom_sm = d_dk * weight * vsum[s, m]
                mom_s = mom_s + self.solver.gyro_average(mom_sm, m, s, forward=False)
            moments.append(mom_s)
        result = self.allreduce(jnp.stack(moments))

        if self.do_field_corrections and field0 is not None:
            phi0 = field0[0]
            corrections = []
            for s in range(grid.Ns):
                d_pre = self.prefactor(s, a, b)
                q = plasma.species[s].q
                gyro = self.solver.double_gyro_exp(phi0, b // 2, s)
                corrections.append(d_pre * self._Y[a] * q * (phi0 - gyro))
            result = result - jnp.stack(corrections)

        return result

    def get_moments(self, f: Array, field0: Optional[Array] = None) -> Array:
        """All eight moments, shape [8, Ns, Nz, Nky, Nx]."""
        return jnp.stack([self.get_moment(f, field0, a, b) for a, b in MOMENT_POWERS])
