"""
Field solver collaborator: gyrokinetic potentials from the distribution.

The Vlasov integrator consumes the gyro-averaged fields

    Fields[q, s, m, z, ky, x],   q ∈ {φ, A∥, B∥}

together with the drift-coordinate fields Field0[q, z, ky, x], and needs a
gyro-average transform and a double gyro-average for the moments engine.
FieldSolver is the narrow interface; SpectralFieldSolver is a reference
implementation for a radially periodic box (Fourier in x):

- Gyro-average: multiplication by J0(k⊥ √(2 μ m / (q² B0)))
- Double gyro-average: μ-quadrature of J0² with Maxwellian weight μ^n e^{-μ/T}
- Quasi-neutrality:
      Σ_s q_s² n_s/T_s (1 - Γ0(b_s)) φ + q_a² n_a/T_a φ + λ_D² k⊥² φ = ρ
  with Γ0(b) = I0(b) e^{-b}, b_s = k⊥² T_s m_s / (q_s² B0)
- Ampère: k⊥² A∥ = β j∥  (A∥ = 0 at k⊥ = 0)
- Pressure balance: B∥ = -β/2 · Σ_s ⟨μ⟩-moment / B0

Sources come from the moments engine (density, parallel flow and μ moments).
With field corrections enabled the polarisation correction of the moments
is evaluated with the uncorrected Field0 of the same sub-step, and the
field equations are solved a second time with the corrected sources.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

import numpy as np
import jax.numpy as jnp
from jax import Array
from scipy.special import i0e, j0

from gkisland.grid import HALO, PhaseSpaceGrid
from gkisland.moments import MomentsEngine
from gkisland.plasma import Plasma


PHI, AP, BP = 0, 1, 2


class FieldState(NamedTuple):
    """
    Solved fields for one sub-step.

    Attributes:
        fields: Gyro-averaged fields [Nq, Ns, Nm, Nz+4, Nky, Nx+4] with halos
        field0: Drift-coordinate fields [Nq, Nz, Nky, Nx]
    """
    fields: Array
    field0: Array


class FieldSolver(ABC):
    """Narrow interface of the field-solver subsystem."""

    @abstractmethod
    def solve(self, f0: Array, f: Array) -> FieldState:
        """Self-consistent fields from the perturbed distribution."""

    @abstractmethod
    def gyro_average(self, a: Array, m: int, s: int, forward: bool) -> Array:
        """
        Gyro-average of a drift-coordinate array [..., Nky, Nx].

        forward=True maps particle → gyro-centre, False the reverse.
        """

    @abstractmethod
    def double_gyro_exp(self, phi: Array, power: int, s: int) -> Array:
        """Double gyro-average of φ weighted by μ^power e^{-μ/T}."""


def fill_field_halo(fields_domain: Array, grid: PhaseSpaceGrid) -> Array:
    """
    Embed owned-range fields [..., Nz, Nky, Nx] into the halo layout
    [..., Nz+4, Nky, Nx+4] with periodic x and z halos.
    """
    padding = [(0, 0)] * (fields_domain.ndim - 3) + [(HALO, HALO), (0, 0), (HALO, HALO)]
    return jnp.pad(fields_domain, padding, mode="wrap")


class SpectralFieldSolver(FieldSolver):
    """
    Reference field solver on a radially periodic box.

    Args:
        grid: Phase-space grid
        plasma: Plasma parameter table
        do_field_corrections: Apply the moments engine field correction to
            the charge and current sources

    Example:
        >>> solver = SpectralFieldSolver(grid, plasma, do_field_corrections=True)
        >>> state = solver.solve(f0, f)
        >>> state.field0.shape
        (1, Nz, Nky, Nx)
    """

    def __init__(self, grid: PhaseSpaceGrid, plasma: Plasma, do_field_corrections: bool = False):
        self.grid = grid
        self.plasma = plasma
        self.n_fields = plasma.n_fields
        self.moments = MomentsEngine(grid, plasma, self, do_field_corrections=do_field_corrections)

        kx = 2.0 * np.pi * np.fft.fftfreq(grid.Nx, d=grid.dx)
        ky = np.asarray(grid.ky_table)
        self.kperp2 = ky[:, None] ** 2 + kx[None, :] ** 2  # [Nky, Nx]

        M = np.asarray(grid.M)
        dm = np.asarray(grid.dm)
        kperp = np.sqrt(self.kperp2)

        # J0 per species and μ point: [Ns, Nm, Nky, Nx]
        j0_table = np.empty((grid.Ns, grid.Nm) + self.kperp2.shape)
        for s, sp in enumerate(plasma.species):
            for m in range(grid.Nm):
                larmor = np.sqrt(2.0 * M[m] * sp.m / (sp.q**2 * plasma.B0))
                j0_table[s, m] = j0(kperp * larmor)
        self.j0 = jnp.asarray(j0_table)

        # Double gyro-average factors per (species, μ power)
        self._gamma = {}
        for s, sp in enumerate(plasma.species):
            for power in range(3):
                weight = dm * M**power * np.exp(-M / sp.T0) / sp.T0
                norm = weight.sum()
                if norm > 0.0:
                    gamma = np.einsum("m,mkx->kx", weight, j0_table[s] ** 2) / norm
                else:
                    gamma = np.ones_like(self.kperp2)
                self._gamma[(s, power)] = jnp.asarray(gamma)

        # Quasi-neutrality denominator [Nky, Nx]
        denominator = plasma.debye2 * self.kperp2
        if plasma.adiabatic is not None:
            ad = plasma.adiabatic
            denominator = denominator + ad.q**2 * ad.n0 / ad.T0
        for sp in plasma.species:
            b = self.kperp2 * sp.T0 * sp.m / (sp.q**2 * plasma.B0)
            denominator = denominator + sp.q**2 * sp.n0 / sp.T0 * (1.0 - i0e(b))
        self._qn_inverse = jnp.asarray(
            np.where(denominator > 0.0, 1.0 / np.where(denominator > 0.0, denominator, 1.0), 0.0)
        )
        self._ampere_inverse = jnp.asarray(
            np.where(self.kperp2 > 0.0, 1.0 / np.where(self.kperp2 > 0.0, self.kperp2, 1.0), 0.0)
        )

    # -------------------------------------------------------------------------
    # Gyro-averaging
    # -------------------------------------------------------------------------

    def _apply_x_spectral(self, a: Array, factor: Array) -> Array:
        a_k = jnp.fft.fft(a, axis=-1)
        return jnp.fft.ifft(a_k * factor, axis=-1)

    def gyro_average(self, a: Array, m: int, s: int, forward: bool) -> Array:
        # J0 is self-adjoint, both directions use the same factor
        return self._apply_x_spectral(a, self.j0[s, m])

    def double_gyro_exp(self, phi: Array, power: int, s: int) -> Array:
        return self._apply_x_spectral(phi, self._gamma[(s, power)])

    # -------------------------------------------------------------------------
    # Field equations
    # -------------------------------------------------------------------------

    def _charge_weighted(self, moment: Array) -> Array:
        q = jnp.asarray([sp.q for sp in self.plasma.species])
        return jnp.sum(q[:, None, None, None] * moment, axis=0)

    def _field_equations(self, f: Array, field0: Optional[Array]) -> Array:
        plasma = self.plasma
        rho = self._charge_weighted(self.moments.get_moment(f, field0, 0, 0))
        phi = self._apply_x_spectral(rho, self._qn_inverse)
        solved = [phi]

        if self.n_fields >= 2:
            j_par = self._charge_weighted(self.moments.get_moment(f, field0, 1, 0))
            solved.append(plasma.beta * self._apply_x_spectral(j_par, self._ampere_inverse))
        if self.n_fields == 3:
            p_perp = jnp.sum(self.moments.get_moment(f, field0, 0, 2), axis=0)
            solved.append(-0.5 * plasma.beta * p_perp / plasma.B0)

        return jnp.stack(solved)

    def solve_field_equations(self, f: Array) -> Array:
        """Drift-coordinate fields Field0 [Nq, Nz, Nky, Nx]."""
        field0 = self._field_equations(f, None)
        if self.moments.do_field_corrections:
            field0 = self._field_equations(f, field0)
        return field0

    def solve(self, f0: Array, f: Array) -> FieldState:
        field0 = self.solve_field_equations(f)

        averaged = []
        for s in range(self.grid.Ns):
            averaged.append(
                jnp.stack([self.gyro_average(field0, m, s, forward=True) for m in range(self.grid.Nm)], axis=1)
            )
        fields_domain = jnp.stack(averaged, axis=1)  # [Nq, Ns, Nm, Nz, Nky, Nx]
        return FieldState(fields=fill_field_halo(fields_domain, self.grid), field0=field0)
