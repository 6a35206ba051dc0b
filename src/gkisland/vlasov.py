"""
Vlasov integrator for the island-coupled gyrokinetic equation.

Computes the tendency dg/dt at every phase-space point and folds it into a
three-coefficient low-storage Runge-Kutta accumulation:

    ft_new  = rk[0]·ft + rk[1]·dg/dt
    f_stage = f_ref + (rk[2]·ft_new + dg/dt)·dt

The tendency is a sum of independent contributions:

    drive    : -i ky (w_n + w_T((v∥² + μ)/T - offset)) f0 φ
    Landau   : -α v∥ i k∥ (g + σ φ f0)
    island   : -α v∥ (Island_g + σ Island_phi f0)
    nonlinear: E×B bracket (zero when disabled or rk_step == 0)
    collision: precomputed array, added verbatim
    hyperviscosity (optional): -ν_x ∂⁴g/∂x⁴ - ν_y ky⁴ g

Five discretisation variants share these pieces:

    "2D_Island"        baseline island coupling (Nyquist not evolved)
    "2D_Island_Orig"   baseline with inverted island-coupling sign
    "2D_Island_EM"     island enters as A∥ = Ψ0 through the Ξ/G bracket
    "2D_Island_Filter" biased radial stencil for g, Gyro-1 FLR drive
                       correction, whole tendency weighted by a ky sigmoid
    "2D_Island_Equi"   island-free reference with i k∥ - ∂x MagIs i ky

The variant is chosen once by make_scheme and is a strategy object with a
single compute_derivative contract. The ky = 0 tendency is real in every
variant.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import NamedTuple, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
from jax import Array

from gkisland.errors import ConfigurationError, UnknownEquationError
from gkisland.fields import AP, PHI, FieldState
from gkisland.geometry import Geometry
from gkisland.grid import PhaseSpaceGrid
from gkisland.island import IslandProfile, island_coupling, island_psi0
from gkisland.nonlinear import build_xi_and_g, exb_nonlinearity
from gkisland.plasma import Plasma, species_table
from gkisland.spectral import (
    d4dx4,
    ddx2_cd4,
    ddx_cd4,
    ddx_upwind3,
    drop_nyquist,
    force_real_zero_mode,
    owned,
)

KY_AXIS = -3


class EquationType(str, Enum):
    """Closed set of Vlasov discretisation variants."""

    ISLAND = "2D_Island"
    ISLAND_ORIG = "2D_Island_Orig"
    ISLAND_EM = "2D_Island_EM"
    ISLAND_FILTER = "2D_Island_Filter"
    ISLAND_EQUI = "2D_Island_Equi"

    @classmethod
    def parse(cls, value) -> "EquationType":
        """
        Equation type from its configuration string.

        Raises:
            UnknownEquationError: For anything but the five known variants
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(e.value for e in cls)
            raise UnknownEquationError(f"No such equation: {value!r} (expected one of {known})") from None


class VlasovInputs(NamedTuple):
    """
    Snapshot consumed by compute_derivative.

    Attributes:
        f: Stage input with refreshed halos [Ns, Nm, Nz+4, Nky, Nx+4, Nv+4]
        f0: Maxwellian background, same shape as f
        fields: Gyro-averaged fields [Nq, Ns, Nm, Nz+4, Nky, Nx+4]
        field0: Drift-coordinate fields [Nq, Nz, Nky, Nx]
        coll: Collision term, same shape as f
        rk_step: Stage index (0 signals a linear evaluation)
        nonlinear: Precomputed nonlinear term on the owned range, or None
    """
    f: Array
    f0: Array
    fields: Array
    field0: Array
    coll: Array
    rk_step: int = 1
    nonlinear: Optional[Array] = None


@jax.jit
def rk_accumulate(ft: Array, dg_dt: Array, f_ref: Array, rk: Array, dt: float) -> Tuple[Array, Array]:
    """
    Low-storage Runge-Kutta accumulation.

    Args:
        ft: Accumulated tendency from previous stages
        dg_dt: Tendency of this stage
        f_ref: Stage-1 input of the step
        rk: Coefficient triple (rk[0], rk[1], rk[2])
        dt: Time step

    Returns:
        (ft_new, f_stage)

    Example:
        >>> ft, f_stage = rk_accumulate(ft, dg, f_ref, jnp.array([0.0, 1.0, 0.0]), 0.01)
    """
    ft_new = rk[0] * ft + rk[1] * dg_dt
    f_stage = f_ref + (rk[2] * ft_new + dg_dt) * dt
    return ft_new, f_stage


# =============================================================================
# Strategy base: shared tendency contributions
# =============================================================================


class VlasovScheme(ABC):
    """
    Base class of the Vlasov variants.

    Holds the broadcast coefficient tables and the shared contributions.
    All arrays handed between helpers are on the owned z and v ranges; the
    "_full" arrays keep the radial halo for stencils.
    """

    equation_type: EquationType

    def __init__(
        self,
        grid: PhaseSpaceGrid,
        plasma: Plasma,
        geometry: Geometry,
        island: IslandProfile,
        nonlinear: bool = False,
        hyper_viscosity: Sequence[float] = (0.0, 0.0),
    ):
        self.grid = grid
        self.plasma = plasma
        self.geometry = geometry
        self.island = island
        self.nonlinear = nonlinear
        self.hyper_viscosity = tuple(hyper_viscosity)

        species = species_table(plasma)
        self.species = species

        def per_species(a: Array) -> Array:
            return jnp.reshape(a, (grid.Ns, 1, 1, 1, 1, 1))

        self._alpha = per_species(species.alpha)
        self._sigma = per_species(species.sigma)
        self._w_n = per_species(species.w_n)
        self._w_T = per_species(species.w_T)
        self._T0 = per_species(species.T0)
        self._offset = per_species(species.offset)
        self._rho_t2 = per_species(species.rho_t2)
        self._gyro1 = per_species(species.gyro1)

        self._V = grid.V_domain[None, None, None, None, None, :]
        self._M = grid.M[None, :, None, None, None, None]
        self._iky = (1j * grid.ky_table)[None, None, None, :, None, None]
        self._kp = geometry.k_parallel(grid)[None, None, :, :, :, None]

    # -------------------------------------------------------------------------
    # Input slicing
    # -------------------------------------------------------------------------

    def phi_full(self, inputs: VlasovInputs) -> Array:
        """φ on the owned z range with radial halo [Ns, Nm, Nz, Nky, Nx+4]."""
        return inputs.fields[PHI][:, :, self.grid.z_domain]

    def g_full(self, inputs: VlasovInputs) -> Array:
        """g on the owned z, v ranges with radial halo [Ns, Nm, Nz, Nky, Nx+4, Nv]."""
        return inputs.f[:, :, self.grid.z_domain, :, :, self.grid.v_domain]

    # -------------------------------------------------------------------------
    # Shared contributions
    # -------------------------------------------------------------------------

    def drive_term(self, phi: Array, f0: Array) -> Array:
        """Density/temperature gradient drive."""
        energy = (self._V**2 + self._M) / self._T0 - self._offset
        return -self._iky * (self._w_n + self._w_T * energy) * f0 * phi

    def gyro1_correction(self, phi_full: Array, f0: Array) -> Array:
        """First-order FLR drive correction -i ky · ρ_t²/2 · w_T (-ky² φ + ∂x²φ) f0 (Gyro-1 species only)."""
        phi = owned(phi_full, -1)[..., None]
        ddphi_dx2 = ddx2_cd4(phi_full, self.grid.dx, -1)[..., None]
        half_eta = self._rho_t2 * 0.5 * self._w_T * (self._iky**2 * phi + ddphi_dx2)
        return jnp.where(self._gyro1, -self._iky * half_eta * f0, 0.0)

    def landau_term(self, g: Array, phi: Array, f0: Array, kp: Optional[Array] = None) -> Array:
        """Parallel streaming / Landau damping."""
        kp = self._kp if kp is None else kp
        return -self._alpha * self._V * kp * (g + self._sigma * phi * f0)

    def island_term(self, phi_full: Array, g_full: Array, f0: Array, derivative=ddx_cd4) -> Array:
        """-α v∥ (Island_g + σ Island_phi f0)."""
        if not self.island.enabled:
            return jnp.zeros(g_full.shape[:-2] + (self.grid.Nx, self.grid.Nv), dtype=jnp.complex128)
        island_phi = island_coupling(phi_full, self.island, self.grid, ky_axis=-2, x_axis=-1)[..., None]
        island_g = island_coupling(g_full, self.island, self.grid, ky_axis=-3, x_axis=-2, derivative=derivative)
        return -self._alpha * self._V * (island_g + self._sigma * island_phi * f0)

    def hyper_viscosity_term(self, g_full: Array) -> Array:
        """Fourth-order radial and poloidal damping."""
        nu_x, nu_y = self.hyper_viscosity
        g = owned(g_full, -2)
        return -nu_x * d4dx4(g_full, self.grid.dx, -2) - nu_y * self._iky**4 * g

    def nonlinear_term(self, inputs: VlasovInputs) -> Tuple[Array, float]:
        """E×B bracket of φ and g; zero when disabled or rk_step == 0."""
        if not self.nonlinear or inputs.rk_step == 0:
            return self._zeros(), 0.0
        return exb_nonlinearity(self.phi_full(inputs)[..., None], self.g_full(inputs), self.grid)

    def prepare_fields(self, field_state: FieldState) -> FieldState:
        """Hook for variants that impose fields before the tendency is evaluated."""
        return field_state

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def _zeros(self) -> Array:
        g = self.grid
        return jnp.zeros((g.Ns, g.Nm, g.Nz, g.Nky, g.Nx, g.Nv), dtype=jnp.complex128)

    def _common(self, inputs: VlasovInputs):
        phi_full = self.phi_full(inputs)
        g_full = self.g_full(inputs)
        phi = owned(phi_full, -1)[..., None]
        g = owned(g_full, -2)
        f0 = inputs.f0[self.grid.domain]
        coll = inputs.coll[self.grid.domain]
        nl = self._zeros() if inputs.nonlinear is None else inputs.nonlinear
        return phi_full, g_full, phi, g, f0, coll, nl

    def _finish(self, dg_dt: Array, g_full: Array) -> Array:
        if any(self.hyper_viscosity):
            dg_dt = dg_dt + self.hyper_viscosity_term(g_full)
        return force_real_zero_mode(dg_dt, KY_AXIS)

    @abstractmethod
    def compute_derivative(self, inputs: VlasovInputs) -> Array:
        """
        Tendency dg/dt on the owned range [Ns, Nm, Nz, Nky, Nx, Nv].
        """


# =============================================================================
# Variants
# =============================================================================


class IslandScheme(VlasovScheme):
    """Baseline island-coupled electrostatic form."""

    equation_type = EquationType.ISLAND
    island_sign = 1.0

    def compute_derivative(self, inputs: VlasovInputs) -> Array:
        phi_full, g_full, phi, g, f0, coll, nl = self._common(inputs)
        dg_dt = (
            self.island_sign * self.island_term(phi_full, g_full, f0)
            + nl
            + self.drive_term(phi, f0)
            + self.landau_term(g, phi, f0)
            + coll
        )
        return drop_nyquist(self._finish(dg_dt, g_full), KY_AXIS)


class IslandOrigScheme(IslandScheme):
    """Legacy sign convention: island coupling enters with inverted sign."""

    equation_type = EquationType.ISLAND_ORIG
    island_sign = -1.0


class IslandFilterScheme(VlasovScheme):
    """
    Island form with biased stencil, Gyro-1 correction and ky sigmoid weight.

    Every stored mode evolves, the Nyquist mode included; its coupling to
    k + i is cut by the mode accessor.
    """

    equation_type = EquationType.ISLAND_FILTER

    def compute_derivative(self, inputs: VlasovInputs) -> Array:
        phi_full, g_full, phi, g, f0, coll, nl = self._common(inputs)
        ky_filter = self.island.ky_filter[None, None, None, :, None, None]
        dg_dt = ky_filter * (
            self.island_term(phi_full, g_full, f0, derivative=ddx_upwind3)
            + nl
            + self.drive_term(phi, f0)
            + self.gyro1_correction(phi_full, f0)
            + self.landau_term(g, phi, f0)
            + coll
        )
        return self._finish(dg_dt, g_full)


class IslandEquiScheme(VlasovScheme):
    """Island-free reference: island only shifts the parallel wavenumber."""

    equation_type = EquationType.ISLAND_EQUI

    def compute_derivative(self, inputs: VlasovInputs) -> Array:
        phi_full, g_full, phi, g, f0, coll, nl = self._common(inputs)
        dmag_is = owned(self.island.dmag_is_dx, 0)[None, None, None, None, :, None]
        kp = self._kp - dmag_is * self._iky
        dg_dt = nl + self.drive_term(phi, f0) + self.landau_term(g, phi, f0, kp=kp) + coll
        return self._finish(dg_dt, g_full)


class IslandEMScheme(VlasovScheme):
    """
    Electromagnetic form: the island is imposed as A∥ = Ψ0 and couples
    through the Ξ/G bracket.
    """

    equation_type = EquationType.ISLAND_EM

    def __init__(self, grid, plasma, geometry, island, nonlinear=False, hyper_viscosity=(0.0, 0.0)):
        if plasma.n_fields < 2:
            raise ConfigurationError(
                "2D_Island_EM requires the parallel vector potential (beta > 0)"
            )
        super().__init__(grid, plasma, geometry, island, nonlinear, hyper_viscosity)
        self.psi0 = island_psi0(island, grid)

    def prepare_fields(self, field_state: FieldState) -> FieldState:
        fields = field_state.fields.at[AP].set(
            jnp.broadcast_to(self.psi0, field_state.fields.shape[1:])
        )
        psi0_domain = owned(self.psi0, -1)
        field0 = field_state.field0.at[AP].set(
            jnp.broadcast_to(psi0_domain, field_state.field0.shape[1:])
        )
        return FieldState(fields=fields, field0=field0)

    def nonlinear_term(self, inputs: VlasovInputs) -> Tuple[Array, float]:
        linear = not self.nonlinear or inputs.rk_step == 0
        xi, G = build_xi_and_g(
            inputs.f, inputs.f0, inputs.fields, self.species, self.plasma, self.grid, linear=linear
        )
        return exb_nonlinearity(xi, G, self.grid)

    def compute_derivative(self, inputs: VlasovInputs) -> Array:
        phi_full, g_full, phi, g, f0, coll, nl = self._common(inputs)
        dg_dt = nl + self.drive_term(phi, f0) + self.landau_term(g, phi, f0) + coll
        return self._finish(dg_dt, g_full)


_SCHEMES = {
    EquationType.ISLAND: IslandScheme,
    EquationType.ISLAND_ORIG: IslandOrigScheme,
    EquationType.ISLAND_EM: IslandEMScheme,
    EquationType.ISLAND_FILTER: IslandFilterScheme,
    EquationType.ISLAND_EQUI: IslandEquiScheme,
}


def make_scheme(
    equation_type,
    grid: PhaseSpaceGrid,
    plasma: Plasma,
    geometry: Geometry,
    island: IslandProfile,
    nonlinear: bool = False,
    hyper_viscosity: Sequence[float] = (0.0, 0.0),
) -> VlasovScheme:
    """
    Select the Vlasov variant once at setup.

    Raises:
        UnknownEquationError: If `equation_type` is not a known variant
    """
    scheme_cls = _SCHEMES[EquationType.parse(equation_type)]
    return scheme_cls(grid, plasma, geometry, island, nonlinear, hyper_viscosity)


# =============================================================================
# Integrator
# =============================================================================


class VlasovIntegrator:
    """
    Stage-agnostic Vlasov integrator owning the RK tendency buffer ft.

    Args:
        grid: Phase-space grid
        plasma: Plasma parameter table
        geometry: Geometry collaborator providing i·k∥
        island: Tabulated island profile
        equation_type: One of the EquationType strings
        nonlinear: Enable the E×B nonlinearity
        hyper_viscosity: (ν_x, ν_y), zero disables

    Example:
        >>> vlasov = VlasovIntegrator(grid, plasma, ShearedSlab(), island, "2D_Island")
        >>> f_stage, dg_dt = vlasov.solve(f, f, f0, field_state, coll, dt=0.01,
        ...                               rk_step=1, rk=(0.0, 1.0, 0.0))
    """

    def __init__(
        self,
        grid: PhaseSpaceGrid,
        plasma: Plasma,
        geometry: Geometry,
        island: IslandProfile,
        equation_type="2D_Island",
        nonlinear: bool = False,
        hyper_viscosity: Sequence[float] = (0.0, 0.0),
    ):
        self.grid = grid
        self.equation_type = EquationType.parse(equation_type)
        self.scheme = make_scheme(
            self.equation_type, grid, plasma, geometry, island, nonlinear, hyper_viscosity
        )
        self.ft = jnp.zeros(grid.shape, dtype=jnp.complex128)
        self.max_exb = 0.0
        self.field_state: Optional[FieldState] = None

    def reset(self) -> None:
        """Clear the accumulated tendency."""
        self.ft = jnp.zeros(self.grid.shape, dtype=jnp.complex128)

    def solve(
        self,
        f_in: Array,
        f_ref: Array,
        f0: Array,
        field_state: FieldState,
        coll: Array,
        dt: float,
        rk_step: int,
        rk: Sequence[float],
    ) -> Tuple[Array, Array]:
        """
        One Runge-Kutta stage.

        Args:
            f_in: Stage input with refreshed halos
            f_ref: Stage-1 input of the current step
            f0: Maxwellian background
            field_state: Fields solved from f_in
            coll: Collision term for f_in
            dt: Time step
            rk_step: Stage index (0 disables the nonlinear term)
            rk: Coefficient triple

        Returns:
            (f_stage, dg_dt). The halos of f_stage are copied from f_ref and
            must be refreshed by the boundary exchange.
        """
        field_state = self.scheme.prepare_fields(field_state)
        self.field_state = field_state

        inputs = VlasovInputs(
            f=f_in, f0=f0, fields=field_state.fields, field0=field_state.field0,
            coll=coll, rk_step=rk_step,
        )
        nl, self.max_exb = self.scheme.nonlinear_term(inputs)
        dg_dt = self.scheme.compute_derivative(inputs._replace(nonlinear=nl))

        domain = self.grid.domain
        ft_new, f_domain = rk_accumulate(
            self.ft[domain], dg_dt, f_ref[domain], jnp.asarray(rk, dtype=jnp.float64), dt
        )
        self.ft = self.ft.at[domain].set(ft_new)
        return f_ref.at[domain].set(f_domain), dg_dt
