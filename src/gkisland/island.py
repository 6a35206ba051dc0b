"""
Static magnetic island perturbation and its mode-triad coupling.

The island is a fixed radial profile ψ(x) multiplying a single poloidal
harmonic with mode offset i. Its amplitude is calibrated once so that the
separatrix traced through the perturbed field has a prescribed full width:

    width(w) = 2·y(Ly/2),   dy/ds = w·ψ(y)·sin(2π s/Ly)·(2π/Ly),   y(0) = 1e-2

integrated with 1024 trapezoidal steps and inverted by bisection on
w ∈ [0, 100]. The tabulated amplitude MagIs = w/2·ψ(X) and its radial
derivative are immutable after construction.

At every sub-step the island couples mode k to k ± i:

    Island_a[k] = ∂x MagIs · (i ky[k-i] a[k-i] + i ky[k+i] a[k+i])
                  - MagIs · i ky[i] · (∂x a[k-i] - ∂x a[k+i])

for a = φ (Island_phi) and a = g (Island_g). Access to k ± i goes through
mode_at, so conjugate substitution and Nyquist truncation are handled in
one place.
"""

from typing import Callable, Optional

import numpy as np
import jax.numpy as jnp
from jax import Array
from pydantic import BaseModel, Field, ConfigDict
from scipy.optimize import bisect

from gkisland.errors import IslandConfigurationError
from gkisland.grid import PhaseSpaceGrid
from gkisland.spectral import ddx_cd4, expand_to_axis, mode_at, owned, signed_iky


ISLAND_SHAPE_PARAMS = (0.13828847, 0.70216594, -0.01033686)
ISLAND_STEPS = 1024
SEPARATRIX_OFFSET = 1.0e-2
SCALE_BRACKET = (0.0, 100.0)


class IslandConfig(BaseModel):
    """
    Island parameters.

    Attributes:
        width: Target full island width (0 disables the island)
        mode: Poloidal mode offset i coupled by the island
        omega: Island rotation frequency (inert, static island)
        ap_ky: Reserved A∥ wavenumber parameter (inert)
        filter_ky0: Centre of the ky filter sigmoid
        filter_gradient: Steepness of the ky filter sigmoid
        filter_sign: Amplitude and orientation of the ky filter sigmoid
    """

    model_config = ConfigDict(frozen=True)

    width: float = Field(default=0.0, ge=0.0)
    mode: int = Field(default=1, ge=1)
    omega: float = 0.0
    ap_ky: float = 0.0
    filter_ky0: float = 1.2
    filter_gradient: float = 10.0
    filter_sign: float = 0.5


def island_shape(x):
    """ψ(x) = (1 + p0·(x²)^p1)·exp(p2·x²)."""
    p0, p1, p2 = ISLAND_SHAPE_PARAMS
    x2 = np.square(x)
    return (1.0 + p0 * np.power(x2, p1)) * np.exp(p2 * x2)


def island_shape_derivative(x):
    """
    ψ'(x) by fourth-order central differences with step 1e-8·max(|x|, 1).
    """
    x = np.asarray(x, dtype=float)
    eps = 1.0e-8 * np.maximum(np.abs(x), 1.0)
    return (
        8.0 * (island_shape(x + eps) - island_shape(x - eps))
        - (island_shape(x + 2 * eps) - island_shape(x - 2 * eps))
    ) / (12.0 * eps)


def island_width(scale: float, Ly: float, n_steps: int = ISLAND_STEPS) -> float:
    """
    Full island width produced by amplitude scale `scale`.

    Integrates the field line from y = 1e-2 over half the poloidal domain
    with explicit trapezoidal steps.

    Args:
        scale: Island amplitude w
        Ly: Poloidal domain length
        n_steps: Number of integration steps

    Returns:
        Full width 2·y at s = Ly/2 (0 for zero scale)
    """
    if scale == 0.0:
        return 0.0

    k = 2.0 * np.pi / Ly

    def rhs(y: float, s: float) -> float:
        return scale * float(island_shape(y)) * np.sin(k * s) * k

    ds = 0.5 * Ly / n_steps
    s, y = 0.0, SEPARATRIX_OFFSET
    for _ in range(n_steps):
        s_next = s + ds
        y = y + 0.5 * ds * (rhs(y, s) + rhs(y, s_next))
        s = s_next
    return 2.0 * y


def calibrate_scale(width: float, Ly: float) -> float:
    """
    Amplitude scale reproducing a target full island width.

    Raises:
        IslandConfigurationError: If the width is negative or not reachable
            within the scale bracket [0, 100]
    """
    if width < 0.0:
        raise IslandConfigurationError(f"Island width must be non-negative, got {width}")
    if width == 0.0:
        return 0.0

    lo, hi = SCALE_BRACKET

    def residual(w: float) -> float:
        return island_width(w, Ly) - width

    if residual(hi) < 0.0:
        raise IslandConfigurationError(
            f"Island width {width} not reachable with scale ≤ {hi} (Ly={Ly}); "
            f"maximum width is {island_width(hi, Ly):.4g}"
        )
    return float(bisect(residual, lo, hi, xtol=1.0e-13, maxiter=200))


class IslandProfile(BaseModel):
    """
    Tabulated island amplitude, its derivative, and the ky filter.

    Attributes:
        mag_is: MagIs over the full radial range including halo
        dmag_is_dx: ∂x MagIs over the full radial range including halo
        ky_filter: Sigmoid weight per stored poloidal mode
        width: Target full island width
        scale: Calibrated amplitude w
        mode: Poloidal mode offset i
        omega: Rotation frequency (inert)

    Example:
        >>> grid = PhaseSpaceGrid.create(Nx=32, Nky=8)
        >>> profile = IslandProfile.create(grid, IslandConfig(width=2.0))
        >>> profile.mag_is.shape
        (36,)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    mag_is: Array
    dmag_is_dx: Array
    ky_filter: Array
    width: float
    scale: float
    mode: int
    omega: float = 0.0

    @classmethod
    def create(cls, grid: PhaseSpaceGrid, config: IslandConfig) -> "IslandProfile":
        """Calibrate the amplitude and tabulate the profile on the grid."""
        scale = calibrate_scale(config.width, grid.Ly)
        X = np.asarray(grid.X)
        ky = np.asarray(grid.ky_table)
        ky_filter = 0.5 + config.filter_sign * np.tanh(config.filter_gradient * (ky - config.filter_ky0))
        return cls(
            mag_is=jnp.asarray(0.5 * scale * island_shape(X)),
            dmag_is_dx=jnp.asarray(0.5 * scale * island_shape_derivative(X)),
            ky_filter=jnp.asarray(ky_filter),
            width=config.width,
            scale=scale,
            mode=config.mode,
            omega=config.omega,
        )

    @property
    def enabled(self) -> bool:
        return self.scale != 0.0


# =============================================================================
# Mode-triad coupling
# =============================================================================


def island_coupling(
    a: Array,
    profile: IslandProfile,
    grid: PhaseSpaceGrid,
    ky_axis: int,
    x_axis: int,
    derivative: Callable[[Array, float, int], Array] = ddx_cd4,
    da_dx: Optional[Array] = None,
) -> Array:
    """
    Island coupling of `a` between modes k and k ± i.

    Args:
        a: Array with poloidal modes at `ky_axis` and the radial axis
            (including halo) at `x_axis`
        profile: Tabulated island profile
        grid: Phase-space grid
        ky_axis: Poloidal mode axis of `a`
        x_axis: Radial axis of `a`
        derivative: Radial first-derivative stencil
        da_dx: Precomputed radial derivative on the owned range (optional)

    Returns:
        Coupling term on the owned radial range (shape of `a` with the radial
        halo stripped)
    """
    ndim = a.ndim
    ky_axis = ky_axis % ndim
    x_axis = x_axis % ndim
    i = profile.mode

    a_x = owned(a, x_axis)
    if da_dx is None:
        da_dx = derivative(a, grid.dx, x_axis)

    mag_is = expand_to_axis(owned(profile.mag_is, 0), ndim, x_axis)
    dmag_is = expand_to_axis(owned(profile.dmag_is_dx, 0), ndim, x_axis)
    iky_m = expand_to_axis(signed_iky(grid.Nky, grid.Ly, -i), ndim, ky_axis)
    iky_p = expand_to_axis(signed_iky(grid.Nky, grid.Ly, +i), ndim, ky_axis)
    iky_i = 1j * 2.0 * np.pi * i / grid.Ly

    shifted = iky_m * mode_at(a_x, -i, ky_axis) + iky_p * mode_at(a_x, +i, ky_axis)
    gradient = mode_at(da_dx, -i, ky_axis) - mode_at(da_dx, +i, ky_axis)
    return dmag_is * shifted - mag_is * iky_i * gradient


def island_psi0(profile: IslandProfile, grid: PhaseSpaceGrid) -> Array:
    """
    A∥ perturbation Ψ0 = -MagIs at mode i, zero elsewhere.

    Returns:
        Array of shape [Nky, Nx + 2*HALO]
    """
    selected = (jnp.arange(grid.Nky) == profile.mode)[:, None]
    return jnp.where(selected, -profile.mag_is[None, :], 0.0).astype(jnp.complex128)
