"""
Finite-difference stencils and poloidal spectral operations.

The radial direction is discretised with finite differences on a grid with
halo, the poloidal direction is spectral with only non-negative modes
stored. This module collects the shared operators used by every Vlasov
variant:
- Radial stencils (4th-order central first/second derivative, biased
  3rd-order first derivative, 5-point fourth derivative)
- mode_at: mode access at k + offset with the conjugate/truncation rule
- Poloidal FFTs between stored modes and real poloidal space
- 2/3 dealiasing along ky and reality enforcement of the ky=0 mode

All stencil functions consume the halo: for an input of length n along
`axis` they return the n - 2*HALO owned points.
"""

import numpy as np
import jax
import jax.numpy as jnp
from jax import Array

from gkisland.grid import HALO


def _window(a: Array, offset: int, axis: int) -> Array:
    """Owned range of `a` along `axis`, shifted by `offset` points."""
    n = a.shape[axis]
    return jax.lax.slice_in_dim(a, HALO + offset, n - HALO + offset, axis=axis)


def expand_to_axis(vec: Array, ndim: int, axis: int) -> Array:
    """Reshape a 1D table so it broadcasts along `axis` of an ndim array."""
    shape = [1] * ndim
    shape[axis] = -1
    return jnp.reshape(vec, shape)


# =============================================================================
# Radial stencils
# =============================================================================


def ddx_cd4(a: Array, dx: float, axis: int = -1) -> Array:
    """
    Fourth-order central first derivative.

        ∂a/∂x ≈ [8(a[x+1] - a[x-1]) - (a[x+2] - a[x-2])] / (12 dx)
    """
    return (
        8.0 * (_window(a, 1, axis) - _window(a, -1, axis))
        - (_window(a, 2, axis) - _window(a, -2, axis))
    ) / (12.0 * dx)


def ddx2_cd4(a: Array, dx: float, axis: int = -1) -> Array:
    """
    Fourth-order central second derivative.

        ∂²a/∂x² ≈ [16(a[x+1] + a[x-1]) - (a[x+2] + a[x-2]) - 30 a[x]] / (12 dx²)
    """
    return (
        16.0 * (_window(a, 1, axis) + _window(a, -1, axis))
        - (_window(a, 2, axis) + _window(a, -2, axis))
        - 30.0 * _window(a, 0, axis)
    ) / (12.0 * dx**2)


def ddx_upwind3(a: Array, dx: float, axis: int = -1) -> Array:
    """
    Biased third-order first derivative (one extra point on the +x side).

        ∂a/∂x ≈ [-a[x+2] + 6 a[x+1] - 3 a[x] - 2 a[x-1]] / (6 dx)
    """
    return (
        -_window(a, 2, axis)
        + 6.0 * _window(a, 1, axis)
        - 3.0 * _window(a, 0, axis)
        - 2.0 * _window(a, -1, axis)
    ) / (6.0 * dx)


def d4dx4(a: Array, dx: float, axis: int = -1) -> Array:
    """Five-point fourth derivative [a[x+2] - 4a[x+1] + 6a[x] - 4a[x-1] + a[x-2]] / dx⁴."""
    return (
        (_window(a, 2, axis) + _window(a, -2, axis))
        - 4.0 * (_window(a, 1, axis) + _window(a, -1, axis))
        + 6.0 * _window(a, 0, axis)
    ) / dx**4


def owned(a: Array, axis: int) -> Array:
    """Owned range of `a` along `axis` (halo stripped)."""
    return _window(a, 0, axis)


# =============================================================================
# Mode coupling with conjugate symmetry
# =============================================================================


def mode_at(a: Array, offset: int, axis: int) -> Array:
    """
    Value at poloidal mode k + offset for every stored mode k.

    Only modes 0 … Nky-1 are stored, so the shifted access follows one rule:
    - |k + offset| ≥ Nky-1 (Nyquist and beyond): zero, no coupling
    - k + offset < 0: conj(a[-(k + offset)]) from f(-ky) = f*(ky)
    - otherwise: a[k + offset]

    Args:
        a: Array with the poloidal mode axis at `axis`
        offset: Mode offset (e.g. ±1 for the island mode)
        axis: Poloidal mode axis

    Returns:
        Array of the same shape as `a` holding the shifted modes

    Example:
        >>> a_m1 = mode_at(phi, -1, axis=-2)  # phi[k-1] with phi[-1] = conj(phi[1])
    """
    nky = a.shape[axis]
    target = np.arange(nky) + offset
    index = np.clip(np.abs(target), 0, nky - 1)
    conjugate = expand_to_axis(jnp.asarray(target < 0), a.ndim, axis)
    resolved = expand_to_axis(jnp.asarray(np.abs(target) < nky - 1), a.ndim, axis)

    shifted = jnp.take(a, jnp.asarray(index), axis=axis)
    shifted = jnp.where(conjugate, jnp.conj(shifted), shifted)
    return jnp.where(resolved, shifted, jnp.zeros_like(shifted))


def signed_iky(nky: int, Ly: float, offset: int = 0) -> Array:
    """
    i·ky(k + offset) for every stored mode k, zero beyond the resolved range.

    Negative mode indices give negative wavenumbers (no conjugation, the
    wavenumber is a real coordinate).
    """
    target = np.arange(nky) + offset
    ky = 2.0 * np.pi * target / Ly
    ky = np.where(np.abs(target) < nky - 1, ky, 0.0)
    return jnp.asarray(1j * ky)


# =============================================================================
# Poloidal FFTs
# =============================================================================


def to_real_y(a: Array, Ny: int, axis: int) -> Array:
    """
    Stored modes → real poloidal space.

    Amplitude normalisation: a(y) = Σ_k a_k e^{i ky y} + c.c., so a single
    mode with coefficient 1 has real-space amplitude 2.
    """
    return jnp.fft.irfft(a, n=Ny, axis=axis, norm="forward")


def to_modes_y(a_real: Array, axis: int) -> Array:
    """Real poloidal space → stored modes (inverse of to_real_y)."""
    return jnp.fft.rfft(a_real, axis=axis, norm="forward")


def dealias_mask_y(nky: int) -> Array:
    """2/3-rule mask over the stored modes; the Nyquist mode is always dropped."""
    k = np.arange(nky)
    mask = (k <= (2.0 / 3.0) * (nky - 1)) & (k < nky - 1)
    return jnp.asarray(mask)


def dealias_y(a: Array, axis: int) -> Array:
    """Apply the 2/3 rule along the poloidal axis."""
    mask = expand_to_axis(dealias_mask_y(a.shape[axis]), a.ndim, axis)
    return jnp.where(mask, a, jnp.zeros_like(a))


def force_real_zero_mode(a: Array, axis: int) -> Array:
    """Keep only the real part of the ky=0 mode (reality condition)."""
    is_zero = expand_to_axis(jnp.arange(a.shape[axis]) == 0, a.ndim, axis)
    return jnp.where(is_zero, jnp.real(a).astype(a.dtype), a)


def drop_nyquist(a: Array, axis: int) -> Array:
    """Zero the Nyquist mode (not evolved)."""
    nky = a.shape[axis]
    keep = expand_to_axis(jnp.arange(nky) < nky - 1, a.ndim, axis)
    return jnp.where(keep, a, jnp.zeros_like(a))
