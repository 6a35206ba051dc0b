"""
Phase-space grid descriptor for the island gyrokinetic solver.

The distribution function lives on a six-dimensional grid

    (species, μ, z, ky, x, v∥)

where the poloidal axis is spectral and stores only the non-negative modes
ky = 0 … Nky-1 (mode Nky-1 is the Nyquist mode). Negative modes are
recovered by the reality condition f(-ky) = f*(ky).

The z, x and v∥ axes carry a halo of width HALO on each side. The halo is
read by the finite-difference stencils and must be refreshed by a boundary
exchange before every derivative evaluation.

This module provides:
- PhaseSpaceGrid: immutable Pydantic model with coordinates, quadrature
  weights and poloidal wavenumbers
- Index helpers for the locally owned ("domain") ranges
"""

from typing import Tuple

import numpy as np
import jax.numpy as jnp
from jax import Array
from pydantic import BaseModel, Field, ConfigDict, field_validator


HALO = 2  # Halo width on z, x and v (enough for the 5-point stencils)


class PhaseSpaceGrid(BaseModel):
    """
    Immutable phase-space grid specification.

    Attributes:
        Nx: Radial grid points (locally owned, without halo)
        Nky: Number of stored poloidal modes (including ky=0 and Nyquist)
        Nz: Parallel grid points
        Nv: Parallel velocity grid points
        Nm: Magnetic moment grid points
        Ns: Number of kinetic species
        Lx, Ly, Lz: Radial, poloidal and parallel domain lengths
        Lv: Velocity cut-off, v ∈ [-Lv, Lv]
        Lm: Magnetic moment cut-off, μ ∈ [0, Lm]
        X: Radial coordinate including halo (shape: [Nx + 2*HALO])
        V: Parallel velocity including halo (shape: [Nv + 2*HALO])
        Z: Parallel coordinate including halo (shape: [Nz + 2*HALO])
        M: Magnetic moment abscissas (shape: [Nm])
        dm: Magnetic moment quadrature weights (shape: [Nm])

    Example:
        >>> grid = PhaseSpaceGrid.create(Nx=32, Nky=8, Nz=1, Nv=32, Nm=1, Ns=1)
        >>> grid.shape
        (1, 1, 5, 8, 36, 36)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    Nx: int = Field(ge=4, description="Radial grid points")
    Nky: int = Field(ge=2, description="Stored poloidal modes")
    Nz: int = Field(gt=0, description="Parallel grid points")
    Nv: int = Field(ge=4, description="Parallel velocity grid points")
    Nm: int = Field(gt=0, description="Magnetic moment grid points")
    Ns: int = Field(gt=0, description="Kinetic species")
    Lx: float = Field(gt=0.0, description="Radial domain length")
    Ly: float = Field(gt=0.0, description="Poloidal domain length")
    Lz: float = Field(gt=0.0, description="Parallel domain length")
    Lv: float = Field(gt=0.0, description="Velocity cut-off")
    Lm: float = Field(gt=0.0, description="Magnetic moment cut-off")
    X: Array = Field(description="Radial coordinate including halo")
    V: Array = Field(description="Parallel velocity including halo")
    Z: Array = Field(description="Parallel coordinate including halo")
    M: Array = Field(description="Magnetic moment abscissas")
    dm: Array = Field(description="Magnetic moment quadrature weights")

    @field_validator("X", "V", "Z", "M", "dm")
    @classmethod
    def validate_one_dimensional(cls, v: Array, info) -> Array:
        """Coordinate tables are one-dimensional."""
        if v.ndim != 1:
            raise ValueError(f"{info.field_name} must be 1D, got shape {v.shape}")
        return v

    @classmethod
    def create(
        cls,
        Nx: int,
        Nky: int,
        Nz: int = 1,
        Nv: int = 32,
        Nm: int = 1,
        Ns: int = 1,
        Lx: float = 20.0,
        Ly: float = 2 * np.pi,
        Lz: float = 2 * np.pi,
        Lv: float = 4.0,
        Lm: float = 8.0,
    ) -> "PhaseSpaceGrid":
        """
        Factory computing coordinates and quadrature weights.

        Radial points are X[i] = -Lx/2 + (i - HALO)·dx with dx = Lx/Nx, so
        the owned range covers [-Lx/2, Lx/2). Velocities are equidistant on
        [-Lv, Lv]; the halo extends the same spacing. The μ integral uses
        Gauss-Legendre quadrature on [0, Lm] for Nm > 1, and the single
        point μ = 0 with unit weight for the drift-kinetic limit Nm = 1.

        Raises:
            ValueError: On non-positive sizes or lengths
        """
        if min(Nx, Nky, Nz, Nv, Nm, Ns) <= 0:
            raise ValueError(
                f"Grid sizes must be positive, got Nx={Nx}, Nky={Nky}, Nz={Nz}, "
                f"Nv={Nv}, Nm={Nm}, Ns={Ns}"
            )
        if min(Lx, Ly, Lz, Lv, Lm) <= 0:
            raise ValueError("Domain lengths must be positive")

        dx = Lx / Nx
        X = -0.5 * Lx + dx * (np.arange(Nx + 2 * HALO) - HALO)

        dv = 2.0 * Lv / (Nv - 1)
        V = -Lv + dv * (np.arange(Nv + 2 * HALO) - HALO)

        dz = Lz / Nz
        Z = dz * (np.arange(Nz + 2 * HALO) - HALO)

        if Nm > 1:
            nodes, weights = np.polynomial.legendre.leggauss(Nm)
            M = 0.5 * Lm * (nodes + 1.0)
            dm = 0.5 * Lm * weights
        else:
            M = np.zeros(1)
            dm = np.ones(1)

        return cls(
            Nx=Nx, Nky=Nky, Nz=Nz, Nv=Nv, Nm=Nm, Ns=Ns,
            Lx=float(Lx), Ly=float(Ly), Lz=float(Lz), Lv=float(Lv), Lm=float(Lm),
            X=jnp.asarray(X), V=jnp.asarray(V), Z=jnp.asarray(Z),
            M=jnp.asarray(M), dm=jnp.asarray(dm),
        )

    # -------------------------------------------------------------------------
    # Spacings and sizes
    # -------------------------------------------------------------------------

    @property
    def dx(self) -> float:
        return self.Lx / self.Nx

    @property
    def dv(self) -> float:
        return 2.0 * self.Lv / (self.Nv - 1)

    @property
    def dz(self) -> float:
        return self.Lz / self.Nz

    @property
    def Ny(self) -> int:
        """Real-space poloidal resolution matching Nky stored modes."""
        return 2 * (self.Nky - 1)

    @property
    def shape(self) -> Tuple[int, ...]:
        """Shape of f, f0, ft and the collision array (with halos)."""
        return (
            self.Ns,
            self.Nm,
            self.Nz + 2 * HALO,
            self.Nky,
            self.Nx + 2 * HALO,
            self.Nv + 2 * HALO,
        )

    def field_shape(self, n_fields: int) -> Tuple[int, ...]:
        """Shape of the gyro-averaged field array [Nq, Ns, Nm, z, ky, x]."""
        return (n_fields, self.Ns, self.Nm, self.Nz + 2 * HALO, self.Nky, self.Nx + 2 * HALO)

    def field0_shape(self, n_fields: int) -> Tuple[int, ...]:
        """Shape of the drift-coordinate fields [Nq, z, ky, x] (domain only)."""
        return (n_fields, self.Nz, self.Nky, self.Nx)

    # -------------------------------------------------------------------------
    # Locally owned ranges
    # -------------------------------------------------------------------------

    @property
    def z_domain(self) -> slice:
        return slice(HALO, HALO + self.Nz)

    @property
    def x_domain(self) -> slice:
        return slice(HALO, HALO + self.Nx)

    @property
    def v_domain(self) -> slice:
        return slice(HALO, HALO + self.Nv)

    @property
    def domain(self) -> Tuple[slice, ...]:
        """Index tuple selecting the owned range of a distribution array."""
        return (slice(None), slice(None), self.z_domain, slice(None), self.x_domain, self.v_domain)

    @property
    def field_domain(self) -> Tuple[slice, ...]:
        """Index tuple selecting the owned range of a field array."""
        return (slice(None), slice(None), slice(None), self.z_domain, slice(None), self.x_domain)

    # -------------------------------------------------------------------------
    # Poloidal wavenumbers
    # -------------------------------------------------------------------------

    def ky(self, mode) -> Array:
        """Poloidal wavenumber for a signed mode index (scalar or array)."""
        return 2.0 * jnp.pi * jnp.asarray(mode) / self.Ly

    @property
    def ky_table(self) -> Array:
        """Wavenumbers of the stored modes (shape: [Nky])."""
        return self.ky(jnp.arange(self.Nky))

    @property
    def X_domain(self) -> Array:
        return self.X[self.x_domain]

    @property
    def V_domain(self) -> Array:
        return self.V[self.v_domain]
