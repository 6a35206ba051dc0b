"""
Run configuration loaded from YAML.

A configuration file groups the parameters by component:

    grid:       {Nx: 32, Nky: 8, Nz: 1, Nv: 32, Nm: 1, Lx: 20.0, Ly: 6.283, Lv: 4.0}
    plasma:
      beta: 0.0
      adiabatic: {name: Electron, q: -1.0, n0: 1.0, T0: 1.0}
      species:
        - {name: Ion, q: 1.0, m: 1.0, n0: 1.0, T0: 1.0, w_n: 1.0, w_T: 3.0}
    island:     {width: 2.0, mode: 1}
    vlasov:     {equation: 2D_Island, nonlinear: false}
    moments:    {field_corrections: true}
    time:       {scheme: RK3, dt: 0.002, steps: 100}
    geometry:   {type: sheared_slab, shear: 0.4}
    collisions: {type: none}
    init:       {amplitude: 1.0e-4, seed: 0}

Every section is optional and falls back to the defaults below. Invalid
values raise pydantic.ValidationError; an unknown equation type raises
UnknownEquationError when the Vlasov integrator is built.

Example:
    >>> config = SimulationConfig.from_yaml("island.yaml")
    >>> setup = config.build()
    >>> state = advance(setup.state, setup.f0, config.time.dt, config.time.steps, setup.stepper)
"""

from pathlib import Path
from typing import List, Literal, NamedTuple, Optional, Tuple, Union

import numpy as np
import jax.numpy as jnp
from jax import Array
import yaml
from pydantic import BaseModel, ConfigDict, Field

from gkisland.collisions import CollisionOperator, KrookCollisions, NoCollisions
from gkisland.fields import SpectralFieldSolver
from gkisland.geometry import Geometry, ShearedSlab, ShearlessSlab
from gkisland.grid import PhaseSpaceGrid
from gkisland.island import IslandConfig, IslandProfile
from gkisland.moments import MomentsEngine
from gkisland.plasma import AdiabaticSpecies, Plasma, Species, maxwellian_background
from gkisland.timestepping import SimulationState, TimeStepper, periodic_halo_exchange
from gkisland.vlasov import EquationType, VlasovIntegrator


class GridConfig(BaseModel):
    """Grid resolution and domain sizes."""

    model_config = ConfigDict(extra="forbid")

    Nx: int = Field(default=32, ge=4)
    Nky: int = Field(default=8, ge=2)
    Nz: int = Field(default=1, gt=0)
    Nv: int = Field(default=32, ge=4)
    Nm: int = Field(default=1, gt=0)
    Lx: float = Field(default=20.0, gt=0.0)
    Ly: float = Field(default=2 * np.pi, gt=0.0)
    Lz: float = Field(default=2 * np.pi, gt=0.0)
    Lv: float = Field(default=4.0, gt=0.0)
    Lm: float = Field(default=8.0, gt=0.0)


class SpeciesConfig(BaseModel):
    """Kinetic species; gyro_model defaults to "Gyro" for Nm > 1, else "Gyro-1"."""

    model_config = ConfigDict(extra="forbid")

    name: str = "Unnamed"
    q: float = 1.0
    m: float = Field(default=1.0, ge=0.0)
    n0: float = Field(default=1.0, ge=0.0)
    T0: float = Field(default=1.0, gt=0.0)
    w_n: float = 0.0
    w_T: float = 0.0
    gyro_model: Optional[Literal["Gyro", "Gyro-1"]] = None
    n_profile: Optional[str] = None
    T_profile: Optional[str] = None


class AdiabaticConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "Electron"
    q: float = -1.0
    n0: float = Field(default=1.0, ge=0.0)
    T0: float = Field(default=1.0, gt=0.0)


class PlasmaConfig(BaseModel):
    """Global plasma parameters and species list."""

    model_config = ConfigDict(extra="forbid")

    B0: float = Field(default=1.0, gt=0.0)
    beta: float = Field(default=0.0, ge=0.0)
    cs: float = Field(default=1.0, gt=0.0)
    eps_hat: float = 1.0
    debye2: float = Field(default=0.0, ge=0.0)
    bp: bool = False
    check_total_charge: bool = True
    check_mass: bool = True
    adiabatic: Optional[AdiabaticConfig] = Field(default_factory=AdiabaticConfig)
    species: List[SpeciesConfig] = Field(default_factory=lambda: [SpeciesConfig(name="Ion")])


class VlasovConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    equation: str = EquationType.ISLAND.value
    nonlinear: bool = False
    hyper_viscosity: Tuple[float, float] = (0.0, 0.0)

    @property
    def equation_type(self) -> EquationType:
        return EquationType.parse(self.equation)


class MomentsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field_corrections: bool = True


class TimeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scheme: Literal["Euler", "RK3", "RK4"] = "RK3"
    dt: float = Field(default=0.002, gt=0.0)
    steps: int = Field(default=100, ge=0)
    output_every: int = Field(default=10, gt=0)


class GeometryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["sheared_slab", "shearless_slab"] = "sheared_slab"
    shear: float = 0.4
    kz: float = 0.0


class CollisionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["none", "krook"] = "none"
    nu: float = Field(default=0.0, ge=0.0)


class InitialConditionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amplitude: float = Field(default=1.0e-4, ge=0.0)
    seed: int = 0


class SimulationSetup(NamedTuple):
    """Components built from a SimulationConfig."""
    grid: PhaseSpaceGrid
    plasma: Plasma
    geometry: Geometry
    island: IslandProfile
    solver: SpectralFieldSolver
    moments: MomentsEngine
    vlasov: VlasovIntegrator
    collisions: CollisionOperator
    stepper: TimeStepper
    f0: Array
    state: SimulationState


class SimulationConfig(BaseModel):
    """Complete run configuration."""

    model_config = ConfigDict(extra="forbid")

    grid: GridConfig = Field(default_factory=GridConfig)
    plasma: PlasmaConfig = Field(default_factory=PlasmaConfig)
    island: IslandConfig = Field(default_factory=IslandConfig)
    vlasov: VlasovConfig = Field(default_factory=VlasovConfig)
    moments: MomentsConfig = Field(default_factory=MomentsConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    collisions: CollisionConfig = Field(default_factory=CollisionConfig)
    init: InitialConditionConfig = Field(default_factory=InitialConditionConfig)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SimulationConfig":
        """Load a configuration file (an empty file gives the defaults)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, sort_keys=False)

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def build_grid(self) -> PhaseSpaceGrid:
        g = self.grid
        return PhaseSpaceGrid.create(
            Nx=g.Nx, Nky=g.Nky, Nz=g.Nz, Nv=g.Nv, Nm=g.Nm, Ns=len(self.plasma.species),
            Lx=g.Lx, Ly=g.Ly, Lz=g.Lz, Lv=g.Lv, Lm=g.Lm,
        )

    def build_plasma(self) -> Plasma:
        """
        Raises:
            ChargeNeutralityError: If the species are not neutral (and the check is on)
            SpeciesMassError: If a species mass is below the floor (and the check is on)
        """
        p = self.plasma
        default_model = "Gyro" if self.grid.Nm > 1 else "Gyro-1"
        species = tuple(
            Species(**s.model_dump(exclude={"gyro_model"}), gyro_model=s.gyro_model or default_model)
            for s in p.species
        )
        adiabatic = AdiabaticSpecies(**p.adiabatic.model_dump()) if p.adiabatic is not None else None
        return Plasma(
            species=species, adiabatic=adiabatic, B0=p.B0, beta=p.beta, cs=p.cs,
            eps_hat=p.eps_hat, debye2=p.debye2, bp=p.bp,
            check_total_charge=p.check_total_charge, check_mass=p.check_mass,
        )

    def build_geometry(self) -> Geometry:
        g = self.geometry
        if g.type == "shearless_slab":
            return ShearlessSlab(kz=g.kz)
        return ShearedSlab(shear=g.shear)

    def build_island(self, grid: PhaseSpaceGrid) -> IslandProfile:
        return IslandProfile.create(grid, self.island)

    def build_collisions(self, grid: PhaseSpaceGrid) -> CollisionOperator:
        if self.collisions.type == "krook":
            return KrookCollisions(grid, self.collisions.nu)
        return NoCollisions(grid)

    def initial_perturbation(self, grid: PhaseSpaceGrid, f0: Array) -> Array:
        """
        Random perturbation g = A·ξ·f0(ky=0) on the owned range, ξ complex
        Gaussian per (s, μ, z, ky, x), real at ky = 0, Nyquist mode empty.
        """
        rng = np.random.default_rng(self.init.seed)
        shape = (grid.Ns, grid.Nm, grid.Nz, grid.Nky, grid.Nx)
        noise = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
        noise[:, :, :, 0, :] = noise[:, :, :, 0, :].real
        noise[:, :, :, -1, :] = 0.0

        background = np.asarray(f0[:, :, grid.z_domain, 0:1, grid.x_domain, grid.v_domain])
        g = self.init.amplitude * noise[..., None] * background
        f = jnp.zeros(grid.shape, dtype=jnp.complex128).at[grid.domain].set(g)
        return periodic_halo_exchange(f)

    def build(self) -> SimulationSetup:
        """Build every component of a run."""
        grid = self.build_grid()
        plasma = self.build_plasma()
        geometry = self.build_geometry()
        island = self.build_island(grid)
        solver = SpectralFieldSolver(grid, plasma, do_field_corrections=self.moments.field_corrections)
        vlasov = VlasovIntegrator(
            grid, plasma, geometry, island,
            equation_type=self.vlasov.equation,
            nonlinear=self.vlasov.nonlinear,
            hyper_viscosity=self.vlasov.hyper_viscosity,
        )
        collisions = self.build_collisions(grid)
        stepper = TimeStepper(vlasov, solver, collisions, scheme=self.time.scheme)
        f0 = maxwellian_background(grid, plasma)
        state = SimulationState.create(grid, self.initial_perturbation(grid, f0))
        return SimulationSetup(
            grid=grid, plasma=plasma, geometry=geometry, island=island, solver=solver,
            moments=solver.moments, vlasov=vlasov, collisions=collisions, stepper=stepper,
            f0=f0, state=state,
        )
