"""
gkisland: Gyrokinetic phase-space time advance with magnetic island coupling

Evolves the perturbed gyrocenter distribution g(s, μ, z, ky, x, v∥) of a
multi-species plasma in a sheared slab, coupled to a static magnetic
island that links poloidal modes k and k ± i.

Components:
- Moments engine: charge-weighted velocity moments with field corrections
- Vlasov integrator: drive, Landau, island, E×B and collision terms with
  five discretisation variants and low-storage Runge-Kutta accumulation
- Island coupling: separatrix-width calibration and mode-triad coupling
- Field solver: quasi-neutrality, Ampère and B∥ in the local limit
- Ξ/G adapter and pseudo-spectral E×B nonlinearity

Key features:
- JAX arrays with 64-bit precision
- pydantic-validated configuration, grid and plasma parameters
- YAML run files, HDF5 output, matplotlib diagnostics
"""

from jax import config as _jax_config

_jax_config.update("jax_enable_x64", True)

__version__ = "0.1.0"

from gkisland.errors import (
    GKIslandError,
    ConfigurationError,
    UnknownEquationError,
    ProfileExpressionError,
    IslandConfigurationError,
    PhysicalConsistencyError,
    ChargeNeutralityError,
    SpeciesMassError,
)

from gkisland.grid import HALO, PhaseSpaceGrid

from gkisland.plasma import (
    Species,
    AdiabaticSpecies,
    Plasma,
    total_charge_density,
    species_table,
    maxwellian_background,
)

from gkisland.geometry import Geometry, ShearedSlab, ShearlessSlab

from gkisland.island import (
    IslandConfig,
    IslandProfile,
    island_width,
    calibrate_scale,
    island_coupling,
)

from gkisland.fields import PHI, AP, BP, FieldState, FieldSolver, SpectralFieldSolver

from gkisland.moments import MomentsEngine

from gkisland.nonlinear import exb_nonlinearity, build_xi_and_g

from gkisland.collisions import CollisionOperator, NoCollisions, KrookCollisions

from gkisland.vlasov import EquationType, VlasovIntegrator, make_scheme, rk_accumulate

from gkisland.timestepping import (
    RK_SCHEMES,
    SimulationState,
    TimeStepper,
    advance,
    compute_cfl_timestep,
    periodic_halo_exchange,
)

from gkisland.config import SimulationConfig

__all__ = [
    "__version__",
    # Errors
    "GKIslandError",
    "ConfigurationError",
    "UnknownEquationError",
    "ProfileExpressionError",
    "IslandConfigurationError",
    "PhysicalConsistencyError",
    "ChargeNeutralityError",
    "SpeciesMassError",
    # Grid and plasma
    "HALO",
    "PhaseSpaceGrid",
    "Species",
    "AdiabaticSpecies",
    "Plasma",
    "total_charge_density",
    "species_table",
    "maxwellian_background",
    "Geometry",
    "ShearedSlab",
    "ShearlessSlab",
    # Island
    "IslandConfig",
    "IslandProfile",
    "island_width",
    "calibrate_scale",
    "island_coupling",
    # Fields and moments
    "PHI",
    "AP",
    "BP",
    "FieldState",
    "FieldSolver",
    "SpectralFieldSolver",
    "MomentsEngine",
    # Vlasov
    "exb_nonlinearity",
    "build_xi_and_g",
    "CollisionOperator",
    "NoCollisions",
    "KrookCollisions",
    "EquationType",
    "VlasovIntegrator",
    "make_scheme",
    "rk_accumulate",
    # Time integration
    "RK_SCHEMES",
    "SimulationState",
    "TimeStepper",
    "advance",
    "compute_cfl_timestep",
    "periodic_halo_exchange",
    "SimulationConfig",
]
