"""
Explicit Runge-Kutta driver for the island gyrokinetic system.

Each scheme is a table of stages (rk, dt_fraction) fed to the low-storage
accumulation of the Vlasov integrator

    ft_new  = rk[0]·ft + rk[1]·dg/dt
    f_stage = f_ref + (rk[2]·ft_new + dg/dt)·dt·dt_fraction

where f_ref is the input of the first stage. Per stage the driver

1. refreshes the halos of the stage input (boundary exchange)
2. solves the fields
3. evaluates the collision term
4. calls the Vlasov integrator

Example usage:
    >>> stepper = TimeStepper(vlasov, solver, NoCollisions(grid), scheme="RK3")
    >>> state = SimulationState.create(grid, f)
    >>> dt = compute_cfl_timestep(grid, plasma, geometry, max_exb=0.0)
    >>> state = advance(state, f0, dt, n_steps=100, stepper=stepper)
"""

from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

import numpy as np
import jax.numpy as jnp
from jax import Array
from pydantic import BaseModel, Field, ConfigDict, field_validator

from gkisland.collisions import CollisionOperator
from gkisland.fields import FieldSolver
from gkisland.geometry import Geometry
from gkisland.grid import HALO, PhaseSpaceGrid
from gkisland.plasma import Plasma
from gkisland.vlasov import VlasovIntegrator


RKStage = Tuple[Tuple[float, float, float], float]

RK_SCHEMES: Dict[str, List[RKStage]] = {
    "Euler": [((0.0, 0.0, 0.0), 1.0)],
    # Heun's third-order method
    "RK3": [
        ((0.0, 1.0, 0.0), 1.0 / 3.0),
        ((1.0, 0.0, 0.0), 2.0 / 3.0),
        ((1.0, 0.0, 1.0 / 3.0), 3.0 / 4.0),
    ],
    "RK4": [
        ((0.0, 1.0, 0.0), 1.0 / 2.0),
        ((1.0, 2.0, 0.0), 1.0 / 2.0),
        ((1.0, 2.0, 0.0), 1.0),
        ((1.0, 0.0, 1.0), 1.0 / 6.0),
    ],
}


class PhaseSpaceFields(NamedTuple):
    """
    Lightweight container for the hot path.

    Use this inside stepping loops; convert to/from SimulationState at
    boundaries.
    """
    f: Array
    time: float
    step: int


class SimulationState(BaseModel):
    """
    Validated simulation state.

    Attributes:
        f: Distribution [Ns, Nm, Nz+4, Nky, Nx+4, Nv+4]
        time: Simulation time
        step: Completed time steps
        grid: Phase-space grid
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    f: Array
    time: float = Field(default=0.0, ge=0.0)
    step: int = Field(default=0, ge=0)
    grid: PhaseSpaceGrid

    @field_validator("f")
    @classmethod
    def validate_rank(cls, v: Array) -> Array:
        if v.ndim != 6:
            raise ValueError(f"Distribution must be 6D, got shape {v.shape}")
        return v

    @classmethod
    def create(cls, grid: PhaseSpaceGrid, f: Optional[Array] = None, time: float = 0.0) -> "SimulationState":
        """State on `grid`, zero distribution if `f` is None."""
        if f is None:
            f = jnp.zeros(grid.shape, dtype=jnp.complex128)
        if f.shape != grid.shape:
            raise ValueError(f"Distribution shape {f.shape} does not match grid {grid.shape}")
        return cls(f=f, time=time, grid=grid)

    def to_fields(self) -> PhaseSpaceFields:
        return PhaseSpaceFields(f=self.f, time=self.time, step=self.step)

    def with_fields(self, fields: PhaseSpaceFields) -> "SimulationState":
        return SimulationState(f=fields.f, time=fields.time, step=fields.step, grid=self.grid)


# =============================================================================
# Boundary exchange
# =============================================================================


def periodic_halo_exchange(f: Array) -> Array:
    """
    Single-process boundary exchange for a distribution array.

    Periodic in z and x, zero halo in v∥.
    """
    owned = f[:, :, HALO:-HALO, :, HALO:-HALO, HALO:-HALO]
    wrapped = jnp.pad(
        owned, [(0, 0), (0, 0), (HALO, HALO), (0, 0), (HALO, HALO), (0, 0)], mode="wrap"
    )
    return jnp.pad(wrapped, [(0, 0)] * 5 + [(HALO, HALO)])


# =============================================================================
# Driver
# =============================================================================


class TimeStepper:
    """
    Runge-Kutta driver binding the Vlasov integrator to its collaborators.

    Args:
        vlasov: Vlasov integrator (owns the ft buffer)
        solver: Field solver
        collisions: Collision operator
        scheme: Name in RK_SCHEMES
        exchange: Boundary exchange applied to every stage input

    Raises:
        ValueError: On unknown scheme names
    """

    def __init__(
        self,
        vlasov: VlasovIntegrator,
        solver: FieldSolver,
        collisions: CollisionOperator,
        scheme: str = "RK3",
        exchange: Callable[[Array], Array] = periodic_halo_exchange,
    ):
        if scheme not in RK_SCHEMES:
            raise ValueError(f"Unknown time integration scheme '{scheme}', expected one of {sorted(RK_SCHEMES)}")
        self.vlasov = vlasov
        self.solver = solver
        self.collisions = collisions
        self.scheme = scheme
        self.stages = RK_SCHEMES[scheme]
        self.exchange = exchange

    def step(self, f: Array, f0: Array, dt: float) -> Array:
        """One full time step."""
        return rk_step(f, f0, dt, self.vlasov, self.solver, self.collisions, self.stages, self.exchange)


def rk_step(
    f: Array,
    f0: Array,
    dt: float,
    vlasov: VlasovIntegrator,
    solver: FieldSolver,
    collisions: CollisionOperator,
    stages: List[RKStage],
    exchange: Callable[[Array], Array] = periodic_halo_exchange,
) -> Array:
    """
    Advance `f` by one time step through all stages of a scheme.

    Returns:
        Distribution at t + dt with refreshed halos
    """
    f_ref = exchange(f)
    f_stage = f_ref
    for index, (rk, fraction) in enumerate(stages, start=1):
        f_in = exchange(f_stage)
        field_state = solver.solve(f0, f_in)
        coll = collisions.compute(f_in, f0)
        f_stage, _ = vlasov.solve(f_in, f_ref, f0, field_state, coll, dt * fraction, index, rk)
    return exchange(f_stage)


def advance(
    state: SimulationState,
    f0: Array,
    dt: float,
    n_steps: int,
    stepper: TimeStepper,
    callback: Optional[Callable[[PhaseSpaceFields], None]] = None,
) -> SimulationState:
    """
    Advance a state by `n_steps` fixed time steps.

    Args:
        state: Initial state
        f0: Maxwellian background
        dt: Time step
        n_steps: Number of steps
        stepper: Configured TimeStepper
        callback: Called with the hot-path fields after every step

    Returns:
        State after n_steps
    """
    if dt <= 0.0:
        raise ValueError(f"Time step must be positive, got {dt}")

    fields = state.to_fields()
    for _ in range(n_steps):
        f = stepper.step(fields.f, f0, dt)
        fields = PhaseSpaceFields(f=f, time=fields.time + dt, step=fields.step + 1)
        if callback is not None:
            callback(fields)
    return state.with_fields(fields)


def compute_cfl_timestep(
    grid: PhaseSpaceGrid,
    plasma: Plasma,
    geometry: Geometry,
    max_exb: float = 0.0,
    cfl_safety: float = 0.3,
    dt_max: float = 0.1,
) -> float:
    """
    Maximum stable time step from parallel streaming and E×B advection.

        dt ≤ C / (max_s α_s · Lv · max|k∥| + v_E×B · (1/Δx + ky_max))

    Args:
        grid: Phase-space grid
        plasma: Plasma parameters (α per species)
        geometry: Geometry providing k∥
        max_exb: Maximum E×B velocity from the last nonlinear evaluation
        cfl_safety: Safety factor C ∈ (0, 1)
        dt_max: Upper bound returned when no rate limits the step

    Returns:
        Time step

    Example:
        >>> dt = compute_cfl_timestep(grid, plasma, ShearedSlab(), vlasov.max_exb)
    """
    alpha_max = max(s.v_th / plasma.cs for s in plasma.species)
    kp_max = float(jnp.max(jnp.abs(geometry.k_parallel(grid))))
    ky_max = float(grid.ky(grid.Nky - 1))

    rate = alpha_max * grid.Lv * kp_max + max_exb * (1.0 / grid.dx + ky_max)
    if not np.isfinite(rate) or rate <= 0.0:
        return float(dt_max)
    return float(min(dt_max, cfl_safety / rate))
