"""
Species and plasma parameter table.

The plasma is described by an immutable Pydantic model holding one optional
adiabatic (Boltzmann) species and any number of kinetic species. Derived
per-species coefficients are packed into a SpeciesTable of JAX arrays that
is passed explicitly into every kernel, so there is no global species state.

Physical-consistency checks run at construction:
- Charge neutrality: |Σ_s q_s n_s| ≤ 1e-8 (adiabatic species included)
- Mass floor: m_s ≥ 1e-10 for every kinetic species

Both are fatal by default and can be demoted to warnings.

Normalisation (local gyrokinetics, reference quantities default to 1):
- Thermal velocity  v_th = √(2 T₀ / m)
- Streaming factor  α = v_th / c_s
- Adiabatic factor  σ = q / T₀
"""

import ast
import operator
import warnings
from typing import Callable, NamedTuple, Optional, Tuple, Literal

import numpy as np
import jax.numpy as jnp
from jax import Array
from pydantic import BaseModel, Field, ConfigDict, model_validator

from gkisland.errors import (
    ChargeNeutralityError,
    ProfileExpressionError,
    SpeciesMassError,
)
from gkisland.grid import PhaseSpaceGrid


CHARGE_NEUTRALITY_TOLERANCE = 1.0e-8
MASS_FLOOR = 1.0e-10


class Species(BaseModel):
    """
    Kinetic species.

    Attributes:
        name: Species label
        q: Charge
        m: Mass
        n0: Background density
        T0: Background temperature
        w_n: Density gradient drive (L_ref / L_n)
        w_T: Temperature gradient drive (L_ref / L_T)
        gyro_model: "Gyro" (full gyro-average) or "Gyro-1" (first-order
            finite-Larmor-radius approximation)
        n_profile: Optional expression n(x) for global profiles
        T_profile: Optional expression T(x) for global profiles
    """

    model_config = ConfigDict(frozen=True)

    name: str = "Unnamed"
    q: float = 1.0
    m: float = Field(default=1.0, ge=0.0)
    n0: float = Field(default=0.0, ge=0.0)
    T0: float = Field(default=1.0, gt=0.0)
    w_n: float = 0.0
    w_T: float = 0.0
    gyro_model: Literal["Gyro", "Gyro-1"] = "Gyro"
    n_profile: Optional[str] = None
    T_profile: Optional[str] = None

    @property
    def do_gyro(self) -> bool:
        return self.gyro_model == "Gyro"

    @property
    def v_th(self) -> float:
        return float(np.sqrt(2.0 * self.T0 / self.m)) if self.m > 0 else 0.0

    @property
    def offset(self) -> float:
        """Energy offset of the temperature-gradient drive (3/2 or 1/2)."""
        return 1.5 if self.do_gyro else 0.5


class AdiabaticSpecies(BaseModel):
    """Boltzmann-responding species (enters only the field equations)."""

    model_config = ConfigDict(frozen=True)

    name: str = "Unnamed(ad.)"
    q: float = 1.0
    n0: float = Field(default=0.0, ge=0.0)
    T0: float = Field(default=1.0, gt=0.0)


class Plasma(BaseModel):
    """
    Immutable plasma parameter table.

    Example:
        >>> plasma = Plasma(
        ...     species=(Species(name="Ion", q=1.0, m=1.0, n0=1.0, w_n=1.0, w_T=3.0),),
        ...     adiabatic=AdiabaticSpecies(name="Electron", q=-1.0, n0=1.0),
        ... )
        >>> plasma.n_fields
        1
    """

    model_config = ConfigDict(frozen=True)

    species: Tuple[Species, ...] = Field(min_length=1)
    adiabatic: Optional[AdiabaticSpecies] = None
    B0: float = Field(default=1.0, gt=0.0)
    beta: float = Field(default=0.0, ge=0.0)
    cs: float = Field(default=1.0, gt=0.0)
    eps_hat: float = 1.0
    debye2: float = Field(default=0.0, ge=0.0)
    n_ref: float = 1.0
    c_ref: float = 1.0
    T_ref: float = 1.0
    L_ref: float = 1.0
    rho_ref: float = 1.0
    bp: bool = False
    check_total_charge: bool = True
    check_mass: bool = True

    @model_validator(mode="after")
    def check_consistency(self) -> "Plasma":
        """Mass floor and charge neutrality gates."""
        for s in self.species:
            if s.m < MASS_FLOOR:
                message = f"Mass for species {s.name} chosen too low (m={s.m:g} < {MASS_FLOOR:g})"
                if self.check_mass:
                    raise SpeciesMassError(message)
                warnings.warn(message, RuntimeWarning)

        rho0_tot = total_charge_density(self)
        if abs(rho0_tot) > CHARGE_NEUTRALITY_TOLERANCE:
            message = (
                f"Violating charge neutrality: Σ q·n = {rho0_tot:.3e}, "
                f"check species charges and densities"
            )
            if self.check_total_charge:
                raise ChargeNeutralityError(message)
            warnings.warn(message, RuntimeWarning)
        return self

    @property
    def Ns(self) -> int:
        return len(self.species)

    @property
    def n_fields(self) -> int:
        """Number of field components: φ, + A∥ if β > 0, + B∥ if enabled."""
        if self.beta <= 0.0:
            return 1
        return 3 if self.bp else 2

    def summary(self) -> str:
        """Human-readable species table."""
        lines = []
        if self.adiabatic is not None and self.adiabatic.n0 != 0.0:
            a = self.adiabatic
            lines.append(f"Species  0 | {a.name}  n : {a.n0:g}  q : {a.q:g}  T : {a.T0:g} (adiabatic)")
        else:
            lines.append("Species  0 | -- no adiabatic species --")
        for i, s in enumerate(self.species, start=1):
            lines.append(
                f"         {i} | {s.name:>12}  n : {s.n0:.2g}  q : {s.q:.2g}  m : {s.m:.2g}"
                f"  T : {s.T0:.2g}  ωn : {s.w_n:.2g}  ωT : {s.w_T:.2g}  Model : {s.gyro_model}"
            )
        return "\n".join(lines)


def total_charge_density(plasma: Plasma) -> float:
    """Σ_s q_s n_s over kinetic and adiabatic species."""
    rho = sum(s.q * s.n0 for s in plasma.species)
    if plasma.adiabatic is not None:
        rho += plasma.adiabatic.q * plasma.adiabatic.n0
    return float(rho)


# =============================================================================
# Packed per-species coefficients (explicit configuration context)
# =============================================================================


class SpeciesTable(NamedTuple):
    """
    Per-species coefficients as JAX arrays of shape [Ns].

    This is the hot-path view of Plasma: a PyTree that can be passed into
    jit-compiled kernels.
    """
    q: Array
    m: Array
    n0: Array
    T0: Array
    w_n: Array
    w_T: Array
    v_th: Array
    alpha: Array
    sigma: Array
    offset: Array
    rho_t2: Array
    gyro1: Array  # bool, first-order FLR model


def species_table(plasma: Plasma) -> SpeciesTable:
    """Pack derived per-species coefficients."""
    sp = plasma.species
    q = np.array([s.q for s in sp])
    m = np.array([s.m for s in sp])
    T0 = np.array([s.T0 for s in sp])
    v_th = np.array([s.v_th for s in sp])
    return SpeciesTable(
        q=jnp.asarray(q),
        m=jnp.asarray(m),
        n0=jnp.asarray([s.n0 for s in sp]),
        T0=jnp.asarray(T0),
        w_n=jnp.asarray([s.w_n for s in sp]),
        w_T=jnp.asarray([s.w_T for s in sp]),
        v_th=jnp.asarray(v_th),
        alpha=jnp.asarray(v_th / plasma.cs),
        sigma=jnp.asarray(q / T0),
        offset=jnp.asarray([s.offset for s in sp]),
        rho_t2=jnp.asarray(T0 * m / (q**2 * plasma.B0)),
        gyro1=jnp.asarray([s.gyro_model == "Gyro-1" for s in sp]),
    )


# =============================================================================
# Global profiles
# =============================================================================

_PROFILE_FUNCTIONS = {
    "exp": np.exp,
    "log": np.log,
    "sqrt": np.sqrt,
    "tanh": np.tanh,
    "cosh": np.cosh,
    "sinh": np.sinh,
    "sin": np.sin,
    "cos": np.cos,
    "abs": np.abs,
}
_PROFILE_CONSTANTS = {"pi": np.pi, "e": np.e}
_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS = {ast.USub: operator.neg, ast.UAdd: operator.pos}


def _check_profile_node(node: ast.AST, expression: str) -> None:
    """Reject anything but arithmetic on x, numbers, known functions and constants."""
    def fail(reason):
        raise ProfileExpressionError(f"Parsing error of profile '{expression}': {reason}")

    if isinstance(node, ast.Expression):
        _check_profile_node(node.body, expression)
    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            fail(f"constant {node.value!r} not allowed")
    elif isinstance(node, ast.Name):
        if node.id != "x" and node.id not in _PROFILE_CONSTANTS:
            fail(f"unknown name '{node.id}'")
    elif isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPERATORS:
            fail(f"{type(node.op).__name__} not allowed")
        _check_profile_node(node.left, expression)
        _check_profile_node(node.right, expression)
    elif isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPERATORS:
            fail(f"{type(node.op).__name__} not allowed")
        _check_profile_node(node.operand, expression)
    elif isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _PROFILE_FUNCTIONS:
            fail("unknown function")
        if node.keywords or len(node.args) != 1:
            fail(f"{node.func.id} takes exactly one argument")
        _check_profile_node(node.args[0], expression)
    else:
        fail(f"{type(node).__name__} not allowed")


def _evaluate_profile_node(node: ast.AST, x: np.ndarray):
    if isinstance(node, ast.Expression):
        return _evaluate_profile_node(node.body, x)
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        return x if node.id == "x" else _PROFILE_CONSTANTS[node.id]
    if isinstance(node, ast.BinOp):
        left = _evaluate_profile_node(node.left, x)
        right = _evaluate_profile_node(node.right, x)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate_profile_node(node.operand, x))
    # Call, validated by _check_profile_node
    return _PROFILE_FUNCTIONS[node.func.id](_evaluate_profile_node(node.args[0], x))


def parse_profile(expression: str) -> Callable[[np.ndarray], np.ndarray]:
    """
    Compile a radial profile expression in `x`, e.g. "1 + 0.1*tanh(x/2)".

    The caret is accepted as power operator. Only arithmetic, the functions
    in _PROFILE_FUNCTIONS and the constants pi and e are allowed. The
    expression tree is checked once and then evaluated node by node on numpy
    arrays; nothing is handed to the interpreter.

    Raises:
        ProfileExpressionError: On syntax errors or disallowed constructs
    """
    source = expression.replace("^", "**").strip()
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ProfileExpressionError(f"Parsing error of profile '{expression}': {exc.msg}") from exc
    _check_profile_node(tree, expression)

    def profile(x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return np.broadcast_to(_evaluate_profile_node(tree, x), np.shape(x)).astype(float)

    return profile


def species_profiles(plasma: Plasma, grid: PhaseSpaceGrid) -> Tuple[Array, Array]:
    """
    Density and temperature profiles n_s(x), T_s(x) over the radial range with halo.

    Species without a profile expression get flat profiles at n0, T0.

    Returns:
        (n, T), each of shape [Ns, Nx + 2*HALO]
    """
    X = np.asarray(grid.X)
    n, T = [], []
    for s in plasma.species:
        n.append(parse_profile(s.n_profile)(X) if s.n_profile else np.full_like(X, s.n0))
        T.append(parse_profile(s.T_profile)(X) if s.T_profile else np.full_like(X, s.T0))
    return jnp.asarray(np.stack(n)), jnp.asarray(np.stack(T))


def maxwellian_background(grid: PhaseSpaceGrid, plasma: Plasma) -> Array:
    """
    Time-invariant Maxwellian background f0 on the full grid (with halos).

        Gyro   : f0 = n / (πT)^{3/2} · exp(-v²/T) · exp(-μ/T)
        Gyro-1 : f0 = n / (πT)^{3/2} · exp(-v²/T) · T / Nm

    The background is a real-space multiplier of the modal fields, so the
    same profile is stored at every poloidal mode.

    Returns:
        Complex array of shape grid.shape
    """
    n, T = species_profiles(plasma, grid)
    n = n[:, None, None, :, None]        # [Ns, 1, 1, x, 1]
    T = T[:, None, None, :, None]
    V = grid.V[None, None, None, None, :]
    M = grid.M[None, :, None, None, None]
    do_gyro = jnp.asarray([s.do_gyro for s in plasma.species])[:, None, None, None, None]

    parallel = n / (jnp.pi * T) ** 1.5 * jnp.exp(-V**2 / T)
    perpendicular = jnp.where(do_gyro, jnp.exp(-M / T), T / grid.Nm)
    f0_x = (parallel * perpendicular)[:, :, :, None]     # [Ns, Nm, 1, 1, x, v]

    return jnp.broadcast_to(f0_x, grid.shape).astype(jnp.complex128)
