"""
Parameter validation for island gyrokinetic runs.

Checks a configuration before any array is allocated, so that fatal
configuration errors and likely numerical problems are reported together:
- Equation type is one of the known Vlasov variants
- Charge neutrality Σ q n = 0 and species mass floor
- Island width reachable by the calibration, island mode resolved
- CFL condition for parallel streaming and E×B advection
- Config file validation (schema plus all of the above)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from gkisland.errors import UnknownEquationError
from gkisland.island import SCALE_BRACKET, island_width
from gkisland.plasma import CHARGE_NEUTRALITY_TOLERANCE, MASS_FLOOR
from gkisland.vlasov import EquationType


DEFAULT_CFL_LIMIT = 1.0
CFL_WARNING_RATIO = 0.8  # Warn when CFL > 80% of limit
ISLAND_BOX_FRACTION = 0.5  # Warn when the island is wider than half the radial box


@dataclass
class ValidationResult:
    """
    Result of parameter validation.

    `checks` names the checks that produced the result (equation type,
    charge neutrality, island, CFL, schema), so a merged report shows what
    was and was not examined.
    """

    valid: bool
    warnings: List[str]
    errors: List[str]
    suggestions: List[str]
    checks: List[str] = field(default_factory=list)

    def print_report(self):
        """Print the island-run validation report."""
        checked = ", ".join(self.checks) if self.checks else "none"
        if self.valid and not self.warnings:
            print(f"✓ Island run parameters valid (checked: {checked})")
            return

        print(f"Checked: {checked}")

        if self.errors:
            print("\n❌ ERRORS (the run cannot be built):")
            for err in self.errors:
                print(f"  • {err}")

        if self.warnings:
            print("\n⚠️  WARNINGS (the run starts but may be inaccurate):")
            for warn in self.warnings:
                print(f"  • {warn}")

        if self.suggestions:
            print("\n💡 SUGGESTIONS:")
            for sug in self.suggestions:
                print(f"  • {sug}")

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Combine two results (valid only if both are)."""
        return ValidationResult(
            self.valid and other.valid,
            self.warnings + other.warnings,
            self.errors + other.errors,
            self.suggestions + other.suggestions,
            self.checks + [c for c in other.checks if c not in self.checks],
        )


def _passed(check: str) -> ValidationResult:
    return ValidationResult(True, [], [], [], [check])


def validate_equation_type(equation: str) -> ValidationResult:
    """Check that `equation` names one of the Vlasov variants."""
    try:
        EquationType.parse(equation)
    except UnknownEquationError as exc:
        known = ", ".join(e.value for e in EquationType)
        return ValidationResult(False, [], [str(exc)], [f"Use one of: {known}"], ["equation type"])
    return _passed("equation type")


def validate_charge_neutrality(
    charges_densities: Sequence[Tuple[float, float]],
    masses: Sequence[float] = (),
    tolerance: float = CHARGE_NEUTRALITY_TOLERANCE,
) -> ValidationResult:
    """
    Check Σ q n = 0 over all species and the mass floor of kinetic species.

    Args:
        charges_densities: (q, n0) of every species, adiabatic included
        masses: Masses of the kinetic species
        tolerance: Allowed |Σ q n|

    Returns:
        ValidationResult with errors for violations

    Example:
        >>> validate_charge_neutrality([(1.0, 1.0), (-1.0, 1.0)]).valid
        True
    """
    errors = []
    suggestions = []

    rho = sum(q * n for q, n in charges_densities)
    if abs(rho) > tolerance:
        errors.append(f"Charge neutrality violated: Σ q·n = {rho:.3e} (tolerance {tolerance:g})")
        suggestions.append("Adjust densities or add an adiabatic species to neutralise the plasma")

    for index, m in enumerate(masses):
        if m < MASS_FLOOR:
            errors.append(f"Species {index + 1} mass {m:g} below floor {MASS_FLOOR:g}")

    return ValidationResult(len(errors) == 0, [], errors, suggestions, ["charge neutrality"])


def validate_island(
    width: float,
    Ly: float,
    mode: int,
    Nky: int,
    Lx: Optional[float] = None,
) -> ValidationResult:
    """
    Check that the island can be calibrated and couples resolved modes.

    Args:
        width: Target full island width
        Ly: Poloidal domain length
        mode: Island mode offset
        Nky: Number of stored poloidal modes
        Lx: Radial domain length (optional, for the box-size warning)
    """
    errors = []
    warnings_list = []
    suggestions = []

    if width < 0.0:
        errors.append(f"Island width must be non-negative, got {width}")
        return ValidationResult(False, warnings_list, errors, suggestions, ["island"])

    if width > 0.0:
        max_width = island_width(SCALE_BRACKET[1], Ly)
        if width > max_width:
            errors.append(
                f"Island width {width} not reachable (maximum {max_width:.4g} for Ly = {Ly:.4g})"
            )
        if mode >= Nky - 1:
            errors.append(
                f"Island mode {mode} is not resolved (Nky = {Nky}, modes ≥ {Nky - 1} do not couple)"
            )
            suggestions.append(f"Increase Nky above {mode + 1}")
        if Lx is not None and width > ISLAND_BOX_FRACTION * Lx:
            warnings_list.append(
                f"Island width {width} exceeds {ISLAND_BOX_FRACTION:g}·Lx = {ISLAND_BOX_FRACTION * Lx:g}"
            )
            suggestions.append("Increase Lx so the separatrix stays away from the radial boundary")

    return ValidationResult(len(errors) == 0, warnings_list, errors, suggestions, ["island"])


def validate_timestep(
    dt: float,
    dt_cfl: float,
    cfl_limit: float = DEFAULT_CFL_LIMIT,
) -> ValidationResult:
    """
    Check a time step against the CFL estimate (compute_cfl_timestep with
    safety factor 1).

    Args:
        dt: Time step
        dt_cfl: Marginally stable time step
        cfl_limit: CFL stability limit
    """
    errors = []
    warnings_list = []
    suggestions = []

    if dt <= 0:
        errors.append(f"Invalid time step: dt = {dt} (must be > 0)")
        return ValidationResult(False, warnings_list, errors, suggestions, ["CFL"])
    if dt_cfl <= 0:
        errors.append(f"Invalid CFL time step: dt_cfl = {dt_cfl} (must be > 0)")
        return ValidationResult(False, warnings_list, errors, suggestions, ["CFL"])

    cfl_actual = dt / dt_cfl

    if cfl_actual > cfl_limit:
        errors.append(
            f"CFL condition violated: CFL = {cfl_actual:.3f} > {cfl_limit} "
            f"(CRITICAL: numerical instability likely)"
        )
        suggestions.append(f"Reduce dt to < {cfl_limit * dt_cfl:.4g}")
    elif cfl_actual > CFL_WARNING_RATIO * cfl_limit:
        warnings_list.append(
            f"CFL near limit: CFL = {cfl_actual:.3f} > {CFL_WARNING_RATIO * cfl_limit:.2f}"
        )
        suggestions.append("Consider using dt with safety factor 0.3-0.5 for robustness")
    else:
        suggestions.append(f"CFL = {cfl_actual:.3f} is safe (< {cfl_limit})")

    return ValidationResult(len(errors) == 0, warnings_list, errors, suggestions, ["CFL"])


def validate_config_dict(config: Dict) -> ValidationResult:
    """
    Validate a configuration dictionary (as loaded from YAML).

    Schema errors are reported first; the physical checks run only on a
    schema-valid configuration.

    Example:
        >>> config = {
        ...     "grid": {"Nx": 32, "Nky": 8},
        ...     "island": {"width": 2.0},
        ...     "vlasov": {"equation": "2D_Island"},
        ...     "time": {"dt": 0.01},
        ... }
        >>> validate_config_dict(config).print_report()
    """
    from gkisland.config import SimulationConfig
    from gkisland.timestepping import compute_cfl_timestep

    try:
        cfg = SimulationConfig.model_validate(config or {})
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        return ValidationResult(False, [], errors, [], ["schema"])

    result = validate_equation_type(cfg.vlasov.equation)

    p = cfg.plasma
    charges = [(s.q, s.n0) for s in p.species]
    if p.adiabatic is not None:
        charges.append((p.adiabatic.q, p.adiabatic.n0))
    neutrality = validate_charge_neutrality(charges, [s.m for s in p.species])
    if not p.check_total_charge or not p.check_mass:
        # Demoted checks become warnings
        neutrality = ValidationResult(True, neutrality.errors, [], neutrality.suggestions, neutrality.checks)
    result = result.merge(neutrality)

    if result.valid and cfg.vlasov.equation == EquationType.ISLAND_EM.value and p.beta <= 0.0:
        result = result.merge(ValidationResult(
            False, [], ["2D_Island_EM requires beta > 0 (parallel vector potential)"], [], ["fields"]
        ))

    result = result.merge(validate_island(
        cfg.island.width, cfg.grid.Ly, cfg.island.mode, cfg.grid.Nky, cfg.grid.Lx
    ))

    if result.valid:
        grid = cfg.build_grid()
        plasma = cfg.build_plasma()
        dt_cfl = compute_cfl_timestep(
            grid, plasma, cfg.build_geometry(), cfl_safety=1.0, dt_max=float("inf")
        )
        if dt_cfl != float("inf"):
            result = result.merge(validate_timestep(cfg.time.dt, dt_cfl))

    return result
