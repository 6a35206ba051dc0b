"""
Tests for parameter validation.
"""

import numpy as np
import pytest

from gkisland.validation import (
    ValidationResult,
    validate_charge_neutrality,
    validate_config_dict,
    validate_equation_type,
    validate_island,
    validate_timestep,
)


SMALL_GRID = {"Nx": 8, "Nky": 4, "Nz": 1, "Nv": 8, "Nm": 1, "Lx": 10.0}


class TestEquationType:
    """Test equation type validation."""

    @pytest.mark.parametrize(
        "equation",
        ["2D_Island", "2D_Island_Orig", "2D_Island_EM", "2D_Island_Filter", "2D_Island_Equi"],
    )
    def test_known(self, equation):
        assert validate_equation_type(equation).valid

    def test_unknown(self):
        result = validate_equation_type("Island")
        assert not result.valid
        assert "Island" in result.errors[0]
        assert "2D_Island_Equi" in result.suggestions[0]


class TestChargeNeutrality:
    """Test Σ q n = 0 and the mass floor."""

    def test_neutral(self):
        assert validate_charge_neutrality([(1.0, 1.0), (-1.0, 1.0)]).valid

    def test_violated(self):
        result = validate_charge_neutrality([(1.0, 1.0), (-1.0, 0.5)])
        assert not result.valid
        assert "neutrality" in result.errors[0]
        assert len(result.suggestions) > 0

    def test_multiple_ion_species(self):
        """Two ion species balanced by electrons."""
        assert validate_charge_neutrality([(1.0, 0.6), (2.0, 0.2), (-1.0, 1.0)]).valid

    def test_mass_floor(self):
        result = validate_charge_neutrality([(1.0, 1.0), (-1.0, 1.0)], masses=[1.0, 0.0])
        assert not result.valid
        assert "Species 2" in result.errors[0]


class TestIsland:
    """Test island validation."""

    def test_disabled(self):
        assert validate_island(0.0, 2 * np.pi, mode=1, Nky=2).valid

    def test_reachable(self):
        result = validate_island(2.0, 2 * np.pi, mode=1, Nky=8, Lx=20.0)
        assert result.valid
        assert len(result.warnings) == 0

    def test_unreachable_width(self):
        result = validate_island(1.0e3, 2 * np.pi, mode=1, Nky=8)
        assert not result.valid
        assert "not reachable" in result.errors[0]

    def test_unresolved_mode(self):
        result = validate_island(1.0, 2 * np.pi, mode=3, Nky=4)
        assert not result.valid
        assert "not resolved" in result.errors[0]

    def test_wide_island_warning(self):
        result = validate_island(4.0, 2 * np.pi, mode=1, Nky=8, Lx=6.0)
        assert result.valid
        assert "exceeds" in result.warnings[0]

    def test_negative_width(self):
        assert not validate_island(-1.0, 2 * np.pi, mode=1, Nky=8).valid


class TestTimestep:
    """Test CFL validation."""

    def test_safe(self):
        result = validate_timestep(0.01, 0.1)
        assert result.valid
        assert len(result.warnings) == 0

    def test_near_limit(self):
        result = validate_timestep(0.09, 0.1)
        assert result.valid
        assert "near limit" in result.warnings[0]

    def test_violated(self):
        result = validate_timestep(0.2, 0.1)
        assert not result.valid
        assert "CFL condition violated" in result.errors[0]

    @pytest.mark.parametrize("dt,dt_cfl", [(0.0, 0.1), (-1.0, 0.1), (0.1, 0.0)])
    def test_invalid_inputs(self, dt, dt_cfl):
        assert not validate_timestep(dt, dt_cfl).valid


class TestValidationResult:
    """Test result merging and reporting."""

    def test_merge(self):
        good = ValidationResult(True, ["w"], [], [])
        bad = ValidationResult(False, [], ["e"], ["s"])
        merged = good.merge(bad)
        assert not merged.valid
        assert merged.warnings == ["w"]
        assert merged.errors == ["e"]
        assert merged.suggestions == ["s"]

    def test_merge_checks(self):
        first = ValidationResult(True, [], [], [], ["island"])
        second = ValidationResult(True, [], [], [], ["island", "CFL"])
        assert first.merge(second).checks == ["island", "CFL"]

    def test_report_valid(self, capsys):
        ValidationResult(True, [], [], [], ["equation type", "island"]).print_report()
        out = capsys.readouterr().out
        assert "Island run parameters valid" in out
        assert "equation type, island" in out

    def test_report_errors(self, capsys):
        ValidationResult(False, ["careful"], ["broken"], ["fix it"], ["CFL"]).print_report()
        out = capsys.readouterr().out
        assert "Checked: CFL" in out
        assert "ERRORS" in out
        assert "broken" in out
        assert "careful" in out
        assert "fix it" in out


class TestConfigDict:
    """Test whole-configuration validation."""

    def test_valid_config(self):
        config = {
            "grid": SMALL_GRID,
            "island": {"width": 2.0},
            "vlasov": {"equation": "2D_Island"},
            "time": {"dt": 0.002},
        }
        result = validate_config_dict(config)
        assert result.valid, result.errors
        assert result.checks == ["equation type", "charge neutrality", "island", "CFL"]

    def test_defaults_valid(self):
        assert validate_config_dict({}).valid

    def test_schema_error(self):
        result = validate_config_dict({"grid": {"Nx": -4}})
        assert not result.valid
        assert result.checks == ["schema"]
        assert result.errors[0].startswith("grid.Nx")

    def test_unknown_equation(self):
        result = validate_config_dict({"grid": SMALL_GRID, "vlasov": {"equation": "2D_Vlasov"}})
        assert not result.valid
        assert "2D_Vlasov" in result.errors[0]

    def test_non_neutral(self):
        config = {"grid": SMALL_GRID, "plasma": {"adiabatic": None}}
        result = validate_config_dict(config)
        assert not result.valid
        assert "neutrality" in result.errors[0]

    def test_demoted_neutrality(self):
        config = {"grid": SMALL_GRID, "plasma": {"adiabatic": None, "check_total_charge": False}}
        result = validate_config_dict(config)
        assert result.valid
        assert "neutrality" in result.warnings[0]

    def test_em_requires_beta(self):
        config = {"grid": SMALL_GRID, "vlasov": {"equation": "2D_Island_EM"}}
        result = validate_config_dict(config)
        assert not result.valid
        assert "beta" in result.errors[0]

    def test_em_with_beta(self):
        config = {"grid": SMALL_GRID, "plasma": {"beta": 0.01}, "vlasov": {"equation": "2D_Island_EM"}}
        assert validate_config_dict(config).valid

    def test_cfl_violation(self):
        result = validate_config_dict({"grid": SMALL_GRID, "time": {"dt": 1.0}})
        assert not result.valid
        assert any("CFL" in err for err in result.errors)

    def test_shearless_without_streaming_skips_cfl(self):
        """No streaming rate: any dt passes the linear CFL check."""
        config = {"grid": SMALL_GRID, "geometry": {"type": "shearless_slab", "kz": 0.0}, "time": {"dt": 1.0}}
        result = validate_config_dict(config)
        assert result.valid
        assert "CFL" not in result.checks
