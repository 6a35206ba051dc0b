"""
Diagnostics for island gyrokinetic runs.

This module provides:
- Field energies per component (φ, A∥, B∥) from the drift-coordinate fields
- Poloidal mode amplitudes and linear growth-rate estimates
- Energy history tracking E(t)
- Plots of the energy history and the island profile

Energies use the two-sided poloidal spectrum: stored modes ky > 0 count
twice, the ky = 0 mode once.

Example usage:
    >>> history = EnergyHistory()
    >>> for step in range(100):
    ...     f = stepper.step(f, f0, dt)
    ...     history.append(t, vlasov.field_state.field0)
    >>> gamma = estimate_growth_rate(history.times, np.sqrt(history.E_phi))
    >>> plot_energy_history(history, show=False, filename="energy.png")
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import jax.numpy as jnp
from jax import Array
import matplotlib.pyplot as plt
import numpy as np

from gkisland.grid import PhaseSpaceGrid
from gkisland.island import IslandProfile

FIELD_NAMES = ("phi", "Ap", "Bp")


def _mode_weights(nky: int) -> Array:
    return jnp.where(jnp.arange(nky) == 0, 1.0, 2.0)


def field_energy(field0: Array) -> Dict[str, float]:
    """
    Energy ½⟨|F|²⟩ of each field component.

    Args:
        field0: Drift-coordinate fields [Nq, Nz, Nky, Nx]

    Returns:
        Dictionary with keys "phi", "Ap", "Bp" (absent components are 0)
        and "total"
    """
    nky = field0.shape[2]
    weights = _mode_weights(nky)[None, None, :, None]
    per_component = 0.5 * jnp.mean(jnp.sum(weights * jnp.abs(field0) ** 2, axis=2), axis=(1, 2))

    energies = {name: 0.0 for name in FIELD_NAMES}
    for index in range(field0.shape[0]):
        energies[FIELD_NAMES[index]] = float(per_component[index])
    energies["total"] = float(sum(energies[name] for name in FIELD_NAMES))
    return energies


def mode_amplitude(field0: Array, mode: int, component: int = 0) -> float:
    """RMS amplitude of one poloidal mode, averaged over z and x."""
    values = field0[component, :, mode, :]
    return float(jnp.sqrt(jnp.mean(jnp.abs(values) ** 2)))


def mode_spectrum(field0: Array, component: int = 0) -> Array:
    """RMS amplitude for every stored poloidal mode (shape: [Nky])."""
    return jnp.sqrt(jnp.mean(jnp.abs(field0[component]) ** 2, axis=(0, 2)))


def estimate_growth_rate(times: Sequence[float], amplitudes: Sequence[float]) -> float:
    """
    Exponential growth rate γ from a least-squares fit of log|a| against t.

    Args:
        times: Sample times
        amplitudes: Mode amplitudes (non-zero)

    Returns:
        Fitted γ in a(t) ∝ exp(γ t)

    Raises:
        ValueError: With fewer than two samples or zero amplitudes

    Example:
        >>> t = np.linspace(0, 1, 11)
        >>> estimate_growth_rate(t, np.exp(0.5 * t))
        0.5
    """
    t = np.asarray(times, dtype=float)
    a = np.abs(np.asarray(amplitudes))
    if t.size < 2 or t.size != a.size:
        raise ValueError("Need at least two (time, amplitude) samples of equal length")
    if np.any(a <= 0.0):
        raise ValueError("Amplitudes must be non-zero to fit an exponential")
    slope, _ = np.polyfit(t, np.log(a), 1)
    return float(slope)


@dataclass
class EnergyHistory:
    """
    Track field energies E(t) during a run.

    Attributes:
        times: Simulation times
        E_phi: Electrostatic energy
        E_Ap: Magnetic (A∥) energy
        E_Bp: Compressive (B∥) energy
        E_total: Sum of components

    Example:
        >>> history = EnergyHistory()
        >>> history.append(0.0, field_state.field0)
        >>> history.growth_rate()
    """
    times: List[float] = field(default_factory=list)
    E_phi: List[float] = field(default_factory=list)
    E_Ap: List[float] = field(default_factory=list)
    E_Bp: List[float] = field(default_factory=list)
    E_total: List[float] = field(default_factory=list)

    def append(self, time: float, field0: Array) -> None:
        """Record energies of the current fields."""
        energies = field_energy(field0)
        self.times.append(float(time))
        self.E_phi.append(energies["phi"])
        self.E_Ap.append(energies["Ap"])
        self.E_Bp.append(energies["Bp"])
        self.E_total.append(energies["total"])

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "times": self.times,
            "E_phi": self.E_phi,
            "E_Ap": self.E_Ap,
            "E_Bp": self.E_Bp,
            "E_total": self.E_total,
        }

    def growth_rate(self, component: str = "phi", start: int = 0) -> float:
        """
        Growth rate of the field amplitude √E of one component.

        Energy grows at 2γ, so the fit uses √E.
        """
        series = {"phi": self.E_phi, "Ap": self.E_Ap, "Bp": self.E_Bp, "total": self.E_total}[component]
        return estimate_growth_rate(self.times[start:], np.sqrt(np.asarray(series[start:])))


# =============================================================================
# Visualization Functions
# =============================================================================


def plot_energy_history(
    history: EnergyHistory,
    figsize: Tuple[float, float] = (10, 6),
    log_scale: bool = True,
    filename: Optional[str] = None,
    show: bool = True,
) -> None:
    """
    Plot field energy evolution from an EnergyHistory.

    Args:
        history: Recorded time series
        figsize: Figure size in inches (width, height)
        log_scale: Log scale on the energy axis (linear growth is a straight line)
        filename: If provided, save figure to this path
        show: If True, display figure interactively
    """
    times = np.array(history.times)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(times, np.array(history.E_phi), "b-", label="φ", linewidth=2)
    if any(history.E_Ap):
        ax.plot(times, np.array(history.E_Ap), "r-", label="A∥", linewidth=2)
    if any(history.E_Bp):
        ax.plot(times, np.array(history.E_Bp), "g-", label="B∥", linewidth=2)
    ax.plot(times, np.array(history.E_total), "k--", label="Total", linewidth=2)

    ax.set_xlabel("Time", fontsize=12)
    ax.set_ylabel("Field energy", fontsize=12)
    ax.set_title("Field Energy Evolution", fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    if log_scale:
        ax.set_yscale("log")

    plt.tight_layout()

    if filename:
        plt.savefig(filename, dpi=150, bbox_inches="tight")

    if show:
        plt.show()
    plt.close(fig)


def plot_island_profile(
    profile: IslandProfile,
    grid: PhaseSpaceGrid,
    figsize: Tuple[float, float] = (10, 4),
    filename: Optional[str] = None,
    show: bool = True,
) -> None:
    """
    Plot the tabulated island amplitude MagIs(x) and its radial derivative.

    Args:
        profile: Island profile
        grid: Phase-space grid (radial coordinate)
        figsize: Figure size in inches (width, height)
        filename: If provided, save figure to this path
        show: If True, display figure interactively
    """
    X = np.asarray(grid.X)

    fig, axes = plt.subplots(1, 2, figsize=figsize)
    axes[0].plot(X, np.asarray(profile.mag_is), "b-", linewidth=2)
    axes[0].set_xlabel("x")
    axes[0].set_ylabel("MagIs")
    axes[0].set_title(f"Island amplitude (w = {profile.width:g})")

    axes[1].plot(X, np.asarray(profile.dmag_is_dx), "r-", linewidth=2)
    axes[1].set_xlabel("x")
    axes[1].set_ylabel("∂x MagIs")
    axes[1].set_title("Radial derivative")

    for ax in axes:
        ax.axvspan(X[0], X[grid.x_domain.start], color="0.9")
        ax.axvspan(X[grid.x_domain.stop - 1], X[-1], color="0.9")
        ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if filename:
        plt.savefig(filename, dpi=150, bbox_inches="tight")

    if show:
        plt.show()
    plt.close(fig)
