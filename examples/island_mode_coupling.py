#!/usr/bin/env python3
"""
Island Mode Coupling in a Linear ITG Run

This example demonstrates:
1. Calibrating the island amplitude for a target width
2. Building the same run with and without the island
3. Tracking the electrostatic energy history E_φ(t)
4. Comparing poloidal mode spectra and linear growth rates

Physics:
    - Without island, each poloidal mode evolves independently
    - The island couples mode k to k ± 1, so energy injected at one mode
      spreads across the spectrum
    - The 2D_Island_Equi variant shows the parallel-wavenumber shift
      alone, without the mode coupling

Expected results:
    - All runs grow from the same seed perturbation
    - The island-coupled spectrum is broader than the island-free one

Runtime: a few seconds on a laptop at the default resolution
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from gkisland import SimulationConfig, advance
from gkisland.diagnostics import EnergyHistory, mode_spectrum, plot_energy_history, plot_island_profile


def run_case(label, equation, width, n_steps, output_every):
    """Build and run one case, returning its energy history and final fields."""
    config = SimulationConfig.model_validate({
        "grid": {"Nx": 32, "Nky": 8, "Nz": 1, "Nv": 32, "Nm": 1, "Lx": 20.0},
        "plasma": {
            "species": [{"name": "Ion", "q": 1.0, "m": 1.0, "n0": 1.0, "T0": 1.0, "w_n": 1.0, "w_T": 6.0}],
        },
        "island": {"width": width},
        "vlasov": {"equation": equation},
        "time": {"scheme": "RK3", "dt": 0.002},
        "init": {"amplitude": 1.0e-6, "seed": 1},
    })
    setup = config.build()

    history = EnergyHistory()
    history.append(0.0, setup.solver.solve(setup.f0, setup.state.f).field0)

    def record(fields):
        if fields.step % output_every == 0:
            history.append(fields.time, setup.solver.solve(setup.f0, fields.f).field0)

    state = advance(setup.state, setup.f0, config.time.dt, n_steps, setup.stepper, callback=record)
    field0 = setup.solver.solve(setup.f0, state.f).field0

    gamma = history.growth_rate(start=len(history.times) // 2)
    print(f"  {label:<24s} γ = {gamma:+.4f}   E_φ(t_end) = {history.E_phi[-1]:.4e}")
    return setup, history, field0


def main():
    """Compare island-free, island-coupled and equilibrium-shift runs."""

    print("=" * 70)
    print("Island Mode Coupling")
    print("=" * 70)

    n_steps = 500
    output_every = 25
    width = 4.0

    cases = [
        ("No island", "2D_Island", 0.0),
        (f"Island (w = {width:g})", "2D_Island", width),
        (f"Equilibrium (w = {width:g})", "2D_Island_Equi", width),
    ]

    results = {}
    for label, equation, w in cases:
        results[label] = run_case(label, equation, w, n_steps, output_every)

    # ==========================================================================
    # Visualization
    # ==========================================================================

    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    setup, history, _ = results[cases[1][0]]
    plot_island_profile(setup.island, setup.grid, filename=str(output_dir / "island_profile.png"), show=False)
    plot_energy_history(history, filename=str(output_dir / "island_energy.png"), show=False)

    fig, ax = plt.subplots(figsize=(8, 5))
    for label, (setup, _, field0) in results.items():
        spectrum = np.asarray(mode_spectrum(field0))
        ax.semilogy(np.arange(setup.grid.Nky), spectrum, "o-", label=label)
    ax.set_xlabel("Poloidal mode", fontsize=12)
    ax.set_ylabel("|φ| (RMS)", fontsize=12)
    ax.set_title("Poloidal spectrum at t_end", fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / "mode_spectrum.png", dpi=150, bbox_inches="tight")
    plt.close(fig)

    print(f"✓ Saved plots to {output_dir}")


if __name__ == "__main__":
    main()
