"""
CLI interface for gkisland tools.

Usage:
    python -m gkisland validate <config.yaml>
    python -m gkisland island 2.0 --Ly 6.283
    python -m gkisland run <config.yaml> --output run.h5
"""

import argparse
import sys
from pathlib import Path

import numpy as np
import yaml
from pydantic import ValidationError

from .diagnostics import EnergyHistory, plot_energy_history
from .errors import GKIslandError
from .island import calibrate_scale, island_width
from .validation import validate_config_dict


def cmd_validate(args):
    """Validate parameters from a config file."""
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"❌ Config file not found: {config_path}")
        return 1

    print(f"Validating {config_path}...")
    print("=" * 70)

    with open(config_path) as f:
        config = yaml.safe_load(f)

    result = validate_config_dict(config)
    result.print_report()

    print("=" * 70)

    if result.valid:
        print("✓ Configuration is valid")
        return 0
    else:
        print("❌ Configuration has errors (see above)")
        return 1


def cmd_island(args):
    """Calibrate the island scale for a target width."""
    print(f"Calibrating island of width {args.width} (Ly = {args.Ly:.4f})")
    print("=" * 70)

    try:
        scale = calibrate_scale(args.width, args.Ly)
    except GKIslandError as exc:
        print(f"❌ {exc}")
        return 1

    print(f"  scale:           {scale:.10g}")
    print(f"  width(scale):    {island_width(scale, args.Ly):.10g}")
    print("=" * 70)
    return 0


def cmd_run(args):
    """Run a simulation from a config file."""
    from .config import SimulationConfig
    from .io import save_checkpoint, save_island_profile, save_plasma, save_timeseries
    from .timestepping import advance

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"❌ Config file not found: {config_path}")
        return 1

    try:
        config = SimulationConfig.from_yaml(config_path)
        setup = config.build()
    except (ValidationError, GKIslandError) as exc:
        print(f"❌ Invalid configuration: {exc}")
        return 1

    steps = args.steps if args.steps is not None else config.time.steps
    dt = config.time.dt
    every = config.time.output_every

    print(setup.plasma.summary())
    print(
        f"Equation {setup.vlasov.equation_type.value}, {config.time.scheme}, "
        f"dt = {dt:g}, {steps} steps"
    )
    print("=" * 70)

    history = EnergyHistory()
    history.append(0.0, setup.solver.solve(setup.f0, setup.state.f).field0)

    def record(fields):
        if fields.step % every == 0 or fields.step == steps:
            history.append(fields.time, setup.solver.solve(setup.f0, fields.f).field0)
            if not np.isfinite(history.E_total[-1]):
                raise FloatingPointError(f"Non-finite field energy at step {fields.step}")
            print(
                f"  step {fields.step:6d}  t = {fields.time:10.4f}  "
                f"E_phi = {history.E_phi[-1]:.4e}  E_total = {history.E_total[-1]:.4e}"
            )

    try:
        state = advance(setup.state, setup.f0, dt, steps, setup.stepper, callback=record)
    except FloatingPointError as exc:
        print(f"❌ {exc}")
        return 1

    print("=" * 70)

    if args.output:
        output = Path(args.output)
        metadata = {"equation": setup.vlasov.equation_type.value, "scheme": config.time.scheme, "dt": dt}
        save_checkpoint(state, str(output), metadata=metadata)
        save_island_profile(setup.island, setup.grid, str(output))
        save_plasma(setup.plasma, str(output))
        timeseries = output.with_name(output.stem + "_timeseries.h5")
        save_timeseries(history, str(timeseries), metadata=metadata)
        print(f"✓ Saved {output} and {timeseries}")

    if args.plot:
        plot_energy_history(history, filename=args.plot, show=False)
        print(f"✓ Saved {args.plot}")

    if len(history.times) >= 2 and history.E_phi[-1] > 0.0 and history.E_phi[0] > 0.0:
        print(f"Growth rate (φ): {history.growth_rate('phi', start=len(history.times) // 2):.4e}")

    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Gyrokinetic magnetic island tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate a config file
  python -m gkisland validate configs/island.yaml

  # Calibrate the island amplitude for a width of 2 in a box of Ly = 2π
  python -m gkisland island 2.0

  # Run and save the final state
  python -m gkisland run configs/island.yaml --output out/island.h5
"""
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate parameters from a config file"
    )
    parser_validate.add_argument(
        "config",
        help="Path to YAML config file"
    )

    parser_island = subparsers.add_parser(
        "island",
        help="Calibrate the island scale for a target width"
    )
    parser_island.add_argument("width", type=float, help="Full island width")
    parser_island.add_argument(
        "--Ly",
        type=float,
        default=2 * np.pi,
        help="Poloidal domain length (default: 2π)"
    )

    parser_run = subparsers.add_parser(
        "run",
        help="Run a simulation from a config file"
    )
    parser_run.add_argument("config", help="Path to YAML config file")
    parser_run.add_argument("--output", help="HDF5 output file for the final state")
    parser_run.add_argument("--steps", type=int, help="Override time.steps")
    parser_run.add_argument("--plot", help="Save the energy history plot to this file")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "validate":
        return cmd_validate(args)
    elif args.command == "island":
        return cmd_island(args)
    elif args.command == "run":
        return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
