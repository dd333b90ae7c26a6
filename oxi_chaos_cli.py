#!/usr/bin/env python
"""Command line for the Oxi-Chaos proteoform simulator."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import fields, replace
from pathlib import Path
from typing import List, Optional

from oxi_chaos import bifurcation_sweep, poincare_points, run_simulation
from oxi_config import (
    ConfigurationError,
    MonteCarloConfig,
    NumericalDivergenceError,
    SimulationConfig,
    SweepConfig,
    load_config,
    load_monte_carlo_config,
    with_overrides,
)
from oxi_io import (
    save_bifurcation,
    save_history,
    save_k_history,
    save_metrics,
    save_monte_carlo,
    save_poincare,
    save_summary,
    save_transition_table,
)
from oxi_montecarlo import load_transition_table, run_monte_carlo
from oxi_states import StateSpace
from oxi_transitions import TransitionTopology, generate_transition_data

LOGGER = logging.getLogger(__name__)

_SIM_FLAGS = {f.name for f in fields(SimulationConfig)}
_SWEEP_FLAGS = {f.name for f in fields(SweepConfig)}
_MC_FLAGS = {f.name for f in fields(MonteCarloConfig)}


def _add_simulation_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, help="YAML file with 'simulation' / 'sweep' sections.")
    parser.add_argument("--r", type=int, help="Number of cysteines.")
    parser.add_argument("--initial-proteoform", dest="initial_proteoform", help="Starting bit string, e.g. 000.")
    parser.add_argument("--steps", type=int)
    parser.add_argument("--num-molecules", dest="num_molecules", type=float)
    parser.add_argument("--ensemble-size", dest="ensemble_size", type=int)
    parser.add_argument("--resample-period", dest="resample_period", type=int)
    parser.add_argument("--epsilon", type=float, help="Twin perturbation for the Lyapunov estimate.")
    parser.add_argument("--p-jump", dest="p_jump", type=float)
    parser.add_argument("--operator", choices=["random", "uniform"], help="Random ensemble or fixed jump operator.")
    parser.add_argument("--normalization", choices=["mass", "probability"])
    parser.add_argument("--perturb-target", dest="perturb_target")
    parser.add_argument("--poincare-period", dest="poincare_period", type=int)
    parser.add_argument("--seed", type=int)
    self_group = parser.add_mutually_exclusive_group()
    self_group.add_argument("--include-self", dest="include_self", action="store_true", default=None)
    self_group.add_argument("--exclude-self", dest="include_self", action="store_false", default=None)
    parser.add_argument("--output-dir", type=Path, default=Path("oxi_chaos_output"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oxi-chaos", description=__doc__)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    simulate = sub.add_parser("simulate", help="Run one simulation with Lyapunov estimate.")
    _add_simulation_args(simulate)
    simulate.add_argument("--no-plots", action="store_true")

    table = sub.add_parser("table", help="Write the allowed/barred transition workbook.")
    _add_simulation_args(table)
    table.add_argument("--file-name", default="proteoform_transitions.xlsx")

    sweep = sub.add_parser("sweep", help="Bifurcation sweep over a control parameter.")
    _add_simulation_args(sweep)
    sweep.add_argument("--control")
    sweep.add_argument("--p-min", dest="p_min", type=float)
    sweep.add_argument("--p-max", dest="p_max", type=float)
    sweep.add_argument("--p-steps", dest="p_steps", type=int)
    sweep.add_argument("--tail", type=int)
    sweep.add_argument("--no-plots", action="store_true")

    monte_carlo = sub.add_parser("montecarlo", help="Whole-molecule Monte Carlo over a transition workbook.")
    monte_carlo.add_argument("--config", type=Path, help="YAML file with a 'monte_carlo' section.")
    monte_carlo.add_argument("--table", type=Path, help="Transition workbook; built from --r when omitted.")
    monte_carlo.add_argument("--r", type=int, default=3, help="Number of cysteines for a freshly built table.")
    monte_carlo.add_argument("--p-ox", dest="p_ox", type=float)
    monte_carlo.add_argument("--p-red", dest="p_red", type=float)
    monte_carlo.add_argument("--molecules", type=int)
    monte_carlo.add_argument("--steps", type=int)
    monte_carlo.add_argument("--initial-pf", dest="initial_pf")
    monte_carlo.add_argument("--seed", type=int)
    monte_carlo.add_argument("--output-dir", type=Path, default=Path("oxi_chaos_output"))
    return parser


def _resolve_configs(args: argparse.Namespace):
    if args.config:
        config, sweep = load_config(args.config)
    else:
        config, sweep = SimulationConfig(), SweepConfig()
    values = vars(args)
    sim_changes = {k: values[k] for k in _SIM_FLAGS if values.get(k) is not None}
    if "r" in sim_changes and "initial_proteoform" not in sim_changes:
        sim_changes["initial_proteoform"] = "0" * sim_changes["r"]
    config = with_overrides(config, **sim_changes)
    sweep_changes = {k: values[k] for k in _SWEEP_FLAGS if values.get(k) is not None}
    if sweep_changes:
        sweep = replace(sweep, **sweep_changes).validate()
    return config, sweep


def _cmd_simulate(args: argparse.Namespace, config: SimulationConfig) -> None:
    results = run_simulation(config)
    out = args.output_dir
    save_history(results["history"], results["proteoforms"], out)
    save_metrics(results["entropies"], results["mean_oxidation_states"], out)
    save_k_history(results["k_occupancy"], out)
    points = poincare_points(results["mean_oxidation_states"], config.poincare_period)
    save_poincare(points, out)
    save_summary(results, out)
    if not args.no_plots:
        import oxi_plots

        oxi_plots.plot_poincare(points, config.r, config.poincare_period, out)
        oxi_plots.plot_metrics(results["entropies"], results["mean_oxidation_states"], out)
        oxi_plots.plot_k_heatmap(results["k_occupancy"], out)
        oxi_plots.plot_state_diamond(results["topology"], out, occupancy=results["final_state"])
    print(f"Computed Lyapunov Exponent: {results['lyapunov']}")


def _cmd_table(args: argparse.Namespace, config: SimulationConfig) -> None:
    topology = TransitionTopology(StateSpace(config.r), include_self=config.include_self)
    df, summary_df = generate_transition_data(topology)
    save_transition_table(df, summary_df, args.output_dir, args.file_name)
    print(summary_df.to_string(index=False))


def _cmd_sweep(args: argparse.Namespace, config: SimulationConfig, sweep: SweepConfig) -> None:
    bifurcation_x, bifurcation_y = bifurcation_sweep(config, sweep)
    save_bifurcation(sweep.control, bifurcation_x, bifurcation_y, args.output_dir)
    if not args.no_plots:
        import oxi_plots

        oxi_plots.plot_bifurcation(bifurcation_x, bifurcation_y, config.r, sweep.control, args.output_dir)


def _cmd_monte_carlo(args: argparse.Namespace) -> None:
    mc_config = load_monte_carlo_config(args.config) if args.config else MonteCarloConfig()
    values = vars(args)
    changes = {k: values[k] for k in _MC_FLAGS if values.get(k) is not None}
    mc_config = replace(mc_config, **changes).validate()

    table_path = args.table
    if table_path is None:
        topology = TransitionTopology(StateSpace(args.r))
        df, summary_df = generate_transition_data(topology)
        table_path = save_transition_table(df, summary_df, args.output_dir)
    table = load_transition_table(table_path)
    results = run_monte_carlo(table, mc_config)
    save_monte_carlo(results["history"], results["labels"], args.output_dir)
    print("Final Population Distribution:")
    for pf, count in results["final_population"].items():
        print(f"{pf}: {count}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.command == "montecarlo":
            _cmd_monte_carlo(args)
            return 0
        config, sweep = _resolve_configs(args)
        if args.command == "simulate":
            _cmd_simulate(args, config)
        elif args.command == "table":
            _cmd_table(args, config)
        else:
            _cmd_sweep(args, config, sweep)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    except NumericalDivergenceError as exc:
        LOGGER.error("Numerical failure at step %d: %s", exc.step, exc.reason)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
