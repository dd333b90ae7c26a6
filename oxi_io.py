"""
Oxi-Chaos: result tables.

Every writer takes the output directory explicitly and returns the path it
wrote, so nothing depends on the process working directory.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from oxi_states import pf_label

LOGGER = logging.getLogger(__name__)


def _target(output_dir, file_name):
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir / file_name


###############################################################################
# 1. Trajectory and metrics
###############################################################################
def history_frame(history, proteoforms):
    """Long table: one (TimeStep, Proteoform, PF, Count) row per step per state."""
    rows = []
    for t, state in enumerate(history, start=1):
        for i, pf in enumerate(proteoforms):
            rows.append((t, pf, pf_label(i), float(state[i])))
    return pd.DataFrame(rows, columns=["TimeStep", "Proteoform", "PF", "Count"])


def metrics_frame(entropies, mean_oxidation_states):
    return pd.DataFrame({
        "TimeStep": range(1, len(entropies) + 1),
        "Entropy": entropies,
        "MeanOxidationState": mean_oxidation_states,
    })


def k_history_frame(k_occupancy):
    df = pd.DataFrame(k_occupancy, columns=[f"k={k}" for k in range(k_occupancy.shape[1])])
    df.insert(0, "TimeStep", range(1, len(df) + 1))
    return df


def save_history(history, proteoforms, output_dir, file_name="simulation_history.csv"):
    path = _target(output_dir, file_name)
    history_frame(history, proteoforms).to_csv(path, index=False)
    LOGGER.info("History saved to %s", path)
    return path


def save_metrics(entropies, mean_oxidation_states, output_dir, file_name="metrics.csv"):
    path = _target(output_dir, file_name)
    metrics_frame(entropies, mean_oxidation_states).to_csv(path, index=False)
    LOGGER.info("Metrics saved to %s", path)
    return path


def save_k_history(k_occupancy, output_dir, file_name="k_space_history.csv"):
    path = _target(output_dir, file_name)
    k_history_frame(k_occupancy).to_csv(path, index=False)
    LOGGER.info("k-space history saved to %s", path)
    return path


def monte_carlo_frame(history, labels):
    """Long table of molecule counts: one (TimeStep, PF, Count) row per step per state."""
    rows = []
    for t, population in enumerate(history, start=1):
        for pf, count in zip(labels, population):
            rows.append((t, pf, int(count)))
    return pd.DataFrame(rows, columns=["TimeStep", "PF", "Count"])


def save_monte_carlo(history, labels, output_dir, file_name="monte_carlo_history.csv"):
    path = _target(output_dir, file_name)
    monte_carlo_frame(history, labels).to_csv(path, index=False)
    LOGGER.info("Monte Carlo history saved to %s", path)
    return path


###############################################################################
# 2. Plot-ready pairs
###############################################################################
def save_poincare(points, output_dir, file_name="poincare.csv"):
    path = _target(output_dir, file_name)
    pd.DataFrame(points, columns=["k_t", "k_t_plus_T"]).to_csv(path, index=False)
    return path


def save_bifurcation(control, bifurcation_x, bifurcation_y, output_dir, file_name="bifurcation.csv"):
    path = _target(output_dir, file_name)
    pd.DataFrame({control: bifurcation_x, "MeanOxidationState": bifurcation_y}).to_csv(path, index=False)
    LOGGER.info("Bifurcation data saved to %s", path)
    return path


###############################################################################
# 3. Transition table workbook
###############################################################################
def save_transition_table(df, summary_df, output_dir, file_name="proteoform_transitions.xlsx"):
    path = _target(output_dir, file_name)
    with pd.ExcelWriter(path, engine='xlsxwriter') as writer:
        df.to_excel(writer, sheet_name="Proteoforms", index=False)
        summary_df.to_excel(writer, sheet_name="Summary", index=False)
    LOGGER.info("Excel file saved successfully as %s", path)
    return path


###############################################################################
# 4. Run summary
###############################################################################
def save_summary(results, output_dir, file_name="summary.json"):
    config = results["config"]
    summary = {
        "config": asdict(config),
        "steps": int(len(results["history"])),
        "resamples": int(results["resamples"]),
        "perturb_target": results.get("perturb_target"),
        "lyapunov": results.get("lyapunov"),
        "divergence_rate": results.get("divergence_rate"),
        "final_entropy": float(results["entropies"][-1]),
        "final_mean_oxidation": float(results["mean_oxidation_states"][-1]),
        "final_state": {pf: float(v) for pf, v in zip(results["proteoforms"], results["final_state"])},
    }
    path = _target(output_dir, file_name)
    path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
    LOGGER.info("Summary saved to %s", path)
    return path
