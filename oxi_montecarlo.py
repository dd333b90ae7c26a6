"""
Oxi-Chaos: whole-molecule Monte Carlo over a transition workbook.

The allowed transitions are read back from the "Proteoforms" sheet written by
`oxi_io.save_transition_table`. Every step each molecule independently
oxidises with probability p_ox, reduces with probability p_red, or stays.
An oxidising molecule moves to a uniformly chosen allowed neighbour one k
higher, a reducing one to a neighbour one k lower; with no such neighbour it
stays where it is. Updates are synchronous: moves in a step are drawn from the
population at the start of that step.
"""

import logging

import numpy as np
import pandas as pd

from oxi_config import ConfigurationError

LOGGER = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("PF", "k_value", "Structure", "Allowed")


###############################################################################
# 1. Transition table
###############################################################################
def load_transition_table(path, sheet_name="Proteoforms"):
    """
    Read a transition workbook back into a table indexed by PF label.

    Columns: Structure, k_value, Up (PF labels one k higher), Down (PF labels
    one k lower). The self transition is dropped.
    """
    try:
        df = pd.read_excel(path, sheet_name=sheet_name, dtype=str, keep_default_na=False)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Transition table '{path}' not found.") from exc
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Transition table '{path}' lacks column(s) {missing}.")

    structure_to_pf = dict(zip(df["Structure"], df["PF"]))
    k_of = {pf: int(k) for pf, k in zip(df["PF"], df["k_value"])}

    rows = []
    for pf, structure, allowed in zip(df["PF"], df["Structure"], df["Allowed"]):
        targets = []
        for s in allowed.split(","):
            s = s.strip()
            if not s or s == structure:
                continue
            if s not in structure_to_pf:
                raise ConfigurationError(f"{pf}: allowed transition '{s}' is not in the table.")
            targets.append(structure_to_pf[s])
        rows.append({
            "PF": pf,
            "Structure": structure,
            "k_value": k_of[pf],
            "Up": tuple(t for t in targets if k_of[t] == k_of[pf] + 1),
            "Down": tuple(t for t in targets if k_of[t] == k_of[pf] - 1),
        })

    table = pd.DataFrame(rows).set_index("PF")
    LOGGER.info("Loaded %d proteoforms from %s", len(table), path)
    return table


###############################################################################
# 2. Simulation
###############################################################################
def run_monte_carlo(table, config, rng=None):
    """
    Move `config.molecules` molecules for `config.steps` steps.

    Returns a dict with `history` (integer counts before each step, one column
    per PF in table order), `final_population` (PF -> count), `labels` and
    `k_values`.
    """
    config.validate()
    if rng is None:
        rng = np.random.default_rng(config.seed)

    labels = list(table.index)
    position = {pf: i for i, pf in enumerate(labels)}
    if config.initial_pf not in position:
        raise ConfigurationError(f"initial_pf '{config.initial_pf}' is not in the transition table.")
    up = [np.array([position[t] for t in targets], dtype=int) for targets in table["Up"]]
    down = [np.array([position[t] for t in targets], dtype=int) for targets in table["Down"]]
    probs = [config.p_ox, config.p_red, max(1.0 - config.p_ox - config.p_red, 0.0)]

    population = np.zeros(len(labels), dtype=int)
    population[position[config.initial_pf]] = config.molecules
    history = np.empty((config.steps, len(labels)), dtype=int)

    LOGGER.info(
        "monte carlo states=%d molecules=%d steps=%d p_ox=%s p_red=%s",
        len(labels), config.molecules, config.steps, config.p_ox, config.p_red,
    )

    for t in range(config.steps):
        history[t] = population
        new_population = population.copy()
        for i, count in enumerate(population):
            if count == 0:
                continue
            n_ox, n_red, _ = rng.multinomial(count, probs)
            for n_moved, targets in ((n_ox, up[i]), (n_red, down[i])):
                # Molecules with nowhere to go in that direction stay put
                if n_moved == 0 or len(targets) == 0:
                    continue
                moved = rng.multinomial(n_moved, np.full(len(targets), 1.0 / len(targets)))
                new_population[i] -= n_moved
                new_population[targets] += moved
        population = new_population

    return {
        "history": history,
        "final_population": {pf: int(n) for pf, n in zip(labels, population)},
        "labels": labels,
        "k_values": table["k_value"].to_numpy(dtype=int),
        "config": config,
    }
