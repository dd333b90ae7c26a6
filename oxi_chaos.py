"""
Oxi-Chaos: chaos diagnostics.

Entropy and mean oxidation per step, a twin-trajectory Lyapunov exponent,
Poincare return maps of the mean oxidation level, and bifurcation sweeps over
an operator-generation parameter.
"""

import logging
from dataclasses import fields

import numpy as np
from sklearn.linear_model import LinearRegression

from oxi_config import NumericalDivergenceError, SimulationConfig, SweepConfig, with_overrides
from oxi_evolution import simulate_with_evolving_P_matrices
from oxi_metrics import calc_metrics, k_space_occupancy

LOGGER = logging.getLogger(__name__)


###############################################################################
# 1. Metric series
###############################################################################
def metric_series(history, k_values):
    """Entropy and mean oxidation for every recorded step."""
    entropies = np.empty(len(history))
    mean_oxidation_states = np.empty(len(history))
    for t, state in enumerate(history):
        entropies[t], mean_oxidation_states[t] = calc_metrics(state, k_values)
    return entropies, mean_oxidation_states


###############################################################################
# 2. Lyapunov exponent
###############################################################################
def lyapunov_exponent(log_distances):
    """Mean log twin separation; refuses to average over a non-finite value."""
    log_distances = np.asarray(log_distances, dtype=float)
    if log_distances.size == 0:
        raise ValueError("No twin separations recorded.")
    bad = np.flatnonzero(~np.isfinite(log_distances))
    if bad.size:
        step = int(bad[0]) + 1
        raise NumericalDivergenceError(step, "non-finite log distance",
                                       {"log_distance": float(log_distances[bad[0]])})
    lyapunov = float(np.mean(log_distances))
    if not np.isfinite(lyapunov):
        raise NumericalDivergenceError(len(log_distances), f"Lyapunov estimate is {lyapunov}")
    return lyapunov


def divergence_rate(log_distances, dt=1.0):
    """Slope of log separation against time, least squares."""
    log_distances = np.asarray(log_distances, dtype=float)
    if log_distances.size < 2:
        return 0.0
    t = np.arange(1, len(log_distances) + 1).reshape(-1, 1)
    model = LinearRegression().fit(t, log_distances.reshape(-1, 1))
    return float(model.coef_[0][0] / dt)


###############################################################################
# 3. Full analysis of one run
###############################################################################
def run_simulation(config, rng=None, track_lyapunov=True):
    """
    Simulate and attach every per-run diagnostic.

    Adds `entropies`, `mean_oxidation_states`, `k_occupancy` and, with
    `track_lyapunov`, `lyapunov` and `divergence_rate` to the trajectory dict.
    """
    results = simulate_with_evolving_P_matrices(config, rng=rng, track_lyapunov=track_lyapunov)
    entropies, mean_oxidation_states = metric_series(results["history"], results["k_values"])
    results["entropies"] = entropies
    results["mean_oxidation_states"] = mean_oxidation_states
    results["k_occupancy"] = k_space_occupancy(results["history"], results["k_values"], config.r)
    if track_lyapunov:
        try:
            results["lyapunov"] = lyapunov_exponent(results["log_distances"])
        except NumericalDivergenceError as exc:
            LOGGER.error("Lyapunov estimate failed: %s", exc)
            raise
        results["divergence_rate"] = divergence_rate(results["log_distances"])
        LOGGER.info("Lyapunov exponent %.6f (divergence rate %.6g)",
                    results["lyapunov"], results["divergence_rate"])
    return results


def compute_lyapunov_exponent(config, rng=None):
    return run_simulation(config, rng=rng, track_lyapunov=True)["lyapunov"]


###############################################################################
# 4. Poincare return map
###############################################################################
def poincare_section(series, period):
    """Yield (x_t, x_{t+T}) for t = 0, T, 2T, ... while t + T is inside the series."""
    if period < 1:
        raise ValueError(f"Poincare period must be >= 1, got {period}.")
    for t in range(0, len(series) - period, period):
        yield float(series[t]), float(series[t + period])


def poincare_points(series, period):
    return np.array(list(poincare_section(series, period))).reshape(-1, 2)


###############################################################################
# 5. Bifurcation sweep
###############################################################################
def bifurcation_values(sweep):
    return np.linspace(sweep.p_min, sweep.p_max, sweep.p_steps)


def _control_value(control, value):
    # Integer parameters (steps, ensemble_size, ...) are swept on a rounded grid
    default = next(f.default for f in fields(SimulationConfig) if f.name == control)
    if isinstance(default, int) and not isinstance(default, bool):
        return int(round(value))
    return float(value)


def bifurcation_sweep(config, sweep=None):
    """
    Re-run the simulation from scratch at each control value.

    Returns (control_values, mean_oxidation) pairs: the last `sweep.tail`
    mean oxidation levels of every run. Grid points get independent child
    generators, so nothing is shared between runs.
    """
    sweep = (sweep or SweepConfig()).validate()
    config.validate()
    values = bifurcation_values(sweep)
    seeds = np.random.SeedSequence(config.seed).spawn(len(values))

    bifurcation_x = []
    bifurcation_y = []
    for value, seed in zip(values, seeds):
        point_config = with_overrides(config, **{sweep.control: _control_value(sweep.control, value)})
        results = run_simulation(point_config, rng=np.random.default_rng(seed), track_lyapunov=False)
        tail = results["mean_oxidation_states"][-sweep.tail:]
        LOGGER.debug("bifurcation %s=%s tail=%d", sweep.control, value, len(tail))
        bifurcation_x.extend([float(value)] * len(tail))
        bifurcation_y.extend(float(k) for k in tail)

    return np.array(bifurcation_x), np.array(bifurcation_y)
