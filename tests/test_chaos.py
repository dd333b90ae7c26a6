import math

import numpy as np
import pytest

from oxi_chaos import (
    bifurcation_sweep,
    compute_lyapunov_exponent,
    divergence_rate,
    lyapunov_exponent,
    metric_series,
    poincare_points,
    poincare_section,
    run_simulation,
)
from oxi_config import ConfigurationError, NumericalDivergenceError, SimulationConfig, SweepConfig
from oxi_metrics import k_space_occupancy, mean_oxidation, shannon_entropy
from oxi_states import StateSpace


def test_entropy_of_a_pure_state_is_zero():
    assert shannon_entropy(np.array([0.0, 10_000.0, 0.0, 0.0])) == 0.0


@pytest.mark.parametrize("R", [1, 3, 6])
def test_entropy_is_maximal_for_a_uniform_population(R):
    uniform = np.full(2**R, 3.0)
    assert shannon_entropy(uniform) == pytest.approx(math.log(2**R), rel=1e-8)
    skewed = uniform.copy()
    skewed[0] += 10.0
    assert shannon_entropy(skewed) < shannon_entropy(uniform)


def test_mean_oxidation_is_mass_weighted():
    space = StateSpace(2)
    assert mean_oxidation(np.array([1.0, 0.0, 0.0, 1.0]), space.k_values) == pytest.approx(1.0)
    assert mean_oxidation(np.array([0.0, 0.0, 0.0, 5.0]), space.k_values) == pytest.approx(2.0)
    assert mean_oxidation(np.zeros(4), space.k_values) == 0.0


def test_k_space_occupancy_collapses_i_states():
    space = StateSpace(2)
    history = np.array([[1.0, 2.0, 3.0, 4.0], [0.0, 0.0, 0.0, 1.0]])
    assert np.allclose(k_space_occupancy(history, space.k_values, 2), [[1.0, 5.0, 4.0], [0.0, 0.0, 1.0]])


def test_end_to_end_three_cysteines():
    config = SimulationConfig(r=3, initial_proteoform="000", steps=1000, ensemble_size=10,
                              resample_period=100, seed=2024)
    results = run_simulation(config)
    assert math.isfinite(results["lyapunov"])
    assert math.isfinite(results["divergence_rate"])
    assert len(results["entropies"]) == 1000
    assert len(results["mean_oxidation_states"]) == 1000
    assert np.all(results["entropies"] >= 0)
    assert np.all(results["mean_oxidation_states"] >= 0)
    assert np.all(results["mean_oxidation_states"] <= 3)
    assert results["mean_oxidation_states"][0] == 0.0
    assert results["k_occupancy"].shape == (1000, 4)


def test_lyapunov_is_deterministic_under_seeding():
    config = SimulationConfig(r=3, steps=300, seed=99)
    assert compute_lyapunov_exponent(config) == compute_lyapunov_exponent(config)


@pytest.mark.parametrize("include_self", [True, False])
def test_single_site_system_stays_finite(include_self):
    config = SimulationConfig(r=1, initial_proteoform="0", steps=1000, include_self=include_self, seed=3)
    assert math.isfinite(compute_lyapunov_exponent(config))


def test_lyapunov_refuses_non_finite_values():
    assert lyapunov_exponent([-2.0, -4.0]) == pytest.approx(-3.0)
    with pytest.raises(NumericalDivergenceError) as excinfo:
        lyapunov_exponent([-1.0, float("nan"), -3.0])
    assert excinfo.value.step == 2
    with pytest.raises(ValueError):
        lyapunov_exponent([])


def test_divergence_rate_recovers_a_linear_slope():
    log_distances = -10.0 + 0.25 * np.arange(1, 51)
    assert divergence_rate(log_distances) == pytest.approx(0.25)
    assert divergence_rate([1.0]) == 0.0


def test_poincare_pairs_are_sampled_at_stride():
    series = np.arange(10.0)
    assert list(poincare_section(series, 3)) == [(0.0, 3.0), (3.0, 6.0), (6.0, 9.0)]
    assert poincare_points(series, 20).shape == (0, 2)
    with pytest.raises(ValueError):
        list(poincare_section(series, 0))


def test_poincare_section_is_consumed_once():
    section = poincare_section(np.arange(6.0), 2)
    assert len(list(section)) == 2
    assert list(section) == []


def test_metric_series_matches_per_state_metrics():
    space = StateSpace(2)
    history = np.array([[1.0, 0.0, 0.0, 0.0], [0.25, 0.25, 0.25, 0.25]])
    entropies, mean_k = metric_series(history, space.k_values)
    assert entropies[0] == 0.0
    assert entropies[1] == pytest.approx(math.log(4), rel=1e-8)
    assert np.allclose(mean_k, [0.0, 1.0])


def test_bifurcation_sweep_collects_the_tail_of_each_run():
    config = SimulationConfig(r=2, initial_proteoform="00", steps=60, resample_period=20, seed=8)
    sweep = SweepConfig(control="p_jump", p_min=0.2, p_max=0.8, p_steps=3, tail=10)
    xs, ys = bifurcation_sweep(config, sweep)
    assert xs.shape == ys.shape == (30,)
    assert sorted(set(np.round(xs, 6))) == [0.2, 0.5, 0.8]
    assert np.all((ys >= 0) & (ys <= 2))
    again_x, again_y = bifurcation_sweep(config, sweep)
    assert np.array_equal(ys, again_y)


def test_bifurcation_over_an_integer_parameter():
    config = SimulationConfig(r=2, initial_proteoform="00", steps=30, seed=1)
    sweep = SweepConfig(control="ensemble_size", p_min=1, p_max=4, p_steps=4, tail=5)
    xs, ys = bifurcation_sweep(config, sweep)
    assert len(xs) == 20


def test_p_jump_sweep_requires_the_self_transition():
    config = SimulationConfig(r=2, initial_proteoform="00", steps=10, include_self=False)
    with pytest.raises(ConfigurationError):
        bifurcation_sweep(config, SweepConfig(p_steps=2, tail=5))


def test_bifurcation_sweep_with_the_uniform_operator_ignores_the_seed():
    sweep = SweepConfig(control="p_jump", p_min=0.2, p_max=0.8, p_steps=3, tail=5)
    config = SimulationConfig(r=2, initial_proteoform="00", steps=40, operator="uniform", seed=1)
    xs, ys = bifurcation_sweep(config, sweep)
    _, other = bifurcation_sweep(SimulationConfig(r=2, initial_proteoform="00", steps=40, operator="uniform",
                                                  seed=2), sweep)
    assert xs.shape == (15,)
    assert np.array_equal(ys, other)
