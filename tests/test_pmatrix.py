import logging
from types import SimpleNamespace

import numpy as np
import pytest

from oxi_pmatrix import OperatorEnsemble, check_P_matrix, create_random_P_matrix, create_uniform_P_matrix
from oxi_states import StateSpace
from oxi_transitions import TransitionTopology


@pytest.mark.parametrize("include_self", [True, False])
@pytest.mark.parametrize("R", [1, 3, 5])
def test_rows_are_stochastic_and_barred_entries_zero(R, include_self, rng):
    topology = TransitionTopology(StateSpace(R), include_self=include_self)
    for _ in range(5):
        P = create_random_P_matrix(topology, rng)
        assert np.allclose(P.sum(axis=1), 1.0, atol=1e-9)
        assert np.all(P[~topology.mask] == 0.0)
        assert np.all(P >= 0)
        assert check_P_matrix(P, topology) == []
        if not include_self:
            assert np.all(P.diagonal() == 0.0)


def test_fresh_weights_on_every_draw(rng):
    topology = TransitionTopology(StateSpace(3))
    first = create_random_P_matrix(topology, rng)
    second = create_random_P_matrix(topology, rng)
    assert not np.allclose(first, second)


def test_seeded_draws_are_reproducible():
    topology = TransitionTopology(StateSpace(3))
    a = create_random_P_matrix(topology, np.random.default_rng(3))
    b = create_random_P_matrix(topology, np.random.default_rng(3))
    assert np.array_equal(a, b)


@pytest.mark.parametrize("p_jump", [0.1, 0.5, 1.0])
def test_p_jump_fixes_the_stay_probability(p_jump, rng):
    topology = TransitionTopology(StateSpace(3), include_self=True)
    P = create_random_P_matrix(topology, rng, p_jump=p_jump)
    assert np.allclose(P.diagonal(), 1.0 - p_jump)
    assert np.allclose(P.sum(axis=1), 1.0)
    assert np.all(P[~topology.mask] == 0.0)


def test_empty_row_falls_back_to_uniform_with_warning(rng, caplog):
    topology = SimpleNamespace(
        num_states=2,
        allowed=[np.array([], dtype=int), np.array([0], dtype=int)],
        space=SimpleNamespace(proteoforms=("0", "1")),
    )
    with caplog.at_level(logging.WARNING, logger="oxi_pmatrix"):
        P = create_random_P_matrix(topology, rng)
    assert np.allclose(P[0], [0.5, 0.5])
    assert np.allclose(P[1], [1.0, 0.0])
    assert "no weight" in caplog.text


def test_check_flags_leaks_and_bad_rows():
    topology = TransitionTopology(StateSpace(2), include_self=False)
    P = np.zeros((4, 4))
    P[0, 1] = 1.0
    P[1, 0] = 0.5
    P[1, 2] = 0.5  # 01 -> 10 is barred
    P[2, 0] = 0.7  # row sums to 0.7
    P[3, 1] = 1.0
    problems = check_P_matrix(P, topology)
    assert any("barred transition 01 -> 10" in p for p in problems)
    assert any(p.startswith("row 10") for p in problems)


def test_ensemble_resample_replaces_every_member(rng):
    topology = TransitionTopology(StateSpace(3))
    ensemble = OperatorEnsemble(topology, 4, rng)
    assert len(ensemble) == 4
    assert ensemble.generation == 1
    before = ensemble.P_matrices
    ensemble.resample()
    assert ensemble.generation == 2
    assert all(not np.allclose(a, b) for a, b in zip(before, ensemble))
    with pytest.raises(ValueError):
        ensemble.P_matrices[0][0, 0] = 1.0


def test_uniform_jump_operator_splits_p_jump_evenly():
    topology = TransitionTopology(StateSpace(3))
    P = create_uniform_P_matrix(topology, p_jump=0.3)
    assert np.allclose(P[0, [4, 2, 1]], 0.1)
    assert P[0, 0] == pytest.approx(0.7)
    assert np.allclose(P.diagonal(), 0.7)
    assert check_P_matrix(P, topology) == []
    assert np.array_equal(P, create_uniform_P_matrix(topology, p_jump=0.3))


@pytest.mark.parametrize("include_self, share", [(True, 0.25), (False, 1 / 3)])
def test_uniform_operator_without_p_jump_shares_allowed_targets(include_self, share):
    topology = TransitionTopology(StateSpace(3), include_self=include_self)
    P = create_uniform_P_matrix(topology)
    assert np.allclose(P[topology.mask], share)
    assert np.all(P[~topology.mask] == 0.0)
    assert np.allclose(P.sum(axis=1), 1.0)
