import numpy as np
import pandas as pd
import pytest

from oxi_chaos_cli import main
from oxi_config import ConfigurationError, MonteCarloConfig
from oxi_io import save_transition_table
from oxi_montecarlo import load_transition_table, run_monte_carlo
from oxi_states import StateSpace
from oxi_transitions import TransitionTopology, generate_transition_data


@pytest.fixture
def workbook(tmp_path):
    df, summary_df = generate_transition_data(TransitionTopology(StateSpace(3)))
    return save_transition_table(df, summary_df, tmp_path)


def test_workbook_is_read_back_into_up_and_down_moves(workbook):
    table = load_transition_table(workbook)
    assert list(table.index) == [f"PF00{i}" for i in range(1, 9)]
    assert table.loc["PF001", "Structure"] == "000"
    assert table.loc["PF001", "Up"] == ("PF005", "PF003", "PF002")
    assert table.loc["PF001", "Down"] == ()
    assert table.loc["PF008", "Down"] == ("PF004", "PF006", "PF007")
    assert table["k_value"].tolist() == [0, 1, 1, 2, 1, 2, 2, 3]


def test_table_without_self_transition(tmp_path):
    df, summary_df = generate_transition_data(TransitionTopology(StateSpace(1), include_self=False))
    table = load_transition_table(save_transition_table(df, summary_df, tmp_path))
    assert table.loc["PF001", "Up"] == ("PF002",)
    assert table.loc["PF002", "Down"] == ("PF001",)


def test_molecules_are_conserved(workbook):
    results = run_monte_carlo(load_transition_table(workbook), MonteCarloConfig(molecules=100, steps=20, seed=5))
    assert results["history"].shape == (20, 8)
    assert np.all(results["history"].sum(axis=1) == 100)
    assert sum(results["final_population"].values()) == 100
    assert results["history"][0, 0] == 100


def test_certain_oxidation_climbs_one_k_per_step(workbook):
    table = load_transition_table(workbook)
    results = run_monte_carlo(table, MonteCarloConfig(p_ox=1.0, p_red=0.0, molecules=60, steps=4, seed=2))
    k_values = results["k_values"]
    for t in range(4):
        assert np.dot(results["history"][t], k_values) == 60 * t
    assert results["history"][3, 7] == 60
    assert results["final_population"]["PF008"] == 60


def test_reduction_from_the_fully_reduced_state_stays_put(workbook):
    table = load_transition_table(workbook)
    results = run_monte_carlo(table, MonteCarloConfig(p_ox=0.0, p_red=1.0, molecules=30, steps=5, seed=2))
    assert results["final_population"]["PF001"] == 30


def test_seeded_runs_repeat(workbook):
    table = load_transition_table(workbook)
    config = MonteCarloConfig(molecules=200, steps=15, seed=11)
    assert np.array_equal(run_monte_carlo(table, config)["history"], run_monte_carlo(table, config)["history"])


def test_bad_inputs_are_configuration_errors(workbook, tmp_path):
    with pytest.raises(ConfigurationError):
        load_transition_table(tmp_path / "missing.xlsx")
    with pytest.raises(ConfigurationError):
        run_monte_carlo(load_transition_table(workbook), MonteCarloConfig(initial_pf="PF999"))


def test_cli_montecarlo(tmp_path, capsys):
    out = tmp_path / "mc"
    code = main(["montecarlo", "--r", "2", "--steps", "5", "--molecules", "50", "--seed", "1",
                 "--output-dir", str(out)])
    assert code == 0
    history = pd.read_csv(out / "monte_carlo_history.csv")
    assert list(history.columns) == ["TimeStep", "PF", "Count"]
    assert len(history) == 5 * 4
    assert (out / "proteoform_transitions.xlsx").exists()
    assert "Final Population Distribution" in capsys.readouterr().out
    assert main(["montecarlo", "--table", str(out / "proteoform_transitions.xlsx"), "--steps", "3",
                 "--output-dir", str(out)]) == 0
    assert main(["montecarlo", "--p-ox", "0.9", "--p-red", "0.5", "--output-dir", str(out)]) == 2
