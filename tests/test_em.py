"""
Tests for src/causal_engine/em.py - EM parameter learning.
"""

import pytest

from src.causal_engine.em import InitialisationMethod, ParameterLearner
from src.causal_engine.matrix import LabeledMatrix
from src.causal_engine.network import read_network

from conftest import write_file


PAIR_TGF = "1 A\n2 B\n#\n2 1\n"

COMPLETE_SAMPLES = """\
node s1 s2 s3 s4 s5
A 0 0 1 1 1
B 0 1 1 1 0
"""

MISSING_SAMPLES = """\
node s1 s2 s3 s4 s5 s6 s7 s8
A 0 0 1 1 -1 1 0 -1
B 0 -1 1 1 0 1 0 1
"""


def learn(tmp_path, samples_text, **kwargs):
    network = read_network(write_file(tmp_path, "pair.tgf", PAIR_TGF))
    samples = LabeledMatrix.from_file(write_file(tmp_path, "samples.txt", samples_text))
    return network, ParameterLearner(network, samples, **kwargs)


class TestCompleteData:
    """Tests for learning without missing values."""

    def test_single_maximisation_pass(self, tmp_path):
        _, learner = learn(tmp_path, COMPLETE_SAMPLES)
        assert learner.get_number_of_runs() == 1
        assert learner.method is None

    def test_maximum_likelihood_cpts(self, tmp_path):
        network, _ = learn(tmp_path, COMPLETE_SAMPLES)
        a = network.get_node("A")
        b = network.get_node("B")
        assert a.probability_of(1) == pytest.approx(0.6)
        assert b.probability_of(1, [0]) == pytest.approx(0.5)
        assert b.probability_of(1, [1]) == pytest.approx(2 / 3)

    def test_rows_sum_to_one(self, tmp_path):
        network, _ = learn(tmp_path, COMPLETE_SAMPLES)
        for node in network.get_nodes():
            for row in range(node.cpt.row_count):
                assert node.cpt.row_sum(row) == pytest.approx(1.0, abs=1e-6)

    def test_counts_untouched(self, tmp_path):
        network, _ = learn(tmp_path, COMPLETE_SAMPLES)
        assert network.get_node("A").observations.row_values(0) == [2.0, 3.0]

    def test_reports(self, tmp_path):
        _, learner = learn(tmp_path, COMPLETE_SAMPLES)
        assert learner.get_time_in_microseconds() >= 0
        assert learner.get_difference() >= 0.0
        assert learner.log_likelihood < 0.0
        assert learner.summary()["method"] is None


class TestMissingData:
    """Tests for EM with missing values."""

    def test_runs_bounded_by_max_runs(self, tmp_path):
        _, learner = learn(tmp_path, MISSING_SAMPLES, difference_threshold=0.0, max_runs=3)
        assert 1 <= learner.get_number_of_runs() <= 3

    def test_converges_below_threshold(self, tmp_path):
        _, learner = learn(tmp_path, MISSING_SAMPLES, difference_threshold=1e-4, max_runs=500)
        assert learner.get_number_of_runs() < 500
        assert learner.get_difference() <= 1e-4

    def test_method_is_chosen(self, tmp_path):
        _, learner = learn(tmp_path, MISSING_SAMPLES, difference_threshold=1e-4, max_runs=100)
        assert learner.method in list(InitialisationMethod)
        assert learner.log_likelihood == pytest.approx(learner.calculate_likelihood_of_the_data())

    def test_deterministic(self, tmp_path):
        network_1, first = learn(tmp_path, MISSING_SAMPLES, difference_threshold=1e-3, max_runs=20)
        network_2, second = learn(tmp_path, MISSING_SAMPLES, difference_threshold=1e-3, max_runs=20)
        assert first.get_difference() == second.get_difference()
        assert first.get_number_of_runs() == second.get_number_of_runs()
        assert first.method == second.method
        for node_1, node_2 in zip(network_1.get_nodes(), network_2.get_nodes()):
            assert node_1.cpt == node_2.cpt

    def test_cpts_are_distributions(self, tmp_path):
        network, _ = learn(tmp_path, MISSING_SAMPLES)
        for node in network.get_nodes():
            for row in range(node.cpt.row_count):
                assert node.cpt.row_sum(row) == pytest.approx(1.0, abs=1e-5)

    def test_raw_counts_restored_after_learning(self, tmp_path):
        network, _ = learn(tmp_path, MISSING_SAMPLES)
        # B: NA, 0, 1 per parent row; the sample with missing B lies under A=0
        assert network.get_node("B").observations.row_values(0) == [1.0, 2.0, 0.0]
        assert network.get_node("B").observations.row_values(1) == [0.0, 0.0, 3.0]

    def test_uninformative_missing_values_keep_estimate(self, tmp_path):
        network, _ = learn(tmp_path, MISSING_SAMPLES, difference_threshold=1e-6, max_runs=1000)
        a = network.get_node("A")
        # A is observed 3x0 and 3x1; its missing values carry no information
        assert a.probability_of(1) == pytest.approx(0.5, abs=1e-3)


class TestConfigDefaults:
    """Tests for defaults taken from config/engine.yaml."""

    def test_defaults(self, tmp_path):
        _, learner = learn(tmp_path, COMPLETE_SAMPLES)
        assert learner.difference_threshold == pytest.approx(0.001)
        assert learner.max_runs == 100


class TestPhases:
    """Tests for the individual E- and M-phases."""

    def test_each_method_respects_max_runs(self, tmp_path):
        _, learner = learn(tmp_path, MISSING_SAMPLES, difference_threshold=0.0, max_runs=2)
        for method in InitialisationMethod:
            difference, runs = learner._run_em_iterations(method)
            assert runs <= 2

    def test_uniform_initialisation(self, tmp_path):
        network, learner = learn(tmp_path, MISSING_SAMPLES)
        learner.initialise(InitialisationMethod.UNIFORM)
        assert network.get_node("B").cpt.row_values(0) == [0.5, 0.5]

    def test_initial_distribution_initialisation(self, tmp_path):
        network, learner = learn(tmp_path, MISSING_SAMPLES)
        learner.initialise(InitialisationMethod.INITIAL_DISTRIBUTION)
        assert network.get_node("B").cpt.row_values(0) == [1.0, 0.0]
        assert network.get_node("A").cpt.row_values(0) == [0.5, 0.5]

    def test_e_phase_distributes_missing_counts(self, tmp_path):
        network, learner = learn(tmp_path, MISSING_SAMPLES)
        learner.initialise(InitialisationMethod.UNIFORM)
        learner.e_phase()
        assert network.get_node("A").observations.row_values(0) == [2.0, 4.0, 4.0]
        assert network.get_node("B").observations.row_values(0) == pytest.approx([1.0, 2.5, 0.5])

    def test_m_phase_restores_counts(self, tmp_path):
        network, learner = learn(tmp_path, MISSING_SAMPLES)
        learner.initialise(InitialisationMethod.UNIFORM)
        learner.e_phase()
        difference = learner.m_phase()
        assert network.get_node("B").probability_of(0, [0]) == pytest.approx(2.5 / 3)
        assert network.get_node("B").observations.row_values(0) == [1.0, 2.0, 0.0]
        # A: no change; B: |0.5 - 5/6| + |0.5 - 1/6| on row A=0, 0.5 + 0.5 on row A=1
        assert difference == pytest.approx((2 / 3 + 1.0) / 6, abs=1e-6)
