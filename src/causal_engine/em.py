"""
Expectation-Maximization learning of the CPTs of a network.

Construction shapes every node's tables from the raw sample table and learns
immediately:

- Complete data: a single M-phase computes the maximum-likelihood CPTs.
- Missing data (``-1`` cells): EM runs to convergence once per
  ``InitialisationMethod``; the run with the higher data log-likelihood is
  kept (the first method on ties) by restoring that run's CPTs.

Each M-phase restores the node's observation counts from the backup taken at
load time, so every E-phase redistributes the missing counts of the raw data
under the latest CPTs.

Usage:
    learner = ParameterLearner(network, samples, difference_threshold=1e-4, max_runs=50)
    learner.get_number_of_runs(), learner.get_difference(), learner.method
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import get_em_config
from .matrix import NA_NAME, LabeledMatrix
from .network import Network
from .node import MISSING, Node
from .probability import ProbabilityEngine

logger = logging.getLogger(__name__)


class InitialisationMethod(Enum):
    """How CPTs are seeded before the first E-phase."""
    UNIFORM = 0
    INITIAL_DISTRIBUTION = 1


def _value_columns(node: Node) -> List[int]:
    """Observation-table column of each of the node's values, in CPT column order."""
    return [node.observations.find_col(str(value)) for value in node.values]


class ParameterLearner:
    """Learns CPTs for a network from a raw sample table on construction."""

    def __init__(
        self,
        network: Network,
        observations: LabeledMatrix,
        difference_threshold: Optional[float] = None,
        max_runs: Optional[int] = None,
    ):
        defaults = get_em_config()
        self.network = network
        self.observations = observations
        self.difference_threshold = (
            defaults['difference_threshold'] if difference_threshold is None else float(difference_threshold)
        )
        self.max_runs = defaults['max_runs'] if max_runs is None else int(max_runs)
        self.engine = ProbabilityEngine(network)

        self.method: Optional[InitialisationMethod] = None
        self.log_likelihood: Optional[float] = None
        self._difference = float("inf")
        self._runs = 0
        self._microseconds = 0

        self.perform_em()

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_number_of_runs(self) -> int:
        return self._runs

    def get_difference(self) -> float:
        return self._difference

    def get_time_in_microseconds(self) -> int:
        return self._microseconds

    def summary(self) -> Dict[str, object]:
        return {
            'runs': self._runs,
            'difference': self._difference,
            'microseconds': self._microseconds,
            'method': self.method.name if self.method is not None else None,
            'log_likelihood': self.log_likelihood,
        }

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def perform_em(self) -> None:
        start = time.perf_counter()
        self.network.load_observations(self.observations)

        if self.observations.contains(MISSING):
            self.method = self._choose_method()
        else:
            self._difference = self.m_phase()
            self._runs = 1
            self.log_likelihood = self.calculate_likelihood_of_the_data()

        self._microseconds = int((time.perf_counter() - start) * 1_000_000)
        logger.info(
            f"Learned {len(self.network)} CPTs in {self._runs} runs "
            f"(difference {self._difference:.6g}, method "
            f"{self.method.name if self.method else 'complete data'}, {self._microseconds} us)"
        )

    def _choose_method(self) -> InitialisationMethod:
        """Run EM under each initialisation and keep the more likely result."""
        best = None
        for method in InitialisationMethod:
            difference, runs = self._run_em_iterations(method)
            log_likelihood = self.calculate_likelihood_of_the_data()
            logger.info(f"EM with {method.name}: {runs} runs, difference {difference:.6g}, "
                        f"log-likelihood {log_likelihood:.6g}")
            if best is None or log_likelihood > best[0]:
                cpts = [node.cpt.copy() for node in self.network.get_nodes()]
                best = (log_likelihood, method, difference, runs, cpts)

        self.log_likelihood, method, self._difference, self._runs, cpts = best
        for node, cpt in zip(self.network.get_nodes(), cpts):
            node.cpt = cpt
        return method

    def _run_em_iterations(self, method: InitialisationMethod) -> Tuple[float, int]:
        runs = 0
        difference = float("inf")

        self.initialise(method)
        while difference > self.difference_threshold and runs < self.max_runs:
            self.e_phase()
            difference = self.m_phase()
            runs += 1

        return difference, runs

    def initialise(self, method: InitialisationMethod) -> None:
        """Seed every CPT uniformly or from the observed proportions."""
        for node in self.network.get_nodes():
            uniform = 1.0 / node.get_number_of_unique_values_excluding_na()
            columns = _value_columns(node)
            for row in range(node.get_number_of_parent_values()):
                counts = [node.observations.get(row, col) for col in columns]
                total = sum(counts)
                for col, count in enumerate(counts):
                    if method is InitialisationMethod.UNIFORM or total == 0:
                        node.set_probability(uniform, row, col)
                    else:
                        node.set_probability(count / total, row, col)

    def e_phase(self) -> None:
        """Distribute each row's missing count over the values by their posterior."""
        marginals: Dict[Tuple[int, int], float] = {}

        def marginal(node_id: int, value: int) -> float:
            if (node_id, value) not in marginals:
                marginals[(node_id, value)] = float(self.engine.total_probability(node_id, value))
            return marginals[(node_id, value)]

        for node in self.network.get_nodes():
            na_col = node.observations.find_col(NA_NAME)
            if na_col is None:
                continue
            columns = _value_columns(node)
            for row in range(node.get_number_of_parent_values()):
                missing = node.observations.get(row, na_col)
                if missing == 0:
                    continue

                parent_probability = 1.0
                for parent, value in zip(node.parent_ids, node.parent_assignment(row)):
                    parent_probability *= marginal(parent, value)
                weighted = [node.get_probability(row, col) * parent_probability for col in range(len(columns))]
                denominator = sum(weighted)
                if denominator == 0:
                    continue

                for col, weight in zip(columns, weighted):
                    expected = node.observations.get(row, col) + weight / denominator * missing
                    node.observations.set(expected, row, col)

    def m_phase(self) -> float:
        """
        Recompute every CPT from the current counts.

        Returns:
            Mean absolute change over all CPT cells
        """
        difference = 0.0
        counter = 0
        for node in self.network.get_nodes():
            uniform = 1.0 / node.get_number_of_unique_values_excluding_na()
            columns = _value_columns(node)
            for row in range(node.get_number_of_parent_values()):
                counts = [node.observations.get(row, col) for col in columns]
                total = sum(counts)
                for col, count in enumerate(counts):
                    if total > 0:
                        probability = count / total
                        difference += abs(node.get_probability(row, col) - probability)
                    else:
                        probability = uniform
                    node.set_probability(probability, row, col)
                    counter += 1
            node.load_backup()
        return difference / counter if counter else 0.0

    def calculate_likelihood_of_the_data(self) -> float:
        """Log-likelihood of the observations under the current CPTs."""
        return self.engine.likelihood_of_the_data(self.observations)
