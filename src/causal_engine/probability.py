"""
Exact inference over the current structure of a network.

Joint probabilities are computed by recursive enumeration over the ancestral
closure of the assigned nodes, visited in topological order. Each node reads
its CPT row from the learned parents that are still connected to it; a learned
parent whose edge has been removed is marginalised with that parent's own
total probability. A forced (do) node contributes 1 for its forced value and
0 for every other value.

Results are 32-bit floats.

Usage:
    engine = ProbabilityEngine(network)
    engine.joint_probability({1: 0, 2: 1})
    engine.conditional_probability({3: 1}, evidence={1: 0})
    engine.argmax([2, 3], fixed={1: 0})
"""

from __future__ import annotations

import itertools
import logging
import math
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

import networkx as nx
import numpy as np

from .errors import CycleDetectedError, DivisionUndefinedError, NotFoundError
from .matrix import LabeledMatrix
from .network import Network, NodeKey
from .node import MISSING, Node

logger = logging.getLogger(__name__)

Assignment = Mapping[NodeKey, int]


class ProbabilityEngine:
    """Answers joint, marginal, conditional and MAP queries on a network."""

    def __init__(self, network: Network):
        self.network = network

    # ------------------------------------------------------------------
    # Public queries
    # ------------------------------------------------------------------

    def joint_probability(self, assignment: Assignment, forced: Optional[Assignment] = None) -> np.float32:
        """
        P(assignment) on the current structure, with ``forced`` nodes held by do().

        Raises:
            NotFoundError: If a node or value is unknown
            CycleDetectedError: If the relevant part of the network has a cycle
        """
        assignment = self._normalise(assignment)
        forced = self._normalise(forced or {})
        for node_id, value in assignment.items():
            self.network.get_node(node_id).col_index(value)
        return np.float32(_Enumeration(self.network, forced).joint(assignment))

    def total_probability(self, node_id: NodeKey, value: int, forced: Optional[Assignment] = None) -> np.float32:
        """Marginal probability of a single node taking a value."""
        return self.joint_probability({node_id: value}, forced)

    def distribution(self, node_id: NodeKey, forced: Optional[Assignment] = None) -> Dict[int, np.float32]:
        """Marginal distribution of a node over its values."""
        node = self.network.get_node(node_id)
        return {value: self.total_probability(node.id, value, forced) for value in node.values}

    def conditional_probability(
        self,
        targets: Assignment,
        evidence: Assignment,
        forced: Optional[Assignment] = None,
    ) -> np.float32:
        """
        P(targets | evidence) = P(targets, evidence) / P(evidence).

        Raises:
            DivisionUndefinedError: If the evidence has zero probability
        """
        targets = self._normalise(targets)
        evidence = self._normalise(evidence)

        denominator = self.joint_probability(evidence, forced)
        if denominator == 0:
            raise DivisionUndefinedError(
                f"Evidence {evidence} has zero probability; conditional probability is undefined"
            )

        combined = dict(evidence)
        for node_id, value in targets.items():
            if combined.get(node_id, value) != value:
                return np.float32(0.0)
            combined[node_id] = value
        numerator = self.joint_probability(combined, forced)
        return np.float32(numerator / denominator)

    def argmax(
        self,
        node_ids: Sequence[NodeKey],
        fixed: Optional[Assignment] = None,
        forced: Optional[Assignment] = None,
    ) -> Tuple[np.float32, List[int]]:
        """
        Most probable joint value combination of ``node_ids`` together with ``fixed``.

        Combinations are enumerated in ``itertools.product`` order over the
        nodes' values; a later combination replaces the best only when its
        probability is strictly greater, so the first one wins ties. A
        combination that contradicts a value in ``fixed`` has probability 0.

        Returns:
            (joint probability of the best combination, its values in ``node_ids`` order)
        """
        fixed = self._normalise(fixed or {})
        nodes = [self.network.get_node(key) for key in node_ids]
        if not nodes:
            return self.joint_probability(fixed, forced), []

        best_probability: Optional[np.float32] = None
        best_values: Tuple[int, ...] = ()
        for combination in itertools.product(*(node.values for node in nodes)):
            assignment = dict(fixed)
            consistent = True
            for node, value in zip(nodes, combination):
                if assignment.get(node.id, value) != value:
                    consistent = False
                assignment[node.id] = value
            if consistent:
                probability = self.joint_probability(assignment, forced)
            else:
                probability = np.float32(0.0)
            if best_probability is None or probability > best_probability:
                best_probability, best_values = probability, combination

        logger.debug(f"argmax over {[n.name for n in nodes]}: {best_values} with P={best_probability}")
        return best_probability, list(best_values)

    def likelihood_of_the_data(self, samples: LabeledMatrix) -> float:
        """
        Log-likelihood of a raw sample table under the current CPTs.

        Missing values (``-1``) are summed out; identical observation patterns
        are evaluated once. Returns ``-inf`` if any sample is impossible.
        """
        rows = self.network.sample_rows(samples)
        data = samples.to_numpy()
        patterns: Counter = Counter()
        for sample in range(samples.col_count):
            patterns[tuple(
                (node_id, int(data[row, sample]))
                for node_id, row in rows.items()
                if data[row, sample] != MISSING
            )] += 1

        log_likelihood = 0.0
        for pattern, count in patterns.items():
            probability = float(self.joint_probability(dict(pattern)))
            if probability <= 0.0:
                return float("-inf")
            log_likelihood += count * math.log(probability)
        return log_likelihood

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalise(self, assignment: Assignment) -> Dict[int, int]:
        """Key an assignment by node id, accepting ids or names."""
        return {self.network.get_node(key).id: int(value) for key, value in assignment.items()}


class _Enumeration:
    """One inference pass: fixed structure, fixed forced values, shared marginal cache."""

    def __init__(self, network: Network, forced: Dict[int, int]):
        self.network = network
        self.forced = forced
        self._marginals: Dict[Tuple[int, int], float] = {}
        self._marginalising: Set[int] = set()

    def joint(self, assignment: Dict[int, int]) -> float:
        order = self._order(assignment.keys())
        return self._enumerate(order, 0, assignment, {})

    def _node(self, node_id: int) -> Node:
        node = self.network.get_node(node_id)
        if not node.has_cpt:
            raise NotFoundError(f"Node {node.id} '{node.name}' has no learned probabilities")
        return node

    def _connected(self, node: Node) -> List[bool]:
        """Per learned parent, whether its edge into the node still exists."""
        if node.id in self.forced:
            return [False] * len(node.parent_ids)
        return [
            parent in self.network and self.network.has_edge(node.id, parent)
            for parent in node.parent_ids
        ]

    def _order(self, node_ids) -> List[int]:
        """
        Topological order of the given nodes and their connected learned ancestors.

        The order is taken over every live edge upstream, including edges added
        after learning, so a cycle through an added edge is reported even though
        such an edge does not change any probability.
        """
        graph = nx.DiGraph()
        pending = list(node_ids)
        while pending:
            node_id = pending.pop()
            if node_id in graph and graph.nodes[node_id].get("expanded"):
                continue
            graph.add_node(node_id, expanded=True)
            if node_id in self.forced:
                continue
            for parent in self.network.get_parents(node_id):
                graph.add_edge(parent, node_id)
                pending.append(parent)
        try:
            order = list(nx.topological_sort(graph))
        except nx.NetworkXUnfeasible:
            cycle = [source for source, _ in nx.find_cycle(graph)]
            raise CycleDetectedError(cycle) from None

        needed: Set[int] = set()
        pending = list(node_ids)
        while pending:
            node_id = pending.pop()
            if node_id in needed:
                continue
            needed.add(node_id)
            node = self._node(node_id)
            pending.extend(
                parent for parent, connected in zip(node.parent_ids, self._connected(node)) if connected
            )
        return [node_id for node_id in order if node_id in needed]

    def _enumerate(self, order: List[int], position: int, assignment: Dict[int, int], values: Dict[int, int]) -> float:
        if position == len(order):
            return 1.0
        node = self._node(order[position])
        if node.id in assignment:
            candidates = [assignment[node.id]]
        else:
            candidates = node.values

        total = 0.0
        for value in candidates:
            factor = self._local(node, value, values)
            if factor == 0.0:
                continue
            values[node.id] = value
            total += factor * self._enumerate(order, position + 1, assignment, values)
            del values[node.id]
        return total

    def _local(self, node: Node, value: int, values: Dict[int, int]) -> float:
        """P(node = value | connected parent values), marginalising disconnected parents."""
        if node.id in self.forced:
            return 1.0 if value == self.forced[node.id] else 0.0

        col = node.col_index(value)
        connected = self._connected(node)
        if all(connected):
            row = node.row_index([values[parent] for parent in node.parent_ids])
            return float(node.get_probability(row, col))

        domains = []
        for parent, is_connected, domain in zip(node.parent_ids, connected, node.parent_values):
            domains.append([values[parent]] if is_connected else domain)

        probability = 0.0
        for combination in itertools.product(*domains):
            weight = 1.0
            for parent, is_connected, parent_value in zip(node.parent_ids, connected, combination):
                if not is_connected:
                    weight *= self._marginal(parent, parent_value)
            if weight == 0.0:
                continue
            probability += weight * float(node.get_probability(node.row_index(combination), col))
        return probability

    def _marginal(self, node_id: int, value: int) -> float:
        """Total probability of a disconnected parent, cached for this pass."""
        key = (node_id, value)
        if key in self._marginals:
            return self._marginals[key]
        if node_id not in self.network:
            raise NotFoundError(f"Learned parent {node_id} is no longer part of the network")
        if node_id in self._marginalising:
            raise CycleDetectedError(sorted(self._marginalising))

        self._marginalising.add(node_id)
        try:
            self._node(node_id).col_index(value)
            probability = self.joint({node_id: value})
        finally:
            self._marginalising.discard(node_id)
        self._marginals[key] = probability
        return probability
