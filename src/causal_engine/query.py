"""
One-shot query execution against a network.

A ``QueryExecuter`` is populated through its setters, then ``execute()``:

1. builds the twin network when any reference is ``Hypothetical``; the
   do-interventions then act on the hypothetical copies
2. applies the edge additions, edge removals and do-interventions
3. computes a MAP query if argmax targets are set, else a conditional
   probability if conditions are set, else a joint probability
4. reverses every mutation, most recent first, even on failure
5. clears the query sets and returns a ``QueryResult``

Node references are plain ids (factual) or ``Factual``/``Hypothetical``
instances.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from .errors import QueryStateError
from .interventions import Hypothetical, InterventionManager, NodeRef, RefLike, as_ref
from .network import Network
from .probability import ProbabilityEngine

logger = logging.getLogger(__name__)

ValuePairs = Union[Mapping[RefLike, int], Iterable[Tuple[RefLike, int]]]


class QueryState(Enum):
    IDLE = "idle"
    LOADED = "loaded"
    EXECUTING = "executing"
    DONE = "done"


class QueryResult(NamedTuple):
    """Probability of the query; the maximising values for MAP queries, else empty."""
    probability: float
    assignments: List[str]


def _value_pairs(items: ValuePairs) -> List[Tuple[NodeRef, int]]:
    if isinstance(items, Mapping):
        items = items.items()
    return [(as_ref(ref), int(value)) for ref, value in items]


def _format_pairs(pairs: Sequence[Tuple[NodeRef, int]]) -> str:
    return ", ".join(f"{ref}={value}" for ref, value in pairs)


class QueryExecuter:
    """Holds one query at a time and evaluates it on a network."""

    def __init__(self, network: Network):
        self.network = network
        self.engine = ProbabilityEngine(network)
        self.state = QueryState.IDLE
        self.result: Optional[QueryResult] = None
        self._clear()

    def _clear(self) -> None:
        self._non_interventions: List[Tuple[NodeRef, int]] = []
        self._conditions: List[Tuple[NodeRef, int]] = []
        self._do_interventions: List[Tuple[NodeRef, int]] = []
        self._edges_to_add: List[Tuple[NodeRef, NodeRef]] = []
        self._edges_to_remove: List[Tuple[NodeRef, NodeRef]] = []
        self._argmax: List[NodeRef] = []
        self.state = QueryState.IDLE

    def _loaded(self) -> None:
        populated = any([
            self._non_interventions, self._conditions, self._do_interventions,
            self._edges_to_add, self._edges_to_remove, self._argmax,
        ])
        self.state = QueryState.LOADED if populated else QueryState.IDLE

    # ------------------------------------------------------------------
    # Setters and getters
    # ------------------------------------------------------------------

    def set_non_intervention(self, items: ValuePairs) -> None:
        """Target values whose (joint) probability is asked for."""
        self._non_interventions = _value_pairs(items)
        self._loaded()

    def set_condition(self, items: ValuePairs) -> None:
        """Observed evidence the targets are conditioned on."""
        self._conditions = _value_pairs(items)
        self._loaded()

    def set_do_intervention(self, items: ValuePairs) -> None:
        """Nodes forced to a value by do()."""
        self._do_interventions = _value_pairs(items)
        self._loaded()

    def set_add_edge(self, edges: Iterable[Tuple[RefLike, RefLike]]) -> None:
        """Edges ``(source, target)`` added for the duration of the query."""
        self._edges_to_add = [(as_ref(source), as_ref(target)) for source, target in edges]
        self._loaded()

    def set_remove_edge(self, edges: Iterable[Tuple[RefLike, RefLike]]) -> None:
        """Edges ``(source, target)`` removed for the duration of the query."""
        self._edges_to_remove = [(as_ref(source), as_ref(target)) for source, target in edges]
        self._loaded()

    def set_argmax(self, refs: Iterable[RefLike]) -> None:
        """Nodes whose most probable values are asked for."""
        self._argmax = [as_ref(ref) for ref in refs]
        self._loaded()

    def get_non_interventions(self) -> List[Tuple[NodeRef, int]]:
        return list(self._non_interventions)

    def get_conditions(self) -> List[Tuple[NodeRef, int]]:
        return list(self._conditions)

    def get_do_interventions(self) -> List[Tuple[NodeRef, int]]:
        return list(self._do_interventions)

    def get_edges_to_add(self) -> List[Tuple[NodeRef, NodeRef]]:
        return list(self._edges_to_add)

    def get_edges_to_remove(self) -> List[Tuple[NodeRef, NodeRef]]:
        return list(self._edges_to_remove)

    def get_argmax(self) -> List[NodeRef]:
        return list(self._argmax)

    def is_counterfactual(self) -> bool:
        refs = [ref for ref, _ in self._non_interventions + self._conditions + self._do_interventions]
        refs += [ref for edge in self._edges_to_add + self._edges_to_remove for ref in edge]
        refs += self._argmax
        return any(ref.hypothetical for ref in refs)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self) -> QueryResult:
        """
        Evaluate the populated query and clear it.

        Raises:
            QueryStateError: If no query has been set
        """
        if self.state is not QueryState.LOADED:
            raise QueryStateError("No query has been set")

        description = str(self)
        self.state = QueryState.EXECUTING
        manager = InterventionManager()
        try:
            result = self._run(manager)
        finally:
            manager.reverse_all(self.network)
            self._clear()

        self.state = QueryState.DONE
        self.result = result
        logger.info(f"{description} = {result.probability:.6g}"
                    + (f" at {result.assignments}" if result.assignments else ""))
        return result

    def _run(self, manager: InterventionManager) -> QueryResult:
        if self.is_counterfactual():
            manager.build_twin_network(self.network, [ref.node_id for ref, _ in self._do_interventions])
            do_interventions = [(Hypothetical(ref.node_id), value) for ref, value in self._do_interventions]
        else:
            do_interventions = self._do_interventions

        for source, target in self._edges_to_add:
            manager.add_edge(self.network, manager.resolve(source), manager.resolve(target))
        for source, target in self._edges_to_remove:
            manager.remove_edge(self.network, manager.resolve(source), manager.resolve(target))
        for ref, value in do_interventions:
            manager.do_intervention(self.network, manager.resolve(ref), value)

        forced = manager.forced_values
        targets = {manager.resolve(ref): value for ref, value in self._non_interventions}
        conditions = {manager.resolve(ref): value for ref, value in self._conditions}

        if self._argmax:
            fixed = dict(conditions)
            fixed.update(targets)
            probability, values = self.engine.argmax(
                [manager.resolve(ref) for ref in self._argmax], fixed, forced
            )
            return QueryResult(float(probability), [str(value) for value in values])
        if conditions:
            return QueryResult(float(self.engine.conditional_probability(targets, conditions, forced)), [])
        return QueryResult(float(self.engine.joint_probability(targets, forced)), [])

    def __str__(self) -> str:
        inner = _format_pairs(self._non_interventions)
        given = [_format_pairs(self._conditions)] if self._conditions else []
        given += [f"do({ref}={value})" for ref, value in self._do_interventions]
        if given:
            inner = f"{inner} | {', '.join(given)}" if inner else ", ".join(given)
        text = f"P({inner})"
        if self._argmax:
            text = f"argmax[{', '.join(str(ref) for ref in self._argmax)}] {text}"
        edits = [f"+{s}->{t}" for s, t in self._edges_to_add] + [f"-{s}->{t}" for s, t in self._edges_to_remove]
        if edits:
            text += f" with edges [{', '.join(edits)}]"
        return text
