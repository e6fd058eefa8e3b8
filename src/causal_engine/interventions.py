"""
Reversible structural mutations of a live network.

Four mutation kinds are supported: do-interventions, edge additions, edge
removals and twin-network construction for counterfactual queries. Every
apply pushes an undo entry; ``reverse_all`` unwinds them in reverse order.

The manager never keeps a reference to the network between calls; each
operation takes the network it acts on.

Twin identity is explicit: ``Factual(3)`` names node 3 of the observed world,
``Hypothetical(3)`` names its copy in the intervened world. A hypothetical
reference to a node that was not copied resolves to the shared factual node.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple, Union

import networkx as nx

from .network import Network

logger = logging.getLogger(__name__)

# Suffix appended to the names of twin nodes
TWIN_SUFFIX = "*"


@dataclass(frozen=True)
class NodeRef:
    """Reference to a node on one side of a twin network."""
    node_id: int

    @property
    def hypothetical(self) -> bool:
        return False


@dataclass(frozen=True)
class Factual(NodeRef):
    def __str__(self) -> str:
        return str(self.node_id)


@dataclass(frozen=True)
class Hypothetical(NodeRef):
    @property
    def hypothetical(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"{TWIN_SUFFIX}{self.node_id}"


RefLike = Union[NodeRef, int]


def as_ref(key: RefLike) -> NodeRef:
    """Plain ids are factual references."""
    if isinstance(key, NodeRef):
        return key
    return Factual(int(key))


class InterventionManager:
    """Applies mutations to a network and undoes them in reverse order."""

    def __init__(self):
        self._undo: List[Tuple] = []
        self._forced: Dict[int, int] = {}
        self._twins: Dict[int, int] = {}

    @property
    def forced_values(self) -> Dict[int, int]:
        """Active do-interventions as {node id: forced value}."""
        return dict(self._forced)

    @property
    def twins(self) -> Dict[int, int]:
        """Active twin copies as {factual id: twin id}."""
        return dict(self._twins)

    def has_pending(self) -> bool:
        return bool(self._undo)

    def resolve(self, ref: RefLike) -> int:
        """Live node id of a reference."""
        ref = as_ref(ref)
        if ref.hypothetical:
            return self._twins.get(ref.node_id, ref.node_id)
        return ref.node_id

    def do_intervention(self, network: Network, node_id: int, value: int) -> None:
        """Force a node to a value: cut its incoming edges and record the value."""
        node = network.get_node(node_id)
        node.col_index(value)
        cut = network.cut_parents(node.id)
        self._undo.append(("do", node.id, cut, self._forced.get(node.id)))
        self._forced[node.id] = int(value)
        logger.debug(f"do({node.name}={value}), cut parents {cut}")

    def add_edge(self, network: Network, source: int, target: int) -> None:
        """Add the edge source -> target."""
        existed = network.has_edge(target, source)
        network.add_edge(target, source)
        self._undo.append(("edge", target, source, existed))
        logger.debug(f"Added edge {source} -> {target}")

    def remove_edge(self, network: Network, source: int, target: int) -> None:
        """Remove the edge source -> target."""
        existed = network.has_edge(target, source)
        network.remove_edge(target, source)
        self._undo.append(("edge", target, source, existed))
        logger.debug(f"Removed edge {source} -> {target}")

    def build_twin_network(self, network: Network, intervened_ids: Sequence[int]) -> Dict[int, int]:
        """
        Copy every node downstream of the intervened nodes (inclusive).

        Twins get fresh ids above the current maximum, ``name*`` names and
        copies of the CPT and counts. A twin's parents are the twins of the
        original parents where those were copied, and the shared factual
        nodes otherwise.

        Returns:
            {factual id: twin id}
        """
        graph = network.to_digraph()
        copied = set()
        for node_id in intervened_ids:
            node_id = network.get_node(node_id).id
            copied.add(node_id)
            copied.update(nx.descendants(graph, node_id))

        next_id = max(network.node_ids(), default=-1) + 1
        mapping = {}
        for node in network.get_nodes():
            if node.id in copied:
                mapping[node.id] = next_id
                next_id += 1

        for factual_id, twin_id in mapping.items():
            node = network.get_node(factual_id)
            twin_parents = [mapping.get(p, p) for p in node.parent_ids]
            network.insert_node(node.copy_as(twin_id, node.name + TWIN_SUFFIX, twin_parents))
        for factual_id, twin_id in mapping.items():
            for parent in network.get_parents(factual_id):
                network.add_edge(twin_id, mapping.get(parent, parent))

        self._twins.update(mapping)
        self._undo.append(("twin", list(mapping.items())))
        logger.debug(f"Built twin network {mapping}")
        return dict(mapping)

    def reverse_all(self, network: Network) -> None:
        """Undo every applied mutation, most recent first."""
        while self._undo:
            entry = self._undo.pop()
            kind = entry[0]
            if kind == "do":
                _, node_id, cut, previous = entry
                for parent in cut:
                    network.add_edge(node_id, parent)
                if previous is None:
                    self._forced.pop(node_id, None)
                else:
                    self._forced[node_id] = previous
            elif kind == "edge":
                _, target, source, existed = entry
                if existed:
                    network.add_edge(target, source)
                else:
                    network.remove_edge(target, source)
            else:
                for factual_id, twin_id in reversed(entry[1]):
                    network.remove_node(twin_id)
                    self._twins.pop(factual_id, None)
        logger.debug("Reversed all interventions")
