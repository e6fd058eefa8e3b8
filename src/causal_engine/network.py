"""
Directed-graph model of a discrete Bayesian network.

The network owns its nodes and a square adjacency matrix in which
``adjacency[child][parent] == 1`` marks an edge parent -> child. Row and column
names of the adjacency matrix are the stringified node ids.

Networks are read from three plain-text formats, selected by file extension:

    .tgf  Trivial Graph Format: ``id name`` lines, a ``#`` line, then
          ``target source`` edge lines
    .na   Node attributes: a header line, then ``id <ignored> name`` lines
    .sif  Simple Interaction Format: ``target relation source`` lines; needs
          the nodes of a .na file to be loaded first

Usage:
    network = read_network("data/asia.tgf")
    network.get_parents("Dyspnoea")
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np

from .errors import MalformedInputError, NotFoundError
from .matrix import LabeledMatrix
from .node import MISSING, Node

logger = logging.getLogger(__name__)

NodeKey = Union[int, str]

# Line that separates the node block from the edge block of a .tgf file
TGF_SEPARATOR = "#"


class NetworkFormat(Enum):
    """The supported network file formats, keyed by file extension."""
    TGF = ".tgf"
    NA = ".na"
    SIF = ".sif"


def format_for_path(path: Union[str, Path]) -> NetworkFormat:
    """
    Map a file name to its network format.

    Raises:
        NotFoundError: If the extension is not a supported format
    """
    extension = Path(path).suffix.lower()
    for fmt in NetworkFormat:
        if fmt.value == extension:
            return fmt
    raise NotFoundError(f"Unsupported file type: '{extension or path}'")


def _read_lines(path: Union[str, Path]) -> List[Tuple[int, List[str]]]:
    """Return ``(line number, tokens)`` for every non-blank line of a file."""
    path = Path(path)
    if not path.is_file():
        raise MalformedInputError(f"File not found: {path}")
    with open(path, "r") as f:
        lines = [(number, line.split()) for number, line in enumerate(f, start=1)]
    return [(number, tokens) for number, tokens in lines if tokens]


def _parse_id(token: str, path: Union[str, Path], number: int) -> int:
    try:
        return int(token)
    except ValueError:
        raise MalformedInputError(f"{path}:{number}: '{token}' is not a node identifier") from None


class Network:
    """Owner of the nodes and the adjacency matrix of a Bayesian network."""

    def __init__(self):
        self._nodes: List[Node] = []
        self._id_to_index = {}
        self._name_to_index = {}
        self.adjacency = LabeledMatrix(0, 0, 0, dtype=np.uint32)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes))

    def __contains__(self, key: NodeKey) -> bool:
        if isinstance(key, str):
            return key in self._name_to_index
        return int(key) in self._id_to_index

    def __str__(self) -> str:
        return str(self.adjacency)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_index(self, key: NodeKey) -> int:
        """
        Matrix index of a node given its id or name.

        Raises:
            NotFoundError: If no node has this id or name
        """
        if isinstance(key, str):
            index = self._name_to_index.get(key)
        else:
            index = self._id_to_index.get(int(key))
        if index is None:
            raise NotFoundError(f"Identifier not found: {key!r}")
        return index

    def get_node(self, key: NodeKey) -> Node:
        return self._nodes[self.get_index(key)]

    def get_nodes(self) -> List[Node]:
        return list(self._nodes)

    def node_ids(self) -> List[int]:
        return [node.id for node in self._nodes]

    def _id_at(self, index: int) -> int:
        return int(self.adjacency.col_names[index])

    def get_parents(self, key: NodeKey) -> List[int]:
        """Ids of the current parents of a node, in matrix index order."""
        row = self.adjacency.row_values(self.get_index(key))
        return [self._id_at(col) for col, edge in enumerate(row) if edge == 1]

    def get_children(self, key: NodeKey) -> List[int]:
        """Ids of the current children of a node, in matrix index order."""
        col = self.adjacency.col_values(self.get_index(key))
        return [self._id_at(row) for row, edge in enumerate(col) if edge == 1]

    def has_edge(self, target: NodeKey, source: NodeKey) -> bool:
        """True if the edge source -> target exists."""
        return self.adjacency.get(self.get_index(target), self.get_index(source)) == 1

    def get_edges(self) -> List[Tuple[int, int]]:
        """All edges as ``(source id, target id)`` pairs."""
        edges = []
        for node in self._nodes:
            edges.extend((parent, node.id) for parent in self.get_parents(node.id))
        return edges

    def to_digraph(self) -> nx.DiGraph:
        """The current structure as a networkx graph over node ids."""
        graph = nx.DiGraph()
        graph.add_nodes_from(self.node_ids())
        graph.add_edges_from(self.get_edges())
        return graph

    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.to_digraph())

    # ------------------------------------------------------------------
    # Structural mutation
    # ------------------------------------------------------------------

    def add_edge(self, id1: NodeKey, id2: NodeKey) -> None:
        """Add the edge id2 -> id1 (id1 is the target, id2 the source)."""
        self.adjacency.set(1, self.get_index(id1), self.get_index(id2))

    def remove_edge(self, id1: NodeKey, id2: NodeKey) -> None:
        """Remove the edge id2 -> id1."""
        self.adjacency.set(0, self.get_index(id1), self.get_index(id2))

    def cut_parents(self, key: NodeKey) -> List[int]:
        """
        Remove every incoming edge of a node.

        Returns:
            Ids of the parents that were cut off
        """
        parents = self.get_parents(key)
        index = self.get_index(key)
        for parent in parents:
            self.adjacency.set(0, index, self.get_index(parent))
        return parents

    def add_node(self, node_id: int, name: str) -> Node:
        """Append a new node without edges."""
        return self.insert_node(Node(node_id, name))

    def insert_node(self, node: Node) -> Node:
        """
        Append an existing node object without edges.

        Raises:
            MalformedInputError: If the id or name is already taken
        """
        if node.id in self._id_to_index or node.name in self._name_to_index:
            raise MalformedInputError(f"Node {node.id} '{node.name}' already exists")
        self._nodes.append(node)
        self._id_to_index[node.id] = len(self._nodes) - 1
        self._name_to_index[node.name] = len(self._nodes) - 1
        size = len(self._nodes)
        self.adjacency.resize(size, size, 0)
        names = [str(i) for i in self.node_ids()]
        self.adjacency.set_row_names(names)
        self.adjacency.set_col_names(names)
        return node

    def remove_node(self, key: NodeKey) -> Node:
        """Remove a node together with all of its edges."""
        index = self.get_index(key)
        node = self._nodes.pop(index)
        keep = [i for i in range(self.adjacency.row_count) if i != index]
        edges = self.adjacency.to_numpy()[np.ix_(keep, keep)]
        self._reindex()
        names = [str(i) for i in self.node_ids()]
        self.adjacency = LabeledMatrix.from_names(names, names, 0, dtype=np.uint32)
        for row, col in zip(*np.nonzero(edges)):
            self.adjacency.set(1, int(row), int(col))
        return node

    def _reindex(self) -> None:
        self._id_to_index = {node.id: i for i, node in enumerate(self._nodes)}
        self._name_to_index = {node.name: i for i, node in enumerate(self._nodes)}

    def _install_nodes(self, nodes: Sequence[Tuple[int, str]]) -> None:
        """Replace all nodes and edges with a fresh edge-less node set."""
        self._nodes = [Node(node_id, name) for node_id, name in nodes]
        self._reindex()
        if len(self._id_to_index) != len(nodes) or len(self._name_to_index) != len(nodes):
            raise MalformedInputError("Node identifiers and names must be unique")
        self.adjacency.clear()
        self.adjacency.resize(len(nodes), len(nodes), 0)
        names = [str(node_id) for node_id, _ in nodes]
        self.adjacency.set_row_names(names)
        self.adjacency.set_col_names(names)

    # ------------------------------------------------------------------
    # File ingestion
    # ------------------------------------------------------------------

    def read_network(self, path: Union[str, Path]) -> None:
        """Read a network file, dispatching on its extension."""
        fmt = format_for_path(path)
        if fmt is NetworkFormat.TGF:
            self.read_tgf(path)
        elif fmt is NetworkFormat.NA:
            self.read_na(path)
        else:
            self.read_sif(path)

    def read_tgf(self, path: Union[str, Path]) -> None:
        """Read nodes and edges from a Trivial Graph Format file, replacing the network."""
        lines = _read_lines(path)
        nodes = []
        position = 0
        for position, (number, tokens) in enumerate(lines, start=1):
            if tokens == [TGF_SEPARATOR]:
                break
            if len(tokens) < 2:
                raise MalformedInputError(f"{path}:{number}: expected '<id> <name>'")
            nodes.append((_parse_id(tokens[0], path, number), " ".join(tokens[1:])))
        else:
            position = len(lines)

        self._install_nodes(nodes)
        for number, tokens in lines[position:]:
            if len(tokens) < 2:
                raise MalformedInputError(f"{path}:{number}: expected '<target> <source>'")
            self.add_edge(_parse_id(tokens[0], path, number), _parse_id(tokens[1], path, number))
        logger.info(f"Read {len(self)} nodes and {len(self.get_edges())} edges from {path}")

    def read_na(self, path: Union[str, Path]) -> None:
        """Read nodes from a Node Attribute file, replacing the network."""
        nodes = []
        for number, tokens in _read_lines(path)[1:]:
            if len(tokens) < 3:
                raise MalformedInputError(f"{path}:{number}: expected '<id> <attribute> <name>'")
            nodes.append((_parse_id(tokens[0], path, number), " ".join(tokens[2:])))
        self._install_nodes(nodes)
        logger.info(f"Read {len(self)} nodes from {path}")

    def read_sif(self, path: Union[str, Path]) -> None:
        """
        Add edges from a Simple Interaction Format file to the loaded nodes.

        Raises:
            NotFoundError: If no nodes have been read yet
        """
        if not self._nodes:
            raise NotFoundError("You have to read in a .na file beforehand.")
        added = 0
        for number, tokens in _read_lines(path):
            if len(tokens) < 3:
                raise MalformedInputError(f"{path}:{number}: expected '<id> <relation> <id>'")
            target = _parse_id(tokens[0], path, number)
            for token in tokens[2:]:
                self.add_edge(target, _parse_id(token, path, number))
                added += 1
        logger.info(f"Added {added} edges from {path}")

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def sample_rows(self, samples: LabeledMatrix) -> Dict[int, int]:
        """Row of the sample table holding each node's samples, keyed by node id."""
        if not samples.row_names:
            if samples.row_count != len(self._nodes):
                raise MalformedInputError(
                    f"Sample table has {samples.row_count} rows for {len(self._nodes)} nodes"
                )
            return {node.id: index for index, node in enumerate(self._nodes)}

        rows = {}
        for node in self._nodes:
            row = samples.find_row(node.name)
            if row is None:
                row = samples.find_row(str(node.id))
            if row is None:
                raise NotFoundError(f"No samples for node {node.id} '{node.name}'")
            rows[node.id] = row
        return rows

    def load_observations(self, samples: LabeledMatrix) -> None:
        """
        Shape every node's tables from a raw sample table and count the samples.

        Rows of ``samples`` are variables (matched by node name, then by id, or
        by position when unnamed); columns are samples; ``-1`` marks a missing
        value. A sample missing any parent value is not counted for that node.

        Raises:
            NotFoundError: If a node has no row in the sample table
            MalformedInputError: If a node has no observed value at all
        """
        rows = self.sample_rows(samples)
        domains = {}
        for node in self._nodes:
            domains[node.id] = samples.unique_row_values(rows[node.id], exclude=MISSING)
            if not domains[node.id]:
                raise MalformedInputError(f"Node {node.id} '{node.name}' has no observed values")

        parents = {node.id: self.get_parents(node.id) for node in self._nodes}
        for node in self._nodes:
            node.shape_tables(
                values=domains[node.id],
                parent_ids=parents[node.id],
                parent_values=[domains[p] for p in parents[node.id]],
                parent_names=[self.get_node(p).name for p in parents[node.id]],
                with_na=samples.row_contains(rows[node.id], MISSING),
            )

        data = samples.to_numpy()
        skipped = 0
        for sample in range(samples.col_count):
            for node in self._nodes:
                assignment = [int(data[rows[p], sample]) for p in parents[node.id]]
                if MISSING in assignment:
                    skipped += 1
                    continue
                node.count(int(data[rows[node.id], sample]), assignment)

        for node in self._nodes:
            node.save_backup()
        if skipped:
            logger.debug(f"Skipped {skipped} node counts with missing parent values")
        logger.info(f"Loaded {samples.col_count} samples for {len(self)} nodes")


def read_network(path: Union[str, Path], network: Optional[Network] = None) -> Network:
    """Read a network file into a new (or the given) network."""
    network = network if network is not None else Network()
    network.read_network(path)
    return network
