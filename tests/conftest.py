"""
Shared fixtures for the causal engine tests.

The reference network is the binary chain A -> B -> C with

    P(A)     = [0.6, 0.4]
    P(B | A) = [[0.7, 0.3], [0.2, 0.8]]
    P(C | B) = [[0.9, 0.1], [0.5, 0.5]]
"""

from pathlib import Path
from typing import List, Sequence

import pytest

from src.causal_engine.network import Network

CHAIN_TGF = """\
1 A
2 B
3 C
#
2 1
3 2
"""

CHAIN_CPTS = {
    1: [[0.6, 0.4]],
    2: [[0.7, 0.3], [0.2, 0.8]],
    3: [[0.9, 0.1], [0.5, 0.5]],
}


def write_file(directory: Path, name: str, text: str) -> Path:
    path = directory / name
    path.write_text(text)
    return path


def set_cpt(network: Network, node_id: int, rows: List[List[float]], values: Sequence[int] = (0, 1)) -> None:
    """Give a node the current graph parents and an explicit CPT over binary parents."""
    node = network.get_node(node_id)
    parents = network.get_parents(node_id)
    node.shape_tables(
        values=list(values),
        parent_ids=parents,
        parent_values=[list(values)] * len(parents),
        parent_names=[network.get_node(p).name for p in parents],
        with_na=False,
    )
    for row, probabilities in enumerate(rows):
        for col, probability in enumerate(probabilities):
            node.set_probability(probability, row, col)


@pytest.fixture
def chain_path(tmp_path):
    """TGF file of the A -> B -> C chain."""
    return write_file(tmp_path, "chain.tgf", CHAIN_TGF)


@pytest.fixture
def chain(chain_path):
    """The A -> B -> C chain with the reference CPTs."""
    network = Network()
    network.read_network(chain_path)
    for node_id, rows in CHAIN_CPTS.items():
        set_cpt(network, node_id, rows)
    return network
