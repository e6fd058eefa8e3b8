"""
Tests for src/causal_engine/network.py - Network structure and file ingestion.
"""

import networkx as nx
import pytest

from src.causal_engine.errors import MalformedInputError, NotFoundError
from src.causal_engine.matrix import LabeledMatrix
from src.causal_engine.network import Network, NetworkFormat, format_for_path, read_network

from conftest import CHAIN_TGF, write_file


NA_TEXT = """\
ID attribute name
1 x A
2 x B
3 x C
"""

SIF_TEXT = """\
2 pp 1
3 pp 2
"""


class TestFormatDispatch:
    """Tests for extension-based format selection."""

    def test_known_extensions(self):
        assert format_for_path("net.tgf") is NetworkFormat.TGF
        assert format_for_path("dir/net.NA") is NetworkFormat.NA
        assert format_for_path("net.sif") is NetworkFormat.SIF

    def test_unknown_extension(self):
        with pytest.raises(NotFoundError):
            format_for_path("net.xml")
        with pytest.raises(NotFoundError):
            format_for_path("network")


class TestTrivialGraphFormat:
    """Tests for reading .tgf files."""

    def test_nodes_and_edges(self, chain_path):
        network = read_network(chain_path)
        assert len(network) == 3
        assert network.node_ids() == [1, 2, 3]
        assert [n.name for n in network.get_nodes()] == ["A", "B", "C"]
        assert network.adjacency.to_numpy().sum() == 2
        # edge source -> target sits at [target][source]
        assert network.adjacency.get(network.get_index(2), network.get_index(1)) == 1
        assert network.adjacency.get(network.get_index(3), network.get_index(2)) == 1

    def test_edge_lines_are_target_then_source(self, chain_path):
        network = read_network(chain_path)
        assert network.get_parents(2) == [1]
        assert network.get_parents("C") == [2]
        assert network.get_parents(1) == []
        assert network.get_children(1) == [2]
        assert network.get_edges() == [(1, 2), (2, 3)]

    def test_reading_replaces_previous_network(self, tmp_path, chain_path):
        other = write_file(tmp_path, "other.tgf", "7 X\n8 Y\n#\n")
        network = read_network(chain_path)
        network.read_network(other)
        assert network.node_ids() == [7, 8]
        assert network.get_edges() == []

    def test_file_without_separator(self, tmp_path):
        path = write_file(tmp_path, "nodes.tgf", "1 A\n2 B\n")
        network = read_network(path)
        assert len(network) == 2
        assert network.get_edges() == []

    def test_unknown_edge_endpoint(self, tmp_path):
        path = write_file(tmp_path, "bad.tgf", "1 A\n#\n1 9\n")
        with pytest.raises(NotFoundError):
            read_network(path)

    def test_non_numeric_id(self, tmp_path):
        path = write_file(tmp_path, "bad.tgf", "one A\n#\n")
        with pytest.raises(MalformedInputError):
            read_network(path)

    def test_duplicate_node(self, tmp_path):
        path = write_file(tmp_path, "dup.tgf", "1 A\n1 B\n#\n")
        with pytest.raises(MalformedInputError):
            read_network(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MalformedInputError):
            read_network(tmp_path / "absent.tgf")


class TestAttributeAndInteractionFormats:
    """Tests for reading .na and .sif files."""

    def test_na_defines_nodes_only(self, tmp_path):
        network = read_network(write_file(tmp_path, "net.na", NA_TEXT))
        assert network.node_ids() == [1, 2, 3]
        assert network.get_node(2).name == "B"
        assert network.get_edges() == []

    def test_sif_appends_edges(self, tmp_path):
        network = read_network(write_file(tmp_path, "net.na", NA_TEXT))
        network.read_network(write_file(tmp_path, "net.sif", SIF_TEXT))
        assert network.get_parents(2) == [1]
        assert network.get_parents(3) == [2]
        assert len(network) == 3

    def test_sif_with_several_targets_on_a_line(self, tmp_path):
        network = read_network(write_file(tmp_path, "net.na", NA_TEXT))
        network.read_network(write_file(tmp_path, "net.sif", "3 pp 1 2\n"))
        assert network.get_parents(3) == [1, 2]

    def test_sif_requires_nodes(self, tmp_path):
        path = write_file(tmp_path, "net.sif", SIF_TEXT)
        with pytest.raises(NotFoundError, match="beforehand"):
            read_network(path)


class TestStructuralMutation:
    """Tests for the intervention primitives."""

    def test_add_edge_draws_second_to_first(self, chain_path):
        network = read_network(chain_path)
        network.add_edge(3, 1)
        assert 1 in network.get_parents(3)
        assert network.has_edge(3, 1)
        assert not network.has_edge(1, 3)

    def test_remove_edge(self, chain_path):
        network = read_network(chain_path)
        network.remove_edge(2, 1)
        assert network.get_parents(2) == []

    def test_cut_parents_zeroes_exactly_incoming_edges(self, chain_path):
        network = read_network(chain_path)
        network.add_edge(3, 1)
        before = network.adjacency.to_numpy()

        cut = network.cut_parents(3)

        after = network.adjacency.to_numpy()
        row = network.get_index(3)
        assert sorted(cut) == [1, 2]
        assert after[row].sum() == 0
        changed = (before != after).sum()
        assert changed == 2
        before[row, :] = 0
        assert (before == after).all()

    def test_add_and_remove_node(self, chain_path):
        network = read_network(chain_path)
        network.add_node(10, "D")
        network.add_edge(10, 3)
        assert network.get_parents("D") == [3]
        assert network.adjacency.shape == (4, 4)

        network.remove_node(10)
        assert network.node_ids() == [1, 2, 3]
        assert network.get_edges() == [(1, 2), (2, 3)]
        assert network.adjacency.shape == (3, 3)

    def test_remove_middle_node_keeps_other_edges(self, chain_path):
        network = read_network(chain_path)
        network.add_edge(3, 1)
        network.remove_node(2)
        assert network.node_ids() == [1, 3]
        assert network.get_edges() == [(1, 3)]
        with pytest.raises(NotFoundError):
            network.get_node("B")

    def test_lookup_of_unknown_key(self, chain_path):
        network = read_network(chain_path)
        with pytest.raises(NotFoundError):
            network.get_index(42)
        with pytest.raises(KeyError):
            network.get_node("Z")
        assert "A" in network
        assert 4 not in network

    def test_digraph_and_cycles(self, chain_path):
        network = read_network(chain_path)
        graph = network.to_digraph()
        assert isinstance(graph, nx.DiGraph)
        assert set(graph.edges) == {(1, 2), (2, 3)}
        assert network.is_acyclic()
        network.add_edge(1, 3)
        assert not network.is_acyclic()

    def test_str_dumps_adjacency(self, chain_path):
        network = read_network(chain_path)
        assert str(network).splitlines()[0] == "\t1\t2\t3"
        assert str(network).splitlines()[2] == "2\t1\t0\t0"


class TestLoadObservations:
    """Tests for shaping node tables from raw samples."""

    @pytest.fixture
    def network(self, tmp_path):
        return read_network(write_file(tmp_path, "chain.tgf", CHAIN_TGF))

    def test_complete_samples(self, tmp_path, network):
        samples = LabeledMatrix.from_file(write_file(
            tmp_path, "s.txt", "s1 s2 s3 s4\nA 0 1 1 0\nB 0 1 0 0\nC 1 1 1 0\n"
        ))
        network.load_observations(samples)

        b = network.get_node("B")
        assert b.parent_ids == [1]
        assert b.values == [0, 1]
        assert b.cpt.row_names == ["A=0", "A=1"]
        assert not b.observations.has_na_col()
        assert b.observations.row_values(0) == [2.0, 0.0]
        assert b.observations.row_values(1) == [1.0, 1.0]
        assert network.get_node("A").cpt.row_names == ["prior"]
        assert network.get_node("A").observations.row_values(0) == [2.0, 2.0]

    def test_missing_values_get_na_column(self, tmp_path, network):
        samples = LabeledMatrix.from_file(write_file(
            tmp_path, "s.txt", "s1 s2 s3 s4\nA 0 -1 1 0\nB 0 1 -1 0\nC 1 1 1 0\n"
        ))
        network.load_observations(samples)

        b = network.get_node("B")
        assert b.observations.col_names == ["NA", "0", "1"]
        # sample 2 has no parent value and is skipped for B
        assert b.observations.row_values(0) == [0.0, 2.0, 0.0]
        assert b.observations.row_values(1) == [1.0, 0.0, 0.0]
        assert network.get_node("A").observations.row_values(0) == [1.0, 2.0, 1.0]

    def test_rows_matched_by_id(self, tmp_path, network):
        samples = LabeledMatrix.from_file(write_file(
            tmp_path, "s.txt", "s1 s2\n3 0 1\n1 1 1\n2 0 0\n"
        ))
        network.load_observations(samples)
        assert network.get_node("A").values == [1]
        assert network.get_node("C").values == [0, 1]

    def test_unknown_node_in_samples(self, tmp_path, network):
        samples = LabeledMatrix.from_file(write_file(tmp_path, "s.txt", "s1\nA 0\nB 1\n"))
        with pytest.raises(NotFoundError):
            network.load_observations(samples)

    def test_node_without_observed_values(self, tmp_path, network):
        samples = LabeledMatrix.from_file(write_file(
            tmp_path, "s.txt", "s1 s2\nA 0 1\nB -1 -1\nC 0 1\n"
        ))
        with pytest.raises(MalformedInputError):
            network.load_observations(samples)
