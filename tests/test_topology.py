import networkx as nx
import pytest

from routing.topology import Link, Topology, TopologyError, build_adjacency


def test_adjacency_is_symmetric(sample_topology):
    adjacency = build_adjacency(sample_topology)
    for node_id, entries in adjacency.items():
        for entry in entries:
            back = [e for e in adjacency[entry.neighbor] if e.neighbor == node_id]
            assert len(back) == 1
            assert back[0].weight == entry.weight
            assert back[0].bandwidth == entry.bandwidth


def test_adjacency_keeps_link_insertion_order(sample_topology):
    adjacency = build_adjacency(sample_topology)
    assert [e.neighbor for e in adjacency["B"]] == ["A", "C", "E"]
    assert [e.neighbor for e in adjacency["E"]] == ["B", "D", "F"]


def test_isolated_node_has_empty_adjacency():
    topo = Topology.from_edges([("A", "B", 1)], nodes=["A", "B", "Z"])
    assert build_adjacency(topo)["Z"] == []


def test_unknown_endpoint_fails_fast():
    topo = Topology(nodes=("A", "B"), links=(Link("A", "C", 1),))
    with pytest.raises(TopologyError, match="unknown node C"):
        build_adjacency(topo)


def test_link_between_is_unordered(sample_topology):
    assert sample_topology.link_between("B", "A") is sample_topology.link_between("A", "B")
    assert sample_topology.link_between("A", "F") is None


def test_link_other_endpoint():
    link = Link("A", "B", 2)
    assert link.other("A") == "B"
    assert link.other("B") == "A"
    with pytest.raises(TopologyError):
        link.other("C")


def test_to_networkx_carries_attributes(sample_topology):
    graph = sample_topology.to_networkx()
    assert isinstance(graph, nx.Graph)
    assert graph.number_of_nodes() == 6
    assert graph.number_of_edges() == 7
    assert graph["E"]["F"] == {"weight": 6, "bandwidth": 50}


def test_snapshot_is_immutable(sample_topology):
    with pytest.raises(AttributeError):
        sample_topology.nodes = ("A",)
    assert isinstance(sample_topology.links, tuple)
