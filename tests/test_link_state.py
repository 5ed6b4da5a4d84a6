import math
import random

import networkx as nx
import pytest

from routing.router import (
    LinkStateRouter, RoutingProtocol, SolveOptions, bandwidth_cost, get_path_cost,
    solve, solve_link_state,
)
from routing.topology import Topology, TopologyError
from routing.trace import EventType, UNREACHABLE


def random_topology(seed: int, size: int = 9, density: float = 0.35) -> Topology:
    rng = random.Random(seed)
    nodes = [chr(ord("A") + i) for i in range(size)]
    edges = []
    for i, a in enumerate(nodes):
        for b in nodes[i + 1:]:
            if rng.random() < density:
                edges.append((a, b, rng.randint(1, 12), rng.choice([10, 50, 100, 400])))
    return Topology.from_edges(edges, nodes=nodes)


def test_sample_shortest_path_a_to_f(sample_topology):
    result = solve(sample_topology, "A", "F", RoutingProtocol.LINK_STATE)
    assert result.path == ["A", "B", "C", "F"]
    assert result.distance == 9


def test_distances_from_a(sample_topology):
    result = solve_link_state(sample_topology, "A")
    assert result.distances == {"A": 0, "B": 5, "C": 8, "D": 2, "E": 5, "F": 9}
    assert result.predecessors["A"] is None
    assert result.predecessors["E"] == "D"


def test_visit_order_and_lazy_deletion(sample_topology):
    trace = solve_link_state(sample_topology, "A").trace
    visits = [e.node for e in trace.of_kind(EventType.NODE_VISITED)]
    # F is pushed twice (11 via E, then 9 via C); the stale entry is skipped
    assert visits == ["A", "D", "B", "E", "C", "F"]
    assert len(trace.of_kind(EventType.DISTANCE_UPDATED)) == 6
    assert [s.current_node for s in trace.snapshots] == visits


def test_snapshots_are_read_only_copies(sample_topology):
    result = solve_link_state(sample_topology, "A")
    first = result.trace.snapshots[0]
    assert first.current_node == "A"
    assert math.isinf(first.distances["F"])
    with pytest.raises(TypeError):
        first.distances["F"] = 1
    assert result.distances["F"] == 9


def test_log_renders_unreachable_token(sample_topology):
    lines = solve_link_state(sample_topology, "A").trace.lines()
    assert lines[0] == "Starting Dijkstra's algorithm from node A"
    assert UNREACHABLE in lines[1]
    assert "inf" not in lines[1]
    assert lines[-2].startswith("Final distances:")
    assert lines[-1].startswith("Final previous nodes:")
    assert "Updated distance to F via C: 9" in lines


def test_bandwidth_cost_prefers_fat_links(sample_topology):
    result = solve(sample_topology, "A", "F", options=SolveOptions.ospf())
    assert result.path == ["A", "B", "C", "F"]
    assert result.distance == pytest.approx(1000 / 100 + 1000 / 200 + 1000 / 400)
    updates = result.trace.of_kind(EventType.DISTANCE_UPDATED)
    assert all(e.bandwidth is not None for e in updates)
    assert "Mbps" in updates[0].message()


def test_bandwidth_cost_without_bandwidth_is_structural_error():
    topo = Topology.from_edges([("A", "B", 1)])
    with pytest.raises(TopologyError):
        LinkStateRouter(topo, bandwidth_cost()).solve("A")


def test_unreachable_destination_is_not_an_error(sample_topology):
    topo = Topology(nodes=sample_topology.nodes + ("G",), links=sample_topology.links)
    result = solve(topo, "A", "G")
    assert result.path == []
    assert math.isinf(result.distance)
    assert not result.reachable


def test_source_equals_destination(sample_topology):
    result = solve(sample_topology, "C", "C")
    assert result.path == ["C"]
    assert result.distance == 0


def test_unknown_source_raises(sample_topology):
    with pytest.raises(ValueError, match="not in graph"):
        solve(sample_topology, "Q", "A")


def test_solve_is_idempotent(sample_topology):
    first = solve(sample_topology, "A", "F")
    second = solve(sample_topology, "A", "F")
    assert first.path == second.path
    assert first.distances == second.distances
    assert first.trace.lines() == second.trace.lines()


@pytest.mark.parametrize("seed", range(8))
def test_matches_networkx_on_random_graphs(seed):
    topo = random_topology(seed)
    graph = topo.to_networkx()
    expected = nx.single_source_dijkstra_path_length(graph, "A", weight="weight")
    result = solve_link_state(topo, "A")
    for node_id in topo.nodes:
        if node_id in expected:
            assert result.distances[node_id] == expected[node_id]
            path = result.path_to(node_id)
            assert path[0] == "A" and path[-1] == node_id
            assert get_path_cost(graph, path) == expected[node_id]
        else:
            assert math.isinf(result.distances[node_id])
            assert result.path_to(node_id) == []
