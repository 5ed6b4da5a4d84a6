import math

import pytest

from main import NetworkManager, id_to_index, index_to_id
from routing.router import PathManager, RoutingProtocol, SolveOptions


def test_default_topology(network):
    assert list(network.nodes) == ["A", "B", "C", "D", "E", "F"]
    assert len(network.links) == 7
    assert network.nodes["A"].label == "Router A"
    assert network.nodes["F"].get_position() == (500, 300)
    assert network.snapshot().to_networkx().number_of_edges() == 7


def test_add_router_assigns_next_letter(network):
    node = network.add_router()
    assert node.id == "G"
    assert node.label == "Router G"
    assert "G" in network.snapshot()


def test_add_router_on_empty_network():
    network = NetworkManager()
    assert network.add_router().id == "A"


def test_ids_continue_past_z():
    network = NetworkManager()
    ids = [network.add_router().id for _ in range(28)]
    assert ids[25] == "Z"
    assert ids[26:] == ["AA", "AB"]


def test_id_sequence_round_trip():
    assert id_to_index("A") == 0
    assert id_to_index("AA") == 26
    assert index_to_id(701) == "ZZ"
    assert id_to_index("r1") is None


def test_reverse_duplicate_link_is_rejected(network):
    assert network.add_link("B", "A", 2) is None
    assert len(network.links) == 7
    assert network.get_link_by_nodes("A", "B").weight == 5


@pytest.mark.parametrize("source, target, weight, bandwidth", [
    ("A", "A", 1, None),      # self-loop
    ("A", "Z", 1, None),      # unknown endpoint
    ("A", "F", 0, None),      # weight below 1
    ("A", "F", 2, 0),         # zero bandwidth
    ("A", "F", math.nan, None),
    ("A", "F", math.inf, None),  # infinite weight
    ("A", "F", 2, math.inf),     # infinite bandwidth
])
def test_invalid_links_leave_network_unchanged(network, source, target, weight, bandwidth):
    before = network.snapshot()
    assert network.add_link(source, target, weight, bandwidth) is None
    assert network.snapshot() == before


def test_add_link_updates_graph(network):
    link = network.add_link("A", "F", 4, 1000)
    assert link is not None
    assert network.snapshot().to_networkx()["F"]["A"]["weight"] == 4
    assert network.get_link_by_nodes("F", "A") is link


def test_snapshot_is_isolated_from_later_edits(network):
    snapshot = network.snapshot()
    network.add_router()
    network.add_link("A", "G", 1)
    assert "G" not in snapshot
    assert len(snapshot.links) == 7


def test_clear_all(network):
    network.clear_all()
    assert network.nodes == {}
    assert network.links == []
    assert network.add_router().id == "A"


def test_to_dict(network):
    data = network.to_dict()
    assert len(data["nodes"]) == 6
    assert data["links"][0] == {"source": "A", "target": "B", "weight": 5, "bandwidth": 100}


def test_path_manager_tracks_results(network):
    manager = PathManager(network)
    result = manager.solve("A", "F")
    info = manager.get_current_path()
    assert manager.current_result is result
    assert info.path_nodes == ["A", "B", "C", "F"]
    assert info.hop_count == 3
    assert info.total_weight == 9
    assert info.bottleneck_bandwidth == 100
    assert "A -> B -> C -> F" in info.summary()
    assert info.to_dict() == {
        "source_id": "A",
        "destination_id": "F",
        "protocol": "link_state",
        "path_nodes": ["A", "B", "C", "F"],
        "hop_count": 3,
        "total_cost": 9,
        "total_weight": 9,
        "bottleneck_bandwidth": 100,
    }

    manager.solve("A", "F", RoutingProtocol.DISTANCE_VECTOR, SolveOptions.rip())
    assert len(manager.get_history()) == 2
    assert manager.get_current_path().protocol is RoutingProtocol.DISTANCE_VECTOR


def test_path_manager_unreachable(network):
    network.add_router()
    manager = PathManager(network)
    result = manager.solve("A", "G")
    assert result.path == []
    assert manager.get_current_path_nodes() == []
    assert manager.get_current_path().summary() == "No route from A to G"


def test_path_manager_failure_clears_and_raises(network):
    manager = PathManager(network)
    manager.solve("A", "F")
    with pytest.raises(ValueError):
        manager.solve("A", "Q")
    assert manager.get_current_path() is None
    assert len(manager.get_history()) == 1
