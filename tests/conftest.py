import sys
from pathlib import Path

# Ensure root modules import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from main import NetworkManager
from routing.topology import Topology

SAMPLE_EDGES = [
    ("A", "B", 5, 100),
    ("B", "C", 3, 200),
    ("A", "D", 2, 300),
    ("B", "E", 4, 150),
    ("C", "F", 1, 400),
    ("D", "E", 3, 250),
    ("E", "F", 6, 50),
]


@pytest.fixture
def sample_topology() -> Topology:
    """The six-router sample network as a snapshot."""

    return Topology.from_edges(SAMPLE_EDGES)


@pytest.fixture
def network() -> NetworkManager:
    """Session network preloaded with the sample topology."""

    manager = NetworkManager()
    manager.load_default_topology()
    return manager
