import networkx as nx
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

# ============================================================================
# 1. ERRORS
# ============================================================================

class TopologyError(ValueError):
    """Raised when a topology snapshot is structurally invalid"""


# ============================================================================
# 2. LINK & SNAPSHOT
# ============================================================================

@dataclass(frozen=True)
class Link:
    """Undirected link between two routers"""

    source: str
    target: str
    weight: float                       # hop cost, >= 1
    bandwidth: Optional[float] = None   # Mbps, only used by bandwidth cost

    @property
    def endpoints(self) -> FrozenSet[str]:
        """Unordered pair of node IDs"""
        return frozenset((self.source, self.target))

    def connects(self, node_a_id: str, node_b_id: str) -> bool:
        """True if this link joins the two nodes, in either direction"""
        return self.endpoints == frozenset((node_a_id, node_b_id))

    def other(self, node_id: str) -> str:
        """Return the endpoint opposite to node_id"""
        if node_id == self.source:
            return self.target
        if node_id == self.target:
            return self.source
        raise TopologyError(f"Node {node_id} is not an endpoint of {self.source}-{self.target}")

    def to_dict(self) -> dict:
        """Serialize to dictionary"""
        return {
            "source": self.source,
            "target": self.target,
            "weight": self.weight,
            "bandwidth": self.bandwidth,
        }


@dataclass(frozen=True)
class Adjacency:
    """One entry of a node's adjacency list"""

    neighbor: str
    weight: float
    bandwidth: Optional[float] = None


@dataclass(frozen=True)
class Topology:
    """
    Immutable snapshot of the router graph read by every solve.

    Node order and link order are the session's insertion order; the
    solvers iterate them in that order.
    """

    nodes: Tuple[str, ...] = ()
    links: Tuple[Link, ...] = ()
    _index: Dict[FrozenSet[str], Link] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "links", tuple(self.links))
        object.__setattr__(
            self, "_index", {link.endpoints: link for link in self.links}
        )

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def link_between(self, node_a_id: str, node_b_id: str) -> Optional[Link]:
        """Get link between two nodes"""
        return self._index.get(frozenset((node_a_id, node_b_id)))

    def to_networkx(self) -> nx.Graph:
        """
        Render the snapshot as a NetworkX graph

        Returns:
            Graph with 'weight' and 'bandwidth' edge attributes
        """
        graph = nx.Graph()
        graph.add_nodes_from(self.nodes)
        for link in self.links:
            graph.add_edge(link.source, link.target,
                           weight=link.weight,
                           bandwidth=link.bandwidth)
        return graph

    @classmethod
    def from_edges(cls, edges: Iterable[tuple],
                   nodes: Iterable[str] = ()) -> "Topology":
        """
        Build a snapshot from (source, target, weight[, bandwidth]) tuples

        Args:
            edges: Edge tuples in insertion order
            nodes: Extra node IDs (e.g. isolated routers); endpoints are
                added automatically in first-seen order

        Example:
            topo = Topology.from_edges([("A", "B", 5), ("B", "C", 3, 200)])
        """
        ordered: List[str] = list(dict.fromkeys(nodes))
        links = []
        for edge in edges:
            link = Link(*edge)
            for node_id in (link.source, link.target):
                if node_id not in ordered:
                    ordered.append(node_id)
            links.append(link)
        return cls(nodes=tuple(ordered), links=tuple(links))


# ============================================================================
# 3. ADJACENCY
# ============================================================================

def build_adjacency(topology: Topology) -> Dict[str, List[Adjacency]]:
    """
    Build the symmetric adjacency list of a snapshot

    Every link contributes an entry to both endpoints, so per-node lists
    keep link-insertion order.

    Args:
        topology: Graph snapshot

    Returns:
        Mapping node ID -> list of Adjacency

    Raises:
        TopologyError: if a link references an unknown node
    """
    adjacency: Dict[str, List[Adjacency]] = {node_id: [] for node_id in topology.nodes}

    for link in topology.links:
        for node_id in (link.source, link.target):
            if node_id not in adjacency:
                raise TopologyError(
                    f"Link {link.source}-{link.target} references unknown node {node_id}"
                )
        adjacency[link.source].append(
            Adjacency(link.target, link.weight, link.bandwidth)
        )
        adjacency[link.target].append(
            Adjacency(link.source, link.weight, link.bandwidth)
        )

    return adjacency
