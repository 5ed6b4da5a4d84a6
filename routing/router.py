import heapq
import logging
import math
import time
import networkx as nx
from typing import Callable, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass
from enum import Enum

from .topology import Adjacency, Topology, TopologyError, build_adjacency
from .trace import (
    DistanceVectorSnapshot, EventType, LinkStateSnapshot, Trace, format_distance, freeze,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 20          # distance-vector pass bound
RIP_HOP_LIMIT = 15           # RIP metric ceiling
REFERENCE_BANDWIDTH = 1000.0  # Mbps, OSPF-style reference for bandwidth cost

CostFunction = Callable[[Adjacency], float]

# ============================================================================
# 1. PROTOCOLS, METRICS & OPTIONS
# ============================================================================

class RoutingProtocol(Enum):
    """Routing protocols the engine can simulate"""
    LINK_STATE = "link_state"            # Dijkstra, OSPF-like
    DISTANCE_VECTOR = "distance_vector"  # Bellman-Ford, RIP-like


class CostMetric(Enum):
    """Link cost used by the link-state solver"""
    WEIGHT = "weight"        # raw hop cost
    BANDWIDTH = "bandwidth"  # reference / bandwidth


def weight_cost(adjacency: Adjacency) -> float:
    """Default cost: the link's own weight"""
    return adjacency.weight


def bandwidth_cost(reference: float = REFERENCE_BANDWIDTH) -> CostFunction:
    """
    Build a cost function inversely proportional to link bandwidth

    Args:
        reference: Reference bandwidth (Mbps); cost = reference / bandwidth

    Returns:
        Cost function for LinkStateRouter

    Example:
        cost = bandwidth_cost(1000.0)
        # a 100 Mbps link costs 10.0
    """
    def cost(adjacency: Adjacency) -> float:
        if adjacency.bandwidth is None or adjacency.bandwidth <= 0:
            raise TopologyError(
                f"Link to {adjacency.neighbor} has no usable bandwidth for bandwidth cost"
            )
        return reference / adjacency.bandwidth

    return cost


@dataclass
class SolveOptions:
    """Configuration passed into a solve"""
    metric: CostMetric = CostMetric.WEIGHT
    reference_bandwidth: float = REFERENCE_BANDWIDTH
    hop_limit: Optional[float] = None    # distance-vector only; None = unbounded
    max_iterations: int = MAX_ITERATIONS

    @classmethod
    def rip(cls, **kwargs) -> "SolveOptions":
        """Distance-vector preset with RIP's 15-hop ceiling"""
        kwargs.setdefault("hop_limit", RIP_HOP_LIMIT)
        return cls(**kwargs)

    @classmethod
    def ospf(cls, **kwargs) -> "SolveOptions":
        """Link-state preset using bandwidth-derived cost"""
        kwargs.setdefault("metric", CostMetric.BANDWIDTH)
        return cls(**kwargs)

    def cost_function(self) -> CostFunction:
        if self.metric is CostMetric.BANDWIDTH:
            return bandwidth_cost(self.reference_bandwidth)
        return weight_cost


# ============================================================================
# 2. LINK-STATE ROUTER (DIJKSTRA)
# ============================================================================

@dataclass
class LinkStateResult:
    """Distances, predecessors and trace of one link-state solve"""
    source: str
    distances: Dict[str, float]
    predecessors: Dict[str, Optional[str]]
    trace: Trace

    def path_to(self, destination: str) -> List[str]:
        return reconstruct_from_predecessors(self.predecessors, self.source, destination)


class LinkStateRouter:
    """
    Computes single-source shortest paths with Dijkstra's algorithm.

    The frontier is a plain binary heap with lazy deletion: improved
    distances are pushed as new entries and outdated ones are discarded
    when popped. Visit order and the number of updates in the trace
    depend on this.
    """

    def __init__(self, topology: Topology, cost_fn: CostFunction = weight_cost,
                 report_bandwidth: bool = False,
                 label: str = "Dijkstra's algorithm"):
        """
        Initialize router with a topology snapshot

        Args:
            topology: Graph snapshot to solve over
            cost_fn: Maps an adjacency entry to its link cost
            report_bandwidth: Include link bandwidth in update log lines
            label: Algorithm name used in the trace
        """
        self.topology = topology
        self.cost_fn = cost_fn
        self.report_bandwidth = report_bandwidth
        self.label = label

    def solve(self, source: str) -> LinkStateResult:
        """
        Run Dijkstra from source

        Args:
            source: Starting node ID

        Returns:
            LinkStateResult; unreachable nodes keep inf / None

        Raises:
            ValueError: if source is not in the topology
            TopologyError: if the snapshot is structurally invalid
        """
        if source not in self.topology:
            raise ValueError(f"Source node {source} not in graph")

        adjacency = build_adjacency(self.topology)
        distances: Dict[str, float] = {node_id: math.inf for node_id in self.topology.nodes}
        predecessors: Dict[str, Optional[str]] = {node_id: None for node_id in self.topology.nodes}
        distances[source] = 0
        trace = Trace()

        logger.debug("Link-state solve from %s over %d nodes",
                     source, len(self.topology.nodes))
        trace.record(EventType.SOLVE_STARTED, node=source, label=self.label)
        trace.record(EventType.INITIAL_DISTANCES, values=distances)

        frontier = [(0, source)]
        while frontier:
            priority, current = heapq.heappop(frontier)

            # Stale entry: a shorter distance was pushed after this one
            if priority > distances[current]:
                continue

            trace.record(EventType.NODE_VISITED, node=current, distance=distances[current])
            trace.capture(LinkStateSnapshot(
                current_node=current,
                distances=freeze(distances),
                predecessors=freeze(predecessors),
            ))

            for entry in adjacency[current]:
                candidate = distances[current] + self.cost_fn(entry)
                if candidate < distances[entry.neighbor]:
                    distances[entry.neighbor] = candidate
                    predecessors[entry.neighbor] = current
                    heapq.heappush(frontier, (candidate, entry.neighbor))
                    trace.record(
                        EventType.DISTANCE_UPDATED,
                        node=entry.neighbor,
                        via=current,
                        distance=candidate,
                        bandwidth=entry.bandwidth if self.report_bandwidth else None,
                    )

        trace.record(EventType.FINAL_DISTANCES, values=distances)
        trace.record(EventType.FINAL_PREDECESSORS, values=predecessors)

        return LinkStateResult(
            source=source,
            distances=distances,
            predecessors=predecessors,
            trace=trace,
        )


def solve_link_state(topology: Topology, source: str,
                     cost_fn: CostFunction = weight_cost) -> LinkStateResult:
    """Functional wrapper around LinkStateRouter"""
    return LinkStateRouter(topology, cost_fn).solve(source)


# ============================================================================
# 3. DISTANCE-VECTOR ROUTER (BELLMAN-FORD / RIP)
# ============================================================================

@dataclass(frozen=True)
class RouteEntry:
    """One row of a routing table"""
    distance: float
    next_hop: Optional[str]

    @property
    def reachable(self) -> bool:
        return not math.isinf(self.distance)

    def to_dict(self) -> dict:
        return {
            "distance": self.distance if self.reachable else None,
            "next_hop": self.next_hop,
        }


RoutingTables = Dict[str, Dict[str, RouteEntry]]


@dataclass
class DistanceVectorResult:
    """Routing tables and trace of one distance-vector solve"""
    tables: RoutingTables
    trace: Trace
    converged: bool
    iterations: int
    hop_limit: Optional[float] = None

    def path(self, source: str, destination: str) -> List[str]:
        return reconstruct_from_next_hops(self.tables, source, destination)


class DistanceVectorRouter:
    """
    Iterative Bellman-Ford relaxation of all routing tables at once.

    Passes visit nodes, then their neighbors, then destinations, and
    write updates straight into the tables, so later relaxations in the
    same pass already see them.
    """

    def __init__(self, topology: Topology, hop_limit: Optional[float] = None,
                 max_iterations: int = MAX_ITERATIONS,
                 label: str = "distance-vector routing (Bellman-Ford)"):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.topology = topology
        self.hop_limit = hop_limit
        self.max_iterations = max_iterations
        self.label = label

    def _over_limit(self, distance: float) -> bool:
        return self.hop_limit is not None and distance > self.hop_limit

    def _at_limit(self, distance: float) -> bool:
        # Infinite entries are still allowed to learn a route
        return (self.hop_limit is not None
                and not math.isinf(distance)
                and distance >= self.hop_limit)

    def _initial_tables(self, adjacency: Dict[str, List[Adjacency]]) -> RoutingTables:
        tables: RoutingTables = {}
        for node_id in self.topology.nodes:
            direct = {entry.neighbor: entry.weight for entry in adjacency[node_id]}
            table: Dict[str, RouteEntry] = {}
            for dest in self.topology.nodes:
                if dest == node_id:
                    table[dest] = RouteEntry(0, node_id)
                elif (dest in direct and math.isfinite(direct[dest])
                      and not self._over_limit(direct[dest])):
                    table[dest] = RouteEntry(direct[dest], dest)
                else:
                    table[dest] = RouteEntry(math.inf, None)
            tables[node_id] = table
        return tables

    @staticmethod
    def _snapshot(iteration: int, tables: RoutingTables) -> DistanceVectorSnapshot:
        return DistanceVectorSnapshot(
            iteration=iteration,
            tables=freeze({node_id: freeze(table) for node_id, table in tables.items()}),
        )

    def solve(self) -> DistanceVectorResult:
        """
        Relax all tables until a pass changes nothing or the bound is hit

        Returns:
            DistanceVectorResult; when not converged the tables are the
            best effort after max_iterations passes
        """
        nodes = self.topology.nodes
        adjacency = build_adjacency(self.topology)
        tables = self._initial_tables(adjacency)
        trace = Trace()

        logger.debug("Distance-vector solve over %d nodes (hop limit %s)",
                     len(nodes), self.hop_limit)
        trace.record(EventType.SOLVE_STARTED, label=self.label)
        for node_id in nodes:
            trace.record(EventType.INITIAL_TABLE, node=node_id, values=tables[node_id])
        trace.capture(self._snapshot(0, tables))

        converged = False
        iteration = 0
        while iteration < self.max_iterations:
            iteration += 1
            changed = False
            trace.record(EventType.ITERATION_STARTED, iteration=iteration)

            for node_id in nodes:
                table = tables[node_id]
                for entry in adjacency[node_id]:
                    advertised = tables[entry.neighbor]
                    for dest in nodes:
                        current = table[dest].distance
                        if self._at_limit(current):
                            continue

                        candidate = entry.weight + advertised[dest].distance
                        if self._over_limit(candidate):
                            candidate = math.inf

                        if candidate < current:
                            table[dest] = RouteEntry(candidate, entry.neighbor)
                            changed = True
                            trace.record(
                                EventType.ROUTE_UPDATED,
                                node=node_id,
                                destination=dest,
                                via=entry.neighbor,
                                distance=candidate,
                            )

            trace.capture(self._snapshot(iteration, tables))

            if not changed:
                converged = True
                trace.record(EventType.CONVERGED, iteration=iteration)
                break

        if not converged:
            trace.record(EventType.NOT_CONVERGED, iteration=iteration)
            logger.warning("Distance-vector did not converge within %d iterations",
                           self.max_iterations)
        else:
            logger.debug("Distance-vector converged after %d iterations", iteration)

        return DistanceVectorResult(
            tables=tables,
            trace=trace,
            converged=converged,
            iterations=iteration,
            hop_limit=self.hop_limit,
        )


def solve_distance_vector(topology: Topology, hop_limit: Optional[float] = None,
                          max_iterations: int = MAX_ITERATIONS) -> DistanceVectorResult:
    """Functional wrapper around DistanceVectorRouter"""
    return DistanceVectorRouter(topology, hop_limit, max_iterations).solve()


# ============================================================================
# 4. PATH RECONSTRUCTION
# ============================================================================

def reconstruct_from_predecessors(predecessors: Mapping[str, Optional[str]],
                                  source: str, destination: str) -> List[str]:
    """
    Walk predecessor links back from destination

    Args:
        predecessors: Mapping node ID -> previous node on the shortest path
        source: Source node ID
        destination: Destination node ID

    Returns:
        Ordered node IDs from source to destination, or [] if unreachable

    Example:
        reconstruct_from_predecessors({"A": None, "B": "A", "C": "B"}, "A", "C")
        # Returns: ["A", "B", "C"]
    """
    if destination not in predecessors:
        return []

    path = []
    seen = set()
    current: Optional[str] = destination
    while current is not None:
        if current in seen:
            return []
        seen.add(current)
        path.append(current)
        current = predecessors.get(current)

    path.reverse()
    if path[0] != source:
        return []
    return path


def reconstruct_from_next_hops(tables: Mapping[str, Mapping[str, RouteEntry]],
                               source: str, destination: str) -> List[str]:
    """
    Follow next hops forward from source

    Stops at the destination, a missing or self-referencing next hop, or
    a node already on the path. A walk that does not reach the
    destination is treated as no route.

    Returns:
        Ordered node IDs from source to destination, or []
    """
    if source not in tables:
        return []

    path = [source]
    current = source
    while current != destination:
        entry = tables.get(current, {}).get(destination)
        next_hop = entry.next_hop if entry else None
        if next_hop is None or next_hop == current or next_hop in path:
            return []
        path.append(next_hop)
        current = next_hop

    return path


# ============================================================================
# 5. SOLVE DISPATCH
# ============================================================================

@dataclass
class SolveResult:
    """Everything one run hands to the playback / rendering layer"""
    protocol: RoutingProtocol
    source: str
    destination: str
    path: List[str]
    distance: float
    trace: Trace
    distances: Optional[Dict[str, float]] = None
    predecessors: Optional[Dict[str, Optional[str]]] = None
    tables: Optional[RoutingTables] = None
    converged: bool = True
    iterations: int = 0

    @property
    def reachable(self) -> bool:
        return bool(self.path)

    def to_dict(self) -> dict:
        """Serialize to dictionary (JSON-safe)"""
        data = {
            "protocol": self.protocol.value,
            "source": self.source,
            "destination": self.destination,
            "path": list(self.path),
            "distance": None if math.isinf(self.distance) else self.distance,
            "log": self.trace.lines(),
            "trace": self.trace.to_dict(),
        }
        if self.distances is not None:
            data["distances"] = {k: None if math.isinf(v) else v
                                 for k, v in self.distances.items()}
            data["predecessors"] = dict(self.predecessors)
        if self.tables is not None:
            data["tables"] = {node_id: {dest: entry.to_dict() for dest, entry in table.items()}
                              for node_id, table in self.tables.items()}
            data["converged"] = self.converged
            data["iterations"] = self.iterations
        return data


def solve(topology: Topology, source: str, destination: str,
          protocol: Union[RoutingProtocol, str] = RoutingProtocol.LINK_STATE,
          options: Optional[SolveOptions] = None) -> SolveResult:
    """
    Compute a route with the chosen protocol

    Args:
        topology: Graph snapshot
        source: Source node ID
        destination: Destination node ID
        protocol: RoutingProtocol or its value ("link_state" / "distance_vector")
        options: SolveOptions; defaults to raw weights, no hop limit

    Returns:
        SolveResult; an unreachable destination gives path [] and distance inf

    Raises:
        ValueError: unknown protocol, source or destination
        TopologyError: structurally invalid snapshot
    """
    options = options or SolveOptions()
    protocol = RoutingProtocol(protocol)

    if source not in topology:
        raise ValueError(f"Source node {source} not in graph")
    if destination not in topology:
        raise ValueError(f"Destination node {destination} not in graph")

    if protocol is RoutingProtocol.LINK_STATE:
        bandwidth_metric = options.metric is CostMetric.BANDWIDTH
        router = LinkStateRouter(
            topology,
            cost_fn=options.cost_function(),
            report_bandwidth=bandwidth_metric,
            label="OSPF (Dijkstra) with bandwidth cost" if bandwidth_metric
            else "Dijkstra's algorithm",
        )
        ls = router.solve(source)
        path = ls.path_to(destination)
        return SolveResult(
            protocol=protocol,
            source=source,
            destination=destination,
            path=path,
            distance=ls.distances[destination] if path else math.inf,
            trace=ls.trace,
            distances=ls.distances,
            predecessors=ls.predecessors,
        )

    label = ("RIP (Bellman-Ford)" if options.hop_limit is not None
             else "distance-vector routing (Bellman-Ford)")
    dv = DistanceVectorRouter(topology, options.hop_limit,
                              options.max_iterations, label=label).solve()
    path = dv.path(source, destination)
    return SolveResult(
        protocol=protocol,
        source=source,
        destination=destination,
        path=path,
        distance=dv.tables[source][destination].distance if path else math.inf,
        trace=dv.trace,
        tables=dv.tables,
        converged=dv.converged,
        iterations=dv.iterations,
    )


# ============================================================================
# 6. PATH METRICS
# ============================================================================

def get_path_cost(graph: nx.Graph, path: List[str]) -> float:
    """
    Sum of link weights along path

    Args:
        graph: NetworkX graph with 'weight' edge attributes
        path: List of node IDs in path order

    Returns:
        Total weight (0.0 for paths shorter than two nodes)
    """
    total_cost = 0.0
    for node_a, node_b in zip(path, path[1:]):
        edge_data = graph.get_edge_data(node_a, node_b)
        if edge_data is None:
            raise TopologyError(f"No link between {node_a} and {node_b}")
        total_cost += edge_data["weight"]
    return total_cost


def get_bottleneck_bandwidth(graph: nx.Graph, path: List[str]) -> Optional[float]:
    """
    Minimum bandwidth along path (throughput is limited by the slowest link)

    Returns:
        Bottleneck bandwidth in Mbps, or None if no link on the path
        carries a bandwidth
    """
    bandwidths = []
    for node_a, node_b in zip(path, path[1:]):
        edge_data = graph.get_edge_data(node_a, node_b) or {}
        if edge_data.get("bandwidth") is not None:
            bandwidths.append(edge_data["bandwidth"])
    return min(bandwidths) if bandwidths else None


# ============================================================================
# 7. PATH MANAGER
# ============================================================================

@dataclass
class PathInfo:
    """Data class for storing path information"""
    source_id: str
    destination_id: str
    protocol: RoutingProtocol
    path_nodes: List[str]
    hop_count: int
    total_cost: float
    total_weight: float
    bottleneck_bandwidth: Optional[float]
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "source_id": self.source_id,
            "destination_id": self.destination_id,
            "protocol": self.protocol.value,
            "path_nodes": self.path_nodes,
            "hop_count": self.hop_count,
            "total_cost": None if math.isinf(self.total_cost) else self.total_cost,
            "total_weight": self.total_weight,
            "bottleneck_bandwidth": self.bottleneck_bandwidth,
        }

    def summary(self) -> str:
        """One-line description of the path"""
        if not self.path_nodes:
            return f"No route from {self.source_id} to {self.destination_id}"
        return (f"{' -> '.join(self.path_nodes)} "
                f"(cost {format_distance(self.total_cost)}, {self.hop_count} hops)")


class PathManager:
    """
    Runs solves against the session graph and keeps the latest result
    """

    def __init__(self, network_manager):
        """
        Initialize PathManager

        Args:
            network_manager: Reference to NetworkManager instance
        """
        self.network_manager = network_manager
        self.current_result: Optional[SolveResult] = None
        self.current_path: Optional[PathInfo] = None
        self.path_history: List[PathInfo] = []

    def solve(self, source_id: str, dest_id: str,
              protocol: Union[RoutingProtocol, str] = RoutingProtocol.LINK_STATE,
              options: Optional[SolveOptions] = None) -> SolveResult:
        """
        Solve on a fresh snapshot of the session graph

        The previous result stays current until this call succeeds or
        fails.

        Raises:
            ValueError: propagated from solve() after clearing the result
        """
        snapshot = self.network_manager.snapshot()
        try:
            result = solve(snapshot, source_id, dest_id, protocol, options)
        except ValueError as e:
            logger.warning("Path computation error: %s", e)
            self.clear_path()
            raise

        graph = snapshot.to_networkx()
        self.current_result = result
        self.current_path = PathInfo(
            source_id=source_id,
            destination_id=dest_id,
            protocol=result.protocol,
            path_nodes=list(result.path),
            hop_count=max(len(result.path) - 1, 0),
            total_cost=result.distance,
            total_weight=get_path_cost(graph, result.path),
            bottleneck_bandwidth=get_bottleneck_bandwidth(graph, result.path),
            timestamp=time.time(),
        )
        self.path_history.append(self.current_path)
        return result

    def get_current_path(self) -> Optional[PathInfo]:
        """Get current path object"""
        return self.current_path

    def get_current_path_nodes(self) -> Optional[List[str]]:
        """Get current path as list of node IDs"""
        if self.current_path:
            return self.current_path.path_nodes
        return None

    def clear_path(self) -> None:
        """Clear current path"""
        self.current_result = None
        self.current_path = None

    def get_history(self) -> List[PathInfo]:
        """Get all computed paths in history"""
        return self.path_history
