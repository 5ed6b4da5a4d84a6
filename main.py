# ============================================================================
# Routing Protocol Simulator - topology session, reports and CLI
# ============================================================================
# Routers and links are edited through NetworkManager; every solve runs on
# an immutable Topology snapshot (see routing/).
# ============================================================================

import argparse
import json
import logging
import math
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from routing.topology import Link, Topology
from routing.router import (
    CostMetric, PathManager, RoutingProtocol, RoutingTables, SolveOptions, SolveResult,
    MAX_ITERATIONS, REFERENCE_BANDWIDTH, RIP_HOP_LIMIT,
)
from routing.trace import format_distance
from packet import (
    DEFAULT_SEGMENT_DIVISOR, DEFAULT_SPEED_MS, PlaybackCursor, PlaybackWorker,
    SimulationStep, build_steps, segment_durations,
)

logger = logging.getLogger(__name__)

# ============================================================================
# 1. CONFIGURATION
# ============================================================================

class Config:
    """Global configuration constants"""

    # Router placement (display only)
    NEW_ROUTER_X = 300
    NEW_ROUTER_Y = 200
    ROUTER_LABEL_PREFIX = "Router"

    # Validation
    MIN_WEIGHT = 1

    # Solver defaults
    MAX_ITERATIONS = MAX_ITERATIONS
    RIP_HOP_LIMIT = RIP_HOP_LIMIT
    REFERENCE_BANDWIDTH = REFERENCE_BANDWIDTH

    # Playback
    SIMULATION_SPEED_MS = DEFAULT_SPEED_MS
    SEGMENT_DIVISOR = DEFAULT_SEGMENT_DIVISOR

    # Sample network
    DEFAULT_SOURCE = "A"
    DEFAULT_DESTINATION = "F"
    DEFAULT_ROUTERS = [
        (100, 100), (300, 100), (500, 100),
        (100, 300), (300, 300), (500, 300),
    ]
    DEFAULT_LINKS = [
        # source, target, weight, bandwidth (Mbps)
        ("A", "B", 5, 100),
        ("B", "C", 3, 200),
        ("A", "D", 2, 300),
        ("B", "E", 4, 150),
        ("C", "F", 1, 400),
        ("D", "E", 3, 250),
        ("E", "F", 6, 50),
    ]


# ============================================================================
# 2. DATA MODELS
# ============================================================================

def id_to_index(node_id: str) -> Optional[int]:
    """
    Position of an ID in the sequence A..Z, AA, AB, ...

    Returns:
        Zero-based index, or None for IDs outside the sequence
    """
    if not node_id or not node_id.isascii() or not node_id.isalpha() \
            or not node_id.isupper():
        return None
    index = 0
    for char in node_id:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def index_to_id(index: int) -> str:
    """Inverse of id_to_index"""
    if index < 0:
        raise ValueError("index must be non-negative")
    letters = []
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(ord("A") + remainder))
    return "".join(reversed(letters))


@dataclass
class Node:
    """A router; position belongs to whatever draws it"""

    id: str
    label: str
    x: float = Config.NEW_ROUTER_X
    y: float = Config.NEW_ROUTER_Y

    def get_position(self) -> Tuple[float, float]:
        """Return node position"""
        return (self.x, self.y)

    def set_position(self, x: float, y: float) -> None:
        """Update node position"""
        self.x = x
        self.y = y

    def to_dict(self) -> dict:
        """Serialize to dictionary"""
        return {
            "id": self.id,
            "label": self.label,
            "x": self.x,
            "y": self.y,
        }


# ============================================================================
# 3. NETWORK MANAGER
# ============================================================================

class NetworkManager:
    """Manages network topology (routers and links)"""

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.links: List[Link] = []

    def next_node_id(self) -> str:
        """Next letter after the highest ID currently in use"""
        indices = [i for i in map(id_to_index, self.nodes) if i is not None]
        return index_to_id(max(indices) + 1 if indices else 0)

    def add_router(self, x: float = None, y: float = None, label: str = None) -> Node:
        """Add a new router with the next free ID"""
        node_id = self.next_node_id()
        node = Node(
            id=node_id,
            label=label or f"{Config.ROUTER_LABEL_PREFIX} {node_id}",
            x=Config.NEW_ROUTER_X if x is None else x,
            y=Config.NEW_ROUTER_Y if y is None else y,
        )

        self.nodes[node_id] = node
        logger.debug("Added router %s", node_id)

        return node

    def add_link(self, source_id: str, target_id: str,
                 weight: float, bandwidth: float = None) -> Optional[Link]:
        """
        Add an undirected link

        Invalid requests are rejected without touching the network.

        Args:
            source_id: One endpoint
            target_id: Other endpoint
            weight: Hop cost (>= Config.MIN_WEIGHT)
            bandwidth: Optional capacity in Mbps (> 0)

        Returns:
            The new Link, or None if rejected
        """
        reason = None
        if source_id not in self.nodes or target_id not in self.nodes:
            reason = "one or both routers do not exist"
        elif source_id == target_id:
            reason = "cannot create self-loop"
        elif self.get_link_by_nodes(source_id, target_id) is not None:
            reason = "link already exists between these routers"
        elif weight is None or not math.isfinite(weight) or weight < Config.MIN_WEIGHT:
            reason = f"weight must be finite and at least {Config.MIN_WEIGHT}"
        elif bandwidth is not None and (not math.isfinite(bandwidth) or bandwidth <= 0):
            reason = "bandwidth must be finite and positive"

        if reason:
            logger.info("Rejected link %s-%s: %s", source_id, target_id, reason)
            return None

        link = Link(source=source_id, target=target_id,
                    weight=weight, bandwidth=bandwidth)
        self.links.append(link)
        return link

    def get_link_by_nodes(self, node_a_id: str, node_b_id: str) -> Optional[Link]:
        """Get link between two routers"""
        for link in self.links:
            if link.connects(node_a_id, node_b_id):
                return link
        return None

    def snapshot(self) -> Topology:
        """Immutable copy of the current graph for solving"""
        return Topology(nodes=tuple(self.nodes), links=tuple(self.links))

    def load_default_topology(self) -> None:
        """Replace the network with the six-router sample"""
        self.clear_all()
        for x, y in Config.DEFAULT_ROUTERS:
            self.add_router(x, y)
        for source_id, target_id, weight, bandwidth in Config.DEFAULT_LINKS:
            self.add_link(source_id, target_id, weight, bandwidth)

    def clear_all(self) -> None:
        """Clear entire network"""
        self.nodes.clear()
        self.links.clear()

    def to_dict(self) -> dict:
        """Serialize network to dictionary"""
        return {
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "links": [link.to_dict() for link in self.links],
            "timestamp": datetime.now().isoformat()
        }


# ============================================================================
# 4. TEXT REPORTS
# ============================================================================

def format_routing_tables(tables: RoutingTables) -> str:
    """Render distance-vector tables, one block per router"""
    blocks = []
    for node_id, table in tables.items():
        rows = [f"Router {node_id}", f"  {'Dest':<6}{'Distance':<13}Next hop"]
        for dest, entry in table.items():
            rows.append(f"  {dest:<6}{format_distance(entry.distance):<13}"
                        f"{entry.next_hop or '-'}")
        blocks.append("\n".join(rows))
    return "\n\n".join(blocks)


def format_distances(result: SolveResult) -> str:
    """Render link-state distances and predecessors"""
    rows = [f"  {'Node':<6}{'Distance':<13}Previous"]
    for node_id, distance in result.distances.items():
        rows.append(f"  {node_id:<6}{format_distance(distance):<13}"
                    f"{result.predecessors[node_id] or '-'}")
    return "\n".join(rows)


def format_steps(steps: List[SimulationStep]) -> str:
    return "\n".join(f"{step.index + 1}. {step.description}" for step in steps)


def format_summary(result: SolveResult) -> str:
    if not result.reachable:
        return f"No route from {result.source} to {result.destination} (unreachable)"
    line = (f"Path: {' -> '.join(result.path)} "
            f"(distance {format_distance(result.distance)})")
    if result.tables is not None and not result.converged:
        line += f" [not converged after {result.iterations} iterations]"
    return line


# ============================================================================
# 5. COMMAND LINE
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="routing-sim",
        description="Simulate link-state and distance-vector routing on a router graph",
    )
    parser.add_argument("--protocol", choices=[p.value for p in RoutingProtocol],
                        default=RoutingProtocol.LINK_STATE.value)
    parser.add_argument("--source", default=Config.DEFAULT_SOURCE)
    parser.add_argument("--destination", default=Config.DEFAULT_DESTINATION)
    parser.add_argument("--metric", choices=[m.value for m in CostMetric],
                        default=CostMetric.WEIGHT.value,
                        help="Link-state cost: raw weight or reference/bandwidth")
    parser.add_argument("--reference-bandwidth", type=float,
                        help=f"Link-state bandwidth reference in Mbps "
                             f"(default: {Config.REFERENCE_BANDWIDTH:g})")
    parser.add_argument("--hop-limit", type=float,
                        help="Distance-vector metric ceiling (default: unbounded)")
    parser.add_argument("--rip", action="store_true",
                        help=f"Distance-vector with a {Config.RIP_HOP_LIMIT}-hop ceiling")
    parser.add_argument("--max-iterations", type=int,
                        help=f"Distance-vector pass bound (default: {Config.MAX_ITERATIONS})")
    parser.add_argument("--empty", action="store_true",
                        help="Start from an empty network instead of the sample")
    parser.add_argument("--add-routers", type=int, default=0, metavar="N")
    parser.add_argument("--link", nargs="+", action="append", default=[],
                        metavar="ARG", help="SOURCE TARGET WEIGHT [BANDWIDTH]")
    parser.add_argument("--log", action="store_true", help="Print the solve log")
    parser.add_argument("--tables", action="store_true",
                        help="Print routing tables / distances")
    parser.add_argument("--steps", action="store_true", help="Print simulation steps")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--play", action="store_true", help="Replay steps in real time")
    parser.add_argument("--speed", type=float, default=Config.SIMULATION_SPEED_MS,
                        help="Playback time unit in ms")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _apply_edits(network: NetworkManager, args: argparse.Namespace,
                 parser: argparse.ArgumentParser) -> None:
    for _ in range(args.add_routers):
        network.add_router()
    for values in args.link:
        if len(values) not in (3, 4):
            parser.error("--link takes SOURCE TARGET WEIGHT [BANDWIDTH]")
        try:
            weight = float(values[2])
            bandwidth = float(values[3]) if len(values) == 4 else None
        except ValueError:
            parser.error(f"invalid number in --link {' '.join(values)}")
        if network.add_link(values[0], values[1], weight, bandwidth) is None:
            print(f"Ignored link {values[0]}-{values[1]}", file=sys.stderr)


def _check_protocol_options(protocol: RoutingProtocol, args: argparse.Namespace,
                            parser: argparse.ArgumentParser) -> None:
    """Reject options the chosen protocol would ignore"""
    if protocol is RoutingProtocol.LINK_STATE:
        if args.hop_limit is not None or args.max_iterations is not None:
            parser.error("--hop-limit and --max-iterations apply to distance_vector only")
    elif args.metric != CostMetric.WEIGHT.value or args.reference_bandwidth is not None:
        parser.error("--metric and --reference-bandwidth apply to link_state only")


def _play(result: SolveResult, steps: List[SimulationStep],
          topology: Topology, speed_ms: float) -> None:
    durations = segment_durations(result.path, topology, speed_ms, Config.SEGMENT_DIVISOR)
    worker = PlaybackWorker(
        PlaybackCursor(steps), durations,
        lambda step: print(f"{step.index + 1}. {step.description}", flush=True),
    )
    worker.start()
    try:
        worker.join()
    except KeyboardInterrupt:
        worker.stop()


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, solve once and print the requested reports"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    network = NetworkManager()
    if not args.empty:
        network.load_default_topology()
    _apply_edits(network, args, parser)

    protocol = RoutingProtocol(args.protocol)
    hop_limit = args.hop_limit
    if args.rip:
        protocol = RoutingProtocol.DISTANCE_VECTOR
        hop_limit = Config.RIP_HOP_LIMIT if hop_limit is None else hop_limit
    _check_protocol_options(protocol, args, parser)
    options = SolveOptions(
        metric=CostMetric(args.metric),
        reference_bandwidth=Config.REFERENCE_BANDWIDTH
        if args.reference_bandwidth is None else args.reference_bandwidth,
        hop_limit=hop_limit,
        max_iterations=Config.MAX_ITERATIONS
        if args.max_iterations is None else args.max_iterations,
    )

    path_manager = PathManager(network)
    try:
        result = path_manager.solve(args.source, args.destination, protocol, options)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    steps = build_steps(result.path)

    if args.json:
        data = result.to_dict()
        data["path_info"] = path_manager.get_current_path().to_dict()
        data["steps"] = [step.to_dict() for step in steps]
        print(json.dumps(data, indent=2))
        return 0

    print(format_summary(result))
    if args.log:
        print("\n".join(result.trace.lines()))
    if args.tables:
        if result.tables is not None:
            print(format_routing_tables(result.tables))
        else:
            print(format_distances(result))
    if args.steps:
        print(format_steps(steps))
    if args.play and steps:
        _play(result, steps, network.snapshot(), args.speed)

    return 0


# ============================================================================
# 6. MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    sys.exit(main())
