import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple, Union

UNREACHABLE = "unreachable"

# ============================================================================
# 1. EVENTS
# ============================================================================

class EventType(Enum):
    """Kinds of solve-time trace events"""
    SOLVE_STARTED = "solve_started"
    INITIAL_DISTANCES = "initial_distances"
    NODE_VISITED = "node_visited"
    DISTANCE_UPDATED = "distance_updated"
    FINAL_DISTANCES = "final_distances"
    FINAL_PREDECESSORS = "final_predecessors"
    INITIAL_TABLE = "initial_table"
    ITERATION_STARTED = "iteration_started"
    ROUTE_UPDATED = "route_updated"
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"


def format_distance(value: Optional[float]) -> str:
    """Render a metric, using the unreachable token for infinity"""
    if value is None or math.isinf(value):
        return UNREACHABLE
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _format_mapping(values: Mapping[str, Any]) -> str:
    parts = []
    for key, value in values.items():
        if hasattr(value, "next_hop"):
            if math.isinf(value.distance):
                rendered = UNREACHABLE
            else:
                rendered = f"{format_distance(value.distance)} via {value.next_hop}"
        elif isinstance(value, (int, float)):
            rendered = format_distance(value)
        else:
            rendered = "none" if value is None else str(value)
        parts.append(f"{key}: {rendered}")
    return "{" + ", ".join(parts) + "}"


@dataclass(frozen=True)
class TraceEvent:
    """
    One structured trace record.

    Only the fields relevant to ``kind`` are set; ``message()`` renders
    the human-readable log line.
    """

    kind: EventType
    node: Optional[str] = None
    via: Optional[str] = None
    destination: Optional[str] = None
    distance: Optional[float] = None
    bandwidth: Optional[float] = None
    iteration: Optional[int] = None
    label: Optional[str] = None
    values: Optional[Mapping[str, Any]] = None

    def message(self) -> str:
        kind = self.kind
        if kind is EventType.SOLVE_STARTED:
            if self.node is None:
                return f"Starting {self.label}"
            return f"Starting {self.label} from node {self.node}"
        if kind is EventType.INITIAL_DISTANCES:
            return f"Initial distances: {_format_mapping(self.values)}"
        if kind is EventType.NODE_VISITED:
            return f"Visiting node {self.node} with distance {format_distance(self.distance)}"
        if kind is EventType.DISTANCE_UPDATED:
            line = (f"Updated distance to {self.node} via {self.via}: "
                    f"{format_distance(self.distance)}")
            if self.bandwidth is not None:
                line += f" (bandwidth: {format_distance(self.bandwidth)} Mbps)"
            return line
        if kind is EventType.FINAL_DISTANCES:
            return f"Final distances: {_format_mapping(self.values)}"
        if kind is EventType.FINAL_PREDECESSORS:
            return f"Final previous nodes: {_format_mapping(self.values)}"
        if kind is EventType.INITIAL_TABLE:
            return f"Router {self.node} table: {_format_mapping(self.values)}"
        if kind is EventType.ITERATION_STARTED:
            return f"Iteration {self.iteration}:"
        if kind is EventType.ROUTE_UPDATED:
            return (f"Router {self.node} updated route to {self.destination} "
                    f"via {self.via}: distance = {format_distance(self.distance)}")
        if kind is EventType.CONVERGED:
            return f"Network has converged after {self.iteration} iteration(s)"
        if kind is EventType.NOT_CONVERGED:
            return f"Reached maximum iterations ({self.iteration}) without convergence"
        return kind.value

    def to_dict(self) -> dict:
        """Serialize to dictionary (JSON-safe)"""
        data = {"kind": self.kind.value, "message": self.message()}
        for name in ("node", "via", "destination", "bandwidth", "iteration"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.distance is not None:
            data["distance"] = None if math.isinf(self.distance) else self.distance
        return data


# ============================================================================
# 2. STATE SNAPSHOTS
# ============================================================================

def freeze(mapping: Mapping) -> Mapping:
    """Read-only copy of a mapping (one level deep)"""
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class LinkStateSnapshot:
    """State captured when the link-state solver settles a node"""
    current_node: str
    distances: Mapping[str, float]
    predecessors: Mapping[str, Optional[str]]

    def to_dict(self) -> dict:
        return {
            "current_node": self.current_node,
            "distances": {k: None if math.isinf(v) else v
                          for k, v in self.distances.items()},
            "predecessors": dict(self.predecessors),
        }


@dataclass(frozen=True)
class DistanceVectorSnapshot:
    """All routing tables after one distance-vector pass"""
    iteration: int
    tables: Mapping[str, Mapping[str, Any]]

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "tables": {node: {dest: entry.to_dict() for dest, entry in table.items()}
                       for node, table in self.tables.items()},
        }


Snapshot = Union[LinkStateSnapshot, DistanceVectorSnapshot]


# ============================================================================
# 3. TRACE
# ============================================================================

class Trace:
    """
    Append-only record of a solve: structured events plus state snapshots.

    Events and snapshots are stored in two separate sequences so a caller
    can print the log or step through snapshots independently.
    """

    def __init__(self):
        self._events: List[TraceEvent] = []
        self._snapshots: List[Snapshot] = []

    def record(self, kind: EventType, **fields) -> TraceEvent:
        """Append an event and return it"""
        if fields.get("values") is not None:
            fields["values"] = freeze(fields["values"])
        event = TraceEvent(kind=kind, **fields)
        self._events.append(event)
        return event

    def capture(self, snapshot: Snapshot) -> None:
        """Append a state snapshot"""
        self._snapshots.append(snapshot)

    @property
    def events(self) -> Tuple[TraceEvent, ...]:
        return tuple(self._events)

    @property
    def snapshots(self) -> Tuple[Snapshot, ...]:
        return tuple(self._snapshots)

    def of_kind(self, kind: EventType) -> List[TraceEvent]:
        """Events with the given tag, in order"""
        return [event for event in self._events if event.kind is kind]

    def lines(self) -> List[str]:
        """Human-readable log lines"""
        return [event.message() for event in self._events]

    def __len__(self) -> int:
        return len(self._events)

    def to_dict(self) -> dict:
        return {
            "events": [event.to_dict() for event in self._events],
            "snapshots": [snapshot.to_dict() for snapshot in self._snapshots],
        }
