import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from routing.topology import Topology

logger = logging.getLogger(__name__)

DEFAULT_SPEED_MS = 1000.0   # playback time unit per weight step
DEFAULT_SEGMENT_DIVISOR = 5.0

# ============================================================================
# 1. SIMULATION STEPS
# ============================================================================

class StepPhase(Enum):
    """Where the packet is on its route"""
    LEAVES_SOURCE = "leaves source"
    FORWARDED = "forwarded through"
    ARRIVES_AT_DESTINATION = "arrives at destination"


@dataclass(frozen=True)
class SimulationStep:
    """One hand-off of the packet along a routing path"""

    index: int
    node_id: str
    phase: StepPhase

    @property
    def description(self) -> str:
        if self.phase is StepPhase.LEAVES_SOURCE:
            return f"Packet leaves source router {self.node_id}"
        if self.phase is StepPhase.ARRIVES_AT_DESTINATION:
            return f"Packet arrives at destination router {self.node_id}"
        return f"Packet forwarded through router {self.node_id}"

    def to_dict(self) -> dict:
        """Serialize to dictionary"""
        return {
            "step": self.index,
            "node": self.node_id,
            "phase": self.phase.value,
            "description": self.description,
        }


def build_steps(path: Sequence[str]) -> List[SimulationStep]:
    """
    Turn a routing path into ordered hand-off steps

    Args:
        path: Node IDs from source to destination

    Returns:
        One SimulationStep per node; [] for an empty path

    Example:
        [s.phase for s in build_steps(["A", "B", "F"])]
        # Returns: [LEAVES_SOURCE, FORWARDED, ARRIVES_AT_DESTINATION]
    """
    last = len(path) - 1
    steps = []
    for index, node_id in enumerate(path):
        if index == 0:
            phase = StepPhase.LEAVES_SOURCE
        elif index == last:
            phase = StepPhase.ARRIVES_AT_DESTINATION
        else:
            phase = StepPhase.FORWARDED
        steps.append(SimulationStep(index=index, node_id=node_id, phase=phase))
    return steps


def segment_durations(path: Sequence[str], topology: Topology,
                      speed_ms: float = DEFAULT_SPEED_MS,
                      divisor: float = DEFAULT_SEGMENT_DIVISOR) -> List[float]:
    """
    Playback time for each hop of a path

    A hop takes speed_ms * link weight / divisor; heavier links play
    slower.

    Args:
        path: Node IDs in path order
        topology: Snapshot the path was computed on
        speed_ms: Base playback speed (ms)
        divisor: Scale-down factor

    Returns:
        len(path) - 1 durations in milliseconds
    """
    if divisor <= 0:
        raise ValueError("divisor must be positive")

    durations = []
    for node_a, node_b in zip(path, path[1:]):
        link = topology.link_between(node_a, node_b)
        weight = link.weight if link else 1
        durations.append(speed_ms * weight / divisor)
    return durations


# ============================================================================
# 2. PLAYBACK CURSOR
# ============================================================================

class PlaybackState(Enum):
    """Playback lifecycle"""
    IDLE = "idle"
    PLAYING = "playing"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class PlaybackCursor:
    """
    Thread-safe position over a fixed list of steps.

    The cursor only reads the steps it was given; cancelling or
    resetting it never touches the solve result they came from.
    """

    def __init__(self, steps: Sequence[SimulationStep]):
        self._steps: Tuple[SimulationStep, ...] = tuple(steps)
        self._position = -1
        self._state = PlaybackState.IDLE
        self._lock = threading.Lock()

    @property
    def steps(self) -> Tuple[SimulationStep, ...]:
        return self._steps

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return self._state

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    def current(self) -> Optional[SimulationStep]:
        """Step under the cursor, or None before start"""
        with self._lock:
            if 0 <= self._position < len(self._steps):
                return self._steps[self._position]
            return None

    def advance(self) -> Optional[SimulationStep]:
        """
        Move to the next step

        Returns:
            The new current step, or None once finished or cancelled
        """
        with self._lock:
            if self._state in (PlaybackState.FINISHED, PlaybackState.CANCELLED):
                return None
            if self._position + 1 >= len(self._steps):
                self._state = PlaybackState.FINISHED
                return None
            self._position += 1
            self._state = PlaybackState.PLAYING
            if self._position == len(self._steps) - 1:
                self._state = PlaybackState.FINISHED
            return self._steps[self._position]

    def cancel(self) -> bool:
        """
        Stop playback (idempotent)

        Returns:
            True if this call cancelled a running or idle playback
        """
        with self._lock:
            if self._state in (PlaybackState.FINISHED, PlaybackState.CANCELLED):
                return False
            self._state = PlaybackState.CANCELLED
            return True

    def reset(self) -> None:
        """Rewind to before the first step"""
        with self._lock:
            self._position = -1
            self._state = PlaybackState.IDLE

    @property
    def finished(self) -> bool:
        return self.state is PlaybackState.FINISHED


# ============================================================================
# 3. PLAYBACK WORKER (Threading)
# ============================================================================

class PlaybackWorker(threading.Thread):
    """
    Background thread that walks a cursor in real time.

    Calls step_callback for every step, waiting the segment duration
    (divided by the speed multiplier) between consecutive steps.
    """

    def __init__(self, cursor: PlaybackCursor, durations: Sequence[float],
                 step_callback: Callable[[SimulationStep], None],
                 speed_multiplier: float = 1.0):
        """
        Initialize playback worker thread

        Args:
            cursor: Cursor over the steps to play
            durations: Milliseconds between consecutive steps
            step_callback: Called with each step as it is reached
            speed_multiplier: Playback speed (1.0 = configured speed)
        """
        super().__init__(daemon=True)
        if len(durations) < max(len(cursor.steps) - 1, 0):
            raise ValueError("Need one duration per hop")
        self.cursor = cursor
        self.durations = list(durations)
        self.step_callback = step_callback
        self.speed_multiplier = 1.0
        self.set_speed(speed_multiplier)
        self._stop_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()

    def run(self) -> None:
        """Main thread loop"""
        while not self._stop_event.is_set():
            self._resume_event.wait()
            step = self.cursor.advance()
            if step is None:
                break
            self.step_callback(step)
            if step.index < len(self.durations) and not self.cursor.finished:
                delay = self.durations[step.index] / self.speed_multiplier / 1000.0
                if self._stop_event.wait(delay):
                    break
        logger.debug("Playback ended in state %s", self.cursor.state.value)

    def pause(self) -> None:
        """Pause playback"""
        self._resume_event.clear()

    def resume(self) -> None:
        """Resume playback"""
        self._resume_event.set()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop playback thread (safe to call more than once)"""
        self.cursor.cancel()
        self._stop_event.set()
        self._resume_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=timeout)

    def set_speed(self, multiplier: float) -> None:
        """Set playback speed multiplier (1.0 = configured speed)"""
        self.speed_multiplier = max(0.1, multiplier)
