"""Bridge for streaming simulation state to WebSocket clients.

The SimulationBridge connects the simulation loop to the FastAPI WebSocket
server. The loop publishes field snapshots into it and pops the edit
commands that clients pushed; the server reads the latest snapshot and
streams it to connected dashboards.

Thread-safety: the simulation loop may run in its own thread while the
server's async event loop handles WebSocket connections, so the shared
frame buffer and command queue are guarded by a threading.Lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import msgpack
import numpy as np

from heatgrid.analysis.field_metrics import field_summary
from heatgrid.field.field import GridError
from heatgrid.simulation.session import SimulationSession

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """A single snapshot of the simulation ready for streaming.

    Arrays are numpy copies of the JAX field so packing never touches
    device memory.
    """

    revision: int
    step: int
    width: int
    height: int
    temperatures: np.ndarray  # (H*W,) float32, row-major
    source_mask: np.ndarray  # (H*W,) bool
    running: bool
    converged: bool
    max_abs_change: float
    metrics: dict[str, float]
    display_range: tuple[float, float] = (-20.0, 50.0)
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.timestamp == 0.0:
            self.timestamp = time.time()


def pack_frame(frame: Frame) -> bytes:
    """Serialize a Frame to MessagePack binary format.

    Numpy arrays are serialized as raw bytes with dtype/shape metadata
    so the client can reconstruct typed arrays.

    Returns:
        MessagePack-encoded bytes ready for WebSocket send.
    """
    data: dict[str, Any] = {
        "revision": frame.revision,
        "step": frame.step,
        "timestamp": frame.timestamp,
        "width": frame.width,
        "height": frame.height,
        "temperatures": _pack_array(frame.temperatures.astype(np.float32)),
        "sources": _pack_array(frame.source_mask.astype(np.uint8)),
        "running": frame.running,
        "converged": frame.converged,
        "max_abs_change": frame.max_abs_change,
        "display_range": list(frame.display_range),
        "metrics": frame.metrics,
    }
    result: bytes = msgpack.packb(data, use_bin_type=True)
    return result


def _pack_array(arr: np.ndarray) -> dict[str, Any]:
    """Pack a numpy array into a dict with shape, dtype, and raw bytes."""
    return {
        "shape": list(arr.shape),
        "dtype": arr.dtype.str,
        "data": arr.tobytes(),
    }


def create_frame_from_session(session: SimulationSession) -> Frame:
    """Snapshot a session's current field and run state into a Frame."""
    field = session.field
    display = session.display
    return Frame(
        revision=session.revision,
        step=session.step_count,
        width=field.width,
        height=field.height,
        temperatures=np.asarray(field.temperatures).astype(np.float32),
        source_mask=np.asarray(field.source_mask).astype(bool),
        running=session.running,
        converged=session.converged,
        max_abs_change=session.last_max_change,
        metrics=field_summary(field),
        display_range=(display.min_temperature, display.max_temperature),
    )


class SimulationBridge:
    """Bridge between the simulation loop and the WebSocket server.

    The loop calls `publish_frame()` to push new snapshots and
    `pop_commands()` to collect client edits. The server calls
    `get_latest_frame()` to stream and `push_command()` to enqueue edits.
    """

    def __init__(self, target_fps: float = 30.0) -> None:
        self._lock = threading.Lock()
        self._latest_frame: Frame | None = None
        self._frame_count: int = 0
        self._target_fps = target_fps
        self._min_interval = 1.0 / target_fps if target_fps > 0 else 0.0
        self._last_publish_time: float = 0.0
        self._commands: list[dict[str, Any]] = []

    @property
    def frame_count(self) -> int:
        """Total number of frames published."""
        return self._frame_count

    @property
    def target_fps(self) -> float:
        """Target frames per second for streaming."""
        return self._target_fps

    def publish_frame(self, frame: Frame, force: bool = False) -> bool:
        """Publish a new frame from the simulation loop.

        Rate-limited to target_fps unless force is set.

        Args:
            frame: The snapshot to publish.
            force: Bypass rate limiting (used after edits so clients
                see them without waiting for the next tick).

        Returns:
            True if accepted, False if rate-limited.
        """
        now = time.time()
        if not force and now - self._last_publish_time < self._min_interval:
            return False

        with self._lock:
            self._latest_frame = frame
            self._frame_count += 1
            self._last_publish_time = now
        return True

    def get_latest_frame(self) -> Frame | None:
        """Get the most recent frame (called from server async loop)."""
        with self._lock:
            return self._latest_frame

    def push_command(self, command: dict[str, Any]) -> None:
        """Queue a command from a dashboard client.

        Commands are JSON dicts like {"type": "pause"} or
        {"type": "pin", "cell": "2-3", "value": 40.0}.
        """
        with self._lock:
            self._commands.append(command)

    def pop_commands(self) -> list[dict[str, Any]]:
        """Pop all pending commands (called from the simulation loop)."""
        with self._lock:
            commands = self._commands
            self._commands = []
            return commands


def drive_once(
    bridge: SimulationBridge,
    session: SimulationSession,
    delta_time: float,
) -> Frame | None:
    """Run one iteration of the simulation loop.

    Applies pending client commands, advances the session by delta_time
    and publishes a frame when anything changed. A command that fails is
    logged and skipped; the session keeps its previous valid state.

    Returns:
        The published frame, or None if nothing changed or the frame was
        rate-limited.
    """
    edited = False
    for command in bridge.pop_commands():
        try:
            session.apply_command(command)
            edited = True
        except (GridError, ValueError, KeyError, TypeError) as e:
            logger.warning("Rejected command %s: %s", command.get("type"), e)

    session.tick(delta_time)

    # Unpublished revisions are retried on the next call
    latest = bridge.get_latest_frame()
    if latest is not None and latest.revision == session.revision:
        return None

    frame = create_frame_from_session(session)
    if bridge.publish_frame(frame, force=edited):
        return frame
    return None
