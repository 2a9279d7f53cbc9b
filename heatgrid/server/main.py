"""FastAPI WebSocket server for the live heat diffusion dashboard.

Usage:
    python -m heatgrid.server.main --port 8765 [--config config.yaml]

The server exposes:
    - GET  /              — Health check
    - GET  /config        — Current configuration and stream info
    - GET  /state         — JSON snapshot of the field
    - WS   /ws/simulation — Binary MessagePack stream of the field, JSON
                            edit commands from the client
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import time
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState

from heatgrid.configs import Config
from heatgrid.server.streaming import SimulationBridge, drive_once, pack_frame
from heatgrid.simulation.session import SimulationSession

logger = logging.getLogger(__name__)


def create_app(bridge: SimulationBridge, session: SimulationSession) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        bridge: Bridge shared with the simulation loop.
        session: The session being driven. Handlers only read it; edits go
            through the bridge command queue.

    Returns:
        Configured FastAPI app with WebSocket endpoint.
    """
    app = FastAPI(
        title="Heatgrid Dashboard Server",
        description="Live heat diffusion over a grid of thermal zones",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "heatgrid-server"}

    @app.get("/config")
    async def get_config() -> dict[str, Any]:
        """Return configuration and stream info."""
        return {
            "target_fps": bridge.target_fps,
            "frame_count": bridge.frame_count,
            "grid": dataclasses.asdict(session.grid),
            "simulation": dataclasses.asdict(session.simulation),
            "display": dataclasses.asdict(session.display),
        }

    @app.get("/state")
    async def get_state() -> dict[str, Any]:
        """Return the current field as JSON."""
        return session.snapshot()

    @app.websocket("/ws/simulation")
    async def simulation_stream(websocket: WebSocket) -> None:
        """Stream field snapshots to dashboard clients.

        Protocol:
            - Server sends binary MessagePack frames whenever the field
              changes, at most target_fps per second.
            - Client can send JSON commands, e.g.
              {"type": "start"}, {"type": "pause"},
              {"type": "resize", "width": 12, "height": 8},
              {"type": "pin", "cell": "3-4", "value": 45.0}
        """
        await websocket.accept()
        interval = 1.0 / bridge.target_fps if bridge.target_fps > 0 else 1.0 / 30.0
        last_sent_revision = -1

        logger.info("Dashboard client connected")

        try:
            while True:
                try:
                    data = await asyncio.wait_for(
                        websocket.receive_text(), timeout=interval
                    )
                    try:
                        command = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("Invalid JSON command from client: %s", data)
                    else:
                        if isinstance(command, dict):
                            bridge.push_command(command)
                            logger.info("Command queued: %s", command.get("type"))
                        else:
                            logger.warning("Ignoring non-object command: %s", data)
                except asyncio.TimeoutError:
                    pass

                frame = bridge.get_latest_frame()
                if frame is not None and frame.revision != last_sent_revision:
                    packed = pack_frame(frame)
                    if websocket.client_state == WebSocketState.CONNECTED:
                        await websocket.send_bytes(packed)
                        last_sent_revision = frame.revision

        except WebSocketDisconnect:
            logger.info("Dashboard client disconnected")
        except Exception as e:
            logger.error("WebSocket error: %s", e)
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close(code=1011)

    return app


async def simulation_loop(bridge: SimulationBridge, session: SimulationSession) -> None:
    """Drive the session from the wall clock, one step per frame."""
    interval = 1.0 / bridge.target_fps if bridge.target_fps > 0 else 1.0 / 30.0
    last = time.perf_counter()
    while True:
        now = time.perf_counter()
        drive_once(bridge, session, now - last)
        last = now
        await asyncio.sleep(interval)


def _log_loop_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Simulation loop cancelled")
    elif task.exception() is not None:
        logger.error("Simulation loop crashed", exc_info=task.exception())


def start_server(config: Config | None = None) -> None:
    """Start the FastAPI server with a live simulation loop (blocking)."""
    import uvicorn

    config = config or Config()
    session = SimulationSession(config.grid, config.simulation, config.display)
    bridge = SimulationBridge(target_fps=config.server.target_fps)
    app = create_app(bridge, session)

    @app.on_event("startup")
    async def start_simulation() -> None:
        task = asyncio.create_task(simulation_loop(bridge, session))
        task.add_done_callback(_log_loop_exit)
        app.state.simulation_task = task

    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="info")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Heatgrid Dashboard Server")
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Port")
    parser.add_argument("--config", default=None, help="YAML config file")
    args = parser.parse_args()

    config = Config.from_yaml(args.config) if args.config else Config()
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port

    print(f"Starting heatgrid server on {config.server.host}:{config.server.port}")
    print(f"Grid: {config.grid.width}x{config.grid.height} ({config.grid.initial_mode})")
    start_server(config)
