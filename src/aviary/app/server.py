from __future__ import annotations

import asyncio
import json
import logging
import math
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import BEHAVIOR_ORDER, SimulationConfig
from ..sim.core.world import World

logger = logging.getLogger(__name__)

# Host key bindings: "r" resets, digits toggle behaviors in combination order.
KEY_BINDINGS: Dict[str, str] = {"r": "reset"}
KEY_BINDINGS.update({str(index + 1): behavior.value for index, behavior in enumerate(BEHAVIOR_ORDER)})


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, max_queue: int = 64):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.include_density = False
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queue))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def tick(self) -> int:
        return self.world.tick

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
            logger.info("Simulation loop started (%d agents)", len(self.world.agents))
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def shutdown(self) -> None:
        self.running = False
        task = self._loop_task
        self._loop_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Simulation loop stopped at tick %d", self.tick)

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def step(self) -> None:
        async with self._lock:
            self.world.step()
        if self.tick % self.broadcast_interval == 0:
            await self._broadcast_snapshot()

    async def spawn_agent(self, x: float, y: float) -> Dict[str, Any]:
        async with self._lock:
            agent = self.world.spawn_agent((x, y))
        return {"id": agent.id, "x": agent.position.x, "y": agent.position.y}

    async def spawn_repulsor(self, x: float, y: float) -> Dict[str, Any]:
        async with self._lock:
            repulsor = self.world.spawn_repulsor((x, y))
        return {"id": repulsor.id, "x": repulsor.position.x, "y": repulsor.position.y}

    async def toggle(self, behavior: str) -> bool:
        async with self._lock:
            return self.world.toggle(behavior)

    async def set_weight(self, behavior: str, weight: float) -> None:
        async with self._lock:
            self.world.set_weight(behavior, weight)

    async def handle_input(self, event: Dict[str, Any]) -> None:
        """Map a host input event onto a world command.

        ``pointer`` events spawn an agent (left button) or a repulsor (right
        button) at ``x``/``y``; ``key`` events go through KEY_BINDINGS.
        Unbound keys and buttons are ignored.
        """
        kind = event.get("type")
        if kind == "pointer":
            x = float(event.get("x", 0.0))
            y = float(event.get("y", 0.0))
            button = event.get("button")
            if button == "left":
                await self.spawn_agent(x, y)
            elif button == "right":
                await self.spawn_repulsor(x, y)
        elif kind == "key":
            action = KEY_BINDINGS.get(str(event.get("key", "")).lower())
            if action == "reset":
                await self.reset()
            elif action is not None:
                await self.toggle(action)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.frame_interval / self.speed_multiplier)
            if not self.running:
                continue
            try:
                await self.step()
            except Exception:
                logger.exception("Simulation tick %d failed", self.tick)

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot(include_density=self.include_density)
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "repulsors": snapshot.repulsors,
                "world": asdict(snapshot.world),
                "behaviors": snapshot.behaviors,
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        async with self._lock:
            queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in list(self.clients):
            try:
                await self._send_pending_snapshots(client)
            except (WebSocketDisconnect, RuntimeError):
                # RuntimeError: the socket was closed before its disconnect was seen.
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


controller = SimulationController(SimulationConfig())


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    await controller.start()
    yield
    await controller.shutdown()


app = FastAPI(title="Aviary Flocking Simulation", lifespan=_lifespan)


def _point(payload: dict) -> tuple[float, float]:
    try:
        return float(payload["x"]), float(payload["y"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=400, detail="expected numeric 'x' and 'y'") from None


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot()
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "population": len(controller.world.agents),
            "repulsors": len(controller.world.repulsors),
            "behaviors": snapshot.behaviors,
            "metrics": asdict(snapshot.metrics),
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    try:
        speed = float(payload.get("multiplier", 1.0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="expected numeric 'multiplier'") from None
    if math.isnan(speed):
        raise HTTPException(status_code=400, detail="expected numeric 'multiplier'")
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/agents")
async def spawn_agent(payload: dict) -> JSONResponse:
    x, y = _point(payload)
    return JSONResponse(await controller.spawn_agent(x, y))


@app.post("/api/repulsors")
async def spawn_repulsor(payload: dict) -> JSONResponse:
    x, y = _point(payload)
    return JSONResponse(await controller.spawn_repulsor(x, y))


@app.post("/api/behaviors/{behavior}/toggle")
async def toggle_behavior(behavior: str) -> JSONResponse:
    try:
        enabled = await controller.toggle(behavior)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"behavior": behavior, "enabled": enabled})


@app.post("/api/behaviors/{behavior}/weight")
async def set_behavior_weight(behavior: str, payload: dict) -> JSONResponse:
    try:
        weight = float(payload.get("weight", 1.0))
        await controller.set_weight(behavior, weight)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"behavior": behavior, "weight": weight})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
            else:
                try:
                    await controller.handle_input(payload)
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed input event: %s", message)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller", "SimulationController", "KEY_BINDINGS"]
