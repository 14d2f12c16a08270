import asyncio
import json

from aviary.app.server import KEY_BINDINGS, SimulationController
from aviary.sim.core.config import SimulationConfig


def _controller() -> SimulationController:
    return SimulationController(SimulationConfig(initial_population=5, seed=3))


def test_snapshot_queue_ack_cleanup() -> None:
    controller = _controller()

    async def exercise() -> None:
        await controller.step()
        await controller.step()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_serialized_snapshot_payload() -> None:
    controller = _controller()
    controller.world.spawn_repulsor((1.0, 2.0))

    queued = controller._serialize_snapshot()
    message = json.loads(queued.payload)

    assert message["type"] == "snapshot"
    assert message["tick"] == 0
    payload = message["payload"]
    assert len(payload["agents"]) == 5
    assert payload["repulsors"] == [{"id": 0, "x": 1.0, "y": 2.0}]
    assert payload["behaviors"]["cohesion"]["enabled"] is True
    assert payload["metrics"]["population"] == 5


def test_pointer_events_spawn_agents_and_repulsors() -> None:
    controller = _controller()

    async def exercise() -> None:
        await controller.handle_input({"type": "pointer", "button": "left", "x": 10, "y": -4})
        await controller.handle_input({"type": "pointer", "button": "right", "x": 3, "y": 3})
        await controller.handle_input({"type": "pointer", "button": "middle", "x": 0, "y": 0})

    asyncio.run(exercise())

    assert len(controller.world.agents) == 6
    spawned = controller.world.agents[-1]
    assert (spawned.position.x, spawned.position.y) == (10.0, -4.0)
    assert len(controller.world.repulsors) == 1


def test_key_events_toggle_and_reset() -> None:
    controller = _controller()
    assert KEY_BINDINGS["1"] == "separation"
    assert KEY_BINDINGS["4"] == "repulsion"

    async def exercise() -> None:
        await controller.handle_input({"type": "key", "key": "1"})
        await controller.handle_input({"type": "key", "key": "4"})
        await controller.handle_input({"type": "pointer", "button": "right", "x": 0, "y": 0})
        await controller.step()
        await controller.handle_input({"type": "key", "key": "R"})
        await controller.handle_input({"type": "key", "key": "z"})

    asyncio.run(exercise())

    steering = controller.world.steering
    assert steering.separation.enabled is False
    assert steering.repulsion.enabled is False
    assert controller.world.repulsors == []
    assert controller.tick == 0
    async_queue = [item.tick for item in controller._snapshot_queue]
    assert async_queue == [0]


def test_start_and_shutdown_manage_loop_task() -> None:
    controller = _controller()

    async def exercise() -> None:
        await controller.start()
        assert controller.running is True
        await controller.shutdown()
        assert controller.running is False
        assert controller._loop_task is None

    asyncio.run(exercise())


class _FakeClient:
    def __init__(self, controller: SimulationController) -> None:
        self.controller = controller
        self.sent: list[str] = []
        self.drops: "_FakeClient | None" = None

    async def send_text(self, payload: str) -> None:
        self.sent.append(payload)
        if self.drops is not None:
            # Another handler disconnects a client while a broadcast is in flight.
            self.controller.clients.discard(self.drops)
            self.controller._client_last_sent.pop(self.drops, None)


def test_broadcast_tolerates_clients_leaving_mid_send() -> None:
    controller = _controller()
    first = _FakeClient(controller)
    second = _FakeClient(controller)
    first.drops = second
    for client in (first, second):
        controller.clients.add(client)
        controller._client_last_sent[client] = -1

    asyncio.run(controller.step())

    assert controller.tick == 1
    assert controller.clients == {first}
    assert len(first.sent) == 1


def test_loop_keeps_running_after_a_failed_tick() -> None:
    controller = SimulationController(SimulationConfig(initial_population=3, seed=3, frame_interval=0.001))
    real_step = controller.world.step
    calls = {"count": 0}

    def flaky_step():
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("boom")
        return real_step()

    controller.world.step = flaky_step

    async def exercise() -> None:
        await controller.start()
        for _ in range(500):
            if controller.tick >= 2:
                break
            await asyncio.sleep(0.005)
        assert controller._loop_task is not None and not controller._loop_task.done()
        await controller.shutdown()

    asyncio.run(exercise())

    assert controller.tick >= 2
    assert calls["count"] >= 3
