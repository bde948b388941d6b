"""Shared fixtures for the race server test suite.

Coordinator tests run without an event loop: timers go through a fake
scheduler that the test fires by hand, the clock is a settable integer, and
outbound traffic lands in a recording relay.
"""

from __future__ import annotations

import json
from typing import Callable, List, Optional, Tuple

import pytest

from race_server.config import RaceConfig
from race_server.coordinator import RaceCoordinator

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeTimer:
    """Handle returned by FakeScheduler."""

    def __init__(self, scheduler: "FakeScheduler", delay: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Run the callback the way the event loop would (once, unless cancelled)."""
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback()


class FakeScheduler:
    """``call_later`` stand-in recording every armed timer."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self, delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in list(self.pending):
            timer.fire()


class FakeClock:
    """Epoch-millisecond clock under test control."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class RecordingRelay:
    """Relay stand-in that keeps every outbound message.

    Messages are JSON round-tripped so tests see exactly what a client would.
    Entries are ``(target, message)`` where target is ``"*"`` for broadcasts
    (with the excluded id recorded separately) or a player id for direct sends.
    """

    def __init__(self):
        self.sent: List[Tuple[str, dict, Optional[str]]] = []

    def broadcast(self, message: dict, exclude: Optional[str] = None):
        self.sent.append(("*", json.loads(json.dumps(message)), exclude))

    def send(self, player_id: str, message: dict):
        self.sent.append((player_id, json.loads(json.dumps(message)), None))

    def of_type(self, msg_type: str) -> List[dict]:
        return [msg for _, msg, _ in self.sent if msg["type"] == msg_type]

    def types(self) -> List[str]:
        return [msg["type"] for _, msg, _ in self.sent]

    def clear(self):
        self.sent.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def relay() -> RecordingRelay:
    return RecordingRelay()


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def race_config() -> RaceConfig:
    return RaceConfig()


@pytest.fixture()
def coordinator(relay, scheduler, clock, race_config) -> RaceCoordinator:
    return RaceCoordinator(relay, race_config, scheduler=scheduler, clock=clock)


class Room:
    """Helper for driving a coordinator through client intents."""

    def __init__(self, coordinator: RaceCoordinator, relay: RecordingRelay, scheduler: FakeScheduler):
        self.coordinator = coordinator
        self.relay = relay
        self.scheduler = scheduler
        self._next_id = 0
        self._spawns: dict = {}

    def connect(self) -> str:
        player_id = f"p{self._next_id}"
        self._next_id += 1
        spawn = 0
        while spawn in self._spawns.values():
            spawn += 1
        self._spawns[player_id] = spawn
        self.coordinator.player_connected(player_id, spawn)
        return player_id

    def disconnect(self, player_id: str):
        self._spawns.pop(player_id, None)
        self.coordinator.player_disconnected(player_id)

    def send(self, player_id: str, payload: dict):
        self.coordinator.handle_raw(player_id, json.dumps(payload))

    def ready(self, *player_ids: str, is_ready: bool = True):
        for pid in player_ids:
            self.send(pid, {"type": "player_ready", "isReady": is_ready})

    def assets(self, *player_ids: str):
        for pid in player_ids:
            self.send(pid, {"type": "assets_ready"})

    def lap(self, player_id: str, lap, lap_time=None, total_time=None):
        self.send(player_id, {"type": "lap_update", "lap": lap, "lapTime": lap_time, "totalTime": total_time})

    def start_race(self, *player_ids: str):
        """Ready + assets for everyone, then let the countdown elapse."""
        self.ready(*player_ids)
        self.assets(*player_ids)
        countdown = self.scheduler.pending[-1]
        countdown.fire()


@pytest.fixture()
def room(coordinator, relay, scheduler) -> Room:
    return Room(coordinator, relay, scheduler)
