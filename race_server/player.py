"""Per-connection player record."""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from race_server.names import DEFAULT_MODEL, DEFAULT_USERNAME
from race_server.protocol import TRANSFORM_FIELDS, finite_number


def random_color() -> int:
    """Random 24-bit display color."""
    return random.randint(0, 0xFFFFFF)


@dataclass
class Player:
    """Represents a connected racer.

    Owned and mutated only by the coordinator. Connection handles live in the
    registry, never here, so ``to_dict()`` is always safe to broadcast.
    """

    id: str
    spawn_index: int
    username: str = DEFAULT_USERNAME
    model: str = DEFAULT_MODEL
    color: int = field(default_factory=random_color)

    # Lobby
    is_ready: bool = False
    assets_ready: bool = False
    vote: Optional[str] = None

    # Transform (client-reported, PLAYING only)
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    qx: float = 0.0
    qy: float = 0.0
    qz: float = 0.0
    qw: float = 1.0
    velocity: float = 0.0

    # Race progress
    lap: int = 0
    lap_times: List[Optional[float]] = field(default_factory=list)
    best_lap: Optional[float] = None
    total_time: Optional[float] = None
    finished: bool = False
    finish_time: Optional[int] = None  # epoch ms

    def to_dict(self) -> Dict[str, Any]:
        """Public record, as sent to every client."""
        return {
            "id": self.id,
            "username": self.username,
            "model": self.model,
            "color": self.color,
            "isReady": self.is_ready,
            "assetsReady": self.assets_ready,
            "spawnIndex": self.spawn_index,
            "vote": self.vote,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "qx": self.qx,
            "qy": self.qy,
            "qz": self.qz,
            "qw": self.qw,
            "velocity": self.velocity,
            "lap": self.lap,
            "lapTimes": list(self.lap_times),
            "bestLap": self.best_lap,
            "totalTime": self.total_time,
            "finished": self.finished,
            "finishTime": self.finish_time,
        }

    def result_dict(self) -> Dict[str, Any]:
        """End-of-race result entry."""
        return {
            "id": self.id,
            "username": self.username,
            "model": self.model,
            "color": self.color,
            "lap": self.lap,
            "lapTimes": list(self.lap_times),
            "bestLap": self.best_lap,
            "totalTime": self.total_time,
            "finished": self.finished,
        }

    def reached(self, max_laps: int) -> bool:
        """True once the player no longer needs to race."""
        return self.finished or self.lap >= max_laps

    def reset_readiness(self):
        self.is_ready = False
        self.assets_ready = False

    def reset_race_progress(self):
        """Clear everything a previous race wrote."""
        self.assets_ready = False
        self.lap = 0
        self.lap_times = []
        self.best_lap = None
        self.total_time = None
        self.finished = False
        self.finish_time = None

    def apply_transform(self, data: Dict[str, Any]):
        """Copy finite transform components; anything else keeps its old value."""
        for name in TRANSFORM_FIELDS:
            value = finite_number(data.get(name))
            if value is not None:
                setattr(self, name, value)

    def record_lap(
        self, lap: int, lap_time: Optional[float], total_time: Optional[float]
    ) -> bool:
        """Apply a lap report.

        Returns False (and changes nothing) unless *lap* moves the player
        forward. Lap times are stored sparsely at index ``lap - 1``.
        """
        if lap <= self.lap:
            return False

        lap_times = list(self.lap_times)
        if lap_time is not None:
            if len(lap_times) < lap:
                lap_times.extend([None] * (lap - len(lap_times)))
            lap_times[lap - 1] = lap_time
        recorded = [t for t in lap_times if t is not None]

        self.lap = lap
        self.lap_times = lap_times
        self.best_lap = min(recorded) if recorded else None
        if total_time is not None:
            self.total_time = total_time
        return True
