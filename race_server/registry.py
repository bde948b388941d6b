"""
Connection registry.

Maps each live websocket to a generated player id and a spawn slot, and owns
the per-connection outbox the relay writes into.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


def generate_player_id() -> str:
    """Random, collision-resistant player id."""
    return uuid.uuid4().hex[:12]


def allocate_spawn_index(held: Iterable[int]) -> int:
    """Smallest non-negative integer not in *held*."""
    taken = set(held)
    index = 0
    while index in taken:
        index += 1
    return index


@dataclass
class Connection:
    """A live client connection."""

    player_id: str
    spawn_index: int
    websocket: Any
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer_task: Optional[asyncio.Task] = None


class ConnectionRegistry:
    """Tracks live connections and hands out ids and spawn slots."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

        # Lifetime counters for metrics
        self.connects_total = 0
        self.disconnects_total = 0

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._connections

    def get(self, player_id: str) -> Optional[Connection]:
        return self._connections.get(player_id)

    def register(self, websocket) -> Connection:
        """Admit a websocket: new id plus the smallest free spawn index."""
        player_id = generate_player_id()
        while player_id in self._connections:
            player_id = generate_player_id()

        spawn_index = allocate_spawn_index(c.spawn_index for c in self._connections.values())
        conn = Connection(player_id=player_id, spawn_index=spawn_index, websocket=websocket)
        self._connections[player_id] = conn
        self.connects_total += 1
        logger.info(
            f"Connection registered: {player_id} (spawn {spawn_index}). "
            f"Total: {len(self._connections)}"
        )
        return conn

    def unregister(self, player_id: str) -> Optional[Connection]:
        """Drop a connection, freeing its spawn index. Safe to call twice."""
        conn = self._connections.pop(player_id, None)
        if conn is not None:
            self.disconnects_total += 1
            logger.info(
                f"Connection removed: {player_id}. Total: {len(self._connections)}"
            )
        return conn
