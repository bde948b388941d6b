"""
Race Server - websocket front end for the race coordinator.

Every browser client connects to the same room. Inbound frames are handed to
the coordinator; outbound frames leave through the relay. While a race is
running, a periodic tick rebroadcasts every player's transform.

Architecture:
    Client 1 ──┐                 ┌──> Relay ──> all clients
    Client 2 ──┼──> Registry ──> Coordinator
    Client 3 ──┘                 └──> timers (countdown, finish grace)
"""

import asyncio
import logging
import time
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed

from race_server.config import AppConfig
from race_server.coordinator import RaceCoordinator
from race_server.registry import ConnectionRegistry
from race_server.relay import Relay

logger = logging.getLogger(__name__)


class RaceServer:
    """
    Single-room race server.

    Responsibilities:
    - Accept client websocket connections
    - Feed connects, frames and disconnects to the coordinator
    - Rebroadcast transforms at the tick rate while PLAYING
    - Serve health/metrics over HTTP
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()

        self.registry = ConnectionRegistry()
        self.relay = Relay(self.registry, send_timeout=self.config.server.send_timeout)
        self.coordinator = RaceCoordinator(self.relay, self.config.race)

        self.start_time = time.time()
        self._running = False

    async def handle_connection(self, websocket):
        """Serve one client from connect to disconnect."""
        conn = self.registry.register(websocket)
        self.relay.start_writer(conn)
        try:
            self.coordinator.player_connected(conn.player_id, conn.spawn_index)

            async for message in websocket:
                try:
                    self.coordinator.handle_raw(conn.player_id, message)
                except Exception:
                    # Never let one bad frame take the room down
                    logger.exception(f"Error handling message from {conn.player_id}")

        except ConnectionClosed:
            pass
        finally:
            # Unregister first so departure broadcasts skip the dead socket
            self.registry.unregister(conn.player_id)
            self.coordinator.player_disconnected(conn.player_id)
            await self.relay.stop_writer(conn)

    def broadcast_tick(self) -> bool:
        """Rebroadcast the race snapshot. Returns True if one was sent."""
        snapshot = self.coordinator.state_snapshot()
        if snapshot is None:
            return False
        self.relay.broadcast(snapshot)
        return True

    async def _tick_loop(self):
        interval = self.config.race.tick_interval_ms / 1000
        while self._running:
            self.broadcast_tick()
            await asyncio.sleep(interval)

    async def run(self):
        """Start listening and block until ``stop()`` is called."""
        self._running = True
        server_config = self.config.server

        ws_server = await websockets.serve(
            self.handle_connection,
            server_config.host,
            server_config.port,
            max_size=server_config.max_message_size,
        )
        logger.info(f"Race WebSocket server: ws://{server_config.host}:{server_config.port}")

        metrics_server = None
        if server_config.metrics_port is not None:
            from race_server.metrics import start_metrics_server

            metrics_server = await start_metrics_server(
                self, server_config.metrics_port, server_config.host
            )

        logger.info(
            f"Race server ready: {self.config.race.max_laps} laps, "
            f"{len(self.config.race.songs)} songs"
        )

        try:
            await self._tick_loop()
        finally:
            self.coordinator.shutdown()
            ws_server.close()
            if metrics_server:
                metrics_server.close()
                await metrics_server.wait_closed()
            await ws_server.wait_closed()
            logger.info("Race server stopped")

    def stop(self):
        """Stop the server."""
        self._running = False
