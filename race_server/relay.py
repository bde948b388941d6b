"""
Broadcast/relay layer.

Coordinator code runs synchronously and must not await mid-handler, so sends
are serialized once and queued on each connection's outbox. A writer task per
connection drains its outbox in order; a send that stalls or fails closes the
connection, which then goes through the normal disconnect path.
"""

import asyncio
import logging
from typing import Optional

from websockets.exceptions import ConnectionClosed

from race_server.protocol import encode
from race_server.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class Relay:
    """Fan-out of outbound messages to registered connections."""

    def __init__(self, registry: ConnectionRegistry, send_timeout: float = 0.5):
        self.registry = registry
        self.send_timeout = send_timeout
        self.messages_sent = 0
        self.send_failures = 0

    def broadcast(self, message: dict, exclude: Optional[str] = None):
        """Queue *message* for every connection except *exclude*."""
        payload = encode(message)
        for conn in self.registry:
            if conn.player_id != exclude:
                conn.outbox.put_nowait(payload)

    def send(self, player_id: str, message: dict):
        """Queue *message* for a single connection (no-op if it is gone)."""
        conn = self.registry.get(player_id)
        if conn is None:
            logger.debug(f"Dropping {message.get('type')} for departed player {player_id}")
            return
        conn.outbox.put_nowait(encode(message))

    def start_writer(self, conn: Connection) -> asyncio.Task:
        conn.writer_task = asyncio.create_task(self._drain_outbox(conn))
        return conn.writer_task

    async def stop_writer(self, conn: Connection):
        if conn.writer_task and not conn.writer_task.done():
            conn.writer_task.cancel()
            try:
                await conn.writer_task
            except asyncio.CancelledError:
                pass

    async def _drain_outbox(self, conn: Connection):
        """Send queued payloads in order until the connection dies."""
        while True:
            payload = await conn.outbox.get()
            try:
                await asyncio.wait_for(conn.websocket.send(payload), timeout=self.send_timeout)
                self.messages_sent += 1
            except asyncio.TimeoutError:
                self.send_failures += 1
                logger.warning(f"Send to {conn.player_id} timed out - closing connection")
                await self._close(conn)
                return
            except ConnectionClosed:
                return
            except Exception as e:
                self.send_failures += 1
                logger.warning(f"Send to {conn.player_id} failed: {e}")
                await self._close(conn)
                return

    async def _close(self, conn: Connection):
        try:
            await conn.websocket.close(code=1011, reason="send failed")
        except Exception as e:
            logger.debug(f"Error closing {conn.player_id}: {e}")
