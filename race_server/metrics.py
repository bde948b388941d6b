"""
Health and metrics HTTP endpoint for race server monitoring.

Provides lightweight HTTP endpoints for production monitoring:
- GET /health - JSON health check
- GET /metrics - Prometheus-compatible text format metrics
"""

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING

from race_server.protocol import GameState

if TYPE_CHECKING:
    from race_server.server import RaceServer

logger = logging.getLogger(__name__)


async def handle_http_request(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    server: "RaceServer",
) -> None:
    """Handle a single HTTP request."""
    try:
        request_line = await reader.readline()
        if not request_line:
            return

        parts = request_line.decode("utf-8").strip().split()
        if len(parts) < 2:
            return

        method, path = parts[0], parts[1]

        # Drain headers; these endpoints don't use them
        while True:
            line = await reader.readline()
            if not line or line == b"\r\n":
                break

        if method == "GET" and path == "/health":
            _write_response(writer, "200 OK", "application/json", json.dumps(health_data(server), indent=2))
        elif method == "GET" and path == "/metrics":
            _write_response(writer, "200 OK", "text/plain; version=0.0.4", metrics_text(server))
        else:
            _write_response(writer, "404 Not Found", "text/plain", "Not Found")

    except Exception as e:
        logger.error(f"Error handling metrics request: {e}")
    finally:
        try:
            await writer.drain()
            writer.close()
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Error closing metrics connection: {e}")


def _write_response(writer: asyncio.StreamWriter, status: str, content_type: str, body: str):
    encoded = body.encode("utf-8")
    header = (
        f"HTTP/1.1 {status}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(encoded)}\r\n"
        "\r\n"
    )
    writer.write(header.encode("utf-8") + encoded)


def health_data(server: "RaceServer") -> dict:
    coordinator = server.coordinator
    return {
        "status": "ok",
        "uptime_seconds": round(time.time() - server.start_time, 2),
        "connected_players": len(coordinator.players),
        "game_state": coordinator.game_state.value,
        "selected_song": coordinator.selected_song,
        "music_start_time": coordinator.music_start_time,
    }


def metrics_text(server: "RaceServer") -> str:
    """Prometheus text exposition of the room counters."""
    coordinator = server.coordinator
    registry = server.registry
    uptime = time.time() - server.start_time

    lines = [
        "# HELP race_uptime_seconds Server uptime in seconds",
        "# TYPE race_uptime_seconds gauge",
        f"race_uptime_seconds {uptime:.2f}",
        "",
        "# HELP race_connected_players Number of currently connected players",
        "# TYPE race_connected_players gauge",
        f"race_connected_players {len(coordinator.players)}",
        "",
        "# HELP race_connections_total Total client connections since start",
        "# TYPE race_connections_total counter",
        f"race_connections_total {registry.connects_total}",
        "",
        "# HELP race_disconnections_total Total client disconnections since start",
        "# TYPE race_disconnections_total counter",
        f"race_disconnections_total {registry.disconnects_total}",
        "",
        "# HELP race_races_started_total Races that reached PLAYING",
        "# TYPE race_races_started_total counter",
        f"race_races_started_total {coordinator.races_started}",
        "",
        "# HELP race_races_completed_total Races that ended with results",
        "# TYPE race_races_completed_total counter",
        f"race_races_completed_total {coordinator.races_completed}",
        "",
        "# HELP race_races_aborted_total Races reset for lack of players",
        "# TYPE race_races_aborted_total counter",
        f"race_races_aborted_total {coordinator.races_aborted}",
        "",
        "# HELP race_messages_received_total Client messages dispatched",
        "# TYPE race_messages_received_total counter",
        f"race_messages_received_total {coordinator.messages_received}",
        "",
        "# HELP race_messages_dropped_total Malformed client messages dropped",
        "# TYPE race_messages_dropped_total counter",
        f"race_messages_dropped_total {coordinator.messages_dropped}",
        "",
        "# HELP race_messages_sent_total Outbound frames delivered to clients",
        "# TYPE race_messages_sent_total counter",
        f"race_messages_sent_total {server.relay.messages_sent}",
        "",
        "# HELP race_send_failures_total Outbound sends that failed or timed out",
        "# TYPE race_send_failures_total counter",
        f"race_send_failures_total {server.relay.send_failures}",
        "",
        "# HELP race_game_state Current room state (1 for the active state)",
        "# TYPE race_game_state gauge",
    ]
    for state in GameState:
        active = 1 if coordinator.game_state == state else 0
        lines.append(f'race_game_state{{state="{state.value}"}} {active}')
    lines.append("")
    return "\n".join(lines)


async def start_metrics_server(
    server: "RaceServer",
    port: int,
    host: str = "0.0.0.0",
) -> asyncio.Server:
    """Start the metrics HTTP server.

    Args:
        server: RaceServer instance to expose metrics for
        port: Port to listen on
        host: Host to bind to (default: 0.0.0.0)

    Returns:
        asyncio.Server instance
    """

    async def client_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        await handle_http_request(reader, writer, server)

    metrics_server = await asyncio.start_server(client_handler, host, port)
    logger.info(f"Metrics server: http://localhost:{port}/health, /metrics")
    return metrics_server
