"""
Wire protocol for race clients.

Every frame is a JSON object tagged by ``type``. Inbound frames are parsed into
``(MessageType, payload)`` pairs; outbound frames are built by the helpers at
the bottom of this module so payload shapes live in one place.
"""

import json
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class GameState(str, Enum):
    """Room-wide race state."""

    WAITING = "WAITING"
    PREPARING = "PREPARING"
    COUNTDOWN = "COUNTDOWN"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class MessageType(str, Enum):
    """Client -> server message tags."""

    JOIN_LOBBY = "join_lobby"
    VOTE_SONG = "vote_song"
    PLAYER_READY = "player_ready"
    ASSETS_READY = "assets_ready"
    UPDATE = "update"
    LAP_UPDATE = "lap_update"


# Transform components accepted in "update" frames
TRANSFORM_FIELDS = ("x", "y", "z", "qx", "qy", "qz", "qw", "velocity")


class MalformedMessage(ValueError):
    """Inbound frame that is not a JSON object with a known ``type``."""


def parse_message(raw) -> Tuple[MessageType, Dict[str, Any]]:
    """Decode an inbound frame.

    Raises:
        MalformedMessage: invalid JSON, non-object payload, missing or unknown type
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"frame is not UTF-8: {e}") from e
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage(f"expected object, got {type(data).__name__}")

    try:
        msg_type = MessageType(data.get("type"))
    except ValueError:
        raise MalformedMessage(f"unknown message type: {data.get('type')!r}") from None

    return msg_type, data


def finite_number(value: Any) -> Optional[float]:
    """Return *value* as a float if it is a finite real number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


# ============================================================================
# Outbound builders
# ============================================================================


def init_message(
    player_id: str,
    players: List[dict],
    game_state: GameState,
    music_start_time: Optional[int],
    selected_song: Optional[str],
    songs: List[str],
    max_laps: int,
) -> dict:
    return {
        "type": "init",
        "id": player_id,
        "players": players,
        "gameState": game_state.value,
        "musicStartTime": music_start_time,
        "selectedSong": selected_song,
        "songs": songs,
        "maxLaps": max_laps,
    }


def player_joined_message(player: dict) -> dict:
    return {"type": "player_joined", "player": player}


def player_left_message(player_id: str) -> dict:
    return {"type": "player_left", "id": player_id}


def lobby_update_message(players: List[dict], votes: Dict[str, int]) -> dict:
    return {"type": "lobby_update", "players": players, "votes": votes}


def prepare_race_message(selected_song: str, max_laps: int) -> dict:
    return {"type": "prepare_race", "selectedSong": selected_song, "maxLaps": max_laps}


def countdown_start_message(duration: float, selected_song: str) -> dict:
    return {"type": "countdown_start", "duration": duration, "selectedSong": selected_song}


def game_start_message(music_start_time: int, selected_song: str, max_laps: int) -> dict:
    return {
        "type": "game_start",
        "musicStartTime": music_start_time,
        "selectedSong": selected_song,
        "maxLaps": max_laps,
    }


def lap_update_message(
    player_id: str,
    lap: int,
    lap_time: Optional[float],
    total_time: Optional[float],
    best_lap: Optional[float],
    finished: bool,
) -> dict:
    return {
        "type": "lap_update",
        "player": {
            "id": player_id,
            "lap": lap,
            "lapTime": lap_time,
            "totalTime": total_time,
            "bestLap": best_lap,
            "finished": finished,
        },
    }


def finish_timer_message(ends_at: int, triggered_by: str) -> dict:
    return {"type": "finish_timer", "endsAt": ends_at, "triggeredBy": triggered_by}


def race_over_message(results: List[dict], ends_at: Optional[int]) -> dict:
    return {"type": "race_over", "results": results, "endsAt": ends_at}


def game_reset_message(message: str) -> dict:
    return {"type": "game_reset", "message": message}


def state_message(players: List[dict]) -> dict:
    return {"type": "state", "players": players}
