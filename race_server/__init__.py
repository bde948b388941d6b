"""
Race Server - authoritative coordinator for music-synced multiplayer races.

Admits players into a shared lobby, tallies song votes, gates the start on
readiness and asset loading, synchronizes the countdown and music start, relays
transforms while racing, and resolves the finish with a grace window.
"""

from .config import AppConfig, RaceConfig, ServerConfig
from .coordinator import RaceCoordinator
from .player import Player
from .protocol import GameState, MessageType
from .server import RaceServer
from .songs import DEFAULT_CATALOG, resolve_winner, tally_votes

__all__ = [
    "RaceServer",
    "RaceCoordinator",
    "Player",
    "GameState",
    "MessageType",
    "AppConfig",
    "RaceConfig",
    "ServerConfig",
    "DEFAULT_CATALOG",
    "resolve_winner",
    "tally_votes",
]
