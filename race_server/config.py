"""
Race Server Configuration - Centralized configuration management.

Provides:
- Race timing and rules configuration
- Network/listener configuration
- Loading/saving from JSON/environment
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

from race_server.songs import DEFAULT_CATALOG


@dataclass
class RaceConfig:
    """Race rules and timing."""

    # Laps required to finish a race
    max_laps: int = 3

    # Minimum connected players to start (and keep) a race
    min_players: int = 2

    # Timers (milliseconds)
    countdown_ms: int = 3000
    music_lead_ms: int = 1000  # Lead time so clients can schedule playback
    finish_grace_ms: int = 10000

    # Periodic transform rebroadcast while PLAYING (~20 Hz)
    tick_interval_ms: int = 50

    # Selectable songs, in tie-break order
    songs: List[str] = field(default_factory=lambda: list(DEFAULT_CATALOG))

    def __post_init__(self):
        if self.max_laps < 1:
            raise ValueError(f"max_laps must be at least 1, got: {self.max_laps}")
        if self.min_players < 1:
            raise ValueError(f"min_players must be at least 1, got: {self.min_players}")
        if not self.songs:
            raise ValueError("songs must not be empty")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RaceConfig":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class ServerConfig:
    """Listener configuration."""

    host: str = "0.0.0.0"
    port: int = 8081

    # Health/metrics HTTP endpoint (None disables it)
    metrics_port: Optional[int] = 8082

    # Largest accepted websocket frame; client messages are small JSON objects
    max_message_size: int = 65_536

    # Seconds before a stalled client send is treated as a dead connection
    send_timeout: float = 0.5

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        metrics_port = os.environ.get("RACE_METRICS_PORT", "8082")
        return cls(
            host=os.environ.get("RACE_HOST", "0.0.0.0"),
            port=int(os.environ.get("RACE_PORT", "8081")),
            metrics_port=int(metrics_port) if metrics_port else None,
        )


@dataclass
class AppConfig:
    """Complete application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    race: RaceConfig = field(default_factory=RaceConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Server settings from the environment, race settings with env overrides."""
        race = RaceConfig()
        if os.environ.get("RACE_MAX_LAPS"):
            race.max_laps = int(os.environ["RACE_MAX_LAPS"])
            race.__post_init__()
        return cls(server=ServerConfig.from_env(), race=race)

    def save(self, path: Path) -> None:
        """Save configuration to JSON file."""
        data = {
            "server": asdict(self.server),
            "race": self.race.to_dict(),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """Load configuration from JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        if "server" in data:
            config.server = ServerConfig(
                **{k: v for k, v in data["server"].items() if k in ServerConfig.__dataclass_fields__}
            )

        if "race" in data:
            config.race = RaceConfig.from_dict(data["race"])

        return config
