"""Tests for configuration loading and CLI overrides."""

import json

import pytest

from race_server.cli import build_parser, resolve_config
from race_server.config import AppConfig, RaceConfig, ServerConfig


class TestRaceConfig:
    def test_defaults(self):
        config = RaceConfig()
        assert config.max_laps == 3
        assert config.min_players == 2
        assert config.countdown_ms == 3000
        assert config.music_lead_ms == 1000
        assert config.finish_grace_ms == 10000
        assert config.tick_interval_ms == 50
        assert config.songs[0] == "Homecoming.mp3"

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            RaceConfig(max_laps=0)
        with pytest.raises(ValueError):
            RaceConfig(songs=[])

    def test_from_dict_ignores_unknown_keys(self):
        config = RaceConfig.from_dict({"max_laps": 5, "bogus": True})
        assert config.max_laps == 5


class TestEnvironment:
    def test_server_from_env(self, monkeypatch):
        monkeypatch.setenv("RACE_HOST", "127.0.0.1")
        monkeypatch.setenv("RACE_PORT", "9100")
        monkeypatch.setenv("RACE_METRICS_PORT", "")
        config = ServerConfig.from_env()
        assert config.host == "127.0.0.1"
        assert config.port == 9100
        assert config.metrics_port is None

    def test_max_laps_from_env(self, monkeypatch):
        monkeypatch.setenv("RACE_MAX_LAPS", "5")
        assert AppConfig.from_env().race.max_laps == 5

    def test_defaults_without_env(self, monkeypatch):
        for name in ("RACE_HOST", "RACE_PORT", "RACE_METRICS_PORT", "RACE_MAX_LAPS"):
            monkeypatch.delenv(name, raising=False)
        config = AppConfig.from_env()
        assert config.server.port == 8081
        assert config.server.metrics_port == 8082
        assert config.race.max_laps == 3


class TestConfigFile:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = AppConfig()
        config.server.port = 9200
        config.race.max_laps = 4
        config.race.songs = ["Children.mp3", "Homecoming.mp3"]
        config.save(path)

        loaded = AppConfig.load(path)
        assert loaded.server.port == 9200
        assert loaded.race.max_laps == 4
        assert loaded.race.songs == ["Children.mp3", "Homecoming.mp3"]

    def test_missing_file_gives_defaults(self, tmp_path):
        loaded = AppConfig.load(tmp_path / "absent.json")
        assert loaded.server.port == 8081

    def test_partial_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"race": {"finish_grace_ms": 5000}}))
        loaded = AppConfig.load(path)
        assert loaded.race.finish_grace_ms == 5000
        assert loaded.race.max_laps == 3


class TestCliOverrides:
    def test_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("RACE_PORT", "9100")
        args = build_parser().parse_args(["--port", "9300", "--max-laps", "2", "--no-metrics"])
        config = resolve_config(args)
        assert config.server.port == 9300
        assert config.race.max_laps == 2
        assert config.server.metrics_port is None

    def test_invalid_port_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--port", "70000"])

    def test_missing_config_file(self, tmp_path):
        args = build_parser().parse_args(["--config", str(tmp_path / "nope.json")])
        with pytest.raises(FileNotFoundError):
            resolve_config(args)
