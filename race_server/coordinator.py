"""
Session coordinator - the authoritative race state machine.

    WAITING -> PREPARING -> COUNTDOWN -> PLAYING -> FINISHED -> WAITING
        ^__________________________________________________|
                 (forced abort when fewer than min_players remain)

All operations are synchronous and run to completion. Outbound traffic goes
through the relay (``broadcast`` / ``send``), timers through an injected
scheduler whose handles expose ``cancel()``. Timer callbacks re-check the
live state when they fire instead of trusting what was true when armed.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from race_server import protocol
from race_server.config import RaceConfig
from race_server.names import clean_model, clean_username
from race_server.player import Player
from race_server.protocol import GameState, MalformedMessage, MessageType, finite_number
from race_server.songs import is_known_song, resolve_winner, tally_votes

logger = logging.getLogger(__name__)

ABORT_MESSAGE = "Not enough players!"


def epoch_ms() -> int:
    """Wall clock in milliseconds, as clients expect for scheduling."""
    return int(time.time() * 1000)


def loop_call_later(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    """Default scheduler: the running asyncio loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class RaceCoordinator:
    """
    Owns the room: player records, the global race state and its timers.

    Args:
        relay: object with ``broadcast(message, exclude=None)`` and
            ``send(player_id, message)``
        config: race rules and timings
        scheduler: ``call_later(seconds, callback)`` returning a cancellable handle
        clock: returns epoch milliseconds
    """

    def __init__(
        self,
        relay,
        config: Optional[RaceConfig] = None,
        scheduler: Optional[Callable[[float, Callable[[], None]], Any]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.relay = relay
        self.config = config or RaceConfig()
        self._call_later = scheduler or loop_call_later
        self._clock = clock or epoch_ms

        self.players: Dict[str, Player] = {}

        # Global race state
        self.game_state = GameState.WAITING
        self.selected_song: Optional[str] = None
        self.music_start_time: Optional[int] = None
        self.finish_deadline: Optional[int] = None

        # At most one live handle per timer kind
        self._countdown_timer: Optional[Any] = None
        self._finish_timer: Optional[Any] = None

        # Metrics
        self.races_started = 0
        self.races_completed = 0
        self.races_aborted = 0
        self.messages_received = 0
        self.messages_dropped = 0

        self._handlers = {
            MessageType.JOIN_LOBBY: self._on_join_lobby,
            MessageType.VOTE_SONG: self._on_vote_song,
            MessageType.PLAYER_READY: self._on_player_ready,
            MessageType.ASSETS_READY: self._on_assets_ready,
            MessageType.UPDATE: self._on_update,
            MessageType.LAP_UPDATE: self._on_lap_update,
        }

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def songs(self) -> List[str]:
        return list(self.config.songs)

    def public_players(self) -> List[dict]:
        return [p.to_dict() for p in self.players.values()]

    def vote_counts(self) -> Dict[str, int]:
        return tally_votes((p.vote for p in self.players.values()), self.config.songs)

    def state_snapshot(self) -> Optional[dict]:
        """Periodic ``state`` frame; only produced while racing."""
        if self.game_state != GameState.PLAYING:
            return None
        return protocol.state_message(self.public_players())

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def player_connected(self, player_id: str, spawn_index: int) -> Player:
        """Seed a player record and bring the new client up to date."""
        player = Player(id=player_id, spawn_index=spawn_index)
        self.players[player_id] = player
        logger.info(
            f"Player joined: {player_id} (spawn {spawn_index}). Players: {len(self.players)}",
            extra={"player_id": player_id, "game_state": self.game_state.value},
        )

        self.relay.send(
            player_id,
            protocol.init_message(
                player_id,
                self.public_players(),
                self.game_state,
                self.music_start_time,
                self.selected_song,
                self.songs,
                self.config.max_laps,
            ),
        )
        self.relay.broadcast(protocol.player_joined_message(player.to_dict()), exclude=player_id)
        self._broadcast_lobby()
        self._check_race_start()
        return player

    def player_disconnected(self, player_id: str):
        """Forget a player and re-evaluate the room without them."""
        if self.players.pop(player_id, None) is None:
            return
        logger.info(
            f"Player left: {player_id}. Players: {len(self.players)}",
            extra={"player_id": player_id, "game_state": self.game_state.value},
        )

        self.relay.broadcast(protocol.player_left_message(player_id))
        self._broadcast_lobby()

        if self._check_abort():
            return

        # The departed player may have been the one holding a gate shut
        if self.game_state == GameState.WAITING:
            self._check_race_start()
        elif self.game_state == GameState.PREPARING:
            self._check_assets_ready()
        elif self.game_state == GameState.PLAYING and self._all_finished():
            self._end_race()

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    def handle_raw(self, player_id: str, raw) -> bool:
        """Parse and dispatch one frame. Returns False if it was dropped as malformed."""
        try:
            msg_type, data = protocol.parse_message(raw)
        except MalformedMessage as e:
            self.messages_dropped += 1
            logger.warning(f"Malformed message from {player_id}: {e}")
            return False
        self.handle_message(player_id, msg_type, data)
        return True

    def handle_message(self, player_id: str, msg_type: MessageType, data: dict):
        """Apply a client intent to that client's player record."""
        player = self.players.get(player_id)
        if player is None:
            logger.debug(f"Ignoring {msg_type.value} from unknown player {player_id}")
            return
        self.messages_received += 1
        self._handlers[msg_type](player, data)

    def _on_join_lobby(self, player: Player, data: dict):
        if "username" in data:
            player.username = clean_username(data.get("username"))
        if "model" in data:
            player.model = clean_model(data.get("model"))
        # A profile change invalidates prior readiness
        player.is_ready = False
        logger.info(f"Player {player.id} is '{player.username}' ({player.model})")
        self._broadcast_lobby()

    def _on_vote_song(self, player: Player, data: dict):
        song = data.get("song")
        if not is_known_song(song, self.config.songs):
            logger.debug(f"Ignoring vote for unknown song {song!r} from {player.id}")
            return
        player.vote = song
        self._broadcast_lobby()

    def _on_player_ready(self, player: Player, data: dict):
        player.is_ready = bool(data.get("isReady", False))
        # Toggling readiness forces the client to confirm its assets again
        player.assets_ready = False
        self._broadcast_lobby()
        self._check_race_start()

    def _on_assets_ready(self, player: Player, data: dict):
        if self.game_state != GameState.PREPARING:
            return
        player.assets_ready = True
        self._check_assets_ready()

    def _on_update(self, player: Player, data: dict):
        if self.game_state != GameState.PLAYING:
            return
        player.apply_transform(data)

    def _on_lap_update(self, player: Player, data: dict):
        if self.game_state != GameState.PLAYING:
            return

        lap = data.get("lap")
        if isinstance(lap, float) and lap.is_integer():
            lap = int(lap)
        if isinstance(lap, bool) or not isinstance(lap, int):
            logger.debug(f"Ignoring lap_update with lap={lap!r} from {player.id}")
            return
        if lap > self.config.max_laps:
            logger.debug(f"Ignoring lap_update past the lap target ({lap}) from {player.id}")
            return

        lap_time = finite_number(data.get("lapTime"))
        total_time = finite_number(data.get("totalTime"))
        if not player.record_lap(lap, lap_time, total_time):
            return

        newly_finished = not player.finished and player.lap >= self.config.max_laps
        if newly_finished:
            player.finished = True
            player.finish_time = self._clock()
            logger.info(f"Player {player.id} finished (total {player.total_time})")

        self.relay.broadcast(
            protocol.lap_update_message(
                player.id, player.lap, lap_time, player.total_time, player.best_lap, player.finished
            )
        )

        if newly_finished:
            self._check_race_finish(player.id)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _set_state(self, state: GameState):
        if state != self.game_state:
            logger.info(
                f"Game state: {self.game_state.value} -> {state.value}",
                extra={"game_state": state.value},
            )
        self.game_state = state

    def _broadcast_lobby(self):
        self.relay.broadcast(protocol.lobby_update_message(self.public_players(), self.vote_counts()))

    def _check_race_start(self):
        """WAITING -> PREPARING once enough players are all ready."""
        if self.game_state != GameState.WAITING:
            return
        if len(self.players) < self.config.min_players:
            return
        if all(p.is_ready for p in self.players.values()):
            self._enter_preparing()

    def _enter_preparing(self):
        self._cancel_finish_timer()
        self.finish_deadline = None
        self.selected_song = resolve_winner(
            (p.vote for p in self.players.values()), self.config.songs
        )
        for p in self.players.values():
            p.reset_race_progress()

        self._set_state(GameState.PREPARING)
        logger.info(f"Preparing race: {self.selected_song}, {self.config.max_laps} laps")
        self.relay.broadcast(protocol.prepare_race_message(self.selected_song, self.config.max_laps))

    def _check_assets_ready(self):
        """PREPARING -> COUNTDOWN once every player is ready and loaded."""
        if self.game_state != GameState.PREPARING:
            return
        if all(p.is_ready and p.assets_ready for p in self.players.values()):
            self._start_countdown()

    def _start_countdown(self):
        self._cancel_countdown_timer()
        if not self.selected_song:
            self.selected_song = resolve_winner(
                (p.vote for p in self.players.values()), self.config.songs
            )

        self._set_state(GameState.COUNTDOWN)
        countdown_ms = self.config.countdown_ms
        duration = countdown_ms // 1000 if countdown_ms % 1000 == 0 else countdown_ms / 1000
        self.relay.broadcast(protocol.countdown_start_message(duration, self.selected_song))
        self._countdown_timer = self._call_later(countdown_ms / 1000, self._on_countdown_elapsed)

    def _on_countdown_elapsed(self):
        self._countdown_timer = None
        if self.game_state != GameState.COUNTDOWN:
            logger.debug("Stale countdown timer ignored")
            return
        if self._check_abort():
            return
        self._start_game()

    def _start_game(self):
        self._cancel_finish_timer()
        self.finish_deadline = None
        self.music_start_time = self._clock() + self.config.music_lead_ms
        self.races_started += 1

        self._set_state(GameState.PLAYING)
        self.relay.broadcast(
            protocol.game_start_message(
                self.music_start_time, self.selected_song, self.config.max_laps
            )
        )

    def _all_finished(self) -> bool:
        max_laps = self.config.max_laps
        return bool(self.players) and all(p.reached(max_laps) for p in self.players.values())

    def _check_race_finish(self, triggered_by: str):
        """End now if everyone is done, else arm the shared finish-grace timer."""
        if self.game_state != GameState.PLAYING:
            return
        if self._all_finished():
            self._end_race()
            return
        if self._finish_timer is not None:
            # Later finishers never restart the window
            return

        grace_ms = self.config.finish_grace_ms
        self.finish_deadline = self._clock() + grace_ms
        self._finish_timer = self._call_later(grace_ms / 1000, self._on_finish_grace_elapsed)
        logger.info(f"Finish grace started by {triggered_by}, ends at {self.finish_deadline}")
        self.relay.broadcast(protocol.finish_timer_message(self.finish_deadline, triggered_by))

    def _on_finish_grace_elapsed(self):
        self._finish_timer = None
        if self.game_state != GameState.PLAYING:
            logger.debug("Stale finish timer ignored")
            return
        if self._check_abort():
            return
        self._end_race()

    def _end_race(self):
        """PLAYING -> FINISHED -> WAITING in one step."""
        self._cancel_finish_timer()
        ends_at = self.finish_deadline
        results = [p.result_dict() for p in self.players.values()]

        self._set_state(GameState.FINISHED)
        self.races_completed += 1
        self.relay.broadcast(protocol.race_over_message(results, ends_at))

        self.music_start_time = None
        self.finish_deadline = None
        for p in self.players.values():
            p.reset_readiness()
        self._set_state(GameState.WAITING)
        self._broadcast_lobby()

    def _check_abort(self) -> bool:
        """Fall back to WAITING when too few players remain. Returns True if aborted."""
        if self.game_state == GameState.WAITING:
            return False
        if len(self.players) >= self.config.min_players:
            return False
        self._abort()
        return True

    def _abort(self):
        logger.info(f"Not enough players ({len(self.players)}), resetting race")
        self._cancel_countdown_timer()
        self._cancel_finish_timer()
        self.music_start_time = None
        self.finish_deadline = None
        for p in self.players.values():
            p.reset_readiness()
            p.reset_race_progress()

        self.races_aborted += 1
        self._set_state(GameState.WAITING)
        self.relay.broadcast(protocol.game_reset_message(ABORT_MESSAGE))
        self._broadcast_lobby()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _cancel_countdown_timer(self):
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None

    def _cancel_finish_timer(self):
        if self._finish_timer is not None:
            self._finish_timer.cancel()
            self._finish_timer = None

    def shutdown(self):
        """Cancel any pending timers."""
        self._cancel_countdown_timer()
        self._cancel_finish_timer()
