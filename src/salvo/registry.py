"""Process-wide index of rooms and players.

The Registry is constructed by the server and injected into the command
router; nothing reaches it through module globals. It owns id generation
(random codes, retried until unused) and the idle-room sweep that reclaims
abandoned matches.
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from . import config as _cfg
from .battleship import Position, Ship
from .io_utils import OutputPort
from .player import Player
from .room import AttackOutcome, Room, RoomStatus

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


class Registry:
    """Id-keyed storage for rooms and players with a defined teardown."""

    def __init__(
        self,
        *,
        idle_timeout: float = _cfg.ROOM_IDLE_TIMEOUT,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rooms: Dict[str, Room] = {}
        self.players: Dict[str, Player] = {}
        self.idle_timeout = idle_timeout
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = threading.Lock()

    # -------------------- id generation --------------------
    def _code(self, length: int) -> str:
        return "".join(self._rng.choice(_ALPHABET) for _ in range(length))

    def _unique_id(self, taken: Dict[str, object], length: int) -> str:
        # caller holds self._lock
        while True:
            candidate = self._code(length)
            if candidate not in taken:
                return candidate
            logger.debug("id collision on %r, retrying", candidate)

    # -------------------- players --------------------
    def register_player(self, display_name: str, port: OutputPort) -> str:
        """Allocate a player with an empty fleet and grid; always succeeds."""
        with self._lock:
            player_id = self._unique_id(self.players, _cfg.PLAYER_ID_LENGTH)
            self.players[player_id] = Player(player_id, port, name=display_name)
        logger.info("Registered player %s (%r)", player_id, display_name)
        return player_id

    def get_player(self, player_id: str) -> Optional[Player]:
        with self._lock:
            return self.players.get(player_id)

    def _seat(self, player_id: str, port: OutputPort) -> Player:
        """Fresh per-room record; keeps the registered display name."""
        known = self.players.get(player_id)
        player = Player(player_id, port, name=known.name if known else "")
        self.players[player_id] = player
        return player

    # -------------------- rooms --------------------
    def create_room(self, player_id: str, port: OutputPort) -> Room:
        """Open a Waiting room whose creator holds the first turn."""
        with self._lock:
            room_id = self._unique_id(self.rooms, _cfg.ROOM_CODE_LENGTH)
            room = Room(room_id, self._seat(player_id, port), clock=self._clock)
            self.rooms[room_id] = room
        logger.info("Room %s created by %s", room_id, player_id)
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self.rooms.get(room_id)

    def join_room(self, room_id: str, player_id: str, port: OutputPort) -> Optional[Room]:
        """Seat a fresh record for *player_id* in *room_id*; None on failure."""
        with self._lock:
            room = self.rooms.get(room_id)
            if room is None:
                logger.debug("join: room %s not found", room_id)
                return None
            if room.status is not RoomStatus.WAITING or room.get_player(player_id) is not None:
                return None
            player = self._seat(player_id, port)
        return room if room.add_player(player) else None

    def add_registered_player(self, room_id: str, player_id: str) -> bool:
        """Like :meth:`join_room` but seats the object made by register_player."""
        with self._lock:
            room = self.rooms.get(room_id)
            player = self.players.get(player_id)
        if room is None or player is None:
            logger.debug("add_registered_player: room=%s player=%s missing", room_id, player_id)
            return False
        return room.add_player(player)

    def rooms_for_player(self, player_id: str) -> List[Room]:
        with self._lock:
            return [r for r in self.rooms.values() if r.get_player(player_id) is not None]

    def remove_room(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self.rooms.pop(room_id, None)

    # -------------------- room operations by id --------------------
    def place_ship(self, player_id: str, room_id: str, ship: Ship) -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        return room.place_ship(player_id, ship)

    def attack(self, room_id: str, attacker_id: str, x: int, y: int) -> AttackOutcome:
        room = self.get_room(room_id)
        if room is None:
            return AttackOutcome.ROOM_NOT_FOUND
        return room.attack(attacker_id, x, y)

    def random_attack(self, room_id: str, attacker_id: str) -> Tuple[AttackOutcome, Optional[Position]]:
        room = self.get_room(room_id)
        if room is None:
            return AttackOutcome.ROOM_NOT_FOUND, None
        return room.random_attack(attacker_id, self._rng)

    def force_finish(self, room_id: str, winner_id: Optional[str], reason: str = "forced") -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        return room.force_finish(winner_id, reason)

    # -------------------- expiry / teardown --------------------
    def reap_idle(self, now: Optional[float] = None) -> List[str]:
        """Finish and drop every room idle for longer than ``idle_timeout``.

        Each room decides under its own lock (see :meth:`Room.expire`), so a
        move landing during the sweep keeps its room alive.
        """
        now = self._clock() if now is None else now
        with self._lock:
            candidates = list(self.rooms.values())

        reaped: List[str] = []
        for room in candidates:
            if not room.expire(now, self.idle_timeout):
                continue
            if self.remove_room(room.id) is not None:
                reaped.append(room.id)
        if reaped:
            logger.info("Reaped %d idle room(s): %s", len(reaped), ", ".join(reaped))
        return reaped

    def close(self) -> None:
        with self._lock:
            self.rooms.clear()
            self.players.clear()
