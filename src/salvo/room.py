"""Two-player room state machine and move resolution.

A Room owns the (at most two) Players of one match, whose turn it is, and
where the match stands:

    Waiting --(2nd player joins)--> InProgress --(fleet sunk | forced)--> Finished

Rules enforced here
-------------------
• A hit keeps the turn with the attacker; a miss passes it to the opponent.
• Re-firing at a cell that is already Hit or Miss is an invalid move and
  mutates nothing.
• Finished is terminal: no placement, no attacks, no joins.

Every public method takes the room lock for its whole duration, including
event emission, so notifications leave in the same order as the state
changes that caused them. All methods return an outcome instead of raising;
only a broken internal invariant raises :class:`RoomInvariantError`.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .battleship import Cell, Position, Ship
from .events import Category, Event
from .player import Player

logger = logging.getLogger(__name__)


class RoomStatus(str, Enum):
    WAITING = "waiting"
    IN_PROGRESS = "inProgress"
    FINISHED = "finished"


class AttackOutcome(str, Enum):
    """Result of a single attack; values double as wire-level result names."""

    ROOM_NOT_FOUND = "roomNotFound"
    NOT_YOUR_TURN = "notYourTurn"
    NO_OPPONENT = "noOpponent"
    HIT = "hit"
    MISS = "miss"
    INVALID_MOVE = "invalidMove"
    GAME_OVER = "gameOver"


class RoomInvariantError(RuntimeError):
    """Raised when a room reaches a state correct registry use cannot produce."""


class Room:
    """State machine for a single two-player match."""

    MAX_PLAYERS = 2

    def __init__(
        self,
        room_id: str,
        creator: Player,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = room_id
        self.players: List[Player] = [creator]
        self.turn: str = creator.id
        self.status = RoomStatus.WAITING
        self.winner: Optional[str] = None
        self.finish_reason: Optional[str] = None

        self._lock = threading.RLock()
        self._subs: List[Callable[[Event], None]] = []
        self._clock = clock
        self.last_activity = clock()

    # -------------------- event bus --------------------
    def subscribe(self, cb: Callable[[Event], None]) -> None:
        """Allow external components (router/logger) to receive room events."""
        self._subs.append(cb)

    def _emit(self, ev: Event) -> None:
        for cb in tuple(self._subs):
            try:
                cb(ev)
            except Exception:
                # a misbehaving subscriber must not undo an applied move
                logger.exception("Room %s: subscriber failed on %s", self.id, ev.type)

    # -------------------- lookups --------------------
    def player_ids(self) -> list[str]:
        return [p.id for p in self.players]

    def get_player(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def opponent_of(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.id != player_id:
                return p
        return None

    def is_full(self) -> bool:
        return len(self.players) >= self.MAX_PLAYERS

    def idle_for(self, now: Optional[float] = None) -> float:
        """Seconds since the last accepted mutation."""
        return (self._clock() if now is None else now) - self.last_activity

    def _touch(self) -> None:
        self.last_activity = self._clock()

    def _check_invariants(self) -> None:
        if len(self.players) > self.MAX_PLAYERS:
            raise RoomInvariantError(f"room {self.id} holds {len(self.players)} players")
        if self.status is RoomStatus.IN_PROGRESS and self.turn not in self.player_ids():
            raise RoomInvariantError(f"room {self.id}: turn {self.turn!r} names no player")

    # -------------------- membership --------------------
    def add_player(self, player: Player) -> bool:
        """Seat the second player and start the match.

        Rejected when the room is full, finished, or already seats
        ``player.id``. On success the room moves to InProgress exactly once.
        """
        with self._lock:
            self._check_invariants()
            if self.status is not RoomStatus.WAITING or self.is_full():
                logger.debug("Room %s: join by %s rejected (status=%s, players=%d)",
                             self.id, player.id, self.status.value, len(self.players))
                return False
            if self.get_player(player.id) is not None:
                logger.debug("Room %s: %s is already seated", self.id, player.id)
                return False

            self.players.append(player)
            self.status = RoomStatus.IN_PROGRESS
            self._touch()
            logger.info("Room %s: %s joined – game in progress, %s to fire first",
                        self.id, player.id, self.turn)

            self._emit(Event(Category.ROOM, "joined", {"room": self.id, "player": player.id}))
            self._emit(Event(Category.ROOM, "start", {"room": self.id, "players": self.player_ids()}))
            self._emit(Event(Category.TURN, "turn", {"player": self.turn}))
            return True

    # -------------------- placement --------------------
    def place_ship(self, player_id: str, ship: Ship) -> bool:
        """Validate and write *ship* onto the player's own grid.

        Order of checks: player seated, room not finished, positions in
        bounds, no repeated cell, every cell empty. Nothing is written unless
        every check passes.
        """
        with self._lock:
            player = self.get_player(player_id)
            if player is None:
                logger.debug("Room %s: placement by unknown player %s", self.id, player_id)
                return False
            if self.status is RoomStatus.FINISHED:
                logger.debug("Room %s: placement after finish rejected", self.id)
                return False
            if not player.grid.can_place(ship.positions):
                logger.debug("Room %s: invalid placement by %s: %s", self.id, player_id, ship.positions)
                return False

            for pos in ship.positions:
                player.grid[pos] = Cell.SHIP
            ship.sunk = False
            player.ships.append(ship)
            self._touch()
            logger.debug("Room %s: %s placed ship #%d (%d cells)",
                         self.id, player_id, len(player.ships), len(ship))

            self._emit(Event(Category.TURN, "placed", {"player": player_id, "positions": ship.to_obj()}))
            return True

    # -------------------- attacks --------------------
    def _precheck(self, attacker_id: str) -> Tuple[AttackOutcome | None, Optional[Player]]:
        if self.status is not RoomStatus.IN_PROGRESS or self.turn != attacker_id:
            return AttackOutcome.NOT_YOUR_TURN, None
        opponent = self.opponent_of(attacker_id)
        if opponent is None:
            return AttackOutcome.NO_OPPONENT, None
        return None, opponent

    def attack(self, attacker_id: str, x: int, y: int) -> AttackOutcome:
        """Resolve one shot by *attacker_id* at (x, y) on the opponent's grid."""
        with self._lock:
            self._check_invariants()
            outcome, opponent = self._precheck(attacker_id)
            if outcome is not None:
                logger.debug("Room %s: attack by %s refused: %s", self.id, attacker_id, outcome.value)
                return outcome
            assert opponent is not None

            pos = Position(x, y)
            grid = opponent.grid
            if not grid.in_bounds(pos):
                return AttackOutcome.INVALID_MOVE

            cell = grid[pos]
            sunk = False
            if cell is Cell.SHIP:
                grid[pos] = Cell.HIT
                ship = opponent.ship_at(pos)
                if ship is not None:
                    sunk = ship.refresh_sunk(grid)
                result = AttackOutcome.GAME_OVER if opponent.fleet_sunk() else AttackOutcome.HIT
            elif cell is Cell.EMPTY:
                grid[pos] = Cell.MISS
                self.turn = opponent.id
                result = AttackOutcome.MISS
            else:
                # already targeted
                return AttackOutcome.INVALID_MOVE

            self._touch()
            self._emit(Event(Category.TURN, "shot", {
                "attacker": attacker_id,
                "x": x,
                "y": y,
                "result": result.value,
                "sunk": sunk,
            }))

            if result is AttackOutcome.GAME_OVER:
                self._finish(attacker_id, "fleet destroyed")
            elif result is AttackOutcome.MISS:
                self._emit(Event(Category.TURN, "turn", {"player": self.turn}))
            return result

    def random_attack(
        self,
        attacker_id: str,
        rng: Optional[random.Random] = None,
    ) -> Tuple[AttackOutcome, Optional[Position]]:
        """Fire at a uniformly chosen cell the attacker has not targeted yet."""
        rng = rng or random
        with self._lock:
            outcome, opponent = self._precheck(attacker_id)
            if outcome is not None:
                return outcome, None
            assert opponent is not None
            remaining = opponent.grid.untargeted()
            if not remaining:
                return AttackOutcome.INVALID_MOVE, None
            pos = rng.choice(remaining)
            return self.attack(attacker_id, pos.x, pos.y), pos

    # -------------------- termination --------------------
    def _finish(self, winner_id: Optional[str], reason: str) -> None:
        self.status = RoomStatus.FINISHED
        self.winner = winner_id
        self.finish_reason = reason
        self._touch()
        logger.info("Room %s: finished – winner=%s (%s)", self.id, winner_id, reason)
        if logger.isEnabledFor(logging.DEBUG):
            for p in self.players:
                logger.debug("Room %s: final grid of %s\n%s", self.id, p.id, "\n".join(p.grid.rows()))
        self._emit(Event(Category.TURN, "end", {"winner": winner_id, "reason": reason}))

    def force_finish(self, winner_id: Optional[str], reason: str = "forced") -> bool:
        """Finish the match and announce *winner_id*, bypassing the sunk-fleet check.

        Used for forfeits, disconnects and idle expiry. A room that is
        already Finished keeps its result and ``False`` is returned.
        """
        with self._lock:
            if self.status is RoomStatus.FINISHED:
                logger.debug("Room %s: already finished, %s ignored", self.id, reason)
                return False
            self._finish(winner_id, reason)
            return True

    def expire(self, now: float, timeout: float) -> bool:
        """Finish the room if it has been idle longer than *timeout*.

        An in-progress match goes to the player not holding the turn; a
        waiting room ends without a winner. Returns ``True`` when the room
        is idle and Finished, i.e. ready to be dropped.
        """
        with self._lock:
            if self.idle_for(now) <= timeout:
                return False
            if self.status is RoomStatus.IN_PROGRESS:
                idle = self.opponent_of(self.turn)
                self._finish(idle.id if idle else None, "timeout")
            elif self.status is RoomStatus.WAITING:
                self._finish(None, "abandoned")
            return True

    def announce_start(self) -> bool:
        """Repeat the game-start notification; only an in-progress room has one."""
        with self._lock:
            if self.status is not RoomStatus.IN_PROGRESS:
                return False
            self._emit(Event(Category.ROOM, "start", {"room": self.id, "players": self.player_ids()}))
            return True

    def announce_disconnect(self, player_id: str) -> None:
        with self._lock:
            self._emit(Event(Category.SYSTEM, "disconnect", {"player": player_id}))

    def __repr__(self) -> str:
        return f"<Room {self.id} {self.status.value} players={self.player_ids()} turn={self.turn}>"
