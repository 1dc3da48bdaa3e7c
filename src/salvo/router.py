"""Translate between the wire and the room core.

``EventRouter`` turns Room events into outbound notifications for every
player seated in that room. ``CommandRouter`` takes decoded envelopes,
calls the Registry/Room operations and answers the requester with an
acknowledgement or an ``error`` notification.

Both live *outside* Room so that translation rules are declared in a single
place and can evolve without touching core game logic.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Set

from .commands import (
    AttackCommand,
    CommandParseError,
    CreateRoomCommand,
    FinishCommand,
    JoinRoomCommand,
    PlaceShipCommand,
    RandomAttackCommand,
    RegisterCommand,
    StartGameCommand,
    parse_command,
)
from .events import Category, Event
from .io_utils import OutputPort
from .registry import Registry
from .room import AttackOutcome, Room, RoomStatus

logger = logging.getLogger(__name__)

# Attack outcomes that change nothing and are reported only to the attacker.
_ATTACK_ERRORS = {
    AttackOutcome.ROOM_NOT_FOUND: "Room not found",
    AttackOutcome.NOT_YOUR_TURN: "Not your turn",
    AttackOutcome.NO_OPPONENT: "No opponent in room",
    AttackOutcome.INVALID_MOVE: "Invalid move",
}


def error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


class EventRouter:
    """Room-scoped helper that converts `Event` → notifications."""

    def __init__(self, room: Room) -> None:
        self._room = room

    # ------------------------------------------------------------------
    # Public dispatch entry
    # ------------------------------------------------------------------
    def __call__(self, ev: Event) -> None:  # Room calls router(event)
        try:
            self.dispatch(ev)
        except Exception:  # noqa: BLE001
            logger.exception("Event routing failed for %s", ev)

    def dispatch(self, ev: Event) -> None:
        cat = ev.category
        if cat is Category.ROOM:
            self._handle_room(ev)
        elif cat is Category.TURN:
            self._handle_turn(ev)
        elif cat is Category.SYSTEM:
            self._handle_system(ev)
        else:  # pragma: no cover – unknown category
            logger.debug("Ignoring event %s", ev)

    # ------------------------------------------------------------------
    # Category handlers
    # ------------------------------------------------------------------
    def _handle_room(self, ev: Event) -> None:
        p = ev.payload
        if ev.type == "joined":
            self._broadcast({"type": "roomJoined", "roomId": p["room"], "playerId": p["player"]})
        elif ev.type == "start":
            self._broadcast({"type": "gameStart", "roomId": p["room"], "players": p["players"]})
        else:
            logger.debug("Unhandled ROOM event: %s", ev)

    def _handle_turn(self, ev: Event) -> None:
        p = ev.payload
        t = ev.type
        if t == "shot":
            self._broadcast({
                "type": "attackResult",
                "playerId": p["attacker"],
                "x": p["x"],
                "y": p["y"],
                "result": p["result"],
            })
        elif t == "turn":
            self._broadcast({"type": "turn", "playerId": p["player"]})
        elif t == "placed":
            self._broadcast({"type": "shipPlaced", "playerId": p["player"], "positions": p["positions"]})
        elif t == "end":
            self._broadcast({"type": "gameOver", "winner": p["winner"], "reason": p["reason"]})
        else:
            logger.debug("Unhandled TURN event: %s", ev)

    def _handle_system(self, ev: Event) -> None:
        if ev.type == "disconnect":
            self._broadcast({"type": "playerDisconnected", "playerId": ev.payload["player"]})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _broadcast(self, obj: dict[str, Any]) -> None:
        for player in tuple(self._room.players):
            if not player.notify(obj):
                logger.debug("Room %s: delivery of %s to %s failed", self._room.id, obj["type"], player.id)


class CommandRouter:
    """Connection-facing entry point; one instance serves every connection."""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry
        self._lock = threading.Lock()
        # player ids announced over each port, for the disconnect path
        self._bindings: Dict[OutputPort, Set[str]] = {}

    def _bind(self, port: OutputPort, player_id: str) -> None:
        with self._lock:
            self._bindings.setdefault(port, set()).add(player_id)

    def _open_room(self, player_id: str, port: OutputPort) -> Room:
        room = self.registry.create_room(player_id, port)
        room.subscribe(EventRouter(room))
        self._bind(port, player_id)
        return room

    # ------------------------------------------------------------------
    # Public dispatch entry
    # ------------------------------------------------------------------
    def handle(self, envelope: Any, port: OutputPort) -> None:
        try:
            cmd = parse_command(envelope)
        except CommandParseError as e:
            logger.debug("Rejected envelope %r: %s", envelope, e)
            port.send(error(str(e)))
            return

        if isinstance(cmd, RegisterCommand):
            self._register(cmd, port)
        elif isinstance(cmd, CreateRoomCommand):
            room = self._open_room(cmd.player_id, port)
            port.send({"type": "roomCreated", "roomId": room.id})
        elif isinstance(cmd, JoinRoomCommand):
            self._join(cmd, port)
        elif isinstance(cmd, PlaceShipCommand):
            self._place(cmd, port)
        elif isinstance(cmd, (AttackCommand, RandomAttackCommand)):
            self._attack(cmd, port)
        elif isinstance(cmd, StartGameCommand):
            self._start(cmd, port)
        elif isinstance(cmd, FinishCommand):
            self._finish(cmd, port)

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------
    def _register(self, cmd: RegisterCommand, port: OutputPort) -> None:
        player_id = self.registry.register_player(cmd.name, port)
        self._bind(port, player_id)
        port.send({"type": "registered", "playerId": player_id, "name": cmd.name})

    def _join(self, cmd: JoinRoomCommand, port: OutputPort) -> None:
        if cmd.room_id is None:
            room = self._open_room(cmd.player_id, port)
            port.send({"type": "roomCreated", "roomId": room.id})
            port.send({"type": "roomJoined", "roomId": room.id, "playerId": cmd.player_id})
            return

        known = self.registry.get_player(cmd.player_id)
        if known is not None and known.port is port and not self.registry.rooms_for_player(cmd.player_id):
            # registered over this connection and not yet seated anywhere
            ok = self.registry.add_registered_player(cmd.room_id, cmd.player_id)
        else:
            ok = self.registry.join_room(cmd.room_id, cmd.player_id, port) is not None
        if not ok:
            port.send(error("Room not found or already full"))
            return
        self._bind(port, cmd.player_id)

    def _place(self, cmd: PlaceShipCommand, port: OutputPort) -> None:
        if self.registry.get_room(cmd.room_id) is None:
            port.send(error("Room not found"))
            return
        if not self.registry.place_ship(cmd.player_id, cmd.room_id, cmd.ship()):
            port.send(error("Invalid ship placement"))

    def _start(self, cmd: StartGameCommand, port: OutputPort) -> None:
        room = self.registry.get_room(cmd.room_id)
        if room is None or not room.announce_start():
            port.send(error("Not enough players"))

    def _finish(self, cmd: FinishCommand, port: OutputPort) -> None:
        if self.registry.get_room(cmd.room_id) is None:
            port.send(error("Room not found"))
        elif not self.registry.force_finish(cmd.room_id, cmd.winner_id):
            port.send(error("Game already finished"))

    def _attack(self, cmd: AttackCommand | RandomAttackCommand, port: OutputPort) -> None:
        if isinstance(cmd, AttackCommand):
            outcome = self.registry.attack(cmd.room_id, cmd.player_id, cmd.x, cmd.y)
        else:
            outcome, _ = self.registry.random_attack(cmd.room_id, cmd.player_id)
        if outcome in _ATTACK_ERRORS:
            port.send(error(_ATTACK_ERRORS[outcome]))
        # hit/miss/gameOver were already broadcast by the room's EventRouter

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def handle_disconnect(self, port: OutputPort) -> None:
        """Forfeit every unfinished room the port's players sit in."""
        with self._lock:
            player_ids = self._bindings.pop(port, set())
        for player_id in player_ids:
            for room in self.registry.rooms_for_player(player_id):
                seat = room.get_player(player_id)
                if seat is None or seat.port is not port or room.status is RoomStatus.FINISHED:
                    continue
                logger.info("Player %s disconnected from room %s", player_id, room.id)
                room.announce_disconnect(player_id)
                opponent = room.opponent_of(player_id)
                room.force_finish(opponent.id if opponent else None, "disconnect")
