from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from .battleship import Position, Ship


class CommandParseError(Exception):
    """Raised when an envelope cannot be parsed as a valid command."""


@dataclass(frozen=True)
class RegisterCommand:
    name: str


@dataclass(frozen=True)
class CreateRoomCommand:
    player_id: str


@dataclass(frozen=True)
class JoinRoomCommand:
    player_id: str
    room_id: Optional[str] = None


@dataclass(frozen=True)
class PlaceShipCommand:
    player_id: str
    room_id: str
    positions: Tuple[Position, ...]

    def ship(self) -> Ship:
        return Ship(list(self.positions))


@dataclass(frozen=True)
class AttackCommand:
    player_id: str
    room_id: str
    x: int
    y: int


@dataclass(frozen=True)
class RandomAttackCommand:
    player_id: str
    room_id: str


@dataclass(frozen=True)
class StartGameCommand:
    room_id: str


@dataclass(frozen=True)
class FinishCommand:
    room_id: str
    winner_id: str


Command = Union[
    RegisterCommand,
    CreateRoomCommand,
    JoinRoomCommand,
    PlaceShipCommand,
    AttackCommand,
    RandomAttackCommand,
    StartGameCommand,
    FinishCommand,
]


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CommandParseError(f"'{key}' must be a non-empty string")
    return value.strip()


def _int(data: dict, key: str) -> int:
    value = data.get(key)
    # bool is an int subclass; true/false are not coordinates
    if isinstance(value, bool) or not isinstance(value, int):
        raise CommandParseError(f"'{key}' must be an integer")
    return value


def _positions(data: dict) -> Tuple[Position, ...]:
    ship = data.get("ship")
    raw = ship.get("positions") if isinstance(ship, dict) else None
    if not isinstance(raw, list) or not raw:
        raise CommandParseError("'ship.positions' must be a non-empty list")
    out = []
    for item in raw:
        if not isinstance(item, dict):
            raise CommandParseError("each position must be an object with x and y")
        out.append(Position(_int(item, "x"), _int(item, "y")))
    return tuple(out)


def parse_command(envelope: Any) -> Command:
    """Turn a decoded ``{"type": ..., "data": {...}}`` envelope into a command."""
    if not isinstance(envelope, dict):
        raise CommandParseError("Envelope must be a JSON object")
    kind = envelope.get("type")
    if not isinstance(kind, str) or not kind:
        raise CommandParseError("Missing command type")
    data = envelope.get("data", {})
    if not isinstance(data, dict):
        raise CommandParseError("'data' must be a JSON object")

    if kind in ("reg", "register"):
        name = data.get("name", data.get("username", ""))
        if not isinstance(name, str):
            raise CommandParseError("'name' must be a string")
        return RegisterCommand(name=name.strip())
    elif kind == "createRoom":
        return CreateRoomCommand(player_id=_str(data, "playerId"))
    elif kind == "joinRoom":
        room_id = data.get("roomId") or None
        if room_id is not None and not isinstance(room_id, str):
            raise CommandParseError("'roomId' must be a string")
        return JoinRoomCommand(player_id=_str(data, "playerId"), room_id=room_id)
    elif kind == "placeShip":
        return PlaceShipCommand(
            player_id=_str(data, "playerId"),
            room_id=_str(data, "roomId"),
            positions=_positions(data),
        )
    elif kind == "attack":
        return AttackCommand(
            player_id=_str(data, "playerId"),
            room_id=_str(data, "roomId"),
            x=_int(data, "x"),
            y=_int(data, "y"),
        )
    elif kind == "randomAttack":
        return RandomAttackCommand(player_id=_str(data, "playerId"), room_id=_str(data, "roomId"))
    elif kind == "startGame":
        return StartGameCommand(room_id=_str(data, "roomId"))
    elif kind == "finish":
        return FinishCommand(room_id=_str(data, "roomId"), winner_id=_str(data, "winnerId"))
    else:
        raise CommandParseError(f"Unknown command: {kind}")
