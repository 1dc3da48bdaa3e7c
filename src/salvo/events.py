"""Lightweight event model used by Room to decouple game logic from transport.

A Room emits strongly-typed events after every state change; the
EventRouter turns them into outbound notifications and other subscribers
(tests, logging) can consume them without parsing wire payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict


class Category(Enum):
    """High-level event categories."""

    ROOM = auto()  # membership lifecycle (joined, start)
    TURN = auto()  # per-move lifecycle (placed, shot, turn, end)
    SYSTEM = auto()  # disconnect / timeout


@dataclass(slots=True)
class Event:
    """Immutable event emitted by Room."""

    category: Category
    type: str  # finer-grained identifier, e.g. "shot", "turn", "end"
    payload: Dict[str, Any]
