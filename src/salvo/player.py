"""Player record: identity, own grid, fleet, and the port used to reach them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional

from .battleship import Grid, Position, Ship

if TYPE_CHECKING:
    from .io_utils import OutputPort


@dataclass(eq=False)
class Player:
    id: str
    port: "OutputPort"
    name: str = ""
    grid: Grid = field(default_factory=Grid)
    ships: List[Ship] = field(default_factory=list)

    def notify(self, obj: dict[str, Any]) -> bool:
        """Fire-and-forget delivery; a dead port never raises here."""
        return self.port.send(obj)

    def ship_at(self, pos: Position) -> Optional[Ship]:
        for ship in self.ships:
            if pos in ship:
                return ship
        return None

    def fleet_sunk(self) -> bool:
        """Return True if every placed ship has been sunk."""
        return all(ship.sunk for ship in self.ships)

    def __repr__(self) -> str:
        return f"<Player {self.id} {self.name!r} ships={len(self.ships)}>"
