"""
battleship.py

Core data structures for a single player's side of the match:
 - Position: an (x, y) cell address, x is the column and y the row
 - Cell: the four states a grid cell can be in
 - Ship: a set of positions plus a cached sunk flag
 - Grid: the square matrix of cells owned by one player

Nothing here knows about rooms or turns; the Room class drives these
objects and decides *who* may touch them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, NamedTuple

from . import config as _cfg

BOARD_SIZE = _cfg.BOARD_SIZE


class Position(NamedTuple):
    x: int
    y: int

    def to_obj(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y}


class Cell(str, Enum):
    """Grid cell states, valued by the glyph used when rendering a grid."""

    EMPTY = "."
    SHIP = "S"
    HIT = "X"
    MISS = "o"


@dataclass
class Ship:
    """
    A ship is just the positions it occupies. The caller decides the shape;
    the grid only checks bounds and overlap.

    ``sunk`` is a cache recomputed by :meth:`refresh_sunk` every time one of
    the ship's cells is hit.
    """

    positions: List[Position]
    sunk: bool = False

    def __contains__(self, pos: object) -> bool:
        return pos in self.positions

    def __len__(self) -> int:
        return len(self.positions)

    def refresh_sunk(self, grid: "Grid") -> bool:
        """Recompute ``sunk`` from *grid*: every position must be a hit."""
        self.sunk = all(grid[pos] is Cell.HIT for pos in self.positions)
        return self.sunk

    def to_obj(self) -> list[dict[str, int]]:
        return [p.to_obj() for p in self.positions]


@dataclass
class Grid:
    """
    Represents a single player's square board.

    Only the owner's own grid ever stores ``Cell.SHIP``; ``HIT`` and ``MISS``
    are written exclusively by the opponent's attacks.
    """

    size: int = BOARD_SIZE
    cells: List[List[Cell]] = field(init=False)

    def __post_init__(self) -> None:
        self.cells = [[Cell.EMPTY for _ in range(self.size)] for _ in range(self.size)]

    def in_bounds(self, pos: Position) -> bool:
        return 0 <= pos.x < self.size and 0 <= pos.y < self.size

    def __getitem__(self, pos: Position) -> Cell:
        return self.cells[pos.y][pos.x]

    def __setitem__(self, pos: Position, state: Cell) -> None:
        self.cells[pos.y][pos.x] = state

    def positions(self) -> Iterator[Position]:
        for y in range(self.size):
            for x in range(self.size):
                yield Position(x, y)

    def untargeted(self) -> list[Position]:
        """Return every position the opponent has not fired at yet."""
        return [p for p in self.positions() if self[p] not in (Cell.HIT, Cell.MISS)]

    def can_place(self, positions: List[Position]) -> bool:
        """Return `True` if *positions* form a valid new ship on this grid.

        Checks, in order: non-empty, every cell in bounds, no cell repeated
        within the ship, and every cell currently empty.
        """
        if not positions:
            return False
        if not all(self.in_bounds(p) for p in positions):
            return False
        if len(set(positions)) != len(positions):
            return False
        return all(self[p] is Cell.EMPTY for p in positions)

    def rows(self, *, reveal: bool = True) -> list[str]:
        """Render as text rows; with ``reveal=False`` ships show as water."""
        out: list[str] = []
        for row in self.cells:
            glyphs = [
                Cell.EMPTY.value if (c is Cell.SHIP and not reveal) else c.value
                for c in row
            ]
            out.append(" ".join(glyphs))
        return out
