"""
Pill Duel - shared enums and constants
Colors, directions, rotations and piece tags used by every board.
"""

from collections import namedtuple
from enum import Enum

WIDTH, HEIGHT = 8, 17
THROW_WIDTH, THROW_HEIGHT = 12, 8

# (x, y) of the pill pivot and its right-hand partner on the playing grid
SPAWN_COLUMNS = (3, 4)
SPAWN_ROW = HEIGHT - 2
THROW_SPAWN = (10, 4)

class Color(Enum):
    NONE = ""
    A = "a"
    B = "b"
    C = "c"

# index order used by the random stream: 0 -> A, 1 -> B, 2 -> C
PILL_COLORS = (Color.A, Color.B, Color.C)

Vector = namedtuple('Vector', ['x', 'y'])

class Direction:
    UP = Vector(0, 1)
    LEFT = Vector(-1, 0)
    DOWN = Vector(0, -1)
    RIGHT = Vector(1, 0)

class Rotation(Enum):
    VERTICAL = 0
    HORIZONTAL = 1
    VERTICAL_REVERSED = 2
    HORIZONTAL_REVERSED = 3

    @property
    def is_horizontal(self) -> bool:
        return self in (Rotation.HORIZONTAL, Rotation.HORIZONTAL_REVERSED)

    def turned(self, step: int) -> 'Rotation':
        return Rotation((self.value + step) % 4)

class PieceKind(Enum):
    PILL = "pill"
    VIRUS = "virus"
    OBSTRUCTION = "obstruction"

class PieceState(Enum):
    SPAWNED = "spawned"
    FALLING = "falling"
    LOCKED = "locked"
    CLEARING = "clearing"

class BoardPhase(Enum):
    THROWING = "throwing"   # waiting for the next pill to arrive
    FALLING = "falling"     # a pill is under player control
    CLEARED = "cleared"
    LOST = "lost"

# Commands accepted from the input collaborator
COMMANDS = ('move_left', 'move_right', 'soft_drop', 'hard_drop', 'rotate_cw', 'rotate_ccw')
