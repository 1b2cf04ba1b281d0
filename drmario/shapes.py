"""
Pill Duel - pieces
Pills, viruses and obstructions, and the segments that occupy grid cells.
"""

from typing import List, Optional, Tuple

from drmario.components import Color, Direction, Rotation, PieceKind, PieceState, Vector

class Segment:
    """One cell-sized part of a piece. `cell` is the back-reference into the grid."""

    def __init__(self, piece: 'Piece', color: Color):
        self.piece = piece
        self.color = color
        self.cell = None

    @property
    def position(self) -> Optional[Tuple[int, int]]:
        if self.cell is None:
            return None
        return (self.cell.x, self.cell.y)

    def __repr__(self):
        return f'Segment({self.piece.kind.value}, {self.color.name}, {self.position})'

class Piece:
    def __init__(self, kind: PieceKind, colors: List[Color]):
        self.kind = kind
        self.state = PieceState.SPAWNED
        self.segments = [Segment(self, c) for c in colors]
        self.grid = None

    @property
    def placed(self) -> bool:
        return self.state == PieceState.LOCKED

    @property
    def counts_as_virus(self) -> bool:
        return self.kind in (PieceKind.VIRUS, PieceKind.OBSTRUCTION)

    def positions(self) -> List[Tuple[int, int]]:
        return [s.position for s in self.segments]

    def targets(self, direction: Vector) -> List[Tuple[int, int]]:
        return [(s.cell.x + direction.x, s.cell.y + direction.y) for s in self.segments]

    def can_move(self, direction: Vector) -> bool:
        if self.grid is None or not self.segments:
            return False
        return all(self.grid.is_free_for(x, y, self) for x, y in self.targets(direction))

    def move(self, direction: Vector) -> bool:
        if not self.can_move(direction):
            return False
        self.grid.relocate(self, self.targets(direction))
        return True

    def supported(self) -> bool:
        """True if a segment rests on the floor or on a locked cell."""
        if self.grid is None or not self.segments:
            return False
        for x, y in self.targets(Direction.DOWN):
            cell = self.grid.cell(x, y)
            if cell is None or cell.locked:
                return True
        return False

    def drop_one(self) -> bool:
        """Move a settled piece one row down. Used by gravity on unlocked cells."""
        return Piece.move(self, Direction.DOWN)

    def place(self):
        if self.grid is not None:
            self.grid.lock(self)

    def __repr__(self):
        return f'{type(self).__name__}({self.kind.value}, {self.state.value}, {self.positions()})'

def make_virus(color: Color) -> Piece:
    return Piece(PieceKind.VIRUS, [color])

def make_obstruction(color: Color) -> Piece:
    return Piece(PieceKind.OBSTRUCTION, [color])

def make_fragment(color: Color) -> Piece:
    """A lone pill half, as left behind when its partner is cleared."""
    return Piece(PieceKind.PILL, [color])

class Pill(Piece):
    """
    Two-segment falling piece. (x, y) is the pivot cell; the partner sits to the
    right for horizontal rotations and above for vertical ones. Reversed
    rotations swap which segment takes the pivot.
    """

    def __init__(self, color1: Color, color2: Color, x: int = 0, y: int = 0,
                 rotation: Rotation = Rotation.HORIZONTAL):
        super().__init__(PieceKind.PILL, [color1, color2])
        self.x = x
        self.y = y
        self.rotation = rotation

    @staticmethod
    def layout(x: int, y: int, rotation: Rotation) -> List[Tuple[int, int]]:
        """Cells for segments [0, 1] with pivot (x, y) in the given rotation."""
        partner = (x + 1, y) if rotation.is_horizontal else (x, y + 1)
        if rotation in (Rotation.VERTICAL, Rotation.HORIZONTAL):
            return [(x, y), partner]
        return [partner, (x, y)]

    def colors(self) -> List[Color]:
        return [s.color for s in self.segments]

    def move(self, direction: Vector) -> bool:
        if self.placed:
            return False
        if not super().move(direction):
            return False
        self.x += direction.x
        self.y += direction.y
        if self.state == PieceState.SPAWNED:
            self.state = PieceState.FALLING
        return True

    def drop_one(self) -> bool:
        if not super().drop_one():
            return False
        self.y -= 1
        return True

    def can_rotate(self, step: int) -> bool:
        if self.placed or len(self.segments) != 2:
            return False
        future = self.rotation.turned(step)
        if future.is_horizontal:
            return self.grid.is_free_for(self.x + 1, self.y, self)
        return self.grid.is_free_for(self.x, self.y + 1, self)

    def rotate(self, step: int) -> bool:
        """Rotate by +1 (clockwise) or -1 (counter-clockwise). False leaves the pill untouched."""
        if self.placed or len(self.segments) != 2:
            return False
        # after a kick the right-hand cell is the one just vacated
        self.move_from_wall_if_needed()
        if not self.can_rotate(step):
            return False
        self.rotation = self.rotation.turned(step)
        self.grid.relocate(self, self.layout(self.x, self.y, self.rotation))
        return True

    def move_from_wall_if_needed(self) -> bool:
        if self.rotation.is_horizontal:
            return False
        if self.grid.is_free_for(self.x + 1, self.y, self):
            return False
        return self.move(Direction.LEFT)

    def move_until_stopped(self, direction: Vector) -> int:
        steps = 0
        while self.move(direction):
            steps += 1
        return steps

    def orientation_ok(self) -> bool:
        if len(self.segments) != 2:
            return True
        (x1, y1), (x2, y2) = self.positions()
        return abs(x1 - x2) + abs(y1 - y2) == 1
