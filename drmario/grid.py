"""
Pill Duel - grid
Cell matrix with occupancy, lock and color state. Owns match detection and
gravity. Origin is bottom-left; cells[y][x], y grows upward.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from drmario.components import Color, PieceKind, PieceState
from drmario.shapes import Piece, Segment, make_fragment, make_virus

logger = logging.getLogger(__name__)

class GridInvariantError(RuntimeError):
    """The cell/segment bijection is broken. Always a local bug."""

@dataclass(eq=False)
class Cell:
    x: int
    y: int
    color: Color = Color.NONE
    locked: bool = False
    occupant: Optional[Segment] = None

    @property
    def taken(self) -> bool:
        return self.occupant is not None

class Grid:
    def __init__(self, width: int, height: int, open_columns: Optional[Iterable[int]] = None):
        self.width = width
        self.height = height
        self.cells: List[List[Cell]] = [[Cell(x, y) for x in range(width)] for y in range(height)]
        self.on_clear: Optional[Callable[[int, int, Color, Optional[PieceKind]], None]] = None
        if open_columns is not None:
            # bottle neck: only the spawn columns are open on the top row
            open_columns = set(open_columns)
            for cell in self.cells[height - 1]:
                if cell.x not in open_columns:
                    cell.locked = True

    # -- basic access --

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def cell(self, x: int, y: int) -> Optional[Cell]:
        if not self.in_bounds(x, y):
            return None
        return self.cells[y][x]

    def __iter__(self) -> Iterator[Cell]:
        for row in self.cells:
            yield from row

    def _at(self, x: int, y: int) -> Cell:
        cell = self.cell(x, y)
        if cell is None:
            raise IndexError(f'({x}, {y}) is outside the {self.width}x{self.height} grid')
        return cell

    def set_cell_color(self, x: int, y: int, color: Color):
        self._at(x, y).color = color

    def color_at(self, x: int, y: int) -> Color:
        return self._at(x, y).color

    def is_occupied(self, x: int, y: int) -> bool:
        return self._at(x, y).taken

    def is_locked(self, x: int, y: int) -> bool:
        return self._at(x, y).locked

    def is_free_for(self, x: int, y: int, piece: Optional[Piece] = None) -> bool:
        """True if `piece` may enter (x, y): in bounds, unlocked, empty or already its own."""
        cell = self.cell(x, y)
        if cell is None or cell.locked:
            return False
        return cell.occupant is None or cell.occupant.piece is piece

    # -- piece placement --

    def _attach(self, segment: Segment, cell: Cell):
        cell.occupant = segment
        cell.color = segment.color
        segment.cell = cell

    def _detach(self, segment: Segment):
        cell = segment.cell
        if cell is not None:
            cell.occupant = None
            cell.color = Color.NONE
        segment.cell = None

    def place(self, piece: Piece, positions: List[Tuple[int, int]]):
        if len(positions) != len(piece.segments):
            raise ValueError('one position per segment is required')
        for x, y in positions:
            if not self.is_free_for(x, y, piece):
                raise GridInvariantError(f'cannot place {piece.kind.value} on ({x}, {y})')
        piece.grid = self
        for segment, (x, y) in zip(piece.segments, positions):
            self._attach(segment, self.cells[y][x])

    def relocate(self, piece: Piece, positions: List[Tuple[int, int]]):
        """Re-point every segment at once; callers have already checked the targets."""
        for segment in piece.segments:
            self._detach(segment)
        for segment, (x, y) in zip(piece.segments, positions):
            self._attach(segment, self.cells[y][x])

    def remove(self, piece: Piece):
        for segment in piece.segments:
            segment.cell.locked = False
            self._detach(segment)
        piece.grid = None

    def lock(self, piece: Piece):
        for segment in piece.segments:
            segment.cell.locked = True
        piece.state = PieceState.LOCKED

    # -- matching --

    def _match_color(self, cell: Cell) -> Color:
        # pieces still in motion never take part in a match
        if cell.occupant is not None and not cell.locked:
            return Color.NONE
        return cell.color

    def _run(self, x: int, y: int, dx: int, dy: int, color: Color) -> int:
        count = 0
        x, y = x + dx, y + dy
        while self.in_bounds(x, y) and self._match_color(self.cells[y][x]) == color:
            count += 1
            x, y = x + dx, y + dy
        return count

    def should_be_cleared(self, x: int, y: int) -> bool:
        color = self._match_color(self.cells[y][x])
        if color == Color.NONE:
            return False
        horizontal = self._run(x, y, 1, 0, color) + self._run(x, y, -1, 0, color)
        vertical = self._run(x, y, 0, 1, color) + self._run(x, y, 0, -1, color)
        return horizontal >= 2 or vertical >= 2

    def matching_cells(self) -> Set[Tuple[int, int]]:
        return {(c.x, c.y) for c in self if self.should_be_cleared(c.x, c.y)}

    def clear_cell(self, x: int, y: int) -> Optional[PieceKind]:
        cell = self.cells[y][x]
        color = cell.color
        segment = cell.occupant
        kind = None
        cell.locked = False
        cell.color = Color.NONE
        if segment is not None:
            piece = segment.piece
            piece.segments.remove(segment)
            segment.cell = None
            cell.occupant = None
            kind = piece.kind
            if not piece.segments:
                piece.state = PieceState.CLEARING
        if self.on_clear is not None:
            self.on_clear(x, y, color, kind)
        return kind

    def clear_matches(self) -> Set[Tuple[int, int]]:
        # collect everything first so the result does not depend on scan order
        found = self.matching_cells()
        for x, y in sorted(found, key=lambda p: (p[1], p[0])):
            self.clear_cell(x, y)
        return found

    # -- gravity --

    def _drop_settled(self, piece: Piece) -> bool:
        for segment in piece.segments:
            segment.cell.locked = False
        moved = piece.drop_one()
        for segment in piece.segments:
            segment.cell.locked = True
        return moved

    def gravity_sweep(self) -> bool:
        """One bottom-up pass; each settled pill moves at most one row."""
        moved = False
        seen = set()
        for row in self.cells:
            for cell in row:
                segment = cell.occupant
                if segment is None or not cell.locked:
                    continue
                piece = segment.piece
                if piece.kind is not PieceKind.PILL or id(piece) in seen:
                    continue
                seen.add(id(piece))
                if self._drop_settled(piece):
                    moved = True
        return moved

    def apply_gravity(self) -> int:
        """Sweep until nothing moves. Returns the number of sweeps that moved something."""
        sweeps = 0
        while self.gravity_sweep():
            sweeps += 1
        return sweeps

    # -- bookkeeping --

    def pieces(self) -> List[Piece]:
        found = {}
        for cell in self:
            if cell.occupant is not None:
                found[id(cell.occupant.piece)] = cell.occupant.piece
        return list(found.values())

    def count_viruses(self) -> int:
        return sum(1 for c in self if c.occupant is not None and c.occupant.piece.counts_as_virus)

    def check_invariants(self):
        for cell in self:
            segment = cell.occupant
            if segment is None:
                continue
            if segment.cell is not cell:
                raise GridInvariantError(f'({cell.x}, {cell.y}) occupant points elsewhere')
            if segment not in segment.piece.segments:
                raise GridInvariantError(f'({cell.x}, {cell.y}) occupant detached from its piece')
            if cell.color != segment.color:
                raise GridInvariantError(f'({cell.x}, {cell.y}) color differs from its occupant')
        for piece in self.pieces():
            for segment in piece.segments:
                if segment.cell is None or segment.cell.occupant is not segment:
                    raise GridInvariantError(f'{piece!r} has a segment outside the grid')

    def reset(self):
        for cell in self:
            cell.color = Color.NONE
            cell.locked = False
            cell.occupant = None

def grid_to_strings(grid: Grid) -> List[str]:
    """Top row first. '.' empty, '#' locked empty, lowercase pill, uppercase virus/obstruction."""
    rows = []
    for y in range(grid.height - 1, -1, -1):
        chars = []
        for cell in grid.cells[y]:
            if cell.occupant is not None:
                ch = cell.color.value
                chars.append(ch.upper() if cell.occupant.piece.counts_as_virus else ch)
            elif cell.color != Color.NONE:
                chars.append(cell.color.value)
            elif cell.locked:
                chars.append('#')
            else:
                chars.append('.')
        rows.append(''.join(chars))
    return rows

def strings_to_grid(rows: List[str], open_columns: Optional[Iterable[int]] = None) -> Grid:
    """Inverse of grid_to_strings; lowercase letters become settled single pill halves."""
    height = len(rows)
    width = max(len(r) for r in rows)
    g = Grid(width, height, open_columns=open_columns)
    for i, row in enumerate(rows):
        y = height - 1 - i
        for x, ch in enumerate(row):
            if ch == '.':
                continue
            if ch == '#':
                g.cells[y][x].locked = True
                continue
            color = Color(ch.lower())
            piece = make_virus(color) if ch.isupper() else make_fragment(color)
            g.place(piece, [(x, y)])
            g.lock(piece)
    return g
