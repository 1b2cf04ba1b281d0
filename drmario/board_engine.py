"""
Pill Duel - board engine
Per-player simulation: one playing grid, the active pill, score, and the
per-tick state machine (throw -> fall -> lock -> clear/cascade -> throw).
Advanced by an external tick driver; never touches the opponent directly.
"""

import logging
import random
import time
from typing import Dict, List, Optional, Tuple

from drmario.components import (
    COMMANDS, PILL_COLORS, THROW_HEIGHT, THROW_SPAWN, THROW_WIDTH,
    BoardPhase, Color, Direction, PieceKind, PieceState, Rotation,
)
from drmario.config import GameConfig
from drmario.damage import DamageChannel, DamageEvent, ObstructionDrop
from drmario.grid import Grid, grid_to_strings
from drmario.random_stream import RandomStream
from drmario.shapes import Pill, make_obstruction, make_virus

logger = logging.getLogger(__name__)

class ThrowingBoard:
    """Staging area holding the next pill; colors are drawn when it appears here."""

    def __init__(self, stream: RandomStream):
        self.stream = stream
        self.grid = Grid(THROW_WIDTH, THROW_HEIGHT)
        self.pill: Optional[Pill] = None
        self.spawn_pill()

    def spawn_pill(self):
        if self.pill is not None:
            self.grid.remove(self.pill)
        x, y = THROW_SPAWN
        self.pill = Pill(*self.stream.next_pair(), x=x, y=y)
        self.grid.place(self.pill, Pill.layout(x, y, self.pill.rotation))

    def take_colors(self) -> Tuple[Color, Color]:
        colors = tuple(self.pill.colors())
        self.spawn_pill()
        return colors

class BoardEngine:
    def __init__(self, player: int, stream: Optional[RandomStream] = None,
                 config: Optional[GameConfig] = None, rng: Optional[random.Random] = None,
                 clock=time.time):
        self.player = player
        self.config = config or GameConfig()
        self.stream = stream or RandomStream(self.config.color_list_length)
        # obstruction placement only affects this board, so it uses a local RNG
        self.rng = rng or random.Random()
        self.clock = clock
        self.channel = DamageChannel(self.config.damage_threshold, self.config.damage_cap)
        self.spawn_columns = (self.config.width // 2 - 1, self.config.width // 2)
        self.spawn_row = self.config.height - 2
        self.round = 0
        self.level = 0
        self.score = 0
        self.outbox: List[Tuple[str, Dict]] = []
        self._reset_board()

    def _reset_board(self):
        self.grid = Grid(self.config.width, self.config.height, open_columns=self.spawn_columns)
        self.grid.on_clear = self._cell_cleared
        self.throwing = ThrowingBoard(self.stream)
        self.current_pill: Optional[Pill] = None
        self.drops: List[ObstructionDrop] = []
        self.virus_count = 0
        self.phase = BoardPhase.THROWING
        self.throw_remaining: Optional[int] = None
        self.round_started_at = self.clock()

    # -- round setup --

    def start_round(self, seed: int, virus_count: int, round_no: int = 0, level: int = 0):
        """Seed handshake: rebuild the grid and place this round's viruses."""
        self.round = round_no
        self.level = level
        max_height = self.config.max_height_for_level(level)
        self.stream.seed(seed, virus_count, self.config.width, max_height)
        self.channel.start_round(round_no)
        self._reset_board()
        self.spawn_viruses()
        logger.info('player %s: round %s started (seed=%s, viruses=%d)',
                    self.player, round_no, seed, self.virus_count)

    def spawn_viruses(self):
        last = None
        for x, y in self.stream.virus_positions:
            if self.grid.is_occupied(x, y):
                continue
            # cycle A -> B -> C, skipping colors that would line up a match
            start = 0 if last is None else (PILL_COLORS.index(last) + 1) % 3
            for i in range(3):
                color = PILL_COLORS[(start + i) % 3]
                self.grid.set_cell_color(x, y, color)
                fits = not self.grid.should_be_cleared(x, y)
                self.grid.set_cell_color(x, y, Color.NONE)
                if fits:
                    virus = make_virus(color)
                    self.grid.place(virus, [(x, y)])
                    self.grid.lock(virus)
                    self.virus_count += 1
                    last = color
                    break

    # -- events --

    def _emit(self, name: str, data: Dict):
        self.outbox.append((name, data))

    def drain_events(self) -> List[Tuple[str, Dict]]:
        events, self.outbox = self.outbox, []
        return events

    def receive_damage(self, event: DamageEvent) -> bool:
        if self.terminal:
            return False
        return self.channel.receive(event)

    # -- state --

    @property
    def terminal(self) -> bool:
        return self.phase in (BoardPhase.CLEARED, BoardPhase.LOST)

    def game_over(self) -> bool:
        return any(self.grid.is_locked(x, self.spawn_row) for x in self.spawn_columns)

    def stage_completed(self) -> bool:
        # warm-up guards against checking before the viruses are in place
        if self.clock() - self.round_started_at < self.config.warmup_seconds:
            return False
        return self.virus_count <= 0

    def _check_terminal(self) -> bool:
        if self.game_over():
            self._finish(BoardPhase.LOST)
            return True
        if self.stage_completed():
            self._finish(BoardPhase.CLEARED)
            return True
        return False

    def _finish(self, phase: BoardPhase):
        if self.terminal:
            return
        self.phase = phase
        self.current_pill = None
        name = 'stageCleared' if phase == BoardPhase.CLEARED else 'gameLost'
        logger.info('player %s: %s in round %s (score %d)', self.player, name, self.round, self.score)
        self._emit(name, {'player': self.player, 'round': self.round})

    # -- tick --

    def tick(self):
        if self.terminal:
            return
        self._advance_drops()
        if self.current_pill is None:
            self._throw_step()
            return
        self._fall(self.current_pill)

    def _throw_step(self):
        if self.throw_remaining is None:
            self._begin_cycle()
            if self._check_terminal():
                return
        if self.throw_remaining > 0:
            self.throw_remaining -= 1
            return
        self._spawn_pill()

    def skip_throw(self):
        if self.throw_remaining:
            self.throw_remaining = 0

    def _begin_cycle(self):
        self.phase = BoardPhase.THROWING
        self.throw_remaining = self.config.throw_ticks
        self.channel.reset_cycle()
        amount = self.channel.take_pending()
        if amount:
            self.hurt(amount)

    def _spawn_pill(self):
        colors = self.throwing.take_colors()
        pill = Pill(*colors, x=self.spawn_columns[0], y=self.spawn_row, rotation=Rotation.HORIZONTAL)
        positions = Pill.layout(pill.x, pill.y, pill.rotation)
        self.throw_remaining = None
        if not all(self.grid.is_free_for(x, y, pill) for x, y in positions):
            self._finish(BoardPhase.LOST)
            return
        self.grid.place(pill, positions)
        pill.state = PieceState.FALLING
        self.current_pill = pill
        self.phase = BoardPhase.FALLING

    def _fall(self, pill: Pill):
        # a pill waiting on a piece still in motion stays live until the next tick
        if not pill.move(Direction.DOWN) and pill.supported():
            self._lock_current()

    def _lock_current(self):
        self.current_pill.place()
        self.current_pill = None
        self.resolve()
        if not self._check_terminal():
            self.phase = BoardPhase.THROWING

    def resolve(self) -> int:
        """Clear, settle and clear again until nothing changes. Returns the pass count."""
        passes = 0
        while True:
            passes += 1
            cleared = self.grid.clear_matches()
            moved = self.grid.apply_gravity()
            if not cleared and not moved:
                break
        self.grid.check_invariants()
        return passes

    def _cell_cleared(self, x: int, y: int, color: Color, kind: Optional[PieceKind]):
        if kind in (PieceKind.VIRUS, PieceKind.OBSTRUCTION):
            self.score += self.config.score_per_virus
            self.virus_count -= 1
        event = self.channel.record_clear()
        if event is not None:
            logger.info('player %s: sending damage %s', self.player, event)
            self._emit('damage', event.to_dict())

    # -- obstructions --

    def hurt(self, amount: int) -> List[ObstructionDrop]:
        """Start `amount` obstructions falling in distinct non-spawn columns."""
        candidates = [x for x in range(self.config.width)
                      if x not in self.spawn_columns and self.grid.is_free_for(x, self.spawn_row)]
        started = []
        for column in self.rng.sample(candidates, min(amount, len(candidates))):
            color = self.rng.choice(PILL_COLORS)
            piece = make_obstruction(color)
            self.grid.place(piece, [(column, self.spawn_row)])
            piece.state = PieceState.FALLING
            drop = ObstructionDrop(column, color, self.spawn_row, piece)
            self.drops.append(drop)
            started.append(drop)
            self.virus_count += 1
        logger.info('player %s: %d obstruction(s) incoming', self.player, len(started))
        return started

    def _advance_drops(self):
        self.drops = [d for d in self.drops if d.step()]

    # -- commands --

    def _active_pill(self) -> Optional[Pill]:
        if self.terminal or self.current_pill is None or self.current_pill.placed:
            return None
        return self.current_pill

    def command(self, action: str) -> bool:
        if action not in COMMANDS:
            raise ValueError(f'unknown command {action!r}')
        return getattr(self, action)()

    def move_left(self) -> bool:
        pill = self._active_pill()
        return pill.move(Direction.LEFT) if pill else False

    def move_right(self) -> bool:
        pill = self._active_pill()
        return pill.move(Direction.RIGHT) if pill else False

    def rotate_cw(self) -> bool:
        pill = self._active_pill()
        return pill.rotate(1) if pill else False

    def rotate_ccw(self) -> bool:
        pill = self._active_pill()
        return pill.rotate(-1) if pill else False

    def soft_drop(self) -> bool:
        pill = self._active_pill()
        if not pill:
            return False
        self._fall(pill)
        return True

    def hard_drop(self) -> bool:
        pill = self._active_pill()
        if not pill:
            return False
        pill.move_until_stopped(Direction.DOWN)
        if pill.supported():
            self._lock_current()
        return True

    def snapshot(self) -> Dict:
        pill = self.current_pill
        return {
            'player': self.player,
            'round': self.round,
            'level': self.level,
            'phase': self.phase.value,
            'score': self.score,
            'virus_count': self.virus_count,
            'grid': grid_to_strings(self.grid),
            'next': [c.value for c in self.throwing.pill.colors()],
            'pill': None if pill is None else {
                'cells': pill.positions(),
                'rotation': pill.rotation.name,
            },
            'drops': [{'column': d.column, 'row': d.row, 'color': d.color.value} for d in self.drops],
            'damage': self.channel.snapshot(),
            'stream_index': self.stream.index,
        }
