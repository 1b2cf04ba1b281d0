"""
Pill Duel - damage channel
Clear points accumulate on the clearing board; crossing the threshold sends a
damage event to the opponent, which turns it into at most one obstruction at
its next spawn cycle.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from drmario.components import Color, Direction, PieceState
from drmario.shapes import Piece

logger = logging.getLogger(__name__)

def damage_magnitude(points: int, threshold: int = 4, cap: int = 1) -> int:
    if points < 0:
        raise ValueError('points must be >= 0')
    return min(points // threshold, cap)

@dataclass(frozen=True)
class DamageEvent:
    points: int
    event_id: int = 0
    round: int = 0

    def to_dict(self):
        return {'points': self.points, 'event_id': self.event_id, 'round': self.round}

    @classmethod
    def from_dict(cls, data):
        return cls(points=int(data['points']),
                   event_id=int(data.get('event_id', 0)),
                   round=int(data.get('round', 0)))

class DamageChannel:
    def __init__(self, threshold: int = 4, cap: int = 1):
        self.threshold = threshold
        self.cap = cap
        self.round = 0
        self.accumulated_points = 0
        self.pending_damage = 0
        self.damage_processed = False
        self._next_event_id = 1
        self._last_seen_id = 0

    def start_round(self, round_no: int):
        self.round = round_no
        self.accumulated_points = 0
        self.pending_damage = 0
        self.damage_processed = False
        self._next_event_id = 1
        self._last_seen_id = 0

    # -- outbound --

    def record_clear(self) -> Optional[DamageEvent]:
        """Count one cleared cell; returns an event when the threshold is reached."""
        self.accumulated_points += 1
        if self.accumulated_points < self.threshold:
            return None
        event = DamageEvent(points=self.accumulated_points, event_id=self._next_event_id, round=self.round)
        self._next_event_id += 1
        self.accumulated_points = 0
        return event

    def reset_cycle(self):
        if self.accumulated_points:
            logger.debug('dropping %d leftover points at cycle end', self.accumulated_points)
        self.accumulated_points = 0

    # -- inbound --

    def receive(self, event: DamageEvent) -> bool:
        """Store capped damage. Stale, duplicate or malformed events are dropped."""
        if event.points < 0:
            logger.warning('dropping damage event with negative points: %r', event)
            return False
        if event.round != self.round:
            logger.warning('dropping damage event for round %s (current %s)', event.round, self.round)
            return False
        if event.event_id <= self._last_seen_id:
            logger.warning('dropping duplicate damage event %s', event.event_id)
            return False
        self._last_seen_id = event.event_id
        magnitude = damage_magnitude(event.points, self.threshold, self.cap)
        if magnitude == 0:
            logger.debug('ignoring zero damage, keeping pending=%d', self.pending_damage)
            return True
        self.pending_damage = magnitude
        self.damage_processed = False
        return True

    def take_pending(self) -> int:
        """Damage to materialize at this spawn cycle; each event is applied once."""
        if self.pending_damage <= 0 or self.damage_processed:
            return 0
        amount = self.pending_damage
        self.pending_damage = 0
        self.damage_processed = True
        return amount

    def snapshot(self) -> Dict:
        return {
            'accumulated_points': self.accumulated_points,
            'pending_damage': self.pending_damage,
            'damage_processed': self.damage_processed,
        }

@dataclass
class ObstructionDrop:
    """One obstruction descending a column, one row per tick."""
    column: int
    color: Color
    row: int
    piece: Piece = field(repr=False, default=None)

    @property
    def cleared(self) -> bool:
        return self.piece is None or not self.piece.segments

    @property
    def landed(self) -> bool:
        return self.piece is not None and self.piece.state == PieceState.LOCKED

    def step(self) -> bool:
        """Descend one row if possible, otherwise lock. Returns True while still falling."""
        if self.cleared or self.landed:
            return False
        if self.piece.drop_one():
            self.row -= 1
            self.piece.state = PieceState.FALLING
        # blocked only by a falling pill: wait for it instead of locking mid-air
        if self.piece.can_move(Direction.DOWN) or not self.piece.supported():
            return True
        self.piece.place()
        return False
