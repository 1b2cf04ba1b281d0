"""
Pill Duel - session coordinator
Owns the two boards of a room, performs the seed handshake, relays damage
and terminal events between them and advances rounds.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from drmario.board_engine import BoardEngine
from drmario.components import COMMANDS
from drmario.config import GameConfig
from drmario.damage import DamageEvent
from drmario.random_stream import RandomStream, derive_seed

logger = logging.getLogger(__name__)

PLAYERS = (1, 2)

def opponent(pid: int) -> int:
    return 2 if pid == 1 else 1

class SessionCoordinator:
    def __init__(self, room: str, config: Optional[GameConfig] = None,
                 rounds_to_win: Optional[int] = None, clock=time.time, seed_rng=None):
        self.room = room
        self.config = config or GameConfig()
        self.rounds_to_win = rounds_to_win or self.config.rounds_to_win
        self.clock = clock
        self.seed_rng = seed_rng
        self.phase = 'LOBBY'            # LOBBY -> PLAYING -> SHOWDOWN
        self.round = 0
        self.seed: Optional[int] = None
        self.virus_count = self.config.virus_count
        self.wins = {pid: 0 for pid in PLAYERS}
        self.winner: Optional[int] = None
        self.events: List[Tuple[str, Dict]] = []
        # each board is built once here and owned by this coordinator
        self.boards: Dict[int, BoardEngine] = {
            pid: BoardEngine(pid, RandomStream(self.config.color_list_length), self.config, clock=clock)
            for pid in PLAYERS
        }

    def _new_seed(self) -> int:
        if self.seed_rng is not None:
            return self.seed_rng.getrandbits(32)
        return derive_seed(self.room, self.clock())

    # -- lifecycle --

    def start(self, seed: Optional[int] = None, virus_count: Optional[int] = None):
        self.phase = 'PLAYING'
        self.round = 1
        self.wins = {pid: 0 for pid in PLAYERS}
        self.winner = None
        # scores carry across rounds of one match, not into a rematch
        for board in self.boards.values():
            board.score = 0
        self.virus_count = self.config.virus_count if virus_count is None else virus_count
        self.handshake(self._new_seed() if seed is None else seed, self.virus_count)

    def handshake(self, seed: int, virus_count: int):
        """Deliver {seed, virus_count} to both boards."""
        self.seed = seed
        self.virus_count = virus_count
        for board in self.boards.values():
            board.start_round(seed, virus_count, round_no=self.round, level=self.round - 1)
        self.events.append(('round', {'round': self.round, 'seed': seed, 'virus_count': virus_count}))
        logger.info('room %s: round %d seeded (%s, %d viruses)', self.room, self.round, seed, virus_count)

    def advance_round(self, seed: Optional[int] = None):
        self.round += 1
        self.handshake(self._new_seed() if seed is None else seed, self.virus_count + 1)

    # -- driving --

    def tick(self):
        if self.phase != 'PLAYING':
            return
        for pid in PLAYERS:
            self.boards[pid].tick()
            self.pump()
            if self.phase != 'PLAYING':
                return

    def command(self, pid: int, action: str) -> Tuple[bool, str]:
        if self.phase != 'PLAYING':
            return False, 'Game is not running.'
        if pid not in self.boards:
            return False, 'Unknown player.'
        if action not in COMMANDS:
            return False, f'Unknown action {action!r}.'
        ok = self.boards[pid].command(action)
        self.pump()
        return ok, 'OK' if ok else 'Refused.'

    def pump(self):
        """Relay everything the boards emitted since the last call."""
        for pid in PLAYERS:
            for name, data in self.boards[pid].drain_events():
                if data.get('round') != self.round:
                    logger.debug('room %s: stale %s from player %s dropped', self.room, name, pid)
                    continue
                if name == 'damage':
                    self.relay_damage(pid, DamageEvent.from_dict(data))
                elif name == 'stageCleared':
                    self._round_won(pid, 'stage_cleared')
                elif name == 'gameLost':
                    self._round_won(opponent(pid), 'opponent_lost')

    def relay_damage(self, sender: int, event: DamageEvent) -> bool:
        target = opponent(sender)
        accepted = self.boards[target].receive_damage(event)
        if accepted:
            self.events.append(('damage', dict(event.to_dict(), sender=sender, target=target)))
        return accepted

    def _round_won(self, pid: int, reason: str):
        if self.phase != 'PLAYING':
            return
        self.wins[pid] += 1
        loser = opponent(pid)
        self.events.append(('round_over', {'round': self.round, 'winner': pid, 'reason': reason}))
        logger.info('room %s: player %s takes round %d (%s)', self.room, pid, self.round, reason)
        if self.wins[pid] >= self.rounds_to_win:
            self.phase = 'SHOWDOWN'
            self.winner = pid
            self.events.append(('game_over', {'winner': pid, 'loser': loser, 'reason': reason}))
        else:
            self.advance_round()

    def drain_events(self) -> List[Tuple[str, Dict]]:
        events, self.events = self.events, []
        return events

    def result(self):
        return {'winner': self.winner, 'wins': dict(self.wins)}

    def snapshot(self):
        s = {
            'room': self.room,
            'phase': self.phase,
            'round': self.round,
            'seed': self.seed,
            'virus_count': self.virus_count,
            'wins': dict(self.wins),
            'players': {pid: b.snapshot() for pid, b in self.boards.items()},
        }
        if self.phase == 'SHOWDOWN':
            s['result'] = self.result()
        return s
