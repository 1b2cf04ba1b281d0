"""
Pill Duel - shared random stream
Both boards of a session build one of these from the same seed, so pill
colors and virus positions match without sending the sequences themselves.
"""

import logging
import zlib
from typing import List, Optional, Tuple

from drmario.components import Color, PILL_COLORS

logger = logging.getLogger(__name__)

FALLBACK_COLOR = Color.A

def derive_seed(room: str, timestamp: float) -> int:
    """Session seed from the room name and the start time in seconds."""
    return (zlib.crc32(room.encode('utf-8')) ^ int(timestamp * 1000)) & 0xFFFFFFFF

class LCG:
    def __init__(self, seed: int):
        self.state = seed & 0xFFFFFFFF

    def _next(self) -> int:
        self.state = (self.state * 0x41C64E6D + 0x3039) & 0xFFFFFFFF
        return self.state

    def rand(self) -> int:
        return (self._next() >> 16) & 0x7FFF

    def below(self, n: int) -> int:
        return self.rand() % n

class RandomStream:
    def __init__(self, length: int = 100):
        self.length = length
        self.seed_value: Optional[int] = None
        self.colors: List[Color] = []
        self.virus_positions: List[Tuple[int, int]] = []
        self.index = 0

    @property
    def seeded(self) -> bool:
        return self.seed_value is not None

    def seed(self, seed: int, virus_count: int = 0, width: int = 8, max_height: int = 5):
        """(Re)build both sequences from `seed` and rewind the color cursor."""
        if virus_count > width * max_height:
            raise ValueError(f'{virus_count} viruses do not fit in {width}x{max_height}')
        rng = LCG(seed)
        self.seed_value = seed
        self.colors = [PILL_COLORS[rng.below(3)] for _ in range(self.length)]
        positions = []
        while len(positions) < virus_count:
            pos = (rng.below(width), rng.below(max_height))
            if pos not in positions:
                positions.append(pos)
        self.virus_positions = positions
        self.index = 0
        logger.debug('stream seeded with %s: %d colors, %d viruses', seed, len(self.colors), virus_count)

    def color_at(self, index: int) -> Color:
        if not self.colors:
            return FALLBACK_COLOR
        return self.colors[index % len(self.colors)]

    def next_color(self) -> Color:
        # before the seed handshake completes every pill is the fallback color
        if not self.colors:
            return FALLBACK_COLOR
        color = self.colors[self.index]
        self.index = (self.index + 1) % len(self.colors)
        return color

    def next_pair(self) -> Tuple[Color, Color]:
        return self.next_color(), self.next_color()
