"""
Pill Duel - configuration
Gameplay constants and server settings, overridable from the environment.
"""

import os
from dataclasses import dataclass, fields

from drmario.components import WIDTH, HEIGHT

@dataclass
class GameConfig:
    width: int = WIDTH
    height: int = HEIGHT
    virus_count: int = 5
    max_virus_height: int = 5
    color_list_length: int = 100
    warmup_seconds: float = 7.0     # no stage clear before this
    throw_ticks: int = 1            # 0 skips the throw phase
    tick_seconds: float = 0.6
    damage_threshold: int = 4
    damage_cap: int = 1             # obstructions per damage event
    score_per_virus: int = 100
    rounds_to_win: int = 1

    @classmethod
    def from_env(cls, environ=None):
        """Build a config from DRMARIO_<FIELD> variables, e.g. DRMARIO_VIRUS_COUNT=8."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get('DRMARIO_' + f.name.upper())
            if raw is not None:
                values[f.name] = type(f.default)(raw)
        return cls(**values)

    def max_height_for_level(self, level: int) -> int:
        height = self.max_virus_height
        if level >= 15: height += 1
        if level >= 17: height += 1
        if level >= 19: height += 1
        return min(height, self.height - 3)

PORT = int(os.environ.get('PORT', 5000))
SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
