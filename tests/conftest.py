import random

import pytest

from drmario.config import GameConfig
from drmario.board_engine import BoardEngine
from drmario.components import Color
from drmario.shapes import Pill, make_virus

class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def quick_config():
    return GameConfig(warmup_seconds=0, throw_ticks=0)

@pytest.fixture
def engine(quick_config, clock):
    return BoardEngine(1, config=quick_config, rng=random.Random(7), clock=clock)

def put_virus(grid, x, y, color):
    virus = make_virus(color)
    grid.place(virus, [(x, y)])
    grid.lock(virus)
    return virus

def put_pill(grid, x, y, rotation, colors=(Color.A, Color.B), locked=False):
    pill = Pill(colors[0], colors[1], x=x, y=y, rotation=rotation)
    grid.place(pill, Pill.layout(x, y, rotation))
    if locked:
        grid.lock(pill)
    return pill
