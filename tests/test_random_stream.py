import pytest

from drmario.components import Color, PILL_COLORS
from drmario.random_stream import FALLBACK_COLOR, RandomStream, derive_seed

def test_same_seed_same_sequences():
    a, b = RandomStream(), RandomStream()
    a.seed(12345, virus_count=8)
    b.seed(12345, virus_count=8)
    assert a.colors == b.colors
    assert a.virus_positions == b.virus_positions
    assert [a.next_color() for _ in range(250)] == [b.next_color() for _ in range(250)]

def test_different_seeds_differ():
    a, b = RandomStream(), RandomStream()
    a.seed(1, virus_count=5)
    b.seed(2, virus_count=5)
    assert (a.colors, a.virus_positions) != (b.colors, b.virus_positions)

def test_unseeded_stream_falls_back_without_advancing():
    s = RandomStream()
    assert not s.seeded
    assert s.next_color() == FALLBACK_COLOR == Color.A
    assert s.next_pair() == (Color.A, Color.A)
    assert s.index == 0

def test_cursor_wraps_around():
    s = RandomStream(length=5)
    s.seed(99)
    first = [s.next_color() for _ in range(5)]
    assert s.index == 0
    assert s.next_color() == first[0]
    assert all(c in PILL_COLORS for c in first)

def test_colors_are_determined_by_index():
    s = RandomStream()
    s.seed(2024)
    drawn = [s.next_color() for _ in range(130)]
    assert drawn == [s.color_at(i) for i in range(130)]

def test_reseeding_rewinds():
    s = RandomStream()
    s.seed(7)
    first = [s.next_color() for _ in range(10)]
    s.seed(7)
    assert s.index == 0
    assert [s.next_color() for _ in range(10)] == first

def test_virus_positions_are_distinct_and_in_range():
    s = RandomStream()
    s.seed(31337, virus_count=20, width=8, max_height=5)
    assert len(s.virus_positions) == 20
    assert len(set(s.virus_positions)) == 20
    assert all(0 <= x < 8 and 0 <= y < 5 for x, y in s.virus_positions)

def test_too_many_viruses_is_rejected():
    with pytest.raises(ValueError):
        RandomStream().seed(1, virus_count=41, width=8, max_height=5)

def test_seed_derivation():
    assert derive_seed('ABCD', 1700000000.5) == derive_seed('ABCD', 1700000000.5)
    assert derive_seed('ABCD', 1700000000.5) != derive_seed('ABCE', 1700000000.5)
    assert 0 <= derive_seed('ROOM', 1e12) <= 0xFFFFFFFF
