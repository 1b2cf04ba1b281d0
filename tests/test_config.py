from drmario.config import GameConfig

def test_defaults():
    cfg = GameConfig()
    assert (cfg.width, cfg.height) == (8, 17)
    assert cfg.damage_threshold == 4 and cfg.damage_cap == 1
    assert cfg.color_list_length == 100

def test_from_env_overrides_typed_fields():
    cfg = GameConfig.from_env({
        'DRMARIO_VIRUS_COUNT': '8',
        'DRMARIO_WARMUP_SECONDS': '2.5',
        'UNRELATED': 'x',
    })
    assert cfg.virus_count == 8
    assert cfg.warmup_seconds == 2.5
    assert cfg.throw_ticks == GameConfig().throw_ticks

def test_virus_height_grows_at_high_levels():
    cfg = GameConfig()
    assert [cfg.max_height_for_level(n) for n in (0, 14, 15, 17, 19, 30)] == [5, 5, 6, 7, 8, 8]
