from scanner.utils.backoff import CooloffPolicy, jitter, next_backoff

def test_next_backoff_caps():
    assert next_backoff(1, 4) == 2
    assert next_backoff(2, 4) == 4
    assert next_backoff(4, 4) == 4

def test_jitter_bounds():
    for _ in range(50):
        assert 8.0 <= jitter(10.0) <= 12.0

def test_fixed_cooloff_repeats_base():
    p = CooloffPolicy(base_s=300, max_s=900, mode="fixed")
    assert [p.next_delay() for _ in range(3)] == [300, 300, 300]

def test_exponential_cooloff_caps():
    p = CooloffPolicy(base_s=600, max_s=3600)
    assert [p.next_delay() for _ in range(5)] == [600, 1200, 2400, 3600, 3600]
    p.reset()
    assert p.next_delay() == 600
