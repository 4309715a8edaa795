from zonewatch.utils.time import seconds_since, utc_now_s

def test_seconds_since_clamps():
    assert seconds_since(10.0, now=15.5) == 5.5
    assert seconds_since(20.0, now=15.0) == 0.0

def test_seconds_since_defaults_to_wall_clock():
    assert seconds_since(utc_now_s() - 60) >= 60.0
